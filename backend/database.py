import logging
from contextlib import asynccontextmanager
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo import IndexModel
from config import settings

logger = logging.getLogger(__name__)

client: AsyncIOMotorClient = None
_db_instance = None


class _DbProxy:
    """
    Proxy transparent vers l'instance Motor.
    Permet aux services de faire `from database import db` AVANT connect_db().
    db.collection → délégué à _db_instance.collection au moment de l'appel.
    """
    def __getattr__(self, name):
        if _db_instance is None:
            raise RuntimeError("Database not connected. Call connect_db() first.")
        return getattr(_db_instance, name)

    def __getitem__(self, name):
        if _db_instance is None:
            raise RuntimeError("Database not connected. Call connect_db() first.")
        return _db_instance[name]


db = _DbProxy()


def get_db():
    return _db_instance


async def connect_db(mongo_client: Optional[AsyncIOMotorClient] = None):
    """
    Ouvre la connexion (ou adopte un client déjà construit, ex. mongomock en test)
    et crée les index.
    """
    global client, _db_instance
    client = mongo_client or AsyncIOMotorClient(
        settings.MONGO_URL,
        serverSelectionTimeoutMS=5000,
        connectTimeoutMS=10000,
    )
    _db_instance = client[settings.DB_NAME]
    logger.info(f"Connected to MongoDB: {settings.DB_NAME}")
    try:
        await create_indexes()
    except Exception as e:
        logger.warning(f"Could not create indexes (non-blocking): {e}")


async def close_db():
    global client, _db_instance
    if client:
        client.close()
        logger.info("MongoDB connection closed")
    client = None
    _db_instance = None


@asynccontextmanager
async def transaction():
    """
    Unité d'écriture multi-documents.

    Avec MONGO_TRANSACTIONS=true, fournit une session Motor dans une transaction :
    toute exception levée dans le bloc annule l'ensemble des écritures.
    Sinon, fournit None et l'appelant doit compenser lui-même les écritures déjà
    faites (saga).
    """
    if not settings.MONGO_TRANSACTIONS or client is None:
        yield None
        return
    async with await client.start_session() as session:
        async with session.start_transaction():
            yield session


async def create_indexes():
    collections_to_index = {
        "users": [
            IndexModel([("email", 1)], unique=True),
            IndexModel([("user_id", 1)], unique=True),
            IndexModel([("role", 1)]),
        ],
        "parcels": [
            IndexModel([("parcel_id", 1)], unique=True),
            IndexModel([("tracking_id", 1)], unique=True),
            IndexModel([("sender_email", 1)]),
            IndexModel([("sender_district", 1)]),
            IndexModel([("rider_email", 1)]),
            IndexModel([("delivery_status", 1)]),
            IndexModel([("created_at", 1)]),
        ],
        "riders": [
            IndexModel([("rider_id", 1)], unique=True),
            IndexModel([("email", 1)]),
            IndexModel([("status", 1)]),
            IndexModel([("district", 1)]),
        ],
        "payments": [
            IndexModel([("payment_id", 1)], unique=True),
            IndexModel([("parcel_id", 1)], unique=True),
            IndexModel([("email", 1)]),
            IndexModel([("date", 1)]),
        ],
        "withdrawals": [
            IndexModel([("withdrawal_id", 1)], unique=True),
            IndexModel([("parcel_id", 1)], unique=True),
            IndexModel([("rider_email", 1)]),
        ],
        "reviews": [
            IndexModel([("rider_email", 1)]),
            IndexModel([("created_at", 1)]),
        ],
    }

    for collection_name, index_models in collections_to_index.items():
        try:
            await _db_instance[collection_name].create_indexes(index_models)
            logger.info(f"Indexes created for collection: {collection_name}")
        except Exception as e:
            logger.error(f"Failed to create indexes for collection {collection_name}: {e}")

    logger.info("All MongoDB indexes creation attempts completed.")

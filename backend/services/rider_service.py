"""
Service livreurs : candidatures, validation admin, disponibilité.
Workflow : Utilisateur postule → Admin approuve (rôle rider) ou rejette (suppression)
"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import db, transaction
from core.exceptions import (
    bad_request_exception,
    inconsistent_exception,
    not_found_exception,
)
from core.utils import without_id
from models.common import RiderStatus, UserRole, WorkStatus
from models.rider import RiderApplicationCreate

logger = logging.getLogger(__name__)


class _UserMissing(Exception):
    pass


def _rider_id() -> str:
    return f"rdr_{uuid.uuid4().hex[:12]}"


async def submit_application(data: RiderApplicationCreate, email: str) -> dict:
    existing = await db.riders.find_one({"email": email})
    if existing:
        raise bad_request_exception("Vous avez déjà une candidature livreur")

    now = datetime.now(timezone.utc)
    doc = {
        "rider_id":          _rider_id(),
        "email":             email,
        **data.model_dump(),
        "district":          data.district.strip(),
        "status":            RiderStatus.PENDING.value,
        "work_status":       WorkStatus.AVAILABLE.value,
        "created_at":        now,
        "approved_at":       None,
        "updated_at":        now,
    }
    await db.riders.insert_one(doc)
    logger.info(f"Candidature livreur soumise : {doc['rider_id']} ({email})")
    return {k: v for k, v in doc.items() if k != "_id"}


async def get_application(rider_id: str) -> dict:
    rider = await db.riders.find_one({"rider_id": rider_id}, {"_id": 0})
    if not rider:
        raise not_found_exception("Candidature")
    return rider


async def get_application_by_email(email: str) -> dict:
    rider = await db.riders.find_one({"email": email}, {"_id": 0})
    if not rider:
        raise not_found_exception("Candidature")
    return rider


async def list_applications(status: Optional[RiderStatus] = None, skip: int = 0, limit: int = 50) -> dict:
    query: dict = {}
    if status:
        query["status"] = status.value
    cursor = db.riders.find(query, {"_id": 0}).sort("created_at", 1).skip(skip).limit(limit)
    total = await db.riders.count_documents(query)
    return {"riders": await cursor.to_list(length=limit), "total": total}


async def approve_application(rider_id: str, admin_email: str) -> dict:
    """
    Approuver :
    - candidature pending → active
    - utilisateur de même email → rôle rider
    Les deux écritures forment une seule unité.
    """
    now = datetime.now(timezone.utc)
    try:
        async with transaction() as session:
            rider = await db.riders.find_one_and_update(
                {"rider_id": rider_id, "status": RiderStatus.PENDING.value},
                {"$set": {
                    "status":      RiderStatus.ACTIVE.value,
                    "work_status": WorkStatus.AVAILABLE.value,
                    "approved_at": now,
                    "updated_at":  now,
                }},
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not rider:
                await get_application(rider_id)
                raise bad_request_exception("Candidature déjà active")

            try:
                result = await db.users.update_one(
                    {"email": rider["email"]},
                    {"$set": {"role": UserRole.RIDER.value, "updated_at": now}},
                    session=session,
                )
                if result.matched_count == 0:
                    raise _UserMissing()
            except (PyMongoError, _UserMissing):
                if session is None:
                    await _undo_approval(rider_id, rider["email"])
                raise
    except _UserMissing:
        raise not_found_exception("Utilisateur lié à la candidature")

    logger.info(f"Livreur {rider_id} ({rider['email']}) approuvé par {admin_email}")
    return without_id(rider)


async def _undo_approval(rider_id: str, email: str) -> None:
    try:
        result = await db.riders.update_one(
            {"rider_id": rider_id, "status": RiderStatus.ACTIVE.value},
            {"$set": {
                "status":      RiderStatus.PENDING.value,
                "approved_at": None,
                "updated_at":  datetime.now(timezone.utc),
            }},
        )
        if result.matched_count == 1:
            logger.warning(f"Approbation annulée pour {rider_id} : rôle de {email} non promu")
            return
        failure = "candidature modifiée avant la compensation"
    except PyMongoError as e:
        failure = str(e)
    logger.error(f"Compensation impossible pour la candidature {rider_id} : {failure}")
    raise inconsistent_exception(
        "Candidature active mais rôle utilisateur non promu",
        {"rider_id": rider_id, "email": email, "failed_step": "user.role"},
    )


async def reject_application(rider_id: str, admin_email: str) -> dict:
    result = await db.riders.delete_one({"rider_id": rider_id})
    if result.deleted_count == 0:
        raise not_found_exception("Candidature")
    logger.info(f"Candidature {rider_id} rejetée par {admin_email}")
    return {"message": "Candidature rejetée", "rider_id": rider_id}


async def deactivate_rider(rider_id: str, admin_email: str) -> dict:
    rider = await db.riders.find_one_and_update(
        {"rider_id": rider_id},
        {"$set": {"status": RiderStatus.PENDING.value, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    if not rider:
        raise not_found_exception("Livreur")
    logger.info(f"Livreur {rider_id} désactivé par {admin_email}")
    return without_id(rider)


async def find_riders_by_district(district: str) -> list:
    """Livreurs actifs d'un district (correspondance exacte, insensible à la casse)."""
    pattern = f"^{re.escape(district.strip())}$"
    cursor = db.riders.find(
        {
            "status":   RiderStatus.ACTIVE.value,
            "district": {"$regex": pattern, "$options": "i"},
        },
        {"_id": 0},
    ).sort("created_at", 1)
    return await cursor.to_list(length=200)

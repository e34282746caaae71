"""
Configuration commune des tests : Mongo en mémoire, jetons d'identité signés
localement, passerelle de paiement simulée.
"""
import uuid
from datetime import datetime, timezone

import pytest
from httpx import AsyncClient, ASGITransport
from jose import jwt
from mongomock_motor import AsyncMongoMockClient
from pymongo.errors import PyMongoError

import database
from core.security import JWTTokenVerifier, get_identity_verifier
from main import app
from models.common import RiderStatus, UserRole, WorkStatus
from models.parcel import ParcelCreate
from services.parcel_service import create_parcel, get_parcel
from services.payment_service import PaymentGateway, get_payment_gateway, record_payment

TEST_SECRET = "test-identity-secret-0123456789abcdef"


# ── Base de données ───────────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
async def mongo():
    """Base mongomock neuve pour chaque test."""
    await database.connect_db(AsyncMongoMockClient())
    yield database.db
    database.client = None
    database._db_instance = None


# ── Identité + passerelle ─────────────────────────────────────────────────────
@pytest.fixture(autouse=True)
async def overrides():
    verifier = JWTTokenVerifier(TEST_SECRET)
    gateway = PaymentGateway(secret_key=None, currency="usd")
    app.dependency_overrides[get_identity_verifier] = lambda: verifier
    app.dependency_overrides[get_payment_gateway] = lambda: gateway
    yield
    app.dependency_overrides = {}
    await gateway.aclose()


@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac


@pytest.fixture
def auth_headers():
    def _headers(email: str, **claims) -> dict:
        token = jwt.encode({"email": email, "sub": email, **claims}, TEST_SECRET, algorithm="HS256")
        return {"Authorization": f"Bearer {token}"}
    return _headers


# ── Données ───────────────────────────────────────────────────────────────────
@pytest.fixture
def make_user(mongo):
    async def _make(email: str, role: UserRole = UserRole.USER, name: str = "Test User") -> dict:
        now = datetime.now(timezone.utc)
        doc = {
            "user_id":    f"usr_{uuid.uuid4().hex[:12]}",
            "email":      email,
            "name":       name,
            "role":       role.value,
            "created_at": now,
            "updated_at": now,
        }
        await mongo.users.insert_one(doc)
        return {k: v for k, v in doc.items() if k != "_id"}
    return _make


@pytest.fixture
async def admin(make_user):
    return await make_user("admin@test.com", UserRole.ADMIN, name="Admin")


@pytest.fixture
def make_rider(mongo, make_user):
    """Livreur approuvé : utilisateur de rôle rider + candidature active."""
    async def _make(
        email: str = "rider@test.com",
        district: str = "Dhaka",
        status: RiderStatus = RiderStatus.ACTIVE,
    ) -> dict:
        await make_user(email, UserRole.RIDER, name="Rider")
        now = datetime.now(timezone.utc)
        doc = {
            "rider_id":    f"rdr_{uuid.uuid4().hex[:12]}",
            "email":       email,
            "name":        "Rider",
            "district":    district,
            "status":      status.value,
            "work_status": WorkStatus.AVAILABLE.value,
            "created_at":  now,
            "approved_at": now,
            "updated_at":  now,
        }
        await mongo.riders.insert_one(doc)
        return {k: v for k, v in doc.items() if k != "_id"}
    return _make


@pytest.fixture
def make_parcel():
    async def _make(
        sender: str = "sender@test.com",
        cost: float = 500,
        sender_district: str = "Dhaka",
        receiver_district: str = "Dhaka",
        paid: bool = True,
    ) -> dict:
        parcel = await create_parcel(
            ParcelCreate(
                sender_name="Sender",
                sender_district=sender_district,
                receiver_name="Receiver",
                receiver_district=receiver_district,
                delivery_cost=cost,
            ),
            sender_email=sender,
        )
        if paid:
            await record_payment(parcel["parcel_id"], f"pi_test_{uuid.uuid4().hex[:8]}", payer_email=sender)
        return await get_parcel(parcel["parcel_id"])
    return _make


@pytest.fixture
def assign_body():
    def _body(rider: dict) -> dict:
        return {"rider_id": rider["rider_id"], "rider_email": rider["email"], "rider_name": rider["name"]}
    return _body


# ── Injection de pannes ───────────────────────────────────────────────────────
class _FailingCollection:
    def __init__(self, inner, failing: set):
        self._inner = inner
        self._failing = failing

    def __getattr__(self, name):
        if name in self._failing:
            async def _fail(*args, **kwargs):
                raise PyMongoError(f"injected failure on {name}")
            return _fail
        return getattr(self._inner, name)


class _FailingDb:
    """Enveloppe `db` : les opérations listées par collection lèvent PyMongoError."""

    def __init__(self, inner, failures: dict):
        self._inner = inner
        self._failures = failures

    def __getattr__(self, name):
        collection = getattr(self._inner, name)
        if name in self._failures:
            return _FailingCollection(collection, set(self._failures[name]))
        return collection


@pytest.fixture
def failing_db(mongo):
    def _build(**failures) -> _FailingDb:
        return _FailingDb(mongo, failures)
    return _build

"""
Service paiement : création d'intentions de paiement (API Stripe Payment Intents)
et enregistrement des reçus.
Docs : https://docs.stripe.com/api/payment_intents/create
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

import httpx
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings
from database import db, transaction
from core.exceptions import (
    already_processed_exception,
    bad_request_exception,
    external_service_exception,
    inconsistent_exception,
    not_found_exception,
)
from models.common import DeliveryStatus, PaymentStatus

logger = logging.getLogger(__name__)


class PaymentGateway:
    """Client de la passerelle ; une seule opération : create_intent(montant)."""

    def __init__(
        self,
        client: Optional[httpx.AsyncClient] = None,
        secret_key: Optional[str] = None,
        currency: str = "usd",
    ):
        self.secret_key = secret_key
        self.currency = currency
        self._client = client or httpx.AsyncClient(
            base_url=settings.STRIPE_API_BASE,
            timeout=settings.PAYMENT_TIMEOUT_SECONDS,
        )

    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.secret_key}"}

    async def create_intent(self, amount: float, metadata: Optional[dict] = None) -> dict:
        """
        Crée une intention de paiement et retourne {intent_id, client_secret}.
        Le montant est converti en plus petite unité monétaire (centimes).
        """
        if not self.secret_key:
            logger.warning("Stripe non configuré — paiement simulé")
            intent_id = f"pi_sim_{uuid.uuid4().hex[:16]}"
            return {
                "intent_id":     intent_id,
                "client_secret": f"{intent_id}_secret_sim",
                "simulated":     True,
            }

        payload = {
            "amount": int(round(amount * 100)),
            "currency": self.currency,
            "payment_method_types[]": "card",
        }
        for key, value in (metadata or {}).items():
            payload[f"metadata[{key}]"] = value

        try:
            resp = await self._client.post("/payment_intents", data=payload, headers=self._headers())
        except httpx.HTTPError as e:
            logger.error(f"Erreur réseau Stripe : {e}")
            raise external_service_exception("passerelle de paiement")

        if resp.status_code >= 400:
            logger.error(f"Stripe erreur {resp.status_code} : {resp.text}")
            raise external_service_exception("passerelle de paiement")
        data = resp.json()
        return {
            "intent_id":     data["id"],
            "client_secret": data["client_secret"],
            "simulated":     False,
        }

    async def aclose(self):
        await self._client.aclose()


_gateway: Optional[PaymentGateway] = None


def init_payment_gateway() -> PaymentGateway:
    global _gateway
    _gateway = PaymentGateway(
        secret_key=settings.STRIPE_SECRET_KEY,
        currency=settings.PAYMENT_CURRENCY,
    )
    return _gateway


async def close_payment_gateway():
    global _gateway
    if _gateway is not None:
        await _gateway.aclose()
        _gateway = None


def get_payment_gateway() -> PaymentGateway:
    if _gateway is None:
        raise RuntimeError("Payment gateway not initialised. Call init_payment_gateway() first.")
    return _gateway


def _payment_id() -> str:
    return f"pay_{uuid.uuid4().hex[:12]}"


async def create_payment_intent(parcel: dict, gateway: PaymentGateway) -> dict:
    """Le montant vient toujours du colis, jamais du client."""
    if parcel.get("payment_status") == PaymentStatus.PAID.value:
        raise bad_request_exception("Colis déjà payé")
    if parcel.get("delivery_status") == DeliveryStatus.CANCELLED.value:
        raise bad_request_exception("Colis annulé")

    amount = float(parcel.get("delivery_cost") or 0)
    intent = await gateway.create_intent(
        amount,
        metadata={"parcel_id": parcel["parcel_id"], "tracking_id": parcel.get("tracking_id", "")},
    )
    return {
        "parcel_id":     parcel["parcel_id"],
        "intent_id":     intent["intent_id"],
        "client_secret": intent["client_secret"],
        "amount":        amount,
        "currency":      gateway.currency,
        "simulated":     intent.get("simulated", False),
    }


async def record_payment(parcel_id: str, transaction_id: str, payer_email: str) -> dict:
    """
    Passage unpaid → paid + reçu de paiement, dans une seule unité.
    Sans transaction : si le reçu ne peut être écrit, le colis est remis à unpaid ;
    si cette remise échoue aussi, l'incohérence est signalée.
    """
    now = datetime.now(timezone.utc)
    async with transaction() as session:
        parcel = await db.parcels.find_one_and_update(
            {
                "parcel_id":       parcel_id,
                "payment_status":  PaymentStatus.UNPAID.value,
                "delivery_status": {"$ne": DeliveryStatus.CANCELLED.value},
            },
            {"$set": {
                "payment_status": PaymentStatus.PAID.value,
                "transaction_id": transaction_id,
                "paid_at":        now,
                "updated_at":     now,
            }},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not parcel:
            existing = await db.parcels.find_one(
                {"parcel_id": parcel_id},
                {"_id": 0, "payment_status": 1, "delivery_status": 1},
            )
            if not existing:
                raise not_found_exception("Colis")
            if (
                existing.get("payment_status") != PaymentStatus.PAID.value
                and existing.get("delivery_status") == DeliveryStatus.CANCELLED.value
            ):
                raise bad_request_exception("Colis annulé : paiement refusé")
            raise already_processed_exception("Paiement déjà enregistré pour ce colis")

        payment = {
            "payment_id":     _payment_id(),
            "parcel_id":      parcel_id,
            "transaction_id": transaction_id,
            "email":          payer_email,
            "amount":         float(parcel.get("delivery_cost") or 0),
            "currency":       settings.PAYMENT_CURRENCY,
            "date":           now,
        }
        try:
            await db.payments.insert_one(payment, session=session)
        except PyMongoError as e:
            if session is None:
                await _undo_payment(parcel_id, transaction_id, e)
            if isinstance(e, DuplicateKeyError):
                raise already_processed_exception("Paiement déjà enregistré pour ce colis")
            raise

    logger.info(f"Paiement enregistré pour {parcel_id} : tx={transaction_id}")
    return {k: v for k, v in payment.items() if k != "_id"}


async def _undo_payment(parcel_id: str, transaction_id: str, cause: Exception) -> None:
    try:
        result = await db.parcels.update_one(
            {"parcel_id": parcel_id, "transaction_id": transaction_id},
            {"$set": {
                "payment_status": PaymentStatus.UNPAID.value,
                "transaction_id": None,
                "paid_at":        None,
                "updated_at":     datetime.now(timezone.utc),
            }},
        )
        if result.matched_count == 1:
            logger.warning(f"Paiement annulé pour {parcel_id} : reçu non enregistré ({cause})")
            return
        failure = "colis modifié avant la compensation"
    except PyMongoError as e:
        failure = str(e)
    logger.error(f"Compensation paiement impossible pour {parcel_id} : {failure}")
    raise inconsistent_exception(
        "Colis marqué payé mais reçu de paiement absent",
        {"parcel_id": parcel_id, "transaction_id": transaction_id, "failed_step": "payments.insert"},
    )


async def list_payments(email: Optional[str] = None, skip: int = 0, limit: int = 50) -> dict:
    query = {"email": email} if email else {}
    cursor = db.payments.find(query, {"_id": 0}).sort("date", -1).skip(skip).limit(limit)
    total = await db.payments.count_documents(query)
    return {"payments": await cursor.to_list(length=limit), "total": total}

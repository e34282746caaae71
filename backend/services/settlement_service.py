"""
Service de règlement livreur : gains par colis livré et retrait unique par colis.

Taux (config.py) : 80 % du coût de livraison si expéditeur et destinataire sont
dans le même district, 30 % sinon. Les gains sont recalculés à chaque lecture,
jamais stockés sur le colis.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

from config import settings
from database import db, transaction
from core.exceptions import (
    already_processed_exception,
    bad_request_exception,
    forbidden_exception,
    inconsistent_exception,
)
from core.utils import same_district
from models.common import DeliveryStatus
from services.parcel_service import get_parcel

logger = logging.getLogger(__name__)

COMPLETED_STATUSES = [DeliveryStatus.DELIVERED.value]


def _withdrawal_id() -> str:
    return f"wdr_{uuid.uuid4().hex[:12]}"


def rider_rate(parcel: dict) -> float:
    if same_district(parcel.get("sender_district"), parcel.get("receiver_district")):
        return settings.RIDER_SAME_DISTRICT_RATE
    return settings.RIDER_CROSS_DISTRICT_RATE


def compute_earning(parcel: dict) -> float:
    return round(float(parcel.get("delivery_cost") or 0) * rider_rate(parcel), 2)


async def get_earnings(rider_email: str) -> dict:
    cursor = db.parcels.find(
        {"rider_email": rider_email, "delivery_status": {"$in": COMPLETED_STATUSES}},
        {"_id": 0},
    ).sort("delivered_at", -1)
    parcels = await cursor.to_list(length=1000)

    lines = []
    for parcel in parcels:
        lines.append({
            "parcel_id":         parcel["parcel_id"],
            "tracking_id":       parcel.get("tracking_id"),
            "sender_district":   parcel.get("sender_district"),
            "receiver_district": parcel.get("receiver_district"),
            "delivery_cost":     parcel.get("delivery_cost", 0),
            "rate":              rider_rate(parcel),
            "earning":           compute_earning(parcel),
            "is_cashed_out":     bool(parcel.get("is_cashed_out")),
            "delivered_at":      parcel.get("delivered_at"),
        })

    total = round(sum(line["earning"] for line in lines), 2)
    cashed = round(sum(line["earning"] for line in lines if line["is_cashed_out"]), 2)
    return {
        "parcels":         lines,
        "total_earned":    total,
        "cashed_out":      cashed,
        "pending_cashout": round(total - cashed, 2),
    }


async def cashout(parcel_id: str, rider_email: str, requested_amount: Optional[float] = None) -> dict:
    """
    Retrait des gains d'un colis livré.

    Le drapeau is_cashed_out est posé AVANT l'écriture du retrait, par une mise à
    jour conditionnelle : même si l'insertion du retrait échoue ensuite, aucun
    second retrait n'est possible pour ce colis.
    """
    parcel = await get_parcel(parcel_id)
    if parcel.get("rider_email") != rider_email:
        raise forbidden_exception("Ce colis n'a pas été livré par ce livreur")
    if parcel.get("is_cashed_out"):
        raise already_processed_exception("Gains déjà retirés pour ce colis")
    if parcel.get("delivery_status") not in COMPLETED_STATUSES:
        raise bad_request_exception("Le colis n'est pas encore livré")

    amount = compute_earning(parcel)
    if requested_amount is not None and abs(requested_amount - amount) > 0.01:
        logger.warning(
            "Montant de retrait annoncé %s ≠ montant calculé %s (colis %s, livreur %s)",
            requested_amount, amount, parcel_id, rider_email,
        )

    now = datetime.now(timezone.utc)
    withdrawal = {
        "withdrawal_id":    _withdrawal_id(),
        "parcel_id":        parcel_id,
        "rider_email":      rider_email,
        "amount":           amount,
        "requested_amount": requested_amount,
        "status":           "completed",
        "date":             now,
    }

    async with transaction() as session:
        flagged = await db.parcels.find_one_and_update(
            {
                "parcel_id":       parcel_id,
                "rider_email":     rider_email,
                "delivery_status": {"$in": COMPLETED_STATUSES},
                "is_cashed_out":   {"$ne": True},
            },
            {"$set": {"is_cashed_out": True, "cashed_out_at": now, "updated_at": now}},
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not flagged:
            # Un retrait concurrent est passé entre la lecture et l'écriture
            raise already_processed_exception("Gains déjà retirés pour ce colis")

        try:
            await db.withdrawals.insert_one(withdrawal, session=session)
        except DuplicateKeyError:
            raise already_processed_exception("Gains déjà retirés pour ce colis")
        except PyMongoError as e:
            if session is not None:
                raise
            logger.error(f"Retrait non enregistré pour {parcel_id} après marquage : {e}")
            raise inconsistent_exception(
                "Colis marqué comme réglé mais retrait non enregistré",
                {
                    "parcel_id":   parcel_id,
                    "rider_email": rider_email,
                    "amount":      amount,
                    "failed_step": "withdrawals.insert",
                },
            )

    logger.info(f"Retrait de {amount} pour le colis {parcel_id} (livreur {rider_email})")
    return {k: v for k, v in withdrawal.items() if k != "_id"}


async def list_withdrawals(rider_email: Optional[str] = None, skip: int = 0, limit: int = 50) -> dict:
    query = {"rider_email": rider_email} if rider_email else {}
    cursor = db.withdrawals.find(query, {"_id": 0}).sort("date", -1).skip(skip).limit(limit)
    total = await db.withdrawals.count_documents(query)
    return {"withdrawals": await cursor.to_list(length=limit), "total": total}

"""
Service colis : machine d'états, historique de suivi, transitions métier.
"""
import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import db, transaction
from core.exceptions import (
    bad_request_exception,
    conflict_exception,
    forbidden_exception,
    inconsistent_exception,
    not_found_exception,
)
from core.security import generate_tracking_id
from core.utils import without_id
from models.common import DeliveryStatus, PaymentStatus, WorkStatus
from models.parcel import ParcelCreate

logger = logging.getLogger(__name__)

# ── Machine d'états ───────────────────────────────────────────────────────────
ALLOWED_TRANSITIONS: dict[DeliveryStatus, list[DeliveryStatus]] = {
    DeliveryStatus.PROCESSING: [
        DeliveryStatus.IN_TRANSIT,   # uniquement via l'assignation d'un livreur
        DeliveryStatus.CANCELLED,
    ],
    DeliveryStatus.IN_TRANSIT: [
        DeliveryStatus.PICKED,
        DeliveryStatus.DELIVERED,    # collecte non scannée
        DeliveryStatus.CANCELLED,
    ],
    DeliveryStatus.PICKED: [
        DeliveryStatus.DELIVERED,
        DeliveryStatus.CANCELLED,
    ],
    # États terminaux
    DeliveryStatus.DELIVERED: [],
    DeliveryStatus.CANCELLED: [],
}

TERMINAL_STATUSES = {s for s, targets in ALLOWED_TRANSITIONS.items() if not targets}
# Statuts où le colis est entre les mains d'un livreur
ACTIVE_STATUSES = [DeliveryStatus.IN_TRANSIT, DeliveryStatus.PICKED]
# Statuts qui n'ont de sens qu'avec un livreur assigné
RIDER_STATUSES = {DeliveryStatus.IN_TRANSIT, DeliveryStatus.PICKED, DeliveryStatus.DELIVERED}
# Statuts qui libèrent le livreur
RELEASING_STATUSES = {DeliveryStatus.DELIVERED, DeliveryStatus.CANCELLED}

STATUS_MESSAGES = {
    DeliveryStatus.PROCESSING: "Commande enregistrée.",
    DeliveryStatus.IN_TRANSIT: "Livreur {rider_name} assigné, en route pour la collecte.",
    DeliveryStatus.PICKED:     "Colis récupéré par {rider_name}, en cours d'acheminement.",
    DeliveryStatus.DELIVERED:  "Colis livré à {receiver_name}.",
    DeliveryStatus.CANCELLED:  "Commande annulée.",
}

PUBLIC_TRACKING_PROJECTION = {
    "_id": 0,
    "tracking_id": 1,
    "receiver_name": 1,
    "delivery_status": 1,
    "tracking_history": 1,
    "sender_district": 1,
    "receiver_district": 1,
}


def _parcel_id() -> str:
    return f"prc_{uuid.uuid4().hex[:12]}"


def can_transition(current: DeliveryStatus, new: DeliveryStatus) -> bool:
    return new in ALLOWED_TRANSITIONS.get(current, [])


def tracking_entry(status: DeliveryStatus, parcel: dict, message: Optional[str] = None) -> dict:
    """Construit une entrée d'historique ; le message par défaut dépend du statut."""
    if not message:
        message = STATUS_MESSAGES[status].format(
            rider_name=parcel.get("rider_name") or "",
            receiver_name=parcel.get("receiver_name") or "",
        )
    return {
        "status":    status.value,
        "timestamp": datetime.now(timezone.utc),
        "message":   message,
    }


async def create_parcel(data: ParcelCreate, sender_email: str) -> dict:
    """Crée un nouveau colis ; statuts et historique sont imposés par le serveur."""
    now = datetime.now(timezone.utc)
    parcel_doc = {
        "parcel_id":          _parcel_id(),
        "tracking_id":        generate_tracking_id(),
        "sender_email":       sender_email,
        "sender_name":        data.sender_name,
        "sender_phone":       data.sender_phone,
        "sender_address":     data.sender_address,
        "sender_district":    data.sender_district.strip(),
        "receiver_name":      data.receiver_name,
        "receiver_phone":     data.receiver_phone,
        "receiver_address":   data.receiver_address,
        "receiver_district":  data.receiver_district.strip(),
        "parcel_type":        data.parcel_type,
        "weight_kg":          data.weight_kg,
        "description":        data.description,
        "delivery_cost":      data.delivery_cost,
        "delivery_status":    DeliveryStatus.PROCESSING.value,
        "payment_status":     PaymentStatus.UNPAID.value,
        "transaction_id":     None,
        "paid_at":            None,
        "rider_id":           None,
        "rider_email":        None,
        "rider_name":         None,
        "estimated_delivery_date": None,
        "assigned_at":        None,
        "picked_at":          None,
        "delivered_at":       None,
        "is_cashed_out":      False,
        "cashed_out_at":      None,
        "tracking_history":   [],
        "created_at":         now,
        "updated_at":         now,
    }
    await db.parcels.insert_one(parcel_doc)
    logger.info(f"Colis créé : {parcel_doc['parcel_id']} par {sender_email}")
    return {k: v for k, v in parcel_doc.items() if k != "_id"}


async def list_parcels(email: Optional[str] = None, skip: int = 0, limit: int = 50) -> dict:
    """Colis du plus récent au plus ancien, filtrés par expéditeur si demandé."""
    query = {"sender_email": email} if email else {}
    cursor = (
        db.parcels.find(query, {"_id": 0})
        .sort([("created_at", -1), ("_id", -1)])
        .skip(skip)
        .limit(limit)
    )
    parcels = await cursor.to_list(length=limit)
    total = await db.parcels.count_documents(query)
    return {"parcels": parcels, "total": total}


async def get_parcel(parcel_id: str) -> dict:
    parcel = await db.parcels.find_one({"parcel_id": parcel_id}, {"_id": 0})
    if not parcel:
        raise not_found_exception("Colis")
    return parcel


async def get_public_tracking(tracking_id: str) -> dict:
    parcel = await db.parcels.find_one(
        {"tracking_id": tracking_id.strip().upper()},
        PUBLIC_TRACKING_PROJECTION,
    )
    if not parcel:
        raise not_found_exception("Colis")
    return parcel


async def transition_status(
    parcel_id: str,
    new_status: DeliveryStatus,
    actor_email: str,
    message: Optional[str] = None,
    rider_email: Optional[str] = None,
    extra_fields: Optional[dict] = None,
) -> dict:
    """
    Transition officielle de la machine d'états.
    Valide la transition, met à jour le colis en ajoutant une entrée de suivi.

    La mise à jour est conditionnée au statut lu : si un autre acteur a modifié
    le colis entre-temps, aucune écriture n'a lieu (conflit).
    Si rider_email est fourni, seul ce livreur assigné peut agir.
    """
    parcel = await get_parcel(parcel_id)

    if rider_email is not None and parcel.get("rider_email") != rider_email:
        raise forbidden_exception("Ce colis n'est pas assigné à ce livreur")

    current_status = DeliveryStatus.parse(parcel["delivery_status"])
    if not can_transition(current_status, new_status):
        raise bad_request_exception(
            f"Transition interdite : {current_status.value} → {new_status.value}"
        )
    if new_status in RIDER_STATUSES and not parcel.get("rider_id"):
        raise bad_request_exception(
            f"Le statut {new_status.value} exige un livreur assigné"
        )

    now = datetime.now(timezone.utc)
    entry = tracking_entry(new_status, parcel, message)
    async with transaction() as session:
        updated = await db.parcels.find_one_and_update(
            {"parcel_id": parcel_id, "delivery_status": parcel["delivery_status"]},
            {
                "$set": {"delivery_status": new_status.value, "updated_at": now, **(extra_fields or {})},
                "$push": {"tracking_history": entry},
            },
            return_document=ReturnDocument.AFTER,
            session=session,
        )
        if not updated:
            raise conflict_exception("Le colis a été modifié entre-temps, réessayez")

        if new_status in RELEASING_STATUSES and updated.get("rider_id"):
            await _release_rider(updated, session)

    logger.info(
        "Colis %s : %s → %s (par %s)",
        parcel_id, current_status.value, new_status.value, actor_email,
    )
    return without_id(updated)


async def _release_rider(parcel: dict, session) -> None:
    """
    Remet le livreur du colis en disponibilité (même unité que le colis),
    sauf s'il porte encore d'autres colis actifs.
    """
    try:
        remaining = await db.parcels.count_documents(
            {
                "rider_id":        parcel["rider_id"],
                "parcel_id":       {"$ne": parcel["parcel_id"]},
                "delivery_status": {"$in": [s.value for s in ACTIVE_STATUSES]},
            },
            session=session,
        )
        if remaining:
            logger.info(
                f"Livreur {parcel['rider_id']} reste en livraison : {remaining} colis actif(s)"
            )
            return
        result = await db.riders.update_one(
            {"rider_id": parcel["rider_id"]},
            {"$set": {"work_status": WorkStatus.AVAILABLE.value, "updated_at": datetime.now(timezone.utc)}},
            session=session,
        )
    except PyMongoError as e:
        if session is not None:
            raise
        logger.error(f"Livreur {parcel['rider_id']} non libéré après {parcel['parcel_id']} : {e}")
        raise inconsistent_exception(
            "Statut du colis enregistré mais livreur non libéré",
            {
                "parcel_id":       parcel["parcel_id"],
                "rider_id":        parcel["rider_id"],
                "delivery_status": parcel["delivery_status"],
                "failed_step":     "rider.work_status",
            },
        )
    if result.matched_count == 0:
        logger.warning(f"Livreur {parcel['rider_id']} introuvable lors de la libération")


async def delete_parcel(parcel_id: str) -> dict:
    """Suppression sans condition ; paiements et retraits liés sont conservés."""
    result = await db.parcels.delete_one({"parcel_id": parcel_id})
    if result.deleted_count == 0:
        raise not_found_exception("Colis")
    logger.info(f"Colis supprimé : {parcel_id}")
    return {"deleted_count": result.deleted_count}

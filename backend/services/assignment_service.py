"""
Service d'assignation : lie un colis payé à un livreur actif.

Deux documents sont modifiés (colis + livreur). Avec les transactions MongoDB
activées, les deux écritures sont atomiques. Sinon, l'écriture du colis est
annulée si celle du livreur échoue (compensation), et un échec de la
compensation est remonté comme incohérence à réconcilier.
"""
import logging
from datetime import datetime, timezone

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from database import db, transaction
from core.exceptions import inconsistent_exception, not_found_exception
from core.utils import without_id
from models.common import DeliveryStatus, PaymentStatus, RiderStatus, WorkStatus
from models.parcel import AssignRiderRequest
from services.parcel_service import tracking_entry

logger = logging.getLogger(__name__)


class _RiderUnavailable(Exception):
    pass


async def assign_rider(parcel_id: str, body: AssignRiderRequest, admin_email: str) -> dict:
    now = datetime.now(timezone.utc)
    rider_email = body.rider_email.strip().lower()

    # Colis assignable : payé, en Processing, sans livreur
    assignable = {
        "parcel_id":       parcel_id,
        "payment_status":  PaymentStatus.PAID.value,
        "delivery_status": DeliveryStatus.PROCESSING.value,
        "rider_id":        None,
    }
    entry = tracking_entry(
        DeliveryStatus.IN_TRANSIT,
        {"rider_name": body.rider_name},
    )
    parcel_update = {
        "$set": {
            "rider_id":                body.rider_id,
            "rider_email":             rider_email,
            "rider_name":              body.rider_name,
            "estimated_delivery_date": body.estimated_delivery_date,
            "assigned_at":             now,
            "delivery_status":         DeliveryStatus.IN_TRANSIT.value,
            "updated_at":              now,
        },
        "$push": {"tracking_history": entry},
    }

    try:
        async with transaction() as session:
            updated = await db.parcels.find_one_and_update(
                assignable,
                parcel_update,
                return_document=ReturnDocument.AFTER,
                session=session,
            )
            if not updated:
                # Absent ou non modifié : échec quel que soit l'état du livreur
                raise not_found_exception("Colis assignable")

            try:
                rider_result = await db.riders.update_one(
                    {"rider_id": body.rider_id, "email": rider_email, "status": RiderStatus.ACTIVE.value},
                    {"$set": {"work_status": WorkStatus.IN_DELIVERY.value, "updated_at": now}},
                    session=session,
                )
                if rider_result.matched_count == 0:
                    raise _RiderUnavailable()
            except (PyMongoError, _RiderUnavailable):
                if session is None:
                    await _undo_parcel_assignment(parcel_id, body.rider_id)
                raise
    except _RiderUnavailable:
        raise not_found_exception("Livreur actif")

    logger.info(
        "Colis %s assigné au livreur %s (%s) par %s",
        parcel_id, body.rider_id, rider_email, admin_email,
    )
    return without_id(updated)


async def _undo_parcel_assignment(parcel_id: str, rider_id: str) -> None:
    """Compensation : remet le colis dans l'état d'avant l'assignation."""
    try:
        result = await db.parcels.update_one(
            {
                "parcel_id":       parcel_id,
                "rider_id":        rider_id,
                "delivery_status": DeliveryStatus.IN_TRANSIT.value,
            },
            {
                "$set": {
                    "rider_id":                None,
                    "rider_email":             None,
                    "rider_name":              None,
                    "estimated_delivery_date": None,
                    "assigned_at":             None,
                    "delivery_status":         DeliveryStatus.PROCESSING.value,
                    "updated_at":              datetime.now(timezone.utc),
                },
                # L'entrée d'assignation est la dernière tant que le statut n'a pas bougé
                "$pop": {"tracking_history": 1},
            },
        )
        if result.matched_count == 1:
            logger.warning(f"Assignation annulée pour {parcel_id} : livreur {rider_id} indisponible")
            return
        failure = "colis modifié avant la compensation"
    except PyMongoError as e:
        failure = str(e)
    logger.error(f"Compensation impossible pour {parcel_id} : {failure}")
    raise inconsistent_exception(
        "Colis assigné mais livreur non mis à jour",
        {"parcel_id": parcel_id, "rider_id": rider_id, "failed_step": "rider.work_status"},
    )

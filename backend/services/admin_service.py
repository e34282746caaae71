"""
Service d'administration : statistiques du tableau de bord et détection des
écritures multi-documents restées incomplètes.
"""
import logging

from database import db
from models.common import PaymentStatus, WorkStatus
from services.parcel_service import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

BOOKING_BUCKETS = 7

# Préfixe AAAA-MM-JJ des dates ISO stockées en chaîne par les anciens documents
ISO_DAY_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])-(0[1-9]|[12]\d|3[01])"


async def booking_stats(buckets: int = BOOKING_BUCKETS) -> list:
    """
    Réservations par date de création : les `buckets` dates les plus récentes,
    par ordre chronologique. Les dates absentes ou illisibles sont ignorées.
    """
    by_date = [
        {"$match": {"created_at": {"$type": "date"}}},
        {"$group": {
            "_id": {"$dateToString": {"format": "%Y-%m-%d", "date": "$created_at"}},
            "count": {"$sum": 1},
        }},
        {"$sort": {"_id": -1}},
        {"$limit": buckets},
    ]
    by_iso_string = [
        {"$match": {"created_at": {"$type": "string", "$regex": ISO_DAY_PATTERN}}},
        {"$group": {
            "_id": {"$substr": ["$created_at", 0, 10]},
            "count": {"$sum": 1},
        }},
        {"$sort": {"_id": -1}},
        {"$limit": buckets},
    ]
    counts: dict = {}
    for pipeline in (by_date, by_iso_string):
        for row in await db.parcels.aggregate(pipeline).to_list(length=None):
            counts[row["_id"]] = counts.get(row["_id"], 0) + row["count"]

    skipped = await db.parcels.count_documents({"$nor": [
        {"created_at": {"$type": "date"}},
        {"created_at": {"$type": "string", "$regex": ISO_DAY_PATTERN}},
    ]})
    if skipped:
        logger.warning(f"Statistiques réservations : {skipped} colis sans date exploitable")

    recent = sorted(counts.items())[-buckets:]
    return [{"date": day, "count": count} for day, count in recent]


async def district_stats() -> list:
    """Colis par district d'expédition, du plus chargé au moins chargé."""
    pipeline = [
        {"$match": {"sender_district": {"$type": "string", "$regex": r"\S"}}},
        {"$group": {"_id": "$sender_district", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]
    rows = await db.parcels.aggregate(pipeline).to_list(length=None)
    return [{"district": row["_id"], "count": row["count"]} for row in rows]


async def reconciliation_report() -> dict:
    """
    Liste les états partiels laissés par une écriture interrompue :
    colis payés sans reçu, reçus sans colis payé, colis réglés sans retrait,
    livreurs occupés sans colis et colis actifs dont le livreur n'est pas occupé.
    """
    paid = await db.parcels.find(
        {"payment_status": PaymentStatus.PAID.value},
        {"_id": 0, "parcel_id": 1},
    ).to_list(length=None)
    paid_ids = {p["parcel_id"] for p in paid}
    receipts = await db.payments.find({}, {"_id": 0, "parcel_id": 1}).to_list(length=None)
    receipt_ids = {r["parcel_id"] for r in receipts}

    cashed = await db.parcels.find(
        {"is_cashed_out": True},
        {"_id": 0, "parcel_id": 1},
    ).to_list(length=None)
    withdrawals = await db.withdrawals.find({}, {"_id": 0, "parcel_id": 1}).to_list(length=None)
    withdrawn_ids = {w["parcel_id"] for w in withdrawals}

    active = await db.parcels.find(
        {"delivery_status": {"$in": [s.value for s in ACTIVE_STATUSES]}},
        {"_id": 0, "parcel_id": 1, "rider_id": 1},
    ).to_list(length=None)
    busy = await db.riders.find(
        {"work_status": WorkStatus.IN_DELIVERY.value},
        {"_id": 0, "rider_id": 1},
    ).to_list(length=None)
    busy_ids = {r["rider_id"] for r in busy}
    riders_with_parcel = {p.get("rider_id") for p in active}

    report = {
        "paid_without_receipt":      sorted(paid_ids - receipt_ids),
        "receipt_without_payment":   sorted(receipt_ids - paid_ids),
        "cashed_out_without_ledger": sorted({p["parcel_id"] for p in cashed} - withdrawn_ids),
        "busy_riders_without_parcel": sorted(busy_ids - riders_with_parcel),
        "active_parcels_with_idle_rider": sorted(
            p["parcel_id"] for p in active if p.get("rider_id") not in busy_ids
        ),
    }
    if any(report.values()):
        logger.warning(f"Réconciliation : incohérences détectées {report}")
    return report

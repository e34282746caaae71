"""
Router admin : statistiques du tableau de bord, réconciliation, registre des retraits.
"""
from fastapi import APIRouter, Depends, Query

from core.dependencies import require_admin
from services.admin_service import booking_stats, district_stats, reconciliation_report
from services.settlement_service import list_withdrawals

router = APIRouter()


@router.get("/stats/bookings", summary="Réservations par jour (7 derniers jours actifs)")
async def bookings(_admin=Depends(require_admin)):
    return {"bookings": await booking_stats()}


@router.get("/stats/districts", summary="Colis par district d'expédition")
async def districts(_admin=Depends(require_admin)):
    return {"districts": await district_stats()}


@router.get("/reconciliation", summary="Écritures multi-documents incomplètes")
async def reconciliation(_admin=Depends(require_admin)):
    return await reconciliation_report()


@router.get("/withdrawals", summary="Registre des retraits livreurs")
async def withdrawals(
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    _admin=Depends(require_admin),
):
    return await list_withdrawals(skip=skip, limit=limit)

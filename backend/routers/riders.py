"""
Router riders : candidatures livreur, validation admin, espace livreur.
Workflow : Utilisateur postule → Admin approuve (rôle rider) ou rejette (suppression)
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import get_identity, require_admin, require_rider
from database import db
from models.common import RiderStatus
from models.rider import RiderApplication, RiderApplicationCreate
from models.settlement import CashoutRequest, EarningsSummary, Withdrawal
from services.parcel_service import ACTIVE_STATUSES
from services.rider_service import (
    approve_application,
    deactivate_rider,
    find_riders_by_district,
    get_application_by_email,
    list_applications,
    reject_application,
    submit_application,
)
from services.settlement_service import (
    COMPLETED_STATUSES,
    cashout,
    get_earnings,
    list_withdrawals,
)

router = APIRouter()


# ── Endpoints utilisateur ─────────────────────────────────────────────────────
@router.post("", status_code=201, summary="Soumettre candidature livreur")
async def apply_rider(body: RiderApplicationCreate, identity: dict = Depends(get_identity)):
    return await submit_application(body, email=identity["email"])


@router.get("/me", response_model=RiderApplication, summary="Ma candidature")
async def my_application(identity: dict = Depends(get_identity)):
    return await get_application_by_email(identity["email"])


# ── Espace livreur ────────────────────────────────────────────────────────────
@router.get("/me/deliveries", summary="Livraisons en cours")
async def my_deliveries(rider: dict = Depends(require_rider)):
    cursor = db.parcels.find(
        {"rider_email": rider["email"], "delivery_status": {"$in": [s.value for s in ACTIVE_STATUSES]}},
        {"_id": 0},
    ).sort("assigned_at", 1)
    return {"parcels": await cursor.to_list(length=200)}


@router.get("/me/completed", summary="Livraisons terminées")
async def my_completed(rider: dict = Depends(require_rider)):
    cursor = db.parcels.find(
        {"rider_email": rider["email"], "delivery_status": {"$in": COMPLETED_STATUSES}},
        {"_id": 0},
    ).sort("delivered_at", -1)
    return {"parcels": await cursor.to_list(length=500)}


@router.get("/me/earnings", response_model=EarningsSummary, summary="Gains par colis livré")
async def my_earnings(rider: dict = Depends(require_rider)):
    return await get_earnings(rider["email"])


@router.post("/me/cashout", response_model=Withdrawal, summary="Retirer les gains d'un colis")
async def cashout_endpoint(body: CashoutRequest, rider: dict = Depends(require_rider)):
    return await cashout(body.parcel_id, rider_email=rider["email"], requested_amount=body.amount)


@router.get("/me/withdrawals", summary="Historique des retraits")
async def my_withdrawals(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    rider: dict = Depends(require_rider),
):
    return await list_withdrawals(rider_email=rider["email"], skip=skip, limit=limit)


# ── Endpoints admin ───────────────────────────────────────────────────────────
@router.get("", summary="Candidatures / livreurs (admin)")
async def list_riders(
    status: Optional[RiderStatus] = RiderStatus.PENDING,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _admin=Depends(require_admin),
):
    return await list_applications(status=status, skip=skip, limit=limit)


@router.get("/available", summary="Livreurs actifs d'un district (admin)")
async def riders_in_district(district: str = Query(min_length=1), _admin=Depends(require_admin)):
    return {"riders": await find_riders_by_district(district)}


@router.patch("/{rider_id}/approve", summary="Approuver candidature")
async def approve(rider_id: str, admin: dict = Depends(require_admin)):
    rider = await approve_application(rider_id, admin_email=admin["email"])
    return {"message": "Candidature approuvée", "rider": rider}


@router.patch("/{rider_id}/deactivate", summary="Désactiver un livreur")
async def deactivate(rider_id: str, admin: dict = Depends(require_admin)):
    rider = await deactivate_rider(rider_id, admin_email=admin["email"])
    return {"message": "Livreur désactivé", "rider": rider}


@router.delete("/{rider_id}", summary="Rejeter candidature")
async def reject(rider_id: str, admin: dict = Depends(require_admin)):
    return await reject_application(rider_id, admin_email=admin["email"])

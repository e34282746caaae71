"""
Router parcels : CRUD colis + actions de transition de la machine d'états.
"""
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import (
    get_current_user,
    is_admin,
    require_admin,
    require_rider,
    require_rider_or_admin,
)
from core.exceptions import bad_request_exception, forbidden_exception
from models.common import DeliveryStatus
from models.parcel import AssignRiderRequest, Parcel, ParcelCreate, StatusUpdate
from services.assignment_service import assign_rider
from services.parcel_service import (
    create_parcel,
    delete_parcel,
    get_parcel,
    list_parcels,
    transition_status,
)

router = APIRouter()


def _ensure_can_view(parcel: dict, user: dict):
    if is_admin(user):
        return
    if user["email"] in (parcel.get("sender_email"), parcel.get("rider_email")):
        return
    raise forbidden_exception()


def _ensure_owner_or_admin(parcel: dict, user: dict):
    if not is_admin(user) and parcel.get("sender_email") != user["email"]:
        raise forbidden_exception()


@router.post("", status_code=201, summary="Créer un colis")
async def create_parcel_endpoint(
    body: ParcelCreate,
    current_user: dict = Depends(get_current_user),
):
    return await create_parcel(body, sender_email=current_user["email"])


@router.get("", summary="Colis (les siens, ou tous pour l'admin)")
async def list_parcels_endpoint(
    email: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
):
    email = email.strip().lower() if email else None
    if not is_admin(current_user):
        if email and email != current_user["email"]:
            raise forbidden_exception()
        email = current_user["email"]
    return await list_parcels(email=email, skip=skip, limit=limit)


@router.get("/{parcel_id}", response_model=Parcel, summary="Détail d'un colis")
async def get_parcel_endpoint(parcel_id: str, current_user: dict = Depends(get_current_user)):
    parcel = await get_parcel(parcel_id)
    _ensure_can_view(parcel, current_user)
    return parcel


@router.delete("/{parcel_id}", summary="Supprimer un colis")
async def delete_parcel_endpoint(parcel_id: str, current_user: dict = Depends(get_current_user)):
    parcel = await get_parcel(parcel_id)
    _ensure_owner_or_admin(parcel, current_user)
    return await delete_parcel(parcel_id)


# ── Actions admin ─────────────────────────────────────────────────────────────
@router.patch("/{parcel_id}/assign", summary="Assigner un livreur (admin)")
async def assign_rider_endpoint(
    parcel_id: str,
    body: AssignRiderRequest,
    admin: dict = Depends(require_admin),
):
    return await assign_rider(parcel_id, body, admin_email=admin["email"])


@router.patch("/{parcel_id}/cancel", summary="Annuler un colis")
async def cancel_parcel(parcel_id: str, current_user: dict = Depends(get_current_user)):
    """
    L'expéditeur peut annuler tant que le colis est en Processing ;
    l'admin depuis n'importe quel état non terminal.
    """
    parcel = await get_parcel(parcel_id)
    _ensure_owner_or_admin(parcel, current_user)
    if not is_admin(current_user) and parcel["delivery_status"] != DeliveryStatus.PROCESSING.value:
        raise bad_request_exception("Annulation impossible : le colis est déjà pris en charge")
    return await transition_status(
        parcel_id, DeliveryStatus.CANCELLED,
        actor_email=current_user["email"],
    )


# ── Actions livreurs ──────────────────────────────────────────────────────────
@router.patch("/{parcel_id}/pickup", summary="Colis récupéré (livreur)")
async def pickup_parcel(parcel_id: str, rider: dict = Depends(require_rider)):
    return await transition_status(
        parcel_id, DeliveryStatus.PICKED,
        actor_email=rider["email"],
        rider_email=rider["email"],
        extra_fields={"picked_at": datetime.now(timezone.utc)},
    )


@router.patch("/{parcel_id}/deliver", summary="Colis livré (livreur)")
async def deliver_parcel(parcel_id: str, rider: dict = Depends(require_rider)):
    return await transition_status(
        parcel_id, DeliveryStatus.DELIVERED,
        actor_email=rider["email"],
        rider_email=rider["email"],
        extra_fields={"delivered_at": datetime.now(timezone.utc)},
    )


@router.patch("/{parcel_id}/status", summary="Changer le statut (livreur assigné ou admin)")
async def update_status(
    parcel_id: str,
    body: StatusUpdate,
    current_user: dict = Depends(require_rider_or_admin),
):
    if body.status == DeliveryStatus.CANCELLED and not is_admin(current_user):
        raise forbidden_exception("Seul l'admin peut annuler un colis pris en charge")
    timestamps = {
        DeliveryStatus.PICKED:    "picked_at",
        DeliveryStatus.DELIVERED: "delivered_at",
    }
    extra = {timestamps[body.status]: datetime.now(timezone.utc)} if body.status in timestamps else None
    return await transition_status(
        parcel_id, body.status,
        actor_email=current_user["email"],
        message=body.message,
        rider_email=None if is_admin(current_user) else current_user["email"],
        extra_fields=extra,
    )

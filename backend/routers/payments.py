"""
Router payments : intention de paiement (passerelle externe) et reçu de paiement.
"""
from fastapi import APIRouter, Depends, Query

from core.dependencies import get_current_user, is_admin
from core.exceptions import forbidden_exception
from models.payment import Payment, PaymentIntentRequest, PaymentIntentResponse, PaymentRecord
from services.parcel_service import get_parcel
from services.payment_service import (
    create_payment_intent,
    get_payment_gateway,
    list_payments,
    record_payment,
)

router = APIRouter()


async def _payable_parcel(parcel_id: str, user: dict) -> dict:
    parcel = await get_parcel(parcel_id)
    if not is_admin(user) and parcel.get("sender_email") != user["email"]:
        raise forbidden_exception()
    return parcel


@router.post("/intent", response_model=PaymentIntentResponse, summary="Créer une intention de paiement")
async def create_intent(
    body: PaymentIntentRequest,
    current_user: dict = Depends(get_current_user),
    gateway=Depends(get_payment_gateway),
):
    parcel = await _payable_parcel(body.parcel_id, current_user)
    return await create_payment_intent(parcel, gateway)


@router.post("", status_code=201, response_model=Payment, summary="Enregistrer un paiement confirmé")
async def record_payment_endpoint(
    body: PaymentRecord,
    current_user: dict = Depends(get_current_user),
):
    await _payable_parcel(body.parcel_id, current_user)
    return await record_payment(body.parcel_id, body.transaction_id, payer_email=current_user["email"])


@router.get("", summary="Historique des paiements")
async def list_payments_endpoint(
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    current_user: dict = Depends(get_current_user),
):
    email = None if is_admin(current_user) else current_user["email"]
    return await list_payments(email=email, skip=skip, limit=limit)

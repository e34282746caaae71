"""
Router tracking : endpoint public (sans authentification).
"""
from fastapi import APIRouter, Request

from config import settings
from core.limiter import limiter
from models.parcel import PublicTracking
from services.parcel_service import get_public_tracking

router = APIRouter()


@router.get("/{tracking_id}", response_model=PublicTracking, summary="Statut public d'un colis")
@limiter.limit(settings.TRACKING_RATE_LIMIT)
async def track_parcel(request: Request, tracking_id: str):
    # Projection restreinte : ni contact expéditeur, ni montants
    return await get_public_tracking(tracking_id)

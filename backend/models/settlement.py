from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Withdrawal(BaseModel):
    withdrawal_id:    str
    parcel_id:        str
    rider_email:      str
    amount:           float                    # calculé côté serveur
    requested_amount: Optional[float] = None   # montant annoncé par le client (indicatif)
    status:           str = "completed"
    date:             datetime


class CashoutRequest(BaseModel):
    parcel_id: str
    amount:    Optional[float] = Field(default=None, ge=0)


class EarningLine(BaseModel):
    parcel_id:         str
    tracking_id:       str
    sender_district:   str
    receiver_district: str
    delivery_cost:     float
    rate:              float
    earning:           float
    is_cashed_out:     bool
    delivered_at:      Optional[datetime] = None


class EarningsSummary(BaseModel):
    parcels:         list[EarningLine]
    total_earned:    float
    cashed_out:      float
    pending_cashout: float

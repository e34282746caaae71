from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field


class Payment(BaseModel):
    payment_id:     str
    parcel_id:      str
    transaction_id: str
    email:          str
    amount:         float
    currency:       str
    date:           datetime


class PaymentIntentRequest(BaseModel):
    parcel_id: str


class PaymentIntentResponse(BaseModel):
    parcel_id:     str
    intent_id:     str
    client_secret: str
    amount:        float
    currency:      str
    simulated:     bool = False


class PaymentRecord(BaseModel):
    parcel_id:      str
    transaction_id: str = Field(min_length=1)   # référence renvoyée par la passerelle
    amount:         Optional[float] = None      # indicatif : le montant enregistré est le coût du colis

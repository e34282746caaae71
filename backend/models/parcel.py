from datetime import datetime
from typing import Optional, Literal
from pydantic import BaseModel, Field, field_validator
from models.common import DeliveryStatus, PaymentStatus


class TrackingEntry(BaseModel):
    status:    DeliveryStatus
    timestamp: datetime
    message:   str


class Parcel(BaseModel):
    parcel_id:    str
    tracking_id:  str          # "TRK-XXXX-XXXXXX"
    # Expéditeur (propriétaire)
    sender_email:    str
    sender_name:     Optional[str] = None
    sender_phone:    Optional[str] = None
    sender_address:  Optional[str] = None
    sender_district: str
    # Destinataire
    receiver_name:     str
    receiver_phone:    Optional[str] = None
    receiver_address:  Optional[str] = None
    receiver_district: str
    # Colis physique
    parcel_type:  str = "non-document"
    weight_kg:    Optional[float] = None
    description:  Optional[str] = None
    # Prix et paiement
    delivery_cost:   float
    payment_status:  PaymentStatus = PaymentStatus.UNPAID
    transaction_id:  Optional[str] = None
    paid_at:         Optional[datetime] = None
    # Statut machine d'états
    delivery_status: DeliveryStatus = DeliveryStatus.PROCESSING
    # Livreur assigné
    rider_id:                Optional[str] = None
    rider_email:             Optional[str] = None
    rider_name:              Optional[str] = None
    estimated_delivery_date: Optional[str] = None
    assigned_at:             Optional[datetime] = None
    picked_at:               Optional[datetime] = None
    delivered_at:            Optional[datetime] = None
    # Règlement livreur
    is_cashed_out:  bool = False
    cashed_out_at:  Optional[datetime] = None
    tracking_history: list[TrackingEntry] = []
    # Timestamps
    created_at:  datetime
    updated_at:  datetime


class ParcelCreate(BaseModel):
    sender_name:       Optional[str] = None
    sender_phone:      Optional[str] = None
    sender_address:    Optional[str] = None
    sender_district:   str = Field(min_length=1)
    receiver_name:     str = Field(min_length=1)
    receiver_phone:    Optional[str] = None
    receiver_address:  Optional[str] = None
    receiver_district: str = Field(min_length=1)
    parcel_type:       Literal["document", "non-document"] = "non-document"
    weight_kg:         Optional[float] = Field(default=None, ge=0)
    description:       Optional[str] = None
    delivery_cost:     float = Field(ge=0)


class PublicTracking(BaseModel):
    """Projection publique : ni contact expéditeur, ni données financières."""
    tracking_id:       str
    receiver_name:     str
    delivery_status:   DeliveryStatus
    sender_district:   str
    receiver_district: str
    tracking_history:  list[TrackingEntry] = []


class StatusUpdate(BaseModel):
    status:  DeliveryStatus
    message: Optional[str] = None

    @field_validator("status", mode="before")
    @classmethod
    def status_must_be_known(cls, v):
        return DeliveryStatus.parse(v)


class AssignRiderRequest(BaseModel):
    rider_id:                str
    rider_email:             str
    rider_name:              str
    estimated_delivery_date: Optional[str] = None

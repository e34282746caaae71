from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field
from models.common import RiderStatus, WorkStatus


class RiderApplication(BaseModel):
    rider_id:          str
    email:             str
    name:              str
    phone:             Optional[str] = None
    age:               Optional[int] = None
    region:            Optional[str] = None
    district:          str
    nid:               Optional[str] = None      # numéro de pièce d'identité
    bike_model:        Optional[str] = None
    bike_registration: Optional[str] = None
    status:            RiderStatus = RiderStatus.PENDING
    work_status:       WorkStatus  = WorkStatus.AVAILABLE
    created_at:        datetime
    approved_at:       Optional[datetime] = None
    updated_at:        datetime


class RiderApplicationCreate(BaseModel):
    name:              str = Field(min_length=1)
    phone:             Optional[str] = None
    age:               Optional[int] = Field(default=None, ge=16)
    region:            Optional[str] = None
    district:          str = Field(min_length=1)
    nid:               Optional[str] = None
    bike_model:        Optional[str] = None
    bike_registration: Optional[str] = None

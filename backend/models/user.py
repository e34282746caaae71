from datetime import datetime
from typing import Optional
from pydantic import BaseModel, field_validator
from models.common import UserRole


class User(BaseModel):
    user_id:       str
    email:         str
    name:          Optional[str] = None
    photo_url:     Optional[str] = None
    phone:         Optional[str] = None
    role:          UserRole = UserRole.USER
    # Timestamps
    created_at:    datetime
    last_login_at: Optional[datetime] = None
    updated_at:    datetime


class UserCreate(BaseModel):
    """Corps envoyé par le client juste après la connexion chez le fournisseur d'identité."""
    name:      Optional[str] = None
    photo_url: Optional[str] = None
    phone:     Optional[str] = None


class ProfileUpdate(BaseModel):
    name:      Optional[str] = None
    photo_url: Optional[str] = None
    phone:     Optional[str] = None


class RoleUpdate(BaseModel):
    role: UserRole

    @field_validator("role", mode="before")
    @classmethod
    def role_lowercase(cls, v):
        return v.strip().lower() if isinstance(v, str) else v

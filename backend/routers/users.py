"""
Router users : enregistrement à la connexion, profil, gestion des rôles.
"""
from typing import Optional

from fastapi import APIRouter, Depends, Query

from core.dependencies import get_identity, require_admin
from models.user import ProfileUpdate, RoleUpdate, User, UserCreate
from services.user_service import (
    get_user,
    list_users,
    register_user,
    update_profile,
    update_role,
)

router = APIRouter()


@router.post("", summary="Enregistrer l'utilisateur connecté")
async def register(body: UserCreate, identity: dict = Depends(get_identity)):
    return await register_user(identity["email"], body)


@router.get("/me", response_model=User, summary="Mon profil (dont le rôle)")
async def me(identity: dict = Depends(get_identity)):
    return await get_user(identity["email"])


@router.patch("/me", response_model=User, summary="Mettre à jour mon profil")
async def update_me(body: ProfileUpdate, identity: dict = Depends(get_identity)):
    return await update_profile(identity["email"], body)


@router.get("", summary="Liste utilisateurs (admin)")
async def list_users_endpoint(
    search: Optional[str] = None,
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    _admin=Depends(require_admin),
):
    return await list_users(search=search, skip=skip, limit=limit)


@router.patch("/{email}/role", summary="Changer rôle (admin)")
async def change_role(email: str, body: RoleUpdate, admin: dict = Depends(require_admin)):
    return await update_role(email.strip().lower(), body.role, admin_email=admin["email"])

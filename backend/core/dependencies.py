from typing import Optional
from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from core.security import get_identity_verifier
from core.exceptions import credentials_exception, forbidden_exception
from database import db
from models.common import UserRole

bearer_scheme = HTTPBearer(auto_error=False)


async def get_identity(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    verifier=Depends(get_identity_verifier),
) -> dict:
    """Identité vérifiée par le fournisseur externe : au minimum l'email."""
    if not credentials:
        raise credentials_exception("Jeton d'authentification manquant")
    claims = await verifier.verify(credentials.credentials)
    if not claims:
        raise credentials_exception()

    email = claims.get("email")
    if not email:
        raise credentials_exception()
    return {**claims, "email": email.strip().lower()}


async def get_current_user(identity: dict = Depends(get_identity)) -> dict:
    """
    Utilisateur correspondant à l'identité, relu à chaque requête.
    Un utilisateur pas encore enregistré est traité comme simple client.
    """
    user = await db.users.find_one({"email": identity["email"]}, {"_id": 0})
    if not user:
        return {"email": identity["email"], "role": UserRole.USER.value}
    return user


def require_role(*roles: UserRole):
    """
    Dépendance qui vérifie que l'utilisateur connecté possède l'un des rôles donnés.
    Usage : Depends(require_role(UserRole.ADMIN, UserRole.RIDER))
    Le rôle est relu en base à chaque appel : il peut changer entre deux requêtes.
    """
    async def _check(identity: dict = Depends(get_identity)) -> dict:
        user = await db.users.find_one({"email": identity["email"]}, {"_id": 0})
        if not user or user.get("role") not in [r.value for r in roles]:
            raise forbidden_exception()
        return user
    return _check


# Raccourcis pratiques
require_admin = require_role(UserRole.ADMIN)
require_rider = require_role(UserRole.RIDER)
require_rider_or_admin = require_role(UserRole.RIDER, UserRole.ADMIN)


def is_admin(user: dict) -> bool:
    return user.get("role") == UserRole.ADMIN.value

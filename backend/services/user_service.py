"""
Service utilisateurs : enregistrement à la première connexion, profil, rôles.
"""
import logging
import re
import uuid
from datetime import datetime, timezone
from typing import Optional

from pymongo import ReturnDocument

from database import db
from core.exceptions import bad_request_exception, not_found_exception
from core.utils import without_id
from models.common import UserRole
from models.user import ProfileUpdate, UserCreate

logger = logging.getLogger(__name__)


def _user_id() -> str:
    return f"usr_{uuid.uuid4().hex[:12]}"


async def register_user(email: str, data: UserCreate) -> dict:
    """Crée l'utilisateur (rôle user) s'il n'existe pas encore ; sinon trace la connexion."""
    now = datetime.now(timezone.utc)
    existing = await db.users.find_one({"email": email}, {"_id": 0})
    if existing:
        await db.users.update_one({"email": email}, {"$set": {"last_login_at": now}})
        return {"message": "User already exists", "inserted_id": None}

    user_doc = {
        "user_id":       _user_id(),
        "email":         email,
        "name":          data.name,
        "photo_url":     data.photo_url,
        "phone":         data.phone,
        "role":          UserRole.USER.value,
        "created_at":    now,
        "last_login_at": now,
        "updated_at":    now,
    }
    await db.users.insert_one(user_doc)
    logger.info(f"Nouvel utilisateur : {email}")
    return {"message": "User created", "inserted_id": user_doc["user_id"]}


async def get_user(email: str) -> dict:
    user = await db.users.find_one({"email": email}, {"_id": 0})
    if not user:
        raise not_found_exception("Utilisateur")
    return user


async def list_users(search: Optional[str] = None, skip: int = 0, limit: int = 50) -> dict:
    query: dict = {}
    if search:
        pattern = re.escape(search.strip())
        query = {"$or": [
            {"email": {"$regex": pattern, "$options": "i"}},
            {"name":  {"$regex": pattern, "$options": "i"}},
        ]}
    cursor = db.users.find(query, {"_id": 0}).sort("created_at", -1).skip(skip).limit(limit)
    total = await db.users.count_documents(query)
    return {"users": await cursor.to_list(length=limit), "total": total}


async def update_profile(email: str, data: ProfileUpdate) -> dict:
    changes = data.model_dump(exclude_none=True)
    if not changes:
        raise bad_request_exception("Aucune modification fournie")
    changes["updated_at"] = datetime.now(timezone.utc)
    user = await db.users.find_one_and_update(
        {"email": email},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    if not user:
        raise not_found_exception("Utilisateur")
    return without_id(user)


async def update_role(email: str, role: UserRole, admin_email: str) -> dict:
    result = await db.users.update_one(
        {"email": email},
        {"$set": {"role": role.value, "updated_at": datetime.now(timezone.utc)}},
    )
    if result.matched_count == 0:
        raise not_found_exception("Utilisateur")
    logger.info(f"Rôle de {email} → {role.value} (par {admin_email})")
    return {"message": f"Rôle mis à jour → {role.value}"}

import asyncio
import sys

from motor.motor_asyncio import AsyncIOMotorClient

from config import settings
from models.common import UserRole


async def force_role(email: str, role: str):
    client = AsyncIOMotorClient(settings.MONGO_URL)
    db = client[settings.DB_NAME]

    user = await db.users.find_one({"email": email})
    if not user:
        print(f"❌ Utilisateur {email} introuvable.")
        print("Veuillez d'abord vous connecter une première fois sur l'application avec ce compte.")
        client.close()
        return

    result = await db.users.update_one(
        {"email": email},
        {"$set": {"role": role}}
    )

    if result.modified_count > 0:
        print(f"✅ Rôle mis à jour : {email} est maintenant '{role}' !")
    else:
        print(f"⚠️ {email} avait déjà le rôle '{role}'.")

    client.close()


if __name__ == "__main__":
    roles = [r.value for r in UserRole]
    if len(sys.argv) < 3 or sys.argv[2].lower() not in roles:
        print("Usage : python set_role.py <email> <role>")
        print(f"Roles possibles : {', '.join(roles)}")
        print("Exemple : python set_role.py admin@example.com admin")
        sys.exit(1)

    asyncio.run(force_role(sys.argv[1].strip().lower(), sys.argv[2].lower()))

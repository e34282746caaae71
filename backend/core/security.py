import asyncio
import logging
import os
import random
import string
from typing import Optional

import firebase_admin
from firebase_admin import auth as firebase_auth, credentials
from jose import jwt, JWTError

from config import settings
from core.exceptions import external_service_exception

logger = logging.getLogger(__name__)


# ── Vérification des jetons d'identité ────────────────────────────────────────
class FirebaseTokenVerifier:
    """Vérifie les ID tokens Firebase (fournisseur d'identité par défaut)."""

    APP_NAME = "parcel-identity"

    def __init__(self, app: Optional[firebase_admin.App] = None):
        self._app = app or self._init_app()

    def _init_app(self) -> firebase_admin.App:
        options = {"projectId": settings.FIREBASE_PROJECT_ID} if settings.FIREBASE_PROJECT_ID else None
        cred_path = settings.FIREBASE_CREDENTIALS_PATH
        # Sans fichier de compte de service : credentials par défaut (Cloud Run, Railway...)
        cred = credentials.Certificate(cred_path) if cred_path and os.path.exists(cred_path) else None
        return firebase_admin.initialize_app(cred, options, name=self.APP_NAME)

    async def verify(self, token: str) -> Optional[dict]:
        try:
            claims = await asyncio.to_thread(firebase_auth.verify_id_token, token, self._app)
        except firebase_auth.CertificateFetchError as e:
            logger.error(f"Firebase injoignable : {e}")
            raise external_service_exception("fournisseur d'identité")
        except (firebase_auth.InvalidIdTokenError, ValueError):
            return None
        # Email non vérifié : identité non établie
        if claims.get("email_verified") is False:
            logger.info(f"Jeton refusé : email non vérifié ({claims.get('email')})")
            return None
        return claims

    def close(self):
        firebase_admin.delete_app(self._app)


class JWTTokenVerifier:
    """Vérifie des JWT signés par un émetteur tiers (secret partagé ou clé publique)."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        audience: Optional[str] = None,
        issuer: Optional[str] = None,
    ):
        self.secret = secret
        self.algorithm = algorithm
        self.audience = audience
        self.issuer = issuer

    async def verify(self, token: str) -> Optional[dict]:
        try:
            return jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={"verify_aud": self.audience is not None},
            )
        except JWTError:
            return None

    def close(self):
        pass


_verifier = None


def init_identity_verifier():
    """Crée le vérifieur au démarrage (singleton de processus)."""
    global _verifier
    if settings.AUTH_PROVIDER == "jwt":
        _verifier = JWTTokenVerifier(
            settings.JWT_SECRET,
            algorithm=settings.JWT_ALGORITHM,
            audience=settings.JWT_AUDIENCE,
            issuer=settings.JWT_ISSUER,
        )
    else:
        _verifier = FirebaseTokenVerifier()
    logger.info(f"Identity provider ready: {settings.AUTH_PROVIDER}")
    return _verifier


def close_identity_verifier():
    global _verifier
    if _verifier is not None:
        _verifier.close()
        _verifier = None


def get_identity_verifier():
    if _verifier is None:
        raise RuntimeError("Identity verifier not initialised. Call init_identity_verifier() first.")
    return _verifier


# ── Tracking id ───────────────────────────────────────────────────────────────
def generate_tracking_id() -> str:
    """Génère un identifiant public lisible : TRK-AB12-CD34EF"""
    chars = string.ascii_uppercase + string.digits
    code = "".join(random.choices(chars, k=10))
    return f"TRK-{code[:4]}-{code[4:]}"

"""
Vérification des ID tokens Firebase : claims acceptés, email non vérifié et
jetons invalides refusés.
"""
import pytest

from core import security
from core.security import FirebaseTokenVerifier


@pytest.fixture
def firebase_claims(monkeypatch):
    """Remplace verify_id_token : renvoie les claims fournis, ou lève l'erreur fournie."""
    def _use(result):
        def _verify(token, app=None, *args, **kwargs):
            if isinstance(result, Exception):
                raise result
            return result
        monkeypatch.setattr(security.firebase_auth, "verify_id_token", _verify)
    return _use


async def test_verified_email_is_accepted(firebase_claims):
    firebase_claims({"email": "alice@test.com", "email_verified": True, "uid": "u1"})
    claims = await FirebaseTokenVerifier(app=object()).verify("token")
    assert claims["email"] == "alice@test.com"


async def test_unverified_email_is_rejected(firebase_claims):
    firebase_claims({"email": "alice@test.com", "email_verified": False, "uid": "u1"})
    assert await FirebaseTokenVerifier(app=object()).verify("token") is None


async def test_claim_without_verification_flag_is_accepted(firebase_claims):
    # Jetons émis par des fournisseurs qui ne renseignent pas email_verified
    firebase_claims({"email": "alice@test.com", "uid": "u1"})
    claims = await FirebaseTokenVerifier(app=object()).verify("token")
    assert claims["uid"] == "u1"


async def test_invalid_token_is_rejected(firebase_claims):
    firebase_claims(security.firebase_auth.InvalidIdTokenError("signature invalide"))
    assert await FirebaseTokenVerifier(app=object()).verify("token") is None

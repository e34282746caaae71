from typing import Optional

from fastapi import HTTPException, status


def _detail(kind: str, message: str, context: Optional[dict] = None) -> dict:
    detail = {"error": kind, "message": message}
    if context:
        detail["context"] = context
    return detail


def credentials_exception(detail: str = "Identifiants invalides ou token expiré") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=_detail("unauthenticated", detail),
        headers={"WWW-Authenticate": "Bearer"},
    )


def forbidden_exception(detail: str = "Accès refusé") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_403_FORBIDDEN,
        detail=_detail("forbidden", detail),
    )


def not_found_exception(resource: str = "Ressource") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_404_NOT_FOUND,
        detail=_detail("not_found", f"{resource} introuvable"),
    )


def bad_request_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=_detail("invalid_input", detail),
    )


def already_processed_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=_detail("already_processed", detail),
    )


def conflict_exception(detail: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=_detail("conflict", detail),
    )


def external_service_exception(service: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_502_BAD_GATEWAY,
        detail=_detail("external_service_failure", f"Service externe indisponible : {service}"),
    )


def inconsistent_exception(detail: str, context: dict) -> HTTPException:
    """Écriture multi-documents partiellement appliquée : à réconcilier manuellement."""
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=_detail("inconsistent", detail, context),
    )


def internal_error_detail() -> dict:
    return _detail("internal_error", "Erreur interne du serveur")

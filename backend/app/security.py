"""
Passerelle d'authentification : vérifie le JWT Bearer émis par le service
d'authentification et fournit le principal (id + rôle) aux routes.

Aucune émission de jeton ici, uniquement la vérification et le contrôle de rôle.
"""

import uuid
import logging

import jwt
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from app.config import settings
from app.models.user import VALID_ROLES
from app.schemas.user import Principal

logger = logging.getLogger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_principal(
    credentials: HTTPAuthorizationCredentials = Depends(bearer_scheme),
) -> Principal:
    """Dépendance FastAPI : décode le JWT et retourne le principal authentifié."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentification requise.")

    try:
        payload = jwt.decode(credentials.credentials, settings.SECRET_KEY, algorithms=[settings.ALGORITHM])
    except jwt.PyJWTError as exc:
        logger.info("JWT rejeté : %s", exc)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Jeton invalide ou expiré.")

    role = payload.get("role")
    try:
        principal_id = uuid.UUID(str(payload.get("sub")))
    except ValueError:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Jeton invalide ou expiré.")

    if role not in VALID_ROLES:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Rôle inconnu dans le jeton.")

    return Principal(id=principal_id, role=role)


def require_roles(*allowed_roles: str):
    """
    Fabrique de dépendance : n'autorise que les rôles listés.

    Usage :
        @router.post("/generate")
        def generate(principal: Principal = Depends(require_roles("admin", "superadmin"))):
            ...
    """
    def dependency(principal: Principal = Depends(get_current_principal)) -> Principal:
        if principal.role not in allowed_roles:
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Accès refusé pour ce rôle.")
        return principal

    return dependency

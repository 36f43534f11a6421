"""
Router pour le profil de l'utilisateur connecté.
"""

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import ROLE_USER
from app.schemas.qr_token import LocationUpdate
from app.schemas.user import Principal, UserResponse
from app.security import require_roles
from app.services import user_service
from app.services.errors import LifecycleError

router = APIRouter(prefix="/api/v1/users", tags=["Utilisateurs"])


@router.post("/me/default-location", response_model=UserResponse,
             summary="Définir ma position par défaut")
def set_default_location(
    data: LocationUpdate,
    principal: Principal = Depends(require_roles(ROLE_USER)),
    db: Session = Depends(get_db),
):
    """Enregistre la position par défaut (mêmes contrôles de bornes que le suivi)."""
    try:
        return user_service.set_default_location(db, principal.id, data.latitude, data.longitude)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

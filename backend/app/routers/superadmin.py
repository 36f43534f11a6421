"""
Router superadmin : gestion des utilisateurs, suppression de codes, statistiques système.
"""

import uuid
from typing import List

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import ROLE_SUPERADMIN
from app.schemas.stats import SystemStats
from app.schemas.user import UserResponse, UserUpdate
from app.security import require_roles
from app.services import lifecycle_service, stats_service, user_service
from app.services.errors import LifecycleError

router = APIRouter(
    prefix="/api/v1/superadmin",
    tags=["Superadmin"],
    dependencies=[Depends(require_roles(ROLE_SUPERADMIN))],
)


@router.get("/users", response_model=List[UserResponse], summary="Lister tous les utilisateurs")
def list_all_users(db: Session = Depends(get_db)):
    """Retourne tous les utilisateurs, admins compris."""
    return user_service.list_principals(db)


@router.patch("/users/{user_id}", response_model=UserResponse, summary="Modifier un utilisateur")
def update_user(user_id: uuid.UUID, data: UserUpdate, db: Session = Depends(get_db)):
    """Met à jour les champs fournis. Le rôle d'un superadmin ne peut pas être changé."""
    try:
        return user_service.update_principal(db, user_id, data)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.delete("/users/{user_id}", summary="Supprimer un utilisateur")
def delete_user(user_id: uuid.UUID, db: Session = Depends(get_db)):
    """
    Supprime un utilisateur et libère ses codes QR (owner_id → NULL).
    Les codes eux-mêmes, leur activation et leur historique sont conservés.
    """
    try:
        released = user_service.delete_principal(db, user_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))
    return {"user_id": str(user_id), "released_count": released}


@router.delete("/qrcodes/{token_id}", status_code=204, summary="Supprimer un code QR")
def delete_qr_code(token_id: uuid.UUID, db: Session = Depends(get_db)):
    """Suppression définitive d'un code et de son historique."""
    try:
        lifecycle_service.delete_token(db, token_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/system-stats", response_model=SystemStats, summary="Statistiques système")
def system_stats(db: Session = Depends(get_db)):
    return stats_service.system_stats(db)

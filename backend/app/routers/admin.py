"""
Router du tableau de bord admin (admin et superadmin).
"""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.models.user import ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_USER
from app.schemas.qr_token import QrTokenResponse
from app.schemas.stats import DashboardStats
from app.schemas.user import UserResponse
from app.security import require_roles
from app.services import stats_service, user_service

router = APIRouter(
    prefix="/api/v1/admin",
    tags=["Administration"],
    dependencies=[Depends(require_roles(ROLE_ADMIN, ROLE_SUPERADMIN))],
)


@router.get("/users", response_model=List[UserResponse], summary="Lister les utilisateurs")
def list_users(db: Session = Depends(get_db)):
    """Retourne les utilisateurs standards (rôle user), du plus récent au plus ancien."""
    return user_service.list_principals(db, role=ROLE_USER)


@router.get("/dashboard", response_model=DashboardStats, summary="Statistiques du tableau de bord")
def dashboard(db: Session = Depends(get_db)):
    return stats_service.dashboard_stats(db)


@router.get("/activities", response_model=List[QrTokenResponse], summary="Activité récente")
def recent_activities(db: Session = Depends(get_db)):
    """Les 10 derniers codes modifiés."""
    return stats_service.recent_activity(db, limit=10)

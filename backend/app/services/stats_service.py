"""
Statistiques des tableaux de bord admin et superadmin.
"""

from datetime import timedelta
from typing import List

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.database import utcnow
from app.models.qr_token import QrToken
from app.models.user import ROLE_ADMIN, ROLE_USER, User
from app.schemas.qr_token import QrTokenResponse
from app.schemas.stats import DashboardStats, SystemStats
from app.services import tracking_store
from app.services.lifecycle_service import to_response


def dashboard_stats(db: Session) -> DashboardStats:
    """Compteurs du tableau de bord admin (utilisateurs standards uniquement)."""
    return DashboardStats(
        total_users=_count_users(db, User.role == ROLE_USER),
        **_token_counters(db),
    )


def system_stats(db: Session) -> SystemStats:
    """Compteurs globaux du superadmin, inscriptions récentes incluses."""
    since = utcnow() - timedelta(days=settings.RECENT_REGISTRATION_DAYS)
    return SystemStats(
        total_users=_count_users(db),
        total_admins=_count_users(db, User.role == ROLE_ADMIN),
        total_regular_users=_count_users(db, User.role == ROLE_USER),
        recent_registrations=_count_users(db, User.created_at >= since),
        **_token_counters(db),
    )


def recent_activity(db: Session, limit: int = 10) -> List[QrTokenResponse]:
    """Derniers codes modifiés."""
    return [to_response(t) for t in tracking_store.list_recently_updated(db, limit)]


def _token_counters(db: Session) -> dict:
    return {
        "total_qr_codes": tracking_store.count_tokens(db),
        "active_qr_codes": tracking_store.count_tokens(db, QrToken.is_active.is_(True)),
        "assigned_qr_codes": tracking_store.count_tokens(db, QrToken.owner_id.is_not(None)),
        "tracking_qr_codes": tracking_store.count_tokens(db, QrToken.is_tracking.is_(True)),
    }


def _count_users(db: Session, *conditions) -> int:
    return db.execute(
        select(func.count()).select_from(User).where(*conditions)
    ).scalar() or 0

"""
Modèle SQLAlchemy pour les utilisateurs (principals).
Les identifiants de connexion sont gérés par le service d'authentification externe.
"""

import uuid
from sqlalchemy import Boolean, CheckConstraint, Column, DateTime, Float, String, Uuid

from app.database import Base, utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
VALID_ROLES = {ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN}


class User(Base):
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("role IN ('user', 'admin', 'superadmin')", name="ck_users_role"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False)
    name = Column(String(200), nullable=False)
    role = Column(String(20), nullable=False, default=ROLE_USER)
    is_active = Column(Boolean, default=True)
    default_latitude = Column(Float, nullable=True)
    default_longitude = Column(Float, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

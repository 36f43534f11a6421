"""
Modèles SQLAlchemy pour les codes QR émis et leur historique de localisation.
"""

import uuid
from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    Uuid,
)
from sqlalchemy.orm import relationship

from app.database import Base, utcnow

STATUS_INACTIVE = "INACTIVE"
STATUS_AVAILABLE = "AVAILABLE"
STATUS_ASSIGNED = "ASSIGNED"


class QrToken(Base):
    """Code QR imprimé : cycle de vie activation → assignation → suivi."""
    __tablename__ = "qr_tokens"
    __table_args__ = (
        CheckConstraint("latitude IS NULL OR (latitude >= -90 AND latitude <= 90)", name="ck_qr_tokens_latitude"),
        CheckConstraint("longitude IS NULL OR (longitude >= -180 AND longitude <= 180)", name="ck_qr_tokens_longitude"),
        # Un code non assigné ne peut pas être en suivi actif
        CheckConstraint("NOT (is_tracking AND owner_id IS NULL)", name="ck_qr_tokens_tracking_requires_owner"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(16), unique=True, nullable=False)       # Ex: "K3X9A0PZ7QW2M5TB"
    qr_image = Column(Text, nullable=False)                      # data:image/png;base64,...
    is_active = Column(Boolean, nullable=False, default=False)
    owner_id = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    issuer_id = Column(Uuid, nullable=False)                     # Référence historique, conservée si l'émetteur est supprimé

    latitude = Column(Float, nullable=True)
    longitude = Column(Float, nullable=True)
    is_tracking = Column(Boolean, nullable=False, default=False)
    last_tracked_at = Column(DateTime, nullable=True)

    version = Column(Integer, nullable=False, default=1)         # Incrémenté à chaque mutation
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    history = relationship(
        "LocationEntry",
        order_by="LocationEntry.id",
        cascade="all, delete-orphan",
        passive_deletes=True,
        lazy="selectin",
    )
    # Lecture seule : owner_id n'est modifié que par les UPDATE conditionnels
    owner = relationship("User", foreign_keys=[owner_id], viewonly=True, lazy="selectin")
    issuer = relationship(
        "User",
        primaryjoin="foreign(QrToken.issuer_id) == User.id",
        viewonly=True,
        lazy="selectin",
    )

    @property
    def status(self) -> str:
        """État dérivé : INACTIVE, AVAILABLE (actif sans propriétaire) ou ASSIGNED."""
        if not self.is_active:
            return STATUS_INACTIVE
        if self.owner_id is None:
            return STATUS_AVAILABLE
        return STATUS_ASSIGNED


class LocationEntry(Base):
    """Entrée immuable de l'historique de localisation (ajout uniquement)."""
    __tablename__ = "location_history"
    __table_args__ = (
        CheckConstraint("latitude >= -90 AND latitude <= 90", name="ck_location_history_latitude"),
        CheckConstraint("longitude >= -180 AND longitude <= 180", name="ck_location_history_longitude"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    token_id = Column(Uuid, ForeignKey("qr_tokens.id", ondelete="CASCADE"), nullable=False, index=True)
    latitude = Column(Float, nullable=False)
    longitude = Column(Float, nullable=False)
    recorded_at = Column(DateTime, nullable=False)

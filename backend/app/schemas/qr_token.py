"""
Schémas Pydantic pour les codes QR et leur suivi de localisation.
"""

import uuid
from datetime import datetime
from typing import List, Optional, Union

from pydantic import BaseModel, field_validator

from app.schemas.user import PrincipalSummary

# Coordonnée brute : nombre JSON ou chaîne numérique, validée par le service
RawCoordinate = Optional[Union[float, str]]


class QrGenerateRequest(BaseModel):
    """Corps de requête pour générer un lot de codes (bornes contrôlées par le service)."""
    count: int


class QrAssignRequest(BaseModel):
    """Corps de requête pour assigner un code à un utilisateur."""
    user_id: uuid.UUID


class LocationUpdate(BaseModel):
    """Position envoyée par le propriétaire (ou position par défaut de l'utilisateur)."""
    latitude: RawCoordinate = None
    longitude: RawCoordinate = None

    @field_validator("latitude", "longitude", mode="before")
    @classmethod
    def keep_raw_value(cls, v):
        # Les booléens JSON ne sont pas des coordonnées : on les laisse échouer au service
        if isinstance(v, bool):
            return str(v)
        return v


class LocationPoint(BaseModel):
    latitude: float
    longitude: float


class LocationEntryResponse(BaseModel):
    """Entrée de l'historique de localisation."""
    latitude: float
    longitude: float
    recorded_at: datetime

    model_config = {"from_attributes": True}


class QrTokenResponse(BaseModel):
    """Représentation complète d'un code QR."""
    id: uuid.UUID
    code: str
    qr_image: str
    status: str                      # INACTIVE, AVAILABLE, ASSIGNED
    is_active: bool
    owner_id: Optional[uuid.UUID]
    issuer_id: uuid.UUID
    owner: Optional[PrincipalSummary] = None       # None si non assigné
    issuer: Optional[PrincipalSummary] = None      # None si l'émetteur a été supprimé
    location: Optional[LocationPoint] = None
    is_tracking: bool
    last_tracked_at: Optional[datetime]
    history: List[LocationEntryResponse] = []
    created_at: Optional[datetime]
    updated_at: Optional[datetime]


class QrGenerateResult(BaseModel):
    """Rapport de génération d'un lot."""
    count: int
    qr_codes: List[QrTokenResponse]


class ScanResult(BaseModel):
    """Résultat d'un scan : le code résolu et s'il vient d'être auto-assigné."""
    qr_code: QrTokenResponse
    auto_assigned: bool

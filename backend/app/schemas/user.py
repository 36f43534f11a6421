"""
Schémas Pydantic pour les utilisateurs (principals) et leur gestion par le superadmin.
"""

import uuid
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, field_validator

from app.models.user import VALID_ROLES


class Principal(BaseModel):
    """Acteur authentifié fourni par la passerelle d'authentification."""
    id: uuid.UUID
    role: str


class PrincipalSummary(BaseModel):
    """Résumé d'un utilisateur embarqué dans les réponses des codes QR."""
    id: uuid.UUID
    name: str
    email: str

    model_config = {"from_attributes": True}


class UserResponse(BaseModel):
    id: uuid.UUID
    email: str
    name: str
    role: str
    is_active: bool
    default_latitude: Optional[float] = None
    default_longitude: Optional[float] = None
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}


class UserUpdate(BaseModel):
    """Champs modifiables par le superadmin. Les champs absents ne sont pas modifiés."""
    name: Optional[str] = None
    email: Optional[EmailStr] = None
    role: Optional[str] = None
    is_active: Optional[bool] = None

    @field_validator("name", "email", "role", "is_active", mode="before")
    @classmethod
    def not_null(cls, v):
        # Champ absent = inchangé ; null explicite refusé (colonnes NOT NULL)
        if v is None:
            raise ValueError("Ce champ ne peut pas être null.")
        return v

    @field_validator("role")
    @classmethod
    def valid_role(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and v not in VALID_ROLES:
            raise ValueError(f"Rôle invalide. Valeurs acceptées : {VALID_ROLES}")
        return v

    @field_validator("name")
    @classmethod
    def name_not_empty(cls, v: Optional[str]) -> Optional[str]:
        if v is not None and not v.strip():
            raise ValueError("Le nom ne peut pas être vide.")
        return v.strip() if v is not None else v

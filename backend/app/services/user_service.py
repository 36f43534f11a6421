"""
Service métier pour la gestion des utilisateurs (admin / superadmin).

La suppression d'un utilisateur libère en cascade ses codes QR :
owner_id remis à NULL, suivi arrêté, historique et activation conservés.
"""

import uuid
import logging
from typing import Any, List, Optional

from sqlalchemy import exists, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.user import ROLE_SUPERADMIN, User
from app.schemas.user import UserResponse, UserUpdate
from app.services import tracking_store
from app.services.coordinates import validate_coordinates
from app.services.errors import PrincipalNotFoundError, ProtectedPrincipalError, StateConflictError

logger = logging.getLogger(__name__)


def list_principals(db: Session, role: Optional[str] = None) -> List[UserResponse]:
    """Retourne les utilisateurs (filtrés par rôle si fourni), du plus récent au plus ancien."""
    query = select(User).order_by(User.created_at.desc(), User.email)
    if role is not None:
        query = query.where(User.role == role)
    return [UserResponse.model_validate(u) for u in db.execute(query).scalars().all()]


def update_principal(db: Session, user_id: uuid.UUID, data: UserUpdate) -> UserResponse:
    """
    Met à jour les champs fournis d'un utilisateur.
    Un superadmin ne peut pas être rétrogradé.
    """
    user = _require_user(db, user_id)

    if user.role == ROLE_SUPERADMIN and data.role is not None and data.role != ROLE_SUPERADMIN:
        raise ProtectedPrincipalError("Impossible de modifier le rôle d'un superadmin.")

    update_data = data.model_dump(exclude_unset=True)
    new_email = update_data.get("email")
    if new_email is not None and _email_taken(db, new_email, user_id):
        raise StateConflictError("Un utilisateur avec cet email existe déjà.")

    for field, value in update_data.items():
        setattr(user, field, value)

    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        # Course avec une autre modification : seul le doublon d'email est une erreur métier
        if new_email is not None and _email_taken(db, new_email, user_id):
            raise StateConflictError("Un utilisateur avec cet email existe déjà.")
        raise
    db.refresh(user)
    return UserResponse.model_validate(user)


def delete_principal(db: Session, user_id: uuid.UUID) -> int:
    """
    Supprime un utilisateur et libère tous les codes qui lui étaient assignés.
    Un superadmin ne peut pas être supprimé.
    Retourne le nombre de codes libérés.
    """
    user = _require_user(db, user_id)
    if user.role == ROLE_SUPERADMIN:
        raise ProtectedPrincipalError("Impossible de supprimer un superadmin.")

    # Libération et suppression dans la même transaction
    released = tracking_store.clear_owner(db, user_id)
    db.delete(user)
    db.commit()

    logger.info("Utilisateur %s supprimé, %d code(s) QR libéré(s)", user_id, released)
    return released


def set_default_location(db: Session, user_id: uuid.UUID, lat_raw: Any, lng_raw: Any) -> UserResponse:
    """Enregistre la position par défaut d'un utilisateur (mêmes règles que le suivi)."""
    lat, lng = validate_coordinates(lat_raw, lng_raw)
    user = _require_user(db, user_id)

    user.default_latitude = lat
    user.default_longitude = lng
    db.commit()
    db.refresh(user)
    return UserResponse.model_validate(user)


def _require_user(db: Session, user_id: uuid.UUID) -> User:
    user = db.get(User, user_id)
    if user is None:
        raise PrincipalNotFoundError("Utilisateur introuvable.")
    return user


def _email_taken(db: Session, email: str, user_id: uuid.UUID) -> bool:
    return db.execute(
        select(exists().where(User.email == email, User.id != user_id))
    ).scalar()

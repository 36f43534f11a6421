"""
Accès BDD aux codes QR : création, recherche et mises à jour atomiques.

Chaque mutation est un UPDATE conditionnel (WHERE id = ... AND <état attendu>)
exécuté en une seule requête : deux écritures concurrentes sur un même code
ne peuvent pas se perdre, la seconde voit simplement rowcount == 0.
L'unicité des codes repose sur la contrainte UNIQUE de qr_tokens.code.
"""

import uuid
import logging
from datetime import datetime
from typing import List, Optional

from sqlalchemy import exists, func, not_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.database import utcnow
from app.models.qr_token import LocationEntry, QrToken

logger = logging.getLogger(__name__)


class DuplicateCodeError(Exception):
    """Le code existe déjà : signal de conflit remonté au générateur."""

    def __init__(self, code: str):
        super().__init__(f"Le code '{code}' existe déjà.")
        self.code = code


# --- Création / lecture ---

def create_record(db: Session, code: str, qr_image: str, issuer_id: uuid.UUID) -> QrToken:
    """
    Insère un nouveau code inactif et non assigné.
    Lève DuplicateCodeError si la contrainte d'unicité sur le code est violée.
    """
    token = QrToken(code=code, qr_image=qr_image, issuer_id=issuer_id, is_active=False, is_tracking=False)
    db.add(token)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        if token_exists(db, code):
            raise DuplicateCodeError(code)
        raise
    db.refresh(token)
    return token


def get_token(db: Session, token_id: uuid.UUID) -> Optional[QrToken]:
    """Retourne le code par son ID (rechargé depuis la BDD), ou None."""
    return db.get(QrToken, token_id, populate_existing=True)


def find_by_code(db: Session, code: str) -> Optional[QrToken]:
    return db.execute(select(QrToken).where(QrToken.code == code)).scalar()


def token_exists(db: Session, code: str) -> bool:
    return bool(db.execute(select(exists().where(QrToken.code == code))).scalar())


def list_tokens(db: Session) -> List[QrToken]:
    """Tous les codes, du plus récent au plus ancien."""
    return db.execute(
        select(QrToken).order_by(QrToken.created_at.desc(), QrToken.code)
    ).scalars().all()


def list_owned(db: Session, owner_id: uuid.UUID) -> List[QrToken]:
    return db.execute(
        select(QrToken)
        .where(QrToken.owner_id == owner_id)
        .order_by(QrToken.created_at.desc(), QrToken.code)
    ).scalars().all()


def list_recently_updated(db: Session, limit: int = 10) -> List[QrToken]:
    return db.execute(
        select(QrToken).order_by(QrToken.updated_at.desc()).limit(limit)
    ).scalars().all()


def count_tokens(db: Session, *conditions) -> int:
    return db.execute(
        select(func.count()).select_from(QrToken).where(*conditions)
    ).scalar() or 0


# --- Mutations atomiques ---

def _conditional_update(db: Session, token_id: uuid.UUID, conditions, **values) -> bool:
    """UPDATE ... WHERE id = :id AND conditions ; True si la ligne a été modifiée."""
    values.setdefault("updated_at", utcnow())
    result = db.execute(
        update(QrToken)
        .where(QrToken.id == token_id, *conditions)
        .values(version=QrToken.version + 1, **values)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount == 1


def flip_active(db: Session, token_id: uuid.UUID) -> bool:
    """Inverse is_active en une seule requête. Ne touche ni au propriétaire ni à l'historique."""
    changed = _conditional_update(db, token_id, [], is_active=not_(QrToken.is_active))
    db.commit()
    return changed


def set_owner_if_unowned(db: Session, token_id: uuid.UUID, owner_id: uuid.UUID) -> bool:
    """
    Assigne le code seulement s'il est actif et sans propriétaire.
    Entre deux assignations concurrentes, une seule obtient rowcount == 1.
    """
    changed = _conditional_update(
        db,
        token_id,
        [QrToken.is_active.is_(True), QrToken.owner_id.is_(None)],
        owner_id=owner_id,
    )
    db.commit()
    return changed


def flip_tracking(db: Session, token_id: uuid.UUID, owner_id: uuid.UUID) -> bool:
    """Inverse is_tracking si le code appartient bien à owner_id."""
    changed = _conditional_update(
        db,
        token_id,
        [QrToken.owner_id == owner_id],
        is_tracking=not_(QrToken.is_tracking),
    )
    db.commit()
    return changed


def record_location(
    db: Session,
    token_id: uuid.UUID,
    owner_id: uuid.UUID,
    latitude: float,
    longitude: float,
) -> Optional[datetime]:
    """
    Écrit la position courante et ajoute une entrée d'historique, dans une seule transaction.

    Le premier UPDATE verrouille la ligne ; l'horodatage est pris ensuite, ce qui garantit
    des timestamps croissants dans l'historique même sous écritures concurrentes.
    Retourne l'horodatage enregistré, ou None si le code n'appartient pas à owner_id.
    """
    locked = _conditional_update(db, token_id, [QrToken.owner_id == owner_id])
    if not locked:
        db.rollback()
        return None

    now = utcnow()
    db.execute(
        update(QrToken)
        .where(QrToken.id == token_id)
        .values(latitude=latitude, longitude=longitude, last_tracked_at=now, updated_at=now)
        .execution_options(synchronize_session=False)
    )
    db.add(LocationEntry(token_id=token_id, latitude=latitude, longitude=longitude, recorded_at=now))
    db.commit()
    return now


def clear_owner(db: Session, owner_id: uuid.UUID) -> int:
    """
    Libère tous les codes d'un propriétaire (suivi arrêté, historique conservé).
    Ne commit pas : l'appelant l'inclut dans sa propre transaction.
    """
    result = db.execute(
        update(QrToken)
        .where(QrToken.owner_id == owner_id)
        .values(owner_id=None, is_tracking=False, version=QrToken.version + 1, updated_at=utcnow())
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def delete_record(db: Session, token_id: uuid.UUID) -> bool:
    """Supprime définitivement un code et son historique. False si introuvable."""
    token = db.get(QrToken, token_id)
    if token is None:
        return False
    db.delete(token)
    db.commit()
    return True

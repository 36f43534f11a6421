"""
Service métier du cycle de vie des codes QR.

Flux :
  1. Génération d'un lot (codes inactifs, non assignés, image QR rendue une fois)
  2. Activation / désactivation par un admin
  3. Assignation à un utilisateur (manuelle par un admin, ou automatique au scan)
  4. Mises à jour de localisation par le propriétaire (historique en ajout seul)

Chaque mutation passe par un UPDATE conditionnel de tracking_store ; quand
il ne modifie aucune ligne, on relit le code pour remonter l'erreur précise.
"""

import uuid
import logging
from typing import Any, List, Optional

from sqlalchemy.orm import Session

from app.config import settings
from app.models.qr_token import QrToken
from app.models.user import ROLE_ADMIN, ROLE_SUPERADMIN, User
from app.schemas.qr_token import (
    LocationEntryResponse,
    LocationPoint,
    QrGenerateResult,
    QrTokenResponse,
    ScanResult,
)
from app.schemas.user import PrincipalSummary
from app.services import tracking_store
from app.services.coordinates import validate_coordinates
from app.services.errors import (
    AlreadyOwnedError,
    InactiveTokenError,
    InvalidCountError,
    NoInputProvidedError,
    NotOwnedError,
    PrincipalNotFoundError,
    TokenNotFoundError,
)
from app.services.qr_decoder import decode_token
from app.services.token_generator import create_unique_token

logger = logging.getLogger(__name__)


def generate_batch(db: Session, count: int, issuer_id: uuid.UUID) -> QrGenerateResult:
    """
    Génère `count` codes (1 ≤ count ≤ GENERATE_MAX_COUNT) pour l'émetteur donné.

    Chaque code est commité individuellement : si l'appel est interrompu,
    les codes déjà créés sont conservés.
    """
    if count is None or not 1 <= count <= settings.GENERATE_MAX_COUNT:
        raise InvalidCountError(f"Le nombre de codes doit être compris entre 1 et {settings.GENERATE_MAX_COUNT}.")

    if db.get(User, issuer_id) is None:
        raise PrincipalNotFoundError("Émetteur introuvable.")

    tokens = [create_unique_token(db, issuer_id) for _ in range(count)]

    logger.info("%d code(s) QR générés par %s", len(tokens), issuer_id)
    return QrGenerateResult(count=len(tokens), qr_codes=[to_response(t) for t in tokens])


def get_token(db: Session, token_id: uuid.UUID) -> QrTokenResponse:
    return to_response(_require_token(db, token_id))


def list_tokens(db: Session) -> List[QrTokenResponse]:
    """Retourne tous les codes, du plus récent au plus ancien."""
    return [to_response(t) for t in tracking_store.list_tokens(db)]


def list_owned_tokens(db: Session, owner_id: uuid.UUID) -> List[QrTokenResponse]:
    """Retourne les codes assignés à un utilisateur."""
    return [to_response(t) for t in tracking_store.list_owned(db, owner_id)]


def toggle_active(db: Session, token_id: uuid.UUID) -> QrTokenResponse:
    """Active ou désactive un code. Le propriétaire et l'historique sont inchangés."""
    if not tracking_store.flip_active(db, token_id):
        raise TokenNotFoundError("Code QR introuvable.")

    token = _require_token(db, token_id)
    logger.info("Code %s %s", token.code, "activé" if token.is_active else "désactivé")
    return to_response(token)


def assign(db: Session, token_id: uuid.UUID, user_id: uuid.UUID) -> QrTokenResponse:
    """
    Assigne un code actif à un utilisateur.

    Validations :
    1. Le code existe
    2. Le code est actif
    3. L'utilisateur existe
    4. Le code n'a pas déjà de propriétaire (réassigner au même utilisateur est sans effet)
    """
    token = _require_token(db, token_id)
    if not token.is_active:
        raise InactiveTokenError("Le code QR doit être activé avant d'être assigné.")

    if db.get(User, user_id) is None:
        raise PrincipalNotFoundError("Utilisateur introuvable.")

    if token.owner_id == user_id:
        return to_response(token)
    if token.owner_id is not None:
        raise AlreadyOwnedError("Ce code QR est déjà assigné à un autre utilisateur.")

    if not tracking_store.set_owner_if_unowned(db, token_id, user_id):
        # Perdu face à une écriture concurrente (ou déjà assigné) : relire pour expliquer
        current = _require_token(db, token_id)
        if not current.is_active:
            raise InactiveTokenError("Le code QR doit être activé avant d'être assigné.")
        if current.owner_id == user_id:
            return to_response(current)
        raise AlreadyOwnedError("Ce code QR est déjà assigné à un autre utilisateur.")

    token = _require_token(db, token_id)
    logger.info("Code %s assigné à l'utilisateur %s", token.code, user_id)
    return to_response(token)


def resolve_scan(
    db: Session,
    principal_id: uuid.UUID,
    code: Optional[str] = None,
    image: Optional[bytes] = None,
) -> ScanResult:
    """
    Résout un scan : saisie manuelle du code OU image uploadée (exactement l'un des deux).

    Si le code est actif et sans propriétaire, il est auto-assigné au scanneur.
    Un second scan par un autre utilisateur ne change pas le propriétaire.
    """
    has_code = code is not None and bool(code.strip())
    has_image = bool(image)
    if not has_code and not has_image:
        raise NoInputProvidedError("Veuillez saisir un code ou envoyer une image de QR code.")
    if has_code and has_image:
        raise NoInputProvidedError("Fournir soit un code, soit une image, pas les deux.")

    if has_image:
        code = decode_token(image)

    token = tracking_store.find_by_code(db, normalize_code(code))
    if token is None:
        raise TokenNotFoundError("Code QR introuvable.")
    if not token.is_active:
        raise InactiveTokenError("Ce code QR n'est pas activé.")

    auto_assigned = False
    if token.owner_id is None:
        # Jeton encore valide pour un utilisateur supprimé entre-temps
        if db.get(User, principal_id) is None:
            raise PrincipalNotFoundError("Utilisateur introuvable.")
        auto_assigned =tracking_store.set_owner_if_unowned(db, token.id, principal_id)
        token = _require_token(db, token.id)
        if auto_assigned:
            logger.info("Code %s auto-assigné au scan par %s", token.code, principal_id)

    return ScanResult(qr_code=to_response(token), auto_assigned=auto_assigned)


def update_location(
    db: Session,
    token_id: uuid.UUID,
    requester_id: uuid.UUID,
    lat_raw: Any,
    lng_raw: Any,
) -> QrTokenResponse:
    """
    Enregistre une nouvelle position pour un code appartenant au demandeur.
    Met à jour la position courante et ajoute exactement une entrée d'historique.
    """
    lat, lng = validate_coordinates(lat_raw, lng_raw)

    recorded_at = tracking_store.record_location(db, token_id, requester_id, lat, lng)
    if recorded_at is None:
        _raise_not_found_or_not_owned(db, token_id)

    token = _require_token(db, token_id)
    logger.info("Position du code %s : (%s, %s)", token.code, lat, lng)
    return to_response(token)


def toggle_tracking(db: Session, token_id: uuid.UUID, requester_id: uuid.UUID) -> QrTokenResponse:
    """Démarre ou arrête le suivi d'un code appartenant au demandeur."""
    if not tracking_store.flip_tracking(db, token_id, requester_id):
        _raise_not_found_or_not_owned(db, token_id)

    token = _require_token(db, token_id)
    logger.info("Suivi du code %s %s", token.code, "démarré" if token.is_tracking else "arrêté")
    return to_response(token)


def get_history(
    db: Session,
    token_id: uuid.UUID,
    requester_id: uuid.UUID,
    requester_role: str,
) -> List[LocationEntryResponse]:
    """Historique de localisation, lisible par le propriétaire ou un admin."""
    token = _require_token(db, token_id)
    if requester_role not in (ROLE_ADMIN, ROLE_SUPERADMIN) and token.owner_id != requester_id:
        raise NotOwnedError("Ce code QR ne vous est pas assigné.")
    return [LocationEntryResponse.model_validate(e) for e in token.history]


def delete_token(db: Session, token_id: uuid.UUID) -> None:
    """Suppression définitive d'un code (superadmin)."""
    if not tracking_store.delete_record(db, token_id):
        raise TokenNotFoundError("Code QR introuvable.")
    logger.info("Code QR %s supprimé", token_id)


def normalize_code(code: str) -> str:
    """Les codes sont stockés en majuscules ; la saisie manuelle est tolérante."""
    return code.strip().upper()


def _require_token(db: Session, token_id: uuid.UUID) -> QrToken:
    token = tracking_store.get_token(db, token_id)
    if token is None:
        raise TokenNotFoundError("Code QR introuvable.")
    return token


def _raise_not_found_or_not_owned(db: Session, token_id: uuid.UUID) -> None:
    _require_token(db, token_id)
    raise NotOwnedError("Ce code QR ne vous est pas assigné.")


def to_response(token: QrToken) -> QrTokenResponse:
    """Construit le schéma de réponse avec la position courante et l'historique."""
    location = None
    if token.latitude is not None and token.longitude is not None:
        location = LocationPoint(latitude=token.latitude, longitude=token.longitude)

    return QrTokenResponse(
        id=token.id,
        code=token.code,
        qr_image=token.qr_image,
        status=token.status,
        is_active=token.is_active,
        owner_id=token.owner_id,
        issuer_id=token.issuer_id,
        owner=PrincipalSummary.model_validate(token.owner) if token.owner is not None else None,
        issuer=PrincipalSummary.model_validate(token.issuer) if token.issuer is not None else None,
        location=location,
        is_tracking=token.is_tracking,
        last_tracked_at=token.last_tracked_at,
        history=[LocationEntryResponse.model_validate(e) for e in token.history],
        created_at=token.created_at,
        updated_at=token.updated_at,
    )

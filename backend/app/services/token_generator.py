"""
Génération des codes QR uniques (16 caractères, [A-Z0-9]).

Pas de vérification préalable : on insère directement et la contrainte UNIQUE
de la BDD tranche. En cas de collision, on tire un nouveau code.
"""

import secrets
import string
import uuid
import logging
from typing import Callable

from sqlalchemy.orm import Session

from app.config import settings
from app.models.qr_token import QrToken
from app.services import tracking_store
from app.services.errors import GenerationExhaustedError
from app.services.qr_image import render_qr_data_url

logger = logging.getLogger(__name__)

TOKEN_ALPHABET = string.ascii_uppercase + string.digits


def generate_token() -> str:
    """Tire un code aléatoire de TOKEN_LENGTH caractères majuscules/chiffres."""
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(settings.TOKEN_LENGTH))


def create_unique_token(
    db: Session,
    issuer_id: uuid.UUID,
    render: Callable[[str], str] = render_qr_data_url,
) -> QrToken:
    """
    Crée un enregistrement avec un code inédit.

    Boucle insert → conflit → nouveau tirage, bornée par TOKEN_MAX_ATTEMPTS.
    Lève GenerationExhaustedError si aucune tentative n'aboutit (faute interne).
    """
    for attempt in range(1, settings.TOKEN_MAX_ATTEMPTS + 1):
        code = generate_token()
        try:
            return tracking_store.create_record(db, code, render(code), issuer_id)
        except tracking_store.DuplicateCodeError:
            logger.warning("Collision sur le code %s (tentative %d/%d)", code, attempt, settings.TOKEN_MAX_ATTEMPTS)

    raise GenerationExhaustedError(
        f"Impossible de générer un code unique après {settings.TOKEN_MAX_ATTEMPTS} tentatives."
    )

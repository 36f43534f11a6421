"""
Extraction du code contenu dans une image QR uploadée.

Pillow lit l'image, numpy fournit le buffer de pixels et le détecteur QR
d'OpenCV décode le motif. Aucun état, aucun accès BDD : la résolution du
code est faite par l'appelant.
"""

import io
import logging

import cv2
import numpy as np
from PIL import Image, UnidentifiedImageError

from app.services.errors import DecodeError

logger = logging.getLogger(__name__)


def decode_token(raw: bytes) -> str:
    """Retourne le texte encodé dans l'image, ou lève DecodeError."""
    if not raw:
        raise DecodeError("Aucun code QR détecté dans l'image.")

    try:
        with Image.open(io.BytesIO(raw)) as img:
            pixels = np.array(img.convert("RGB"))
    except (UnidentifiedImageError, OSError) as exc:
        logger.info("Image illisible : %s", exc)
        raise DecodeError("Le fichier envoyé n'est pas une image lisible.") from exc

    # OpenCV travaille en BGR
    bgr = cv2.cvtColor(pixels, cv2.COLOR_RGB2BGR)
    data, points, _ = cv2.QRCodeDetector().detectAndDecode(bgr)
    if points is None or not data:
        raise DecodeError("Aucun code QR détecté dans l'image.")

    return data

"""
Validation des coordonnées GPS reçues du client.

Les valeurs arrivent en nombre JSON ou en chaîne numérique ; elles sont
normalisées en float avant le contrôle des bornes.
"""

import math
from typing import Any, Tuple

from app.services.errors import InvalidCoordinateError

LATITUDE_RANGE = (-90.0, 90.0)
LONGITUDE_RANGE = (-180.0, 180.0)


def validate_coordinates(lat_raw: Any, lng_raw: Any) -> Tuple[float, float]:
    """
    Valide et normalise un couple (latitude, longitude).

    Ordre des contrôles (une seule erreur remontée) :
    1. présence des deux valeurs
    2. format numérique
    3. latitude dans [-90, 90]
    4. longitude dans [-180, 180]
    """
    if _is_absent(lat_raw) or _is_absent(lng_raw):
        raise InvalidCoordinateError("La latitude et la longitude sont obligatoires.")

    lat = _to_float(lat_raw)
    lng = _to_float(lng_raw)
    if lat is None or lng is None:
        raise InvalidCoordinateError("Coordonnées invalides : des nombres sont attendus.")

    if not LATITUDE_RANGE[0] <= lat <= LATITUDE_RANGE[1]:
        raise InvalidCoordinateError("La latitude doit être comprise entre -90 et 90.")
    if not LONGITUDE_RANGE[0] <= lng <= LONGITUDE_RANGE[1]:
        raise InvalidCoordinateError("La longitude doit être comprise entre -180 et 180.")

    return lat, lng


def _is_absent(value: Any) -> bool:
    # 0 est une coordonnée valide : seuls None et la chaîne vide comptent comme absents
    if value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _to_float(value: Any):
    if isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number

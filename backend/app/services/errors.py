"""
Erreurs métier du cycle de vie des codes QR.

Toutes dérivent de ValueError (convention des services : les routers
interceptent ValueError) et portent le code HTTP à renvoyer.
"""


class LifecycleError(ValueError):
    status_code = 400


# --- Entrée invalide ---

class InvalidInputError(LifecycleError):
    status_code = 422


class InvalidCountError(InvalidInputError):
    pass


class InvalidCoordinateError(InvalidInputError):
    pass


class NoInputProvidedError(InvalidInputError):
    status_code = 400


# --- Ressource introuvable ---

class NotFoundError(LifecycleError):
    status_code = 404


class TokenNotFoundError(NotFoundError):
    pass


class PrincipalNotFoundError(NotFoundError):
    pass


# --- Opération incompatible avec l'état courant ---

class StateConflictError(LifecycleError):
    status_code = 409


class InactiveTokenError(StateConflictError):
    pass


class AlreadyOwnedError(StateConflictError):
    pass


class NotOwnedError(StateConflictError):
    status_code = 403


class ProtectedPrincipalError(StateConflictError):
    status_code = 400


# --- Décodage d'image ---

class DecodeError(LifecycleError):
    status_code = 400


# --- Faute interne ---

class GenerationExhaustedError(LifecycleError):
    """Aucun code libre trouvé après TOKEN_MAX_ATTEMPTS tentatives."""
    status_code = 500

# Importe tous les modèles pour enregistrer leurs tables dans Base.metadata
# avant que SQLAlchemy tente de résoudre les clés étrangères inter-modèles.
# user.py doit être chargé avant qr_token.py (FK owner_id vers users.id).

from app.models.user import User  # noqa: F401  (doit précéder qr_token)
from app.models.qr_token import LocationEntry, QrToken  # noqa: F401

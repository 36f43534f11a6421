"""
Router pour le cycle de vie des codes QR.
Génération, activation et assignation (admin) ; scan, localisation et suivi (utilisateur).
"""

import uuid
from typing import List, Optional

from fastapi import APIRouter, Depends, File, Form, HTTPException, UploadFile
from sqlalchemy.orm import Session

from app.config import settings
from app.database import get_db
from app.models.user import ROLE_ADMIN, ROLE_SUPERADMIN, ROLE_USER
from app.schemas.qr_token import (
    LocationEntryResponse,
    LocationUpdate,
    QrAssignRequest,
    QrGenerateRequest,
    QrGenerateResult,
    QrTokenResponse,
    ScanResult,
)
from app.schemas.user import Principal
from app.security import get_current_principal, require_roles
from app.services import lifecycle_service
from app.services.errors import LifecycleError

router = APIRouter(prefix="/api/v1/qrcodes", tags=["Codes QR"])

admin_only = require_roles(ROLE_ADMIN, ROLE_SUPERADMIN)
user_only = require_roles(ROLE_USER)

UPLOAD_CHUNK_SIZE = 64 * 1024


async def _read_upload(upload: UploadFile) -> bytes:
    """Lit l'image par blocs et s'arrête dès que la taille maximale est dépassée."""
    max_bytes = settings.MAX_UPLOAD_SIZE_MB * 1024 * 1024
    chunks = []
    total = 0
    while True:
        chunk = await upload.read(UPLOAD_CHUNK_SIZE)
        if not chunk:
            break
        total += len(chunk)
        if total > max_bytes:
            raise HTTPException(
                status_code=400,
                detail=f"Image trop volumineuse. Taille maximale : {settings.MAX_UPLOAD_SIZE_MB} Mo.",
            )
        chunks.append(chunk)
    return b"".join(chunks)


@router.post("/generate", response_model=QrGenerateResult, status_code=201,
             summary="Générer un lot de codes QR")
def generate_qr_codes(
    data: QrGenerateRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """
    Génère entre 1 et 100 codes QR inactifs et non assignés.
    Chaque code (16 caractères, A-Z 0-9) est unique et accompagné de son image PNG.
    """
    try:
        return lifecycle_service.generate_batch(db, data.count, principal.id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("", response_model=List[QrTokenResponse], summary="Lister tous les codes QR")
def list_qr_codes(principal: Principal = Depends(admin_only), db: Session = Depends(get_db)):
    """Retourne tous les codes, du plus récent au plus ancien."""
    return lifecycle_service.list_tokens(db)


@router.get("/mine", response_model=List[QrTokenResponse], summary="Mes codes QR")
def list_my_qr_codes(principal: Principal = Depends(user_only), db: Session = Depends(get_db)):
    """Retourne les codes assignés à l'utilisateur connecté."""
    return lifecycle_service.list_owned_tokens(db, principal.id)


@router.patch("/{token_id}/toggle-active", response_model=QrTokenResponse,
              summary="Activer / désactiver un code QR")
def toggle_active(
    token_id: uuid.UUID,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """Inverse l'état actif du code. Le propriétaire et l'historique ne sont pas modifiés."""
    try:
        return lifecycle_service.toggle_active(db, token_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/{token_id}/assign", response_model=QrTokenResponse, summary="Assigner un code QR")
def assign_qr_code(
    token_id: uuid.UUID,
    data: QrAssignRequest,
    principal: Principal = Depends(admin_only),
    db: Session = Depends(get_db),
):
    """
    Assigne un code actif à un utilisateur.

    - 404 si le code ou l'utilisateur est introuvable
    - 409 si le code est inactif ou déjà assigné à quelqu'un d'autre
    """
    try:
        return lifecycle_service.assign(db, token_id, data.user_id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.post("/scan", response_model=ScanResult, summary="Scanner un code QR")
async def scan_qr_code(
    code: Optional[str] = Form(None),
    qr_image: Optional[UploadFile] = File(None),
    principal: Principal = Depends(user_only),
    db: Session = Depends(get_db),
):
    """
    Résout un code QR saisi manuellement (`code`) ou photographié (`qr_image`).

    Un code actif sans propriétaire est automatiquement assigné au scanneur.
    """
    image = await _read_upload(qr_image) if qr_image is not None else None

    try:
        return lifecycle_service.resolve_scan(db, principal.id, code=code, image=image)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{token_id}/location", response_model=QrTokenResponse,
              summary="Mettre à jour la position d'un code QR")
def update_location(
    token_id: uuid.UUID,
    data: LocationUpdate,
    principal: Principal = Depends(user_only),
    db: Session = Depends(get_db),
):
    """
    Enregistre la position courante (latitude/longitude en nombres ou chaînes numériques)
    et ajoute une entrée à l'historique. Réservé au propriétaire du code.
    """
    try:
        return lifecycle_service.update_location(db, token_id, principal.id, data.latitude, data.longitude)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.patch("/{token_id}/toggle-tracking", response_model=QrTokenResponse,
              summary="Démarrer / arrêter le suivi")
def toggle_tracking(
    token_id: uuid.UUID,
    principal: Principal = Depends(user_only),
    db: Session = Depends(get_db),
):
    """Inverse l'indicateur de suivi. Réservé au propriétaire du code."""
    try:
        return lifecycle_service.toggle_tracking(db, token_id, principal.id)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))


@router.get("/{token_id}/history", response_model=List[LocationEntryResponse],
            summary="Historique de localisation")
def get_history(
    token_id: uuid.UUID,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Historique complet, dans l'ordre d'enregistrement. Propriétaire ou admin."""
    try:
        return lifecycle_service.get_history(db, token_id, principal.id, principal.role)
    except LifecycleError as e:
        raise HTTPException(status_code=e.status_code, detail=str(e))

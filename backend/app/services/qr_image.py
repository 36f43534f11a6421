"""
Rendu de l'image QR associée à un code (produite une seule fois à la création).
"""

import base64
import io

import qrcode

from app.config import settings


def generate_qr_image(code: str) -> bytes:
    """Génère une image PNG du QR code encodant le code donné."""
    qr = qrcode.QRCode(version=1, box_size=settings.QR_BOX_SIZE, border=settings.QR_BORDER)
    qr.add_data(code)
    qr.make(fit=True)
    img = qr.make_image(fill_color="black", back_color="white")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def render_qr_data_url(code: str) -> str:
    """Retourne l'image PNG sous forme de data URL, stockée telle quelle en BDD."""
    encoded = base64.b64encode(generate_qr_image(code)).decode("ascii")
    return f"data:image/png;base64,{encoded}"

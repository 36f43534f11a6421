"""
Schémas Pydantic pour les tableaux de bord admin et superadmin.
"""

from pydantic import BaseModel


class DashboardStats(BaseModel):
    total_users: int
    total_qr_codes: int
    active_qr_codes: int
    assigned_qr_codes: int
    tracking_qr_codes: int


class SystemStats(DashboardStats):
    total_admins: int
    total_regular_users: int
    recent_registrations: int

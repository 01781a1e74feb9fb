"""Database models"""

from app.models.user import User
from app.models.security import RefreshToken
from app.models.audit import AuditLog
from app.models.origin import AllowedOrigin

__all__ = ["User", "RefreshToken", "AuditLog", "AllowedOrigin"]

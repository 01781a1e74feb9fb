"""User schemas"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    """User role enumeration"""
    USER = "USER"
    MODERATOR = "MODERATOR"
    ADMIN = "ADMIN"


class UserResponse(BaseModel):
    """Sanitized user: no password hash, MFA secret, backup codes or email tokens"""
    model_config = ConfigDict(from_attributes=True)

    id: int
    email: str
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    roles: List[str]
    is_email_verified: bool
    is_mfa_enabled: bool
    is_active: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None


class ProfileUpdate(BaseModel):
    """Profile update schema"""
    first_name: Optional[str] = Field(default=None, max_length=50)
    last_name: Optional[str] = Field(default=None, max_length=50)

    @field_validator('first_name', 'last_name')
    @classmethod
    def strip_names(cls, v):
        """Blank names are treated as not provided"""
        if v is None:
            return None
        v = v.strip()
        return v or None

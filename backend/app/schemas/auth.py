"""Authentication request/response schemas"""

import re
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, field_validator

from app.schemas.user import UserResponse

_PASSWORD_PATTERN = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)(?=.*[@$!%*?&])[A-Za-z\d@$!%*?&]')
_BCRYPT_MAX_BYTES = 72


def _check_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError('Password must be at least 8 characters long')
    if len(v.encode('utf-8')) > _BCRYPT_MAX_BYTES:
        raise ValueError(f'Password must be at most {_BCRYPT_MAX_BYTES} bytes long')
    if not _PASSWORD_PATTERN.match(v):
        raise ValueError(
            'Password must contain at least one uppercase letter, one lowercase letter, '
            'one number, and one special character'
        )
    return v


class RegisterRequest(BaseModel):
    """Registration schema"""
    email: EmailStr
    password: str
    first_name: Optional[str] = Field(default=None, min_length=1, max_length=50)
    last_name: Optional[str] = Field(default=None, min_length=1, max_length=50)

    @field_validator('password')
    @classmethod
    def password_strength(cls, v):
        return _check_password_strength(v)

    @field_validator('first_name', 'last_name', mode='before')
    @classmethod
    def strip_names(cls, v):
        return v.strip() if isinstance(v, str) else v


class LoginRequest(BaseModel):
    """Login schema; totp_code also accepts a backup code"""
    email: EmailStr
    password: str = Field(..., min_length=1)
    totp_code: Optional[str] = Field(default=None, max_length=16)


class ForgotPasswordRequest(BaseModel):
    email: EmailStr


class ResetPasswordRequest(BaseModel):
    token: str = Field(..., min_length=1)
    password: str

    @field_validator('password')
    @classmethod
    def password_strength(cls, v):
        return _check_password_strength(v)


class MfaCodeRequest(BaseModel):
    """Six-digit TOTP code"""
    code: str = Field(..., pattern=r'^\d{6}$')


class MfaDisableRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=16)


class RegisterResponse(BaseModel):
    user: UserResponse
    message: str


class LoginResponse(BaseModel):
    """Successful login. The refresh token travels only in the HTTP-only cookie."""
    user: UserResponse
    access_token: str
    token_type: str = "bearer"
    expires_in: int
    message: str = "Login successful"


class MfaChallengeResponse(BaseModel):
    requires_mfa: bool = True
    temp_token: str
    message: str = "MFA code required"


class AccessTokenResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    expires_in: int


class MfaSetupResponse(BaseModel):
    qr_code: str
    secret: str
    backup_codes: List[str]
    message: str = "Scan the QR code with your authenticator app and verify with a code"


class MessageResponse(BaseModel):
    message: str

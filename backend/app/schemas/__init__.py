"""Pydantic schemas for API validation"""

from app.schemas.user import UserRole, UserResponse, ProfileUpdate
from app.schemas.auth import (
    RegisterRequest,
    LoginRequest,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    MfaCodeRequest,
    MfaDisableRequest,
    RegisterResponse,
    LoginResponse,
    MfaChallengeResponse,
    AccessTokenResponse,
    MfaSetupResponse,
    MessageResponse,
)
from app.schemas.origin import (
    OriginCreate,
    OriginUpdate,
    OriginRemove,
    OriginResponse,
    CorsStatsResponse,
    OriginMutationResponse,
    CorsMessageResponse,
)
from app.schemas.response import HealthResponse

__all__ = [
    "UserRole", "UserResponse", "ProfileUpdate",
    "RegisterRequest", "LoginRequest", "ForgotPasswordRequest", "ResetPasswordRequest",
    "MfaCodeRequest", "MfaDisableRequest",
    "RegisterResponse", "LoginResponse", "MfaChallengeResponse", "AccessTokenResponse",
    "MfaSetupResponse", "MessageResponse",
    "OriginCreate", "OriginUpdate", "OriginRemove", "OriginResponse", "CorsStatsResponse", "OriginMutationResponse",
    "CorsMessageResponse",
    "HealthResponse",
]

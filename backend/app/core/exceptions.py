"""Custom exception classes for the application"""

from typing import Optional, Dict, Any

from app.core.clock import utcnow


class BaseAPIException(Exception):
    """Base exception for all API errors"""

    def __init__(
        self,
        message: str,
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# Authentication Errors
class AuthenticationError(BaseAPIException):
    """Base authentication error"""
    def __init__(self, message: str = "Authentication failed", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=401, details=details)


class InvalidCredentialsError(AuthenticationError):
    """Unknown email or wrong password"""
    def __init__(self):
        super().__init__("Invalid credentials")


class AccountDeactivatedError(AuthenticationError):
    """Account has been soft-deleted"""
    def __init__(self):
        super().__init__("Account has been deactivated")


class EmailNotVerifiedError(AuthenticationError):
    """Login attempted before email verification"""
    def __init__(self):
        super().__init__("Please verify your email before logging in")


class InvalidMfaCodeError(AuthenticationError):
    """TOTP or backup code did not match"""
    def __init__(self):
        super().__init__("Invalid MFA code")


class RefreshTokenError(AuthenticationError):
    """Refresh token cannot be used; the client should drop it"""


class MissingTokenError(RefreshTokenError):
    """No refresh token was presented"""
    def __init__(self):
        super().__init__("Refresh token not found")


class TokenInvalidError(RefreshTokenError):
    """JWT signature, issuer, audience or expiry check failed"""
    def __init__(self, message: str = "Invalid token"):
        super().__init__(message)


class TokenRevokedError(RefreshTokenError):
    """Refresh token is unknown or has been revoked"""
    def __init__(self):
        super().__init__("Refresh token has been revoked")


class TokenExpiredError(RefreshTokenError):
    """Refresh token row is past its expiry"""
    def __init__(self):
        super().__init__("Refresh token has expired")


# Authorization Errors
class AuthorizationError(BaseAPIException):
    """Insufficient permissions"""
    def __init__(self, message: str = "Insufficient permissions", details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=403, details=details)


# Resource Errors
class ResourceNotFoundError(BaseAPIException):
    """Resource not found"""
    def __init__(self, resource: str):
        super().__init__(f"{resource} not found", status_code=404)


class ResourceAlreadyExistsError(BaseAPIException):
    """Resource already exists"""
    def __init__(self, resource: str, message: Optional[str] = None):
        super().__init__(message or f"{resource} already exists", status_code=409)


class DuplicateEmailError(ResourceAlreadyExistsError):
    """Email already registered"""
    def __init__(self):
        super().__init__("User", "User with this email already exists")


# Validation Errors
class ValidationError(BaseAPIException):
    """Validation error"""
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, status_code=422, details=details)


# State Errors
class InvalidStateError(BaseAPIException):
    """Operation not allowed in the entity's current state"""
    def __init__(self, message: str):
        super().__init__(message, status_code=400)


class MfaAlreadyEnabledError(InvalidStateError):
    def __init__(self):
        super().__init__("MFA is already enabled")


class MfaNotEnabledError(InvalidStateError):
    def __init__(self):
        super().__init__("MFA is not enabled")


class MfaSetupNotInitiatedError(InvalidStateError):
    def __init__(self):
        super().__init__("MFA setup not initiated")


class InvalidOrExpiredTokenError(InvalidStateError):
    """Single-use email token does not match or has expired"""
    def __init__(self, purpose: str):
        super().__init__(f"Invalid or expired {purpose} token")


class ConcurrentModificationError(BaseAPIException):
    """Concurrent modification detected"""
    def __init__(self, message: str = "Resource was modified by another request"):
        super().__init__(message, status_code=409)


# System Errors
class DatabaseError(BaseAPIException):
    """Database operation failed"""
    def __init__(self, message: str = "Database operation failed"):
        super().__init__(message, status_code=500)


class EmailDeliveryError(BaseAPIException):
    """Outbound email could not be delivered"""
    def __init__(self, message: str = "Email delivery failed"):
        super().__init__(message, status_code=500)


class RateLimitExceededError(BaseAPIException):
    """Rate limit exceeded"""
    def __init__(self, message: str = "Rate limit exceeded. Please try again later.", retry_after: Optional[int] = None):
        details = {"retry_after": retry_after} if retry_after is not None else None
        super().__init__(message, status_code=429, details=details)


def error_content(message: str, path: str, details: Optional[Any] = None) -> Dict[str, Any]:
    """Error envelope shared by the exception handlers and routes that build responses directly"""
    return {
        "success": False,
        "error": message,
        "details": details,
        "path": path,
        "timestamp": utcnow().isoformat(),
    }

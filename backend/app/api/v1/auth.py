"""Authentication routes"""

from fastapi import APIRouter, Depends, Query, Request, Response, status
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session
from typing import Union

from app.core.database import get_db
from app.config import settings
from app.schemas.auth import (
    RegisterRequest,
    RegisterResponse,
    LoginRequest,
    LoginResponse,
    MfaChallengeResponse,
    AccessTokenResponse,
    ForgotPasswordRequest,
    ResetPasswordRequest,
    MfaCodeRequest,
    MfaDisableRequest,
    MfaSetupResponse,
    MessageResponse,
)
from app.services.auth_service import auth_service
from app.services.rate_limiter import rate_limiter
from app.api.deps import (
    get_current_user,
    client_ip,
    user_agent,
    set_refresh_cookie,
    clear_refresh_cookie,
)
from app.models.user import User
from app.core.exceptions import RefreshTokenError, error_content

router = APIRouter()


def _auth_rate_limit(request: Request, action: str) -> None:
    rate_limiter.enforce(
        f"{action}:{client_ip(request) or 'unknown'}",
        settings.RATE_LIMIT_MAX_REQUESTS,
        settings.RATE_LIMIT_WINDOW_MINUTES * 60,
        "Too many authentication attempts. Please try again later.",
    )


def _password_reset_rate_limit(request: Request, action: str) -> None:
    rate_limiter.enforce(
        f"{action}:{client_ip(request) or 'unknown'}",
        settings.PASSWORD_RESET_RATE_LIMIT_PER_HOUR,
        3600,
        "Too many password reset attempts. Please try again later.",
    )


def _mfa_rate_limit(user_id: int, action: str) -> None:
    rate_limiter.enforce(
        f"{action}:user:{user_id}",
        settings.MFA_RATE_LIMIT_MAX_ATTEMPTS,
        settings.RATE_LIMIT_WINDOW_MINUTES * 60,
        "Too many MFA attempts. Please try again later.",
    )


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
def register(
    body: RegisterRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Register a new account; a verification email is sent

    Args:
        body: Email, password and optional names
        db: Database session

    Returns:
        Sanitized user and instructions
    """
    _auth_rate_limit(request, "register")
    result = auth_service.register(
        db,
        email=body.email,
        password=body.password,
        first_name=body.first_name,
        last_name=body.last_name,
    )
    return RegisterResponse(user=result.user, message=result.message)


@router.post("/login", response_model=Union[LoginResponse, MfaChallengeResponse])
def login(
    body: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Login endpoint - authenticate and start a session

    The refresh token is only ever delivered as an HTTP-only cookie.
    When MFA is enabled and no code is supplied, an MFA challenge is
    returned instead and no session is created.
    """
    _auth_rate_limit(request, "login")
    result = auth_service.login(
        db,
        email=body.email,
        password=body.password,
        totp_code=body.totp_code,
        ip_address=client_ip(request),
        user_agent=user_agent(request),
    )

    if result.requires_mfa:
        return MfaChallengeResponse(temp_token=result.temp_token)

    set_refresh_cookie(response, result.refresh_token)
    return LoginResponse(
        user=result.user,
        access_token=result.access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/refresh", response_model=AccessTokenResponse)
def refresh_token(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Exchange the refresh cookie for a new access token

    A missing, invalid, revoked or expired refresh token clears the cookie.
    """
    try:
        access_token = auth_service.refresh(db, request.cookies.get(settings.COOKIE_NAME))
    except RefreshTokenError as exc:
        failure = JSONResponse(
            status_code=exc.status_code,
            content=error_content(exc.message, request.url.path, exc.details),
        )
        clear_refresh_cookie(failure)
        return failure

    return AccessTokenResponse(
        access_token=access_token,
        expires_in=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
    )


@router.post("/logout", response_model=MessageResponse)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """Revoke the current refresh token and clear the cookie"""
    auth_service.logout(db, request.cookies.get(settings.COOKIE_NAME))
    clear_refresh_cookie(response)
    return MessageResponse(message="Logged out successfully")


@router.get("/verify-email", response_model=MessageResponse)
def verify_email(
    token: str = Query(..., min_length=1),
    db: Session = Depends(get_db)
):
    return MessageResponse(message=auth_service.verify_email(db, token))


@router.post("/forgot-password", response_model=MessageResponse)
def forgot_password(
    body: ForgotPasswordRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    """Start a password reset; the reply is identical whether or not the email exists"""
    _password_reset_rate_limit(request, "forgot-password")
    return MessageResponse(message=auth_service.forgot_password(db, body.email))


@router.post("/reset-password", response_model=MessageResponse)
def reset_password(
    body: ResetPasswordRequest,
    request: Request,
    db: Session = Depends(get_db)
):
    _password_reset_rate_limit(request, "reset-password")
    return MessageResponse(message=auth_service.reset_password(db, body.token, body.password))


@router.post("/mfa/enable", response_model=MfaSetupResponse)
def enable_mfa(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    """
    Begin MFA enrollment

    Returns the QR code, the secret and the backup codes. Backup codes
    are shown only here. MFA stays inactive until /mfa/verify succeeds.
    """
    enrollment = auth_service.enable_mfa(db, current_user.id)
    return MfaSetupResponse(
        qr_code=enrollment.qr_code,
        secret=enrollment.secret,
        backup_codes=enrollment.backup_codes,
    )


@router.post("/mfa/verify", response_model=MessageResponse)
def verify_mfa(
    body: MfaCodeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    _mfa_rate_limit(current_user.id, "mfa-verify")
    return MessageResponse(message=auth_service.verify_mfa(db, current_user.id, body.code))


@router.post("/mfa/disable", response_model=MessageResponse)
def disable_mfa(
    body: MfaDisableRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db)
):
    _mfa_rate_limit(current_user.id, "mfa-disable")
    return MessageResponse(message=auth_service.disable_mfa(db, current_user.id, body.code))

"""API dependencies - authentication, authorization and shared components"""

from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from typing import Callable, Optional

from app.config import settings
from app.core.database import get_db
from app.core.security import TokenKind, verify_token
from app.core.exceptions import AuthenticationError, AuthorizationError
from app.models.user import User
from app.schemas.user import UserRole
from app.services.origin_cache import OriginCache, OriginService
from app.services.user_service import user_service

# HTTP Bearer token scheme; missing header handled below so it maps to 401
security = HTTPBearer(auto_error=False)


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db)
) -> User:
    """
    Get current authenticated user from the access token

    Args:
        credentials: HTTP Bearer credentials
        db: Database session

    Returns:
        Current user

    Raises:
        AuthenticationError: If token is missing or invalid, or user not found
    """
    if not credentials or not credentials.credentials:
        raise AuthenticationError("Access token required")

    try:
        payload = verify_token(TokenKind.ACCESS, credentials.credentials)
    except AuthenticationError:
        raise AuthenticationError("Invalid or expired token")

    user = user_service.get_user_by_id(db, payload.user_id)
    if not user:
        raise AuthenticationError("User not found")

    if not user.is_active:
        raise AuthenticationError("User account is disabled")

    return user


def require_roles(*roles: UserRole) -> Callable[..., User]:
    """Build a dependency that admits users holding any of the given roles"""
    allowed = tuple(role.value for role in roles)

    def dependency(current_user: User = Depends(get_current_user)) -> User:
        if not current_user.has_role(*allowed):
            raise AuthorizationError("Insufficient permissions", {"required_roles": list(allowed)})
        return current_user

    return dependency


def get_current_admin_user(
    current_user: User = Depends(get_current_user)
) -> User:
    """
    Get current admin user (authorization check)

    Raises:
        AuthorizationError: If user is not admin
    """
    if not current_user.has_role(UserRole.ADMIN.value):
        raise AuthorizationError("Admin access required")
    return current_user


def get_origin_cache(request: Request) -> OriginCache:
    """The application's origin cache, created at startup"""
    return request.app.state.origin_cache


def get_origin_service(cache: OriginCache = Depends(get_origin_cache)) -> OriginService:
    return OriginService(cache)


def client_ip(request: Request) -> Optional[str]:
    """
    Address of the caller

    X-Forwarded-For is only read when the connecting peer is listed in
    TRUSTED_PROXIES. The chain is walked right to left and the first hop
    that is not a trusted proxy wins.
    """
    peer = request.client.host if request.client else None
    trusted = set(settings.TRUSTED_PROXIES)
    if peer is None or peer not in trusted:
        return peer

    forwarded = request.headers.get("x-forwarded-for")
    if not forwarded:
        return peer
    for hop in reversed([part.strip() for part in forwarded.split(",") if part.strip()]):
        if hop not in trusted:
            return hop
    return peer


def user_agent(request: Request) -> Optional[str]:
    return request.headers.get("user-agent")


def set_refresh_cookie(response: Response, refresh_token: str) -> None:
    response.set_cookie(
        key=settings.COOKIE_NAME,
        value=refresh_token,
        max_age=settings.refresh_cookie_max_age,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAME_SITE,
        domain=settings.COOKIE_DOMAIN,
        path="/",
    )


def clear_refresh_cookie(response: Response) -> None:
    # Attributes must match the ones used when setting the cookie
    response.delete_cookie(
        key=settings.COOKIE_NAME,
        httponly=True,
        secure=settings.COOKIE_SECURE,
        samesite=settings.COOKIE_SAME_SITE,
        domain=settings.COOKIE_DOMAIN,
        path="/",
    )

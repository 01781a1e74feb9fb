"""Security utilities - JWT minting/verification, token digests, password hashing"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any, Dict, List, Optional
import hashlib
import secrets

import bcrypt
from jose import JWTError, jwt

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import TokenInvalidError


class TokenKind(str, Enum):
    """Token audience; each kind has its own signing secret"""
    ACCESS = "access"
    REFRESH = "refresh"


@dataclass
class TokenPayload:
    """Identity claims embedded in access and refresh tokens"""
    user_id: int
    email: str
    roles: List[str] = field(default_factory=list)

    def to_claims(self) -> Dict[str, Any]:
        return {"sub": str(self.user_id), "email": self.email, "roles": list(self.roles)}


def _signing_key(kind: TokenKind) -> str:
    if kind is TokenKind.ACCESS:
        return settings.JWT_ACCESS_SECRET
    return settings.JWT_REFRESH_SECRET


def _default_lifetime(kind: TokenKind) -> timedelta:
    if kind is TokenKind.ACCESS:
        return timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8'),
            hashed_password.encode('utf-8')
        )
    except ValueError:
        # Malformed stored hash
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    return bcrypt.hashpw(
        password.encode('utf-8'),
        bcrypt.gensalt(rounds=settings.BCRYPT_ROUNDS)
    ).decode('utf-8')


def create_token(
    kind: TokenKind,
    payload: TokenPayload,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a signed JWT for the given audience

    Args:
        kind: access or refresh
        payload: Identity claims
        expires_delta: Override for the default lifetime of this kind

    Returns:
        str: Encoded JWT token
    """
    now = utcnow()
    to_encode = payload.to_claims()
    to_encode.update({
        "iss": settings.APP_NAME,
        "aud": kind.value,
        "iat": now,
        "exp": now + (expires_delta or _default_lifetime(kind)),
        "jti": secrets.token_urlsafe(16),  # Unique token ID
    })
    return jwt.encode(to_encode, _signing_key(kind), algorithm=settings.JWT_ALGORITHM)


def create_access_token(payload: TokenPayload, expires_delta: Optional[timedelta] = None) -> str:
    return create_token(TokenKind.ACCESS, payload, expires_delta)


def create_refresh_token(payload: TokenPayload, expires_delta: Optional[timedelta] = None) -> str:
    return create_token(TokenKind.REFRESH, payload, expires_delta)


def verify_token(kind: TokenKind, token: str) -> TokenPayload:
    """
    Decode and verify a JWT of the given kind

    Args:
        kind: Expected audience
        token: JWT token string

    Returns:
        TokenPayload: Decoded identity claims

    Raises:
        TokenInvalidError: Signature, issuer, audience, expiry or shape is wrong
    """
    try:
        claims = jwt.decode(
            token,
            _signing_key(kind),
            algorithms=[settings.JWT_ALGORITHM],
            audience=kind.value,
            issuer=settings.APP_NAME,
        )
    except JWTError:
        raise TokenInvalidError(f"Invalid or expired {kind.value} token")

    try:
        return TokenPayload(
            user_id=int(claims["sub"]),
            email=claims["email"],
            roles=list(claims.get("roles") or []),
        )
    except (KeyError, TypeError, ValueError):
        raise TokenInvalidError(f"Malformed {kind.value} token")


def hash_token(token: str) -> str:
    """SHA-256 digest used to store and look up refresh tokens. Not for passwords."""
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def generate_secure_token() -> str:
    """
    Generate an opaque single-use token (email verification, password reset)

    Returns:
        str: 64 hex characters
    """
    return secrets.token_hex(32)

"""Refresh token persistence and revocation service."""

from __future__ import annotations

from datetime import timedelta
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow
from app.core.security import TokenPayload, create_refresh_token, hash_token
from app.models.security import RefreshToken
from app.models.user import User


class TokenService:
    """Manage the stored side of refresh tokens. Raw tokens are never persisted."""

    @staticmethod
    def payload_for(user: User) -> TokenPayload:
        return TokenPayload(user_id=user.id, email=user.email, roles=list(user.roles or []))

    @staticmethod
    def issue_refresh_token(
        db: Session,
        user: User,
        *,
        device_info: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> str:
        """Mint a refresh token and store its digest. Returns the raw token."""
        raw_token = create_refresh_token(TokenService.payload_for(user))
        record = RefreshToken(
            hashed_token=hash_token(raw_token),
            user_id=user.id,
            expires_at=utcnow() + timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS),
            is_revoked=False,
            device_info=device_info[:512] if device_info else None,
            ip_address=ip_address,
        )
        db.add(record)
        db.commit()
        return raw_token

    @staticmethod
    def get_record(db: Session, raw_token: str) -> Optional[RefreshToken]:
        return (
            db.query(RefreshToken)
            .filter(RefreshToken.hashed_token == hash_token(raw_token))
            .first()
        )

    @staticmethod
    def revoke_refresh_token(db: Session, raw_token: str) -> bool:
        """Revoke one token. Idempotent; returns True if a live row was revoked."""
        result = db.execute(
            update(RefreshToken)
            .where(
                RefreshToken.hashed_token == hash_token(raw_token),
                RefreshToken.is_revoked.is_(False),
            )
            .values(is_revoked=True, revoked_at=utcnow())
        )
        db.commit()
        return result.rowcount > 0

    @staticmethod
    def revoke_all_for_user(db: Session, user_id: int) -> int:
        result = db.execute(
            update(RefreshToken)
            .where(RefreshToken.user_id == user_id, RefreshToken.is_revoked.is_(False))
            .values(is_revoked=True, revoked_at=utcnow())
        )
        db.commit()
        return result.rowcount


token_service = TokenService()

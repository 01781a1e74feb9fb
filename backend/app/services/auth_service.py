"""Session/auth engine - registration, login, refresh, recovery and MFA lifecycle"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List, Optional

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import as_naive_utc, utcnow
from app.core.exceptions import (
    AccountDeactivatedError,
    AuthenticationError,
    ConcurrentModificationError,
    DatabaseError,
    DuplicateEmailError,
    EmailDeliveryError,
    EmailNotVerifiedError,
    InvalidCredentialsError,
    InvalidMfaCodeError,
    InvalidOrExpiredTokenError,
    MfaAlreadyEnabledError,
    MfaNotEnabledError,
    MfaSetupNotInitiatedError,
    MissingTokenError,
    ResourceNotFoundError,
    TokenExpiredError,
    TokenRevokedError,
)
from app.core.security import (
    TokenKind,
    create_access_token,
    generate_secure_token,
    get_password_hash,
    verify_password,
    verify_token,
)
from app.models.user import User
from app.schemas.user import UserResponse, UserRole
from app.services.audit_service import AuditAction, audit_service
from app.services.email_service import EmailService, email_service
from app.services.mfa_service import MfaService, mfa_service
from app.services.token_service import token_service

logger = logging.getLogger(__name__)

REGISTRATION_MESSAGE = "Registration successful. Please check your email to verify your account."
FORGOT_PASSWORD_MESSAGE = "If the email exists, a reset link has been sent"


@dataclass
class RegistrationResult:
    user: UserResponse
    message: str


@dataclass
class LoginResult:
    """Either a full session (tokens set) or an MFA step-up (requires_mfa set)."""
    user: UserResponse
    access_token: Optional[str] = None
    refresh_token: Optional[str] = None
    requires_mfa: bool = False
    temp_token: Optional[str] = None


@dataclass
class MfaEnrollment:
    secret: str
    qr_code: str
    backup_codes: List[str] = field(default_factory=list)


class AuthService:
    """
    Orchestrates the per-user session lifecycle.

    Account states: pending email verification -> active -> deactivated.
    MFA sub-state: disabled -> pending (secret stored, flag off) -> active.
    """

    def __init__(
        self,
        email_dispatcher: Optional[EmailService] = None,
        mfa: Optional[MfaService] = None,
    ) -> None:
        self.email = email_dispatcher or email_service
        self.mfa = mfa or mfa_service

    @staticmethod
    def _normalize_email(email: str) -> str:
        return email.strip().lower()

    @staticmethod
    def _get_user(db: Session, user_id: int) -> Optional[User]:
        return db.query(User).filter(User.id == user_id).first()

    def _dispatch(self, kind: str, send: Callable[..., None], *args) -> bool:
        """Best-effort email: delivery failure is logged and never fails the caller."""
        try:
            send(*args)
            return True
        except EmailDeliveryError as exc:
            logger.warning("Could not send %s email: %s", kind, exc.message)
            return False

    # ------------------------------------------------------------------
    # Registration and login
    # ------------------------------------------------------------------

    def register(
        self,
        db: Session,
        email: str,
        password: str,
        first_name: Optional[str] = None,
        last_name: Optional[str] = None,
    ) -> RegistrationResult:
        """
        Register a new user pending email verification

        Args:
            db: Database session
            email: Email address (case-insensitive)
            password: Plain text password
            first_name: Optional first name
            last_name: Optional last name

        Returns:
            Sanitized user and instructions
        """
        email = self._normalize_email(email)
        if db.query(User).filter(User.email == email).first():
            raise DuplicateEmailError()

        verification_token = generate_secure_token()
        user = User(
            email=email,
            password_hash=get_password_hash(password),
            first_name=first_name,
            last_name=last_name,
            roles=[UserRole.USER.value],
            email_verification_token=verification_token,
            email_verification_expiry=utcnow() + timedelta(hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        )
        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race against a concurrent registration
            db.rollback()
            raise DuplicateEmailError()
        db.refresh(user)
        sanitized = UserResponse.model_validate(user)

        self._dispatch("verification", self.email.send_verification_email, user.email, verification_token)

        audit_service.log_event(db, user_id=user.id, action=AuditAction.USER_REGISTERED, resource="USER")
        logger.info("Registered user id=%s", user.id)
        return RegistrationResult(user=sanitized, message=REGISTRATION_MESSAGE)

    def login(
        self,
        db: Session,
        email: str,
        password: str,
        totp_code: Optional[str] = None,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> LoginResult:
        """
        Authenticate credentials, stepping up to MFA when enabled

        Args:
            db: Database session
            email: Email address
            password: Plain text password
            totp_code: TOTP or backup code, required when MFA is active
            ip_address: Client IP for the session row and audit log
            user_agent: Client user agent for the session row and audit log

        Returns:
            LoginResult with tokens, or with requires_mfa and a temp token
        """
        email = self._normalize_email(email)
        user = db.query(User).filter(User.email == email).first()

        # Unknown emails are not audited; only password mismatches are.
        if not user:
            raise InvalidCredentialsError()

        if not user.is_active:
            raise AccountDeactivatedError()

        if not verify_password(password, user.password_hash):
            audit_service.log_event(
                db,
                user_id=user.id,
                action=AuditAction.LOGIN_FAILED,
                resource="AUTH",
                success=False,
                ip_address=ip_address,
                user_agent=user_agent,
            )
            logger.info("Failed login for user id=%s", user.id)
            raise InvalidCredentialsError()

        if not user.is_email_verified:
            raise EmailNotVerifiedError()

        if user.is_mfa_enabled:
            if not totp_code:
                return LoginResult(
                    user=UserResponse.model_validate(user),
                    requires_mfa=True,
                    temp_token=generate_secure_token(),
                )
            self._check_second_factor(db, user, totp_code, ip_address, user_agent)

        access_token = create_access_token(token_service.payload_for(user))
        refresh_token = token_service.issue_refresh_token(
            db, user, device_info=user_agent, ip_address=ip_address
        )

        user.last_login_at = utcnow()
        db.commit()
        db.refresh(user)
        sanitized = UserResponse.model_validate(user)

        audit_service.log_event(
            db,
            user_id=user.id,
            action=AuditAction.USER_LOGIN,
            resource="AUTH",
            ip_address=ip_address,
            user_agent=user_agent,
        )

        if settings.LOGIN_NOTIFICATIONS_ENABLED:
            self._dispatch(
                "login notification",
                self.email.send_login_notification,
                sanitized.email,
                ip_address or "unknown",
                user_agent or "unknown",
            )

        logger.info("User id=%s logged in", user.id)
        return LoginResult(user=sanitized, access_token=access_token, refresh_token=refresh_token)

    def _check_second_factor(
        self,
        db: Session,
        user: User,
        code: str,
        ip_address: Optional[str],
        user_agent: Optional[str],
    ) -> None:
        if self.mfa.verify(code, user.mfa_secret):
            return

        if self._consume_backup_code(db, user, code):
            audit_service.log_event(
                db,
                user_id=user.id,
                action=AuditAction.MFA_BACKUP_CODE_USED,
                resource="AUTH",
                ip_address=ip_address,
                user_agent=user_agent,
            )
            return

        raise InvalidMfaCodeError()

    def _consume_backup_code(self, db: Session, user: User, code: str) -> bool:
        """Remove a matching backup code. A concurrent consumer makes this lose."""
        digest = self.mfa.hash_backup_code(code)
        stored = list(user.mfa_backup_codes or [])
        if digest not in stored:
            return False

        observed_version = user.mfa_version
        result = db.execute(
            update(User)
            .where(User.id == user.id, User.mfa_version == observed_version)
            .values(
                mfa_backup_codes=[c for c in stored if c != digest],
                mfa_version=observed_version + 1,
            )
        )
        db.commit()
        return result.rowcount > 0

    # ------------------------------------------------------------------
    # Session tokens
    # ------------------------------------------------------------------

    def refresh(self, db: Session, raw_refresh_token: Optional[str]) -> str:
        """
        Exchange a refresh token for a new access token. The refresh token is not rotated.

        Raises:
            MissingTokenError, TokenInvalidError, TokenRevokedError, TokenExpiredError,
            AuthenticationError (user gone or deactivated)
        """
        if not raw_refresh_token:
            raise MissingTokenError()

        payload = verify_token(TokenKind.REFRESH, raw_refresh_token)

        record = token_service.get_record(db, raw_refresh_token)
        if not record or record.is_revoked:
            raise TokenRevokedError()

        if as_naive_utc(record.expires_at) < utcnow():
            raise TokenExpiredError()

        user = self._get_user(db, payload.user_id)
        if not user or not user.is_active:
            raise AuthenticationError("User not found or inactive")

        return create_access_token(token_service.payload_for(user))

    def logout(self, db: Session, raw_refresh_token: Optional[str]) -> bool:
        """Revoke the session's refresh token. Always succeeds."""
        if not raw_refresh_token:
            return False
        return token_service.revoke_refresh_token(db, raw_refresh_token)

    # ------------------------------------------------------------------
    # Email verification and password recovery
    # ------------------------------------------------------------------

    def verify_email(self, db: Session, token: str) -> str:
        user = None
        if token:
            user = (
                db.query(User)
                .filter(
                    User.email_verification_token == token,
                    User.email_verification_expiry >= utcnow(),
                )
                .first()
            )
        if not user:
            raise InvalidOrExpiredTokenError("verification")

        user.is_email_verified = True
        user.email_verification_token = None
        user.email_verification_expiry = None
        db.commit()

        audit_service.log_event(db, user_id=user.id, action=AuditAction.EMAIL_VERIFIED, resource="USER")
        return "Email verified successfully"

    def forgot_password(self, db: Session, email: str) -> str:
        """Start a password reset. The reply never reveals whether the email exists."""
        user = db.query(User).filter(User.email == self._normalize_email(email)).first()
        if not user:
            return FORGOT_PASSWORD_MESSAGE

        reset_token = generate_secure_token()
        user.password_reset_token = reset_token
        user.password_reset_expiry = utcnow() + timedelta(minutes=settings.PASSWORD_RESET_EXPIRE_MINUTES)
        db.commit()

        self._dispatch("password reset", self.email.send_password_reset_email, user.email, reset_token)
        return FORGOT_PASSWORD_MESSAGE

    def reset_password(self, db: Session, token: str, new_password: str) -> str:
        """
        Set a new password and revoke every refresh token of the user

        The credential change commits first, then the revocation. A failed
        revocation is reported, never hidden behind a success message.
        """
        user = None
        if token:
            user = (
                db.query(User)
                .filter(
                    User.password_reset_token == token,
                    User.password_reset_expiry >= utcnow(),
                )
                .first()
            )
        if not user:
            raise InvalidOrExpiredTokenError("reset")

        user_id = user.id
        user.password_hash = get_password_hash(new_password)
        user.password_reset_token = None
        user.password_reset_expiry = None
        db.commit()

        try:
            revoked = token_service.revoke_all_for_user(db, user_id)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Password reset for user id=%s could not revoke sessions: %s", user_id, exc)
            raise DatabaseError("Password was changed but existing sessions could not be revoked") from exc

        audit_service.log_event(
            db,
            user_id=user_id,
            action=AuditAction.PASSWORD_RESET,
            resource="USER",
            metadata={"revoked_sessions": revoked},
        )
        logger.info("Password reset for user id=%s; %s sessions revoked", user_id, revoked)
        return "Password reset successfully"

    # ------------------------------------------------------------------
    # MFA enrollment
    # ------------------------------------------------------------------

    def enable_mfa(self, db: Session, user_id: int) -> MfaEnrollment:
        """
        Start two-step MFA enrollment

        Stores the secret and hashed backup codes but leaves MFA inactive
        until verify_mfa succeeds. Raw backup codes are returned only here.
        """
        user = self._get_user(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")
        if user.is_mfa_enabled:
            raise MfaAlreadyEnabledError()

        secret = self.mfa.generate_secret()
        qr_code = self.mfa.generate_qr_code(user.email, secret)
        backup_codes = self.mfa.generate_backup_codes()

        result = db.execute(
            update(User)
            .where(User.id == user_id, User.is_mfa_enabled.is_(False))
            .values(
                mfa_secret=secret,
                mfa_backup_codes=[self.mfa.hash_backup_code(code) for code in backup_codes],
                mfa_version=User.mfa_version + 1,
            )
        )
        db.commit()
        if result.rowcount == 0:
            raise MfaAlreadyEnabledError()

        return MfaEnrollment(secret=secret, qr_code=qr_code, backup_codes=backup_codes)

    def verify_mfa(self, db: Session, user_id: int, code: str) -> str:
        user = self._get_user(db, user_id)
        if not user or not user.mfa_secret:
            raise MfaSetupNotInitiatedError()
        if user.is_mfa_enabled:
            raise MfaAlreadyEnabledError()

        secret = user.mfa_secret
        if not self.mfa.verify(code, secret):
            raise InvalidMfaCodeError()

        result = db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.mfa_secret == secret,
                User.is_mfa_enabled.is_(False),
            )
            .values(is_mfa_enabled=True, mfa_version=User.mfa_version + 1)
        )
        db.commit()
        if result.rowcount == 0:
            raise ConcurrentModificationError("MFA enrollment changed during verification. Please retry.")

        audit_service.log_event(db, user_id=user_id, action=AuditAction.MFA_ENABLED, resource="USER")
        return "MFA enabled successfully"

    def disable_mfa(self, db: Session, user_id: int, code: str) -> str:
        user = self._get_user(db, user_id)
        if not user or not user.is_mfa_enabled:
            raise MfaNotEnabledError()

        secret = user.mfa_secret
        if not self.mfa.verify(code, secret):
            raise InvalidMfaCodeError()

        result = db.execute(
            update(User)
            .where(
                User.id == user_id,
                User.mfa_secret == secret,
                User.is_mfa_enabled.is_(True),
            )
            .values(
                is_mfa_enabled=False,
                mfa_secret=None,
                mfa_backup_codes=[],
                mfa_version=User.mfa_version + 1,
            )
        )
        db.commit()
        if result.rowcount == 0:
            raise MfaNotEnabledError()

        audit_service.log_event(db, user_id=user_id, action=AuditAction.MFA_DISABLED, resource="USER")
        return "MFA disabled successfully"


# Singleton instance
auth_service = AuthService()

"""User service - profile management, deactivation and admin bootstrap"""

from sqlalchemy.orm import Session
from typing import List, Optional
from app.models.user import User
from app.schemas.user import ProfileUpdate, UserResponse, UserRole
from app.core.clock import utcnow
from app.core.security import get_password_hash
from app.core.exceptions import ResourceNotFoundError
from app.services.audit_service import AuditAction, audit_service
from app.services.token_service import token_service
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_email(db: Session, email: str) -> Optional[User]:
        """Get user by email (case-insensitive)"""
        return db.query(User).filter(User.email == email.strip().lower()).first()

    @staticmethod
    def get_profile(db: Session, user_id: int) -> UserResponse:
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")
        return UserResponse.model_validate(user)

    @staticmethod
    def update_profile(db: Session, user_id: int, data: ProfileUpdate) -> UserResponse:
        """
        Update name fields of a user profile

        Args:
            db: Database session
            user_id: User ID
            data: Fields to change; unset fields are left alone

        Returns:
            Updated user
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(user, field, value)

        db.commit()
        db.refresh(user)
        return UserResponse.model_validate(user)

    @staticmethod
    def deactivate_account(db: Session, user_id: int) -> int:
        """
        Deactivate a user and revoke all of their refresh tokens

        Returns:
            Number of sessions revoked
        """
        user = UserService.get_user_by_id(db, user_id)
        if not user:
            raise ResourceNotFoundError("User")

        user.is_active = False
        db.commit()

        revoked = token_service.revoke_all_for_user(db, user_id)
        audit_service.log_event(
            db,
            user_id=user_id,
            action=AuditAction.ACCOUNT_DEACTIVATED,
            resource="USER",
            metadata={"revoked_sessions": revoked},
        )

        logger.info(f"Deactivated user {user_id}; {revoked} sessions revoked")
        return revoked

    @staticmethod
    def list_users(db: Session, role: Optional[str] = None) -> List[UserResponse]:
        """
        Get all users, optionally filtered by role

        Args:
            db: Database session
            role: Optional role filter

        Returns:
            List of users, newest first
        """
        users = db.query(User).order_by(User.created_at.desc(), User.id.desc()).all()

        # Roles live in a JSON column, filter in Python for portability
        if role:
            users = [user for user in users if user.has_role(role)]

        return [UserResponse.model_validate(user) for user in users]

    @staticmethod
    def ensure_admin(db: Session, email: str, password: str) -> User:
        """
        Create the bootstrap admin account if it does not exist

        The admin is created email-verified so it can log in immediately.
        An existing account is returned untouched.
        """
        email = email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            return user

        user = User(
            email=email,
            password_hash=get_password_hash(password),
            first_name="System",
            last_name="Administrator",
            roles=[UserRole.USER.value, UserRole.ADMIN.value],
            is_email_verified=True,
            is_active=True,
            created_at=utcnow(),
        )
        db.add(user)
        db.commit()
        db.refresh(user)

        logger.info(f"Created bootstrap admin user id={user.id}")
        return user


# Singleton instance
user_service = UserService()

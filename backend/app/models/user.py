"""User model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, JSON, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from app.core.database import Base


class User(Base):
    """Identity record for authentication, MFA and account recovery"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    first_name = Column(String(50), nullable=True)
    last_name = Column(String(50), nullable=True)
    roles = Column(JSON, nullable=False, default=lambda: ["USER"])
    is_email_verified = Column(Boolean, default=False, nullable=False)
    is_active = Column(Boolean, default=True, nullable=False)

    # MFA: secret set + flag false means enrollment is pending verification
    is_mfa_enabled = Column(Boolean, default=False, nullable=False)
    mfa_secret = Column(String(64), nullable=True)
    mfa_backup_codes = Column(JSON, nullable=False, default=list)
    mfa_version = Column(Integer, default=0, nullable=False)  # For optimistic locking

    email_verification_token = Column(String(128), nullable=True, index=True)
    email_verification_expiry = Column(DateTime(timezone=True), nullable=True)
    password_reset_token = Column(String(128), nullable=True, index=True)
    password_reset_expiry = Column(DateTime(timezone=True), nullable=True)

    last_login_at = Column(DateTime(timezone=True))
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    # Relationships
    refresh_tokens = relationship("RefreshToken", back_populates="user", cascade="all, delete-orphan")
    audit_logs = relationship("AuditLog", back_populates="user")

    __table_args__ = (
        Index('idx_users_active', 'is_active'),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email='{self.email}', roles={self.roles})>"

    def has_role(self, *roles: str) -> bool:
        return any(role in (self.roles or []) for role in roles)

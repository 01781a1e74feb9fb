"""Allowed CORS origin model"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.sql import func

from app.core.database import Base


class AllowedOrigin(Base):
    """Admin-managed origin allowed to receive cross-origin responses"""

    __tablename__ = "allowed_origins"

    id = Column(Integer, primary_key=True, index=True)
    url = Column(String(255), unique=True, nullable=False, index=True)
    description = Column(String(255), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    def __repr__(self):
        return f"<AllowedOrigin(id={self.id}, url='{self.url}', is_active={self.is_active})>"

"""Audit service for security-relevant events."""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.models.audit import AuditLog


class AuditAction:
    USER_REGISTERED = "USER_REGISTERED"
    LOGIN_FAILED = "LOGIN_FAILED"
    USER_LOGIN = "USER_LOGIN"
    EMAIL_VERIFIED = "EMAIL_VERIFIED"
    PASSWORD_RESET = "PASSWORD_RESET"
    MFA_ENABLED = "MFA_ENABLED"
    MFA_DISABLED = "MFA_DISABLED"
    MFA_BACKUP_CODE_USED = "MFA_BACKUP_CODE_USED"
    ACCOUNT_DEACTIVATED = "ACCOUNT_DEACTIVATED"
    ORIGIN_CREATED = "ORIGIN_CREATED"
    ORIGIN_UPDATED = "ORIGIN_UPDATED"
    ORIGIN_DELETED = "ORIGIN_DELETED"
    ORIGIN_TOGGLED = "ORIGIN_TOGGLED"
    ORIGIN_DEACTIVATED = "ORIGIN_DEACTIVATED"
    CORS_CACHE_REFRESHED = "CORS_CACHE_REFRESHED"


class AuditService:
    """Persist immutable audit trail entries."""

    @staticmethod
    def log_event(
        db: Session,
        *,
        user_id: Optional[int],
        action: str,
        resource: Optional[str] = None,
        success: bool = True,
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> AuditLog:
        entry = AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            success=success,
            ip_address=ip_address,
            user_agent=user_agent[:512] if user_agent else None,
            metadata_json=json.dumps(metadata or {}, ensure_ascii=False),
        )
        db.add(entry)
        db.commit()
        return entry


audit_service = AuditService()

"""CORS origin cache and the admin service that keeps it consistent with the store."""

from __future__ import annotations

import logging
import threading
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.clock import utcnow
from app.core.exceptions import ResourceAlreadyExistsError, ResourceNotFoundError
from app.models.origin import AllowedOrigin

logger = logging.getLogger(__name__)

DUPLICATE_ORIGIN_MESSAGE = "This URL already exists in the allowed origins"


class OriginCache:
    """
    In-memory set of allowed CORS origins.

    Readers see an immutable snapshot and never block. Refreshes are
    serialized and replace the snapshot by reference, so a concurrent
    reader observes either the old or the new set, never a partial one.
    """

    def __init__(
        self,
        include_dev_origins: Optional[bool] = None,
        dev_origins: Optional[Iterable[str]] = None,
    ) -> None:
        self.include_dev_origins = (
            not settings.is_production if include_dev_origins is None else include_dev_origins
        )
        self.dev_origins: FrozenSet[str] = frozenset(
            settings.DEV_CORS_ORIGINS if dev_origins is None else dev_origins
        )
        self._origins: FrozenSet[str] = frozenset()
        self._last_refresh: Optional[datetime] = None
        self._refresh_lock = threading.Lock()

    def is_allowed(self, origin: Optional[str]) -> bool:
        # Requests without an Origin header (mobile apps, curl, server-to-server)
        if not origin:
            return True
        return origin in self._origins

    def refresh(self, db: Session) -> None:
        """Reload active origins from the database. Store failures propagate."""
        with self._refresh_lock:
            try:
                rows = db.query(AllowedOrigin.url).filter(AllowedOrigin.is_active.is_(True)).all()
            except SQLAlchemyError as exc:
                logger.error("Failed to load allowed origins: %s", exc)
                raise

            origins = {row.url for row in rows}
            if self.include_dev_origins:
                origins |= self.dev_origins

            self._origins = frozenset(origins)
            self._last_refresh = utcnow()

        logger.info("CORS cache refreshed with %d origins", len(self._origins))

    def get_origins(self) -> List[str]:
        return sorted(self._origins)

    def get_stats(self) -> Dict[str, Any]:
        return {
            "total_origins": len(self._origins),
            "last_refresh": self._last_refresh,
            "origins": self.get_origins(),
        }


class OriginService:
    """Admin CRUD over allowed origins. Every write refreshes the cache before returning."""

    def __init__(self, cache: OriginCache) -> None:
        self.cache = cache

    @staticmethod
    def list_origins(db: Session) -> List[AllowedOrigin]:
        return db.query(AllowedOrigin).order_by(AllowedOrigin.created_at.desc(), AllowedOrigin.id.desc()).all()

    @staticmethod
    def get_origin(db: Session, origin_id: int) -> AllowedOrigin:
        origin = db.query(AllowedOrigin).filter(AllowedOrigin.id == origin_id).first()
        if not origin:
            raise ResourceNotFoundError("Origin")
        return origin

    def _commit(self, db: Session, origin: AllowedOrigin) -> AllowedOrigin:
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ResourceAlreadyExistsError("Origin", DUPLICATE_ORIGIN_MESSAGE)
        db.refresh(origin)
        self.cache.refresh(db)
        return origin

    def add_origin(self, db: Session, url: str, description: Optional[str] = None) -> AllowedOrigin:
        if db.query(AllowedOrigin).filter(AllowedOrigin.url == url).first():
            raise ResourceAlreadyExistsError("Origin", DUPLICATE_ORIGIN_MESSAGE)

        origin = AllowedOrigin(url=url, description=description, is_active=True)
        db.add(origin)
        origin = self._commit(db, origin)
        logger.info("Added allowed origin %s", url)
        return origin

    def update_origin(
        self,
        db: Session,
        origin_id: int,
        url: Optional[str] = None,
        description: Optional[str] = None,
        is_active: Optional[bool] = None,
    ) -> AllowedOrigin:
        origin = self.get_origin(db, origin_id)

        if url is not None and url != origin.url:
            clash = (
                db.query(AllowedOrigin)
                .filter(AllowedOrigin.url == url, AllowedOrigin.id != origin_id)
                .first()
            )
            if clash:
                raise ResourceAlreadyExistsError("Origin", DUPLICATE_ORIGIN_MESSAGE)
            origin.url = url
        if description is not None:
            origin.description = description
        if is_active is not None:
            origin.is_active = is_active

        return self._commit(db, origin)

    def delete_origin(self, db: Session, origin_id: int) -> None:
        origin = self.get_origin(db, origin_id)
        url = origin.url
        db.delete(origin)
        db.commit()
        self.cache.refresh(db)
        logger.info("Deleted allowed origin %s", url)

    def remove_origin(self, db: Session, url: str) -> bool:
        """Deactivate an origin by URL. Returns False when the URL is unknown."""
        origin = db.query(AllowedOrigin).filter(AllowedOrigin.url == url).first()
        if not origin:
            return False
        origin.is_active = False
        self._commit(db, origin)
        return True

    def toggle_origin(self, db: Session, origin_id: int) -> AllowedOrigin:
        origin = self.get_origin(db, origin_id)
        origin.is_active = not origin.is_active
        return self._commit(db, origin)

"""Generic API response schemas"""

from pydantic import BaseModel, Field
from typing import Any, Dict

from app.core.clock import utcnow


def _timestamp() -> str:
    return utcnow().isoformat()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    timestamp: str = Field(default_factory=_timestamp)
    readiness: Dict[str, Any] = {}

"""Allowed origin schemas"""

from datetime import datetime
from typing import List, Optional
from urllib.parse import urlsplit

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _normalize_origin(value: str) -> str:
    """Origins compare byte-for-byte with the browser's Origin header."""
    value = value.strip().rstrip("/")
    parts = urlsplit(value)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ValueError("Invalid URL format. Must be a valid URL (e.g., https://example.com)")
    if parts.path or parts.query or parts.fragment:
        raise ValueError("Origin must not contain a path, query or fragment")
    # Browsers send scheme and host in lowercase
    return f"{parts.scheme.lower()}://{parts.netloc.lower()}"


class OriginCreate(BaseModel):
    url: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = Field(default=None, max_length=255)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _normalize_origin(v)


class OriginUpdate(BaseModel):
    url: Optional[str] = Field(default=None, max_length=255)
    description: Optional[str] = Field(default=None, max_length=255)
    is_active: Optional[bool] = None

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _normalize_origin(v) if v is not None else None

    @model_validator(mode='after')
    def require_one_field(self):
        if self.url is None and self.description is None and self.is_active is None:
            raise ValueError("At least one field (url, description, or is_active) must be provided")
        return self


class OriginRemove(BaseModel):
    url: str = Field(..., min_length=1, max_length=255)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v):
        return _normalize_origin(v)


class OriginResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    url: str
    description: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class CorsStatsResponse(BaseModel):
    total_origins: int
    last_refresh: Optional[datetime] = None
    origins: List[str]


class OriginMutationResponse(BaseModel):
    message: str
    data: OriginResponse
    stats: CorsStatsResponse


class CorsMessageResponse(BaseModel):
    message: str
    stats: CorsStatsResponse

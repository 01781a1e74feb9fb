"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List, Optional
from urllib.parse import quote_plus

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent

_INSECURE_SECRET_MARKERS = {
    "",
    "dev-access-secret-change-in-production-use-openssl-rand-hex-32",
    "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32",
    "change-me",
}


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    # Application
    APP_NAME: str = "Identity Provider"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 4

    # Database (PostgreSQL)
    DATABASE_URL: str = ""
    POSTGRES_HOST: str = "localhost"
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "identity_db"
    POSTGRES_USER: str = "identity"
    POSTGRES_PASSWORD: str = "identity"
    DATABASE_POOL_SIZE: int = 20
    DATABASE_MAX_OVERFLOW: int = 10

    # Tokens
    JWT_ACCESS_SECRET: str = "dev-access-secret-change-in-production-use-openssl-rand-hex-32"
    JWT_REFRESH_SECRET: str = "dev-refresh-secret-change-in-production-use-openssl-rand-hex-32"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_MINUTES: int = 60

    # Password hashing
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)

    # Email transport
    EMAIL_HOST: str = ""
    EMAIL_PORT: int = 587
    EMAIL_SECURE: bool = False
    EMAIL_USER: str = ""
    EMAIL_PASSWORD: str = ""
    EMAIL_FROM: str = ""
    EMAIL_TIMEOUT_SECONDS: int = 30
    LOGIN_NOTIFICATIONS_ENABLED: bool = False

    # URLs
    FRONTEND_URL: str = "http://localhost:3000"
    BACKEND_URL: str = "http://localhost:8000"

    # Rate Limiting
    RATE_LIMIT_WINDOW_MINUTES: int = 15
    RATE_LIMIT_MAX_REQUESTS: int = 5
    PASSWORD_RESET_RATE_LIMIT_PER_HOUR: int = 3
    MFA_RATE_LIMIT_MAX_ATTEMPTS: int = 10

    # Refresh token cookie
    COOKIE_NAME: str = "refreshToken"
    COOKIE_DOMAIN: Optional[str] = None
    COOKIE_SECURE: bool = False
    COOKIE_SAME_SITE: str = "strict"

    # MFA
    MFA_ISSUER_NAME: str = "Identity Provider"
    MFA_BACKUP_CODE_COUNT: int = 10

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # Reverse proxies whose X-Forwarded-For header is honored (exact peer IPs)
    TRUSTED_PROXIES: Annotated[List[str], NoDecode] = []

    # CORS origins always allowed outside production
    DEV_CORS_ORIGINS: Annotated[List[str], NoDecode] = [
        "http://localhost:3000",
        "http://localhost:3001",
        "http://localhost:5173",
        "http://localhost:4200",
        "http://127.0.0.1:3000",
    ]

    # Admin
    ADMIN_EMAIL: str = "admin@example.com"
    ADMIN_PASSWORD: str = "Admin@12345"

    # Database initialization discipline
    DB_INIT_MODE: str = "migrate"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    @field_validator("DEV_CORS_ORIGINS", "TRUSTED_PROXIES", mode="before")
    @classmethod
    def _parse_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            DEV_CORS_ORIGINS=["http://localhost:3000","http://localhost:5173"]
            DEV_CORS_ORIGINS=http://localhost:3000,http://localhost:5173
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(origin).strip() for origin in parsed if str(origin).strip()]

        return [origin.strip() for origin in raw.split(",") if origin.strip()]

    @field_validator("COOKIE_SAME_SITE")
    @classmethod
    def _validate_same_site(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"strict", "lax", "none"}:
            raise ValueError("COOKIE_SAME_SITE must be one of: strict, lax, none")
        return value

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"

    @property
    def is_development(self) -> bool:
        return self.ENVIRONMENT.lower() == "development"

    @property
    def refresh_cookie_max_age(self) -> int:
        """Refresh cookie lifetime in seconds."""
        return self.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """
        Resolve database URL.

        Priority:
          1) Explicit DATABASE_URL
          2) Construct from POSTGRES_* parts with safe URL encoding
        """
        if self.DATABASE_URL:
            return self.DATABASE_URL

        user = quote_plus(self.POSTGRES_USER)
        password = quote_plus(self.POSTGRES_PASSWORD)
        return (
            f"postgresql://{user}:{password}"
            f"@{self.POSTGRES_HOST}:{self.POSTGRES_PORT}/{self.POSTGRES_DB}"
        )

    def validate_security_settings(self) -> None:
        """
        Validate runtime security defaults in production.

        Raises:
            ValueError: If insecure defaults are detected.
        """
        if not self.is_production:
            return

        insecure_admin_passwords = {
            "",
            "Admin@12345",
            "change_this_password_immediately",
        }

        for name in ("JWT_ACCESS_SECRET", "JWT_REFRESH_SECRET"):
            value = getattr(self, name)
            if value in _INSECURE_SECRET_MARKERS or len(value) < 32:
                raise ValueError(
                    f"Insecure {name} for production. Use a strong key (e.g. `openssl rand -hex 32`)."
                )

        if self.JWT_ACCESS_SECRET == self.JWT_REFRESH_SECRET:
            raise ValueError("JWT_ACCESS_SECRET and JWT_REFRESH_SECRET must differ.")

        if self.ADMIN_PASSWORD in insecure_admin_passwords or len(self.ADMIN_PASSWORD) < 10:
            raise ValueError(
                "Insecure ADMIN_PASSWORD for production. Set a strong admin password before startup."
            )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()

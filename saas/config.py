import logging
from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from dotenv import load_dotenv
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

load_dotenv()

logger = logging.getLogger(__name__)

_DEFAULT_ACCESS_SECRET = "change-me-access-secret"
_DEFAULT_REFRESH_SECRET = "change-me-refresh-secret"


class Settings(BaseSettings):
    # Application settings
    app_name: str = "SaaS Tenancy"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = "development"

    # Logging
    log_level: str = "INFO"
    log_json_format: bool = True

    # Tenant resolution
    app_domain: str = "localhost"
    default_tenant: str = "public"

    # Database settings
    database_host: str = "localhost"
    database_port: int = 5432
    database_user: str = "postgres"
    database_password: str = "postgres"
    database_name: str = "saas"
    database_url: Optional[str] = None
    database_pool_size: int = 10
    database_max_overflow: int = 20
    database_pool_timeout: int = 30

    # Token settings
    access_secret_key: str = _DEFAULT_ACCESS_SECRET
    access_issuer: str = "saas-access"
    access_expire_seconds: int = 15 * 60
    refresh_secret_key: str = _DEFAULT_REFRESH_SECRET
    refresh_issuer: str = "saas-refresh"
    refresh_expire_seconds: int = 7 * 24 * 60 * 60
    token_leeway_seconds: int = 0

    # CORS settings
    allowed_origins: list[str] = ["http://localhost:3000", "http://localhost:8000"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_token_classes_are_disjoint(self) -> "Settings":
        if self.access_secret_key == self.refresh_secret_key:
            raise ValueError("access_secret_key and refresh_secret_key must differ")
        if self.access_issuer == self.refresh_issuer:
            raise ValueError("access_issuer and refresh_issuer must differ")
        if self.access_expire_seconds <= 0 or self.refresh_expire_seconds <= 0:
            raise ValueError("token lifetimes must be positive")
        return self

    @property
    def sqlalchemy_url(self) -> str:
        """Async SQLAlchemy URL, built from the discrete database settings unless overridden."""
        if self.database_url:
            return self.database_url
        return (
            f"postgresql+asyncpg://{quote_plus(self.database_user)}:{quote_plus(self.database_password)}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    def warn_on_insecure_defaults(self) -> None:
        if self.access_secret_key == _DEFAULT_ACCESS_SECRET or self.refresh_secret_key == _DEFAULT_REFRESH_SECRET:
            logger.warning("Using default token secrets. This is insecure and should be changed in production!")


@lru_cache
def get_settings() -> Settings:
    settings = Settings()
    settings.warn_on_insecure_defaults()
    return settings

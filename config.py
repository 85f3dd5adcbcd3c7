"""
Configuration for the SplitMate backend.

Values come from environment variables (or a local .env file) and are
validated once at startup through pydantic-settings.
"""

from functools import lru_cache

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEV_CORS_ORIGINS = ["http://localhost:3000", "http://localhost:5173"]


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    app_env: str = Field(
        default="development",
        description="Application environment (development or production)",
    )

    database_url: str = Field(
        default="sqlite:///./splitmate.db",
        description="SQLAlchemy database URL; selects SQLite, MySQL or Postgres",
    )

    # JWT
    jwt_secret: str = Field(default="your-jwt-secret")
    jwt_algorithm: str = Field(default="HS256")
    jwt_expires_minutes: int = Field(default=24 * 60, ge=1)

    # Frontend / CORS
    frontend_url: str = Field(default="http://localhost:5173")
    cors_origins: str = Field(
        default="",
        description="Comma-separated list of allowed origins",
    )

    # Household ratio used until a couple stores its own
    default_husband_ratio: float = Field(default=0.7, ge=0.0, le=1.0)
    default_wife_ratio: float = Field(default=0.3, ge=0.0, le=1.0)

    log_level: str = Field(default="INFO")
    log_json: bool = Field(default=False)

    @field_validator("app_env")
    @classmethod
    def validate_app_env(cls, v: str) -> str:
        v = v.strip().lower()
        if v not in ("development", "production", "test"):
            raise ValueError("app_env must be development, production or test")
        return v

    @property
    def is_development(self) -> bool:
        return self.app_env != "production"

    @property
    def cors_origins_list(self) -> list[str]:
        """Allowed origins; falls back to localhost in development."""
        origins = [o.strip() for o in self.cors_origins.split(",") if o.strip()]
        if origins:
            return origins
        if self.is_development:
            return list(DEV_CORS_ORIGINS)
        return [self.frontend_url]


@lru_cache()
def get_settings() -> Settings:
    """
    Get application settings (cached).

    Call get_settings.cache_clear() to reload after changing the environment.
    """
    return Settings()

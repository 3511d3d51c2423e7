"""Application configuration using pydantic-settings."""
from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_JWT_SECRET = "change-me-access-secret"
DEFAULT_JWT_REFRESH_SECRET = "change-me-refresh-secret"


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    # Database
    database_url: str
    db_pool_size: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")

    # Session tokens - access and refresh tokens are signed with different secrets
    jwt_secret: str = Field(default=DEFAULT_JWT_SECRET, validation_alias="JWT_SECRET")
    jwt_refresh_secret: str = Field(
        default=DEFAULT_JWT_REFRESH_SECRET, validation_alias="JWT_REFRESH_SECRET",
    )
    jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    refresh_token_expire_days: int = Field(
        default=7, validation_alias="REFRESH_TOKEN_EXPIRE_DAYS",
    )

    # Cookies - secure should be on wherever the API is served over HTTPS
    cookie_secure: bool = Field(default=False, validation_alias="COOKIE_SECURE")
    cookie_samesite: Literal["lax", "strict", "none"] = Field(
        default="lax", validation_alias="COOKIE_SAMESITE",
    )

    # URLs - links in verification and reset e-mails point at the frontend
    frontend_url: str = Field(
        default="http://localhost:3000",
        validation_alias="FRONTEND_URL",
    )

    # CORS - comma-separated list of allowed origins (stored as string, parsed via property)
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        validation_alias="CORS_ORIGINS",
    )

    # Metadata fetching
    metadata_fetch_timeout: float = Field(
        default=5.0, validation_alias="METADATA_FETCH_TIMEOUT",
    )

    # Account lifecycle
    require_email_verification: bool = Field(
        default=True, validation_alias="REQUIRE_EMAIL_VERIFICATION",
    )
    email_verification_expire_hours: int = Field(
        default=24, validation_alias="EMAIL_VERIFICATION_EXPIRE_HOURS",
    )
    password_reset_expire_hours: int = Field(
        default=1, validation_alias="PASSWORD_RESET_EXPIRE_HOURS",
    )

    # E-mail delivery - messages are only logged when smtp_host is empty
    smtp_host: str = Field(default="", validation_alias="SMTP_HOST")
    smtp_port: int = Field(default=587, validation_alias="SMTP_PORT")
    smtp_username: str = Field(default="", validation_alias="SMTP_USERNAME")
    smtp_password: str = Field(default="", validation_alias="SMTP_PASSWORD")
    smtp_use_tls: bool = Field(default=True, validation_alias="SMTP_USE_TLS")
    email_from: str = Field(
        default="Bookmark Manager <no-reply@localhost>",
        validation_alias="EMAIL_FROM",
    )

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

    @model_validator(mode="after")
    def validate_production_secrets(self) -> "Settings":
        """
        Refuse to run with the placeholder JWT secrets when cookies are marked secure.

        COOKIE_SECURE signals an HTTPS deployment; signing tokens with a publicly
        known secret there would let anyone mint sessions.
        """
        if not self.cookie_secure:
            return self

        if self.jwt_secret == DEFAULT_JWT_SECRET or self.jwt_refresh_secret == DEFAULT_JWT_REFRESH_SECRET:  # noqa: E501
            raise ValueError(
                "JWT_SECRET and JWT_REFRESH_SECRET must be set when COOKIE_SECURE is enabled.",
            )
        if self.jwt_secret == self.jwt_refresh_secret:
            raise ValueError("JWT_SECRET and JWT_REFRESH_SECRET must differ.")
        return self

    @property
    def cors_origins(self) -> list[str]:
        """Parse comma-separated CORS origins string into a list."""
        if not self.cors_origins_str:
            return []
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def smtp_enabled(self) -> bool:
        """Whether outbound e-mail should go through SMTP instead of the log."""
        return bool(self.smtp_host)


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Application settings and configuration.

This module defines all configuration options for the SentenceStash service.
Settings are loaded from environment variables with sensible defaults.
"""

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or a ``.env`` file.
    """

    # Application metadata
    app_name: str = Field(default="SentenceStash", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: Literal["development", "production"] = Field(
        default="development",
        alias="ENVIRONMENT",
    )
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Security and authentication
    secret_key: str = Field(alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(
        default=60 * 24 * 7,
        alias="ACCESS_TOKEN_EXPIRE_MINUTES",
    )
    session_cookie_name: str = Field(default="sessionId", alias="SESSION_COOKIE_NAME")
    session_max_age_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        alias="SESSION_MAX_AGE_SECONDS",
    )
    session_cookie_secure: bool = Field(default=False, alias="SESSION_COOKIE_SECURE")
    bcrypt_rounds: int = Field(default=12, alias="BCRYPT_ROUNDS")
    password_reset_token_ttl_minutes: int = Field(
        default=60,
        alias="PASSWORD_RESET_TOKEN_TTL_MINUTES",
    )

    # Admin tooling
    admin_password: str | None = Field(default=None, alias="ADMIN_PASSWORD")
    admin_token_expire_minutes: int = Field(default=60, alias="ADMIN_TOKEN_EXPIRE_MINUTES")

    # Storage configuration
    storage_backend: Literal["database", "memory"] = Field(
        default="database",
        alias="STORAGE_BACKEND",
    )
    database_url: str = Field(default="sqlite:///./sentence_stash.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Google OAuth
    google_client_id: str | None = Field(default=None, alias="GOOGLE_CLIENT_ID")
    google_client_secret: str | None = Field(default=None, alias="GOOGLE_CLIENT_SECRET")
    google_redirect_uri: str = Field(
        default="http://localhost:8000/api/auth/google/callback",
        alias="GOOGLE_REDIRECT_URI",
    )
    # Preview deployments cannot complete the OAuth redirect.
    google_oauth_blocked_hosts: list[str] = Field(
        default=["-git-", ".vercel.app"],
        alias="GOOGLE_OAUTH_BLOCKED_HOSTS",
    )

    # Book catalog (Aladin TTB API)
    aladin_ttb_key: str | None = Field(default=None, alias="ALADIN_TTB_KEY")
    aladin_search_url: str = Field(
        default="http://www.aladin.co.kr/ttb/api/ItemSearch.aspx",
        alias="ALADIN_SEARCH_URL",
    )
    book_api_timeout_seconds: float = Field(default=5.0, alias="BOOK_API_TIMEOUT_SECONDS")

    # Transactional e-mail
    sendgrid_api_key: str | None = Field(default=None, alias="SENDGRID_API_KEY")
    mail_from: str = Field(default="noreply@sentencestash.app", alias="MAIL_FROM")
    frontend_url: str = Field(default="http://localhost:5173", alias="FRONTEND_URL")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(
        default=["http://localhost:5173"],
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(
        default=["*"],
        alias="CORS_ALLOW_HEADERS",
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def database_url_sync(self) -> str:
        """Return a sync-compatible database URL for tooling.

        Converts asyncpg URLs to psycopg for synchronous database operations
        like Alembic migrations.
        """
        url = self.effective_database_url
        if url.startswith("postgresql+asyncpg"):
            return url.replace("postgresql+asyncpg", "postgresql+psycopg", 1)
        if url.startswith("postgres://"):
            return url.replace("postgres://", "postgresql+psycopg://", 1)
        return url

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def is_production(self) -> bool:
        """True when running with production error reporting and cookies."""
        return self.environment == "production"

    @property
    def google_oauth_configured(self) -> bool:
        """True when both Google OAuth client credentials are present."""
        return bool(self.google_client_id and self.google_client_secret)


settings = Settings()  # type: ignore[call-arg]

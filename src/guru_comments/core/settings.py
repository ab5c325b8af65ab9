"""Application settings and configuration.

This module defines all configuration options for the Guru comment service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from guru_comments.services.rate_limiter import RateLimitPolicy, RateLimitRule


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Guru Comments", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    debug: bool = Field(default=False, alias="DEBUG")

    # Token validation for the external identity provider
    secret_key: str = Field(default="dev-secret-change-me", alias="SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: str | None = Field(default=None, alias="JWT_AUDIENCE")
    jwt_issuer: str | None = Field(default=None, alias="JWT_ISSUER")

    # Database configuration
    database_url: str = Field(default="sqlite:///./guru.db", alias="DATABASE_URL")
    test_database_url: str | None = Field(default=None, alias="TEST_DATABASE_URL")
    use_testing_database: bool = Field(default=False, alias="USE_TEST_DATABASE")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")

    # Key-value store used for rate-limit counters and sessions
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    kv_backend: str = Field(default="redis", alias="KV_BACKEND")

    # Identity: AUTH_ENABLED=false resolves every request to the dev user
    auth_enabled: bool = Field(default=False, alias="AUTH_ENABLED")
    dev_user_id: str = Field(default="mahesh-local-id", alias="DEV_USER_ID")
    dev_username: str = Field(default="mahesh", alias="DEV_USERNAME")
    dev_user_email: str | None = Field(default="mahesh@local", alias="DEV_USER_EMAIL")
    dev_user_is_admin: bool = Field(default=True, alias="DEV_USER_IS_ADMIN")

    # Sessions
    session_ttl_seconds: int = Field(default=7 * 24 * 60 * 60, alias="SESSION_TTL_SECONDS")
    session_cookie_name: str = Field(default="session_id", alias="SESSION_COOKIE_NAME")
    session_cookie_secure: bool = Field(default=True, alias="SESSION_COOKIE_SECURE")

    # Content limits
    max_title_length: int = Field(default=200, alias="MAX_TITLE_LENGTH")
    max_comment_length: int = Field(default=10_000, alias="MAX_COMMENT_LENGTH")
    max_attachment_size: int = Field(default=5 * 1024 * 1024, alias="MAX_ATTACHMENT_SIZE")
    allowed_attachment_types: list[str] = Field(
        default=["image/png", "image/jpeg", "image/gif", "image/webp"],
        alias="ALLOWED_ATTACHMENT_TYPES",
    )

    # Per-minute request quotas
    rate_limit_enabled: bool = Field(default=True, alias="RATE_LIMIT_ENABLED")
    rate_limit_auth_read: int = Field(default=100, alias="RATE_LIMIT_AUTH_READ")
    rate_limit_auth_write: int = Field(default=10, alias="RATE_LIMIT_AUTH_WRITE")
    rate_limit_anon_read: int = Field(default=30, alias="RATE_LIMIT_ANON_READ")
    rate_limit_anon_write: int = Field(default=0, alias="RATE_LIMIT_ANON_WRITE")

    # CORS configuration for web frontend access
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def effective_database_url(self) -> str:
        """Return the database URL respecting testing overrides."""
        if self.use_testing_database and self.test_database_url:
            return self.test_database_url
        return self.database_url

    @property
    def rate_limit_policy(self) -> RateLimitPolicy:
        """Build the immutable limiter policy from the configured quotas."""
        return RateLimitPolicy(
            authenticated_read=RateLimitRule(self.rate_limit_auth_read),
            authenticated_write=RateLimitRule(self.rate_limit_auth_write),
            anonymous_read=RateLimitRule(self.rate_limit_anon_read),
            anonymous_write=RateLimitRule(self.rate_limit_anon_write),
        )


settings = Settings()

"""Application settings and configuration.

This module defines all configuration options for the Pujo Gallery service.
Settings are loaded from environment variables with sensible defaults.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

MEBIBYTE = 1024 * 1024


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Settings can be overridden via environment variables or .env files.
    """

    # Application metadata
    app_name: str = Field(default="Pujo Gallery", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    app_url: str = Field(default="http://localhost:8000", alias="APP_URL")
    api_prefix: str = Field(default="/api", alias="API_PREFIX")
    debug: bool = Field(default=False, alias="DEBUG")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Capability tokens carried in moderation links
    jwt_secret: str = Field(alias="JWT_SECRET")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    token_ttl_days: int = Field(default=7, alias="TOKEN_TTL_DAYS")

    # Upload limits
    max_upload_bytes: int = Field(default=6 * MEBIBYTE, alias="MAX_UPLOAD_BYTES")

    # Redis holds submission records, the pending queue and approved sets
    redis_url: str = Field(default="redis://localhost:6379", alias="REDIS_URL")
    redis_socket_timeout_seconds: float = Field(
        default=5.0,
        alias="REDIS_SOCKET_TIMEOUT_SECONDS",
    )
    redis_max_retries: int = Field(default=2, alias="REDIS_MAX_RETRIES")
    transition_lock_ttl_ms: int = Field(default=15_000, alias="TRANSITION_LOCK_TTL_MS")
    transition_lock_wait_seconds: float = Field(
        default=3.0,
        alias="TRANSITION_LOCK_WAIT_SECONDS",
    )

    # S3 blob storage for the watermarked and original images
    aws_region: str = Field(default="ap-south-1", alias="AWS_REGION")
    s3_bucket_name: str = Field(default="pujo-gallery", alias="S3_BUCKET_NAME")
    s3_endpoint_url: str | None = Field(default=None, alias="S3_ENDPOINT_URL")
    s3_public_base_url: str | None = Field(default=None, alias="S3_PUBLIC_BASE_URL")
    s3_cache_control: str = Field(default="max-age=604800", alias="S3_CACHE_CONTROL")
    s3_connect_timeout_seconds: float = Field(default=5.0, alias="S3_CONNECT_TIMEOUT_SECONDS")
    s3_read_timeout_seconds: float = Field(default=20.0, alias="S3_READ_TIMEOUT_SECONDS")
    s3_max_attempts: int = Field(default=3, alias="S3_MAX_ATTEMPTS")

    # Discord webhook used as the moderation channel
    discord_webhook_url: str | None = Field(default=None, alias="DISCORD_WEBHOOK_URL")
    discord_username: str = Field(default="big picture", alias="DISCORD_USERNAME")
    discord_avatar_url: str | None = Field(default=None, alias="DISCORD_AVATAR_URL")
    notification_timeout_seconds: float = Field(
        default=10.0,
        alias="NOTIFICATION_TIMEOUT_SECONDS",
    )
    notification_max_retries: int = Field(default=2, alias="NOTIFICATION_MAX_RETRIES")
    notification_retry_delay_seconds: float = Field(
        default=0.5,
        alias="NOTIFICATION_RETRY_DELAY_SECONDS",
    )

    # Dead-letter log for notification deliveries that exhausted their retries
    database_url: str = Field(default="sqlite:///./pujo_gallery.db", alias="DATABASE_URL")
    auto_create_tables: bool = Field(default=True, alias="AUTO_CREATE_TABLES")
    sql_debug: bool = Field(default=False, alias="SQL_DEBUG")
    dead_letter_max_replays: int = Field(default=5, alias="DEAD_LETTER_MAX_REPLAYS")

    # CORS configuration for the upload UI
    cors_origins: list[str] = Field(default=["*"], alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")
    cors_allow_methods: list[str] = Field(
        default=["GET", "POST", "OPTIONS"],
        alias="CORS_ALLOW_METHODS",
    )
    cors_allow_headers: list[str] = Field(default=["*"], alias="CORS_ALLOW_HEADERS")

    model_config = SettingsConfigDict(
        env_file=".env",
        validate_assignment=True,
        extra="ignore",
    )

    @property
    def token_ttl_seconds(self) -> int:
        """Return the capability token lifetime in seconds."""
        return self.token_ttl_days * 24 * 60 * 60

    @property
    def public_base_url(self) -> str:
        """Return the base URL under which public blobs are served.

        Returns:
            The configured override, or the virtual-hosted S3 URL for the bucket
        """
        if self.s3_public_base_url:
            return self.s3_public_base_url.rstrip("/")
        return f"https://{self.s3_bucket_name}.s3.{self.aws_region}.amazonaws.com"

    @property
    def moderation_base_url(self) -> str:
        """Return the absolute URL prefix used for approve/reject links."""
        return f"{self.app_url.rstrip('/')}{self.api_prefix}"


settings = Settings()  # type: ignore[call-arg]

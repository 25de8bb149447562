from functools import lru_cache
from pathlib import Path
from typing import Annotated, List

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="Parley API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")
    log_level: str = Field(default="INFO", env="LOG_LEVEL", description="Root logging level")
    expose_error_details: bool | None = Field(
        default=None,
        env="EXPOSE_ERROR_DETAILS",
        description="Include exception text in 500 responses. Defaults to the debug flag.",
    )

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://localhost:8081",
            "http://127.0.0.1",
            "http://127.0.0.1:8081",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1|\[::1\])(:\d+)?$",
        env="CORS_ALLOW_ORIGIN_REGEX",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_dsn: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "DATABASE_DSN"),
        description="Full SQLAlchemy URL; overrides the individual DB_* settings when present",
    )
    database_user: str = Field(default="parley", validation_alias=AliasChoices("DB_USER", "DATABASE_USER"))
    database_password: str = Field(
        default="parley", validation_alias=AliasChoices("DB_PASSWORD", "DATABASE_PASSWORD")
    )
    database_host: str = Field(default="db", validation_alias=AliasChoices("DB_HOST", "DATABASE_HOST"))
    database_port: int = Field(default=3306, validation_alias=AliasChoices("DB_PORT", "DATABASE_PORT"))
    database_name: str = Field(default="parley", validation_alias=AliasChoices("DB_NAME", "DATABASE_NAME"))

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60 * 24 * 7, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    chat_history_default_limit: int = Field(default=50, env="CHAT_HISTORY_DEFAULT_LIMIT")
    chat_history_max_limit: int = Field(default=100, env="CHAT_HISTORY_MAX_LIMIT")
    chat_message_max_length: int = Field(default=4000, env="CHAT_MESSAGE_MAX_LENGTH")
    chat_reply_preview_length: int = Field(
        default=100,
        env="CHAT_REPLY_PREVIEW_LENGTH",
        description="Number of characters of the replied-to message included in reply previews",
    )

    websocket_keepalive_timeout_seconds: float = Field(
        default=30,
        env="WEBSOCKET_KEEPALIVE_TIMEOUT_SECONDS",
        description="Idle time after which the server starts sending keepalive pings",
    )
    websocket_keepalive_ping_interval_seconds: float = Field(
        default=25,
        env="WEBSOCKET_KEEPALIVE_PING_INTERVAL_SECONDS",
        description="Minimum interval between two keepalive pings",
    )
    realtime_membership_cache_ttl_seconds: float = Field(
        default=5,
        env="REALTIME_MEMBERSHIP_CACHE_TTL_SECONDS",
        description="Lifetime of cached join_chat membership decisions",
    )

    push_notifications_enabled: bool = Field(
        default=False,
        env="PUSH_NOTIFICATIONS_ENABLED",
        description="Toggle push notifications for members absent from a chat room.",
    )
    expo_push_url: AnyHttpUrl = Field(
        default="https://exp.host/--/api/v2/push/send",
        env="EXPO_PUSH_URL",
        description="Expo push API endpoint.",
    )
    expo_access_token: str | None = Field(
        default=None,
        env="EXPO_ACCESS_TOKEN",
        description="Optional Expo access token sent as a bearer credential.",
    )
    push_request_timeout_seconds: float = Field(default=10.0, env="PUSH_REQUEST_TIMEOUT_SECONDS")
    push_chunk_size: int = Field(
        default=100,
        env="PUSH_CHUNK_SIZE",
        description="Maximum number of messages per Expo request.",
    )
    push_preview_length: int = Field(
        default=100,
        env="PUSH_PREVIEW_LENGTH",
        description="Maximum number of characters of message text used as notification body.",
    )
    rate_limit_enabled: bool | None = Field(
        default=None,
        env="RATE_LIMIT_ENABLED",
        description="Throttle logins, sign-ups, messages and friend requests. Off when ENVIRONMENT is test.",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        if self.database_dsn:
            return self.database_dsn
        return (
            f"mysql+pymysql://{self.database_user}:{self.database_password}"
            f"@{self.database_host}:{self.database_port}/{self.database_name}"
        )

    @property
    def show_error_details(self) -> bool:
        if self.expose_error_details is None:
            return self.debug
        return self.expose_error_details

    @property
    def rate_limiting_active(self) -> bool:
        if self.rate_limit_enabled is None:
            return self.environment.lower() != "test"
        return self.rate_limit_enabled

    @field_validator("cors_origins", mode="before")
    @classmethod
    def assemble_cors_origins(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return []
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",") if origin.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, value: str) -> str:
        return str(value or "INFO").upper()


@lru_cache
def get_settings() -> Settings:
    return Settings()

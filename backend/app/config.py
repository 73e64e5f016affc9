from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, List

from pydantic import AliasChoices, AnyHttpUrl, Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

DEFAULT_REACTIONS = ["👍", "❤️", "😂", "😮", "😢", "😡", "🔥", "👏", "🎉", "✅"]


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    app_name: str = Field(default="StudyHub API", env="APP_NAME", description="Human readable service name")
    environment: str = Field(default="development", env="ENVIRONMENT", description="Deployment environment name")
    debug: bool = Field(default=False, env="DEBUG", description="Enable debug mode")
    log_level: str = Field(default="INFO", env="LOG_LEVEL", description="Root logger level")

    cors_origins: Annotated[List[AnyHttpUrl], NoDecode] = Field(
        default_factory=lambda: [
            "http://localhost",
            "http://localhost:3000",
            "http://127.0.0.1",
            "http://127.0.0.1:3000",
        ],
        env="CORS_ORIGINS",
        description="List of allowed CORS origins",
    )
    cors_allow_origin_regex: str | None = Field(
        default=r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$",
        env="CORS_ALLOW_ORIGIN_REGEX",
        description="Optional regular expression that matches allowed CORS origins",
    )

    database_dsn: str | None = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "DATABASE_DSN"),
        description="Full SQLAlchemy URL; overrides the individual DB_* settings when set",
    )
    database_user: str = Field(default="studyhub", validation_alias=AliasChoices("DB_USER", "DATABASE_USER"))
    database_password: str = Field(
        default="studyhub", validation_alias=AliasChoices("DB_PASSWORD", "DATABASE_PASSWORD")
    )
    database_host: str = Field(default="db", validation_alias=AliasChoices("DB_HOST", "DATABASE_HOST"))
    database_port: int = Field(default=3306, validation_alias=AliasChoices("DB_PORT", "DATABASE_PORT"))
    database_name: str = Field(default="studyhub", validation_alias=AliasChoices("DB_NAME", "DATABASE_NAME"))
    database_pool_timeout_seconds: int = Field(
        default=10,
        validation_alias=AliasChoices("DB_POOL_TIMEOUT_SECONDS", "DATABASE_POOL_TIMEOUT_SECONDS"),
        description="Seconds a request waits for a pooled connection",
    )
    database_connect_timeout_seconds: int = Field(
        default=5,
        validation_alias=AliasChoices("DB_CONNECT_TIMEOUT_SECONDS", "DATABASE_CONNECT_TIMEOUT_SECONDS"),
    )
    database_query_timeout_seconds: int = Field(
        default=15,
        validation_alias=AliasChoices("DB_QUERY_TIMEOUT_SECONDS", "DATABASE_QUERY_TIMEOUT_SECONDS"),
        description="Driver read and write timeout for MySQL connections",
    )

    jwt_secret_key: str = Field(default="changeme", env="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", env="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=60, env="ACCESS_TOKEN_EXPIRE_MINUTES")

    group_list_default_limit: int = Field(default=10, env="GROUP_LIST_DEFAULT_LIMIT")
    membership_retry_attempts: int = Field(
        default=5,
        env="MEMBERSHIP_RETRY_ATTEMPTS",
        description="Attempts made when a membership write loses an optimistic concurrency race",
    )

    chat_history_default_limit: int = Field(default=50, env="CHAT_HISTORY_DEFAULT_LIMIT")
    chat_history_max_limit: int = Field(default=100, env="CHAT_HISTORY_MAX_LIMIT")
    chat_search_default_limit: int = Field(default=20, env="CHAT_SEARCH_DEFAULT_LIMIT")
    chat_message_max_length: int = Field(default=2000, env="CHAT_MESSAGE_MAX_LENGTH")
    chat_edit_window_minutes: int = Field(
        default=15,
        env="CHAT_EDIT_WINDOW_MINUTES",
        description="How long after sending a message its author may still edit it",
    )
    chat_max_pinned_messages: int = Field(default=5, env="CHAT_MAX_PINNED_MESSAGES")
    chat_allowed_reactions: Annotated[List[str], NoDecode] = Field(
        default_factory=lambda: list(DEFAULT_REACTIONS),
        env="CHAT_ALLOWED_REACTIONS",
        description="Emoji accepted by the reaction toggle",
    )

    model_config = SettingsConfigDict(
        env_file=str(Path(__file__).resolve().parents[2] / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
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
    def database_connect_args(self) -> dict[str, Any]:
        if not self.database_url.startswith("mysql"):
            return {}
        return {
            "connect_timeout": self.database_connect_timeout_seconds,
            "read_timeout": self.database_query_timeout_seconds,
            "write_timeout": self.database_query_timeout_seconds,
        }

    @field_validator("cors_origins", "chat_allowed_reactions", mode="before")
    @classmethod
    def split_comma_separated(cls, v):  # type: ignore[override]
        if v in (None, "", Ellipsis):
            return v
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        if isinstance(v, (list, tuple, set)):
            return list(v)
        return v


@lru_cache
def get_settings() -> Settings:
    return Settings()

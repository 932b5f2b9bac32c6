"""Application configuration."""

from functools import lru_cache
from typing import Literal

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        env_parse_none_str="null",
    )

    # Application
    app_name: str = Field(default="Tablemeet API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Document store; "memory" keeps everything in-process
    document_store_backend: Literal["firestore", "memory"] = Field(
        default="firestore", alias="DOCUMENT_STORE_BACKEND"
    )

    # Redis (caches and the refresh token blacklist)
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")
    refresh_token_expire_days: int = Field(default=30, alias="REFRESH_TOKEN_EXPIRE_DAYS")

    # Firebase service account, as a file path or the raw JSON
    firebase_credentials_path: str | None = Field(default=None, alias="FIREBASE_CREDENTIALS_PATH")
    firebase_config_json: str | None = Field(default=None, alias="FIREBASE_CONFIG_JSON")
    # Needed for email/password sign-in through the Identity Toolkit
    firebase_web_api_key: str = Field(default="", alias="FIREBASE_WEB_API_KEY")

    # Table lifecycle
    table_status_cache_ttl: int = Field(default=10, ge=0, alias="TABLE_STATUS_CACHE_TTL")
    min_table_seats: int = Field(default=2, ge=2, alias="MIN_TABLE_SEATS")
    max_table_seats: int = Field(default=12, alias="MAX_TABLE_SEATS")
    max_prompt_length: int = Field(default=200, ge=1, alias="MAX_PROMPT_LENGTH")

    # Room redirects (seconds)
    room_deleted_redirect_seconds: int = Field(default=2, alias="ROOM_DELETED_REDIRECT_SECONDS")
    room_notified_redirect_seconds: int = Field(default=3, alias="ROOM_NOTIFIED_REDIRECT_SECONDS")
    room_inactive_redirect_seconds: int = Field(default=5, alias="ROOM_INACTIVE_REDIRECT_SECONDS")

    # CORS, comma separated
    cors_origins_str: str = Field(default="http://localhost:5173", alias="CORS_ORIGINS")
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: Literal["json", "console"] = Field(default="json", alias="LOG_FORMAT")

    @model_validator(mode="after")
    def check_seat_bounds(self) -> "Settings":
        if self.max_table_seats < self.min_table_seats:
            raise ValueError("MAX_TABLE_SEATS must not be below MIN_TABLE_SEATS")
        return self

    @property
    def cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()

"""Application configuration."""

from functools import lru_cache

from pydantic import Field
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
    app_name: str = Field(default="CareFlow Scheduling API", alias="APP_NAME")
    app_version: str = Field(default="0.1.0", alias="APP_VERSION")
    environment: str = Field(default="development", alias="ENVIRONMENT")
    debug: bool = Field(default=False, alias="DEBUG")
    api_v1_prefix: str = Field(default="/api/v1", alias="API_V1_PREFIX")

    # Server
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    reload: bool = Field(default=False, alias="RELOAD")

    # Database
    database_url: str = Field(..., alias="DATABASE_URL")
    db_pool_size: int = Field(default=10, gt=0, alias="DB_POOL_SIZE")
    db_max_overflow: int = Field(default=20, ge=0, alias="DB_MAX_OVERFLOW")

    # Redis
    redis_host: str = Field(..., alias="REDIS_HOST")
    redis_port: int = Field(..., alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT (tokens are issued by the auth service, only verified here)
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # Scheduling
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")
    working_hours_start: int = Field(default=9, ge=0, le=23, alias="WORKING_HOURS_START")
    working_hours_end: int = Field(default=17, ge=1, le=24, alias="WORKING_HOURS_END")
    default_slot_minutes: int = Field(default=30, gt=0, alias="DEFAULT_SLOT_MINUTES")
    default_appointment_duration: int = Field(
        default=30,
        gt=0,
        alias="DEFAULT_APPOINTMENT_DURATION",
    )

    # Booking lock
    lock_backend: str = Field(
        default="redis",
        alias="LOCK_BACKEND",
        description="'redis' for the distributed lock, 'local' for a single process",
    )
    booking_lock_ttl_ms: int = Field(default=5000, gt=0, alias="BOOKING_LOCK_TTL_MS")
    # Retries after the first attempt
    booking_lock_retry_count: int = Field(default=3, ge=0, alias="BOOKING_LOCK_RETRY_COUNT")
    booking_lock_retry_delay_ms: int = Field(
        default=200,
        ge=0,
        alias="BOOKING_LOCK_RETRY_DELAY_MS",
    )

    # Notifications
    reminder_lead_hours: int = Field(default=24, ge=0, alias="REMINDER_LEAD_HOURS")
    celery_broker_url: str | None = Field(default=None, alias="CELERY_BROKER_URL")
    # Broker publish retries per notification before the error is raised
    notification_publish_retries: int = Field(default=3, ge=0, alias="NOTIFICATION_PUBLISH_RETRIES")

    @property
    def broker_url(self) -> str:
        """Get the Celery broker URL, defaulting to the Redis instance above."""
        if self.celery_broker_url:
            return self.celery_broker_url
        auth = f"{self.redis_username}:{self.redis_password}@" if self.redis_password else ""
        return f"redis://{auth}{self.redis_host}:{self.redis_port}/0"

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:5173",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")

    @property
    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.environment.lower() == "production"

    @property
    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.environment.lower() == "development"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()

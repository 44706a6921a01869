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
    app_name: str = Field(default="VetClinic API", alias="APP_NAME")
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

    # Redis
    redis_host: str = Field(default="localhost", alias="REDIS_HOST")
    redis_port: int = Field(default=6379, alias="REDIS_PORT")
    redis_username: str = Field(default="default", alias="REDIS_USERNAME")
    redis_password: str = Field(default="", alias="REDIS_PASSWORD")
    redis_decode_responses: bool = Field(default=True, alias="REDIS_DECODE_RESPONSES")

    # JWT
    jwt_secret_key: str = Field(..., alias="JWT_SECRET_KEY")
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    access_token_expire_minutes: int = Field(default=30, alias="ACCESS_TOKEN_EXPIRE_MINUTES")

    # CORS
    cors_origins_str: str = Field(
        default="http://localhost:3000",
        alias="CORS_ORIGINS",
    )
    cors_allow_credentials: bool = Field(default=True, alias="CORS_ALLOW_CREDENTIALS")

    @property
    def cors_origins(self) -> list[str]:
        """Get CORS origins as a list."""
        if isinstance(self.cors_origins_str, str):
            return [origin.strip() for origin in self.cors_origins_str.split(",") if origin.strip()]
        return [self.cors_origins_str]

    # Scheduling policy
    appointment_conflict_window_minutes: int = Field(
        default=30,
        gt=0,
        alias="APPOINTMENT_CONFLICT_WINDOW_MINUTES",
        description="Symmetric buffer around an appointment time used for overlap checks",
    )
    appointment_min_lead_minutes: int = Field(
        default=0,
        ge=0,
        alias="APPOINTMENT_MIN_LEAD_MINUTES",
        description="Minimum notice for scheduling, rescheduling and cancelling (0 disables)",
    )
    appointment_max_per_client_per_day: int = Field(
        default=0,
        ge=0,
        alias="APPOINTMENT_MAX_PER_CLIENT_PER_DAY",
        description="Scheduled appointments a client may hold on one day (0 disables)",
    )
    appointment_slot_minutes: int = Field(default=30, gt=0, alias="APPOINTMENT_SLOT_MINUTES")
    clinic_hours_enforced: bool = Field(default=False, alias="CLINIC_HOURS_ENFORCED")
    clinic_timezone: str = Field(default="UTC", alias="CLINIC_TIMEZONE")

    # Events
    event_queue_maxsize: int = Field(default=1000, gt=0, alias="EVENT_QUEUE_MAXSIZE")

    # Caching
    directory_cache_ttl_seconds: int = Field(default=300, ge=0, alias="DIRECTORY_CACHE_TTL_SECONDS")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()  # type: ignore[call-arg]


# Global settings instance
settings = get_settings()

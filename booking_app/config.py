from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List


class Settings(BaseSettings):
    # Environment
    environment: str = Field(default="development", alias="ENVIRONMENT")

    # Database - PostgreSQL for production, SQLite for development
    database_url: str = Field(
        default="sqlite:///./booking.db",
        alias="DATABASE_URL"
    )

    # JWT verification (tokens are issued by the identity provider)
    jwt_secret_key: str = Field(
        default="dev-secret-key-at-least-32-characters-long-for-development",
        alias="JWT_SECRET_KEY"
    )
    jwt_algorithm: str = Field(default="HS256", alias="JWT_ALGORITHM")
    jwt_audience: str = Field(default="", alias="JWT_AUDIENCE")

    # CORS - Frontend URLs (comma-separated)
    allowed_origins: str = Field(
        default="http://localhost:3000,http://localhost:4200,http://localhost:5173",
        alias="ALLOWED_ORIGINS"
    )

    # ==============================================
    # Accommodation service (auto-confirm policy, host listings)
    # ==============================================
    accommodation_service_url: str = Field(
        default="http://localhost:8081",
        alias="ACCOMMODATION_SERVICE_URL"
    )
    accommodation_timeout_seconds: float = Field(default=5.0, alias="ACCOMMODATION_TIMEOUT_SECONDS")

    # ==============================================
    # Change events (Kafka REST proxy)
    # ==============================================
    event_gateway_url: str = Field(default="http://localhost:8082", alias="EVENT_GATEWAY_URL")
    event_gateway_timeout_seconds: float = Field(default=10.0, alias="EVENT_GATEWAY_TIMEOUT_SECONDS")
    events_enabled: bool = Field(default=True, alias="EVENTS_ENABLED")

    # Worker settings (runs inside FastAPI process)
    worker_poll_interval: int = Field(default=10, alias="WORKER_POLL_INTERVAL")  # seconds
    worker_batch_size: int = Field(default=50, alias="WORKER_BATCH_SIZE")
    # A PROCESSING row untouched this long belongs to a crashed worker and is sent again
    outbox_processing_timeout: int = Field(default=300, alias="OUTBOX_PROCESSING_TIMEOUT")  # seconds

    # Calendar / concurrency
    conflict_max_retries: int = Field(default=3, alias="CONFLICT_MAX_RETRIES")
    calendar_default_months: int = Field(default=3, alias="CALENDAR_DEFAULT_MONTHS")

    # Daily completion/expiry sweep
    scheduler_timezone: str = Field(default="UTC", alias="SCHEDULER_TIMEZONE")
    sweep_hour: int = Field(default=0, alias="SWEEP_HOUR")
    sweep_minute: int = Field(default=5, alias="SWEEP_MINUTE")

    # Logging
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_json: bool = Field(default=False, alias="LOG_JSON")

    # Rate limit for guest request creation
    request_rate_limit: str = Field(default="20/minute", alias="REQUEST_RATE_LIMIT")

    @field_validator('jwt_secret_key')
    @classmethod
    def validate_secret_key(cls, v: str) -> str:
        """Validate JWT secret is strong enough"""
        if not v:
            raise ValueError("JWT_SECRET_KEY is required and cannot be empty")
        if len(v) < 32:
            raise ValueError("JWT_SECRET_KEY must be at least 32 characters long")
        return v

    @field_validator('conflict_max_retries')
    @classmethod
    def validate_retries(cls, v: int) -> int:
        if v < 1:
            raise ValueError("CONFLICT_MAX_RETRIES must be at least 1")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def cors_origins(self) -> List[str]:
        """
        Parse allowed origins from comma-separated string.
        Returns a list suitable for CORSMiddleware.
        """
        origins = []
        for origin in self.allowed_origins.split(","):
            origin = origin.strip().rstrip("/")
            if origin and origin not in origins:
                origins.append(origin)

        return origins if origins else ["http://localhost:5173"]

    class Config:
        env_file = ".env"
        extra = "ignore"
        populate_by_name = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Initialize settings on module load
settings = get_settings()

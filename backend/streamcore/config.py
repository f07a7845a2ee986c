"""Application configuration."""
from functools import lru_cache

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings."""

    # App
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 8000
    app_debug: bool = True
    log_level: str = "DEBUG"

    # Database - 필수 필드 (환경변수에서 반드시 읽어야 함)
    database_url: str = Field(
        ...,
        description="Database connection URL (required)",
    )
    db_pool_size: int = Field(
        default=20,
        description="DB connection pool size",
    )
    db_max_overflow: int = Field(
        default=10,
        description="Max overflow connections",
    )

    # Redis
    redis_url: str = Field(
        default="redis://localhost:6379/0",
        description="Redis connection URL (locks, Celery broker)",
    )
    redis_socket_timeout: float = Field(
        default=5.0,
        description="Redis socket timeout in seconds",
    )

    # Aggregate locking
    distributed_locks_enabled: bool = Field(
        default=False,
        description="Serialize admin operations across instances with Redis locks",
    )
    lock_timeout_ms: int = Field(
        default=10000,
        description="Lock auto-expire time in milliseconds",
    )
    lock_acquire_timeout_ms: int = Field(
        default=3000,
        description="Max time to wait for an aggregate lock in milliseconds",
    )

    # JWT - issued by the auth service, verified here
    jwt_secret_key: str = Field(
        ...,
        description="JWT secret key (required, minimum 32 characters)",
    )
    jwt_algorithm: str = "HS256"
    jwt_access_token_expire_minutes: int = 60

    # Admin API
    admin_api_key: str = Field(
        ...,
        description="API key for admin endpoints (X-API-Key header, required)",
    )

    # CORS
    cors_origins: str = "http://localhost:3000"

    # Giveaway auto-draw job
    giveaway_job_interval_seconds: int = Field(
        default=15,
        description="Seconds between auto-draw sweeps (minimum 5)",
    )
    giveaway_job_batch_size: int = Field(
        default=25,
        description="Max giveaways processed per sweep",
    )

    @field_validator("jwt_secret_key")
    @classmethod
    def validate_jwt_secret_key(cls, v: str) -> str:
        """Validate JWT secret key length."""
        if len(v) < 32:
            raise ValueError(
                "jwt_secret_key must be at least 32 characters long"
            )

        weak_patterns = [
            "change-this",
            "secret",
            "password",
            "12345",
            "qwerty",
            "admin",
        ]
        lower_v = v.lower()
        for pattern in weak_patterns:
            if pattern in lower_v:
                raise ValueError(
                    f"jwt_secret_key contains weak pattern '{pattern}'. "
                    "Use a strong, random secret key."
                )

        return v

    @field_validator("admin_api_key")
    @classmethod
    def validate_admin_api_key(cls, v: str) -> str:
        """Validate admin API key strength."""
        if len(v) < 16:
            raise ValueError(
                "admin_api_key must be at least 16 characters long"
            )

        weak_patterns = [
            "dev-key",
            "dev-api",
            "test-key",
            "local",
            "12345",
            "admin",
        ]
        lower_v = v.lower()
        for pattern in weak_patterns:
            if pattern in lower_v:
                raise ValueError(
                    f"admin_api_key contains weak pattern '{pattern}'. "
                    "Use a strong, random API key."
                )

        return v

    @field_validator("giveaway_job_interval_seconds")
    @classmethod
    def validate_job_interval(cls, v: int) -> int:
        """Clamp the sweep interval to its floor."""
        return max(v, 5)

    @model_validator(mode="after")
    def validate_production_settings(self) -> "Settings":
        """Validate settings for production environment."""
        if self.app_env == "production":
            if self.app_debug:
                raise ValueError(
                    "app_debug must be False in production environment"
                )

            origins = [o.strip() for o in self.cors_origins.split(",")]
            if "*" in origins:
                raise ValueError(
                    "CORS wildcard '*' is not allowed in production environment. "
                    "Specify explicit allowed origins."
                )

        return self

    model_config = {
        "env_file": ".env",
        "extra": "ignore",
    }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List, Literal

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# HS256 wants at least a 256-bit key
JWT_SECRET_MIN_LENGTH = 32


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # Token signing. No default: the secret must come from the environment.
    jwt_secret: SecretStr
    jwt_algorithm: str = "HS256"
    access_token_expire_minutes: int = Field(default=15, ge=1)
    refresh_token_expire_days: int = Field(default=30, ge=1)

    # bcrypt cost factors
    password_hash_rounds: int = Field(default=12, ge=4, le=31)
    token_hash_rounds: int = Field(default=10, ge=4, le=31)

    # Identity store
    store_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    key_prefix: str = ""

    # Logging
    log_level: str = "INFO"

    # HTTP
    cors_origins: str = "*"

    @field_validator("jwt_secret")
    @classmethod
    def jwt_secret_strong_enough(cls, v: SecretStr) -> SecretStr:
        """Reject empty or short signing secrets."""
        if len(v.get_secret_value().strip()) < JWT_SECRET_MIN_LENGTH:
            raise ValueError(
                f"JWT_SECRET must be at least {JWT_SECRET_MIN_LENGTH} characters"
            )
        return v

    @field_validator("redis_url")
    @classmethod
    def validate_redis_url(cls, v: str) -> str:
        s = v.strip()
        if not s.startswith(("redis://", "rediss://", "unix://")):
            raise ValueError("REDIS_URL must use redis://, rediss:// or unix://")
        return s

    @property
    def cors_origins_list(self) -> List[str]:
        """Parse comma-separated CORS origins into a list."""
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

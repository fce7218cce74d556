"""Library configuration."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Defaults loaded from JOSEKIT_* environment variables.

    Components resolve these once at construction; explicit constructor
    arguments always win.
    """

    model_config = SettingsConfigDict(
        env_prefix="JOSEKIT_",
        env_file=".env",
        case_sensitive=False,
        extra="ignore",
    )

    # HTTP resource retriever
    http_connect_timeout: float = Field(default=0.5, ge=0)
    http_read_timeout: float = Field(default=0.5, ge=0)
    http_size_limit: int = Field(default=51200, ge=0)

    # Remote JWK set cache
    jwk_set_cache_ttl: float = Field(default=300, gt=0)
    jwk_set_refresh_on_miss: bool = True
    jwk_set_min_refresh_interval: float = Field(default=30, ge=0)

    # JWT claims verification
    max_clock_skew: int = Field(default=60, ge=0)

    log_level: str = "info"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()

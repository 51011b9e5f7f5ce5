from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="GRAPHCACHE_", env_file=".env", extra="ignore")

    app_name: str = "graphcache"
    env: str = "dev"

    # Invalidation defaults (used when a cache is created without explicit policies)
    default_time_to_live: int | None = Field(
        default=None, ge=0, validation_alias="GRAPHCACHE_DEFAULT_TTL"
    )  # milliseconds
    default_renewal_policy: str | None = Field(
        default=None, validation_alias="GRAPHCACHE_DEFAULT_RENEWAL_POLICY"
    )

    # Collections (evict_where / read_reference_where)
    enable_collections: bool = Field(default=False, validation_alias="GRAPHCACHE_COLLECTIONS")

    # Observability
    log_level: str = "INFO"
    log_json: bool = Field(default=False, validation_alias="GRAPHCACHE_LOG_JSON")


settings = Settings()

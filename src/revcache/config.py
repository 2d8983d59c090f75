from __future__ import annotations

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="REVCACHE_", env_file=".env", extra="ignore")

    # Store backend: "redis" or "memory"
    store_backend: str = "redis"

    # Redis
    redis_url: str = Field(default="redis://localhost:6379/0", validation_alias="REDIS_URL")
    namespace: str = "revcache"

    # Bucket the cache lives in; must not be blank
    bucket: str = "cache"

    # Optional prefix partitioning one bucket between applications
    key_prefix: str = ""

    # Key encoder: "percent" or "punycode"
    key_encoder: str = "percent"

    # Observability
    enable_metrics: bool = Field(default=True, validation_alias="ENABLE_METRICS")
    log_level: str = "INFO"
    log_json: bool = True

    @field_validator("bucket")
    @classmethod
    def _bucket_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("bucket must be set")
        return value


settings = Settings()

"""
Service Configuration

All settings are read from the environment (prefix ``ONESEARCH_``) or a local
``.env`` file. The same code base runs either as the *governing* site, which
owns the shared index credentials and the federation settings, or as a
*brand* site, which consumes that configuration over HTTP.
"""

from functools import lru_cache
from typing import Literal, Optional

from pydantic import SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Development default; rejected once a database store is configured.
DEFAULT_ENCRYPTION_KEY = "onesearch-local-key"


class Settings(BaseSettings):
    site_url: str = "http://localhost/"
    site_name: str = "OneSearch"
    site_type: Literal["governing", "brand"] = "governing"

    # Brand sites only: where the governing site lives
    governing_url: Optional[str] = None

    # Shared secret sent as X-OneSearch-Token on cross-site calls
    api_key: SecretStr = SecretStr("")

    # Fallback credentials for the governing site (stored ones win)
    algolia_app_id: str = ""
    algolia_write_key: SecretStr = SecretStr("")
    index_prefix: str = "onesearch"
    search_backend: Literal["algolia", "memory"] = "algolia"

    # Content source (WordPress REST API)
    content_api_url: Optional[str] = None
    content_api_user: Optional[str] = None
    content_api_password: SecretStr = SecretStr("")

    record_size_limit: int = 9000
    index_batch_size: int = 100
    chunk_fetch_batch: int = 20

    brand_config_ttl: int = 604800  # one week
    http_timeout: float = 15.0
    fanout_timeout: float = 30.0

    database_url: Optional[str] = None
    encryption_key: SecretStr = SecretStr(DEFAULT_ENCRYPTION_KEY)

    jwt_admin_secret: SecretStr = SecretStr("")
    jwt_algo: str = "HS256"
    jwt_ttl_seconds: int = 300

    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_prefix="ONESEARCH_",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("record_size_limit", "index_batch_size", "chunk_fetch_batch")
    @classmethod
    def _positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @model_validator(mode="after")
    def _persistent_store_needs_key(self) -> "Settings":
        if self.database_url and self.uses_default_encryption_key:
            raise ValueError(
                "ONESEARCH_ENCRYPTION_KEY must be set when ONESEARCH_DATABASE_URL is configured"
            )
        return self

    @property
    def is_governing(self) -> bool:
        return self.site_type == "governing"

    @property
    def uses_default_encryption_key(self) -> bool:
        return self.encryption_key.get_secret_value() == DEFAULT_ENCRYPTION_KEY


@lru_cache
def get_settings() -> Settings:
    return Settings()


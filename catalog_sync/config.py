from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Catalog Sync"
    database_url: str = Field(default="sqlite:///./catalog_sync.db")
    redis_url: str = Field(default="redis://localhost:6379/0")
    admin_token: str = "dev-admin-token"

    request_timeout_seconds: float = 30.0
    max_fetch_retries: int = 2
    retry_backoff_seconds: float = 0.6

    shopify_api_version: str = "2024-01"
    shopify_page_size: int = 250
    shopify_page_delay_seconds: float = 0.5

    gigab2b_page_size: int = 1000
    gigab2b_price_batch_size: int = 200
    gigab2b_price_batch_delay_seconds: float = 1.1

    default_persistence_mode: str = "batch"
    max_consecutive_page_errors: int = 5
    max_concurrent_syncs: int = 4

    nonce_ttl_seconds: int = 600
    pending_connection_ttl_seconds: int = 300
    auth_code_ttl_seconds: int = 300

    model_config = SettingsConfigDict(env_file=".env", env_prefix="CATALOG_SYNC_")


@lru_cache
def get_settings() -> Settings:
    return Settings()

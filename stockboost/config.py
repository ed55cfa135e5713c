"""Application configuration and constants."""
from __future__ import annotations

import os
from dataclasses import dataclass


def _get_env(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


def _get_flag(name: str, default: str) -> bool:
    return _get_env(name, default).lower() in {"1", "true", "yes"}


@dataclass(frozen=True)
class Settings:
    """Simple settings container with environment variable overrides."""

    es_host: str = _get_env("ES_HOST", "http://localhost:9200")
    es_index: str = _get_env("ES_INDEX", "products")
    api_base_url: str = _get_env("API_BASE_URL", "http://localhost:8000")
    api_token: str = _get_env("API_TOKEN", "")
    api_timeout_seconds: float = float(_get_env("API_TIMEOUT_SECONDS", "10"))
    use_mock_api: bool = _get_flag("USE_MOCK_API", "false")
    description_store: str = _get_env("DESCRIPTION_STORE", "memory")
    redis_host: str = _get_env("REDIS_HOST", "localhost")
    redis_port: int = int(_get_env("REDIS_PORT", "6379"))
    description_hash_key: str = _get_env("DESCRIPTION_HASH_KEY", "sku_descriptions")
    search_debounce_ms: int = int(_get_env("SEARCH_DEBOUNCE_MS", "300"))
    search_min_query_length: int = int(_get_env("SEARCH_MIN_QUERY_LENGTH", "2"))
    search_per_page: int = int(_get_env("SEARCH_PER_PAGE", "10"))
    search_query_fields: str = _get_env("SEARCH_QUERY_FIELDS", "item_no,item_no2,description,client")
    active_stale_seconds: int = int(_get_env("ACTIVE_STALE_SECONDS", "300"))
    historical_stale_seconds: int = int(_get_env("HISTORICAL_STALE_SECONDS", "600"))
    historical_page_size: int = int(_get_env("HISTORICAL_PAGE_SIZE", "20"))
    log_level: str = _get_env("LOG_LEVEL", "INFO")


settings = Settings()

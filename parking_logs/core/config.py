from __future__ import annotations

import json
from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Read from the environment (MONGO_URI, MONGO_DB, LOG_LEVEL, ...) or `.env`."""

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    app_name: str = "Parking Logs"
    env: str = "dev"
    mongo_uri: str = "mongodb://localhost:27017"
    mongo_db: str = "parking"
    logs_collection: str = "logs"

    # budget for a single store round-trip, also used for server selection
    store_timeout_ms: int = 5000
    retry_backoff_seconds: float = 0.2

    default_page_size: int = 50
    max_page_size: int = 1000
    export_default_records: int = 10000
    export_max_records: int = 50000
    critical_events_limit: int = 100

    host: str = "0.0.0.0"
    port: int = 8000

    log_level: str = "INFO"
    # comma separated or a JSON list
    cors_origins: str = "http://localhost:5173,http://127.0.0.1:5173"

    @classmethod
    def parse_list_env(cls, value: str) -> List[str]:
        if not value:
            return []
        if value.lstrip().startswith("["):
            return json.loads(value)
        return [v.strip() for v in value.split(",") if v.strip()]

    @property
    def cors_origin_list(self) -> List[str]:
        return self.parse_list_env(self.cors_origins)


@lru_cache
def get_settings() -> Settings:
    return Settings()

"""Application configuration loaded from environment variables."""

from __future__ import annotations

import logging
import sys
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s — %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """All configuration is loaded from FLEXINSIGHT_* environment variables (or .env file)."""

    # --- App ---
    app_name: str = "FlexInsight"
    log_level: str = "INFO"

    # --- Remote workout API ---
    api_base_url: str = "https://api.hevyapp.com/"
    api_key: str = ""  # sent as the api-key header on every request
    request_timeout_seconds: float = 30.0

    # --- Local store ---
    database_url: str = ""  # postgres DSN; empty = in-memory store

    # --- Reachability probe ---
    probe_host: str = "api.hevyapp.com"
    probe_port: int = 443
    probe_timeout_seconds: float = 3.0
    probe_interval_seconds: float = 10.0

    model_config = SettingsConfigDict(
        env_prefix="FLEXINSIGHT_",
        env_file=".env",
        env_file_encoding="utf-8",
    )

    @property
    def has_api_key(self) -> bool:
        return bool(self.api_key.strip())


@lru_cache
def get_settings() -> Settings:
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Install the stdout log handler used by every flexinsight.* logger.

    Args:
        level: Log level name. Defaults to ``Settings.log_level``.
    """
    logging.basicConfig(
        level=(level or get_settings().log_level).upper(),
        format=LOG_FORMAT,
        datefmt=LOG_DATE_FORMAT,
        stream=sys.stdout,
    )

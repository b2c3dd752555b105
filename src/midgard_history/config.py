"""Configuration system using pydantic-settings with environment variable loading."""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict

ResourceName = Literal["depth", "swap", "earnings", "runepool"]


class SourceSettings(BaseSettings):
    """Upstream Midgard API connection settings."""

    model_config = SettingsConfigDict(env_prefix="MIDGARD_")

    base_url: str = "https://midgard.ninerealms.com/v2"
    depth_pool: str = "ETH.ETH"  # depth history is per pool
    request_timeout: float = 30.0
    user_agent: str = "midgard-history/1.0"


class IngestionSettings(BaseSettings):
    """Incremental ingestion loop configuration.

    Delays are in seconds. The inter-page delay is applied after every
    successfully decoded page so the upstream throttle is never hit in
    steady state; the other delays apply to the matching failure class.
    All fields configurable via INGEST_ environment variable prefix.
    """

    model_config = SettingsConfigDict(env_prefix="INGEST_")

    enabled: bool = True
    resources: list[ResourceName] = ["depth", "swap", "earnings", "runepool"]
    granularity: str = "hour"
    page_size: int = 400  # upstream maximum for `count`
    epoch: int = 1648771200  # 2022-04-01T00:00:00Z, first-run watermark
    page_delay: float = 3.0
    transport_retry_delay: float = 5.0
    rate_limit_delay: float = 5.0
    malformed_retry_delay: float = 5.0
    rate_limit_marker: str = "slow down"
    diagnostic_max_chars: int = 500


class DatabaseSettings(BaseSettings):
    """SQLite storage location."""

    model_config = SettingsConfigDict(env_prefix="DB_")

    path: str = "data/history.db"


class ApiSettings(BaseSettings):
    """HTTP query API configuration."""

    model_config = SettingsConfigDict(env_prefix="API_")

    enabled: bool = True
    host: str = "127.0.0.1"
    port: int = 3000
    default_page_size: int = 30
    max_page_size: int = 400


class AppSettings(BaseSettings):
    """Root application settings, composing all sub-settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    log_level: str = "INFO"
    source: SourceSettings = SourceSettings()
    ingestion: IngestionSettings = IngestionSettings()
    database: DatabaseSettings = DatabaseSettings()
    api: ApiSettings = ApiSettings()

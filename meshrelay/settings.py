"""Centralised settings for MeshRelay, loaded from env / .env."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class ConfigurationError(RuntimeError):
    """Raised when a required setting is missing at the point of use."""


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="MESHRELAY_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- general ---
    app_name: str = "MeshRelay"
    env: str = "dev"
    debug: bool = False
    log_level: str = "INFO"

    # --- HTTP ---
    host: str = "0.0.0.0"
    port: int = 8080

    # --- Azure Communication Services ---
    acs_connection_string: str = ""
    acs_chat_api_version: str = "2021-09-07"
    acs_identity_api_version: str = "2023-10-01"
    acs_timeout_seconds: float = 30.0

    # --- bot identity ---
    bot_display_name: str = "Coach MESH"
    bot_prefix: str = "[Bot]"
    bot_user_id: str = ""  # reuse a fixed ACS identity instead of minting one
    token_refresh_margin_seconds: int = 300

    # --- generation backend ---
    stream_url: str = "http://localhost:8000/chat/stream"
    stream_timeout_seconds: float = 120.0

    # --- Event Grid (AI event bridge) ---
    event_grid_topic_endpoint: str = ""
    event_grid_topic_key: str = ""

    # --- directory ---
    seed_directory: bool = True

    # --- worker tuning ---
    max_concurrent_workers: int = 4

    def require_event_grid(self) -> tuple[str, str]:
        if not self.event_grid_topic_endpoint:
            raise ConfigurationError("MESHRELAY_EVENT_GRID_TOPIC_ENDPOINT is not configured")
        if not self.event_grid_topic_key:
            raise ConfigurationError("MESHRELAY_EVENT_GRID_TOPIC_KEY is not configured")
        return self.event_grid_topic_endpoint, self.event_grid_topic_key


@lru_cache
def get_settings() -> RelaySettings:
    return RelaySettings()

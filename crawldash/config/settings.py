"""Client configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import AnyUrl, Field, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/crawldash/client.yaml"),
    Path("/etc/crawldash/client.yml"),
    Path("./config/client.yaml"),
    Path("./config/client.yml"),
)


class ClientSettings(BaseSettings):
    """Validated settings for the dashboard client core."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="CRAWLDASH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Endpoints
    api_base_url: AnyUrl = Field(
        default="http://localhost:8080",
        description="Base URL of the crawl API.",
    )
    ws_url: AnyUrl = Field(
        default="ws://localhost:8080/ws",
        description="Push channel WebSocket endpoint.",
    )
    transport: Literal["websocket", "dummy"] = Field(
        default="websocket",
        description="Push channel transport; dummy keeps the channel in memory.",
    )
    ws_token_param: str = Field(
        default="token",
        description="Query parameter carrying the access secret during the channel handshake.",
    )
    http_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout applied to each HTTP request.",
    )
    api_retry_attempts: PositiveInt = Field(
        default=3,
        description="Attempts made by the *_with_retry helpers.",
    )
    api_retry_delay_seconds: float = Field(
        default=1.0,
        description="Fixed delay between *_with_retry attempts.",
    )

    # Persisted session state
    state_path: Path | None = Field(
        default=Path("~/.crawldash/session.json"),
        description="File holding the persisted credential and identity; None keeps them in memory.",
    )

    # Reconnection & liveness
    reconnect_base_delay_seconds: float = Field(
        default=1.0,
        description="Base delay for channel reconnection backoff.",
    )
    reconnect_max_delay_seconds: float = Field(
        default=30.0,
        description="Maximum delay for channel reconnection backoff.",
    )
    reconnect_max_attempts: PositiveInt = Field(
        default=5,
        description="Consecutive reconnect attempts before the channel is marked failed.",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Seconds allowed for the channel handshake to complete.",
    )
    heartbeat_interval_seconds: float = Field(
        default=30.0,
        description="Interval between heartbeat frames while connected.",
    )
    heartbeat_timeout_seconds: float = Field(
        default=0.0,
        description=(
            "Grace period past one heartbeat interval without inbound traffic (0 disables). "
            "Only useful against servers that answer heartbeat frames."
        ),
    )
    ws_ping_interval_seconds: float | None = Field(
        default=20.0,
        description="Interval between WebSocket protocol pings (None disables).",
    )
    ws_ping_timeout_seconds: float | None = Field(
        default=20.0,
        description="Seconds to wait for a pong before the channel counts as lost.",
    )

    # Credential renewal
    token_refresh_threshold_seconds: float = Field(
        default=300.0,
        description="Remaining lifetime below which the access credential is renewed proactively.",
    )
    token_poll_interval_seconds: float = Field(
        default=60.0,
        description="Cadence at which the remaining credential lifetime is re-evaluated.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the client process.",
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _normalize_log_level(cls, value: str) -> str:
        if isinstance(value, str):
            return value.upper()
        return value

    config_path: Path | None = Field(
        default=None,
        description="Resolved path to the on-disk config that seeded the settings.",
        exclude=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[ClientSettings],
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            cls._yaml_settings_source,
            env_settings,
            dotenv_settings,
            file_secret_settings,
        )

    @staticmethod
    def _yaml_settings_source(settings_cls: type[ClientSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = ClientSettings._resolve_candidate_paths()

        for path in candidates:
            data = ClientSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("CRAWLDASH_CONFIG_FILE")
        if explicit:
            yield Path(explicit).expanduser()
        yield from DEFAULT_CONFIG_LOCATIONS

    @staticmethod
    def _load_file(path: Path) -> Dict[str, Any] | None:
        if not path.is_file():
            return None
        suffix = path.suffix.lower()
        try:
            with path.open("r", encoding="utf-8") as handle:
                if suffix in {".yaml", ".yml"}:
                    raw = yaml.safe_load(handle)
                elif suffix == ".json":
                    raw = json.load(handle)
                else:
                    return None
        except OSError as exc:
            raise RuntimeError(f"Failed to read client config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid client config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Client config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> ClientSettings:
    """Return memoized client settings."""

    settings = ClientSettings()
    if settings.state_path is not None:
        settings.state_path = settings.state_path.expanduser().resolve()
    return settings

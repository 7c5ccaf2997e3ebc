"""Bridge configuration loading and validation."""

from __future__ import annotations

import json
import os
from functools import lru_cache
from pathlib import Path
from typing import Any, ClassVar, Dict, Iterable, Literal

import yaml
from pydantic import Field, NonNegativeInt, PositiveFloat, PositiveInt
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_CONFIG_LOCATIONS: tuple[Path, ...] = (
    Path("/etc/plugin-bridge/bridge.yaml"),
    Path("/etc/plugin-bridge/bridge.yml"),
    Path("./config/bridge.yaml"),
    Path("./config/bridge.yml"),
)
LOCAL_HOSTS = {"localhost", "127.0.0.1", "::1"}


class BridgeSettings(BaseSettings):
    """Validated settings for the command channel."""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_prefix="BRIDGE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Endpoint
    server_host: str = Field(
        default="localhost",
        description="Relay server host; loopback hosts use ws://, anything else wss://.",
    )
    server_port: PositiveInt = Field(
        default=3055,
        description="Relay server port (only used for loopback hosts).",
    )
    server_url: str | None = Field(
        default=None,
        description="Explicit WebSocket URL overriding host/port resolution.",
    )
    channel: str | None = Field(
        default=None,
        description="Fixed channel to join; a random one is generated when unset.",
    )
    channel_length: PositiveInt = Field(
        default=8,
        description="Length of generated channel identifiers.",
    )
    transport: Literal["dummy", "websocket"] = Field(
        default="websocket",
        description="Transport implementation to use.",
    )

    # Reconnection
    auto_reconnect: bool = Field(
        default=True,
        description="Reconnect automatically after an abnormal close.",
    )
    max_reconnect_attempts: NonNegativeInt = Field(
        default=5,
        description="Consecutive reconnect attempts before entering the failed state.",
    )
    reconnect_base_delay_ms: PositiveInt = Field(
        default=1000,
        description="Base delay for reconnection backoff.",
    )
    reconnect_growth_factor: PositiveFloat = Field(
        default=1.5,
        description="Multiplier applied per reconnect attempt.",
    )
    reconnect_max_delay_ms: PositiveInt = Field(
        default=30000,
        description="Upper bound for reconnection backoff.",
    )
    open_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        description="Seconds to wait for the socket to open.",
    )
    join_timeout_seconds: PositiveFloat = Field(
        default=10.0,
        description="Seconds to wait for the channel join acknowledgement.",
    )

    # Requests & commands
    request_timeout_seconds: PositiveFloat = Field(
        default=30.0,
        description="Seconds before an outbound request is rejected with a timeout.",
    )
    command_max_inflight: NonNegativeInt = Field(
        default=0,
        description="Maximum inbound commands executing concurrently (0 = unbounded).",
    )
    command_exec_mode: Literal["auto", "inline", "thread"] = Field(
        default="auto",
        description="Default execution mode for registered command handlers.",
    )

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Minimum log level for the bridge process.",
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

    def resolve_endpoint(self, host: str | None = None, port: int | None = None) -> str:
        """Return the WebSocket URL for the configured (or given) host/port."""

        if host is None and port is None and self.server_url:
            return self.server_url
        host = host or self.server_host
        port = port or self.server_port
        if host in LOCAL_HOSTS:
            return f"ws://{host}:{port}"
        return f"wss://{host}"

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BridgeSettings],
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
    def _yaml_settings_source(settings_cls: type[BridgeSettings] | None = None) -> Dict[str, Any]:
        candidates: Iterable[Path] = BridgeSettings._resolve_candidate_paths()

        for path in candidates:
            data = BridgeSettings._load_file(path)
            if data is not None:
                data.setdefault("config_path", path)
                return data
        return {}

    @staticmethod
    def _resolve_candidate_paths() -> Iterable[Path]:
        explicit = os.getenv("BRIDGE_CONFIG_FILE")
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
            raise RuntimeError(f"Failed to read bridge config file {path}") from exc
        except (yaml.YAMLError, json.JSONDecodeError) as exc:
            raise ValueError(f"Invalid bridge config file {path}") from exc

        if raw is None:
            return {}
        if not isinstance(raw, dict):
            raise ValueError(f"Bridge config file {path} must contain a mapping at top level.")
        return raw


@lru_cache()
def get_settings() -> BridgeSettings:
    """Return memoized bridge settings."""

    return BridgeSettings()

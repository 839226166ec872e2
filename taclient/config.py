from __future__ import annotations
import os
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Union

from taproto.log import get_logger
from taproto.models import ClientType

logger = get_logger(__name__)

# Replaces the default "write to the live websocket" transmit path.
Transmit = Callable[[bytes], Awaitable[None]]


class ConfigError(Exception):
    """Raised when configuration overrides are malformed."""
    pass


def default_server() -> str:
    return os.getenv("TA_SERVER", "ws://localhost:2053")


@dataclass(frozen=True)
class ConnectionConfig:
    """
    Resolved client configuration. Durations are in milliseconds.

    auto_reconnect_max_retries = -1 means unlimited; handshake_timeout = 0
    disables the handshake-level retry.
    """
    auto_reconnect: bool = True
    auto_reconnect_interval: int = 10000
    auto_reconnect_max_retries: int = -1
    handshake_timeout: int = 0
    auto_init: bool = True
    logging: bool = False
    transmit: Optional[Transmit] = None
    connection_mode: ClientType = ClientType.WEBSOCKET_CONNECTION
    command_stagger: int = 500
    start_lead: int = 2000

    @classmethod
    def from_overrides(cls, overrides: Optional[Mapping[str, Any]] = None) -> ConnectionConfig:
        """Overlay a partial mapping onto the documented defaults."""
        if not overrides:
            return cls()

        known = {f.name for f in fields(cls)}
        unknown = set(overrides) - known
        if unknown:
            raise ConfigError(f"Unknown config option(s): {sorted(unknown)}")

        values: Dict[str, Any] = {}
        for name, value in overrides.items():
            values[name] = _coerce(name, value)
        return replace(cls(), **values)

    def as_dict(self) -> Dict[str, Any]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


_BOOL_OPTIONS = {"auto_reconnect", "auto_init", "logging"}
_NON_NEGATIVE_OPTIONS = {"auto_reconnect_interval", "handshake_timeout", "command_stagger", "start_lead"}


def _coerce(name: str, value: Any) -> Any:
    if name in _BOOL_OPTIONS:
        if not isinstance(value, bool):
            raise ConfigError(f"'{name}' must be a boolean")
        return value
    if name in _NON_NEGATIVE_OPTIONS or name == "auto_reconnect_max_retries":
        if isinstance(value, bool) or not isinstance(value, int):
            raise ConfigError(f"'{name}' must be an integer (milliseconds or count)")
        if name in _NON_NEGATIVE_OPTIONS and value < 0:
            raise ConfigError(f"'{name}' must be >= 0")
        if name == "auto_reconnect_max_retries" and value < -1:
            raise ConfigError("'auto_reconnect_max_retries' must be -1 (unlimited) or >= 0")
        return value
    if name == "transmit":
        if value is not None and not callable(value):
            raise ConfigError("'transmit' must be callable")
        return value
    if name == "connection_mode":
        if isinstance(value, ClientType):
            return value
        try:
            return ClientType.from_string(str(value))
        except ValueError as e:
            raise ConfigError(str(e))
    return value


def load_config_file(path: Union[str, Path], **overrides: Any) -> ConnectionConfig:
    """
    Load a YAML mapping of options. A missing file yields the defaults;
    keyword ``overrides`` win over the file.
    """
    path = Path(path)
    data: Dict[str, Any] = {}
    if path.exists():
        import yaml

        try:
            with path.open("r", encoding="utf-8") as f:
                loaded = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Error reading {path}: {e}")
        if not isinstance(loaded, dict):
            raise ConfigError(f"{path} must contain a mapping of options")
        data.update(loaded)
        logger.debug("Loaded %d option(s) from %s", len(loaded), path)
    else:
        logger.info("No config file at %s; using defaults", path)
    data.update(overrides)
    return ConnectionConfig.from_overrides(data)

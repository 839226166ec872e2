"""Tournament Assistant websocket client."""

from taclient.client import TAClient
from taclient.config import ConnectionConfig, ConfigError

__all__ = ["TAClient", "ConnectionConfig", "ConfigError"]

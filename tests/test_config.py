import pytest

from taclient.config import ConfigError, ConnectionConfig, load_config_file
from taproto.models import ClientType


def test_defaults():
    config = ConnectionConfig.from_overrides(None)

    assert config.auto_reconnect is True
    assert config.auto_reconnect_interval == 10000
    assert config.auto_reconnect_max_retries == -1
    assert config.handshake_timeout == 0
    assert config.auto_init is True
    assert config.logging is False
    assert config.transmit is None
    assert config.connection_mode is ClientType.WEBSOCKET_CONNECTION
    assert config.command_stagger == 500
    assert config.start_lead == 2000


def test_partial_overrides_keep_remaining_defaults():
    config = ConnectionConfig.from_overrides({"auto_reconnect_max_retries": 3, "connection_mode": "coordinator"})

    assert config.auto_reconnect_max_retries == 3
    assert config.connection_mode is ClientType.COORDINATOR
    assert config.auto_reconnect_interval == 10000


def test_config_is_immutable():
    config = ConnectionConfig()

    with pytest.raises(AttributeError):
        config.logging = True


@pytest.mark.parametrize("overrides", [
    {"reconnect_everything": True},
    {"auto_reconnect": "yes"},
    {"auto_reconnect_interval": 1.5},
    {"handshake_timeout": -1},
    {"auto_reconnect_max_retries": -2},
    {"auto_init": 1},
    {"transmit": "socket"},
    {"connection_mode": "referee"},
])
def test_invalid_overrides_raise(overrides):
    with pytest.raises(ConfigError):
        ConnectionConfig.from_overrides(overrides)


def test_load_config_file(tmp_path):
    path = tmp_path / "client.yaml"
    path.write_text("auto_reconnect_interval: 2500\nlogging: true\nconnection_mode: player\n")

    config = load_config_file(path, logging=False)

    assert config.auto_reconnect_interval == 2500
    assert config.logging is False
    assert config.connection_mode is ClientType.PLAYER


def test_missing_config_file_yields_defaults(tmp_path):
    assert load_config_file(tmp_path / "absent.yaml") == ConnectionConfig()


def test_non_mapping_config_file_is_rejected(tmp_path):
    path = tmp_path / "client.yaml"
    path.write_text("- just\n- a list\n")

    with pytest.raises(ConfigError):
        load_config_file(path)

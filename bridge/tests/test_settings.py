import pytest

from bridge.config import BridgeSettings


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for key in ("BRIDGE_CONFIG_FILE", "BRIDGE_SERVER_HOST", "BRIDGE_SERVER_PORT", "BRIDGE_LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)


def test_defaults():
    settings = BridgeSettings()
    assert settings.server_port == 3055
    assert settings.auto_reconnect is True
    assert settings.max_reconnect_attempts == 5
    assert settings.request_timeout_seconds == 30
    assert settings.open_timeout_seconds == 10
    assert settings.join_timeout_seconds == 10
    assert settings.channel_length == 8
    assert settings.resolve_endpoint() == "ws://localhost:3055"


def test_remote_host_uses_secure_scheme():
    settings = BridgeSettings(server_host="relay.example.com")
    assert settings.resolve_endpoint() == "wss://relay.example.com"
    assert settings.resolve_endpoint("127.0.0.1", 4000) == "ws://127.0.0.1:4000"


def test_explicit_url_wins():
    settings = BridgeSettings(server_url="ws://10.0.0.5:9000/socket")
    assert settings.resolve_endpoint() == "ws://10.0.0.5:9000/socket"


def test_environment_overrides(monkeypatch):
    monkeypatch.setenv("BRIDGE_SERVER_PORT", "4100")
    monkeypatch.setenv("BRIDGE_LOG_LEVEL", "debug")
    settings = BridgeSettings()
    assert settings.server_port == 4100
    assert settings.log_level == "DEBUG"


def test_yaml_file_is_loaded(monkeypatch, tmp_path):
    config = tmp_path / "bridge.yaml"
    config.write_text("server_host: relay.internal\nmax_reconnect_attempts: 2\ntransport: dummy\n", encoding="utf-8")
    monkeypatch.setenv("BRIDGE_CONFIG_FILE", str(config))

    settings = BridgeSettings()

    assert settings.server_host == "relay.internal"
    assert settings.max_reconnect_attempts == 2
    assert settings.transport == "dummy"
    assert settings.config_path == config


def test_init_arguments_beat_file(monkeypatch, tmp_path):
    config = tmp_path / "bridge.yaml"
    config.write_text("server_port: 5000\n", encoding="utf-8")
    monkeypatch.setenv("BRIDGE_CONFIG_FILE", str(config))
    assert BridgeSettings(server_port=6000).server_port == 6000


def test_invalid_yaml_is_reported(monkeypatch, tmp_path):
    config = tmp_path / "bridge.yaml"
    config.write_text("- just\n- a list\n", encoding="utf-8")
    monkeypatch.setenv("BRIDGE_CONFIG_FILE", str(config))
    with pytest.raises(ValueError):
        BridgeSettings()

"""Tests for configuration loading and environment overrides."""

import pytest

from posprint.config import (
    AppConfig,
    RateLimitConfig,
    load_config,
    resolve_channel_endpoint,
    _convert_env_value,
)
from posprint.domain.ports import ConfigurationError


ENV_VARS = [
    "CONFIG_PATH", "REDIS_URL", "STORE_BACKEND", "STORE_TABLE_NAME", "STORE_RATE_INDEX",
    "RATE_LIMIT_MAX_MESSAGES", "RATE_LIMIT_WINDOW_HOURS", "CHANNEL_URL", "CHANNEL_TOPIC",
    "CHANNEL_CLIENT_ID", "PRINTER_HOST", "PRINTER_PORT", "PRINTER_WIDTH", "SERVER_HOST",
    "SERVER_PORT", "LOG_LEVEL", "LOG_JSON",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestDefaults:

    def test_missing_file_uses_defaults(self, tmp_path):
        config = load_config(str(tmp_path / "absent.yml"))

        assert config.rate_limit.max_messages == 10
        assert config.rate_limit.window_hours == 24
        assert config.printer.host == "192.168.0.5"
        assert config.printer.port == 9100
        assert config.printer.line_width == 42
        assert config.printer.feed_lines == 3
        assert config.store.backend == "redis"

    def test_yaml_values(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text(
            "channel:\n"
            "  topic: shop:receipts\n"
            "  client_id: counter-printer\n"
            "printer:\n"
            "  host: 10.1.1.20\n"
            "  line_width: 32\n"
        )

        config = load_config(str(path))

        assert config.channel.topic == "shop:receipts"
        assert config.channel.client_id == "counter-printer"
        assert config.printer.host == "10.1.1.20"
        assert config.printer.line_width == 32

    def test_unknown_key_is_rejected(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("printer:\n  colour: red\n")

        with pytest.raises(Exception):
            load_config(str(path))

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("printer: [unclosed\n")

        with pytest.raises(ValueError):
            load_config(str(path))


class TestEnvOverrides:

    def test_env_overrides_yaml(self, tmp_path, monkeypatch):
        path = tmp_path / "config.yml"
        path.write_text("printer:\n  host: 10.1.1.20\n")
        monkeypatch.setenv("PRINTER_HOST", "10.9.9.9")
        monkeypatch.setenv("PRINTER_WIDTH", "48")
        monkeypatch.setenv("CHANNEL_TOPIC", "from-env")
        monkeypatch.setenv("LOG_JSON", "false")

        config = load_config(str(path))

        assert config.printer.host == "10.9.9.9"
        assert config.printer.line_width == 48
        assert config.channel.topic == "from-env"
        assert config.logging.json_format is False

    def test_config_path_env(self, tmp_path, monkeypatch):
        path = tmp_path / "other.yml"
        path.write_text("store:\n  backend: memory\n")
        monkeypatch.setenv("CONFIG_PATH", str(path))

        assert load_config().store.backend == "memory"

    @pytest.mark.parametrize("value", ["abc", "0", "-5"])
    def test_bad_rate_limit_falls_back(self, tmp_path, monkeypatch, value):
        monkeypatch.setenv("RATE_LIMIT_MAX_MESSAGES", value)
        monkeypatch.setenv("RATE_LIMIT_WINDOW_HOURS", value)

        config = load_config(str(tmp_path / "absent.yml"))

        assert config.rate_limit.max_messages == 10
        assert config.rate_limit.window_hours == 24

    def test_valid_rate_limit(self, tmp_path, monkeypatch):
        monkeypatch.setenv("RATE_LIMIT_MAX_MESSAGES", "3")
        monkeypatch.setenv("RATE_LIMIT_WINDOW_HOURS", "1")

        config = load_config(str(tmp_path / "absent.yml"))

        assert config.rate_limit.max_messages == 3
        assert config.rate_limit.window_hours == 1

    def test_value_conversion(self):
        assert _convert_env_value("1") == 1
        assert _convert_env_value("2.5") == 2.5
        assert _convert_env_value("on") is True
        assert _convert_env_value("No") is False
        assert _convert_env_value("redis://r:6379/0") == "redis://r:6379/0"


class TestChannelEndpoint:

    def test_channel_url_wins(self):
        config = AppConfig(channel={"url": "redis://broker:6379/1"})
        assert resolve_channel_endpoint(config) == "redis://broker:6379/1"

    def test_falls_back_to_redis_url(self):
        assert resolve_channel_endpoint(AppConfig()) == "redis://redis:6379/0"

    def test_missing_endpoint(self):
        config = AppConfig(redis={"url": ""})
        with pytest.raises(ConfigurationError):
            resolve_channel_endpoint(config)

    def test_rate_limit_model_fallback(self):
        assert RateLimitConfig(max_messages=None).max_messages == 10


class TestReadTimeout:

    def test_socket_timeout_must_exceed_block_time(self):
        with pytest.raises(ValueError, match="socket_timeout"):
            AppConfig(redis={"socket_timeout": 10}, channel={"block_ms": 60000})

    def test_equal_values_are_rejected(self):
        with pytest.raises(ValueError):
            AppConfig(redis={"socket_timeout": 5}, channel={"block_ms": 5000})

    def test_longer_socket_timeout_is_accepted(self):
        config = AppConfig(redis={"socket_timeout": 30}, channel={"block_ms": 20000})
        assert config.channel.block_ms == 20000

    def test_yaml_with_short_timeout_fails_to_load(self, tmp_path):
        path = tmp_path / "config.yml"
        path.write_text("redis:\n  socket_timeout: 2\nchannel:\n  block_ms: 5000\n")

        with pytest.raises(ValueError):
            load_config(str(path))

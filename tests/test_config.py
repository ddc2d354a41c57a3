"""Tests for configuration defaults, environment and YAML loading."""

import logging
from datetime import timedelta
from pathlib import Path

import pytest

from kbkeys.config import (
    CACHE_FILE_NAME, DEFAULT_API_ENDPOINT, DEFAULT_CACHE_TTL, ClientConfig, default_cache_config,
    default_manager_config, load_config_file, load_config_from_env,
)
from kbkeys.exceptions import ConfigError

ENV_VARS = ("KBKEYS_API_ENDPOINT", "KBKEYS_API_TIMEOUT", "KBKEYS_MAX_RETRIES", "KBKEYS_RETRY_DELAY",
            "KBKEYS_CACHE_PATH", "KBKEYS_CACHE_TTL", "KBKEYS_OFFLINE")


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> pytest.MonkeyPatch:
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestDefaults:
    def test_manager_defaults(self) -> None:
        config = default_manager_config()
        assert config.client.endpoint == DEFAULT_API_ENDPOINT
        assert config.client.timeout == 30.0
        assert config.client.max_retries == 3
        assert config.client.retry_delay == 1.0
        assert config.cache.ttl == timedelta(hours=24)
        assert not config.offline

    def test_cache_path(self) -> None:
        path = default_cache_config().path
        assert path.name == CACHE_FILE_NAME
        assert path.parent.name == "kbkeys"

    def test_normalized_strips_trailing_slash(self) -> None:
        assert ClientConfig(endpoint="https://d.test/api/").normalized().endpoint == "https://d.test/api"

    def test_normalized_empty_endpoint(self) -> None:
        assert ClientConfig(endpoint="").normalized().endpoint == DEFAULT_API_ENDPOINT


class TestLoadConfigFromEnv:
    def test_no_env_gives_defaults(self, clean_env: pytest.MonkeyPatch) -> None:
        config = load_config_from_env()
        assert config.client == ClientConfig()
        assert config.cache.ttl == DEFAULT_CACHE_TTL
        assert not config.offline

    def test_env_overrides(self, clean_env: pytest.MonkeyPatch, tmp_path: Path) -> None:
        clean_env.setenv("KBKEYS_API_ENDPOINT", "https://d.test/api/")
        clean_env.setenv("KBKEYS_API_TIMEOUT", "5")
        clean_env.setenv("KBKEYS_MAX_RETRIES", "0")
        clean_env.setenv("KBKEYS_RETRY_DELAY", "0.5")
        clean_env.setenv("KBKEYS_CACHE_PATH", str(tmp_path / "keys.json"))
        clean_env.setenv("KBKEYS_CACHE_TTL", "60")
        clean_env.setenv("KBKEYS_OFFLINE", "yes")
        config = load_config_from_env()
        assert config.client == ClientConfig(endpoint="https://d.test/api", timeout=5.0, max_retries=0,
                                             retry_delay=0.5)
        assert config.cache.path == tmp_path / "keys.json"
        assert config.cache.ttl == timedelta(seconds=60)
        assert config.offline

    def test_invalid_values_fall_back(self, clean_env: pytest.MonkeyPatch,
                                      caplog: pytest.LogCaptureFixture) -> None:
        clean_env.setenv("KBKEYS_API_TIMEOUT", "soon")
        clean_env.setenv("KBKEYS_MAX_RETRIES", "many")
        clean_env.setenv("KBKEYS_CACHE_TTL", "-1")
        clean_env.setenv("KBKEYS_OFFLINE", "maybe")
        with caplog.at_level(logging.WARNING, logger="kbkeys.config"):
            config = load_config_from_env()
        assert config.client.timeout == 30.0
        assert config.client.max_retries == 3
        assert config.cache.ttl == DEFAULT_CACHE_TTL
        assert not config.offline
        assert "Unrecognised boolean value" in caplog.text
        assert "Invalid value 'soon'" in caplog.text

    def test_non_positive_timeout_is_normalized(self, clean_env: pytest.MonkeyPatch) -> None:
        clean_env.setenv("KBKEYS_API_TIMEOUT", "0")
        clean_env.setenv("KBKEYS_RETRY_DELAY", "-3")
        config = load_config_from_env()
        assert config.client.timeout == 30.0
        assert config.client.retry_delay == 1.0


class TestLoadConfigFile:
    def test_full_file(self, tmp_path: Path) -> None:
        path = tmp_path / "kbkeys.yaml"
        path.write_text(
            "endpoint: https://d.test/api\n"
            "timeout: 10\n"
            "max_retries: 1\n"
            "retry_delay: 0.25\n"
            f"cache_path: {tmp_path / 'cache.json'}\n"
            "cache_ttl: 3600\n"
            "offline: true\n"
        )
        config = load_config_file(path)
        assert config.client == ClientConfig(endpoint="https://d.test/api", timeout=10.0, max_retries=1,
                                             retry_delay=0.25)
        assert config.cache.path == tmp_path / "cache.json"
        assert config.cache.ttl == timedelta(hours=1)
        assert config.offline is True

    def test_empty_file_gives_defaults(self, tmp_path: Path) -> None:
        path = tmp_path / "kbkeys.yaml"
        path.write_text("")
        assert load_config_file(path).client == ClientConfig()

    def test_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="not found"):
            load_config_file(tmp_path / "absent.yaml")

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "kbkeys.yaml"
        path.write_text("endpoint: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config_file(path)

    def test_non_mapping(self, tmp_path: Path) -> None:
        path = tmp_path / "kbkeys.yaml"
        path.write_text("- just\n- a list\n")
        with pytest.raises(ConfigError, match="expected a mapping"):
            load_config_file(path)

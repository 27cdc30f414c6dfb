"""Tests for YAML/env configuration loading."""

import pytest
import yaml

from rulewatch.config import RulewatchConfig, load_config, save_config
from rulewatch.exceptions import ConfigError

_ENV_KEYS = (
    "WATCH_DIR",
    "WATCH_DEBOUNCE_MS",
    "REASONING_PROVIDER",
    "OLLAMA_HOST",
    "OLLAMA_MODEL",
    "API_ENABLED",
    "API_PORT",
    "NOTIFICATIONS_ENABLED",
    "LOG_LEVEL",
    "MATCH_HISTORY_LIMIT",
    "DB_PATH",
)


@pytest.fixture
def clean_env(monkeypatch):
    for key in _ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
    return monkeypatch


class TestDefaults:
    def test_model_defaults(self):
        config = RulewatchConfig()
        assert config.watcher.debounce_ms == 250
        assert config.watcher.ignored == ["node_modules", ".git", "dist", ".next"]
        assert config.reasoning.provider == "ollama"
        assert config.reasoning.model == "llama3.2"
        assert config.api.port == 7878
        assert config.engine.match_history_limit == 100
        assert config.rules_file == "~/.rulewatch/rules.json"

    def test_missing_file_uses_env_defaults(self, tmp_path, clean_env):
        config = load_config(tmp_path / "missing.yaml")
        assert config.watcher.watch_dir == "."
        assert config.api.enabled is True


class TestEnvironment:
    def test_env_overrides(self, tmp_path, clean_env):
        clean_env.setenv("WATCH_DIR", "/srv/project")
        clean_env.setenv("WATCH_DEBOUNCE_MS", "500")
        clean_env.setenv("OLLAMA_MODEL", "qwen2.5:3b")
        clean_env.setenv("API_ENABLED", "false")
        clean_env.setenv("API_PORT", "9000")
        clean_env.setenv("MATCH_HISTORY_LIMIT", "20")
        clean_env.setenv("DB_PATH", "/tmp/rules.json")

        config = load_config(tmp_path / "missing.yaml")

        assert config.watcher.watch_dir == "/srv/project"
        assert config.watcher.debounce_ms == 500
        assert config.reasoning.model == "qwen2.5:3b"
        assert config.api.enabled is False
        assert config.api.port == 9000
        assert config.engine.match_history_limit == 20
        assert config.rules_file == "/tmp/rules.json"

    def test_bad_integer(self, tmp_path, clean_env):
        clean_env.setenv("API_PORT", "eighty")
        with pytest.raises(ConfigError, match="API_PORT"):
            load_config(tmp_path / "missing.yaml")

    def test_out_of_range_value(self, tmp_path, clean_env):
        clean_env.setenv("MATCH_HISTORY_LIMIT", "0")
        with pytest.raises(ConfigError):
            load_config(tmp_path / "missing.yaml")


class TestYaml:
    def test_partial_file(self, tmp_path, clean_env):
        path = tmp_path / "config.yaml"
        path.write_text("watcher:\n  debounce_ms: 100\napi:\n  enabled: false\n")
        config = load_config(path)
        assert config.watcher.debounce_ms == 100
        assert config.watcher.watch_dir == "."
        assert config.api.enabled is False

    def test_env_interpolation(self, tmp_path, monkeypatch):
        monkeypatch.setenv("MY_HOOK", "https://hooks.example.com/x")
        path = tmp_path / "config.yaml"
        path.write_text("notifications:\n  webhook_url: ${MY_HOOK}\n")
        assert load_config(path).notifications.webhook_url == "https://hooks.example.com/x"

    def test_empty_file(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("")
        assert load_config(path) == RulewatchConfig()

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watcher: [unclosed\n")
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_config(path)

    def test_invalid_values(self, tmp_path):
        path = tmp_path / "config.yaml"
        path.write_text("watcher:\n  debounce_ms: -5\n")
        with pytest.raises(ConfigError, match="Invalid config"):
            load_config(path)

    def test_save_roundtrip(self, tmp_path):
        config = RulewatchConfig()
        config.watcher.watch_dir = "/srv/project"
        config.reasoning.retries = 4
        path = save_config(config, tmp_path / "nested" / "config.yaml")
        assert yaml.safe_load(path.read_text())["watcher"]["watch_dir"] == "/srv/project"
        assert load_config(path) == config

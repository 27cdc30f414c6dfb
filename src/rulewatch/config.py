"""Configuration loading and validation."""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field, ValidationError

from .exceptions import ConfigError

DEFAULT_CONFIG_PATH = "~/.rulewatch/config.yaml"


class WatcherConfig(BaseModel):
    watch_dir: str = "."
    debounce_ms: int = Field(default=250, ge=0)
    ignored: list[str] = Field(
        default_factory=lambda: ["node_modules", ".git", "dist", ".next"]
    )
    ignore_dotfiles: bool = True


class ReasoningConfig(BaseModel):
    provider: str = "ollama"  # "ollama" | "openai" | "openai-compatible" | ""
    host: str = "http://localhost:11434"  # Ollama server
    model: str = "llama3.2"
    api_key: str = ""
    base_url: str = ""  # For openai-compatible providers
    timeout_seconds: float = 30.0
    retries: int = Field(default=2, ge=0)


class APIConfig(BaseModel):
    enabled: bool = True
    host: str = "127.0.0.1"  # Local-only by default
    port: int = 7878


class NotificationsConfig(BaseModel):
    enabled: bool = True
    desktop_enabled: bool = True
    dedupe_seconds: float = 30.0
    webhook_url: str = ""


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file: str = "~/.rulewatch/logs/daemon.log"  # Empty = stderr only
    max_bytes: int = 5 * 1024 * 1024
    backup_count: int = 5


class EngineConfig(BaseModel):
    match_history_limit: int = Field(default=100, ge=1)


class SecurityConfig(BaseModel):
    allowed_paths: list[str] = Field(default_factory=list)  # Empty = watch_dir
    allow_symlinks: bool = False
    max_file_size: int = 100 * 1024 * 1024


class RulewatchConfig(BaseModel):
    watcher: WatcherConfig = Field(default_factory=WatcherConfig)
    reasoning: ReasoningConfig = Field(default_factory=ReasoningConfig)
    api: APIConfig = Field(default_factory=APIConfig)
    notifications: NotificationsConfig = Field(default_factory=NotificationsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    engine: EngineConfig = Field(default_factory=EngineConfig)
    security: SecurityConfig = Field(default_factory=SecurityConfig)
    rules_file: str = "~/.rulewatch/rules.json"


def _interpolate_env_vars(text: str) -> str:
    """Replace ${VAR_NAME} with environment variable values."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, "")

    return re.sub(r"\$\{(\w+)\}", replacer, text)


def _env_flag(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None or value == "":
        return default
    return value.strip().lower() not in ("0", "false", "no", "off")


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name, "")
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None


def _config_from_env() -> RulewatchConfig:
    """Build config from environment variables.

    Falls back to sane defaults when env vars are not set.
    """
    try:
        return RulewatchConfig(
            watcher=WatcherConfig(
                watch_dir=os.environ.get("WATCH_DIR", "."),
                debounce_ms=_env_int("WATCH_DEBOUNCE_MS", 250),
            ),
            reasoning=ReasoningConfig(
                provider=os.environ.get("REASONING_PROVIDER", "ollama"),
                host=os.environ.get("OLLAMA_HOST", "http://localhost:11434"),
                model=os.environ.get("OLLAMA_MODEL", "llama3.2"),
                api_key=os.environ.get("REASONING_API_KEY", ""),
                base_url=os.environ.get("REASONING_BASE_URL", ""),
            ),
            api=APIConfig(
                enabled=_env_flag("API_ENABLED", True),
                host=os.environ.get("API_HOST", "127.0.0.1"),
                port=_env_int("API_PORT", 7878),
            ),
            notifications=NotificationsConfig(
                enabled=_env_flag("NOTIFICATIONS_ENABLED", True),
                webhook_url=os.environ.get("NOTIFICATION_WEBHOOK_URL", ""),
            ),
            logging=LoggingConfig(
                level=os.environ.get("LOG_LEVEL", "INFO"),
                file=os.environ.get("LOG_FILE", "~/.rulewatch/logs/daemon.log"),
            ),
            engine=EngineConfig(
                match_history_limit=_env_int("MATCH_HISTORY_LIMIT", 100),
            ),
            rules_file=os.environ.get("DB_PATH", "~/.rulewatch/rules.json"),
        )
    except ValidationError as e:
        raise ConfigError(f"Invalid environment configuration: {e}") from e


def load_config(path: str | Path | None = None) -> RulewatchConfig:
    """Load config from YAML file, env vars, or defaults.

    Priority: config.yaml (with ${ENV} interpolation) > env vars > defaults.
    """
    if path is None:
        path = Path(DEFAULT_CONFIG_PATH).expanduser()
    else:
        path = Path(path).expanduser()

    if not path.exists():
        return _config_from_env()

    raw_text = path.read_text()
    interpolated = _interpolate_env_vars(raw_text)
    try:
        data = yaml.safe_load(interpolated)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e
    if data is None:
        return RulewatchConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"Config file {path} must contain a mapping")
    try:
        return RulewatchConfig(**data)
    except ValidationError as e:
        raise ConfigError(f"Invalid config in {path}: {e}") from e


def save_config(config: RulewatchConfig, path: str | Path | None = None) -> Path:
    """Save config to YAML file."""
    if path is None:
        path = Path(DEFAULT_CONFIG_PATH).expanduser()
    else:
        path = Path(path).expanduser()

    path.parent.mkdir(parents=True, exist_ok=True)

    data = config.model_dump()
    path.write_text(yaml.dump(data, default_flow_style=False, sort_keys=False))
    return path

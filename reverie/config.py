"""
Configuration management for journal data directories.

The configuration is stored as a TOML file in the data directory.
It selects the storage backend, the remote service endpoints and the
assistant provider. Environment variables override the file at load
time and are never written back.
"""

import logging
import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import tomli_w

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "reverie.toml"
CONFIG_VERSION = 1

DEFAULT_BUCKET = "journal-media"
DEFAULT_TABLE = "journal_entries"
DEFAULT_TIMEOUT = 30.0
DEFAULT_UPLOAD_TIMEOUT = 120.0
DEFAULT_TIME_SLICE_MS = 1000
DEFAULT_CHAT_MODEL = "gpt-4o-mini"
DEFAULT_CHAT_BASE_URL = "https://api.openai.com/v1"


def get_data_directory() -> Path:
    """Data directory: REVERIE_DATA_PATH, or ~/.reverie."""
    env = os.environ.get("REVERIE_DATA_PATH")
    if env:
        return Path(env).expanduser()
    return Path.home() / ".reverie"


@dataclass
class RemoteConfig:
    """[remote] section: backend-as-a-service endpoints."""
    url: str = ""
    api_key: str = ""
    access_token: str = ""
    bucket: str = DEFAULT_BUCKET
    table: str = DEFAULT_TABLE
    timeout: float = DEFAULT_TIMEOUT
    upload_timeout: float = DEFAULT_UPLOAD_TIMEOUT

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.api_key)


@dataclass
class AssistantConfig:
    """[assistant] section."""
    provider: str = "scripted"
    model: str = DEFAULT_CHAT_MODEL
    base_url: str = DEFAULT_CHAT_BASE_URL
    api_key: str = ""
    max_tokens: int = 150


@dataclass
class CaptureConfig:
    """[capture] section."""
    time_slice_ms: int = DEFAULT_TIME_SLICE_MS


@dataclass
class JournalConfig:
    """Complete journal configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    backend: str = "local"
    default_wallpaper: str = "default"
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    assistant: AssistantConfig = field(default_factory=AssistantConfig)
    capture: CaptureConfig = field(default_factory=CaptureConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def _section(cls, data: dict[str, Any]):
    """Build a section dataclass, ignoring unknown keys."""
    known = cls.__dataclass_fields__
    unknown = set(data) - set(known)
    if unknown:
        logger.warning("Ignoring unknown config keys for %s: %s", cls.__name__, sorted(unknown))
    return cls(**{k: v for k, v in data.items() if k in known})


def create_default_config(data_path: Path) -> JournalConfig:
    """Create a new config, picking the Supabase backend when its env vars are set."""
    config = JournalConfig(path=data_path)
    if os.environ.get("REVERIE_SUPABASE_URL") and os.environ.get("REVERIE_SUPABASE_KEY"):
        config.backend = "supabase"
    return config


def load_config(data_path: Path) -> JournalConfig:
    """
    Load configuration from a data directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = data_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    journal = data.get("journal", {})
    version = journal.get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    try:
        return JournalConfig(
            path=data_path,
            version=version,
            created=journal.get("created", ""),
            backend=data.get("backend", {}).get("name", "local"),
            default_wallpaper=journal.get("default_wallpaper", "default"),
            remote=_section(RemoteConfig, data.get("remote", {})),
            assistant=_section(AssistantConfig, data.get("assistant", {})),
            capture=_section(CaptureConfig, data.get("capture", {})),
        )
    except TypeError as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e


def save_config(config: JournalConfig) -> None:
    """
    Save configuration to the data directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "journal": {
            "version": config.version,
            "created": config.created,
            "default_wallpaper": config.default_wallpaper,
        },
        "backend": {"name": config.backend},
        "remote": {
            "url": config.remote.url,
            "bucket": config.remote.bucket,
            "table": config.remote.table,
            "timeout": config.remote.timeout,
            "upload_timeout": config.remote.upload_timeout,
        },
        "assistant": {
            "provider": config.assistant.provider,
            "model": config.assistant.model,
            "base_url": config.assistant.base_url,
            "max_tokens": config.assistant.max_tokens,
        },
        "capture": {"time_slice_ms": config.capture.time_slice_ms},
    }
    # Secrets only go to disk if they were put in the file by hand
    if config.remote.api_key:
        data["remote"]["api_key"] = config.remote.api_key
    if config.assistant.api_key:
        data["assistant"]["api_key"] = config.assistant.api_key

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def apply_env_overrides(config: JournalConfig) -> JournalConfig:
    """Apply REVERIE_* environment variables on top of a loaded config."""
    env = os.environ
    if env.get("REVERIE_BACKEND"):
        config.backend = env["REVERIE_BACKEND"]
    if env.get("REVERIE_SUPABASE_URL"):
        config.remote.url = env["REVERIE_SUPABASE_URL"]
    if env.get("REVERIE_SUPABASE_KEY"):
        config.remote.api_key = env["REVERIE_SUPABASE_KEY"]
    if env.get("REVERIE_ACCESS_TOKEN"):
        config.remote.access_token = env["REVERIE_ACCESS_TOKEN"]
    openai_key = env.get("REVERIE_OPENAI_API_KEY") or env.get("OPENAI_API_KEY")
    if openai_key and not config.assistant.api_key:
        config.assistant.api_key = openai_key
    return config


def load_or_create_config(data_path: Path) -> JournalConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = data_path / CONFIG_FILENAME

    if config_path.exists():
        config = load_config(data_path)
    else:
        config = create_default_config(data_path)
        save_config(config)
    return apply_env_overrides(config)

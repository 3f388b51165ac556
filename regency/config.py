"""
Configuration management for Regency.

Settings come from, in increasing priority: built-in defaults, the JSON
config file, environment variables, and explicit overrides.
"""

import json
import logging
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

ENV_OVERRIDES = {
    "db_path": "REGENCY_DB",
    "model": "REGENCY_MODEL",
    "generator_timeout": "REGENCY_GENERATOR_TIMEOUT",
    "max_retries": "REGENCY_MAX_RETRIES",
    "generator_workers": "REGENCY_GENERATOR_WORKERS",
    "max_choice_length": "REGENCY_MAX_CHOICE_LENGTH",
}


@dataclass
class EngineConfig:
    """Resolved engine settings."""
    db_path: str = "regency.db"
    model: str = "claude-sonnet-4-20250514"
    generator_timeout: float = 30.0
    max_retries: int = 2
    generator_workers: int = 4
    max_choice_length: int = 2000
    archive_skipped_issues: bool = False
    api_key: Optional[str] = None


def get_config_dir() -> Path:
    """Get the configuration directory, creating it if needed."""
    # Use XDG_CONFIG_HOME if set, otherwise ~/.config
    config_home = os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config")
    config_dir = Path(config_home) / "regency"
    config_dir.mkdir(parents=True, exist_ok=True)
    return config_dir


def get_config_path() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict:
    """Load configuration from disk."""
    config_path = get_config_path()
    if config_path.exists():
        try:
            with open(config_path) as f:
                return json.load(f)
        except (json.JSONDecodeError, IOError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", config_path, e)
            return {}
    return {}


def save_config(config: dict) -> None:
    """Save configuration to disk."""
    config_path = get_config_path()
    with open(config_path, "w") as f:
        json.dump(config, f, indent=2)
    # Secure the file (owner read/write only)
    os.chmod(config_path, 0o600)


def get_api_key() -> Optional[str]:
    """
    Get the Anthropic API key from config or environment.

    Priority:
    1. ANTHROPIC_API_KEY environment variable
    2. Stored config file
    """
    env_key = os.environ.get("ANTHROPIC_API_KEY")
    if env_key:
        return env_key

    config = load_config()
    return config.get("anthropic_api_key")


def set_api_key(api_key: str) -> None:
    """Store the API key in config."""
    config = load_config()
    config["anthropic_api_key"] = api_key
    save_config(config)


def clear_api_key() -> None:
    """Remove the stored API key."""
    config = load_config()
    config.pop("anthropic_api_key", None)
    save_config(config)


def load_engine_config(**overrides) -> EngineConfig:
    """
    Build an EngineConfig.

    The config file's "engine" section and REGENCY_* environment variables
    are layered over the defaults; keyword overrides that are not None win.
    """
    config = EngineConfig()
    known = {f.name: f.type for f in fields(EngineConfig)}

    file_section = load_config().get("engine", {})
    for key, value in file_section.items():
        if key in known:
            _set(config, key, value)
        else:
            logger.warning("Unknown engine setting in config file: %s", key)

    for key, env_name in ENV_OVERRIDES.items():
        value = os.environ.get(env_name)
        if value:
            _set(config, key, value)

    for key, value in overrides.items():
        if value is None:
            continue
        if key not in known:
            raise TypeError(f"Unknown engine setting: {key}")
        _set(config, key, value)

    if config.api_key is None:
        config.api_key = get_api_key()
    return config


def _set(config: EngineConfig, key: str, value) -> None:
    default = getattr(EngineConfig, key, None)
    if isinstance(default, bool):
        if isinstance(value, str):
            value = value.strip().lower() in ("1", "true", "yes", "on")
        else:
            value = bool(value)
    elif isinstance(default, int):
        value = int(value)
    elif isinstance(default, float):
        value = float(value)
    elif value is not None:
        value = str(value)
    setattr(config, key, value)

"""Configuration for feed_aggregator.

Settings come from an optional YAML file and FEED_AGGREGATOR_* environment
variables, with the environment taking precedence. Values are validated by
pydantic-settings.
Config file location: ~/.feed_aggregator/config.yaml (or FEED_AGGREGATOR_CONFIG env var)
"""

import os
from pathlib import Path
from typing import Optional

import yaml
from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_USER_AGENT = "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36"

ENV_PREFIX = "FEED_AGGREGATOR_"


class ServerConfig(BaseSettings):
    """Server and ingestion settings."""

    model_config = SettingsConfigDict(
        env_prefix=ENV_PREFIX,
        env_ignore_empty=True,
        extra="ignore",
    )

    name: str = "feed_aggregator"
    log_level: str = "INFO"
    log_file: Optional[str] = None
    db_path: Optional[str] = None
    user_agent: str = DEFAULT_USER_AGENT
    request_timeout: float = Field(default=30.0, gt=0)
    # Seconds between scheduled refreshes of every feed
    polling_interval: int = Field(default=300, gt=0)

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        # Environment beats values passed in from the YAML file
        return env_settings, init_settings


def _get_config_path() -> Path:
    """Get the config file path, respecting FEED_AGGREGATOR_CONFIG env var."""
    env_path = os.environ.get(f"{ENV_PREFIX}CONFIG")
    if env_path:
        return Path(env_path)
    return Path.home() / ".feed_aggregator" / "config.yaml"


def load_config(config_path: Optional[Path] = None) -> ServerConfig:
    """Load configuration from YAML and the environment.

    Args:
        config_path: Optional explicit path to a YAML file

    Returns:
        ServerConfig with file values overridden by environment variables

    Raises:
        ValueError: If the YAML is invalid, is not a mapping, or a value fails validation
    """
    if config_path is None:
        config_path = _get_config_path()

    data = {}
    if config_path.exists():
        try:
            with open(config_path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in config file: {e}") from e
        if not isinstance(data, dict):
            raise ValueError(f"Config file {config_path} must contain a mapping")

    try:
        return ServerConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid configuration: {e}") from e


_config: Optional[ServerConfig] = None


def get_config() -> ServerConfig:
    """Get or create the process-wide configuration."""
    global _config

    if _config is None:
        _config = load_config()

    return _config

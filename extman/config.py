"""Configuration management for extman.

Loads configuration from:
1. extman.toml (defaults)
2. .env file
3. Environment variables (overrides)
"""

import os
import platform
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from dotenv import load_dotenv

from extensions.fetcher import DEFAULT_DOWNLOAD_TIMEOUT, DEFAULT_EXTENSIONS_DIR
from extensions.marketplace import DEFAULT_CACHE_TTL, DEFAULT_MARKETPLACE_URL, DEFAULT_TIMEOUT
from extensions.store import DEFAULT_REGISTRY_PATH
from extman import __version__

CONFIG_FILENAME = "extman.toml"


@dataclass
class MarketplaceConfig:
    """Remote marketplace configuration."""

    url: str = DEFAULT_MARKETPLACE_URL
    api_key: str = ""
    timeout: float = DEFAULT_TIMEOUT
    download_timeout: float = DEFAULT_DOWNLOAD_TIMEOUT
    cache_ttl: float = DEFAULT_CACHE_TTL  # Seconds; 0 disables caching


@dataclass
class HostConfig:
    """Identity and versions of this host installation."""

    site_url: str = ""
    runtime_version: str = field(default_factory=platform.python_version)
    platform_version: str = "0"
    app_version: str = __version__


@dataclass
class StorageConfig:
    """Where packages and the registry live."""

    extensions_dir: str = str(DEFAULT_EXTENSIONS_DIR)
    registry_path: str = str(DEFAULT_REGISTRY_PATH)


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class Config:
    """Main configuration container."""

    marketplace: MarketplaceConfig = field(default_factory=MarketplaceConfig)
    host: HostConfig = field(default_factory=HostConfig)
    storage: StorageConfig = field(default_factory=StorageConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Config":
        """Create Config from dictionary."""
        return cls(
            marketplace=MarketplaceConfig(**data.get("marketplace", {})),
            host=HostConfig(**data.get("host", {})),
            storage=StorageConfig(**data.get("storage", {})),
            logging=LoggingConfig(**data.get("logging", {})),
        )

    def to_dict(self) -> dict[str, Any]:
        """Config as nested dicts, with the API key masked."""
        return {
            "marketplace": {
                "url": self.marketplace.url,
                "api_key": "****" if self.marketplace.api_key else "",
                "timeout": self.marketplace.timeout,
                "download_timeout": self.marketplace.download_timeout,
                "cache_ttl": self.marketplace.cache_ttl,
            },
            "host": {
                "site_url": self.host.site_url,
                "runtime_version": self.host.runtime_version,
                "platform_version": self.host.platform_version,
                "app_version": self.host.app_version,
            },
            "storage": {
                "extensions_dir": self.storage.extensions_dir,
                "registry_path": self.storage.registry_path,
            },
            "logging": {"level": self.logging.level},
        }


def find_config_file() -> Path | None:
    """Find extman.toml in current or parent directories.

    Returns:
        Path to extman.toml or None if not found.
    """
    current = Path.cwd()

    for directory in [current, *current.parents]:
        config_path = directory / CONFIG_FILENAME
        if config_path.exists():
            return config_path

    return None


def load_config(config_path: Path | str | None = None) -> Config:
    """Load configuration from file and environment.

    Args:
        config_path: Optional explicit path to extman.toml

    Returns:
        Config object with merged settings.
    """
    load_dotenv()

    config_data: dict[str, Any] = {}

    if config_path is None:
        config_path = find_config_file()

    if config_path is not None:
        path = Path(config_path)
        if path.exists():
            with open(path, "rb") as f:
                config_data = tomllib.load(f)

    env_overrides = {
        "marketplace": {
            "url": os.getenv("EXTMAN_MARKETPLACE_URL"),
            "api_key": os.getenv("EXTMAN_API_KEY"),
            "timeout": _float_or_none(os.getenv("EXTMAN_HTTP_TIMEOUT")),
        },
        "host": {
            "site_url": os.getenv("EXTMAN_SITE_URL"),
        },
        "storage": {
            "extensions_dir": os.getenv("EXTMAN_EXTENSIONS_DIR"),
            "registry_path": os.getenv("EXTMAN_REGISTRY_PATH"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL"),
        },
    }

    for section, values in env_overrides.items():
        if section not in config_data:
            config_data[section] = {}
        for key, value in values.items():
            if value is not None:
                config_data[section][key] = value

    return Config.from_dict(config_data)


def _float_or_none(value: str | None) -> float | None:
    """Convert string to float, or return None."""
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        return None


_config: Config | None = None


def get_config() -> Config:
    """Get the global configuration instance.

    Returns:
        Config object (loaded once, cached).
    """
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reload_config() -> Config:
    """Force reload of configuration.

    Returns:
        Freshly loaded Config object.
    """
    global _config
    _config = load_config()
    return _config

"""
Configuration module for chunkstore.

Supports loading from YAML/JSON files with environment variable overrides.
Default values are loaded from defaults.yaml for maintainability.
"""

import json
import logging
import os
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

from chunkstore.core.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Path to the default configuration file
_DEFAULTS_CONFIG_PATH = Path(__file__).parent / "defaults.yaml"

# Cache for default values
_defaults_cache: dict[str, Any] | None = None


def _load_defaults() -> dict[str, Any]:
    """Load default configuration values from defaults.yaml."""
    global _defaults_cache

    if _defaults_cache is not None:
        return _defaults_cache

    if not _DEFAULTS_CONFIG_PATH.exists():
        logger.warning(f"Defaults config not found: {_DEFAULTS_CONFIG_PATH}")
        _defaults_cache = {}
        return _defaults_cache

    try:
        content = _DEFAULTS_CONFIG_PATH.read_text(encoding="utf-8")
        _defaults_cache = yaml.safe_load(content) or {}
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse defaults config: {e}")
        _defaults_cache = {}

    return _defaults_cache


def _get_default(section: str, key: str, fallback: Any = None) -> Any:
    """Get a default value from the defaults config."""
    defaults = _load_defaults()
    section_defaults = defaults.get(section, {})
    return section_defaults.get(key, fallback)


@dataclass
class StoreConfig:
    """Configuration for chunk paging."""

    chunk_size: int = field(default_factory=lambda: _get_default("store", "chunk_size", 40))
    version: str = field(default_factory=lambda: str(_get_default("store", "version", "1")))


@dataclass
class RemoteConfig:
    """Configuration for retrying remote fetches."""

    max_retries: int = field(default_factory=lambda: _get_default("remote", "max_retries", 0))
    base_delay: float = field(default_factory=lambda: _get_default("remote", "base_delay", 0.5))
    max_delay: float = field(default_factory=lambda: _get_default("remote", "max_delay", 10.0))
    exponential_base: float = field(
        default_factory=lambda: _get_default("remote", "exponential_base", 2.0)
    )


@dataclass
class LoggingConfig:
    """Configuration for logging."""

    level: str = field(default_factory=lambda: _get_default("logging", "level", "INFO"))
    format: str = field(
        default_factory=lambda: _get_default(
            "logging", "format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
        )
    )


@dataclass
class ChunkStoreConfig:
    """Main configuration class for chunkstore."""

    store: StoreConfig = field(default_factory=StoreConfig)
    remote: RemoteConfig = field(default_factory=RemoteConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_file(cls, path: Path | str) -> "ChunkStoreConfig":
        """
        Load configuration from a YAML or JSON file.

        Args:
            path: Path to the configuration file (.yaml, .yml, or .json)

        Returns:
            ChunkStoreConfig instance with loaded values

        Raises:
            FileNotFoundError: If the config file doesn't exist
            ValueError: If the file format is unsupported
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Configuration file not found: {path}")

        content = path.read_text(encoding="utf-8")

        if path.suffix in (".yaml", ".yml"):
            data = yaml.safe_load(content) or {}
        elif path.suffix == ".json":
            data = json.loads(content) if content.strip() else {}
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        return cls._from_dict(data)

    @classmethod
    def _from_dict(cls, data: dict) -> "ChunkStoreConfig":
        """Create ChunkStoreConfig from a dictionary."""
        config = cls()

        if "store" in data:
            config.store = StoreConfig(**data["store"])
        if "remote" in data:
            config.remote = RemoteConfig(**data["remote"])
        if "logging" in data:
            config.logging = LoggingConfig(**data["logging"])

        return config

    def apply_env_overrides(self) -> "ChunkStoreConfig":
        """
        Apply environment variable overrides to the configuration.

        Environment variables follow the pattern: CHUNKSTORE_<SECTION>_<KEY>
        Examples:
            - CHUNKSTORE_STORE_CHUNK_SIZE
            - CHUNKSTORE_REMOTE_MAX_RETRIES
            - CHUNKSTORE_LOGGING_LEVEL

        Returns:
            Self with environment overrides applied
        """
        env_mappings = {
            # Store config
            "CHUNKSTORE_STORE_CHUNK_SIZE": ("store", "chunk_size", int),
            "CHUNKSTORE_STORE_VERSION": ("store", "version", str),
            # Remote config
            "CHUNKSTORE_REMOTE_MAX_RETRIES": ("remote", "max_retries", int),
            "CHUNKSTORE_REMOTE_BASE_DELAY": ("remote", "base_delay", float),
            "CHUNKSTORE_REMOTE_MAX_DELAY": ("remote", "max_delay", float),
            "CHUNKSTORE_REMOTE_EXPONENTIAL_BASE": ("remote", "exponential_base", float),
            # Logging config
            "CHUNKSTORE_LOGGING_LEVEL": ("logging", "level", str),
            "CHUNKSTORE_LOGGING_FORMAT": ("logging", "format", str),
        }

        for env_var, (section, key, converter) in env_mappings.items():
            value = os.environ.get(env_var)
            if value is not None:
                section_obj = getattr(self, section)
                try:
                    setattr(section_obj, key, converter(value))
                except ValueError as e:
                    raise ConfigurationError(f"Invalid value for {env_var}: {value!r}") from e

        return self

    def validate(self) -> "ChunkStoreConfig":
        """
        Check value ranges.

        Raises:
            ConfigurationError: If a value is out of range
        """
        if self.store.chunk_size < 1:
            raise ConfigurationError(
                f"store.chunk_size must be at least 1, got {self.store.chunk_size}"
            )
        if self.remote.max_retries < 0:
            raise ConfigurationError(
                f"remote.max_retries must be non-negative, got {self.remote.max_retries}"
            )
        return self

    def to_dict(self) -> dict:
        """Convert configuration to a dictionary."""
        return asdict(self)

    def to_yaml(self) -> str:
        """Serialize configuration to YAML string."""
        return yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    def to_json(self) -> str:
        """Serialize configuration to JSON string."""
        return json.dumps(self.to_dict(), indent=2)

    def save(self, path: Path | str) -> None:
        """
        Save configuration to a file.

        Args:
            path: Path to save the configuration (.yaml, .yml, or .json)

        Raises:
            ValueError: If the file format is unsupported
        """
        path = Path(path)

        if path.suffix in (".yaml", ".yml"):
            content = self.to_yaml()
        elif path.suffix == ".json":
            content = self.to_json()
        else:
            raise ValueError(f"Unsupported config file format: {path.suffix}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")


def configure_logging(config: LoggingConfig) -> logging.Logger:
    """
    Apply a LoggingConfig to the ``chunkstore`` logger hierarchy.

    Adds a stream handler once; later calls only update level and format.

    Returns:
        The configured package logger
    """
    package_logger = logging.getLogger("chunkstore")
    package_logger.setLevel(config.level.upper())

    formatter = logging.Formatter(config.format)
    handler = next(
        (h for h in package_logger.handlers if getattr(h, "_chunkstore_handler", False)),
        None,
    )
    if handler is None:
        handler = logging.StreamHandler()
        handler._chunkstore_handler = True  # type: ignore[attr-defined]
        package_logger.addHandler(handler)
    handler.setFormatter(formatter)
    return package_logger


def load_config(
    config_path: Optional[Path | str] = None, apply_env: bool = True
) -> ChunkStoreConfig:
    """
    Load configuration with optional environment variable overrides.

    Args:
        config_path: Optional path to config file. If None, uses defaults.
        apply_env: Whether to apply environment variable overrides.

    Returns:
        ChunkStoreConfig instance
    """
    if config_path:
        config = ChunkStoreConfig.from_file(config_path)
    else:
        config = ChunkStoreConfig()

    if apply_env:
        config.apply_env_overrides()

    return config.validate()

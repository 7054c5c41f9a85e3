"""
TableDB Configuration Management

Environment-based configuration with validation and type checking.
Loads from environment variables, or from a connection string such as
"fast://./data" or "memory://".
"""

import os
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List
from urllib.parse import urlsplit


class StorageBackend(str, Enum):
    """Storage provider options."""
    FAST = "fast"      # JSON-per-table files behind the write-batching cache
    MEMORY = "memory"  # Process memory only, nothing persisted


class LogLevel(str, Enum):
    """Logging level options."""
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"


@dataclass
class TableDBConfig:
    """
    Complete TableDB configuration.

    All values come from environment variables with sensible defaults.
    """

    # Storage configuration
    storage_backend: StorageBackend = StorageBackend.FAST
    data_dir: str = "./data"
    preload: List[str] = field(default_factory=list)

    # Write batching
    write_delay_ms: int = 100  # Debounce window before a flush

    # Cache configuration
    hot_data_threshold: int = 10  # Disk loads before a table is cached
    cache_high_water: int = 50    # Evict once more tables than this are cached
    cache_low_water: int = 40     # ...down to this many

    # Server configuration
    host: str = "0.0.0.0"
    http_port: int = 8000

    # Observability configuration
    log_level: LogLevel = LogLevel.INFO
    metrics_enabled: bool = True

    @classmethod
    def from_env(cls) -> "TableDBConfig":
        """
        Load configuration from environment variables.

        Environment variable names:
        - TABLEDB_STORAGE_BACKEND
        - TABLEDB_DATA_DIR
        - TABLEDB_PRELOAD (comma separated table names)
        - TABLEDB_WRITE_DELAY_MS
        - TABLEDB_HOT_DATA_THRESHOLD
        - TABLEDB_CACHE_HIGH_WATER
        - TABLEDB_CACHE_LOW_WATER
        - TABLEDB_HOST
        - TABLEDB_HTTP_PORT
        - TABLEDB_LOG_LEVEL
        - TABLEDB_METRICS_ENABLED
        - TABLEDB_CONNECTION_STRING (e.g. "fast://./data", "memory://")
        """

        def get_int(key: str, default: int) -> int:
            try:
                return int(os.getenv(f"TABLEDB_{key}", default))
            except ValueError:
                return default

        def get_bool(key: str, default: bool) -> bool:
            value = os.getenv(f"TABLEDB_{key}", str(default)).lower()
            return value in ("true", "1", "yes", "on")

        def get_str(key: str, default: str) -> str:
            return os.getenv(f"TABLEDB_{key}", default)

        def get_enum(key: str, enum_cls, default):
            value = get_str(key, default.value)
            try:
                return enum_cls(value)
            except ValueError:
                return default

        config = cls(
            storage_backend=get_enum("STORAGE_BACKEND", StorageBackend, StorageBackend.FAST),
            data_dir=get_str("DATA_DIR", "./data"),
            preload=parse_table_list(get_str("PRELOAD", "")),
            write_delay_ms=get_int("WRITE_DELAY_MS", 100),
            hot_data_threshold=get_int("HOT_DATA_THRESHOLD", 10),
            cache_high_water=get_int("CACHE_HIGH_WATER", 50),
            cache_low_water=get_int("CACHE_LOW_WATER", 40),
            host=get_str("HOST", "0.0.0.0"),
            http_port=get_int("HTTP_PORT", 8000),
            log_level=get_enum("LOG_LEVEL", LogLevel, LogLevel.INFO),
            metrics_enabled=get_bool("METRICS_ENABLED", True),
        )

        # A connection string overrides backend and data_dir
        connection_string = get_str("CONNECTION_STRING", "")
        if connection_string:
            config = config.with_connection_string(connection_string)

        return config

    def with_connection_string(self, connection_string: str) -> "TableDBConfig":
        """
        Return a copy pointed at the backend named by a connection string.

        "fast://./data" selects the file-backed store rooted at ./data,
        "memory://" the in-memory store. A fast:// string without a path
        keeps the current data_dir.

        Raises:
            ValueError: If the scheme is not supported
        """
        parts = urlsplit(connection_string)
        scheme = parts.scheme.lower()

        if scheme == StorageBackend.MEMORY.value:
            return replace(self, storage_backend=StorageBackend.MEMORY)

        if scheme == StorageBackend.FAST.value:
            data_dir = (parts.netloc + parts.path) or self.data_dir
            return replace(self, storage_backend=StorageBackend.FAST, data_dir=data_dir)

        raise ValueError(f"Unknown storage provider: {connection_string}")

    @classmethod
    def from_connection_string(cls, connection_string: str, **overrides) -> "TableDBConfig":
        """Build a default configuration for a connection string."""
        return cls(**overrides).with_connection_string(connection_string)

    def validate(self) -> bool:
        """
        Validate configuration values.

        Returns:
            True if valid, raises ValueError if invalid
        """
        if self.http_port < 1024 or self.http_port > 65535:
            raise ValueError(f"Invalid http_port: {self.http_port}")

        if self.write_delay_ms < 1:
            raise ValueError(f"write_delay_ms too small: {self.write_delay_ms}")

        if self.hot_data_threshold < 1:
            raise ValueError(f"hot_data_threshold too small: {self.hot_data_threshold}")

        if self.cache_low_water < 1:
            raise ValueError(f"cache_low_water too small: {self.cache_low_water}")

        if self.cache_high_water < self.cache_low_water:
            raise ValueError(
                f"cache_high_water ({self.cache_high_water}) must be >= "
                f"cache_low_water ({self.cache_low_water})"
            )

        if self.storage_backend == StorageBackend.FAST and not self.data_dir:
            raise ValueError("data_dir is required for the fast backend")

        return True

    def to_dict(self) -> dict:
        """Convert configuration to dictionary."""
        return {
            "storage_backend": self.storage_backend.value,
            "data_dir": self.data_dir,
            "preload": list(self.preload),
            "write_delay_ms": self.write_delay_ms,
            "hot_data_threshold": self.hot_data_threshold,
            "cache_high_water": self.cache_high_water,
            "cache_low_water": self.cache_low_water,
            "host": self.host,
            "http_port": self.http_port,
            "log_level": self.log_level.value,
            "metrics_enabled": self.metrics_enabled,
        }

    def __str__(self) -> str:
        """Pretty print configuration."""
        lines = ["TableDB Configuration:"]
        for key, value in self.to_dict().items():
            lines.append(f"  {key}: {value}")
        return "\n".join(lines)


def parse_table_list(value: str) -> List[str]:
    """Split a comma separated list of table names, dropping blanks."""
    return [name.strip() for name in value.split(",") if name.strip()]


# Load default configuration
DEFAULT_CONFIG = TableDBConfig.from_env()

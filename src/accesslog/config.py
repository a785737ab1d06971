"""
=============================================================================
CONFIGURATION
=============================================================================

Centralized configuration for the access log and the HTTP host.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   Priority (highest to lowest):                                     │
    │                                                                      │
    │   1. Command-line arguments                                         │
    │      └── python -m accesslog --format combined                     │
    │                                                                      │
    │   2. Environment variables                                          │
    │      └── ACCESS_LOG_FORMAT=combined python -m accesslog            │
    │                                                                      │
    │   3. Dataclass defaults                                             │
    │      └── /var/log/apache2/access.log, 100 MB, 5 backups, 30 days   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Validation happens eagerly at startup (fail fast): a typo in
ACCESS_LOG_FORMAT should stop the process before it binds a port, not
surface hours later as a missing access log.

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional

from .errors import ConfigError
from .formatting import LogFormat
from .rotation import RotationPolicy


_TRUE_VALUES = ("true", "1", "yes", "on")
_FALSE_VALUES = ("false", "0", "no", "off")


def _parse_bool(name: str, value: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ConfigError(f"{name} must be a boolean (true/false), got {value!r}")


def _parse_number(name: str, value: str, kind=int):
    try:
        return kind(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


@dataclass
class AccessLogConfig:
    """
    Configuration for Apache-style access logging.

    Defaults match a stock Apache layout so the output drops into existing
    logrotate/GoAccess setups.
    """

    log_path: str = "/var/log/apache2/access.log"
    """Live log file. Rotated files are created next to it."""

    max_size_mb: float = 100
    """Rotate when the live file would exceed this size. 0 = never."""

    max_backups: int = 5
    """Rotated files to keep. 0 = keep all (age still applies)."""

    max_age_days: float = 30
    """Delete rotated files older than this. 0 = keep regardless of age."""

    compress: bool = True
    """Gzip rotated files."""

    log_format: LogFormat = LogFormat.COMMON
    """LogFormat.COMMON or LogFormat.COMBINED."""

    secure_interval: float = 60.0
    """Seconds between permission guardian passes."""

    def __post_init__(self):
        if not isinstance(self.log_format, LogFormat):
            self.log_format = LogFormat.parse(self.log_format)

    @property
    def rotation_policy(self) -> RotationPolicy:
        return RotationPolicy(
            max_size_mb=self.max_size_mb,
            max_backups=self.max_backups,
            max_age_days=self.max_age_days,
            compress=self.compress,
        )

    @classmethod
    def from_env(cls) -> "AccessLogConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        ACCESS_LOG_PATH             Live log file path
        ACCESS_LOG_MAX_SIZE_MB      Rotation threshold in MB (default: 100)
        ACCESS_LOG_MAX_BACKUPS      Rotated files to keep (default: 5)
        ACCESS_LOG_MAX_AGE_DAYS     Max age of rotated files (default: 30)
        ACCESS_LOG_COMPRESS         true/false (default: true)
        ACCESS_LOG_FORMAT           common/combined (default: common)
        ACCESS_LOG_SECURE_INTERVAL  Guardian interval in seconds (default: 60)

        =====================================================================
        """
        env = os.environ
        return cls(
            log_path=env.get("ACCESS_LOG_PATH", cls.log_path),
            max_size_mb=_parse_number(
                "ACCESS_LOG_MAX_SIZE_MB", env.get("ACCESS_LOG_MAX_SIZE_MB", str(cls.max_size_mb)), float
            ),
            max_backups=_parse_number(
                "ACCESS_LOG_MAX_BACKUPS", env.get("ACCESS_LOG_MAX_BACKUPS", str(cls.max_backups))
            ),
            max_age_days=_parse_number(
                "ACCESS_LOG_MAX_AGE_DAYS", env.get("ACCESS_LOG_MAX_AGE_DAYS", str(cls.max_age_days)), float
            ),
            compress=_parse_bool("ACCESS_LOG_COMPRESS", env.get("ACCESS_LOG_COMPRESS", "true")),
            log_format=LogFormat.parse(env.get("ACCESS_LOG_FORMAT", LogFormat.COMMON.value)),
            secure_interval=_parse_number(
                "ACCESS_LOG_SECURE_INTERVAL",
                env.get("ACCESS_LOG_SECURE_INTERVAL", str(cls.secure_interval)),
                float,
            ),
        )

    def validate(self) -> None:
        """
        Validate configuration values.

        Raises:
            ConfigError: On the first invalid value.
        """
        if not self.log_path or not self.log_path.strip():
            raise ConfigError("log_path must not be empty")

        if os.path.basename(self.log_path) == "":
            raise ConfigError(f"log_path must name a file, got {self.log_path!r}")

        for name in ("max_size_mb", "max_backups", "max_age_days"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigError(f"{name} must be >= 0, got {value}")

        if self.secure_interval <= 0:
            raise ConfigError(f"secure_interval must be > 0, got {self.secure_interval}")

        if not isinstance(self.log_format, LogFormat):
            raise ConfigError(f"log_format must be a LogFormat, got {self.log_format!r}")


@dataclass
class ServerConfig:
    """
    Configuration for the HTTP host that serves requests behind the
    access-log middleware.

    Development:
        ServerConfig(host="127.0.0.1", port=8080, log_level="DEBUG")

    Production:
        ServerConfig(host="0.0.0.0", port=80, max_workers=32)
    """

    host: str = "127.0.0.1"
    port: int = 8080
    backlog: int = 128

    buffer_size: int = 8192
    """Receive buffer size in bytes."""

    timeout: Optional[float] = 30.0
    """Socket timeout in seconds. None = blocking."""

    max_request_size: int = 10 * 1024 * 1024  # 10 MB

    max_workers: int = 16
    """Worker threads handling connections."""

    log_level: str = "INFO"
    """Level of the operational (not access) log."""

    server_name: str = "accesslog/1.0"
    """Value of the Server header."""

    shutdown_timeout: float = 10.0
    """Seconds to wait for in-flight requests on shutdown."""

    @classmethod
    def from_env(cls) -> "ServerConfig":
        """
        Create configuration from environment variables.

        HTTP_HOST       Server host (default: 127.0.0.1)
        HTTP_PORT       Server port (default: 8080)
        HTTP_WORKERS    Max worker threads (default: 16)
        HTTP_TIMEOUT    Request timeout in seconds (default: 30)
        HTTP_LOG_LEVEL  Logging level (default: INFO)
        """
        return cls(
            host=os.getenv("HTTP_HOST", "127.0.0.1"),
            port=_parse_number("HTTP_PORT", os.getenv("HTTP_PORT", "8080")),
            max_workers=_parse_number("HTTP_WORKERS", os.getenv("HTTP_WORKERS", "16")),
            timeout=_parse_number("HTTP_TIMEOUT", os.getenv("HTTP_TIMEOUT", "30"), float),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
        )

    def validate(self) -> None:
        """Validate configuration values (fail fast)."""
        # port 0 lets the OS pick a free port (tests)
        if not 0 <= self.port < 65536:
            raise ConfigError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.max_workers < 1:
            raise ConfigError("max_workers must be >= 1")

        if self.buffer_size < 1024:
            raise ConfigError("buffer_size must be >= 1024")

        if self.timeout is not None and self.timeout <= 0:
            raise ConfigError("timeout must be > 0")

        if self.shutdown_timeout < 0:
            raise ConfigError("shutdown_timeout must be >= 0")

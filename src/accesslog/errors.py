"""
=============================================================================
ACCESS LOG ERRORS
=============================================================================

Exception hierarchy for the access-logging package.

=============================================================================
ERROR KINDS
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        WHO RAISES, WHO HANDLES                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ConfigError          config.validate()    → bootstrap (exit 1)    │
    │   LogSetupError        secure_live_file()   → bootstrap (exit 1)    │
    │   LogWriteError        RotatingSink         → middleware (warning)  │
    │   PermissionFixError   secure_rotated_files → guardian (warning)    │
    │                                                                      │
    │   Rotation failures never leave the sink: the old file stays in    │
    │   place and rotation is retried on a later write.                   │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Only the bootstrap (python -m accesslog) decides to exit. Nothing raised
here should take down a running server.

=============================================================================
"""

from typing import List, Optional, Tuple


class AccessLogError(Exception):
    """Base class for every error raised by the access-log core."""


class ConfigError(AccessLogError, ValueError):
    """
    Raised when configuration values are invalid.

    Also a ValueError, so callers that validate with ``except ValueError``
    keep working.
    """


class LogSetupError(AccessLogError):
    """
    The log directory or the initial log file could not be created.

    Carries the offending path so the bootstrap can print a useful message.
    """

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class LogWriteError(AccessLogError):
    """Appending a line to the live log file failed (disk full, EACCES...)."""

    def __init__(self, message: str, path: Optional[str] = None):
        super().__init__(message)
        self.path = path


class PermissionFixError(AccessLogError):
    """
    One or more log files could not be re-secured.

    A guardian pass keeps going after a failed chmod; the failures are
    collected and raised together once every candidate has been visited.

    Attributes:
        failures: List of (path, OSError) pairs.
    """

    def __init__(self, message: str, failures: Optional[List[Tuple[str, OSError]]] = None):
        super().__init__(message)
        self.failures: List[Tuple[str, OSError]] = list(failures or [])

    @property
    def paths(self) -> List[str]:
        """Paths that failed, in visiting order."""
        return [path for path, _ in self.failures]

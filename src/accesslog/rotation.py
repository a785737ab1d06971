"""
=============================================================================
ROTATING FILE SINK
=============================================================================

Append-only text sink bound to one file, rotated by size and pruned by
count and age.

=============================================================================
ROTATION, STEP BY STEP
=============================================================================

    max_size_mb reached on the next write (live file non-empty):

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │   1. close access.log                                                │
    │   2. shift backups, highest number first                             │
    │        access.log.2.gz → access.log.3.gz                             │
    │        access.log.1.gz → access.log.2.gz                             │
    │   3. rename access.log → access.log.1                                │
    │   4. reopen a fresh access.log (0640)                                │
    │   5. compress access.log.1 → access.log.1.gz   (if compress=True)    │
    │   6. prune: number > max_backups, or mtime older than max_age_days   │
    │   7. write the pending line into the fresh file                      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

Lowest number = most recent. The check happens BEFORE a line is written,
so a line always lands whole in one file: never split across the rotation
boundary, never written twice.

=============================================================================
CONCURRENCY
=============================================================================

Every request thread appends through the same sink. One lock serialises
appends and rotations; rotation only ever runs while that lock is held.
The lock is not reentrant and rotation never calls back into write_line().

=============================================================================
FAILURE POLICY
=============================================================================

    write fails        → LogWriteError to the caller (line lost, sink usable)
    rename fails       → warning, live file reopened, retried on next write
    gzip fails         → warning, uncompressed backup kept
    prune unlink fails → warning, file left for the next rotation

=============================================================================
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple
import gzip
import logging
import os
import shutil
import threading
import time

from .errors import ConfigError, LogWriteError
from .permissions import COMPRESSED_SUFFIX, LOG_FILE_MODE, rotated_file_pattern


logger = logging.getLogger(__name__)


MEGABYTE = 1024 * 1024
SECONDS_PER_DAY = 24 * 60 * 60


@dataclass(frozen=True)
class RotationPolicy:
    """
    When to rotate and how much history to keep.

    =========================================================================
    ZERO MEANS "NO LIMIT"
    =========================================================================

        max_size_mb  = 0   never rotate by size, the live file grows forever
        max_backups  = 0   keep any number of backups (age still prunes)
        max_age_days = 0   keep backups of any age (count still prunes)

    max_size_mb may be fractional (0.5 = 512 KiB).

    =========================================================================
    """

    max_size_mb: float = 100
    max_backups: int = 5
    max_age_days: float = 30
    compress: bool = True

    def __post_init__(self):
        for name in ("max_size_mb", "max_backups", "max_age_days"):
            value = getattr(self, name)
            if value < 0:
                raise ConfigError(f"{name} must be >= 0, got {value}")

    @property
    def max_bytes(self) -> int:
        return int(self.max_size_mb * MEGABYTE)

    @property
    def max_age_seconds(self) -> float:
        return self.max_age_days * SECONDS_PER_DAY


def compress_file(filepath: str) -> str:
    """
    Gzip-compress a file next to itself and remove the original.

    The .gz is created with the log file mode and set to exactly that mode
    before any data is written. A partial .gz left by a failure is removed
    before the error propagates.

    Returns:
        Path of the compressed file.
    """
    gz_path = filepath + COMPRESSED_SUFFIX
    try:
        with open(filepath, "rb") as f_in:
            fd = os.open(gz_path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, LOG_FILE_MODE)
            with os.fdopen(fd, "wb") as raw:
                # os.open() mode is filtered through the umask
                os.fchmod(raw.fileno(), LOG_FILE_MODE)
                with gzip.GzipFile(filename=filepath, mode="wb", fileobj=raw) as f_out:
                    shutil.copyfileobj(f_in, f_out)
    except OSError:
        if os.path.exists(gz_path):
            os.remove(gz_path)
        raise
    os.remove(filepath)
    return gz_path


class RotatingSink:
    """
    Thread-safe, size-rotated, append-only line sink.

    Usage:
        sink = RotatingSink("/var/log/apache2/access.log", RotationPolicy(max_size_mb=50))
        sink.write_line('127.0.0.1 - - [...] "GET / HTTP/1.1" 200 12')
        sink.close()

    Attributes:
        rotations: Number of completed rotations since the sink was created.
    """

    def __init__(
        self,
        path: str,
        policy: Optional[RotationPolicy] = None,
        clock: Callable[[], float] = time.time,
        encoding: str = "utf-8",
        open_now: bool = True,
    ):
        self._path = os.path.abspath(path)
        self._policy = policy or RotationPolicy()
        self._clock = clock
        self._encoding = encoding
        self._lock = threading.Lock()
        self._stream = None
        self._size = 0
        self._closed = False
        self.rotations = 0

        if open_now:
            with self._lock:
                self._open()

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def path(self) -> str:
        return self._path

    @property
    def policy(self) -> RotationPolicy:
        return self._policy

    @property
    def size(self) -> int:
        """Bytes in the live file as tracked by the sink."""
        return self._size

    @property
    def closed(self) -> bool:
        return self._closed

    # =========================================================================
    # PUBLIC API
    # =========================================================================

    def write_line(self, text: str) -> None:
        """
        Append one line, rotating first if it would overflow the live file.

        Raises:
            LogWriteError: If the line could not be written. The sink stays
                           usable; the next call reopens the file.
        """
        if not text.endswith("\n"):
            text += "\n"
        data = text.encode(self._encoding)

        with self._lock:
            if self._closed:
                raise LogWriteError(f"Sink for {self._path} is closed", path=self._path)
            try:
                if self._stream is None:
                    self._open()
                if self._should_rotate(len(data)):
                    self._rotate()
                self._stream.write(data)
                self._stream.flush()
            except OSError as e:
                self._close_stream()
                raise LogWriteError(f"Failed to write {self._path}: {e}", path=self._path) from e
            self._size += len(data)

    def rotate(self) -> bool:
        """
        Rotate now, regardless of size.

        Returns:
            True if the live file was moved aside.
        """
        with self._lock:
            if self._closed:
                raise LogWriteError(f"Sink for {self._path} is closed", path=self._path)
            if self._stream is None:
                self._open()
            return self._rotate()

    def backups(self) -> List[str]:
        """Rotated files, most recent first."""
        return [path for _, path in self._list_backups()]

    def close(self) -> None:
        with self._lock:
            self._close_stream()
            self._closed = True

    def __enter__(self) -> "RotatingSink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def __repr__(self) -> str:
        return f"RotatingSink(path={self._path!r}, policy={self._policy!r})"

    # =========================================================================
    # INTERNALS (lock held)
    # =========================================================================

    def _open(self) -> None:
        existed = os.path.exists(self._path)
        fd = os.open(self._path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, LOG_FILE_MODE)
        try:
            if not existed:
                os.chmod(self._path, LOG_FILE_MODE)
            self._size = os.fstat(fd).st_size
        except OSError:
            os.close(fd)
            raise
        self._stream = os.fdopen(fd, "ab")

    def _close_stream(self) -> None:
        if self._stream is not None:
            try:
                self._stream.close()
            except OSError as e:
                logger.warning(f"Error closing {self._path}: {e}")
            self._stream = None

    def _should_rotate(self, incoming: int) -> bool:
        max_bytes = self._policy.max_bytes
        if max_bytes <= 0 or self._size == 0:
            return False
        return self._size + incoming > max_bytes

    def _backup_path(self, number: int, compressed: bool = False) -> str:
        suffix = COMPRESSED_SUFFIX if compressed else ""
        return f"{self._path}.{number}{suffix}"

    def _list_backups(self) -> List[Tuple[int, str]]:
        """(number, path) of every backup, lowest number first."""
        directory, live_name = os.path.split(self._path)
        pattern = rotated_file_pattern(live_name)
        found = []
        for name in os.listdir(directory):
            match = pattern.match(name)
            if match:
                found.append((int(match.group(1)), os.path.join(directory, name)))
        found.sort()
        return found

    def _rotate(self) -> bool:
        self._close_stream()

        try:
            for number, path in reversed(self._list_backups()):
                compressed = path.endswith(COMPRESSED_SUFFIX)
                os.replace(path, self._backup_path(number + 1, compressed))
            rotated = self._backup_path(1)
            os.replace(self._path, rotated)
        except OSError as e:
            logger.warning(f"Rotation of {self._path} failed, will retry on a later write: {e}")
            self._open()
            return False

        self._open()
        self.rotations += 1
        logger.info(f"Rotated {self._path} -> {rotated}")

        if self._policy.compress:
            try:
                rotated = compress_file(rotated)
            except OSError as e:
                logger.warning(f"Failed to compress {rotated}, keeping it uncompressed: {e}")

        self._prune()
        return True

    def _prune(self) -> List[str]:
        """Delete backups beyond max_backups or older than max_age_days."""
        policy = self._policy
        cutoff = self._clock() - policy.max_age_seconds
        deleted = []

        try:
            backups = self._list_backups()
        except OSError as e:
            logger.warning(f"Failed to list backups of {self._path}: {e}")
            return deleted

        for number, path in backups:
            too_many = policy.max_backups > 0 and number > policy.max_backups
            try:
                too_old = policy.max_age_days > 0 and os.path.getmtime(path) < cutoff
                if too_many or too_old:
                    os.remove(path)
                    deleted.append(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                logger.warning(f"Failed to remove old log {path}: {e}")

        if deleted:
            logger.info(f"Pruned {len(deleted)} old log file(s)")
        return deleted

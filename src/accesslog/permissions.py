"""
=============================================================================
LOG FILE PERMISSION GUARDIAN
=============================================================================

Keeps the access log and its rotated siblings readable by the owner and
the log group only.

=============================================================================
THE PERMISSIONS CONTRACT
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   /var/log/apache2/            drwxr-x---   0750                    │
    │   ├── access.log               -rw-r-----   0640   live file        │
    │   ├── access.log.1             -rw-r-----   0640   newest backup    │
    │   ├── access.log.2.gz          -rw-r-----   0640   compressed       │
    │   └── access.log.3.gz          -rw-r-----   0640   oldest backup    │
    └─────────────────────────────────────────────────────────────────────┘

Access logs carry client addresses, URLs with query strings and user
agents. World-readable access logs are a finding in every audit, so the
modes are exact values, not "at most".

=============================================================================
WHY A PERIODIC PASS?
=============================================================================

Rotation creates new files behind our back: the compressed backup is a
brand new file created under the process umask. Rather than trusting
every code path that creates a file, a guardian thread re-applies the
contract every interval (60s by default).

The guardian races with rotation on purpose and tolerates it:

    guardian: listdir() → [..., access.log.5.gz]
    sink:                                      prune → unlink(access.log.5.gz)
    guardian: lstat(access.log.5.gz) → FileNotFoundError → skip, carry on

Each fix is a single chmod(), so stopping the guardian between two files
never leaves a file half-fixed.

=============================================================================
"""

import logging
import os
import re
import stat
import threading
from typing import List, Optional, Pattern, Tuple

from .errors import LogSetupError, PermissionFixError


logger = logging.getLogger(__name__)


LOG_FILE_MODE = 0o640  # rw-r-----
LOG_DIR_MODE = 0o750   # rwxr-x---

COMPRESSED_SUFFIX = ".gz"


# =============================================================================
# NAMING SCHEME
# =============================================================================

def rotated_file_pattern(live_name: str) -> Pattern[str]:
    """
    Regex matching rotated siblings of ``live_name``.

    "access.log" → access.log.1, access.log.2.gz, ...
    Group 1 is the backup number, group 2 the optional compression suffix.
    """
    return re.compile(
        rf"^{re.escape(live_name)}\.(\d+)({re.escape(COMPRESSED_SUFFIX)})?$"
    )


def is_log_file_candidate(name: str, live_name: str) -> bool:
    """
    Whether ``name`` belongs to the log file set of ``live_name``.

    A candidate starts with the live file's base name and contains its
    extension somewhere after it. That rule alone also matches unrelated
    files such as "access.log.bak" or "access-admin.log", so it is narrowed
    to the names the rotating sink actually produces.
    """
    base, ext = os.path.splitext(live_name)
    if not name.startswith(base) or ext not in name[len(base):]:
        return False
    return name == live_name or rotated_file_pattern(live_name).match(name) is not None


# =============================================================================
# ENTRY POINTS
# =============================================================================

def secure_live_file(path: str) -> bool:
    """
    Make sure the live log file exists with mode 0640.

    Creates the parent directory (0750) and the file (0640) when they are
    missing; corrects the file mode when it differs. Safe to call any number
    of times and before the sink opens the same path.

    Args:
        path: Live log file path.

    Returns:
        True if the file was created by this call.

    Raises:
        LogSetupError: If the directory or the file cannot be created or
                       secured.
    """
    path = os.path.abspath(path)
    directory = os.path.dirname(path)

    if not os.path.isdir(directory):
        try:
            os.makedirs(directory, mode=LOG_DIR_MODE, exist_ok=True)
            # makedirs() mode is filtered through the umask
            os.chmod(directory, LOG_DIR_MODE)
        except OSError as e:
            raise LogSetupError(
                f"Failed to create log directory {directory}: {e}", path=directory
            ) from e
        logger.info(f"Created log directory {directory}")

    # O_EXCL: create-or-detect in one syscall, no stat/open race
    try:
        fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_WRONLY | os.O_APPEND, LOG_FILE_MODE)
    except FileExistsError:
        created = False
    except OSError as e:
        raise LogSetupError(f"Failed to create log file {path}: {e}", path=path) from e
    else:
        os.close(fd)
        created = True

    try:
        mode = stat.S_IMODE(os.stat(path).st_mode)
        if mode != LOG_FILE_MODE:
            os.chmod(path, LOG_FILE_MODE)
            if not created:
                logger.info(f"Fixed permissions of {path}: {oct(mode)} -> {oct(LOG_FILE_MODE)}")
    except OSError as e:
        raise LogSetupError(f"Failed to set log file permissions on {path}: {e}", path=path) from e

    return created


def secure_rotated_files(path: str) -> List[str]:
    """
    Re-apply mode 0640 to the live log file and every rotated sibling.

    Files that disappear between listing and chmod (pruned by a concurrent
    rotation) are skipped. Any other per-file error is collected and the
    pass continues with the remaining files.

    Args:
        path: Live log file path.

    Returns:
        Paths whose mode was changed.

    Raises:
        PermissionFixError: After the pass, if at least one file could not
                            be fixed, or at once if the directory cannot
                            be listed.
    """
    directory, live_name = os.path.split(os.path.abspath(path))

    try:
        names = os.listdir(directory)
    except FileNotFoundError:
        logger.debug(f"Log directory {directory} does not exist, nothing to secure")
        return []
    except OSError as e:
        raise PermissionFixError(
            f"Failed to list log directory {directory}: {e}", [(directory, e)]
        ) from e

    fixed: List[str] = []
    failures: List[Tuple[str, OSError]] = []

    for name in sorted(names):
        if not is_log_file_candidate(name, live_name):
            continue

        candidate = os.path.join(directory, name)
        try:
            st = os.lstat(candidate)
            # Never chmod through a symlink
            if not stat.S_ISREG(st.st_mode):
                continue
            if stat.S_IMODE(st.st_mode) != LOG_FILE_MODE:
                os.chmod(candidate, LOG_FILE_MODE)
                fixed.append(candidate)
        except FileNotFoundError:
            logger.debug(f"{candidate} vanished during permission pass, skipping")
        except OSError as e:
            failures.append((candidate, e))

    if fixed:
        logger.info(f"Secured {len(fixed)} log file(s) in {directory}")

    if failures:
        raise PermissionFixError(
            f"Failed to secure {len(failures)} log file(s) in {directory}", failures
        )

    return fixed


# =============================================================================
# PERIODIC GUARDIAN
# =============================================================================

class PermissionGuardian:
    """
    Background thread that runs secure_rotated_files() once at start and
    then on a fixed interval.

    Usage:
        guardian = PermissionGuardian("/var/log/apache2/access.log")
        guardian.start()
        ...
        guardian.stop()      # on shutdown

    or as a context manager:

        with PermissionGuardian(path, interval=60.0):
            server.run()

    A failing pass is logged and the loop keeps going; stop() wakes the
    thread immediately instead of waiting out the interval.
    """

    def __init__(self, path: str, interval: float = 60.0):
        if interval <= 0:
            raise ValueError(f"interval must be > 0, got {interval}")
        self.path = path
        self.interval = interval
        self.passes = 0
        self.last_error: Optional[PermissionFixError] = None
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def run_once(self) -> List[str]:
        """Run one pass now, in the calling thread."""
        fixed = secure_rotated_files(self.path)
        self.passes += 1
        return fixed

    def start(self) -> "PermissionGuardian":
        if self.is_running:
            return self
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run,
            name="log-permission-guardian",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Permission guardian started for {self.path} (every {self.interval}s)")
        return self

    def stop(self, timeout: Optional[float] = None) -> None:
        """Cancel the loop and wait for the thread to exit."""
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
        logger.debug("Permission guardian stopped")

    def _run(self) -> None:
        # First pass at startup, then one per interval.
        # wait() returns True as soon as stop() sets the event
        self._guarded_pass()
        while not self._stop_event.wait(self.interval):
            self._guarded_pass()

    def _guarded_pass(self) -> None:
        try:
            self.run_once()
        except PermissionFixError as e:
            self.last_error = e
            logger.warning(f"{e}")
            for failed_path, error in e.failures:
                logger.warning(f"  {failed_path}: {error}")
        except Exception as e:
            logger.exception(f"Permission guardian pass failed: {e}")

    def __enter__(self) -> "PermissionGuardian":
        return self.start()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.stop()
        return False

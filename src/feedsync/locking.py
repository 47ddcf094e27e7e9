"""Single-daemon guard so two schedulers never sync the same vault."""

import fcntl
import os
from pathlib import Path
from typing import Optional

from .errors import FeedSyncError


class DaemonAlreadyRunningError(FeedSyncError):
    """Another feedsync daemon holds the pid-file lock."""


def default_pid_file() -> Path:
    state_home = os.environ.get("XDG_STATE_HOME", str(Path.home() / ".local" / "state"))
    return Path(state_home) / "feedsync" / "daemon.pid"


class DaemonLock:
    """Non-blocking flock on a pid file, held for the lifetime of the ``with`` block.

    Raises:
        DaemonAlreadyRunningError: On entry, if another process holds the lock
    """

    def __init__(self, pid_file: Optional[Path] = None):
        self.pid_file = pid_file or default_pid_file()
        self._handle = None

    def __enter__(self) -> "DaemonLock":
        self.pid_file.parent.mkdir(parents=True, exist_ok=True)
        handle = open(self.pid_file, "a+")
        try:
            fcntl.flock(handle, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            handle.seek(0)
            holder = handle.read().strip() or "unknown"
            handle.close()
            raise DaemonAlreadyRunningError(
                f"feedsync daemon already running (pid {holder})"
            ) from None

        # Truncate only after the lock is held
        handle.truncate(0)
        handle.write(str(os.getpid()))
        handle.flush()
        self._handle = handle
        return self

    def __exit__(self, *_) -> None:
        if self._handle is None:
            return
        fcntl.flock(self._handle, fcntl.LOCK_UN)
        self._handle.close()
        self._handle = None


def acquire_daemon_lock(pid_file: Optional[Path] = None) -> DaemonLock:
    return DaemonLock(pid_file)

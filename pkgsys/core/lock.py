"""
Package system lock.

One advisory lock file guards every transaction on the machine, including
transactions started by unrelated processes. The lock is never broken by
force: if another live process holds it, acquisition simply fails.
"""

import fcntl
import logging
import os
from pathlib import Path
from typing import Optional

from .backend import LockService
from .config import DEFAULT_LOCK_FILE

logger = logging.getLogger(__name__)


class LockError(Exception):
    """Raised when the lock cannot be taken in a with block."""


class PackageLock(LockService):
    """Manages the package system lock file.

    check() acquires the lock on first use and keeps it for the lifetime
    of the process (or until release()), so it can be called before every
    operation.
    """

    def __init__(self, lock_file: Path = None):
        self.lock_file = Path(lock_file) if lock_file else DEFAULT_LOCK_FILE
        self.lock_fd = None
        self.locked = False

    def acquire(self) -> bool:
        """Try to acquire the lock without waiting.

        Returns:
            True if lock acquired (or already held), False otherwise.
        """
        if self.locked:
            return True

        try:
            self.lock_file.parent.mkdir(parents=True, exist_ok=True)
            self.lock_fd = open(self.lock_file, 'a+')
        except OSError as e:
            logger.error(f"Cannot open lock file {self.lock_file}: {e}")
            self.lock_fd = None
            return False

        try:
            fcntl.flock(self.lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            holder = self.holder_pid()
            logger.error(f"Package system is locked by process {holder or 'unknown'}")
            self.lock_fd.close()
            self.lock_fd = None
            return False

        # Got the lock - write our PID
        self.lock_fd.seek(0)
        self.lock_fd.truncate(0)
        self.lock_fd.write(str(os.getpid()))
        self.lock_fd.flush()
        self.locked = True
        logger.debug(f"Package lock acquired: {self.lock_file}")
        return True

    def check(self) -> bool:
        return self.acquire()

    def release(self):
        """Release the lock."""
        if self.lock_fd:
            if self.locked:
                try:
                    fcntl.flock(self.lock_fd, fcntl.LOCK_UN)
                except OSError:
                    pass
            self.lock_fd.close()
            self.lock_fd = None
            self.locked = False

    def holder_pid(self) -> Optional[int]:
        """Get PID of current lock holder."""
        try:
            with open(self.lock_file, 'r') as f:
                return int(f.read().strip())
        except (OSError, ValueError):
            return None

    def __enter__(self):
        if not self.acquire():
            holder = self.holder_pid()
            raise LockError(f"Package system is locked by process {holder or 'unknown'}")
        return self

    def __exit__(self, *args):
        self.release()

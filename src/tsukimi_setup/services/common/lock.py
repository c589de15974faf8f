"""
Tsukimi Speaker Setup - Single Instance Guard

rc.local, the setup oneshot and a human with sudo can all start the
orchestrator. Only one of them may decide between provisioning and
hand-off at a time; the others exit quietly.

The guard is an exclusive flock on a PID-stamped file. The kernel drops the
lock when the process dies, so a crash or power cut never leaves a stale
lock behind.
"""

import os
import fcntl
import logging
from pathlib import Path
from typing import List, Optional

from tsukimi_setup.exceptions.lock_file_unavailable_exception import LockFileUnavailableException

from .file_utils import chown_to_account
from .paths import FALLBACK_DIR, SETUP_LOCK_NAME

logger = logging.getLogger(__name__)


class SingleInstanceLock:
    """
    Non-blocking exclusive lock held for the lifetime of the orchestrator.

    Example:
        lock = SingleInstanceLock(ctx.lock_file)
        if not lock.acquire():
            return 0
        try:
            ...
        finally:
            lock.release()
    """

    def __init__(self, lock_file: Path, owner: Optional[str] = None,
                 fallback_dir: Path = FALLBACK_DIR):
        self.candidates: List[Path] = [lock_file, fallback_dir / SETUP_LOCK_NAME.lstrip('.')]
        self.owner = owner
        self.path: Optional[Path] = None
        self._fd: Optional[int] = None

    def _open(self) -> Optional[int]:
        for path in self.candidates:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(str(path), os.O_RDWR | os.O_CREAT, 0o644)
            except OSError as e:
                logger.debug(f"Cannot use lock file {path}: {e}")
                continue
            self.path = path
            return fd
        return None

    def holder_pid(self) -> str:
        if self.path is None:
            return ''
        try:
            return self.path.read_text(encoding='utf-8').strip()
        except OSError:
            return ''

    def acquire(self) -> bool:
        """
        Try to take the lock without waiting.

        Returns:
            True if this process now holds the lock, False if another
            instance holds it.

        Raises:
            LockFileUnavailableException: No candidate lock file could be opened.
        """
        fd = self._open()
        if fd is None:
            raise LockFileUnavailableException(self.candidates)

        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return False

        os.ftruncate(fd, 0)
        os.write(fd, f"{os.getpid()}\n".encode('utf-8'))
        os.fsync(fd)
        if self.owner:
            chown_to_account(self.path, self.owner)

        self._fd = fd
        return True

    def release(self) -> None:
        if self._fd is None:
            return
        try:
            os.ftruncate(self._fd, 0)
            fcntl.flock(self._fd, fcntl.LOCK_UN)
        finally:
            os.close(self._fd)
            self._fd = None

    def __enter__(self) -> 'SingleInstanceLock':
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()

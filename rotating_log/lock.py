"""Advisory cross-process lock backed by a ``<file>.rotate`` marker file."""

import logging
import os
import random
import time

logger = logging.getLogger(__name__)

DEFAULT_STALE_SECONDS = 1000.0
DEFAULT_RETRIES = 5
DEFAULT_RETRY_WAIT = (0.01, 0.03)


class LockAcquisitionError(OSError):
    """The marker stayed held by someone else through every retry."""


class RotationLock:
    """Marker-file lock created with O_EXCL.

    A marker older than `stale` seconds is treated as left behind by a crashed
    holder and reclaimed. Only processes that go through this protocol are
    excluded; nothing stops a writer that ignores the marker.
    """

    def __init__(self, path: str, stale: float = DEFAULT_STALE_SECONDS,
                 retries: int = DEFAULT_RETRIES,
                 retry_wait: tuple[float, float] = DEFAULT_RETRY_WAIT,
                 log: logging.Logger | None = None, sleep=time.sleep):
        self.path = path
        self.stale = stale
        self.retries = retries
        self.retry_wait = retry_wait
        self._log = log or logger
        self._sleep = sleep
        self._held = False

    @property
    def held(self) -> bool:
        return self._held

    def _try_create(self) -> bool:
        try:
            fd = os.open(self.path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            return False
        try:
            os.write(fd, str(os.getpid()).encode())
        finally:
            os.close(fd)
        return True

    def _reclaim_if_stale(self) -> bool:
        try:
            age = time.time() - os.path.getmtime(self.path)
        except FileNotFoundError:
            # Released between our attempt and the check.
            return True
        if age <= self.stale:
            return False
        self._log.warning("Reclaiming stale lock %s (held for %.0fs)", self.path, age)
        try:
            os.remove(self.path)
        except FileNotFoundError:
            pass
        return True

    def acquire(self):
        """Take the lock or raise LockAcquisitionError after `retries` retries."""
        attempts = 0
        while True:
            if self._try_create():
                self._held = True
                self._log.debug("Acquired lock %s", self.path)
                return
            if self._reclaim_if_stale() and self._try_create():
                self._held = True
                self._log.debug("Acquired lock %s after reclaim", self.path)
                return
            if attempts >= self.retries:
                raise LockAcquisitionError(f"Lock {self.path} is held by another writer")
            attempts += 1
            self._sleep(random.uniform(*self.retry_wait))

    def release(self):
        if not self._held:
            return
        self._held = False
        try:
            os.remove(self.path)
        except FileNotFoundError:
            self._log.warning("Lock %s was already removed", self.path)
        self._log.debug("Released lock %s", self.path)

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False

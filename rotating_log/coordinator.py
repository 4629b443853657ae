"""The rotate protocol: lock, re-verify, rename, reopen, prune, unlock."""

import logging
import os
import threading
from enum import Enum

from rotating_log.archive import ArchiveNamer
from rotating_log.lock import LockAcquisitionError, RotationLock
from rotating_log.policy import SizeRule, TimeRule
from rotating_log.sink import FileSink
from rotating_log.tracker import FileStateTracker

logger = logging.getLogger(__name__)


class RotationPhase(Enum):
    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    LOCK_FAILED = "lock_failed"
    LOCKED = "locked"
    VERIFYING = "verifying"
    ALREADY_ROTATED = "already_rotated"
    RENAMING = "renaming"
    REOPENED = "reopened"
    PRUNED = "pruned"


class RotationOutcome(Enum):
    NOT_DUE = "not_due"
    BUSY = "busy"
    LOCK_FAILED = "lock_failed"
    ALREADY_ROTATED = "already_rotated"
    ROTATED = "rotated"
    FAILED = "failed"


class RotationCoordinator:
    def __init__(self, sink: FileSink, rule: SizeRule | TimeRule, tracker: FileStateTracker,
                 namer: ArchiveNamer, lock: RotationLock, log: logging.Logger | None = None):
        self._sink = sink
        self._rule = rule
        self._tracker = tracker
        self._namer = namer
        self._lock = lock
        self._log = log or logger
        self._guard = threading.Lock()
        self.phase = RotationPhase.IDLE

    @property
    def state(self):
        return self._tracker.state

    def _enter(self, phase: RotationPhase):
        self.phase = phase
        self._log.debug("Rotation of %s: %s", self._sink.path, phase.value)

    def maybe_rotate(self, force: bool = False) -> RotationOutcome:
        """Rotate if the tracker says so. Never raises."""
        with self._guard:
            if self.state.rotation_in_progress:
                self._log.debug("Rotation of %s already in progress, skipping", self._sink.path)
                return RotationOutcome.BUSY
            self.state.rotation_in_progress = True
        try:
            try:
                if not self._tracker.should_rotate(force):
                    return RotationOutcome.NOT_DUE
            except Exception:
                self._log.exception("Rotation check for %s failed", self._sink.path)
                return RotationOutcome.FAILED
            return self.rotate()
        finally:
            self.state.rotation_in_progress = False

    def rotate(self) -> RotationOutcome:
        if isinstance(self._rule, TimeRule) and self.state.rotate_at is None:
            self._tracker.advance_schedule()
        self._enter(RotationPhase.ACQUIRING_LOCK)
        try:
            self._lock.acquire()
        except LockAcquisitionError as e:
            self._enter(RotationPhase.LOCK_FAILED)
            self._log.warning("Skipping rotation of %s: %s", self._sink.path, e)
            self._contain(self._tracker.advance_schedule)
            self._contain(self._tracker.reopen)
            self._enter(RotationPhase.IDLE)
            return RotationOutcome.LOCK_FAILED
        except OSError as e:
            self._log.error("Cannot create lock %s: %s", self._lock.path, e)
            self._enter(RotationPhase.IDLE)
            return RotationOutcome.FAILED

        self._enter(RotationPhase.LOCKED)
        try:
            self._enter(RotationPhase.VERIFYING)
            if not self._still_needed():
                self._enter(RotationPhase.ALREADY_ROTATED)
                self._log.info("%s was already rotated by another writer", self._sink.path)
                self._tracker.reopen()
                self._tracker.advance_schedule()
                return RotationOutcome.ALREADY_ROTATED

            self._enter(RotationPhase.RENAMING)
            period_start = self.state.period_start
            os.rename(self._sink.path, self._namer.temp_path)
            self._tracker.reopen()
            self._enter(RotationPhase.REOPENED)

            deleted = self._namer.finalize(period_start)
            self._enter(RotationPhase.PRUNED)
            if deleted:
                self._log.info("Removed %d old archive(s) of %s", len(deleted), self._sink.path)

            self._tracker.snapshot()
            self._tracker.advance_schedule()
            self._log.info("Rotated %s", self._sink.path)
            return RotationOutcome.ROTATED
        except Exception:
            self._log.exception("Rotation of %s failed", self._sink.path)
            # Not retried until the next period; point the stream at the live path again.
            self._contain(self._tracker.advance_schedule)
            self._contain(self._tracker.reopen)
            return RotationOutcome.FAILED
        finally:
            try:
                self._lock.release()
            except OSError as e:
                self._log.error("Cannot release lock %s: %s", self._lock.path, e)
            self._enter(RotationPhase.IDLE)

    def _still_needed(self) -> bool:
        """Re-check under the lock; another process may have rotated meanwhile."""
        try:
            size = os.stat(self._sink.path).st_size
        except FileNotFoundError:
            return False
        if isinstance(self._rule, TimeRule):
            return not self._namer.already_rotated(self.state.period_start)
        return self._rule.exceeded(size)

    def _contain(self, step):
        try:
            step()
        except Exception:
            self._log.exception("Recovery step for %s failed", self._sink.path)

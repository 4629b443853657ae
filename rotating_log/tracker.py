"""Throttled inspection of the live file: size, identity and rotation due-ness."""

import logging
import os
from dataclasses import dataclass
from datetime import datetime, timedelta

from rotating_log.policy import SizeRule, TimeRule
from rotating_log.sink import FileSink

logger = logging.getLogger(__name__)

DEFAULT_CHECK_INTERVAL = timedelta(milliseconds=50)


@dataclass
class RotationState:
    next_check_deadline: datetime | None = None
    rotate_at: datetime | None = None
    period_start: datetime | None = None
    last_observed_size: int | None = None
    last_check_timestamp: datetime | None = None
    rotation_in_progress: bool = False
    file_identity: tuple[int, int] | None = None


@dataclass(frozen=True)
class Snapshot:
    size: int
    identity: tuple[int, int]
    checked_at: datetime


class FileStateTracker:
    def __init__(self, sink: FileSink, rule: SizeRule | TimeRule, state: RotationState,
                 time_func=None, check_interval: timedelta = DEFAULT_CHECK_INTERVAL,
                 log: logging.Logger | None = None):
        self._sink = sink
        self._rule = rule
        self._state = state
        self._time_func = time_func or datetime.now
        self._check_interval = check_interval
        self._log = log or logger
        self._state.file_identity = sink.identity()

    @property
    def state(self) -> RotationState:
        return self._state

    def check_due(self) -> bool:
        """Throttle gate for the write path; advances the deadline when it opens."""
        now = self._time_func()
        deadline = self._state.next_check_deadline
        if deadline is not None and now < deadline:
            return False
        self._state.next_check_deadline = now + self._check_interval
        return True

    def reopen(self):
        """Reopen the sink and forget everything observed about the old file."""
        self._sink.reopen()
        self._state.last_observed_size = None
        self._state.last_check_timestamp = None
        self._state.file_identity = self._sink.identity()

    def advance_schedule(self):
        """Recompute rotate_at from the current time.

        A schedule whose period already contains `now` is kept as it is, so a
        rotation before the boundary (forced, or by another writer) does not
        skip a period. period_start never lies in the future.
        """
        if not isinstance(self._rule, TimeRule):
            return
        now = self._time_func()
        current = self._state.rotate_at
        if (current is not None and current > now
                and self._rule.period_start(current) <= now):
            self._state.period_start = self._rule.period_start(current)
            return
        self._state.rotate_at = self._rule.next_boundary(now)
        self._state.period_start = self._rule.period_start(self._state.rotate_at)
        self._log.debug("Next rotation at %s (period start %s)",
                        self._state.rotate_at, self._state.period_start)

    def _stat(self) -> os.stat_result | None:
        path = self._sink.path
        try:
            return os.stat(path)
        except FileNotFoundError:
            self._log.info("Log file %s is missing, reopening", path)
            self.reopen()
        except OSError as e:
            self._log.error("Cannot stat %s: %s", path, e)
            return None
        try:
            return os.stat(path)
        except OSError as e:
            self._log.error("Cannot stat %s after reopen: %s", path, e)
            return None

    def snapshot(self) -> Snapshot | None:
        """Stat the live file, reopening first if it was replaced or truncated.

        Returns None when the file cannot be inspected this cycle.
        """
        st = self._stat()
        if st is None:
            return None

        identity = (st.st_dev, st.st_ino)
        replaced = self._state.file_identity is not None and identity != self._state.file_identity
        truncated = (self._state.last_observed_size is not None
                     and st.st_size < self._state.last_observed_size)
        if replaced or truncated:
            self._log.info("Log file %s was %s externally, reopening", self._sink.path,
                           "replaced" if replaced else "truncated")
            self.reopen()
            st = self._stat()
            if st is None:
                return None
            identity = (st.st_dev, st.st_ino)

        now = self._time_func()
        if self._state.last_check_timestamp is None:
            self._state.last_check_timestamp = now
        if self._state.file_identity is None:
            self._state.file_identity = identity
        self._state.last_observed_size = st.st_size
        return Snapshot(size=st.st_size, identity=identity, checked_at=now)

    def should_rotate(self, force: bool = False) -> bool:
        snap = self.snapshot()
        if snap is None:
            return False

        if isinstance(self._rule, SizeRule):
            if self._rule.exceeded(snap.size):
                self._log.debug("Size exceeded: %d > %d", snap.size, self._rule.max_bytes)
                return True
            return False

        if self._state.rotate_at is None:
            self.advance_schedule()
        if force:
            self._log.debug("Forced rotation")
            return True
        if snap.checked_at >= self._state.rotate_at:
            self._log.debug("Boundary %s reached", self._state.rotate_at)
            return True
        if self._state.last_check_timestamp < self._state.period_start:
            # Tracking started before the current period: the file holds
            # records from a period that was never rotated.
            self._log.debug("File predates period start %s", self._state.period_start)
            return True
        return False

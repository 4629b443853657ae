"""Per-record entry point: write, then a throttled rotation check off the write path."""

import logging
import os
import queue
import threading
from datetime import datetime, timedelta

from rotating_log.archive import ArchiveNamer
from rotating_log.config import Config
from rotating_log.coordinator import RotationCoordinator, RotationOutcome
from rotating_log.formatter import Formatter
from rotating_log.lock import (
    DEFAULT_RETRIES,
    DEFAULT_RETRY_WAIT,
    DEFAULT_STALE_SECONDS,
    RotationLock,
)
from rotating_log.policy import SizeRule, TimeRule, build_rule
from rotating_log.sink import FileSink
from rotating_log.tracker import DEFAULT_CHECK_INTERVAL, FileStateTracker, RotationState

logger = logging.getLogger(__name__)

LOCK_SUFFIX = ".rotate"


class RotatingSink:
    """A file sink that rotates itself by size or on calendar boundaries.

    Records are written synchronously to whichever stream is current. Rotation
    checks (stat, directory listing, renames, pruning) run on a background
    worker thread, so a slow filesystem never holds up the caller. A record
    written just before a rotation may end up in the archived file.
    """

    def __init__(self, path: str, rule: SizeRule | TimeRule, max_files: int | None = None,
                 formatter: Formatter | None = None, time_func=None,
                 check_interval: timedelta = DEFAULT_CHECK_INTERVAL,
                 lock_stale: float = DEFAULT_STALE_SECONDS,
                 lock_retries: int = DEFAULT_RETRIES,
                 lock_retry_wait: tuple[float, float] = DEFAULT_RETRY_WAIT,
                 schedule_timer: bool = True, log: logging.Logger | None = None):
        self._log = log or logger
        self._rule = rule
        self._time_func = time_func or datetime.now
        self._check_interval = check_interval

        self._sink = FileSink(path, formatter)
        self._state = RotationState()
        self._tracker = FileStateTracker(self._sink, rule, self._state,
                                         time_func=self._time_func,
                                         check_interval=check_interval, log=self._log)
        self._namer = ArchiveNamer(rule, path, max_files, log=self._log)
        self._lock = RotationLock(path + LOCK_SUFFIX, stale=lock_stale, retries=lock_retries,
                                  retry_wait=lock_retry_wait, log=self._log)
        self._coordinator = RotationCoordinator(self._sink, rule, self._tracker, self._namer,
                                                self._lock, log=self._log)

        self._queue: queue.Queue = queue.Queue()
        self._closed = False
        self._timer: threading.Timer | None = None
        self._timer_lock = threading.Lock()
        self._worker = threading.Thread(target=self._run, daemon=True,
                                        name=f"rotation-{os.path.basename(path)}")
        self._worker.start()

        if isinstance(rule, TimeRule):
            self._tracker.advance_schedule()
            if schedule_timer:
                self._schedule_timer()

    @classmethod
    def from_config(cls, config: Config, **kwargs) -> "RotatingSink":
        rule = build_rule(config.rule, config.log_path, max_size=config.max_size,
                          time_rate=config.time_rate, old_file=config.old_file)
        return cls(
            config.log_path,
            rule,
            max_files=config.max_files,
            formatter=Formatter(config.log_format),
            check_interval=timedelta(milliseconds=config.check_interval_ms),
            lock_stale=config.lock_stale_seconds,
            lock_retries=config.lock_retries,
            **kwargs,
        )

    @property
    def path(self) -> str:
        return self._sink.path

    @property
    def rule(self) -> SizeRule | TimeRule:
        return self._rule

    @property
    def state(self) -> RotationState:
        return self._state

    @property
    def coordinator(self) -> RotationCoordinator:
        return self._coordinator

    @property
    def namer(self) -> ArchiveNamer:
        return self._namer

    def emit(self, record, callback=None):
        """Write one record; `callback` runs once the follow-up check (if any) is done."""
        try:
            self._sink.write(self._sink.format(record))
        except Exception:
            self._log.exception("Write to %s failed", self.path)

        if not self._closed and self._tracker.check_due():
            self._queue.put((False, callback, False))
        elif callback is not None:
            self._complete(callback)

    def check(self, force: bool = False) -> RotationOutcome:
        """Run a rotation check on the calling thread."""
        return self._coordinator.maybe_rotate(force)

    def drain(self):
        """Block until every queued rotation check has finished."""
        self._queue.join()

    def _complete(self, callback):
        try:
            callback()
        except Exception:
            self._log.exception("Emit callback for %s raised", self.path)

    def _run(self):
        while True:
            item = self._queue.get()
            try:
                if item is None:
                    return
                force, callback, from_timer = item
                try:
                    self._coordinator.maybe_rotate(force)
                except Exception:
                    self._log.exception("Rotation worker for %s failed", self.path)
                if from_timer:
                    self._schedule_timer()
                if callback is not None:
                    self._complete(callback)
            finally:
                self._queue.task_done()

    def _schedule_timer(self):
        with self._timer_lock:
            if self._closed or self._state.rotate_at is None:
                return
            delay = (self._state.rotate_at - self._time_func()).total_seconds()
            delay = max(delay, self._check_interval.total_seconds())
            self._timer = threading.Timer(delay, self._on_timer)
            self._timer.daemon = True
            self._timer.start()
            self._log.debug("Rotation timer for %s set to %.3fs", self.path, delay)

    def _on_timer(self):
        if not self._closed:
            self._queue.put((False, None, True))

    def close(self):
        with self._timer_lock:
            if self._closed:
                return
            self._closed = True
            if self._timer is not None:
                self._timer.cancel()
        self._queue.put(None)
        self._worker.join(timeout=5)
        self._sink.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False


class RotatingFileHandler(logging.Handler):
    """Feeds stdlib logging records into a RotatingSink."""

    def __init__(self, sink: RotatingSink, level=logging.NOTSET):
        super().__init__(level)
        self.sink = sink

    def emit(self, record: logging.LogRecord):
        try:
            self.sink.emit(record)
        except Exception:
            self.handleError(record)

    def close(self):
        try:
            self.sink.close()
        finally:
            super().close()

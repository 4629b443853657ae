"""Plain append-only file sink: open, write, reopen, close."""

import logging
import os
import threading

from rotating_log.formatter import Formatter

logger = logging.getLogger(__name__)


class FileSink:
    """Owns the stream for one log path. All methods are thread-safe."""

    def __init__(self, path: str, formatter: Formatter | None = None,
                 encoding: str = "utf-8"):
        self.path = path
        self._formatter = formatter or Formatter()
        self._encoding = encoding
        self._lock = threading.Lock()
        self._file = None
        directory = os.path.dirname(path)
        if directory:
            os.makedirs(directory, exist_ok=True)
        self._open()

    def _open(self):
        self._file = open(self.path, "a", encoding=self._encoding)

    def _close(self):
        if self._file and not self._file.closed:
            self._file.close()

    def format(self, record) -> str:
        return self._formatter.format(record)

    def write(self, text: str):
        with self._lock:
            if self._file is None or self._file.closed:
                raise ValueError(f"Sink for {self.path} is closed")
            self._file.write(text)
            self._file.flush()

    def reopen(self):
        """Close the current stream and open a fresh one at the original path."""
        with self._lock:
            self._close()
            self._open()
        logger.debug("Stream reopened: %s", self.path)

    def identity(self) -> tuple[int, int] | None:
        """(st_dev, st_ino) of the file the open stream points to."""
        with self._lock:
            if self._file is None or self._file.closed:
                return None
            st = os.fstat(self._file.fileno())
        return st.st_dev, st.st_ino

    @property
    def closed(self) -> bool:
        return self._file is None or self._file.closed

    def close(self):
        with self._lock:
            self._close()

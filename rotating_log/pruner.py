"""Retention pruner: keeps only the newest N time-stamped archives."""

import logging
import os
from datetime import datetime

from rotating_log.naming import pattern_regex

logger = logging.getLogger(__name__)


class ArchivePruner:
    def __init__(self, name_pattern: str, default_date_format: str, keep_files: int,
                 log: logging.Logger | None = None):
        self._log = log or logger
        self._dir = os.path.dirname(name_pattern) or "."
        self._regex, self._date_format = pattern_regex(name_pattern, default_date_format)
        self._keep = keep_files

    @property
    def keep_files(self) -> int:
        return self._keep

    def _parse_timestamp(self, name: str) -> datetime | None:
        match = self._regex.match(name)
        if match is None:
            return None
        if self._date_format is None:
            # Pattern without a date token: fall back to modification time.
            try:
                return datetime.fromtimestamp(os.path.getmtime(os.path.join(self._dir, name)))
            except OSError:
                return None
        try:
            return datetime.strptime(match.group("date"), self._date_format)
        except ValueError:
            return None

    def list_archives(self) -> list[str]:
        """Archive basenames sorted oldest-first by their embedded timestamp."""
        found = []
        for name in os.listdir(self._dir):
            ts = self._parse_timestamp(name)
            if ts is not None:
                found.append((ts, name))
        found.sort()
        return [name for _, name in found]

    def delete_old_files(self) -> list[str]:
        """Delete all but the newest `keep_files` archives. Returns deleted basenames."""
        try:
            archives = self.list_archives()
        except OSError as e:
            self._log.error("Cannot list archives in %s: %s", self._dir, e)
            return []

        excess = len(archives) - self._keep
        if excess <= 0:
            return []

        deleted = []
        for name in archives[:excess]:
            path = os.path.join(self._dir, name)
            try:
                os.remove(path)
            except FileNotFoundError:
                continue
            except OSError as e:
                self._log.error("Cannot delete old archive %s: %s", path, e)
                continue
            deleted.append(name)
        if deleted:
            self._log.info("Pruned %d archive(s): %s", len(deleted), ", ".join(deleted))
        return deleted

"""Maps rotations to archive filenames and applies retention."""

import logging
import os
import re
from datetime import datetime

from rotating_log.naming import compile_pattern
from rotating_log.policy import SizeRule, TimeRule
from rotating_log.pruner import ArchivePruner

logger = logging.getLogger(__name__)

TEMP_SUFFIX = "tmp"

_RANK_SUFFIX = re.compile(r"^\.(\d{1,5}|tmp)$")


def temp_path(live_path: str) -> str:
    return f"{live_path}.{TEMP_SUFFIX}"


def list_ranked_files(live_path: str) -> list[tuple[int, str]]:
    """(rank, basename) of size archives next to `live_path`, temp file as rank 0.

    Sorted by rank, so the temp file comes first and the oldest archive last.
    """
    directory = os.path.dirname(live_path) or "."
    base = os.path.basename(live_path)
    ranked = []
    for name in os.listdir(directory):
        if not name.startswith(base):
            continue
        match = _RANK_SUFFIX.match(name[len(base):])
        if match is None:
            continue
        suffix = match.group(1)
        ranked.append((0 if suffix == TEMP_SUFFIX else int(suffix), name))
    ranked.sort(key=lambda item: item[0])
    return ranked


def renumber_size_archives(live_path: str, max_files: int | None,
                           log: logging.Logger | None = None) -> list[str]:
    """Shift every archive up one rank and turn the temp file into rank 1.

    Files whose position in the sorted list is at or beyond `max_files` are
    deleted instead. Not transactional: a crash between two renames can leave
    a gap or a duplicate rank. Returns deleted basenames.
    """
    log = log or logger
    directory = os.path.dirname(live_path) or "."
    base = os.path.basename(live_path)
    ranked = list_ranked_files(live_path)
    deleted = []

    for position in range(len(ranked) - 1, -1, -1):
        rank, name = ranked[position]
        path = os.path.join(directory, name)
        if max_files and position >= max_files:
            try:
                os.remove(path)
                deleted.append(name)
                log.debug("Deleted %s", path)
            except OSError as e:
                log.error("Cannot delete %s: %s", path, e)
            continue
        target = os.path.join(directory, f"{base}.{rank + 1}")
        try:
            os.rename(path, target)
            log.debug("Renamed %s to %s", path, target)
        except OSError as e:
            log.error("Cannot rename %s to %s: %s", path, target, e)
    return deleted


class ArchiveNamer:
    """Turns a finished temp file into its archive and applies retention."""

    def __init__(self, rule: SizeRule | TimeRule, live_path: str,
                 max_files: int | None = None, log: logging.Logger | None = None):
        self._rule = rule
        self._live_path = live_path
        self._max_files = max_files
        self._log = log or logger
        self._render = None
        self._pruner = None
        if isinstance(rule, TimeRule):
            self._render = compile_pattern(rule.name_pattern, rule.date_format)
            if max_files:
                self._pruner = ArchivePruner(rule.name_pattern, rule.date_format, max_files,
                                             log=self._log)

    @property
    def temp_path(self) -> str:
        return temp_path(self._live_path)

    @property
    def pruner(self) -> ArchivePruner | None:
        return self._pruner

    def time_archive_path(self, period_start: datetime) -> str:
        if self._render is None:
            raise TypeError("Time archive names need a time rule")
        return self._render(timestamp=period_start)

    def already_rotated(self, period_start: datetime) -> bool:
        return os.path.exists(self.time_archive_path(period_start))

    def finalize(self, period_start: datetime | None = None) -> list[str]:
        """Move the temp file to its archive name, then prune. Returns deleted names."""
        if isinstance(self._rule, TimeRule):
            target = self.time_archive_path(period_start)
            try:
                os.rename(self.temp_path, target)
                self._log.info("Archived %s as %s", self._live_path, target)
            except OSError as e:
                self._log.error("Cannot rename %s to %s: %s", self.temp_path, target, e)
            return self.prune()

        deleted = renumber_size_archives(self._live_path, self._max_files, log=self._log)
        self._log.info("Archived %s as %s.1", self._live_path, self._live_path)
        return deleted

    def prune(self) -> list[str]:
        if self._pruner is None:
            return []
        try:
            return self._pruner.delete_old_files()
        except OSError as e:
            self._log.error("Pruning archives of %s failed: %s", self._live_path, e)
            return []

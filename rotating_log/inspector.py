"""Inspector logic: list, read, and search the live log and its archives."""

import os

from rotating_log.archive import TEMP_SUFFIX, list_ranked_files
from rotating_log.config import Config
from rotating_log.policy import TimeRule, build_rule
from rotating_log.pruner import ArchivePruner


def list_log_files(config: Config) -> list[str]:
    """Return the live file followed by its archives, newest archive first."""
    live_path = config.log_path
    rule = build_rule(config.rule, live_path, max_size=config.max_size,
                      time_rate=config.time_rate, old_file=config.old_file)
    files = []
    if os.path.exists(live_path):
        files.append(config.log_filename)

    if isinstance(rule, TimeRule):
        # keep_files only matters for pruning, which is not done here.
        pruner = ArchivePruner(rule.name_pattern, rule.date_format, keep_files=0)
        files.extend(reversed(pruner.list_archives()))
    else:
        files.extend(name for _, name in list_ranked_files(live_path)
                     if not name.endswith("." + TEMP_SUFFIX))
    return files


def read_file(log_dir: str, filename: str) -> str:
    path = os.path.join(log_dir, filename)
    if not os.path.exists(path):
        raise FileNotFoundError(f"File not found: {path}")
    with open(path, "r", encoding="utf-8") as f:
        return f.read()


def search_files(config: Config, text: str) -> list[tuple[str, int, str]]:
    """Search for text across the live file and archives. Returns (filename, line_num, line) tuples."""
    results = []
    for filename in list_log_files(config):
        path = os.path.join(config.log_dir, filename)
        try:
            with open(path, "r", encoding="utf-8") as f:
                for line_num, line in enumerate(f, 1):
                    if text in line:
                        results.append((filename, line_num, line.rstrip("\n")))
        except OSError:
            continue
    return results

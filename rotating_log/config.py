"""Configuration module — frozen dataclass from environment variables over optional YAML."""

import logging
import os
from dataclasses import dataclass

import yaml

from rotating_log.formatter import DEFAULT_FORMAT
from rotating_log.policy import parse_size, parse_time_rate

logger = logging.getLogger(__name__)

RULES = ("size", "time")


@dataclass(frozen=True)
class Config:
    log_dir: str = "./logs"
    log_filename: str = "application.log"
    rule: str = "size"
    max_size: int = 10 * 1024 * 1024  # 10 MB
    time_rate: str | int = "daily"
    max_files: int = 10
    old_file: str | None = None
    check_interval_ms: int = 50
    lock_stale_seconds: float = 1000.0
    lock_retries: int = 5
    log_format: str = DEFAULT_FORMAT

    @property
    def log_path(self) -> str:
        return os.path.join(self.log_dir, self.log_filename)


def load_yaml_config(path: str | None) -> dict:
    """Load settings from a YAML file. Returns empty dict if no path or no file."""
    if not path:
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info("Loaded YAML config from %s", path)
        return data
    except FileNotFoundError:
        logger.warning("Config file %s not found, using defaults", path)
        return {}


def _pick(yaml_data: dict, env_key: str, yaml_key: str, default):
    value = os.environ.get(env_key)
    if value is not None:
        return value
    return yaml_data.get(yaml_key, default)


def _time_rate(value) -> str | int:
    parse_time_rate(value)
    if isinstance(value, str) and value.strip().isdigit():
        return int(value)
    return value.strip().lower() if isinstance(value, str) else value


def load_config(yaml_data: dict | None = None) -> Config:
    """Build Config from env vars, falling back to YAML values, then defaults."""
    yaml_data = yaml_data or {}

    rule = str(_pick(yaml_data, "ROTATION_RULE", "rule", Config.rule)).strip().lower()
    if rule not in RULES:
        raise ValueError(f"Unknown rotation rule: {rule!r}")

    old_file = _pick(yaml_data, "OLD_FILE", "old_file", Config.old_file)

    return Config(
        log_dir=_pick(yaml_data, "LOG_DIR", "log_dir", Config.log_dir),
        log_filename=_pick(yaml_data, "LOG_FILENAME", "log_filename", Config.log_filename),
        rule=rule,
        max_size=parse_size(_pick(yaml_data, "MAX_SIZE", "max_size", Config.max_size)),
        time_rate=_time_rate(_pick(yaml_data, "TIME_RATE", "time_rate", Config.time_rate)),
        max_files=int(_pick(yaml_data, "MAX_FILES", "max_files", Config.max_files)),
        old_file=old_file or None,
        check_interval_ms=int(
            _pick(yaml_data, "CHECK_INTERVAL_MS", "check_interval_ms", Config.check_interval_ms)
        ),
        lock_stale_seconds=float(
            _pick(yaml_data, "LOCK_STALE_SECONDS", "lock_stale_seconds", Config.lock_stale_seconds)
        ),
        lock_retries=int(_pick(yaml_data, "LOCK_RETRIES", "lock_retries", Config.lock_retries)),
        log_format=_pick(yaml_data, "LOG_FORMAT", "log_format", Config.log_format),
    )

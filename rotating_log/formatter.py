"""Record formatter: pattern templates or one JSON object per line."""

import json
import logging
import os
import re
import traceback
from datetime import datetime

DEFAULT_FORMAT = "[%date] %-5level %logger - %message%n%error"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_TOKEN = re.compile(r"%(-?\d+)?(date|level|logger|message|pid|error|n)(?:\{([^}]*)\})?")


def _error_text(record: logging.LogRecord) -> str:
    if not record.exc_info:
        return ""
    return "".join(traceback.format_exception(*record.exc_info))


def _pad(value: str, width: str | None) -> str:
    if not width:
        return value
    size = int(width)
    return value.ljust(-size) if size < 0 else value.rjust(size)


class Formatter:
    def __init__(self, fmt: str | None = None, date_format: str | None = None):
        self.fmt = fmt or DEFAULT_FORMAT
        self.date_format = date_format or DEFAULT_DATE_FORMAT

    def format(self, record) -> str:
        """Render a LogRecord. Plain strings pass through with a trailing newline."""
        if isinstance(record, str):
            return record if record.endswith("\n") else record + "\n"
        if self.fmt == "json":
            return self._format_json(record)
        return _TOKEN.sub(lambda m: self._render(m, record), self.fmt)

    def _format_json(self, record: logging.LogRecord) -> str:
        obj = {
            "name": record.name,
            "message": record.getMessage(),
            "levelname": record.levelname,
            "pid": record.process,
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
        }
        if record.exc_info:
            obj["err"] = _error_text(record)
        return json.dumps(obj) + "\n"

    def _render(self, match: re.Match, record: logging.LogRecord) -> str:
        width, name, arg = match.group(1), match.group(2), match.group(3)
        if name == "n":
            return "\n"
        if name == "date":
            value = datetime.fromtimestamp(record.created).strftime(arg or self.date_format)
        elif name == "level":
            value = record.levelname
        elif name == "logger":
            value = record.name
        elif name == "message":
            value = record.getMessage()
        elif name == "pid":
            value = str(record.process or os.getpid())
        else:
            value = _error_text(record)
        return _pad(value, width)

"""Filename-pattern compiler for archive names.

Patterns are plain paths with a few tokens:

    %d, %date         timestamp rendered with the default date format
    %d{fmt}           timestamp rendered with an explicit strftime format
    %i                archive index
    %%                a literal percent sign

``compile_pattern`` turns a pattern into a renderer, ``pattern_regex`` into a
regex that recognises rendered basenames so old archives can be found again.
"""

import os
import re
from datetime import datetime

_TOKEN = re.compile(r"%(date|d|i|%)(?:\{([^}]*)\})?")

# strftime directives that appear in archive date formats, as regex fragments.
_DIRECTIVES = {
    "Y": r"\d{4}",
    "m": r"\d{2}",
    "d": r"\d{2}",
    "H": r"\d{2}",
    "M": r"\d{2}",
    "S": r"\d{2}",
    "f": r"\d{6}",
    "j": r"\d{3}",
    "y": r"\d{2}",
}


def _split(pattern: str, default_date_format: str):
    """Yield ("text", str) / ("date", fmt) / ("index", None) parts of a pattern."""
    pos = 0
    for match in _TOKEN.finditer(pattern):
        if match.start() > pos:
            yield "text", pattern[pos:match.start()]
        name, arg = match.group(1), match.group(2)
        if name == "%":
            yield "text", "%"
        elif name == "i":
            yield "index", None
        else:
            yield "date", arg or default_date_format
        pos = match.end()
    if pos < len(pattern):
        yield "text", pattern[pos:]


def compile_pattern(pattern: str, default_date_format: str):
    """Return ``render(timestamp=None, index=None) -> str`` for `pattern`."""
    parts = list(_split(pattern, default_date_format))

    def render(timestamp: datetime | None = None, index: int | None = None) -> str:
        out = []
        for kind, value in parts:
            if kind == "text":
                out.append(value)
            elif kind == "index":
                out.append("" if index is None else str(index))
            else:
                moment = timestamp or datetime.now()
                out.append(moment.strftime(value))
        return "".join(out)

    return render


def date_format_regex(date_format: str) -> str:
    out = []
    i = 0
    while i < len(date_format):
        char = date_format[i]
        if char == "%" and i + 1 < len(date_format):
            directive = date_format[i + 1]
            if directive == "%":
                out.append("%")
            else:
                out.append(_DIRECTIVES.get(directive, r".+?"))
            i += 2
            continue
        out.append(re.escape(char))
        i += 1
    return "".join(out)


def pattern_regex(pattern: str, default_date_format: str) -> tuple[re.Pattern, str | None]:
    """Regex for basenames rendered from `pattern`, plus the date format it captures.

    The first date token is captured as group ``date``, the index as ``index``.
    Only the basename is matched; the directory part is fixed.
    """
    basename = os.path.basename(pattern)
    out = []
    date_format = None
    for kind, value in _split(basename, default_date_format):
        if kind == "text":
            out.append(re.escape(value))
        elif kind == "index":
            out.append(r"(?P<index>\d+)" if "(?P<index>" not in "".join(out) else r"\d+")
        elif date_format is None:
            date_format = value
            out.append(f"(?P<date>{date_format_regex(value)})")
        else:
            out.append(date_format_regex(value))
    return re.compile("^" + "".join(out) + "$"), date_format

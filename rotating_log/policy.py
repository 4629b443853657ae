"""Rotation rules: size thresholds and calendar-aligned time boundaries."""

import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum

DEFAULT_DATE_FORMAT = "%Y%m%d%H%M%S"

_SIZE_UNITS = {"b": 1, "kb": 1 << 10, "mb": 1 << 20, "gb": 1 << 30}
_SIZE_TOKEN = re.compile(r"(\d+)(gb|mb|kb|b)")


def parse_size(value) -> int:
    """Convert an int or a "10mb"-style string into bytes.

    Multiple tokens are summed, so "1mb512kb" is 1.5 MiB.
    """
    if isinstance(value, bool):
        raise TypeError(f"Invalid size: {value!r}")
    if isinstance(value, int):
        return value
    if not isinstance(value, str):
        raise TypeError(f"Invalid size: {value!r}")

    text = value.strip().lower()
    if text.isdigit():
        return int(text)
    tokens = _SIZE_TOKEN.findall(text)
    if not tokens:
        raise ValueError(f"Invalid size: {value!r}")
    return sum(int(count) * _SIZE_UNITS[unit] for count, unit in tokens)


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _shift_months(moment: datetime, months: int) -> datetime:
    """First day of the month `months` away from `moment`, at midnight."""
    index = moment.year * 12 + (moment.month - 1) + months
    return _midnight(moment).replace(year=index // 12, month=index % 12 + 1, day=1)


class Granularity(str, Enum):
    YEARLY = "yearly"
    MONTHLY = "monthly"
    WEEKLY = "weekly"
    DAILY = "daily"
    HOURLY = "hourly"
    EVERY_MINUTE = "everyminute"
    EVERY_SECOND = "everysecond"
    EVERY_3_SECONDS = "every3seconds"

    @property
    def date_format(self) -> str:
        if self is Granularity.YEARLY:
            return "%Y"
        if self is Granularity.MONTHLY:
            return "%Y%m"
        if self in (Granularity.WEEKLY, Granularity.DAILY):
            return "%Y%m%d"
        if self is Granularity.HOURLY:
            return "%Y%m%d%H"
        if self is Granularity.EVERY_MINUTE:
            return "%Y%m%d%H%M"
        return "%Y%m%d%H%M%S"

    def next_boundary(self, now: datetime) -> datetime:
        """Start of the calendar unit following the one containing `now`."""
        if self is Granularity.YEARLY:
            return _midnight(now).replace(year=now.year + 1, month=1, day=1)
        if self is Granularity.MONTHLY:
            return _shift_months(now, 1)
        if self is Granularity.WEEKLY:
            # Weeks start on Sunday; weekday() counts from Monday.
            days_since_sunday = (now.weekday() + 1) % 7
            return _midnight(now) + timedelta(days=7 - days_since_sunday)
        if self is Granularity.DAILY:
            return _midnight(now) + timedelta(days=1)
        if self is Granularity.HOURLY:
            return now.replace(minute=0, second=0, microsecond=0) + timedelta(hours=1)
        if self is Granularity.EVERY_MINUTE:
            return now.replace(second=0, microsecond=0) + timedelta(minutes=1)
        if self is Granularity.EVERY_SECOND:
            return now.replace(microsecond=0) + timedelta(seconds=1)
        return now.replace(microsecond=0) + timedelta(seconds=3)

    def period_start(self, boundary: datetime) -> datetime:
        """Start of the calendar unit that ends at `boundary`."""
        if self is Granularity.YEARLY:
            return _midnight(boundary).replace(year=boundary.year - 1, month=1, day=1)
        if self is Granularity.MONTHLY:
            return _shift_months(boundary, -1)
        if self is Granularity.WEEKLY:
            return _midnight(boundary) - timedelta(days=7)
        if self is Granularity.DAILY:
            return _midnight(boundary) - timedelta(days=1)
        if self is Granularity.HOURLY:
            return boundary.replace(minute=0, second=0, microsecond=0) - timedelta(hours=1)
        if self is Granularity.EVERY_MINUTE:
            return boundary.replace(second=0, microsecond=0) - timedelta(minutes=1)
        if self is Granularity.EVERY_SECOND:
            return boundary.replace(microsecond=0) - timedelta(seconds=1)
        return boundary.replace(microsecond=0) - timedelta(seconds=3)


def parse_time_rate(value) -> Granularity | timedelta:
    """Accept a granularity name or a raw interval in milliseconds."""
    if isinstance(value, Granularity):
        return value
    if isinstance(value, str):
        text = value.strip().lower()
        if text.isdigit():
            value = int(text)
        else:
            try:
                return Granularity(text)
            except ValueError:
                raise ValueError(f"Unknown time rate: {value!r}") from None
    if isinstance(value, int) and not isinstance(value, bool) and value > 0:
        return timedelta(milliseconds=value)
    raise ValueError(f"Invalid time rate: {value!r}")


@dataclass(frozen=True)
class SizeRule:
    max_bytes: int
    name_pattern: str

    name = "size"

    def exceeded(self, size: int) -> bool:
        return size > self.max_bytes


@dataclass(frozen=True)
class TimeRule:
    rate: Granularity | timedelta
    name_pattern: str

    name = "time"

    @property
    def date_format(self) -> str:
        if isinstance(self.rate, Granularity):
            return self.rate.date_format
        return DEFAULT_DATE_FORMAT

    def next_boundary(self, now: datetime) -> datetime:
        if isinstance(self.rate, Granularity):
            return self.rate.next_boundary(now)
        return now + self.rate

    def period_start(self, boundary: datetime) -> datetime:
        if isinstance(self.rate, Granularity):
            return self.rate.period_start(boundary)
        return boundary - self.rate


def default_name_pattern(path: str, rule: str) -> str:
    if rule == "time":
        return path + "-%d"
    return path + ".%i"


def build_rule(rule: str, path: str, max_size=None, time_rate=None,
               old_file: str | None = None) -> SizeRule | TimeRule:
    """Build the rotation rule for `path` from raw option values."""
    rule = (rule or "size").strip().lower()
    if rule not in ("size", "time"):
        raise ValueError(f"Unknown rotation rule: {rule!r}")
    pattern = old_file or default_name_pattern(path, rule)

    if rule == "time":
        if time_rate is None:
            raise ValueError("Time rule requires a time rate")
        return TimeRule(rate=parse_time_rate(time_rate), name_pattern=pattern)

    if max_size is None:
        raise ValueError("Size rule requires a max size")
    return SizeRule(max_bytes=parse_size(max_size), name_pattern=pattern)

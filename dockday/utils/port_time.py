"""Port-local calendar helpers.

The port runs on UTC+8 (Asia/Shanghai, no DST), so a fixed offset is used
for day and week boundaries. All timestamps crossing module boundaries are
integer epoch milliseconds.
"""
from __future__ import annotations

import time
from datetime import date, datetime, timedelta, timezone
from typing import NamedTuple

PORT_TZ = timezone(timedelta(hours=8))

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class TimeWindow(NamedTuple):
    """Half-open window ``[start_ms, end_ms)`` labelled by its local start date."""
    key: str
    start_ms: int
    end_ms: int


def now_ms() -> int:
    return int(time.time() * 1000)


def to_epoch_ms(dt: datetime) -> int:
    return int(round(dt.timestamp() * 1000))


def local_date(ts_ms: int) -> date:
    """Calendar date at the port for an epoch-ms instant."""
    return datetime.fromtimestamp(ts_ms / 1000, tz=PORT_TZ).date()


def _local_midnight_ms(day: date) -> int:
    return to_epoch_ms(datetime(day.year, day.month, day.day, tzinfo=PORT_TZ))


def day_window(day: date) -> TimeWindow:
    """Local midnight to the following midnight."""
    start = _local_midnight_ms(day)
    return TimeWindow(day.isoformat(), start, start + DAY_MS)


def week_start(day: date) -> date:
    """Monday of the week containing ``day``."""
    sunday_based = day.isoweekday() % 7  # 0 = Sunday
    return day - timedelta(days=(sunday_based + 6) % 7)


def week_window(day: date) -> TimeWindow:
    """Monday 00:00 local to the following Monday 00:00."""
    monday = week_start(day)
    start = _local_midnight_ms(monday)
    return TimeWindow(monday.isoformat(), start, start + 7 * DAY_MS)


def parse_day_key(value: str) -> date:
    """Parse a ``YYYY-MM-DD`` window key."""
    return date.fromisoformat(value)

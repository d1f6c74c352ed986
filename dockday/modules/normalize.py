"""Field normalizers for Shipxy vessel records.

Every function here is total: unparseable input yields ``None`` so a single
malformed record only disables the rules that depend on that field.
"""
from __future__ import annotations

import math
import re
from datetime import datetime, timezone, tzinfo
from typing import Any

from dockday.schemas.vessel import VesselRecord
from dockday.utils.port_time import PORT_TZ, to_epoch_ms

_EXPLICIT_OFFSET_RE = re.compile(r"([+-]\d{2}:?\d{2}|Z)$", re.IGNORECASE)

_COMMON_TIMESTAMP_FORMATS = [
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d %H:%M",
    "%Y-%m-%d %H:%M",
    "%m/%d/%Y %H:%M:%S",
    "%d/%m/%Y %H:%M:%S",
    "%m/%d/%Y %H:%M",
]


def finite_number(value: Any) -> float | None:
    """Return ``value`` as float when it is a real, finite number (not a numeric string)."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return float(value) if math.isfinite(value) else None


def parse_number(value: Any) -> float | None:
    """Finite float from a number or numeric string."""
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return finite_number(value)


def parse_draught(value: Any) -> float | None:
    """Draught in metres from a number or numeric string."""
    return parse_number(value)


def _parse_candidate(text: str, assume_tz: tzinfo | None) -> datetime | None:
    """Parse ISO or a common layout; naive results get ``assume_tz`` (None = platform local)."""
    dt: datetime | None = None
    try:
        dt = datetime.fromisoformat(text[:-1] + "+00:00" if text[-1:] in ("Z", "z") else text)
    except ValueError:
        spaced = text.replace("T", " ", 1)
        for fmt in _COMMON_TIMESTAMP_FORMATS:
            try:
                dt = datetime.strptime(spaced, fmt)
                break
            except ValueError:
                continue
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.astimezone() if assume_tz is None else dt.replace(tzinfo=assume_tz)
    return dt


def parse_port_timestamp(value: str | None) -> int | None:
    """Epoch ms from a feed date-time string.

    Strings carrying an explicit offset are parsed as-is. Otherwise the
    candidates are, in order: port time (UTC+8), UTC, platform local time.
    """
    if not isinstance(value, str) or not value.strip():
        return None
    normalized = value.strip().replace(" ", "T", 1)
    if _EXPLICIT_OFFSET_RE.search(normalized):
        candidates: list[tzinfo | None] = [None]
    else:
        candidates = [PORT_TZ, timezone.utc, None]
    for assume_tz in candidates:
        try:
            dt = _parse_candidate(normalized, assume_tz)
        except (OverflowError, OSError):
            dt = None
        if dt is not None:
            return to_epoch_ms(dt)
    return None


def eta_timestamp(record: VesselRecord | None) -> int | None:
    """ETA in epoch ms: numeric ``eta_utc`` (seconds) first, then the ``eta`` string."""
    if record is None:
        return None
    eta_seconds = finite_number(record.eta_utc)
    if eta_seconds is not None:
        return int(eta_seconds * 1000)
    return parse_port_timestamp(record.eta)


def last_update_timestamp(record: VesselRecord | None) -> int | None:
    """Last AIS report time in epoch ms: ``last_time_utc`` (seconds, number or numeric string) first, then ``last_time``."""
    if record is None:
        return None
    seconds = parse_number(record.last_time_utc)
    if seconds:
        return int(seconds * 1000)
    return parse_port_timestamp(record.last_time)


def previous_port(record: VesselRecord | None) -> str:
    """Departure port name, preferring the localized field; empty when unknown."""
    if record is None:
        return ""
    return (record.preport_cnname or record.last_port or "").strip()

"""Flag-state classification for the home port.

Feeds report ``ship_flag`` as free text: ISO codes ("CN", "CHN"), English
names ("China", "People's Republic of China") or Chinese names ("中国").
Vessels whose flag is not domestic are "foreign" and are the only ones
eligible for foreign-report events, arrival tracking and rollups.
"""
from __future__ import annotations

import re

_SEPARATORS_RE = re.compile(r"[\s.\-']")

DOMESTIC_FLAG_CODES: frozenset[str] = frozenset({"CN", "CHN"})

# Matched as substrings of the normalized (upper-case, separator-free) flag
DOMESTIC_FLAG_KEYWORDS: tuple[str, ...] = ("CHINA", "PEOPLESREPUBLICOFCHINA", "PRC")

DOMESTIC_FLAG_NATIVE_NAME = "中国"


def normalize_flag_text(flag: str | None) -> str:
    """Upper-case and strip whitespace, dots, dashes and apostrophes."""
    return _SEPARATORS_RE.sub("", str(flag or "").strip().upper())


def is_domestic_flag(flag: str | None) -> bool:
    """True for mainland-China registry flags. Empty/unknown flags are not domestic."""
    raw = str(flag or "").strip()
    if not raw:
        return False
    if DOMESTIC_FLAG_NATIVE_NAME in raw:
        return True
    normalized = normalize_flag_text(raw)
    if normalized in DOMESTIC_FLAG_CODES:
        return True
    return any(keyword in normalized for keyword in DOMESTIC_FLAG_KEYWORDS)

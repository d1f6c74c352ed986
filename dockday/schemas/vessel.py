"""Pydantic schemas for feed vessel records and port snapshots.

Shipxy returns loosely typed JSON: numeric fields sometimes arrive as
strings, optional fields are omitted or empty. Records keep the raw values;
canonical numbers and timestamps come from ``dockday.modules.normalize``.
"""
from __future__ import annotations

import math
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, ConfigDict, field_validator

_TRAILING_ZERO_RE = re.compile(r"\.0+$")

Numeric = Union[float, str]

# A badly typed value becomes None so only the rules reading that field are lost
_TEXT_FIELDS = (
    "ship_name", "ship_cnname", "ship_flag", "eta", "last_time",
    "preport_cnname", "last_port", "dest",
)
_NUMERIC_FIELDS = (
    "ship_type", "imo", "eta_utc", "last_time_utc", "draught", "length", "width", "dwt",
)


def normalize_mmsi(value: Any) -> str:
    """Canonical string MMSI: ``412345678.0`` and ``"412345678 "`` → ``"412345678"``."""
    if isinstance(value, float) and math.isfinite(value) and value.is_integer():
        value = int(value)
    text = _TRAILING_ZERO_RE.sub("", str(value if value is not None else "").strip())
    return text


def coerce_text(value: Any) -> Optional[str]:
    """Raw text field: strings kept, finite numbers stringified, anything else dropped."""
    if isinstance(value, str):
        return value
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return str(value) if math.isfinite(value) else None


def coerce_numeric(value: Any) -> Optional[Numeric]:
    """Raw numeric field: numbers and strings kept as-is, other shapes dropped."""
    if isinstance(value, bool) or not isinstance(value, (int, float, str)):
        return None
    return value


class VesselRecord(BaseModel):
    """One vessel's AIS-reported state at fetch time. Immutable once captured."""

    model_config = ConfigDict(frozen=True, extra="allow")

    mmsi: str
    ship_name: Optional[str] = None
    ship_cnname: Optional[str] = None
    ship_flag: Optional[str] = None
    ship_type: Optional[Numeric] = None
    imo: Optional[Numeric] = None
    eta: Optional[str] = None
    eta_utc: Optional[Numeric] = None
    last_time: Optional[str] = None
    last_time_utc: Optional[Numeric] = None
    draught: Optional[Numeric] = None
    length: Optional[Numeric] = None
    width: Optional[Numeric] = None
    dwt: Optional[Numeric] = None
    preport_cnname: Optional[str] = None
    last_port: Optional[str] = None
    dest: Optional[str] = None

    @field_validator(*_TEXT_FIELDS, mode="before")
    @classmethod
    def text_or_none(cls, v: Any) -> Optional[str]:
        return coerce_text(v)

    @field_validator(*_NUMERIC_FIELDS, mode="before")
    @classmethod
    def numeric_or_none(cls, v: Any) -> Optional[Numeric]:
        return coerce_numeric(v)

    @field_validator("mmsi", mode="before")
    @classmethod
    def mmsi_must_be_present(cls, v: Any) -> str:
        mmsi = normalize_mmsi(v)
        if not mmsi:
            raise ValueError("MMSI is required")
        return mmsi

    @property
    def display_name(self) -> str:
        return (self.ship_name or "").strip() or (self.ship_cnname or "").strip() or self.mmsi


class Snapshot(BaseModel):
    """All vessels reported for one port at one fetch time."""

    model_config = ConfigDict(frozen=True)

    port_code: str
    fetched_at: int  # epoch ms
    time_range: int  # lookahead seconds
    start_time: Optional[int] = None  # epoch s
    end_time: Optional[int] = None  # epoch s
    vessels: tuple[VesselRecord, ...] = ()

"""Domain schemas produced by the diff engine and the rollup jobs."""
from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict

from dockday.models.base import EventTypeEnum


class DetectedEvent(BaseModel):
    """A single detected state-change fact about one vessel."""

    model_config = ConfigDict(frozen=True)

    mmsi: str
    type: EventTypeEnum
    detail: str
    flag: Optional[str] = None
    detected_at: int  # epoch ms


class AggregateRow(BaseModel):
    model_config = ConfigDict(frozen=True)

    arrival_event_count: int = 0
    arrival_ship_count: int = 0
    risk_change_count: int = 0
    risk_change_ship_count: int = 0


class ArrivalRecord(BaseModel):
    """Vessel whose ETA fell inside the arrived window, keyed by (port_code, mmsi)."""

    model_config = ConfigDict(frozen=True)

    port_code: str
    mmsi: str
    ship_name: Optional[str] = None
    ship_cnname: Optional[str] = None
    ship_flag: Optional[str] = None
    eta: Optional[str] = None
    eta_utc: Optional[int] = None  # epoch s
    arrived_at: Optional[int] = None  # epoch ms
    detected_at: int  # epoch ms
    last_port: Optional[str] = None
    dest: Optional[str] = None
    source: str = "snapshot"
    data_json: Optional[str] = None

"""Pydantic response schemas for the read-only API."""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class ShipEventRead(BaseModel):
    id: int
    port_code: str
    mmsi: str
    ship_flag: Optional[str] = None
    event_type: str
    detail: str
    detected_at: int

    model_config = {"from_attributes": True}


class DailyAggregateRead(BaseModel):
    day: str
    arrival_event_count: int
    arrival_ship_count: int
    risk_change_count: int
    risk_change_ship_count: int
    updated_at: int

    model_config = {"from_attributes": True}


class WeeklyAggregateRead(BaseModel):
    week_start: str
    arrival_event_count: int
    arrival_ship_count: int
    risk_change_count: int
    risk_change_ship_count: int
    updated_at: int

    model_config = {"from_attributes": True}


class ArrivedShipRead(BaseModel):
    port_code: str
    mmsi: str
    ship_name: Optional[str] = None
    ship_cnname: Optional[str] = None
    ship_flag: Optional[str] = None
    eta: Optional[str] = None
    eta_utc: Optional[int] = None
    arrived_at: Optional[int] = None
    detected_at: int
    last_port: Optional[str] = None
    dest: Optional[str] = None
    source: str

    model_config = {"from_attributes": True}


class PipelineRunRead(BaseModel):
    run_id: int
    port_code: str
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    vessels_count: Optional[int] = None
    events_created: int = 0
    event_counts_json: Optional[dict] = None
    status: str
    error: Optional[str] = None

    model_config = {"from_attributes": True}

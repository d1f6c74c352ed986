from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from dockday.config import settings
from dockday.database import get_db
from dockday.models.aggregate import DailyAggregate, WeeklyAggregate
from dockday.models.arrived_ship import ArrivedShip
from dockday.models.base import EventTypeEnum
from dockday.models.pipeline_run import PipelineRun
from dockday.models.ship_event import ShipEvent
from dockday.schemas.stats import (
    ArrivedShipRead,
    DailyAggregateRead,
    PipelineRunRead,
    ShipEventRead,
    WeeklyAggregateRead,
)
from dockday.utils.port_time import parse_day_key

logger = logging.getLogger(__name__)

router = APIRouter()

_MAX_LIMIT = 500


def _validate_day(value: Optional[str], name: str) -> Optional[str]:
    if value is None:
        return None
    try:
        return parse_day_key(value).isoformat()
    except ValueError:
        raise HTTPException(status_code=422, detail=f"{name} must be YYYY-MM-DD")


@router.get("/events", response_model=list[ShipEventRead])
def list_events(
    start: Optional[int] = Query(None, description="detected_at lower bound (epoch ms, inclusive)"),
    end: Optional[int] = Query(None, description="detected_at upper bound (epoch ms, exclusive)"),
    mmsi: Optional[str] = None,
    event_type: Optional[EventTypeEnum] = Query(None, alias="type"),
    limit: int = Query(100, ge=1, le=_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    q = db.query(ShipEvent)
    if start is not None:
        q = q.filter(ShipEvent.detected_at >= start)
    if end is not None:
        q = q.filter(ShipEvent.detected_at < end)
    if mmsi:
        q = q.filter(ShipEvent.mmsi == mmsi)
    if event_type is not None:
        q = q.filter(ShipEvent.event_type == event_type.value)
    return q.order_by(ShipEvent.detected_at.desc(), ShipEvent.id.desc()).limit(limit).all()


@router.get("/stats/daily", response_model=list[DailyAggregateRead])
def daily_stats(
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start = _validate_day(start, "start")
    end = _validate_day(end, "end")
    q = db.query(DailyAggregate)
    if start:
        q = q.filter(DailyAggregate.day >= start)
    if end:
        q = q.filter(DailyAggregate.day <= end)
    return q.order_by(DailyAggregate.day).all()


@router.get("/stats/weekly", response_model=list[WeeklyAggregateRead])
def weekly_stats(
    start: Optional[str] = None,
    end: Optional[str] = None,
    db: Session = Depends(get_db),
):
    start = _validate_day(start, "start")
    end = _validate_day(end, "end")
    q = db.query(WeeklyAggregate)
    if start:
        q = q.filter(WeeklyAggregate.week_start >= start)
    if end:
        q = q.filter(WeeklyAggregate.week_start <= end)
    return q.order_by(WeeklyAggregate.week_start).all()


@router.get("/arrived-ships", response_model=list[ArrivedShipRead])
def arrived_ships(
    port_code: Optional[str] = None,
    db: Session = Depends(get_db),
):
    return (
        db.query(ArrivedShip)
        .filter(ArrivedShip.port_code == (port_code or settings.PORT_CODE))
        .order_by(ArrivedShip.arrived_at.desc())
        .all()
    )


@router.get("/pipeline-runs", response_model=list[PipelineRunRead])
def pipeline_runs(
    limit: int = Query(20, ge=1, le=_MAX_LIMIT),
    db: Session = Depends(get_db),
):
    return db.query(PipelineRun).order_by(PipelineRun.run_id.desc()).limit(limit).all()

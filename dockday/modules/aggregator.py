"""Daily and weekly event rollups.

Counters are recomputed from the event log for the whole window on every
run and written with an upsert, so repeated runs over an unchanged window
produce identical rows (only ``updated_at`` moves).  Events from domestic
flagged vessels are excluded.
"""
from __future__ import annotations

import logging
from datetime import date
from typing import Callable, Iterable

from dockday.models.base import ARRIVAL_EVENT_TYPES, EventTypeEnum
from dockday.modules.stores import AggregateStore, EventStore
from dockday.schemas.event import AggregateRow, DetectedEvent
from dockday.utils.flags import is_domestic_flag
from dockday.utils.port_time import TimeWindow, day_window, week_window

logger = logging.getLogger(__name__)


def aggregate(
    events: Iterable[DetectedEvent],
    window: TimeWindow,
    is_domestic: Callable[[str | None], bool] = is_domestic_flag,
) -> AggregateRow:
    """Fold events with ``detected_at`` in ``[window.start_ms, window.end_ms)`` into counters."""
    arrival_events = 0
    arrival_ships: set[str] = set()
    risk_events = 0
    risk_ships: set[str] = set()

    for event in events:
        if not (window.start_ms <= event.detected_at < window.end_ms):
            continue
        if is_domestic(event.flag):
            continue
        if event.type in ARRIVAL_EVENT_TYPES:
            arrival_events += 1
            arrival_ships.add(event.mmsi)
        elif event.type == EventTypeEnum.RISK_LEVEL_CHANGE:
            risk_events += 1
            risk_ships.add(event.mmsi)

    return AggregateRow(
        arrival_event_count=arrival_events,
        arrival_ship_count=len(arrival_ships),
        risk_change_count=risk_events,
        risk_change_ship_count=len(risk_ships),
    )


def rollup_day(
    event_store: EventStore,
    aggregate_store: AggregateStore,
    day: date,
    updated_at: int,
) -> tuple[str, AggregateRow]:
    """Recompute and upsert the daily aggregate for the port-local ``day``."""
    window = day_window(day)
    row = aggregate(event_store.get_events_in_range(window.start_ms, window.end_ms), window)
    aggregate_store.upsert_daily_aggregate(window.key, row, updated_at)
    logger.debug("Daily rollup %s: %s", window.key, row)
    return window.key, row


def rollup_week(
    event_store: EventStore,
    aggregate_store: AggregateStore,
    day: date,
    updated_at: int,
) -> tuple[str, AggregateRow]:
    """Recompute and upsert the aggregate for the Monday-based week containing ``day``."""
    window = week_window(day)
    row = aggregate(event_store.get_events_in_range(window.start_ms, window.end_ms), window)
    aggregate_store.upsert_weekly_aggregate(window.key, row, updated_at)
    logger.debug("Weekly rollup %s: %s", window.key, row)
    return window.key, row

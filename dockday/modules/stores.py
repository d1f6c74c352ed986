"""Storage contracts and their SQLAlchemy implementations.

The diff engine and rollup jobs only see the Protocols below. The SQL
stores flush but never commit; the pipeline owns the transaction so a
snapshot and the events derived from it land together or not at all.
"""
from __future__ import annotations

import json
import logging
from contextlib import contextmanager
from typing import Iterator, Protocol, Sequence

from pydantic import ValidationError
from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dockday.models.aggregate import DailyAggregate, WeeklyAggregate
from dockday.models.arrived_ship import ArrivedShip
from dockday.models.base import EventTypeEnum
from dockday.models.ship_event import ShipEvent
from dockday.models.snapshot import ShipSnapshot
from dockday.modules.errors import PersistenceFailure
from dockday.schemas.event import AggregateRow, ArrivalRecord, DetectedEvent
from dockday.schemas.vessel import Snapshot, VesselRecord

logger = logging.getLogger(__name__)


class SnapshotStore(Protocol):
    def get_latest(self, port_code: str) -> Snapshot | None: ...

    def save(self, snapshot: Snapshot) -> None: ...


class EventHistory(Protocol):
    def get_last_event_timestamp(self, mmsi: str, event_type: EventTypeEnum) -> int | None: ...


class EventStore(EventHistory, Protocol):
    def save(self, events: Sequence[DetectedEvent]) -> None: ...

    def get_events_in_range(self, start_ms: int, end_ms: int) -> list[DetectedEvent]: ...


class ArrivalStore(Protocol):
    def upsert_arrived(self, records: Sequence[ArrivalRecord]) -> None: ...


class AggregateStore(Protocol):
    def upsert_daily_aggregate(self, day_key: str, row: AggregateRow, updated_at: int) -> None: ...

    def upsert_weekly_aggregate(self, week_key: str, row: AggregateRow, updated_at: int) -> None: ...


@contextmanager
def _persistence_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise PersistenceFailure(f"{operation} failed: {exc}") from exc


def parse_vessels(payload: object) -> list[VesselRecord]:
    """Validate raw vessel dicts, dropping entries that are not usable records."""
    if not isinstance(payload, list):
        return []
    vessels: list[VesselRecord] = []
    for raw in payload:
        if not isinstance(raw, dict):
            logger.debug("Skipping non-object vessel entry: %r", raw)
            continue
        try:
            vessels.append(VesselRecord.model_validate(raw))
        except ValidationError as exc:
            logger.debug("Skipping malformed vessel record %r: %s", raw.get("mmsi"), exc)
    return vessels


class SqlSnapshotStore:
    def __init__(self, db: Session):
        self.db = db

    def get_latest(self, port_code: str) -> Snapshot | None:
        with _persistence_errors("load latest snapshot"):
            row = (
                self.db.query(ShipSnapshot)
                .filter(ShipSnapshot.port_code == port_code)
                .order_by(ShipSnapshot.id.desc())
                .first()
            )
        if row is None:
            return None
        try:
            payload = json.loads(row.data_json or "[]")
        except json.JSONDecodeError as exc:
            # Treated as a baseline run: the new snapshot replaces it as "latest"
            logger.error("Snapshot %d for %s is not valid JSON: %s", row.id, port_code, exc)
            return None
        return Snapshot(
            port_code=row.port_code,
            fetched_at=row.fetched_at,
            time_range=row.time_range,
            start_time=row.start_time,
            end_time=row.end_time,
            vessels=tuple(parse_vessels(payload)),
        )

    def save(self, snapshot: Snapshot) -> None:
        data = [v.model_dump(mode="json", exclude_none=True) for v in snapshot.vessels]
        with _persistence_errors("save snapshot"):
            self.db.add(ShipSnapshot(
                port_code=snapshot.port_code,
                time_range=snapshot.time_range,
                start_time=snapshot.start_time,
                end_time=snapshot.end_time,
                fetched_at=snapshot.fetched_at,
                data_json=json.dumps(data, ensure_ascii=False),
            ))
            self.db.flush()


class SqlEventStore:
    def __init__(self, db: Session, port_code: str):
        self.db = db
        self.port_code = port_code

    def save(self, events: Sequence[DetectedEvent]) -> None:
        if not events:
            return
        with _persistence_errors("save events"):
            self.db.add_all([
                ShipEvent(
                    port_code=self.port_code,
                    mmsi=event.mmsi,
                    ship_flag=event.flag or None,
                    event_type=event.type.value,
                    detail=event.detail,
                    detected_at=event.detected_at,
                )
                for event in events
            ])
            self.db.flush()

    def get_events_in_range(self, start_ms: int, end_ms: int) -> list[DetectedEvent]:
        with _persistence_errors("load events"):
            rows = (
                self.db.query(ShipEvent)
                .filter(ShipEvent.detected_at >= start_ms, ShipEvent.detected_at < end_ms)
                .order_by(ShipEvent.detected_at, ShipEvent.id)
                .all()
            )
        events = []
        for row in rows:
            try:
                event_type = EventTypeEnum(row.event_type)
            except ValueError:
                logger.debug("Ignoring event %d with unknown type %r", row.id, row.event_type)
                continue
            events.append(DetectedEvent(
                mmsi=row.mmsi,
                type=event_type,
                detail=row.detail,
                flag=row.ship_flag,
                detected_at=row.detected_at,
            ))
        return events

    def get_last_event_timestamp(self, mmsi: str, event_type: EventTypeEnum) -> int | None:
        with _persistence_errors("load last event timestamp"):
            return (
                self.db.query(func.max(ShipEvent.detected_at))
                .filter(ShipEvent.mmsi == mmsi, ShipEvent.event_type == event_type.value)
                .scalar()
            )


class SqlArrivalStore:
    def __init__(self, db: Session):
        self.db = db

    def upsert_arrived(self, records: Sequence[ArrivalRecord]) -> None:
        if not records:
            return
        with _persistence_errors("upsert arrived ships"):
            for record in records:
                values = record.model_dump()
                existing = (
                    self.db.query(ArrivedShip)
                    .filter(
                        ArrivedShip.port_code == record.port_code,
                        ArrivedShip.mmsi == record.mmsi,
                    )
                    .first()
                )
                if existing is None:
                    self.db.add(ArrivedShip(**values))
                else:
                    for key, value in values.items():
                        setattr(existing, key, value)
            self.db.flush()


class SqlAggregateStore:
    def __init__(self, db: Session):
        self.db = db

    def _upsert(self, model, key_field: str, key: str, row: AggregateRow, updated_at: int) -> None:
        with _persistence_errors(f"upsert {model.__tablename__}"):
            existing = self.db.get(model, key)
            if existing is None:
                existing = model(**{key_field: key})
                self.db.add(existing)
            for name, value in row.model_dump().items():
                setattr(existing, name, value)
            existing.updated_at = updated_at
            self.db.flush()

    def upsert_daily_aggregate(self, day_key: str, row: AggregateRow, updated_at: int) -> None:
        self._upsert(DailyAggregate, "day", day_key, row, updated_at)

    def upsert_weekly_aggregate(self, week_key: str, row: AggregateRow, updated_at: int) -> None:
        self._upsert(WeeklyAggregate, "week_start", week_key, row, updated_at)

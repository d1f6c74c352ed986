"""Fetch → diff → persist → rollup pipeline and its fixed-interval scheduler.

One tick:
  1. fetch the port's vessel list (history lookback .. future lookahead)
  2. load the latest snapshot, save the new one (empty lists included)
  3. diff against the previous snapshot and save the events
     (steps 2-3 commit together)
  4. upsert arrived ships, today's daily and this week's weekly aggregate

Any exception ends the tick early: the open transaction is rolled back, the
run is recorded as failed, and the scheduler carries on with the next tick.
"""
from __future__ import annotations

import enum
import logging
import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Sequence

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from dockday.models.base import PipelineStatusEnum
from dockday.models.pipeline_run import PipelineRun
from dockday.modules.aggregator import rollup_day, rollup_week
from dockday.modules.arrivals import build_arrival_records
from dockday.modules.diff_engine import DiffConfig, DiffEngine
from dockday.modules.errors import FetchFailure, PersistenceFailure
from dockday.modules.stores import (
    SqlAggregateStore,
    SqlArrivalStore,
    SqlEventStore,
    SqlSnapshotStore,
)
from dockday.schemas.vessel import Snapshot, VesselRecord
from dockday.utils.port_time import HOUR_MS, local_date, now_ms

logger = logging.getLogger(__name__)

FetchFn = Callable[[str, int, int], Sequence[VesselRecord]]


@dataclass
class TickResult:
    status: PipelineStatusEnum
    vessels_count: int | None = None
    events_created: int = 0
    event_counts: dict[str, int] = field(default_factory=dict)
    baseline: bool = False
    error: str | None = None


class PortPipeline:
    """Runs single ticks for one port against the SQL stores."""

    def __init__(
        self,
        port_code: str,
        fetch: FetchFn,
        session_factory: Callable[[], Session],
        diff_config: DiffConfig,
        future_window_s: int,
        history_window_s: int,
        arrived_window_ms: int = 24 * HOUR_MS,
        clock: Callable[[], int] = now_ms,
    ):
        self.port_code = port_code
        self.fetch = fetch
        self.session_factory = session_factory
        self.diff_config = diff_config
        self.future_window_s = future_window_s
        self.history_window_s = history_window_s
        self.arrived_window_ms = arrived_window_ms
        self.clock = clock

    def run_tick(self) -> TickResult:
        run_id = self._record_start()
        result = TickResult(status=PipelineStatusEnum.RUNNING)
        db = self.session_factory()
        try:
            self._execute(db, result)
            result.status = PipelineStatusEnum.COMPLETED
        except FetchFailure as exc:
            db.rollback()
            result.status = PipelineStatusEnum.FAILED
            result.error = str(exc)
            logger.error("Fetch failed for %s: %s", self.port_code, exc)
        except PersistenceFailure as exc:
            db.rollback()
            result.status = PipelineStatusEnum.FAILED
            result.error = str(exc)
            logger.error("Persistence failed for %s: %s", self.port_code, exc)
        except Exception as exc:
            db.rollback()
            result.status = PipelineStatusEnum.FAILED
            result.error = f"{type(exc).__name__}: {exc}"
            logger.exception("Pipeline tick failed for %s", self.port_code)
        finally:
            db.close()
        self._record_finish(run_id, result)
        return result

    def _execute(self, db: Session, result: TickResult) -> None:
        started_s = self.clock() // 1000
        start_s = max(0, started_s - self.history_window_s)
        end_s = started_s + self.future_window_s
        vessels = list(self.fetch(self.port_code, start_s, end_s))
        result.vessels_count = len(vessels)

        now = self.clock()
        snapshots = SqlSnapshotStore(db)
        event_store = SqlEventStore(db, self.port_code)

        previous = snapshots.get_latest(self.port_code)
        current = Snapshot(
            port_code=self.port_code,
            fetched_at=now,
            time_range=self.future_window_s,
            start_time=start_s,
            end_time=end_s,
            vessels=tuple(vessels),
        )
        snapshots.save(current)

        if previous is None:
            result.baseline = True
            logger.info("Baseline snapshot for %s (%d vessels)", self.port_code, len(vessels))
        else:
            engine = DiffEngine(self.diff_config, event_store)
            events = engine.diff(previous, current, previous.fetched_at, now)
            event_store.save(events)
            result.events_created = len(events)
            result.event_counts = dict(Counter(e.type.value for e in events))
        self._commit(db, "snapshot and events")

        SqlArrivalStore(db).upsert_arrived(
            build_arrival_records(current, now, self.arrived_window_ms)
        )
        aggregates = SqlAggregateStore(db)
        today = local_date(now)
        rollup_day(event_store, aggregates, today, now)
        rollup_week(event_store, aggregates, today, now)
        self._commit(db, "arrivals and aggregates")

        logger.info(
            "Tick %s: %d vessels, %d events %s",
            self.port_code, len(vessels), result.events_created, result.event_counts or "",
        )

    @staticmethod
    def _commit(db: Session, what: str) -> None:
        try:
            db.commit()
        except SQLAlchemyError as exc:
            raise PersistenceFailure(f"commit {what} failed: {exc}") from exc

    def _record_start(self) -> int | None:
        db = self.session_factory()
        try:
            run = PipelineRun(port_code=self.port_code, status=PipelineStatusEnum.RUNNING.value)
            db.add(run)
            db.commit()
            return run.run_id
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Could not record pipeline run start: %s", exc)
            return None
        finally:
            db.close()

    def _record_finish(self, run_id: int | None, result: TickResult) -> None:
        if run_id is None:
            return
        db = self.session_factory()
        try:
            run = db.get(PipelineRun, run_id)
            if run is not None:
                run.status = result.status.value
                run.completed_at = datetime.now(timezone.utc).replace(tzinfo=None)
                run.vessels_count = result.vessels_count
                run.events_created = result.events_created
                run.event_counts_json = result.event_counts or None
                run.error = result.error
                db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.warning("Could not record pipeline run %s result: %s", run_id, exc)
        finally:
            db.close()


class SchedulerState(str, enum.Enum):
    IDLE = "idle"
    RUNNING = "running"


class PipelineScheduler:
    """Runs one tick immediately, then one every ``interval_seconds``.

    Ticks never overlap: a tick requested while another is running is
    skipped, since the diff reads the snapshot the running tick is replacing.
    """

    def __init__(self, pipeline: PortPipeline, interval_seconds: float):
        self.pipeline = pipeline
        self.interval_seconds = interval_seconds
        self.state = SchedulerState.IDLE
        self._lock = threading.Lock()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> TickResult | None:
        """Run one tick unless one is already running. Returns None when skipped."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Previous tick for %s still running — skipping", self.pipeline.port_code)
            return None
        try:
            self.state = SchedulerState.RUNNING
            return self.pipeline.run_tick()
        finally:
            self.state = SchedulerState.IDLE
            self._lock.release()

    def run_forever(self) -> None:
        """Tick until ``stop()`` is called. Blocks the calling thread."""
        logger.info(
            "Scheduler started for %s (every %.0f min)",
            self.pipeline.port_code, self.interval_seconds / 60,
        )
        while not self._stop.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("Scheduler tick crashed for %s", self.pipeline.port_code)
            if self._stop.wait(self.interval_seconds):
                break
        logger.info("Scheduler stopped for %s", self.pipeline.port_code)

    def start(self) -> None:
        """Run the schedule on a daemon thread."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop.clear()
        self._thread = threading.Thread(
            target=self.run_forever, name="dockday-scheduler", daemon=True
        )
        self._thread.start()

    def stop(self, timeout: float | None = 30.0) -> None:
        """Stop scheduling; an in-flight tick is given ``timeout`` seconds to finish."""
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None


def build_pipeline(settings=None, session_factory=None, fetch: FetchFn | None = None) -> PortPipeline:
    """Wire a pipeline from application settings."""
    from dockday.modules.risk_classifier import load_risk_rules
    from dockday.modules.shipxy_client import fetch_vessels

    if settings is None:
        from dockday.config import settings
    if session_factory is None:
        from dockday.database import SessionLocal as session_factory

    risk_rules = load_risk_rules(settings.RISK_RULES_CONFIG)
    return PortPipeline(
        port_code=settings.PORT_CODE,
        fetch=fetch or fetch_vessels,
        session_factory=session_factory,
        diff_config=DiffConfig.from_settings(settings, risk_rules),
        future_window_s=settings.FUTURE_WINDOW_SECONDS,
        history_window_s=settings.HISTORY_WINDOW_SECONDS,
        arrived_window_ms=int(settings.ARRIVED_WINDOW_HOURS * HOUR_MS),
    )


def build_scheduler(pipeline: PortPipeline | None = None, interval_minutes: float | None = None) -> PipelineScheduler:
    from dockday.config import settings

    pipeline = pipeline or build_pipeline()
    minutes = interval_minutes if interval_minutes is not None else settings.FETCH_INTERVAL_MINUTES
    return PipelineScheduler(pipeline, interval_seconds=minutes * 60)

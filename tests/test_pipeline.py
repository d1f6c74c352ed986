"""Tests for pipeline ticks, run bookkeeping and the overlap-guarded scheduler."""
from __future__ import annotations

import threading
from unittest.mock import MagicMock, patch

from conftest import NOW, make_vessel
from dockday.models.aggregate import DailyAggregate, WeeklyAggregate
from dockday.models.arrived_ship import ArrivedShip
from dockday.models.base import PipelineStatusEnum
from dockday.models.pipeline_run import PipelineRun
from dockday.models.ship_event import ShipEvent
from dockday.models.snapshot import ShipSnapshot
from dockday.modules.diff_engine import DiffConfig
from dockday.modules.errors import FetchFailure, PersistenceFailure
from dockday.modules.pipeline import (
    PipelineScheduler,
    PortPipeline,
    SchedulerState,
    TickResult,
    build_pipeline,
)
from dockday.utils.port_time import HOUR_MS, MINUTE_MS, local_date


class FakeFeed:
    """Returns queued vessel lists (or raises queued exceptions) per call."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, port_code, start_s, end_s):
        self.calls.append((port_code, start_s, end_s))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _pipeline(session_factory, feed, clock):
    return PortPipeline(
        port_code="CNNJG",
        fetch=feed,
        session_factory=session_factory,
        diff_config=DiffConfig(),
        future_window_s=7 * 24 * 3600,
        history_window_s=30 * 24 * 3600,
        arrived_window_ms=24 * HOUR_MS,
        clock=clock,
    )


class TestPortPipeline:
    def test_first_tick_is_baseline(self, session_factory, db):
        feed = FakeFeed([make_vessel()])
        result = _pipeline(session_factory, feed, Clock(NOW)).run_tick()

        assert result.status == PipelineStatusEnum.COMPLETED
        assert result.baseline is True
        assert result.events_created == 0
        assert db.query(ShipSnapshot).count() == 1
        assert db.query(ShipEvent).count() == 0
        assert feed.calls == [("CNNJG", NOW // 1000 - 30 * 24 * 3600, NOW // 1000 + 7 * 24 * 3600)]

    def test_second_tick_detects_and_rolls_up(self, session_factory, db):
        t1 = NOW
        t2 = NOW + 90 * MINUTE_MS
        eta_s = (t1 + 7 * HOUR_MS) // 1000
        vessel = make_vessel(eta_utc=eta_s)
        clock = Clock(t1)
        pipeline = _pipeline(session_factory, FakeFeed([vessel], [vessel]), clock)

        pipeline.run_tick()
        clock.now = t2
        result = pipeline.run_tick()

        assert result.status == PipelineStatusEnum.COMPLETED
        assert result.event_counts == {"ARRIVAL_SOON": 1}
        events = db.query(ShipEvent).all()
        assert [(e.mmsi, e.event_type, e.detected_at) for e in events] == [
            ("431000001", "ARRIVAL_SOON", t2)
        ]
        daily = db.get(DailyAggregate, local_date(t2).isoformat())
        assert daily.arrival_event_count == 1
        assert daily.arrival_ship_count == 1
        assert daily.updated_at == t2
        assert db.query(WeeklyAggregate).one().arrival_event_count == 1

    def test_rollups_idempotent_across_quiet_ticks(self, session_factory, db):
        vessel = make_vessel(eta_utc=(NOW + 3 * HOUR_MS) // 1000)
        clock = Clock(NOW)
        pipeline = _pipeline(session_factory, FakeFeed([], [vessel], [vessel]), clock)
        pipeline.run_tick()
        clock.now = NOW + MINUTE_MS
        pipeline.run_tick()
        first = db.query(DailyAggregate).one()
        counters = (first.arrival_event_count, first.arrival_ship_count)

        clock.now = NOW + 2 * MINUTE_MS
        result = pipeline.run_tick()
        db.expire_all()
        second = db.query(DailyAggregate).one()

        assert result.events_created == 0
        assert (second.arrival_event_count, second.arrival_ship_count) == counters
        assert second.updated_at == NOW + 2 * MINUTE_MS

    def test_empty_fetch_saves_empty_snapshot(self, session_factory, db):
        result = _pipeline(session_factory, FakeFeed([]), Clock(NOW)).run_tick()
        assert result.status == PipelineStatusEnum.COMPLETED
        assert result.vessels_count == 0
        assert db.query(ShipSnapshot).one().data_json == "[]"

    def test_arrived_ships_projection(self, session_factory, db):
        arrived = make_vessel("431000001", eta_utc=(NOW - 2 * HOUR_MS) // 1000)
        domestic = make_vessel("413000002", ship_flag="CN", eta_utc=(NOW - 2 * HOUR_MS) // 1000)
        long_ago = make_vessel("431000003", eta_utc=(NOW - 48 * HOUR_MS) // 1000)
        upcoming = make_vessel("431000004", eta_utc=(NOW + HOUR_MS) // 1000)
        feed = FakeFeed([arrived, domestic, long_ago, upcoming])

        _pipeline(session_factory, feed, Clock(NOW)).run_tick()

        rows = db.query(ArrivedShip).all()
        assert [r.mmsi for r in rows] == ["431000001"]
        assert rows[0].arrived_at == NOW - 2 * HOUR_MS
        assert rows[0].last_port == "Busan"
        assert rows[0].source == "snapshot"

    def test_fetch_failure_keeps_previous_snapshot(self, session_factory, db):
        clock = Clock(NOW)
        feed = FakeFeed([make_vessel()], FetchFailure("Shipxy returned HTTP 503"))
        pipeline = _pipeline(session_factory, feed, clock)
        pipeline.run_tick()
        clock.now = NOW + 30 * MINUTE_MS

        result = pipeline.run_tick()

        assert result.status == PipelineStatusEnum.FAILED
        assert "503" in result.error
        assert db.query(ShipSnapshot).count() == 1
        runs = db.query(PipelineRun).order_by(PipelineRun.run_id).all()
        assert [r.status for r in runs] == ["completed", "failed"]
        assert runs[1].error == "Shipxy returned HTTP 503"
        assert runs[1].completed_at is not None

    def test_persistence_failure_rolls_back_tick(self, session_factory, db):
        clock = Clock(NOW)
        pipeline = _pipeline(session_factory, FakeFeed([make_vessel()], [make_vessel(draught=14.0)]), clock)
        pipeline.run_tick()
        clock.now = NOW + 30 * MINUTE_MS

        with patch(
            "dockday.modules.pipeline.SqlEventStore.save",
            side_effect=PersistenceFailure("save events failed: disk full"),
        ):
            result = pipeline.run_tick()

        assert result.status == PipelineStatusEnum.FAILED
        assert db.query(ShipSnapshot).count() == 1
        assert db.query(ShipEvent).count() == 0

    def test_unexpected_error_is_contained(self, session_factory, db):
        feed = FakeFeed(KeyError("data"))
        result = _pipeline(session_factory, feed, Clock(NOW)).run_tick()
        assert result.status == PipelineStatusEnum.FAILED
        assert result.error.startswith("KeyError")
        assert db.query(PipelineRun).one().status == "failed"

    def test_next_tick_recovers_after_failure(self, session_factory, db):
        clock = Clock(NOW)
        feed = FakeFeed([make_vessel(draught=10.0)], FetchFailure("down"), [make_vessel(draught=12.0)])
        pipeline = _pipeline(session_factory, feed, clock)
        pipeline.run_tick()
        clock.now += 30 * MINUTE_MS
        pipeline.run_tick()
        clock.now += 30 * MINUTE_MS

        result = pipeline.run_tick()

        assert result.status == PipelineStatusEnum.COMPLETED
        assert result.event_counts == {"DRAUGHT_SPIKE": 1}


class TestScheduler:
    def test_overlapping_tick_is_skipped(self):
        started = threading.Event()
        release = threading.Event()
        pipeline = MagicMock()
        pipeline.port_code = "CNNJG"

        def slow_tick():
            started.set()
            release.wait(5)
            return TickResult(status=PipelineStatusEnum.COMPLETED)

        pipeline.run_tick.side_effect = slow_tick
        scheduler = PipelineScheduler(pipeline, interval_seconds=60)

        worker = threading.Thread(target=scheduler.tick)
        worker.start()
        assert started.wait(5)
        assert scheduler.state == SchedulerState.RUNNING

        assert scheduler.tick() is None
        release.set()
        worker.join(5)

        assert pipeline.run_tick.call_count == 1
        assert scheduler.state == SchedulerState.IDLE

    def test_tick_returns_result(self):
        pipeline = MagicMock()
        pipeline.run_tick.return_value = TickResult(status=PipelineStatusEnum.COMPLETED)
        scheduler = PipelineScheduler(pipeline, interval_seconds=60)
        assert scheduler.tick().status == PipelineStatusEnum.COMPLETED
        assert scheduler.state == SchedulerState.IDLE

    def test_run_forever_survives_crashing_tick(self):
        pipeline = MagicMock()
        pipeline.port_code = "CNNJG"
        scheduler = PipelineScheduler(pipeline, interval_seconds=0)
        calls = []

        def tick():
            calls.append(1)
            if len(calls) == 1:
                raise RuntimeError("boom")
            scheduler.stop(timeout=0)
            return TickResult(status=PipelineStatusEnum.COMPLETED)

        pipeline.run_tick.side_effect = tick
        scheduler.run_forever()

        assert len(calls) == 2
        assert scheduler.state == SchedulerState.IDLE

    def test_start_runs_immediately_and_stops(self):
        ran = threading.Event()
        pipeline = MagicMock()
        pipeline.port_code = "CNNJG"
        pipeline.run_tick.side_effect = lambda: ran.set()
        scheduler = PipelineScheduler(pipeline, interval_seconds=3600)

        scheduler.start()
        assert ran.wait(5)
        scheduler.stop(timeout=5)

        assert pipeline.run_tick.call_count == 1


def test_build_pipeline_from_settings(session_factory, tmp_path):
    settings = MagicMock()
    settings.PORT_CODE = "CNSHA"
    settings.RISK_RULES_CONFIG = str(tmp_path / "missing.yaml")
    settings.ARRIVAL_WINDOW_HOURS = 8.0
    settings.DRAUGHT_SPIKE_THRESHOLD = 2.0
    settings.FUTURE_WINDOW_SECONDS = 3600
    settings.HISTORY_WINDOW_SECONDS = 7200
    settings.ARRIVED_WINDOW_HOURS = 12.0
    feed = FakeFeed()

    pipeline = build_pipeline(settings, session_factory=session_factory, fetch=feed)

    assert pipeline.port_code == "CNSHA"
    assert pipeline.fetch is feed
    assert pipeline.diff_config.arrival_soon_hours == 8.0
    assert pipeline.diff_config.draught_spike_threshold == 2.0
    assert pipeline.arrived_window_ms == 12 * HOUR_MS

"""Shared test fixtures: in-memory database, vessel builders, API client."""
import os

# Must be set before dockday.config is imported anywhere
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SCHEDULER_ENABLED", "false")

from datetime import datetime

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from dockday.models import Base  # noqa: F401 -- registers all models
from dockday.schemas.vessel import Snapshot, VesselRecord
from dockday.utils.port_time import PORT_TZ, to_epoch_ms

# 2026-10-17 12:00 at the port
NOW = to_epoch_ms(datetime(2026, 10, 17, 12, 0, tzinfo=PORT_TZ))


def make_vessel(mmsi="431000001", **overrides) -> VesselRecord:
    """A quiet foreign cargo vessel: NORMAL risk, no ETA, fresh AIS report."""
    fields = {
        "mmsi": mmsi,
        "ship_name": "OCEAN STAR",
        "ship_flag": "Japan",
        "ship_type": 70,
        "preport_cnname": "Busan",
        "draught": 10.0,
        "last_time_utc": (NOW - 10 * 60 * 1000) // 1000,
        "dest": "NANJING",
    }
    fields.update(overrides)
    return VesselRecord(**fields)


def make_snapshot(vessels, fetched_at=NOW, port_code="CNNJG") -> Snapshot:
    return Snapshot(
        port_code=port_code,
        fetched_at=fetched_at,
        time_range=7 * 24 * 3600,
        vessels=tuple(vessels),
    )


@pytest.fixture
def session_factory():
    """Session factory over a single shared in-memory SQLite connection."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def api_client(db):
    """TestClient with the DB dependency bound to the in-memory session."""
    from dockday.database import get_db
    from dockday.main import app

    def override_get_db():
        yield db

    app.dependency_overrides[get_db] = override_get_db
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()

"""Import all models to register them with SQLAlchemy metadata."""
from dockday.models.base import Base
from dockday.models.snapshot import ShipSnapshot
from dockday.models.ship_event import ShipEvent
from dockday.models.arrived_ship import ArrivedShip
from dockday.models.aggregate import DailyAggregate, WeeklyAggregate
from dockday.models.pipeline_run import PipelineRun

__all__ = [
    "Base",
    "ShipSnapshot",
    "ShipEvent",
    "ArrivedShip",
    "DailyAggregate",
    "WeeklyAggregate",
    "PipelineRun",
]

"""Shared declarative base and enums for all models."""
from __future__ import annotations

import enum
from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    pass


class EventTypeEnum(str, enum.Enum):
    ETA_UPDATE = "ETA_UPDATE"
    ARRIVAL_SOON = "ARRIVAL_SOON"
    ARRIVAL_IMMINENT = "ARRIVAL_IMMINENT"
    ARRIVAL_URGENT = "ARRIVAL_URGENT"
    RISK_LEVEL_CHANGE = "RISK_LEVEL_CHANGE"
    LAST_PORT_CHANGE = "LAST_PORT_CHANGE"
    DRAUGHT_SPIKE = "DRAUGHT_SPIKE"
    STALE_SIGNAL = "STALE_SIGNAL"
    FOREIGN_REPORT = "FOREIGN_REPORT"


ARRIVAL_EVENT_TYPES: frozenset[EventTypeEnum] = frozenset({
    EventTypeEnum.ARRIVAL_SOON,
    EventTypeEnum.ARRIVAL_IMMINENT,
    EventTypeEnum.ARRIVAL_URGENT,
})


class RiskLevelEnum(str, enum.Enum):
    NORMAL = "NORMAL"
    ATTENTION = "ATTENTION"
    HIGH = "HIGH"

    @property
    def rank(self) -> int:
        return _RISK_RANK[self]

    @property
    def label(self) -> str:
        return self.value.lower()


_RISK_RANK = {
    RiskLevelEnum.NORMAL: 0,
    RiskLevelEnum.ATTENTION: 1,
    RiskLevelEnum.HIGH: 2,
}


class PipelineStatusEnum(str, enum.Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

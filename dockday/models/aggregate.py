"""Daily and weekly event rollups, keyed by window start date (YYYY-MM-DD)."""
from __future__ import annotations

from sqlalchemy import BigInteger, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from dockday.models.base import Base


class DailyAggregate(Base):
    __tablename__ = "ship_daily_aggregates"

    day: Mapped[str] = mapped_column(String(10), primary_key=True)
    arrival_event_count: Mapped[int] = mapped_column(Integer, default=0)
    arrival_ship_count: Mapped[int] = mapped_column(Integer, default=0)
    risk_change_count: Mapped[int] = mapped_column(Integer, default=0)
    risk_change_ship_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms


class WeeklyAggregate(Base):
    __tablename__ = "ship_weekly_aggregates"

    week_start: Mapped[str] = mapped_column(String(10), primary_key=True)
    arrival_event_count: Mapped[int] = mapped_column(Integer, default=0)
    arrival_ship_count: Mapped[int] = mapped_column(Integer, default=0)
    risk_change_count: Mapped[int] = mapped_column(Integer, default=0)
    risk_change_ship_count: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms

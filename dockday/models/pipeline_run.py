"""PipelineRun entity — tracks each fetch → diff → rollup tick.

Failed ticks keep their error text so an unattended deployment can be
inspected after the fact; the next tick starts from the last good snapshot.
"""
from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Integer, String, Text, DateTime, JSON, func
from sqlalchemy.orm import Mapped, mapped_column
from dockday.models.base import Base


class PipelineRun(Base):
    __tablename__ = "pipeline_runs"

    run_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    port_code: Mapped[str] = mapped_column(String(16), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime, default=func.now())
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    vessels_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    events_created: Mapped[int] = mapped_column(Integer, default=0)
    # Per-type event counts: {"ETA_UPDATE": 3, "STALE_SIGNAL": 1, ...}
    event_counts_json: Mapped[Optional[dict]] = mapped_column(JSON, nullable=True)
    # "running", "completed", "failed"
    status: Mapped[str] = mapped_column(String(20), default="running")
    error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

"""Ship event — append-only log of detected vessel state changes."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from dockday.models.base import Base


class ShipEvent(Base):
    __tablename__ = "ship_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    port_code: Mapped[str] = mapped_column(String(16), nullable=False)
    mmsi: Mapped[str] = mapped_column(String(16), nullable=False)
    ship_flag: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    event_type: Mapped[str] = mapped_column(String(32), nullable=False)
    detail: Mapped[str] = mapped_column(Text, nullable=False)
    detected_at: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)  # epoch ms

    __table_args__ = (
        # Dedup lookup: latest detected_at per (mmsi, event_type)
        Index("ix_ship_events_mmsi_type_detected", "mmsi", "event_type", "detected_at"),
    )

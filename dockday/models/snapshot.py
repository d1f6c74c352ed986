"""Ship snapshot — one fetch's full vessel list for a port, stored as JSON."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Text, Index
from sqlalchemy.orm import Mapped, mapped_column

from dockday.models.base import Base


class ShipSnapshot(Base):
    __tablename__ = "ships_snapshot"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    port_code: Mapped[str] = mapped_column(String(16), nullable=False)
    # Lookahead used for the fetch (seconds)
    time_range: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # epoch s
    end_time: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # epoch s
    fetched_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
    data_json: Mapped[str] = mapped_column(Text, nullable=False, default="[]")

    __table_args__ = (
        Index("ix_ships_snapshot_port_id", "port_code", "id"),
    )

"""Arrived ship projection — one row per (port, vessel), updated in place."""
from __future__ import annotations

from typing import Optional

from sqlalchemy import BigInteger, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from dockday.models.base import Base


class ArrivedShip(Base):
    __tablename__ = "arrived_ships"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    port_code: Mapped[str] = mapped_column(String(16), nullable=False)
    mmsi: Mapped[str] = mapped_column(String(16), nullable=False)
    ship_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ship_cnname: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    ship_flag: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    eta: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    eta_utc: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # epoch s
    arrived_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)  # epoch ms
    detected_at: Mapped[int] = mapped_column(BigInteger, nullable=False)  # epoch ms
    last_port: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    dest: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False, default="snapshot")
    data_json: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint("port_code", "mmsi", name="arrived_ships_unique"),
    )

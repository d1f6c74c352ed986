"""Arrived-ships projection.

A foreign vessel counts as arrived once its ETA has passed, for as long as
the ETA stays within the arrived window behind "now". Each (port, vessel)
keeps a single row that later snapshots overwrite.
"""
from __future__ import annotations

import json
from typing import Callable

from dockday.modules.normalize import eta_timestamp, finite_number, previous_port
from dockday.schemas.event import ArrivalRecord
from dockday.schemas.vessel import Snapshot
from dockday.utils.flags import is_domestic_flag


def build_arrival_records(
    snapshot: Snapshot,
    now_ms: int,
    arrived_window_ms: int,
    is_domestic: Callable[[str | None], bool] = is_domestic_flag,
) -> list[ArrivalRecord]:
    records = []
    for vessel in snapshot.vessels:
        if is_domestic(vessel.ship_flag):
            continue
        eta = eta_timestamp(vessel)
        if eta is None or not (now_ms - arrived_window_ms <= eta <= now_ms):
            continue
        eta_seconds = finite_number(vessel.eta_utc)
        records.append(ArrivalRecord(
            port_code=snapshot.port_code,
            mmsi=vessel.mmsi,
            ship_name=vessel.ship_name,
            ship_cnname=vessel.ship_cnname,
            ship_flag=vessel.ship_flag,
            eta=vessel.eta,
            eta_utc=int(eta_seconds) if eta_seconds is not None else eta // 1000,
            arrived_at=eta,
            detected_at=now_ms,
            last_port=previous_port(vessel) or None,
            dest=vessel.dest,
            source="snapshot",
            data_json=json.dumps(vessel.model_dump(mode="json", exclude_none=True), ensure_ascii=False),
        ))
    return records

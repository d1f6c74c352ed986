"""Snapshot diff engine — turns two consecutive port snapshots into events.

For every vessel in the current snapshot, matched by MMSI to the previous
snapshot, rules run in a fixed order:

  1. ETA_UPDATE          raw ETA string changed
  2. ARRIVAL_*           ETA entered the 6h / 2h / 30min window
  3. RISK_LEVEL_CHANGE   classifier level changed
  4. LAST_PORT_CHANGE    departure port changed
  5. DRAUGHT_SPIKE       |Δdraught| ≥ spike threshold
  6. STALE_SIGNAL        last report age crossed warn/critical hours
  7. FOREIGN_REPORT      foreign vessel sent a newer AIS report

Arrival events are emitted when the window is crossed between the previous
and the current fetch. While a vessel stays inside a window the event is
repeated at most once per window duration, using the last ``detected_at``
recorded for (mmsi, type) in the event log.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable

from dockday.models.base import EventTypeEnum, RiskLevelEnum
from dockday.modules.normalize import (
    eta_timestamp,
    last_update_timestamp,
    parse_draught,
    previous_port,
)
from dockday.modules.risk_classifier import RiskRuleConfig, classify
from dockday.modules.stores import EventHistory
from dockday.schemas.event import DetectedEvent
from dockday.schemas.vessel import Snapshot, VesselRecord
from dockday.utils.flags import is_domestic_flag
from dockday.utils.port_time import DAY_MS, HOUR_MS, MINUTE_MS, now_ms as _clock_now_ms

logger = logging.getLogger(__name__)

_UNKNOWN_PORT = "unknown"


@dataclass(frozen=True)
class ArrivalThreshold:
    type: EventTypeEnum
    window_ms: int

    def detail(self, ship_name: str) -> str:
        if self.window_ms >= HOUR_MS:
            hours = round(self.window_ms / HOUR_MS)
            return f"{ship_name} arriving within {hours} hour{'s' if hours != 1 else ''}"
        minutes = round(self.window_ms / MINUTE_MS)
        return f"{ship_name} arriving within {minutes} minutes"


@dataclass(frozen=True)
class DiffConfig:
    """Rule thresholds threaded through the engine at construction."""
    arrival_soon_hours: float = 6.0
    arrival_imminent_hours: float = 2.0
    arrival_urgent_minutes: float = 30.0
    draught_spike_threshold: float = 1.5
    risk_rules: RiskRuleConfig = field(default_factory=RiskRuleConfig)

    @classmethod
    def from_settings(cls, settings, risk_rules: RiskRuleConfig) -> "DiffConfig":
        return cls(
            arrival_soon_hours=settings.ARRIVAL_WINDOW_HOURS,
            draught_spike_threshold=settings.DRAUGHT_SPIKE_THRESHOLD,
            risk_rules=risk_rules,
        )

    @property
    def arrival_thresholds(self) -> tuple[ArrivalThreshold, ...]:
        return (
            ArrivalThreshold(EventTypeEnum.ARRIVAL_SOON, int(self.arrival_soon_hours * HOUR_MS)),
            ArrivalThreshold(EventTypeEnum.ARRIVAL_IMMINENT, int(self.arrival_imminent_hours * HOUR_MS)),
            ArrivalThreshold(EventTypeEnum.ARRIVAL_URGENT, int(self.arrival_urgent_minutes * MINUTE_MS)),
        )


def format_relative_label(timestamp_ms: int, now_ms: int) -> str:
    """'just now' / 'N minutes ago' / 'N hours ago' / 'N days ago'."""
    diff = now_ms - timestamp_ms
    if diff <= MINUTE_MS:
        return "just now"
    minutes = diff // MINUTE_MS
    if minutes < 60:
        return f"{minutes} minute{'s' if minutes != 1 else ''} ago"
    hours = minutes // 60
    if hours < 24:
        return f"{hours} hour{'s' if hours != 1 else ''} ago"
    days = diff // DAY_MS
    return f"{days} day{'s' if days != 1 else ''} ago"


class DiffEngine:
    """Compares a previous and current snapshot and emits new events."""

    def __init__(
        self,
        config: DiffConfig,
        history: EventHistory,
        is_domestic: Callable[[str | None], bool] = is_domestic_flag,
    ):
        self.config = config
        self.history = history
        self.is_domestic = is_domestic
        self._thresholds = config.arrival_thresholds

    def diff(
        self,
        previous: Snapshot | None,
        current: Snapshot,
        previous_fetched_at: int | None,
        now_ms: int | None = None,
    ) -> list[DetectedEvent]:
        """Events for ``current`` relative to ``previous``; ``[]`` on the baseline run."""
        if previous is None:
            return []
        now = _clock_now_ms() if now_ms is None else now_ms
        previous_by_mmsi: dict[str, VesselRecord] = {}
        for vessel in previous.vessels:
            previous_by_mmsi[vessel.mmsi] = vessel

        events: list[DetectedEvent] = []
        for vessel in current.vessels:
            old = previous_by_mmsi.get(vessel.mmsi)
            events.extend(self._diff_vessel(old, vessel, previous_fetched_at, now))

        logger.debug(
            "Diff %s: %d vessels (%d previous) → %d events",
            current.port_code, len(current.vessels), len(previous.vessels), len(events),
        )
        return events

    def _diff_vessel(
        self,
        old: VesselRecord | None,
        ship: VesselRecord,
        previous_fetched_at: int | None,
        now: int,
    ) -> list[DetectedEvent]:
        name = ship.display_name
        found: list[tuple[EventTypeEnum, str]] = []

        if old is not None and old.eta != ship.eta:
            found.append((EventTypeEnum.ETA_UPDATE, f"{name} ETA changed to {ship.eta or 'unknown'}"))

        found.extend(self._arrival_events(old, ship, name, previous_fetched_at, now))

        if old is not None:
            found.extend(self._change_events(old, ship, name, now))

        stale = self._stale_event(ship, name, previous_fetched_at, now)
        if stale:
            found.append(stale)

        foreign = self._foreign_report_event(old, ship, name, now)
        if foreign:
            found.append(foreign)

        return [
            DetectedEvent(mmsi=ship.mmsi, type=event_type, detail=detail, flag=ship.ship_flag, detected_at=now)
            for event_type, detail in found
        ]

    def _arrival_events(self, old, ship, name, previous_fetched_at, now) -> list[tuple[EventTypeEnum, str]]:
        eta = eta_timestamp(ship)
        if eta is None:
            return []
        time_to_eta = eta - now
        previous_eta = eta_timestamp(old) if old is not None else None
        previous_time_to_eta = (
            previous_eta - previous_fetched_at
            if previous_eta is not None and previous_fetched_at is not None
            else None
        )

        found = []
        for threshold in self._thresholds:
            if time_to_eta > threshold.window_ms:
                continue
            crossed = previous_time_to_eta is None or previous_time_to_eta > threshold.window_ms
            if not crossed:
                last_emitted = self.history.get_last_event_timestamp(ship.mmsi, threshold.type)
                if last_emitted is not None and now - last_emitted < threshold.window_ms:
                    continue
            found.append((threshold.type, threshold.detail(name)))
        return found

    def _change_events(self, old, ship, name, now) -> list[tuple[EventTypeEnum, str]]:
        found = []

        old_level: RiskLevelEnum = classify(old, self.config.risk_rules, now).level
        new_level: RiskLevelEnum = classify(ship, self.config.risk_rules, now).level
        if old_level != new_level:
            direction = "raised" if new_level.rank > old_level.rank else "lowered"
            found.append((
                EventTypeEnum.RISK_LEVEL_CHANGE,
                f"{name} risk level {direction} from {old_level.label} to {new_level.label}",
            ))

        old_port = previous_port(old)
        new_port = previous_port(ship)
        if old_port or new_port:
            old_port = old_port or _UNKNOWN_PORT
            new_port = new_port or _UNKNOWN_PORT
            if old_port != new_port:
                found.append((
                    EventTypeEnum.LAST_PORT_CHANGE,
                    f"{name} previous port changed from {old_port} to {new_port}",
                ))

        old_draught = parse_draught(old.draught)
        new_draught = parse_draught(ship.draught)
        if old_draught is not None and new_draught is not None:
            delta = new_draught - old_draught
            if abs(delta) >= self.config.draught_spike_threshold:
                trend = "up" if delta > 0 else "down"
                found.append((
                    EventTypeEnum.DRAUGHT_SPIKE,
                    f"{name} draught {trend} {abs(delta):.1f}m (now {new_draught:.1f}m)",
                ))
        return found

    def _stale_event(self, ship, name, previous_fetched_at, now) -> tuple[EventTypeEnum, str] | None:
        last_update = last_update_timestamp(ship)
        if not last_update:
            return None
        staleness = self.config.risk_rules.staleness
        current_age = max(0.0, (now - last_update) / HOUR_MS)
        previous_age = (
            max(0.0, (previous_fetched_at - last_update) / HOUR_MS)
            if previous_fetched_at is not None
            else None
        )
        crossed_critical = current_age >= staleness.critical_hours and (
            previous_age is None or previous_age < staleness.critical_hours
        )
        crossed_warn = current_age >= staleness.warn_hours and (
            previous_age is None or previous_age < staleness.warn_hours
        )
        if not (crossed_critical or crossed_warn):
            return None
        severity = "critical" if crossed_critical else "warning"
        return (
            EventTypeEnum.STALE_SIGNAL,
            f"{name} {severity}: no AIS update for {current_age:.1f}h",
        )

    def _foreign_report_event(self, old, ship, name, now) -> tuple[EventTypeEnum, str] | None:
        if self.is_domestic(ship.ship_flag):
            return None
        last_update = last_update_timestamp(ship)
        if not last_update:
            return None
        previous_update = last_update_timestamp(old)
        if previous_update and last_update <= previous_update:
            return None
        label = format_relative_label(last_update, now)
        return (EventTypeEnum.FOREIGN_REPORT, f"{name} sent a new AIS report ({label})")

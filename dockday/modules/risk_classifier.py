"""Vessel risk classifier.

Additive rule table loaded from ``risk_rules.yaml``; the total score maps to
NORMAL / ATTENTION / HIGH.  Signals:

  flag          unknown flag or high-risk registry         (+flag_score)
  ship type     tanker / special / chemical / unknown      (+type_score)
  draught       > level2 → +score2, else > level1 → +score1
  staleness     > critical_hours → +score_critical, else > warn_hours → +score_warn
  departure     missing departure port                     (+missing_port_score)

The diff engine only depends on ``classify(record, now_ms).level`` and on
levels being comparable, so the table can be swapped without touching it.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, NamedTuple

import yaml

from dockday.models.base import RiskLevelEnum
from dockday.modules.normalize import last_update_timestamp, parse_draught
from dockday.schemas.vessel import VesselRecord
from dockday.utils.flags import normalize_flag_text
from dockday.utils.port_time import HOUR_MS

logger = logging.getLogger(__name__)

_EXPECTED_SECTIONS = ["thresholds", "high_risk_flag_keywords", "draught", "staleness", "ship_type"]


@dataclass(frozen=True)
class StalenessRule:
    warn_hours: float = 6.0
    critical_hours: float = 12.0
    score_warn: int = 1
    score_critical: int = 2


@dataclass(frozen=True)
class DraughtRule:
    level1: float = 12.0
    level2: float = 18.0
    score1: int = 1
    score2: int = 2


@dataclass(frozen=True)
class ShipTypeRule:
    # Inclusive AIS type-code ranges: 50-59 special craft, 80-89 tankers
    sensitive_code_ranges: tuple[tuple[int, int], ...] = ((50, 59), (80, 89))
    sensitive_keywords: tuple[str, ...] = ("chemical", "tanker", "special", "化", "油", "特种")
    unknown_keywords: tuple[str, ...] = ("unknown", "未知")
    score: int = 2


@dataclass(frozen=True)
class RiskRuleConfig:
    enabled: bool = True
    high_threshold: int = 4
    attention_threshold: int = 2
    flag_score: int = 2
    missing_port_score: int = 1
    high_risk_flag_keywords: tuple[str, ...] = (
        "PANAMA", "LIBERIA", "MARSHALL ISLANDS", "巴拿马", "利比里亚", "马绍尔群岛", "马绍尔",
    )
    draught: DraughtRule = field(default_factory=DraughtRule)
    staleness: StalenessRule = field(default_factory=StalenessRule)
    ship_type: ShipTypeRule = field(default_factory=ShipTypeRule)


class RiskAssessment(NamedTuple):
    level: RiskLevelEnum
    score: int
    reasons: tuple[str, ...]

    @property
    def reason(self) -> str | None:
        return "; ".join(self.reasons) if self.reasons else None


def _section(raw: dict[str, Any], name: str) -> dict[str, Any]:
    value = raw.get(name) or {}
    return value if isinstance(value, dict) else {}


def risk_rules_from_dict(raw: dict[str, Any]) -> RiskRuleConfig:
    """Build a rule table from parsed YAML, falling back to defaults per key."""
    default = RiskRuleConfig()
    thresholds = _section(raw, "thresholds")
    draught = _section(raw, "draught")
    staleness = _section(raw, "staleness")
    ship_type = _section(raw, "ship_type")
    scores = _section(raw, "scores")

    ranges = ship_type.get("sensitive_code_ranges")
    if ranges is not None:
        ranges = tuple((int(lo), int(hi)) for lo, hi in ranges)

    return RiskRuleConfig(
        enabled=bool(raw.get("enabled", default.enabled)),
        high_threshold=int(thresholds.get("high", default.high_threshold)),
        attention_threshold=int(thresholds.get("attention", default.attention_threshold)),
        flag_score=int(scores.get("flag", default.flag_score)),
        missing_port_score=int(scores.get("missing_departure_port", default.missing_port_score)),
        high_risk_flag_keywords=tuple(
            raw.get("high_risk_flag_keywords") or default.high_risk_flag_keywords
        ),
        draught=DraughtRule(
            level1=float(draught.get("level1", default.draught.level1)),
            level2=float(draught.get("level2", default.draught.level2)),
            score1=int(draught.get("score1", default.draught.score1)),
            score2=int(draught.get("score2", default.draught.score2)),
        ),
        staleness=StalenessRule(
            warn_hours=float(staleness.get("warn_hours", default.staleness.warn_hours)),
            critical_hours=float(staleness.get("critical_hours", default.staleness.critical_hours)),
            score_warn=int(staleness.get("score_warn", default.staleness.score_warn)),
            score_critical=int(staleness.get("score_critical", default.staleness.score_critical)),
        ),
        ship_type=ShipTypeRule(
            sensitive_code_ranges=ranges or default.ship_type.sensitive_code_ranges,
            sensitive_keywords=tuple(
                ship_type.get("sensitive_keywords") or default.ship_type.sensitive_keywords
            ),
            unknown_keywords=tuple(
                ship_type.get("unknown_keywords") or default.ship_type.unknown_keywords
            ),
            score=int(ship_type.get("score", default.ship_type.score)),
        ),
    )


def load_risk_rules(path: str | Path) -> RiskRuleConfig:
    """Load the rule table from YAML. A missing file yields the built-in defaults."""
    config_path = Path(path)
    if not config_path.exists():
        logger.warning("risk_rules.yaml not found at %s — using built-in defaults", config_path)
        return RiskRuleConfig()
    with open(config_path, encoding="utf-8") as f:
        raw = yaml.safe_load(f) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{config_path}: expected a mapping at top level")
    missing = [s for s in _EXPECTED_SECTIONS if s not in raw]
    if missing:
        logger.warning("risk_rules.yaml missing sections: %s", ", ".join(missing))
    return risk_rules_from_dict(raw)


def is_high_risk_flag(flag: str | None, keywords: tuple[str, ...]) -> bool:
    raw = (flag or "").strip()
    if not raw:
        return False
    normalized = normalize_flag_text(raw)
    for keyword in keywords:
        normalized_keyword = normalize_flag_text(keyword)
        if normalized_keyword in normalized or keyword in raw or normalized in normalized_keyword:
            return True
    return False


def _ship_type_code(value: Any) -> int | None:
    if isinstance(value, bool) or value is None:
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return int(number) if number.is_integer() else None


def is_sensitive_ship_type(value: Any, rule: ShipTypeRule) -> bool:
    """Tanker/special/chemical types and anything unidentifiable."""
    code = _ship_type_code(value)
    text = str(value).strip() if value is not None else ""
    lower = text.lower()
    if code is None or code == 0 or not text:
        return True
    if any(keyword in lower for keyword in rule.unknown_keywords):
        return True
    if any(lo <= code <= hi for lo, hi in rule.sensitive_code_ranges):
        return True
    return any(keyword in lower for keyword in rule.sensitive_keywords)


def classify(record: VesselRecord, rules: RiskRuleConfig, now_ms: int) -> RiskAssessment:
    """Score one vessel against the rule table at time ``now_ms``."""
    if not rules.enabled:
        return RiskAssessment(RiskLevelEnum.NORMAL, 0, ())

    score = 0
    reasons: list[str] = []

    flag = (record.ship_flag or "").strip()
    if not flag:
        score += rules.flag_score
        reasons.append("unknown flag")
    elif is_high_risk_flag(flag, rules.high_risk_flag_keywords):
        score += rules.flag_score
        reasons.append("high-risk flag registry")

    if is_sensitive_ship_type(record.ship_type, rules.ship_type):
        score += rules.ship_type.score
        reasons.append("sensitive ship type (chemical/tanker/special/unknown)")

    draught = parse_draught(record.draught)
    if draught is not None:
        if draught > rules.draught.level2:
            score += rules.draught.score2
            reasons.append(f"draught > {rules.draught.level2:g}m")
        elif draught > rules.draught.level1:
            score += rules.draught.score1
            reasons.append(f"draught > {rules.draught.level1:g}m")

    last_update = last_update_timestamp(record)
    if last_update:
        age_hours = (now_ms - last_update) / HOUR_MS
        if age_hours > rules.staleness.critical_hours:
            score += rules.staleness.score_critical
            reasons.append(f"no AIS update for > {rules.staleness.critical_hours:g}h")
        elif age_hours > rules.staleness.warn_hours:
            score += rules.staleness.score_warn
            reasons.append(f"no AIS update for > {rules.staleness.warn_hours:g}h")

    if not (record.preport_cnname or "").strip():
        score += rules.missing_port_score
        reasons.append("departure port missing")

    if score >= rules.high_threshold:
        level = RiskLevelEnum.HIGH
    elif score >= rules.attention_threshold:
        level = RiskLevelEnum.ATTENTION
    else:
        level = RiskLevelEnum.NORMAL
    return RiskAssessment(level, score, tuple(reasons))

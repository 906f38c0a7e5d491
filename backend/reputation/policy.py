"""
Threshold policies for the standing classifier and the escalation evaluator.

Two independent, versioned policies over the same metric vector:
  - StandingPolicy: human-facing tiers shown on dashboards
  - EscalationPolicy: drives automated warnings, suspensions and blocks

Defaults can be tuned without a deploy via REPUTATION_POLICY_OVERRIDES, e.g.
  '{"escalation": {"version": "2026-10-b", "odr": {"warning": 1.5}}}'
"""

from __future__ import annotations

import json
from dataclasses import asdict, dataclass, replace
from functools import lru_cache
from typing import Any

import structlog

from core.config import get_settings

logger = structlog.get_logger()

METRIC_KEYS = ("odr", "late_shipment", "cancellation")

METRIC_LABELS = {
    "odr": "Order Defect Rate",
    "late_shipment": "Late Shipment Rate",
    "cancellation": "Cancellation Rate",
}

# warning < temp_suspend < permanent_block
ACTION_SEVERITY = {
    "warning": 1,
    "temp_suspend": 2,
    "permanent_block": 3,
}


@dataclass(frozen=True)
class StandingThresholds:
    excellent: float
    good: float
    warning: float
    critical: float


@dataclass(frozen=True)
class EscalationRule:
    metric: str
    warning: float
    temp_suspend: float
    permanent_block: float

    @property
    def label(self) -> str:
        return METRIC_LABELS[self.metric]

    def tiers(self) -> list[tuple[str, float]]:
        """Thresholds ordered from most to least severe."""
        return [
            ("permanent_block", self.permanent_block),
            ("temp_suspend", self.temp_suspend),
            ("warning", self.warning),
        ]


@dataclass(frozen=True)
class StandingPolicy:
    name: str
    version: str
    odr: StandingThresholds
    late_shipment: StandingThresholds
    cancellation: StandingThresholds

    def for_metric(self, metric: str) -> StandingThresholds:
        return getattr(self, metric)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class EscalationPolicy:
    name: str
    version: str
    rules: tuple[EscalationRule, ...]

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "version": self.version,
            "rules": [asdict(rule) for rule in self.rules],
        }


DEFAULT_STANDING_POLICY = StandingPolicy(
    name="marketplace_standing",
    version="2025-01",
    odr=StandingThresholds(excellent=0.5, good=1.0, warning=2.0, critical=3.0),
    late_shipment=StandingThresholds(excellent=2.0, good=4.0, warning=7.0, critical=10.0),
    cancellation=StandingThresholds(excellent=1.0, good=2.5, warning=5.0, critical=7.5),
)

DEFAULT_ESCALATION_POLICY = EscalationPolicy(
    name="marketplace_escalation",
    version="2025-01",
    rules=(
        EscalationRule(metric="odr", warning=1.0, temp_suspend=2.0, permanent_block=4.0),
        EscalationRule(metric="late_shipment", warning=5.0, temp_suspend=10.0, permanent_block=15.0),
        EscalationRule(metric="cancellation", warning=3.0, temp_suspend=6.0, permanent_block=10.0),
    ),
)


class PolicyError(ValueError):
    """Raised when a policy override payload is invalid."""


def _coerce_thresholds(raw: Any, keys: tuple[str, ...]) -> dict[str, float]:
    if not isinstance(raw, dict):
        raise PolicyError("Threshold override must be a mapping")
    unknown = sorted(set(raw) - set(keys))
    if unknown:
        raise PolicyError(f"Unknown threshold keys: {unknown}")
    try:
        return {key: float(value) for key, value in raw.items()}
    except (TypeError, ValueError) as exc:
        raise PolicyError(f"Threshold values must be numeric: {raw}") from exc


def _require_mapping(section: str, overrides: Any) -> None:
    if not isinstance(overrides, dict):
        raise PolicyError(f"Override section '{section}' must be a mapping, got {type(overrides).__name__}")


def _check_ascending(label: str, values: list[float]) -> None:
    if any(lower > upper for lower, upper in zip(values, values[1:])):
        raise PolicyError(f"Thresholds for {label} must be non-decreasing: {values}")


def build_standing_policy(overrides: dict[str, Any], base: StandingPolicy = DEFAULT_STANDING_POLICY) -> StandingPolicy:
    """Apply an override payload on top of ``base``."""
    _require_mapping("standing", overrides)
    changes: dict[str, Any] = {}
    for metric in METRIC_KEYS:
        if metric not in overrides:
            continue
        values = _coerce_thresholds(overrides[metric], ("excellent", "good", "warning", "critical"))
        thresholds = replace(base.for_metric(metric), **values)
        _check_ascending(metric, [thresholds.excellent, thresholds.good, thresholds.warning, thresholds.critical])
        changes[metric] = thresholds
    if "version" in overrides:
        changes["version"] = str(overrides["version"])
    if "name" in overrides:
        changes["name"] = str(overrides["name"])
    return replace(base, **changes)


def build_escalation_policy(
    overrides: dict[str, Any], base: EscalationPolicy = DEFAULT_ESCALATION_POLICY
) -> EscalationPolicy:
    """Apply an override payload on top of ``base``."""
    _require_mapping("escalation", overrides)
    rules = []
    for rule in base.rules:
        if rule.metric in overrides:
            values = _coerce_thresholds(overrides[rule.metric], ("warning", "temp_suspend", "permanent_block"))
            rule = replace(rule, **values)
            _check_ascending(rule.metric, [rule.warning, rule.temp_suspend, rule.permanent_block])
        rules.append(rule)
    changes: dict[str, Any] = {"rules": tuple(rules)}
    if "version" in overrides:
        changes["version"] = str(overrides["version"])
    if "name" in overrides:
        changes["name"] = str(overrides["name"])
    return replace(base, **changes)


@lru_cache
def _load_override_payload() -> dict:
    raw = get_settings().reputation_policy_overrides
    if not raw:
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning("policy.overrides_unparseable")
        return {}
    if not isinstance(payload, dict):
        logger.warning("policy.overrides_not_mapping")
        return {}
    return payload


@lru_cache
def get_standing_policy() -> StandingPolicy:
    overrides = _load_override_payload().get("standing")
    if not overrides:
        return DEFAULT_STANDING_POLICY
    try:
        return build_standing_policy(overrides)
    except PolicyError as exc:
        logger.warning("policy.standing_override_rejected", error=str(exc))
        return DEFAULT_STANDING_POLICY


@lru_cache
def get_escalation_policy() -> EscalationPolicy:
    overrides = _load_override_payload().get("escalation")
    if not overrides:
        return DEFAULT_ESCALATION_POLICY
    try:
        return build_escalation_policy(overrides)
    except PolicyError as exc:
        logger.warning("policy.escalation_override_rejected", error=str(exc))
        return DEFAULT_ESCALATION_POLICY


def clear_policy_cache() -> None:
    _load_override_payload.cache_clear()
    get_standing_policy.cache_clear()
    get_escalation_policy.cache_clear()

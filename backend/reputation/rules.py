"""
Escalation Rule Evaluator — maps vendor metrics to the strongest warranted action.

Each metric is checked independently against its own warning / temp_suspend /
permanent_block thresholds. Only the highest threshold a metric crosses is
reported for it; the decision carries the most severe action across metrics.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from reputation.metrics import VendorMetricsSnapshot
from reputation.policy import ACTION_SEVERITY, EscalationPolicy, get_escalation_policy

METRIC_FIELDS = {
    "odr": "order_defect_rate",
    "late_shipment": "late_shipment_rate",
    "cancellation": "cancellation_rate",
}


@dataclass
class EscalationDecision:
    should_act: bool
    action_type: str | None = None
    reason: str = ""
    violations: list[str] = field(default_factory=list)


def _fmt(value: float) -> str:
    return f"{value:g}"


def most_severe(action_types: list[str]) -> str | None:
    if not action_types:
        return None
    return max(action_types, key=lambda action_type: ACTION_SEVERITY[action_type])


def evaluate_escalation(
    metrics: VendorMetricsSnapshot,
    policy: EscalationPolicy | None = None,
) -> EscalationDecision:
    """Evaluate vendor metrics against the escalation rules."""
    policy = policy or get_escalation_policy()
    violations: list[str] = []
    implied: list[str] = []

    for rule in policy.rules:
        value = getattr(metrics, METRIC_FIELDS[rule.metric])
        for action_type, threshold in rule.tiers():
            if value >= threshold:
                violations.append(f"{rule.label}: {_fmt(value)}% (threshold: {_fmt(threshold)}%)")
                implied.append(action_type)
                break

    return EscalationDecision(
        should_act=bool(violations),
        action_type=most_severe(implied),
        reason="; ".join(violations),
        violations=violations,
    )

"""
Standing Classifier — maps vendor metrics to a human-facing tier.

The worst metric dominates: a single critical metric makes the whole vendor
critical, regardless of how good the other two are.
"""

from reputation.policy import StandingPolicy, get_standing_policy

STANDINGS = ("excellent", "good", "needs_improvement", "critical")

# Lower rank = worse standing (used for sorting overviews worst-first)
STANDING_RANK = {
    "critical": 0,
    "needs_improvement": 1,
    "good": 2,
    "excellent": 3,
}


def classify_standing(
    order_defect_rate: float,
    late_shipment_rate: float,
    cancellation_rate: float,
    policy: StandingPolicy | None = None,
) -> str:
    """Classify vendor standing from the three performance rates (percentages)."""
    policy = policy or get_standing_policy()
    values = {
        "odr": order_defect_rate,
        "late_shipment": late_shipment_rate,
        "cancellation": cancellation_rate,
    }

    if any(value >= policy.for_metric(metric).critical for metric, value in values.items()):
        return "critical"
    if any(value >= policy.for_metric(metric).warning for metric, value in values.items()):
        return "needs_improvement"
    if any(value > policy.for_metric(metric).excellent for metric, value in values.items()):
        return "good"
    return "excellent"

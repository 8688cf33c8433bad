"""
Threat Impact Calculation

Per-threat revenue recovery estimate, weighted by how many simulated
buyers cited the threat.
"""
from typing import Dict, Optional

from ghost_cro.utils.helpers import round_half_up

# Conversion rate lift if the threat is fixed (decimal, 0.003 = 0.3%)
BASE_CR_LIFT: Dict[str, Dict[str, float]] = {
    "critical": {"min": 0.005, "max": 0.008},
    "high": {"min": 0.003, "max": 0.005},
    "medium": {"min": 0.001, "max": 0.003},
    "low": {"min": 0.0005, "max": 0.001},
}

# (keywords, multiplier), first match wins
THREAT_TYPE_MULTIPLIERS = (
    (("shipping", "delivery"), 1.2),
    (("payment", "checkout"), 1.3),
    (("trust", "security"), 0.9),
)

CONFIDENCE_BADGES = {
    "high": {"text": "High Confidence", "color": "text-emerald-700", "bgColor": "bg-emerald-50"},
    "medium": {"text": "Medium Confidence", "color": "text-amber-700", "bgColor": "bg-amber-50"},
    "low": {"text": "Low Confidence", "color": "text-gray-700", "bgColor": "bg-gray-50"},
}


def calculate_threat_impact(
    simulated_buyers_total: int,
    simulated_buyers_citing: int,
    threat_severity: str,
    estimated_cr_lift: Dict[str, float],
    monthly_visitors: float,
    aov: float,
) -> Dict:
    """
    Calculate revenue recovery for fixing a single threat.

    Returns:
        estimatedRecoveryMin/Max, confidenceLevel, buyerAttributionRate
        and a human methodology line
    """
    min_recovery = monthly_visitors * estimated_cr_lift["min"] * aov
    max_recovery = monthly_visitors * estimated_cr_lift["max"] * aov

    attribution = simulated_buyers_citing / simulated_buyers_total if simulated_buyers_total > 0 else 0

    if attribution >= 0.8:
        confidence = "high"
    elif attribution >= 0.5:
        confidence = "medium"
    else:
        confidence = "low"

    if threat_severity == "critical" and attribution >= 0.6:
        confidence = "high"

    methodology = (
        f"{round_half_up(attribution * 100)}% of simulated buyers cited this issue. "
        f"Estimated {estimated_cr_lift['min'] * 100:.1f}-{estimated_cr_lift['max'] * 100:.1f}% "
        f"conversion rate improvement if fixed."
    )

    return {
        "estimatedRecoveryMin": round_half_up(min_recovery),
        "estimatedRecoveryMax": round_half_up(max_recovery),
        "confidenceLevel": confidence,
        "buyerAttributionRate": round_half_up(attribution * 100) / 100,
        "methodology": methodology,
    }


def get_estimated_cr_lift(severity: str, threat_type: Optional[str] = None) -> Dict[str, float]:
    """Base lift for the severity, scaled for shipping, payment and trust threats"""
    base = BASE_CR_LIFT[severity]

    if threat_type:
        lowered = threat_type.lower()
        for keywords, multiplier in THREAT_TYPE_MULTIPLIERS:
            if any(k in lowered for k in keywords):
                return {"min": base["min"] * multiplier, "max": base["max"] * multiplier}

    return dict(base)


def _round_recovery(value: float) -> int:
    if value >= 100_000:
        step = 10_000
    elif value >= 10_000:
        step = 1_000
    elif value >= 1_000:
        step = 100
    else:
        step = 10
    return round_half_up(value / step) * step


def format_recovery_range(min_value: float, max_value: float) -> str:
    rounded_min = _round_recovery(min_value)
    rounded_max = _round_recovery(max_value)

    # Near-identical bounds read better as one number
    if rounded_max - rounded_min < rounded_min * 0.1:
        return f"${rounded_min:,}"

    return f"${rounded_min:,} - ${rounded_max:,}"


def get_confidence_badge(confidence: str) -> Dict[str, str]:
    return dict(CONFIDENCE_BADGES[confidence])

"""
Ghost Engine

Scores a completed simulation: health score, revenue leak and where the
score sits against other stores in the same industry.
"""
import re
from typing import Dict, Optional

from ghost_cro.schemas import TestResult
from ghost_cro.utils.helpers import round_half_up

_IMPACT_RE = re.compile(r"(\d+(?:\.\d+)?)%")

# Share of a friction point's stated abandonment that actually leaks revenue
SEVERITY_LEAK_WEIGHTS = {"critical": 0.8, "high": 0.5, "medium": 0.2}
MAX_LEAK_IMPACT = 50.0

WEEKS_PER_MONTH = 4.33
DAYS_PER_MONTH = 30

# Conversion expectations vary by vertical
INDUSTRY_ADJUSTMENTS = {
    "fashion": 1.0,
    "electronics": 0.9,
    "beauty": 1.1,
    "home": 0.95,
    "food": 1.05,
    "jewelry": 0.85,
    "sports": 1.0,
    "books": 1.15,
    "default": 1.0,
}

# (score upper bound, percentile at segment start, percentile span)
_PERCENTILE_SEGMENTS = (
    (50, 0, 20),
    (60, 20, 20),
    (70, 40, 20),
    (80, 60, 20),
    (90, 80, 15),
    (100, 95, 5),
)

_PERCENTILE_LABELS = (
    (95, "Top 5%"),
    (90, "Top 10%"),
    (80, "Top 20%"),
    (60, "Top 40%"),
    (40, "Top 60%"),
    (20, "Top 80%"),
)


def extract_impact_percentage(impact: str) -> float:
    """'~23% abandonment' -> 23.0"""
    match = _IMPACT_RE.search(impact or "")
    return float(match.group(1)) if match else 0.0


def _is_completed(test_result: Optional[TestResult]) -> bool:
    return test_result is not None and test_result.status == "completed"


def calculate_revenue_leak(test_result: Optional[TestResult], metrics: Optional[Dict] = None) -> Dict[str, int]:
    """
    Revenue lost to friction, per day/week/month.

    ``metrics`` may carry averageOrderValue, monthlySessions and
    monthlyRevenue; missing values fall back to a 50k-session store at
    2.5% conversion and $85 AOV.
    """
    if not _is_completed(test_result):
        return {"daily": 0, "weekly": 0, "monthly": 0}

    metrics = metrics or {}
    aov = metrics.get("averageOrderValue") or 85
    sessions = metrics.get("monthlySessions") or 50000
    monthly_revenue = metrics.get("monthlyRevenue") or sessions * 0.025 * aov

    friction = test_result.friction_points
    total_impact = 0.0
    for severity, weight in SEVERITY_LEAK_WEIGHTS.items():
        for point in getattr(friction, severity):
            total_impact += extract_impact_percentage(point.impact) * weight

    total_impact = min(total_impact, MAX_LEAK_IMPACT)

    monthly_leak = (total_impact / 100) * monthly_revenue

    return {
        "daily": round_half_up(monthly_leak / DAYS_PER_MONTH),
        "weekly": round_half_up(monthly_leak / WEEKS_PER_MONTH),
        "monthly": round_half_up(monthly_leak),
    }


def calculate_ghost_health_score(test_result: Optional[TestResult]) -> int:
    """Higher is healthier; 0 for a missing or unfinished run"""
    if not _is_completed(test_result):
        return 0

    friction = test_result.friction_points
    score = 100
    score -= len(friction.critical) * 25
    score -= len(friction.high) * 15
    score -= len(friction.medium) * 5
    score += len(friction.working) * 3

    return max(0, min(100, score))


def _normalize_category(category: Optional[str]) -> str:
    if not category:
        return "default"
    return category.lower().strip()


def calculate_percentile_benchmark(score: float, category: Optional[str] = None) -> int:
    """
    Map a 0-100 health score to the percentile of stores it beats.

    The score is first scaled by the industry adjustment, then placed on a
    piecewise-linear distribution: most stores bunch below 50, so the
    top band is steep.
    """
    adjustment = INDUSTRY_ADJUSTMENTS.get(_normalize_category(category), INDUSTRY_ADJUSTMENTS["default"])
    clamped = max(0.0, min(100.0, score * adjustment))

    lower = 0
    for upper, start, span in _PERCENTILE_SEGMENTS:
        if clamped <= upper:
            return round_half_up(start + span * ((clamped - lower) / (upper - lower)))
        lower = upper

    return 100


def get_percentile_label(percentile: float, category: Optional[str] = None) -> str:
    label = "Bottom 20%"
    for threshold, text in _PERCENTILE_LABELS:
        if percentile >= threshold:
            label = text
            break

    normalized = _normalize_category(category)
    if normalized and normalized != "default":
        return f"{label} of {normalized[0].upper()}{normalized[1:]} Stores"

    return label

"""
Revenue Opportunity Calculation

Estimates what a store could earn by closing the gap between its own
conversion rate and its category benchmark. Reported as a range
(50%-80% of the gap recovered) rather than a single number.
"""
from dataclasses import asdict, dataclass
from typing import Optional

from ghost_cro.utils.helpers import is_missing, round_half_up

DEFAULT_MONTHLY_VISITORS = 50000
DEFAULT_CONVERSION_RATE = 0.025
DEFAULT_AOV = 85
DEFAULT_BENCHMARK_CR = 0.028

CONSERVATIVE_GAP_SHARE = 0.5
OPTIMISTIC_GAP_SHARE = 0.8


@dataclass
class Range:
    min: float
    max: float


@dataclass
class RevenueOpportunity:
    current_monthly_revenue: float
    potential_monthly_revenue: float
    monthly_opportunity: Range
    annual_opportunity: Range
    opportunity_percentage: float
    benchmark_gap: float  # percentage points

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "currentMonthlyRevenue": data["current_monthly_revenue"],
            "potentialMonthlyRevenue": data["potential_monthly_revenue"],
            "monthlyOpportunity": data["monthly_opportunity"],
            "annualOpportunity": data["annual_opportunity"],
            "opportunityPercentage": data["opportunity_percentage"],
            "benchmarkGap": data["benchmark_gap"],
        }


def _or_default(value: Optional[float], default: float) -> float:
    return default if is_missing(value) or not value else value


def calculate_revenue_opportunity(
    monthly_visitors: Optional[float],
    current_conversion_rate: Optional[float],
    aov: Optional[float],
    category_benchmark_cr: Optional[float],
) -> RevenueOpportunity:
    """
    Calculate revenue opportunity from conversion rate improvement potential.

    Zero, None or NaN inputs fall back to defaults so the dashboard never
    renders NaN.
    """
    visitors = _or_default(monthly_visitors, DEFAULT_MONTHLY_VISITORS)
    current_cr = _or_default(current_conversion_rate, DEFAULT_CONVERSION_RATE)
    aov = _or_default(aov, DEFAULT_AOV)
    benchmark_cr = _or_default(category_benchmark_cr, DEFAULT_BENCHMARK_CR)

    current_revenue = visitors * current_cr * aov
    potential_revenue = visitors * benchmark_cr * aov

    gap = benchmark_cr - current_cr

    min_monthly = visitors * gap * CONSERVATIVE_GAP_SHARE * aov
    max_monthly = visitors * gap * OPTIMISTIC_GAP_SHARE * aov

    opportunity_percentage = (max_monthly / current_revenue) * 100 if current_revenue else 0

    return RevenueOpportunity(
        current_monthly_revenue=current_revenue,
        potential_monthly_revenue=potential_revenue,
        monthly_opportunity=Range(
            min=round_half_up(min_monthly),
            max=round_half_up(max_monthly),
        ),
        annual_opportunity=Range(
            min=round_half_up(min_monthly * 12),
            max=round_half_up(max_monthly * 12),
        ),
        opportunity_percentage=round_half_up(opportunity_percentage, 1),
        benchmark_gap=round_half_up(gap * 10000) / 100,
    )


def _round_by_magnitude(value: float) -> int:
    if value >= 1_000_000:
        step = 100_000
    elif value >= 100_000:
        step = 10_000
    elif value >= 10_000:
        step = 1_000
    elif value >= 1_000:
        step = 100
    else:
        step = 10
    return round_half_up(value / step) * step


def format_opportunity_range(min_value: float, max_value: float) -> str:
    """Format an opportunity range without false precision: '$21,000 - $34,000'"""
    return f"${_round_by_magnitude(min_value):,} - ${_round_by_magnitude(max_value):,}"


def get_methodology_text(benchmark_gap: float, current_cr: float, benchmark_cr: float) -> str:
    return (
        f"Based on potential {benchmark_gap:.1f}% conversion rate improvement "
        f"(from {current_cr * 100:.1f}% to {benchmark_cr * 100:.1f}% category average) "
        f"at your traffic level"
    )

"""
Store snapshot: the numbers behind the dashboard's hero card.

Blends real Shopify metrics (when connected) with the simulated funnel,
and prices the conversion gap against the category benchmark.
"""
from datetime import datetime, timezone
from typing import Dict, Optional

from ghost_cro.schemas import TestResult
from ghost_cro.services.benchmarks import get_category_benchmarks
from ghost_cro.services.revenue_opportunity import calculate_revenue_opportunity
from ghost_cro.utils.helpers import round_half_up


def build_store_snapshot(
    test: TestResult,
    shopify_metrics: Optional[Dict] = None,
    store_url: Optional[str] = None,
    store_name: Optional[str] = None,
) -> Dict:
    """
    Build the snapshot for one test run.

    ``shopify_metrics`` is the body returned by /api/shopify/metrics (only
    its ``metrics`` bag is read). Missing numbers fall back to the
    simulated funnel, then to a 50k-visitor store at 2.5% conversion.
    """
    metrics = (shopify_metrics or {}).get("metrics") or {}
    landed = test.funnel_data.landed

    monthly_visitors = metrics.get("totalSessions") or landed * 30 or 50000
    monthly_orders = metrics.get("totalOrders") or round_half_up(monthly_visitors * 0.025) or 1250
    aov = metrics.get("averageOrderValue") or 85
    monthly_revenue = metrics.get("totalRevenue") or monthly_orders * aov

    conversion_rate = monthly_orders / monthly_visitors if monthly_visitors > 0 else 0.025

    # Scale the simulated funnel up to a month of real traffic
    multiplier = (monthly_visitors / landed) if landed else 1
    funnel = {
        "visitors": round_half_up(landed * multiplier),
        "addedToCart": round_half_up(test.funnel_data.cart * multiplier),
        "reachedCheckout": round_half_up(test.funnel_data.checkout * multiplier),
        "purchased": round_half_up(test.funnel_data.purchased * multiplier),
    }

    benchmarks = get_category_benchmarks(None)

    opportunity = calculate_revenue_opportunity(
        monthly_visitors=monthly_visitors,
        current_conversion_rate=conversion_rate,
        aov=aov,
        category_benchmark_cr=benchmarks["avgConversionRate"],
    )

    return {
        "storeUrl": store_url or test.url or "Unknown Store",
        "storeName": store_name or "Your Store",
        "lastScanAt": test.date or datetime.now(timezone.utc).isoformat(),
        "metrics": {
            "monthlyVisitors": monthly_visitors,
            "monthlyOrders": monthly_orders,
            "conversionRate": conversion_rate,
            "averageOrderValue": aov,
            "monthlyRevenue": monthly_revenue,
        },
        "funnel": funnel,
        "benchmarks": benchmarks,
        "opportunity": {
            "currentMonthlyRevenue": opportunity.current_monthly_revenue,
            "potentialMonthlyRevenue": opportunity.potential_monthly_revenue,
            "monthlyGap": opportunity.monthly_opportunity.max,
            "annualGap": opportunity.annual_opportunity.max,
        },
    }

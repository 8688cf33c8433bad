"""
Ghost Summary

Executive-level read-out of a scan: a headline, up to five insights and
the single fix to do first.
"""
from typing import Dict, List

from ghost_cro.utils.helpers import format_currency, format_percent, round_half_up

SIMULATED_PURCHASE_BENCHMARK = 0.65
EFFORT_MULTIPLIERS = {"low": 3, "medium": 2, "high": 1}

FUNNEL_STAGES = (
    ("Product Page → Cart", "visitors", "addedToCart",
     "Visitors aren't finding what they need or aren't convinced to add items."),
    ("Cart → Checkout", "addedToCart", "reachedCheckout",
     "Shoppers are hesitating before committing to purchase."),
    ("Checkout → Purchase", "reachedCheckout", "purchased",
     "Something in checkout is causing last-minute abandonment."),
)


def identify_bottleneck(funnel: Dict) -> Dict:
    """Funnel stage with the largest drop-off"""
    worst_stage = FUNNEL_STAGES[0]
    worst_drop_off = 0.0

    for stage in FUNNEL_STAGES:
        _, from_key, to_key, _ = stage
        start = funnel.get(from_key) or 0
        if start > 0:
            drop_off = (start - (funnel.get(to_key) or 0)) / start * 100
            if drop_off > worst_drop_off:
                worst_drop_off = drop_off
                worst_stage = stage

    if worst_drop_off > 90:
        severity = "critical"
    elif worst_drop_off > 70:
        severity = "warning"
    else:
        severity = "info"

    return {
        "stage": worst_stage[0],
        "dropOffPercent": f"{worst_drop_off:.0f}",
        "diagnosis": worst_stage[3],
        "severity": severity,
    }


def _threat_score(threat: Dict) -> float:
    return (threat.get("estimatedRecoveryMax") or 0) * EFFORT_MULTIPLIERS.get(threat.get("effort"), 1)


def _pick_primary_threat(threats: List[Dict]) -> Dict:
    ranked = [t for t in threats if t.get("estimatedRecoveryMax") and t.get("effort")]
    if ranked:
        return max(ranked, key=_threat_score)
    return threats[0] if threats else {}


def _headline(ghost_score: float, critical_count: int, monthly_gap: float) -> str:
    gap = format_currency(monthly_gap)
    if ghost_score < 30:
        return "Critical issues detected. Your checkout needs immediate attention."
    if ghost_score < 50:
        noun = "issue" if critical_count == 1 else "issues"
        verb = "is" if critical_count == 1 else "are"
        return f"{critical_count} high-priority {noun} {verb} costing you {gap}/mo."
    if ghost_score < 70:
        return f"Good foundation, but {gap}/mo in opportunity remains."
    return f"Your checkout is performing well. Fine-tuning could recover {gap}/mo."


def generate_ghost_summary(snapshot: Dict, analysis: Dict, simulation: Dict) -> Dict:
    """
    Build the summary.

    Args:
        snapshot: output of build_store_snapshot
        analysis: {"ghostScore", "threats": [{id, title, severity, location,
            estimatedRecoveryMin?, estimatedRecoveryMax?, effort?}]}
        simulation: {"totalBuyers", "wouldPurchase", "wouldAbandon",
            "primaryDropOffPoint"?, "topReasons"?: [{reason, count}]}
    """
    insights = []
    benchmarks = snapshot["benchmarks"]
    category = benchmarks["categoryName"]
    monthly_gap = snapshot["opportunity"]["monthlyGap"]
    annual_gap = snapshot["opportunity"]["annualGap"]

    insights.append({
        "id": "revenue-opportunity",
        "icon": "dollar",
        "text": (
            f"You're leaving **{format_currency(monthly_gap)}/mo** on the table compared to similar "
            f"{category} stores, that's **{format_currency(annual_gap)}/year**."
        ),
        "severity": "critical" if monthly_gap > 10000 else "warning" if monthly_gap > 5000 else "info",
        "priority": 1,
    })

    avg_cr = benchmarks["avgConversionRate"]
    current_cr = snapshot["metrics"]["conversionRate"]
    cr_gap = round_half_up((avg_cr - current_cr) / avg_cr * 100) if avg_cr > 0 else 0
    insights.append({
        "id": "conversion-gap",
        "icon": "chart-down",
        "text": (
            f"Your **{format_percent(current_cr)}** conversion rate is **{cr_gap}% below** the "
            f"{category} average of {format_percent(avg_cr)}."
        ),
        "severity": "critical" if cr_gap > 40 else "warning" if cr_gap > 20 else "info",
        "priority": 2,
    })

    total_buyers = simulation.get("totalBuyers") or 0
    would_purchase = simulation.get("wouldPurchase") or 0
    purchase_rate = would_purchase / total_buyers if total_buyers > 0 else 0
    insights.append({
        "id": "simulation-verdict",
        "icon": "users",
        "text": (
            f"**{would_purchase} of {total_buyers}** simulated buyers would complete a purchase "
            f"({format_percent(purchase_rate)} vs {format_percent(SIMULATED_PURCHASE_BENCHMARK)} benchmark)."
        ),
        "severity": "critical" if purchase_rate < 0.3 else "warning" if purchase_rate < 0.5 else "info",
        "priority": 3,
    })

    bottleneck = identify_bottleneck(snapshot["funnel"])
    insights.append({
        "id": "bottleneck",
        "icon": "alert",
        "text": (
            f"**Primary bottleneck: {bottleneck['stage']}**: {bottleneck['dropOffPercent']}% of visitors "
            f"drop off here. {bottleneck['diagnosis']}"
        ),
        "severity": bottleneck["severity"],
        "priority": 4,
    })

    top_reasons = simulation.get("topReasons") or []
    if top_reasons and total_buyers > 0:
        top = top_reasons[0]
        citation = round_half_up(top["count"] / total_buyers * 100)
        insights.append({
            "id": "top-reason",
            "icon": "target",
            "text": (
                f"**{citation}% of simulated buyers** cited \"{top['reason']}\" as their primary "
                f"reason for abandoning."
            ),
            "severity": "critical" if citation >= 60 else "warning",
            "priority": 5,
        })

    threats = analysis.get("threats") or []
    top_threat = _pick_primary_threat(threats)
    effort = top_threat.get("effort") or "medium"

    if top_threat.get("estimatedRecoveryMin") and top_threat.get("estimatedRecoveryMax"):
        estimated_impact = (
            f"+{format_currency(top_threat['estimatedRecoveryMin'])} - "
            f"{format_currency(top_threat['estimatedRecoveryMax'])}/mo"
        )
    else:
        estimated_impact = "High impact"

    critical_count = sum(1 for t in threats if t.get("severity") == "critical")

    return {
        "headline": _headline(analysis.get("ghostScore", 0), critical_count, monthly_gap),
        "insights": sorted(insights, key=lambda i: i["priority"])[:5],
        "primaryAction": {
            "title": top_threat.get("title", "Review your checkout flow"),
            "description": f"This is your highest-impact, {effort}-effort fix.",
            "estimatedImpact": estimated_impact,
            "effort": effort,
            "threatId": top_threat.get("id"),
        },
    }

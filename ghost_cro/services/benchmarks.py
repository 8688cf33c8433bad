"""
Category benchmarks

Two reference tables: average/top-performer conversion rates per
category (used for revenue opportunity), and the UX feature set of
category leaders (used for gap analysis).
"""
import re
from typing import Dict, List, Optional


CONVERSION_BENCHMARKS: Dict[str, Dict] = {
    "fashion": {"categoryName": "Fashion", "avgConversionRate": 0.021, "avgAOV": 85, "topPerformerCR": 0.045},
    "beauty": {"categoryName": "Beauty", "avgConversionRate": 0.032, "avgAOV": 62, "topPerformerCR": 0.058},
    "home": {"categoryName": "Home & Garden", "avgConversionRate": 0.018, "avgAOV": 124, "topPerformerCR": 0.038},
    "electronics": {"categoryName": "Electronics", "avgConversionRate": 0.015, "avgAOV": 156, "topPerformerCR": 0.032},
    "health": {"categoryName": "Health & Wellness", "avgConversionRate": 0.028, "avgAOV": 58, "topPerformerCR": 0.052},
    "default": {"categoryName": "E-commerce", "avgConversionRate": 0.023, "avgAOV": 85, "topPerformerCR": 0.042},
}

_CATEGORY_KEYWORDS = (
    ("fashion", ("fashion", "apparel", "clothing")),
    ("beauty", ("beauty", "cosmetic", "skincare")),
    ("home", ("home", "garden", "furniture")),
    ("electronics", ("electronic", "tech", "gadget")),
    ("health", ("health", "wellness", "fitness")),
)


def get_category_benchmarks(industry: Optional[str]) -> Dict:
    """Resolve a free-text industry ('Women's Apparel', 'Skin-care') to its benchmark"""
    if not industry:
        return dict(CONVERSION_BENCHMARKS["default"])

    key = re.sub(r"[^a-z]", "", industry.lower())
    for category, keywords in _CATEGORY_KEYWORDS:
        if any(k in key for k in keywords):
            return dict(CONVERSION_BENCHMARKS[category])

    return dict(CONVERSION_BENCHMARKS["default"])


# Gold-standard UX of top stores per category
CATEGORY_LEADERS: Dict[str, Dict] = {
    "apparel": {
        "category": "Apparel",
        "avg_load_time": 1.2,
        "images_per_pdp": 5,
        "has_sticky_atc": True,
        "trust_badges_count": 3,
        "shipping_transparency": "high",
        "express_checkout_options": 3,
        "mobile_optimization_score": 95,
        "cart_abandonment_rate": 65,
        "checkout_steps": 2,
        "has_guest_checkout": True,
        "has_reviews": True,
        "has_size_guide": True,
        "has_live_chat": True,
        "has_free_shipping_threshold": True,
        "avg_free_shipping_threshold": 50,
    },
    "beauty": {
        "category": "Beauty",
        "avg_load_time": 1.1,
        "images_per_pdp": 6,
        "has_sticky_atc": True,
        "trust_badges_count": 4,
        "shipping_transparency": "high",
        "express_checkout_options": 4,
        "mobile_optimization_score": 97,
        "cart_abandonment_rate": 60,
        "checkout_steps": 2,
        "has_guest_checkout": True,
        "has_reviews": True,
        "has_size_guide": False,
        "has_live_chat": True,
        "has_free_shipping_threshold": True,
        "avg_free_shipping_threshold": 35,
    },
    "electronics": {
        "category": "Electronics",
        "avg_load_time": 1.3,
        "images_per_pdp": 4,
        "has_sticky_atc": True,
        "trust_badges_count": 5,
        "shipping_transparency": "high",
        "express_checkout_options": 5,
        "mobile_optimization_score": 92,
        "cart_abandonment_rate": 70,
        "checkout_steps": 2,
        "has_guest_checkout": True,
        "has_reviews": True,
        "has_size_guide": False,
        "has_live_chat": True,
        "has_free_shipping_threshold": True,
        "avg_free_shipping_threshold": 100,
    },
    "home": {
        "category": "Home & Garden",
        "avg_load_time": 1.4,
        "images_per_pdp": 5,
        "has_sticky_atc": True,
        "trust_badges_count": 3,
        "shipping_transparency": "medium",
        "express_checkout_options": 2,
        "mobile_optimization_score": 88,
        "cart_abandonment_rate": 68,
        "checkout_steps": 3,
        "has_guest_checkout": True,
        "has_reviews": True,
        "has_size_guide": False,
        "has_live_chat": False,
        "has_free_shipping_threshold": True,
        "avg_free_shipping_threshold": 75,
    },
    "food": {
        "category": "Food & Beverage",
        "avg_load_time": 1.2,
        "images_per_pdp": 4,
        "has_sticky_atc": True,
        "trust_badges_count": 4,
        "shipping_transparency": "high",
        "express_checkout_options": 3,
        "mobile_optimization_score": 90,
        "cart_abandonment_rate": 62,
        "checkout_steps": 2,
        "has_guest_checkout": True,
        "has_reviews": True,
        "has_size_guide": False,
        "has_live_chat": True,
        "has_free_shipping_threshold": True,
        "avg_free_shipping_threshold": 40,
    },
}


def get_category_leader_benchmark(category: str) -> Optional[Dict]:
    benchmark = CATEGORY_LEADERS.get(category.lower())
    return dict(benchmark) if benchmark else None


def get_available_categories() -> List[str]:
    return list(CATEGORY_LEADERS.keys())


def _count_gap(gaps: List[Dict], metric: str, store_value, benchmark_value, unit: str, gap: int,
               recommendation: str, impact: Optional[str] = None):
    gaps.append({
        "metric": metric,
        "storeValue": f"{store_value} {unit}",
        "benchmarkValue": f"{benchmark_value} {unit}",
        "gap": f"{gap} fewer {unit}",
        "impact": impact or ("high" if gap > 2 else "medium"),
        "recommendation": recommendation,
    })


def _missing_feature(store_stats: Dict, key: str, benchmark: Dict) -> bool:
    return key in store_stats and store_stats[key] is not None and not store_stats[key] and benchmark[key]


def compare_to_category_leaders(category: str, store_stats: Dict) -> Dict:
    """
    Gap analysis of a store against its category leader.

    Only metrics present in ``store_stats`` are compared. Each gap costs a
    fixed number of points from 100; the score floors at 0.
    """
    benchmark = CATEGORY_LEADERS.get(category.lower())
    if not benchmark:
        return {"category": "Unknown (using Apparel benchmark)", "gaps": [], "overallScore": 0}

    leader = benchmark["category"]
    gaps: List[Dict] = []
    score = 100

    load_time = store_stats.get("avg_load_time")
    if load_time is not None:
        gap = load_time - benchmark["avg_load_time"]
        if gap > 0.5:
            gaps.append({
                "metric": "Page Load Time",
                "storeValue": f"{load_time}s",
                "benchmarkValue": f"{benchmark['avg_load_time']}s",
                "gap": f"{gap:.1f}s slower",
                "impact": "high" if gap > 2 else "medium",
                "recommendation": (
                    f"Top {leader} brands load in {benchmark['avg_load_time']}s. "
                    "Optimize images and reduce JavaScript to improve load time."
                ),
            })
            score -= 10

    images = store_stats.get("images_per_pdp")
    if images is not None:
        gap = benchmark["images_per_pdp"] - images
        if gap > 0:
            _count_gap(
                gaps, "Product Images", images, benchmark["images_per_pdp"], "images", gap,
                f"Top {leader} brands show {benchmark['images_per_pdp']} images per product. "
                "Add more product photos to increase conversion.",
            )
            score -= 8

    if _missing_feature(store_stats, "has_sticky_atc", benchmark):
        gaps.append({
            "metric": "Sticky Add-to-Cart",
            "storeValue": False,
            "benchmarkValue": True,
            "gap": "Missing sticky ATC button",
            "impact": "high",
            "recommendation": (
                f"Top {leader} brands use sticky add-to-cart buttons. "
                "This keeps the purchase option visible as users scroll."
            ),
        })
        score -= 12

    badges = store_stats.get("trust_badges_count")
    if badges is not None:
        gap = benchmark["trust_badges_count"] - badges
        if gap > 0:
            _count_gap(
                gaps, "Trust Badges", badges, benchmark["trust_badges_count"], "badges", gap,
                f"Top {leader} brands display {benchmark['trust_badges_count']} trust badges. "
                "Add security badges, return policies, and guarantees.",
            )
            score -= 7

    express = store_stats.get("express_checkout_options")
    if express is not None:
        gap = benchmark["express_checkout_options"] - express
        if gap > 0:
            _count_gap(
                gaps, "Express Checkout Options", express, benchmark["express_checkout_options"], "options", gap,
                f"Top {leader} brands offer {benchmark['express_checkout_options']} express checkout options "
                "(Apple Pay, PayPal, etc.). Add more payment methods to reduce friction.",
                impact="high",
            )
            score -= 15

    if _missing_feature(store_stats, "has_guest_checkout", benchmark):
        gaps.append({
            "metric": "Guest Checkout",
            "storeValue": False,
            "benchmarkValue": True,
            "gap": "Forced account creation",
            "impact": "high",
            "recommendation": (
                f"Top {leader} brands allow guest checkout. "
                "Forcing account creation increases abandonment."
            ),
        })
        score -= 20

    if _missing_feature(store_stats, "has_reviews", benchmark):
        gaps.append({
            "metric": "Product Reviews",
            "storeValue": False,
            "benchmarkValue": True,
            "gap": "No reviews displayed",
            "impact": "high",
            "recommendation": (
                f"Top {leader} brands display product reviews. "
                "Reviews build trust and increase conversion."
            ),
        })
        score -= 15

    if _missing_feature(store_stats, "has_free_shipping_threshold", benchmark):
        gaps.append({
            "metric": "Free Shipping Threshold",
            "storeValue": False,
            "benchmarkValue": True,
            "gap": "No free shipping offer",
            "impact": "medium",
            "recommendation": (
                f"Top {leader} brands offer free shipping at ${benchmark['avg_free_shipping_threshold']}. "
                "This encourages higher order values."
            ),
        })
        score -= 10

    return {"category": leader, "gaps": gaps, "overallScore": max(0, score)}

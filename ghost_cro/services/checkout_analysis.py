"""
Checkout & shipping analysis

Pure functions over raw Shopify REST payloads (abandoned checkouts,
shipping zones, orders). Money arrives as strings and is parsed with
``parse_money``.
"""
from datetime import datetime, timezone
from typing import Dict, List, Optional

from ghost_cro.utils.helpers import parse_money, safe_divide

HIGH_SHIPPING_ZONE_AVERAGE = 15.0


def _utc_date(timestamp: str) -> str:
    parsed = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime("%Y-%m-%d")


def _drop_off_stage(checkout: Dict) -> str:
    """Best guess at where the shopper gave up; Shopify does not record it"""
    line_items = checkout.get("line_items") or []
    if checkout.get("shipping_address") and not checkout.get("completed_at"):
        return "atPayment"
    if line_items and not checkout.get("shipping_address"):
        return "atShipping"
    if line_items:
        return "atCart"
    return "unknown"


def calculate_abandoned_checkout_stats(checkouts: List[Dict]) -> Dict:
    """
    Aggregate abandoned checkouts.

    Returns:
        total, totalValue, averageValue, byDay (ascending date) and
        dropOffPoints counts for atCart/atShipping/atPayment/unknown
    """
    total = len(checkouts)
    total_value = sum(parse_money(c.get("total_price")) for c in checkouts)

    by_day: Dict[str, Dict] = {}
    drop_off = {"atCart": 0, "atShipping": 0, "atPayment": 0, "unknown": 0}

    for checkout in checkouts:
        date = _utc_date(checkout["created_at"])
        bucket = by_day.setdefault(date, {"count": 0, "value": 0.0})
        bucket["count"] += 1
        bucket["value"] += parse_money(checkout.get("total_price"))

        drop_off[_drop_off_stage(checkout)] += 1

    return {
        "total": total,
        "totalValue": total_value,
        "averageValue": safe_divide(total_value, total),
        "byDay": [{"date": date, **by_day[date]} for date in sorted(by_day)],
        "dropOffPoints": drop_off,
    }


def _zone_rates(zone: Dict) -> List[Dict]:
    return list(zone.get("price_based_shipping_rates") or []) + list(zone.get("weight_based_shipping_rates") or [])


def analyze_shipping_shock(shipping_zones: List[Dict], abandoned_checkouts: List[Dict]) -> Dict:
    """
    Detect shipping shock: costs that are high, only revealed at checkout,
    or a free-shipping threshold that is out of reach.
    """
    all_rates = [rate for zone in shipping_zones for rate in _zone_rates(zone)]

    costs = [c for c in (parse_money(r.get("price")) for r in all_rates) if c > 0]
    average_cost = safe_divide(sum(costs), len(costs))
    min_cost = min(costs) if costs else 0.0
    max_cost = max(costs) if costs else 0.0

    free_rates = [r for r in all_rates if parse_money(r.get("price")) == 0]
    has_free_shipping = len(free_rates) > 0

    thresholds = [t for t in (parse_money(r.get("min_order_subtotal")) for r in free_rates) if t > 0]
    free_shipping_threshold: Optional[float] = min(thresholds) if thresholds else None

    checkouts_with_shipping = [c for c in abandoned_checkouts if c.get("shipping_lines")]

    high_shipping = []
    for zone in shipping_zones:
        zone_costs = [c for c in (parse_money(r.get("price")) for r in _zone_rates(zone)) if c > 0]
        if not zone_costs:
            continue
        if sum(zone_costs) / len(zone_costs) > HIGH_SHIPPING_ZONE_AVERAGE:
            for country in zone.get("countries") or []:
                high_shipping.append({
                    "country": country.get("name"),
                    "minCost": min(zone_costs),
                    "maxCost": max(zone_costs),
                })

    recommendations = []
    if not has_free_shipping:
        recommendations.append("Consider adding free shipping to reduce cart abandonment")

    if free_shipping_threshold and free_shipping_threshold > 50:
        recommendations.append(
            f"Free shipping threshold is ${free_shipping_threshold:g} - consider lowering or clearly "
            f"displaying this threshold on product pages"
        )

    if average_cost > 10:
        recommendations.append(
            f"Average shipping cost is ${average_cost:.2f} - consider showing shipping costs earlier "
            f"in the funnel or offering free shipping"
        )

    if high_shipping:
        recommendations.append(
            f"{len(high_shipping)} shipping zone(s) have high shipping costs - consider regional "
            f"pricing or free shipping thresholds"
        )

    return {
        "hasFreeShipping": has_free_shipping,
        "freeShippingThreshold": free_shipping_threshold,
        "averageShippingCost": round(average_cost, 2),
        "minShippingCost": round(min_cost, 2),
        "maxShippingCost": round(max_cost, 2),
        "shippingCostRange": f"${min_cost:.2f} - ${max_cost:.2f}",
        # Shipping first surfaced at checkout for these shoppers
        "hasHiddenShipping": len(checkouts_with_shipping) > 0,
        "countriesWithHighShipping": high_shipping,
        "recommendations": recommendations,
    }


def summarize_orders(orders: List[Dict], fallback_currency: Optional[str] = None) -> Dict:
    """Totals for the metrics card: orders, revenue, AOV and currency"""
    total_orders = len(orders)
    total_revenue = sum(parse_money(o.get("total_price")) for o in orders)

    currency = (orders[0].get("currency") if orders else None) or fallback_currency or "USD"

    return {
        "totalOrders": total_orders,
        "totalRevenue": round(total_revenue, 2),
        "averageOrderValue": round(safe_divide(total_revenue, total_orders), 2),
        "currency": currency,
    }

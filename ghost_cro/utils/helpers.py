"""
Helper utilities: formatting for dashboard copy, date ranges, domains
"""
import math
import re
from datetime import datetime, timedelta, timezone
from typing import Optional, Union


def is_missing(value) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def format_currency(amount: Optional[float]) -> str:
    """Whole-dollar USD string; missing/NaN renders as $0"""
    if is_missing(amount):
        return "$0"
    rounded = round_half_up(abs(amount))
    if amount < 0 and rounded:
        return f"-${rounded:,}"
    return f"${rounded:,}"


def format_percent(decimal: Optional[float]) -> str:
    """0.0234 -> '2.3%'"""
    if is_missing(decimal):
        return "0%"
    return f"{decimal * 100:.1f}%"


def format_number(num: Optional[float]) -> str:
    if is_missing(num):
        return "0"
    if float(num).is_integer():
        return f"{int(num):,}"
    return f"{num:,.3f}".rstrip("0").rstrip(".")


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}{'s' if count > 1 else ''} ago"


def format_relative_time(value: Union[datetime, str], now: Optional[datetime] = None) -> str:
    """Human 'x ago' label used in scan history"""
    target = datetime.fromisoformat(value.replace("Z", "+00:00")) if isinstance(value, str) else value
    if target.tzinfo is None:
        target = target.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)

    diff_mins = int((now - target).total_seconds() // 60)
    if diff_mins < 1:
        return "Just now"
    if diff_mins < 60:
        return f"{diff_mins} min ago"

    diff_hours = diff_mins // 60
    if diff_hours < 24:
        return _plural(diff_hours, "hour")

    diff_days = diff_hours // 24
    if diff_days < 7:
        return _plural(diff_days, "day")

    diff_weeks = diff_days // 7
    if diff_weeks < 4:
        return _plural(diff_weeks, "week")

    return _plural(diff_days // 30, "month")


def calculate_date_range(days: int = 30) -> tuple[datetime, datetime]:
    """UTC (start, end) covering the last ``days`` days"""
    end_date = datetime.now(timezone.utc)
    return end_date - timedelta(days=days), end_date


def iso_date(value: datetime) -> str:
    return value.strftime("%Y-%m-%d")


def safe_divide(numerator: float, denominator: float, default: float = 0.0) -> float:
    """Safely divide two numbers"""
    try:
        return numerator / denominator if denominator != 0 else default
    except (TypeError, ZeroDivisionError):
        return default


def parse_money(value) -> float:
    """Shopify sends money as strings ("12.50"); tolerate None and junk"""
    if value is None or value == "":
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def clean_domain(domain: str) -> str:
    """Normalize a store URL/domain for lookup"""
    cleaned = re.sub(r"^https?://", "", domain.strip())
    cleaned = re.sub(r"^www\.", "", cleaned)
    return cleaned.rstrip("/").lower()


_SHOP_DOMAIN_RE = re.compile(r"^[a-z0-9][a-z0-9\-]*\.myshopify\.com$")


def normalize_shop_domain(shop: str) -> str:
    """'My-Store' / 'https://my-store.myshopify.com/' -> 'my-store.myshopify.com'"""
    cleaned = clean_domain(shop)
    if "." not in cleaned:
        cleaned = f"{cleaned}.myshopify.com"
    return cleaned


def is_valid_shop_domain(shop: str) -> bool:
    return bool(_SHOP_DOMAIN_RE.fullmatch(shop or ""))


def round_half_up(value: float, digits: int = 0):
    """Half-up rounding as the dashboard does it (2.5 -> 3, -2.5 -> -2)"""
    factor = 10 ** digits
    result = math.floor(value * factor + 0.5) / factor
    return int(result) if digits == 0 else result

"""
Plan limits and subscription bookkeeping

Subscriptions are created in Shopify; this module only mirrors their state
locally so the dashboard can gate test runs.
"""
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ghost_cro.models.store import Subscription

SHOPIFY_PLANS = {
    "starter": {"name": "Starter", "price": 49, "testsLimit": 5, "trialDays": 7},
    "growth": {"name": "Growth", "price": 99, "testsLimit": 15, "trialDays": 7},
    "scale": {"name": "Scale", "price": 150, "testsLimit": 999, "trialDays": 7},
}
FREE_PLAN = {"name": "Free", "price": 0, "testsLimit": 1, "trialDays": 0}

PLAN_TESTS_LIMIT = {
    **{plan: details["testsLimit"] for plan, details in SHOPIFY_PLANS.items()},
    "free": FREE_PLAN["testsLimit"],
}


def get_plan(plan: Optional[str]) -> Dict:
    return SHOPIFY_PLANS.get(plan or "", FREE_PLAN)


def extract_plan_from_name(name: Optional[str]) -> str:
    """'Ghost CRO Growth Plan' -> growth; anything unrecognised is free"""
    lowered = (name or "").lower()
    for plan in ("scale", "growth", "starter"):
        if plan in lowered:
            return plan
    return "free"


def get_subscription(db: Session, shop: str) -> Optional[Subscription]:
    return (
        db.query(Subscription)
        .filter(Subscription.shopify_shop == shop)
        .order_by(Subscription.id.desc())
        .first()
    )


def get_subscription_status(db: Session, shop: str) -> Dict:
    subscription = get_subscription(db, shop)
    if subscription is None:
        return {
            "shop": shop,
            "plan": "free",
            "planName": FREE_PLAN["name"],
            "price": FREE_PLAN["price"],
            "status": "none",
            "testsLimit": PLAN_TESTS_LIMIT["free"],
            "testsUsed": 0,
            "testsRemaining": PLAN_TESTS_LIMIT["free"],
        }

    limit = subscription.tests_limit or 0
    used = subscription.tests_used or 0
    details = get_plan(subscription.plan)
    return {
        "shop": shop,
        "plan": subscription.plan,
        "planName": details["name"],
        "price": details["price"],
        "status": subscription.status,
        "testsLimit": limit,
        "testsUsed": used,
        "testsRemaining": max(0, limit - used),
    }


def record_test_run(db: Session, shop: str) -> None:
    """Count one analysis against the shop's plan, if it has a subscription row"""
    subscription = get_subscription(db, shop)
    if subscription is None:
        return
    subscription.tests_used = (subscription.tests_used or 0) + 1
    db.commit()

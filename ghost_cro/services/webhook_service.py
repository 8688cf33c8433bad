"""
Shopify webhook handling

Billing updates, uninstalls and the mandatory GDPR topics.
"""
import base64
import hashlib
import hmac
from datetime import datetime
from typing import Dict, Optional

from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.store import Store, Subscription
from ghost_cro.models.test_result import TestResultRecord
from ghost_cro.services.billing import PLAN_TESTS_LIMIT, extract_plan_from_name
from ghost_cro.utils.logger import log

settings = get_settings()

GDPR_TOPICS = ("customers/data_request", "customers/redact", "shop/redact")


def compute_webhook_hmac(body: bytes, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).digest()
    return base64.b64encode(digest).decode("utf-8")


def verify_webhook_signature(body: bytes, signature: Optional[str], secret: Optional[str] = None) -> bool:
    """
    Verify X-Shopify-Hmac-Sha256 over the raw body.

    With no secret configured, unsigned webhooks are let through outside
    production only.
    """
    secret = secret if secret is not None else settings.shopify_webhook_secret
    if not secret:
        log.warning("SHOPIFY_WEBHOOK_SECRET not set - skipping verification outside production")
        return not settings.is_production

    if not signature:
        return False

    return hmac.compare_digest(compute_webhook_hmac(body, secret).encode("utf-8"), signature.encode("utf-8"))


def handle_subscription_update(db: Session, payload: Dict) -> None:
    subscription = payload.get("app_subscription")
    if not subscription:
        log.info("No subscription in payload")
        return

    charge_id = subscription.get("admin_graphql_api_id")
    if not charge_id:
        return

    status = (subscription.get("status") or "").lower()
    plan = extract_plan_from_name(subscription.get("name"))

    rows = db.query(Subscription).filter(Subscription.shopify_charge_id == charge_id).all()
    for row in rows:
        row.status = status
        row.updated_at = datetime.utcnow()
        if status in ("cancelled", "expired"):
            row.plan = "free"
            row.tests_limit = PLAN_TESTS_LIMIT["free"]
            row.shopify_charge_id = None
        elif status == "active":
            row.plan = plan
            row.tests_limit = PLAN_TESTS_LIMIT.get(plan, 1)

    db.commit()
    log.info(f"Subscription update: {charge_id} -> {status} ({len(rows)} rows)")


def handle_app_uninstalled(db: Session, shop: str) -> None:
    for row in db.query(Subscription).filter(Subscription.shopify_shop == shop).all():
        row.status = "cancelled"
        row.plan = "free"
        row.tests_limit = PLAN_TESTS_LIMIT["free"]
        row.shopify_charge_id = None
        row.updated_at = datetime.utcnow()

    store = db.query(Store).filter(Store.shop == shop).first()
    if store:
        store.is_active = False
        store.access_token = None

    db.commit()
    log.info(f"App uninstalled from {shop}")


def handle_shop_redact(db: Session, shop: str) -> None:
    """Erase everything held for the shop (sent 48h after uninstall)"""
    db.query(TestResultRecord).filter(TestResultRecord.shop == shop).delete()
    db.query(Subscription).filter(Subscription.shopify_shop == shop).delete()
    db.query(Store).filter(Store.shop == shop).delete()
    db.commit()
    log.info(f"Redacted stored data for {shop}")


def dispatch_webhook(db: Session, topic: str, shop: str, payload: Dict) -> None:
    log.info(f"Received Shopify webhook: {topic} from {shop}")

    if topic == "app_subscriptions/update":
        handle_subscription_update(db, payload)
    elif topic == "app/uninstalled":
        handle_app_uninstalled(db, shop)
    elif topic in GDPR_TOPICS:
        log.info(f"GDPR webhook received: {topic} for {shop}")
        if topic == "shop/redact":
            handle_shop_redact(db, payload.get("shop_domain") or shop)
    else:
        log.info(f"Unhandled webhook topic: {topic}")

"""
Shopify OAuth install flow

authorize URL -> merchant approves -> callback with code -> access token.
"""
import hashlib
import hmac
import secrets
from typing import Dict, Mapping, Optional
from urllib.parse import urlencode

import httpx
from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.store import Store
from ghost_cro.utils.logger import log

settings = get_settings()

SHOPIFY_SCOPES = (
    "read_analytics",
    "read_customer_events",
    "read_orders",
    "read_product_listings",
    "read_products",
    "read_reports",
    "read_themes",
    "read_checkouts",
    "read_shipping",
    "read_customers",
)

STATE_COOKIE = "shopify_oauth_state"
STATE_MAX_AGE = 60 * 10


class ShopifyOAuthError(Exception):
    pass


def get_scopes_string() -> str:
    return ",".join(SHOPIFY_SCOPES)


def generate_state() -> str:
    return secrets.token_urlsafe(16)


def callback_url() -> str:
    return f"{settings.app_url.rstrip('/')}/api/auth/shopify/callback"


def build_authorize_url(shop: str, state: str, client_id: Optional[str] = None) -> str:
    params = {
        "client_id": client_id or settings.shopify_client_id,
        "scope": get_scopes_string(),
        "redirect_uri": callback_url(),
        "state": state,
    }
    return f"https://{shop}/admin/oauth/authorize?{urlencode(params)}"


def verify_query_hmac(query: Mapping[str, str], secret: str) -> bool:
    """
    Check the ``hmac`` Shopify appends to OAuth redirects.

    The message is every other query param, sorted, joined as k=v with &;
    the digest is hex HMAC-SHA256 keyed with the app secret.
    """
    provided = query.get("hmac")
    if not provided:
        return False

    message = "&".join(f"{k}={v}" for k, v in sorted(query.items()) if k not in ("hmac", "signature"))
    expected = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected.encode("utf-8"), provided.encode("utf-8"))


async def exchange_code(
    shop: str,
    code: str,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Dict:
    """Swap the callback code for an offline access token"""
    async with httpx.AsyncClient(transport=transport, timeout=settings.shopify_request_timeout) as client:
        response = await client.post(
            f"https://{shop}/admin/oauth/access_token",
            json={
                "client_id": settings.shopify_client_id,
                "client_secret": settings.shopify_client_secret,
                "code": code,
            },
        )

    if not response.is_success:
        log.error(f"Failed to exchange code for access token: {response.text}")
        raise ShopifyOAuthError(response.text or f"HTTP {response.status_code}")

    data = response.json()
    if not data.get("access_token"):
        log.error(f"No access token in response for {shop}")
        raise ShopifyOAuthError("No access token received from Shopify")

    return data


def upsert_store(db: Session, shop: str, access_token: str, scope: Optional[str] = None, user_id: Optional[str] = None) -> Store:
    """Create or reactivate the shop's row with its new token"""
    store = db.query(Store).filter(Store.shop == shop).first()
    if store is None:
        store = Store(shop=shop)
        db.add(store)

    store.access_token = access_token
    store.scope = scope
    store.is_active = True
    if user_id:
        store.user_id = user_id

    db.commit()
    db.refresh(store)
    log.info(f"Stored Shopify install for {shop}")
    return store

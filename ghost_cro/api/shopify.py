"""
Shopify endpoints
Store metrics, abandoned checkouts, shipping, webhooks and the theme sandbox
"""
import json
from typing import Callable, List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from ghost_cro.connectors.shopify import ShopifyAPIError, ShopifyClient
from ghost_cro.models.base import get_db
from ghost_cro.schemas import CamelModel, CodeFix, DeploymentResult
from ghost_cro.services import billing, webhook_service
from ghost_cro.services.checkout_analysis import (
    analyze_shipping_shock,
    calculate_abandoned_checkout_stats,
    summarize_orders,
)
from ghost_cro.services.theme_sandbox import (
    ERROR_API,
    ERROR_PERMISSION_DENIED,
    ERROR_RATE_LIMITED,
    ThemeSandboxError,
    ThemeSandboxService,
)
from ghost_cro.utils.helpers import calculate_date_range, iso_date
from ghost_cro.utils.logger import log

router = APIRouter(prefix="/api/shopify", tags=["shopify"])

METRICS_NOTE = (
    "Session data and conversion rates require Shopify Analytics API (Shopify Plus) "
    "or external analytics integration."
)

DEPLOY_ERROR_STATUS = {
    ERROR_PERMISSION_DENIED: 403,
    ERROR_RATE_LIMITED: 429,
}


def get_shopify_client_factory() -> Callable[[str, str], ShopifyClient]:
    """Builds a client per request; swapped out in tests"""
    return ShopifyClient


class ShopCredentials(CamelModel):
    shop: Optional[str] = None
    access_token: Optional[str] = None


class CheckoutsRequest(ShopCredentials):
    status: str = "open"
    limit: int = 250
    days: int = 30


class FixToDeploy(CamelModel):
    friction_point_id: str
    code_fix: CodeFix


class DeployRequest(ShopCredentials):
    fixes: List[FixToDeploy] = []
    create_new_sandbox: bool = True
    existing_sandbox_id: Optional[int] = None


class PublishRequest(ShopCredentials):
    theme_id: Optional[int] = None


def _require_credentials(body: ShopCredentials) -> None:
    if not body.shop or not body.access_token:
        raise HTTPException(status_code=400, detail="Missing shop or accessToken")


def _upstream_error(e: ShopifyAPIError, message: str) -> HTTPException:
    log.error(f"{message}: {str(e)}")
    return HTTPException(status_code=e.status_code, detail={"error": message, "details": e.body})


# ---- Store data -------------------------------------------------------

@router.post("/metrics")
async def get_store_metrics(body: ShopCredentials, make_client=Depends(get_shopify_client_factory)):
    """
    30-day order totals plus abandoned checkout and shipping analysis

    Orders are required; checkouts, shipping zones and shop info are
    best-effort and skipped when Shopify refuses them.
    """
    _require_credentials(body)
    client = make_client(body.shop, body.access_token)
    start_date, end_date = calculate_date_range(30)

    try:
        orders = await client.get_orders(created_at_min=start_date.isoformat())
    except ShopifyAPIError as e:
        raise _upstream_error(e, "Failed to fetch orders from Shopify")
    except Exception as e:
        log.error(f"Error fetching Shopify metrics: {str(e)}")
        raise HTTPException(status_code=500, detail={"error": "Internal server error", "details": str(e)})

    abandoned_checkouts = []
    checkout_stats = None
    try:
        abandoned_checkouts = await client.get_abandoned_checkouts(
            status="open",
            limit=250,
            created_at_min=start_date.isoformat(),
            created_at_max=end_date.isoformat(),
        )
        checkout_stats = calculate_abandoned_checkout_stats(abandoned_checkouts)
    except Exception as e:
        log.error(f"Failed to fetch abandoned checkouts: {str(e)}")

    shipping_zones = []
    shipping_analysis = None
    try:
        shipping_zones = await client.get_shipping_zones()
        shipping_analysis = analyze_shipping_shock(shipping_zones, abandoned_checkouts)
    except Exception as e:
        log.error(f"Failed to fetch shipping zones: {str(e)}")

    shop_data = {}
    try:
        shop_data = await client.get_shop()
    except Exception as e:
        log.warning(f"Failed to fetch shop info for {body.shop}: {str(e)}")

    metrics = summarize_orders(orders, fallback_currency=shop_data.get("currency"))
    metrics["estimatedConversionRate"] = None
    metrics["totalSessions"] = None

    stats = checkout_stats or {}
    return {
        "success": True,
        "period": {"start": iso_date(start_date), "end": iso_date(end_date), "days": 30},
        "metrics": metrics,
        "abandonedCheckouts": {
            "total": stats.get("total", 0),
            "totalValue": stats.get("totalValue", 0),
            "averageValue": stats.get("averageValue", 0),
            "dropOffPoints": stats.get("dropOffPoints") or {"atCart": 0, "atShipping": 0, "atPayment": 0, "unknown": 0},
            "byDay": stats.get("byDay", []),
        },
        "shipping": {
            "zones": len(shipping_zones),
            "analysis": {
                key: shipping_analysis[key]
                for key in (
                    "hasFreeShipping",
                    "freeShippingThreshold",
                    "averageShippingCost",
                    "shippingCostRange",
                    "hasHiddenShipping",
                    "countriesWithHighShipping",
                    "recommendations",
                )
            } if shipping_analysis else None,
        },
        "shop": {
            "name": shop_data.get("name") or body.shop,
            "domain": shop_data.get("domain") or body.shop,
            "email": shop_data.get("email"),
        },
        "note": METRICS_NOTE,
    }


@router.post("/checkouts")
async def get_abandoned_checkouts(body: CheckoutsRequest, make_client=Depends(get_shopify_client_factory)):
    """Abandoned checkouts for the last ``days`` days with drop-off stats"""
    _require_credentials(body)
    client = make_client(body.shop, body.access_token)
    start_date, end_date = calculate_date_range(body.days)

    try:
        checkouts = await client.get_abandoned_checkouts(
            status=body.status,
            limit=body.limit,
            created_at_min=start_date.isoformat(),
            created_at_max=end_date.isoformat(),
        )
    except ShopifyAPIError as e:
        raise _upstream_error(e, "Failed to fetch abandoned checkouts")

    return {
        "success": True,
        "period": {"start": iso_date(start_date), "end": iso_date(end_date), "days": body.days},
        "checkouts": checkouts,
        "stats": calculate_abandoned_checkout_stats(checkouts),
    }


@router.post("/shipping")
async def get_shipping(body: ShopCredentials, make_client=Depends(get_shopify_client_factory)):
    """Shipping zones and the shipping-shock analysis"""
    _require_credentials(body)
    client = make_client(body.shop, body.access_token)

    try:
        zones = await client.get_shipping_zones()
    except ShopifyAPIError as e:
        raise _upstream_error(e, "Failed to fetch shipping zones")

    checkouts = []
    try:
        start_date, end_date = calculate_date_range(30)
        checkouts = await client.get_abandoned_checkouts(
            created_at_min=start_date.isoformat(),
            created_at_max=end_date.isoformat(),
        )
    except ShopifyAPIError as e:
        log.warning(f"Shipping analysis without checkouts for {body.shop}: {str(e)}")

    return {
        "success": True,
        "zones": zones,
        "analysis": analyze_shipping_shock(zones, checkouts),
    }


@router.get("/billing/status")
async def get_billing_status(shop: str, db: Session = Depends(get_db)):
    """Local plan, limits and tests remaining for a shop"""
    return billing.get_subscription_status(db, shop)


# ---- Webhooks ---------------------------------------------------------

@router.post("/webhooks")
async def shopify_webhook(
    request: Request,
    db: Session = Depends(get_db),
    x_shopify_hmac_sha256: Optional[str] = Header(None),
    x_shopify_topic: str = Header(""),
    x_shopify_shop_domain: str = Header(""),
):
    """Billing, uninstall and GDPR webhooks"""
    body = await request.body()

    if not webhook_service.verify_webhook_signature(body, x_shopify_hmac_sha256):
        log.error(f"Invalid webhook signature for {x_shopify_topic} from {x_shopify_shop_domain}")
        raise HTTPException(status_code=401, detail="Invalid signature")

    try:
        payload = json.loads(body) if body else {}
        webhook_service.dispatch_webhook(db, x_shopify_topic, x_shopify_shop_domain, payload)
    except Exception as e:
        log.error(f"Webhook processing error: {str(e)}")
        raise HTTPException(status_code=500, detail="Webhook handler failed")

    return {"received": True}


# ---- Theme sandbox ----------------------------------------------------

@router.post("/sandbox/deploy")
async def deploy_sandbox(body: DeployRequest, make_client=Depends(get_shopify_client_factory)):
    """Deploy code fixes into a Ghost sandbox theme"""
    if not body.shop or not body.access_token:
        result = DeploymentResult(success=False, error="Missing shop or accessToken", error_code=ERROR_PERMISSION_DENIED)
        return JSONResponse(result.to_json_dict(), status_code=400)

    if not body.fixes:
        result = DeploymentResult(success=False, error="No fixes provided for deployment", error_code=ERROR_API)
        return JSONResponse(result.to_json_dict(), status_code=400)

    service = ThemeSandboxService(make_client(body.shop, body.access_token))
    existing_sandbox_id = None if body.create_new_sandbox else body.existing_sandbox_id

    try:
        result = await service.deploy_fixes(
            [(f.friction_point_id, f.code_fix) for f in body.fixes],
            existing_sandbox_id=existing_sandbox_id,
        )
    except Exception as e:
        log.error(f"Sandbox deployment error: {str(e)}")
        result = DeploymentResult(success=False, error=str(e), error_code=ERROR_API)

    if result.success:
        return result.to_json_dict()

    return JSONResponse(result.to_json_dict(), status_code=DEPLOY_ERROR_STATUS.get(result.error_code, 500))


@router.get("/sandbox")
async def list_sandboxes(
    shop: Optional[str] = None,
    x_shopify_access_token: Optional[str] = Header(None),
    make_client=Depends(get_shopify_client_factory),
):
    """Existing Ghost sandbox themes"""
    if not shop or not x_shopify_access_token:
        raise HTTPException(status_code=400, detail="Missing shop parameter or access token")

    service = ThemeSandboxService(make_client(shop, x_shopify_access_token))
    try:
        sandboxes = await service.find_ghost_sandboxes()
    except ShopifyAPIError as e:
        log.error(f"Failed to list sandbox themes: {str(e)}")
        raise HTTPException(status_code=500, detail=str(e))

    return {
        "sandboxes": [
            {
                "id": s.get("id"),
                "name": s.get("name"),
                "role": s.get("role"),
                "createdAt": s.get("created_at"),
                "previewable": s.get("previewable"),
            }
            for s in sandboxes
        ]
    }


@router.post("/theme/publish")
async def publish_theme(body: PublishRequest, make_client=Depends(get_shopify_client_factory)):
    """Make a reviewed sandbox the live theme"""
    if not body.shop or not body.access_token or not body.theme_id:
        return JSONResponse({"success": False, "error": "Missing shop, accessToken, or themeId"}, status_code=400)

    service = ThemeSandboxService(make_client(body.shop, body.access_token))
    try:
        await service.publish_theme(body.theme_id)
    except ThemeSandboxError as e:
        log.error(f"Theme publish error: {str(e)}")
        status_code = 403 if e.code == ERROR_PERMISSION_DENIED else 500
        return JSONResponse({"success": False, "error": str(e)}, status_code=status_code)

    return {"success": True, "message": "Theme published successfully"}

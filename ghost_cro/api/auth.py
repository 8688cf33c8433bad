"""OAuth flows: Shopify app install and Google Analytics connect."""
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from fastapi.responses import RedirectResponse
from sqlalchemy.orm import Session

from ghost_cro.config import get_settings
from ghost_cro.models.base import get_db
from ghost_cro.services import ga4_oauth, shopify_oauth
from ghost_cro.services.shopify_oauth import STATE_COOKIE, STATE_MAX_AGE, ShopifyOAuthError
from ghost_cro.utils.helpers import is_valid_shop_domain, normalize_shop_domain
from ghost_cro.utils.logger import log

settings = get_settings()

router = APIRouter(prefix="/api/auth", tags=["auth"])


def _settings_redirect(error: str, message: Optional[str] = None) -> RedirectResponse:
    params = {"error": error}
    if message:
        params["message"] = message
    return RedirectResponse(f"{settings.app_url.rstrip('/')}/dashboard/settings?{urlencode(params)}")


def _login_redirect() -> RedirectResponse:
    params = {"error": "authentication_required", "message": "Please log in to connect Google Analytics"}
    return RedirectResponse(f"{settings.app_url.rstrip('/')}/login?{urlencode(params)}")


@router.get("/shopify")
async def shopify_install(shop: Optional[str] = None):
    """Redirect the merchant to Shopify's consent screen"""
    if not shop:
        raise HTTPException(status_code=400, detail="Shop parameter is required")

    shop = normalize_shop_domain(shop)
    if not is_valid_shop_domain(shop):
        raise HTTPException(status_code=400, detail="Invalid shop domain")

    if not settings.shopify_client_id:
        log.error("SHOPIFY_CLIENT_ID is not set")
        raise HTTPException(
            status_code=500,
            detail={
                "error": "Shopify OAuth is not configured. Please set SHOPIFY_CLIENT_ID in your environment variables.",
                "details": "Contact your administrator or check your .env file",
            },
        )

    state = shopify_oauth.generate_state()
    response = RedirectResponse(shopify_oauth.build_authorize_url(shop, state))
    response.set_cookie(
        key=STATE_COOKIE,
        value=state,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=STATE_MAX_AGE,
    )
    return response


@router.get("/shopify/callback")
async def shopify_callback(request: Request, db: Session = Depends(get_db)):
    """Exchange the authorization code and remember the store"""
    query = dict(request.query_params)
    code, shop, state = query.get("code"), query.get("shop"), query.get("state")

    if not code or not shop or not state:
        return _settings_redirect("missing_parameters")

    saved_state = request.cookies.get(STATE_COOKIE)
    if not saved_state or saved_state != state:
        return _settings_redirect("invalid_state")

    shop = normalize_shop_domain(shop)
    if not is_valid_shop_domain(shop):
        log.warning(f"Rejected OAuth callback for invalid shop domain: {shop}")
        return _settings_redirect("invalid_shop")

    if not settings.shopify_client_id or not settings.shopify_client_secret:
        log.error("Shopify OAuth credentials are missing")
        return _settings_redirect(
            "oauth_not_configured",
            "Shopify OAuth credentials are missing. Please set SHOPIFY_CLIENT_ID and SHOPIFY_CLIENT_SECRET.",
        )

    if "hmac" in query and not shopify_oauth.verify_query_hmac(query, settings.shopify_client_secret):
        log.error(f"Invalid OAuth HMAC for {shop}")
        return _settings_redirect("invalid_hmac")

    try:
        token_data = await shopify_oauth.exchange_code(shop, code)
    except ShopifyOAuthError as e:
        return _settings_redirect("token_exchange_failed", str(e))
    except Exception as e:
        log.error(f"Token exchange error for {shop}: {str(e)}")
        return _settings_redirect("token_exchange_failed", "Could not reach Shopify")

    shopify_oauth.upsert_store(db, shop, token_data["access_token"], scope=token_data.get("scope"))

    response = RedirectResponse(f"{settings.app_url.rstrip('/')}/ghost?{urlencode({'auto': 'true', 'shop': shop})}")
    response.delete_cookie(STATE_COOKIE)
    return response


def _set_flow_cookie(response: RedirectResponse, key: str, value: str) -> None:
    response.set_cookie(
        key=key,
        value=value,
        httponly=True,
        secure=settings.is_production,
        samesite="lax",
        max_age=ga4_oauth.STATE_MAX_AGE,
    )


@router.get("/google-analytics")
async def google_analytics_connect(user_id: Optional[str] = Query(None, alias="userId")):
    """Redirect the dashboard user to Google's consent screen for read-only GA4 access"""
    if not user_id:
        return _login_redirect()

    if not settings.google_client_id:
        log.error("GOOGLE_CLIENT_ID is not set")
        return _settings_redirect(
            "oauth_not_configured",
            "Google OAuth is not configured. Please set GOOGLE_CLIENT_ID in your environment variables.",
        )

    state = ga4_oauth.generate_state()
    response = RedirectResponse(ga4_oauth.build_authorize_url(state))
    _set_flow_cookie(response, ga4_oauth.STATE_COOKIE, state)
    _set_flow_cookie(response, ga4_oauth.USER_COOKIE, user_id)
    return response


@router.get("/google-analytics/callback")
async def google_analytics_callback(request: Request, db: Session = Depends(get_db)):
    """Store the user's GA4 tokens; property selection happens afterwards in settings"""
    query = request.query_params
    code, state = query.get("code"), query.get("state")

    if query.get("error") == "access_denied":
        return _settings_redirect("ga4_access_denied", "User declined Google Analytics access")

    if not code or not state:
        return _settings_redirect("missing_parameters", "Missing OAuth parameters")

    saved_state = request.cookies.get(ga4_oauth.STATE_COOKIE)
    if not saved_state or saved_state != state:
        return _settings_redirect("invalid_state", "Invalid OAuth state - possible CSRF attempt")

    if not settings.google_client_id or not settings.google_client_secret:
        log.error("Google OAuth credentials are missing")
        return _settings_redirect(
            "oauth_not_configured",
            "Google OAuth credentials are missing from server configuration",
        )

    user_id = request.cookies.get(ga4_oauth.USER_COOKIE)
    if not user_id:
        return _login_redirect()

    try:
        tokens = await ga4_oauth.exchange_code(code)
    except ga4_oauth.GA4ConnectionError as e:
        return _settings_redirect("token_exchange_failed", str(e))

    ga4_oauth.save_connection(
        db,
        user_id,
        tokens["access_token"],
        refresh_token=tokens["refresh_token"],
        expires_in=int(tokens.get("expires_in") or 3600),
    )
    log.info(f"Connected GA4 for user {user_id}")

    response = RedirectResponse(f"{settings.app_url.rstrip('/')}/dashboard/settings?success=ga4_connected")
    response.delete_cookie(ga4_oauth.STATE_COOKIE)
    response.delete_cookie(ga4_oauth.USER_COOKIE)
    return response

"""
Shopify-facing HTTP endpoints: install flow, store data, webhooks and the
theme sandbox.

Admin API calls go through the shopify_transport fixture; nothing leaves
the process.
"""
import json
from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from ghost_cro.models import Store, Subscription
from ghost_cro.services import shopify_oauth
from ghost_cro.services.shopify_oauth import ShopifyOAuthError
from ghost_cro.services.theme_sandbox import CSS_ASSET_KEY, ERROR_API, ERROR_PERMISSION_DENIED
from ghost_cro.services.webhook_service import compute_webhook_hmac
from tests.test_theme_sandbox import FakeThemeAPI

SHOP = "demo-store.myshopify.com"
TOKEN = "shpat_test"

ORDERS = [
    {"id": 1, "total_price": "100.00", "currency": "USD"},
    {"id": 2, "total_price": "50.00", "currency": "USD"},
]
CHECKOUTS = [
    {"id": 11, "created_at": "2024-05-01T10:00:00Z", "total_price": "80.00", "line_items": [{"id": 1}]},
]
SHIPPING_ZONES = [
    {
        "name": "Domestic",
        "countries": [{"name": "United States"}],
        "price_based_shipping_rates": [
            {"name": "Free over $75", "price": "0.00", "min_order_subtotal": "75.00"},
            {"name": "Standard", "price": "20.00"},
        ],
    }
]
SHOP_INFO = {"name": "Demo Store", "domain": "demo-store.com", "email": "owner@demo-store.com"}


def _admin_api(responses):
    """Handler answering Admin API paths ('orders.json') from a dict of path -> Response"""
    seen = []

    def handler(request):
        path = request.url.path.split("/admin/api/")[1].split("/", 1)[1]
        seen.append((path, dict(request.url.params)))
        if path in responses:
            return responses[path]
        return httpx.Response(404, json={"errors": "Not Found"})

    handler.seen = seen
    return handler


def _full_store():
    return _admin_api({
        "orders.json": httpx.Response(200, json={"orders": ORDERS}),
        "checkouts.json": httpx.Response(200, json={"checkouts": CHECKOUTS}),
        "shipping_zones.json": httpx.Response(200, json={"shipping_zones": SHIPPING_ZONES}),
        "shop.json": httpx.Response(200, json={"shop": SHOP_INFO}),
    })


@pytest.fixture(autouse=True)
def fast_polling(settings, monkeypatch):
    monkeypatch.setattr(settings, "theme_ready_delay_seconds", 0)
    monkeypatch.setattr(settings, "theme_ready_max_attempts", 3)


# ---------------------------------------------------------------------------
# Install flow
# ---------------------------------------------------------------------------

class TestInstall:

    def test_redirects_to_consent_screen(self, client):
        response = client.get("/api/auth/shopify", params={"shop": "Demo-Store"}, follow_redirects=False)

        assert response.status_code == 307
        location = urlparse(response.headers["location"])
        assert location.netloc == SHOP
        assert location.path == "/admin/oauth/authorize"

        state = parse_qs(location.query)["state"][0]
        cookie = response.headers["set-cookie"]
        assert f"shopify_oauth_state={state}" in cookie
        assert "HttpOnly" in cookie
        assert "Max-Age=600" in cookie
        assert "samesite=lax" in cookie.lower()
        assert "; secure" not in cookie.lower()

    def test_shop_required(self, client):
        response = client.get("/api/auth/shopify")

        assert response.status_code == 400
        assert response.json() == {"error": "Shop parameter is required"}

    def test_invalid_shop(self, client):
        response = client.get("/api/auth/shopify", params={"shop": "bad domain!"})

        assert response.status_code == 400
        assert response.json() == {"error": "Invalid shop domain"}

    def test_not_configured(self, client, settings, monkeypatch):
        monkeypatch.setattr(settings, "shopify_client_id", None)

        response = client.get("/api/auth/shopify", params={"shop": SHOP})

        assert response.status_code == 500
        assert "SHOPIFY_CLIENT_ID" in response.json()["error"]
        assert "details" in response.json()


class TestCallback:

    def _callback(self, client, **params):
        query = {"code": "code-1", "shop": SHOP, "state": "st-1", **params}
        return client.get("/api/auth/shopify/callback", params=query, follow_redirects=False)

    def _error(self, response):
        location = urlparse(response.headers["location"])
        assert location.path == "/dashboard/settings"
        return parse_qs(location.query)["error"][0]

    def test_success_stores_token(self, client, db, monkeypatch):
        async def exchange(shop, code):
            assert (shop, code) == (SHOP, "code-1")
            return {"access_token": "shpat_new", "scope": "read_orders,write_themes"}

        monkeypatch.setattr(shopify_oauth, "exchange_code", exchange)
        client.cookies.set("shopify_oauth_state", "st-1")

        response = self._callback(client)

        assert response.status_code == 307
        assert response.headers["location"] == "http://localhost:3000/ghost?auto=true&shop=demo-store.myshopify.com"
        assert "shpat_new" not in response.headers["location"]
        assert "Max-Age=0" in response.headers["set-cookie"]

        db.expire_all()
        store = db.query(Store).one()
        assert store.access_token == "shpat_new"
        assert store.scope == "read_orders,write_themes"

    def test_missing_parameters(self, client):
        response = client.get("/api/auth/shopify/callback", params={"shop": SHOP}, follow_redirects=False)
        assert self._error(response) == "missing_parameters"

    def test_state_mismatch(self, client):
        client.cookies.set("shopify_oauth_state", "someone-else")
        assert self._error(self._callback(client)) == "invalid_state"

    def test_state_cookie_missing(self, client):
        assert self._error(self._callback(client)) == "invalid_state"

    def test_bad_hmac(self, client):
        client.cookies.set("shopify_oauth_state", "st-1")
        assert self._error(self._callback(client, hmac="deadbeef")) == "invalid_hmac"

    def test_non_ascii_hmac(self, client):
        client.cookies.set("shopify_oauth_state", "st-1")
        assert self._error(self._callback(client, hmac="\u00e9abc")) == "invalid_hmac"

    @pytest.mark.parametrize("shop", ["attacker.example.com", "evil.com/.myshopify.com", "demo-store.myshopify.com.evil.io"])
    def test_foreign_shop_never_exchanged(self, client, db, monkeypatch, shop):
        calls = []

        async def exchange(shop, code):
            calls.append(shop)
            return {"access_token": "shpat_new"}

        monkeypatch.setattr(shopify_oauth, "exchange_code", exchange)
        client.cookies.set("shopify_oauth_state", "st-1")

        assert self._error(self._callback(client, shop=shop)) == "invalid_shop"
        assert calls == []
        assert db.query(Store).count() == 0

    def test_not_configured(self, client, settings, monkeypatch):
        monkeypatch.setattr(settings, "shopify_client_secret", None)
        client.cookies.set("shopify_oauth_state", "st-1")

        assert self._error(self._callback(client)) == "oauth_not_configured"

    def test_exchange_failure(self, client, db, monkeypatch):
        async def exchange(shop, code):
            raise ShopifyOAuthError("invalid_request")

        monkeypatch.setattr(shopify_oauth, "exchange_code", exchange)
        client.cookies.set("shopify_oauth_state", "st-1")

        response = self._callback(client)

        assert self._error(response) == "token_exchange_failed"
        assert parse_qs(urlparse(response.headers["location"]).query)["message"] == ["invalid_request"]
        assert db.query(Store).count() == 0


# ---------------------------------------------------------------------------
# Store data
# ---------------------------------------------------------------------------

class TestMetrics:

    def test_store_metrics(self, client, shopify_transport):
        shopify_transport(_full_store())

        response = client.post("/api/shopify/metrics", json={"shop": SHOP, "accessToken": TOKEN})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["period"]["days"] == 30
        assert body["metrics"] == {
            "totalOrders": 2,
            "totalRevenue": 150.0,
            "averageOrderValue": 75.0,
            "currency": "USD",
            "estimatedConversionRate": None,
            "totalSessions": None,
        }
        assert body["abandonedCheckouts"]["total"] == 1
        assert body["abandonedCheckouts"]["totalValue"] == 80.0
        assert body["abandonedCheckouts"]["dropOffPoints"]["atShipping"] == 1
        assert body["abandonedCheckouts"]["byDay"] == [{"date": "2024-05-01", "count": 1, "value": 80.0}]

        shipping = body["shipping"]
        assert shipping["zones"] == 1
        assert shipping["analysis"]["hasFreeShipping"] is True
        assert shipping["analysis"]["freeShippingThreshold"] == 75.0
        assert shipping["analysis"]["countriesWithHighShipping"][0]["country"] == "United States"
        assert "minShippingCost" not in shipping["analysis"]

        assert body["shop"] == {"name": "Demo Store", "domain": "demo-store.com", "email": "owner@demo-store.com"}

    def test_optional_data_is_best_effort(self, client, shopify_transport):
        shopify_transport(_admin_api({
            "orders.json": httpx.Response(200, json={"orders": ORDERS}),
            "checkouts.json": httpx.Response(403, text='{"errors":"read_checkouts scope missing"}'),
            "shipping_zones.json": httpx.Response(403, text='{"errors":"Forbidden"}'),
            "shop.json": httpx.Response(403, text='{"errors":"Forbidden"}'),
        }))

        body = client.post("/api/shopify/metrics", json={"shop": SHOP, "accessToken": TOKEN}).json()

        assert body["metrics"]["totalOrders"] == 2
        assert body["abandonedCheckouts"]["total"] == 0
        assert body["abandonedCheckouts"]["dropOffPoints"] == {"atCart": 0, "atShipping": 0, "atPayment": 0, "unknown": 0}
        assert body["shipping"] == {"zones": 0, "analysis": None}
        assert body["shop"] == {"name": SHOP, "domain": SHOP, "email": None}

    def test_orders_failure_passes_status_through(self, client, shopify_transport):
        shopify_transport(_admin_api({
            "orders.json": httpx.Response(401, text='{"errors":"Invalid API key or access token"}'),
        }))

        response = client.post("/api/shopify/metrics", json={"shop": SHOP, "accessToken": "expired"})

        assert response.status_code == 401
        assert response.json() == {
            "error": "Failed to fetch orders from Shopify",
            "details": '{"errors":"Invalid API key or access token"}',
        }

    def test_missing_credentials(self, client):
        response = client.post("/api/shopify/metrics", json={"shop": SHOP})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing shop or accessToken"}


class TestCheckoutsAndShipping:

    def test_checkouts(self, client, shopify_transport):
        handler = _full_store()
        shopify_transport(handler)

        response = client.post("/api/shopify/checkouts", json={
            "shop": SHOP, "accessToken": TOKEN, "status": "closed", "limit": 10, "days": 7,
        })

        body = response.json()
        assert body["period"]["days"] == 7
        assert [c["id"] for c in body["checkouts"]] == [11]
        assert body["stats"]["averageValue"] == 80.0

        path, params = handler.seen[0]
        assert path == "checkouts.json"
        assert params["status"] == "closed"
        assert params["limit"] == "10"

    def test_checkouts_failure(self, client, shopify_transport):
        shopify_transport(_admin_api({"checkouts.json": httpx.Response(403, text="Forbidden")}))

        response = client.post("/api/shopify/checkouts", json={"shop": SHOP, "accessToken": TOKEN})

        assert response.status_code == 403
        assert response.json()["error"] == "Failed to fetch abandoned checkouts"

    def test_shipping(self, client, shopify_transport):
        shopify_transport(_full_store())

        body = client.post("/api/shopify/shipping", json={"shop": SHOP, "accessToken": TOKEN}).json()

        assert body["zones"] == SHIPPING_ZONES
        assert body["analysis"]["averageShippingCost"] == 20.0
        assert body["analysis"]["hasHiddenShipping"] is False
        assert len(body["analysis"]["recommendations"]) == 3

    def test_billing_status(self, client, db):
        db.add(Subscription(shopify_shop=SHOP, plan="growth", status="active", tests_limit=15, tests_used=4))
        db.commit()

        body = client.get("/api/shopify/billing/status", params={"shop": SHOP}).json()

        assert body["plan"] == "growth"
        assert body["testsRemaining"] == 11
        assert body["planName"] == "Growth"
        assert body["price"] == 99


# ---------------------------------------------------------------------------
# Webhooks
# ---------------------------------------------------------------------------

class TestWebhookEndpoint:

    def _post(self, client, payload, topic, signature=None):
        body = json.dumps(payload).encode()
        headers = {
            "X-Shopify-Topic": topic,
            "X-Shopify-Shop-Domain": SHOP,
            "Content-Type": "application/json",
        }
        headers["X-Shopify-Hmac-Sha256"] = signature or compute_webhook_hmac(body, "test-webhook-secret")
        return client.post("/api/shopify/webhooks", content=body, headers=headers)

    def test_uninstall(self, client, db):
        db.add(Store(shop=SHOP, access_token="shpat_live", is_active=True))
        db.commit()

        response = self._post(client, {"domain": SHOP}, "app/uninstalled")

        assert response.json() == {"received": True}
        db.expire_all()
        assert db.query(Store).one().is_active is False

    def test_bad_signature(self, client, db):
        db.add(Store(shop=SHOP, access_token="shpat_live", is_active=True))
        db.commit()

        response = self._post(client, {"domain": SHOP}, "app/uninstalled", signature="bm90LXJpZ2h0")

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}
        db.expire_all()
        assert db.query(Store).one().is_active is True

    def test_non_ascii_signature(self, client):
        response = self._post(client, {"domain": SHOP}, "app/uninstalled", signature="\u00e9abc".encode("latin-1"))

        assert response.status_code == 401
        assert response.json() == {"error": "Invalid signature"}


# ---------------------------------------------------------------------------
# Theme sandbox
# ---------------------------------------------------------------------------

CSS_FIX = {
    "frictionPointId": "critical_0",
    "codeFix": {
        "type": "css",
        "targetFile": CSS_ASSET_KEY,
        "targetLocation": "Sticky add to cart",
        "optimizedCode": ".product-form__submit { position: sticky; bottom: 0; }",
    },
}


class TestSandboxEndpoints:

    def test_deploy(self, client, shopify_transport):
        api = FakeThemeAPI()
        shopify_transport(api.handler)

        response = client.post("/api/shopify/sandbox/deploy", json={
            "shop": SHOP, "accessToken": TOKEN, "fixes": [CSS_FIX],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["themeId"] == 2
        assert body["previewUrl"] == "https://demo-store.myshopify.com/?preview_theme_id=2"
        assert body["assetsUpdated"] == [CSS_ASSET_KEY]
        assert "position: sticky" in api.assets[(2, CSS_ASSET_KEY)]

    def test_deploy_into_existing_sandbox(self, client, shopify_transport):
        api = FakeThemeAPI(themes=[
            {"id": 1, "name": "Dawn", "role": "main"},
            {"id": 7, "name": "Ghost CRO - Optimized [Jan 01, 2024, 09:00 AM]", "role": "unpublished"},
        ])
        shopify_transport(api.handler)

        body = client.post("/api/shopify/sandbox/deploy", json={
            "shop": SHOP, "accessToken": TOKEN, "fixes": [CSS_FIX],
            "createNewSandbox": False, "existingSandboxId": 7,
        }).json()

        assert body["themeId"] == 7
        assert api.created == []

    def test_deploy_without_write_themes(self, client, shopify_transport):
        shopify_transport(FakeThemeAPI(create_status=403).handler)

        response = client.post("/api/shopify/sandbox/deploy", json={
            "shop": SHOP, "accessToken": TOKEN, "fixes": [CSS_FIX],
        })

        assert response.status_code == 403
        assert response.json()["errorCode"] == ERROR_PERMISSION_DENIED

    def test_deploy_requires_fixes(self, client):
        response = client.post("/api/shopify/sandbox/deploy", json={"shop": SHOP, "accessToken": TOKEN})

        assert response.status_code == 400
        assert response.json()["errorCode"] == ERROR_API

    def test_deploy_requires_credentials(self, client):
        response = client.post("/api/shopify/sandbox/deploy", json={"fixes": [CSS_FIX]})

        assert response.status_code == 400
        assert response.json()["success"] is False
        assert response.json()["errorCode"] == ERROR_PERMISSION_DENIED

    def test_list_sandboxes(self, client, shopify_transport):
        shopify_transport(FakeThemeAPI(themes=[
            {"id": 1, "name": "Dawn", "role": "main"},
            {"id": 7, "name": "Ghost CRO - Optimized [x]", "role": "unpublished",
             "created_at": "2024-01-01T09:00:00Z", "previewable": True},
        ]).handler)

        response = client.get("/api/shopify/sandbox", params={"shop": SHOP}, headers={"X-Shopify-Access-Token": TOKEN})

        assert response.json() == {"sandboxes": [{
            "id": 7,
            "name": "Ghost CRO - Optimized [x]",
            "role": "unpublished",
            "createdAt": "2024-01-01T09:00:00Z",
            "previewable": True,
        }]}

    def test_list_requires_token(self, client):
        response = client.get("/api/shopify/sandbox", params={"shop": SHOP})
        assert response.status_code == 400

    def test_publish(self, client, shopify_transport):
        api = FakeThemeAPI()
        shopify_transport(api.handler)

        response = client.post("/api/shopify/theme/publish", json={"shop": SHOP, "accessToken": TOKEN, "themeId": 2})

        assert response.json() == {"success": True, "message": "Theme published successfully"}
        assert api.updated == [{"id": 2, "role": "main"}]

    def test_publish_forbidden(self, client, shopify_transport):
        shopify_transport(lambda request: httpx.Response(403, text='{"errors":"Forbidden"}'))

        response = client.post("/api/shopify/theme/publish", json={"shop": SHOP, "accessToken": TOKEN, "themeId": 2})

        assert response.status_code == 403
        assert response.json()["success"] is False

    def test_publish_requires_theme(self, client):
        response = client.post("/api/shopify/theme/publish", json={"shop": SHOP, "accessToken": TOKEN})

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Missing shop, accessToken, or themeId"}

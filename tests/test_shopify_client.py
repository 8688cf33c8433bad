"""
Shopify Admin API client: pagination, retries and error handling.
"""
import asyncio

import httpx
import pytest

from ghost_cro.connectors.shopify import ShopifyAPIError, ShopifyClient
from ghost_cro.utils.retry import calculate_backoff, is_retryable_error

SHOP = "demo-store.myshopify.com"
NEXT_PAGE = f"https://{SHOP}/admin/api/2024-01/orders.json?limit=250&page_info=abc123"


def _run(coro):
    return asyncio.run(coro)


def _client(handler, shop=SHOP):
    return ShopifyClient(shop, "shpat_test", transport=httpx.MockTransport(handler))


class TestShopifyClient:

    def test_base_url_and_headers(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["token"] = request.headers.get("X-Shopify-Access-Token")
            return httpx.Response(200, json={"shop": {"name": "Demo"}})

        client = _client(handler, shop="Demo-Store")
        shop = _run(client.get_shop())

        assert shop == {"name": "Demo"}
        assert client.base_url == "https://demo-store.myshopify.com/admin/api/2024-01"
        assert seen["url"] == "https://demo-store.myshopify.com/admin/api/2024-01/shop.json"
        assert seen["token"] == "shpat_test"

    def test_orders_follow_link_header(self):
        requests = []

        def handler(request):
            requests.append(request)
            if "page_info" in request.url.params:
                return httpx.Response(200, json={"orders": [{"id": 3}]})
            return httpx.Response(
                200,
                json={"orders": [{"id": 1}, {"id": 2}]},
                headers={"Link": f'<{NEXT_PAGE}>; rel="next"'},
            )

        orders = _run(_client(handler).get_orders("2024-01-01T00:00:00Z"))

        assert [o["id"] for o in orders] == [1, 2, 3]
        assert requests[0].url.params["status"] == "any"
        assert requests[0].url.params["created_at_min"] == "2024-01-01T00:00:00Z"
        # Cursor pages only carry the cursor query
        assert "created_at_min" not in requests[1].url.params

    def test_next_page_parsing(self):
        header = (
            f'<https://{SHOP}/admin/api/2024-01/orders.json?page_info=prev>; rel="previous", '
            f'<{NEXT_PAGE}>; rel="next"'
        )
        assert ShopifyClient._get_next_page_url(header) == NEXT_PAGE
        assert ShopifyClient._get_next_page_url('<https://x>; rel="previous"') is None
        assert ShopifyClient._get_next_page_url(None) is None

    def test_rate_limit_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(429, text="Exceeded 2 calls per second", headers={"Retry-After": "0"})
            return httpx.Response(200, json={"shipping_zones": [{"id": 1}]})

        zones = _run(_client(handler).get_shipping_zones())

        assert zones == [{"id": 1}]
        assert len(calls) == 2

    def test_client_errors_are_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(401, text='{"errors":"Invalid API key or access token"}')

        with pytest.raises(ShopifyAPIError) as exc_info:
            _run(_client(handler).get_abandoned_checkouts())

        assert exc_info.value.status_code == 401
        assert "Invalid API key" in exc_info.value.body
        assert len(calls) == 1

    def test_server_errors_give_up_after_three_attempts(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(503, text="unavailable", headers={"Retry-After": "0"})

        with pytest.raises(ShopifyAPIError):
            _run(_client(handler).list_themes())

        assert len(calls) == 3

    def test_missing_asset_is_none(self):
        client = _client(lambda request: httpx.Response(404, json={"errors": "Not Found"}))
        assert _run(client.get_asset(1, "assets/ghost-fixes.css")) is None

    def test_delete_theme_reports_failure(self):
        client = _client(lambda request: httpx.Response(422, json={"errors": "Cannot delete the live theme"}))
        assert _run(client.delete_theme(1)) is False

    def test_checkout_query(self):
        seen = {}

        def handler(request):
            seen["params"] = dict(request.url.params)
            return httpx.Response(200, json={"checkouts": []})

        _run(_client(handler).get_abandoned_checkouts(created_at_min="2024-01-01T00:00:00Z"))

        assert seen["params"] == {"status": "open", "limit": "250", "created_at_min": "2024-01-01T00:00:00Z"}


class TestRetryHelpers:

    def test_backoff_doubles_and_caps(self):
        assert calculate_backoff(1, base_delay=1.0, jitter=False) == 1.0
        assert calculate_backoff(3, base_delay=1.0, jitter=False) == 4.0
        assert calculate_backoff(10, base_delay=1.0, max_delay=30.0, jitter=False) == 30.0

    def test_retryable_errors(self):
        assert is_retryable_error(ShopifyAPIError(429, "slow down")) is True
        assert is_retryable_error(ShopifyAPIError(502, "bad gateway")) is True
        assert is_retryable_error(ShopifyAPIError(404, "missing")) is False
        assert is_retryable_error(httpx.ConnectError("refused")) is True
        assert is_retryable_error(ValueError("nope")) is False

"""
Shopify Admin API client

Thin async wrapper over the REST Admin API for one installed shop:
orders, abandoned checkouts, shipping zones, shop info and themes.
"""
from typing import Any, Dict, List, Optional

import httpx

from ghost_cro.config import get_settings
from ghost_cro.utils.helpers import normalize_shop_domain
from ghost_cro.utils.logger import log
from ghost_cro.utils.retry import retry_async

settings = get_settings()


class ShopifyAPIError(Exception):
    """Non-2xx answer from the Admin API"""

    def __init__(self, status_code: int, body: str, message: Optional[str] = None, retry_after: Optional[float] = None):
        self.status_code = status_code
        self.body = body
        self.retry_after = retry_after
        super().__init__(message or f"Shopify API error {status_code}: {body[:300]}")


class ShopifyClient:
    """
    Client for a single shop's Admin API

    Args:
        shop: Shop domain (e.g., "your-store.myshopify.com")
        access_token: Offline access token from the OAuth install
        transport: Optional httpx transport (tests plug in MockTransport)
    """

    def __init__(
        self,
        shop: str,
        access_token: str,
        api_version: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: Optional[float] = None,
    ):
        self.shop = normalize_shop_domain(shop)
        self.access_token = access_token
        self.api_version = api_version or settings.shopify_api_version
        self.base_url = f"https://{self.shop}/admin/api/{self.api_version}"
        self.timeout = timeout or settings.shopify_request_timeout
        self._transport = transport

    def _get_headers(self) -> Dict[str, str]:
        return {
            "X-Shopify-Access-Token": self.access_token,
            "Content-Type": "application/json",
        }

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self._transport, timeout=self.timeout)

    @staticmethod
    def _get_next_page_url(link_header: Optional[str]) -> Optional[str]:
        """Next page URL from a cursor Link header: <url>; rel="next" """
        if not link_header:
            return None

        for link in link_header.split(","):
            parts = link.split(";")
            if len(parts) == 2 and 'rel="next"' in parts[1]:
                return parts[0].strip().strip("<>")

        return None

    @retry_async(max_attempts=3, base_delay=1.0)
    async def _send(
        self,
        method: str,
        url: str,
        params: Optional[Dict] = None,
        json: Optional[Dict] = None,
    ) -> httpx.Response:
        async with self._client() as client:
            response = await client.request(method, url, params=params, json=json, headers=self._get_headers())

        if response.status_code >= 400:
            retry_after = response.headers.get("Retry-After")
            raise ShopifyAPIError(
                response.status_code,
                response.text,
                retry_after=float(retry_after) if retry_after else None,
            )

        return response

    async def _request(self, method: str, path: str, params: Optional[Dict] = None, json: Optional[Dict] = None) -> Dict:
        response = await self._send(method, f"{self.base_url}/{path}", params=params, json=json)
        if not response.content:
            return {}
        return response.json()

    async def _get_paginated(self, path: str, key: str, params: Dict, max_pages: int = 10) -> List[Dict]:
        """Follow Link headers until exhausted or ``max_pages`` is hit"""
        url: Optional[str] = f"{self.base_url}/{path}"
        items: List[Dict] = []
        pages = 0

        while url and pages < max_pages:
            response = await self._send("GET", url, params=params)
            items.extend(response.json().get(key, []))
            url = self._get_next_page_url(response.headers.get("Link"))
            params = None  # cursor URLs carry their own query
            pages += 1

        return items

    # ---- Store data ---------------------------------------------------

    async def get_orders(self, created_at_min: str, created_at_max: Optional[str] = None) -> List[Dict]:
        params = {"status": "any", "created_at_min": created_at_min, "limit": 250}
        if created_at_max:
            params["created_at_max"] = created_at_max

        orders = await self._get_paginated("orders.json", "orders", params)
        log.info(f"Fetched {len(orders)} orders from {self.shop}")
        return orders

    async def get_abandoned_checkouts(
        self,
        status: str = "open",
        limit: int = 250,
        created_at_min: Optional[str] = None,
        created_at_max: Optional[str] = None,
    ) -> List[Dict]:
        params: Dict[str, Any] = {}
        if status:
            params["status"] = status
        if limit:
            params["limit"] = limit
        if created_at_min:
            params["created_at_min"] = created_at_min
        if created_at_max:
            params["created_at_max"] = created_at_max

        data = await self._request("GET", "checkouts.json", params=params)
        return data.get("checkouts") or []

    async def get_shipping_zones(self) -> List[Dict]:
        data = await self._request("GET", "shipping_zones.json")
        return data.get("shipping_zones") or []

    async def get_shop(self) -> Dict:
        data = await self._request("GET", "shop.json")
        return data.get("shop") or {}

    # ---- Themes -------------------------------------------------------

    async def list_themes(self) -> List[Dict]:
        data = await self._request("GET", "themes.json")
        return data.get("themes") or []

    async def create_theme(self, name: str, src: str, role: str = "unpublished") -> Dict:
        data = await self._request("POST", "themes.json", json={"theme": {"name": name, "role": role, "src": src}})
        return data.get("theme") or {}

    async def update_theme(self, theme_id: int, **fields) -> Dict:
        data = await self._request("PUT", f"themes/{theme_id}.json", json={"theme": {"id": theme_id, **fields}})
        return data.get("theme") or {}

    async def delete_theme(self, theme_id: int) -> bool:
        try:
            await self._request("DELETE", f"themes/{theme_id}.json")
            return True
        except ShopifyAPIError as e:
            log.warning(f"Could not delete theme {theme_id} on {self.shop}: {e}")
            return False

    async def get_asset(self, theme_id: int, key: str) -> Optional[Dict]:
        """Asset by key, or None if the theme has no such file"""
        try:
            data = await self._request("GET", f"themes/{theme_id}/assets.json", params={"asset[key]": key})
        except ShopifyAPIError as e:
            if e.status_code == 404:
                return None
            raise
        return data.get("asset")

    async def put_asset(self, theme_id: int, key: str, value: str) -> Dict:
        data = await self._request("PUT", f"themes/{theme_id}/assets.json", json={"asset": {"key": key, "value": value}})
        return data.get("asset") or {}

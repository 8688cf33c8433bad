"""
Storefront scraper

Fetches a public product/cart page and pulls out the conversion-relevant
bits the analysis prompt needs: price, trust signals, shipping copy,
reviews and visible payment methods.
"""
import copy
from typing import Dict, List, Optional

import httpx
from bs4 import BeautifulSoup

from ghost_cro.config import get_settings
from ghost_cro.utils.logger import log

settings = get_settings()

UNSCRAPED_PAGE = {
    "title": "Unable to scrape",
    "price": "Unknown",
    "description": "Could not fetch page data",
    "images": [],
    "trustSignals": [],
    "shippingInfo": "Unknown",
    "reviews": {"count": "0", "rating": "Unknown"},
    "paymentMethods": [],
    "cartInfo": "Unknown",
}

TRUST_SELECTOR = (
    '.trust-badge, [class*="trust"], [class*="secure"], [class*="guarantee"], '
    '.reviews, [class*="rating"]'
)
PAYMENT_SELECTOR = (
    '.payment-methods img, [class*="payment"] img, [alt*="pay"], [alt*="visa"], '
    '[alt*="mastercard"], [alt*="PayPal"]'
)


def _meta(soup: BeautifulSoup, **attrs) -> Optional[str]:
    tag = soup.find("meta", attrs=attrs)
    return tag.get("content") if tag and tag.get("content") else None


def _first_text(soup: BeautifulSoup, selector: str) -> str:
    tag = soup.select_one(selector)
    return tag.get_text().strip() if tag else ""


def _first_attr(soup: BeautifulSoup, selector: str, attr: str) -> Optional[str]:
    tag = soup.select_one(selector)
    return tag.get(attr) if tag and tag.get(attr) else None


def parse_storefront_html(html: str) -> Dict:
    """Extract page facts from raw HTML"""
    soup = BeautifulSoup(html, "html.parser")

    title = (
        _meta(soup, property="og:title")
        or _first_text(soup, "h1")
        or (soup.title.get_text().strip() if soup.title else "")
        or "No title found"
    )

    price = (
        _meta(soup, property="og:price:amount")
        or _first_attr(soup, '[itemprop="price"]', "content")
        or _first_text(soup, '.price, .product-price, [class*="price"]')
        or "Price not found"
    )

    description = (
        _meta(soup, property="og:description")
        or _meta(soup, name="description")
        or _first_text(soup, '.product-description, .description, [itemprop="description"]')
        or "No description found"
    )

    images: List[str] = [
        tag["content"] for tag in soup.find_all("meta", attrs={"property": "og:image"}) if tag.get("content")
    ]
    if not images:
        images = [img["src"] for img in soup.select(".product-image img, .product-gallery img") if img.get("src")]

    trust_signals = []
    for tag in soup.select(TRUST_SELECTOR):
        text = tag.get_text().strip()
        if text and len(text) < 200:
            trust_signals.append(text)

    shipping_info = (
        _first_text(soup, '.shipping-info, [class*="shipping"], [class*="delivery"]')
        or "No shipping info visible"
    )

    review_count = (
        _first_text(soup, '[itemprop="reviewCount"]')
        or _first_text(soup, '.review-count, [class*="review-count"]')
        or "0"
    )
    rating = (
        _first_attr(soup, '[itemprop="ratingValue"]', "content")
        or _first_text(soup, '.rating, [class*="rating"]')
        or "No rating"
    )

    payment_methods = [tag["alt"] for tag in soup.select(PAYMENT_SELECTOR) if tag.get("alt")]

    cart_info = "".join(
        tag.get_text() for tag in soup.select('.cart-total, .subtotal, [class*="cart-summary"]')
    ).strip() or "No cart information visible"

    return {
        "title": title,
        "price": price,
        "description": description[:500],
        "images": images[:3],
        "trustSignals": trust_signals[:5],
        "shippingInfo": shipping_info,
        "reviews": {"count": review_count, "rating": rating},
        "paymentMethods": payment_methods[:5],
        "cartInfo": cart_info,
    }


async def scrape_storefront(url: str, transport: Optional[httpx.AsyncBaseTransport] = None) -> Dict:
    """
    Scrape a storefront page.

    Never raises: blocked or broken pages yield the "Unable to scrape"
    placeholder so the analysis can still run on URL alone.
    """
    try:
        async with httpx.AsyncClient(
            transport=transport,
            timeout=settings.scrape_timeout,
            follow_redirects=True,
            headers={"User-Agent": settings.scrape_user_agent},
        ) as client:
            response = await client.get(url)

        if not response.is_success:
            raise httpx.HTTPStatusError(
                f"Failed to fetch URL: {response.status_code}", request=response.request, response=response
            )

        return parse_storefront_html(response.text)

    except Exception as e:
        log.error(f"Scraping error for {url}: {str(e)}")
        return copy.deepcopy(UNSCRAPED_PAGE)

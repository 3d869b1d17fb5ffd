from __future__ import annotations

import logging

from bs4 import BeautifulSoup

from wishlist.crawlers.base import (
    DEFAULT_MAX_BYTES,
    DEFAULT_TIMEOUT,
    CrawledItem,
    CrawlError,
    absolute_image_url,
    build_soup,
    currency_from_text,
    fetch_product_html,
    find_ld_product,
    ld_images,
    ld_offer_price,
    meta_content,
    parse_price,
    select_first,
    supported_price,
    text_or_empty,
    unique,
)

logger = logging.getLogger(__name__)

_PRICE_SELECTORS = (
    "[itemprop=price]",
    ".product-price .price",
    ".product-info-price .price",
    ".price-wrapper .price",
    ".price",
)
_IMAGE_SELECTORS = (
    ".product-media img",
    ".gallery-placeholder img",
    "img[itemprop=image]",
)


def _strip_site_suffix(title: str) -> str:
    for separator in (" | Citadium", " - Citadium"):
        if separator in title:
            return title.split(separator)[0].strip()
    return title.strip()


def _fallback_price(soup: BeautifulSoup):
    raw = meta_content(soup, "product:price:amount", "og:price:amount")
    currency = meta_content(soup, "product:price:currency", "og:price:currency")
    if raw:
        return parse_price(raw), (currency.upper() if currency else None)

    price_el = select_first(soup, _PRICE_SELECTORS)
    if price_el is None:
        return None, None
    content = price_el.get("content")
    text = content if isinstance(content, str) and content else text_or_empty(price_el)
    return parse_price(text), currency_from_text(text)


def _fallback_images(soup: BeautifulSoup, url: str) -> list[str]:
    images = []
    og_image = meta_content(soup, "og:image", "twitter:image")
    if og_image:
        images.append(og_image)
    for selector in _IMAGE_SELECTORS:
        for img in soup.select(selector):
            src = img.get("data-src") or img.get("src")
            if isinstance(src, str) and src.strip():
                images.append(absolute_image_url(src, url))
    return images


def parse_citadium_product(html: str, url: str) -> CrawledItem:
    soup = build_soup(html)
    product = find_ld_product(soup)

    name = ""
    price = None
    currency = None
    images: list[str] = []
    if product is not None:
        name = str(product.get("name") or "").strip()
        price, currency = ld_offer_price(product)
        images = [absolute_image_url(image, url) for image in ld_images(product)]
    else:
        logger.debug("No ld+json product on %s, using page markup", url)

    if not name:
        name = meta_content(soup, "og:title") or text_or_empty(soup.select_one("h1"))
        if not name and soup.title and soup.title.string:
            name = soup.title.string
        name = _strip_site_suffix(name or "")
    if not name:
        raise CrawlError("No product title found on the Citadium page")

    if price is None:
        price, fallback_currency = _fallback_price(soup)
        currency = currency or fallback_currency
    if not images:
        images = _fallback_images(soup, url)

    # Citadium only sells in euros.
    currency = currency or "EUR"
    source_currency = currency if price is not None else None
    price, currency = supported_price(price, currency)
    return CrawledItem(
        name=name,
        link=url,
        price=price,
        currency=currency,
        images=unique(images)[:5],
        source_currency=source_currency,
    )


def citadium_product_crawler(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    user_agent: str | None = None,
) -> CrawledItem:
    html, final_url = fetch_product_html(
        url, timeout=timeout, max_bytes=max_bytes, user_agent=user_agent
    )
    return parse_citadium_product(html, final_url or url)

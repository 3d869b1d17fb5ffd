from __future__ import annotations

import json
import logging
import re
from urllib.parse import urlparse

from bs4 import BeautifulSoup

from wishlist.crawlers.base import (
    DEFAULT_MAX_BYTES,
    DEFAULT_TIMEOUT,
    CrawlBlockedError,
    CrawledItem,
    CrawlError,
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

_ASIN_PATTERNS = (
    re.compile(r"/dp/([A-Z0-9]{10})(?:[/?]|$)", re.IGNORECASE),
    re.compile(r"/gp/product/([A-Z0-9]{10})(?:[/?]|$)", re.IGNORECASE),
    re.compile(r"/gp/aw/d/([A-Z0-9]{10})(?:[/?]|$)", re.IGNORECASE),
)
_HIRES_PATTERN = re.compile(r'"hiRes"\s*:\s*"(https:[^"\\]+)"')

# Amazon marketplaces priced in euros; everything else falls back to the symbol.
_EURO_TLDS = (".fr", ".de", ".es", ".it", ".nl", ".be", ".ie", ".at")
# Marketplaces that also display prices with a bare "$".
_DOLLAR_MARKETPLACES = (
    (".com.au", "AUD"),
    (".com.mx", "MXN"),
    (".ca", "CAD"),
    (".sg", "SGD"),
    (".com", "USD"),
)

_TITLE_SELECTORS = ("#productTitle", "#title", "h1#title span")
_PRICE_SELECTORS = (
    "#corePrice_feature_div .a-price .a-offscreen",
    "#corePriceDisplay_desktop_feature_div .a-price .a-offscreen",
    "#apex_desktop .a-price .a-offscreen",
    "#priceblock_ourprice",
    "#priceblock_dealprice",
    "#price_inside_buybox",
    ".a-price .a-offscreen",
)


def extract_asin(url: str) -> str | None:
    for pattern in _ASIN_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1).upper()
    return None


def canonical_product_url(url: str) -> str:
    """Strip tracking parameters: ``https://<host>/dp/<ASIN>``."""
    asin = extract_asin(url)
    parsed = urlparse(url)
    if not asin or not parsed.netloc:
        return url
    return f"https://{parsed.netloc.lower()}/dp/{asin}"


def looks_like_captcha_or_block(html: str) -> bool:
    lower = html.lower()
    return any(
        marker in lower
        for marker in (
            "robot check",
            "enter the characters you see below",
            "/errors/validatecaptcha",
            "to discuss automated access to amazon data",
            "type the characters you see in this image",
            "saisissez les caractères que vous voyez",
        )
    )


def domain_currency(url: str) -> str | None:
    host = (urlparse(url).hostname or "").lower()
    if host.endswith(_EURO_TLDS):
        return "EUR"
    for suffix, currency in _DOLLAR_MARKETPLACES:
        if host.endswith(suffix):
            return currency
    if host.endswith(".co.uk"):
        return "GBP"
    return None


def _price_currency(price_text: str | None, url: str) -> str | None:
    currency = currency_from_text(price_text)
    if currency == "USD" and "$" in (price_text or ""):
        # "$" alone is ambiguous; the marketplace decides which dollar.
        marketplace = domain_currency(url)
        if any(marketplace == code for _, code in _DOLLAR_MARKETPLACES):
            return marketplace
    return currency


def _parse_title(soup: BeautifulSoup) -> str:
    title = text_or_empty(select_first(soup, _TITLE_SELECTORS))
    if title:
        return title
    title = meta_content(soup, "og:title", "title") or ""
    if not title and soup.title and soup.title.string:
        title = soup.title.string
    # "Amazon.fr : Product name" / "Product name : Amazon.fr : Category"
    title = re.sub(r"^\s*amazon\.[a-z.]+\s*:\s*", "", title, flags=re.IGNORECASE)
    title = re.split(r"\s*:\s*amazon\.[a-z.]+", title, flags=re.IGNORECASE)[0]
    return title.strip()


def _parse_price_text(soup: BeautifulSoup) -> str | None:
    price_el = select_first(soup, _PRICE_SELECTORS)
    text = text_or_empty(price_el)
    if text:
        return text

    whole_el = soup.select_one(".a-price-whole")
    if whole_el is None:
        return None
    whole = text_or_empty(whole_el).rstrip(".,")
    fraction = text_or_empty(soup.select_one(".a-price-fraction")) or "00"
    symbol = text_or_empty(soup.select_one(".a-price-symbol"))
    logger.debug("Using whole/fraction price layout: %s %s %s", whole, fraction, symbol)
    return f"{symbol}{whole}.{fraction}"


def _parse_images(soup: BeautifulSoup, html: str) -> list[str]:
    images: list[str] = []
    landing = soup.select_one("#landingImage, #imgBlkFront, #main-image")
    if landing is not None:
        dynamic = landing.get("data-a-dynamic-image")
        if isinstance(dynamic, str) and dynamic.strip():
            try:
                # {"url": [width, height], ...}; keep the largest first
                sizes = json.loads(dynamic)
                images.extend(
                    sorted(
                        sizes,
                        key=lambda key: sizes[key][0] * sizes[key][1]
                        if isinstance(sizes[key], list) and len(sizes[key]) == 2
                        else 0,
                        reverse=True,
                    )[:1]
                )
            except (json.JSONDecodeError, TypeError):
                logger.debug("Unparsable data-a-dynamic-image attribute")
        for attr in ("data-old-hires", "src"):
            value = landing.get(attr)
            if isinstance(value, str) and value.startswith("http"):
                images.append(value)
                break

    images.extend(_HIRES_PATTERN.findall(html))
    og_image = meta_content(soup, "og:image")
    if og_image:
        images.append(og_image)
    return unique(images)


def parse_amazon_product(html: str, url: str) -> CrawledItem:
    if looks_like_captcha_or_block(html):
        raise CrawlBlockedError("Amazon served a robot check page")

    soup = build_soup(html)
    name = _parse_title(soup)
    if not name:
        raise CrawlError("No product title found on the Amazon page")

    price_text = _parse_price_text(soup)
    price = parse_price(price_text)
    currency = _price_currency(price_text, url)

    images = _parse_images(soup, html)

    product = find_ld_product(soup)
    if product is not None:
        if price is None:
            price, ld_currency = ld_offer_price(product)
            currency = currency or ld_currency
        if not images:
            images = ld_images(product)

    currency = currency or domain_currency(url)
    source_currency = currency if price is not None else None
    price, currency = supported_price(price, currency)

    return CrawledItem(
        name=name,
        link=canonical_product_url(url),
        price=price,
        currency=currency,
        images=images[:5],
        source_currency=source_currency,
    )


def amazon_product_crawler(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    user_agent: str | None = None,
) -> CrawledItem:
    html, final_url = fetch_product_html(
        url, timeout=timeout, max_bytes=max_bytes, user_agent=user_agent
    )
    try:
        return parse_amazon_product(html, final_url or url)
    except CrawlBlockedError:
        logger.warning("Amazon blocked the crawl of %s", url)
        raise

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from typing import Any, Iterable

import httpx
from bs4 import BeautifulSoup
from bs4.element import Tag

from wishlist.models import CURRENCIES, CURRENCY_EUR, MAX_PRICE
from wishlist.services.common import link_display_name

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
)
DEFAULT_TIMEOUT = 15.0
DEFAULT_MAX_BYTES = 4_000_000

CURRENCY_SYMBOLS = {
    "€": "EUR",
    "$": "USD",
    "£": "GBP",
    "¥": "JPY",
    "CHF": "CHF",
}

_PRICE_NUMBER = re.compile(
    r"(?:\d{1,3}(?:[\s.,'’]\d{3})+|\d+)(?P<decimals>[.,]\d{1,2})?(?!\d)"
)


class CrawlError(Exception):
    """The product page could not be fetched or parsed."""


class CrawlBlockedError(CrawlError):
    """The site answered with a captcha or robot-check page."""


@dataclass
class CrawledItem:
    name: str
    link: str
    price: Decimal | None = None
    currency: str = CURRENCY_EUR
    images: list[str] = field(default_factory=list)
    # Currency the page priced the product in, before mapping onto CURRENCIES.
    source_currency: str | None = None

    def as_dict(self):
        price = float(self.price) if self.price is not None else None
        return {
            "name": self.name,
            "price": price,
            "currency": self.currency,
            "links": [
                {
                    "name": link_display_name(self.link),
                    "price": price,
                    "link": self.link,
                }
            ],
            "images": [{"image": image} for image in self.images],
        }


def build_headers(user_agent: str | None = None) -> dict[str, str]:
    return {
        "User-Agent": user_agent or DEFAULT_USER_AGENT,
        "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "Accept-Language": "fr-FR,fr;q=0.9,en-US;q=0.8,en;q=0.7",
    }


def fetch_product_html(
    url: str,
    timeout: float = DEFAULT_TIMEOUT,
    max_bytes: int = DEFAULT_MAX_BYTES,
    user_agent: str | None = None,
    transport: httpx.BaseTransport | None = None,
) -> tuple[str, str]:
    """Download a product page and return ``(html, final_url)``.

    The body is truncated at ``max_bytes``. Any transport failure or a
    non-2xx answer is raised as :class:`CrawlError`.
    """
    logger.debug("Fetching product page: %s", url)
    try:
        with httpx.Client(
            follow_redirects=True,
            timeout=timeout,
            headers=build_headers(user_agent),
            transport=transport,
        ) as client:
            with client.stream("GET", url) as response:
                status_code = response.status_code
                chunks = []
                total = 0
                for chunk in response.iter_bytes():
                    chunks.append(chunk[: max_bytes - total])
                    total += len(chunk)
                    if total >= max_bytes:
                        break
                encoding = response.encoding or "utf-8"
                html = b"".join(chunks).decode(encoding, errors="ignore")
                final_url = str(response.url)
    except httpx.TimeoutException as exc:
        raise CrawlError(f"Timed out fetching {url}") from exc
    except httpx.HTTPError as exc:
        raise CrawlError(
            f"Failed to fetch {url} ({exc.__class__.__name__})"
        ) from exc

    if status_code == 503:
        raise CrawlBlockedError(f"{url} answered 503 (rate limited or captcha)")
    if not 200 <= status_code < 300:
        raise CrawlError(f"{url} answered HTTP {status_code}")
    return html, final_url


def build_soup(html: str) -> BeautifulSoup:
    return BeautifulSoup(html, "lxml")


def text_or_empty(tag: Tag | None) -> str:
    return tag.get_text(" ", strip=True) if tag is not None else ""


def select_first(root: Tag | BeautifulSoup, selectors: Iterable[str]) -> Tag | None:
    for selector in selectors:
        found = root.select_one(selector)
        if found is not None:
            return found
    return None


def meta_content(soup: BeautifulSoup, *keys: str) -> str | None:
    for key in keys:
        tag = soup.find("meta", attrs={"property": key}) or soup.find(
            "meta", attrs={"name": key}
        )
        if isinstance(tag, Tag):
            content = tag.get("content")
            if isinstance(content, str) and content.strip():
                return content.strip()
    return None


def parse_price(raw: Any) -> Decimal | None:
    """Parse a displayed price such as ``1 234,56 €`` or ``$1,234.56``."""
    if raw is None:
        return None
    if isinstance(raw, (int, float, Decimal)):
        try:
            value = Decimal(str(raw))
        except InvalidOperation:
            return None
        return _bounded_price(value)

    match = _PRICE_NUMBER.search(str(raw))
    if not match:
        return None
    number = match.group(0)

    # A trailing separator followed by one or two digits is the decimal mark;
    # every other separator groups thousands.
    decimals = match.group("decimals") or ""
    if decimals:
        number = number[: -len(decimals)]
    number = re.sub(r"\D", "", number)
    if decimals:
        number = f"{number}.{decimals[1:]}"

    try:
        value = Decimal(number)
    except InvalidOperation:
        return None
    return _bounded_price(value)


def _bounded_price(value: Decimal) -> Decimal | None:
    if not value.is_finite() or value < 0 or value > MAX_PRICE:
        return None
    return value.quantize(Decimal("0.01"))


def currency_from_text(raw: str | None) -> str | None:
    if not raw:
        return None
    text = raw.strip()
    upper = text.upper()
    if len(upper) == 3 and upper.isalpha():
        return upper
    for symbol, code in CURRENCY_SYMBOLS.items():
        if symbol in text:
            return code
    for code in ("EUR", "USD", "GBP"):
        if code in upper:
            return code
    return None


def supported_price(
    price: Decimal | None, currency: str | None
) -> tuple[Decimal | None, str]:
    """Map a crawled price onto the currencies a wishlist item can hold."""
    if currency in CURRENCIES:
        return price, currency
    if currency is None:
        return price, CURRENCY_EUR
    logger.debug("Dropping price in unsupported currency %s", currency)
    return None, CURRENCY_EUR


def iter_ld_json(soup: BeautifulSoup):
    for script in soup.find_all("script", attrs={"type": "application/ld+json"}):
        raw = script.string or script.get_text()
        if not raw or not raw.strip():
            continue
        try:
            yield json.loads(raw.strip())
        except json.JSONDecodeError:
            logger.debug("Skipping unparsable ld+json block")
            continue


def find_ld_product(soup: BeautifulSoup) -> dict | None:
    for data in iter_ld_json(soup):
        product = _walk_for_product(data)
        if product is not None:
            return product
    return None


def _walk_for_product(data: Any) -> dict | None:
    if isinstance(data, dict):
        node_type = data.get("@type")
        types = node_type if isinstance(node_type, list) else [node_type]
        if "Product" in types:
            return data
        for value in data.values():
            found = _walk_for_product(value)
            if found is not None:
                return found
    elif isinstance(data, list):
        for entry in data:
            found = _walk_for_product(entry)
            if found is not None:
                return found
    return None


def ld_offer_price(product: dict) -> tuple[Decimal | None, str | None]:
    offers = product.get("offers")
    if isinstance(offers, list):
        offers = offers[0] if offers else None
    if not isinstance(offers, dict):
        return None, None
    raw_price = offers.get("price")
    if raw_price is None:
        raw_price = offers.get("lowPrice")
    currency = offers.get("priceCurrency")
    return parse_price(raw_price), (str(currency).upper() if currency else None)


def ld_images(product: dict) -> list[str]:
    raw = product.get("image")
    if isinstance(raw, str):
        raw = [raw]
    if isinstance(raw, dict):
        raw = [raw.get("url")]
    if not isinstance(raw, list):
        return []
    images = []
    for entry in raw:
        if isinstance(entry, dict):
            entry = entry.get("url")
        if isinstance(entry, str) and entry.strip():
            images.append(entry.strip())
    return images


def absolute_image_url(value: str, base_url: str) -> str:
    candidate = value.strip()
    if candidate.startswith("//"):
        return f"https:{candidate}"
    if candidate.startswith("/"):
        return str(httpx.URL(base_url).join(candidate))
    return candidate


def unique(values: Iterable[str]) -> list[str]:
    return [value for value in dict.fromkeys(values) if value]

import math
from decimal import Decimal, InvalidOperation
from urllib.parse import parse_qsl, urlencode, urlparse, urlunparse

from flask import request

from wishlist.models import MAX_PRICE


def normalize_url(url: str) -> str:
    if not url:
        return ""
    parsed = urlparse(url.strip())
    scheme = (parsed.scheme or "https").lower()
    netloc = parsed.netloc.lower()
    path = parsed.path or "/"
    query_items = sorted(parse_qsl(parsed.query, keep_blank_values=True))
    normalized_query = urlencode(query_items)
    return urlunparse((scheme, netloc, path, "", normalized_query, ""))


def is_http_url(url: str) -> bool:
    parsed = urlparse((url or "").strip())
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def link_display_name(url: str) -> str:
    hostname = urlparse((url or "").strip()).hostname or ""
    return hostname.replace("www.", "", 1)


def to_bool(value, default=False):
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    return str(value).strip().lower() in {"1", "true", "yes", "on"}


def parse_optional_price(value) -> Decimal | None:
    """Form prices arrive as numbers, numeric strings, blanks or NaN."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, float) and math.isnan(value):
        return None
    text = str(value).strip()
    if not text:
        return None
    try:
        price = Decimal(text)
    except InvalidOperation:
        return None
    if not price.is_finite():
        return None
    # Out-of-range amounts stay unrounded so callers can reject them.
    if abs(price) > MAX_PRICE:
        return price
    return price.quantize(Decimal("0.01"))


def json_payload() -> dict:
    """Request JSON body, or an empty dict when it is missing or not an object."""
    payload = request.get_json(silent=True)
    return payload if isinstance(payload, dict) else {}

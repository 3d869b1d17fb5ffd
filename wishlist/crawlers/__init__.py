"""Site-specific product crawlers.

``crawl_url`` routes a product URL to the crawler registered for its prefix
and returns a :class:`CrawledItem` draft, or ``None`` when no crawler knows
the site.
"""

from __future__ import annotations

from typing import Callable

from wishlist.crawlers.amazon import amazon_product_crawler
from wishlist.crawlers.base import CrawlBlockedError, CrawledItem, CrawlError
from wishlist.crawlers.citadium import citadium_product_crawler

Crawler = Callable[..., CrawledItem]

CRAWLERS: tuple[tuple[str, Crawler], ...] = (
    ("https://www.amazon", amazon_product_crawler),
    ("https://www.citadium.com", citadium_product_crawler),
)

__all__ = [
    "CRAWLERS",
    "CrawlBlockedError",
    "CrawlError",
    "CrawledItem",
    "crawl_url",
    "crawler_for_url",
]


def crawler_for_url(url: str) -> Crawler | None:
    for prefix, crawler in CRAWLERS:
        if url.startswith(prefix):
            return crawler
    return None


def crawl_url(url: str, **options) -> CrawledItem | None:
    crawler = crawler_for_url((url or "").strip())
    if crawler is None:
        return None
    return crawler(url.strip(), **options)

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import timedelta

from flask import Flask

from wishlist.crawlers import (
    CRAWLERS,
    CrawledItem,
    CrawlError,
    crawl_url,
    crawler_for_url,
)
from wishlist.extensions import db
from wishlist.models import STATE_ACTIVE, ItemLink, WishlistItem, utcnow


def crawl_options(config) -> dict:
    return {
        "timeout": float(config["CRAWLER_TIMEOUT"]),
        "max_bytes": int(config["CRAWLER_MAX_BYTES"]),
        "user_agent": config.get("CRAWLER_USER_AGENT"),
    }


def crawlable_links(links) -> list[ItemLink]:
    return [link for link in links if crawler_for_url(link.link)]


def stale_link_ids(limit: int, stale_hours: int) -> list[int]:
    stale_before = utcnow() - timedelta(hours=stale_hours)
    rows = (
        db.session.query(ItemLink.id)
        .join(WishlistItem, ItemLink.item_id == WishlistItem.id)
        .filter(WishlistItem.state == STATE_ACTIVE)
        .filter(
            (ItemLink.last_checked_at.is_(None))
            | (ItemLink.last_checked_at < stale_before)
        )
        .filter(db.or_(*(ItemLink.link.startswith(prefix) for prefix, _ in CRAWLERS)))
        .order_by(ItemLink.last_checked_at.is_not(None), ItemLink.last_checked_at.asc())
        .limit(limit)
        .all()
    )
    return [link.id for link in rows]


def crawl_links(
    targets: list[tuple[int, str]], options: dict, workers: int
) -> dict[int, CrawledItem | Exception | None]:
    """Crawl ``(link_id, url)`` pairs concurrently. Never touches the session."""
    results: dict[int, CrawledItem | Exception | None] = {}
    if not targets:
        return results

    workers = max(1, min(workers, 16))
    with ThreadPoolExecutor(max_workers=workers) as executor:
        futures = {
            executor.submit(crawl_url, url, **options): link_id
            for link_id, url in targets
        }
        for future in as_completed(futures):
            link_id = futures[future]
            try:
                results[link_id] = future.result()
            except Exception as exc:
                results[link_id] = exc
    return results


def apply_crawl_result(link: ItemLink, result: CrawledItem | Exception | None) -> None:
    link.last_checked_at = utcnow()
    if isinstance(result, CrawlError):
        link.check_error = str(result)
        return
    if isinstance(result, Exception):
        link.check_error = str(result).strip() or result.__class__.__name__
        return
    if result is None:
        link.check_error = "no crawler for this link"
        return
    if result.price is None and result.source_currency is None:
        link.check_error = "no price found"
        return
    currency = result.source_currency or result.currency
    if link.item is not None and currency != link.item.currency:
        link.check_error = f"price is in {currency}"
        return
    if result.price is None:
        link.check_error = "no price found"
        return
    link.price = result.price
    link.check_error = None


def refresh_links(links: list[ItemLink], options: dict, workers: int) -> int:
    """Crawl and update the given links in the current session."""
    targets = [(link.id, link.link) for link in crawlable_links(links)]
    results = crawl_links(targets, options, workers)
    by_id = {link.id: link for link in links}
    for link_id, result in results.items():
        apply_crawl_result(by_id[link_id], result)
    return len(results)


def run_price_refresh(app: Flask) -> int:
    with app.app_context():
        db.session.remove()
        link_ids = stale_link_ids(
            limit=int(app.config["PRICE_REFRESH_BATCH_SIZE"]),
            stale_hours=int(app.config["PRICE_REFRESH_STALE_HOURS"]),
        )
        if not link_ids:
            return 0

        links = ItemLink.query.filter(ItemLink.id.in_(link_ids)).all()
        results = crawl_links(
            [(link.id, link.link) for link in links],
            crawl_options(app.config),
            int(app.config.get("PRICE_REFRESH_WORKERS", 4)),
        )

        updated = 0
        for link in links:
            if link.id not in results:
                continue
            try:
                apply_crawl_result(link, results[link.id])
                db.session.commit()
                updated += 1
            except Exception as exc:
                db.session.rollback()
                app.logger.warning("Failed price refresh for link %s: %s", link.id, exc)
        app.logger.info("Price refresh checked %s links", updated)
        db.session.remove()
        return updated

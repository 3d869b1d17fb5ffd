from datetime import timedelta
from decimal import Decimal
from types import SimpleNamespace

from wishlist.crawlers import CrawlError
from wishlist.crawlers.amazon import parse_amazon_product
from wishlist.extensions import db
from wishlist.models import Category, ItemLink, User, WishlistItem, utcnow
from wishlist.services.price_refresh import apply_crawl_result, stale_link_ids

UK_MUG_HTML = """
<html><body>
  <span id="productTitle">Mug</span>
  <span class="a-price"><span class="a-offscreen">£12.99</span></span>
</body></html>
"""


def _link(item_currency="EUR", price=Decimal("15.00")):
    return SimpleNamespace(
        item=SimpleNamespace(currency=item_currency),
        price=price,
        check_error=None,
        last_checked_at=None,
    )


def test_refresh_reports_currency_of_foreign_marketplace():
    link = _link()
    crawled = parse_amazon_product(UK_MUG_HTML, "https://www.amazon.co.uk/dp/B000000001")

    apply_crawl_result(link, crawled)

    assert link.check_error == "price is in GBP"
    assert link.price == Decimal("15.00")
    assert link.last_checked_at is not None


def test_refresh_outcomes():
    priced = _link()
    apply_crawl_result(
        priced,
        SimpleNamespace(price=Decimal("9.90"), currency="EUR", source_currency="EUR"),
    )
    assert priced.price == Decimal("9.90")
    assert priced.check_error is None

    usd_item = _link(item_currency="USD")
    apply_crawl_result(
        usd_item,
        SimpleNamespace(price=Decimal("9.90"), currency="EUR", source_currency="EUR"),
    )
    assert usd_item.check_error == "price is in EUR"
    assert usd_item.price == Decimal("15.00")

    no_price = _link()
    apply_crawl_result(
        no_price, SimpleNamespace(price=None, currency="EUR", source_currency=None)
    )
    assert no_price.check_error == "no price found"

    unsupported = _link()
    apply_crawl_result(unsupported, None)
    assert unsupported.check_error == "no crawler for this link"

    failed = _link()
    apply_crawl_result(failed, CrawlError("https://www.amazon.fr/dp/X answered HTTP 500"))
    assert failed.check_error == "https://www.amazon.fr/dp/X answered HTTP 500"


def test_stale_links_are_selected_in_the_database(app):
    with app.app_context():
        owner = User(username="owner", is_active=True)
        owner.set_password("secret")
        db.session.add(owner)
        db.session.flush()
        category = Category(user_id=owner.id, name="Tech")
        db.session.add(category)
        db.session.flush()

        active = WishlistItem(user_id=owner.id, category_id=category.id, name="Lamp")
        amazon = ItemLink(name="amazon.fr", link="https://www.amazon.fr/dp/B000000001")
        citadium = ItemLink(
            name="citadium.com",
            link="https://www.citadium.com/fr/fr/lamp.html",
            last_checked_at=utcnow() - timedelta(hours=48),
        )
        fresh = ItemLink(
            name="amazon.de",
            link="https://www.amazon.de/dp/B000000002",
            last_checked_at=utcnow(),
        )
        unsupported = ItemLink(name="example.com", link="https://example.com/lamp")
        active.links.extend([amazon, citadium, fresh, unsupported])

        bought = WishlistItem(
            user_id=owner.id, category_id=category.id, name="Desk", state="BOUGHT"
        )
        bought.links.append(
            ItemLink(name="amazon.fr", link="https://www.amazon.fr/dp/B000000003")
        )
        db.session.add_all([active, bought])
        db.session.commit()

        # never-checked links come before stale ones
        assert stale_link_ids(limit=10, stale_hours=24) == [amazon.id, citadium.id]
        assert stale_link_ids(limit=1, stale_hours=24) == [amazon.id]

from decimal import Decimal

import httpx
import pytest

from wishlist.crawlers import CrawlBlockedError, CrawlError, crawl_url, crawler_for_url
from wishlist.crawlers.amazon import (
    amazon_product_crawler,
    canonical_product_url,
    parse_amazon_product,
)
from wishlist.crawlers.base import (
    currency_from_text,
    fetch_product_html,
    parse_price,
    supported_price,
)
from wishlist.crawlers.citadium import parse_citadium_product

AMAZON_FR_URL = "https://www.amazon.fr/Casque-Audio/dp/B08XYZ1234/ref=sr_1_1?keywords=casque"

AMAZON_FR_HTML = """
<html>
  <head>
    <title>Amazon.fr : Casque Audio</title>
    <meta property="og:image" content="https://m.media-amazon.com/images/I/og.jpg">
  </head>
  <body>
    <span id="productTitle">  Casque Audio Sans Fil  </span>
    <div id="corePrice_feature_div">
      <span class="a-price"><span class="a-offscreen">1 299,99 €</span></span>
    </div>
    <img id="landingImage"
         data-old-hires="https://m.media-amazon.com/images/I/hires.jpg"
         data-a-dynamic-image='{"https://m.media-amazon.com/images/I/small.jpg": [200, 200], "https://m.media-amazon.com/images/I/large.jpg": [1000, 1000]}'
         src="https://m.media-amazon.com/images/I/src.jpg">
  </body>
</html>
"""

AMAZON_COM_HTML = """
<html><body>
  <span id="productTitle">Desk Lamp</span>
  <span class="a-price">
    <span class="a-price-symbol">$</span><span class="a-price-whole">34.</span><span class="a-price-fraction">99</span>
  </span>
</body></html>
"""

CITADIUM_URL = "https://www.citadium.com/fr/fr/sweat-nike-club-123.html"

CITADIUM_LD_HTML = """
<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "BreadcrumbList", "itemListElement": []},
  {"@type": "Product", "name": "Sweat Nike Club",
   "image": ["/media/catalog/sweat.jpg"],
   "offers": {"@type": "Offer", "price": "59.99", "priceCurrency": "EUR"}}
]}
</script>
</head><body><h1>Ignored heading</h1></body></html>
"""

CITADIUM_META_HTML = """
<html><head>
  <title>Jean Levi's 501 | Citadium</title>
  <meta property="og:title" content="Jean Levi's 501 | Citadium">
  <meta property="product:price:amount" content="89,00">
  <meta property="og:image" content="https://www.citadium.com/media/jean.jpg">
</head><body></body></html>
"""


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("1 299,99 €", Decimal("1299.99")),
        ("$1,234.56", Decimal("1234.56")),
        ("1.234,56 €", Decimal("1234.56")),
        ("89,00", Decimal("89.00")),
        ("EUR 12", Decimal("12.00")),
        (19.9, Decimal("19.90")),
        ("free", None),
        (None, None),
        (-3, None),
        ("9" * 40 + " €", None),
        ("12 345 678 901,00 €", None),
        (Decimal("1e30"), None),
        (float("inf"), None),
    ],
)
def test_parse_price_handles_displayed_formats(raw, expected):
    assert parse_price(raw) == expected


def test_currency_detection_and_supported_currencies():
    assert currency_from_text("1 299,99 €") == "EUR"
    assert currency_from_text("$34.99") == "USD"
    assert currency_from_text("usd") == "USD"
    assert currency_from_text("12") is None

    assert supported_price(Decimal("10.00"), "USD") == (Decimal("10.00"), "USD")
    assert supported_price(Decimal("10.00"), None) == (Decimal("10.00"), "EUR")
    assert supported_price(Decimal("10.00"), "GBP") == (None, "EUR")


def test_crawler_dispatch_by_url_prefix():
    assert crawler_for_url(AMAZON_FR_URL) is not None
    assert crawler_for_url(CITADIUM_URL) is not None
    assert crawler_for_url("https://amazon.fr/dp/B08XYZ1234") is None
    assert crawl_url("https://shop.example.com/product/1") is None


def test_canonical_amazon_url_drops_tracking():
    assert canonical_product_url(AMAZON_FR_URL) == "https://www.amazon.fr/dp/B08XYZ1234"
    assert (
        canonical_product_url("https://www.amazon.fr/gp/product/b08xyz1234?psc=1")
        == "https://www.amazon.fr/dp/B08XYZ1234"
    )
    assert canonical_product_url("https://www.amazon.fr/s?k=lamp") == (
        "https://www.amazon.fr/s?k=lamp"
    )


def test_parse_amazon_product_page():
    item = parse_amazon_product(AMAZON_FR_HTML, AMAZON_FR_URL)

    assert item.name == "Casque Audio Sans Fil"
    assert item.price == Decimal("1299.99")
    assert item.currency == "EUR"
    assert item.link == "https://www.amazon.fr/dp/B08XYZ1234"
    assert item.images == [
        "https://m.media-amazon.com/images/I/large.jpg",
        "https://m.media-amazon.com/images/I/hires.jpg",
        "https://m.media-amazon.com/images/I/og.jpg",
    ]

    payload = item.as_dict()
    assert payload["price"] == 1299.99
    assert payload["links"] == [
        {
            "name": "amazon.fr",
            "price": 1299.99,
            "link": "https://www.amazon.fr/dp/B08XYZ1234",
        }
    ]
    assert payload["images"][0] == {"image": "https://m.media-amazon.com/images/I/large.jpg"}


def test_parse_amazon_whole_fraction_price():
    item = parse_amazon_product(AMAZON_COM_HTML, "https://www.amazon.com/dp/B000000001")

    assert item.name == "Desk Lamp"
    assert item.price == Decimal("34.99")
    assert item.currency == "USD"
    assert item.images == []


def test_parse_amazon_drops_unsupported_currency():
    html = """
    <html><body>
      <span id="productTitle">Kettle</span>
      <span class="a-price"><span class="a-offscreen">£20.00</span></span>
    </body></html>
    """
    item = parse_amazon_product(html, "https://www.amazon.co.uk/dp/B000000002")

    assert item.name == "Kettle"
    assert item.price is None
    assert item.currency == "EUR"


def test_parse_amazon_falls_back_to_page_title():
    html = "<html><head><title>Amazon.fr : Tapis de yoga : Sports et Loisirs</title></head></html>"

    item = parse_amazon_product(html, "https://www.amazon.fr/dp/B000000003")

    assert item.name == "Tapis de yoga : Sports et Loisirs"
    assert item.price is None


def test_parse_amazon_detects_robot_check():
    html = "<html><head><title>Robot Check</title></head><body></body></html>"

    with pytest.raises(CrawlBlockedError):
        parse_amazon_product(html, AMAZON_FR_URL)


def test_parse_amazon_without_title_fails():
    with pytest.raises(CrawlError):
        parse_amazon_product("<html><body><p>nothing</p></body></html>", AMAZON_FR_URL)


def test_parse_citadium_ld_json_product():
    item = parse_citadium_product(CITADIUM_LD_HTML, CITADIUM_URL)

    assert item.name == "Sweat Nike Club"
    assert item.price == Decimal("59.99")
    assert item.currency == "EUR"
    assert item.link == CITADIUM_URL
    assert item.images == ["https://www.citadium.com/media/catalog/sweat.jpg"]


def test_parse_citadium_meta_fallback():
    item = parse_citadium_product(CITADIUM_META_HTML, CITADIUM_URL)

    assert item.name == "Jean Levi's 501"
    assert item.price == Decimal("89.00")
    assert item.currency == "EUR"
    assert item.images == ["https://www.citadium.com/media/jean.jpg"]


def test_amazon_crawler_uses_final_url(monkeypatch):
    calls = []

    def fake_fetch(url, timeout, max_bytes, user_agent):
        calls.append((url, timeout, max_bytes, user_agent))
        return AMAZON_FR_HTML, "https://www.amazon.fr/dp/B08XYZ1234?th=1"

    monkeypatch.setattr("wishlist.crawlers.amazon.fetch_product_html", fake_fetch)

    item = amazon_product_crawler(AMAZON_FR_URL, timeout=3.0, max_bytes=1000, user_agent="pytest")

    assert calls == [(AMAZON_FR_URL, 3.0, 1000, "pytest")]
    assert item.link == "https://www.amazon.fr/dp/B08XYZ1234"
    assert item.name == "Casque Audio Sans Fil"


def test_crawl_url_routes_to_citadium(monkeypatch):
    monkeypatch.setattr(
        "wishlist.crawlers.citadium.fetch_product_html",
        lambda url, **kwargs: (CITADIUM_LD_HTML, url),
    )

    item = crawl_url(f"  {CITADIUM_URL}  ", timeout=1.0)

    assert item is not None
    assert item.name == "Sweat Nike Club"
    assert item.link == CITADIUM_URL


@pytest.mark.parametrize(
    "host, price_text, source_currency",
    [
        ("www.amazon.ca", "$24.99", "CAD"),
        ("www.amazon.com.au", "$24.99", "AUD"),
        ("www.amazon.com.mx", "$249.00", "MXN"),
        ("www.amazon.co.uk", "£24.99", "GBP"),
    ],
)
def test_parse_amazon_keeps_page_currency_of_foreign_marketplaces(
    host, price_text, source_currency
):
    html = f"""
    <html><body>
      <span id="productTitle">Mug</span>
      <span class="a-price"><span class="a-offscreen">{price_text}</span></span>
    </body></html>
    """
    item = parse_amazon_product(html, f"https://{host}/dp/B000000001")

    assert item.price is None
    assert item.currency == "EUR"
    assert item.source_currency == source_currency


def test_parse_amazon_source_currency_only_set_with_a_price():
    priced = parse_amazon_product(AMAZON_FR_HTML, AMAZON_FR_URL)
    unpriced = parse_amazon_product(
        "<html><body><span id='productTitle'>Mug</span></body></html>",
        "https://www.amazon.co.uk/dp/B000000001",
    )

    assert priced.source_currency == "EUR"
    assert unpriced.source_currency is None


def test_parse_amazon_with_absurd_price_has_no_price():
    html = f"""
    <html><body>
      <span id="productTitle">Mug</span>
      <span class="a-price"><span class="a-offscreen">{"9" * 40} €</span></span>
    </body></html>
    """
    item = parse_amazon_product(html, AMAZON_FR_URL)

    assert item.name == "Mug"
    assert item.price is None


def test_fetch_follows_redirects_to_final_url():
    seen_agents = []

    def handler(request):
        seen_agents.append(request.headers["User-Agent"])
        if request.url.path == "/gp/product/B08XYZ1234":
            return httpx.Response(
                301, headers={"Location": "https://www.amazon.fr/dp/B08XYZ1234"}
            )
        return httpx.Response(200, html=AMAZON_FR_HTML)

    html, final_url = fetch_product_html(
        "https://www.amazon.fr/gp/product/B08XYZ1234",
        user_agent="wishlist-tests",
        transport=httpx.MockTransport(handler),
    )

    assert final_url == "https://www.amazon.fr/dp/B08XYZ1234"
    assert "Casque Audio Sans Fil" in html
    assert seen_agents == ["wishlist-tests", "wishlist-tests"]


def test_fetch_truncates_body_at_max_bytes():
    transport = httpx.MockTransport(lambda request: httpx.Response(200, content=b"a" * 100))

    html, _ = fetch_product_html(
        "https://www.citadium.com/fr/fr/x.html", max_bytes=10, transport=transport
    )

    assert html == "a" * 10


def test_fetch_maps_503_to_blocked():
    transport = httpx.MockTransport(lambda request: httpx.Response(503, text="captcha"))

    with pytest.raises(CrawlBlockedError):
        fetch_product_html(AMAZON_FR_URL, transport=transport)


def test_fetch_maps_other_error_statuses_to_crawl_error():
    transport = httpx.MockTransport(lambda request: httpx.Response(404, text="gone"))

    with pytest.raises(CrawlError, match="HTTP 404") as excinfo:
        fetch_product_html(AMAZON_FR_URL, transport=transport)
    assert not isinstance(excinfo.value, CrawlBlockedError)


def test_fetch_maps_transport_failures_to_crawl_error():
    def slow(request):
        raise httpx.ReadTimeout("too slow", request=request)

    def refused(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(CrawlError, match="Timed out"):
        fetch_product_html(AMAZON_FR_URL, transport=httpx.MockTransport(slow))
    with pytest.raises(CrawlError, match="ConnectError"):
        fetch_product_html(AMAZON_FR_URL, transport=httpx.MockTransport(refused))

from types import SimpleNamespace

from wishlist.services.search import search_items


def _item(name: str, category: str = "Misc", links=None):
    link_rows = [SimpleNamespace(name=link) for link in (links or [])]
    return SimpleNamespace(
        name=name,
        category=SimpleNamespace(name=category),
        links=link_rows,
    )


def test_search_filters_irrelevant_items():
    items = [
        _item("Noise cancelling headphones"),
        _item("Garden hose"),
        _item("Travel backpack"),
    ]

    results = search_items(items, "headphones")

    assert [row["item"].name for row in results] == ["Noise cancelling headphones"]


def test_search_keeps_high_confidence_fuzzy_matches():
    items = [
        _item("Noise cancelling headphones"),
        _item("Rust cookbook"),
    ]

    results = search_items(items, "headphons")

    assert results
    assert results[0]["item"].name == "Noise cancelling headphones"
    assert "name_fuzzy" in results[0]["reasons"]


def test_search_matches_category_and_link_names():
    items = [
        _item("Hoodie", category="Clothes", links=["citadium.com"]),
        _item("Lamp", category="Home", links=["amazon.fr"]),
    ]

    by_category = search_items(items, "clothes")
    by_link = search_items(items, "citadium")

    assert [row["item"].name for row in by_category] == ["Hoodie"]
    assert "category_match" in by_category[0]["reasons"]
    assert [row["item"].name for row in by_link] == ["Hoodie"]
    assert "link_match" in by_link[0]["reasons"]


def test_search_ranks_exact_name_first_and_respects_limit():
    items = [
        _item("Lamp shade"),
        _item("Lamp"),
        _item("Desk lamp"),
    ]

    results = search_items(items, "lamp", limit=2)

    assert len(results) == 2
    assert results[0]["item"].name == "Lamp"
    assert results[0]["reasons"][0] == "exact_name"


def test_search_with_blank_query_returns_nothing():
    assert search_items([_item("Lamp")], "   ") == []

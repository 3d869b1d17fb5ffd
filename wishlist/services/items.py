from __future__ import annotations

from decimal import Decimal

from wishlist.extensions import db
from wishlist.models import (
    ARCHIVED_STATES,
    CURRENCIES,
    CURRENCY_EUR,
    ITEM_STATES,
    MAX_PRICE,
    STATE_ACTIVE,
    Category,
    ItemImage,
    ItemLink,
    User,
    WishlistItem,
    utcnow,
)
from wishlist.services.common import (
    is_http_url,
    link_display_name,
    normalize_url,
    parse_optional_price,
)


class ItemValidationError(ValueError):
    pass


class ItemNotFoundError(LookupError):
    pass


def _require_price(value, label: str) -> Decimal | None:
    price = parse_optional_price(value)
    if price is not None and price < 0:
        raise ItemValidationError(f"{label} must not be negative")
    if price is not None and price > MAX_PRICE:
        raise ItemValidationError(f"{label} must not exceed {MAX_PRICE}")
    return price


def _owned_category(user: User, category_id) -> Category:
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        raise ItemValidationError("category is required") from None
    category = Category.query.filter_by(id=category_id, user_id=user.id).first()
    if not category:
        raise ItemValidationError("category not found")
    return category


def _clean_links(raw_links) -> list[dict]:
    if raw_links is None:
        return []
    if not isinstance(raw_links, list):
        raise ItemValidationError("links must be a list")

    links: list[dict] = []
    seen: set[str] = set()
    for index, entry in enumerate(raw_links):
        if not isinstance(entry, dict):
            raise ItemValidationError(f"links[{index}] must be an object")
        url = str(entry.get("link") or "").strip()
        if not url:
            raise ItemValidationError(f"links[{index}].link is required")
        if not is_http_url(url):
            raise ItemValidationError(f"links[{index}].link must be an http(s) URL")
        normalized = normalize_url(url)
        if normalized in seen:
            continue
        seen.add(normalized)
        name = str(entry.get("name") or "").strip() or link_display_name(url)
        links.append(
            {
                "name": name,
                "link": url,
                "price": _require_price(entry.get("price"), f"links[{index}].price"),
            }
        )
    return links


def _clean_images(raw_images) -> list[str]:
    if raw_images is None:
        return []
    if not isinstance(raw_images, list):
        raise ItemValidationError("images must be a list")

    images: list[str] = []
    for index, entry in enumerate(raw_images):
        value = entry.get("image") if isinstance(entry, dict) else entry
        image = str(value or "").strip()
        if not image:
            raise ItemValidationError(f"images[{index}].image is required")
        if image not in images:
            images.append(image)
    return images


def next_position(category_id: int) -> int:
    highest = (
        db.session.query(db.func.max(WishlistItem.position))
        .filter(WishlistItem.category_id == category_id)
        .scalar()
    )
    return 0 if highest is None else highest + 1


def get_owned_item(user: User, item_id: int) -> WishlistItem:
    item = db.session.get(WishlistItem, item_id)
    if not item or item.user_id != user.id:
        raise ItemNotFoundError("Item not found")
    return item


def save_wishlist_item(
    user: User, payload: dict, item_id: int | None = None
) -> WishlistItem:
    """Create an item, or replace an existing one when ``item_id`` is given.

    Editing replaces every link and image with the submitted ones, so the
    payload is the whole item as the form last saw it.
    """
    item = get_owned_item(user, item_id) if item_id is not None else None
    name = str(payload.get("name") or "").strip()
    if not name:
        raise ItemValidationError("name is required")
    category = _owned_category(user, payload.get("category_id"))
    currency = str(payload.get("currency") or CURRENCY_EUR).strip().upper()
    if currency not in CURRENCIES:
        raise ItemValidationError(f"currency must be one of {', '.join(CURRENCIES)}")
    price = _require_price(payload.get("price"), "price")
    links = _clean_links(payload.get("links"))
    images = _clean_images(payload.get("images"))

    if item is not None:
        if item.category_id != category.id:
            item.position = next_position(category.id)
        item.links.clear()
        item.images.clear()
        db.session.flush()
    else:
        item = WishlistItem(
            user_id=user.id,
            state=STATE_ACTIVE,
            position=next_position(category.id),
        )
        db.session.add(item)

    item.name = name
    item.price = price
    item.currency = currency
    item.category_id = category.id
    item.updated_at = utcnow()
    item.links.extend(ItemLink(**link) for link in links)
    item.images.extend(ItemImage(image=image) for image in images)
    db.session.flush()
    return item


def change_item_state(
    user: User,
    item: WishlistItem,
    state: str | None = None,
    category_id=None,
) -> WishlistItem:
    if item.user_id != user.id:
        raise ItemNotFoundError("Item not found")
    if state is None and category_id is None:
        raise ItemValidationError("state or category_id is required")

    if state is not None:
        state = str(state).strip().upper()
        if state not in ITEM_STATES:
            raise ItemValidationError(f"state must be one of {', '.join(ITEM_STATES)}")
        item.state = state
    if category_id is not None:
        category = _owned_category(user, category_id)
        if category.id != item.category_id:
            item.category_id = category.id
            item.position = next_position(category.id)
    item.updated_at = utcnow()
    db.session.flush()
    return item


def reorder_items(user: User, category_id, item_ids) -> list[WishlistItem]:
    category = _owned_category(user, category_id)
    if not isinstance(item_ids, list) or not item_ids:
        raise ItemValidationError("item_ids must be a non-empty list")
    try:
        ordered_ids = [int(value) for value in item_ids]
    except (TypeError, ValueError):
        raise ItemValidationError("item_ids must contain integers") from None
    if len(set(ordered_ids)) != len(ordered_ids):
        raise ItemValidationError("item_ids must not contain duplicates")

    items = WishlistItem.query.filter(
        WishlistItem.user_id == user.id,
        WishlistItem.category_id == category.id,
        WishlistItem.id.in_(ordered_ids),
    ).all()
    by_id = {item.id: item for item in items}
    missing = [value for value in ordered_ids if value not in by_id]
    if missing:
        raise ItemValidationError(
            f"items not in category {category.id}: {', '.join(map(str, missing))}"
        )

    for position, item_id in enumerate(ordered_ids):
        by_id[item_id].position = position
    db.session.flush()
    return [by_id[item_id] for item_id in ordered_ids]


def delete_item(user: User, item: WishlistItem) -> None:
    if item.user_id != user.id:
        raise ItemNotFoundError("Item not found")
    db.session.delete(item)
    db.session.flush()


def category_items(category_id: int, state: str = STATE_ACTIVE) -> list[WishlistItem]:
    return (
        WishlistItem.query.filter_by(category_id=category_id, state=state)
        .order_by(WishlistItem.position.asc(), WishlistItem.created_at.asc())
        .all()
    )


def archived_items(user_id: int, category_ids: list[int] | None = None):
    query = WishlistItem.query.filter(
        WishlistItem.user_id == user_id,
        WishlistItem.state.in_(ARCHIVED_STATES),
    )
    if category_ids is not None:
        query = query.filter(WishlistItem.category_id.in_(category_ids))
    return query.order_by(WishlistItem.updated_at.desc()).all()

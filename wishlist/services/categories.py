from __future__ import annotations

from wishlist.extensions import db
from wishlist.models import STATE_ACTIVE, Category, User, WishlistItem


class CategoryError(ValueError):
    pass


def top_level_categories(user_id: int, only_public: bool = False) -> list[Category]:
    query = Category.query.filter_by(user_id=user_id, parent_id=None)
    if only_public:
        query = query.filter_by(public=True)
    return query.order_by(Category.name.asc()).all()


def _has_active_items(category: Category) -> bool:
    return (
        WishlistItem.query.filter_by(category_id=category.id, state=STATE_ACTIVE).first()
        is not None
    )


def is_non_empty(category: Category, only_public: bool = False) -> bool:
    if _has_active_items(category):
        return True
    return any(
        _has_active_items(child)
        for child in category.sub_categories
        if child.public or not only_public
    )


def serialize_category_tree(
    user_id: int, only_public: bool = False, non_empty: bool = False
) -> list[dict]:
    categories = top_level_categories(user_id, only_public=only_public)
    if non_empty:
        categories = [c for c in categories if is_non_empty(c, only_public)]
    return [
        category.as_dict(include_children=True, only_public=only_public)
        for category in categories
    ]


def visible_category_ids(user_id: int, only_public: bool = False) -> list[int]:
    ids: list[int] = []
    for category in top_level_categories(user_id, only_public=only_public):
        ids.append(category.id)
        ids.extend(
            child.id
            for child in category.sub_categories
            if child.public or not only_public
        )
    return ids


def get_owned_category(user: User, category_id: int) -> Category | None:
    return Category.query.filter_by(id=category_id, user_id=user.id).first()


def _validate_parent(user: User, parent_id, category: Category | None = None):
    if parent_id in (None, ""):
        return None
    try:
        parent_id = int(parent_id)
    except (TypeError, ValueError):
        raise CategoryError("parent_id must be an integer") from None
    parent = get_owned_category(user, parent_id)
    if not parent:
        raise CategoryError("parent category not found")
    if parent.parent_id is not None:
        raise CategoryError("subcategories cannot be nested")
    if category is not None:
        if parent.id == category.id:
            raise CategoryError("a category cannot be its own parent")
        if category.sub_categories:
            raise CategoryError("a category with subcategories cannot be nested")
    return parent


def _ensure_unique_name(user: User, name: str, parent_id, exclude_id=None) -> None:
    query = Category.query.filter_by(user_id=user.id, name=name, parent_id=parent_id)
    if exclude_id is not None:
        query = query.filter(Category.id != exclude_id)
    if query.first():
        raise CategoryError("a category with this name already exists")


def create_category(user: User, name: str, parent_id=None, public=True) -> Category:
    name = (name or "").strip()
    if not name:
        raise CategoryError("category name is required")
    parent = _validate_parent(user, parent_id)
    parent_key = parent.id if parent else None
    _ensure_unique_name(user, name, parent_key)

    category = Category(user_id=user.id, name=name, parent_id=parent_key, public=public)
    db.session.add(category)
    db.session.flush()
    return category


def update_category(user: User, category: Category, payload: dict) -> Category:
    name = category.name
    parent_id = category.parent_id
    if "name" in payload:
        name = (payload.get("name") or "").strip() or category.name
    if "parent_id" in payload:
        parent = _validate_parent(user, payload.get("parent_id"), category)
        parent_id = parent.id if parent else None
    _ensure_unique_name(user, name, parent_id, exclude_id=category.id)
    category.name = name
    category.parent_id = parent_id
    db.session.flush()
    return category


def change_category_visibility(category: Category, is_public: bool) -> Category:
    category.public = bool(is_public)
    db.session.flush()
    return category


def delete_category(category: Category) -> None:
    if category.sub_categories:
        raise CategoryError("category still has subcategories")
    if WishlistItem.query.filter_by(category_id=category.id).first():
        raise CategoryError("category still has items")
    db.session.delete(category)
    db.session.flush()

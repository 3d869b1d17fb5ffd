from __future__ import annotations

from wishlist.extensions import db
from wishlist.models import User, WishlistItem


class SharingError(ValueError):
    pass


class UserNotFoundError(LookupError):
    pass


def authorize_access(owner: User, email: str) -> User:
    """Give the user registered under ``email`` read access to ``owner``'s list."""
    email = (email or "").strip().lower()
    if not email:
        raise SharingError("email is required")
    reader = User.query.filter(db.func.lower(User.email) == email).first()
    if not reader:
        raise UserNotFoundError("User not found")
    if reader.id == owner.id:
        raise SharingError("you already have access to your own wishlist")
    if reader not in owner.authorized_users:
        owner.authorized_users.append(reader)
    db.session.flush()
    return reader


def revoke_access(owner: User, user_id: int) -> bool:
    for reader in list(owner.authorized_users):
        if reader.id == user_id:
            owner.authorized_users.remove(reader)
            db.session.flush()
            return True
    return False


def resolve_owner(viewer: User, raw_user_id) -> tuple[User | None, bool]:
    """Return ``(owner, is_reader)`` for a listing requested with ``user_id``.

    ``owner`` is ``None`` when the viewer has no access to that wishlist.
    """
    if raw_user_id in (None, ""):
        return viewer, False
    try:
        owner_id = int(raw_user_id)
    except (TypeError, ValueError):
        return None, False
    if owner_id == viewer.id:
        return viewer, False
    if not viewer.can_read(owner_id):
        return None, False
    return db.session.get(User, owner_id), True


def item_visible_to(viewer: User, item: WishlistItem) -> bool:
    if item.user_id == viewer.id:
        return True
    if not viewer.can_read(item.user_id):
        return False
    return item.category is not None and item.category.visible_to_readers()

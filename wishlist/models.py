import hashlib
import secrets
from datetime import datetime, timezone
from decimal import Decimal

from flask_login import UserMixin
from werkzeug.security import check_password_hash, generate_password_hash

from wishlist.extensions import db, login_manager


CURRENCY_EUR = "EUR"
CURRENCY_USD = "USD"
CURRENCIES = (CURRENCY_EUR, CURRENCY_USD)
# Largest amount a Numeric(12, 2) price column holds.
MAX_PRICE = Decimal("9999999999.99")

STATE_ACTIVE = "ACTIVE"
STATE_BOUGHT = "BOUGHT"
STATE_CANCELED = "CANCELED"
ITEM_STATES = (STATE_ACTIVE, STATE_BOUGHT, STATE_CANCELED)
ARCHIVED_STATES = (STATE_BOUGHT, STATE_CANCELED)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _price_value(price):
    return float(price) if price is not None else None


# Row (owner_id, reader_id): owner granted reader access to their wishlist.
access_grants = db.Table(
    "access_grants",
    db.Column("owner_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
    db.Column("reader_id", db.Integer, db.ForeignKey("users.id"), primary_key=True),
)


class User(UserMixin, db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(120), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True, index=True)
    password_hash = db.Column(db.String(255), nullable=False)
    is_admin = db.Column(db.Boolean, nullable=False, default=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    categories = db.relationship("Category", backref="user", lazy=True)
    items = db.relationship("WishlistItem", backref="user", lazy=True)
    authorized_users = db.relationship(
        "User",
        secondary=access_grants,
        primaryjoin=id == access_grants.c.owner_id,
        secondaryjoin=id == access_grants.c.reader_id,
        backref="has_access_to",
        lazy=True,
    )

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    def can_read(self, owner_id: int) -> bool:
        if owner_id == self.id:
            return True
        return any(owner.id == owner_id for owner in self.has_access_to)

    def as_public_dict(self):
        return {"id": self.id, "username": self.username, "email": self.email}

    def as_dict(self):
        payload = self.as_public_dict()
        payload.update(
            {
                "is_admin": self.is_admin,
                "has_access_to": [
                    owner.as_public_dict()
                    for owner in sorted(self.has_access_to, key=lambda u: u.id)
                ],
                "authorized_users": [
                    reader.as_public_dict()
                    for reader in sorted(self.authorized_users, key=lambda u: u.id)
                ],
            }
        )
        return payload


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, int(user_id))


class Category(db.Model):
    __tablename__ = "categories"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    public = db.Column(db.Boolean, nullable=False, default=True)
    parent_id = db.Column(db.Integer, db.ForeignKey("categories.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    sub_categories = db.relationship(
        "Category",
        backref=db.backref("parent", remote_side=[id]),
        order_by="Category.name",
    )

    __table_args__ = (
        db.UniqueConstraint(
            "user_id", "name", "parent_id", name="uq_category_user_name_parent"
        ),
    )

    def visible_to_readers(self) -> bool:
        if not self.public:
            return False
        return self.parent is None or self.parent.public

    def active_item_count(self) -> int:
        return WishlistItem.query.filter_by(
            category_id=self.id, state=STATE_ACTIVE
        ).count()

    def as_dict(self, include_children=False, only_public=False):
        payload = {
            "id": self.id,
            "name": self.name,
            "public": self.public,
            "parent_id": self.parent_id,
            "item_count": self.active_item_count(),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }
        if include_children:
            children = self.sub_categories
            if only_public:
                children = [child for child in children if child.public]
            payload["sub_categories"] = [child.as_dict() for child in children]
        return payload


class WishlistItem(db.Model):
    __tablename__ = "wishlist_items"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    category_id = db.Column(
        db.Integer, db.ForeignKey("categories.id"), nullable=False, index=True
    )
    name = db.Column(db.String(512), nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    currency = db.Column(db.String(3), nullable=False, default=CURRENCY_EUR)
    state = db.Column(db.String(16), nullable=False, default=STATE_ACTIVE, index=True)
    position = db.Column(db.Integer, nullable=False, default=0)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = db.Column(
        db.DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow
    )

    category = db.relationship("Category", backref="items")
    links = db.relationship(
        "ItemLink",
        backref="item",
        cascade="all, delete-orphan",
        order_by="ItemLink.id",
    )
    images = db.relationship(
        "ItemImage",
        backref="item",
        cascade="all, delete-orphan",
        order_by="ItemImage.id",
    )

    __table_args__ = (
        db.Index("ix_item_category_position", "category_id", "position"),
        db.Index("ix_item_user_state", "user_id", "state"),
    )

    def as_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "category_id": self.category_id,
            "category_name": self.category.name if self.category else None,
            "name": self.name,
            "price": _price_value(self.price),
            "currency": self.currency,
            "state": self.state,
            "position": self.position,
            "links": [link.as_dict() for link in self.links],
            "images": [image.as_dict() for image in self.images],
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class ItemLink(db.Model):
    __tablename__ = "item_links"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer, db.ForeignKey("wishlist_items.id"), nullable=False, index=True
    )
    name = db.Column(db.String(255), nullable=False)
    link = db.Column(db.Text, nullable=False)
    price = db.Column(db.Numeric(12, 2), nullable=True)
    last_checked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    check_error = db.Column(db.Text, nullable=True)

    def as_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "link": self.link,
            "price": _price_value(self.price),
            "last_checked_at": self.last_checked_at.isoformat()
            if self.last_checked_at
            else None,
            "check_error": self.check_error,
        }


class ItemImage(db.Model):
    __tablename__ = "item_images"

    id = db.Column(db.Integer, primary_key=True)
    item_id = db.Column(
        db.Integer, db.ForeignKey("wishlist_items.id"), nullable=False, index=True
    )
    image = db.Column(db.Text, nullable=False)

    def as_dict(self):
        return {"id": self.id, "image": self.image}


class ApiToken(db.Model):
    __tablename__ = "api_tokens"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id"), nullable=False, index=True
    )
    name = db.Column(db.String(120), nullable=False)
    token_hash = db.Column(db.String(128), nullable=False, unique=True)
    last_used_at = db.Column(db.DateTime(timezone=True), nullable=True)
    revoked_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, default=utcnow)

    user = db.relationship("User", backref="api_tokens")

    @staticmethod
    def issue_token(prefix="wl"):
        token = f"{prefix}_{secrets.token_urlsafe(32)}"
        token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()
        return token, token_hash

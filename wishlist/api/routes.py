from __future__ import annotations

from flask import current_app, g, jsonify, request, send_from_directory, url_for

from wishlist.api import api_bp
from wishlist.crawlers import CrawlBlockedError, CrawlError, crawl_url
from wishlist.extensions import db
from wishlist.models import STATE_ACTIVE, ApiToken, Category, User, WishlistItem
from wishlist.services.categories import (
    CategoryError,
    change_category_visibility,
    create_category,
    delete_category,
    get_owned_category,
    serialize_category_tree,
    update_category,
    visible_category_ids,
)
from wishlist.services.common import is_http_url, json_payload, to_bool
from wishlist.services.items import (
    ItemNotFoundError,
    ItemValidationError,
    archived_items,
    category_items,
    change_item_state,
    delete_item,
    get_owned_item,
    reorder_items,
    save_wishlist_item,
)
from wishlist.services.price_refresh import crawl_options, refresh_links
from wishlist.services.search import search_items
from wishlist.services.security import api_auth_required
from wishlist.services.sharing import (
    SharingError,
    UserNotFoundError,
    authorize_access,
    item_visible_to,
    revoke_access,
)
from wishlist.services.uploads import UploadError, public_url, store_image


def _item_or_404(item_id: int):
    user = g.api_user
    try:
        return get_owned_item(user, item_id), None
    except ItemNotFoundError as exc:
        return None, (jsonify({"error": str(exc)}), 404)


def _category_or_404(category_id: int):
    category = get_owned_category(g.api_user, category_id)
    if not category:
        return None, (jsonify({"error": "category not found"}), 404)
    return category, None


@api_bp.route("/health")
def health():
    return jsonify({"status": "ok", "service": "Wishlist"})


@api_bp.route("/auth/bootstrap-admin", methods=["POST"])
def bootstrap_admin_api():
    if User.query.count() > 0:
        return jsonify({"error": "bootstrap already completed"}), 409

    payload = json_payload()
    username = (payload.get("username") or "").strip()
    email = (payload.get("email") or "").strip().lower() or None
    password = payload.get("password") or ""
    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400

    admin = User(username=username, email=email, is_admin=True, is_active=True)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    return jsonify({"status": "created", "user_id": admin.id}), 201


@api_bp.route("/auth/token", methods=["POST"])
def create_token_with_credentials():
    payload = json_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""
    token_name = (payload.get("token_name") or "Wishlist API Token").strip()

    user = User.query.filter_by(username=username).first()
    if not user or not user.is_active or not user.check_password(password):
        return jsonify({"error": "invalid credentials"}), 401

    token, token_hash = ApiToken.issue_token()
    row = ApiToken(user_id=user.id, name=token_name, token_hash=token_hash)
    db.session.add(row)
    db.session.commit()
    return jsonify({"token": token, "token_name": token_name, "user_id": user.id})


@api_bp.route("/admin/users", methods=["POST"])
@api_auth_required(admin=True)
def admin_create_user():
    payload = json_payload()
    username = (payload.get("username") or "").strip()
    email = (payload.get("email") or "").strip().lower() or None
    password = payload.get("password") or ""
    is_admin = to_bool(payload.get("is_admin"), default=False)

    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400
    if User.query.filter_by(username=username).first():
        return jsonify({"error": "username already exists"}), 409
    if email and User.query.filter_by(email=email).first():
        return jsonify({"error": "email already exists"}), 409

    user = User(username=username, email=email, is_admin=is_admin, is_active=True)
    user.set_password(password)
    db.session.add(user)
    db.session.commit()
    return jsonify({"status": "created", "user_id": user.id}), 201


@api_bp.route("/admin/users", methods=["GET"])
@api_auth_required(admin=True)
def admin_list_users():
    users = User.query.order_by(User.created_at.desc()).all()
    return jsonify(
        {
            "items": [
                {
                    "id": user.id,
                    "username": user.username,
                    "email": user.email,
                    "is_admin": user.is_admin,
                    "is_active": user.is_active,
                    "created_at": user.created_at.isoformat(),
                }
                for user in users
            ]
        }
    )


@api_bp.route("/me", methods=["GET"])
@api_auth_required()
def me():
    return jsonify(g.api_user.as_dict())


@api_bp.route("/categories", methods=["GET"])
@api_auth_required(readable=True)
def categories_list():
    owner, is_reader = g.owner, g.is_reader
    non_empty = to_bool(request.args.get("non_empty"), default=False)
    return jsonify(
        {
            "user_id": owner.id,
            "items": serialize_category_tree(
                owner.id, only_public=is_reader, non_empty=non_empty
            ),
        }
    )


@api_bp.route("/categories", methods=["POST"])
@api_auth_required()
def categories_create():
    payload = json_payload()
    try:
        category = create_category(
            g.api_user,
            payload.get("name"),
            parent_id=payload.get("parent_id"),
            public=to_bool(payload.get("public"), default=True),
        )
    except CategoryError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify(category.as_dict(include_children=True)), 201


@api_bp.route("/categories/<int:category_id>", methods=["PATCH"])
@api_auth_required()
def categories_update(category_id: int):
    category, error = _category_or_404(category_id)
    if error:
        return error
    payload = json_payload()
    try:
        update_category(g.api_user, category, payload)
        if "public" in payload:
            change_category_visibility(category, to_bool(payload.get("public")))
    except CategoryError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify(category.as_dict(include_children=True))


@api_bp.route("/categories/<int:category_id>/visibility", methods=["POST"])
@api_auth_required()
def categories_visibility(category_id: int):
    category, error = _category_or_404(category_id)
    if error:
        return error
    payload = json_payload()
    if "public" not in payload:
        return jsonify({"error": "public is required"}), 400
    change_category_visibility(category, to_bool(payload.get("public")))
    db.session.commit()
    return jsonify(category.as_dict(include_children=True))


@api_bp.route("/categories/<int:category_id>", methods=["DELETE"])
@api_auth_required()
def categories_delete(category_id: int):
    category, error = _category_or_404(category_id)
    if error:
        return error
    try:
        delete_category(category)
    except CategoryError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 409
    db.session.commit()
    return jsonify({"status": "deleted"})


@api_bp.route("/items", methods=["GET"])
@api_auth_required(readable=True)
def items_list():
    owner, is_reader = g.owner, g.is_reader

    category_id = request.args.get("category_id", type=int)
    if not category_id:
        return jsonify({"error": "category_id is required"}), 400
    category = Category.query.filter_by(id=category_id, user_id=owner.id).first()
    if not category or (is_reader and not category.visible_to_readers()):
        return jsonify({"error": "category not found"}), 404

    items = category_items(category.id)
    return jsonify(
        {
            "category": category.as_dict(),
            "can_edit": not is_reader,
            "items": [item.as_dict() for item in items],
        }
    )


@api_bp.route("/items/archive", methods=["GET"])
@api_auth_required(readable=True)
def items_archive():
    owner, is_reader = g.owner, g.is_reader
    category_ids = visible_category_ids(owner.id, only_public=True) if is_reader else None
    items = archived_items(owner.id, category_ids)
    return jsonify({"items": [item.as_dict() for item in items]})


@api_bp.route("/items/search", methods=["GET"])
@api_auth_required(readable=True)
def items_search():
    owner, is_reader = g.owner, g.is_reader
    query = (request.args.get("q") or "").strip()
    if not query:
        return jsonify({"items": []})

    source = WishlistItem.query.filter_by(user_id=owner.id)
    if is_reader:
        source = source.filter(
            WishlistItem.category_id.in_(visible_category_ids(owner.id, True))
        )
    ranked = search_items(
        source.order_by(WishlistItem.updated_at.desc()).all(),
        query,
        limit=max(1, min(request.args.get("limit", type=int) or 50, 200)),
    )
    return jsonify(
        {
            "items": [
                {
                    **row["item"].as_dict(),
                    "score": row["score"],
                    "match_reasons": row["reasons"],
                }
                for row in ranked
            ]
        }
    )


@api_bp.route("/items", methods=["POST"])
@api_auth_required()
def items_create():
    payload = json_payload()
    try:
        item = save_wishlist_item(g.api_user, payload)
    except ItemValidationError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify(item.as_dict()), 201


@api_bp.route("/items/<int:item_id>", methods=["GET"])
@api_auth_required()
def items_get(item_id: int):
    item = db.session.get(WishlistItem, item_id)
    if not item or not item_visible_to(g.api_user, item):
        return jsonify({"error": "Item not found"}), 404
    payload = item.as_dict()
    payload["can_edit"] = item.user_id == g.api_user.id
    return jsonify(payload)


@api_bp.route("/items/<int:item_id>", methods=["PUT"])
@api_auth_required()
def items_update(item_id: int):
    payload = json_payload()
    try:
        item = save_wishlist_item(g.api_user, payload, item_id=item_id)
    except ItemNotFoundError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 404
    except ItemValidationError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify(item.as_dict())


@api_bp.route("/items/<int:item_id>/state", methods=["PATCH"])
@api_auth_required()
def items_change_state(item_id: int):
    item, error = _item_or_404(item_id)
    if error:
        return error
    payload = json_payload()
    previous = {"state": item.state, "category_id": item.category_id}
    try:
        change_item_state(
            g.api_user,
            item,
            state=payload.get("state"),
            category_id=payload.get("category_id"),
        )
    except ItemValidationError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify({"item": item.as_dict(), "previous": previous})


@api_bp.route("/items/reorder", methods=["POST"])
@api_auth_required()
def items_reorder():
    payload = json_payload()
    try:
        items = reorder_items(
            g.api_user, payload.get("category_id"), payload.get("item_ids")
        )
    except ItemValidationError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify({"items": [{"id": item.id, "position": item.position} for item in items]})


@api_bp.route("/items/<int:item_id>", methods=["DELETE"])
@api_auth_required()
def items_delete(item_id: int):
    item, error = _item_or_404(item_id)
    if error:
        return error
    delete_item(g.api_user, item)
    db.session.commit()
    return jsonify({"status": "deleted"})


@api_bp.route("/items/<int:item_id>/refresh-prices", methods=["POST"])
@api_auth_required()
def items_refresh_prices(item_id: int):
    item, error = _item_or_404(item_id)
    if error:
        return error
    if item.state != STATE_ACTIVE:
        return jsonify({"error": "only active items are refreshed"}), 400
    checked = refresh_links(
        list(item.links),
        crawl_options(current_app.config),
        int(current_app.config.get("PRICE_REFRESH_WORKERS", 4)),
    )
    db.session.commit()
    return jsonify({"status": "checked", "checked": checked, "item": item.as_dict()})


@api_bp.route("/crawl", methods=["GET"])
@api_auth_required()
def crawl():
    url = (request.args.get("url") or "").strip()
    if not url:
        return jsonify({"error": "url is required"}), 400
    if not is_http_url(url):
        return jsonify({"error": "url must be an http(s) URL"}), 400

    try:
        crawled = crawl_url(url, **crawl_options(current_app.config))
    except CrawlBlockedError as exc:
        current_app.logger.warning("Crawl of %s was blocked: %s", url, exc)
        return jsonify({"error": str(exc), "blocked": True}), 502
    except CrawlError as exc:
        current_app.logger.warning("Crawl of %s failed: %s", url, exc)
        return jsonify({"error": str(exc)}), 502

    if crawled is None:
        return jsonify({"supported": False, "item": None})
    return jsonify({"supported": True, "item": crawled.as_dict()})


@api_bp.route("/upload", methods=["POST"])
@api_auth_required()
def upload_image():
    user = g.api_user
    try:
        relative_path = store_image(
            request.files.get("file"), current_app.config["UPLOAD_ROOT"], user.id
        )
    except UploadError as exc:
        return jsonify({"error": str(exc)}), 400

    public_base = current_app.config.get("PUBLIC_UPLOAD_URL")
    if public_base:
        url = public_url(relative_path, public_base)
    else:
        url = url_for("api.uploaded_file", subpath=relative_path, _external=True)
    current_app.logger.info("Stored upload %s for user %s", relative_path, user.id)
    return jsonify({"url": url}), 201


@api_bp.route("/uploads/<path:subpath>", methods=["GET"])
@api_auth_required()
def uploaded_file(subpath: str):
    response = send_from_directory(current_app.config["UPLOAD_ROOT"], subpath)
    response.headers["Cache-Control"] = "private, max-age=2592000, immutable"
    return response


@api_bp.route("/access", methods=["GET"])
@api_auth_required()
def access_list():
    payload = g.api_user.as_dict()
    return jsonify(
        {
            "authorized_users": payload["authorized_users"],
            "has_access_to": payload["has_access_to"],
        }
    )


@api_bp.route("/access", methods=["POST"])
@api_auth_required()
def access_authorize():
    payload = json_payload()
    try:
        reader = authorize_access(g.api_user, payload.get("email"))
    except UserNotFoundError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 404
    except SharingError as exc:
        db.session.rollback()
        return jsonify({"error": str(exc)}), 400
    db.session.commit()
    return jsonify({"status": "authorized", "user": reader.as_public_dict()})


@api_bp.route("/access/<int:user_id>", methods=["DELETE"])
@api_auth_required()
def access_revoke(user_id: int):
    revoked = revoke_access(g.api_user, user_id)
    db.session.commit()
    return jsonify({"status": "revoked" if revoked else "not_authorized"})

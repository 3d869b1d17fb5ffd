import hashlib
from functools import wraps

from flask import g, jsonify, request
from flask_login import current_user

from wishlist.extensions import db
from wishlist.models import ApiToken, User, utcnow
from wishlist.services.sharing import resolve_owner


def _user_from_bearer_token() -> User | None:
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.startswith("Bearer "):
        return None
    token = auth_header.removeprefix("Bearer ").strip()
    if not token:
        return None
    token_hash = hashlib.sha256(token.encode("utf-8")).hexdigest()
    token_row = ApiToken.query.filter_by(token_hash=token_hash).first()
    if not token_row or token_row.revoked_at is not None:
        return None
    # Disabled accounts keep their tokens but cannot use them.
    if not token_row.user.is_active:
        return None
    token_row.last_used_at = utcnow()
    db.session.commit()
    return token_row.user


def get_authenticated_api_user(token_only=False) -> User | None:
    if not token_only and current_user.is_authenticated:
        return current_user._get_current_object()
    return _user_from_bearer_token()


def api_auth_required(admin=False, token_only=False, readable=False):
    """Authenticate the caller into ``g.api_user``.

    With ``readable=True`` the view reads somebody's wishlist: the optional
    ``user_id`` query argument names its owner, resolved into ``g.owner``
    with ``g.is_reader`` set when that owner is not the caller. Owners that
    never shared their list with the caller answer 403.
    """

    def decorator(func):
        @wraps(func)
        def wrapped(*args, **kwargs):
            user = get_authenticated_api_user(token_only=token_only)
            if not user:
                return jsonify({"error": "authentication required"}), 401
            if admin and not user.is_admin:
                return jsonify({"error": "admin access required"}), 403
            g.api_user = user

            if readable:
                owner, is_reader = resolve_owner(user, request.args.get("user_id"))
                if owner is None:
                    return jsonify({"error": "wishlist not shared with you"}), 403
                g.owner = owner
                g.is_reader = is_reader
            return func(*args, **kwargs)

        return wrapped

    return decorator

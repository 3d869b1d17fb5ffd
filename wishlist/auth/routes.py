from flask import jsonify, request
from flask_login import current_user, login_required, login_user, logout_user

from wishlist.auth import auth_bp
from wishlist.extensions import db
from wishlist.models import User
from wishlist.services.common import json_payload


def _form_payload() -> dict:
    if request.is_json:
        return json_payload()
    return request.form.to_dict()


@auth_bp.route("/bootstrap", methods=["POST"])
def bootstrap_admin():
    if User.query.count() > 0:
        return jsonify({"error": "bootstrap already completed"}), 409

    payload = _form_payload()
    username = (payload.get("username") or "").strip()
    email = (payload.get("email") or "").strip().lower() or None
    password = payload.get("password") or ""
    confirm = payload.get("confirm_password") or ""

    if not username or not password:
        return jsonify({"error": "username and password are required"}), 400
    if password != confirm:
        return jsonify({"error": "passwords do not match"}), 400

    admin = User(username=username, email=email, is_admin=True, is_active=True)
    admin.set_password(password)
    db.session.add(admin)
    db.session.commit()
    return jsonify({"status": "created", "user_id": admin.id}), 201


@auth_bp.route("/login", methods=["POST"])
def login():
    if current_user.is_authenticated:
        return jsonify({"status": "authenticated", "user": current_user.as_dict()})

    payload = _form_payload()
    username = (payload.get("username") or "").strip()
    password = payload.get("password") or ""

    user = User.query.filter_by(username=username).first()
    if user and user.is_active and user.check_password(password):
        login_user(user)
        return jsonify({"status": "authenticated", "user": user.as_dict()})
    return jsonify({"error": "invalid credentials"}), 401


@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    logout_user()
    return jsonify({"status": "logged_out"})

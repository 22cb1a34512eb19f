from __future__ import annotations

from flask import Blueprint, current_app, jsonify, request
from flask_login import current_user

from jewelinv.models import User
from jewelinv.security import issue_token, require_roles

bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@bp.post("/login")
def login():
    payload = request.get_json(silent=True) or {}
    username = str(payload.get("username") or "").strip()
    password = str(payload.get("password") or "")

    if not username or not password:
        return jsonify({"error": "Username and password are required."}), 400

    user = User.query.filter_by(username=username).first()
    if user is None or not user.check_password(password):
        current_app.logger.warning("Failed login for %s", username)
        return jsonify({"error": "Invalid credentials"}), 401

    current_app.logger.info("User %s logged in", user.username)
    return jsonify({"token": issue_token(user), "role": user.role})


@bp.get("/me")
@require_roles()
def me():
    return jsonify(
        {
            "id": current_user.id,
            "username": current_user.username,
            "role": current_user.role,
        }
    )

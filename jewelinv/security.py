"""Bearer-token authentication and role decorators for the API."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from functools import wraps
from typing import Iterable, Tuple

from flask import abort, current_app, g, jsonify
from flask_login import current_user
from jose import JWTError, jwt

from jewelinv.extensions import db, login_manager
from jewelinv.models import User

BEARER_PREFIX = "bearer "


def _normalize_roles(role_names: Iterable[str]) -> Tuple[str, ...]:
    unique: list[str] = []
    seen: set[str] = set()
    for name in role_names:
        if not name:
            continue
        if name in seen:
            continue
        unique.append(name)
        seen.add(name)
    return tuple(unique)


def _signing_key() -> str:
    return current_app.config.get("JWT_SECRET") or current_app.config["SECRET_KEY"]


def _algorithm() -> str:
    return current_app.config.get("JWT_ALGORITHM", "HS256")


def issue_token(user: User) -> str:
    hours = int(current_app.config.get("TOKEN_EXPIRES_HOURS", 8))
    claims = {
        "sub": str(user.id),
        "username": user.username,
        "role": user.role,
        "exp": datetime.now(timezone.utc) + timedelta(hours=hours),
    }
    return jwt.encode(claims, _signing_key(), algorithm=_algorithm())


def user_from_token(token: str) -> User | None:
    """Return the user a valid token belongs to, or ``None``."""

    try:
        claims = jwt.decode(token, _signing_key(), algorithms=[_algorithm()])
    except JWTError:
        return None

    try:
        user_id = int(claims.get("sub"))
    except (TypeError, ValueError):
        return None

    user = db.session.get(User, user_id)
    if user is None:
        return None
    # A token minted before a role change must not keep the old role.
    if claims.get("role") != user.role:
        return None
    return user


@login_manager.request_loader
def load_user_from_request(request):
    header = request.headers.get("Authorization", "")
    if not header.lower().startswith(BEARER_PREFIX):
        return None
    token = header[len(BEARER_PREFIX):].strip()
    if not token:
        return None
    user = user_from_token(token)
    if user is not None:
        g.log_username = user.username
    return user


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({"error": "Authentication required."}), 401


def require_roles(*role_names: str):
    """Decorator ensuring the active user has any of the provided roles."""

    normalized_roles = _normalize_roles(role_names)

    def decorator(view_func):
        @wraps(view_func)
        def wrapped(*args, **kwargs):
            if not current_user.is_authenticated:
                return login_manager.unauthorized()

            if normalized_roles and not current_user.has_any_role(normalized_roles):
                abort(403, description="You do not have permission to perform this action.")

            return view_func(*args, **kwargs)

        return wrapped

    return decorator


def require_admin(view_func):
    """Decorator specialized for the administrator role."""

    return require_roles(User.ROLE_ADMIN)(view_func)


require_staff = require_roles(User.ROLE_ADMIN, User.ROLE_STAFF)

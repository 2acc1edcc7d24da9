from __future__ import annotations

from functools import wraps
from typing import Any

from flask import jsonify, session as flask_session

from ..app import db
from ..models import User


def is_admin(user: Any) -> bool:
    return bool(user and getattr(user, "is_admin", False))


def _current_user() -> User | None:
    user_id = flask_session.get("user_id")
    if not user_id:
        return None
    return db.session.get(User, user_id)


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _current_user()
        if not user:
            return (
                jsonify({"ok": False, "error": "login_required", "message": "Login required."}),
                401,
            )
        return fn(*args, **kwargs, current_user=user)

    return wrapper


def admin_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        user = _current_user()
        if not user:
            return (
                jsonify({"ok": False, "error": "login_required", "message": "Login required."}),
                401,
            )
        if not is_admin(user):
            return (
                jsonify({"ok": False, "error": "forbidden", "message": "Admin access required."}),
                403,
            )
        return fn(*args, **kwargs, current_user=user)

    return wrapper

"""Small helpers for reading JSON/form request input."""

from __future__ import annotations

from flask import jsonify, request


def json_payload() -> dict:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        payload = request.form.to_dict()
    return payload


def bad_request(message: str, status: int = 400):
    return jsonify({"ok": False, "error": "invalid_request", "message": message}), status


def require_boolean(value) -> bool:
    if isinstance(value, bool):
        return value
    if value is None:
        raise ValueError("Boolean value required")
    if isinstance(value, (int, float)):
        if value in (0, 0.0):
            return False
        if value in (1, 1.0):
            return True
    if isinstance(value, str):
        lowered = value.strip().lower()
        if lowered in {"true", "1", "yes", "on"}:
            return True
        if lowered in {"false", "0", "no", "off"}:
            return False
    raise ValueError("Boolean value required")


def optional_boolean(value) -> bool | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    return require_boolean(value)


def optional_int(value) -> int | None:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    if isinstance(value, bool):
        raise ValueError("Integer value required")
    return int(value)


def require_number(value) -> float:
    if value is None or isinstance(value, bool):
        raise ValueError("Number required")
    return float(value)

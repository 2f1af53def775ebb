"""
Small helpers shared by the JSON blueprints.
"""
from typing import Any, Dict, Optional

from flask import abort, jsonify, request
from flask_login import current_user


def request_data() -> Dict[str, Any]:
    """
    Return the submitted fields from a JSON body or a form post.

    Returns:
        Plain dict; empty when nothing was submitted.
    """
    payload = request.get_json(silent=True)
    if isinstance(payload, dict):
        return payload
    return request.form.to_dict()


def clean_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip()
    return value or None


def parse_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def json_error(message: str, status: int = 400, **extra):
    body = {"success": False, "error": message}
    body.update(extra)
    return jsonify(body), status


def current_user_id() -> Optional[int]:
    return getattr(current_user, "id", None)


def require_admin():
    if getattr(current_user, "role", "").lower() != "admin":
        abort(403)

import hmac
from functools import wraps
from flask import current_app, jsonify, request

ADMIN_TOKEN_HEADER = "X-Admin-Token"

def has_admin_token() -> bool:
    expected = current_app.config.get("ADMIN_API_TOKEN")
    supplied = request.headers.get(ADMIN_TOKEN_HEADER)
    if not expected or not supplied:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), supplied.encode("utf-8"))

def require_admin(fn):
    """
    Usage: @require_admin
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_app.config.get("ADMIN_API_TOKEN"):
            return jsonify(error="Admin API disabled"), 403
        if not has_admin_token():
            return jsonify(error="Forbidden"), 403
        return fn(*args, **kwargs)
    return wrapper

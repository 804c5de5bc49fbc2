from datetime import timedelta
from flask import Blueprint, jsonify, request, current_app

from models import db
from models.user import User
from security import bruteforce, ledger
from security.engine import get_engine
from security.rbac import require_admin
from utils import blocklist
from utils.audit import log_event
from utils.clock import utcnow
from utils.validation import validate_ip

admin_bp = Blueprint("admin", __name__, url_prefix="/admin")


def _positive_int(value):
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        return None
    return value


@admin_bp.get("/blacklist")
@require_admin
def list_blacklist():
    return jsonify([entry.to_dict() for entry in blocklist.list_active()]), 200


@admin_bp.post("/blacklist")
@require_admin
def add_to_blacklist():
    data = request.get_json(silent=True) or {}
    ip = validate_ip(data.get("ip_address"))
    reason = (data.get("reason") or "").strip()
    if not reason:
        return jsonify(error="reason is required"), 400

    expires_at = None
    if data.get("expires_in_seconds") is not None:
        seconds = _positive_int(data.get("expires_in_seconds"))
        if seconds is None:
            return jsonify(error="expires_in_seconds must be a positive integer"), 400
        expires_at = utcnow() + timedelta(seconds=seconds)

    entry = blocklist.upsert(ip, reason, expires_at)
    log_event("BLACKLIST_ADD", entity="ip", entity_id=ip,
              metadata={"reason": reason, "expires_at": entry.to_dict()["expires_at"]})
    return jsonify(entry.to_dict()), 201


@admin_bp.delete("/blacklist/<ip>")
@require_admin
def remove_from_blacklist(ip: str):
    ip = validate_ip(ip)
    if not blocklist.remove(ip):
        return jsonify(error="Not blacklisted"), 404
    log_event("BLACKLIST_REMOVE", entity="ip", entity_id=ip)
    return jsonify(message="Removed"), 200


@admin_bp.post("/blacklist/sweep")
@require_admin
def sweep_blacklist():
    removed = blocklist.sweep_expired()
    log_event("BLACKLIST_SWEEP", metadata={"removed": removed})
    return jsonify(removed=removed), 200


@admin_bp.post("/users/<int:user_id>/unlock")
@require_admin
def unlock_user(user_id: int):
    if db.session.get(User, user_id) is None:
        return jsonify(error="User not found"), 404
    bruteforce.unlock_account(user_id)
    log_event("ACCOUNT_UNLOCK", entity="user", entity_id=user_id)
    return jsonify(message="Account unlocked"), 200


@admin_bp.post("/users/<int:user_id>/lock")
@require_admin
def lock_user(user_id: int):
    data = request.get_json(silent=True) or {}
    seconds = _positive_int(data.get("duration_seconds", current_app.config.get("LOCKOUT_SECONDS", 1800)))
    if seconds is None:
        return jsonify(error="duration_seconds must be a positive integer"), 400
    if db.session.get(User, user_id) is None:
        return jsonify(error="User not found"), 404

    until = bruteforce.lock_account(user_id, seconds)
    log_event("ACCOUNT_LOCK", entity="user", entity_id=user_id, metadata={"until": until.isoformat()})
    return jsonify(message="Account locked", locked_until=until.isoformat()), 200


def _rate_limit_identifier():
    data = request.get_json(silent=True) or {}
    identifier = (data.get("identifier") or "").strip()
    # identifiers carry their kind, e.g. "ip:203.0.113.9" or "user:a@b.c"
    if ":" not in identifier or len(identifier) > 300:
        return None
    return identifier


@admin_bp.post("/rate-limit/reset")
@require_admin
def reset_rate_limit():
    identifier = _rate_limit_identifier()
    if identifier is None:
        return jsonify(error="identifier must look like 'ip:<address>' or 'user:<email>'"), 400
    get_engine().limiter_for(identifier).reset(identifier)
    log_event("RATE_LIMIT_RESET", entity="rate_limit", entity_id=identifier)
    return jsonify(message="Rate limit reset"), 200


@admin_bp.post("/rate-limit/penalize")
@require_admin
def penalize_rate_limit():
    identifier = _rate_limit_identifier()
    if identifier is None:
        return jsonify(error="identifier must look like 'ip:<address>' or 'user:<email>'"), 400
    get_engine().limiter_for(identifier).penalize_now(identifier)
    log_event("RATE_LIMIT_PENALTY", entity="rate_limit", entity_id=identifier)
    return jsonify(message="Identifier blocked"), 200


@admin_bp.get("/login-attempts")
@require_admin
def list_login_attempts():
    minutes = request.args.get("minutes", type=int) or current_app.config.get("LEDGER_DEFAULT_WINDOW_MINUTES", 15)
    minutes = max(1, min(minutes, 7 * 24 * 60))
    ip = request.args.get("ip")
    user_id = request.args.get("user_id", type=int)
    failed_only = request.args.get("failed_only", "").lower() in ("1", "true", "yes")

    if ip:
        ip = validate_ip(ip)
        rows = ledger.recent_failed_by_ip(ip, minutes) if failed_only else ledger.recent_by_ip(ip, minutes)
    elif user_id is not None:
        rows = ledger.recent_by_user(user_id, minutes)
        if failed_only:
            rows = [r for r in rows if not r.success]
    else:
        return jsonify(error="ip or user_id is required"), 400

    return jsonify([r.to_dict() for r in rows]), 200

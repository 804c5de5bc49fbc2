from flask import Blueprint, request, jsonify

from security.engine import LoginRequest, VerdictKind, get_engine

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

_STATUS = {
    VerdictKind.ALLOWED: 200,
    VerdictKind.DENIED: 401,
    VerdictKind.IP_BLOCKED: 403,
    VerdictKind.RATE_LIMITED: 429,
    VerdictKind.ACCOUNT_LOCKED: 429,
}

_MESSAGES = {
    VerdictKind.ALLOWED: "Login OK",
    VerdictKind.DENIED: "Invalid credentials",
    VerdictKind.IP_BLOCKED: "Access from this address is blocked.",
    VerdictKind.RATE_LIMITED: "Too many login requests. Slow down.",
    VerdictKind.ACCOUNT_LOCKED: "Account temporarily locked. Try again later.",
}


def _client_ip() -> str:
    # ProxyFix (see create_app) has already resolved trusted X-Forwarded-For hops
    return request.remote_addr or ""


@auth_bp.post("/login")
def login():
    data = request.get_json(silent=True) or {}
    geo = data.get("geo_location")

    verdict = get_engine().evaluate(LoginRequest(
        email=data.get("email") or "",
        password=data.get("password") or "",
        ip_address=_client_ip(),
        device_fingerprint=data.get("device_fingerprint"),
        user_agent=request.headers.get("User-Agent"),
        geo_location=geo if isinstance(geo, dict) else None,
    ))

    body = verdict.to_dict()
    if verdict.kind is VerdictKind.IP_BLOCKED:
        # the blacklist reason is for operators, not the client
        body.pop("reason", None)
    body["message"] = _MESSAGES[verdict.kind]

    resp = jsonify(body)
    resp.status_code = _STATUS[verdict.kind]
    if verdict.retry_after_seconds:
        resp.headers["Retry-After"] = str(verdict.retry_after_seconds)
    return resp

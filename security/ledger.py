from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt
from security.errors import StoreUnavailable
from utils.clock import utcnow


def _default_window() -> int:
    return current_app.config.get("LEDGER_DEFAULT_WINDOW_MINUTES", 15)


def record_attempt(
    ip_address: str,
    success: bool,
    user_id: Optional[int] = None,
    device_fingerprint: Optional[str] = None,
    user_agent: Optional[str] = None,
    risk_score: int = 0,
    geo_location: Optional[dict] = None,
    attempted_at: Optional[datetime] = None,
) -> LoginAttempt:
    """
    Append one attempt and commit before returning.
    A failed write raises StoreUnavailable: losing an outcome would skew later risk scores.
    """
    row = LoginAttempt(
        user_id=user_id,
        ip_address=ip_address,
        device_fingerprint=device_fingerprint,
        user_agent=user_agent[:255] if user_agent else None,
        success=success,
        risk_score=risk_score,
        geo_location=geo_location,
        attempted_at=attempted_at or utcnow(),
    )
    try:
        db.session.add(row)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        current_app.logger.error("login attempt write failed: %s", exc)
        raise StoreUnavailable("login attempt ledger unavailable") from exc
    return row


def _recent(filters, window_minutes: Optional[int], now: Optional[datetime]) -> list:
    if window_minutes is None:
        window_minutes = _default_window()
    since = (now or utcnow()) - timedelta(minutes=window_minutes)
    try:
        return (
            LoginAttempt.query
            .filter(*filters)
            .filter(LoginAttempt.attempted_at >= since)
            .order_by(LoginAttempt.attempted_at.desc(), LoginAttempt.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("login attempt ledger unavailable") from exc


def recent_by_ip(ip_address: str, window_minutes: Optional[int] = None, now=None) -> list:
    return _recent([LoginAttempt.ip_address == ip_address], window_minutes, now)


def recent_by_user(user_id: int, window_minutes: Optional[int] = None, now=None) -> list:
    return _recent([LoginAttempt.user_id == user_id], window_minutes, now)


def recent_failed_by_ip(ip_address: str, window_minutes: Optional[int] = None, now=None) -> list:
    return _recent(
        [LoginAttempt.ip_address == ip_address, LoginAttempt.success.is_(False)],
        window_minutes,
        now,
    )

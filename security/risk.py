from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy import case, func, or_
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.login_attempt import LoginAttempt
from security.errors import StoreUnavailable
from utils.clock import utcnow

FAILED_THRESHOLD = 10
USERS_THRESHOLD = 3
DEVICES_THRESHOLD = 2

FAILED_WEIGHT = 30
USERS_WEIGHT = 20
DEVICES_WEIGHT = 20

MAX_SCORE = 100


@dataclass(frozen=True)
class RiskStats:
    failed_count: int
    unique_users: int
    unique_devices: int


def compute_risk_score(failed_count: int, unique_users: int, unique_devices: int) -> int:
    """Additive step score: no partial credit below a threshold, clamped to [0, 100]."""
    score = 0
    if failed_count > FAILED_THRESHOLD:
        score += FAILED_WEIGHT
    if unique_users > USERS_THRESHOLD:
        score += USERS_WEIGHT
    if unique_devices > DEVICES_THRESHOLD:
        score += DEVICES_WEIGHT
    return max(0, min(score, MAX_SCORE))


def window_stats(ip_address: str, device_fingerprint: Optional[str] = None,
                 now: Optional[datetime] = None) -> RiskStats:
    """Aggregate attempts matching the IP or the device fingerprint over the trailing window."""
    hours = current_app.config.get("RISK_WINDOW_HOURS", 24)
    since = (now or utcnow()) - timedelta(hours=hours)

    match = LoginAttempt.ip_address == ip_address
    if device_fingerprint:
        match = or_(match, LoginAttempt.device_fingerprint == device_fingerprint)

    try:
        failed, users, devices = (
            db.session.query(
                func.coalesce(func.sum(case((LoginAttempt.success.is_(False), 1), else_=0)), 0),
                func.count(func.distinct(LoginAttempt.user_id)),
                func.count(func.distinct(LoginAttempt.device_fingerprint)),
            )
            .filter(match, LoginAttempt.attempted_at >= since)
            .one()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("login attempt ledger unavailable") from exc

    return RiskStats(int(failed or 0), int(users or 0), int(devices or 0))


def score(ip_address: str, device_fingerprint: Optional[str] = None,
          now: Optional[datetime] = None) -> int:
    stats = window_stats(ip_address, device_fingerprint, now)
    return compute_risk_score(stats.failed_count, stats.unique_users, stats.unique_devices)

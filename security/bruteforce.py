import logging
import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional

from flask import current_app
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.user import User
from security.errors import ConcurrentUpdateConflict, StoreUnavailable, UserNotFound
from utils.clock import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LockoutResult:
    failed_attempts: int
    locked: bool
    lockout_until: Optional[datetime] = None


def is_locked(user: User, now: Optional[datetime] = None) -> bool:
    """
    Lazy expiry: a stored lock whose lockout_until has passed reads as normal.
    A lock with no lockout_until only ends by admin unlock.
    """
    if not user.account_locked:
        return False
    if user.lockout_until is None:
        return True
    return (now or utcnow()) < user.lockout_until


def seconds_remaining(user: User, now: Optional[datetime] = None) -> int:
    if not user.lockout_until:
        return 0
    seconds = (user.lockout_until - (now or utcnow())).total_seconds()
    return max(int(math.ceil(seconds)), 0)


def _conditional_update(user_id: int, expected_failed: int, expected_locked: bool, values: dict) -> None:
    # Compare-and-set against the state we read; 0 rows means another writer won
    updated = (
        User.query
        .filter(
            User.id == user_id,
            User.failed_attempts == expected_failed,
            User.account_locked == expected_locked,
        )
        .update(values, synchronize_session=False)
    )
    if updated != 1:
        db.session.rollback()
        raise ConcurrentUpdateConflict(f"lock state of user {user_id} changed concurrently")
    db.session.commit()


def _with_retries(fn, user_id: int):
    retries = current_app.config.get("LOCKOUT_UPDATE_RETRIES", 3)
    try:
        for attempt in range(retries):
            try:
                return fn()
            except ConcurrentUpdateConflict:
                logger.info("lock update conflict for user %s (try %d/%d)", user_id, attempt + 1, retries)
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("user store unavailable") from exc
    raise StoreUnavailable(f"lock state of user {user_id} kept changing after {retries} tries")


def _read_state(user_id: int):
    row = (
        db.session.query(User.failed_attempts, User.account_locked, User.lockout_until)
        .filter(User.id == user_id)
        .first()
    )
    if row is None:
        raise UserNotFound(f"user {user_id} not found")
    return row


def register_failure(user_id: int, now: Optional[datetime] = None) -> LockoutResult:
    """
    Count one failed authentication. Returns the new count and whether the account is locked.
    An expired lock is corrected to normal before counting.
    """
    max_attempts = current_app.config.get("MAX_LOGIN_ATTEMPTS", 5)
    lock_seconds = current_app.config.get("LOCKOUT_SECONDS", 1800)

    def attempt():
        ts = now or utcnow()
        failed, locked, until = _read_state(user_id)

        if locked and (until is None or ts < until):
            return LockoutResult(failed, True, until)

        base = 0 if locked else failed
        new_count = base + 1
        values = {
            User.failed_attempts: new_count,
            User.last_failed_attempt: ts,
            User.account_locked: False,
            User.lockout_until: None,
        }
        result = LockoutResult(new_count, False)
        if new_count >= max_attempts:
            lockout_until = ts + timedelta(seconds=lock_seconds)
            values[User.account_locked] = True
            values[User.lockout_until] = lockout_until
            result = LockoutResult(new_count, True, lockout_until)

        _conditional_update(user_id, failed, locked, values)
        if result.locked:
            logger.warning("user %s locked until %s after %d failures", user_id, result.lockout_until, new_count)
        return result

    return _with_retries(attempt, user_id)


def reset_attempts(user_id: int) -> None:
    """
    Clears failure counter after successful login.
    """
    try:
        User.query.filter(User.id == user_id).update(
            {
                User.failed_attempts: 0,
                User.last_failed_attempt: None,
                User.account_locked: False,
                User.lockout_until: None,
            },
            synchronize_session=False,
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("user store unavailable") from exc


def unlock_account(user_id: int) -> None:
    """Administrative unlock: back to normal whatever the current state."""
    reset_attempts(user_id)
    logger.info("user %s unlocked by administrator", user_id)


def lock_account(user_id: int, seconds: int, now: Optional[datetime] = None) -> datetime:
    """Administrative time-bounded lock."""
    if seconds <= 0:
        raise ValueError("lock duration must be positive")
    lockout_until = (now or utcnow()) + timedelta(seconds=seconds)

    def attempt():
        failed, locked, _ = _read_state(user_id)
        _conditional_update(user_id, failed, locked, {
            User.account_locked: True,
            User.lockout_until: lockout_until,
        })
        return lockout_until

    return _with_retries(attempt, user_id)

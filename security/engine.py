"""
Login decision engine.

Order for every attempt:
  blacklist -> IP rate limit (-> per-user rate limit) -> account lock
  -> credential check -> risk score -> ledger append -> lock transition
  -> blacklist escalation
"""
import enum
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, Optional

from flask import current_app
from sqlalchemy.engine import make_url
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.user import User
from security import bruteforce, ledger, risk
from security.errors import StoreUnavailable, UserNotFound
from security.password import verify_password
from security.rate_limit import RateLimiter
from utils import blocklist
from utils.audit import log_event
from utils.clock import utcnow
from utils.validation import validate_email, validate_identifier, validate_ip

logger = logging.getLogger(__name__)

FAIL_OPEN = "open"
FAIL_CLOSED = "closed"


class VerdictKind(str, enum.Enum):
    ALLOWED = "allowed"
    IP_BLOCKED = "ip_blocked"
    RATE_LIMITED = "rate_limited"
    ACCOUNT_LOCKED = "account_locked"
    DENIED = "denied"


@dataclass(frozen=True)
class Verdict:
    kind: VerdictKind
    reason: Optional[str] = None
    retry_after_seconds: Optional[int] = None
    locked_until: Optional[datetime] = None
    user_id: Optional[int] = None
    risk_score: Optional[int] = None
    attempt_id: Optional[int] = None

    @property
    def allowed(self) -> bool:
        return self.kind is VerdictKind.ALLOWED

    def to_dict(self) -> dict:
        out = {"verdict": self.kind.value}
        if self.reason is not None:
            out["reason"] = self.reason
        if self.retry_after_seconds is not None:
            out["retry_after_seconds"] = self.retry_after_seconds
        if self.locked_until is not None:
            out["locked_until"] = self.locked_until.isoformat()
        if self.user_id is not None:
            out["user_id"] = self.user_id
        if self.risk_score is not None:
            out["risk_score"] = self.risk_score
        return out


@dataclass
class LoginRequest:
    email: str
    password: str
    ip_address: str
    device_fingerprint: Optional[str] = None
    user_agent: Optional[str] = None
    geo_location: Optional[dict] = None


@dataclass(frozen=True)
class DefensePolicy:
    rate_limit_fail_mode: str = FAIL_CLOSED
    blacklist_fail_mode: str = FAIL_CLOSED
    fail_closed_retry_after: int = 60
    escalation_threshold: int = 70
    escalation_seconds: int = 86400

    @classmethod
    def from_config(cls, config) -> "DefensePolicy":
        for key in ("RATE_LIMIT_FAIL_MODE", "BLACKLIST_FAIL_MODE"):
            if config.get(key, FAIL_CLOSED) not in (FAIL_OPEN, FAIL_CLOSED):
                raise ValueError(f"{key} must be 'open' or 'closed'")
        return cls(
            rate_limit_fail_mode=config.get("RATE_LIMIT_FAIL_MODE", FAIL_CLOSED),
            blacklist_fail_mode=config.get("BLACKLIST_FAIL_MODE", FAIL_CLOSED),
            fail_closed_retry_after=config.get("FAIL_CLOSED_RETRY_AFTER_SECONDS", 60),
            escalation_threshold=config.get("RISK_ESCALATION_THRESHOLD", 70),
            escalation_seconds=config.get("BLACKLIST_ESCALATION_SECONDS", 86400),
        )


@dataclass
class DecisionEngine:
    ip_limiter: RateLimiter
    policy: DefensePolicy = field(default_factory=DefensePolicy)
    user_limiter: Optional[RateLimiter] = None
    # (stored digest, candidate password) -> match
    verify: Callable[[str, str], bool] = verify_password
    clock: Callable[[], datetime] = utcnow

    def evaluate(self, req: LoginRequest) -> Verdict:
        """
        Decide one login attempt.

        Raises InvalidInput before touching any store, and StoreUnavailable when the
        relational store fails while recording the outcome.
        """
        ip = validate_ip(req.ip_address)
        email = validate_email(req.email)
        fingerprint = validate_identifier(req.device_fingerprint)

        blocked = self._check_blacklist(ip)
        if blocked is not None:
            return blocked

        limited = self._consume(self.ip_limiter, f"ip:{ip}")
        if limited is not None:
            return limited
        if self.user_limiter is not None:
            limited = self._consume(self.user_limiter, f"user:{email}")
            if limited is not None:
                return limited

        user = self._load_user(email)
        now = self.clock()
        if user is not None and bruteforce.is_locked(user, now):
            logger.info("login for user %s refused: locked until %s", user.id, user.lockout_until)
            return Verdict(
                VerdictKind.ACCOUNT_LOCKED,
                locked_until=user.lockout_until,
                retry_after_seconds=bruteforce.seconds_remaining(user, now) or None,
                user_id=user.id,
            )

        user_id = user.id if user is not None else None
        success = user is not None and self.verify(user.password_hash, req.password or "")
        # Ledger order must match completion order, so stamp after the slow verify
        completed_at = self.clock()

        # Scored on the window before this attempt is appended
        score = risk.score(ip, fingerprint, now)
        attempt = ledger.record_attempt(
            ip_address=ip,
            success=success,
            user_id=user_id,
            device_fingerprint=fingerprint,
            user_agent=req.user_agent,
            risk_score=score,
            geo_location=req.geo_location,
            attempted_at=completed_at,
        )

        lockout = None
        if user_id is not None:
            if success:
                bruteforce.reset_attempts(user_id)
            else:
                lockout = self._register_failure(user_id, completed_at)

        if score >= self.policy.escalation_threshold:
            self._escalate(ip, score, completed_at)

        if success:
            return Verdict(VerdictKind.ALLOWED, user_id=user_id, risk_score=score, attempt_id=attempt.id)
        return Verdict(
            VerdictKind.DENIED,
            reason="invalid_credentials",
            locked_until=lockout.lockout_until if lockout and lockout.locked else None,
            risk_score=score,
            attempt_id=attempt.id,
        )

    def limiter_for(self, identifier: str) -> RateLimiter:
        """The limiter that owns an "ip:..." or "user:..." identifier."""
        if identifier.startswith("user:") and self.user_limiter is not None:
            return self.user_limiter
        return self.ip_limiter

    def _check_blacklist(self, ip: str) -> Optional[Verdict]:
        try:
            entry = blocklist.find_active(ip, self.clock())
        except StoreUnavailable as exc:
            if self.policy.blacklist_fail_mode == FAIL_OPEN:
                logger.error("blacklist check failed for %s, failing open: %s", ip, exc)
                return None
            logger.error("blacklist check failed for %s, failing closed: %s", ip, exc)
            return Verdict(VerdictKind.IP_BLOCKED, reason="blacklist unavailable")
        if entry is None:
            return None
        return Verdict(VerdictKind.IP_BLOCKED, reason=entry.reason)

    def _consume(self, limiter: RateLimiter, key: str) -> Optional[Verdict]:
        try:
            result = limiter.consume(key)
        except StoreUnavailable as exc:
            if self.policy.rate_limit_fail_mode == FAIL_OPEN:
                logger.error("rate limiter unavailable for %s, failing open: %s", key, exc)
                return None
            logger.error("rate limiter unavailable for %s, failing closed: %s", key, exc)
            return Verdict(VerdictKind.RATE_LIMITED, retry_after_seconds=self.policy.fail_closed_retry_after)
        if result.allowed:
            return None
        return Verdict(VerdictKind.RATE_LIMITED, retry_after_seconds=result.retry_after_seconds)

    def _load_user(self, email: str) -> Optional[User]:
        try:
            return User.query.filter_by(email=email).first()
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable("user store unavailable") from exc

    def _register_failure(self, user_id: int, now: datetime) -> Optional[bruteforce.LockoutResult]:
        try:
            return bruteforce.register_failure(user_id, now)
        except UserNotFound:
            # deleted mid-attempt: nothing left to lock
            logger.info("user %s vanished before its failure was counted", user_id)
            return None

    def _escalate(self, ip: str, score: int, now: datetime) -> None:
        expires_at = now + timedelta(seconds=self.policy.escalation_seconds)
        reason = f"automatic: risk score {score}"
        blocklist.upsert(ip, reason, expires_at)
        logger.warning("ip %s blacklisted until %s (risk score %d)", ip, expires_at, score)
        try:
            log_event(
                "IP_BLACKLIST_ESCALATION",
                entity="ip",
                entity_id=ip,
                metadata={"risk_score": score, "expires_at": expires_at.isoformat()},
                ip=ip,
            )
        except SQLAlchemyError as exc:
            db.session.rollback()
            raise StoreUnavailable("audit log unavailable") from exc


def build_engine(app, redis_client) -> DecisionEngine:
    config = app.config
    blocklist.check_dialect(make_url(config["SQLALCHEMY_DATABASE_URI"]).get_backend_name())
    ip_limiter = RateLimiter(
        redis_client,
        points=config["RATE_LIMIT_POINTS"],
        duration=config["RATE_LIMIT_DURATION_SECONDS"],
        block_duration=config["RATE_LIMIT_BLOCK_SECONDS"],
        key_prefix=config.get("RATE_LIMIT_KEY_PREFIX", "login_attempt"),
    )
    user_limiter = None
    if config.get("RATE_LIMIT_PER_USER"):
        user_limiter = RateLimiter(
            redis_client,
            points=config.get("RATE_LIMIT_USER_POINTS", config["RATE_LIMIT_POINTS"]),
            duration=config.get("RATE_LIMIT_USER_DURATION_SECONDS", config["RATE_LIMIT_DURATION_SECONDS"]),
            block_duration=config.get("RATE_LIMIT_USER_BLOCK_SECONDS", config["RATE_LIMIT_BLOCK_SECONDS"]),
            key_prefix=config.get("RATE_LIMIT_USER_KEY_PREFIX", "user_login"),
        )
    return DecisionEngine(
        ip_limiter=ip_limiter,
        policy=DefensePolicy.from_config(config),
        user_limiter=user_limiter,
    )


def get_engine() -> DecisionEngine:
    return current_app.extensions["login_defense"]

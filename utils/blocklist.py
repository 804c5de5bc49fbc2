from datetime import datetime
from typing import Optional

from sqlalchemy import or_
from sqlalchemy.dialects import mysql, postgresql, sqlite
from sqlalchemy.exc import SQLAlchemyError

from models import db
from models.ip_blacklist import IpBlacklist
from security.errors import StoreUnavailable
from utils.clock import utcnow

_INSERTS = {
    "sqlite": sqlite.insert,
    "postgresql": postgresql.insert,
}
UPSERT_DIALECTS = frozenset(_INSERTS) | {"mysql", "mariadb"}


def check_dialect(name: str) -> None:
    """Fail at startup when the database has no single-statement upsert we can build."""
    if name not in UPSERT_DIALECTS:
        raise RuntimeError(
            f"IP blacklist needs an atomic upsert; dialect {name!r} is not supported "
            f"(use one of {', '.join(sorted(UPSERT_DIALECTS))})"
        )


def _active(now: datetime):
    return or_(IpBlacklist.expires_at.is_(None), IpBlacklist.expires_at > now)


def _upsert_statement(values: dict):
    dialect = db.session.get_bind().dialect.name
    if dialect in _INSERTS:
        stmt = _INSERTS[dialect](IpBlacklist).values(**values)
        return stmt.on_conflict_do_update(
            index_elements=[IpBlacklist.ip_address],
            set_={"reason": stmt.excluded.reason, "expires_at": stmt.excluded.expires_at},
        )
    if dialect in ("mysql", "mariadb"):
        stmt = mysql.insert(IpBlacklist).values(**values)
        return stmt.on_duplicate_key_update(
            reason=stmt.inserted.reason,
            expires_at=stmt.inserted.expires_at,
        )
    raise RuntimeError(f"No atomic upsert for dialect {dialect!r}")


def upsert(ip_address: str, reason: str, expires_at: Optional[datetime] = None) -> IpBlacklist:
    """
    Insert or replace the entry for `ip_address` in one statement.
    Repeated calls overwrite reason and expiry; created_at keeps its first value.
    """
    values = {
        "ip_address": ip_address,
        "reason": (reason or "")[:255],
        "expires_at": expires_at,
        "created_at": utcnow(),
    }
    try:
        db.session.execute(_upsert_statement(values))
        db.session.commit()
        return IpBlacklist.query.filter_by(ip_address=ip_address).one()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("blacklist store unavailable") from exc


def find_active(ip_address: str, now: Optional[datetime] = None) -> Optional[IpBlacklist]:
    try:
        return (
            IpBlacklist.query
            .filter(IpBlacklist.ip_address == ip_address, _active(now or utcnow()))
            .first()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("blacklist store unavailable") from exc


def is_blacklisted(ip_address: str, now: Optional[datetime] = None) -> bool:
    return find_active(ip_address, now) is not None


def list_active(now: Optional[datetime] = None) -> list:
    try:
        return (
            IpBlacklist.query
            .filter(_active(now or utcnow()))
            .order_by(IpBlacklist.created_at.desc(), IpBlacklist.id.desc())
            .all()
        )
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("blacklist store unavailable") from exc


def remove(ip_address: str) -> bool:
    try:
        deleted = IpBlacklist.query.filter_by(ip_address=ip_address).delete(synchronize_session=False)
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("blacklist store unavailable") from exc
    return deleted > 0


def sweep_expired(now: Optional[datetime] = None) -> int:
    """Physically delete entries whose expiry has passed. Returns how many went."""
    cutoff = now or utcnow()
    try:
        deleted = (
            IpBlacklist.query
            .filter(IpBlacklist.expires_at.isnot(None), IpBlacklist.expires_at <= cutoff)
            .delete(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError as exc:
        db.session.rollback()
        raise StoreUnavailable("blacklist store unavailable") from exc
    return deleted

"""Tests for the login-attempt ledger."""
from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError

from models import db
from security import ledger
from security.errors import StoreUnavailable
from utils.clock import utcnow

IP = "198.51.100.7"


def test_record_assigns_id_and_timestamp(app):
    row = ledger.record_attempt(ip_address=IP, success=False, user_id=3, risk_score=20,
                                geo_location={"country": "NL"})
    assert row.id is not None
    assert row.attempted_at is not None
    assert row.risk_score == 20
    assert row.geo_location == {"country": "NL"}


def test_user_agent_is_truncated(app):
    row = ledger.record_attempt(ip_address=IP, success=True, user_agent="x" * 400)
    assert len(row.user_agent) == 255


def test_recent_by_ip_most_recent_first(app):
    now = utcnow()
    old = ledger.record_attempt(ip_address=IP, success=False, attempted_at=now - timedelta(minutes=5))
    new = ledger.record_attempt(ip_address=IP, success=True, attempted_at=now - timedelta(minutes=1))
    ledger.record_attempt(ip_address="203.0.113.9", success=False, attempted_at=now)

    rows = ledger.recent_by_ip(IP, 15)
    assert [r.id for r in rows] == [new.id, old.id]


def test_same_timestamp_ordered_by_insertion(app):
    at = utcnow() - timedelta(minutes=1)
    first = ledger.record_attempt(ip_address=IP, success=False, attempted_at=at)
    second = ledger.record_attempt(ip_address=IP, success=False, attempted_at=at)
    assert [r.id for r in ledger.recent_by_ip(IP, 15)] == [second.id, first.id]


def test_window_excludes_older_rows(app):
    now = utcnow()
    ledger.record_attempt(ip_address=IP, success=False, attempted_at=now - timedelta(minutes=30))
    assert ledger.recent_by_ip(IP, 15) == []
    assert len(ledger.recent_by_ip(IP, 60)) == 1


def test_default_window_is_fifteen_minutes(app):
    now = utcnow()
    ledger.record_attempt(ip_address=IP, success=False, attempted_at=now - timedelta(minutes=16))
    ledger.record_attempt(ip_address=IP, success=False, attempted_at=now - timedelta(minutes=14))
    assert len(ledger.recent_by_ip(IP)) == 1


def test_recent_failed_by_ip(app):
    ledger.record_attempt(ip_address=IP, success=True)
    failed = ledger.record_attempt(ip_address=IP, success=False)
    assert [r.id for r in ledger.recent_failed_by_ip(IP, 15)] == [failed.id]


def test_recent_by_user(app):
    mine = ledger.record_attempt(ip_address=IP, success=False, user_id=1)
    ledger.record_attempt(ip_address=IP, success=False, user_id=2)
    assert [r.id for r in ledger.recent_by_user(1, 15)] == [mine.id]


def test_queries_are_repeatable(app):
    ledger.record_attempt(ip_address=IP, success=False)
    first = [r.id for r in ledger.recent_by_ip(IP, 15)]
    second = [r.id for r in ledger.recent_by_ip(IP, 15)]
    assert first == second


def test_write_failure_is_hard_error(app, monkeypatch):
    def boom():
        raise OperationalError("INSERT INTO login_attempts", {}, Exception("database is locked"))

    monkeypatch.setattr(db.session, "commit", boom)
    with pytest.raises(StoreUnavailable):
        ledger.record_attempt(ip_address=IP, success=False)

"""
Shared pytest fixtures for the login defense test suite.

Strategy:
- Rate limiter tests: a fakeredis client only, no Flask app.
- Everything else: app built from TestConfig with in-memory SQLite and a
  fakeredis client injected as the shared fast store.
"""
from datetime import timedelta

import fakeredis
import pytest

from app import create_app
from config import TestConfig
from models import db
from models.user import User
from security import ledger
from security.password import hash_password
from utils.clock import utcnow
from utils.redis_store import close_redis

PASSWORD = "correct-horse-battery"

# argon2id is slow on purpose; hash once for the whole run
_hash_cache = {}


def password_hash() -> str:
    if PASSWORD not in _hash_cache:
        _hash_cache[PASSWORD] = hash_password(PASSWORD)
    return _hash_cache[PASSWORD]


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

@pytest.fixture()
def fake_redis():
    # A private server per test so keys never leak between tests
    return fakeredis.FakeRedis(server=fakeredis.FakeServer(), decode_responses=True)


@pytest.fixture()
def app(fake_redis):
    app = create_app(TestConfig, redis_client=fake_redis)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()
    close_redis(app)


@pytest.fixture()
def client(app):
    return app.test_client()


@pytest.fixture()
def engine(app):
    return app.extensions["login_defense"]


@pytest.fixture()
def admin_headers():
    return {"X-Admin-Token": TestConfig.ADMIN_API_TOKEN}


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------

@pytest.fixture()
def make_user(app):
    def _make(email="player@example.com", **kwargs):
        user = User(email=email, password_hash=password_hash(), **kwargs)
        db.session.add(user)
        db.session.commit()
        return user
    return _make


@pytest.fixture()
def seed_attempts(app):
    """Write ledger rows directly, bypassing the engine."""
    def _seed(count, ip="198.51.100.7", success=False, user_id=None,
              device_fingerprint=None, minutes_ago=1):
        at = utcnow() - timedelta(minutes=minutes_ago)
        return [
            ledger.record_attempt(
                ip_address=ip,
                success=success,
                user_id=user_id,
                device_fingerprint=device_fingerprint,
                attempted_at=at,
            )
            for _ in range(count)
        ]
    return _seed


import os

BASE_DIR = os.path.abspath(os.path.dirname(__file__))


def _engine_options(uri: str, timeout: int) -> dict:
    # Every relational call is bounded at the driver level
    if uri.startswith("sqlite"):
        connect_args = {"timeout": timeout}
    elif uri.startswith("postgresql"):
        connect_args = {
            "connect_timeout": timeout,
            "options": f"-c statement_timeout={timeout * 1000}",
        }
    else:
        connect_args = {}
    return {"pool_pre_ping": True, "connect_args": connect_args}


class Config:
    # SQLite database file stored next to the app as loginguard.db
    SQLALCHEMY_DATABASE_URI = os.getenv(
        "DATABASE_URL",
        "sqlite:///" + os.path.join(BASE_DIR, "loginguard.db")
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    DB_TIMEOUT_SECONDS = int(os.getenv("DB_TIMEOUT_SECONDS", "5"))
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI, DB_TIMEOUT_SECONDS)

    # Shared fast store (rate limiter counters and block flags)
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")
    REDIS_SOCKET_TIMEOUT_SECONDS = float(os.getenv("REDIS_SOCKET_TIMEOUT_SECONDS", "0.5"))

    # Rate limiter: P points per D seconds, B seconds block once exhausted
    RATE_LIMIT_POINTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    RATE_LIMIT_DURATION_SECONDS = int(os.getenv("LOGIN_TIMEOUT", "900"))        # 15 minutes
    RATE_LIMIT_BLOCK_SECONDS = int(os.getenv("LOCKOUT_DURATION", "86400"))      # 24 hours
    RATE_LIMIT_KEY_PREFIX = "login_attempt"
    RATE_LIMIT_PER_USER = os.getenv("RATE_LIMIT_PER_USER", "false").lower() == "true"
    # Per-account limiter, keyed on the normalized email with its own budget
    RATE_LIMIT_USER_POINTS = int(os.getenv("RATE_LIMIT_USER_POINTS", "10"))
    RATE_LIMIT_USER_DURATION_SECONDS = int(os.getenv("RATE_LIMIT_USER_DURATION_SECONDS", "900"))
    RATE_LIMIT_USER_BLOCK_SECONDS = int(os.getenv("RATE_LIMIT_USER_BLOCK_SECONDS", "3600"))
    RATE_LIMIT_USER_KEY_PREFIX = "user_login"

    # Number of reverse proxies in front of the app. 0 ignores X-Forwarded-For
    # and keys on the socket peer; N trusts only the hops those N proxies appended.
    TRUSTED_PROXY_COUNT = int(os.getenv("TRUSTED_PROXY_COUNT", "0"))

    # "closed" rejects when a store is unreachable, "open" lets the attempt through
    RATE_LIMIT_FAIL_MODE = os.getenv("RATE_LIMIT_FAIL_MODE", "closed")
    BLACKLIST_FAIL_MODE = os.getenv("BLACKLIST_FAIL_MODE", "closed")
    FAIL_CLOSED_RETRY_AFTER_SECONDS = 60

    # Account lockout (independent of the rate limiter block)
    MAX_LOGIN_ATTEMPTS = int(os.getenv("MAX_LOGIN_ATTEMPTS", "5"))
    LOCKOUT_SECONDS = int(os.getenv("ACCOUNT_LOCKOUT_SECONDS", "1800"))
    LOCKOUT_UPDATE_RETRIES = 3

    # Risk scoring and automatic escalation to the IP blacklist
    RISK_WINDOW_HOURS = 24
    RISK_ESCALATION_THRESHOLD = int(os.getenv("RISK_ESCALATION_THRESHOLD", "70"))
    BLACKLIST_ESCALATION_SECONDS = int(os.getenv("BLACKLIST_ESCALATION_SECONDS", "86400"))

    # Default trailing window for ledger queries
    LEDGER_DEFAULT_WINDOW_MINUTES = 15

    # Admin endpoints are refused unless this is set
    ADMIN_API_TOKEN = os.getenv("ADMIN_API_TOKEN")

    # Basic app settings
    DEBUG = False


class TestConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    SQLALCHEMY_ENGINE_OPTIONS = _engine_options(SQLALCHEMY_DATABASE_URI, 5)
    ADMIN_API_TOKEN = "test-admin-token"
    RATE_LIMIT_POINTS = 5
    RATE_LIMIT_DURATION_SECONDS = 900
    RATE_LIMIT_BLOCK_SECONDS = 86400
    RATE_LIMIT_FAIL_MODE = "closed"
    BLACKLIST_FAIL_MODE = "closed"
    # the test client stands in for one proxy via X-Forwarded-For
    TRUSTED_PROXY_COUNT = 1
    MAX_LOGIN_ATTEMPTS = 5
    LOCKOUT_SECONDS = 1800

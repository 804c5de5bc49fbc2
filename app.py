from flask import Flask, jsonify
from config import Config
from routes import health_bp, auth_bp, admin_bp, audit_bp

from models import db
from flask_migrate import Migrate
from werkzeug.middleware.proxy_fix import ProxyFix
from security.engine import build_engine
from security.errors import InvalidInput, StoreUnavailable
from utils.redis_store import init_redis


def create_app(config_class=Config, redis_client=None):
    app = Flask(__name__)
    app.config.from_object(config_class)

    # remote_addr only honours X-Forwarded-For hops added by our own proxies
    proxies = app.config.get("TRUSTED_PROXY_COUNT", 0)
    if proxies > 0:
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=proxies)

    # Register routes
    app.register_blueprint(health_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(admin_bp)
    app.register_blueprint(audit_bp)

    # Database init
    db.init_app(app)

    # Migrations
    Migrate(app, db)

    # Shared fast store, handed to the engine explicitly
    redis = init_redis(app, redis_client)
    app.extensions["login_defense"] = build_engine(app, redis)

    @app.errorhandler(InvalidInput)
    def _invalid_input(err):
        return jsonify(error=str(err)), 400

    @app.errorhandler(StoreUnavailable)
    def _store_unavailable(err):
        app.logger.error("store unavailable: %s", err, exc_info=err.__cause__ or err)
        return jsonify(error="Service temporarily unavailable"), 503

    @app.after_request
    def add_security_headers(resp):
        resp.headers["X-Content-Type-Options"] = "nosniff"
        resp.headers["X-Frame-Options"] = "DENY"
        resp.headers["Referrer-Policy"] = "no-referrer"
        resp.headers["Content-Security-Policy"] = "default-src 'none'; frame-ancestors 'none';"
        return resp


    register_cli(app)


    return app

#-------------------------
from datetime import timedelta

import click
from models.user import User
from security import bruteforce
from security.engine import get_engine
from security.password import hash_password
from utils import blocklist
from utils.clock import utcnow
from utils.validation import normalize_email, validate_ip

def register_cli(app):
    @app.cli.command("create-user")
    @click.argument("email")
    @click.password_option()
    def create_user(email, password):
        """Create a user that can log in through /auth/login."""
        email = normalize_email(email)
        if User.query.filter_by(email=email).first():
            print("User already exists")
            return
        db.session.add(User(email=email, password_hash=hash_password(password)))
        db.session.commit()
        print(f"{email} created")

    @app.cli.command("unlock-user")
    @click.argument("email")
    def unlock_user(email):
        """Clear the lockout state of a user (admin unlock)."""
        user = User.query.filter_by(email=normalize_email(email)).first()
        if not user:
            print("User not found")
            return
        bruteforce.unlock_account(user.id)
        print(f"{user.email} unlocked")

    @app.cli.command("blacklist-ip")
    @click.argument("ip")
    @click.option("--reason", required=True)
    @click.option("--expires-in", type=int, default=None, help="Seconds until the entry expires; permanent if omitted.")
    def blacklist_ip(ip, reason, expires_in):
        """Add or refresh an IP blacklist entry."""
        ip = validate_ip(ip)
        expires_at = utcnow() + timedelta(seconds=expires_in) if expires_in else None
        blocklist.upsert(ip, reason, expires_at)
        print(f"{ip} blacklisted" + (f" until {expires_at.isoformat()}" if expires_at else " permanently"))

    @app.cli.command("unblacklist-ip")
    @click.argument("ip")
    def unblacklist_ip(ip):
        """Remove an IP from the blacklist."""
        ip = validate_ip(ip)
        print(f"{ip} removed" if blocklist.remove(ip) else f"{ip} was not blacklisted")

    @app.cli.command("sweep-blacklist")
    def sweep_blacklist():
        """Delete expired blacklist entries."""
        print(f"{blocklist.sweep_expired()} expired entries removed")

    @app.cli.command("reset-rate-limit")
    @click.argument("identifier")
    def reset_rate_limit(identifier):
        """Reset the rate limiter for an identifier such as ip:203.0.113.9."""
        get_engine().limiter_for(identifier).reset(identifier)
        print(f"{identifier} reset")

#-------------------------




if __name__ == "__main__":
    app = create_app()
    # Run locally
    app.run(host="127.0.0.1", port=5002)

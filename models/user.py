from utils.clock import utcnow
from models.db import db


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)

    email = db.Column(db.String(255), unique=True, nullable=False, index=True)
    password_hash = db.Column(db.String(255), nullable=False)

    # Lock state: only the decision engine and admin operations write these
    failed_attempts = db.Column(db.Integer, default=0, nullable=False)
    last_failed_attempt = db.Column(db.DateTime, nullable=True)
    account_locked = db.Column(db.Boolean, default=False, nullable=False)
    lockout_until = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow, nullable=False)

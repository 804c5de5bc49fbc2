from models.db import db


class LoginAttempt(db.Model):
    """One authentication outcome. Rows are append-only."""

    __tablename__ = "login_attempts"
    __table_args__ = (
        db.Index("ix_login_attempts_ip_attempted_at", "ip_address", "attempted_at"),
        db.Index("ix_login_attempts_user_attempted_at", "user_id", "attempted_at"),
        db.Index("ix_login_attempts_device_attempted_at", "device_fingerprint", "attempted_at"),
    )

    id = db.Column(db.Integer, primary_key=True)

    # Referenced by value: unknown accounts are recorded with user_id NULL
    user_id = db.Column(db.Integer, nullable=True)
    ip_address = db.Column(db.String(64), nullable=False)
    device_fingerprint = db.Column(db.String(255), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)

    success = db.Column(db.Boolean, nullable=False)
    risk_score = db.Column(db.Integer, default=0, nullable=False)
    geo_location = db.Column(db.JSON, nullable=True)

    attempted_at = db.Column(db.DateTime, nullable=False)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "ip_address": self.ip_address,
            "device_fingerprint": self.device_fingerprint,
            "user_agent": self.user_agent,
            "success": self.success,
            "risk_score": self.risk_score,
            "geo_location": self.geo_location,
            "attempted_at": self.attempted_at.isoformat(),
        }

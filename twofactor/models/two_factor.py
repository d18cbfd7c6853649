# twofactor/models/two_factor.py

from datetime import datetime, timezone
from twofactor import db


def utcnow():
    return datetime.now(timezone.utc)


class TwoFactorAuth(db.Model):
    __tablename__ = "two_factor_auth"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), unique=True, nullable=False, index=True)

    # Active credential, only set once a setup has been confirmed
    secret = db.Column(db.String(64), nullable=True)
    backup_codes = db.Column(db.JSON, nullable=False, default=list)
    is_enabled = db.Column(db.Boolean, default=False, nullable=False)
    verified_at = db.Column(db.DateTime, nullable=True)

    # Setup awaiting confirmation; the active credential stays in force meanwhile
    pending_secret = db.Column(db.String(64), nullable=True)
    pending_backup_codes = db.Column(db.JSON, nullable=True)

    version = db.Column(db.Integer, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    user = db.relationship("User", back_populates="two_factor")

    __mapper_args__ = {"version_id_col": version}

    def to_status(self):
        """Public view of the record; never includes secrets or backup codes."""
        return {
            "user_id": self.user_id,
            "is_enabled": bool(self.is_enabled),
            "setup_pending": self.pending_secret is not None,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
            "backup_codes_remaining": len(self.backup_codes or []),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self):
        return f"<TwoFactorAuth user={self.user_id} enabled={self.is_enabled}>"

# twofactor/models/login_log.py

from twofactor import db
from twofactor.models.two_factor import utcnow


class LoginLog(db.Model):
    """One row per sign-in step: password check, second factor, logout."""
    __tablename__ = "login_logs"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), nullable=True, index=True)
    status = db.Column(db.String(40), nullable=False)
    method = db.Column(db.String(20), nullable=True)        # "password" / "totp" / "backup_code"
    ip = db.Column(db.String(64), nullable=True)
    user_agent = db.Column(db.String(255), nullable=True)
    timestamp = db.Column(db.DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<LoginLog {self.username} {self.status}/{self.method or '-'}>"

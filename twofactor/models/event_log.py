# twofactor/models/event_log.py

from twofactor.models.two_factor import utcnow
from twofactor import db


class EventLog(db.Model):
    __tablename__ = "event_logs"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, nullable=True, index=True)
    message = db.Column(db.String(255), nullable=False)
    category = db.Column(db.String(64), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    def __repr__(self):
        return f"<EventLog {self.category or 'info'} {self.message}>"

# caalm/models/auth_event.py

from datetime import datetime
from caalm import db


class AuthEvent(db.Model):
    __tablename__ = "auth_events"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(64), nullable=True, index=True)
    ip = db.Column(db.String(64), nullable=True)
    status = db.Column(db.String(40), nullable=False)
    user_agent = db.Column(db.String(255), nullable=True)
    timestamp = db.Column(db.DateTime, default=datetime.utcnow, index=True)

    def __repr__(self):
        return f"<AuthEvent {self.user_id} {self.status} {self.timestamp}>"

# caalm/models/user.py

from datetime import datetime
from flask_login import UserMixin

from caalm import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    # Identity issued by the external auth provider
    account_id = db.Column(db.String(64), unique=True, nullable=False, index=True)

    email = db.Column(db.String(255), nullable=False, index=True)
    full_name = db.Column(db.String(120), nullable=True)
    role = db.Column(db.String(20), default="user")
    department = db.Column(db.String(64), nullable=True)

    # Two-factor
    two_factor_enabled = db.Column(db.Boolean, default=False)
    two_factor_secret = db.Column(db.String(64), nullable=True)
    two_factor_factor_id = db.Column(db.String(128), nullable=True, index=True)
    two_factor_setup_at = db.Column(db.DateTime, nullable=True)

    created_at = db.Column(db.DateTime, default=datetime.utcnow)

    def get_id(self):
        return str(self.id)

    @property
    def has_2fa(self) -> bool:
        return bool(self.two_factor_enabled and self.two_factor_secret)

    def enable_two_factor(self, secret: str, factor_id: str):
        self.two_factor_enabled = True
        self.two_factor_secret = secret
        self.two_factor_factor_id = factor_id
        self.two_factor_setup_at = datetime.utcnow()

    def disable_two_factor(self):
        self.two_factor_enabled = False
        self.two_factor_secret = None
        self.two_factor_factor_id = None
        self.two_factor_setup_at = None

    def __repr__(self):
        return f"<User {self.account_id} {self.email}>"

# twofactor/models/user.py

from twofactor.models.two_factor import utcnow
from flask_login import UserMixin
from werkzeug.security import generate_password_hash, check_password_hash

from twofactor import db


class User(db.Model, UserMixin):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)

    password_hash = db.Column(db.String(255), nullable=False)

    # Metadata
    role = db.Column(db.String(20), default="customer")     # customer / restaurant / driver / admin / superadmin
    email = db.Column(db.String(255), nullable=True, index=True)

    created_at = db.Column(db.DateTime, default=utcnow)

    two_factor = db.relationship(
        "TwoFactorAuth", back_populates="user", uselist=False, cascade="all, delete-orphan"
    )

    # Flask-Login identifier -> use DB primary key
    def get_id(self):
        return str(self.id)

    # Password helpers
    def set_password(self, password: str):
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    # Role helpers
    def is_admin(self):
        return (self.role or "").lower() in ("admin", "superadmin")

    @property
    def account_name(self):
        return self.email or self.username

    def __repr__(self):
        return f"<User {self.username}>"

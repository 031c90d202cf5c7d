# detailers/models/user.py
from datetime import datetime
from enum import Enum
import uuid

import bcrypt
from sqlalchemy import CheckConstraint

from detailers.infra.db import db


class UserRole(str, Enum):
    STUDENT = "STUDENT"
    ADMIN = "ADMIN"
    GUEST = "GUEST"


class User(db.Model):
    __tablename__ = 'users'
    __table_args__ = (
        CheckConstraint("role IN ('STUDENT', 'ADMIN', 'GUEST')", name="ck_users_role"),
    )

    user_id = db.Column(db.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    email = db.Column(db.String(255), unique=True, nullable=False, index=True)

    # bcrypt embeds its salt in the hash; the salt column mirrors it for the
    # legacy schema, which requires both for STUDENT/ADMIN rows
    password_hash = db.Column(db.String(255), nullable=True)
    salt = db.Column(db.String(255), nullable=True)

    first_name = db.Column(db.String(100), nullable=False, default="")
    last_name = db.Column(db.String(100), nullable=False, default="")
    role = db.Column(db.String(20), nullable=False, default=UserRole.STUDENT.value, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)

    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    # --- password helpers ---
    def set_password(self, raw_password: str):
        salt = bcrypt.gensalt()
        self.password_hash = bcrypt.hashpw(raw_password.encode("utf-8"), salt).decode("utf-8")
        self.salt = salt.decode("utf-8")

    def check_password(self, raw_password: str) -> bool:
        if not self.password_hash:
            return False
        return bcrypt.checkpw(raw_password.encode("utf-8"), self.password_hash.encode("utf-8"))

    @property
    def has_password(self) -> bool:
        return bool(self.password_hash)

    @property
    def username(self) -> str:
        return self.email.split("@")[0]

    # --- safe serializer ---
    def to_dict(self):
        return {
            "user_id": self.user_id,
            "email": self.email,
            "first_name": self.first_name,
            "last_name": self.last_name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    def __repr__(self) -> str:  # pragma: no cover
        return f"<User {self.email} ({self.role})>"

"""
wrapflow
User model: the acting principal behind every template mutation.

Authentication itself (login, password reset, sessions) lives outside this
service; the users table is only read to resolve a principal's role and to
record workflow ownership.
"""

import uuid
from datetime import datetime, timezone

from wrapflow.models import db


USER_ROLES = {"ADMINISTRATOR", "MANAGER", "STAFF"}


def _uuid():
    return str(uuid.uuid4())


class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    email = db.Column(db.String(200), nullable=False, unique=True)
    name = db.Column(db.String(200), default="")
    role = db.Column(
        db.String(20), nullable=False, default="STAFF",
        comment="ADMINISTRATOR | MANAGER | STAFF",
    )
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        db.CheckConstraint(
            "role IN ('ADMINISTRATOR','MANAGER','STAFF')",
            name="ck_user_role",
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "is_active": self.is_active,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.email} [{self.role}]>"

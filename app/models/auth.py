"""
Team Resource Planner
Auth model — application login accounts.

Accounts are separate from team members; the check-in flow maps a user to a
member by username.
"""

from datetime import datetime, timezone

from app.models import db


class User(db.Model):
    """Login account with a bcrypt password hash."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(100), unique=True, nullable=False)
    password = db.Column(db.String(200), nullable=False, comment="bcrypt hash")
    force_password_change = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    @property
    def is_admin(self):
        return (self.username or "").lower() == "admin"

    def to_dict(self):
        return {
            "id": self.id,
            "username": self.username,
            "forcePasswordChange": bool(self.force_password_change),
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self):
        return f"<User {self.id}: {self.username}>"

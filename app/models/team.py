"""
Team Resource Planner
People models — team members and their time off.

Models:
    - TeamMember: person whose capacity is planned (weekly hours, team, role)
    - TimeOff: absence record (PTO, sick, bank holiday, ...) for a member
"""

from datetime import datetime, timezone

from app.models import db


def _iso(value):
    return value.isoformat() if value else None


# ── TeamMember ───────────────────────────────────────────────────────────────


class TeamMember(db.Model):
    """
    Person whose capacity is planned.

    weekly_hours drives FTE (weekly_hours / 40) and quarter capacity
    (weekly_hours × 13).
    """

    __tablename__ = "team_members"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False)
    email = db.Column(db.String(200), unique=True, nullable=True)
    role = db.Column(db.String(100), nullable=True)
    team = db.Column(db.String(100), nullable=True)
    weekly_hours = db.Column(db.Float, nullable=False, default=40)

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "email": self.email,
            "role": self.role,
            "team": self.team,
            "weekly_hours": self.weekly_hours,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<TeamMember {self.id}: {self.name} ({self.role})>"


# ── TimeOff ──────────────────────────────────────────────────────────────────


class TimeOff(db.Model):
    """Absence record for a team member, in hours."""

    __tablename__ = "time_off"

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    type = db.Column(
        db.String(30),
        nullable=False,
        comment="pto | sick | bank_holiday | birthday | parental | bereavement | remote | other | ...",
    )
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    hours = db.Column(db.Float, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)
    source = db.Column(db.String(20), default="manual", comment="manual | ical | personio")

    created_at = db.Column(
        db.DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
    )

    member = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "team_member_id": self.team_member_id,
            "type": self.type,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "hours": self.hours,
            "notes": self.notes,
            "source": self.source,
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<TimeOff {self.id}: member={self.team_member_id} {self.type} {self.start_date}>"

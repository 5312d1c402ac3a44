"""
Team Resource Planner
Capacity planning models.

Models:
    - WeeklyAllocation: planned % of a member's week on an initiative
    - Allocation: legacy date-ranged allocation against a goal / task
"""

from datetime import datetime, timezone

from app.models import db


def _iso(value):
    return value.isoformat() if value else None


def _now():
    return datetime.now(timezone.utc)


class WeeklyAllocation(db.Model):
    """Planned allocation for one member, one initiative, one week (Monday)."""

    __tablename__ = "weekly_allocations"
    __table_args__ = (
        db.UniqueConstraint(
            "team_member_id", "initiative_id", "week_start", name="uq_weekly_allocation",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False,
    )
    week_start = db.Column(db.Date, nullable=False)
    allocation_percentage = db.Column(db.Float, nullable=False, default=0)
    status = db.Column(db.String(20), default="planned", comment="planned | confirmed | actual")
    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, nullable=True, comment="users.id of the planner")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    member = db.relationship("TeamMember")
    initiative = db.relationship("Initiative")

    def to_dict(self):
        return {
            "id": self.id,
            "team_member_id": self.team_member_id,
            "initiative_id": self.initiative_id,
            "week_start": _iso(self.week_start),
            "allocation_percentage": self.allocation_percentage,
            "status": self.status,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return (
            f"<WeeklyAllocation {self.id}: member={self.team_member_id} "
            f"initiative={self.initiative_id} {self.week_start} {self.allocation_percentage}%>"
        )


class Allocation(db.Model):
    """Legacy allocation of a member to a goal or task over a date range."""

    __tablename__ = "allocations"

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    goal_id = db.Column(
        db.Integer, db.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True,
    )
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="SET NULL"), nullable=True,
    )
    allocation_percentage = db.Column(db.Float, nullable=False)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    calculated_hours = db.Column(db.Float, default=0)
    source = db.Column(db.String(20), default="manual")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    member = db.relationship("TeamMember")
    goal = db.relationship("Goal")
    task = db.relationship("Task")

    def to_dict(self):
        return {
            "id": self.id,
            "team_member_id": self.team_member_id,
            "goal_id": self.goal_id,
            "task_id": self.task_id,
            "allocation_percentage": self.allocation_percentage,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "calculated_hours": self.calculated_hours,
            "source": self.source,
            "member_name": self.member.name if self.member else None,
            "goal_title": self.goal.title if self.goal else None,
            "task_title": self.task.title if self.task else None,
            "created_at": _iso(self.created_at),
        }

"""
Team Resource Planner
Weekly check-in models.

Models:
    - WeeklyCheckin: one member's report for one week (draft | submitted)
    - WeeklyCheckinItem: time share + progress contribution on an initiative
      or key result within a check-in
"""

from datetime import datetime, timezone

from app.models import db


def _iso(value):
    return value.isoformat() if value else None


def _now():
    return datetime.now(timezone.utc)


class WeeklyCheckin(db.Model):
    __tablename__ = "weekly_checkins"
    __table_args__ = (
        db.UniqueConstraint("team_member_id", "week_start", name="uq_weekly_checkin"),
    )

    id = db.Column(db.Integer, primary_key=True)
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    week_start = db.Column(db.Date, nullable=False)
    total_allocation_pct = db.Column(db.Float, default=0)
    status = db.Column(db.String(20), default="draft", comment="draft | submitted")
    submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    notes = db.Column(db.Text, nullable=True)
    mood = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    member = db.relationship("TeamMember")
    items = db.relationship(
        "WeeklyCheckinItem",
        backref="checkin",
        cascade="all, delete-orphan",
        order_by="WeeklyCheckinItem.id",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "team_member_id": self.team_member_id,
            "week_start": _iso(self.week_start),
            "total_allocation_pct": self.total_allocation_pct or 0,
            "status": self.status,
            "submitted_at": _iso(self.submitted_at),
            "notes": self.notes,
            "mood": self.mood,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<WeeklyCheckin {self.id}: member={self.team_member_id} {self.week_start} ({self.status})>"


class WeeklyCheckinItem(db.Model):
    __tablename__ = "weekly_checkin_items"

    id = db.Column(db.Integer, primary_key=True)
    checkin_id = db.Column(
        db.Integer, db.ForeignKey("weekly_checkins.id", ondelete="CASCADE"), nullable=False,
    )
    initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="SET NULL"), nullable=True,
    )
    key_result_id = db.Column(
        db.Integer, db.ForeignKey("key_results.id", ondelete="SET NULL"), nullable=True,
    )
    time_allocation_pct = db.Column(db.Float, default=0)
    progress_contribution_pct = db.Column(db.Float, default=0)
    current_value_increment = db.Column(db.Float, nullable=True)
    notes = db.Column(db.Text, nullable=True)

    initiative = db.relationship("Initiative")
    key_result = db.relationship("KeyResult")

    def to_dict(self):
        initiative = self.initiative
        key_result = self.key_result
        goal = None
        if initiative is not None and initiative.key_result is not None:
            goal = initiative.key_result.goal
        elif key_result is not None:
            goal = key_result.goal
        return {
            "id": self.id,
            "checkin_id": self.checkin_id,
            "initiative_id": self.initiative_id,
            "key_result_id": self.key_result_id,
            "time_allocation_pct": self.time_allocation_pct or 0,
            "progress_contribution_pct": self.progress_contribution_pct or 0,
            "current_value_increment": self.current_value_increment,
            "notes": self.notes,
            "initiative_name": initiative.name if initiative else None,
            "category": initiative.category if initiative else None,
            "key_result_title": key_result.title if key_result else None,
            "goal_title": goal.title if goal else None,
        }

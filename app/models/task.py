"""
Team Resource Planner
Task models — Miro board tasks and their assignees.

Models:
    - Task: task, optionally linked to a goal
    - TaskAssignee: assignee as seen on the source board (source: miro | manual)
    - ResolvedAssignee: final assignee set chosen when board and goal disagree
    - TaskTimeEntry: hours a member worked on a task in a week
"""

from datetime import datetime, timezone

from app.models import db


def _iso(value):
    return value.isoformat() if value else None


def _now():
    return datetime.now(timezone.utc)


class Task(db.Model):
    __tablename__ = "tasks"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(100), nullable=True)
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(20), default="todo", comment="todo | in-progress | done | blocked")
    priority = db.Column(db.String(20), default="medium", comment="low | medium | high | critical")
    effort_estimate = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, default=0)
    parent_goal_id = db.Column(
        db.Integer, db.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True,
    )
    source = db.Column(db.String(20), default="manual", comment="manual | miro")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    parent_goal = db.relationship("Goal")

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "effort_estimate": self.effort_estimate,
            "actual_hours": self.actual_hours or 0,
            "parent_goal_id": self.parent_goal_id,
            "goal_title": self.parent_goal.title if self.parent_goal else None,
            "source": self.source,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Task {self.id}: {self.title} ({self.status})>"


class TaskAssignee(db.Model):
    __tablename__ = "task_assignees"
    __table_args__ = (
        db.UniqueConstraint("task_id", "team_member_id", name="uq_task_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    source = db.Column(db.String(20), default="manual", comment="manual | miro")

    member = db.relationship("TeamMember")


class ResolvedAssignee(db.Model):
    __tablename__ = "resolved_assignees"

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    resolution_source = db.Column(db.String(20), default="manual")
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    member = db.relationship("TeamMember")


class TaskTimeEntry(db.Model):
    __tablename__ = "task_time_entries"
    __table_args__ = (
        db.UniqueConstraint("task_id", "team_member_id", "week_start", name="uq_task_time_entry"),
    )

    id = db.Column(db.Integer, primary_key=True)
    task_id = db.Column(
        db.Integer, db.ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    week_start = db.Column(db.Date, nullable=False)
    hours_worked = db.Column(db.Float, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    member = db.relationship("TeamMember")
    task = db.relationship("Task")

    def to_dict(self):
        return {
            "id": self.id,
            "task_id": self.task_id,
            "task_title": self.task.title if self.task else None,
            "team_member_id": self.team_member_id,
            "member_name": self.member.name if self.member else None,
            "week_start": _iso(self.week_start),
            "hours_worked": self.hours_worked,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

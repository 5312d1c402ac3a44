"""
Team Resource Planner
OKR domain models — Goals → Key Results → Initiatives.

Models:
    - Goal: quarterly objective (manual or imported from Leapsome)
    - GoalAssignee: member ↔ goal link
    - KeyResult: measurable result under a goal
    - KeyResultAssignee: member ↔ key result link
    - KeyResultUpdate: status / comment log entry for a key result
    - Initiative: unit of work delivering a key result (or BAU work)
    - InitiativeAssignment: member ↔ initiative link with role + allocation
    - InitiativeUpdate: status / comment log entry for an initiative
    - InitiativeTimeEntry: hours a member logged on an initiative in a week

Progress values are percentages (0-100). Goal and key result progress are
derived from their children, see app.services.progress_cascade.
"""

from datetime import datetime, timezone

from app.models import db


def _iso(value):
    return value.isoformat() if value else None


def _now():
    return datetime.now(timezone.utc)


# ── Goal ─────────────────────────────────────────────────────────────────────


class Goal(db.Model):
    """Quarterly objective. ``quarter`` is "Q<n> <yyyy>", "All" or "Backlog"."""

    __tablename__ = "goals"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(100), nullable=True, comment="Leapsome ID")
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    quarter = db.Column(db.String(20), nullable=False)
    status = db.Column(
        db.String(20), default="active",
        comment="active | completed | cancelled | draft",
    )
    progress = db.Column(db.Float, default=0)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    team = db.Column(db.String(100), nullable=True)
    source = db.Column(db.String(20), default="manual", comment="manual | leapsome")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    owner = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "title": self.title,
            "description": self.description,
            "quarter": self.quarter,
            "status": self.status,
            "progress": self.progress or 0,
            "owner_id": self.owner_id,
            "team": self.team,
            "source": self.source,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Goal {self.id}: {self.title} ({self.quarter})>"


class GoalAssignee(db.Model):
    __tablename__ = "goal_assignees"
    __table_args__ = (
        db.UniqueConstraint("goal_id", "team_member_id", name="uq_goal_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    goal_id = db.Column(
        db.Integer, db.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    source = db.Column(db.String(20), default="manual", comment="manual | leapsome")

    member = db.relationship("TeamMember")

    def __repr__(self):
        return f"<GoalAssignee goal={self.goal_id} member={self.team_member_id}>"


# ── KeyResult ────────────────────────────────────────────────────────────────


class KeyResult(db.Model):
    """Measurable result under a goal."""

    __tablename__ = "key_results"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(100), nullable=True)
    goal_id = db.Column(
        db.Integer, db.ForeignKey("goals.id", ondelete="CASCADE"), nullable=False,
    )
    title = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    owner_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    metric = db.Column(db.String(200), nullable=True)
    current_value = db.Column(db.Float, nullable=True)
    target_value = db.Column(db.Float, nullable=True)
    progress = db.Column(db.Float, default=0)
    status = db.Column(
        db.String(20), default="active",
        comment="active | completed | cancelled | draft",
    )
    source = db.Column(db.String(20), default="manual")
    estimated_hours = db.Column(db.Float, nullable=True)
    assigned_quarter = db.Column(db.String(20), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    goal = db.relationship("Goal")
    owner = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "goal_id": self.goal_id,
            "title": self.title,
            "description": self.description,
            "owner_id": self.owner_id,
            "metric": self.metric,
            "current_value": self.current_value,
            "target_value": self.target_value,
            "progress": self.progress or 0,
            "status": self.status,
            "source": self.source,
            "estimated_hours": self.estimated_hours,
            "assigned_quarter": self.assigned_quarter,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<KeyResult {self.id}: {self.title}>"


class KeyResultAssignee(db.Model):
    __tablename__ = "key_result_assignees"
    __table_args__ = (
        db.UniqueConstraint("key_result_id", "team_member_id", name="uq_kr_assignee"),
    )

    id = db.Column(db.Integer, primary_key=True)
    key_result_id = db.Column(
        db.Integer, db.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    source = db.Column(db.String(20), default="manual", comment="manual | owner | leapsome")

    member = db.relationship("TeamMember")


class KeyResultUpdate(db.Model):
    """Status change or comment on a key result."""

    __tablename__ = "key_result_updates"

    id = db.Column(db.Integer, primary_key=True)
    key_result_id = db.Column(
        db.Integer, db.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=False,
    )
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    link = db.Column(db.String(1000), nullable=True)
    updated_by = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    author = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "key_result_id": self.key_result_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "comment": self.comment,
            "link": self.link,
            "updated_by": self.updated_by,
            "updated_by_name": self.author.name if self.author else None,
            "created_at": _iso(self.created_at),
        }


# ── Initiative ───────────────────────────────────────────────────────────────


class Initiative(db.Model):
    """
    Unit of work under a key result.

    BAU work is modelled as initiatives under the "Business as Usual" goal's
    key result, categorized by ``category``.
    """

    __tablename__ = "initiatives"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(100), nullable=True)
    name = db.Column(db.String(500), nullable=False)
    description = db.Column(db.Text, nullable=True)
    key_result_id = db.Column(
        db.Integer, db.ForeignKey("key_results.id", ondelete="CASCADE"), nullable=True,
    )
    parent_goal_id = db.Column(
        db.Integer, db.ForeignKey("goals.id", ondelete="SET NULL"), nullable=True,
    )
    project_priority = db.Column(db.String(10), nullable=True, comment="P1 | P2 | P3 | P4")
    team = db.Column(db.String(100), nullable=True)
    status = db.Column(
        db.String(20), default="active",
        comment="active | draft | in-progress | completed | on-hold | cancelled",
    )
    owner_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    source = db.Column(db.String(20), default="manual", comment="manual | leapsome | miro | checkin")
    progress = db.Column(db.Float, default=0)
    estimated_hours = db.Column(db.Float, nullable=True)
    actual_hours = db.Column(db.Float, default=0)
    current_value = db.Column(db.Float, nullable=True)
    assigned_quarter = db.Column(db.String(20), nullable=True)
    category = db.Column(db.String(100), nullable=True, comment="BAU category")
    tracker_url = db.Column(db.String(1000), nullable=True)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_now)
    updated_at = db.Column(db.DateTime(timezone=True), default=_now, onupdate=_now)

    key_result = db.relationship("KeyResult")
    parent_goal = db.relationship("Goal")
    owner = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "external_id": self.external_id,
            "name": self.name,
            "description": self.description,
            "key_result_id": self.key_result_id,
            "parent_goal_id": self.parent_goal_id,
            "project_priority": self.project_priority,
            "team": self.team,
            "status": self.status,
            "owner_id": self.owner_id,
            "source": self.source,
            "progress": self.progress or 0,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours or 0,
            "current_value": self.current_value,
            "assigned_quarter": self.assigned_quarter,
            "category": self.category,
            "tracker_url": self.tracker_url,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

    def __repr__(self):
        return f"<Initiative {self.id}: {self.name} ({self.status})>"


class InitiativeAssignment(db.Model):
    """Member working on an initiative, with a role and planned allocation."""

    __tablename__ = "initiative_assignments"
    __table_args__ = (
        db.UniqueConstraint("initiative_id", "team_member_id", name="uq_initiative_assignment"),
    )

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False,
    )
    team_member_id = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="CASCADE"), nullable=False,
    )
    role = db.Column(db.String(20), default="Contributor", comment="Lead | Contributor | Support")
    allocation_percentage = db.Column(db.Float, default=0)
    start_date = db.Column(db.Date, nullable=True)
    end_date = db.Column(db.Date, nullable=True)
    source = db.Column(db.String(20), default="manual")

    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    member = db.relationship("TeamMember")
    initiative = db.relationship("Initiative")

    def to_dict(self):
        member = self.member
        return {
            "id": self.id,
            "initiative_id": self.initiative_id,
            "team_member_id": self.team_member_id,
            "role": self.role,
            "allocation_percentage": self.allocation_percentage or 0,
            "start_date": _iso(self.start_date),
            "end_date": _iso(self.end_date),
            "source": self.source,
            "member_name": member.name if member else None,
            "member_email": member.email if member else None,
            "member_team": member.team if member else None,
            "member_role": member.role if member else None,
            "weekly_hours": member.weekly_hours if member else None,
        }


class InitiativeUpdate(db.Model):
    """Status change or comment on an initiative."""

    __tablename__ = "initiative_updates"

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False,
    )
    previous_status = db.Column(db.String(20), nullable=True)
    new_status = db.Column(db.String(20), nullable=True)
    comment = db.Column(db.Text, nullable=True)
    link = db.Column(db.String(1000), nullable=True)
    updated_by = db.Column(
        db.Integer, db.ForeignKey("team_members.id", ondelete="SET NULL"), nullable=True,
    )
    created_at = db.Column(db.DateTime(timezone=True), default=_now)

    author = db.relationship("TeamMember")

    def to_dict(self):
        return {
            "id": self.id,
            "initiative_id": self.initiative_id,
            "previous_status": self.previous_status,
            "new_status": self.new_status,
            "comment": self.comment,
            "link": self.link,
            "updated_by": self.updated_by,
            "updated_by_name": self.author.name if self.author else None,
            "created_at": _iso(self.created_at),
        }


class InitiativeTimeEntry(db.Model):
    """Hours a member worked on an initiative during one week."""

    __tablename__ = "initiative_time_entries"
    __table_args__ = (
        db.UniqueConstraint(
            "initiative_id", "team_member_id", "week_start", name="uq_initiative_time_entry",
        ),
    )

    id = db.Column(db.Integer, primary_key=True)
    initiative_id = db.Column(
        db.Integer, db.ForeignKey("initiatives.id", ondelete="CASCADE"), nullable=False,
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

    def to_dict(self):
        return {
            "id": self.id,
            "initiative_id": self.initiative_id,
            "team_member_id": self.team_member_id,
            "member_name": self.member.name if self.member else None,
            "week_start": _iso(self.week_start),
            "hours_worked": self.hours_worked,
            "notes": self.notes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
        }

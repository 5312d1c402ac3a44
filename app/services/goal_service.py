"""Goal service — objectives, their assignees and the goal → KR → initiative tree.

Transaction policy: public functions call db.session.commit() on success.
"""
import logging

from sqlalchemy import case, func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.okr import (
    Goal,
    GoalAssignee,
    Initiative,
    InitiativeAssignment,
    InitiativeTimeEntry,
    KeyResult,
    KeyResultAssignee,
)
from app.models.task import Task, TaskAssignee
from app.models.team import TeamMember
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

GOAL_STATUSES = {"active", "completed", "cancelled", "draft"}
BAU_GOAL_MARKER = "Business as Usual"

# Most urgent first
TASK_PRIORITY_ORDER = case(
    {"critical": 0, "high": 1, "medium": 2, "low": 3},
    value=Task.priority,
    else_=4,
)


def _validate_enum(value: str, allowed: set[str], field_name: str) -> str | None:
    """Return error message if value not in allowed set, else None."""
    if value and value not in allowed:
        return f"Invalid {field_name}: '{value}'. Allowed: {sorted(allowed)}"
    return None


def get_goal_or_raise(goal_id) -> Goal:
    goal = db.session.get(Goal, goal_id)
    if goal is None:
        raise NotFoundError("Goal", goal_id)
    return goal


def goal_assignees(goal_id: int) -> list[dict]:
    rows = (
        db.session.query(TeamMember, GoalAssignee.source)
        .join(GoalAssignee, GoalAssignee.team_member_id == TeamMember.id)
        .filter(GoalAssignee.goal_id == goal_id)
        .order_by(GoalAssignee.id)
        .all()
    )
    return [{"id": m.id, "name": m.name, "role": m.role, "source": source} for m, source in rows]


def calculate_goal_progress(goal_id: int) -> int:
    """Mean key result progress (all statuses), 0 when the goal has none."""
    avg = db.session.query(func.avg(func.coalesce(KeyResult.progress, 0))).filter(
        KeyResult.goal_id == goal_id,
    ).scalar()
    return round_half_up(avg or 0)


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def list_goals(*, quarter=None, team=None, status=None) -> list[dict]:
    """Goals with owner, task counts, calculated progress, logged hours and assignees.

    Ordered by quarter (newest first), then title.
    """
    query = Goal.query
    if quarter:
        query = query.filter(Goal.quarter == quarter)
    if team:
        query = query.filter(Goal.team == team)
    if status:
        query = query.filter(Goal.status == status)
    goals = query.order_by(Goal.quarter.desc(), Goal.title).all()

    result = []
    for goal in goals:
        total_hours = (
            db.session.query(func.coalesce(func.sum(InitiativeTimeEntry.hours_worked), 0))
            .join(Initiative, InitiativeTimeEntry.initiative_id == Initiative.id)
            .join(KeyResult, Initiative.key_result_id == KeyResult.id)
            .filter(KeyResult.goal_id == goal.id)
            .scalar()
        )
        data = goal.to_dict()
        data.update({
            "owner_name": goal.owner.name if goal.owner else None,
            "task_count": Task.query.filter_by(parent_goal_id=goal.id).count(),
            "completed_tasks": Task.query.filter_by(parent_goal_id=goal.id, status="done").count(),
            "progress": calculate_goal_progress(goal.id),
            "total_hours": total_hours,
            "assignees": goal_assignees(goal.id),
        })
        result.append(data)
    return result


def get_goal_detail(goal_id) -> dict:
    """Goal with calculated progress, initiative hours, assignees and tasks."""
    goal = get_goal_or_raise(goal_id)

    total_hours = (
        db.session.query(func.coalesce(func.sum(Initiative.actual_hours), 0))
        .join(KeyResult, Initiative.key_result_id == KeyResult.id)
        .filter(KeyResult.goal_id == goal.id)
        .scalar()
    )

    tasks = []
    for task in (
        Task.query.filter_by(parent_goal_id=goal.id)
        .order_by(TASK_PRIORITY_ORDER, Task.title)
        .all()
    ):
        names = [
            name for (name,) in db.session.query(TeamMember.name)
            .join(TaskAssignee, TaskAssignee.team_member_id == TeamMember.id)
            .filter(TaskAssignee.task_id == task.id)
            .order_by(TaskAssignee.id)
            .all()
        ]
        row = task.to_dict()
        row["assignee_names"] = ",".join(names) if names else None
        tasks.append(row)

    data = goal.to_dict()
    data.update({
        "owner_name": goal.owner.name if goal.owner else None,
        "progress": calculate_goal_progress(goal.id),
        "total_hours": total_hours or 0,
        "assignees": goal_assignees(goal.id),
        "tasks": tasks,
    })
    return data


def list_goal_key_results(goal_id) -> list[dict]:
    """Key results of a goal, each with its initiatives and assignees."""
    goal = get_goal_or_raise(goal_id)

    result = []
    for kr in KeyResult.query.filter_by(goal_id=goal.id).order_by(KeyResult.title).all():
        initiatives = []
        for initiative in Initiative.query.filter_by(key_result_id=kr.id).order_by(Initiative.name).all():
            row = initiative.to_dict()
            row["owner_name"] = initiative.owner.name if initiative.owner else None
            row["assignees"] = [
                {"id": m.id, "name": m.name}
                for m in TeamMember.query.join(
                    InitiativeAssignment, InitiativeAssignment.team_member_id == TeamMember.id,
                ).filter(InitiativeAssignment.initiative_id == initiative.id)
                .order_by(InitiativeAssignment.id).all()
            ]
            initiatives.append(row)

        data = kr.to_dict()
        data.update({
            "owner_name": kr.owner.name if kr.owner else None,
            "initiatives": initiatives,
            "assignees": [
                {"id": m.id, "name": m.name}
                for m in TeamMember.query.join(
                    KeyResultAssignee, KeyResultAssignee.team_member_id == TeamMember.id,
                ).filter(KeyResultAssignee.key_result_id == kr.id)
                .order_by(KeyResultAssignee.id).all()
            ],
        })
        result.append(data)
    return result


def list_quarters() -> list[str]:
    rows = db.session.query(Goal.quarter).distinct().order_by(Goal.quarter.desc()).all()
    return [q for (q,) in rows if q]


def find_bau_goal() -> Goal | None:
    return (
        Goal.query.filter(Goal.title.contains(BAU_GOAL_MARKER))
        .order_by(Goal.id)
        .first()
    )


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_goal(data: dict) -> Goal:
    """Create a manual goal and attach ``assignee_ids``.

    Raises:
        ValidationError: title/quarter missing or invalid status.
    """
    title = (data.get("title") or "").strip()
    quarter = (data.get("quarter") or "").strip()
    if not title or not quarter:
        raise ValidationError("Title and quarter are required")
    status = data.get("status") or "active"
    if err := _validate_enum(status, GOAL_STATUSES, "status"):
        raise ValidationError(err)

    goal = Goal(
        title=title,
        description=data.get("description") or None,
        quarter=quarter,
        status=status,
        owner_id=data.get("owner_id") or None,
        team=data.get("team") or None,
        source="manual",
    )
    db.session.add(goal)
    db.session.flush()

    for member_id in data.get("assignee_ids") or []:
        db.session.add(GoalAssignee(goal_id=goal.id, team_member_id=member_id, source="manual"))

    db.session.commit()
    logger.info("Created goal %s '%s' (%s)", goal.id, goal.title, goal.quarter)
    return goal


def update_goal(goal_id, data: dict) -> Goal:
    """Partial update; empty title/quarter/status keep their stored values."""
    goal = get_goal_or_raise(goal_id)

    if data.get("status"):
        if err := _validate_enum(data["status"], GOAL_STATUSES, "status"):
            raise ValidationError(err)
        goal.status = data["status"]
    if data.get("title"):
        goal.title = data["title"]
    if data.get("quarter"):
        goal.quarter = data["quarter"]
    for field in ("description", "progress", "owner_id", "team"):
        if field in data:
            setattr(goal, field, data[field])

    db.session.commit()
    return goal


def delete_goal(goal_id) -> None:
    goal = get_goal_or_raise(goal_id)
    db.session.delete(goal)
    db.session.commit()
    logger.info("Deleted goal %s", goal_id)


# ── Assignees ────────────────────────────────────────────────────────────────


def add_goal_assignee(goal_id, team_member_id) -> TeamMember:
    if not team_member_id:
        raise ValidationError("team_member_id is required")
    goal = get_goal_or_raise(goal_id)
    member = db.session.get(TeamMember, team_member_id)
    if member is None:
        raise NotFoundError("Team member", team_member_id)
    if GoalAssignee.query.filter_by(goal_id=goal.id, team_member_id=member.id).first():
        raise ValidationError("Member already assigned to this goal")

    db.session.add(GoalAssignee(goal_id=goal.id, team_member_id=member.id, source="manual"))
    db.session.commit()
    return member


def remove_goal_assignee(goal_id, member_id) -> None:
    goal = get_goal_or_raise(goal_id)
    link = GoalAssignee.query.filter_by(goal_id=goal.id, team_member_id=member_id).first()
    if link is None:
        raise NotFoundError("Assignee", member_id)
    db.session.delete(link)
    db.session.commit()

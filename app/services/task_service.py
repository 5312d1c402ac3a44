"""Task service — tasks, their three assignee views and conflict resolution.

Transaction policy: public functions call db.session.commit() on success.

Assignee views:
    - miroAssignees:     task_assignees (Miro import or manual)
    - leapsomeAssignees: assignees of the task's parent goal
    - resolvedAssignees: the result of a manual conflict resolution

A task has a conflict when both of the first two are non-empty and some
Miro assignee is not a Leapsome assignee.
"""
import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.okr import Goal, GoalAssignee
from app.models.task import ResolvedAssignee, Task, TaskAssignee
from app.models.team import TeamMember
from app.services.goal_service import TASK_PRIORITY_ORDER

logger = logging.getLogger(__name__)

TASK_STATUSES = {"todo", "in-progress", "done", "blocked"}
TASK_PRIORITIES = {"low", "medium", "high", "critical"}


def get_task_or_raise(task_id) -> Task:
    task = db.session.get(Task, task_id)
    if task is None:
        raise NotFoundError("Task", task_id)
    return task


def _validate(data: dict) -> None:
    if data.get("status") and data["status"] not in TASK_STATUSES:
        raise ValidationError(f"Invalid status: '{data['status']}'. Allowed: {sorted(TASK_STATUSES)}")
    if data.get("priority") and data["priority"] not in TASK_PRIORITIES:
        raise ValidationError(f"Invalid priority: '{data['priority']}'. Allowed: {sorted(TASK_PRIORITIES)}")


def _task_assignees(task_id, source=None) -> list[dict]:
    query = (
        db.session.query(TeamMember, TaskAssignee.source)
        .join(TaskAssignee, TaskAssignee.team_member_id == TeamMember.id)
        .filter(TaskAssignee.task_id == task_id)
    )
    if source:
        query = query.filter(TaskAssignee.source == source)
    return [
        {"id": m.id, "name": m.name, "role": m.role, "source": src}
        for m, src in query.order_by(TaskAssignee.id).all()
    ]


def _goal_assignees(goal_id) -> list[dict]:
    if not goal_id:
        return []
    rows = (
        TeamMember.query.join(GoalAssignee, GoalAssignee.team_member_id == TeamMember.id)
        .filter(GoalAssignee.goal_id == goal_id)
        .order_by(GoalAssignee.id)
        .all()
    )
    return [{"id": m.id, "name": m.name, "role": m.role, "source": "leapsome"} for m in rows]


def _resolved_assignees(task_id) -> list[dict]:
    rows = (
        db.session.query(TeamMember, ResolvedAssignee.resolution_source)
        .join(ResolvedAssignee, ResolvedAssignee.team_member_id == TeamMember.id)
        .filter(ResolvedAssignee.task_id == task_id)
        .order_by(ResolvedAssignee.id)
        .all()
    )
    return [
        {"id": m.id, "name": m.name, "role": m.role, "resolution_source": src}
        for m, src in rows
    ]


def has_conflict(miro: list[dict], leapsome: list[dict]) -> bool:
    if not miro or not leapsome:
        return False
    leapsome_ids = {a["id"] for a in leapsome}
    return not all(a["id"] in leapsome_ids for a in miro)


def serialize_task(task: Task, *, miro_source=None) -> dict:
    miro = _task_assignees(task.id, source=miro_source)
    leapsome = _goal_assignees(task.parent_goal_id)
    resolved = _resolved_assignees(task.id)
    data = task.to_dict()
    data.update({
        "goal_quarter": task.parent_goal.quarter if task.parent_goal else None,
        "miroAssignees": miro,
        "leapsomeAssignees": leapsome,
        "resolvedAssignees": resolved,
        "hasConflict": has_conflict(miro, leapsome),
        "isResolved": bool(resolved),
    })
    return data


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def list_tasks(*, status=None, goal_id=None, unlinked=False, conflicts_only=False) -> list[dict]:
    """Tasks with assignee views; ``conflicts_only`` keeps unresolved conflicts."""
    query = Task.query
    if status:
        query = query.filter(Task.status == status)
    if goal_id:
        query = query.filter(Task.parent_goal_id == goal_id)
    if unlinked:
        query = query.filter(Task.parent_goal_id.is_(None))

    tasks = [serialize_task(t) for t in query.order_by(TASK_PRIORITY_ORDER, Task.title).all()]
    if conflicts_only:
        tasks = [t for t in tasks if t["hasConflict"] and not t["isResolved"]]
    return tasks


def get_task_detail(task_id) -> dict:
    """Single task; miroAssignees are limited to Miro-sourced links."""
    return serialize_task(get_task_or_raise(task_id), miro_source="miro")


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_task(data: dict) -> Task:
    """Create a manual task and attach ``assignee_ids``.

    Raises:
        ValidationError: title missing, invalid status or priority.
    """
    if not data.get("title"):
        raise ValidationError("Title is required")
    _validate(data)

    task = Task(
        title=data["title"],
        description=data.get("description") or None,
        status=data.get("status") or "todo",
        effort_estimate=data.get("effort_estimate") or None,
        priority=data.get("priority") or "medium",
        parent_goal_id=data.get("parent_goal_id") or None,
        source="manual",
    )
    db.session.add(task)
    db.session.flush()
    for member_id in data.get("assignee_ids") or []:
        db.session.add(TaskAssignee(task_id=task.id, team_member_id=member_id, source="manual"))
    db.session.commit()
    logger.info("Created task %s '%s'", task.id, task.title)
    return task


def update_task(task_id, data: dict) -> Task:
    task = get_task_or_raise(task_id)
    _validate(data)
    for field in ("title", "status", "priority"):
        if data.get(field):
            setattr(task, field, data[field])
    for field in ("description", "effort_estimate", "actual_hours", "parent_goal_id"):
        if field in data:
            setattr(task, field, data[field])
    db.session.commit()
    return task


def link_to_goal(task_id, goal_id) -> Task:
    """Set or clear (``goal_id`` falsy) the task's parent goal."""
    task = get_task_or_raise(task_id)
    if goal_id and db.session.get(Goal, goal_id) is None:
        raise NotFoundError("Goal", goal_id)
    task.parent_goal_id = goal_id or None
    db.session.commit()
    return task


def resolve_assignees(task_id, assignee_ids, resolution_source=None) -> dict:
    """Replace the resolved assignee set for a task."""
    task = get_task_or_raise(task_id)
    if not assignee_ids:
        raise ValidationError("At least one assignee is required")

    ResolvedAssignee.query.filter_by(task_id=task.id).delete(synchronize_session="fetch")
    for member_id in assignee_ids:
        db.session.add(ResolvedAssignee(
            task_id=task.id,
            team_member_id=member_id,
            resolution_source=resolution_source or "manual",
        ))
    db.session.commit()

    data = task.to_dict()
    data["resolvedAssignees"] = _resolved_assignees(task.id)
    return data


def add_assignee(task_id, team_member_id) -> None:
    task = get_task_or_raise(task_id)
    if not team_member_id:
        raise ValidationError("team_member_id is required")
    if TaskAssignee.query.filter_by(task_id=task.id, team_member_id=team_member_id).first():
        raise ValidationError("Already assigned")
    db.session.add(TaskAssignee(task_id=task.id, team_member_id=team_member_id, source="manual"))
    db.session.commit()


def remove_assignee(task_id, member_id) -> None:
    task = get_task_or_raise(task_id)
    TaskAssignee.query.filter_by(task_id=task.id, team_member_id=member_id).delete(
        synchronize_session="fetch",
    )
    db.session.commit()


def delete_task(task_id) -> None:
    task = get_task_or_raise(task_id)
    db.session.delete(task)
    db.session.commit()
    logger.info("Deleted task %s", task_id)

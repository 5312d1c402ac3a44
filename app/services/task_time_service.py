"""Weekly hours logged against tasks.

Transaction policy: public functions call db.session.commit() on success.
tasks.actual_hours is kept equal to the sum of the task's entries.
"""
import logging

from sqlalchemy import func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.task import Task, TaskTimeEntry
from app.models.team import TeamMember
from app.services.task_service import get_task_or_raise
from app.utils.helpers import parse_date

logger = logging.getLogger(__name__)


def _week(value):
    week = parse_date(value)
    if week is None:
        raise ValidationError(f"Invalid week_start: '{value}'")
    return week


def update_task_actual_hours(task_id) -> float:
    db.session.flush()
    total = db.session.query(func.coalesce(func.sum(TaskTimeEntry.hours_worked), 0)).filter(
        TaskTimeEntry.task_id == task_id,
    ).scalar()
    task = db.session.get(Task, task_id)
    if task is not None:
        task.actual_hours = total
    return total


def list_for_task(task_id) -> dict:
    task = get_task_or_raise(task_id)
    entries = (
        TaskTimeEntry.query.join(TeamMember, TaskTimeEntry.team_member_id == TeamMember.id)
        .filter(TaskTimeEntry.task_id == task.id)
        .order_by(TaskTimeEntry.week_start.desc(), TeamMember.name)
        .all()
    )
    return {
        "task_id": task.id,
        "total_hours": task.actual_hours or 0,
        "entries": [e.to_dict() for e in entries],
    }


def list_for_week(week_start) -> dict:
    """All entries of a week, also grouped per member with totals."""
    week = _week(week_start)
    entries = (
        TaskTimeEntry.query
        .join(TeamMember, TaskTimeEntry.team_member_id == TeamMember.id)
        .join(Task, TaskTimeEntry.task_id == Task.id)
        .filter(TaskTimeEntry.week_start == week)
        .order_by(TeamMember.name, Task.title)
        .all()
    )

    by_member: dict[int, dict] = {}
    rows = []
    for entry in entries:
        row = entry.to_dict()
        rows.append(row)
        group = by_member.setdefault(entry.team_member_id, {
            "member_id": entry.team_member_id,
            "member_name": row["member_name"],
            "total_hours": 0,
            "entries": [],
        })
        group["total_hours"] += entry.hours_worked or 0
        group["entries"].append(row)

    return {"week_start": week.isoformat(), "members": list(by_member.values()), "entries": rows}


def list_for_task_week(task_id, week_start) -> dict:
    task = get_task_or_raise(task_id)
    week = _week(week_start)
    entries = (
        TaskTimeEntry.query.join(TeamMember, TaskTimeEntry.team_member_id == TeamMember.id)
        .filter(TaskTimeEntry.task_id == task.id, TaskTimeEntry.week_start == week)
        .order_by(TeamMember.name)
        .all()
    )
    return {
        "task_id": task.id,
        "week_start": week.isoformat(),
        "week_total": sum(e.hours_worked or 0 for e in entries),
        "total_hours": task.actual_hours or 0,
        "entries": [e.to_dict() for e in entries],
    }


def upsert_entry(task_id, data: dict) -> dict:
    """Create, update or (0 hours) delete the entry for (task, member, week).

    Returns:
        {"entry": dict | None, "task_total_hours": float}
    """
    task = get_task_or_raise(task_id)
    member_id = data.get("team_member_id")
    if not member_id or db.session.get(TeamMember, member_id) is None:
        raise NotFoundError("Team member", member_id)
    if not data.get("week_start"):
        raise ValidationError("week_start is required")
    hours = data.get("hours_worked")
    if hours is None:
        raise ValidationError("hours_worked is required")
    if hours < 0:
        raise ValidationError("hours_worked must be non-negative")
    week = _week(data["week_start"])

    entry = TaskTimeEntry.query.filter_by(task_id=task.id, team_member_id=member_id, week_start=week).first()
    if entry is not None and hours == 0:
        db.session.delete(entry)
        entry = None
    elif entry is not None:
        entry.hours_worked = hours
        entry.notes = data.get("notes") or None
    elif hours > 0:
        entry = TaskTimeEntry(
            task_id=task.id,
            team_member_id=member_id,
            week_start=week,
            hours_worked=hours,
            notes=data.get("notes") or None,
        )
        db.session.add(entry)

    total = update_task_actual_hours(task.id)
    db.session.commit()
    return {"entry": entry.to_dict() if entry else None, "task_total_hours": total}


def delete_entry(entry_id) -> float:
    """Delete an entry; returns the task's recalculated total."""
    entry = db.session.get(TaskTimeEntry, entry_id)
    if entry is None:
        raise NotFoundError("Time entry", entry_id)
    task_id = entry.task_id
    db.session.delete(entry)
    total = update_task_actual_hours(task_id)
    db.session.commit()
    return total

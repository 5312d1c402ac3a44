"""Weekly allocation service — planned % of a member's week per initiative.

Transaction policy: public functions call db.session.commit() on success.
All week dates are normalized to the Monday of their week.
"""
import logging
from datetime import timedelta

from sqlalchemy import func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.capacity import WeeklyAllocation
from app.models.okr import Initiative, InitiativeAssignment
from app.models.team import TeamMember
from app.services.dates import WEEKS_PER_QUARTER, get_monday, weeks_between

logger = logging.getLogger(__name__)

ALLOCATION_STATUSES = {"planned", "confirmed", "actual"}


def _week(value, field_name="week_start"):
    try:
        return get_monday(value)
    except ValueError as exc:
        raise ValidationError(f"Invalid {field_name}: '{value}'") from exc


def _role_for(allocation: WeeklyAllocation) -> str | None:
    return db.session.query(InitiativeAssignment.role).filter_by(
        initiative_id=allocation.initiative_id, team_member_id=allocation.team_member_id,
    ).scalar()


def serialize_allocation(allocation: WeeklyAllocation, **extra) -> dict:
    data = allocation.to_dict()
    member = allocation.member
    initiative = allocation.initiative
    data.update({
        "member_name": member.name if member else None,
        "member_team": member.team if member else None,
        "weekly_hours": member.weekly_hours if member else None,
        "initiative_name": initiative.name if initiative else None,
        "project_priority": initiative.project_priority if initiative else None,
        "role": _role_for(allocation),
    })
    data.update(extra)
    return data


def _member_week_allocations(member_id, week) -> list[dict]:
    rows = (
        WeeklyAllocation.query.join(Initiative, WeeklyAllocation.initiative_id == Initiative.id)
        .filter(WeeklyAllocation.team_member_id == member_id, WeeklyAllocation.week_start == week)
        .order_by(Initiative.project_priority, Initiative.name)
        .all()
    )
    return [serialize_allocation(a) for a in rows]


def _require_member(member_id) -> TeamMember:
    member = db.session.get(TeamMember, member_id)
    if member is None:
        raise NotFoundError("Team member", member_id)
    return member


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def list_allocations(*, team_member_id=None, initiative_id=None, week_start=None,
                     start_date=None, end_date=None, status=None) -> list[dict]:
    query = (
        WeeklyAllocation.query
        .join(TeamMember, WeeklyAllocation.team_member_id == TeamMember.id)
        .join(Initiative, WeeklyAllocation.initiative_id == Initiative.id)
    )
    if team_member_id:
        query = query.filter(WeeklyAllocation.team_member_id == team_member_id)
    if initiative_id:
        query = query.filter(WeeklyAllocation.initiative_id == initiative_id)
    if week_start:
        query = query.filter(WeeklyAllocation.week_start == _week(week_start))
    if start_date:
        query = query.filter(WeeklyAllocation.week_start >= _week(start_date, "start_date"))
    if end_date:
        query = query.filter(WeeklyAllocation.week_start <= _week(end_date, "end_date"))
    if status:
        query = query.filter(WeeklyAllocation.status == status)

    rows = query.order_by(WeeklyAllocation.week_start.desc(), TeamMember.name, Initiative.name).all()
    return [serialize_allocation(a) for a in rows]


def member_allocations(member_id, *, week_start=None, start_date=None, end_date=None) -> dict:
    """A member's allocations plus the total % per week."""
    member = _require_member(member_id)

    query = (
        WeeklyAllocation.query.join(Initiative, WeeklyAllocation.initiative_id == Initiative.id)
        .filter(WeeklyAllocation.team_member_id == member.id)
    )
    if week_start:
        query = query.filter(WeeklyAllocation.week_start == _week(week_start))
    if start_date:
        query = query.filter(WeeklyAllocation.week_start >= _week(start_date, "start_date"))
    if end_date:
        query = query.filter(WeeklyAllocation.week_start <= _week(end_date, "end_date"))
    rows = query.order_by(WeeklyAllocation.week_start, Initiative.project_priority, Initiative.name).all()

    weekly_totals: dict[str, float] = {}
    allocations = []
    for allocation in rows:
        key = allocation.week_start.isoformat()
        weekly_totals[key] = weekly_totals.get(key, 0) + (allocation.allocation_percentage or 0)
        allocations.append(serialize_allocation(
            allocation, initiative_status=allocation.initiative.status,
        ))

    return {"member": member.to_dict(), "allocations": allocations, "weeklyTotals": weekly_totals}


def week_summary(week_start) -> dict:
    """Total allocation and initiative count per member for one week."""
    if not week_start:
        raise ValidationError("week_start is required")
    week = _week(week_start)

    rows = (
        db.session.query(
            TeamMember,
            func.coalesce(func.sum(WeeklyAllocation.allocation_percentage), 0),
            func.count(WeeklyAllocation.id),
        )
        .outerjoin(
            WeeklyAllocation,
            (WeeklyAllocation.team_member_id == TeamMember.id) & (WeeklyAllocation.week_start == week),
        )
        .group_by(TeamMember.id)
        .order_by(TeamMember.name)
        .all()
    )
    members = [
        {
            "id": member.id,
            "name": member.name,
            "team": member.team,
            "weekly_hours": member.weekly_hours,
            "total_allocation": total,
            "initiative_count": count,
        }
        for member, total, count in rows
    ]
    return {"week_start": week.isoformat(), "members": members}


def list_weeks(start_date=None, end_date=None, count=None) -> list[str]:
    """Mondays between two dates, or the next ``count`` (default 13) weeks."""
    if start_date and end_date:
        return [w.isoformat() for w in weeks_between(_week(start_date, "start_date"), _week(end_date, "end_date"))]
    try:
        weeks_count = int(count) if count else WEEKS_PER_QUARTER
    except (TypeError, ValueError):
        weeks_count = WEEKS_PER_QUARTER
    monday = get_monday()
    return [(monday + timedelta(weeks=i)).isoformat() for i in range(weeks_count)]


# ═════════════════════════════════════════════════════════════════════════════
# MUTATIONS
# ═════════════════════════════════════════════════════════════════════════════


def _upsert(member_id, initiative_id, week, percentage, status, notes, created_by) -> tuple[WeeklyAllocation, bool]:
    allocation = WeeklyAllocation.query.filter_by(
        team_member_id=member_id, initiative_id=initiative_id, week_start=week,
    ).first()
    created = allocation is None
    if created:
        allocation = WeeklyAllocation(
            team_member_id=member_id,
            initiative_id=initiative_id,
            week_start=week,
            created_by=created_by,
        )
        db.session.add(allocation)
    allocation.allocation_percentage = percentage
    allocation.status = status or "planned"
    allocation.notes = notes or None
    db.session.flush()
    return allocation, created


def upsert_allocation(data: dict, created_by=None) -> tuple[dict, bool]:
    """Create or update the allocation for (member, initiative, week).

    Returns:
        (allocation dict, created flag)
    """
    team_member_id = data.get("team_member_id")
    initiative_id = data.get("initiative_id")
    week_start = data.get("week_start")
    if not team_member_id or not initiative_id or not week_start or data.get("allocation_percentage") is None:
        raise ValidationError(
            "team_member_id, initiative_id, week_start, and allocation_percentage are required"
        )
    if data.get("status") and data["status"] not in ALLOCATION_STATUSES:
        raise ValidationError(f"Invalid status: '{data['status']}'. Allowed: {sorted(ALLOCATION_STATUSES)}")
    week = _week(week_start)
    _require_member(team_member_id)
    if db.session.get(Initiative, initiative_id) is None:
        raise NotFoundError("Initiative", initiative_id)

    allocation, created = _upsert(
        team_member_id, initiative_id, week, data["allocation_percentage"],
        data.get("status"), data.get("notes"), created_by,
    )
    db.session.commit()
    return serialize_allocation(allocation), created


def bulk_replace(data: dict, created_by=None) -> dict:
    """Replace a member's allocations for one week with the given list.

    Allocations for initiatives absent from the list are removed. A total
    above 100 % is saved but reported as a warning.
    """
    team_member_id = data.get("team_member_id")
    week_start = data.get("week_start")
    allocations = data.get("allocations")
    if not team_member_id or not week_start or not isinstance(allocations, list):
        raise ValidationError("team_member_id, week_start, and allocations array are required")
    week = _week(week_start)
    _require_member(team_member_id)

    total = sum(a.get("allocation_percentage") or 0 for a in allocations)
    keep_ids = [a["initiative_id"] for a in allocations if a.get("initiative_id")]

    stale = WeeklyAllocation.query.filter(
        WeeklyAllocation.team_member_id == team_member_id,
        WeeklyAllocation.week_start == week,
    )
    if keep_ids:
        stale = stale.filter(WeeklyAllocation.initiative_id.notin_(keep_ids))
    stale.delete(synchronize_session="fetch")

    changes = []
    for item in allocations:
        if not item.get("initiative_id") or item.get("allocation_percentage") is None:
            continue
        allocation, created = _upsert(
            team_member_id, item["initiative_id"], week, item["allocation_percentage"],
            item.get("status"), item.get("notes"), created_by,
        )
        changes.append({"id": allocation.id, "action": "created" if created else "updated"})

    db.session.commit()
    logger.info("Bulk allocations for member %s week %s: %d changes", team_member_id, week, len(changes))
    return {
        "week_start": week.isoformat(),
        "total_allocation": total,
        "warning": "Total allocation exceeds 100%" if total > 100 else None,
        "allocations": _member_week_allocations(team_member_id, week),
        "changes": changes,
    }


def copy_from_week(data: dict, created_by=None) -> dict:
    """Copy a member's allocations from one week to another, as planned."""
    team_member_id = data.get("team_member_id")
    if not team_member_id or not data.get("source_week") or not data.get("target_week"):
        raise ValidationError("team_member_id, source_week, and target_week are required")
    source = _week(data["source_week"], "source_week")
    target = _week(data["target_week"], "target_week")

    source_rows = WeeklyAllocation.query.filter_by(team_member_id=team_member_id, week_start=source).all()
    if not source_rows:
        raise NotFoundError("Allocations", source, message="No allocations found for source week")

    copied = 0
    for row in source_rows:
        _upsert(
            team_member_id, row.initiative_id, target, row.allocation_percentage,
            "planned", row.notes, created_by,
        )
        copied += 1

    db.session.commit()
    return {
        "source_week": source.isoformat(),
        "target_week": target.isoformat(),
        "copied_count": copied,
        "allocations": _member_week_allocations(team_member_id, target),
    }


def delete_allocation(allocation_id) -> None:
    allocation = db.session.get(WeeklyAllocation, allocation_id)
    if allocation is None:
        raise NotFoundError("Allocation", allocation_id)
    db.session.delete(allocation)
    db.session.commit()

"""Legacy date-range allocations and the quarterly capacity summary.

Transaction policy: public functions call db.session.commit() on success.

    calculated_hours = pct / 100 × weekly_hours × ceil(days / 7)

Capacity summary (per member, per quarter):
    capacity        = weekly_hours × 13
    allocated hours = Σ submitted check-in % / 100 × weekly_hours
    utilization     = (allocated + overlapping time off) / capacity × 100
    effective FTE   = (capacity − "other" time off) / 13 / 40
"""
import logging
import math

from sqlalchemy import func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.capacity import Allocation
from app.models.checkin import WeeklyCheckin
from app.models.okr import Goal
from app.models.team import TeamMember, TimeOff
from app.services.dates import BASELINE_FTE_HOURS, get_quarter_date_range
from app.utils.helpers import parse_date_input, round_half_up

logger = logging.getLogger(__name__)

CAPACITY_ADJUSTMENT_TYPE = "other"


def calculate_hours(percentage, weekly_hours, start_date, end_date) -> float:
    weeks = math.ceil((end_date - start_date).days / 7)
    return (percentage or 0) / 100 * (weekly_hours or 0) * weeks


def serialize_allocation(allocation: Allocation) -> dict:
    data = allocation.to_dict()
    data["weekly_hours"] = allocation.member.weekly_hours if allocation.member else None
    data["quarter"] = allocation.goal.quarter if allocation.goal else None
    return data


# ═════════════════════════════════════════════════════════════════════════════
# LEGACY ALLOCATIONS
# ═════════════════════════════════════════════════════════════════════════════


def list_allocations(*, team_member_id=None, goal_id=None, task_id=None, quarter=None) -> list[dict]:
    query = Allocation.query.outerjoin(Goal, Allocation.goal_id == Goal.id)
    if team_member_id:
        query = query.filter(Allocation.team_member_id == team_member_id)
    if goal_id:
        query = query.filter(Allocation.goal_id == goal_id)
    if task_id:
        query = query.filter(Allocation.task_id == task_id)
    if quarter:
        query = query.filter(Goal.quarter == quarter)
    return [serialize_allocation(a) for a in query.order_by(Allocation.start_date.desc()).all()]


def create_allocation(data: dict) -> Allocation:
    """Create an allocation over a date range.

    Raises:
        ValidationError: required field missing or a bad date.
        NotFoundError: member does not exist.
    """
    if (not data.get("team_member_id") or data.get("allocation_percentage") is None
            or not data.get("start_date") or not data.get("end_date")):
        raise ValidationError("team_member_id, allocation_percentage, start_date, and end_date are required")
    try:
        start = parse_date_input(data["start_date"], "start_date")
        end = parse_date_input(data["end_date"], "end_date")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    member = db.session.get(TeamMember, data["team_member_id"])
    if member is None:
        raise NotFoundError("Team member", data["team_member_id"])

    allocation = Allocation(
        team_member_id=member.id,
        goal_id=data.get("goal_id") or None,
        task_id=data.get("task_id") or None,
        allocation_percentage=data["allocation_percentage"],
        start_date=start,
        end_date=end,
        calculated_hours=calculate_hours(data["allocation_percentage"], member.weekly_hours, start, end),
        source="manual",
    )
    db.session.add(allocation)
    db.session.commit()
    return allocation


def update_allocation(allocation_id, data: dict) -> Allocation:
    """Update percentage and/or dates; calculated_hours is recomputed."""
    allocation = db.session.get(Allocation, allocation_id)
    if allocation is None:
        raise NotFoundError("Allocation", allocation_id)

    try:
        if data.get("start_date"):
            allocation.start_date = parse_date_input(data["start_date"], "start_date")
        if data.get("end_date"):
            allocation.end_date = parse_date_input(data["end_date"], "end_date")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if data.get("allocation_percentage") is not None:
        allocation.allocation_percentage = data["allocation_percentage"]

    allocation.calculated_hours = calculate_hours(
        allocation.allocation_percentage, allocation.member.weekly_hours,
        allocation.start_date, allocation.end_date,
    )
    db.session.commit()
    return allocation


def delete_allocation(allocation_id) -> None:
    allocation = db.session.get(Allocation, allocation_id)
    if allocation is None:
        raise NotFoundError("Allocation", allocation_id)
    db.session.delete(allocation)
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# CAPACITY SUMMARY
# ═════════════════════════════════════════════════════════════════════════════


def _overlapping_time_off(member_id, start, end, time_off_type=None) -> float:
    query = db.session.query(func.coalesce(func.sum(TimeOff.hours), 0)).filter(
        TimeOff.team_member_id == member_id,
        TimeOff.start_date <= end,
        TimeOff.end_date >= start,
    )
    if time_off_type:
        query = query.filter(TimeOff.type == time_off_type)
    return query.scalar()


def capacity_summary(quarter: str | None) -> list[dict]:
    """Per-member utilization for a quarter, based on submitted check-ins."""
    if not quarter:
        raise ValidationError("Quarter is required")
    try:
        start, end, weeks = get_quarter_date_range(quarter)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    result = []
    for member in TeamMember.query.order_by(TeamMember.name).all():
        checkin_filter = (
            WeeklyCheckin.team_member_id == member.id,
            WeeklyCheckin.status == "submitted",
            WeeklyCheckin.week_start >= start,
            WeeklyCheckin.week_start <= end,
        )
        checkin_sum = db.session.query(
            func.coalesce(func.sum(WeeklyCheckin.total_allocation_pct), 0)
        ).filter(*checkin_filter).scalar()
        weeks_reported = db.session.query(func.count(WeeklyCheckin.id)).filter(*checkin_filter).scalar()
        time_off_hours = _overlapping_time_off(member.id, start, end)
        adjustment_hours = _overlapping_time_off(member.id, start, end, CAPACITY_ADJUSTMENT_TYPE)

        weekly_hours = member.weekly_hours or 0
        total_capacity = weekly_hours * weeks
        task_hours = checkin_sum / 100 * weekly_hours
        utilization = (task_hours + time_off_hours) / total_capacity * 100 if total_capacity > 0 else 0
        effective_weekly_hours = (weekly_hours * weeks - adjustment_hours) / weeks

        row = member.to_dict()
        row.update({
            "checkin_allocation_sum": checkin_sum,
            "checkin_allocation_pct": checkin_sum,
            "weeks_reported": weeks_reported,
            "time_off_hours": time_off_hours,
            "capacity_adjustment_hours": adjustment_hours,
            "totalCapacity": total_capacity,
            "availableHours": total_capacity - time_off_hours,
            "allocatedHours": round_half_up(task_hours),
            "taskAllocatedHours": round_half_up(task_hours),
            "utilization": round_half_up(utilization, 1),
            "fte": weekly_hours / BASELINE_FTE_HOURS,
            "effective_weekly_hours": round_half_up(effective_weekly_hours, 1),
            "effective_fte": round_half_up(effective_weekly_hours / BASELINE_FTE_HOURS, 2),
            "has_capacity_adjustment": adjustment_hours > 0,
        })
        result.append(row)
    return result

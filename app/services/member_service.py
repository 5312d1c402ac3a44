"""Team member service — CRUD and per-member capacity figures.

Transaction policy: public functions call db.session.commit() on success.

Utilization for the current quarter:
    hours_worked = Σ submitted check-in allocation % / 100 × weekly_hours
    capacity     = weekly_hours × 13
    utilization  = (hours_worked + time off hours) / capacity × 100
"""
import logging
from datetime import date

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.capacity import Allocation
from app.models.checkin import WeeklyCheckin
from app.models.okr import Goal, GoalAssignee, Initiative, InitiativeAssignment, KeyResult, KeyResultAssignee
from app.models.team import TeamMember, TimeOff
from app.services.dates import WEEKS_PER_QUARTER, current_quarter, get_quarter_date_range
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_HOURS = 40


def get_member_or_raise(member_id) -> TeamMember:
    member = db.session.get(TeamMember, member_id)
    if member is None:
        raise NotFoundError("Team member", member_id)
    return member


# ═════════════════════════════════════════════════════════════════════════════
# CAPACITY FIGURES
# ═════════════════════════════════════════════════════════════════════════════


def _submitted_checkin_sum(member_id: int, start: date, end: date) -> float:
    return db.session.query(
        func.coalesce(func.sum(WeeklyCheckin.total_allocation_pct), 0)
    ).filter(
        WeeklyCheckin.team_member_id == member_id,
        WeeklyCheckin.status == "submitted",
        WeeklyCheckin.week_start >= start,
        WeeklyCheckin.week_start <= end,
    ).scalar()


def _contained_time_off_hours(member_id: int, start: date, end: date) -> float:
    """Time off fully inside [start, end]."""
    return db.session.query(func.coalesce(func.sum(TimeOff.hours), 0)).filter(
        TimeOff.team_member_id == member_id,
        TimeOff.start_date >= start,
        TimeOff.end_date <= end,
    ).scalar()


def member_with_utilization(member: TeamMember, start: date, end: date) -> dict:
    """Member dict plus check-in based utilization for [start, end]."""
    checkin_count = WeeklyCheckin.query.filter_by(
        team_member_id=member.id, status="submitted",
    ).count()
    last = (
        WeeklyCheckin.query.filter_by(team_member_id=member.id, status="submitted")
        .order_by(WeeklyCheckin.week_start.desc())
        .first()
    )
    allocation_sum = _submitted_checkin_sum(member.id, start, end)
    time_off_hours = _contained_time_off_hours(member.id, start, end)

    weekly_hours = member.weekly_hours or 0
    capacity = weekly_hours * WEEKS_PER_QUARTER
    hours_worked = allocation_sum / 100 * weekly_hours
    utilization = (hours_worked + time_off_hours) / capacity * 100 if capacity > 0 else 0

    data = member.to_dict()
    data.update({
        "checkin_count": checkin_count,
        "total_allocation_sum": allocation_sum,
        "current_allocation": round_half_up(utilization, 1),
        "last_week_allocation": round_half_up(last.total_allocation_pct if last else 0, 1),
        "time_off_hours": time_off_hours,
        "hours_worked": round_half_up(hours_worked),
        "total_capacity_hours": round_half_up(capacity),
    })
    return data


def list_members_with_utilization() -> list[dict]:
    """All members ordered by name, with current-quarter utilization."""
    start, end, _weeks = get_quarter_date_range(current_quarter())
    members = TeamMember.query.order_by(TeamMember.name).all()
    return [member_with_utilization(m, start, end) for m in members]


# ═════════════════════════════════════════════════════════════════════════════
# DETAIL
# ═════════════════════════════════════════════════════════════════════════════


def get_member_detail(member_id) -> dict:
    """Member with time off, legacy allocations and OKR assignments."""
    member = get_member_or_raise(member_id)

    time_off = (
        TimeOff.query.filter_by(team_member_id=member.id)
        .order_by(TimeOff.start_date.desc())
        .all()
    )
    allocations = (
        Allocation.query.filter_by(team_member_id=member.id)
        .order_by(Allocation.start_date.desc())
        .all()
    )

    initiative_rows = (
        db.session.query(Initiative, InitiativeAssignment.role, KeyResult, Goal)
        .join(InitiativeAssignment, InitiativeAssignment.initiative_id == Initiative.id)
        .outerjoin(KeyResult, Initiative.key_result_id == KeyResult.id)
        .outerjoin(Goal, KeyResult.goal_id == Goal.id)
        .filter(InitiativeAssignment.team_member_id == member.id)
        .order_by(Goal.quarter.desc(), Goal.title, KeyResult.title, Initiative.name)
        .all()
    )
    initiatives = []
    for initiative, role, kr, goal in initiative_rows:
        row = initiative.to_dict()
        row.update({
            "assignment_role": role,
            "key_result_title": kr.title if kr else None,
            "key_result_id": kr.id if kr else None,
            "goal_title": goal.title if goal else None,
            "goal_id": goal.id if goal else None,
            "quarter": goal.quarter if goal else None,
        })
        initiatives.append(row)

    kr_rows = (
        db.session.query(KeyResult, KeyResultAssignee.source, Goal)
        .join(KeyResultAssignee, KeyResultAssignee.key_result_id == KeyResult.id)
        .outerjoin(Goal, KeyResult.goal_id == Goal.id)
        .filter(KeyResultAssignee.team_member_id == member.id)
        .order_by(Goal.quarter.desc(), Goal.title, KeyResult.title)
        .all()
    )
    key_results = []
    for kr, source, goal in kr_rows:
        row = kr.to_dict()
        row.update({
            "assignment_source": source,
            "goal_title": goal.title if goal else None,
            "quarter": goal.quarter if goal else None,
            "initiative_count": Initiative.query.filter_by(key_result_id=kr.id).count(),
        })
        key_results.append(row)

    goal_rows = (
        db.session.query(Goal, GoalAssignee.source)
        .join(GoalAssignee, GoalAssignee.goal_id == Goal.id)
        .filter(GoalAssignee.team_member_id == member.id)
        .order_by(Goal.quarter.desc(), Goal.title)
        .all()
    )
    goals = []
    for goal, source in goal_rows:
        row = goal.to_dict()
        row.update({
            "assignment_source": source,
            "key_result_count": KeyResult.query.filter_by(goal_id=goal.id).count(),
            "initiative_count": (
                Initiative.query.join(KeyResult, Initiative.key_result_id == KeyResult.id)
                .filter(KeyResult.goal_id == goal.id)
                .count()
            ),
        })
        goals.append(row)

    data = member.to_dict()
    data.update({
        "timeOff": [t.to_dict() for t in time_off],
        "allocations": [a.to_dict() for a in allocations],
        "initiatives": initiatives,
        "keyResults": key_results,
        "goals": goals,
    })
    return data


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def _commit_unique_email():
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise ValidationError("Email already exists") from exc


def create_member(data: dict) -> TeamMember:
    """Create a team member.

    Raises:
        ValidationError: name missing or email already used.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Name is required")

    member = TeamMember(
        name=name,
        email=data.get("email") or None,
        role=data.get("role") or None,
        team=data.get("team") or None,
        weekly_hours=data.get("weekly_hours") or DEFAULT_WEEKLY_HOURS,
    )
    db.session.add(member)
    _commit_unique_email()
    logger.info("Created team member %s (%s)", member.id, member.name)
    return member


def update_member(member_id, data: dict) -> TeamMember:
    """Partial update; keys absent from ``data`` keep their values, empty name is ignored."""
    member = get_member_or_raise(member_id)
    if data.get("name"):
        member.name = data["name"]
    for field in ("email", "role", "team", "weekly_hours"):
        if field in data:
            setattr(member, field, data[field] if data[field] != "" else None)
    if member.weekly_hours is None:
        member.weekly_hours = DEFAULT_WEEKLY_HOURS
    _commit_unique_email()
    return member


def delete_member(member_id) -> None:
    member = get_member_or_raise(member_id)
    db.session.delete(member)
    db.session.commit()
    logger.info("Deleted team member %s", member_id)

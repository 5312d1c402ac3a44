"""Initiative service — initiatives, assignments, time entries and status log.

Transaction policy: public functions call db.session.commit() on success.

Derived fields:
    - actual_hours    = Σ initiative_time_entries.hours_worked
    - estimated_hours = round(Σ assignment allocation % / 100 × 40 × 13),
      recalculated whenever assignments change
    - progress changes roll up via app.services.progress_cascade
"""
import logging

from sqlalchemy import case, func, or_
from sqlalchemy.orm import aliased

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.capacity import WeeklyAllocation
from app.models.okr import (
    Goal,
    Initiative,
    InitiativeAssignment,
    InitiativeTimeEntry,
    InitiativeUpdate,
    KeyResult,
)
from app.models.team import TeamMember
from app.services.dates import BASELINE_FTE_HOURS, WEEKS_PER_QUARTER, get_monday
from app.services.progress_cascade import cascade_from_initiative, cascade_from_key_result
from app.utils.helpers import parse_date, round_half_up

logger = logging.getLogger(__name__)

INITIATIVE_STATUSES = {"active", "draft", "in-progress", "completed", "on-hold", "cancelled"}
ASSIGNMENT_ROLES = {"Lead", "Contributor", "Support"}
PRIORITIES = {"P1", "P2", "P3", "P4"}
NO_AUTO_COMPLETE_STATUSES = {"completed", "cancelled", "on-hold"}

ROLE_ORDER = case(
    {"Lead": 1, "Contributor": 2, "Support": 3},
    value=InitiativeAssignment.role,
    else_=4,
)


def _validate_enum(value: str, allowed: set[str], field_name: str) -> str | None:
    """Return error message if value not in allowed set, else None."""
    if value and value not in allowed:
        return f"Invalid {field_name}: '{value}'. Allowed: {sorted(allowed)}"
    return None


def get_initiative_or_raise(initiative_id) -> Initiative:
    initiative = db.session.get(Initiative, initiative_id)
    if initiative is None:
        raise NotFoundError("Initiative", initiative_id)
    return initiative


def _goal_of(initiative: Initiative) -> Goal | None:
    """Goal via the key result, falling back to parent_goal_id."""
    if initiative.key_result is not None and initiative.key_result.goal is not None:
        return initiative.key_result.goal
    return initiative.parent_goal


def serialize_initiative(initiative: Initiative, **extra) -> dict:
    data = initiative.to_dict()
    goal = _goal_of(initiative)
    data.update({
        "key_result_title": initiative.key_result.title if initiative.key_result else None,
        "goal_title": goal.title if goal else None,
        "goal_quarter": goal.quarter if goal else None,
        "owner_name": initiative.owner.name if initiative.owner else None,
    })
    data.update(extra)
    return data


def ensure_owner_assignment(initiative_id: int, owner_id) -> None:
    """Assign the owner as Lead if not already assigned. Flushes, does not commit."""
    if not owner_id:
        return
    existing = InitiativeAssignment.query.filter_by(
        initiative_id=initiative_id, team_member_id=owner_id,
    ).first()
    if existing is None:
        db.session.add(InitiativeAssignment(
            initiative_id=initiative_id, team_member_id=owner_id, role="Lead", source="manual",
        ))
        db.session.flush()


def recalculate_estimated_hours(initiative_id: int) -> int:
    db.session.flush()
    total_pct = db.session.query(
        func.coalesce(func.sum(InitiativeAssignment.allocation_percentage), 0)
    ).filter(InitiativeAssignment.initiative_id == initiative_id).scalar()
    hours = round_half_up(total_pct / 100 * BASELINE_FTE_HOURS * WEEKS_PER_QUARTER)
    initiative = db.session.get(Initiative, initiative_id)
    initiative.estimated_hours = hours
    return hours


def recalculate_actual_hours(initiative_id: int) -> float:
    db.session.flush()
    total = db.session.query(
        func.coalesce(func.sum(InitiativeTimeEntry.hours_worked), 0)
    ).filter(InitiativeTimeEntry.initiative_id == initiative_id).scalar()
    initiative = db.session.get(Initiative, initiative_id)
    if initiative is not None:
        initiative.actual_hours = total
    return total


def _ordered_assignments(initiative_id):
    return (
        InitiativeAssignment.query.join(TeamMember, InitiativeAssignment.team_member_id == TeamMember.id)
        .filter(InitiativeAssignment.initiative_id == initiative_id)
        .order_by(ROLE_ORDER, TeamMember.name)
        .all()
    )


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def list_initiatives(*, status=None, priority=None, team=None, key_result_id=None,
                     goal_id=None, quarter=None) -> list[dict]:
    """Initiatives with goal context and assignment / allocation counts.

    ``goal_id`` matches either the key result's goal or parent_goal_id;
    ``quarter`` matches the key result's goal quarter.
    """
    kr_goal = aliased(Goal)
    query = (
        Initiative.query
        .outerjoin(KeyResult, Initiative.key_result_id == KeyResult.id)
        .outerjoin(kr_goal, KeyResult.goal_id == kr_goal.id)
    )
    if status:
        query = query.filter(Initiative.status == status)
    if priority:
        query = query.filter(Initiative.project_priority == priority)
    if team:
        query = query.filter(Initiative.team == team)
    if key_result_id:
        query = query.filter(Initiative.key_result_id == key_result_id)
    if goal_id:
        query = query.filter(or_(KeyResult.goal_id == goal_id, Initiative.parent_goal_id == goal_id))
    if quarter:
        query = query.filter(kr_goal.quarter == quarter)

    result = []
    for initiative in query.order_by(Initiative.project_priority, Initiative.name).all():
        total_pct = db.session.query(
            func.coalesce(func.sum(InitiativeAssignment.allocation_percentage), 0)
        ).filter(InitiativeAssignment.initiative_id == initiative.id).scalar()
        result.append(serialize_initiative(
            initiative,
            assignment_count=InitiativeAssignment.query.filter_by(initiative_id=initiative.id).count(),
            allocation_count=WeeklyAllocation.query.filter_by(initiative_id=initiative.id).count(),
            total_allocation_pct=total_pct,
        ))
    return result


def batch_assignments(ids_param: str | None) -> dict:
    """Assignments for many initiatives, keyed by initiative id.

    Every requested id appears in the result, possibly with an empty list.
    """
    if not ids_param:
        raise ValidationError("ids query parameter is required")

    id_list = []
    for raw in ids_param.split(","):
        raw = raw.strip()
        if raw.isdigit():
            id_list.append(int(raw))

    grouped = {str(i): [] for i in id_list}
    if not id_list:
        return grouped

    rows = (
        InitiativeAssignment.query.join(TeamMember, InitiativeAssignment.team_member_id == TeamMember.id)
        .filter(InitiativeAssignment.initiative_id.in_(id_list))
        .order_by(InitiativeAssignment.initiative_id, ROLE_ORDER, TeamMember.name)
        .all()
    )
    for assignment in rows:
        grouped[str(assignment.initiative_id)].append(assignment.to_dict())
    return grouped


def get_initiative_detail(initiative_id) -> dict:
    initiative = get_initiative_or_raise(initiative_id)
    kr = initiative.key_result
    goal = kr.goal if kr else None
    data = serialize_initiative(initiative)
    data.update({
        "metric": kr.metric if kr else None,
        "kr_current_value": kr.current_value if kr else None,
        "target_value": kr.target_value if kr else None,
        "kr_progress": kr.progress if kr else None,
        "goal_id": goal.id if goal else None,
        "goal_title": goal.title if goal else None,
        "goal_quarter": goal.quarter if goal else None,
        "assignments": [a.to_dict() for a in _ordered_assignments(initiative.id)],
    })
    return data


def list_member_initiatives(member_id) -> list[dict]:
    """Active initiatives a member is assigned to, Leads first."""
    if db.session.get(TeamMember, member_id) is None:
        raise NotFoundError("Team member", member_id)

    rows = (
        db.session.query(Initiative, InitiativeAssignment)
        .join(InitiativeAssignment, InitiativeAssignment.initiative_id == Initiative.id)
        .filter(InitiativeAssignment.team_member_id == member_id, Initiative.status == "active")
        .order_by(ROLE_ORDER, Initiative.project_priority, Initiative.name)
        .all()
    )
    result = []
    for initiative, assignment in rows:
        result.append(serialize_initiative(
            initiative,
            role=assignment.role,
            allocation_percentage=assignment.allocation_percentage,
            assignment_start=assignment.start_date.isoformat() if assignment.start_date else None,
            assignment_end=assignment.end_date.isoformat() if assignment.end_date else None,
        ))
    return result


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_initiative(data: dict) -> Initiative:
    """Create an initiative; the owner becomes its Lead.

    Raises:
        ValidationError: name missing, invalid status or priority.
    """
    name = (data.get("name") or "").strip()
    if not name:
        raise ValidationError("Initiative name is required")
    status = data.get("status") or "active"
    if err := _validate_enum(status, INITIATIVE_STATUSES, "status"):
        raise ValidationError(err)
    if err := _validate_enum(data.get("project_priority"), PRIORITIES, "project_priority"):
        raise ValidationError(err)

    initiative = Initiative(
        external_id=data.get("external_id") or None,
        name=name,
        description=data.get("description") or None,
        key_result_id=data.get("key_result_id") or None,
        parent_goal_id=data.get("parent_goal_id") or None,
        project_priority=data.get("project_priority") or None,
        team=data.get("team") or None,
        status=status,
        owner_id=data.get("owner_id") or None,
        start_date=parse_date(data.get("start_date")),
        end_date=parse_date(data.get("end_date")),
        source=data.get("source") or "manual",
        category=data.get("category") or None,
        actual_hours=data.get("actual_hours") or 0,
        progress=data.get("progress") or 0,
        tracker_url=data.get("tracker_url") or None,
    )
    db.session.add(initiative)
    db.session.flush()
    ensure_owner_assignment(initiative.id, initiative.owner_id)
    db.session.commit()
    logger.info("Created initiative %s '%s'", initiative.id, initiative.name)
    return initiative


_UPDATABLE_FIELDS = (
    "name", "description", "key_result_id", "parent_goal_id", "project_priority", "team",
    "owner_id", "estimated_hours", "current_value", "tracker_url", "category",
)


def update_initiative(initiative_id, data: dict) -> dict:
    """Partial update.

    A status change is logged; moving to ``completed`` sets progress to 100.
    The owner is ensured as Lead and progress is cascaded to the (new) key
    result and its goal.
    """
    initiative = get_initiative_or_raise(initiative_id)
    old_key_result_id = initiative.key_result_id

    new_status = data.get("status")
    if new_status:
        if err := _validate_enum(new_status, INITIATIVE_STATUSES, "status"):
            raise ValidationError(err)
        if new_status != initiative.status:
            db.session.add(InitiativeUpdate(
                initiative_id=initiative.id,
                previous_status=initiative.status,
                new_status=new_status,
                comment=data.get("comment") or None,
                link=data.get("link") or None,
                updated_by=data.get("updated_by") or None,
            ))
            if new_status == "completed":
                initiative.progress = 100
        initiative.status = new_status

    for field in _UPDATABLE_FIELDS:
        if field in data:
            setattr(initiative, field, data[field])
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(initiative, field, parse_date(data[field]))

    db.session.flush()
    ensure_owner_assignment(initiative.id, initiative.owner_id)
    cascade_from_initiative(initiative)
    if old_key_result_id and old_key_result_id != initiative.key_result_id:
        cascade_from_key_result(old_key_result_id)
    db.session.commit()
    return serialize_initiative(initiative)


def set_estimate(initiative_id, estimated_hours) -> Initiative:
    initiative = get_initiative_or_raise(initiative_id)
    if estimated_hours is not None:
        initiative.estimated_hours = estimated_hours
    db.session.commit()
    return initiative


def set_progress(initiative_id, progress, current_value=None, *, has_current_value=False) -> Initiative:
    """Set progress (0-100, rounded); 100 auto-completes unless closed or on hold."""
    initiative = get_initiative_or_raise(initiative_id)
    if progress is None or isinstance(progress, bool) or not isinstance(progress, (int, float)) \
            or progress < 0 or progress > 100:
        raise ValidationError("Progress must be between 0 and 100")

    initiative.progress = round_half_up(progress)
    if has_current_value:
        initiative.current_value = current_value
    if initiative.progress >= 100 and initiative.status not in NO_AUTO_COMPLETE_STATUSES:
        initiative.status = "completed"

    db.session.flush()
    cascade_from_initiative(initiative)
    db.session.commit()
    return initiative


def set_quarter(initiative_id, quarter) -> dict:
    initiative = get_initiative_or_raise(initiative_id)
    initiative.assigned_quarter = quarter or None
    db.session.commit()
    return serialize_initiative(initiative)


def delete_initiative(initiative_id) -> None:
    initiative = get_initiative_or_raise(initiative_id)
    key_result_id = initiative.key_result_id
    db.session.delete(initiative)
    db.session.flush()
    cascade_from_key_result(key_result_id)
    db.session.commit()
    logger.info("Deleted initiative %s", initiative_id)


# ═════════════════════════════════════════════════════════════════════════════
# ASSIGNMENTS
# ═════════════════════════════════════════════════════════════════════════════


def list_assignments(initiative_id) -> list[dict]:
    initiative = get_initiative_or_raise(initiative_id)
    return [a.to_dict() for a in _ordered_assignments(initiative.id)]


def upsert_assignment(initiative_id, data: dict) -> tuple[dict, bool]:
    """Create or update a member's assignment.

    Returns:
        (assignment dict with initiative_estimated_hours, created flag)
    """
    team_member_id = data.get("team_member_id")
    if not team_member_id:
        raise ValidationError("team_member_id is required")
    initiative = get_initiative_or_raise(initiative_id)
    if db.session.get(TeamMember, team_member_id) is None:
        raise NotFoundError("Team member", team_member_id)
    role = data.get("role") or "Contributor"
    if err := _validate_enum(role, ASSIGNMENT_ROLES, "role"):
        raise ValidationError(err)

    assignment = InitiativeAssignment.query.filter_by(
        initiative_id=initiative.id, team_member_id=team_member_id,
    ).first()
    created = assignment is None
    if created:
        assignment = InitiativeAssignment(
            initiative_id=initiative.id,
            team_member_id=team_member_id,
            allocation_percentage=0,
            source="manual",
        )
        db.session.add(assignment)

    assignment.role = role
    if data.get("allocation_percentage") is not None:
        assignment.allocation_percentage = data["allocation_percentage"]
    assignment.start_date = parse_date(data.get("start_date"))
    assignment.end_date = parse_date(data.get("end_date"))

    hours = recalculate_estimated_hours(initiative.id)
    db.session.commit()
    result = assignment.to_dict()
    result["initiative_estimated_hours"] = hours
    return result, created


def update_assignment(initiative_id, member_id, data: dict) -> dict:
    assignment = InitiativeAssignment.query.filter_by(
        initiative_id=initiative_id, team_member_id=member_id,
    ).first()
    if assignment is None:
        raise NotFoundError("Assignment", member_id)

    if "role" in data:
        if err := _validate_enum(data["role"], ASSIGNMENT_ROLES, "role"):
            raise ValidationError(err)
        assignment.role = data["role"]
    if "allocation_percentage" in data:
        assignment.allocation_percentage = data["allocation_percentage"] or 0
    for field in ("start_date", "end_date"):
        if field in data:
            setattr(assignment, field, parse_date(data[field]))

    hours = recalculate_estimated_hours(assignment.initiative_id)
    db.session.commit()
    result = assignment.to_dict()
    result["initiative_estimated_hours"] = hours
    return result


def remove_assignment(initiative_id, member_id) -> int:
    """Delete an assignment; returns the recalculated estimated hours."""
    assignment = InitiativeAssignment.query.filter_by(
        initiative_id=initiative_id, team_member_id=member_id,
    ).first()
    if assignment is None:
        raise NotFoundError("Assignment", member_id)
    db.session.delete(assignment)
    hours = recalculate_estimated_hours(int(initiative_id))
    db.session.commit()
    return hours


# ═════════════════════════════════════════════════════════════════════════════
# TIME ENTRIES
# ═════════════════════════════════════════════════════════════════════════════


def _time_entry_payload(initiative: Initiative) -> dict:
    entries = (
        InitiativeTimeEntry.query.join(TeamMember, InitiativeTimeEntry.team_member_id == TeamMember.id)
        .filter(InitiativeTimeEntry.initiative_id == initiative.id)
        .order_by(InitiativeTimeEntry.week_start.desc(), TeamMember.name)
        .all()
    )
    return {
        "initiative_id": initiative.id,
        "total_hours": initiative.actual_hours or 0,
        "entries": [e.to_dict() for e in entries],
    }


def list_time_entries(initiative_id) -> dict:
    return _time_entry_payload(get_initiative_or_raise(initiative_id))


def upsert_time_entry(initiative_id, data: dict) -> dict:
    """Record hours for (initiative, member, week); recomputes actual_hours."""
    team_member_id = data.get("team_member_id")
    week_start = data.get("week_start")
    hours_worked = data.get("hours_worked")
    if not team_member_id or not week_start or hours_worked is None:
        raise ValidationError("team_member_id, week_start, and hours_worked are required")

    initiative = get_initiative_or_raise(initiative_id)
    if db.session.get(TeamMember, team_member_id) is None:
        raise NotFoundError("Team member", team_member_id)
    try:
        week = get_monday(week_start)
    except ValueError as exc:
        raise ValidationError(f"Invalid week_start: '{week_start}'") from exc

    entry = InitiativeTimeEntry.query.filter_by(
        initiative_id=initiative.id, team_member_id=team_member_id, week_start=week,
    ).first()
    if entry is None:
        entry = InitiativeTimeEntry(
            initiative_id=initiative.id, team_member_id=team_member_id, week_start=week,
        )
        db.session.add(entry)
    entry.hours_worked = hours_worked
    entry.notes = data.get("notes") or None

    recalculate_actual_hours(initiative.id)
    db.session.commit()
    return _time_entry_payload(initiative)


def delete_time_entry(entry_id) -> None:
    entry = db.session.get(InitiativeTimeEntry, entry_id)
    if entry is None:
        raise NotFoundError("Time entry", entry_id)
    initiative_id = entry.initiative_id
    db.session.delete(entry)
    recalculate_actual_hours(initiative_id)
    db.session.commit()


# ═════════════════════════════════════════════════════════════════════════════
# UPDATE LOG
# ═════════════════════════════════════════════════════════════════════════════


def list_updates(initiative_id) -> list[dict]:
    initiative = get_initiative_or_raise(initiative_id)
    updates = (
        InitiativeUpdate.query.filter_by(initiative_id=initiative.id)
        .order_by(InitiativeUpdate.created_at.desc(), InitiativeUpdate.id.desc())
        .all()
    )
    return [u.to_dict() for u in updates]


def add_update(initiative_id, data: dict) -> InitiativeUpdate:
    initiative = get_initiative_or_raise(initiative_id)
    if not data.get("comment") and not data.get("link"):
        raise ValidationError("Comment or link is required")

    entry = InitiativeUpdate(
        initiative_id=initiative.id,
        previous_status=initiative.status,
        new_status=initiative.status,
        comment=data.get("comment") or None,
        link=data.get("link") or None,
        updated_by=data.get("updated_by") or None,
    )
    db.session.add(entry)
    db.session.commit()
    return entry

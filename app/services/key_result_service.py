"""Key result service — CRUD, assignees, status log and goal hierarchy.

Transaction policy: public functions call db.session.commit() on success.
"""
import logging

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.okr import (
    Goal,
    Initiative,
    InitiativeAssignment,
    KeyResult,
    KeyResultAssignee,
    KeyResultUpdate,
)
from app.models.team import TeamMember
from app.services.goal_service import BAU_GOAL_MARKER, get_goal_or_raise
from app.services.progress_cascade import recalculate_goal_progress
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)


def get_key_result_or_raise(key_result_id) -> KeyResult:
    kr = db.session.get(KeyResult, key_result_id)
    if kr is None:
        raise NotFoundError("Key Result", key_result_id)
    return kr


def find_bau_key_result() -> KeyResult | None:
    """First key result (by id) under a "Business as Usual" goal."""
    return (
        KeyResult.query.join(Goal, KeyResult.goal_id == Goal.id)
        .filter(Goal.title.contains(BAU_GOAL_MARKER))
        .order_by(KeyResult.id)
        .first()
    )


def ensure_owner_assignment(key_result_id: int, owner_id) -> None:
    """Make sure the owner is listed as an assignee. Flushes, does not commit."""
    if not owner_id:
        return
    existing = KeyResultAssignee.query.filter_by(
        key_result_id=key_result_id, team_member_id=owner_id,
    ).first()
    if existing is None:
        db.session.add(KeyResultAssignee(
            key_result_id=key_result_id, team_member_id=owner_id, source="manual",
        ))
        db.session.flush()


def serialize_key_result(kr: KeyResult, **extra) -> dict:
    data = kr.to_dict()
    goal = kr.goal
    data.update({
        "goal_title": goal.title if goal else None,
        "quarter": goal.quarter if goal else None,
        "owner_name": kr.owner.name if kr.owner else None,
    })
    data.update(extra)
    return data


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def list_key_results(*, goal_id=None, status=None, quarter=None, assignee_id=None, bau=False) -> list[dict]:
    """Key results with goal info and child counts.

    ``bau=True`` short-circuits to a one-element list with the BAU key result.
    """
    if bau:
        kr = find_bau_key_result()
        return [serialize_key_result(kr)] if kr else []

    query = KeyResult.query.join(Goal, KeyResult.goal_id == Goal.id)
    if goal_id:
        query = query.filter(KeyResult.goal_id == goal_id)
    if status:
        query = query.filter(KeyResult.status == status)
    if quarter:
        query = query.filter(Goal.quarter == quarter)
    if assignee_id:
        assigned = db.session.query(KeyResultAssignee.key_result_id).filter(
            KeyResultAssignee.team_member_id == assignee_id,
        )
        query = query.filter(KeyResult.id.in_(assigned))

    krs = query.order_by(Goal.quarter.desc(), Goal.title, KeyResult.title).all()
    return [
        serialize_key_result(
            kr,
            initiative_count=Initiative.query.filter_by(key_result_id=kr.id).count(),
            assignee_count=KeyResultAssignee.query.filter_by(key_result_id=kr.id).count(),
        )
        for kr in krs
    ]


def _initiative_rows(key_result_id: int) -> list[dict]:
    rows = []
    for initiative in (
        Initiative.query.filter_by(key_result_id=key_result_id)
        .order_by(Initiative.project_priority, Initiative.name)
        .all()
    ):
        row = initiative.to_dict()
        row["owner_name"] = initiative.owner.name if initiative.owner else None
        row["assignment_count"] = InitiativeAssignment.query.filter_by(
            initiative_id=initiative.id,
        ).count()
        rows.append(row)
    return rows


def get_key_result_detail(key_result_id) -> dict:
    kr = get_key_result_or_raise(key_result_id)

    assignees = []
    for link, member in (
        db.session.query(KeyResultAssignee, TeamMember)
        .join(TeamMember, KeyResultAssignee.team_member_id == TeamMember.id)
        .filter(KeyResultAssignee.key_result_id == kr.id)
        .order_by(TeamMember.name)
        .all()
    ):
        assignees.append({
            "id": link.id,
            "key_result_id": link.key_result_id,
            "team_member_id": link.team_member_id,
            "source": link.source,
            "member_name": member.name,
            "email": member.email,
            "team": member.team,
            "member_role": member.role,
        })

    return serialize_key_result(
        kr,
        goal_status=kr.goal.status if kr.goal else None,
        assignees=assignees,
        initiatives=_initiative_rows(kr.id),
    )


def get_goal_hierarchy(goal_id) -> dict:
    """Goal → key results → initiatives in one document."""
    goal = get_goal_or_raise(goal_id)

    key_results = []
    for kr in KeyResult.query.filter_by(goal_id=goal.id).order_by(KeyResult.title).all():
        data = kr.to_dict()
        data["owner_name"] = kr.owner.name if kr.owner else None
        data["initiatives"] = [
            dict(i.to_dict(), owner_name=i.owner.name if i.owner else None)
            for i in Initiative.query.filter_by(key_result_id=kr.id)
            .order_by(Initiative.project_priority, Initiative.name).all()
        ]
        key_results.append(data)

    data = goal.to_dict()
    data["owner_name"] = goal.owner.name if goal.owner else None
    data["key_results"] = key_results
    return data


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════


def create_key_result(data: dict) -> KeyResult:
    """Create a key result under a goal; the owner is auto-assigned.

    Raises:
        ValidationError: goal_id or title missing.
        NotFoundError: goal does not exist.
    """
    if not data.get("goal_id") or not data.get("title"):
        raise ValidationError("goal_id and title are required")
    goal = get_goal_or_raise(data["goal_id"])

    kr = KeyResult(
        external_id=data.get("external_id") or None,
        goal_id=goal.id,
        title=data["title"],
        description=data.get("description") or None,
        owner_id=data.get("owner_id") or None,
        metric=data.get("metric") or None,
        current_value=data.get("current_value"),
        target_value=data.get("target_value"),
        progress=0,
        status=data.get("status") or "active",
        source=data.get("source") or "manual",
    )
    db.session.add(kr)
    db.session.flush()
    ensure_owner_assignment(kr.id, kr.owner_id)
    db.session.commit()
    logger.info("Created key result %s under goal %s", kr.id, goal.id)
    return kr


def update_key_result(key_result_id, data: dict) -> KeyResult:
    """Update a key result.

    A status change is written to the update log (with optional comment,
    link and updated_by). Progress is the explicit ``progress`` if given,
    otherwise current/target when a positive target exists. The goal's
    progress is recalculated afterwards.
    """
    kr = get_key_result_or_raise(key_result_id)

    new_status = data.get("status")
    if new_status and new_status != kr.status:
        db.session.add(KeyResultUpdate(
            key_result_id=kr.id,
            previous_status=kr.status,
            new_status=new_status,
            comment=data.get("comment") or None,
            link=data.get("link") or None,
            updated_by=data.get("updated_by") or None,
        ))

    for field in ("title", "description", "owner_id", "metric", "current_value", "target_value", "status"):
        if field in data:
            setattr(kr, field, data[field])

    if "progress" in data and data["progress"] is not None:
        kr.progress = data["progress"]
    elif (kr.target_value or 0) > 0 and kr.current_value is not None:
        kr.progress = round_half_up(kr.current_value / kr.target_value * 100)

    ensure_owner_assignment(kr.id, kr.owner_id)
    recalculate_goal_progress(kr.goal_id)
    db.session.commit()
    return kr


def delete_key_result(key_result_id) -> None:
    kr = get_key_result_or_raise(key_result_id)
    goal_id = kr.goal_id
    db.session.delete(kr)
    db.session.flush()
    recalculate_goal_progress(goal_id)
    db.session.commit()
    logger.info("Deleted key result %s", key_result_id)


def set_estimate(key_result_id, estimated_hours) -> KeyResult:
    kr = get_key_result_or_raise(key_result_id)
    if estimated_hours is not None:
        kr.estimated_hours = estimated_hours
    db.session.commit()
    return kr


def set_quarter(key_result_id, quarter) -> dict:
    kr = get_key_result_or_raise(key_result_id)
    kr.assigned_quarter = quarter or None
    db.session.commit()
    data = kr.to_dict()
    data["goal_title"] = kr.goal.title if kr.goal else None
    data["goal_quarter"] = kr.goal.quarter if kr.goal else None
    return data


# ── Assignees ────────────────────────────────────────────────────────────────


def add_assignee(key_result_id, team_member_id) -> dict:
    if not team_member_id:
        raise ValidationError("team_member_id is required")
    kr = get_key_result_or_raise(key_result_id)
    member = db.session.get(TeamMember, team_member_id)
    if member is None:
        raise NotFoundError("Team member", team_member_id)
    if KeyResultAssignee.query.filter_by(key_result_id=kr.id, team_member_id=member.id).first():
        raise ValidationError("Member already assigned")

    link = KeyResultAssignee(key_result_id=kr.id, team_member_id=member.id, source="manual")
    db.session.add(link)
    db.session.commit()
    return {
        "id": link.id,
        "key_result_id": kr.id,
        "team_member_id": member.id,
        "member_name": member.name,
    }


def remove_assignee(key_result_id, member_id) -> None:
    link = KeyResultAssignee.query.filter_by(
        key_result_id=key_result_id, team_member_id=member_id,
    ).first()
    if link is None:
        raise NotFoundError("Assignee", member_id)
    db.session.delete(link)
    db.session.commit()


# ── Update log ───────────────────────────────────────────────────────────────


def list_updates(key_result_id) -> list[dict]:
    kr = get_key_result_or_raise(key_result_id)
    updates = (
        KeyResultUpdate.query.filter_by(key_result_id=kr.id)
        .order_by(KeyResultUpdate.created_at.desc(), KeyResultUpdate.id.desc())
        .all()
    )
    return [u.to_dict() for u in updates]


def add_update(key_result_id, data: dict) -> KeyResultUpdate:
    """Add a comment / link entry; status is recorded unchanged."""
    kr = get_key_result_or_raise(key_result_id)
    if not data.get("comment") and not data.get("link"):
        raise ValidationError("Comment or link is required")

    entry = KeyResultUpdate(
        key_result_id=kr.id,
        previous_status=kr.status,
        new_status=kr.status,
        comment=data.get("comment") or None,
        link=data.get("link") or None,
        updated_by=data.get("updated_by") or None,
    )
    db.session.add(entry)
    db.session.commit()
    return entry

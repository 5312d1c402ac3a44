"""Weekly check-in service — self-reported time split and progress contributions.

Transaction policy: public functions call db.session.commit() on success.

Submitting a check-in (``submit=True``):
    1. replaces the check-in's items,
    2. turns named BAU items into initiatives under the BAU key result
       (with a time entry and a Lead assignment for the member),
    3. adds each item's progress contribution, divided by the number of
       assignees and capped at 100, to its initiative / key result,
    4. cascades progress up to key results and goals.
"""
import logging
from datetime import datetime, timezone

from sqlalchemy import func

from app.core.exceptions import ForbiddenError, NotFoundError, ValidationError
from app.models import db
from app.models.checkin import WeeklyCheckin, WeeklyCheckinItem
from app.models.okr import (
    Goal,
    Initiative,
    InitiativeAssignment,
    InitiativeTimeEntry,
    KeyResult,
    KeyResultAssignee,
)
from app.models.team import TeamMember
from app.services.auth_service import is_admin_user, resolve_member_for_user
from app.services.dates import get_monday
from app.services.key_result_service import find_bau_key_result
from app.services.progress_cascade import cascade_many, recalculate_goal_progress
from app.utils.helpers import parse_date, round_half_up

logger = logging.getLogger(__name__)

MAX_TOTAL_ALLOCATION = 100
BAU_HOURS_PER_PERCENT = 0.4
DEFAULT_HISTORY_LIMIT = 10


def _member_for_user_or_raise(user_id) -> TeamMember:
    member = resolve_member_for_user(user_id)
    if member is None:
        raise NotFoundError("Team member profile", user_id)
    return member


def _parse_week(week_start):
    week = parse_date(week_start)
    if week is None:
        raise ValidationError(f"Invalid week_start: '{week_start}'")
    return week


def _checkin_payload(checkin: WeeklyCheckin | None) -> dict:
    if checkin is None:
        return {"checkin": None, "items": []}
    return {
        "checkin": checkin.to_dict(),
        "items": [item.to_dict() for item in checkin.items],
    }


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def get_my_assignments(user_id) -> dict:
    """Active initiatives and key results assigned to the caller's member profile."""
    member = _member_for_user_or_raise(user_id)

    initiatives = []
    for initiative, role, kr, goal in (
        db.session.query(Initiative, InitiativeAssignment.role, KeyResult, Goal)
        .join(InitiativeAssignment, InitiativeAssignment.initiative_id == Initiative.id)
        .outerjoin(KeyResult, Initiative.key_result_id == KeyResult.id)
        .outerjoin(Goal, KeyResult.goal_id == Goal.id)
        .filter(InitiativeAssignment.team_member_id == member.id, Initiative.status == "active")
        .order_by(Goal.quarter.desc(), Goal.title, KeyResult.title, Initiative.name)
        .all()
    ):
        row = initiative.to_dict()
        row.update({
            "role": role,
            "key_result_title": kr.title if kr else None,
            "goal_title": goal.title if goal else None,
            "quarter": goal.quarter if goal else None,
        })
        initiatives.append(row)

    key_results = []
    for kr, source, goal in (
        db.session.query(KeyResult, KeyResultAssignee.source, Goal)
        .join(KeyResultAssignee, KeyResultAssignee.key_result_id == KeyResult.id)
        .outerjoin(Goal, KeyResult.goal_id == Goal.id)
        .filter(KeyResultAssignee.team_member_id == member.id, KeyResult.status == "active")
        .order_by(Goal.quarter.desc(), Goal.title, KeyResult.title)
        .all()
    ):
        row = kr.to_dict()
        row.update({
            "source": source,
            "goal_title": goal.title if goal else None,
            "quarter": goal.quarter if goal else None,
        })
        key_results.append(row)

    return {"member": member.to_dict(), "initiatives": initiatives, "keyResults": key_results}


def get_my_checkin(user_id, week_start) -> dict:
    member = _member_for_user_or_raise(user_id)
    checkin = WeeklyCheckin.query.filter_by(
        team_member_id=member.id, week_start=_parse_week(week_start),
    ).first()
    return _checkin_payload(checkin)


def get_member_checkin(member_id, week_start) -> dict:
    if db.session.get(TeamMember, member_id) is None:
        raise NotFoundError("Team member", member_id)
    checkin = WeeklyCheckin.query.filter_by(
        team_member_id=member_id, week_start=_parse_week(week_start),
    ).first()
    return _checkin_payload(checkin)


def get_history(user_id, limit=DEFAULT_HISTORY_LIMIT) -> list[dict]:
    member = _member_for_user_or_raise(user_id)
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        limit = DEFAULT_HISTORY_LIMIT
    checkins = (
        WeeklyCheckin.query.filter_by(team_member_id=member.id)
        .order_by(WeeklyCheckin.week_start.desc())
        .limit(limit)
        .all()
    )
    return [c.to_dict() for c in checkins]


def get_team_checkins(week_start) -> list[dict]:
    """All check-ins for a week with member info and items (manager view)."""
    week = _parse_week(week_start)
    result = []
    for checkin, member in (
        db.session.query(WeeklyCheckin, TeamMember)
        .join(TeamMember, WeeklyCheckin.team_member_id == TeamMember.id)
        .filter(WeeklyCheckin.week_start == week)
        .order_by(TeamMember.name)
        .all()
    ):
        row = checkin.to_dict()
        row.update({
            "member_name": member.name,
            "team": member.team,
            "member_role": member.role,
            "items": [item.to_dict() for item in checkin.items],
        })
        result.append(row)
    return result


# ═════════════════════════════════════════════════════════════════════════════
# SUBMIT / SAVE DRAFT
# ═════════════════════════════════════════════════════════════════════════════


def _resolve_target_member(current_user: dict, member_id) -> TeamMember:
    if member_id:
        member = db.session.get(TeamMember, member_id)
    else:
        member = resolve_member_for_user(current_user.get("id"))
    if member is None:
        raise NotFoundError("Team member", member_id)

    if not is_admin_user(current_user):
        first_name = member.name.split(" ")[0].lower()
        if (current_user.get("username") or "").lower() != first_name:
            raise ForbiddenError("You can only submit check-ins for yourself")
    return member


def _create_bau_initiative(item: dict, member: TeamMember, week, bau_kr: KeyResult) -> Initiative:
    """Turn a named BAU check-in line into an initiative owned by the member."""
    hours = round_half_up((item.get("time_allocation_pct") or 0) * BAU_HOURS_PER_PERCENT)
    initiative = Initiative(
        name=item["notes"].strip(),
        description=f"[Weekly Check-in] BAU task added {week.isoformat()}",
        key_result_id=bau_kr.id,
        owner_id=member.id,
        status="active",
        source="manual",
        progress=0,
        actual_hours=hours,
        category=item.get("category") or None,
    )
    db.session.add(initiative)
    db.session.flush()
    db.session.add(InitiativeTimeEntry(
        initiative_id=initiative.id,
        team_member_id=member.id,
        week_start=get_monday(week),
        hours_worked=hours,
        notes=f"Weekly check-in: {item.get('time_allocation_pct') or 0}%",
    ))
    db.session.add(InitiativeAssignment(
        initiative_id=initiative.id, team_member_id=member.id, role="Lead", source="manual",
    ))
    logger.info("Created BAU initiative %s '%s' from check-in", initiative.id, initiative.name)
    return initiative


def _scaled_progress(current, contribution, assignee_count) -> float:
    """Add a contribution split across assignees; capped at 100, two decimals."""
    scaled = contribution / max(1, assignee_count)
    return round_half_up(min(100, (current or 0) + scaled), 2)


def _apply_contributions(processed: list[dict]) -> None:
    affected_krs = set()
    affected_goals = set()

    for item in processed:
        contribution = item.get("progress_contribution_pct") or 0
        if contribution <= 0:
            continue

        if item["initiative_id"]:
            initiative = db.session.get(Initiative, item["initiative_id"])
            if initiative is not None:
                count = db.session.query(func.count(InitiativeAssignment.id)).filter(
                    InitiativeAssignment.initiative_id == initiative.id,
                ).scalar()
                initiative.progress = _scaled_progress(initiative.progress, contribution, count)
                if initiative.key_result_id:
                    affected_krs.add(initiative.key_result_id)

        if item["key_result_id"]:
            kr = db.session.get(KeyResult, item["key_result_id"])
            if kr is not None:
                count = db.session.query(func.count(KeyResultAssignee.id)).filter(
                    KeyResultAssignee.key_result_id == kr.id,
                ).scalar()
                kr.progress = _scaled_progress(kr.progress, contribution, count)
                if kr.goal_id:
                    affected_goals.add(kr.goal_id)

    db.session.flush()
    cascade_many(affected_krs)
    for goal_id in sorted(affected_goals):
        recalculate_goal_progress(goal_id)


def save_checkin(current_user: dict, data: dict) -> dict:
    """Create or update the check-in for (member, week) and replace its items.

    Args:
        current_user: ``g.current_user`` ({"id", "username"}).
        data: week_start, items, notes, mood, submit, member_id.

    Returns:
        {"checkin", "items", "message"}

    Raises:
        ValidationError: week_start missing or total allocation over 100 %.
        NotFoundError: no member resolved.
        ForbiddenError: a non-admin submitting for someone else.
    """
    if not data.get("week_start"):
        raise ValidationError("week_start is required")
    week = _parse_week(data["week_start"])
    member = _resolve_target_member(current_user, data.get("member_id"))

    items = data.get("items") or []
    total = sum(item.get("time_allocation_pct") or 0 for item in items)
    if total > MAX_TOTAL_ALLOCATION:
        raise ValidationError(
            "Total time allocation cannot exceed 100%", extra={"total": total},
        )

    submit = bool(data.get("submit"))
    now = datetime.now(timezone.utc)
    checkin = WeeklyCheckin.query.filter_by(team_member_id=member.id, week_start=week).first()
    if checkin is None:
        checkin = WeeklyCheckin(
            team_member_id=member.id,
            week_start=week,
            notes=data.get("notes") or None,
            mood=data.get("mood") or None,
        )
        db.session.add(checkin)
    else:
        checkin.notes = data.get("notes") or checkin.notes
        checkin.mood = data.get("mood") or checkin.mood
        checkin.items.clear()
    checkin.total_allocation_pct = total
    checkin.status = "submitted" if submit else "draft"
    if submit:
        checkin.submitted_at = now
    db.session.flush()

    bau_kr = find_bau_key_result()
    processed = []
    for item in items:
        if not ((item.get("time_allocation_pct") or 0) > 0 or (item.get("progress_contribution_pct") or 0) > 0):
            continue
        initiative_id = item.get("initiative_id") or None
        key_result_id = item.get("key_result_id") or None

        if item.get("is_bau") and (item.get("notes") or "").strip() and bau_kr is not None:
            initiative_id = _create_bau_initiative(item, member, week, bau_kr).id
            key_result_id = None

        checkin.items.append(WeeklyCheckinItem(
            initiative_id=initiative_id,
            key_result_id=key_result_id,
            time_allocation_pct=item.get("time_allocation_pct") or 0,
            progress_contribution_pct=item.get("progress_contribution_pct") or 0,
            current_value_increment=item.get("current_value_increment"),
            notes=item.get("notes") or None,
        ))
        processed.append(dict(item, initiative_id=initiative_id, key_result_id=key_result_id))

    db.session.flush()
    if submit:
        _apply_contributions(processed)

    db.session.commit()
    logger.info(
        "Check-in %s for member %s week %s (%s, total=%s%%)",
        checkin.id, member.id, week.isoformat(), checkin.status, total,
    )
    payload = _checkin_payload(checkin)
    payload["message"] = "Check-in submitted successfully" if submit else "Check-in saved as draft"
    return payload

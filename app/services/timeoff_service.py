"""Time-off service — absence records, quarterly summary and type breakdown.

Transaction policy: public functions call db.session.commit() on success.
"""
import logging

from sqlalchemy import func

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.team import TeamMember, TimeOff
from app.services.dates import get_quarter_date_range
from app.utils.helpers import parse_date, parse_date_input

logger = logging.getLogger(__name__)

# Types reported as separate columns in the quarterly summary
SUMMARY_TYPES = ("PTO", "sick", "bank_holiday", "birthday", "parental", "bereavement", "other")


def serialize_time_off(record: TimeOff) -> dict:
    data = record.to_dict()
    data["member_name"] = record.member.name if record.member else None
    return data


def get_time_off_or_raise(record_id) -> TimeOff:
    record = db.session.get(TimeOff, record_id)
    if record is None:
        raise NotFoundError("Time-off record", record_id)
    return record


def list_time_off(*, team_member_id=None, type=None, start_date=None, end_date=None) -> list[dict]:
    query = TimeOff.query
    if team_member_id:
        query = query.filter(TimeOff.team_member_id == team_member_id)
    if type:
        query = query.filter(TimeOff.type == type)
    if start_date and parse_date(start_date):
        query = query.filter(TimeOff.start_date >= parse_date(start_date))
    if end_date and parse_date(end_date):
        query = query.filter(TimeOff.end_date <= parse_date(end_date))
    return [serialize_time_off(r) for r in query.order_by(TimeOff.start_date.desc()).all()]


def quarter_summary(quarter: str | None) -> list[dict]:
    """Hours per time-off type for each member, for records inside the quarter."""
    if not quarter:
        raise ValidationError("Quarter is required")
    try:
        start, end, _weeks = get_quarter_date_range(quarter)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    result = []
    for member in TeamMember.query.order_by(TeamMember.name).all():
        rows = (
            db.session.query(TimeOff.type, func.coalesce(func.sum(TimeOff.hours), 0))
            .filter(
                TimeOff.team_member_id == member.id,
                TimeOff.start_date >= start,
                TimeOff.end_date <= end,
            )
            .group_by(TimeOff.type)
            .all()
        )
        by_type = dict(rows)
        entry = {"id": member.id, "name": member.name}
        for time_off_type in SUMMARY_TYPES:
            entry[f"{time_off_type.lower()}_hours"] = by_type.get(time_off_type, 0)
        entry["total_hours"] = sum(by_type.values())
        result.append(entry)
    return result


def type_breakdown() -> dict:
    """Totals per type overall and per (member, type)."""
    breakdown = [
        {"type": t, "count": count, "total_hours": hours, "member_count": members}
        for t, count, hours, members in (
            db.session.query(
                TimeOff.type,
                func.count(TimeOff.id),
                func.coalesce(func.sum(TimeOff.hours), 0).label("total_hours"),
                func.count(func.distinct(TimeOff.team_member_id)),
            )
            .group_by(TimeOff.type)
            .order_by(func.coalesce(func.sum(TimeOff.hours), 0).desc())
            .all()
        )
    ]
    by_member = [
        {
            "team_member_id": member_id,
            "member_name": name,
            "team": team,
            "type": t,
            "count": count,
            "total_hours": hours,
        }
        for member_id, name, team, t, count, hours in (
            db.session.query(
                TimeOff.team_member_id,
                TeamMember.name,
                TeamMember.team,
                TimeOff.type,
                func.count(TimeOff.id),
                func.coalesce(func.sum(TimeOff.hours), 0),
            )
            .join(TeamMember, TimeOff.team_member_id == TeamMember.id)
            .group_by(TimeOff.team_member_id, TimeOff.type)
            .order_by(TeamMember.name, TimeOff.type)
            .all()
        )
    ]
    return {"breakdown": breakdown, "byMember": by_member}


def create_time_off(data: dict) -> TimeOff:
    """Create a manual time-off record.

    Raises:
        ValidationError: a required field is missing or a date is invalid.
        NotFoundError: member does not exist.
    """
    required = ("team_member_id", "type", "start_date", "end_date", "hours")
    if any(not data.get(field) for field in required):
        raise ValidationError("team_member_id, type, start_date, end_date, and hours are required")
    try:
        start = parse_date_input(data["start_date"], "start_date")
        end = parse_date_input(data["end_date"], "end_date")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if db.session.get(TeamMember, data["team_member_id"]) is None:
        raise NotFoundError("Team member", data["team_member_id"])

    record = TimeOff(
        team_member_id=data["team_member_id"],
        type=data["type"],
        start_date=start,
        end_date=end,
        hours=data["hours"],
        notes=data.get("notes") or None,
        source="manual",
    )
    db.session.add(record)
    db.session.commit()
    return record


def update_time_off(record_id, data: dict) -> TimeOff:
    record = get_time_off_or_raise(record_id)
    if data.get("type"):
        record.type = data["type"]
    try:
        if data.get("start_date"):
            record.start_date = parse_date_input(data["start_date"], "start_date")
        if data.get("end_date"):
            record.end_date = parse_date_input(data["end_date"], "end_date")
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    if "hours" in data and data["hours"] is not None:
        record.hours = data["hours"]
    if "notes" in data:
        record.notes = data["notes"]
    db.session.commit()
    return record


def delete_time_off(record_id) -> None:
    record = get_time_off_or_raise(record_id)
    db.session.delete(record)
    db.session.commit()

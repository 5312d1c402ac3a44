"""Dashboard aggregation — team, goals, tasks, conflicts and utilization for a quarter.

Utilization is based on submitted weekly check-ins:
    hours worked = Σ total_allocation_pct / 100 × weekly_hours
    utilization  = (hours worked + time off) / (weekly_hours × 13) × 100
"""
import functools
import logging
from collections import defaultdict

from sqlalchemy import case, exists, func, or_, select

from app.core.exceptions import ValidationError
from app.models import db
from app.models.checkin import WeeklyCheckin
from app.models.okr import Goal, GoalAssignee
from app.models.task import ResolvedAssignee, Task, TaskAssignee
from app.models.team import TeamMember, TimeOff
from app.services.dates import BASELINE_FTE_HOURS, current_quarter, get_quarter_date_range, quarter_from_date
from app.services.goal_service import BAU_GOAL_MARKER
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

SPECIAL_QUARTERS = ("All", "Backlog")
HIDDEN_QUARTERS = {"Ongoing"}
OVER_ALLOCATED_PCT = 100
UNDER_UTILIZED_PCT = 50


def _pct(part, whole, ndigits=1):
    return round_half_up(part / whole * 100, ndigits) if whole > 0 else 0


# ═════════════════════════════════════════════════════════════════════════════
# SECTIONS
# ═════════════════════════════════════════════════════════════════════════════


def _team_stats() -> dict:
    count, weekly_hours = db.session.query(
        func.count(TeamMember.id), func.sum(TeamMember.weekly_hours),
    ).one()
    return {
        "totalMembers": count,
        "totalWeeklyHours": weekly_hours,
        "totalFTE": round_half_up((weekly_hours or 0) / BASELINE_FTE_HOURS, 2),
    }


def _goal_stats(quarter: str) -> dict:
    total, active, completed, avg_progress = db.session.query(
        func.count(Goal.id),
        func.sum(case((Goal.status == "active", 1), else_=0)),
        func.sum(case((Goal.status == "completed", 1), else_=0)),
        func.avg(Goal.progress),
    ).filter(Goal.quarter == quarter).one()
    return {
        "total": total or 0,
        "active": active or 0,
        "completed": completed or 0,
        "avgProgress": round_half_up(avg_progress or 0),
    }


def _goals_list(year: str) -> list[dict]:
    """Goals of the year plus "All"/"Backlog" ones, excluding BAU and the Backlog goal."""
    goals = (
        Goal.query.filter(
            or_(Goal.quarter.like(f"%{year}%"), Goal.quarter.in_(SPECIAL_QUARTERS)),
            ~Goal.title.contains(BAU_GOAL_MARKER),
            Goal.title != "Backlog",
        )
        .order_by(Goal.quarter, Goal.progress.desc(), Goal.title)
        .all()
    )
    return [
        {"id": g.id, "title": g.title, "progress": g.progress or 0, "status": g.status, "quarter": g.quarter}
        for g in goals
    ]


def _task_stats(quarter: str) -> dict:
    def _count(status):
        return func.sum(case((Task.status == status, 1), else_=0))

    total, todo, in_progress, done, blocked = (
        db.session.query(
            func.count(Task.id), _count("todo"), _count("in-progress"), _count("done"), _count("blocked"),
        )
        .outerjoin(Goal, Task.parent_goal_id == Goal.id)
        .filter(or_(Goal.quarter == quarter, Task.parent_goal_id.is_(None)))
        .one()
    )
    return {
        "total": total or 0,
        "todo": todo or 0,
        "inProgress": in_progress or 0,
        "done": done or 0,
        "blocked": blocked or 0,
    }


def count_unresolved_conflicts() -> int:
    """Tasks whose Miro assignees include someone outside the goal's assignees."""
    goal_members = select(GoalAssignee.team_member_id).where(
        GoalAssignee.goal_id == Task.parent_goal_id,
    )
    outsider = exists().where(
        TaskAssignee.task_id == Task.id,
        TaskAssignee.team_member_id.notin_(goal_members),
    )
    goal_has_assignees = exists().where(GoalAssignee.goal_id == Task.parent_goal_id)
    resolved = exists().where(ResolvedAssignee.task_id == Task.id)
    return db.session.query(func.count(Task.id)).filter(
        Task.parent_goal_id.isnot(None), goal_has_assignees, outsider, ~resolved,
    ).scalar()


def _time_off_stats(start, end) -> dict:
    total, members = db.session.query(
        func.coalesce(func.sum(TimeOff.hours), 0), func.count(func.distinct(TimeOff.team_member_id)),
    ).filter(TimeOff.start_date >= start, TimeOff.end_date <= end).one()
    return {"totalHours": total, "membersWithTimeOff": members}


def _member_utilization(start, end, weeks: int) -> list[dict]:
    checkins = dict(
        db.session.query(WeeklyCheckin.team_member_id, func.sum(WeeklyCheckin.total_allocation_pct))
        .filter(WeeklyCheckin.status == "submitted",
                WeeklyCheckin.week_start >= start, WeeklyCheckin.week_start <= end)
        .group_by(WeeklyCheckin.team_member_id)
        .all()
    )
    weeks_reported = dict(
        db.session.query(WeeklyCheckin.team_member_id, func.count(WeeklyCheckin.id))
        .filter(WeeklyCheckin.status == "submitted",
                WeeklyCheckin.week_start >= start, WeeklyCheckin.week_start <= end)
        .group_by(WeeklyCheckin.team_member_id)
        .all()
    )
    time_off = dict(
        db.session.query(TimeOff.team_member_id, func.sum(TimeOff.hours))
        .filter(TimeOff.start_date >= start, TimeOff.end_date <= end)
        .group_by(TimeOff.team_member_id)
        .all()
    )

    rows = []
    for member in TeamMember.query.order_by(TeamMember.name).all():
        allocation_sum = checkins.get(member.id) or 0
        time_off_hours = time_off.get(member.id) or 0
        weekly_hours = member.weekly_hours or 0
        capacity = weekly_hours * weeks
        hours_worked = allocation_sum / 100 * weekly_hours
        rows.append({
            "id": member.id,
            "name": member.name,
            "role": member.role,
            "team": member.team,
            "weeklyHours": weekly_hours,
            "fte": weekly_hours / BASELINE_FTE_HOURS,
            "totalCapacityHours": round_half_up(capacity),
            "hoursWorked": round_half_up(hours_worked),
            "utilization": _pct(hours_worked + time_off_hours, capacity),
            "weeksReported": weeks_reported.get(member.id, 0),
            "timeOffHours": time_off_hours,
            "timeOffPercent": _pct(time_off_hours, capacity),
            "_allocation_sum": allocation_sum,
        })
    rows.sort(key=lambda r: r["_allocation_sum"], reverse=True)
    for row in rows:
        del row["_allocation_sum"]
    return rows


def _team_allocation(start, end) -> list[dict]:
    avg_per_member = dict(
        db.session.query(WeeklyCheckin.team_member_id, func.avg(WeeklyCheckin.total_allocation_pct))
        .filter(WeeklyCheckin.status == "submitted",
                WeeklyCheckin.week_start >= start, WeeklyCheckin.week_start <= end)
        .group_by(WeeklyCheckin.team_member_id)
        .all()
    )
    teams = defaultdict(lambda: {"members": 0, "hours": 0, "allocs": []})
    for member in TeamMember.query.filter(TeamMember.team.isnot(None)).all():
        bucket = teams[member.team]
        bucket["members"] += 1
        bucket["hours"] += member.weekly_hours or 0
        if member.id in avg_per_member:
            bucket["allocs"].append(avg_per_member[member.id])

    result = []
    for team, bucket in teams.items():
        allocs = bucket["allocs"]
        avg = sum(allocs) / len(allocs) if allocs else 0
        result.append({
            "team": team,
            "memberCount": bucket["members"],
            "totalHours": bucket["hours"],
            "avgAllocation": round_half_up(avg, 1),
        })
    result.sort(key=lambda t: t["avgAllocation"], reverse=True)
    return result


# ═════════════════════════════════════════════════════════════════════════════
# PUBLIC
# ═════════════════════════════════════════════════════════════════════════════


def get_dashboard(quarter: str | None) -> dict:
    """All dashboard sections for a "Q<n> <yyyy>" quarter.

    Raises:
        ValidationError: quarter missing or malformed.
    """
    if not quarter:
        raise ValidationError("Quarter is required")
    try:
        start, end, weeks = get_quarter_date_range(quarter)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc
    year = quarter.split()[1]

    members = _member_utilization(start, end, weeks)
    total_capacity = sum(m["totalCapacityHours"] for m in members)
    total_worked = sum(m["hoursWorked"] for m in members)
    total_time_off = sum(m["timeOffHours"] for m in members)

    return {
        "quarter": quarter,
        "team": _team_stats(),
        "goals": _goal_stats(quarter),
        "goalsList": _goals_list(year),
        "tasks": _task_stats(quarter),
        "conflicts": {"unresolved": count_unresolved_conflicts()},
        "timeOff": _time_off_stats(start, end),
        "utilization": {
            "average": _pct(total_time_off + total_worked, total_capacity),
            "timeOffPercent": _pct(total_time_off, total_capacity),
            "workPercent": _pct(total_worked, total_capacity),
            "totalCapacityHours": total_capacity,
            "totalHoursWorked": total_worked,
            "totalTimeOffHours": total_time_off,
            "overAllocatedCount": sum(1 for m in members if m["utilization"] > OVER_ALLOCATED_PCT),
            "underUtilizedCount": sum(1 for m in members if m["utilization"] < UNDER_UTILIZED_PCT),
        },
        "memberUtilization": members,
        "teamAllocation": _team_allocation(start, end),
    }


def _compare_quarters(current: str):
    def compare(a: str, b: str) -> int:
        if a == current:
            return -1
        if b == current:
            return 1
        a_special, b_special = a in SPECIAL_QUARTERS, b in SPECIAL_QUARTERS
        if a_special != b_special:
            return 1 if a_special else -1
        if a_special:
            return (a > b) - (a < b)
        try:
            qa, ya = a.split()
            qb, yb = b.split()
            key_a = (int(ya), int(qa.lstrip("Q")))
            key_b = (int(yb), int(qb.lstrip("Q")))
        except ValueError:
            return (a > b) - (a < b)
        return (key_b > key_a) - (key_b < key_a)
    return compare


def list_quarters() -> list[str]:
    """Quarters seen in goals and time off, current quarter first, All/Backlog last."""
    quarters = {q for (q,) in db.session.query(Goal.quarter).distinct() if q}
    quarters.update(quarter_from_date(d) for (d,) in db.session.query(TimeOff.start_date).distinct() if d)
    current = current_quarter()
    quarters.add(current)
    quarters -= HIDDEN_QUARTERS
    return sorted(quarters, key=functools.cmp_to_key(_compare_quarters(current)))


"""PMO export — weekly allocation report per (initiative, member) pair.

One row per assignment on an active initiative, with:
    - allocation_1m: average of the recorded weeks in the first month of the range
    - allocation_3m: average over every week in the range (missing weeks count as 0)
    - one column per week (dd/mm), the planned allocation percentage

Also: allocation matrix (member → week → initiatives), utilization report
and saved export configurations.
"""
import calendar
import csv
import io
import json
import logging
from collections import defaultdict
from datetime import datetime, timezone

from openpyxl import Workbook
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter
from sqlalchemy import func, or_

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.capacity import WeeklyAllocation
from app.models.export import PmoExportConfig
from app.models.okr import Initiative, InitiativeAssignment
from app.models.team import TeamMember
from app.services.dates import format_week_label, get_monday, month_key, weeks_between
from app.utils.helpers import round_half_up

logger = logging.getLogger(__name__)

HEADER_FILL = PatternFill(start_color="354A5F", end_color="354A5F", fill_type="solid")
HEADER_FONT = Font(color="FFFFFF", bold=True, size=11)
THIN_BORDER = Border(
    left=Side(style="thin"),
    right=Side(style="thin"),
    top=Side(style="thin"),
    bottom=Side(style="thin"),
)

PREVIEW_ROWS = 5
OVER_ALLOCATED_PCT = 100
UNDER_ALLOCATED_PCT = 80


def _date_range(start_date, end_date):
    if not start_date or not end_date:
        raise ValidationError("start_date and end_date are required")
    try:
        return get_monday(start_date), get_monday(end_date)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc


def _average(values) -> float:
    values = list(values)
    if not values:
        return 0
    return round_half_up(sum(values) / len(values), 1)


# ══════════════════════════════════════════════════════════════════════════════
# PMO export data
# ══════════════════════════════════════════════════════════════════════════════


def generate_pmo_export_data(start_date, end_date, team=None, priority=None) -> dict:
    """Build headers, rows and metadata for the PMO export.

    Raises:
        ValidationError: dates missing or unparseable.
    """
    start, end = _date_range(start_date, end_date)
    weeks = weeks_between(start, end)
    months = sorted({month_key(w) for w in weeks})

    query = (
        db.session.query(Initiative, InitiativeAssignment, TeamMember)
        .join(InitiativeAssignment, InitiativeAssignment.initiative_id == Initiative.id)
        .join(TeamMember, InitiativeAssignment.team_member_id == TeamMember.id)
        .filter(Initiative.status == "active")
    )
    if team:
        query = query.filter(or_(Initiative.team == team, TeamMember.team == team))
    if priority:
        query = query.filter(Initiative.project_priority == priority)
    pairs = query.order_by(Initiative.project_priority, Initiative.name, TeamMember.name).all()

    weekly: dict[tuple, dict] = defaultdict(dict)
    allocations = WeeklyAllocation.query.filter(
        WeeklyAllocation.week_start >= start, WeeklyAllocation.week_start <= end,
    ).all()
    for a in allocations:
        weekly[(a.initiative_id, a.team_member_id)][a.week_start] = a.allocation_percentage

    rows = []
    for initiative, assignment, member in pairs:
        data = weekly.get((initiative.id, member.id), {})
        first_month = [v or 0 for w, v in data.items() if months and month_key(w) == months[0]]
        rows.append({
            "project_priority": initiative.project_priority or "",
            "project": initiative.name,
            "team": initiative.team or member.team or "",
            "project_role": assignment.role,
            "team_member": member.name,
            "allocation_1m": _average(first_month),
            "allocation_3m": _average(data.get(w) or 0 for w in weeks),
            "weekly": {w.isoformat(): data.get(w) or 0 for w in weeks},
        })

    first_month_name = calendar.month_name[int(months[0][5:])] if months else ""
    return {
        "headers": {
            "fixed": [
                "Project Priority",
                "Project",
                "Team",
                "Project Role",
                "Team member",
                f"Allocation [{first_month_name}]",
                "Allocation [3 Months]",
            ],
            "weeks": [format_week_label(w) for w in weeks],
        },
        "rows": rows,
        "metadata": {
            "startDate": start.isoformat(),
            "endDate": end.isoformat(),
            "weekCount": len(weeks),
            "rowCount": len(rows),
            "months": months,
            "generatedAt": datetime.now(timezone.utc).isoformat(),
        },
    }


def _row_values(row: dict) -> list:
    return [
        row["project_priority"],
        row["project"],
        row["team"],
        row["project_role"],
        row["team_member"],
        row["allocation_1m"],
        row["allocation_3m"],
        *row["weekly"].values(),
    ]


def export_to_csv(export_data: dict) -> str:
    headers = export_data["headers"]["fixed"] + export_data["headers"]["weeks"]
    output = io.StringIO()
    writer = csv.writer(output, lineterminator="\n")
    writer.writerow(headers)
    for row in export_data["rows"]:
        writer.writerow(_row_values(row))
    return output.getvalue()


def _apply_header_style(ws, row: int, col_count: int) -> None:
    """Apply dark-header styling to an Excel row (1-indexed)."""
    for col in range(1, col_count + 1):
        cell = ws.cell(row=row, column=col)
        cell.fill = HEADER_FILL
        cell.font = HEADER_FONT
        cell.border = THIN_BORDER
        cell.alignment = Alignment(horizontal="center", vertical="center", wrap_text=True)


def _auto_width(ws) -> None:
    """Auto-size column widths based on content (capped at 60 chars)."""
    for col in ws.columns:
        max_len = 0
        col_letter = get_column_letter(col[0].column)
        for cell in col:
            if cell.value:
                max_len = max(max_len, min(len(str(cell.value)), 60))
        ws.column_dimensions[col_letter].width = max(max_len + 4, 10)


def export_to_xlsx(export_data: dict) -> bytes:
    """PMO export as an .xlsx workbook ("PMO Export" sheet, frozen header)."""
    wb = Workbook()
    ws = wb.active
    ws.title = "PMO Export"

    headers = export_data["headers"]["fixed"] + export_data["headers"]["weeks"]
    ws.append(headers)
    _apply_header_style(ws, 1, len(headers))
    for row in export_data["rows"]:
        ws.append(_row_values(row))
    ws.freeze_panes = "F2"
    _auto_width(ws)

    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


def preview(start_date, end_date, team=None, priority=None) -> dict:
    data = generate_pmo_export_data(start_date, end_date, team, priority)
    return {
        "metadata": data["metadata"],
        "headers": data["headers"],
        "previewRows": data["rows"][:PREVIEW_ROWS],
        "totalRows": len(data["rows"]),
    }


# ══════════════════════════════════════════════════════════════════════════════
# Allocation matrix / utilization
# ══════════════════════════════════════════════════════════════════════════════


def allocation_matrix(start_date, end_date, team_member_id=None, initiative_id=None) -> dict:
    """Weekly allocations pivoted as member → week → {total, initiatives}."""
    start, end = _date_range(start_date, end_date)
    query = (
        db.session.query(WeeklyAllocation, TeamMember.name, Initiative)
        .join(TeamMember, WeeklyAllocation.team_member_id == TeamMember.id)
        .join(Initiative, WeeklyAllocation.initiative_id == Initiative.id)
        .filter(WeeklyAllocation.week_start >= start, WeeklyAllocation.week_start <= end)
    )
    if team_member_id:
        query = query.filter(WeeklyAllocation.team_member_id == team_member_id)
    if initiative_id:
        query = query.filter(WeeklyAllocation.initiative_id == initiative_id)

    matrix: dict[int, dict] = {}
    weeks = set()
    initiatives = {}
    for allocation, member_name, initiative in query.order_by(
        WeeklyAllocation.week_start, TeamMember.name, Initiative.name,
    ):
        week = allocation.week_start.isoformat()
        weeks.add(week)
        member = matrix.setdefault(allocation.team_member_id, {"member_name": member_name, "weeks": {}})
        cell = member["weeks"].setdefault(week, {"total": 0, "initiatives": []})
        cell["total"] += allocation.allocation_percentage
        cell["initiatives"].append({
            "initiative_id": initiative.id,
            "initiative_name": initiative.name,
            "allocation": allocation.allocation_percentage,
        })
        initiatives[initiative.id] = {
            "id": initiative.id, "name": initiative.name, "priority": initiative.project_priority,
        }

    return {"weeks": sorted(weeks), "initiatives": list(initiatives.values()), "matrix": matrix}


def utilization_report(start_date, end_date, team=None) -> dict:
    """Average weekly allocation per member over the weeks they have allocations."""
    start, end = _date_range(start_date, end_date)
    members = TeamMember.query
    if team:
        members = members.filter(TeamMember.team == team)

    per_week = defaultdict(dict)
    totals = (
        db.session.query(
            WeeklyAllocation.team_member_id,
            WeeklyAllocation.week_start,
            func.sum(WeeklyAllocation.allocation_percentage),
        )
        .filter(WeeklyAllocation.week_start >= start, WeeklyAllocation.week_start <= end)
        .group_by(WeeklyAllocation.team_member_id, WeeklyAllocation.week_start)
        .all()
    )
    for member_id, week, total in totals:
        per_week[member_id][week] = total

    utilization = []
    for m in members.order_by(TeamMember.id).all():
        weeks = per_week.get(m.id, {})
        avg = sum(weeks.values()) / len(weeks) if weeks else 0
        if avg > OVER_ALLOCATED_PCT:
            status = "over"
        elif avg < UNDER_ALLOCATED_PCT:
            status = "under"
        else:
            status = "optimal"
        utilization.append({
            "member_id": m.id,
            "member_name": m.name,
            "team": m.team,
            "weekly_hours": m.weekly_hours,
            "average_allocation": round_half_up(avg, 1),
            "weeks_tracked": len(weeks),
            "over_allocated_weeks": sum(1 for v in weeks.values() if v > OVER_ALLOCATED_PCT),
            "under_allocated_weeks": sum(1 for v in weeks.values() if v < UNDER_ALLOCATED_PCT),
            "status": status,
        })

    return {"start_date": start.isoformat(), "end_date": end.isoformat(), "utilization": utilization}


# ══════════════════════════════════════════════════════════════════════════════
# Saved configurations
# ══════════════════════════════════════════════════════════════════════════════


def list_configs() -> list[dict]:
    configs = PmoExportConfig.query.order_by(PmoExportConfig.created_at.desc(), PmoExportConfig.id.desc())
    return [c.to_dict() for c in configs.all()]


def create_config(data: dict) -> PmoExportConfig:
    if not data.get("name") or not data.get("start_week") or not data.get("end_week"):
        raise ValidationError("name, start_week, and end_week are required")
    try:
        start_week, end_week = get_monday(data["start_week"]), get_monday(data["end_week"])
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    months = data.get("include_months")
    config = PmoExportConfig(
        name=data["name"],
        start_week=start_week,
        end_week=end_week,
        include_months=json.dumps(months) if months else None,
    )
    db.session.add(config)
    db.session.commit()
    return config


def delete_config(config_id) -> None:
    config = db.session.get(PmoExportConfig, config_id)
    if config is None:
        raise NotFoundError("Configuration", config_id)
    db.session.delete(config)
    db.session.commit()

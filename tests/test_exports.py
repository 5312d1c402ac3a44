"""
Tests — PMO export, allocation matrix, utilization report, saved configs.

Covers:
    - JSON export: fixed headers, week columns, 1-month / 3-month averages
    - Team and priority filters, inactive initiatives excluded
    - CSV and XLSX downloads
    - Preview, allocation matrix, utilization status
    - Export configuration CRUD
"""

import io
from datetime import date

import pytest
from openpyxl import load_workbook

from app.models import db
from app.models.capacity import WeeklyAllocation
from app.models.okr import Initiative, InitiativeAssignment

URL = "/api/v1/exports"
RANGE = "start_date=2025-03-03&end_date=2025-03-26"


def _initiative(name, priority, team=None, status="active"):
    initiative = Initiative(name=name, project_priority=priority, team=team, status=status, source="manual")
    db.session.add(initiative)
    db.session.flush()
    return initiative


def _assign(initiative, member, role):
    db.session.add(InitiativeAssignment(
        initiative_id=initiative.id, team_member_id=member.id, role=role, source="manual",
    ))


def _allocate(initiative, member, week, pct):
    db.session.add(WeeklyAllocation(
        team_member_id=member.id, initiative_id=initiative.id, week_start=week, allocation_percentage=pct,
    ))


@pytest.fixture()
def plan(member_factory):
    marco = member_factory("Marco Russo")
    anna = member_factory("Anna Berg", team="Data")

    data_lake = _initiative("Data lake", "P1", team="Platform")
    reporting = _initiative("Reporting", "P2")
    paused = _initiative("Paused work", "P1", status="on-hold")

    _assign(data_lake, marco, "Lead")
    _assign(data_lake, anna, "Contributor")
    _assign(reporting, anna, "Support")
    _assign(paused, marco, "Lead")

    _allocate(data_lake, marco, date(2025, 3, 3), 50)
    _allocate(data_lake, marco, date(2025, 3, 10), 30)
    _allocate(data_lake, anna, date(2025, 3, 24), 20)
    _allocate(reporting, anna, date(2025, 3, 17), 100)
    _allocate(reporting, anna, date(2025, 3, 24), 100)
    _allocate(paused, marco, date(2025, 3, 17), 10)
    db.session.commit()
    return {"marco": marco, "anna": anna, "data_lake": data_lake, "reporting": reporting}


# ═════════════════════════════════════════════════════════════════════════════
# PMO EXPORT
# ═════════════════════════════════════════════════════════════════════════════


def test_pmo_export_json(client, auth_headers, plan):
    res = client.get(f"{URL}/pmo?{RANGE}", headers=auth_headers)
    assert res.status_code == 200
    data = res.get_json()

    assert data["headers"]["fixed"][-2:] == ["Allocation [March]", "Allocation [3 Months]"]
    assert data["headers"]["weeks"] == ["03/03", "10/03", "17/03", "24/03"]
    assert data["metadata"]["endDate"] == "2025-03-24"
    assert data["metadata"]["weekCount"] == 4
    assert data["metadata"]["months"] == ["2025-03"]

    rows = [
        (r["project_priority"], r["project"], r["team"], r["project_role"], r["team_member"],
         r["allocation_1m"], r["allocation_3m"])
        for r in data["rows"]
    ]
    assert rows == [
        ("P1", "Data lake", "Platform", "Contributor", "Anna Berg", 20, 5),
        ("P1", "Data lake", "Platform", "Lead", "Marco Russo", 40, 20),
        ("P2", "Reporting", "Data", "Support", "Anna Berg", 100, 50),
    ]
    assert data["rows"][1]["weekly"] == {
        "2025-03-03": 50, "2025-03-10": 30, "2025-03-17": 0, "2025-03-24": 0,
    }


def test_pmo_export_filters(client, auth_headers, plan):
    by_team = client.get(f"{URL}/pmo?{RANGE}&team=Data", headers=auth_headers).get_json()
    assert [(r["project"], r["team_member"]) for r in by_team["rows"]] == [
        ("Data lake", "Anna Berg"), ("Reporting", "Anna Berg"),
    ]
    by_priority = client.get(f"{URL}/pmo?{RANGE}&priority=P2", headers=auth_headers).get_json()
    assert [r["project"] for r in by_priority["rows"]] == ["Reporting"]


def test_pmo_export_csv(client, auth_headers, plan):
    res = client.get(f"{URL}/pmo?{RANGE}&format=csv", headers=auth_headers)
    assert res.status_code == 200
    assert res.mimetype == "text/csv"
    assert res.headers["Content-Disposition"] == (
        "attachment; filename=pmo-export-2025-03-03-to-2025-03-26.csv"
    )
    lines = res.get_data(as_text=True).splitlines()
    assert lines[0].startswith("Project Priority,Project,Team,Project Role,Team member,")
    assert lines[0].endswith(",03/03,10/03,17/03,24/03")
    assert lines[2] == "P1,Data lake,Platform,Lead,Marco Russo,40.0,20.0,50.0,30.0,0,0"
    assert len(lines) == 4


def test_pmo_export_xlsx(client, auth_headers, plan):
    res = client.get(f"{URL}/pmo?{RANGE}&format=xlsx", headers=auth_headers)
    assert res.status_code == 200
    assert res.mimetype == "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    wb = load_workbook(io.BytesIO(res.data))
    ws = wb["PMO Export"]
    assert ws.freeze_panes == "F2"
    assert ws["A1"].value == "Project Priority"
    assert ws["A1"].font.bold
    assert ws.max_row == 4
    assert ws["E4"].value == "Anna Berg"
    assert ws["J4"].value == 100


def test_pmo_export_rejects_unknown_format(client, auth_headers):
    res = client.get(f"{URL}/pmo?{RANGE}&format=pdf", headers=auth_headers)
    assert res.status_code == 400


def test_pmo_export_requires_dates(client, auth_headers):
    assert client.get(f"{URL}/pmo?start_date=2025-03-03", headers=auth_headers).status_code == 400
    assert client.get(
        f"{URL}/pmo?start_date=2025-03-03&end_date=soon", headers=auth_headers,
    ).status_code == 400


def test_pmo_preview_truncates(client, auth_headers, plan, member_factory):
    for i in range(4):
        member = member_factory(f"Extra {i}")
        _assign(plan["reporting"], member, "Contributor")
    db.session.commit()

    data = client.get(f"{URL}/pmo/preview?{RANGE}", headers=auth_headers).get_json()
    assert data["totalRows"] == 7
    assert len(data["previewRows"]) == 5
    assert data["headers"]["weeks"][0] == "03/03"


# ═════════════════════════════════════════════════════════════════════════════
# MATRIX / UTILIZATION
# ═════════════════════════════════════════════════════════════════════════════


def test_allocation_matrix(client, auth_headers, plan):
    data = client.get(f"{URL}/allocation-matrix?{RANGE}", headers=auth_headers).get_json()
    assert data["weeks"] == ["2025-03-03", "2025-03-10", "2025-03-17", "2025-03-24"]

    anna = data["matrix"][str(plan["anna"].id)]
    assert anna["member_name"] == "Anna Berg"
    assert anna["weeks"]["2025-03-24"]["total"] == 120
    assert [i["initiative_name"] for i in anna["weeks"]["2025-03-24"]["initiatives"]] == ["Data lake", "Reporting"]
    assert {i["name"] for i in data["initiatives"]} == {"Data lake", "Reporting", "Paused work"}


def test_allocation_matrix_filter_by_initiative(client, auth_headers, plan):
    data = client.get(
        f"{URL}/allocation-matrix?{RANGE}&initiative_id={plan['reporting'].id}", headers=auth_headers,
    ).get_json()
    assert list(data["matrix"]) == [str(plan["anna"].id)]
    assert data["weeks"] == ["2025-03-17", "2025-03-24"]


def test_utilization_report(client, auth_headers, plan):
    data = client.get(f"{URL}/utilization?{RANGE}", headers=auth_headers).get_json()
    by_name = {u["member_name"]: u for u in data["utilization"]}

    marco = by_name["Marco Russo"]
    # (50 + 30 + 10) / 3 weeks
    assert marco["average_allocation"] == 30
    assert marco["status"] == "under"
    assert marco["under_allocated_weeks"] == 3

    anna = by_name["Anna Berg"]
    assert anna["average_allocation"] == 110
    assert anna["status"] == "over"
    assert anna["over_allocated_weeks"] == 1
    assert anna["weeks_tracked"] == 2


def test_utilization_report_team_filter(client, auth_headers, plan):
    data = client.get(f"{URL}/utilization?{RANGE}&team=Data", headers=auth_headers).get_json()
    assert [u["member_name"] for u in data["utilization"]] == ["Anna Berg"]


# ═════════════════════════════════════════════════════════════════════════════
# CONFIGURATIONS
# ═════════════════════════════════════════════════════════════════════════════


def test_export_config_crud(client, auth_headers):
    res = client.post(f"{URL}/config", json={
        "name": "Q1 report", "start_week": "2025-01-08", "end_week": "2025-03-31",
        "include_months": ["2025-01", "2025-02"],
    }, headers=auth_headers)
    assert res.status_code == 201
    config = res.get_json()
    assert config["start_week"] == "2025-01-06"
    assert config["include_months"] == ["2025-01", "2025-02"]

    configs = client.get(f"{URL}/config", headers=auth_headers).get_json()
    assert [c["name"] for c in configs] == ["Q1 report"]

    res = client.delete(f"{URL}/config/{config['id']}", headers=auth_headers)
    assert res.get_json() == {"message": "Configuration deleted"}
    assert client.delete(f"{URL}/config/{config['id']}", headers=auth_headers).status_code == 404


def test_export_config_validation(client, auth_headers):
    res = client.post(f"{URL}/config", json={"name": "Missing weeks"}, headers=auth_headers)
    assert res.status_code == 400

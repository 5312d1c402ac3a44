"""
Tests — Personio, Leapsome and Miro imports.

Covers:
    - Personio members (email validation, duplicates) and time off (type mapping, matching)
    - Leapsome goals CSV and hierarchical XLSX (Goal → KR → Initiative)
    - Miro duplicate check (exact / similar / Leapsome / new)
    - Miro initiative import with skip / replace / create
    - Miro task import with goal links and BAU categories
    - Pending duplicate review (confirm / reject)
    - Upload errors
"""

import io
import logging

import pytest
from openpyxl import Workbook

from app.models import db
from app.models.imports import DuplicateMatch
from app.models.okr import Goal, GoalAssignee, Initiative, InitiativeAssignment, KeyResult, KeyResultAssignee
from app.models.task import Task
from app.models.team import TeamMember, TimeOff
from app.services.import_service import quarter_from_cycle

LEAPSOME_COLUMNS = [
    "Goal / Key Result", "Name", "ID", "Parent ID", "Goal Cycle", "Status", "Progress (%)",
    "Owner", "Description", "Metric", "Current", "Target", "Contributor 1", "Contributor 2",
]


def _post_file(client, headers, url, content: bytes, filename="data.csv"):
    return client.post(
        url,
        data={"file": (io.BytesIO(content), filename)},
        content_type="multipart/form-data",
        headers=headers,
    )


def _xlsx(rows: list[dict]) -> bytes:
    wb = Workbook()
    ws = wb.active
    ws.append(LEAPSOME_COLUMNS)
    for row in rows:
        ws.append([row.get(col) for col in LEAPSOME_COLUMNS])
    buf = io.BytesIO()
    wb.save(buf)
    return buf.getvalue()


@pytest.fixture()
def team(member_factory):
    marco = member_factory("Marco Russo", email="marco@acme.io")
    anna = member_factory("Anna Berg", email="anna@acme.io")
    return marco, anna


@pytest.fixture()
def bau_kr():
    goal = Goal(title="Business as Usual", quarter="Ongoing", status="active", source="manual")
    db.session.add(goal)
    db.session.flush()
    kr = KeyResult(goal_id=goal.id, title="Keep the lights on", status="active", source="manual")
    db.session.add(kr)
    db.session.commit()
    return kr


# ═════════════════════════════════════════════════════════════════════════════
# PERSONIO
# ═════════════════════════════════════════════════════════════════════════════


class TestPersonio:
    def test_members_import(self, client, auth_headers):
        csv_content = (
            "name,email,role,team,weekly_hours\n"
            "Anna Berg,anna.berg@acme.io,QA,Data,32\n"
            ",nobody@acme.io,,,\n"
            "Luis Zarate,not-an-email,,,\n"
            "Marco Russo,marco@acme.io,,,\n"
            "Dup Marco,marco@acme.io,,,\n"
        ).encode()
        res = _post_file(client, auth_headers, "/api/v1/imports/personio/members", csv_content)
        assert res.status_code == 200
        data = res.get_json()
        assert data["success"] is True
        assert data["imported"] == 2
        assert data["errors"] == 3
        errors = {e["row"]: e["error"] for e in data["details"]["errors"]}
        assert errors[3] == "Name is required"
        assert errors[4].startswith("Invalid email")
        assert errors[6] == "Email already exists: marco@acme.io"

        anna = TeamMember.query.filter_by(name="Anna Berg").one()
        assert (anna.team, anna.role, anna.weekly_hours) == ("Data", "QA", 32)
        assert TeamMember.query.filter_by(name="Marco Russo").one().weekly_hours == 40

    def test_import_summary_is_tagged_with_source(self, client, auth_headers, caplog):
        csv_content = b"name,email\nAnna Berg,anna.berg@acme.io\n"
        with caplog.at_level(logging.INFO, logger="app.services.import_service"):
            _post_file(client, auth_headers, "/api/v1/imports/personio/members", csv_content)
        sources = [getattr(r, "import_source", None) for r in caplog.records]
        assert "personio" in sources

    def test_time_off_import(self, client, auth_headers, team):
        marco, anna = team
        csv_content = (
            "employee,email,type,start_date,end_date,hours\n"
            "Anna Berg,,Sick leave,2025-02-03,2025-02-03,\n"
            ",marco@acme.io,Public Holiday,03.03.2025,03.03.2025,8\n"
            "Someone Else,,Vacation,2025-02-03,2025-02-04,16\n"
            "Anna Berg,,Vacation,bad-date,2025-02-04,16\n"
            "Anna Berg,,Paid vacation,2025-04-01,2025-04-02,16\n"
        ).encode()
        res = _post_file(client, auth_headers, "/api/v1/imports/personio/timeoff", csv_content)
        data = res.get_json()
        assert data["imported"] == 3
        errors = {e["row"]: e["error"] for e in data["details"]["errors"]}
        assert errors[4] == "Team member not found: Someone Else"
        assert errors[5].startswith("Invalid start_date")

        records = TimeOff.query.order_by(TimeOff.id).all()
        assert [(r.team_member_id, r.type, r.hours) for r in records] == [
            (anna.id, "sick", 8), (marco.id, "holiday", 8), (anna.id, "PTO", 16),
        ]
        assert {r.source for r in records} == {"personio"}

    def test_missing_file(self, client, auth_headers):
        res = client.post(
            "/api/v1/imports/personio/members", data={}, content_type="multipart/form-data", headers=auth_headers,
        )
        assert res.status_code == 400
        assert res.get_json() == {"error": "CSV file is required"}


# ═════════════════════════════════════════════════════════════════════════════
# LEAPSOME
# ═════════════════════════════════════════════════════════════════════════════


class TestLeapsome:
    @pytest.mark.parametrize("cycle, expected", [
        ("GKRs Q4 2025 Cycle", "Q4 2025"),
        ("q2 2024", "Q2 2024"),
        ("Annual 2025", "Q1 2025"),
    ])
    def test_quarter_from_cycle(self, cycle, expected):
        assert quarter_from_cycle(cycle) == expected

    def test_goals_csv(self, client, auth_headers, team):
        marco, anna = team
        csv_content = (
            "title,quarter,status,progress,owner,assignees\n"
            'Grow platform,Q1 2025,Completed,80,Anna Berg,"Anna Berg; Marco Russo, Ghost"\n'
            "No quarter,,active,,,\n"
            "Odd status,Q2 2025,paused,10,,\n"
        ).encode()
        res = _post_file(client, auth_headers, "/api/v1/imports/leapsome/goals", csv_content)
        data = res.get_json()
        assert data["imported"] == 2
        assert data["details"]["errors"] == [{"row": 3, "error": "Title and quarter are required"}]

        grow = Goal.query.filter_by(title="Grow platform").one()
        assert (grow.status, grow.progress, grow.owner_id, grow.source) == ("completed", 80, anna.id, "leapsome")
        assert {a.team_member_id for a in GoalAssignee.query.filter_by(goal_id=grow.id)} == {anna.id, marco.id}
        assert Goal.query.filter_by(title="Odd status").one().status == "active"

    def test_xlsx_hierarchy(self, client, auth_headers, team):
        marco, anna = team
        db.session.add(Goal(title="Stale import", quarter="Q1 2024", status="active", source="leapsome"))
        db.session.add(Goal(title="Manual goal", quarter="Q1 2024", status="active", source="manual"))
        db.session.commit()

        content = _xlsx([
            {"Goal / Key Result": "Goal", "Name": "Ship v2", "ID": "G1", "Goal Cycle": "GKRs Q4 2025 Cycle",
             "Status": "Done", "Progress (%)": 60, "Owner": "Anna Berg", "Contributor 1": "Marco Russo"},
            {"Goal / Key Result": "Key Result", "Name": "Reach 1k users", "ID": "K1", "Parent ID": "G1",
             "Status": "On track", "Metric": "users", "Current": 250, "Target": 1000, "Progress (%)": 25,
             "Contributor 1": "Marco"},
            {"Goal / Key Result": "Key Result", "Name": "Orphan KR", "ID": "K2", "Parent ID": "GX"},
            {"Goal / Key Result": "Initiative", "Name": "Launch campaign", "ID": "I1", "Parent ID": "K1",
             "Status": "On hold", "Owner": "Anna Berg", "Contributor 1": "Marco Russo"},
            {"Goal / Key Result": "Goal", "ID": "G2"},
        ])
        res = _post_file(client, auth_headers, "/api/v1/imports/leapsome/goals-xlsx", content, "okrs.xlsx")
        assert res.status_code == 200
        data = res.get_json()
        assert (data["goals"], data["keyResults"], data["initiatives"]) == (1, 1, 1)
        assert data["imported"] == 3
        assert data["errors"] == 2

        titles = {g.title for g in Goal.query.all()}
        assert titles == {"Ship v2", "Manual goal"}
        goal = Goal.query.filter_by(title="Ship v2").one()
        assert (goal.quarter, goal.status, goal.owner_id) == ("Q4 2025", "completed", anna.id)
        kr = KeyResult.query.filter_by(title="Reach 1k users").one()
        assert kr.goal_id == goal.id
        assert (kr.status, kr.current_value, kr.target_value) == ("active", 250, 1000)
        assert KeyResultAssignee.query.filter_by(key_result_id=kr.id).one().team_member_id == marco.id
        initiative = Initiative.query.filter_by(name="Launch campaign").one()
        assert initiative.key_result_id == kr.id
        assert initiative.status == "on-hold"
        roles = {a.team_member_id: a.role for a in InitiativeAssignment.query.filter_by(initiative_id=initiative.id)}
        assert roles == {marco.id: "Contributor", anna.id: "Lead"}

    def test_xlsx_garbage(self, client, auth_headers):
        res = _post_file(client, auth_headers, "/api/v1/imports/leapsome/goals-xlsx", b"not a zip", "okrs.xlsx")
        assert res.status_code == 400
        assert res.get_json()["error"].startswith("Failed to parse Excel")


# ═════════════════════════════════════════════════════════════════════════════
# MIRO
# ═════════════════════════════════════════════════════════════════════════════


class TestMiro:
    def test_check_duplicates(self, client, auth_headers):
        db.session.add(Initiative(name="Customer portal redesign", status="active", source="manual"))
        db.session.add(Goal(title="Grow platform", quarter="Q1 2025", status="active", source="leapsome"))
        db.session.add(Task(title="Write runbook", status="todo", priority="medium", source="manual"))
        db.session.commit()

        csv_content = b"title,assignees\nWrite runbook,\nPortal redesign,\nGrow platform,\nBrand new thing,\n"
        res = _post_file(client, auth_headers, "/api/v1/imports/miro/check-duplicates", csv_content)
        data = res.get_json()
        assert data["total"] == 4
        assert [(d["row"], d["existingType"]) for d in data["duplicates"]] == [(1, "task"), (3, "goal")]
        assert data["duplicates"][0]["similarity"] == 100
        assert data["similarCount"] == 1
        assert data["similar"][0]["existingTitle"] == "Customer portal redesign"
        assert data["similar"][0]["similarity"] == 70
        assert [m["title"] for m in data["leapsomeMatches"]] == ["Grow platform"]
        assert data["newItems"] == [{"row": 4, "title": "Brand new thing"}]

    def test_initiatives_skip_mode(self, client, auth_headers, team, bau_kr):
        marco, anna = team
        existing = Initiative(name="Customer portal redesign", status="active", source="manual")
        db.session.add(existing)
        db.session.commit()

        csv_content = (
            "title,priority,assignees\n"
            "Customer portal redesign,high,Marco\n"
            "Portal redesign,,Anna\n"
            'Kafka upgrade,P1 critical,"Anna; Marco; Zed"\n'
            ",low,\n"
        ).encode()
        res = _post_file(client, auth_headers, "/api/v1/imports/miro/initiatives", csv_content)
        data = res.get_json()
        assert (data["imported"], data["skipped"], data["matched"], data["errors"]) == (1, 1, 1, 1)
        assert data["unmatchedAssignees"] == ["Zed"]

        kafka = Initiative.query.filter_by(name="Kafka upgrade").one()
        assert (kafka.project_priority, kafka.team, kafka.key_result_id, kafka.source) == (
            "P1", "General", bau_kr.id, "miro",
        )
        roles = {a.team_member_id: a.role for a in InitiativeAssignment.query.filter_by(initiative_id=kafka.id)}
        assert roles == {anna.id: "Lead", marco.id: "Contributor"}

        match = DuplicateMatch.query.one()
        assert (match.source_title, match.matched_initiative_id, match.status) == (
            "Portal redesign", existing.id, "pending",
        )

    def test_initiatives_replace_mode(self, client, auth_headers, team):
        db.session.add(Initiative(name="Customer portal redesign", status="completed", source="manual"))
        db.session.commit()
        csv_content = b"title,assignees\ncustomer portal redesign,Marco\n"
        res = _post_file(client, auth_headers, "/api/v1/imports/miro/initiatives?duplicateAction=replace", csv_content)
        assert res.get_json()["imported"] == 1
        db.session.expire_all()
        rows = Initiative.query.all()
        assert [(i.name, i.status, i.source) for i in rows] == [("customer portal redesign", "active", "miro")]

    def test_initiatives_create_mode_duplicates(self, client, auth_headers):
        db.session.add(Initiative(name="Kafka upgrade", status="active", source="manual"))
        db.session.commit()
        res = _post_file(
            client, auth_headers, "/api/v1/imports/miro/initiatives?duplicateAction=create",
            b"title\nKafka upgrade\n",
        )
        assert res.get_json()["imported"] == 1
        assert Initiative.query.filter_by(name="Kafka upgrade").count() == 2

    def test_invalid_duplicate_action(self, client, auth_headers):
        res = _post_file(
            client, auth_headers, "/api/v1/imports/miro/initiatives?duplicateAction=merge", b"title\nX\n",
        )
        assert res.status_code == 400

    def test_tasks_import_links_goals_and_bau(self, client, auth_headers, team, bau_kr):
        marco, _anna = team
        goal = Goal(title="Platform", quarter="Q1 2025", status="active", source="manual")
        db.session.add(goal)
        db.session.flush()
        uptime = KeyResult(goal_id=goal.id, title="Uptime", status="active", source="manual")
        db.session.add(uptime)
        db.session.commit()

        csv_content = (
            "title,status,priority,assignees,goal_id,bau_category\n"
            f"Alerting revamp,in progress,p2,Marco,{goal.id},\n"
            "Vendor invoices,done,,Anna,bau,Finance\n"
            "Broken row,,,,abc,\n"
        ).encode()
        res = _post_file(client, auth_headers, "/api/v1/imports/miro/tasks", csv_content)
        data = res.get_json()
        assert data["imported"] == 2
        assert [e["row"] for e in data["details"]["errors"]] == [4]

        alerting = Initiative.query.filter_by(name="Alerting revamp").one()
        assert (alerting.key_result_id, alerting.status, alerting.project_priority, alerting.owner_id) == (
            uptime.id, "in-progress", "P2", marco.id,
        )
        invoices = Initiative.query.filter_by(name="Vendor invoices").one()
        assert (invoices.key_result_id, invoices.category, invoices.status) == (bau_kr.id, "Finance", "completed")

        again = _post_file(client, auth_headers, "/api/v1/imports/miro/tasks?duplicateAction=skip", csv_content)
        assert again.get_json()["imported"] == 0
        assert again.get_json()["skipped"] == 2


# ═════════════════════════════════════════════════════════════════════════════
# DUPLICATE REVIEW
# ═════════════════════════════════════════════════════════════════════════════


class TestDuplicateReview:
    def _pending(self, score=70):
        initiative = Initiative(name="Customer portal redesign", status="active", source="manual")
        db.session.add(initiative)
        db.session.flush()
        match = DuplicateMatch(
            source_type="miro", source_title="Portal redesign",
            matched_initiative_id=initiative.id, similarity_score=score, status="pending",
        )
        db.session.add(match)
        db.session.commit()
        return match

    def test_pending_list(self, client, auth_headers):
        self._pending()
        rows = client.get("/api/v1/imports/duplicates/pending", headers=auth_headers).get_json()
        assert len(rows) == 1
        assert rows[0]["matched_initiative_name"] == "Customer portal redesign"
        assert rows[0]["similarity_score"] == 70

    def test_confirm(self, client, auth_headers):
        match = self._pending()
        res = client.post(
            f"/api/v1/imports/duplicates/{match.id}/resolve", json={"action": "confirm"}, headers=auth_headers,
        )
        assert res.get_json() == {"message": "Match confirmed"}
        assert client.get("/api/v1/imports/duplicates/pending", headers=auth_headers).get_json() == []

    def test_reject_creates_initiative(self, client, auth_headers):
        match = self._pending()
        res = client.post(
            f"/api/v1/imports/duplicates/{match.id}/resolve", json={"action": "reject"}, headers=auth_headers,
        )
        data = res.get_json()
        assert data["message"] == "Match rejected, new initiative created"
        created = db.session.get(Initiative, data["newInitiativeId"])
        assert (created.name, created.team, created.source) == ("Portal redesign", "Ecosystem Engineering", "miro")

    def test_invalid_action_and_missing_match(self, client, auth_headers):
        match = self._pending()
        res = client.post(
            f"/api/v1/imports/duplicates/{match.id}/resolve", json={"action": "maybe"}, headers=auth_headers,
        )
        assert res.status_code == 400
        res = client.post("/api/v1/imports/duplicates/999/resolve", json={"action": "confirm"}, headers=auth_headers)
        assert res.status_code == 404
        assert res.get_json()["error"] == "Match not found"

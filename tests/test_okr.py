"""
Tests — OKR hierarchy: goals, key results, initiatives.

Covers:
    - Goal CRUD, status validation, assignees, quarter list
    - Key result CRUD, owner auto-assignment, status log, current/target progress
    - Initiative CRUD, status log, owner → Lead, progress validation
    - Assignments → estimated hours, time entries → actual hours
    - Progress cascade initiative → key result → goal
    - Batch assignment lookup
"""

import pytest

from app.models import db
from app.models.okr import Goal, Initiative, InitiativeAssignment, KeyResult, KeyResultAssignee
from app.services import progress_cascade


# ═════════════════════════════════════════════════════════════════════════════
# FIXTURES
# ═════════════════════════════════════════════════════════════════════════════


@pytest.fixture
def headers(auth_headers):
    return auth_headers


def _make_goal(client, headers, **kw):
    payload = {"title": "Platform Reliability", "quarter": "Q1 2025"}
    payload.update(kw)
    res = client.post("/api/v1/goals", json=payload, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _make_kr(client, headers, goal_id, **kw):
    payload = {"goal_id": goal_id, "title": "99.9% uptime"}
    payload.update(kw)
    res = client.post("/api/v1/key-results", json=payload, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


def _make_initiative(client, headers, **kw):
    payload = {"name": "Monitoring rollout"}
    payload.update(kw)
    res = client.post("/api/v1/initiatives", json=payload, headers=headers)
    assert res.status_code == 201, res.get_json()
    return res.get_json()


# ═════════════════════════════════════════════════════════════════════════════
# GOALS
# ═════════════════════════════════════════════════════════════════════════════


class TestGoals:
    def test_create_goal_with_assignees(self, client, headers, member_factory):
        a = member_factory("Fabian Bormann")
        b = member_factory("Marco Russo")
        goal = _make_goal(client, headers, assignee_ids=[a.id, b.id])
        assert goal["status"] == "active"
        assert goal["source"] == "manual"

        detail = client.get(f"/api/v1/goals/{goal['id']}", headers=headers).get_json()
        assert [x["name"] for x in detail["assignees"]] == ["Fabian Bormann", "Marco Russo"]

    def test_create_goal_requires_title_and_quarter(self, client, headers):
        res = client.post("/api/v1/goals", json={"title": "No quarter"}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Title and quarter are required"

    def test_create_goal_rejects_unknown_status(self, client, headers):
        res = client.post(
            "/api/v1/goals", json={"title": "x", "quarter": "Q1 2025", "status": "paused"},
            headers=headers,
        )
        assert res.status_code == 400

    def test_list_goals_order_and_filter(self, client, headers):
        _make_goal(client, headers, title="B goal", quarter="Q1 2025")
        _make_goal(client, headers, title="A goal", quarter="Q1 2025")
        _make_goal(client, headers, title="Later", quarter="Q2 2025")

        rows = client.get("/api/v1/goals", headers=headers).get_json()
        assert [g["title"] for g in rows] == ["Later", "A goal", "B goal"]

        q1 = client.get("/api/v1/goals?quarter=Q1 2025", headers=headers).get_json()
        assert {g["title"] for g in q1} == {"A goal", "B goal"}

    def test_list_goals_progress_is_mean_of_key_results(self, client, headers):
        goal = _make_goal(client, headers)
        for progress in (20, 60):
            db.session.add(KeyResult(goal_id=goal["id"], title=f"KR {progress}", progress=progress))
        db.session.commit()
        rows = client.get("/api/v1/goals", headers=headers).get_json()
        assert rows[0]["progress"] == 40

    def test_update_goal_keeps_title_when_empty(self, client, headers):
        goal = _make_goal(client, headers)
        res = client.put(
            f"/api/v1/goals/{goal['id']}", json={"title": "", "status": "completed"}, headers=headers,
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["title"] == "Platform Reliability"
        assert data["status"] == "completed"

    def test_delete_goal(self, client, headers):
        goal = _make_goal(client, headers)
        res = client.delete(f"/api/v1/goals/{goal['id']}", headers=headers)
        assert res.status_code == 200
        assert client.get(f"/api/v1/goals/{goal['id']}", headers=headers).status_code == 404

    def test_goal_assignee_add_duplicate_remove(self, client, headers, member_factory):
        member = member_factory("Satya Ranjan")
        goal = _make_goal(client, headers)
        url = f"/api/v1/goals/{goal['id']}/assignees"

        res = client.post(url, json={"team_member_id": member.id}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["member"]["name"] == "Satya Ranjan"

        dup = client.post(url, json={"team_member_id": member.id}, headers=headers)
        assert dup.status_code == 400
        assert dup.get_json()["error"] == "Member already assigned to this goal"

        res = client.delete(f"{url}/{member.id}", headers=headers)
        assert res.status_code == 200
        assert client.delete(f"{url}/{member.id}", headers=headers).status_code == 404

    def test_quarter_list(self, client, headers):
        _make_goal(client, headers, quarter="Q1 2025")
        _make_goal(client, headers, title="Other", quarter="Q3 2025")
        _make_goal(client, headers, title="Third", quarter="Q1 2025")
        res = client.get("/api/v1/goals/meta/quarters", headers=headers)
        assert res.get_json() == ["Q3 2025", "Q1 2025"]

    def test_goal_key_results_tree(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        _make_initiative(client, headers, key_result_id=kr["id"])

        tree = client.get(f"/api/v1/goals/{goal['id']}/key-results", headers=headers).get_json()
        assert tree[0]["title"] == "99.9% uptime"
        assert tree[0]["initiatives"][0]["name"] == "Monitoring rollout"


# ═════════════════════════════════════════════════════════════════════════════
# KEY RESULTS
# ═════════════════════════════════════════════════════════════════════════════


class TestKeyResults:
    def test_create_requires_goal_and_title(self, client, headers):
        res = client.post("/api/v1/key-results", json={"title": "x"}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "goal_id and title are required"

    def test_create_for_missing_goal(self, client, headers):
        res = client.post("/api/v1/key-results", json={"goal_id": 77, "title": "x"}, headers=headers)
        assert res.status_code == 404

    def test_owner_is_auto_assigned(self, client, headers, member_factory):
        owner = member_factory("Giovanni Gargiulo")
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"], owner_id=owner.id)
        assert KeyResultAssignee.query.filter_by(key_result_id=kr["id"], team_member_id=owner.id).count() == 1

    def test_progress_from_current_and_target(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"], target_value=200)
        res = client.put(f"/api/v1/key-results/{kr['id']}", json={"current_value": 50}, headers=headers)
        assert res.status_code == 200
        assert res.get_json()["progress"] == 25

        goal_row = db.session.get(Goal, goal["id"])
        assert goal_row.progress == 25

    def test_explicit_progress_wins(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"], target_value=200)
        res = client.put(
            f"/api/v1/key-results/{kr['id']}", json={"current_value": 50, "progress": 70}, headers=headers,
        )
        assert res.get_json()["progress"] == 70

    def test_status_change_is_logged(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        client.put(
            f"/api/v1/key-results/{kr['id']}",
            json={"status": "completed", "comment": "Shipped"},
            headers=headers,
        )
        updates = client.get(f"/api/v1/key-results/{kr['id']}/updates", headers=headers).get_json()
        assert len(updates) == 1
        assert updates[0]["previous_status"] == "active"
        assert updates[0]["new_status"] == "completed"
        assert updates[0]["comment"] == "Shipped"

    def test_add_update_requires_comment_or_link(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        url = f"/api/v1/key-results/{kr['id']}/updates"
        assert client.post(url, json={}, headers=headers).status_code == 400
        res = client.post(url, json={"link": "https://example.com/doc"}, headers=headers)
        assert res.status_code == 201

    def test_bau_listing(self, client, headers):
        bau = _make_goal(client, headers, title="Business as Usual 2025")
        other = _make_goal(client, headers, title="Growth")
        _make_kr(client, headers, bau["id"], title="Keep the lights on")
        _make_kr(client, headers, other["id"], title="New markets")

        rows = client.get("/api/v1/key-results?bau=true", headers=headers).get_json()
        assert [r["title"] for r in rows] == ["Keep the lights on"]

    def test_hierarchy(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        _make_initiative(client, headers, key_result_id=kr["id"], project_priority="P1")
        data = client.get(f"/api/v1/key-results/hierarchy/{goal['id']}", headers=headers).get_json()
        assert data["key_results"][0]["initiatives"][0]["project_priority"] == "P1"


# ═════════════════════════════════════════════════════════════════════════════
# INITIATIVES
# ═════════════════════════════════════════════════════════════════════════════


class TestInitiatives:
    def test_create_requires_name(self, client, headers):
        res = client.post("/api/v1/initiatives", json={}, headers=headers)
        assert res.status_code == 400
        assert res.get_json()["error"] == "Initiative name is required"

    def test_create_rejects_bad_priority(self, client, headers):
        res = client.post("/api/v1/initiatives", json={"name": "x", "project_priority": "P9"}, headers=headers)
        assert res.status_code == 400

    def test_owner_becomes_lead(self, client, headers, member_factory):
        owner = member_factory("Florian Schumann")
        initiative = _make_initiative(client, headers, owner_id=owner.id)
        assert initiative["owner_name"] == "Florian Schumann"
        assignments = client.get(
            f"/api/v1/initiatives/{initiative['id']}/assignments", headers=headers,
        ).get_json()
        assert [(a["member_name"], a["role"]) for a in assignments] == [("Florian Schumann", "Lead")]

    def test_completing_logs_and_sets_progress(self, client, headers):
        initiative = _make_initiative(client, headers)
        res = client.put(
            f"/api/v1/initiatives/{initiative['id']}",
            json={"status": "completed", "comment": "done"},
            headers=headers,
        )
        assert res.status_code == 200
        assert res.get_json()["progress"] == 100
        updates = client.get(f"/api/v1/initiatives/{initiative['id']}/updates", headers=headers).get_json()
        assert updates[0]["previous_status"] == "active"
        assert updates[0]["new_status"] == "completed"

    @pytest.mark.parametrize("value", [-1, 101, "50", None])
    def test_progress_validation(self, client, headers, value):
        initiative = _make_initiative(client, headers)
        res = client.patch(
            f"/api/v1/initiatives/{initiative['id']}/progress", json={"progress": value}, headers=headers,
        )
        assert res.status_code == 400
        assert res.get_json()["error"] == "Progress must be between 0 and 100"

    def test_progress_100_auto_completes(self, client, headers):
        initiative = _make_initiative(client, headers)
        res = client.patch(
            f"/api/v1/initiatives/{initiative['id']}/progress", json={"progress": 100}, headers=headers,
        )
        assert res.get_json()["status"] == "completed"

    def test_progress_100_keeps_on_hold(self, client, headers):
        initiative = _make_initiative(client, headers, status="on-hold")
        res = client.patch(
            f"/api/v1/initiatives/{initiative['id']}/progress", json={"progress": 100}, headers=headers,
        )
        assert res.get_json()["status"] == "on-hold"

    def test_assignment_upsert_and_estimated_hours(self, client, headers, member_factory):
        member = member_factory()
        initiative = _make_initiative(client, headers)
        url = f"/api/v1/initiatives/{initiative['id']}/assignments"

        res = client.post(url, json={"team_member_id": member.id, "allocation_percentage": 50}, headers=headers)
        assert res.status_code == 201
        assert res.get_json()["initiative_estimated_hours"] == 260
        assert res.get_json()["role"] == "Contributor"

        res = client.post(
            url, json={"team_member_id": member.id, "allocation_percentage": 25, "role": "Support"},
            headers=headers,
        )
        assert res.status_code == 200
        assert res.get_json()["initiative_estimated_hours"] == 130

        res = client.delete(f"{url}/{member.id}", headers=headers)
        assert res.get_json()["initiative_estimated_hours"] == 0

    def test_assignment_unknown_member(self, client, headers):
        initiative = _make_initiative(client, headers)
        res = client.post(
            f"/api/v1/initiatives/{initiative['id']}/assignments",
            json={"team_member_id": 404}, headers=headers,
        )
        assert res.status_code == 404

    def test_time_entries_normalised_to_monday(self, client, headers, member_factory):
        member = member_factory()
        initiative = _make_initiative(client, headers)
        url = f"/api/v1/initiatives/{initiative['id']}/time-entries"

        # Wednesday
        res = client.post(
            url, json={"team_member_id": member.id, "week_start": "2025-01-08", "hours_worked": 6},
            headers=headers,
        )
        assert res.status_code == 200
        data = res.get_json()
        assert data["entries"][0]["week_start"] == "2025-01-06"
        assert data["total_hours"] == 6

        client.post(
            url, json={"team_member_id": member.id, "week_start": "2025-01-06", "hours_worked": 10},
            headers=headers,
        )
        data = client.get(url, headers=headers).get_json()
        assert len(data["entries"]) == 1
        assert data["total_hours"] == 10

        entry_id = data["entries"][0]["id"]
        assert client.delete(f"/api/v1/initiatives/time-entries/{entry_id}", headers=headers).status_code == 200
        assert db.session.get(Initiative, initiative["id"]).actual_hours == 0

    def test_time_entry_requires_fields(self, client, headers):
        initiative = _make_initiative(client, headers)
        res = client.post(
            f"/api/v1/initiatives/{initiative['id']}/time-entries", json={"hours_worked": 3},
            headers=headers,
        )
        assert res.status_code == 400

    def test_time_entry_rejects_bad_week(self, client, headers, member_factory):
        member = member_factory()
        initiative = _make_initiative(client, headers)
        res = client.post(
            f"/api/v1/initiatives/{initiative['id']}/time-entries",
            json={"team_member_id": member.id, "week_start": "not-a-date", "hours_worked": 3},
            headers=headers,
        )
        assert res.status_code == 400
        assert res.get_json()["error"] == "Invalid week_start: 'not-a-date'"
        assert db.session.get(Initiative, initiative["id"]).actual_hours == 0

    def test_batch_assignments(self, client, headers, member_factory):
        member = member_factory("Max Grützmacher")
        first = _make_initiative(client, headers, owner_id=member.id)
        second = _make_initiative(client, headers, name="Empty")
        res = client.get(
            f"/api/v1/initiatives/assignments/batch?ids={first['id']},{second['id']},abc",
            headers=headers,
        )
        data = res.get_json()
        assert set(data) == {str(first["id"]), str(second["id"])}
        assert data[str(first["id"])][0]["member_name"] == "Max Grützmacher"
        assert data[str(second["id"])] == []

    def test_batch_assignments_requires_ids(self, client, headers):
        assert client.get("/api/v1/initiatives/assignments/batch", headers=headers).status_code == 400

    def test_member_initiatives(self, client, headers, member_factory):
        member = member_factory()
        _make_initiative(client, headers, owner_id=member.id)
        rows = client.get(f"/api/v1/initiatives/member/{member.id}", headers=headers).get_json()
        assert rows[0]["name"] == "Monitoring rollout"


# ═════════════════════════════════════════════════════════════════════════════
# PROGRESS CASCADE
# ═════════════════════════════════════════════════════════════════════════════


class TestProgressCascade:
    def _tree(self):
        goal = Goal(title="G", quarter="Q1 2025", status="active")
        db.session.add(goal)
        db.session.flush()
        kr = KeyResult(goal_id=goal.id, title="KR", status="active", progress=0)
        db.session.add(kr)
        db.session.flush()
        return goal, kr

    def test_key_result_is_mean_of_open_initiatives(self):
        goal, kr = self._tree()
        db.session.add_all([
            Initiative(name="a", key_result_id=kr.id, status="active", progress=40),
            Initiative(name="b", key_result_id=kr.id, status="active", progress=81),
            Initiative(name="c", key_result_id=kr.id, status="cancelled", progress=0),
        ])
        db.session.flush()
        progress_cascade.cascade_from_key_result(kr.id)
        # (40 + 81) / 2 = 60.5 rounds up
        assert kr.progress == 61
        assert goal.progress == 61

    def test_key_result_completes_at_100(self):
        _goal, kr = self._tree()
        db.session.add(Initiative(name="a", key_result_id=kr.id, status="completed", progress=100))
        db.session.flush()
        progress_cascade.cascade_from_key_result(kr.id)
        assert kr.status == "completed"

    def test_parent_without_children_keeps_value(self):
        goal, kr = self._tree()
        kr.progress = 35
        goal.progress = 12
        db.session.flush()
        progress_cascade.recalculate_key_result_progress(kr.id)
        assert kr.progress == 35

        db.session.delete(kr)
        db.session.flush()
        progress_cascade.recalculate_goal_progress(goal.id)
        assert goal.progress == 12

    def test_goal_ignores_cancelled_key_results(self):
        goal, kr = self._tree()
        kr.progress = 80
        db.session.add(KeyResult(goal_id=goal.id, title="dropped", status="cancelled", progress=0))
        db.session.flush()
        progress_cascade.recalculate_goal_progress(goal.id)
        assert goal.progress == 80

    def test_api_progress_cascades_up(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        first = _make_initiative(client, headers, key_result_id=kr["id"])
        _make_initiative(client, headers, name="Second", key_result_id=kr["id"])

        client.patch(f"/api/v1/initiatives/{first['id']}/progress", json={"progress": 50}, headers=headers)
        db.session.expire_all()
        assert db.session.get(KeyResult, kr["id"]).progress == 25
        assert db.session.get(Goal, goal["id"]).progress == 25

    def test_moving_initiative_recalculates_old_key_result(self, client, headers):
        goal = _make_goal(client, headers)
        old_kr = _make_kr(client, headers, goal["id"], title="Old")
        new_kr = _make_kr(client, headers, goal["id"], title="New")
        stay = _make_initiative(client, headers, name="Stays", key_result_id=old_kr["id"])
        move = _make_initiative(client, headers, name="Moves", key_result_id=old_kr["id"])
        client.patch(f"/api/v1/initiatives/{stay['id']}/progress", json={"progress": 20}, headers=headers)
        client.patch(f"/api/v1/initiatives/{move['id']}/progress", json={"progress": 80}, headers=headers)

        client.put(f"/api/v1/initiatives/{move['id']}", json={"key_result_id": new_kr["id"]}, headers=headers)
        db.session.expire_all()
        assert db.session.get(KeyResult, old_kr["id"]).progress == 20
        assert db.session.get(KeyResult, new_kr["id"]).progress == 80

    def test_deleting_initiative_recalculates(self, client, headers):
        goal = _make_goal(client, headers)
        kr = _make_kr(client, headers, goal["id"])
        keep = _make_initiative(client, headers, name="Keep", key_result_id=kr["id"])
        drop = _make_initiative(client, headers, name="Drop", key_result_id=kr["id"])
        client.patch(f"/api/v1/initiatives/{keep['id']}/progress", json={"progress": 90}, headers=headers)

        assert client.delete(f"/api/v1/initiatives/{drop['id']}", headers=headers).status_code == 200
        db.session.expire_all()
        assert db.session.get(KeyResult, kr["id"]).progress == 90
        assert InitiativeAssignment.query.filter_by(initiative_id=drop["id"]).count() == 0

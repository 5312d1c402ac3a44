"""
Tests — weekly allocation planning grid and date helpers.

Covers:
    - Upsert (201 create / 200 update), week normalized to Monday
    - Validation of required fields, status and unknown references
    - Bulk replace of a member's week with over-allocation warning
    - Copy from week
    - Member view with weekly totals, week summary, week list
    - get_monday / quarter ranges / half-up rounding
"""

from datetime import date, datetime

import pytest

from app.models import db
from app.models.capacity import WeeklyAllocation
from app.models.okr import Initiative, InitiativeAssignment
from app.services.dates import get_monday, get_quarter_date_range, quarter_from_date, weeks_between
from app.utils.helpers import parse_date, parse_date_input, round_half_up

URL = "/api/v1/weekly-allocations"


def _initiative(name, priority="P2"):
    initiative = Initiative(name=name, status="active", source="manual", project_priority=priority)
    db.session.add(initiative)
    db.session.commit()
    return initiative


def _upsert(client, headers, member, initiative, pct, week="2025-03-05", **kw):
    payload = {
        "team_member_id": member.id,
        "initiative_id": initiative.id,
        "week_start": week,
        "allocation_percentage": pct,
    }
    payload.update(kw)
    return client.post(URL, json=payload, headers=headers)


# ═════════════════════════════════════════════════════════════════════════════
# UPSERT
# ═════════════════════════════════════════════════════════════════════════════


def test_upsert_creates_then_updates(client, auth_headers, member_factory):
    member = member_factory("Marco Russo")
    initiative = _initiative("Data lake")

    res = _upsert(client, auth_headers, member, initiative, 40)
    assert res.status_code == 201
    created = res.get_json()
    # Wednesday normalized to its Monday
    assert created["week_start"] == "2025-03-03"
    assert created["status"] == "planned"
    assert created["member_name"] == "Marco Russo"
    assert created["initiative_name"] == "Data lake"

    res = _upsert(client, auth_headers, member, initiative, 60, week="2025-03-07", status="confirmed")
    assert res.status_code == 200
    updated = res.get_json()
    assert updated["id"] == created["id"]
    assert updated["allocation_percentage"] == 60
    assert updated["status"] == "confirmed"
    assert WeeklyAllocation.query.count() == 1


def test_upsert_includes_assignment_role(client, auth_headers, member_factory):
    member = member_factory()
    initiative = _initiative("Data lake")
    db.session.add(InitiativeAssignment(
        initiative_id=initiative.id, team_member_id=member.id, role="Lead", source="manual",
    ))
    db.session.commit()
    res = _upsert(client, auth_headers, member, initiative, 40)
    assert res.get_json()["role"] == "Lead"


def test_upsert_requires_fields(client, auth_headers):
    res = client.post(URL, json={"team_member_id": 1}, headers=auth_headers)
    assert res.status_code == 400


def test_upsert_zero_percentage_is_allowed(client, auth_headers, member_factory):
    res = _upsert(client, auth_headers, member_factory(), _initiative("Idle"), 0)
    assert res.status_code == 201


def test_upsert_rejects_bad_status(client, auth_headers, member_factory):
    res = _upsert(client, auth_headers, member_factory(), _initiative("X"), 10, status="maybe")
    assert res.status_code == 400


def test_upsert_rejects_bad_week(client, auth_headers, member_factory):
    res = _upsert(client, auth_headers, member_factory(), _initiative("X"), 10, week="someday")
    assert res.status_code == 400
    assert "Invalid week_start" in res.get_json()["error"]


def test_upsert_unknown_initiative(client, auth_headers, member_factory):
    member = member_factory()
    res = client.post(URL, json={
        "team_member_id": member.id, "initiative_id": 999,
        "week_start": "2025-03-03", "allocation_percentage": 10,
    }, headers=auth_headers)
    assert res.status_code == 404


def test_delete_allocation(client, auth_headers, member_factory):
    res = _upsert(client, auth_headers, member_factory(), _initiative("X"), 10)
    allocation_id = res.get_json()["id"]
    res = client.delete(f"{URL}/{allocation_id}", headers=auth_headers)
    assert res.status_code == 200
    assert client.delete(f"{URL}/{allocation_id}", headers=auth_headers).status_code == 404


# ═════════════════════════════════════════════════════════════════════════════
# BULK / COPY
# ═════════════════════════════════════════════════════════════════════════════


def test_bulk_replace_removes_missing_and_warns(client, auth_headers, member_factory):
    member = member_factory()
    a, b, c = _initiative("A", "P1"), _initiative("B", "P2"), _initiative("C", "P3")
    _upsert(client, auth_headers, member, a, 30, week="2025-03-03")
    _upsert(client, auth_headers, member, c, 30, week="2025-03-03")

    res = client.post(f"{URL}/bulk", json={
        "team_member_id": member.id,
        "week_start": "2025-03-03",
        "allocations": [
            {"initiative_id": a.id, "allocation_percentage": 70},
            {"initiative_id": b.id, "allocation_percentage": 50},
        ],
    }, headers=auth_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["total_allocation"] == 120
    assert data["warning"] == "Total allocation exceeds 100%"
    assert sorted(ch["action"] for ch in data["changes"]) == ["created", "updated"]
    assert [r["initiative_name"] for r in data["allocations"]] == ["A", "B"]


def test_bulk_replace_with_empty_list_clears_week(client, auth_headers, member_factory):
    member = member_factory()
    _upsert(client, auth_headers, member, _initiative("A"), 30, week="2025-03-03")
    res = client.post(f"{URL}/bulk", json={
        "team_member_id": member.id, "week_start": "2025-03-03", "allocations": [],
    }, headers=auth_headers)
    data = res.get_json()
    assert data["allocations"] == []
    assert data["warning"] is None


def test_bulk_replace_requires_array(client, auth_headers, member_factory):
    res = client.post(f"{URL}/bulk", json={
        "team_member_id": member_factory().id, "week_start": "2025-03-03", "allocations": "x",
    }, headers=auth_headers)
    assert res.status_code == 400


def test_copy_from_week(client, auth_headers, member_factory):
    member = member_factory()
    _upsert(client, auth_headers, member, _initiative("A"), 30, week="2025-03-03", status="actual")
    _upsert(client, auth_headers, member, _initiative("B"), 40, week="2025-03-03")

    res = client.post(f"{URL}/copy-from-week", json={
        "team_member_id": member.id, "source_week": "2025-03-03", "target_week": "2025-03-12",
    }, headers=auth_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["target_week"] == "2025-03-10"
    assert data["copied_count"] == 2
    assert {a["status"] for a in data["allocations"]} == {"planned"}


def test_copy_from_empty_week(client, auth_headers, member_factory):
    res = client.post(f"{URL}/copy-from-week", json={
        "team_member_id": member_factory().id, "source_week": "2025-03-03", "target_week": "2025-03-10",
    }, headers=auth_headers)
    assert res.status_code == 404
    assert res.get_json()["error"] == "No allocations found for source week"


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════


def test_member_view_weekly_totals(client, auth_headers, member_factory):
    member = member_factory()
    _upsert(client, auth_headers, member, _initiative("A"), 30, week="2025-03-03")
    _upsert(client, auth_headers, member, _initiative("B"), 50, week="2025-03-03")
    _upsert(client, auth_headers, member, _initiative("C"), 20, week="2025-03-10")

    res = client.get(f"{URL}/member/{member.id}", headers=auth_headers)
    data = res.get_json()
    assert data["weeklyTotals"] == {"2025-03-03": 80, "2025-03-10": 20}
    assert data["allocations"][0]["initiative_status"] == "active"

    res = client.get(f"{URL}/member/{member.id}?start_date=2025-03-11", headers=auth_headers)
    assert list(res.get_json()["weeklyTotals"]) == ["2025-03-10"]


def test_member_view_unknown_member(client, auth_headers):
    assert client.get(f"{URL}/member/999", headers=auth_headers).status_code == 404


def test_list_filters(client, auth_headers, member_factory):
    marco, anna = member_factory("Marco"), member_factory("Anna")
    initiative = _initiative("A")
    _upsert(client, auth_headers, marco, initiative, 30, week="2025-03-03")
    _upsert(client, auth_headers, anna, initiative, 30, week="2025-03-03")
    _upsert(client, auth_headers, anna, initiative, 30, week="2025-03-10")

    rows = client.get(f"{URL}?week_start=2025-03-04", headers=auth_headers).get_json()
    assert [r["member_name"] for r in rows] == ["Anna", "Marco"]
    rows = client.get(f"{URL}?team_member_id={anna.id}", headers=auth_headers).get_json()
    assert [r["week_start"] for r in rows] == ["2025-03-10", "2025-03-03"]


def test_week_summary_includes_unallocated_members(client, auth_headers, member_factory):
    marco = member_factory("Marco")
    member_factory("Anna")
    _upsert(client, auth_headers, marco, _initiative("A"), 30, week="2025-03-03")
    _upsert(client, auth_headers, marco, _initiative("B"), 45, week="2025-03-03")

    res = client.get(f"{URL}/summary?week_start=2025-03-03", headers=auth_headers)
    members = {m["name"]: m for m in res.get_json()["members"]}
    assert members["Marco"]["total_allocation"] == 75
    assert members["Marco"]["initiative_count"] == 2
    assert members["Anna"]["total_allocation"] == 0
    assert members["Anna"]["initiative_count"] == 0


def test_week_summary_requires_week(client, auth_headers):
    assert client.get(f"{URL}/summary", headers=auth_headers).status_code == 400


def test_weeks_between_dates(client, auth_headers):
    res = client.get(f"{URL}/weeks?start_date=2025-03-05&end_date=2025-03-24", headers=auth_headers)
    assert res.get_json() == ["2025-03-03", "2025-03-10", "2025-03-17", "2025-03-24"]


def test_weeks_default_count(client, auth_headers):
    weeks = client.get(f"{URL}/weeks", headers=auth_headers).get_json()
    assert len(weeks) == 13
    assert weeks[0] == get_monday().isoformat()
    assert len(client.get(f"{URL}/weeks?count=4", headers=auth_headers).get_json()) == 4


# ═════════════════════════════════════════════════════════════════════════════
# DATE HELPERS
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("value, expected", [
    ("2025-03-03", date(2025, 3, 3)),
    ("2025-03-09", date(2025, 3, 3)),
    (date(2025, 3, 10), date(2025, 3, 10)),
    (datetime(2025, 3, 12, 15, 30), date(2025, 3, 10)),
    ("12.03.2025", date(2025, 3, 10)),
])
def test_get_monday(value, expected):
    assert get_monday(value) == expected


def test_get_monday_rejects_garbage():
    with pytest.raises(ValueError):
        get_monday("not-a-date")


def test_quarter_range():
    start, end, weeks = get_quarter_date_range("Q1 2024")
    assert (start, end, weeks) == (date(2024, 1, 1), date(2024, 3, 31), 13)
    assert get_quarter_date_range("q4 2025")[1] == date(2025, 12, 31)
    with pytest.raises(ValueError):
        get_quarter_date_range("Q5 2025")
    assert quarter_from_date(date(2025, 8, 1)) == "Q3 2025"


def test_weeks_between_starts_on_monday():
    assert weeks_between("2025-01-01", "2025-01-13") == [
        date(2024, 12, 30), date(2025, 1, 6), date(2025, 1, 13),
    ]


def test_parse_helpers():
    assert parse_date("2025-01-08T10:00:00") == date(2025, 1, 8)
    assert parse_date("junk") is None
    assert parse_date("") is None
    with pytest.raises(ValueError, match="start_date is required"):
        parse_date_input(None, "start_date")


@pytest.mark.parametrize("value, digits, expected", [
    (2.5, 0, 3),
    (7.65, 1, 7.7),
    (None, 0, 0),
    (-0.5, 0, -1),
])
def test_round_half_up(value, digits, expected):
    assert round_half_up(value, digits) == expected

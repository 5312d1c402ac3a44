"""
Tests — iCal time-off sync.

Covers:
    - Event type classification / public holiday / tracked member rules
    - Sync: vacation, sick, birthday, public holidays, probation, other years
    - UID de-duplication on re-sync, unmatched names with suggestions
    - Name mappings, unreachable feeds, no feeds configured
    - Preview and clear
"""

from datetime import date

import pytest
import requests

from app.integrations.ical_gateway import ical_gateway
from app.models import db
from app.models.team import TimeOff
from app.services.calendar_service import (
    classify_event_type,
    is_public_holiday,
    is_tracked_member,
    name_similarity,
)

FEED_URL = "https://calendar.example.org/personio/absences.ics"


def _event(uid, summary, start, end):
    return [
        "BEGIN:VEVENT",
        f"UID:{uid}",
        f"SUMMARY:{summary}",
        f"DTSTART;VALUE=DATE:{start}",
        f"DTEND;VALUE=DATE:{end}",
        "END:VEVENT",
    ]


def _ics(*events) -> bytes:
    lines = ["BEGIN:VCALENDAR", "VERSION:2.0", "PRODID:-//Planner Tests//EN"]
    for event in events:
        lines.extend(event)
    lines.append("END:VCALENDAR")
    return "\r\n".join(lines).encode("utf-8")


ABSENCES = _ics(
    _event("evt-1", "[Vacation] Marco Russo", "20250303", "20250305"),
    _event("evt-2", "[Sick leave] Anna Berg (½ day)", "20250310", "20250311"),
    _event("evt-3", "[Birthday] Marco Russo", "19900615", "19900616"),
    _event("evt-4", "[Public Holiday Ireland] St Patrick's Day", "20250317", "20250318"),
    _event("evt-5", "[Probation end] Marco Russo", "20250401", "20250402"),
    _event("evt-6", "[Vacation] Stranger Person", "20250303", "20250305"),
    _event("evt-7", "[Vacation] Marco Russo", "20240303", "20240305"),
    _event("evt-8", "Team offsite", "20250303", "20250304"),
    _event("evt-9", "[Vacation] Dr. Anna Berg", "20250407", "20250408"),
)


class FakeResponse:
    def __init__(self, content, status_code=200):
        self.content = content
        self.status_code = status_code

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Server Error")


class FakeSession:
    def __init__(self, feeds):
        self.feeds = feeds
        self.calls = []

    def get(self, url, timeout=None):
        self.calls.append((url, timeout))
        if url not in self.feeds:
            raise requests.ConnectionError("connection refused")
        return FakeResponse(self.feeds[url])


@pytest.fixture()
def fake_feeds(monkeypatch):
    session = FakeSession({FEED_URL: ABSENCES})
    monkeypatch.setattr(ical_gateway, "session", session)
    return session


@pytest.fixture()
def calendar_config(app, monkeypatch):
    monkeypatch.setitem(app.config, "CALENDAR_FEEDS", [FEED_URL])
    monkeypatch.setitem(app.config, "CALENDAR_COUNTRY_MEMBERS", {"Ireland": ["Marco Russo", "Anna Berg"]})
    monkeypatch.setitem(app.config, "CALENDAR_NAME_MAPPINGS", {})


@pytest.fixture()
def team(member_factory):
    return member_factory("Marco Russo"), member_factory("Anna Berg")


# ═════════════════════════════════════════════════════════════════════════════
# RULES
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("event_type, expected", [
    ("Sick leave", "sick"),
    ("Maternity leave", "parental"),
    ("Work remotely", "remote"),
    ("Time in lieu", "lieu"),
    ("Time off in lieu", "PTO"),
    ("Vacation", "PTO"),
    ("Overtime compensation", "overtime"),
    ("Unpaid leave", "unpaid"),
    ("Something new", "PTO"),
])
def test_classify_event_type(event_type, expected):
    assert classify_event_type(event_type) == expected


def test_is_public_holiday():
    assert is_public_holiday("public holiday ireland")
    assert is_public_holiday("Bank Holiday")
    assert is_public_holiday("holiday ie/uk")
    assert not is_public_holiday("holiday")


def test_is_tracked_member():
    names = ["Marco Russo", "Anna Berg"]
    assert is_tracked_member("Marco Russo", names)
    assert is_tracked_member("marco", names)
    assert is_tracked_member("Anna Berg (½ day)", names)
    assert is_tracked_member("Marco Bianchi", names)
    assert not is_tracked_member("Stranger Person", names)
    assert not is_tracked_member("", names)


def test_name_similarity():
    assert name_similarity("Anna Berg", "anna berg") == 100
    assert name_similarity("Anna Smith", "Anna Berg") == 80
    assert name_similarity("Dr. Anna Berg", "Anna Berg") == 70
    assert name_similarity("Anna Berg", "Marco Russo") == 0


# ═════════════════════════════════════════════════════════════════════════════
# SYNC
# ═════════════════════════════════════════════════════════════════════════════


def test_sync_imports_absences(client, auth_headers, team, fake_feeds, calendar_config):
    marco, anna = team
    res = client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["success"] is True
    assert data["totalImported"] == 5
    assert data["totalSkipped"] == 5
    assert data["totalErrors"] == 0
    assert data["feeds"][0]["url"] == FEED_URL[:50] + "..."
    assert fake_feeds.calls == [(FEED_URL, 30)]

    records = {
        (r.team_member_id, r.type): r
        for r in TimeOff.query.filter_by(source="ical").all()
    }
    vacation = records[(marco.id, "PTO")]
    assert (vacation.start_date, vacation.end_date, vacation.hours, vacation.notes) == (
        date(2025, 3, 3), date(2025, 3, 5), 16, "evt-1",
    )
    assert records[(anna.id, "sick")].hours == 8
    birthday = records[(marco.id, "birthday")]
    assert (birthday.start_date, birthday.end_date, birthday.hours) == (date(2025, 6, 15), date(2025, 6, 16), 8)
    assert birthday.notes == "Birthday - Marco Russo"
    assert records[(marco.id, "bank_holiday")].notes == "St Patrick's Day (Ireland)"
    assert records[(anna.id, "bank_holiday")].start_date == date(2025, 3, 17)

    assert data["unmatchedNames"] == [{
        "calendarName": "Dr. Anna Berg",
        "suggestions": [{"id": anna.id, "name": "Anna Berg", "similarity": 70}],
    }]


def test_resync_is_idempotent(client, auth_headers, team, fake_feeds, calendar_config):
    client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    before = TimeOff.query.count()
    res = client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    assert res.get_json()["totalImported"] == 0
    assert TimeOff.query.count() == before


def test_sync_skips_overlapping_manual_entry(client, auth_headers, team, fake_feeds, calendar_config):
    marco, _anna = team
    db.session.add(TimeOff(
        team_member_id=marco.id, type="PTO", start_date=date(2025, 3, 4), end_date=date(2025, 3, 4),
        hours=8, source="manual",
    ))
    db.session.commit()
    client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    assert TimeOff.query.filter_by(team_member_id=marco.id, type="PTO").count() == 1


def test_sync_with_name_mapping(client, auth_headers, team, fake_feeds, calendar_config):
    _marco, anna = team
    res = client.post(
        "/api/v1/calendar/sync",
        json={"nameMappings": {"Dr. Anna Berg": str(anna.id), "Ignored": "abc"}},
        headers=auth_headers,
    )
    data = res.get_json()
    assert data["unmatchedNames"] == []
    assert data["totalImported"] == 6
    assert TimeOff.query.filter_by(notes="evt-9").one().team_member_id == anna.id


def test_sync_reports_unreachable_feed(client, auth_headers, team, fake_feeds, calendar_config):
    bad_url = "https://calendar.example.org/missing.ics"
    res = client.post("/api/v1/calendar/sync", json={"feedUrls": [bad_url, FEED_URL]}, headers=auth_headers)
    data = res.get_json()
    assert data["feeds"][0]["imported"] == 0
    assert data["feeds"][0]["errors"][0].startswith("Failed to fetch feed")
    assert data["feeds"][1]["imported"] == 5
    assert data["totalErrors"] == 1


def test_sync_without_feeds(client, auth_headers, app, monkeypatch):
    monkeypatch.setitem(app.config, "CALENDAR_FEEDS", [])
    res = client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    assert res.status_code == 400
    assert res.get_json()["error"] == "No calendar feeds configured"


def test_list_feeds(client, auth_headers, calendar_config):
    feeds = client.get("/api/v1/calendar/feeds", headers=auth_headers).get_json()
    assert feeds == [{"id": "feed-1", "name": "Calendar feed 1", "url": FEED_URL}]


# ═════════════════════════════════════════════════════════════════════════════
# PREVIEW / CLEAR
# ═════════════════════════════════════════════════════════════════════════════


def test_preview_does_not_write(client, auth_headers, team, fake_feeds, calendar_config):
    res = client.post("/api/v1/calendar/preview", json={"url": FEED_URL}, headers=auth_headers)
    assert res.status_code == 200
    data = res.get_json()
    assert data["totalEvents"] == 5
    assert [e["startDate"] for e in data["events"]] == [
        "2025-03-03", "2025-03-10", "2025-03-17", "2025-04-07", "2025-06-15",
    ]
    holiday = data["events"][2]
    assert holiday["person"] == "St Patrick's Day → Marco, Anna"
    assert holiday["isHoliday"] is True
    assert data["events"][3]["memberExists"] is False
    assert data["events"][4]["isBirthday"] is True
    assert TimeOff.query.count() == 0


def test_preview_requires_url(client, auth_headers):
    res = client.post("/api/v1/calendar/preview", json={}, headers=auth_headers)
    assert res.status_code == 400
    assert res.get_json()["error"] == "URL is required"


def test_preview_upstream_failure_is_502(client, auth_headers, fake_feeds):
    res = client.post(
        "/api/v1/calendar/preview", json={"url": "https://calendar.example.org/gone.ics"}, headers=auth_headers,
    )
    assert res.status_code == 502


def test_preview_invalid_ical_is_502(client, auth_headers, monkeypatch):
    monkeypatch.setattr(ical_gateway, "session", FakeSession({FEED_URL: b"<html>not a calendar</html>"}))
    res = client.post("/api/v1/calendar/preview", json={"url": FEED_URL}, headers=auth_headers)
    assert res.status_code == 502


def test_clear_removes_only_ical_records(client, auth_headers, team, fake_feeds, calendar_config):
    marco, _anna = team
    client.post("/api/v1/calendar/sync", json={}, headers=auth_headers)
    db.session.add(TimeOff(
        team_member_id=marco.id, type="PTO", start_date=date(2025, 8, 4), end_date=date(2025, 8, 8),
        hours=40, source="manual",
    ))
    db.session.commit()

    res = client.delete("/api/v1/calendar/clear", headers=auth_headers)
    assert res.get_json() == {"success": True, "message": "Cleared 5 iCal-imported records"}
    assert [r.source for r in TimeOff.query.all()] == ["manual"]

"""Calendar service — time off from iCal feeds (Personio absence calendars).

Transaction policy: sync() and clear() commit on success.

Event summaries look like ``[Type] Person Name``. Handling per type:
    - probation:      ignored
    - birthday:       moved to the import year, one 8 h day, tracked members only
    - public holiday: one record per member of the country named in the type
                      (CALENDAR_COUNTRY_MEMBERS)
    - anything else:  classified (sick, parental, remote, ...), matched to a
                      member and de-duplicated by UID, then by date overlap
Only events starting in CALENDAR_IMPORT_YEAR are imported.
"""
import logging
import math
import re
from datetime import date, timedelta

from flask import current_app
from sqlalchemy import and_, or_

from app.core.exceptions import UpstreamError, ValidationError
from app.integrations.ical_gateway import FeedError, ical_gateway
from app.models import db
from app.models.team import TeamMember, TimeOff

logger = logging.getLogger(__name__)

SUMMARY_PATTERN = re.compile(r"\[([^\]]+)\]\s*(.+)")
NAME_SUFFIX = re.compile(r"\s*[(½].*$")
PREVIEW_LIMIT = 100
SUGGESTION_MIN_SCORE = 30
SUGGESTION_LIMIT = 3

# (keywords, time-off type); first match wins
EVENT_TYPES = (
    (("sick",), "sick"),
    (("parental", "maternity", "paternity"), "parental"),
    (("birthday", "anniversary"), "birthday"),
    (("remote", "home office", "work remotely"), "remote"),
    (("vacation", "time off", "my calendar"), "PTO"),
    (("lieu",), "lieu"),
    (("benefits plan", "employee benefits"), "benefits"),
    (("service provider",), "service_provider"),
    (("event",), "event"),
    (("overtime", "compensation"), "overtime"),
    (("unpaid",), "unpaid"),
    (("start date", "end date"), "employment"),
)


def classify_event_type(event_type: str) -> str:
    lower = event_type.lower()
    for keywords, time_off_type in EVENT_TYPES:
        if any(k in lower for k in keywords):
            return time_off_type
    return "PTO"


def is_public_holiday(event_type: str) -> bool:
    lower = event_type.lower()
    return "public holiday" in lower or "bank holiday" in lower or ("holiday" in lower and "/" in lower)


def _clean_name(name: str) -> str:
    return NAME_SUFFIX.sub("", name).strip()


def is_tracked_member(name: str, member_names: list[str]) -> bool:
    clean = _clean_name(name.lower().strip())
    if not clean:
        return False
    for member in member_names:
        member_lower = member.lower()
        member_first = member_lower.split(" ")[0]
        if (clean == member_lower or member_lower in clean or clean in member_lower
                or clean == member_first or clean.split(" ")[0] == member_first):
            return True
    return False


def name_similarity(a: str, b: str) -> int:
    """0-100 score for suggesting a member for an unmatched calendar name."""
    n1, n2 = a.lower().strip(), b.lower().strip()
    if n1 == n2:
        return 100
    parts1, parts2 = n1.split(), n2.split()
    if parts1 and parts2 and parts1[0] == parts2[0]:
        return 80
    if n1 in n2 or n2 in n1:
        return 70
    words1, words2 = set(parts1), set(parts2)
    if not words1 or not words2:
        return 0
    return round(len(words1 & words2) / max(len(words1), len(words2)) * 60)


def _country_of(event_type: str, countries: dict) -> str | None:
    lower = event_type.lower()
    return next((c for c in countries if c.lower() in lower), None)


def _days(start: date, end: date) -> int:
    return math.ceil((end - start).total_seconds() / 86400)


def _birthday_in_year(raw, year: int) -> date:
    try:
        return date(year, raw.month, raw.day)
    except ValueError:
        return date(year, 2, 28)


class _MemberIndex:
    """Lookup keys: full name, name without spaces, first name (first member wins)."""

    def __init__(self):
        self.members = TeamMember.query.order_by(TeamMember.id).all()
        self.names = [m.name for m in self.members]
        self.keys: dict[str, int] = {}
        for m in self.members:
            self.keys[m.name.lower()] = m.id
            self.keys[re.sub(r"\s+", "", m.name.lower())] = m.id
            self.keys.setdefault(m.name.split(" ")[0].lower(), m.id)

    def find(self, person: str) -> int | None:
        lower = person.lower()
        member_id = self.keys.get(lower) or self.keys.get(re.sub(r"\s+", "", lower))
        if member_id:
            return member_id
        clean = _clean_name(person).lower()
        return self.keys.get(clean) or self.keys.get(clean.split(" ")[0] if clean else "")

    def suggestions(self, person: str) -> list[dict]:
        scored = [
            {"id": m.id, "name": m.name, "similarity": name_similarity(person, m.name)}
            for m in self.members
        ]
        scored = [s for s in scored if s["similarity"] >= SUGGESTION_MIN_SCORE]
        scored.sort(key=lambda s: s["similarity"], reverse=True)
        return scored[:SUGGESTION_LIMIT]


# ═════════════════════════════════════════════════════════════════════════════
# FEEDS
# ═════════════════════════════════════════════════════════════════════════════


def list_feeds() -> list[dict]:
    return [
        {"id": f"feed-{i}", "name": f"Calendar feed {i}", "url": url}
        for i, url in enumerate(current_app.config.get("CALENDAR_FEEDS") or [], start=1)
    ]


def _configured_name_mappings(index: _MemberIndex) -> dict[str, int]:
    """CALENDAR_NAME_MAPPINGS (calendar name → member name) resolved to ids."""
    mappings = {}
    for calendar_name, member_name in (current_app.config.get("CALENDAR_NAME_MAPPINGS") or {}).items():
        member_id = index.keys.get(member_name.lower())
        if member_id:
            mappings[calendar_name] = member_id
    return mappings


# ═════════════════════════════════════════════════════════════════════════════
# SYNC
# ═════════════════════════════════════════════════════════════════════════════


class _FeedImport:
    def __init__(self, url: str, index: _MemberIndex, mappings: dict, unmatched: list):
        self.url = url
        self.index = index
        self.mappings = mappings
        self.unmatched = unmatched
        self.year = current_app.config["CALENDAR_IMPORT_YEAR"]
        self.hours_per_day = current_app.config.get("CALENDAR_HOURS_PER_DAY", 8)
        self.countries = current_app.config.get("CALENDAR_COUNTRY_MEMBERS") or {}
        self.imported = 0
        self.skipped = 0
        self.errors: list[str] = []

    def result(self) -> dict:
        return {
            "url": self.url[:50] + "...",
            "imported": self.imported,
            "skipped": self.skipped,
            "errors": self.errors,
        }

    def handle(self, event: dict) -> None:
        match = SUMMARY_PATTERN.match(event["summary"])
        if not match:
            self.skipped += 1
            return
        event_type = match.group(1).lower()
        person = match.group(2).strip()

        if "probation" in event_type:
            self.skipped += 1
        elif "birthday" in event_type:
            self._birthday(event, person)
        elif is_public_holiday(event_type):
            self._public_holiday(event, event_type, person)
        else:
            self._time_off(event, event_type, person)

    def _birthday(self, event, person):
        if not is_tracked_member(person, self.index.names) or event["start_raw"] is None:
            self.skipped += 1
            return
        member_id = self.index.find(person)
        if not member_id:
            self.skipped += 1
            return
        start = _birthday_in_year(event["start_raw"], self.year)
        exists = TimeOff.query.filter_by(team_member_id=member_id, start_date=start, type="birthday").first()
        if exists:
            self.skipped += 1
            return
        db.session.add(TimeOff(
            team_member_id=member_id,
            type="birthday",
            start_date=start,
            end_date=start + timedelta(days=1),
            hours=self.hours_per_day,
            notes=f"Birthday - {person}",
            source="ical",
        ))
        db.session.flush()
        self.imported += 1

    def _public_holiday(self, event, event_type, person):
        country = _country_of(event_type, self.countries)
        members = self.countries.get(country) if country else None
        if not members:
            self.skipped += 1
            return
        start, end = event["start"], event["end"]
        if not start or not end:
            self.errors.append(f"Invalid dates for holiday: {person}")
            return
        if start.year != self.year:
            self.skipped += 1
            return

        hours = _days(start, end) * self.hours_per_day
        for member_name in members:
            member_id = self.index.keys.get(member_name.lower())
            if not member_id:
                continue
            exists = TimeOff.query.filter_by(
                team_member_id=member_id, start_date=start, end_date=end, type="bank_holiday",
            ).first()
            if exists:
                continue
            db.session.add(TimeOff(
                team_member_id=member_id,
                type="bank_holiday",
                start_date=start,
                end_date=end,
                hours=hours,
                notes=f"{person} ({country})",
                source="ical",
            ))
            db.session.flush()
            self.imported += 1

    def _time_off(self, event, event_type, person):
        if not is_tracked_member(person, self.index.names):
            self.skipped += 1
            return
        time_off_type = classify_event_type(event_type)

        member_id = self.mappings.get(person) or self.index.find(person)
        if not member_id:
            if not any(u["calendarName"] == person for u in self.unmatched):
                self.unmatched.append({"calendarName": person, "suggestions": self.index.suggestions(person)})
            self.skipped += 1
            return

        start, end = event["start"], event["end"]
        if not start or not end:
            self.errors.append(f"Invalid dates for: {person}")
            return
        if start.year != self.year:
            self.skipped += 1
            return

        if event["uid"] and TimeOff.query.filter_by(notes=event["uid"]).first():
            self.skipped += 1
            return
        overlapping = TimeOff.query.filter(
            TimeOff.team_member_id == member_id,
            or_(
                and_(TimeOff.start_date <= start, TimeOff.end_date >= start),
                and_(TimeOff.start_date >= start, TimeOff.start_date < end),
            ),
        ).first()
        if overlapping:
            self.skipped += 1
            return

        db.session.add(TimeOff(
            team_member_id=member_id,
            type=time_off_type,
            start_date=start,
            end_date=end,
            hours=_days(start, end) * self.hours_per_day,
            notes=event["uid"] or None,
            source="ical",
        ))
        db.session.flush()
        self.imported += 1


def sync(feed_urls=None, name_mappings=None) -> dict:
    """Import time off from ``feed_urls`` (default: CALENDAR_FEEDS).

    ``name_mappings`` maps calendar names to member ids and takes precedence
    over CALENDAR_NAME_MAPPINGS and automatic matching. A feed that cannot be
    fetched is reported in its ``errors`` and the other feeds still sync.
    """
    urls = feed_urls or current_app.config.get("CALENDAR_FEEDS") or []
    if not urls:
        raise ValidationError("No calendar feeds configured")

    index = _MemberIndex()
    mappings = _configured_name_mappings(index)
    mappings.update(name_mappings or {})
    timeout = current_app.config.get("CALENDAR_FETCH_TIMEOUT", 30)
    unmatched: list[dict] = []
    feeds = []

    for url in urls:
        feed = _FeedImport(url, index, mappings, unmatched)
        try:
            events = ical_gateway.fetch_events(url, timeout=timeout)
        except FeedError as exc:
            feed.errors.append(f"Failed to fetch feed: {exc}")
            events = []
        for event in events:
            try:
                feed.handle(event)
            except (ValueError, TypeError, AttributeError) as exc:
                feed.errors.append(str(exc))
        feeds.append(feed.result())

    db.session.commit()
    result = {
        "success": True,
        "feeds": feeds,
        "totalImported": sum(f["imported"] for f in feeds),
        "totalSkipped": sum(f["skipped"] for f in feeds),
        "totalErrors": sum(len(f["errors"]) for f in feeds),
        "unmatchedNames": unmatched,
    }
    logger.info(
        "Calendar sync: %d feeds, %d imported, %d skipped, %d errors, %d unmatched names",
        len(feeds), result["totalImported"], result["totalSkipped"], result["totalErrors"], len(unmatched),
    )
    return result


def preview(url: str | None) -> dict:
    """What a sync of ``url`` would import, without writing anything.

    Raises:
        ValidationError: url missing.
        UpstreamError: the feed cannot be fetched.
    """
    if not url:
        raise ValidationError("URL is required")
    try:
        events = ical_gateway.fetch_events(url, timeout=current_app.config.get("CALENDAR_FETCH_TIMEOUT", 30))
    except FeedError as exc:
        raise UpstreamError(f"Failed to fetch calendar: {exc}") from exc

    year = current_app.config["CALENDAR_IMPORT_YEAR"]
    countries = current_app.config.get("CALENDAR_COUNTRY_MEMBERS") or {}
    member_names = [name for (name,) in db.session.query(TeamMember.name)]
    lowered = {n.lower() for n in member_names}

    rows = []
    for event in events:
        match = SUMMARY_PATTERN.match(event["summary"])
        if not match:
            continue
        event_type, person = match.group(1), match.group(2).strip()
        type_lower = event_type.lower()
        if "probation" in type_lower:
            continue
        member_exists = _clean_name(person.lower()) in lowered

        if "birthday" in type_lower:
            if not is_tracked_member(person, member_names):
                continue
            start = _birthday_in_year(event["start_raw"], year) if event["start_raw"] else None
            rows.append({
                "type": "Birthday", "person": person,
                "startDate": start.isoformat() if start else None,
                "endDate": start.isoformat() if start else None,
                "memberExists": member_exists, "isBirthday": True,
            })
            continue

        start, end = event["start"], event["end"]
        if not start or start.year != year:
            continue
        if is_public_holiday(type_lower):
            country = _country_of(type_lower, countries)
            if country:
                first_names = ", ".join(n.split(" ")[0] for n in countries.get(country) or [])
                rows.append({
                    "type": event_type, "person": f"{person} → {first_names}",
                    "startDate": start.isoformat(), "endDate": end.isoformat() if end else None,
                    "memberExists": True, "isHoliday": True, "country": country,
                })
            continue
        if not is_tracked_member(person, member_names):
            continue
        rows.append({
            "type": event_type, "person": person,
            "startDate": start.isoformat(), "endDate": end.isoformat() if end else None,
            "memberExists": member_exists,
        })

    rows.sort(key=lambda r: r["startDate"] or "")
    return {
        "totalEvents": len(rows),
        "events": rows[:PREVIEW_LIMIT],
        "uniquePersons": len({r["person"] for r in rows}),
    }


def clear() -> dict:
    """Delete every iCal-sourced time-off record."""
    count = TimeOff.query.filter_by(source="ical").delete(synchronize_session="fetch")
    db.session.commit()
    logger.info("Cleared %d iCal-imported time-off records", count)
    return {"success": True, "message": f"Cleared {count} iCal-imported records"}

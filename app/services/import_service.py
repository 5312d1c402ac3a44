"""
Import Service — Personio, Leapsome and Miro data into the planner.

Transaction policy: each import commits once at the end. Rows are validated
before anything is added to the session; a bad row is reported as
``{"row": n, "error": msg}`` and the rest of the file is still imported.
Row numbers are 1-based file lines (the header is line 1).

Sources:
  - Personio members / time-off CSV
  - Leapsome goals CSV and the hierarchical XLSX export
    (Goal → Key Result → Initiative, linked through "Parent ID")
  - Miro task CSV (usually produced by miro_extract_service), imported as
    initiatives under the BAU key result, with duplicate detection
"""

import csv
import io
import logging
import re
import zipfile
from datetime import datetime, timezone

from email_validator import EmailNotValidError, validate_email
from flask import current_app
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.core.exceptions import NotFoundError, ValidationError
from app.models import db
from app.models.imports import DuplicateMatch
from app.models.okr import (
    Goal,
    GoalAssignee,
    Initiative,
    InitiativeAssignment,
    KeyResult,
    KeyResultAssignee,
)
from app.models.task import Task
from app.models.team import TeamMember, TimeOff
from app.services.dates import current_quarter
from app.services.goal_service import BAU_GOAL_MARKER
from app.services.key_result_service import find_bau_key_result
from app.services.member_service import DEFAULT_WEEKLY_HOURS
from app.services.similarity_service import calculate_similarity, find_similar
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)

DEFAULT_TIME_OFF_HOURS = 8
MAX_CONTRIBUTORS = 6
MAX_REPORTED_ERRORS = 20
OTHER_MATCHES_SHOWN = 3

GOAL_CSV_STATUSES = {"active", "completed", "cancelled"}
INITIATIVE_DUPLICATE_ACTIONS = {"skip", "replace", "create"}
TASK_DUPLICATE_ACTIONS = {"keep", "skip", "replace"}

_SPLIT_NAMES = re.compile(r"[,;]")
_QUARTER_IN_CYCLE = re.compile(r"\bQ([1-4])\b", re.IGNORECASE)
_YEAR_IN_CYCLE = re.compile(r"\b(20\d{2})\b")


class BulkImportError(Exception):
    """Uploaded file missing or unreadable."""
    def __init__(self, message, status_code=400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


# ═══════════════════════════════════════════════════════════════
# File parsing
# ═══════════════════════════════════════════════════════════════


def read_csv_records(content: bytes) -> list[dict]:
    """Parse CSV bytes into header-keyed dicts. Rows with no values are dropped."""
    try:
        text = content.decode("utf-8-sig")
        reader = csv.DictReader(io.StringIO(text))
        records = [r for r in reader if any(isinstance(v, str) and v.strip() for v in r.values())]
    except (UnicodeDecodeError, csv.Error) as exc:
        raise BulkImportError(f"Failed to parse CSV: {exc}") from exc
    if reader.fieldnames is None:
        raise BulkImportError("Failed to parse CSV: file is empty")
    return records


def read_xlsx_records(content: bytes) -> list[dict]:
    """First worksheet as header-keyed dicts."""
    try:
        workbook = load_workbook(io.BytesIO(content), read_only=True, data_only=True)
    except (InvalidFileException, zipfile.BadZipFile, KeyError, OSError) as exc:
        raise BulkImportError(f"Failed to parse Excel: {exc}") from exc

    sheet = workbook.worksheets[0]
    rows = sheet.iter_rows(values_only=True)
    header = next(rows, None)
    if not header:
        workbook.close()
        return []
    columns = [str(h).strip() if h is not None else "" for h in header]
    records = []
    for row in rows:
        if all(v is None or (isinstance(v, str) and not v.strip()) for v in row):
            continue
        records.append(dict(zip(columns, row)))
    workbook.close()
    return records


def _pick(record: dict, *keys) -> str | None:
    """First non-empty value among ``keys``, as a stripped string."""
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        value = str(value).strip()
        if value:
            return value
    return None


def _to_int(value, default=0) -> int:
    if value is None:
        return default
    try:
        return int(float(str(value).strip().rstrip("%")))
    except ValueError:
        return default


def _to_float(value, default=None):
    """Float value, ``default`` for blanks, garbage and zero."""
    if value is None:
        return default
    try:
        result = float(str(value).strip())
    except ValueError:
        return default
    return result or default


def _split_names(value: str | None) -> list[str]:
    if not value:
        return []
    return [n.strip() for n in _SPLIT_NAMES.split(value) if n.strip()]


# ═══════════════════════════════════════════════════════════════
# Member matching
# ═══════════════════════════════════════════════════════════════


class MemberDirectory:
    """Team member ids keyed by lower-cased full name, email, and optionally
    first name and configured nicknames."""

    def __init__(self, *, first_names=True, nicknames=True):
        self.nicknames = {
            k.lower(): v for k, v in (current_app.config.get("IMPORT_NICKNAMES") or {}).items()
        }
        self._ids: dict[str, int] = {}
        for member in TeamMember.query.order_by(TeamMember.id).all():
            self._ids[member.name.lower()] = member.id
            if first_names:
                self._ids[member.name.split(" ")[0].lower()] = member.id
            if member.email:
                self._ids[member.email.lower()] = member.id
        if nicknames:
            for nick, full_name in self.nicknames.items():
                member_id = self._ids.get(full_name.lower())
                if member_id:
                    self._ids[nick] = member_id

    def get(self, key: str | None) -> int | None:
        if not key:
            return None
        return self._ids.get(key.strip().lower())

    def match(self, name: str) -> int | None:
        """Exact key, else the first key contained in (or containing) ``name``."""
        normalized = name.strip().lower()
        member_id = self._ids.get(normalized)
        if member_id:
            return member_id
        for key, candidate in self._ids.items():
            if normalized in key or key in normalized:
                return candidate
        return None

    def resolve(self, name: str | None) -> int | None:
        """Lookup after expanding a nickname found anywhere in ``name``."""
        if not name:
            return None
        normalized = name.strip().lower()
        for nick, full_name in self.nicknames.items():
            if normalized == nick or nick in normalized:
                return self.get(full_name)
        return self.get(name)


def _row_error(errors: list, index: int, message: str) -> None:
    errors.append({"row": index + 2, "error": message})


# ═══════════════════════════════════════════════════════════════
# Personio
# ═══════════════════════════════════════════════════════════════


def import_personio_members(content: bytes) -> dict:
    """Create team members from a Personio employee CSV."""
    records = read_csv_records(content)
    imported, errors = [], []

    for index, record in enumerate(records):
        try:
            name = _pick(record, "name", "Name", "full_name", "Full Name")
            email = _pick(record, "email", "Email", "work_email", "Work Email")
            if not name:
                raise ValueError("Name is required")
            if email:
                email = validate_email(email, check_deliverability=False).normalized
                if TeamMember.query.filter(db.func.lower(TeamMember.email) == email.lower()).first():
                    raise ValueError(f"Email already exists: {email}")

            member = TeamMember(
                name=name,
                email=email,
                role=_pick(record, "role", "Role", "position", "Position", "job_title"),
                team=_pick(record, "team", "Team", "department", "Department"),
                weekly_hours=_to_int(
                    _pick(record, "weekly_hours", "hours", "Weekly Hours"), DEFAULT_WEEKLY_HOURS,
                ) or DEFAULT_WEEKLY_HOURS,
            )
            db.session.add(member)
            db.session.flush()
            imported.append({"id": member.id, "name": name})
        except EmailNotValidError as exc:
            _row_error(errors, index, f"Invalid email: {exc}")
        except ValueError as exc:
            _row_error(errors, index, str(exc))

    db.session.commit()
    logger.info("Personio members import: %d imported, %d errors", len(imported), len(errors),
                extra={"import_source": "personio"})
    return _summary(imported, errors)


def _personio_type(raw: str) -> str:
    value = raw.upper()
    if "SICK" in value:
        return "sick"
    if "HOLIDAY" in value or "PUBLIC" in value:
        return "holiday"
    return "PTO"


def import_personio_time_off(content: bytes) -> dict:
    """Create time-off records; the member is matched by email, then by name."""
    records = read_csv_records(content)
    members = MemberDirectory(first_names=False, nicknames=False)
    imported, errors = [], []

    for index, record in enumerate(records):
        try:
            employee = _pick(record, "employee", "Employee", "name", "Name")
            email = _pick(record, "email", "Email")
            member_id = members.get(email) or members.get(employee)
            if not member_id:
                raise ValueError(f"Team member not found: {employee or email}")

            entry = TimeOff(
                team_member_id=member_id,
                type=_personio_type(_pick(record, "type", "Type", "absence_type") or "PTO"),
                start_date=parse_date_input(_pick(record, "start_date", "Start Date", "from"), "start_date"),
                end_date=parse_date_input(_pick(record, "end_date", "End Date", "to"), "end_date"),
                hours=_to_float(_pick(record, "hours", "Hours", "duration"), DEFAULT_TIME_OFF_HOURS),
                source="personio",
            )
            db.session.add(entry)
            db.session.flush()
            imported.append({"id": entry.id, "employee": employee})
        except ValueError as exc:
            _row_error(errors, index, str(exc))

    db.session.commit()
    logger.info("Personio time-off import: %d imported, %d errors", len(imported), len(errors),
                extra={"import_source": "personio"})
    return _summary(imported, errors)


def _summary(imported: list, errors: list) -> dict:
    return {
        "success": True,
        "imported": len(imported),
        "errors": len(errors),
        "details": {"imported": imported, "errors": errors},
    }


# ═══════════════════════════════════════════════════════════════
# Leapsome
# ═══════════════════════════════════════════════════════════════


def import_leapsome_goals_csv(content: bytes) -> dict:
    """Flat Leapsome goal export: one goal per row, assignees comma/semicolon separated."""
    records = read_csv_records(content)
    members = MemberDirectory(first_names=False, nicknames=False)
    imported, errors = [], []

    for index, record in enumerate(records):
        try:
            title = _pick(record, "title", "Title", "name", "Name")
            quarter = _pick(record, "quarter", "Quarter", "cycle")
            if not title or not quarter:
                raise ValueError("Title and quarter are required")
            status = (_pick(record, "status", "Status") or "active").lower()

            goal = Goal(
                external_id=_pick(record, "id", "ID", "goal_id"),
                title=title,
                description=_pick(record, "description", "Description"),
                quarter=quarter,
                status=status if status in GOAL_CSV_STATUSES else "active",
                progress=_to_int(_pick(record, "progress", "Progress")),
                owner_id=members.get(_pick(record, "owner", "Owner")),
                team=_pick(record, "team", "Team"),
                source="leapsome",
            )
            db.session.add(goal)
            db.session.flush()

            linked = set()
            for name in _split_names(_pick(record, "assignees", "Assignees", "contributors")):
                member_id = members.get(name)
                if member_id and member_id not in linked:
                    linked.add(member_id)
                    db.session.add(GoalAssignee(goal_id=goal.id, team_member_id=member_id, source="leapsome"))
            imported.append({"id": goal.id, "title": title})
        except ValueError as exc:
            _row_error(errors, index, str(exc))

    db.session.commit()
    logger.info("Leapsome goals CSV import: %d imported, %d errors", len(imported), len(errors),
                extra={"import_source": "leapsome"})
    return _summary(imported, errors)


def quarter_from_cycle(cycle: str | None) -> str:
    """"GKRs Q4 2025 Cycle" → "Q4 2025"; a cycle without a quarter starts in Q1."""
    year_match = _YEAR_IN_CYCLE.search(cycle or "")
    year = year_match.group(1) if year_match else current_quarter().split()[1]
    quarter_match = _QUARTER_IN_CYCLE.search(cycle or "")
    quarter = quarter_match.group(1) if quarter_match else "1"
    return f"Q{quarter} {year}"


def _leapsome_status(raw, *, allow_draft=True, allow_hold=False) -> str:
    status = (raw or "").lower()
    if allow_draft and "draft" in status:
        return "draft"
    if "done" in status or "complete" in status:
        return "completed"
    if allow_hold and "hold" in status:
        return "on-hold"
    if "cancel" in status:
        return "cancelled"
    return "active"


def _contributor_ids(record: dict, members: MemberDirectory) -> list[int]:
    ids = []
    for i in range(1, MAX_CONTRIBUTORS + 1):
        member_id = members.resolve(_pick(record, f"Contributor {i}"))
        if member_id and member_id not in ids:
            ids.append(member_id)
    return ids


def _clear_leapsome_data() -> None:
    for model in (KeyResultAssignee, InitiativeAssignment, Initiative, KeyResult, GoalAssignee, Goal):
        model.query.filter(model.source == "leapsome").delete(synchronize_session="fetch")
    db.session.flush()


def import_leapsome_xlsx(content: bytes) -> dict:
    """Replace all Leapsome-sourced OKR data with the hierarchy in the workbook.

    Three passes over the first sheet: goals, then key results (linked to a
    goal by "Parent ID"), then initiatives (linked to a key result).
    """
    records = read_xlsx_records(content)
    members = MemberDirectory(first_names=True, nicknames=False)
    default_team = current_app.config["IMPORT_DEFAULT_TEAM"]
    imported = {"goals": [], "keyResults": [], "initiatives": []}
    errors = []
    goal_ids: dict[str, int] = {}
    kr_ids: dict[str, int] = {}

    _clear_leapsome_data()

    for index, record in enumerate(records):
        if _pick(record, "Goal / Key Result") != "Goal":
            continue
        title = _pick(record, "Name")
        if not title:
            _row_error(errors, index, "Title is required")
            continue
        external_id = _pick(record, "ID")
        goal = Goal(
            external_id=external_id,
            title=title,
            description=_pick(record, "Description"),
            quarter=quarter_from_cycle(_pick(record, "Goal Cycle")),
            status=_leapsome_status(_pick(record, "Status") or "draft"),
            progress=_to_int(_pick(record, "Progress (%)")),
            owner_id=members.resolve(_pick(record, "Owner")),
            team=default_team,
            source="leapsome",
        )
        db.session.add(goal)
        db.session.flush()
        if external_id:
            goal_ids[external_id] = goal.id
        for member_id in _contributor_ids(record, members):
            db.session.add(GoalAssignee(goal_id=goal.id, team_member_id=member_id, source="leapsome"))
        imported["goals"].append({"id": goal.id, "title": title, "externalId": external_id})

    for index, record in enumerate(records):
        if _pick(record, "Goal / Key Result") != "Key Result":
            continue
        title = _pick(record, "Name")
        if not title:
            _row_error(errors, index, "Title is required for Key Result")
            continue
        parent_goal_id = goal_ids.get(_pick(record, "Parent ID"))
        if not parent_goal_id:
            _row_error(errors, index, f"Parent goal not found for KR: {title}")
            continue
        external_id = _pick(record, "ID")
        kr = KeyResult(
            external_id=external_id,
            title=title,
            description=_pick(record, "Description"),
            goal_id=parent_goal_id,
            owner_id=members.resolve(_pick(record, "Owner")),
            metric=_pick(record, "Metric"),
            current_value=_to_float(record.get("Current")),
            target_value=_to_float(record.get("Target")),
            progress=_to_int(_pick(record, "Progress (%)")),
            status=_leapsome_status(_pick(record, "Status") or "draft"),
            source="leapsome",
        )
        db.session.add(kr)
        db.session.flush()
        if external_id:
            kr_ids[external_id] = kr.id
        for member_id in _contributor_ids(record, members):
            db.session.add(KeyResultAssignee(key_result_id=kr.id, team_member_id=member_id, source="leapsome"))
        imported["keyResults"].append({
            "id": kr.id, "title": title, "parentGoalId": parent_goal_id, "externalId": external_id,
        })

    for index, record in enumerate(records):
        if _pick(record, "Goal / Key Result") != "Initiative":
            continue
        title = _pick(record, "Name")
        if not title:
            _row_error(errors, index, "Title is required for Initiative")
            continue
        parent_kr_id = kr_ids.get(_pick(record, "Parent ID"))
        owner_id = members.resolve(_pick(record, "Owner"))
        initiative = Initiative(
            external_id=_pick(record, "ID"),
            name=title,
            description=_pick(record, "Description"),
            key_result_id=parent_kr_id,
            team=default_team,
            status=_leapsome_status(_pick(record, "Status"), allow_draft=False, allow_hold=True),
            owner_id=owner_id,
            source="leapsome",
        )
        db.session.add(initiative)
        db.session.flush()
        roles = {member_id: "Contributor" for member_id in _contributor_ids(record, members)}
        if owner_id and owner_id not in roles:
            roles[owner_id] = "Lead"
        for member_id, role in roles.items():
            db.session.add(InitiativeAssignment(
                initiative_id=initiative.id, team_member_id=member_id, role=role, source="leapsome",
            ))
        imported["initiatives"].append({"id": initiative.id, "title": title, "parentKrId": parent_kr_id})

    db.session.commit()
    total = sum(len(v) for v in imported.values())
    logger.info(
        "Leapsome XLSX import: %d goals, %d key results, %d initiatives, %d errors",
        len(imported["goals"]), len(imported["keyResults"]), len(imported["initiatives"]), len(errors),
        extra={"import_source": "leapsome"},
    )
    return {
        "success": True,
        "imported": total,
        "goals": len(imported["goals"]),
        "keyResults": len(imported["keyResults"]),
        "initiatives": len(imported["initiatives"]),
        "errors": len(errors),
        "details": {"imported": imported, "errors": errors[:MAX_REPORTED_ERRORS]},
    }


# ═══════════════════════════════════════════════════════════════
# Miro duplicate detection
# ═══════════════════════════════════════════════════════════════


def _threshold() -> float:
    return current_app.config.get("DUPLICATE_SIMILARITY_THRESHOLD", 50)


def _record_title(record: dict) -> str | None:
    return _pick(record, "title", "Title", "name", "Name", "content")


def _existing_items() -> list[dict]:
    """Goals, key results, initiatives and tasks as comparable rows."""
    items = []
    for g in Goal.query.order_by(Goal.id).all():
        items.append({
            "id": g.id, "title": g.title, "status": g.status, "source": g.source,
            "quarter": g.quarter, "goal_title": g.title, "key_result_title": None, "type": "goal",
        })
    for kr in KeyResult.query.order_by(KeyResult.id).all():
        items.append({
            "id": kr.id, "title": kr.title, "status": kr.status, "source": kr.source, "quarter": None,
            "goal_title": kr.goal.title if kr.goal else None, "key_result_title": kr.title,
            "type": "key_result",
        })
    for i in Initiative.query.order_by(Initiative.id).all():
        kr = i.key_result
        items.append({
            "id": i.id, "title": i.name, "status": i.status, "source": i.source, "quarter": None,
            "goal_title": kr.goal.title if kr and kr.goal else None,
            "key_result_title": kr.title if kr else None, "type": "initiative",
        })
    for t in Task.query.order_by(Task.id).all():
        items.append({
            "id": t.id, "title": t.title, "status": t.status, "source": t.source, "quarter": None,
            "goal_title": t.parent_goal.title if t.parent_goal else None,
            "key_result_title": None, "type": "task",
        })
    return items


def _match_payload(row: int, title: str, existing: dict, similarity) -> dict:
    return {
        "row": row,
        "title": title,
        "existingId": existing["id"],
        "existingTitle": existing["title"],
        "existingType": existing["type"],
        "existingStatus": existing["status"],
        "existingSource": existing["source"],
        "goalTitle": existing["goal_title"],
        "keyResultTitle": existing["key_result_title"],
        "quarter": existing["quarter"],
        "similarity": similarity,
    }


def check_miro_duplicates(content: bytes) -> dict:
    """Classify every row of a Miro CSV as duplicate, similar or new.

    Exact (case-insensitive) title matches are duplicates; otherwise the best
    match at or above the similarity threshold makes the row "similar".
    Matches against Leapsome-sourced items are also listed separately.
    """
    records = read_csv_records(content)
    existing = _existing_items()
    by_title = {item["title"].lower().strip(): item for item in existing}
    threshold = _threshold()

    duplicates, similar, leapsome_matches, new_items = [], [], [], []
    for index, record in enumerate(records):
        title = _record_title(record)
        if not title:
            continue
        row = index + 1

        exact = by_title.get(title.lower().strip())
        if exact:
            payload = _match_payload(row, title, exact, 100)
            if exact["source"] == "leapsome":
                leapsome_matches.append(payload)
            duplicates.append(payload)
            continue

        matches = find_similar(title, existing, threshold)
        if not matches:
            new_items.append({"row": row, "title": title})
            continue

        best, score = matches[0]
        payload = _match_payload(row, title, best, score)
        payload["otherMatches"] = [
            {"id": m["id"], "title": m["title"], "type": m["type"], "source": m["source"], "similarity": s}
            for m, s in matches[1:1 + OTHER_MATCHES_SHOWN]
        ]
        leapsome = next(((m, s) for m, s in matches if m["source"] == "leapsome"), None)
        if leapsome:
            match, match_score = leapsome
            leapsome_matches.append({
                **payload,
                "leapsomeMatch": {
                    "id": match["id"],
                    "title": match["title"],
                    "type": match["type"],
                    "similarity": match_score,
                    "goalTitle": match["goal_title"],
                    "quarter": match["quarter"],
                },
            })
        similar.append(payload)

    return {
        "success": True,
        "total": len(records),
        "duplicates": duplicates,
        "duplicateCount": len(duplicates),
        "similar": similar,
        "similarCount": len(similar),
        "leapsomeMatches": leapsome_matches,
        "leapsomeMatchCount": len(leapsome_matches),
        "newItems": new_items,
        "newCount": len(new_items),
    }


# ═══════════════════════════════════════════════════════════════
# Miro imports
# ═══════════════════════════════════════════════════════════════


def _initiative_priority(raw: str | None) -> str | None:
    if not raw:
        return None
    value = raw.lower()
    for keyword, code, priority in (("critical", "p1", "P1"), ("high", "p2", "P2"),
                                    ("medium", "p3", "P3"), ("low", "p4", "P4")):
        if keyword in value or code in value:
            return priority
    return None


def _task_status(raw: str) -> str:
    status = raw.lower().strip()
    if status in ("draft", "active"):
        return status
    if "progress" in status or "doing" in status:
        return "in-progress"
    if "done" in status or "complete" in status:
        return "completed"
    if "hold" in status:
        return "on-hold"
    if "cancel" in status:
        return "cancelled"
    return "active"


def _first_similar(title: str, initiatives: list[dict], threshold) -> tuple | None:
    """First initiative (in id order) whose name is similar enough to ``title``."""
    for initiative in initiatives:
        score = calculate_similarity(title, initiative["name"])
        if score >= threshold:
            return initiative, score
    return None


def _replace_initiative(initiative_id: int) -> None:
    InitiativeAssignment.query.filter_by(initiative_id=initiative_id).delete(synchronize_session="fetch")
    Initiative.query.filter_by(id=initiative_id).delete(synchronize_session="fetch")
    db.session.flush()


def _assign_members(initiative: Initiative, names: list[str], members: MemberDirectory,
                    unmatched: set) -> int | None:
    """First matched name becomes Lead, the rest Contributors. Returns the Lead's id."""
    lead_id = None
    assigned = set()
    for position, name in enumerate(names):
        member_id = members.match(name)
        if not member_id:
            if len(name) > 1:
                unmatched.add(name)
            continue
        if member_id in assigned:
            continue
        assigned.add(member_id)
        role = "Lead" if position == 0 else "Contributor"
        if position == 0:
            lead_id = member_id
        db.session.add(InitiativeAssignment(
            initiative_id=initiative.id, team_member_id=member_id, role=role, source="miro",
        ))
    return lead_id


def import_miro_initiatives(content: bytes, duplicate_action: str = "skip") -> dict:
    """Create initiatives under the BAU key result from a Miro CSV.

    duplicate_action:
        skip:    exact title matches are skipped; similar ones are recorded as
                 pending DuplicateMatch rows for review instead of imported
        replace: an exact match is deleted and re-created
        create:  always create
    """
    if duplicate_action not in INITIATIVE_DUPLICATE_ACTIONS:
        raise ValidationError(
            f"Invalid duplicateAction: '{duplicate_action}'. Allowed: {sorted(INITIATIVE_DUPLICATE_ACTIONS)}",
        )
    records = read_csv_records(content)
    members = MemberDirectory()
    bau_kr = find_bau_key_result()
    team = current_app.config["MIRO_INITIATIVE_TEAM"]
    threshold = _threshold()

    existing = [{"id": i.id, "name": i.name} for i in Initiative.query.order_by(Initiative.id).all()]
    by_title = {i["name"].lower().strip(): i["id"] for i in existing}

    imported, skipped, matched, errors = [], [], [], []
    unmatched: set[str] = set()

    for index, record in enumerate(records):
        title = _record_title(record)
        if not title:
            _row_error(errors, index, "Title is required")
            continue
        normalized = title.lower().strip()

        existing_id = by_title.get(normalized)
        if existing_id:
            if duplicate_action == "skip":
                skipped.append({"title": title, "reason": "exact duplicate", "existingId": existing_id})
                continue
            if duplicate_action == "replace":
                _replace_initiative(existing_id)
                existing = [i for i in existing if i["id"] != existing_id]

        if duplicate_action == "skip":
            candidate = _first_similar(title, existing, threshold)
            if candidate:
                match, score = candidate
                db.session.add(DuplicateMatch(
                    source_type="miro",
                    source_title=title,
                    matched_initiative_id=match["id"],
                    similarity_score=score,
                    status="pending",
                ))
                matched.append({
                    "title": title, "matchedTitle": match["name"], "similarity": score, "existingId": match["id"],
                })
                continue

        initiative = Initiative(
            name=title,
            description=_pick(record, "description", "Description"),
            project_priority=_initiative_priority(_pick(record, "priority", "Priority")),
            team=team,
            status="active",
            key_result_id=bau_kr.id if bau_kr else None,
            source="miro",
        )
        db.session.add(initiative)
        db.session.flush()
        by_title[normalized] = initiative.id

        names = _split_names(_pick(record, "assignees", "Assignees", "assigned_to", "owner"))
        _assign_members(initiative, names, members, unmatched)
        imported.append({"id": initiative.id, "title": title})

    db.session.commit()
    logger.info(
        "Miro initiatives import (%s): %d imported, %d skipped, %d matched, %d errors",
        duplicate_action, len(imported), len(skipped), len(matched), len(errors),
        extra={"import_source": "miro"},
    )
    return {
        "success": True,
        "imported": len(imported),
        "skipped": len(skipped),
        "matched": len(matched),
        "errors": len(errors),
        "unmatchedAssignees": sorted(unmatched),
        "details": {"imported": imported, "skipped": skipped, "matched": matched, "errors": errors},
    }


def _first_key_result_id(goal_id: int, cache: dict) -> int | None:
    if goal_id not in cache:
        kr = KeyResult.query.filter_by(goal_id=goal_id).order_by(KeyResult.id).first()
        cache[goal_id] = kr.id if kr else None
    return cache[goal_id]


def import_miro_tasks(content: bytes, duplicate_action: str = "keep") -> dict:
    """Create initiatives from a Miro task CSV, linked to a goal's first key result or BAU.

    Optional columns: ``goal_id`` (a goal id, or "bau") and ``bau_category``.

    duplicate_action:
        keep:    exact duplicates are created again
        skip:    exact and similar titles are skipped
        replace: an exact match is deleted and re-created
    """
    if duplicate_action not in TASK_DUPLICATE_ACTIONS:
        raise ValidationError(
            f"Invalid duplicateAction: '{duplicate_action}'. Allowed: {sorted(TASK_DUPLICATE_ACTIONS)}",
        )
    records = read_csv_records(content)
    members = MemberDirectory()
    default_team = current_app.config["IMPORT_DEFAULT_TEAM"]
    threshold = _threshold()
    kr_cache: dict[int, int | None] = {}

    bau_goal = (
        Goal.query.filter(Goal.title.contains(BAU_GOAL_MARKER)).order_by(Goal.id.desc()).first()
    )
    bau_kr_id = _first_key_result_id(bau_goal.id, kr_cache) if bau_goal else None
    by_title = {
        name.lower().strip(): initiative_id
        for initiative_id, name in db.session.query(Initiative.id, Initiative.name).order_by(Initiative.id)
    }

    imported, skipped, replaced, errors = [], [], [], []
    unmatched: set[str] = set()

    for index, record in enumerate(records):
        try:
            title = _record_title(record)
            if not title:
                raise ValueError("Title is required")
            normalized = title.lower().strip()

            existing_id = by_title.get(normalized)
            if existing_id:
                if duplicate_action == "skip":
                    skipped.append({"title": title, "reason": "exact duplicate"})
                    continue
                if duplicate_action == "replace":
                    _replace_initiative(existing_id)
                    replaced.append({"title": title, "oldId": existing_id})
            elif duplicate_action == "skip":
                current = [{"id": i, "name": n} for i, n in db.session.query(Initiative.id, Initiative.name)]
                similar = _first_similar(title, current, threshold)
                if similar:
                    match, score = similar
                    skipped.append({"title": title, "reason": f'{score}% similar to "{match["name"]}"'})
                    continue

            goal_ref = _pick(record, "goal_id") or ""
            category = None
            if goal_ref and goal_ref != "bau":
                key_result_id = _first_key_result_id(int(goal_ref), kr_cache)
            else:
                key_result_id = bau_kr_id
                if goal_ref == "bau":
                    category = _pick(record, "bau_category")

            priority = (_pick(record, "priority", "Priority") or "").upper()
            initiative = Initiative(
                external_id=_pick(record, "id", "ID", "card_id"),
                name=title,
                description=_pick(record, "description", "Description"),
                key_result_id=key_result_id,
                project_priority=priority if priority in ("P1", "P2", "P3", "P4") else None,
                team=default_team,
                status=_task_status(_pick(record, "status", "Status") or "active"),
                source="miro",
                progress=0,
                category=category,
            )
            db.session.add(initiative)
            db.session.flush()
            by_title[normalized] = initiative.id

            names = _split_names(_pick(record, "assignees", "Assignees", "assigned_to", "owner"))
            initiative.owner_id = _assign_members(initiative, names, members, unmatched)
            imported.append({"id": initiative.id, "title": title, "goalId": goal_ref or "bau"})
        except ValueError as exc:
            _row_error(errors, index, str(exc))

    db.session.commit()
    logger.info(
        "Miro tasks import (%s): %d imported, %d skipped, %d replaced, %d errors",
        duplicate_action, len(imported), len(skipped), len(replaced), len(errors),
        extra={"import_source": "miro"},
    )
    return {
        "success": True,
        "imported": len(imported),
        "skipped": len(skipped),
        "replaced": len(replaced),
        "errors": len(errors),
        "unmatchedAssignees": sorted(unmatched),
        "details": {"imported": imported, "skipped": skipped, "replaced": replaced, "errors": errors},
    }


# ═══════════════════════════════════════════════════════════════
# Duplicate review
# ═══════════════════════════════════════════════════════════════


def list_pending_duplicates() -> list[dict]:
    matches = (
        DuplicateMatch.query.filter_by(status="pending")
        .order_by(DuplicateMatch.similarity_score.desc(), DuplicateMatch.id)
        .all()
    )
    result = []
    for match in matches:
        initiative = match.matched_initiative
        kr = initiative.key_result if initiative else None
        data = match.to_dict()
        data.update({
            "matched_initiative_name": initiative.name if initiative else None,
            "matched_initiative_status": initiative.status if initiative else None,
            "key_result_title": kr.title if kr else None,
            "goal_title": kr.goal.title if kr and kr.goal else None,
        })
        result.append(data)
    return result


def resolve_duplicate(match_id, action: str | None) -> dict:
    """Confirm (it is a duplicate) or reject (create it as a new initiative).

    Raises:
        NotFoundError: unknown match.
        ValidationError: action is neither confirm nor reject.
    """
    match = db.session.get(DuplicateMatch, match_id)
    if match is None:
        raise NotFoundError("Match", match_id)
    if action not in ("confirm", "reject"):
        raise ValidationError("action must be 'confirm' or 'reject'")

    match.resolved_at = datetime.now(timezone.utc)
    if action == "confirm":
        match.status = "confirmed"
        db.session.commit()
        return {"message": "Match confirmed"}

    match.status = "rejected"
    initiative = Initiative(
        name=match.source_title,
        team=current_app.config["IMPORT_DEFAULT_TEAM"],
        status="active",
        source="miro",
    )
    db.session.add(initiative)
    db.session.commit()
    logger.info("Duplicate match %s rejected, created initiative %s", match.id, initiative.id)
    return {"message": "Match rejected, new initiative created", "newInitiativeId": initiative.id}

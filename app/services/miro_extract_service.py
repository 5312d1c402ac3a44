"""Turn Miro board exports (PDF, screenshot, flat CSV) into a task CSV.

The output CSV always has the header ``title,status,priority,assignees,effort``
so it can be fed back into the Miro initiative / task importers.

Text extraction:
    - PDF:   pypdf page text
    - image: Tesseract OCR via pytesseract (Pillow decodes the upload)
    - CSV:   Miro's flat export, where each sticky note is a line and the
             assignee names follow the note they belong to
"""
import io
import logging
import re

import pytesseract
from flask import current_app
from PIL import Image, UnidentifiedImageError
from pypdf import PdfReader
from pypdf.errors import PdfReadError

from app.core.exceptions import UpstreamError, ValidationError
from app.models.team import TeamMember

logger = logging.getLogger(__name__)

CSV_HEADER = "title,status,priority,assignees,effort"
MAX_CSV_TASKS = 50
PDF_TEXT_PREVIEW = 3000
IMAGE_TEXT_PREVIEW = 2000
MIN_LINE_LENGTH = 4
MIN_TITLE_LENGTH = 8

# First match wins, so multi-word keywords come before their substrings
STATUS_KEYWORDS = (
    ("todo", "todo"), ("to do", "todo"), ("backlog", "todo"),
    ("in progress", "in-progress"), ("doing", "in-progress"), ("wip", "in-progress"),
    ("done", "done"), ("completed", "done"), ("blocked", "blocked"),
)
PRIORITY_KEYWORDS = (
    ("high", "high"), ("medium", "medium"), ("low", "low"),
    ("critical", "critical"), ("urgent", "critical"),
)
IGNORED_CSV_LINES = {"?"}

_NUMERIC_LINE = re.compile(r"^[\d\s\-.,]+$")
_UNSAFE_CHARS = re.compile(r"[^\w\s\-.,:()/]")
_WHITESPACE = re.compile(r"\s+")


def known_member_names() -> list[str]:
    """First names of all members plus the configured nicknames."""
    names = []
    for (full_name,) in TeamMember.query.with_entities(TeamMember.name).order_by(TeamMember.name):
        first = full_name.split(" ")[0]
        if first and first not in names:
            names.append(first)
    for nickname in current_app.config.get("IMPORT_NICKNAMES", {}):
        if nickname.capitalize() not in names:
            names.append(nickname.capitalize())
    return names


def _keyword(line_lower: str, keywords, default: str) -> str:
    for keyword, value in keywords:
        if keyword in line_lower:
            return value
    return default


def parse_text_to_tasks(text: str, member_names: list[str]) -> list[dict]:
    """Heuristically split free text into task rows.

    Lines shorter than eight characters, purely numeric lines and lines that
    are just a member name are skipped; titles are cleaned of unusual
    characters and de-duplicated case-insensitively.
    """
    lowered_members = [m.lower() for m in member_names]
    seen = set()
    tasks = []

    for raw in text.split("\n"):
        line = raw.strip()
        if len(line) < MIN_LINE_LENGTH:
            continue
        if len(line) < MIN_TITLE_LENGTH or _NUMERIC_LINE.match(line):
            continue
        lower = line.lower()
        if lower in lowered_members:
            continue

        title = _WHITESPACE.sub(" ", _UNSAFE_CHARS.sub(" ", line)).strip()
        if len(title) < MIN_TITLE_LENGTH or title.lower() in seen:
            continue
        seen.add(title.lower())

        assignee = next((m for m in member_names if m.lower() in lower), "")
        tasks.append({
            "title": title,
            "status": _keyword(lower, STATUS_KEYWORDS, "todo"),
            "priority": _keyword(lower, PRIORITY_KEYWORDS, "medium"),
            "assignee": assignee,
            "effort": "",
        })
    return tasks


def tasks_to_csv(tasks: list[dict], assignee_key: str = "assignee", limit: int | None = MAX_CSV_TASKS) -> str:
    rows = tasks[:limit] if limit else tasks
    lines = [CSV_HEADER]
    for t in rows:
        lines.append(",".join([
            t["title"].replace(",", " "), t["status"], t["priority"], t[assignee_key], t["effort"],
        ]))
    return "\n".join(lines) if rows else CSV_HEADER + "\n"


# ═════════════════════════════════════════════════════════════════════════════
# EXTRACTORS
# ═════════════════════════════════════════════════════════════════════════════


def extract_from_pdf(data: bytes) -> dict:
    """Text of every page, parsed into tasks.

    Raises:
        ValidationError: the upload is not a readable PDF.
    """
    try:
        reader = PdfReader(io.BytesIO(data))
        text = "".join((page.extract_text() or "") + "\n" for page in reader.pages)
    except PdfReadError as exc:
        raise ValidationError(f"Failed to extract text from PDF: {exc}") from exc

    logger.info("Extracted %d characters from %d PDF pages", len(text), len(reader.pages))
    tasks = parse_text_to_tasks(text, known_member_names())
    return {
        "success": True,
        "extractedText": text[:PDF_TEXT_PREVIEW],
        "taskCount": len(tasks),
        "csv": tasks_to_csv(tasks),
    }


def extract_from_image(data: bytes) -> dict:
    """OCR a board screenshot and parse the text into tasks.

    Raises:
        ValidationError: the upload is not an image.
        UpstreamError: the Tesseract binary is unavailable or fails.
    """
    try:
        image = Image.open(io.BytesIO(data))
        image.load()
    except (UnidentifiedImageError, OSError) as exc:
        raise ValidationError(f"Failed to extract text from image: {exc}") from exc

    try:
        text = pytesseract.image_to_string(
            image, lang="eng", config="--psm 1 -c preserve_interword_spaces=1",
        )
    except (pytesseract.TesseractNotFoundError, pytesseract.TesseractError) as exc:
        logger.exception("OCR failed")
        raise UpstreamError(f"Failed to extract text from image: {exc}") from exc

    logger.info("OCR extracted %d characters", len(text))
    tasks = parse_text_to_tasks(text, known_member_names())
    return {
        "success": True,
        "extractedText": text[:IMAGE_TEXT_PREVIEW],
        "taskCount": len(tasks),
        "csv": tasks_to_csv(tasks),
    }


def extract_from_flat_csv(content: str) -> dict:
    """Group Miro's one-note-per-line export into tasks with their assignees."""
    member_names = known_member_names()
    by_lower = {m.lower(): m for m in member_names}
    category_keywords = current_app.config.get("MIRO_CATEGORY_KEYWORDS", [])

    tasks = []
    seen = set()
    current_title = None
    current_assignees: list[str] = []

    def flush():
        if current_title and current_title.lower() not in seen:
            seen.add(current_title.lower())
            tasks.append({
                "title": current_title,
                "status": "todo",
                "priority": "medium",
                "assignees": ";".join(current_assignees),
                "effort": "",
            })

    for raw in content.split("\n"):
        line = raw.strip().strip('"').strip()
        if not line or line in IGNORED_CSV_LINES:
            continue
        if any(k.lower() in line.lower() for k in category_keywords):
            continue

        member = by_lower.get(line.lower())
        if member:
            if current_title and member not in current_assignees:
                current_assignees.append(member)
            continue

        flush()
        current_title = line
        current_assignees = []
    flush()

    return {
        "success": True,
        "taskCount": len(tasks),
        "csv": tasks_to_csv(tasks, assignee_key="assignees", limit=None),
        "tasks": tasks,
    }

"""
Tests — Miro board extraction and title similarity.

Covers:
    - calculate_similarity scoring rules
    - Free-text → task rows heuristics
    - PDF / image (OCR) / flat CSV extraction endpoints
    - Missing upload, unreadable files, OCR failures
"""

import io

import pytest
import pytesseract
from PIL import Image

from app.services import miro_extract_service
from app.services.miro_extract_service import CSV_HEADER, parse_text_to_tasks, tasks_to_csv
from app.services.similarity_service import calculate_similarity, find_similar

BOARD_TEXT = "\n".join([
    "Miro Board",
    "Fix login bug - Marco - in progress high",
    "Marco",
    "12345 678",
    "fix login bug - marco - in progress high",
    "Deploy *** pipeline done",
    "ok",
])


def _upload(data: bytes, filename: str) -> dict:
    return {"file": (io.BytesIO(data), filename)}


def _png() -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", (20, 20), "white").save(buf, "PNG")
    return buf.getvalue()


# ═════════════════════════════════════════════════════════════════════════════
# SIMILARITY
# ═════════════════════════════════════════════════════════════════════════════


@pytest.mark.parametrize("a, b, expected", [
    ("Data Lake Migration", "  data lake migration ", 100),
    ("Data lake", "Data lake migration", 70),
    ("Customer portal redesign", "Portal redesign for partners", 50),
    ("ab", "cd", 0),
    ("", "", 100),
])
def test_calculate_similarity(a, b, expected):
    assert calculate_similarity(a, b) == expected


def test_find_similar_sorted_and_thresholded():
    candidates = [{"title": "Portal redesign"}, {"title": "Unrelated work"}, {"title": "Customer portal redesign"}]
    matches = find_similar("Customer portal redesign", candidates, 50)
    assert [(c["title"], s) for c, s in matches] == [
        ("Customer portal redesign", 100), ("Portal redesign", 70),
    ]


# ═════════════════════════════════════════════════════════════════════════════
# TEXT HEURISTICS
# ═════════════════════════════════════════════════════════════════════════════


def test_parse_text_to_tasks():
    tasks = parse_text_to_tasks(BOARD_TEXT, ["Marco"])
    assert [t["title"] for t in tasks] == [
        "Miro Board", "Fix login bug - Marco - in progress high", "Deploy pipeline done",
    ]
    login = tasks[1]
    assert (login["status"], login["priority"], login["assignee"]) == ("in-progress", "high", "Marco")
    assert tasks[2]["status"] == "done"
    assert tasks[0]["status"] == "todo"
    assert tasks[0]["priority"] == "medium"


def test_tasks_to_csv():
    tasks = [{"title": "A, B and C", "status": "todo", "priority": "low", "assignee": "Anna", "effort": ""}]
    assert tasks_to_csv(tasks) == f"{CSV_HEADER}\nA  B and C,todo,low,Anna,"
    assert tasks_to_csv([]) == CSV_HEADER + "\n"


# ═════════════════════════════════════════════════════════════════════════════
# ENDPOINTS
# ═════════════════════════════════════════════════════════════════════════════


def test_extract_pdf(client, auth_headers, member_factory, monkeypatch):
    member_factory("Marco Russo")

    class FakePage:
        def __init__(self, text):
            self._text = text

        def extract_text(self):
            return self._text

    class FakeReader:
        def __init__(self, stream):
            self.pages = [FakePage(BOARD_TEXT), FakePage(None)]

    monkeypatch.setattr(miro_extract_service, "PdfReader", FakeReader)
    res = client.post(
        "/api/v1/imports/miro/extract-pdf",
        data=_upload(b"%PDF-1.4 fake", "board.pdf"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 200
    data = res.get_json()
    assert data["success"] is True
    assert data["taskCount"] == 3
    assert "Fix login bug - Marco - in progress high,in-progress,high,Marco," in data["csv"]
    assert data["extractedText"].startswith("Miro Board")


def test_extract_pdf_rejects_garbage(client, auth_headers):
    res = client.post(
        "/api/v1/imports/miro/extract-pdf",
        data=_upload(b"definitely not a pdf", "board.pdf"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 400
    assert res.get_json()["error"].startswith("Failed to extract text from PDF")


def test_extract_requires_file(client, auth_headers):
    res = client.post(
        "/api/v1/imports/miro/extract-pdf", data={}, content_type="multipart/form-data", headers=auth_headers,
    )
    assert res.status_code == 400
    assert res.get_json() == {"error": "PDF file is required"}


def test_extract_image_uses_ocr(client, auth_headers, monkeypatch):
    seen = {}

    def fake_ocr(image, lang=None, config=None):
        seen["size"] = image.size
        seen["lang"] = lang
        return "Quarterly access review\nRotate API keys"

    monkeypatch.setattr(pytesseract, "image_to_string", fake_ocr)
    res = client.post(
        "/api/v1/imports/miro/extract-image",
        data=_upload(_png(), "board.png"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 200
    data = res.get_json()
    assert data["taskCount"] == 2
    assert seen == {"size": (20, 20), "lang": "eng"}


def test_extract_image_rejects_non_image(client, auth_headers):
    res = client.post(
        "/api/v1/imports/miro/extract-image",
        data=_upload(b"not an image", "board.png"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 400


def test_extract_image_without_tesseract_is_502(client, auth_headers, monkeypatch):
    def missing(*args, **kwargs):
        raise pytesseract.TesseractNotFoundError()

    monkeypatch.setattr(pytesseract, "image_to_string", missing)
    res = client.post(
        "/api/v1/imports/miro/extract-image",
        data=_upload(_png(), "board.png"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 502


def test_extract_flat_csv_groups_assignees(client, auth_headers, member_factory):
    member_factory("Marco Russo")
    member_factory("Anna Berg")
    content = "\n".join([
        '"Backlog"',
        "Build data pipeline",
        "Marco",
        "Anna",
        "?",
        "Refresh dashboards",
        '"Anna"',
        "Build data pipeline",
    ])
    res = client.post(
        "/api/v1/imports/miro/extract-csv",
        data=_upload(content.encode("utf-8-sig"), "board.csv"),
        content_type="multipart/form-data",
        headers=auth_headers,
    )
    assert res.status_code == 200
    data = res.get_json()
    assert [(t["title"], t["assignees"]) for t in data["tasks"]] == [
        ("Build data pipeline", "Marco;Anna"),
        ("Refresh dashboards", "Anna"),
    ]
    assert data["csv"].splitlines()[1] == "Build data pipeline,todo,medium,Marco;Anna,"

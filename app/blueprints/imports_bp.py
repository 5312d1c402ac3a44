"""
Imports Blueprint — Miro, Personio and Leapsome uploads.

All uploads are multipart/form-data with the file under ``file``.

Endpoints:
  Miro board extraction (returns CSV text for review, nothing is saved):
    POST /api/v1/imports/miro/extract-pdf
    POST /api/v1/imports/miro/extract-image
    POST /api/v1/imports/miro/extract-csv

  Miro import:
    POST /api/v1/imports/miro/check-duplicates
    POST /api/v1/imports/miro/initiatives?duplicateAction=skip|replace|create
    POST /api/v1/imports/miro/tasks?duplicateAction=keep|skip|replace

  Personio / Leapsome:
    POST /api/v1/imports/personio/members
    POST /api/v1/imports/personio/timeoff
    POST /api/v1/imports/leapsome/goals
    POST /api/v1/imports/leapsome/goals-xlsx

  Duplicate review:
    GET  /api/v1/imports/duplicates/pending
    POST /api/v1/imports/duplicates/<id>/resolve   {action: confirm|reject}
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import import_service, miro_extract_service
from app.services.import_service import BulkImportError

logger = logging.getLogger(__name__)

imports_bp = Blueprint("imports", __name__, url_prefix="/api/v1/imports")


# ═══════════════════════════════════════════════════════════════
# Error Handler
# ═══════════════════════════════════════════════════════════════
@imports_bp.errorhandler(BulkImportError)
def handle_bulk_import_error(e):
    return jsonify({"error": e.message}), e.status_code


def _uploaded_file(kind: str) -> bytes:
    """Content of the ``file`` upload; a missing or empty upload is a 400."""
    upload = request.files.get("file")
    content = upload.read() if upload else b""
    if not content:
        raise BulkImportError(f"{kind} file is required")
    return content


# ═══════════════════════════════════════════════════════════════
# Miro extraction
# ═══════════════════════════════════════════════════════════════
@imports_bp.route("/miro/extract-pdf", methods=["POST"])
def extract_pdf():
    return jsonify(miro_extract_service.extract_from_pdf(_uploaded_file("PDF")))


@imports_bp.route("/miro/extract-image", methods=["POST"])
def extract_image():
    return jsonify(miro_extract_service.extract_from_image(_uploaded_file("Image")))


@imports_bp.route("/miro/extract-csv", methods=["POST"])
def extract_csv():
    content = _uploaded_file("CSV").decode("utf-8-sig", errors="replace")
    return jsonify(miro_extract_service.extract_from_flat_csv(content))


# ═══════════════════════════════════════════════════════════════
# Miro import
# ═══════════════════════════════════════════════════════════════
@imports_bp.route("/miro/check-duplicates", methods=["POST"])
def check_duplicates():
    return jsonify(import_service.check_miro_duplicates(_uploaded_file("CSV")))


@imports_bp.route("/miro/initiatives", methods=["POST"])
def import_miro_initiatives():
    content = _uploaded_file("CSV")
    action = request.args.get("duplicateAction", "skip")
    return jsonify(import_service.import_miro_initiatives(content, action))


@imports_bp.route("/miro/tasks", methods=["POST"])
def import_miro_tasks():
    content = _uploaded_file("CSV")
    action = request.args.get("duplicateAction", "keep")
    return jsonify(import_service.import_miro_tasks(content, action))


# ═══════════════════════════════════════════════════════════════
# Personio / Leapsome
# ═══════════════════════════════════════════════════════════════
@imports_bp.route("/personio/members", methods=["POST"])
def import_personio_members():
    return jsonify(import_service.import_personio_members(_uploaded_file("CSV")))


@imports_bp.route("/personio/timeoff", methods=["POST"])
def import_personio_time_off():
    return jsonify(import_service.import_personio_time_off(_uploaded_file("CSV")))


@imports_bp.route("/leapsome/goals", methods=["POST"])
def import_leapsome_goals():
    return jsonify(import_service.import_leapsome_goals_csv(_uploaded_file("CSV")))


@imports_bp.route("/leapsome/goals-xlsx", methods=["POST"])
def import_leapsome_xlsx():
    return jsonify(import_service.import_leapsome_xlsx(_uploaded_file("Excel")))


# ═══════════════════════════════════════════════════════════════
# Duplicate review
# ═══════════════════════════════════════════════════════════════
@imports_bp.route("/duplicates/pending", methods=["GET"])
def pending_duplicates():
    return jsonify(import_service.list_pending_duplicates())


@imports_bp.route("/duplicates/<int:match_id>/resolve", methods=["POST"])
def resolve_duplicate(match_id):
    data = request.get_json(silent=True) or {}
    return jsonify(import_service.resolve_duplicate(match_id, data.get("action")))

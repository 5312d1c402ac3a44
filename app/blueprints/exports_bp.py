"""
Exports Blueprint — PMO report and allocation views.

Endpoints:
    GET    /api/v1/exports/pmo?start_date= &end_date= &format=json|csv|xlsx &team= &priority=
    GET    /api/v1/exports/pmo/preview?start_date= &end_date= &team= &priority=
    GET    /api/v1/exports/allocation-matrix?start_date= &end_date= &team_member_id= &initiative_id=
    GET    /api/v1/exports/utilization?start_date= &end_date= &team=
    GET    /api/v1/exports/config
    POST   /api/v1/exports/config
    DELETE /api/v1/exports/config/<id>

No temp files — CSV / XLSX content is returned in-memory.
"""

import logging

from flask import Blueprint, Response, jsonify, request

from app.services import export_service
from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)

exports_bp = Blueprint("exports", __name__, url_prefix="/api/v1/exports")

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"
EXPORT_FORMATS = ("json", "csv", "xlsx")


@exports_bp.route("/pmo", methods=["GET"])
def pmo_export():
    """PMO allocation report as JSON (default) or a CSV / XLSX download."""
    fmt = (request.args.get("format") or "json").lower()
    if fmt not in EXPORT_FORMATS:
        return api_error(
            E.VALIDATION_INVALID,
            f"Unsupported format. Supported values: {', '.join(EXPORT_FORMATS)}.",
        )

    start_date = request.args.get("start_date")
    end_date = request.args.get("end_date")
    data = export_service.generate_pmo_export_data(
        start_date, end_date, request.args.get("team"), request.args.get("priority"),
    )
    filename = f"pmo-export-{start_date}-to-{end_date}"

    if fmt == "csv":
        return Response(
            export_service.export_to_csv(data),
            mimetype="text/csv",
            headers={"Content-Disposition": f"attachment; filename={filename}.csv"},
        )
    if fmt == "xlsx":
        return Response(
            export_service.export_to_xlsx(data),
            mimetype=XLSX_MIMETYPE,
            headers={"Content-Disposition": f"attachment; filename={filename}.xlsx"},
        )
    return jsonify(data)


@exports_bp.route("/pmo/preview", methods=["GET"])
def pmo_preview():
    return jsonify(export_service.preview(
        request.args.get("start_date"),
        request.args.get("end_date"),
        request.args.get("team"),
        request.args.get("priority"),
    ))


@exports_bp.route("/allocation-matrix", methods=["GET"])
def allocation_matrix():
    return jsonify(export_service.allocation_matrix(
        request.args.get("start_date"),
        request.args.get("end_date"),
        team_member_id=request.args.get("team_member_id", type=int),
        initiative_id=request.args.get("initiative_id", type=int),
    ))


@exports_bp.route("/utilization", methods=["GET"])
def utilization():
    return jsonify(export_service.utilization_report(
        request.args.get("start_date"),
        request.args.get("end_date"),
        team=request.args.get("team"),
    ))


# ── Saved configurations ─────────────────────────────────────────────────

@exports_bp.route("/config", methods=["GET"])
def list_configs():
    return jsonify(export_service.list_configs())


@exports_bp.route("/config", methods=["POST"])
def create_config():
    data = request.get_json(silent=True) or {}
    config = export_service.create_config(data)
    return jsonify(config.to_dict()), 201


@exports_bp.route("/config/<int:config_id>", methods=["DELETE"])
def delete_config(config_id):
    export_service.delete_config(config_id)
    return jsonify({"message": "Configuration deleted"})

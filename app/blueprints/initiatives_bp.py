"""
Initiatives Blueprint — OKR level 3.

Endpoints:
    GET    /api/v1/initiatives              ?status= &priority= &team= &key_result_id= &goal_id= &quarter=
    GET    /api/v1/initiatives/assignments/batch?ids=1,2,3
    GET    /api/v1/initiatives/member/<member_id>
    GET    /api/v1/initiatives/<id>
    POST   /api/v1/initiatives
    PUT    /api/v1/initiatives/<id>
    PATCH  /api/v1/initiatives/<id>/estimate
    PATCH  /api/v1/initiatives/<id>/progress
    PATCH  /api/v1/initiatives/<id>/quarter
    DELETE /api/v1/initiatives/<id>

    Assignments:
    GET    /api/v1/initiatives/<id>/assignments
    POST   /api/v1/initiatives/<id>/assignments
    PUT    /api/v1/initiatives/<id>/assignments/<member_id>
    DELETE /api/v1/initiatives/<id>/assignments/<member_id>

    Time entries:
    GET    /api/v1/initiatives/<id>/time-entries
    POST   /api/v1/initiatives/<id>/time-entries
    DELETE /api/v1/initiatives/time-entries/<entry_id>

    Status log:
    GET    /api/v1/initiatives/<id>/updates
    POST   /api/v1/initiatives/<id>/updates
"""

from flask import Blueprint, jsonify, request

from app.services import initiative_service

initiatives_bp = Blueprint("initiatives", __name__, url_prefix="/api/v1/initiatives")


# ═══════════════════════════════════════════════════════════════════════════
#  INITIATIVES
# ═══════════════════════════════════════════════════════════════════════════

@initiatives_bp.route("", methods=["GET"])
def list_initiatives():
    return jsonify(initiative_service.list_initiatives(
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        team=request.args.get("team"),
        key_result_id=request.args.get("key_result_id", type=int),
        goal_id=request.args.get("goal_id", type=int),
        quarter=request.args.get("quarter"),
    ))


@initiatives_bp.route("/assignments/batch", methods=["GET"])
def batch_assignments():
    return jsonify(initiative_service.batch_assignments(request.args.get("ids")))


@initiatives_bp.route("/member/<int:member_id>", methods=["GET"])
def member_initiatives(member_id):
    return jsonify(initiative_service.list_member_initiatives(member_id))


@initiatives_bp.route("/<int:initiative_id>", methods=["GET"])
def get_initiative(initiative_id):
    return jsonify(initiative_service.get_initiative_detail(initiative_id))


@initiatives_bp.route("", methods=["POST"])
def create_initiative():
    data = request.get_json(silent=True) or {}
    initiative = initiative_service.create_initiative(data)
    return jsonify(initiative_service.serialize_initiative(initiative)), 201


@initiatives_bp.route("/<int:initiative_id>", methods=["PUT"])
def update_initiative(initiative_id):
    data = request.get_json(silent=True) or {}
    return jsonify(initiative_service.update_initiative(initiative_id, data))


@initiatives_bp.route("/<int:initiative_id>/estimate", methods=["PATCH"])
def set_estimate(initiative_id):
    data = request.get_json(silent=True) or {}
    initiative = initiative_service.set_estimate(initiative_id, data.get("estimated_hours"))
    return jsonify(initiative_service.serialize_initiative(initiative))


@initiatives_bp.route("/<int:initiative_id>/progress", methods=["PATCH"])
def set_progress(initiative_id):
    data = request.get_json(silent=True) or {}
    initiative = initiative_service.set_progress(
        initiative_id,
        data.get("progress"),
        data.get("current_value"),
        has_current_value="current_value" in data,
    )
    return jsonify(initiative_service.serialize_initiative(initiative))


@initiatives_bp.route("/<int:initiative_id>/quarter", methods=["PATCH"])
def set_quarter(initiative_id):
    data = request.get_json(silent=True) or {}
    return jsonify(initiative_service.set_quarter(initiative_id, data.get("quarter")))


@initiatives_bp.route("/<int:initiative_id>", methods=["DELETE"])
def delete_initiative(initiative_id):
    initiative_service.delete_initiative(initiative_id)
    return jsonify({"message": "Initiative deleted"})


# ═══════════════════════════════════════════════════════════════════════════
#  ASSIGNMENTS
# ═══════════════════════════════════════════════════════════════════════════

@initiatives_bp.route("/<int:initiative_id>/assignments", methods=["GET"])
def list_assignments(initiative_id):
    return jsonify(initiative_service.list_assignments(initiative_id))


@initiatives_bp.route("/<int:initiative_id>/assignments", methods=["POST"])
def upsert_assignment(initiative_id):
    data = request.get_json(silent=True) or {}
    result, created = initiative_service.upsert_assignment(initiative_id, data)
    return jsonify(result), 201 if created else 200


@initiatives_bp.route("/<int:initiative_id>/assignments/<int:member_id>", methods=["PUT"])
def update_assignment(initiative_id, member_id):
    data = request.get_json(silent=True) or {}
    return jsonify(initiative_service.update_assignment(initiative_id, member_id, data))


@initiatives_bp.route("/<int:initiative_id>/assignments/<int:member_id>", methods=["DELETE"])
def remove_assignment(initiative_id, member_id):
    hours = initiative_service.remove_assignment(initiative_id, member_id)
    return jsonify({"message": "Assignment removed", "initiative_estimated_hours": hours})


# ═══════════════════════════════════════════════════════════════════════════
#  TIME ENTRIES
# ═══════════════════════════════════════════════════════════════════════════

@initiatives_bp.route("/<int:initiative_id>/time-entries", methods=["GET"])
def list_time_entries(initiative_id):
    return jsonify(initiative_service.list_time_entries(initiative_id))


@initiatives_bp.route("/<int:initiative_id>/time-entries", methods=["POST"])
def upsert_time_entry(initiative_id):
    data = request.get_json(silent=True) or {}
    return jsonify(initiative_service.upsert_time_entry(initiative_id, data))


@initiatives_bp.route("/time-entries/<int:entry_id>", methods=["DELETE"])
def delete_time_entry(entry_id):
    initiative_service.delete_time_entry(entry_id)
    return jsonify({"message": "Time entry deleted"})


# ═══════════════════════════════════════════════════════════════════════════
#  STATUS LOG
# ═══════════════════════════════════════════════════════════════════════════

@initiatives_bp.route("/<int:initiative_id>/updates", methods=["GET"])
def list_updates(initiative_id):
    return jsonify(initiative_service.list_updates(initiative_id))


@initiatives_bp.route("/<int:initiative_id>/updates", methods=["POST"])
def add_update(initiative_id):
    data = request.get_json(silent=True) or {}
    entry = initiative_service.add_update(initiative_id, data)
    return jsonify(entry.to_dict()), 201

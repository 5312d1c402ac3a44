"""
Key Results Blueprint — OKR level 2.

Endpoints:
    GET    /api/v1/key-results          ?goal_id= &status= &quarter= &assignee_id= &bau=true
    GET    /api/v1/key-results/<id>
    POST   /api/v1/key-results
    PUT    /api/v1/key-results/<id>
    DELETE /api/v1/key-results/<id>
    PATCH  /api/v1/key-results/<id>/estimate
    PATCH  /api/v1/key-results/<id>/quarter
    POST   /api/v1/key-results/<id>/assignees
    DELETE /api/v1/key-results/<id>/assignees/<member_id>
    GET    /api/v1/key-results/hierarchy/<goal_id>
    GET    /api/v1/key-results/<id>/updates
    POST   /api/v1/key-results/<id>/updates
"""

from flask import Blueprint, jsonify, request

from app.services import key_result_service

key_results_bp = Blueprint("key_results", __name__, url_prefix="/api/v1/key-results")


@key_results_bp.route("", methods=["GET"])
def list_key_results():
    return jsonify(key_result_service.list_key_results(
        goal_id=request.args.get("goal_id", type=int),
        status=request.args.get("status"),
        quarter=request.args.get("quarter"),
        assignee_id=request.args.get("assignee_id", type=int),
        bau=request.args.get("bau", "").lower() == "true",
    ))


@key_results_bp.route("/hierarchy/<int:goal_id>", methods=["GET"])
def goal_hierarchy(goal_id):
    return jsonify(key_result_service.get_goal_hierarchy(goal_id))


@key_results_bp.route("/<int:key_result_id>", methods=["GET"])
def get_key_result(key_result_id):
    return jsonify(key_result_service.get_key_result_detail(key_result_id))


@key_results_bp.route("", methods=["POST"])
def create_key_result():
    data = request.get_json(silent=True) or {}
    kr = key_result_service.create_key_result(data)
    return jsonify(key_result_service.serialize_key_result(kr)), 201


@key_results_bp.route("/<int:key_result_id>", methods=["PUT"])
def update_key_result(key_result_id):
    data = request.get_json(silent=True) or {}
    kr = key_result_service.update_key_result(key_result_id, data)
    return jsonify(key_result_service.serialize_key_result(kr))


@key_results_bp.route("/<int:key_result_id>", methods=["DELETE"])
def delete_key_result(key_result_id):
    key_result_service.delete_key_result(key_result_id)
    return jsonify({"message": "Key Result deleted"})


@key_results_bp.route("/<int:key_result_id>/estimate", methods=["PATCH"])
def set_estimate(key_result_id):
    data = request.get_json(silent=True) or {}
    kr = key_result_service.set_estimate(key_result_id, data.get("estimated_hours"))
    return jsonify(kr.to_dict())


@key_results_bp.route("/<int:key_result_id>/quarter", methods=["PATCH"])
def set_quarter(key_result_id):
    data = request.get_json(silent=True) or {}
    return jsonify(key_result_service.set_quarter(key_result_id, data.get("quarter")))


@key_results_bp.route("/<int:key_result_id>/assignees", methods=["POST"])
def add_assignee(key_result_id):
    data = request.get_json(silent=True) or {}
    return jsonify(key_result_service.add_assignee(key_result_id, data.get("team_member_id"))), 201


@key_results_bp.route("/<int:key_result_id>/assignees/<int:member_id>", methods=["DELETE"])
def remove_assignee(key_result_id, member_id):
    key_result_service.remove_assignee(key_result_id, member_id)
    return jsonify({"message": "Assignee removed"})


@key_results_bp.route("/<int:key_result_id>/updates", methods=["GET"])
def list_updates(key_result_id):
    return jsonify(key_result_service.list_updates(key_result_id))


@key_results_bp.route("/<int:key_result_id>/updates", methods=["POST"])
def add_update(key_result_id):
    data = request.get_json(silent=True) or {}
    entry = key_result_service.add_update(key_result_id, data)
    return jsonify(entry.to_dict()), 201

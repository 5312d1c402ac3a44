"""
Goals Blueprint — OKR level 1.

Endpoints:
    GET    /api/v1/goals                         ?quarter= &team= &status=
    GET    /api/v1/goals/<id>
    POST   /api/v1/goals
    PUT    /api/v1/goals/<id>
    DELETE /api/v1/goals/<id>
    POST   /api/v1/goals/<id>/assignees
    DELETE /api/v1/goals/<id>/assignees/<member_id>
    GET    /api/v1/goals/<id>/key-results
    GET    /api/v1/goals/meta/quarters
"""

from flask import Blueprint, jsonify, request

from app.services import goal_service

goals_bp = Blueprint("goals", __name__, url_prefix="/api/v1/goals")


@goals_bp.route("", methods=["GET"])
def list_goals():
    return jsonify(goal_service.list_goals(
        quarter=request.args.get("quarter"),
        team=request.args.get("team"),
        status=request.args.get("status"),
    ))


@goals_bp.route("/meta/quarters", methods=["GET"])
def list_quarters():
    return jsonify(goal_service.list_quarters())


@goals_bp.route("/<int:goal_id>", methods=["GET"])
def get_goal(goal_id):
    return jsonify(goal_service.get_goal_detail(goal_id))


@goals_bp.route("", methods=["POST"])
def create_goal():
    data = request.get_json(silent=True) or {}
    goal = goal_service.create_goal(data)
    return jsonify(goal.to_dict()), 201


@goals_bp.route("/<int:goal_id>", methods=["PUT"])
def update_goal(goal_id):
    data = request.get_json(silent=True) or {}
    return jsonify(goal_service.update_goal(goal_id, data).to_dict())


@goals_bp.route("/<int:goal_id>", methods=["DELETE"])
def delete_goal(goal_id):
    goal_service.delete_goal(goal_id)
    return jsonify({"message": "Goal deleted"})


@goals_bp.route("/<int:goal_id>/assignees", methods=["POST"])
def add_assignee(goal_id):
    data = request.get_json(silent=True) or {}
    member = goal_service.add_goal_assignee(goal_id, data.get("team_member_id"))
    return jsonify({"message": "Assignee added", "member": {"id": member.id, "name": member.name}})


@goals_bp.route("/<int:goal_id>/assignees/<int:member_id>", methods=["DELETE"])
def remove_assignee(goal_id, member_id):
    goal_service.remove_goal_assignee(goal_id, member_id)
    return jsonify({"message": "Assignee removed"})


@goals_bp.route("/<int:goal_id>/key-results", methods=["GET"])
def list_key_results(goal_id):
    return jsonify(goal_service.list_goal_key_results(goal_id))

"""
Tasks Blueprint.

Endpoints:
    GET    /api/v1/tasks              ?status= &goal_id= &unlinked=true &has_conflict=true
    GET    /api/v1/tasks/<id>
    POST   /api/v1/tasks
    PUT    /api/v1/tasks/<id>
    POST   /api/v1/tasks/<id>/link     {goal_id}
    PUT    /api/v1/tasks/<id>/resolve  {assignee_ids, resolution_source}
    POST   /api/v1/tasks/<id>/assignees
    DELETE /api/v1/tasks/<id>/assignees/<member_id>
    DELETE /api/v1/tasks/<id>
"""

from flask import Blueprint, jsonify, request

from app.services import task_service

tasks_bp = Blueprint("tasks", __name__, url_prefix="/api/v1/tasks")


def _flag(name: str) -> bool:
    return request.args.get(name, "").lower() == "true"


@tasks_bp.route("", methods=["GET"])
def list_tasks():
    return jsonify(task_service.list_tasks(
        status=request.args.get("status"),
        goal_id=request.args.get("goal_id", type=int),
        unlinked=_flag("unlinked"),
        conflicts_only=_flag("has_conflict"),
    ))


@tasks_bp.route("/<int:task_id>", methods=["GET"])
def get_task(task_id):
    return jsonify(task_service.get_task_detail(task_id))


@tasks_bp.route("", methods=["POST"])
def create_task():
    data = request.get_json(silent=True) or {}
    task = task_service.create_task(data)
    return jsonify(task.to_dict()), 201


@tasks_bp.route("/<int:task_id>", methods=["PUT"])
def update_task(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.update_task(task_id, data).to_dict())


@tasks_bp.route("/<int:task_id>/link", methods=["POST"])
def link_task(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.link_to_goal(task_id, data.get("goal_id")).to_dict())


@tasks_bp.route("/<int:task_id>/resolve", methods=["PUT"])
def resolve_assignees(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_service.resolve_assignees(
        task_id, data.get("assignee_ids"), data.get("resolution_source"),
    ))


@tasks_bp.route("/<int:task_id>/assignees", methods=["POST"])
def add_assignee(task_id):
    data = request.get_json(silent=True) or {}
    task_service.add_assignee(task_id, data.get("team_member_id"))
    return jsonify({"message": "Assignee added"})


@tasks_bp.route("/<int:task_id>/assignees/<int:member_id>", methods=["DELETE"])
def remove_assignee(task_id, member_id):
    task_service.remove_assignee(task_id, member_id)
    return jsonify({"message": "Assignee removed"})


@tasks_bp.route("/<int:task_id>", methods=["DELETE"])
def delete_task(task_id):
    task_service.delete_task(task_id)
    return jsonify({"message": "Task deleted"})

"""
Task time entries Blueprint — weekly hours logged against tasks.

Endpoints:
    GET    /api/v1/tasks/<task_id>/time-entries
    POST   /api/v1/tasks/<task_id>/time-entries          0 hours deletes the entry
    GET    /api/v1/tasks/<task_id>/time-entries/week/<week_start>
    GET    /api/v1/time-entries/week/<week_start>
    DELETE /api/v1/time-entries/<id>
"""

from flask import Blueprint, jsonify, request

from app.services import task_time_service

time_entries_bp = Blueprint("time_entries", __name__, url_prefix="/api/v1")


@time_entries_bp.route("/tasks/<int:task_id>/time-entries", methods=["GET"])
def list_for_task(task_id):
    return jsonify(task_time_service.list_for_task(task_id))


@time_entries_bp.route("/tasks/<int:task_id>/time-entries", methods=["POST"])
def upsert_entry(task_id):
    data = request.get_json(silent=True) or {}
    return jsonify(task_time_service.upsert_entry(task_id, data))


@time_entries_bp.route("/tasks/<int:task_id>/time-entries/week/<week_start>", methods=["GET"])
def list_for_task_week(task_id, week_start):
    return jsonify(task_time_service.list_for_task_week(task_id, week_start))


@time_entries_bp.route("/time-entries/week/<week_start>", methods=["GET"])
def list_for_week(week_start):
    return jsonify(task_time_service.list_for_week(week_start))


@time_entries_bp.route("/time-entries/<int:entry_id>", methods=["DELETE"])
def delete_entry(entry_id):
    total = task_time_service.delete_entry(entry_id)
    return jsonify({"message": "Time entry deleted", "task_total_hours": total})

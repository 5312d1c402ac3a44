"""
Time-off Blueprint.

Endpoints:
    GET    /api/v1/timeoff              ?team_member_id= &type= &start_date= &end_date=
    GET    /api/v1/timeoff/summary?quarter=Q1 2025
    GET    /api/v1/timeoff/breakdown
    POST   /api/v1/timeoff
    PUT    /api/v1/timeoff/<id>
    DELETE /api/v1/timeoff/<id>
"""

from flask import Blueprint, jsonify, request

from app.services import timeoff_service

timeoff_bp = Blueprint("timeoff", __name__, url_prefix="/api/v1/timeoff")


@timeoff_bp.route("", methods=["GET"])
def list_time_off():
    return jsonify(timeoff_service.list_time_off(
        team_member_id=request.args.get("team_member_id", type=int),
        type=request.args.get("type"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    ))


@timeoff_bp.route("/summary", methods=["GET"])
def quarter_summary():
    return jsonify(timeoff_service.quarter_summary(request.args.get("quarter")))


@timeoff_bp.route("/breakdown", methods=["GET"])
def type_breakdown():
    return jsonify(timeoff_service.type_breakdown())


@timeoff_bp.route("", methods=["POST"])
def create_time_off():
    data = request.get_json(silent=True) or {}
    record = timeoff_service.create_time_off(data)
    return jsonify(timeoff_service.serialize_time_off(record)), 201


@timeoff_bp.route("/<int:record_id>", methods=["PUT"])
def update_time_off(record_id):
    data = request.get_json(silent=True) or {}
    record = timeoff_service.update_time_off(record_id, data)
    return jsonify(timeoff_service.serialize_time_off(record))


@timeoff_bp.route("/<int:record_id>", methods=["DELETE"])
def delete_time_off(record_id):
    timeoff_service.delete_time_off(record_id)
    return jsonify({"message": "Time-off record deleted"})

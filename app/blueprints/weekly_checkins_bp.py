"""
Weekly Check-ins Blueprint.

Endpoints:
    GET  /api/v1/weekly-checkins/my-assignments
    GET  /api/v1/weekly-checkins/week/<week_start>
    GET  /api/v1/weekly-checkins/member/<member_id>/week/<week_start>
    POST /api/v1/weekly-checkins                  save draft / submit
    GET  /api/v1/weekly-checkins/history?limit=10
    GET  /api/v1/weekly-checkins/team/<week_start>
"""

from flask import Blueprint, g, jsonify, request

from app.services import checkin_service

weekly_checkins_bp = Blueprint("weekly_checkins", __name__, url_prefix="/api/v1/weekly-checkins")


@weekly_checkins_bp.route("/my-assignments", methods=["GET"])
def my_assignments():
    return jsonify(checkin_service.get_my_assignments(g.current_user["id"]))


@weekly_checkins_bp.route("/week/<week_start>", methods=["GET"])
def my_checkin(week_start):
    return jsonify(checkin_service.get_my_checkin(g.current_user["id"], week_start))


@weekly_checkins_bp.route("/member/<int:member_id>/week/<week_start>", methods=["GET"])
def member_checkin(member_id, week_start):
    return jsonify(checkin_service.get_member_checkin(member_id, week_start))


@weekly_checkins_bp.route("", methods=["POST"])
def save_checkin():
    data = request.get_json(silent=True) or {}
    return jsonify(checkin_service.save_checkin(g.current_user, data))


@weekly_checkins_bp.route("/history", methods=["GET"])
def history():
    limit = request.args.get("limit", checkin_service.DEFAULT_HISTORY_LIMIT)
    return jsonify(checkin_service.get_history(g.current_user["id"], limit))


@weekly_checkins_bp.route("/team/<week_start>", methods=["GET"])
def team_checkins(week_start):
    return jsonify(checkin_service.get_team_checkins(week_start))

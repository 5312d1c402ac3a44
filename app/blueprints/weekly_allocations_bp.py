"""
Weekly Allocations Blueprint — capacity planning grid.

Endpoints:
    GET    /api/v1/weekly-allocations        ?team_member_id= &initiative_id= &week_start= &start_date= &end_date= &status=
    GET    /api/v1/weekly-allocations/member/<member_id>
    GET    /api/v1/weekly-allocations/summary?week_start=
    GET    /api/v1/weekly-allocations/weeks  ?start_date= &end_date= | ?count=
    POST   /api/v1/weekly-allocations        create or update one cell
    POST   /api/v1/weekly-allocations/bulk   replace a member's week
    POST   /api/v1/weekly-allocations/copy-from-week
    DELETE /api/v1/weekly-allocations/<id>
"""

from flask import Blueprint, g, jsonify, request

from app.services import weekly_allocation_service

weekly_allocations_bp = Blueprint(
    "weekly_allocations", __name__, url_prefix="/api/v1/weekly-allocations",
)


def _planner_id():
    return g.current_user["id"] if g.get("current_user") else None


@weekly_allocations_bp.route("", methods=["GET"])
def list_allocations():
    return jsonify(weekly_allocation_service.list_allocations(
        team_member_id=request.args.get("team_member_id", type=int),
        initiative_id=request.args.get("initiative_id", type=int),
        week_start=request.args.get("week_start"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
        status=request.args.get("status"),
    ))


@weekly_allocations_bp.route("/member/<int:member_id>", methods=["GET"])
def member_allocations(member_id):
    return jsonify(weekly_allocation_service.member_allocations(
        member_id,
        week_start=request.args.get("week_start"),
        start_date=request.args.get("start_date"),
        end_date=request.args.get("end_date"),
    ))


@weekly_allocations_bp.route("/summary", methods=["GET"])
def week_summary():
    return jsonify(weekly_allocation_service.week_summary(request.args.get("week_start")))


@weekly_allocations_bp.route("/weeks", methods=["GET"])
def list_weeks():
    return jsonify(weekly_allocation_service.list_weeks(
        request.args.get("start_date"),
        request.args.get("end_date"),
        request.args.get("count"),
    ))


@weekly_allocations_bp.route("", methods=["POST"])
def upsert_allocation():
    data = request.get_json(silent=True) or {}
    allocation, created = weekly_allocation_service.upsert_allocation(data, created_by=_planner_id())
    return jsonify(allocation), 201 if created else 200


@weekly_allocations_bp.route("/bulk", methods=["POST"])
def bulk_replace():
    data = request.get_json(silent=True) or {}
    return jsonify(weekly_allocation_service.bulk_replace(data, created_by=_planner_id()))


@weekly_allocations_bp.route("/copy-from-week", methods=["POST"])
def copy_from_week():
    data = request.get_json(silent=True) or {}
    return jsonify(weekly_allocation_service.copy_from_week(data, created_by=_planner_id()))


@weekly_allocations_bp.route("/<int:allocation_id>", methods=["DELETE"])
def delete_allocation(allocation_id):
    weekly_allocation_service.delete_allocation(allocation_id)
    return jsonify({"message": "Allocation deleted"})

"""
Allocations Blueprint — legacy date-range allocations and quarterly capacity.

Endpoints:
    GET    /api/v1/allocations            ?team_member_id= &goal_id= &task_id= &quarter=
    GET    /api/v1/allocations/summary?quarter=Q1 2025
    POST   /api/v1/allocations
    PUT    /api/v1/allocations/<id>
    DELETE /api/v1/allocations/<id>
"""

from flask import Blueprint, jsonify, request

from app.services import allocation_service

allocations_bp = Blueprint("allocations", __name__, url_prefix="/api/v1/allocations")


@allocations_bp.route("", methods=["GET"])
def list_allocations():
    return jsonify(allocation_service.list_allocations(
        team_member_id=request.args.get("team_member_id", type=int),
        goal_id=request.args.get("goal_id", type=int),
        task_id=request.args.get("task_id", type=int),
        quarter=request.args.get("quarter"),
    ))


@allocations_bp.route("/summary", methods=["GET"])
def capacity_summary():
    return jsonify(allocation_service.capacity_summary(request.args.get("quarter")))


@allocations_bp.route("", methods=["POST"])
def create_allocation():
    data = request.get_json(silent=True) or {}
    allocation = allocation_service.create_allocation(data)
    return jsonify(allocation_service.serialize_allocation(allocation)), 201


@allocations_bp.route("/<int:allocation_id>", methods=["PUT"])
def update_allocation(allocation_id):
    data = request.get_json(silent=True) or {}
    allocation = allocation_service.update_allocation(allocation_id, data)
    return jsonify(allocation_service.serialize_allocation(allocation))


@allocations_bp.route("/<int:allocation_id>", methods=["DELETE"])
def delete_allocation(allocation_id):
    allocation_service.delete_allocation(allocation_id)
    return jsonify({"message": "Allocation deleted"})

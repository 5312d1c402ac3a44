"""
Team members Blueprint.

Endpoints:
    GET    /api/v1/members          list with current-quarter utilization
    GET    /api/v1/members/<id>     detail (time off, allocations, OKR work)
    POST   /api/v1/members
    PUT    /api/v1/members/<id>
    DELETE /api/v1/members/<id>
"""

from flask import Blueprint, jsonify, request

from app.services import member_service

members_bp = Blueprint("members", __name__, url_prefix="/api/v1/members")


@members_bp.route("", methods=["GET"])
def list_members():
    return jsonify(member_service.list_members_with_utilization())


@members_bp.route("/<int:member_id>", methods=["GET"])
def get_member(member_id):
    return jsonify(member_service.get_member_detail(member_id))


@members_bp.route("", methods=["POST"])
def create_member():
    data = request.get_json(silent=True) or {}
    member = member_service.create_member(data)
    return jsonify(member.to_dict()), 201


@members_bp.route("/<int:member_id>", methods=["PUT"])
def update_member(member_id):
    data = request.get_json(silent=True) or {}
    member = member_service.update_member(member_id, data)
    return jsonify(member.to_dict())


@members_bp.route("/<int:member_id>", methods=["DELETE"])
def delete_member(member_id):
    member_service.delete_member(member_id)
    return jsonify({"message": "Team member deleted"})

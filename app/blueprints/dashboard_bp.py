"""
Dashboard Blueprint — quarter overview for the SPA home page.

Endpoints:
    GET /api/v1/dashboard?quarter=Q1 2025
    GET /api/v1/dashboard/quarters
"""

from flask import Blueprint, jsonify, request

from app.services import dashboard_service

dashboard_bp = Blueprint("dashboard", __name__, url_prefix="/api/v1/dashboard")


@dashboard_bp.route("", methods=["GET"])
def get_dashboard():
    return jsonify(dashboard_service.get_dashboard(request.args.get("quarter")))


@dashboard_bp.route("/quarters", methods=["GET"])
def list_quarters():
    return jsonify(dashboard_service.list_quarters())

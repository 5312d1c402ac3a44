"""
Auth Blueprint — login, logout and password management.

Endpoints:
    POST /api/v1/auth/login
    POST /api/v1/auth/logout
    GET  /api/v1/auth/users
    POST /api/v1/auth/admin/reset-password
    POST /api/v1/auth/change-password
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.services import auth_service

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/api/v1/auth")


@auth_bp.route("/login", methods=["POST"])
def login():
    data = request.get_json(silent=True) or {}
    return jsonify(auth_service.login(data.get("username"), data.get("password")))


@auth_bp.route("/logout", methods=["POST"])
def logout():
    # Tokens are stateless; the client discards its copy
    return jsonify({"message": "Logged out successfully"})


@auth_bp.route("/users", methods=["GET"])
def list_users():
    return jsonify([u.to_dict() for u in auth_service.list_users()])


@auth_bp.route("/admin/reset-password", methods=["POST"])
def reset_password():
    data = request.get_json(silent=True) or {}
    message = auth_service.reset_password(data.get("userId"), data.get("temporaryPassword"))
    return jsonify({"message": message})


@auth_bp.route("/change-password", methods=["POST"])
def change_password():
    data = request.get_json(silent=True) or {}
    auth_service.change_password(
        g.current_user["id"], data.get("currentPassword"), data.get("newPassword"),
    )
    return jsonify({"message": "Password changed successfully"})

"""
Calendar Blueprint — time off from iCal feeds.

Endpoints:
    GET    /api/v1/calendar/feeds
    POST   /api/v1/calendar/sync      {feedUrls?, nameMappings?}
    POST   /api/v1/calendar/preview   {url}
    DELETE /api/v1/calendar/clear
"""

import logging

from flask import Blueprint, jsonify, request

from app.services import calendar_service

logger = logging.getLogger(__name__)

calendar_bp = Blueprint("calendar", __name__, url_prefix="/api/v1/calendar")


@calendar_bp.route("/feeds", methods=["GET"])
def list_feeds():
    return jsonify(calendar_service.list_feeds())


@calendar_bp.route("/sync", methods=["POST"])
def sync():
    data = request.get_json(silent=True) or {}
    mappings = {
        name: int(member_id)
        for name, member_id in (data.get("nameMappings") or {}).items()
        if str(member_id).isdigit()
    }
    return jsonify(calendar_service.sync(data.get("feedUrls") or None, mappings))


@calendar_bp.route("/preview", methods=["POST"])
def preview():
    data = request.get_json(silent=True) or {}
    return jsonify(calendar_service.preview(data.get("url")))


@calendar_bp.route("/clear", methods=["DELETE"])
def clear():
    return jsonify(calendar_service.clear())

"""
Production Workflow System
Notification Blueprint.

Endpoints:
    GET  /api/v1/notifications                  — ?unread=1&limit=&offset=
    GET  /api/v1/notifications/unread-count
    POST /api/v1/notifications/<id>/read
    POST /api/v1/notifications/read-all
"""

from __future__ import annotations

import logging

from flask import Blueprint, g, jsonify, request

from app.middleware.permission_required import require_actor
from app.services.notification import NotificationService
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

notification_bp = Blueprint("notifications", __name__, url_prefix="/api/v1")


def _user_id():
    try:
        return int(g.actor.id)
    except (TypeError, ValueError):
        return None


def _int_arg(name, default, maximum=None):
    try:
        value = max(int(request.args.get(name, default)), 0)
    except (TypeError, ValueError):
        value = default
    return min(value, maximum) if maximum else value


@notification_bp.route("/notifications", methods=["GET"])
@require_actor
def list_notifications():
    """List notifications visible to the caller, newest first."""
    actor = g.actor
    unread_only = request.args.get("unread", "").lower() in ("1", "true", "yes")
    items, total = NotificationService.list_for_user(
        actor.tenant_id, _user_id(), actor.role,
        unread_only=unread_only,
        limit=_int_arg("limit", 50, 200),
        offset=_int_arg("offset", 0),
    )
    return jsonify({
        "items": [n.to_dict() for n in items],
        "total": total,
        "unread_count": NotificationService.unread_count(actor.tenant_id, _user_id(), actor.role),
    })


@notification_bp.route("/notifications/unread-count", methods=["GET"])
@require_actor
def unread_count():
    actor = g.actor
    return jsonify({"count": NotificationService.unread_count(actor.tenant_id, _user_id(), actor.role)})


@notification_bp.route("/notifications/<int:nid>/read", methods=["POST"])
@require_actor
def mark_read(nid):
    actor = g.actor
    notif = NotificationService.mark_read(actor.tenant_id, _user_id(), actor.role, nid)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(notif.to_dict())


@notification_bp.route("/notifications/read-all", methods=["POST"])
@require_actor
def mark_all_read():
    actor = g.actor
    count = NotificationService.mark_all_read(actor.tenant_id, _user_id(), actor.role)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"marked_read": count})

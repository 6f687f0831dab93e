"""
External Job blueprints — outsourced work on orders and the partner portal.

Blueprint: external_jobs (JWT actor required)
    GET    /api/v1/orders/<order_id>/external-jobs
    POST   /api/v1/orders/<order_id>/external-jobs
    GET    /api/v1/external-jobs/<job_id>
    PUT    /api/v1/external-jobs/<job_id>
    DELETE /api/v1/external-jobs/<job_id>
    POST   /api/v1/external-jobs/<job_id>/status          — {status}
    POST   /api/v1/external-jobs/<job_id>/send            — issue partner link
    POST   /api/v1/external-jobs/<job_id>/receive         — {delivery_note_no}
    POST   /api/v1/external-jobs/<job_id>/attachments
    DELETE /api/v1/external-jobs/<job_id>/attachments/<attachment_id>

Blueprint: partner_portal (token is the only credential)
    GET    /api/v1/external-jobs/respond/<token>
    POST   /api/v1/external-jobs/respond/<token>
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from app.core.exceptions import ValidationError
from app.middleware.permission_required import require_actor
from app.services import external_job_service as jobs
from app.services.workflow_rules_service import load_rules_snapshot
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

external_job_bp = Blueprint("external_jobs", __name__, url_prefix="/api/v1")
partner_portal_bp = Blueprint("partner_portal", __name__, url_prefix="/api/v1/external-jobs/respond")


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _rules():
    return load_rules_snapshot(g.actor.tenant_id)


# ═══════════════════════════════════════════════════════════════════════════
# Jobs
# ═══════════════════════════════════════════════════════════════════════════


@external_job_bp.route("/orders/<order_id>/external-jobs", methods=["GET"])
@require_actor
def list_jobs(order_id):
    items = jobs.list_jobs(g.actor, order_id)
    return jsonify({"items": [j.to_dict() for j in items], "total": len(items)})


@external_job_bp.route("/orders/<order_id>/external-jobs", methods=["POST"])
@require_actor
def create_job(order_id):
    job = jobs.create_job(g.actor, order_id, _json_body(), _rules())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(job.to_dict(include_children=True)), 201


@external_job_bp.route("/external-jobs/<job_id>", methods=["GET"])
@require_actor
def get_job(job_id):
    return jsonify(jobs.get_job(g.actor, job_id).to_dict(include_children=True))


@external_job_bp.route("/external-jobs/<job_id>", methods=["PUT"])
@require_actor
def update_job(job_id):
    job = jobs.update_job(g.actor, job_id, _json_body(), _rules())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(job.to_dict())


@external_job_bp.route("/external-jobs/<job_id>", methods=["DELETE"])
@require_actor
def delete_job(job_id):
    jobs.delete_job(g.actor, job_id)
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


@external_job_bp.route("/external-jobs/<job_id>/status", methods=["POST"])
@require_actor
def set_status(job_id):
    status = (_json_body().get("status") or "").strip()
    if not status:
        raise ValidationError("status is required", details={"status": "required"})
    job, changed = jobs.set_job_status(g.actor, job_id, status, _rules())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"changed": changed, "job": job.to_dict()})


@external_job_bp.route("/external-jobs/<job_id>/send", methods=["POST"])
@require_actor
def send_to_partner(job_id):
    """Issue a one-time partner link; the raw token is only returned here."""
    ttl_days = current_app.config.get("PARTNER_LINK_TTL_DAYS", jobs.DEFAULT_LINK_TTL_DAYS)
    job, token = jobs.issue_partner_link(g.actor, job_id, _rules(), ttl_days=ttl_days)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "job": job.to_dict(),
        "token": token,
        "respond_path": f"{partner_portal_bp.url_prefix}/{token}",
    })


@external_job_bp.route("/external-jobs/<job_id>/receive", methods=["POST"])
@require_actor
def receive(job_id):
    job = jobs.mark_received(g.actor, job_id, _json_body(), _rules())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(job.to_dict())


@external_job_bp.route("/external-jobs/<job_id>/attachments", methods=["POST"])
@require_actor
def add_attachment(job_id):
    max_bytes = current_app.config.get("MAX_ATTACHMENT_MB", 25) * 1024 * 1024
    att = jobs.add_job_attachment(g.actor, job_id, _json_body(), max_bytes=max_bytes)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(att.to_dict()), 201


@external_job_bp.route("/external-jobs/<job_id>/attachments/<attachment_id>", methods=["DELETE"])
@require_actor
def remove_attachment(job_id, attachment_id):
    jobs.remove_job_attachment(g.actor, job_id, attachment_id)
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


# ═══════════════════════════════════════════════════════════════════════════
# Partner portal
# ═══════════════════════════════════════════════════════════════════════════


@partner_portal_bp.route("/<token>", methods=["GET"])
def partner_request(token):
    job = jobs.load_job_by_token(token)
    view = jobs.partner_view(job)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(view)


@partner_portal_bp.route("/<token>", methods=["POST"])
def partner_respond(token):
    job = jobs.submit_partner_response(token, _json_body(), load_rules_snapshot)
    view = jobs.partner_view(job)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(view), 200

"""
Workflow configuration blueprint — per-tenant rules, checklist, reasons,
external-job minimums, order-input fields and the hierarchy taxonomy.

Blueprint: workflow
Prefix: /api/v1

Endpoints (reads: any actor; writes: admin rights):
    GET/PUT         /workflow/rules
    GET/POST        /workflow/checklist-items
    PUT/DELETE      /workflow/checklist-items/<item_id>
    GET/POST        /workflow/return-reasons
    DELETE          /workflow/return-reasons/<reason_id>
    GET             /workflow/external-job-rules
    PUT             /workflow/external-job-rules/<status>     — {min_attachments}
    GET/POST        /workflow/order-input-fields
    PUT/DELETE      /workflow/order-input-fields/<field_id>
    GET/POST        /hierarchy/levels
    PUT/DELETE      /hierarchy/levels/<level_id>
    GET/POST        /hierarchy/nodes                          — ?level_id=
    PUT/DELETE      /hierarchy/nodes/<node_id>
"""

import logging

from flask import Blueprint, g, jsonify, request

from app.core.exceptions import ValidationError
from app.middleware.permission_required import require_actor, require_admin
from app.services import hierarchy_service
from app.services import workflow_rules_service as wrs
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

workflow_bp = Blueprint("workflow", __name__, url_prefix="/api/v1")


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _tid():
    return g.actor.tenant_id


def _items(rows):
    return jsonify({"items": [r.to_dict() for r in rows], "total": len(rows)})


def _saved(obj, status=200):
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(obj.to_dict()), status


def _deleted():
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


# ═══════════════════════════════════════════════════════════════════════════
# Rules
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflow/rules", methods=["GET"])
@require_actor
def get_rules():
    rules = wrs.get_or_seed_rules(_tid())
    return _saved(rules)


@workflow_bp.route("/workflow/rules", methods=["PUT"])
@require_admin
def update_rules():
    rules = wrs.update_rules(_tid(), _json_body())
    logger.info("Workflow rules updated for tenant=%s by %s", _tid(), g.actor.name)
    return _saved(rules)


# ═══════════════════════════════════════════════════════════════════════════
# Checklist items
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflow/checklist-items", methods=["GET"])
@require_actor
def list_checklist_items():
    rows = wrs.list_checklist_items(_tid())
    err = db_commit_or_error()
    if err:
        return err
    return _items(rows)


@workflow_bp.route("/workflow/checklist-items", methods=["POST"])
@require_admin
def create_checklist_item():
    return _saved(wrs.create_checklist_item(_tid(), _json_body()), 201)


@workflow_bp.route("/workflow/checklist-items/<item_id>", methods=["PUT"])
@require_admin
def update_checklist_item(item_id):
    return _saved(wrs.update_checklist_item(_tid(), item_id, _json_body()))


@workflow_bp.route("/workflow/checklist-items/<item_id>", methods=["DELETE"])
@require_admin
def delete_checklist_item(item_id):
    wrs.delete_checklist_item(_tid(), item_id)
    return _deleted()


# ═══════════════════════════════════════════════════════════════════════════
# Return reasons
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflow/return-reasons", methods=["GET"])
@require_actor
def list_return_reasons():
    rows = wrs.list_return_reasons(_tid())
    err = db_commit_or_error()
    if err:
        return err
    return _items(rows)


@workflow_bp.route("/workflow/return-reasons", methods=["POST"])
@require_admin
def add_return_reason():
    return _saved(wrs.add_return_reason(_tid(), _json_body().get("label")), 201)


@workflow_bp.route("/workflow/return-reasons/<reason_id>", methods=["DELETE"])
@require_admin
def remove_return_reason(reason_id):
    wrs.remove_return_reason(_tid(), reason_id)
    return _deleted()


# ═══════════════════════════════════════════════════════════════════════════
# External job rules
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflow/external-job-rules", methods=["GET"])
@require_actor
def list_external_job_rules():
    rows = wrs.list_external_job_rules(_tid())
    err = db_commit_or_error()
    if err:
        return err
    return _items(rows)


@workflow_bp.route("/workflow/external-job-rules/<status>", methods=["PUT"])
@require_admin
def set_external_job_rule(status):
    rule = wrs.set_external_job_rule(_tid(), status, _json_body().get("min_attachments"))
    return _saved(rule)


# ═══════════════════════════════════════════════════════════════════════════
# Order input fields
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/workflow/order-input-fields", methods=["GET"])
@require_actor
def list_order_input_fields():
    return _items(wrs.list_order_input_fields(_tid()))


@workflow_bp.route("/workflow/order-input-fields", methods=["POST"])
@require_admin
def create_order_input_field():
    return _saved(wrs.create_order_input_field(_tid(), _json_body()), 201)


@workflow_bp.route("/workflow/order-input-fields/<field_id>", methods=["PUT"])
@require_admin
def update_order_input_field(field_id):
    return _saved(wrs.update_order_input_field(_tid(), field_id, _json_body()))


@workflow_bp.route("/workflow/order-input-fields/<field_id>", methods=["DELETE"])
@require_admin
def delete_order_input_field(field_id):
    wrs.delete_order_input_field(_tid(), field_id)
    return _deleted()


# ═══════════════════════════════════════════════════════════════════════════
# Hierarchy
# ═══════════════════════════════════════════════════════════════════════════


@workflow_bp.route("/hierarchy/levels", methods=["GET"])
@require_actor
def list_levels():
    return _items(hierarchy_service.list_levels(_tid()))


@workflow_bp.route("/hierarchy/levels", methods=["POST"])
@require_admin
def create_level():
    return _saved(hierarchy_service.create_level(_tid(), _json_body()), 201)


@workflow_bp.route("/hierarchy/levels/<level_id>", methods=["PUT"])
@require_admin
def update_level(level_id):
    return _saved(hierarchy_service.update_level(_tid(), level_id, _json_body()))


@workflow_bp.route("/hierarchy/levels/<level_id>", methods=["DELETE"])
@require_admin
def delete_level(level_id):
    hierarchy_service.delete_level(_tid(), level_id)
    return _deleted()


@workflow_bp.route("/hierarchy/nodes", methods=["GET"])
@require_actor
def list_nodes():
    return _items(hierarchy_service.list_nodes(_tid(), request.args.get("level_id")))


@workflow_bp.route("/hierarchy/nodes", methods=["POST"])
@require_admin
def create_node():
    return _saved(hierarchy_service.create_node(_tid(), _json_body()), 201)


@workflow_bp.route("/hierarchy/nodes/<node_id>", methods=["PUT"])
@require_admin
def update_node(node_id):
    return _saved(hierarchy_service.update_node(_tid(), node_id, _json_body()))


@workflow_bp.route("/hierarchy/nodes/<node_id>", methods=["DELETE"])
@require_admin
def delete_node(node_id):
    hierarchy_service.delete_node(_tid(), node_id)
    return _deleted()

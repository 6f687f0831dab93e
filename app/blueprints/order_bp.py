"""
Order blueprint — CRUD, lifecycle transitions, assignment and child entities.

Blueprint: orders
Prefix: /api/v1

Endpoints:
  Orders:
    GET    /orders                            — List (filters: status, priority, source,
                                                engineer_id, manager_id, q; limit/offset)
    POST   /orders                            — Create manual order
    GET    /orders/<id>                       — Detail with children
    PUT    /orders/<id>                       — Partial update
    DELETE /orders/<id>                       — Cascade delete

  Lifecycle:
    GET    /orders/<id>/gates?target=<status> — Gate evaluation
    GET    /orders/<id>/actions               — Actions available to the caller
    POST   /orders/<id>/transition            — {action}
    POST   /orders/<id>/send-back             — {reason, note}
    POST   /orders/<id>/take                  — Engineering self-assign
    POST   /orders/<id>/return-to-queue       — Assigned engineer gives back
    PUT/DELETE /orders/<id>/engineer          — Assign / clear engineer
    PUT/DELETE /orders/<id>/manager           — Assign / clear manager
    GET    /orders/<id>/history               — Status history

  Children:
    PUT    /orders/<id>/checklist             — {checklist: {item_id: bool}}
    POST   /orders/<id>/attachments           — Add attachment metadata
    DELETE /orders/<id>/attachments/<aid>
    POST   /orders/<id>/comments              — {message}
    DELETE /orders/<id>/comments/<cid>
    GET/PUT /orders/<id>/inputs               — Order input values

Every route needs a JWT actor; services raise, app-level handlers translate.
"""

import logging

from flask import Blueprint, current_app, g, jsonify, request

from app.blueprints import paginate_query
from app.core.exceptions import ValidationError
from app.middleware.permission_required import require_actor
from app.services import order_lifecycle, order_service
from app.services.workflow_rules_service import load_rules_snapshot
from app.utils.helpers import db_commit_or_error

logger = logging.getLogger(__name__)

order_bp = Blueprint("orders", __name__, url_prefix="/api/v1")


def _max_attachment_bytes():
    return current_app.config.get("MAX_ATTACHMENT_MB", 25) * 1024 * 1024


def _json_body():
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def _order_response(order, status=200):
    return jsonify(order.to_dict()), status


# ═════════════════════════════════════════════════════════════════════════
# Orders
# ═════════════════════════════════════════════════════════════════════════


@order_bp.route("/orders", methods=["GET"])
@require_actor
def list_orders():
    """List orders for the caller's tenant, soonest due first."""
    query = order_service.list_orders_query(
        g.actor,
        status=request.args.get("status"),
        priority=request.args.get("priority"),
        source=request.args.get("source"),
        assigned_engineer_id=request.args.get("engineer_id"),
        assigned_manager_id=request.args.get("manager_id"),
        search=request.args.get("q"),
    )
    items, total = paginate_query(query)
    return jsonify({"items": [o.to_dict() for o in items], "total": total})


@order_bp.route("/orders", methods=["POST"])
@require_actor
def create_order():
    order = order_service.create_order(g.actor, _json_body())
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(order.to_dict(include_children=True)), 201


@order_bp.route("/orders/<order_id>", methods=["GET"])
@require_actor
def get_order(order_id):
    order = order_service.get_order(g.actor, order_id)
    return jsonify(order.to_dict(include_children=True))


@order_bp.route("/orders/<order_id>", methods=["PUT"])
@require_actor
def update_order(order_id):
    order = order_service.update_order(g.actor, order_id, _json_body())
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>", methods=["DELETE"])
@require_actor
def delete_order(order_id):
    result = order_service.delete_order_cascade(g.actor, order_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(result)


# ═════════════════════════════════════════════════════════════════════════
# Lifecycle
# ═════════════════════════════════════════════════════════════════════════


@order_bp.route("/orders/<order_id>/gates", methods=["GET"])
@require_actor
def get_gates(order_id):
    """Evaluate the gates for ``target`` (defaults to the next gated status)."""
    order = order_service.get_order(g.actor, order_id)
    target = request.args.get("target")
    if not target:
        nxt = next(
            (r["to"] for r in order_lifecycle.ORDER_TRANSITIONS.values()
             if order.status in r["from"] and r["gated"]),
            None,
        )
        if nxt is None:
            return jsonify({"target": None, "gates": [], "passed": True})
        target = nxt
    rules = load_rules_snapshot(g.actor.tenant_id)
    err = db_commit_or_error()  # first read may seed default rules
    if err:
        return err
    gates = order_lifecycle.evaluate_gates(order, target, rules)
    return jsonify({
        "target": target,
        "gates": gates,
        "passed": all(gate["passed"] for gate in gates),
    })


@order_bp.route("/orders/<order_id>/actions", methods=["GET"])
@require_actor
def get_actions(order_id):
    order = order_service.get_order(g.actor, order_id)
    rules = load_rules_snapshot(g.actor.tenant_id)
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({
        "order_id": order.id,
        "status": order.status,
        "actions": order_lifecycle.available_actions(order, g.actor, rules),
    })


@order_bp.route("/orders/<order_id>/transition", methods=["POST"])
@require_actor
def transition(order_id):
    data = _json_body()
    action = (data.get("action") or "").strip()
    if not action:
        raise ValidationError("action is required", details={"action": "required"})
    rules = load_rules_snapshot(g.actor.tenant_id)
    result = order_lifecycle.transition_order(order_id, action, g.actor, rules)
    err = db_commit_or_error()
    if err:
        return err
    order = order_service.get_order(g.actor, order_id)
    return jsonify({"result": result, "order": order.to_dict()})


@order_bp.route("/orders/<order_id>/send-back", methods=["POST"])
@require_actor
def send_back(order_id):
    data = _json_body()
    rules = load_rules_snapshot(g.actor.tenant_id)
    result = order_lifecycle.send_back(
        order_id, g.actor, rules, reason=data.get("reason"), note=data.get("note"),
    )
    err = db_commit_or_error()
    if err:
        return err
    order = order_service.get_order(g.actor, order_id)
    return jsonify({"result": result, "order": order.to_dict()})


@order_bp.route("/orders/<order_id>/take", methods=["POST"])
@require_actor
def take(order_id):
    order = order_lifecycle.take_order(order_id, g.actor)
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/return-to-queue", methods=["POST"])
@require_actor
def return_to_queue(order_id):
    order = order_lifecycle.return_to_queue(order_id, g.actor)
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/engineer", methods=["PUT"])
@require_actor
def assign_engineer(order_id):
    data = _json_body()
    order = order_lifecycle.assign_engineer(
        order_id, g.actor,
        engineer_id=data.get("engineer_id"), engineer_name=data.get("engineer_name"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/engineer", methods=["DELETE"])
@require_actor
def clear_engineer(order_id):
    order = order_lifecycle.clear_engineer(order_id, g.actor)
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/manager", methods=["PUT"])
@require_actor
def assign_manager(order_id):
    data = _json_body()
    order = order_lifecycle.assign_manager(
        order_id, g.actor,
        manager_id=data.get("manager_id"), manager_name=data.get("manager_name"),
    )
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/manager", methods=["DELETE"])
@require_actor
def clear_manager(order_id):
    order = order_lifecycle.clear_manager(order_id, g.actor)
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/history", methods=["GET"])
@require_actor
def history(order_id):
    entries = order_service.status_history(g.actor, order_id)
    return jsonify({"items": [e.to_dict() for e in entries], "total": len(entries)})


# ═════════════════════════════════════════════════════════════════════════
# Checklist, attachments, comments, inputs
# ═════════════════════════════════════════════════════════════════════════


@order_bp.route("/orders/<order_id>/checklist", methods=["PUT"])
@require_actor
def set_checklist(order_id):
    data = _json_body()
    rules = load_rules_snapshot(g.actor.tenant_id)
    order = order_service.set_checklist(g.actor, order_id, data.get("checklist", data), rules)
    err = db_commit_or_error()
    if err:
        return err
    return _order_response(order)


@order_bp.route("/orders/<order_id>/attachments", methods=["POST"])
@require_actor
def add_attachment(order_id):
    rules = load_rules_snapshot(g.actor.tenant_id)
    att = order_service.add_attachment(
        g.actor, order_id, _json_body(), rules=rules, max_bytes=_max_attachment_bytes(),
    )
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(att.to_dict()), 201


@order_bp.route("/orders/<order_id>/attachments/<attachment_id>", methods=["DELETE"])
@require_actor
def remove_attachment(order_id, attachment_id):
    order_service.remove_attachment(g.actor, order_id, attachment_id)
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


@order_bp.route("/orders/<order_id>/comments", methods=["POST"])
@require_actor
def add_comment(order_id):
    comment = order_service.add_comment(g.actor, order_id, _json_body().get("message"))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify(comment.to_dict()), 201


@order_bp.route("/orders/<order_id>/comments/<comment_id>", methods=["DELETE"])
@require_actor
def remove_comment(order_id, comment_id):
    order_service.remove_comment(g.actor, order_id, comment_id)
    err = db_commit_or_error()
    if err:
        return err
    return "", 204


@order_bp.route("/orders/<order_id>/inputs", methods=["GET"])
@require_actor
def get_inputs(order_id):
    return jsonify({"items": order_service.get_order_inputs(g.actor, order_id)})


@order_bp.route("/orders/<order_id>/inputs", methods=["PUT"])
@require_actor
def set_inputs(order_id):
    data = _json_body()
    items = order_service.set_order_inputs(g.actor, order_id, data.get("values", data))
    err = db_commit_or_error()
    if err:
        return err
    return jsonify({"items": items})

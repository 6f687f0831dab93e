"""
Order Lifecycle Service — status state machine, gates and assignment.

Manages order status transitions with:
  - Role check per action (PermissionDenied)
  - Transition validation against the current status (TransitionError)
  - Gate re-validation on the server (GateError)
  - Append-only status history, one entry per status change
  - Notification side effects

7 forward actions:
  send_to_engineering, start_engineering, block_engineering,
  resume_engineering, send_to_production, start_production, complete

Plus send_back (role-dependent target), take_order, return_to_queue and
engineer/manager assignment.

Every function takes the acting ``Actor`` and, where gates or reasons are
involved, the tenant's ``WorkflowRulesSnapshot``. Functions flush; the
caller commits.

Usage:
    from app.services.order_lifecycle import transition_order

    result = transition_order(order_id, "send_to_engineering", actor, rules)
"""

import logging

from sqlalchemy import select

from app.core.actor import ENGINEERING, SALES
from app.core.exceptions import GateError, PermissionDenied, TransitionError, ValidationError
from app.models import db
from app.models.auth import User
from app.models.base import _utcnow
from app.models.order import Order, OrderComment, OrderStatusEntry
from app.models.order_status import ORDER_STATUSES
from app.models.workflow import OrderInputValue
from app.services.helpers.scoped_queries import get_scoped
from app.services.notification import NotificationService

logger = logging.getLogger(__name__)


# Order transition rules
ORDER_TRANSITIONS = {
    "send_to_engineering": {
        "from": ["draft"], "to": "ready_for_engineering", "roles": ["Sales"], "gated": True,
    },
    "start_engineering": {
        "from": ["ready_for_engineering"], "to": "in_engineering", "roles": ["Engineering"], "gated": False,
    },
    "block_engineering": {
        "from": ["in_engineering"], "to": "engineering_blocked", "roles": ["Engineering"], "gated": False,
    },
    "resume_engineering": {
        "from": ["engineering_blocked"], "to": "in_engineering", "roles": ["Engineering"], "gated": False,
    },
    "send_to_production": {
        "from": ["in_engineering"], "to": "ready_for_production", "roles": ["Engineering"], "gated": True,
    },
    "start_production": {
        "from": ["ready_for_production"], "to": "in_production", "roles": ["Production", "Admin"], "gated": True,
    },
    "complete": {
        "from": ["in_production"], "to": "done", "roles": ["Production", "Admin"], "gated": False,
    },
}

# role -> {current status -> status after send back}
SEND_BACK_TARGETS = {
    SALES: {
        "ready_for_engineering": "draft",
        "in_engineering": "draft",
        "engineering_blocked": "draft",
    },
    ENGINEERING: {
        "ready_for_production": "in_engineering",
        "in_engineering": "ready_for_engineering",
        "engineering_blocked": "ready_for_engineering",
    },
}

TAKEABLE_STATUS = "ready_for_engineering"
RETURNABLE_STATUSES = ("in_engineering", "engineering_blocked", "ready_for_engineering")
QUEUE_RESET_STATUSES = ("in_engineering", "engineering_blocked")


# ═════════════════════════════════════════════════════════════════════════════
# Validation & gates
# ═════════════════════════════════════════════════════════════════════════════

def validate_transition(order: Order, action: str, actor) -> dict:
    """Validate whether an action is valid for the order's status and the actor's role."""
    rule = ORDER_TRANSITIONS.get(action)
    if not rule:
        return {"valid": False, "from": order.status, "to": None,
                "reason": f"Unknown action: {action}"}
    if actor.role not in rule["roles"]:
        return {"valid": False, "from": order.status, "to": rule["to"],
                "reason": f"Role '{actor.role}' cannot '{action}'"}
    if order.status not in rule["from"]:
        return {"valid": False, "from": order.status, "to": rule["to"],
                "reason": f"Cannot '{action}' from status '{order.status}'"}
    return {"valid": True, "from": order.status, "to": rule["to"], "reason": None}


def _missing_required_inputs(order: Order, rules) -> list[str]:
    if not rules.required_input_field_ids:
        return []
    values = db.session.execute(
        select(OrderInputValue).where(
            OrderInputValue.order_id == order.id,
            OrderInputValue.field_id.in_(rules.required_input_field_ids),
        )
    ).scalars().all()
    filled = {v.field_id for v in values if v.value not in (None, "", [], {})}
    return [fid for fid in rules.required_input_field_ids if fid not in filled]


def evaluate_gates(order: Order, target: str, rules) -> list[dict]:
    """
    Evaluate the four gating preconditions for moving ``order`` to ``target``.

    Returns one dict per gate: {"gate", "passed", "required", "actual"}.
    Gates that the tenant does not require for ``target`` report passed=True.
    """
    checklist = order.checklist or {}
    required_items = rules.checklist_items_for(target)
    unchecked = [i.label for i in required_items if not checklist.get(i.id)]

    attachment_count = order.attachments.count()
    min_attachments = rules.min_attachments_for(target)

    comment_count = order.comments.count()
    needs_comment = rules.requires_comment_for(target)

    missing_inputs = _missing_required_inputs(order, rules) if rules.requires_order_inputs_for(target) else []

    return [
        {
            "gate": "checklist",
            "passed": not unchecked,
            "required": [i.label for i in required_items],
            "actual": unchecked,
        },
        {
            "gate": "attachments",
            "passed": attachment_count >= min_attachments,
            "required": min_attachments,
            "actual": attachment_count,
        },
        {
            "gate": "comment",
            "passed": comment_count > 0 or not needs_comment,
            "required": 1 if needs_comment else 0,
            "actual": comment_count,
        },
        {
            "gate": "order_inputs",
            "passed": not missing_inputs,
            "required": list(rules.required_input_field_ids) if rules.requires_order_inputs_for(target) else [],
            "actual": missing_inputs,
        },
    ]


def failed_gates(order: Order, target: str, rules) -> list[dict]:
    return [g for g in evaluate_gates(order, target, rules) if not g["passed"]]


# ═════════════════════════════════════════════════════════════════════════════
# Status bookkeeping
# ═════════════════════════════════════════════════════════════════════════════

def apply_status(order: Order, new_status: str, actor, *, changed_at=None) -> str:
    """
    Set the order status and append the matching history entry.

    The entry's ``changed_at`` is the same value written to
    ``order.status_changed_at``. Returns the previous status.
    """
    if new_status not in ORDER_STATUSES:
        raise ValidationError(f"Unknown order status '{new_status}'", details={"status": "invalid"})
    previous = order.status
    now = changed_at or _utcnow()

    order.status = new_status
    order.status_changed_by = actor.name
    order.status_changed_by_role = actor.role
    order.status_changed_at = now

    db.session.add(OrderStatusEntry(
        tenant_id=order.tenant_id,
        order_id=order.id,
        status=new_status,
        changed_by_name=actor.name,
        changed_by_role=actor.role,
        changed_at=now,
    ))
    NotificationService.notify_status_changed(order, previous, actor)
    db.session.flush()

    logger.info(
        "Order %s status %s -> %s by %s (%s)",
        order.order_number, previous, new_status, actor.name, actor.role,
    )
    return previous


def _load(order_id: str, actor) -> Order:
    return get_scoped(Order, order_id, tenant_id=actor.tenant_id)


# ═════════════════════════════════════════════════════════════════════════════
# Transitions
# ═════════════════════════════════════════════════════════════════════════════

def transition_order(order_id: str, action: str, actor, rules) -> dict:
    """
    Execute an order lifecycle transition.

    Returns:
        {"order_id", "order_number", "previous_status", "new_status", "action"}

    Raises:
        PermissionDenied, TransitionError, GateError, NotFoundError
    """
    order = _load(order_id, actor)

    rule = ORDER_TRANSITIONS.get(action)
    if rule is None:
        raise ValidationError(f"Unknown action: {action}", details={"action": "invalid"})
    if actor.role not in rule["roles"]:
        raise PermissionDenied(actor.id, action, f"role {actor.role} not allowed")

    validation = validate_transition(order, action, actor)
    if not validation["valid"]:
        raise TransitionError(validation["reason"], current=order.status, target=validation["to"])

    if rule["gated"]:
        failed = failed_gates(order, rule["to"], rules)
        if failed:
            raise GateError(rule["to"], failed, current=order.status)

    previous = apply_status(order, rule["to"], actor)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "previous_status": previous,
        "new_status": order.status,
        "action": action,
    }


def send_back_target(order: Order, actor) -> str | None:
    return SEND_BACK_TARGETS.get(actor.role, {}).get(order.status)


def send_back(order_id: str, actor, rules, *, reason: str | None = None, note: str | None = None) -> dict:
    """
    Return an order to an earlier status with a reason and/or note.

    The explanatory comment is written before the status change.
    """
    order = _load(order_id, actor)
    if actor.role not in SEND_BACK_TARGETS:
        raise PermissionDenied(actor.id, "send_back", f"role {actor.role} not allowed")

    target = send_back_target(order, actor)
    if target is None:
        raise TransitionError(
            f"{actor.role} cannot send back an order in status '{order.status}'",
            current=order.status,
        )

    reason = (reason or "").strip() or None
    note = (note or "").strip() or None
    if not reason and not note:
        raise ValidationError(
            "A return reason or note is required",
            details={"reason": "required", "note": "required"},
        )
    if reason and reason not in rules.return_reasons:
        raise ValidationError(f"Unknown return reason '{reason}'", details={"reason": "invalid"})

    message = f"Returned: {reason or 'No reason selected'}"
    if note:
        message += f" - {note}"
    db.session.add(OrderComment(
        tenant_id=order.tenant_id,
        order_id=order.id,
        message=message,
        author_id=actor.id,
        author_name=actor.name,
        author_role=actor.role,
    ))
    db.session.flush()

    previous = apply_status(order, target, actor)
    return {
        "order_id": order.id,
        "order_number": order.order_number,
        "previous_status": previous,
        "new_status": order.status,
        "action": "send_back",
        "comment": message,
    }


# ═════════════════════════════════════════════════════════════════════════════
# Assignment
# ═════════════════════════════════════════════════════════════════════════════

def can_take_order(order: Order, actor) -> bool:
    return (
        actor.role == ENGINEERING
        and not order.assigned_engineer_id
        and order.status == TAKEABLE_STATUS
    )


def can_return_to_queue(order: Order, actor) -> bool:
    return (
        actor.role == ENGINEERING
        and order.assigned_engineer_id == actor.id
        and order.status in RETURNABLE_STATUSES
    )


def take_order(order_id: str, actor) -> Order:
    """Engineering self-assigns an unassigned order waiting in the queue."""
    order = _load(order_id, actor)
    if actor.role != ENGINEERING:
        raise PermissionDenied(actor.id, "take_order", "only Engineering can take orders")
    if order.assigned_engineer_id:
        raise TransitionError(
            f"Order {order.order_number} is already assigned to {order.assigned_engineer_name}",
            current=order.status,
        )
    if order.status != TAKEABLE_STATUS:
        raise TransitionError(
            f"Only orders in '{TAKEABLE_STATUS}' can be taken (status={order.status})",
            current=order.status,
        )
    order.assigned_engineer_id = actor.id
    order.assigned_engineer_name = actor.name
    order.assigned_engineer_at = _utcnow()
    db.session.flush()
    logger.info("Order %s taken by %s", order.order_number, actor.name)
    return order


def return_to_queue(order_id: str, actor) -> Order:
    """
    The assigned engineer gives the order back.

    Status resets to ready_for_engineering only from in_engineering or
    engineering_blocked; from ready_for_engineering it stays put and no
    history entry is written.
    """
    order = _load(order_id, actor)
    if not can_return_to_queue(order, actor):
        if actor.role != ENGINEERING or order.assigned_engineer_id != actor.id:
            raise PermissionDenied(actor.id, "return_to_queue", "only the assigned engineer can return the order")
        raise TransitionError(
            f"Cannot return to queue from status '{order.status}'", current=order.status,
        )

    order.assigned_engineer_id = None
    order.assigned_engineer_name = None
    order.assigned_engineer_at = None
    db.session.flush()

    if order.status in QUEUE_RESET_STATUSES:
        apply_status(order, "ready_for_engineering", actor)
    logger.info("Order %s returned to queue by %s", order.order_number, actor.name)
    return order


def _resolve_assignee_name(tenant_id: int, assignee_id: str, assignee_name: str | None) -> str:
    if assignee_name:
        return assignee_name
    try:
        uid = int(assignee_id)
    except (TypeError, ValueError):
        uid = None
    user = None
    if uid is not None:
        user = db.session.execute(
            select(User).where(User.id == uid, User.tenant_id == tenant_id)
        ).scalar_one_or_none()
    if user is None:
        raise ValidationError(
            f"Unknown user '{assignee_id}' and no name given",
            details={"user_id": "not found"},
        )
    return user.full_name or user.email


def _set_assignment(order_id: str, actor, kind: str, assignee_id, assignee_name) -> Order:
    if not actor.can_manage_assignments:
        raise PermissionDenied(actor.id, f"assign_{kind}", "only Sales or admins manage assignments")
    order = _load(order_id, actor)

    if assignee_id is not None:
        assignee_id = str(assignee_id)
        assignee_name = _resolve_assignee_name(order.tenant_id, assignee_id, assignee_name)
    else:
        assignee_name = None

    setattr(order, f"assigned_{kind}_id", assignee_id)
    setattr(order, f"assigned_{kind}_name", assignee_name)
    setattr(order, f"assigned_{kind}_at", _utcnow() if assignee_id else None)
    NotificationService.notify_assignment(order, kind, assignee_id, assignee_name, actor)
    db.session.flush()
    logger.info(
        "Order %s %s %s by %s", order.order_number, kind,
        f"assigned to {assignee_name}" if assignee_id else "cleared", actor.name,
    )
    return order


def assign_engineer(order_id: str, actor, *, engineer_id, engineer_name=None) -> Order:
    if not engineer_id:
        raise ValidationError("engineer_id is required", details={"engineer_id": "required"})
    return _set_assignment(order_id, actor, "engineer", engineer_id, engineer_name)


def clear_engineer(order_id: str, actor) -> Order:
    return _set_assignment(order_id, actor, "engineer", None, None)


def assign_manager(order_id: str, actor, *, manager_id, manager_name=None) -> Order:
    if not manager_id:
        raise ValidationError("manager_id is required", details={"manager_id": "required"})
    return _set_assignment(order_id, actor, "manager", manager_id, manager_name)


def clear_manager(order_id: str, actor) -> Order:
    return _set_assignment(order_id, actor, "manager", None, None)


# ═════════════════════════════════════════════════════════════════════════════
# Available actions
# ═════════════════════════════════════════════════════════════════════════════

def available_actions(order: Order, actor, rules) -> list[dict]:
    """
    List what ``actor`` can do with ``order`` right now.

    Transitions whose gates fail are listed with ``enabled=False`` and the
    failing gates, so a UI can show them disabled with a reason.
    """
    actions = []
    for name, rule in ORDER_TRANSITIONS.items():
        if not validate_transition(order, name, actor)["valid"]:
            continue
        failed = failed_gates(order, rule["to"], rules) if rule["gated"] else []
        actions.append({"action": name, "to": rule["to"], "enabled": not failed, "failed_gates": failed})

    target = send_back_target(order, actor)
    if target:
        actions.append({"action": "send_back", "to": target, "enabled": True, "failed_gates": []})
    if can_take_order(order, actor):
        actions.append({"action": "take", "to": None, "enabled": True, "failed_gates": []})
    if can_return_to_queue(order, actor):
        to = "ready_for_engineering" if order.status in QUEUE_RESET_STATUSES else None
        actions.append({"action": "return_to_queue", "to": to, "enabled": True, "failed_gates": []})
    if actor.can_manage_assignments:
        actions.append({"action": "assign_engineer", "to": None, "enabled": True, "failed_gates": []})
        actions.append({"action": "assign_manager", "to": None, "enabled": True, "failed_gates": []})
    return actions

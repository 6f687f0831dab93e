"""
Order Service — CRUD and child entities of the Order aggregate.

Covers create (with the first-comment policy), partial update with the
provenance downgrade, explicit cascade delete, attachments, comments,
checklist state and order-input values. Status changes go through
``app.services.order_lifecycle``; the only exception is an admin edit that
sets ``status`` directly, which still writes a history entry.

All functions take the acting ``Actor``, scope every query by its tenant and
flush without committing.
"""

import logging

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import func, or_, select

from app.core.exceptions import ConflictError, PermissionDenied, ValidationError
from app.models import db
from app.models.base import _utcnow
from app.models.order import PRIORITIES, Order, OrderAttachment, OrderComment, OrderStatusEntry
from app.models.order_status import ORDER_STATUSES, stored_values_for
from app.models.workflow import OrderInputField, OrderInputValue
from app.services.helpers.scoped_queries import get_scoped
from app.services.order_lifecycle import apply_status
from app.services.provenance import source_after_edit
from app.utils.helpers import parse_date_input, parse_datetime_input

logger = logging.getLogger(__name__)

_REQUIRED_ON_CREATE = ("order_number", "customer_name", "due_date")
EDITABLE_FIELDS = (
    "order_number", "customer_name", "customer_email", "product_name", "quantity",
    "hierarchy", "due_date", "priority", "external_id", "production_duration_minutes",
)


# ── Field validation ─────────────────────────────────────────────────────────

def _normalize_email(value, errors, field="customer_email"):
    if not value:
        return None
    try:
        return validate_email(value, check_deliverability=False).normalized
    except EmailNotValidError as exc:
        errors[field] = str(exc)
        return None


def clean_order_fields(data: dict, errors: dict) -> dict:
    """Validate and coerce the editable fields present in ``data``."""
    clean = {}
    for name in ("order_number", "customer_name"):
        if name in data:
            value = (data.get(name) or "").strip() if isinstance(data.get(name), str) else data.get(name)
            if not value:
                errors[name] = "required"
            else:
                clean[name] = str(value)
    if "product_name" in data:
        clean["product_name"] = (str(data["product_name"]).strip() or None) if data["product_name"] is not None else None
    if "customer_email" in data:
        clean["customer_email"] = _normalize_email(data.get("customer_email"), errors)
    if "quantity" in data:
        try:
            quantity = int(data["quantity"]) if data["quantity"] not in (None, "") else 1
            if quantity < 1:
                raise ValueError
            clean["quantity"] = quantity
        except (TypeError, ValueError):
            errors["quantity"] = "must be a positive integer"
    if "due_date" in data:
        try:
            due = parse_date_input(data["due_date"])
        except ValueError as exc:
            errors["due_date"] = str(exc)
        else:
            if due is None:
                errors["due_date"] = "required"
            else:
                clean["due_date"] = due
    if "priority" in data:
        priority = data.get("priority") or "normal"
        if priority not in PRIORITIES:
            errors["priority"] = f"must be one of {', '.join(PRIORITIES)}"
        else:
            clean["priority"] = priority
    if "hierarchy" in data:
        hierarchy = data.get("hierarchy") or {}
        if not isinstance(hierarchy, dict):
            errors["hierarchy"] = "must be an object"
        else:
            clean["hierarchy"] = hierarchy
    if "external_id" in data:
        clean["external_id"] = data.get("external_id") or None
    if "production_duration_minutes" in data:
        minutes = data.get("production_duration_minutes")
        if minutes is not None and (isinstance(minutes, bool) or not isinstance(minutes, int) or minutes < 0):
            errors["production_duration_minutes"] = "must be a non-negative integer"
        else:
            clean["production_duration_minutes"] = minutes
    return clean


def _ensure_unique_number(tenant_id: int, order_number: str, exclude_id: str | None = None) -> None:
    stmt = select(Order.id).where(Order.tenant_id == tenant_id, Order.order_number == order_number)
    if exclude_id:
        stmt = stmt.where(Order.id != exclude_id)
    if db.session.execute(stmt).first():
        raise ConflictError("Order", "order_number", order_number)


# ═════════════════════════════════════════════════════════════════════════════
# Read
# ═════════════════════════════════════════════════════════════════════════════

def get_order(actor, order_id: str) -> Order:
    return get_scoped(Order, order_id, tenant_id=actor.tenant_id)


def list_orders_query(actor, *, status=None, priority=None, source=None,
                      assigned_engineer_id=None, assigned_manager_id=None, search=None):
    """Build a tenant-scoped, filtered query of orders, most urgent due date first."""
    q = Order.query_for_tenant(actor.tenant_id)
    if status:
        q = q.filter(Order.status.in_(stored_values_for(status)))
    if priority:
        q = q.filter(Order.priority == priority)
    if source:
        q = q.filter(Order.source == source)
    if assigned_engineer_id:
        q = q.filter(Order.assigned_engineer_id == str(assigned_engineer_id))
    if assigned_manager_id:
        q = q.filter(Order.assigned_manager_id == str(assigned_manager_id))
    if search:
        like = f"%{search.lower()}%"
        q = q.filter(or_(
            func.lower(Order.order_number).like(like),
            func.lower(Order.customer_name).like(like),
            func.lower(Order.product_name).like(like),
        ))
    return q.order_by(Order.due_date.asc(), Order.created_at.asc())


def status_history(actor, order_id: str) -> list[OrderStatusEntry]:
    order = get_order(actor, order_id)
    return order.status_history.all()


# ═════════════════════════════════════════════════════════════════════════════
# Create / update / delete
# ═════════════════════════════════════════════════════════════════════════════

def create_order(actor, data: dict) -> Order:
    """
    Create a manual order.

    A Sales or admin creator becomes the assigned manager unless a manager
    is given. Non-empty ``notes`` become the first comment, written in the
    same transaction as the order: if either insert fails, neither persists.
    """
    errors = {}
    for name in _REQUIRED_ON_CREATE:
        if not data.get(name):
            errors[name] = "required"
    fields = clean_order_fields({k: data[k] for k in EDITABLE_FIELDS if k in data}, errors)
    status = data.get("status") or "draft"
    if status not in ORDER_STATUSES:
        errors["status"] = f"must be one of {', '.join(ORDER_STATUSES)}"
    if errors:
        raise ValidationError("Invalid order", details=errors)

    _ensure_unique_number(actor.tenant_id, fields["order_number"])

    order = Order(tenant_id=actor.tenant_id, status=status, source="manual", checklist={}, **fields)
    manager_id = data.get("assigned_manager_id")
    if manager_id:
        order.assigned_manager_id = str(manager_id)
        order.assigned_manager_name = data.get("assigned_manager_name")
        order.assigned_manager_at = _utcnow()
    elif actor.can_manage_assignments:
        order.assigned_manager_id = actor.id
        order.assigned_manager_name = actor.name
        order.assigned_manager_at = _utcnow()

    db.session.add(order)
    db.session.flush()

    notes = (data.get("notes") or "").strip()
    if notes:
        db.session.add(OrderComment(
            tenant_id=actor.tenant_id,
            order_id=order.id,
            message=notes,
            author_id=actor.id,
            author_name=actor.name,
            author_role=actor.role,
        ))
        db.session.flush()

    logger.info("Order %s created by %s", order.order_number, actor.name)
    return order


def update_order(actor, order_id: str, data: dict) -> Order:
    """
    Apply a partial update.

    Any edit through this path downgrades an ``accounting`` order to
    ``manual``. A ``status`` in the patch is an admin override: it skips the
    transition table but still appends a history entry, stamped with
    ``status_changed_at`` when given.
    """
    order = get_order(actor, order_id)
    errors = {}
    fields = clean_order_fields({k: data[k] for k in EDITABLE_FIELDS if k in data}, errors)

    new_status = data.get("status")
    changed_at = None
    if new_status is not None:
        if not actor.has_admin_rights:
            raise PermissionDenied(actor.id, "set_status", "use a workflow action to change status")
        if new_status not in ORDER_STATUSES:
            errors["status"] = f"must be one of {', '.join(ORDER_STATUSES)}"
        if data.get("status_changed_at"):
            try:
                changed_at = parse_datetime_input(data["status_changed_at"])
            except ValueError as exc:
                errors["status_changed_at"] = str(exc)
    if errors:
        raise ValidationError("Invalid order update", details=errors)

    if "order_number" in fields and fields["order_number"] != order.order_number:
        _ensure_unique_number(actor.tenant_id, fields["order_number"], exclude_id=order.id)

    for name, value in fields.items():
        setattr(order, name, value)
    order.source = source_after_edit(order.source)
    db.session.flush()

    if new_status is not None and new_status != order.status:
        apply_status(order, new_status, actor, changed_at=changed_at)

    logger.info("Order %s updated by %s", order.order_number, actor.name)
    return order


def delete_order_cascade(actor, order_id: str) -> dict:
    """
    Delete an order and everything it owns, child by child.

    Returns the number of rows removed per child type.
    """
    if not actor.can_manage_assignments:
        raise PermissionDenied(actor.id, "delete_order", "only Sales or admins can delete orders")
    order = get_order(actor, order_id)
    removed = {
        "attachments": 0, "comments": 0, "status_history": 0, "input_values": 0,
        "external_jobs": 0, "external_job_attachments": 0, "external_job_status_history": 0,
    }

    for job in order.external_jobs.all():
        for att in job.attachments.all():
            db.session.delete(att)
            removed["external_job_attachments"] += 1
        for entry in job.status_history.all():
            db.session.delete(entry)
            removed["external_job_status_history"] += 1
        db.session.delete(job)
        removed["external_jobs"] += 1
    for att in order.attachments.all():
        db.session.delete(att)
        removed["attachments"] += 1
    for comment in order.comments.all():
        db.session.delete(comment)
        removed["comments"] += 1
    for entry in order.status_history.all():
        db.session.delete(entry)
        removed["status_history"] += 1
    for value in order.input_values.all():
        db.session.delete(value)
        removed["input_values"] += 1

    number = order.order_number
    db.session.delete(order)
    db.session.flush()
    logger.info("Order %s deleted by %s (%s)", number, actor.name, removed)
    return {"order_id": order_id, "order_number": number, "removed": removed}


# ═════════════════════════════════════════════════════════════════════════════
# Attachments
# ═════════════════════════════════════════════════════════════════════════════

def validate_attachment(data: dict, max_bytes: int | None = None) -> dict:
    errors = {}
    name = (data.get("name") or "").strip()
    url = (data.get("url") or "").strip()
    if not name:
        errors["name"] = "required"
    if not url:
        errors["url"] = "required"
    size = data.get("size")
    if size is not None:
        if isinstance(size, bool) or not isinstance(size, int) or size < 0:
            errors["size"] = "must be a non-negative integer"
        elif max_bytes is not None and size > max_bytes:
            errors["size"] = f"file exceeds the {max_bytes // (1024 * 1024)} MB limit"
    if errors:
        raise ValidationError("Invalid attachment", details=errors)
    return {
        "name": name,
        "url": url,
        "size": size,
        "mime_type": data.get("mime_type"),
        "category": data.get("category"),
    }


def add_attachment(actor, order_id: str, data: dict, rules=None, max_bytes: int | None = None) -> OrderAttachment:
    order = get_order(actor, order_id)
    clean = validate_attachment(data, max_bytes)
    if not clean["category"] and rules is not None:
        clean["category"] = rules.default_category_for(actor.role)
    att = OrderAttachment(
        tenant_id=actor.tenant_id,
        order_id=order.id,
        added_by_name=actor.name,
        added_by_role=actor.role,
        **clean,
    )
    db.session.add(att)
    db.session.flush()
    return att


def remove_attachment(actor, order_id: str, attachment_id: str) -> None:
    order = get_order(actor, order_id)
    att = get_scoped(OrderAttachment, attachment_id, tenant_id=actor.tenant_id, order_id=order.id)
    db.session.delete(att)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Comments
# ═════════════════════════════════════════════════════════════════════════════

def add_comment(actor, order_id: str, message: str) -> OrderComment:
    order = get_order(actor, order_id)
    message = (message or "").strip()
    if not message:
        raise ValidationError("message is required", details={"message": "required"})
    comment = OrderComment(
        tenant_id=actor.tenant_id,
        order_id=order.id,
        message=message,
        author_id=actor.id,
        author_name=actor.name,
        author_role=actor.role,
    )
    db.session.add(comment)
    db.session.flush()
    return comment


def can_remove_comment(comment: OrderComment, actor) -> bool:
    return actor.has_admin_rights or actor.is_owner or comment.author_id == actor.id


def remove_comment(actor, order_id: str, comment_id: str) -> None:
    """Only the author, or a tenant admin/owner, may remove a comment."""
    order = get_order(actor, order_id)
    comment = get_scoped(OrderComment, comment_id, tenant_id=actor.tenant_id, order_id=order.id)
    if not can_remove_comment(comment, actor):
        raise PermissionDenied(actor.id, "remove_comment", "not the author")
    db.session.delete(comment)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Checklist & order inputs
# ═════════════════════════════════════════════════════════════════════════════

def set_checklist(actor, order_id: str, updates: dict, rules) -> Order:
    """Merge ``{item_id: bool}`` into the order's checklist state."""
    order = get_order(actor, order_id)
    if not isinstance(updates, dict):
        raise ValidationError("checklist must be an object", details={"checklist": "invalid"})
    known = {item.id for item in rules.checklist_items}
    unknown = sorted(k for k in updates if k not in known)
    if unknown:
        raise ValidationError("Unknown checklist items", details={"checklist": unknown})
    if not all(isinstance(v, bool) for v in updates.values()):
        raise ValidationError("checklist values must be booleans", details={"checklist": "invalid"})

    merged = dict(order.checklist or {})
    merged.update(updates)
    order.checklist = merged
    db.session.flush()
    return order


def get_order_inputs(actor, order_id: str) -> list[dict]:
    order = get_order(actor, order_id)
    fields = db.session.execute(
        select(OrderInputField)
        .where(OrderInputField.tenant_id == actor.tenant_id, OrderInputField.is_active.is_(True))
        .order_by(OrderInputField.sort_order, OrderInputField.label)
    ).scalars().all()
    values = {v.field_id: v.value for v in order.input_values.all()}
    return [dict(f.to_dict(), value=values.get(f.id)) for f in fields]


def set_order_inputs(actor, order_id: str, values: dict) -> list[dict]:
    """Upsert input values keyed by field id or field key."""
    order = get_order(actor, order_id)
    if not isinstance(values, dict):
        raise ValidationError("values must be an object", details={"values": "invalid"})

    fields = db.session.execute(
        select(OrderInputField).where(OrderInputField.tenant_id == actor.tenant_id)
    ).scalars().all()
    by_ref = {f.id: f for f in fields}
    by_ref.update({f.key: f for f in fields})
    unknown = sorted(k for k in values if k not in by_ref)
    if unknown:
        raise ValidationError("Unknown order input fields", details={"values": unknown})

    for ref, value in values.items():
        field_ = by_ref[ref]
        row = db.session.execute(
            select(OrderInputValue).where(
                OrderInputValue.order_id == order.id, OrderInputValue.field_id == field_.id,
            )
        ).scalar_one_or_none()
        if row is None:
            row = OrderInputValue(tenant_id=actor.tenant_id, order_id=order.id, field_id=field_.id)
            db.session.add(row)
        row.value = value
    db.session.flush()
    return get_order_inputs(actor, order_id)

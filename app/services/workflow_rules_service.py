"""
Workflow Rules Service — per-tenant gate configuration.

The first read for a tenant seeds the defaults (rules row, checklist items,
return reasons, external-job attachment minimums). Lifecycle code never
reads the tables directly; it receives an immutable ``WorkflowRulesSnapshot``
built by ``load_rules_snapshot``.

Usage:
    from app.services.workflow_rules_service import load_rules_snapshot
    rules = load_rules_snapshot(tenant_id)
    rules.min_attachments_for("ready_for_engineering")  # -> 1
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from sqlalchemy import select

from app.core.exceptions import ConflictError, NotFoundError, ValidationError
from app.models import db
from app.models.external_job import EXTERNAL_JOB_STATUSES
from app.models.workflow import (
    CHECKLIST_TARGETS,
    DEFAULT_CHECKLIST_ITEMS,
    DEFAULT_EXTERNAL_JOB_MIN_ATTACHMENTS,
    DEFAULT_RETURN_REASONS,
    ExternalJobRule,
    OrderInputField,
    ReturnReason,
    WorkflowChecklistItem,
    WorkflowRules,
)

logger = logging.getLogger(__name__)

ENGINEERING_TARGET = "ready_for_engineering"
PRODUCTION_TARGET = "ready_for_production"


# ═════════════════════════════════════════════════════════════════════════════
# Snapshot
# ═════════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ChecklistRule:
    id: str
    label: str
    required_for: tuple[str, ...]
    is_active: bool = True


@dataclass(frozen=True)
class WorkflowRulesSnapshot:
    """Read-only view of one tenant's workflow configuration."""

    tenant_id: int | None = None
    min_attachments_engineering: int = 1
    min_attachments_production: int = 1
    require_comment_engineering: bool = True
    require_comment_production: bool = True
    require_order_inputs_engineering: bool = True
    require_order_inputs_production: bool = True
    due_soon_days: int = 5
    checklist_items: tuple[ChecklistRule, ...] = ()
    return_reasons: tuple[str, ...] = ()
    external_job_min_attachments: dict = field(default_factory=dict)
    required_input_field_ids: tuple[str, ...] = ()
    status_labels: dict = field(default_factory=dict)
    external_job_status_labels: dict = field(default_factory=dict)
    attachment_category_defaults: dict = field(default_factory=dict)

    def min_attachments_for(self, target: str) -> int:
        if target == ENGINEERING_TARGET:
            return self.min_attachments_engineering
        if target == PRODUCTION_TARGET:
            return self.min_attachments_production
        return 0

    def requires_comment_for(self, target: str) -> bool:
        if target == ENGINEERING_TARGET:
            return self.require_comment_engineering
        if target == PRODUCTION_TARGET:
            return self.require_comment_production
        return False

    def requires_order_inputs_for(self, target: str) -> bool:
        if target == ENGINEERING_TARGET:
            return self.require_order_inputs_engineering
        if target == PRODUCTION_TARGET:
            return self.require_order_inputs_production
        return False

    def checklist_items_for(self, target: str) -> list[ChecklistRule]:
        """Active checklist items that gate ``target``."""
        return [i for i in self.checklist_items if i.is_active and target in i.required_for]

    def external_job_min_for(self, status: str) -> int:
        return int(self.external_job_min_attachments.get(status, 0))

    def default_category_for(self, role: str) -> str | None:
        return self.attachment_category_defaults.get(role)


def load_rules_snapshot(tenant_id: int) -> WorkflowRulesSnapshot:
    """Build the snapshot for a tenant, seeding defaults on first use."""
    rules = get_or_seed_rules(tenant_id)
    items = db.session.execute(
        select(WorkflowChecklistItem)
        .where(WorkflowChecklistItem.tenant_id == tenant_id)
        .order_by(WorkflowChecklistItem.sort_order, WorkflowChecklistItem.created_at)
    ).scalars().all()
    reasons = db.session.execute(
        select(ReturnReason)
        .where(ReturnReason.tenant_id == tenant_id, ReturnReason.is_active.is_(True))
        .order_by(ReturnReason.created_at)
    ).scalars().all()
    job_rules = db.session.execute(
        select(ExternalJobRule).where(ExternalJobRule.tenant_id == tenant_id)
    ).scalars().all()
    required_fields = db.session.execute(
        select(OrderInputField.id).where(
            OrderInputField.tenant_id == tenant_id,
            OrderInputField.is_active.is_(True),
            OrderInputField.is_required.is_(True),
        )
    ).scalars().all()

    job_minimums = dict(DEFAULT_EXTERNAL_JOB_MIN_ATTACHMENTS)
    job_minimums.update({r.status: r.min_attachments for r in job_rules})

    return WorkflowRulesSnapshot(
        tenant_id=tenant_id,
        min_attachments_engineering=rules.min_attachments_engineering,
        min_attachments_production=rules.min_attachments_production,
        require_comment_engineering=rules.require_comment_engineering,
        require_comment_production=rules.require_comment_production,
        require_order_inputs_engineering=rules.require_order_inputs_engineering,
        require_order_inputs_production=rules.require_order_inputs_production,
        due_soon_days=rules.due_soon_days,
        checklist_items=tuple(
            ChecklistRule(
                id=i.id, label=i.label,
                required_for=tuple(i.required_for or ()), is_active=bool(i.is_active),
            )
            for i in items
        ),
        return_reasons=tuple(r.label for r in reasons),
        external_job_min_attachments=job_minimums,
        required_input_field_ids=tuple(required_fields),
        status_labels=dict(rules.status_labels or {}),
        external_job_status_labels=dict(rules.external_job_status_labels or {}),
        attachment_category_defaults=dict(rules.attachment_category_defaults or {}),
    )


# ═════════════════════════════════════════════════════════════════════════════
# Rules row
# ═════════════════════════════════════════════════════════════════════════════

def get_or_seed_rules(tenant_id: int) -> WorkflowRules:
    """Return the tenant's rules row, creating it and the default children if missing."""
    rules = db.session.execute(
        select(WorkflowRules).where(WorkflowRules.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if rules:
        return rules

    rules = WorkflowRules(tenant_id=tenant_id)
    db.session.add(rules)
    for idx, item in enumerate(DEFAULT_CHECKLIST_ITEMS):
        db.session.add(WorkflowChecklistItem(
            tenant_id=tenant_id, label=item["label"],
            required_for=list(item["required_for"]), sort_order=idx,
        ))
    for label in DEFAULT_RETURN_REASONS:
        db.session.add(ReturnReason(tenant_id=tenant_id, label=label))
    for status, minimum in DEFAULT_EXTERNAL_JOB_MIN_ATTACHMENTS.items():
        db.session.add(ExternalJobRule(tenant_id=tenant_id, status=status, min_attachments=minimum))
    db.session.flush()
    logger.info("Seeded default workflow rules for tenant=%s", tenant_id)
    return rules


_INT_FIELDS = ("min_attachments_engineering", "min_attachments_production", "due_soon_days")
_BOOL_FIELDS = (
    "require_comment_engineering", "require_comment_production",
    "require_order_inputs_engineering", "require_order_inputs_production",
    "due_indicator_enabled",
)
_DICT_FIELDS = (
    "status_labels", "external_job_status_labels", "assignment_labels",
    "attachment_category_defaults",
)


def update_rules(tenant_id: int, data: dict) -> WorkflowRules:
    """Apply a partial update to the tenant's rules row."""
    rules = get_or_seed_rules(tenant_id)
    errors = {}

    for name in _INT_FIELDS:
        if name in data:
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int) or value < 0:
                errors[name] = "must be a non-negative integer"
            else:
                setattr(rules, name, value)
    for name in _BOOL_FIELDS:
        if name in data:
            if not isinstance(data[name], bool):
                errors[name] = "must be a boolean"
            else:
                setattr(rules, name, data[name])
    for name in _DICT_FIELDS:
        if name in data:
            value = data[name]
            if not isinstance(value, dict) or not all(isinstance(v, str) for v in value.values()):
                errors[name] = "must be an object of strings"
            else:
                merged = dict(getattr(rules, name) or {})
                merged.update(value)
                setattr(rules, name, merged)
    if "attachment_categories" in data:
        cats = data["attachment_categories"]
        if not isinstance(cats, list) or not all(isinstance(c, dict) and c.get("id") for c in cats):
            errors["attachment_categories"] = "must be a list of {id, label}"
        else:
            rules.attachment_categories = cats
    if "due_indicator_statuses" in data:
        statuses = data["due_indicator_statuses"]
        if not isinstance(statuses, list):
            errors["due_indicator_statuses"] = "must be a list"
        else:
            rules.due_indicator_statuses = statuses

    if errors:
        raise ValidationError("Invalid workflow rules", details=errors)
    db.session.flush()
    return rules


# ═════════════════════════════════════════════════════════════════════════════
# Checklist items
# ═════════════════════════════════════════════════════════════════════════════

def _validate_required_for(value):
    if not isinstance(value, list) or any(t not in CHECKLIST_TARGETS for t in value):
        raise ValidationError(
            "required_for must be a list of target statuses",
            details={"required_for": f"allowed: {', '.join(CHECKLIST_TARGETS)}"},
        )
    return value


def list_checklist_items(tenant_id: int) -> list[WorkflowChecklistItem]:
    get_or_seed_rules(tenant_id)
    return db.session.execute(
        select(WorkflowChecklistItem)
        .where(WorkflowChecklistItem.tenant_id == tenant_id)
        .order_by(WorkflowChecklistItem.sort_order, WorkflowChecklistItem.created_at)
    ).scalars().all()


def create_checklist_item(tenant_id: int, data: dict) -> WorkflowChecklistItem:
    label = (data.get("label") or "").strip()
    if not label:
        raise ValidationError("label is required", details={"label": "required"})
    item = WorkflowChecklistItem(
        tenant_id=tenant_id,
        label=label,
        required_for=_validate_required_for(data.get("required_for", [])),
        is_active=bool(data.get("is_active", True)),
        sort_order=int(data.get("sort_order", 0) or 0),
    )
    db.session.add(item)
    db.session.flush()
    return item


def _get_checklist_item(tenant_id: int, item_id: str) -> WorkflowChecklistItem:
    item = db.session.execute(
        select(WorkflowChecklistItem).where(
            WorkflowChecklistItem.id == item_id, WorkflowChecklistItem.tenant_id == tenant_id,
        )
    ).scalar_one_or_none()
    if not item:
        raise NotFoundError(resource="ChecklistItem", resource_id=item_id, tenant_id=tenant_id)
    return item


def update_checklist_item(tenant_id: int, item_id: str, data: dict) -> WorkflowChecklistItem:
    item = _get_checklist_item(tenant_id, item_id)
    if "label" in data:
        label = (data["label"] or "").strip()
        if not label:
            raise ValidationError("label cannot be empty", details={"label": "required"})
        item.label = label
    if "required_for" in data:
        item.required_for = _validate_required_for(data["required_for"])
    if "is_active" in data:
        item.is_active = bool(data["is_active"])
    if "sort_order" in data:
        item.sort_order = int(data["sort_order"] or 0)
    db.session.flush()
    return item


def delete_checklist_item(tenant_id: int, item_id: str) -> None:
    item = _get_checklist_item(tenant_id, item_id)
    db.session.delete(item)
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# Return reasons
# ═════════════════════════════════════════════════════════════════════════════

def list_return_reasons(tenant_id: int) -> list[ReturnReason]:
    get_or_seed_rules(tenant_id)
    return db.session.execute(
        select(ReturnReason)
        .where(ReturnReason.tenant_id == tenant_id, ReturnReason.is_active.is_(True))
        .order_by(ReturnReason.created_at)
    ).scalars().all()


def add_return_reason(tenant_id: int, label: str) -> ReturnReason:
    label = (label or "").strip()
    if not label:
        raise ValidationError("label is required", details={"label": "required"})
    reason = ReturnReason(tenant_id=tenant_id, label=label)
    db.session.add(reason)
    db.session.flush()
    return reason


def remove_return_reason(tenant_id: int, reason_id: str) -> None:
    """Soft-remove: history comments keep referring to the label."""
    reason = db.session.execute(
        select(ReturnReason).where(ReturnReason.id == reason_id, ReturnReason.tenant_id == tenant_id)
    ).scalar_one_or_none()
    if not reason:
        raise NotFoundError(resource="ReturnReason", resource_id=reason_id, tenant_id=tenant_id)
    reason.is_active = False
    db.session.flush()


# ═════════════════════════════════════════════════════════════════════════════
# External job rules
# ═════════════════════════════════════════════════════════════════════════════

def list_external_job_rules(tenant_id: int) -> list[ExternalJobRule]:
    get_or_seed_rules(tenant_id)
    return db.session.execute(
        select(ExternalJobRule).where(ExternalJobRule.tenant_id == tenant_id)
    ).scalars().all()


def set_external_job_rule(tenant_id: int, status: str, min_attachments) -> ExternalJobRule:
    if status not in EXTERNAL_JOB_STATUSES:
        raise ValidationError(f"Unknown external job status '{status}'", details={"status": "invalid"})
    if isinstance(min_attachments, bool) or not isinstance(min_attachments, int) or min_attachments < 0:
        raise ValidationError(
            "min_attachments must be a non-negative integer",
            details={"min_attachments": "invalid"},
        )
    get_or_seed_rules(tenant_id)
    rule = db.session.execute(
        select(ExternalJobRule).where(
            ExternalJobRule.tenant_id == tenant_id, ExternalJobRule.status == status,
        )
    ).scalar_one_or_none()
    if rule is None:
        rule = ExternalJobRule(tenant_id=tenant_id, status=status)
        db.session.add(rule)
    rule.min_attachments = min_attachments
    db.session.flush()
    return rule


# ═════════════════════════════════════════════════════════════════════════════
# Order input fields
# ═════════════════════════════════════════════════════════════════════════════

def list_order_input_fields(tenant_id: int) -> list[OrderInputField]:
    return db.session.execute(
        select(OrderInputField)
        .where(OrderInputField.tenant_id == tenant_id)
        .order_by(OrderInputField.sort_order, OrderInputField.label)
    ).scalars().all()


def create_order_input_field(tenant_id: int, data: dict) -> OrderInputField:
    key = (data.get("key") or "").strip()
    label = (data.get("label") or "").strip()
    errors = {}
    if not key:
        errors["key"] = "required"
    if not label:
        errors["label"] = "required"
    if errors:
        raise ValidationError("key and label are required", details=errors)
    exists = db.session.execute(
        select(OrderInputField.id).where(OrderInputField.tenant_id == tenant_id, OrderInputField.key == key)
    ).first()
    if exists:
        raise ConflictError("OrderInputField", "key", key)
    field_ = OrderInputField(
        tenant_id=tenant_id,
        key=key,
        label=label,
        field_type=data.get("field_type", "text"),
        is_required=bool(data.get("is_required", False)),
        is_active=bool(data.get("is_active", True)),
        sort_order=int(data.get("sort_order", 0) or 0),
    )
    db.session.add(field_)
    db.session.flush()
    return field_


def _get_input_field(tenant_id: int, field_id: str) -> OrderInputField:
    field_ = db.session.execute(
        select(OrderInputField).where(
            OrderInputField.id == field_id, OrderInputField.tenant_id == tenant_id,
        )
    ).scalar_one_or_none()
    if not field_:
        raise NotFoundError(resource="OrderInputField", resource_id=field_id, tenant_id=tenant_id)
    return field_


def update_order_input_field(tenant_id: int, field_id: str, data: dict) -> OrderInputField:
    field_ = _get_input_field(tenant_id, field_id)
    for name in ("label", "field_type"):
        if name in data and data[name]:
            setattr(field_, name, data[name])
    for name in ("is_required", "is_active"):
        if name in data:
            setattr(field_, name, bool(data[name]))
    if "sort_order" in data:
        field_.sort_order = int(data["sort_order"] or 0)
    db.session.flush()
    return field_


def delete_order_input_field(tenant_id: int, field_id: str) -> None:
    field_ = _get_input_field(tenant_id, field_id)
    db.session.delete(field_)
    db.session.flush()

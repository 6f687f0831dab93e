"""
Production Workflow System
Workflow rules domain model.

Models:
    - WorkflowRules: one row per tenant with gate settings and label overrides
    - WorkflowChecklistItem: checklist entries and the statuses they gate
    - ReturnReason: selectable reasons for sending an order back
    - ExternalJobRule: per-status attachment minimum for external jobs
    - OrderInputField / OrderInputValue: tenant-defined order inputs
"""

from app.models import db
from app.models.base import TenantModel, _iso, _utcnow, _uuid


# ── Defaults ─────────────────────────────────────────────────────────────────

DEFAULT_STATUS_LABELS = {
    "draft": "Draft",
    "ready_for_engineering": "Ready for eng.",
    "in_engineering": "In eng.",
    "engineering_blocked": "Eng. blocked",
    "ready_for_production": "Ready for prod.",
    "in_production": "In prod.",
    "done": "Done",
}

DEFAULT_EXTERNAL_JOB_STATUS_LABELS = {
    "requested": "Requested",
    "ordered": "Ordered",
    "in_progress": "In progress",
    "delivered": "In Stock",
    "approved": "Approved",
    "cancelled": "Cancelled",
}

DEFAULT_ASSIGNMENT_LABELS = {"engineer": "Engineer", "manager": "Manager"}

DEFAULT_ATTACHMENT_CATEGORIES = [
    {"id": "order_documents", "label": "Order documents"},
    {"id": "technical_docs", "label": "Technical docs"},
    {"id": "photos", "label": "Photos"},
    {"id": "other", "label": "Other"},
]

DEFAULT_ATTACHMENT_CATEGORY_DEFAULTS = {
    "Sales": "order_documents",
    "Engineering": "technical_docs",
    "Production": "other",
    "Admin": "order_documents",
}

DEFAULT_DUE_INDICATOR_STATUSES = [
    "ready_for_engineering",
    "in_engineering",
    "engineering_blocked",
    "ready_for_production",
    "in_production",
]

DEFAULT_CHECKLIST_ITEMS = [
    {"label": "Engineering brief complete", "required_for": ["ready_for_engineering"]},
    {"label": "Production files attached", "required_for": ["ready_for_production"]},
]

DEFAULT_RETURN_REASONS = ["Missing info", "Incorrect data", "Awaiting approval"]

DEFAULT_EXTERNAL_JOB_MIN_ATTACHMENTS = {
    "requested": 0,
    "ordered": 0,
    "in_progress": 0,
    "delivered": 1,
    "approved": 1,
    "cancelled": 0,
}

CHECKLIST_TARGETS = ("ready_for_engineering", "ready_for_production", "in_production")


class WorkflowRules(TenantModel):
    """Per-tenant workflow configuration (singleton per tenant)."""

    __tablename__ = "workflow_rules"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    min_attachments_engineering = db.Column(db.Integer, default=1, nullable=False)
    min_attachments_production = db.Column(db.Integer, default=1, nullable=False)
    require_comment_engineering = db.Column(db.Boolean, default=True, nullable=False)
    require_comment_production = db.Column(db.Boolean, default=True, nullable=False)
    require_order_inputs_engineering = db.Column(db.Boolean, default=True, nullable=False)
    require_order_inputs_production = db.Column(db.Boolean, default=True, nullable=False)
    due_soon_days = db.Column(db.Integer, default=5, nullable=False)
    due_indicator_enabled = db.Column(db.Boolean, default=True, nullable=False)
    due_indicator_statuses = db.Column(db.JSON, default=lambda: list(DEFAULT_DUE_INDICATOR_STATUSES))
    status_labels = db.Column(db.JSON, default=lambda: dict(DEFAULT_STATUS_LABELS))
    external_job_status_labels = db.Column(
        db.JSON, default=lambda: dict(DEFAULT_EXTERNAL_JOB_STATUS_LABELS),
    )
    assignment_labels = db.Column(db.JSON, default=lambda: dict(DEFAULT_ASSIGNMENT_LABELS))
    attachment_categories = db.Column(
        db.JSON, default=lambda: [dict(c) for c in DEFAULT_ATTACHMENT_CATEGORIES],
    )
    attachment_category_defaults = db.Column(
        db.JSON, default=lambda: dict(DEFAULT_ATTACHMENT_CATEGORY_DEFAULTS),
    )
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", name="uq_workflow_rules_tenant"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "min_attachments_engineering": self.min_attachments_engineering,
            "min_attachments_production": self.min_attachments_production,
            "require_comment_engineering": self.require_comment_engineering,
            "require_comment_production": self.require_comment_production,
            "require_order_inputs_engineering": self.require_order_inputs_engineering,
            "require_order_inputs_production": self.require_order_inputs_production,
            "due_soon_days": self.due_soon_days,
            "due_indicator_enabled": self.due_indicator_enabled,
            "due_indicator_statuses": self.due_indicator_statuses or [],
            "status_labels": self.status_labels or {},
            "external_job_status_labels": self.external_job_status_labels or {},
            "assignment_labels": self.assignment_labels or {},
            "attachment_categories": self.attachment_categories or [],
            "attachment_category_defaults": self.attachment_category_defaults or {},
            "updated_at": _iso(self.updated_at),
        }


class WorkflowChecklistItem(TenantModel):
    __tablename__ = "workflow_checklist_items"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    label = db.Column(db.String(300), nullable=False)
    required_for = db.Column(db.JSON, default=list, comment="List of target statuses")
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "label": self.label,
            "required_for": self.required_for or [],
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class ReturnReason(TenantModel):
    __tablename__ = "workflow_return_reasons"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    label = db.Column(db.String(200), nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def to_dict(self):
        return {"id": self.id, "label": self.label, "is_active": self.is_active}


class ExternalJobRule(TenantModel):
    __tablename__ = "external_job_rules"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    status = db.Column(db.String(30), nullable=False)
    min_attachments = db.Column(db.Integer, default=0, nullable=False)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "status", name="uq_external_job_rule_tenant_status"),
    )

    def to_dict(self):
        return {"id": self.id, "status": self.status, "min_attachments": self.min_attachments}


class OrderInputField(TenantModel):
    __tablename__ = "order_input_fields"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    key = db.Column(db.String(100), nullable=False)
    label = db.Column(db.String(200), nullable=False)
    field_type = db.Column(db.String(30), default="text", comment="text | number | date | select | toggle")
    is_required = db.Column(db.Boolean, default=False, nullable=False)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    sort_order = db.Column(db.Integer, default=0)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "key", name="uq_order_input_field_tenant_key"),
    )

    values = db.relationship("OrderInputValue", lazy="dynamic", cascade="all, delete-orphan")

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "field_type": self.field_type,
            "is_required": self.is_required,
            "is_active": self.is_active,
            "sort_order": self.sort_order,
        }


class OrderInputValue(TenantModel):
    __tablename__ = "order_input_values"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    field_id = db.Column(
        db.String(36), db.ForeignKey("order_input_fields.id", ondelete="CASCADE"), nullable=False,
    )
    value = db.Column(db.JSON, nullable=True)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("order_id", "field_id", name="uq_order_input_value_order_field"),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "field_id": self.field_id,
            "value": self.value,
            "updated_at": _iso(self.updated_at),
        }

"""
Production Workflow System
Order domain model.

Models:
    - Order: aggregate root of the production workflow
    - OrderAttachment: files attached to an order
    - OrderComment: discussion thread on an order
    - OrderStatusEntry: append-only status history
"""

from app.models import db
from app.models.base import TenantModel, _iso, _utcnow, _uuid
from app.models.order_status import DEFAULT_ORDER_STATUS, ORDER_STATUSES, OrderStatusType  # noqa: F401


# ── Constants ────────────────────────────────────────────────────────────────

PRIORITIES = ("low", "normal", "high", "urgent")
ORDER_SOURCES = ("manual", "excel", "accounting")


class Order(TenantModel):
    """
    Customer order moving through engineering and production.

    ``status`` is stored raw and normalized on load by OrderStatusType.
    Children are deleted explicitly by the service layer; the ORM cascade
    below covers in-session deletes as well.
    """

    __tablename__ = "orders"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_number = db.Column(db.String(100), nullable=False)
    customer_name = db.Column(db.String(300), nullable=False)
    customer_email = db.Column(db.String(300), nullable=True)
    product_name = db.Column(db.String(300), nullable=True)
    quantity = db.Column(db.Integer, default=1, nullable=False)
    hierarchy = db.Column(db.JSON, default=dict, comment="level id -> node id / label")
    due_date = db.Column(db.Date, nullable=False)
    priority = db.Column(db.String(20), default="normal", nullable=False)
    status = db.Column(OrderStatusType(), default=DEFAULT_ORDER_STATUS, nullable=False)

    # Assignment
    assigned_engineer_id = db.Column(db.String(64), nullable=True)
    assigned_engineer_name = db.Column(db.String(200), nullable=True)
    assigned_engineer_at = db.Column(db.DateTime(timezone=True), nullable=True)
    assigned_manager_id = db.Column(db.String(64), nullable=True)
    assigned_manager_name = db.Column(db.String(200), nullable=True)
    assigned_manager_at = db.Column(db.DateTime(timezone=True), nullable=True)

    # Last status change
    status_changed_by = db.Column(db.String(200), nullable=True)
    status_changed_by_role = db.Column(db.String(30), nullable=True)
    status_changed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    checklist = db.Column(db.JSON, default=dict, comment="checklist item id -> checked")

    # Provenance
    source = db.Column(db.String(20), default="manual", nullable=False, comment="manual | excel | accounting")
    external_id = db.Column(db.String(100), nullable=True)
    source_payload = db.Column(db.JSON, nullable=True)
    synced_at = db.Column(db.DateTime(timezone=True), nullable=True)

    production_duration_minutes = db.Column(db.Integer, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)
    updated_at = db.Column(db.DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "order_number", name="uq_order_tenant_number"),
    )

    attachments = db.relationship(
        "OrderAttachment", back_populates="order", lazy="dynamic",
        cascade="all, delete-orphan", order_by="OrderAttachment.created_at",
    )
    comments = db.relationship(
        "OrderComment", back_populates="order", lazy="dynamic",
        cascade="all, delete-orphan", order_by="OrderComment.created_at",
    )
    status_history = db.relationship(
        "OrderStatusEntry", back_populates="order", lazy="dynamic",
        cascade="all, delete-orphan", order_by="OrderStatusEntry.changed_at",
    )
    external_jobs = db.relationship(
        "ExternalJob", back_populates="order", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ExternalJob.created_at",
    )
    input_values = db.relationship(
        "OrderInputValue", lazy="dynamic", cascade="all, delete-orphan",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "tenant_id": self.tenant_id,
            "order_number": self.order_number,
            "customer_name": self.customer_name,
            "customer_email": self.customer_email,
            "product_name": self.product_name,
            "quantity": self.quantity,
            "hierarchy": self.hierarchy or {},
            "due_date": self.due_date.isoformat() if self.due_date else None,
            "priority": self.priority,
            "status": self.status,
            "assigned_engineer_id": self.assigned_engineer_id,
            "assigned_engineer_name": self.assigned_engineer_name,
            "assigned_engineer_at": _iso(self.assigned_engineer_at),
            "assigned_manager_id": self.assigned_manager_id,
            "assigned_manager_name": self.assigned_manager_name,
            "assigned_manager_at": _iso(self.assigned_manager_at),
            "status_changed_by": self.status_changed_by,
            "status_changed_by_role": self.status_changed_by_role,
            "status_changed_at": _iso(self.status_changed_at),
            "checklist": self.checklist or {},
            "source": self.source,
            "external_id": self.external_id,
            "synced_at": _iso(self.synced_at),
            "production_duration_minutes": self.production_duration_minutes,
            "created_at": _iso(self.created_at),
            "updated_at": _iso(self.updated_at),
            "attachment_count": self.attachments.count(),
            "comment_count": self.comments.count(),
        }
        if include_children:
            result["attachments"] = [a.to_dict() for a in self.attachments]
            result["comments"] = [c.to_dict() for c in self.comments]
            result["status_history"] = [h.to_dict() for h in self.status_history]
            result["external_jobs"] = [j.to_dict() for j in self.external_jobs]
        return result

    def __repr__(self):
        return f"<Order {self.order_number} [{self.status}]>"


class OrderAttachment(TenantModel):
    __tablename__ = "order_attachments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    url = db.Column(db.String(1000), nullable=False, comment="Storage path or external URL")
    added_by_name = db.Column(db.String(200), nullable=True)
    added_by_role = db.Column(db.String(30), nullable=True)
    size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(150), nullable=True)
    category = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    order = db.relationship("Order", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "name": self.name,
            "url": self.url,
            "added_by_name": self.added_by_name,
            "added_by_role": self.added_by_role,
            "size": self.size,
            "mime_type": self.mime_type,
            "category": self.category,
            "created_at": _iso(self.created_at),
        }


class OrderComment(TenantModel):
    __tablename__ = "order_comments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    message = db.Column(db.Text, nullable=False)
    author_id = db.Column(db.String(64), nullable=True)
    author_name = db.Column(db.String(200), nullable=False)
    author_role = db.Column(db.String(30), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    order = db.relationship("Order", back_populates="comments")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "message": self.message,
            "author_id": self.author_id,
            "author_name": self.author_name,
            "author_role": self.author_role,
            "created_at": _iso(self.created_at),
        }


class OrderStatusEntry(TenantModel):
    """Append-only: rows are only ever inserted, or removed with their order."""

    __tablename__ = "order_status_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(OrderStatusType(), nullable=False)
    changed_by_name = db.Column(db.String(200), nullable=True)
    changed_by_role = db.Column(db.String(30), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    order = db.relationship("Order", back_populates="status_history")

    def to_dict(self):
        return {
            "id": self.id,
            "order_id": self.order_id,
            "status": self.status,
            "changed_by_name": self.changed_by_name,
            "changed_by_role": self.changed_by_role,
            "changed_at": _iso(self.changed_at),
        }

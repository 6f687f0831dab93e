"""
Production Workflow System
External job domain model.

Models:
    - ExternalJob: outsourced work for an order, with partner-portal fields
    - ExternalJobAttachment: files attached to an external job
    - ExternalJobStatusEntry: append-only status history of a job
"""

from app.models import db
from app.models.base import TenantModel, _iso, _utcnow, _uuid


# ── Constants ────────────────────────────────────────────────────────────────

EXTERNAL_JOB_STATUSES = ("requested", "ordered", "in_progress", "delivered", "approved", "cancelled")
REQUEST_MODES = ("manual", "partner_portal")


class ExternalJob(TenantModel):
    __tablename__ = "external_jobs"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    order_id = db.Column(
        db.String(36), db.ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    partner_id = db.Column(db.String(64), nullable=True)
    partner_name = db.Column(db.String(200), nullable=False)
    partner_email = db.Column(db.String(300), nullable=True)

    # Partner portal
    request_mode = db.Column(db.String(20), default="manual", nullable=False)
    partner_request_comment = db.Column(db.Text, nullable=True)
    partner_request_sent_at = db.Column(db.DateTime(timezone=True), nullable=True)
    partner_request_viewed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    partner_request_token_hash = db.Column(db.String(64), nullable=True, index=True)
    partner_request_token_expires_at = db.Column(db.DateTime(timezone=True), nullable=True)
    partner_response_submitted_at = db.Column(db.DateTime(timezone=True), nullable=True)
    partner_response_order_number = db.Column(db.String(100), nullable=True)
    partner_response_due_date = db.Column(db.Date, nullable=True)
    partner_response_note = db.Column(db.Text, nullable=True)

    external_order_number = db.Column(db.String(100), nullable=False)
    quantity = db.Column(db.Integer, nullable=True)
    due_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(30), default="requested", nullable=False)

    # Receiving
    delivery_note_no = db.Column(db.String(100), nullable=True)
    received_at = db.Column(db.DateTime(timezone=True), nullable=True)
    received_by = db.Column(db.String(200), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    order = db.relationship("Order", back_populates="external_jobs")
    attachments = db.relationship(
        "ExternalJobAttachment", back_populates="job", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ExternalJobAttachment.created_at",
    )
    status_history = db.relationship(
        "ExternalJobStatusEntry", back_populates="job", lazy="dynamic",
        cascade="all, delete-orphan", order_by="ExternalJobStatusEntry.changed_at",
    )

    def to_dict(self, include_children=False):
        result = {
            "id": self.id,
            "order_id": self.order_id,
            "partner_id": self.partner_id,
            "partner_name": self.partner_name,
            "partner_email": self.partner_email,
            "request_mode": self.request_mode,
            "partner_request_comment": self.partner_request_comment,
            "partner_request_sent_at": _iso(self.partner_request_sent_at),
            "partner_request_viewed_at": _iso(self.partner_request_viewed_at),
            "partner_request_token_expires_at": _iso(self.partner_request_token_expires_at),
            "partner_response_submitted_at": _iso(self.partner_response_submitted_at),
            "partner_response_order_number": self.partner_response_order_number,
            "partner_response_due_date": _iso(self.partner_response_due_date),
            "partner_response_note": self.partner_response_note,
            "external_order_number": self.external_order_number,
            "quantity": self.quantity,
            "due_date": _iso(self.due_date),
            "status": self.status,
            "delivery_note_no": self.delivery_note_no,
            "received_at": _iso(self.received_at),
            "received_by": self.received_by,
            "created_at": _iso(self.created_at),
            "attachment_count": self.attachments.count(),
        }
        if include_children:
            result["attachments"] = [a.to_dict() for a in self.attachments]
            result["status_history"] = [h.to_dict() for h in self.status_history]
        return result

    def __repr__(self):
        return f"<ExternalJob {self.external_order_number} [{self.status}]>"


class ExternalJobAttachment(TenantModel):
    __tablename__ = "external_job_attachments"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    job_id = db.Column(
        db.String(36), db.ForeignKey("external_jobs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    name = db.Column(db.String(300), nullable=False)
    url = db.Column(db.String(1000), nullable=False)
    added_by_name = db.Column(db.String(200), nullable=True)
    added_by_role = db.Column(db.String(30), nullable=True)
    size = db.Column(db.Integer, nullable=True)
    mime_type = db.Column(db.String(150), nullable=True)
    category = db.Column(db.String(50), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    job = db.relationship("ExternalJob", back_populates="attachments")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "name": self.name,
            "url": self.url,
            "added_by_name": self.added_by_name,
            "added_by_role": self.added_by_role,
            "size": self.size,
            "mime_type": self.mime_type,
            "category": self.category,
            "created_at": _iso(self.created_at),
        }


class ExternalJobStatusEntry(TenantModel):
    __tablename__ = "external_job_status_history"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    job_id = db.Column(
        db.String(36), db.ForeignKey("external_jobs.id", ondelete="CASCADE"), nullable=False, index=True,
    )
    status = db.Column(db.String(30), nullable=False)
    changed_by_name = db.Column(db.String(200), nullable=True)
    changed_by_role = db.Column(db.String(30), nullable=True)
    changed_at = db.Column(db.DateTime(timezone=True), nullable=False, default=_utcnow)

    job = db.relationship("ExternalJob", back_populates="status_history")

    def to_dict(self):
        return {
            "id": self.id,
            "job_id": self.job_id,
            "status": self.status,
            "changed_by_name": self.changed_by_name,
            "changed_by_role": self.changed_by_role,
            "changed_at": _iso(self.changed_at),
        }

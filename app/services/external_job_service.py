"""
External Job Service — outsourced work attached to an order.

Manages the job sub-lifecycle with:
  - Transition validation (EXTERNAL_JOB_TRANSITIONS)
  - Per-status attachment minimum from the tenant's workflow rules
  - Append-only job status history
  - Partner portal: one-time secure link, view tracking, partner response

Jobs are not role-gated: any user of the tenant may move a job.

Usage:
    from app.services.external_job_service import set_job_status

    job, changed = set_job_status(actor, job_id, "ordered", rules)
"""

import hashlib
import logging
import secrets
from datetime import timedelta, timezone

from email_validator import EmailNotValidError, validate_email
from sqlalchemy import select

from app.core.actor import Actor
from app.core.exceptions import NotFoundError, TransitionError, ValidationError
from app.models import db
from app.models.base import _utcnow
from app.models.external_job import (
    EXTERNAL_JOB_STATUSES,
    REQUEST_MODES,
    ExternalJob,
    ExternalJobAttachment,
    ExternalJobStatusEntry,
)
from app.models.order import Order, OrderComment
from app.services.helpers.scoped_queries import get_scoped
from app.services.notification import NotificationService
from app.services.order_service import validate_attachment
from app.utils.helpers import parse_date_input

logger = logging.getLogger(__name__)


# current status -> statuses it may move to
EXTERNAL_JOB_TRANSITIONS = {
    "requested": ["ordered", "in_progress", "cancelled"],
    "ordered": ["requested", "in_progress", "delivered", "cancelled"],
    "in_progress": ["ordered", "delivered", "approved", "cancelled"],
    "delivered": ["in_progress", "approved"],
    "approved": [],
    "cancelled": ["requested"],
}

PARTNER_ROLE = "Partner"
PARTNER_RESPONSE_CATEGORY = "partner_response"
PARTNER_OPEN_STATUSES = ("requested", "ordered", "in_progress")
DEFAULT_LINK_TTL_DAYS = 7


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _aware(value):
    """SQLite hands back naive datetimes; treat them as UTC."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


# ═════════════════════════════════════════════════════════════════════════════
# Status
# ═════════════════════════════════════════════════════════════════════════════

def check_status_gate(job: ExternalJob, status: str, rules) -> None:
    """Raise TransitionError when the job has too few attachments for ``status``."""
    minimum = rules.external_job_min_for(status)
    count = job.attachments.count() if job.id else 0
    if count < minimum:
        raise TransitionError(
            f"Add at least {minimum} attachment(s) before setting this status.",
            current=job.status, target=status,
        )


def _append_history(job: ExternalJob, status: str, name: str, role: str, at=None) -> None:
    db.session.add(ExternalJobStatusEntry(
        tenant_id=job.tenant_id,
        job_id=job.id,
        status=status,
        changed_by_name=name,
        changed_by_role=role,
        changed_at=at or _utcnow(),
    ))


def _move(job: ExternalJob, status: str, actor, rules) -> bool:
    if status not in EXTERNAL_JOB_STATUSES:
        raise ValidationError(f"Unknown external job status '{status}'", details={"status": "invalid"})
    if status == job.status:
        return False
    if status not in EXTERNAL_JOB_TRANSITIONS.get(job.status, []):
        raise TransitionError(
            f"Cannot move external job from '{job.status}' to '{status}'",
            current=job.status, target=status,
        )
    check_status_gate(job, status, rules)
    previous = job.status
    job.status = status
    _append_history(job, status, actor.name, actor.role)
    db.session.flush()
    logger.info("External job %s status %s -> %s by %s", job.id, previous, status, actor.name)
    return True


def set_job_status(actor, job_id: str, status: str, rules) -> tuple[ExternalJob, bool]:
    """Move a job to ``status``. Returns (job, changed); same status is a no-op."""
    job = get_job(actor, job_id)
    changed = _move(job, status, actor, rules)
    return job, changed


# ═════════════════════════════════════════════════════════════════════════════
# CRUD
# ═════════════════════════════════════════════════════════════════════════════

def get_job(actor, job_id: str) -> ExternalJob:
    return get_scoped(ExternalJob, job_id, tenant_id=actor.tenant_id)


def list_jobs(actor, order_id: str) -> list[ExternalJob]:
    order = get_scoped(Order, order_id, tenant_id=actor.tenant_id)
    return order.external_jobs.all()


def _clean_job_fields(data: dict, errors: dict) -> dict:
    clean = {}
    if "partner_name" in data:
        name = (data.get("partner_name") or "").strip()
        if not name:
            errors["partner_name"] = "required"
        clean["partner_name"] = name
    if "partner_email" in data:
        email = data.get("partner_email")
        if email:
            try:
                email = validate_email(email, check_deliverability=False).normalized
            except EmailNotValidError as exc:
                errors["partner_email"] = str(exc)
        clean["partner_email"] = email or None
    if "partner_id" in data:
        clean["partner_id"] = str(data["partner_id"]) if data.get("partner_id") else None
    if "external_order_number" in data:
        clean["external_order_number"] = (data.get("external_order_number") or "").strip()
    if "quantity" in data:
        qty = data.get("quantity")
        if qty is not None and (isinstance(qty, bool) or not isinstance(qty, int) or qty < 1):
            errors["quantity"] = "must be a positive integer"
        clean["quantity"] = qty
    if "due_date" in data:
        try:
            due = parse_date_input(data.get("due_date"))
        except ValueError as exc:
            errors["due_date"] = str(exc)
        else:
            if due is None:
                errors["due_date"] = "required"
            clean["due_date"] = due
    if "request_mode" in data:
        mode = data.get("request_mode") or "manual"
        if mode not in REQUEST_MODES:
            errors["request_mode"] = f"must be one of {', '.join(REQUEST_MODES)}"
        clean["request_mode"] = mode
    if "partner_request_comment" in data:
        clean["partner_request_comment"] = data.get("partner_request_comment") or None
    return clean


def create_job(actor, order_id: str, data: dict, rules) -> ExternalJob:
    """Create a job on an order and record its initial status."""
    order = get_scoped(Order, order_id, tenant_id=actor.tenant_id)
    errors = {}
    for name in ("partner_name", "due_date"):
        if not data.get(name):
            errors[name] = "required"
    fields = _clean_job_fields(data, errors)
    status = data.get("status") or "requested"
    if status not in EXTERNAL_JOB_STATUSES:
        errors["status"] = "invalid"
    if errors:
        raise ValidationError("Invalid external job", details=errors)

    fields.setdefault("external_order_number", "")
    job = ExternalJob(tenant_id=actor.tenant_id, order_id=order.id, status=status, **fields)
    check_status_gate(job, status, rules)
    db.session.add(job)
    db.session.flush()
    _append_history(job, status, actor.name, actor.role)
    db.session.flush()
    logger.info("External job %s created on order %s by %s", job.id, order.order_number, actor.name)
    return job


def update_job(actor, job_id: str, data: dict, rules) -> ExternalJob:
    """Partial update; a ``status`` in the patch goes through the gated move."""
    job = get_job(actor, job_id)
    errors = {}
    fields = _clean_job_fields(data, errors)
    if errors:
        raise ValidationError("Invalid external job update", details=errors)
    for name, value in fields.items():
        setattr(job, name, value)
    db.session.flush()
    if data.get("status"):
        _move(job, data["status"], actor, rules)
    return job


def delete_job(actor, job_id: str) -> None:
    job = get_job(actor, job_id)
    for att in job.attachments.all():
        db.session.delete(att)
    for entry in job.status_history.all():
        db.session.delete(entry)
    db.session.delete(job)
    db.session.flush()
    logger.info("External job %s deleted by %s", job_id, actor.name)


def add_job_attachment(actor, job_id: str, data: dict, max_bytes: int | None = None) -> ExternalJobAttachment:
    job = get_job(actor, job_id)
    clean = validate_attachment(data, max_bytes)
    att = ExternalJobAttachment(
        tenant_id=job.tenant_id,
        job_id=job.id,
        added_by_name=actor.name,
        added_by_role=actor.role,
        **clean,
    )
    db.session.add(att)
    db.session.flush()
    return att


def remove_job_attachment(actor, job_id: str, attachment_id: str) -> None:
    job = get_job(actor, job_id)
    att = get_scoped(ExternalJobAttachment, attachment_id, tenant_id=actor.tenant_id, job_id=job.id)
    db.session.delete(att)
    db.session.flush()


def mark_received(actor, job_id: str, data: dict, rules) -> ExternalJob:
    """Record the delivery and move the job to ``delivered`` (gated)."""
    job = get_job(actor, job_id)
    note_no = (data.get("delivery_note_no") or "").strip()
    if not note_no:
        raise ValidationError("delivery_note_no is required", details={"delivery_note_no": "required"})
    _move(job, "delivered", actor, rules)
    job.delivery_note_no = note_no
    job.received_at = _utcnow()
    job.received_by = actor.name
    db.session.flush()
    return job


# ═════════════════════════════════════════════════════════════════════════════
# Partner portal
# ═════════════════════════════════════════════════════════════════════════════

def issue_partner_link(actor, job_id: str, rules, ttl_days: int = DEFAULT_LINK_TTL_DAYS) -> tuple[ExternalJob, str]:
    """
    Issue a secure partner link for the job.

    The raw token is returned once and only its SHA-256 hash is stored.
    A job still in ``requested`` moves to ``ordered``.
    """
    job = get_job(actor, job_id)
    if not job.partner_email:
        raise ValidationError("Partner email is required to send a request", details={"partner_email": "required"})

    token = secrets.token_urlsafe(32)
    now = _utcnow()
    job.partner_request_token_hash = _hash_token(token)
    job.partner_request_token_expires_at = now + timedelta(days=ttl_days)
    job.partner_request_sent_at = now
    job.partner_request_viewed_at = None
    job.request_mode = "partner_portal"
    if job.status == "requested":
        _move(job, "ordered", actor, rules)
    db.session.flush()
    logger.info("Partner link issued for external job %s (expires %s)", job.id,
                job.partner_request_token_expires_at.isoformat())
    return job, token


def load_job_by_token(token: str) -> ExternalJob:
    """Resolve a partner token; the first successful view is stamped."""
    if not token:
        raise NotFoundError(resource="PartnerRequest")
    job = db.session.execute(
        select(ExternalJob).where(ExternalJob.partner_request_token_hash == _hash_token(token))
    ).scalar_one_or_none()
    if job is None:
        raise NotFoundError(resource="PartnerRequest")
    expires_at = _aware(job.partner_request_token_expires_at)
    if expires_at is None or expires_at < _utcnow():
        raise ValidationError("This secure link has expired.", details={"token": "expired"})
    if job.partner_request_viewed_at is None:
        job.partner_request_viewed_at = _utcnow()
        db.session.flush()
    return job


def partner_view(job: ExternalJob) -> dict:
    """What the partner sees: the job and a few order facts, nothing internal."""
    order = job.order
    return {
        "job_id": job.id,
        "partner_name": job.partner_name,
        "status": job.status,
        "quantity": job.quantity,
        "due_date": job.due_date.isoformat() if job.due_date else None,
        "request_comment": job.partner_request_comment,
        "order_number": order.order_number,
        "product_name": order.product_name,
        "response_submitted_at": (
            job.partner_response_submitted_at.isoformat() if job.partner_response_submitted_at else None
        ),
    }


def submit_partner_response(token: str, data: dict, rules_loader) -> ExternalJob:
    """
    Store the partner's order number, completion date and note.

    ``rules_loader(tenant_id)`` returns the job tenant's rules snapshot; the
    token is the only credential, so the tenant comes from the job itself.
    """
    job = load_job_by_token(token)
    if job.status not in PARTNER_OPEN_STATUSES:
        raise TransitionError(
            f"This request is already {job.status} and no longer accepts responses",
            current=job.status,
        )

    errors = {}
    order_number = (data.get("order_number") or "").strip()
    if not order_number:
        errors["order_number"] = "required"
    try:
        due = parse_date_input(data.get("due_date"))
    except ValueError as exc:
        errors["due_date"] = str(exc)
        due = None
    if due is None and "due_date" not in errors:
        errors["due_date"] = "required"
    attachments = data.get("attachments") or []
    if not isinstance(attachments, list):
        errors["attachments"] = "must be a list"
        attachments = []
    if errors:
        raise ValidationError("Invalid partner response", details=errors)

    partner = Actor(
        id=job.partner_id or "partner",
        name=job.partner_name,
        role=PARTNER_ROLE,
        tenant_id=job.tenant_id,
    )
    job.partner_response_submitted_at = _utcnow()
    job.partner_response_order_number = order_number
    job.partner_response_due_date = due
    job.partner_response_note = (data.get("note") or "").strip() or None
    job.request_mode = "partner_portal"

    for item in attachments:
        clean = validate_attachment(item)
        clean["category"] = PARTNER_RESPONSE_CATEGORY
        db.session.add(ExternalJobAttachment(
            tenant_id=job.tenant_id, job_id=job.id,
            added_by_name=partner.name, added_by_role=PARTNER_ROLE, **clean,
        ))
    db.session.flush()

    if job.status != "in_progress":
        _move(job, "in_progress", partner, rules_loader(job.tenant_id))

    order = job.order
    db.session.add(OrderComment(
        tenant_id=job.tenant_id,
        order_id=order.id,
        message=(
            f"Partner response received. Partner order #{order_number}, "
            f"completion date {due.isoformat()}."
        ),
        author_id=None,
        author_name=partner.name,
        author_role=PARTNER_ROLE,
    ))
    NotificationService.notify_partner_response(job, order)
    db.session.flush()
    logger.info("Partner response stored for external job %s", job.id)
    return job

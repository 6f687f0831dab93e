"""
Production Workflow System
Notification Service.

Creates and queries in-app notifications. Workflow services call the
``notify_*`` helpers as side effects of status changes, assignments and
partner responses; the records are flushed in the caller's transaction.
"""

from sqlalchemy import or_, select

from app.core.exceptions import NotFoundError
from app.models import db
from app.models.auth import User
from app.models.base import _utcnow
from app.models.notification import Notification

# Which roles a status change is broadcast to; statuses not listed go to everyone.
STATUS_AUDIENCE = {
    "draft": ["Sales"],
    "ready_for_engineering": ["Engineering"],
    "engineering_blocked": ["Engineering", "Sales"],
    "ready_for_production": ["Production"],
    "done": ["Sales", "Production"],
}


class NotificationService:
    """Stateless service class for notification operations."""

    # ── Create ────────────────────────────────────────────────────────────

    @staticmethod
    def create(*, tenant_id, title, body="", type="system", user_id=None,
               audience_roles=None, data=None):
        """
        Create a single notification record (flushed, not committed).

        ``user_id=None`` makes it a broadcast, optionally narrowed by
        ``audience_roles``.
        """
        notif = Notification(
            tenant_id=tenant_id,
            user_id=user_id,
            type=type,
            title=title,
            body=body,
            data=data or {},
            audience_roles=audience_roles,
        )
        db.session.add(notif)
        db.session.flush()
        return notif

    # ── Query ─────────────────────────────────────────────────────────────

    @staticmethod
    def _visible_to(tenant_id, user_id, role, unread_only=False):
        stmt = select(Notification).where(
            Notification.tenant_id == tenant_id,
            or_(Notification.user_id == user_id, Notification.user_id.is_(None)),
        )
        if unread_only:
            stmt = stmt.where(Notification.read_at.is_(None))
        rows = db.session.execute(
            stmt.order_by(Notification.created_at.desc(), Notification.id.desc())
        ).scalars().all()
        return [
            n for n in rows
            if n.user_id is not None or not n.audience_roles or role in n.audience_roles
        ]

    @staticmethod
    def list_for_user(tenant_id, user_id, role, unread_only=False, limit=50, offset=0):
        """Retrieve notifications visible to a user, newest first."""
        items = NotificationService._visible_to(tenant_id, user_id, role, unread_only)
        return items[offset:offset + limit], len(items)

    @staticmethod
    def unread_count(tenant_id, user_id, role):
        return len(NotificationService._visible_to(tenant_id, user_id, role, unread_only=True))

    # ── Actions ───────────────────────────────────────────────────────────

    @staticmethod
    def mark_read(tenant_id, user_id, role, notification_id):
        """Mark a single notification as read."""
        visible = {
            n.id: n for n in NotificationService._visible_to(tenant_id, user_id, role)
        }
        notif = visible.get(notification_id)
        if notif is None:
            raise NotFoundError(resource="Notification", resource_id=notification_id, tenant_id=tenant_id)
        if notif.read_at is None:
            notif.mark_read()
            db.session.flush()
        return notif

    @staticmethod
    def mark_all_read(tenant_id, user_id, role):
        """Mark every unread notification visible to the user as read."""
        now = _utcnow()
        items = NotificationService._visible_to(tenant_id, user_id, role, unread_only=True)
        for n in items:
            n.read_at = now
        db.session.flush()
        return len(items)

    # ── Workflow Integration Helpers ──────────────────────────────────────

    @staticmethod
    def _tenant_user_id(tenant_id, user_ref):
        """Resolve an assignee id to a users.id within the tenant, if it is one."""
        try:
            uid = int(user_ref)
        except (TypeError, ValueError):
            return None
        user = db.session.execute(
            select(User).where(User.id == uid, User.tenant_id == tenant_id)
        ).scalar_one_or_none()
        return user.id if user else None

    @staticmethod
    def notify_status_changed(order, previous_status, actor):
        return NotificationService.create(
            tenant_id=order.tenant_id,
            type="status_changed",
            title=f"Order {order.order_number} moved to {order.status}",
            body=f"{actor.name} ({actor.role}) changed status from {previous_status} to {order.status}.",
            audience_roles=STATUS_AUDIENCE.get(order.status),
            data={
                "order_id": order.id,
                "from": previous_status,
                "to": order.status,
            },
        )

    @staticmethod
    def notify_assignment(order, kind, assignee_id, assignee_name, actor):
        """Notify a newly assigned engineer/manager who is a user of the tenant."""
        user_id = NotificationService._tenant_user_id(order.tenant_id, assignee_id)
        if user_id is None:
            return None
        return NotificationService.create(
            tenant_id=order.tenant_id,
            user_id=user_id,
            type="assignment",
            title=f"You were assigned as {kind} on order {order.order_number}",
            body=f"Assigned by {actor.name}.",
            data={"order_id": order.id, "kind": kind, "assignee_id": assignee_id,
                  "assignee_name": assignee_name},
        )

    @staticmethod
    def notify_partner_response(job, order):
        return NotificationService.create(
            tenant_id=order.tenant_id,
            type="partner_response",
            title=f"{job.partner_name} responded for order {order.order_number}",
            body=f"Partner order #{job.partner_response_order_number}",
            audience_roles=["Sales", "Production"],
            data={"order_id": order.id, "job_id": job.id},
        )

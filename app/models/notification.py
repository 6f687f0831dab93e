"""
Production Workflow System
Notification domain model.

Models:
    - Notification: in-app notification record with read tracking
"""

from app.models import db
from app.models.base import TenantModel, _iso, _utcnow


# ── Constants ────────────────────────────────────────────────────────────────

NOTIFICATION_TYPES = {"status_changed", "assignment", "partner_response", "system"}


class Notification(TenantModel):
    """
    In-app notification entity.

    ``user_id`` NULL means broadcast; ``audience_roles`` narrows a broadcast
    to the listed workflow roles.
    """

    __tablename__ = "notifications"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(
        db.Integer, db.ForeignKey("users.id", ondelete="CASCADE"), nullable=True, index=True,
    )
    type = db.Column(db.String(30), nullable=False, default="system")
    title = db.Column(db.String(300), nullable=False)
    body = db.Column(db.Text, default="")
    data = db.Column(db.JSON, default=dict)
    audience_roles = db.Column(db.JSON, nullable=True)

    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    def mark_read(self):
        self.read_at = _utcnow()

    @property
    def is_read(self):
        return self.read_at is not None

    def to_dict(self):
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "title": self.title,
            "body": self.body,
            "data": self.data or {},
            "audience_roles": self.audience_roles,
            "is_read": self.is_read,
            "read_at": _iso(self.read_at),
            "created_at": _iso(self.created_at),
        }

    def __repr__(self):
        return f"<Notification {self.id}: {self.title[:40]}>"

"""
Production Workflow System
Hierarchy (taxonomy) model.

Models:
    - HierarchyLevel: a named level such as contract, category or product
    - HierarchyNode: a value within a level, optionally parented
"""

from app.models import db
from app.models.base import TenantModel, _iso, _utcnow, _uuid


class HierarchyLevel(TenantModel):
    __tablename__ = "hierarchy_levels"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    key = db.Column(db.String(50), nullable=False, comment="contract | category | product | ...")
    label = db.Column(db.String(200), nullable=False)
    sort_order = db.Column(db.Integer, default=0)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        db.UniqueConstraint("tenant_id", "key", name="uq_hierarchy_level_tenant_key"),
    )

    nodes = db.relationship(
        "HierarchyNode", back_populates="level", lazy="dynamic",
        cascade="all, delete-orphan",
    )

    def to_dict(self):
        return {
            "id": self.id,
            "key": self.key,
            "label": self.label,
            "sort_order": self.sort_order,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }


class HierarchyNode(TenantModel):
    __tablename__ = "hierarchy_nodes"

    id = db.Column(db.String(36), primary_key=True, default=_uuid)
    level_id = db.Column(
        db.String(36), db.ForeignKey("hierarchy_levels.id", ondelete="CASCADE"),
        nullable=False, index=True,
    )
    parent_id = db.Column(
        db.String(36), db.ForeignKey("hierarchy_nodes.id", ondelete="SET NULL"), nullable=True,
    )
    label = db.Column(db.String(200), nullable=False)
    code = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, default=True)
    created_at = db.Column(db.DateTime(timezone=True), default=_utcnow)

    level = db.relationship("HierarchyLevel", back_populates="nodes")

    def to_dict(self):
        return {
            "id": self.id,
            "level_id": self.level_id,
            "parent_id": self.parent_id,
            "label": self.label,
            "code": self.code,
            "is_active": self.is_active,
            "created_at": _iso(self.created_at),
        }

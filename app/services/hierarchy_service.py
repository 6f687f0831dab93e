"""
Hierarchy Service — tenant taxonomy levels and nodes.

Levels are keyed (``contract``, ``category``, ``product``, ...) so the
accounting sync can find them; nodes are the selectable values.
"""

import logging

from sqlalchemy import select

from app.core.exceptions import ConflictError, ValidationError
from app.models import db
from app.models.hierarchy import HierarchyLevel, HierarchyNode
from app.services.helpers.scoped_queries import get_scoped

logger = logging.getLogger(__name__)


# ── Levels ───────────────────────────────────────────────────────────────────

def list_levels(tenant_id: int) -> list[HierarchyLevel]:
    return db.session.execute(
        select(HierarchyLevel)
        .where(HierarchyLevel.tenant_id == tenant_id)
        .order_by(HierarchyLevel.sort_order, HierarchyLevel.label)
    ).scalars().all()


def create_level(tenant_id: int, data: dict) -> HierarchyLevel:
    key = (data.get("key") or "").strip().lower()
    label = (data.get("label") or "").strip()
    errors = {}
    if not key:
        errors["key"] = "required"
    if not label:
        errors["label"] = "required"
    if errors:
        raise ValidationError("key and label are required", details=errors)
    exists = db.session.execute(
        select(HierarchyLevel.id).where(HierarchyLevel.tenant_id == tenant_id, HierarchyLevel.key == key)
    ).first()
    if exists:
        raise ConflictError("HierarchyLevel", "key", key)
    level = HierarchyLevel(
        tenant_id=tenant_id, key=key, label=label, sort_order=int(data.get("sort_order") or 0),
    )
    db.session.add(level)
    db.session.flush()
    return level


def update_level(tenant_id: int, level_id: str, data: dict) -> HierarchyLevel:
    level = get_scoped(HierarchyLevel, level_id, tenant_id=tenant_id)
    if "label" in data:
        label = (data["label"] or "").strip()
        if not label:
            raise ValidationError("label cannot be empty", details={"label": "required"})
        level.label = label
    if "sort_order" in data:
        level.sort_order = int(data["sort_order"] or 0)
    if "is_active" in data:
        level.is_active = bool(data["is_active"])
    db.session.flush()
    return level


def delete_level(tenant_id: int, level_id: str) -> None:
    level = get_scoped(HierarchyLevel, level_id, tenant_id=tenant_id)
    for node in level.nodes.all():
        db.session.delete(node)
    db.session.delete(level)
    db.session.flush()


# ── Nodes ────────────────────────────────────────────────────────────────────

def list_nodes(tenant_id: int, level_id: str | None = None) -> list[HierarchyNode]:
    stmt = select(HierarchyNode).where(HierarchyNode.tenant_id == tenant_id)
    if level_id:
        stmt = stmt.where(HierarchyNode.level_id == level_id)
    return db.session.execute(stmt.order_by(HierarchyNode.label)).scalars().all()


def create_node(tenant_id: int, data: dict) -> HierarchyNode:
    label = (data.get("label") or "").strip()
    if not label:
        raise ValidationError("label is required", details={"label": "required"})
    if not data.get("level_id"):
        raise ValidationError("level_id is required", details={"level_id": "required"})
    level = get_scoped(HierarchyLevel, data["level_id"], tenant_id=tenant_id)
    parent_id = data.get("parent_id")
    if parent_id:
        get_scoped(HierarchyNode, parent_id, tenant_id=tenant_id)
    node = HierarchyNode(
        tenant_id=tenant_id, level_id=level.id, parent_id=parent_id or None,
        label=label, code=data.get("code") or None,
    )
    db.session.add(node)
    db.session.flush()
    return node


def update_node(tenant_id: int, node_id: str, data: dict) -> HierarchyNode:
    node = get_scoped(HierarchyNode, node_id, tenant_id=tenant_id)
    if "label" in data:
        label = (data["label"] or "").strip()
        if not label:
            raise ValidationError("label cannot be empty", details={"label": "required"})
        node.label = label
    if "code" in data:
        node.code = data["code"] or None
    if "parent_id" in data:
        parent_id = data["parent_id"] or None
        if parent_id:
            if parent_id == node.id:
                raise ValidationError("A node cannot be its own parent", details={"parent_id": "invalid"})
            get_scoped(HierarchyNode, parent_id, tenant_id=tenant_id)
        node.parent_id = parent_id
    if "is_active" in data:
        node.is_active = bool(data["is_active"])
    db.session.flush()
    return node


def delete_node(tenant_id: int, node_id: str) -> None:
    node = get_scoped(HierarchyNode, node_id, tenant_id=tenant_id)
    children = db.session.execute(
        select(HierarchyNode).where(HierarchyNode.tenant_id == tenant_id, HierarchyNode.parent_id == node.id)
    ).scalars().all()
    for child in children:
        child.parent_id = None
    db.session.delete(node)
    db.session.flush()

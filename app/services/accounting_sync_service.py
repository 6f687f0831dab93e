"""
Accounting Sync Service — upsert orders fetched from the accounting system.

Rules:
  - Order numbers already owned by a manual or excel row are skipped
    (``can_overwrite``); the skipped numbers are reported back.
  - Contract / category / product are mapped into ``Order.hierarchy``
    using the tenant's hierarchy levels with those keys.
  - New rows start as ``draft``; existing accounting rows keep their
    workflow status and get their data refreshed.
  - Every synced row gets ``source=accounting`` and ``synced_at=now``.
"""

import logging

from sqlalchemy import select

from app.models import db
from app.models.base import _utcnow
from app.models.hierarchy import HierarchyLevel
from app.models.order import Order
from app.services.provenance import can_overwrite

logger = logging.getLogger(__name__)

SYNC_SOURCE = "accounting"
_HIERARCHY_KEYS = ("contract", "category", "product")


def _hierarchy_levels(tenant_id: int) -> dict:
    levels = db.session.execute(
        select(HierarchyLevel).where(
            HierarchyLevel.tenant_id == tenant_id, HierarchyLevel.key.in_(_HIERARCHY_KEYS),
        )
    ).scalars().all()
    return {level.key: level.id for level in levels}


def _hierarchy_for(acc_order, level_ids: dict) -> dict:
    hierarchy = {}
    for key in _HIERARCHY_KEYS:
        value = getattr(acc_order, key)
        if value and key in level_ids:
            hierarchy[level_ids[key]] = value
    return hierarchy


def sync_accounting_orders(actor, adapter) -> dict:
    """
    Fetch orders from ``adapter`` and upsert them for the actor's tenant.

    Returns:
        {"provider", "fetched", "synced", "inserted", "updated", "skipped": [order numbers]}

    Raises:
        AccountingSyncError: adapter could not fetch.
    """
    fetched = adapter.fetch_orders()
    result = {
        "provider": adapter.provider,
        "fetched": len(fetched),
        "synced": 0,
        "inserted": 0,
        "updated": 0,
        "skipped": [],
    }
    if not fetched:
        logger.info("Accounting sync (%s): no orders returned", adapter.provider)
        return result

    numbers = [o.order_number for o in fetched]
    existing = {
        o.order_number: o
        for o in db.session.execute(
            select(Order).where(Order.tenant_id == actor.tenant_id, Order.order_number.in_(numbers))
        ).scalars().all()
    }
    level_ids = _hierarchy_levels(actor.tenant_id)
    now = _utcnow()

    for acc in fetched:
        order = existing.get(acc.order_number)
        if order is not None and not can_overwrite(order.source, SYNC_SOURCE):
            result["skipped"].append(acc.order_number)
            continue

        values = {
            "customer_name": acc.customer_name,
            "product_name": acc.product_name or acc.product,
            "quantity": acc.quantity or 1,
            "hierarchy": _hierarchy_for(acc, level_ids),
            "due_date": acc.due_date,
            "priority": acc.priority or "normal",
            "external_id": acc.external_id,
            "source_payload": acc.source_payload or None,
            "source": SYNC_SOURCE,
            "synced_at": now,
        }
        if order is None:
            order = Order(
                tenant_id=actor.tenant_id,
                order_number=acc.order_number,
                status="draft",
                checklist={},
                **values,
            )
            db.session.add(order)
            existing[acc.order_number] = order
            result["inserted"] += 1
        else:
            for name, value in values.items():
                setattr(order, name, value)
            result["updated"] += 1
        result["synced"] += 1

    db.session.flush()
    logger.info(
        "Accounting sync (%s) by %s tenant=%s: %d synced, %d skipped",
        adapter.provider, actor.name, actor.tenant_id, result["synced"], len(result["skipped"]),
    )
    return result

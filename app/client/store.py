"""
OrderStore — optimistic in-memory cache of a tenant's orders.

Every mutation is two-phase:
  1. apply a provisional patch to the cached order so readers see the
     change immediately;
  2. call the server; on success the cached order is replaced by the
     server's authoritative dict, on failure the provisional patch is
     reverted and the error re-raised.

Nothing is retried. ``refresh()`` reloads the whole collection
(last-writer-wins reconciliation with the server).
"""

from __future__ import annotations

import copy
import logging
import uuid
from typing import Callable

from app.services.order_lifecycle import ORDER_TRANSITIONS, QUEUE_RESET_STATUSES

logger = logging.getLogger(__name__)


class OrderStore:
    def __init__(self, client) -> None:
        self._client = client
        self._orders: dict[str, dict] = {}

    # ── Reads ────────────────────────────────────────────────────────────

    def refresh(self) -> list[dict]:
        self._orders = {o["id"]: o for o in self._client.list_orders()}
        return self.all()

    def all(self) -> list[dict]:
        return list(self._orders.values())

    def get(self, order_id: str) -> dict | None:
        return self._orders.get(order_id)

    # ── Two-phase core ───────────────────────────────────────────────────

    def apply(self, order_id: str, patch: dict, mutation: Callable[[], dict]) -> dict:
        """Apply ``patch`` provisionally, then reconcile with ``mutation()``'s result."""
        if order_id not in self._orders:
            raise KeyError(order_id)
        previous = copy.deepcopy(self._orders[order_id])
        self._orders[order_id] = {**previous, **patch}
        try:
            authoritative = mutation()
        except Exception:
            self._orders[order_id] = previous
            logger.warning("Reverted provisional change to order %s", order_id)
            raise
        self._orders[order_id] = authoritative
        return authoritative

    def create(self, data: dict) -> dict:
        temp_id = f"tmp-{uuid.uuid4()}"
        self._orders[temp_id] = {**data, "id": temp_id, "status": data.get("status", "draft")}
        try:
            created = self._client.create_order(data)
        except Exception:
            self._orders.pop(temp_id, None)
            logger.warning("Discarded provisional order %s", data.get("order_number"))
            raise
        self._orders.pop(temp_id, None)
        self._orders[created["id"]] = created
        return created

    def delete(self, order_id: str) -> None:
        previous = self._orders.pop(order_id)
        try:
            self._client.delete_order(order_id)
        except Exception:
            self._orders[order_id] = previous
            logger.warning("Restored order %s after failed delete", order_id)
            raise

    # ── Workflow shortcuts ───────────────────────────────────────────────

    def update(self, order_id: str, patch: dict) -> dict:
        return self.apply(order_id, patch, lambda: self._client.update_order(order_id, patch))

    def transition(self, order_id: str, action: str) -> dict:
        rule = ORDER_TRANSITIONS.get(action)
        patch = {"status": rule["to"]} if rule else {}
        return self.apply(order_id, patch, lambda: self._client.transition(order_id, action))

    def send_back(self, order_id: str, target_status: str, reason: str | None = None,
                  note: str | None = None) -> dict:
        return self.apply(
            order_id, {"status": target_status},
            lambda: self._client.send_back(order_id, reason=reason, note=note),
        )

    def take(self, order_id: str, actor) -> dict:
        patch = {"assigned_engineer_id": actor.id, "assigned_engineer_name": actor.name}
        return self.apply(order_id, patch, lambda: self._client.take(order_id))

    def return_to_queue(self, order_id: str) -> dict:
        current = self._orders.get(order_id, {})
        patch = {"assigned_engineer_id": None, "assigned_engineer_name": None, "assigned_engineer_at": None}
        if current.get("status") in QUEUE_RESET_STATUSES:
            patch["status"] = "ready_for_engineering"
        return self.apply(order_id, patch, lambda: self._client.return_to_queue(order_id))

    def assign_engineer(self, order_id: str, engineer_id: str, engineer_name: str | None = None) -> dict:
        patch = {"assigned_engineer_id": engineer_id, "assigned_engineer_name": engineer_name}
        return self.apply(
            order_id, patch,
            lambda: self._client.assign_engineer(order_id, engineer_id, engineer_name),
        )

    def assign_manager(self, order_id: str, manager_id: str, manager_name: str | None = None) -> dict:
        patch = {"assigned_manager_id": manager_id, "assigned_manager_name": manager_name}
        return self.apply(
            order_id, patch,
            lambda: self._client.assign_manager(order_id, manager_id, manager_name),
        )

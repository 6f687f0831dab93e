"""
Order status vocabulary and the legacy-status adapter.

Rows written before the engineering/production workflow existed still carry
the old four-value vocabulary. ``OrderStatusType`` normalizes whatever is
stored into a current status every time a row is loaded, so no code above
the model layer ever sees a legacy value.
"""

from sqlalchemy.types import String, TypeDecorator


ORDER_STATUSES = (
    "draft",
    "ready_for_engineering",
    "in_engineering",
    "engineering_blocked",
    "ready_for_production",
    "in_production",
    "done",
)

# NOTE: "cancelled" -> "engineering_blocked" is lossy (a cancelled order
# resurfaces as blocked work). Kept as-is until product decides whether a
# real cancelled state is needed.
LEGACY_STATUS_MAP = {
    "pending": "draft",
    "in_progress": "in_engineering",
    "completed": "ready_for_production",
    "cancelled": "engineering_blocked",
}

DEFAULT_ORDER_STATUS = "draft"


def normalize_order_status(value):
    """Map a stored status (current or legacy) onto the current vocabulary.

    Unknown and empty values fall back to ``draft``.
    """
    if value in ORDER_STATUSES:
        return value
    return LEGACY_STATUS_MAP.get(value, DEFAULT_ORDER_STATUS)


class OrderStatusType(TypeDecorator):
    """String column that normalizes legacy order statuses on read."""

    impl = String(40)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return value

    def process_result_value(self, value, dialect):
        return normalize_order_status(value)


def stored_values_for(status):
    """Every raw column value that reads back as ``status``."""
    return [status, *(legacy for legacy, current in LEGACY_STATUS_MAP.items() if current == status)]

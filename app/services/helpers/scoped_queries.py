"""
Tenant-scoped query helpers.

Every get-by-id in the services MUST go through these helpers instead of
``db.session.get(Model, pk)``. A bare primary-key lookup ignores tenant
isolation; here a row from another tenant is indistinguishable from a
missing row (both raise NotFoundError -> HTTP 404).

Usage:
    order = get_scoped(Order, order_id, tenant_id=tenant_id)
    job = get_scoped(ExternalJob, job_id, tenant_id=tenant_id)
    comment = get_scoped(OrderComment, cid, tenant_id=tenant_id, order_id=order.id)
"""

import logging

from sqlalchemy import select

from app.core.exceptions import NotFoundError
from app.models import db

logger = logging.getLogger(__name__)

# Optional narrowing scopes on top of the mandatory tenant_id.
_EXTRA_SCOPES = ("order_id", "job_id")


def get_scoped(model, pk, *, tenant_id: int, **extra_scopes):
    """Fetch a single entity by PK within a tenant (and optional parent).

    Raises:
        ValueError: If tenant_id is missing or an extra scope is not a column
                    of the model. Unscoped lookups are refused outright.
        NotFoundError: If the entity does not exist OR belongs to another scope.
    """
    if tenant_id is None:
        raise ValueError(
            f"{model.__name__} id={pk} requires a tenant_id scope. "
            "Unscoped lookups are forbidden."
        )
    unknown = [k for k in extra_scopes if k not in _EXTRA_SCOPES or not hasattr(model, k)]
    if unknown:
        raise ValueError(f"{model.__name__}: unsupported scope field(s) {sorted(unknown)}")

    stmt = select(model).where(model.id == pk, model.tenant_id == tenant_id)
    for name, value in extra_scopes.items():
        stmt = stmt.where(getattr(model, name) == value)

    result = db.session.execute(stmt).scalar_one_or_none()
    if result is None:
        logger.debug("get_scoped: %s id=%s not found for tenant=%s", model.__name__, pk, tenant_id)
        raise NotFoundError(resource=model.__name__, resource_id=pk, tenant_id=tenant_id)
    return result

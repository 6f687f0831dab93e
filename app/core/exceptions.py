"""
Service-layer exception hierarchy.

Every service raises one of these types; blueprints register handlers
against them once (see ``app.__init__._register_error_handlers``) and get
consistent HTTP status codes everywhere.

Usage:
    from app.core.exceptions import NotFoundError, ValidationError

    raise NotFoundError(resource="Order", resource_id=order_id, tenant_id=tid)
    raise ValidationError("order_number is required", details={"order_number": "required"})
"""


class NotFoundError(Exception):
    """Raised when a requested resource does not exist within the given scope.

    Used for BOTH genuinely missing records AND cross-tenant access attempts,
    so a caller can never learn that another tenant's row exists.

    Args:
        resource: Human-readable entity name (e.g. "Order", "ExternalJob").
        resource_id: The PK that was looked up. Included in logs, not in HTTP response.
        tenant_id: Optional — the scope that was enforced. For debug logging only.
    """

    def __init__(
        self,
        resource: str,
        resource_id: int | str | None = None,
        tenant_id: int | None = None,
    ) -> None:
        self.resource = resource
        self.resource_id = resource_id
        self.tenant_id = tenant_id
        msg = f"{resource}"
        if resource_id is not None:
            msg += f" id={resource_id}"
        msg += " not found"
        if tenant_id is not None:
            msg += f" (tenant={tenant_id})"
        super().__init__(msg)


class ValidationError(Exception):
    """Raised when input is well-formed but violates a business rule.

    Maps to HTTP 422.

    Args:
        message: Human-readable explanation of what failed.
        details: Optional field-level breakdown for structured API responses.
    """

    def __init__(self, message: str, details: dict | None = None) -> None:
        self.details = details or {}
        super().__init__(message)


class ConflictError(Exception):
    """Raised when an operation would duplicate a unique value (e.g. order number).

    Maps to HTTP 409.
    """

    def __init__(self, resource: str, field: str, value: str | None = None) -> None:
        self.resource = resource
        self.field = field
        self.value = value
        msg = f"{resource} with {field}={value!r} already exists"
        super().__init__(msg)


class PermissionDenied(Exception):
    """Raised when the actor's role or ownership does not allow an action.

    Maps to HTTP 403.
    """

    def __init__(self, actor_id: str | None, action: str, reason: str | None = None) -> None:
        self.actor_id = actor_id
        self.action = action
        self.reason = reason
        msg = f"User {actor_id} is not allowed to '{action}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class TransitionError(Exception):
    """Raised when a status move is not allowed from the current status.

    Maps to HTTP 409.
    """

    def __init__(self, message: str, current: str | None = None, target: str | None = None) -> None:
        self.current = current
        self.target = target
        super().__init__(message)


class GateError(TransitionError):
    """Raised when a transition is legal but its preconditions are not met.

    ``failed`` is the list of gate results that did not pass, each a dict
    with ``gate``, ``required`` and ``actual`` keys.
    """

    def __init__(self, target: str, failed: list[dict], current: str | None = None) -> None:
        self.failed = failed
        names = ", ".join(g["gate"] for g in failed)
        super().__init__(f"Cannot move to '{target}': unmet gates ({names})", current=current, target=target)


class AccountingSyncError(Exception):
    """Raised when the accounting provider cannot be reached or answers badly.

    Maps to HTTP 502.
    """

    def __init__(self, provider: str, message: str) -> None:
        self.provider = provider
        super().__init__(f"{provider}: {message}")

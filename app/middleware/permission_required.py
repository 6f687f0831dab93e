"""
Permission Decorators — JWT-aware guards for route protection.

Usage:
    @bp.route("/orders", methods=["GET"])
    @require_actor
    def list_orders():
        actor = g.actor
        ...

    @bp.route("/workflow/rules", methods=["PUT"])
    @require_admin
    def update_rules():
        ...

Role checks for the order lifecycle itself live in the services, which
receive the ``Actor`` explicitly; these decorators only make sure one exists.
"""

import functools
import logging

from flask import g

from app.utils.errors import E, api_error

logger = logging.getLogger(__name__)


def require_actor(f):
    """Decorator: require an authenticated actor bound to an active tenant."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        if getattr(g, "actor", None) is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        return f(*args, **kwargs)
    return decorated


def require_admin(f):
    """Decorator: require an actor with admin rights (Admin role or is_admin)."""
    @functools.wraps(f)
    def decorated(*args, **kwargs):
        actor = getattr(g, "actor", None)
        if actor is None:
            return api_error(E.UNAUTHORIZED, "Authentication required")
        if not actor.has_admin_rights:
            logger.warning(
                "User %s denied: admin rights required on %s", actor.id, f.__name__,
            )
            return api_error(E.FORBIDDEN, "Admin rights required")
        return f(*args, **kwargs)
    return decorated

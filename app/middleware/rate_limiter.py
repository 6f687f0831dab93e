"""
Rate limiting configuration.

Applies per-blueprint rate limits using Flask-Limiter.
The Limiter instance is created in app/__init__.py with no default limits;
this module applies granular limits per route category.

Usage:
    from app.middleware.rate_limiter import init_rate_limits
    init_rate_limits(app, limiter)
"""

import logging

from flask import g, request as flask_request

logger = logging.getLogger(__name__)


def rate_limit_key():
    """Limiter key: the authenticated tenant when known, else remote IP."""
    tenant_id = getattr(g, "jwt_tenant_id", None)
    if tenant_id:
        return f"tenant:{tenant_id}"
    return flask_request.remote_addr or "unknown"


def init_rate_limits(app, limiter):
    """
    Apply rate limits to API blueprints.

    Limits:
        - Partner portal:   20/minute per IP (unauthenticated, token guessing)
        - Import / sync:    10/minute (heavy writes)
        - Everything else:  300/minute per tenant
        - Health check:     exempt

    Rate limiting is disabled in testing mode.
    """

    if app.config.get("TESTING") or not app.config.get("RATELIMIT_ENABLED", True):
        app.logger.info("Rate limiter disabled")
        return

    bp = app.blueprints.get("partner_portal")
    if bp:
        limiter.limit("20/minute", key_func=lambda: flask_request.remote_addr or "unknown")(bp)

    bp = app.blueprints.get("order_import")
    if bp:
        limiter.limit("10/minute", key_func=rate_limit_key)(bp)

    for bp_name in ("orders", "external_jobs", "workflow", "notifications"):
        bp = app.blueprints.get(bp_name)
        if bp:
            limiter.limit("300/minute", key_func=rate_limit_key)(bp)

    bp = app.blueprints.get("health")
    if bp:
        limiter.exempt(bp)

    logger.info("Rate limiter configured — portal: 20/min, import: 10/min, api: 300/min")

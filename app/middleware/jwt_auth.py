"""
JWT Auth Middleware — Parses JWT from Authorization header, sets g.actor.

Priority order:
  1. JWT (Authorization: Bearer <token>)  →  g.actor, g.jwt_user_id, g.jwt_tenant_id
  2. No / invalid token                    →  g.actor = None

The middleware never blocks a request by itself; routes that need an
identity are wrapped with ``require_actor``.
"""

import logging

import jwt as pyjwt
from flask import g, request

from app.services.jwt_service import actor_from_payload, decode_access_token

logger = logging.getLogger(__name__)

# Paths that skip JWT auth entirely
JWT_SKIP_PREFIXES = (
    "/api/v1/health",
    "/api/v1/external-jobs/respond/",
    "/static/",
)


def init_jwt_middleware(app):
    """Register JWT middleware as a before_request hook."""

    @app.before_request
    def _jwt_auth():
        # Clear JWT context
        g.actor = None
        g.jwt_user_id = None
        g.jwt_tenant_id = None

        # Skip non-API routes and public endpoints
        path = request.path
        if not path.startswith("/api/v1/"):
            return
        for prefix in JWT_SKIP_PREFIXES:
            if path.startswith(prefix):
                return

        # Check for Bearer token
        auth_header = request.headers.get("Authorization", "")
        if not auth_header.startswith("Bearer "):
            return

        token = auth_header[7:]  # Strip "Bearer "

        try:
            payload = decode_access_token(token)
            actor = actor_from_payload(payload)
        except pyjwt.ExpiredSignatureError:
            logger.info("Expired access token on %s", path)
            return
        except pyjwt.InvalidTokenError as exc:
            logger.info("Invalid access token on %s: %s", path, exc)
            return

        g.actor = actor
        g.jwt_user_id = actor.id
        g.jwt_tenant_id = actor.tenant_id

"""
JWT Service — access token generation and verification.

Access token:  8 hours (configurable via JWT_ACCESS_EXPIRES)
Algorithm:     HS256

Token payload (access):
{
    "sub": "<user_id>",
    "tenant_id": <tenant_id>,
    "name": "Jane Doe",
    "role": "Sales",
    "is_admin": false,
    "is_owner": false,
    "type": "access",
    "iat": <issued_at>,
    "exp": <expires_at>,
    "jti": <unique_id>
}

Identity is issued by the surrounding platform; this module only signs
tokens for seed scripts and tests and verifies incoming ones.
"""

import uuid
from datetime import datetime, timedelta, timezone

import jwt
from flask import current_app

from app.core.actor import Actor


# ─── Defaults ────────────────────────────────────────────────
DEFAULT_ACCESS_EXPIRES = 28800     # 8 hours
ALGORITHM = "HS256"


def _get_secret():
    """Get the JWT secret key from app config."""
    return current_app.config.get("JWT_SECRET_KEY") or current_app.config["SECRET_KEY"]


def _get_access_expires():
    return current_app.config.get("JWT_ACCESS_EXPIRES", DEFAULT_ACCESS_EXPIRES)


# ═══════════════════════════════════════════════════════════════
# Token Generation
# ═══════════════════════════════════════════════════════════════
def generate_access_token(
    user_id,
    tenant_id: int,
    name: str,
    role: str,
    is_admin: bool = False,
    is_owner: bool = False,
) -> str:
    """Generate an access token carrying the actor's identity and role."""
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(user_id),
        "tenant_id": tenant_id,
        "name": name,
        "role": role,
        "is_admin": bool(is_admin),
        "is_owner": bool(is_owner),
        "type": "access",
        "iat": now,
        "exp": now + timedelta(seconds=_get_access_expires()),
        "jti": str(uuid.uuid4()),
    }
    return jwt.encode(payload, _get_secret(), algorithm=ALGORITHM)


def token_for_user(user) -> str:
    """Shortcut used by seed scripts and tests."""
    return generate_access_token(
        user.id,
        user.tenant_id,
        user.full_name or user.email,
        user.role,
        is_admin=user.is_admin,
        is_owner=user.is_owner,
    )


# ═══════════════════════════════════════════════════════════════
# Token Verification
# ═══════════════════════════════════════════════════════════════
def decode_token(token: str, expected_type: str = "access") -> dict:
    """
    Decode and verify a JWT token.

    Returns the payload dict on success.
    Raises jwt.exceptions on failure (ExpiredSignatureError, InvalidTokenError, etc.)
    """
    payload = jwt.decode(token, _get_secret(), algorithms=[ALGORITHM])

    # Verify token type
    if payload.get("type") != expected_type:
        raise jwt.InvalidTokenError(f"Expected {expected_type} token, got {payload.get('type')}")

    return payload


def decode_access_token(token: str) -> dict:
    """Decode and verify an access token."""
    return decode_token(token, expected_type="access")


def actor_from_payload(payload: dict) -> Actor:
    """Build the acting user from a verified access token payload."""
    tenant_id = payload.get("tenant_id")
    if tenant_id is None or not payload.get("sub") or not payload.get("role"):
        raise jwt.InvalidTokenError("Token is missing identity claims")
    return Actor(
        id=str(payload["sub"]),
        name=payload.get("name") or str(payload["sub"]),
        role=payload["role"],
        tenant_id=int(tenant_id),
        is_admin=bool(payload.get("is_admin")),
        is_owner=bool(payload.get("is_owner")),
    )

"""
Acting user passed explicitly into every workflow operation.

Blueprints build an ``Actor`` from the decoded JWT (see
``app.middleware.jwt_auth``); services never reach for request globals.
"""

from __future__ import annotations

from dataclasses import dataclass

SALES = "Sales"
ENGINEERING = "Engineering"
PRODUCTION = "Production"
ADMIN = "Admin"


@dataclass(frozen=True)
class Actor:
    """Who is performing an operation, and in which tenant."""

    id: str
    name: str
    role: str
    tenant_id: int
    is_admin: bool = False
    is_owner: bool = False

    @property
    def has_admin_rights(self) -> bool:
        return self.is_admin or self.role == ADMIN

    @property
    def can_manage_assignments(self) -> bool:
        """Sales and admins assign engineers and managers."""
        return self.role == SALES or self.has_admin_rights

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "role": self.role,
            "tenant_id": self.tenant_id,
            "is_admin": self.is_admin,
            "is_owner": self.is_owner,
        }

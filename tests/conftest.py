"""
Shared pytest fixtures for the Production Workflow test suite.

Provides:
    - app: Flask application (session-scoped)
    - _setup_db: Database table creation/teardown (session-scoped)
    - session: Per-test DB cleanup w/ rollback + recreate (autouse)
    - client: Flask test client (function-scoped)
    - default_tenant: Pre-created Tenant entity
    - users: one committed User per workflow role in the default tenant
    - actors / actor_for: Actor views of those users
    - auth_headers: Bearer header builder for API tests
    - rules: the default tenant's seeded WorkflowRulesSnapshot
    - make_order: ORM factory for orders at an arbitrary status
"""

from datetime import date, timedelta

import pytest

from app import create_app
from app.core.actor import Actor
from app.models import db as _db
from app.services.jwt_service import token_for_user


DEFAULT_TEST_TENANT_SLUG = "test-default"


def _ensure_default_tenant():
    """Create a default tenant for tests if it doesn't exist.

    Returns the tenant ID.
    """
    from app.models.auth import Tenant
    t = Tenant.query.filter_by(slug=DEFAULT_TEST_TENANT_SLUG).first()
    if not t:
        t = Tenant(name="Test Default", slug=DEFAULT_TEST_TENANT_SLUG)
        _db.session.add(t)
        _db.session.commit()
    return t.id


# ── App & DB fixtures ────────────────────────────────────────────────────


@pytest.fixture(scope="session")
def app():
    """Create the Flask application once per test session."""
    application = create_app("testing")
    return application


@pytest.fixture(scope="session")
def _setup_db(app):
    """Create all tables at session start, drop at end."""
    with app.app_context():
        _db.create_all()
    yield
    with app.app_context():
        _db.drop_all()


@pytest.fixture(autouse=True)
def session(app, _setup_db):
    """Per-test: open app context, rollback after test, recreate tables."""
    with app.app_context():
        _ensure_default_tenant()
        yield
        _db.session.rollback()
        _db.drop_all()
        _db.create_all()


@pytest.fixture()
def client(app):
    """Flask test client."""
    return app.test_client()


@pytest.fixture()
def default_tenant():
    """Return the auto-created default test tenant."""
    from app.models.auth import Tenant
    return Tenant.query.filter_by(slug=DEFAULT_TEST_TENANT_SLUG).first()


# ── Identity fixtures ────────────────────────────────────────────────────


def _make_user(tenant_id, role, email=None, is_admin=False, is_owner=False):
    from app.models.auth import User
    user = User(
        tenant_id=tenant_id,
        email=email or f"{role.lower()}@tenant{tenant_id}.example",
        full_name=f"{role} User",
        role=role,
        is_admin=is_admin,
        is_owner=is_owner,
    )
    _db.session.add(user)
    _db.session.commit()
    return user


@pytest.fixture()
def make_user():
    """Factory: make_user(tenant_id, role, email=None, is_admin=False, is_owner=False)."""
    return _make_user


@pytest.fixture()
def users(default_tenant):
    """One committed user per workflow role in the default tenant."""
    return {
        "Sales": _make_user(default_tenant.id, "Sales"),
        "Engineering": _make_user(default_tenant.id, "Engineering"),
        "Production": _make_user(default_tenant.id, "Production"),
        "Admin": _make_user(default_tenant.id, "Admin", is_admin=True),
    }


@pytest.fixture()
def actor_for():
    """Build the Actor a JWT for ``user`` would resolve to."""
    def _actor(user):
        return Actor(
            id=str(user.id),
            name=user.full_name,
            role=user.role,
            tenant_id=user.tenant_id,
            is_admin=bool(user.is_admin),
            is_owner=bool(user.is_owner),
        )
    return _actor


@pytest.fixture()
def actors(users, actor_for):
    """Actor per role, matching ``users``."""
    return {role: actor_for(user) for role, user in users.items()}


@pytest.fixture()
def auth_headers():
    """auth_headers(user) -> {"Authorization": "Bearer <token>"}."""
    def _headers(user):
        return {"Authorization": f"Bearer {token_for_user(user)}"}
    return _headers


# ── Workflow fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def rules(default_tenant):
    """Seed and return the default tenant's rules snapshot."""
    from app.services.workflow_rules_service import load_rules_snapshot
    snapshot = load_rules_snapshot(default_tenant.id)
    _db.session.commit()
    return snapshot


@pytest.fixture()
def make_order(default_tenant):
    """Factory: create a committed Order directly via the ORM (bypasses gates)."""
    from app.models.order import Order

    counter = {"n": 0}

    def _make(status="draft", tenant_id=None, source="manual", **fields):
        counter["n"] += 1
        values = {
            "order_number": f"ORD-{counter['n']:04d}",
            "customer_name": "Acme AS",
            "product_name": "Steel frame",
            "quantity": 1,
            "due_date": date.today() + timedelta(days=14),
            "priority": "normal",
        }
        values.update(fields)
        order = Order(
            tenant_id=tenant_id or default_tenant.id,
            status=status,
            source=source,
            checklist={},
            **values,
        )
        _db.session.add(order)
        _db.session.commit()
        return order
    return _make

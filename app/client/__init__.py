"""Python client for the workflow API and the optimistic order cache built on it."""

from app.client.api import OrderApiClient, OrderApiError  # noqa: F401
from app.client.store import OrderStore  # noqa: F401

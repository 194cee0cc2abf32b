"""
Pytest configuration and fixtures for newsletter popup tests.
"""

import os
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import jwt
import pytest
from fastapi.testclient import TestClient

# Set test environment variables before importing app
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENCRYPTION_KEY", "test-encryption-key-32chars-long!")
os.environ.setdefault("ADMIN_API_KEY", "test-admin-key")
os.environ.setdefault("JWT_SECRET_KEY", "test-jwt-secret")
os.environ.setdefault("SMTP_HOST", "")
os.environ.setdefault("PUBLIC_BASE_URL", "")

from newsletter_popup.main import app  # noqa: E402
from newsletter_popup.middleware.rate_limit import reset_fallback_limits  # noqa: E402

SHOPIFY_URL = "https://foxx-test.myshopify.com"
ADMIN_HEADERS = {"X-API-Key": "test-admin-key"}


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Start every test with an empty in-memory rate limit window."""
    reset_fallback_limits()
    yield
    reset_fallback_limits()


@pytest.fixture(scope="function")
def client():
    """
    Create a test client.

    The lifespan creates the tables on startup and disposes the in-memory
    database on shutdown, so every test starts from an empty database.
    """
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers():
    """Operator credentials."""
    return dict(ADMIN_HEADERS)


def make_token(
    user_id: str,
    role: str = "member",
    permissions: list = None,
    expires_in: timedelta = timedelta(hours=1),
) -> str:
    """Sign a bearer token for a user."""
    payload = {
        "user_id": user_id,
        "role": role,
        "permissions": permissions if permissions is not None else [
            "stores:read",
            "stores:write",
            "popup:write",
            "subscribers:read",
            "subscribers:write",
            "integration:manage",
        ],
        "exp": datetime.now(timezone.utc) + expires_in,
    }
    return jwt.encode(payload, "test-jwt-secret", algorithm="HS256")


@pytest.fixture
def user_headers():
    """Build Authorization headers for a member user."""

    def _headers(user_id: str = "user-1", **kwargs) -> dict:
        return {"Authorization": f"Bearer {make_token(user_id, **kwargs)}"}

    return _headers


@pytest.fixture
def create_store(client, admin_headers):
    """Create a store through the admin API and return its JSON."""

    def _create(headers: dict = None, **overrides) -> dict:
        body = {
            "name": "Foxx Test Store",
            "shopifyUrl": SHOPIFY_URL,
        }
        body.update(overrides)
        response = client.post("/api/stores", json=body, headers=headers or admin_headers)
        assert response.status_code == 201, response.text
        return response.json()

    return _create


class FakeStorefront:
    """Pages served to the installation verifier, keyed by URL."""

    def __init__(self):
        self.pages = {}
        self.http_client = AsyncMock()
        self.http_client.get.side_effect = self._get

    def serve(self, url: str, html: str, status_code: int = 200):
        self.pages[url] = (status_code, html)

    def fail(self, url: str, error: Exception):
        self.pages[url] = error

    @property
    def requested_urls(self) -> list:
        return [c.args[0] for c in self.http_client.get.call_args_list]

    async def _get(self, url):
        page = self.pages.get(url)
        if page is None:
            raise httpx.ConnectError("Connection refused")
        if isinstance(page, Exception):
            raise page
        status_code, html = page
        response = MagicMock()
        response.status_code = status_code
        response.text = html
        return response


@pytest.fixture
def storefront():
    """
    Replace outbound storefront fetches with in-memory pages.
    Unmapped URLs fail with a connection error.
    """
    fake = FakeStorefront()
    with patch("newsletter_popup.services.installation_verifier.httpx.AsyncClient") as mock:
        mock.return_value.__aenter__.return_value = fake.http_client
        fake.client_factory = mock
        yield fake


@pytest.fixture
def mock_shopify_client():
    """Mock Shopify API client used by the store service."""
    with patch("newsletter_popup.services.store_service.ShopifyClient") as mock:
        shopify = AsyncMock()
        shopify.shop_host = "foxx-test.myshopify.com"
        shopify.verify_connection.return_value = True
        shopify.get_shop.return_value = {"id": 1, "name": "Foxx Shopify Store"}
        shopify.lookup_discount_code.return_value = {"id": 7, "code": "WELCOME15", "usage_count": 3}
        mock.return_value.__aenter__.return_value = shopify
        yield shopify


def storefront_html(snippet: str) -> str:
    """Wrap a snippet in a storefront page."""
    return (
        "<!doctype html><html><head><title>Foxx Store</title></head>"
        f"<body><main>Products</main>{snippet}</body></html>"
    )

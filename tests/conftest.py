# tests/conftest.py
import json

import pytest
from fastapi.testclient import TestClient

from reconciler.core.config import Settings, get_settings
from reconciler.core.security import SIGNATURE_HEADER, TOPIC_HEADER, compute_signature
from reconciler.dependencies import (
    get_notifier,
    get_state_store,
    get_waitlist_service,
    get_webhook_processor,
)
from reconciler.main import app
from reconciler.services.waitlist_service import WaitlistService
from reconciler.services.webhook_processor import WebhookProcessor

from tests.mocks.mock_notifier import MockNotifier
from tests.mocks.mock_shopify import MockCatalogClient
from tests.mocks.mock_store import MockStateStore

WEBHOOK_SECRET = "test_secret"


@pytest.fixture
def settings():
    """Provide test settings"""
    return Settings(
        SHOPIFY_WEBHOOK_SECRET=WEBHOOK_SECRET,
        SHOPIFY_SHOP_URL="test-shop.myshopify.com",
        SHOPIFY_ADMIN_API_ACCESS_TOKEN="shpat_test",
        SHOPIFY_API_VERSION="2024-04",
        SMTP_HOST="smtp.example.com",
        SMTP_USERNAME="alerts@example.com",
        SMTP_PASSWORD="secret",
        SMTP_FROM_EMAIL="alerts@example.com",
        NOTIFICATION_EMAILS="owner@example.com,buyer@example.com",
        OWNER_NOTIFICATION_EMAIL="owner@example.com",
        STOREFRONT_URL="https://shop.example.com",
    )


@pytest.fixture
def store():
    return MockStateStore()


@pytest.fixture
def catalog():
    return MockCatalogClient()


@pytest.fixture
def notifier():
    return MockNotifier()


@pytest.fixture
def processor(catalog, store, notifier, settings):
    return WebhookProcessor(catalog=catalog, store=store, notifier=notifier, settings=settings)


@pytest.fixture
def test_client(settings, processor, store, notifier):
    """Provide a test client wired to the in-memory collaborators"""
    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_webhook_processor] = lambda: processor
    app.dependency_overrides[get_state_store] = lambda: store
    app.dependency_overrides[get_notifier] = lambda: notifier
    app.dependency_overrides[get_waitlist_service] = lambda: WaitlistService(store, notifier, settings)
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def signed_post(test_client):
    """POST a webhook body signed with the test secret"""
    def _post(payload, topic=None, secret=WEBHOOK_SECRET, raw: bytes = None):
        body = raw if raw is not None else json.dumps(payload).encode()
        headers = {SIGNATURE_HEADER: compute_signature(body, secret)}
        if topic:
            headers[TOPIC_HEADER] = topic
        return test_client.post("/webhooks/shopify", content=body, headers=headers)
    return _post

"""
Shared fixtures.

Settings are read once at import time, so the environment is pointed at a
throwaway SQLite file before anything from ghost_cro is imported.
"""
import os
import tempfile
from functools import partial

_TEST_DIR = tempfile.mkdtemp(prefix="ghost_cro_tests_")

os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_TEST_DIR, 'ghost_cro_test.db')}"
os.environ["ENVIRONMENT"] = "test"
os.environ["ENABLE_SCHEDULER"] = "false"
os.environ["SHOPIFY_CLIENT_ID"] = "test-client-id"
os.environ["SHOPIFY_CLIENT_SECRET"] = "test-client-secret"
os.environ["SHOPIFY_WEBHOOK_SECRET"] = "test-webhook-secret"
os.environ["CRON_SECRET"] = "test-cron-secret"
os.environ["APP_URL"] = "http://localhost:3000"
os.environ["ANTHROPIC_API_KEY"] = ""

import httpx  # noqa: E402
import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from ghost_cro.config import get_settings  # noqa: E402
from ghost_cro.connectors.shopify import ShopifyClient  # noqa: E402
from ghost_cro.main import app  # noqa: E402
from ghost_cro.models import GA4Connection, Store, Subscription, TestResultRecord  # noqa: E402
from ghost_cro.models.base import SessionLocal, init_db  # noqa: E402
from ghost_cro.schemas import TestResult  # noqa: E402
from ghost_cro.api.shopify import get_shopify_client_factory  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def _database():
    init_db()
    yield


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        for model in (TestResultRecord, Subscription, Store, GA4Connection):
            session.query(model).delete()
        session.commit()
        session.close()


@pytest.fixture
def client(db):
    # db is requested so tables are emptied after each API test
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def shopify_transport():
    """
    Route Shopify calls made by the API through a MockTransport.

    Usage: shopify_transport(handler) where handler(request) -> httpx.Response
    """
    def install(handler):
        transport = httpx.MockTransport(handler)
        app.dependency_overrides[get_shopify_client_factory] = lambda: partial(ShopifyClient, transport=transport)
        return transport

    yield install
    app.dependency_overrides.pop(get_shopify_client_factory, None)


def make_test_result(**overrides) -> TestResult:
    data = {
        "id": "test_1700000000000_abc123",
        "date": "2024-01-15T10:00:00Z",
        "url": "https://demo-store.myshopify.com/products/tee",
        "personaMix": "balanced",
        "score": 62,
        "issuesFound": 3,
        "status": "completed",
        "frictionPoints": {
            "critical": [
                {
                    "id": "critical_0",
                    "title": "Shipping cost revealed at checkout",
                    "location": "Checkout - shipping step",
                    "impact": "~23% abandonment",
                    "affected": "Budget-Conscious Parent, Discount Hunter",
                    "fix": "Show shipping estimate on the product page",
                }
            ],
            "high": [
                {
                    "id": "high_0",
                    "title": "No trust badges near Add to Cart",
                    "location": "Product page",
                    "impact": "12% of shoppers hesitate",
                    "affected": "Skeptical Researcher",
                    "fix": "Add payment and guarantee badges",
                }
            ],
            "medium": [
                {
                    "id": "medium_0",
                    "title": "Reviews below the fold",
                    "location": "Product page",
                    "impact": "5%",
                    "affected": "First-Time Visitor",
                    "fix": "Move the star rating under the title",
                }
            ],
            "working": ["Clear product photography", "Fast page load"],
        },
        "personaResults": [
            {
                "id": "persona_0",
                "name": "Budget-Conscious Parent",
                "demographics": "Age 34, $65K, Mobile",
                "verdict": "abandon",
                "reasoning": "I didn't expect $12 shipping.",
                "abandonPoint": "Checkout - saw shipping costs",
            },
            {
                "id": "persona_1",
                "name": "Impulse Buyer",
                "demographics": "Age 26, $85K, Mobile",
                "verdict": "purchase",
                "reasoning": "Looks great, bought it.",
                "abandonPoint": None,
            },
        ],
        "recommendations": [
            {
                "priority": 1,
                "title": "Show shipping early",
                "impact": "+15% conversion",
                "effort": "low",
                "description": "Add a shipping estimator to the product page.",
            }
        ],
        "funnelData": {"landed": 1000, "cart": 320, "checkout": 180, "purchased": 95},
    }
    data.update(overrides)
    return TestResult.model_validate(data)


@pytest.fixture
def sample_result():
    return make_test_result()

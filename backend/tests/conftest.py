"""
Pytest configuration and shared fixtures for backend tests.

WHAT: Test markers, an isolated SQLite database and shared chat fixtures
WHY: Every test starts from empty tables and a fresh provider singleton
HOW: Point settings at a temp database before the package is imported,
     create/drop tables per test, build conversations through the store
"""

import os
import tempfile

# Settings are read at import time, so the environment comes first
_TEST_DIR = tempfile.mkdtemp(prefix="reride_chat_tests_")
os.environ["DATABASE_URL"] = f"sqlite:///{_TEST_DIR}/test.db"
os.environ["LOG_FILE"] = ""
os.environ["LLM_PROVIDER"] = "lm_studio"
os.environ["LLM_BASE_URL"] = "http://localhost:1234/v1"
os.environ["LLM_API_KEY"] = ""
os.environ["LLM_MAX_RETRIES"] = "2"
os.environ["LLM_RETRY_DELAY"] = "0"
os.environ["COUNTER_OFFER_ROLES"] = "seller"

import pytest

from reride_chat.core.database import Base, engine, init_db
from reride_chat.core.conversation_store import conversation_store
from reride_chat.llm.provider_factory import reset_provider
from reride_chat.models.chat import Conversation, SenderRole, UserRole, Viewer
from reride_chat.services.offer_state_machine import build_offer_draft


CUSTOMER_EMAIL = "asha@example.com"
SELLER_EMAIL = "ravi.motors@example.com"
VEHICLE_ID = 42
LISTING_PRICE = 600000


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "unit: Unit tests (isolated component tests)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests (HTTP layer + store + services)"
    )


@pytest.fixture(autouse=True)
def reset_provider_singleton():
    """Clear the LLM provider cache between tests."""
    reset_provider()
    yield
    reset_provider()


@pytest.fixture(autouse=True)
def fresh_database():
    """
    Empty tables for each test.

    WHAT: Create tables before, drop them after
    WHY: Test isolation
    HOW: init_db() registers the ORM models and runs create_all
    """
    init_db()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def customer() -> Viewer:
    return Viewer(email=CUSTOMER_EMAIL, role=UserRole.CUSTOMER, name="Asha")


@pytest.fixture
def seller() -> Viewer:
    return Viewer(email=SELLER_EMAIL, role=UserRole.SELLER, name="Ravi Motors")


@pytest.fixture
def admin() -> Viewer:
    return Viewer(email="mod@reride.example", role=UserRole.ADMIN, name="Moderator")


@pytest.fixture
def outsider() -> Viewer:
    return Viewer(email="someone.else@example.com", role=UserRole.SELLER)


@pytest.fixture
def conversation() -> Conversation:
    """A stored, empty conversation between the customer and seller fixtures."""
    stored, _ = conversation_store.create_conversation(
        Conversation(
            id=f"{CUSTOMER_EMAIL}-{VEHICLE_ID}",
            customer_id=CUSTOMER_EMAIL,
            customer_name="Asha",
            seller_id=SELLER_EMAIL,
            vehicle_id=VEHICLE_ID,
            vehicle_name="2019 Maruti Swift VXI",
            vehicle_price=LISTING_PRICE,
        )
    )
    return stored


@pytest.fixture
def offered(conversation) -> Conversation:
    """The conversation after the buyer offered 500000."""
    return conversation_store.append_message(
        conversation.id, build_offer_draft(SenderRole.BUYER, 500000)
    )


def identity_headers(viewer: Viewer) -> dict:
    headers = {"X-User-Email": viewer.email, "X-User-Role": viewer.role.value}
    if viewer.name:
        headers["X-User-Name"] = viewer.name
    return headers


@pytest.fixture
def headers_for():
    """Identity headers for TestClient requests: headers_for(viewer)."""
    return identity_headers

"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add project root to sys.path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra.bootstrap import InfraBootstrap
from infra.config import InfraConfig
from notifications import StubPushProvider
from storage import InMemoryDocumentStore
from transport.whatsapp.sender import StubMessageGateway


def make_config(**overrides) -> InfraConfig:
    """InfraConfig for tests: in-memory store, stub gateway and push."""
    values = dict(
        store_backend="memory",
        sqlite_db_path=":memory:",
        firebase_service_account=None,
        whatsapp_backend="stub",
        whatsapp_access_token=None,
        whatsapp_phone_number_id=None,
        whatsapp_api_version="v17.0",
        whatsapp_template_language="en_US",
        whatsapp_verify_token="test_verify_token",
        whatsapp_app_secret=None,
        push_backend="stub",
        expo_push_url="https://push.test/send",
        expo_access_token=None,
        push_batch_size=100,
        default_country_code="91",
        cart_recovery_fallback_url="https://shop.test/cart",
        payu_salt="test_salt",
    )
    values.update(overrides)
    return InfraConfig(**values)


@pytest.fixture
def config_factory():
    return make_config


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def gateway():
    return StubMessageGateway()


@pytest.fixture
def push_provider():
    return StubPushProvider()


@pytest.fixture
def bootstrap(config, store, gateway, push_provider):
    """Fully wired services over in-memory fakes."""
    InfraBootstrap.reset()
    yield InfraBootstrap(config, store=store, gateway=gateway, push_provider=push_provider)
    InfraBootstrap.reset()

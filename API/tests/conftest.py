import os

# Default env for app settings in tests (must be set before app modules import settings).
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("BTCPAY_WEBHOOKS_SECRET", "btcpay-test-secret")
os.environ.setdefault("STRIPE_EVENTS_SECRET", "whsec_test")
os.environ.setdefault("STUDENTS_DOMAIN", "https://academy.test")
os.environ.setdefault("CHECKOUT_DOMAIN", "https://academy.test")

import pytest
from sqlalchemy.pool import StaticPool

from core.pricing import PricingCatalog
from database import DatabaseConnection
from services.gateways import GatewayRegistry
from services.onboarding import Onboarding
from tests.fakes import (
    FakeBTCPay, FakeCommunity, FakeEmail, FakeLMS, FakeStripe, sequential_passphrases,
)


@pytest.fixture
def database():
    conn = DatabaseConnection("sqlite://", poolclass=StaticPool)
    conn.create_tables()
    yield conn
    conn.drop_tables()
    conn.engine.dispose()


@pytest.fixture
def db_session(database):
    session = database.get_session_direct()
    yield session
    session.close()


@pytest.fixture
def catalog():
    return PricingCatalog.default()


@pytest.fixture
def stripe_gateway():
    return FakeStripe()


@pytest.fixture
def btcpay_gateway():
    return FakeBTCPay()


@pytest.fixture
def gateways(stripe_gateway, btcpay_gateway):
    return GatewayRegistry([stripe_gateway, btcpay_gateway])


@pytest.fixture
def lms():
    return FakeLMS()


@pytest.fixture
def community():
    return FakeCommunity()


@pytest.fixture
def email():
    return FakeEmail()


@pytest.fixture
def onboarding(lms, community, email):
    return Onboarding(lms=lms, community=community, email=email, passphrase=sequential_passphrases())

"""Test configuration and fixtures."""

import os

# The module-level engine is built from settings at import time
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("BEARER_TOKEN_SECRET", "test-secret")
os.environ.setdefault("PAYMENT_CALLBACK_SECRET", "test-callback-secret")

from typing import Any, Optional  # noqa: E402

import jwt  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from charter_engine.clients.notifications import NotificationDispatcher, NotificationKind  # noqa: E402
from charter_engine.clients.payments import PaymentGateway, PaymentSession  # noqa: E402
from charter_engine.core.config import settings  # noqa: E402
from charter_engine.core.database import Base  # noqa: E402
from charter_engine.core.dependencies import get_db, get_notifier, get_payment_gateway  # noqa: E402
from charter_engine.core.exceptions import UpstreamUnavailableError  # noqa: E402
from charter_engine.models import *  # noqa: E402,F403 - Import all models
from charter_engine.models import Charter, ReferralCode  # noqa: E402

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class FakePaymentGateway(PaymentGateway):
    """Records sessions and voids; can be switched to fail like an unreachable processor."""

    def __init__(self):
        self.sessions: list[dict[str, Any]] = []
        self.voided: list[str] = []
        self.fail = False

    async def create_session(
        self,
        booking_id: str,
        amount: int,
        currency: str,
        customer_ref: str,
    ) -> PaymentSession:
        if self.fail:
            raise UpstreamUnavailableError("payments")
        self.sessions.append({
            "booking_id": booking_id,
            "amount": amount,
            "currency": currency,
            "customer_ref": customer_ref,
        })
        return PaymentSession(
            session_id=f"ps_{booking_id}",
            checkout_url=f"https://pay.test/checkout/{booking_id}",
        )

    async def void_session(self, booking_id: str) -> None:
        self.voided.append(booking_id)


class RecordingNotifier(NotificationDispatcher):
    """Keeps every notification in memory."""

    def __init__(self):
        self.sent: list[tuple[NotificationKind, str, dict[str, Any]]] = []

    async def send(self, kind: NotificationKind, recipient: str, payload: dict[str, Any]) -> None:
        self.sent.append((kind, recipient, payload))

    def of_kind(self, kind: NotificationKind) -> list[tuple[NotificationKind, str, dict[str, Any]]]:
        return [sent for sent in self.sent if sent[0] == kind]


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session


@pytest.fixture
def payments():
    return FakePaymentGateway()


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest_asyncio.fixture(scope="function")
async def charter(test_session):
    """Captain C1's half-day charter at $400 / full-day at $700."""
    charter = Charter(
        captain_id="C1",
        name="Inshore Redfish",
        price_half_day=40000,
        price_full_day=70000,
        currency="USD",
    )
    test_session.add(charter)
    await test_session.commit()
    await test_session.refresh(charter)
    return charter


@pytest_asyncio.fixture(scope="function")
async def second_charter(test_session):
    """Another charter run by the same captain."""
    charter = Charter(
        captain_id="C1",
        name="Offshore Tuna",
        price_half_day=65000,
        price_full_day=120000,
        currency="USD",
    )
    test_session.add(charter)
    await test_session.commit()
    await test_session.refresh(charter)
    return charter


@pytest_asyncio.fixture(scope="function")
async def save10(test_session):
    """The $10 single-use-per-customer referral code."""
    code = ReferralCode(code="SAVE10", discount_amount=1000)
    test_session.add(code)
    await test_session.commit()
    await test_session.refresh(code)
    return code


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session, payments, notifier):
    """Create the application with its collaborators replaced."""
    from charter_engine.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_payment_gateway] = lambda: payments
    app.dependency_overrides[get_notifier] = lambda: notifier

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def make_operator_token(operator_id: str = "op_1", captain_id: Optional[str] = "C1") -> str:
    """Sign an operator token the way the admin console does."""
    return jwt.encode(
        {"sub": operator_id, "captain_id": captain_id, "roles": ["operator"]},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


def make_customer_token(customer_ref: str = "cust_1") -> str:
    """Sign a customer session token carrying the booking owner reference."""
    return jwt.encode(
        {"sub": f"user_{customer_ref}", "customer_ref": customer_ref, "roles": ["customer"]},
        settings.bearer_token_secret,
        algorithm="HS256",
    )


def make_processor_token(processor_id: str = "psp_sandbox") -> str:
    """Sign a callback token the way the payment processor does."""
    return jwt.encode(
        {"sub": processor_id, "roles": ["payment_processor"]},
        settings.payment_callback_secret,
        algorithm="HS256",
    )


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {make_operator_token()}"}


@pytest.fixture
def customer_headers():
    return {"Authorization": f"Bearer {make_customer_token()}"}


@pytest.fixture
def processor_headers():
    return {"Authorization": f"Bearer {make_processor_token()}"}


@pytest.fixture
def sample_booking_data(charter):
    """A future half-day booking on the C1 charter."""
    return {
        "charter_id": str(charter.id),
        "date": "2099-07-04",
        "customer_ref": "cust_1",
        "duration": "half_day",
        "party_size": 4,
    }


@pytest.fixture
def sample_waitlist_data(charter):
    return {
        "charter_id": str(charter.id),
        "date": "2099-07-04",
        "customer": {
            "customer_ref": "cust_2",
            "email": "cust2@example.com",
            "phone": "+15550100",
        },
        "party_size": 2,
    }

# =============================================================================
# tests/conftest.py - Pytest Configuration
# =============================================================================
# This module provides pytest fixtures and configuration for all tests.
#
# Key features:
# - Sets up mock environment variables before any imports
# - Swaps the Supabase singleton for an in-memory fake
# - Replaces the Stripe gateway so no test reaches the network
# - Provides an API client with a signed-in user
# =============================================================================

import os
from unittest.mock import MagicMock, patch
from uuid import UUID

# =============================================================================
# Set up test environment BEFORE any imports
# =============================================================================
# This must happen before importing app.config which loads settings immediately

os.environ.setdefault("SUPABASE_URL", "https://test-project.supabase.co")
os.environ.setdefault("SUPABASE_ANON_KEY", "test-anon-key")
os.environ.setdefault("SUPABASE_SERVICE_KEY", "test-service-key")
os.environ.setdefault("SUPABASE_JWT_SECRET", "test-jwt-secret")
os.environ.setdefault("STRIPE_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_WEBHOOK_SECRET", "whsec_dummy")
os.environ.setdefault("ENVIRONMENT", "development")
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("REALTIME_ENABLED", "false")
os.environ.setdefault("NOTIFICATIONS_ASYNC", "false")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

import pytest

from lib.rate_limit import clear_rate_limits
from lib.stripe_client import PaymentIntentResult, RefundResult, TransferResult
from lib.supabase_client import SupabaseClient
from tests.fakes import FakeSupabase


# =============================================================================
# Identities
# =============================================================================

BUYER_ID = "11111111-1111-4111-8111-111111111111"
SELLER_USER_ID = "22222222-2222-4222-8222-222222222222"
PROVIDER_ID = "33333333-3333-4333-8333-333333333333"
OTHER_USER_ID = "44444444-4444-4444-8444-444444444444"


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(autouse=True)
def _reset_rate_limits():
    clear_rate_limits()
    yield
    clear_rate_limits()


@pytest.fixture
def fake_db():
    """In-memory database installed as the Supabase singleton."""
    db = FakeSupabase()
    with patch.object(SupabaseClient, "_instance", db):
        yield db


@pytest.fixture
def stripe_gateway():
    """MagicMock standing in for StripeGateway inside the payment service."""
    gateway = MagicMock()
    gateway.create_payment_intent.return_value = PaymentIntentResult(
        id="pi_test_123",
        client_secret="pi_test_123_secret_abc",
        status="requires_payment_method",
    )
    gateway.transfer_to_seller.side_effect = lambda amount, currency, *args, **kwargs: TransferResult(
        id="tr_test_123", amount=amount, currency=currency,
    )
    gateway.refund_payment.side_effect = lambda payment_intent_id, amount=None, **kwargs: RefundResult(
        id="re_test_123", amount=amount or 0, status="succeeded",
    )
    with patch("core.services.payment_service.StripeGateway", gateway):
        yield gateway


@pytest.fixture
def seeded_parties(fake_db):
    """A buyer, and a seller with a Stripe-connected provider profile."""
    fake_db.seed(
        "profiles",
        {"id": BUYER_ID, "full_name": "Bea Buyer", "email": "bea@example.com"},
        {"id": SELLER_USER_ID, "full_name": "Sam Seller", "email": "sam@example.com"},
        {"id": OTHER_USER_ID, "full_name": "Olly Other", "email": "olly@example.com"},
    )
    fake_db.seed(
        "provider_profiles",
        {
            "id": PROVIDER_ID,
            "user_id": SELLER_USER_ID,
            "stripe_account_id": "acct_seller",
            "day_rate": 800,
            "hourly_rate": 100,
            "currency": "GBP",
        },
    )
    return fake_db


@pytest.fixture
def make_order(seeded_parties):
    """Factory for orders between the seeded buyer and seller."""

    def _make(**overrides):
        row = {
            "buyer_id": BUYER_ID,
            "seller_id": PROVIDER_ID,
            "status": "pending",
            "escrow_status": "pending",
            "total_amount": 100000,
            "amount_released": 0,
            "currency": "GBP",
            "order_number": "ORD-1001",
            "stripe_payment_intent_id": None,
        }
        row.update(overrides)
        return seeded_parties.seed("orders", row)[0]

    return _make


@pytest.fixture
def api_client(fake_db):
    """TestClient signed in as the buyer. Call `api_client.as_user(id)` to switch."""
    from fastapi.testclient import TestClient

    from app.auth import AuthUser, get_current_user
    from app.main import app

    state = {"user_id": BUYER_ID}

    async def _current_user():
        return AuthUser(id=UUID(state["user_id"]), email="test@example.com")

    app.dependency_overrides[get_current_user] = _current_user
    with TestClient(app) as client:
        client.as_user = lambda user_id: state.update(user_id=user_id)
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def paid_order(make_order, fake_db):
    """An in-progress order whose payment is held in escrow."""
    order = make_order(
        status="in_progress",
        escrow_status="held",
        stripe_payment_intent_id="pi_paid_123",
    )
    fake_db.seed("escrow_transactions", {
        "order_id": order["id"],
        "type": "hold",
        "amount": order["total_amount"],
    })
    return order


@pytest.fixture
def make_retainer(seeded_parties):
    """Factory for retainers between the seeded buyer and provider."""

    def _make(**overrides):
        row = {
            "buyer_id": BUYER_ID,
            "seller_id": PROVIDER_ID,
            "weekly_hours": 10,
            "hourly_rate": 100,
            "currency": "GBP",
            "status": "active",
        }
        row.update(overrides)
        return seeded_parties.seed("retainers", row)[0]

    return _make

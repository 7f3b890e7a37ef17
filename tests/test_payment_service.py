# =============================================================================
# tests/test_payment_service.py - Escrow Payment Tests
# =============================================================================
# PaymentService and EscrowLedger against the in-memory database, with the
# Stripe gateway mocked.
#
# Run with: pytest tests/test_payment_service.py -v
# =============================================================================

import pytest

from app.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
    PaymentProviderError,
)
from core.models.orders import EscrowStatus
from core.services.escrow_ledger import EscrowLedger, calculate_platform_fee
from core.services.payment_service import PaymentService, format_amount
from tests.conftest import PROVIDER_ID, SELLER_USER_ID


def _ledger_types(db, order_id):
    return [row["type"] for row in db.rows("escrow_transactions") if row["order_id"] == order_id]


class TestPlatformFee:
    """Tests for the fee calculation."""

    def test_default_eight_percent(self):
        assert calculate_platform_fee(10000) == 800

    def test_rounds_to_nearest_unit(self):
        assert calculate_platform_fee(12345) == 988
        assert calculate_platform_fee(6) == 0
        assert calculate_platform_fee(7) == 1

    def test_half_rounds_up(self):
        assert calculate_platform_fee(10, percent=5) == 1
        assert calculate_platform_fee(30, percent=5) == 2

    def test_format_amount(self):
        assert format_amount(12500, "gbp") == "125.00 GBP"


class TestEscrowLedger:
    def test_balance_folds_ledger(self):
        balance = EscrowLedger.summarize([
            {"type": "deposit", "amount": 1000},
            {"type": "hold", "amount": 1000},
            {"type": "release", "amount": 460},
            {"type": "fee_deduction", "amount": 40},
            {"type": "bogus", "amount": 999},
        ])
        assert balance.total_held == 1000
        assert balance.total_released == 460
        assert balance.total_fees == 40
        assert balance.balance == 500

    def test_set_escrow_status_is_conditional(self, make_order, fake_db):
        """A status read before a concurrent change no longer matches."""
        order = make_order(escrow_status="held")

        with pytest.raises(InvalidTransitionError) as exc_info:
            EscrowLedger.set_escrow_status(order["id"], EscrowStatus.RELEASED, current_status="partial_release")

        assert "changed while this request was running" in exc_info.value.message
        assert fake_db.get("orders", order["id"])["escrow_status"] == "held"

    def test_set_escrow_status_refuses_regression(self, make_order):
        order = make_order(escrow_status="released")
        with pytest.raises(InvalidTransitionError):
            EscrowLedger.set_escrow_status(order["id"], EscrowStatus.HELD)


class TestInitiatePayment:
    """Tests for PaymentService.initiate_payment()."""

    def test_creates_intent_and_records_deposit(self, make_order, fake_db, stripe_gateway):
        order = make_order()

        result = PaymentService.initiate_payment(order["id"], 100000)

        assert result["payment_intent"]["client_secret"] == "pi_test_123_secret_abc"
        stripe_gateway.create_payment_intent.assert_called_once()
        assert stripe_gateway.create_payment_intent.call_args.kwargs["currency"] == "GBP"

        stored = fake_db.get("orders", order["id"])
        assert stored["stripe_payment_intent_id"] == "pi_test_123"
        assert stored["platform_fee"] == 8000
        assert _ledger_types(fake_db, order["id"]) == ["deposit"]

    def test_deposit_does_not_count_towards_balance(self, make_order, stripe_gateway):
        order = make_order()
        PaymentService.initiate_payment(order["id"], 100000)
        assert EscrowLedger.get_balance(order["id"]).balance == 0

    def test_second_intent_is_refused(self, make_order, stripe_gateway):
        order = make_order(stripe_payment_intent_id="pi_existing")
        with pytest.raises(InvalidInputError) as exc_info:
            PaymentService.initiate_payment(order["id"], 100000)
        assert "already has a payment intent" in exc_info.value.message
        stripe_gateway.create_payment_intent.assert_not_called()

    def test_amount_must_be_positive(self, make_order, stripe_gateway):
        order = make_order()
        with pytest.raises(InvalidInputError):
            PaymentService.initiate_payment(order["id"], 0)

    def test_unknown_order(self, fake_db, stripe_gateway):
        with pytest.raises(NotFoundError):
            PaymentService.initiate_payment("00000000-0000-4000-8000-000000000000", 500)


class TestConfirmPayment:
    """Tests for PaymentService.confirm_payment()."""

    def test_holds_funds_and_accepts_order(self, make_order, fake_db):
        order = make_order(stripe_payment_intent_id="pi_abc")

        result = PaymentService.confirm_payment("pi_abc")

        assert result["escrow_status"] == "held"
        assert result["already_confirmed"] is False
        stored = fake_db.get("orders", order["id"])
        assert stored["escrow_status"] == "held"
        assert stored["status"] == "accepted"
        assert EscrowLedger.get_balance(order["id"]).balance == 100000

    def test_is_idempotent(self, make_order, fake_db):
        """Webhook retries don't add a second hold."""
        order = make_order(stripe_payment_intent_id="pi_abc")

        PaymentService.confirm_payment("pi_abc")
        second = PaymentService.confirm_payment("pi_abc")

        assert second["already_confirmed"] is True
        assert _ledger_types(fake_db, order["id"]).count("hold") == 1

    def test_notifies_seller_in_app(self, make_order, fake_db):
        make_order(stripe_payment_intent_id="pi_abc")
        PaymentService.confirm_payment("pi_abc")

        notes = [n for n in fake_db.rows("notifications") if n["user_id"] == SELLER_USER_ID]
        assert len(notes) == 1
        assert notes[0]["title"] == "Payment Received"

    def test_refunded_order_cannot_be_confirmed(self, make_order):
        make_order(stripe_payment_intent_id="pi_abc", escrow_status="refunded")
        with pytest.raises(InvalidTransitionError):
            PaymentService.confirm_payment("pi_abc")

    def test_unknown_intent(self, fake_db):
        with pytest.raises(NotFoundError):
            PaymentService.confirm_payment("pi_missing")


class TestReleaseToSeller:
    """Tests for PaymentService.release_to_seller()."""

    def test_full_release(self, paid_order, fake_db, stripe_gateway):
        result = PaymentService.release_to_seller(paid_order["id"])

        assert result.seller_amount == 92000
        assert result.platform_fee == 8000
        assert result.escrow_status == EscrowStatus.RELEASED
        assert stripe_gateway.transfer_to_seller.call_args.kwargs["seller_account_id"] == "acct_seller"

        assert fake_db.get("orders", paid_order["id"])["escrow_status"] == "released"
        assert EscrowLedger.get_balance(paid_order["id"]).balance == 0

    def test_milestone_release_is_partial(self, paid_order, fake_db, stripe_gateway):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"],
            "title": "Wireframes",
            "amount": 40000,
            "status": "approved",
        })[0]

        result = PaymentService.release_to_seller(paid_order["id"], milestone_id=milestone["id"])

        assert result.seller_amount == 36800
        assert result.escrow_status == EscrowStatus.PARTIAL_RELEASE
        assert fake_db.get("order_milestones", milestone["id"])["status"] == "paid"
        assert EscrowLedger.get_balance(paid_order["id"]).balance == 60000

    @pytest.mark.parametrize("status", ["submitted", "disputed", "paid"])
    def test_milestone_must_be_approved(self, status, paid_order, fake_db, stripe_gateway):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"], "title": "Draft", "amount": 1000, "status": status,
        })[0]
        with pytest.raises(InvalidInputError):
            PaymentService.release_to_seller(paid_order["id"], milestone_id=milestone["id"])
        stripe_gateway.transfer_to_seller.assert_not_called()

    def test_requires_held_escrow(self, make_order, stripe_gateway):
        order = make_order(escrow_status="pending")
        with pytest.raises(InvalidTransitionError) as exc_info:
            PaymentService.release_to_seller(order["id"])
        assert exc_info.value.message == "No funds available in escrow"

    def test_seller_without_stripe_account(self, paid_order, fake_db, stripe_gateway):
        fake_db.get("provider_profiles", PROVIDER_ID)["stripe_account_id"] = None

        with pytest.raises(InvalidInputError) as exc_info:
            PaymentService.release_to_seller(paid_order["id"])

        assert "Stripe onboarding" in exc_info.value.message
        assert fake_db.get("orders", paid_order["id"])["escrow_status"] == "held"

    def test_failed_transfer_leaves_escrow_held(self, paid_order, fake_db, stripe_gateway):
        stripe_gateway.transfer_to_seller.side_effect = PaymentProviderError("Card declined")

        with pytest.raises(PaymentProviderError):
            PaymentService.release_to_seller(paid_order["id"])

        assert fake_db.get("orders", paid_order["id"])["escrow_status"] == "held"
        assert _ledger_types(fake_db, paid_order["id"]) == ["hold"]


class TestProcessRefund:
    """Tests for PaymentService.process_refund()."""

    def test_full_refund(self, paid_order, fake_db, stripe_gateway):
        result = PaymentService.process_refund(paid_order["id"], reason="Seller unavailable")

        assert result["refund_id"] == "re_test_123"
        assert result["amount"] == 100000
        assert fake_db.get("orders", paid_order["id"])["escrow_status"] == "refunded"
        assert "refund" in _ledger_types(fake_db, paid_order["id"])

    def test_released_funds_cannot_be_refunded(self, make_order, stripe_gateway):
        order = make_order(escrow_status="released", stripe_payment_intent_id="pi_x")
        with pytest.raises(InvalidTransitionError):
            PaymentService.process_refund(order["id"])
        stripe_gateway.refund_payment.assert_not_called()

    def test_amount_cannot_exceed_total(self, paid_order, stripe_gateway):
        with pytest.raises(InvalidInputError):
            PaymentService.process_refund(paid_order["id"], amount=100001)

    def test_requires_payment(self, make_order, stripe_gateway):
        order = make_order()
        with pytest.raises(InvalidInputError) as exc_info:
            PaymentService.process_refund(order["id"])
        assert exc_info.value.message == "No payment found for this order"


class TestPaymentStatus:
    def test_totals(self, paid_order, fake_db, stripe_gateway):
        PaymentService.release_to_seller(paid_order["id"])

        status = PaymentService.get_payment_status(paid_order["id"])

        assert status["order"]["escrow_status"] == "released"
        assert status["totals"] == {
            "total_amount": 100000,
            "held_amount": 100000,
            "released_amount": 92000,
            "refunded_amount": 0,
            "platform_fees": 8000,
            "pending_release": 0,
        }

# =============================================================================
# tests/test_order_service.py - Order Workflow Tests
# =============================================================================
# Status changes by buyer and seller, milestones, and the event timeline.
#
# Run with: pytest tests/test_order_service.py -v
# =============================================================================

import pytest

from app.exceptions import (
    DatabaseError,
    InvalidInputError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from core.models.orders import OrderStatus
from core.services.order_service import OrderService
from tests.conftest import BUYER_ID, OTHER_USER_ID, SELLER_USER_ID


def _events(db, order_id):
    return [e["event_type"] for e in db.rows("order_events") if e["order_id"] == order_id]


class TestSellerActions:
    """Accept, decline, start and complete."""

    def test_accept(self, make_order, fake_db):
        order = make_order()

        updated = OrderService.accept_order(SELLER_USER_ID, order["id"])

        assert updated["status"] == "accepted"
        assert updated["accepted_at"] is not None
        assert _events(fake_db, order["id"]) == ["accepted"]

    def test_buyer_cannot_accept(self, make_order):
        order = make_order()
        with pytest.raises(NotAuthorizedError) as exc_info:
            OrderService.accept_order(BUYER_ID, order["id"])
        assert exc_info.value.message == "Only the seller can accept this order"

    def test_accept_twice_fails(self, make_order):
        order = make_order(status="accepted")
        with pytest.raises(InvalidTransitionError):
            OrderService.accept_order(SELLER_USER_ID, order["id"])

    def test_decline_records_reason(self, make_order, fake_db):
        order = make_order()

        OrderService.decline_order(SELLER_USER_ID, order["id"], reason="Fully booked")

        stored = fake_db.get("orders", order["id"])
        assert stored["status"] == "cancelled"
        assert stored["cancellation_reason"] == "Fully booked"
        assert _events(fake_db, order["id"]) == ["declined"]

    def test_decline_only_pending(self, make_order):
        order = make_order(status="accepted")
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService.decline_order(SELLER_USER_ID, order["id"])
        assert exc_info.value.message == "Only pending orders can be declined"

    def test_start_and_resume(self, make_order, fake_db):
        order = make_order(status="accepted")
        OrderService.start_order(SELLER_USER_ID, order["id"])
        assert fake_db.get("orders", order["id"])["started_at"] is not None

        disputed = make_order(status="disputed")
        OrderService.start_order(SELLER_USER_ID, disputed["id"])
        assert fake_db.get("orders", disputed["id"])["status"] == "in_progress"
        assert _events(fake_db, disputed["id"]) == ["resumed"]

    def test_complete_asks_buyer_without_releasing(self, paid_order, fake_db):
        """Delivery is recorded; escrow and status are untouched."""
        OrderService.complete_order(SELLER_USER_ID, paid_order["id"])

        stored = fake_db.get("orders", paid_order["id"])
        assert stored["status"] == "in_progress"
        assert stored["escrow_status"] == "held"
        assert _events(fake_db, paid_order["id"]) == ["delivered"]
        titles = [n["title"] for n in fake_db.rows("notifications") if n["user_id"] == BUYER_ID]
        assert titles == ["Order Delivered"]

    def test_complete_requires_in_progress(self, make_order):
        order = make_order(status="accepted")
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService.complete_order(SELLER_USER_ID, order["id"])
        assert exc_info.value.message == "Cannot complete order in accepted status"


class TestApproveCompletion:
    """Tests for OrderService.approve_completion()."""

    def test_releases_and_completes(self, paid_order, fake_db, stripe_gateway):
        result = OrderService.approve_completion(BUYER_ID, paid_order["id"])

        assert result["status"] == "completed"
        assert result["release"]["seller_amount"] == 92000
        stored = fake_db.get("orders", paid_order["id"])
        assert stored["escrow_status"] == "released"
        assert stored["completed_at"] is not None

    def test_works_from_disputed(self, paid_order, fake_db, stripe_gateway):
        fake_db.get("orders", paid_order["id"])["status"] = "disputed"
        result = OrderService.approve_completion(BUYER_ID, paid_order["id"])
        assert result["status"] == "completed"

    def test_unpaid_order(self, make_order, stripe_gateway):
        order = make_order(status="in_progress", escrow_status="pending")
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService.approve_completion(BUYER_ID, order["id"])
        assert exc_info.value.message.startswith("Cannot release payment - escrow is not held")
        stripe_gateway.transfer_to_seller.assert_not_called()

    def test_missing_payment_record(self, make_order, stripe_gateway):
        order = make_order(status="in_progress", escrow_status="held", stripe_payment_intent_id=None)
        with pytest.raises(InvalidInputError) as exc_info:
            OrderService.approve_completion(BUYER_ID, order["id"])
        assert exc_info.value.message == "Cannot release payment - no payment record found."

    def test_all_milestones_already_paid(self, make_order, stripe_gateway):
        order = make_order(status="in_progress", escrow_status="released", stripe_payment_intent_id="pi_x")

        result = OrderService.approve_completion(BUYER_ID, order["id"])

        assert result["status"] == "completed"
        assert result["release"] is None
        stripe_gateway.transfer_to_seller.assert_not_called()

    def test_seller_cannot_approve(self, paid_order, stripe_gateway):
        with pytest.raises(NotAuthorizedError) as exc_info:
            OrderService.approve_completion(SELLER_USER_ID, paid_order["id"])
        assert exc_info.value.message == "Not authorized to approve this order"


class TestDisputes:
    def test_buyer_opens_dispute(self, paid_order, fake_db):
        result = OrderService.open_dispute(BUYER_ID, paid_order["id"], "Delivered work is incomplete")

        assert result["status"] == "disputed"
        disputes = fake_db.rows("disputes")
        assert len(disputes) == 1
        assert disputes[0]["id"] == result["dispute_id"]
        seller_notes = [n for n in fake_db.rows("notifications") if n["user_id"] == SELLER_USER_ID]
        assert seller_notes[0]["title"] == "Dispute Opened"

    def test_reason_too_short(self, paid_order):
        with pytest.raises(InvalidInputError):
            OrderService.open_dispute(BUYER_ID, paid_order["id"], "bad")

    def test_only_buyer(self, paid_order):
        with pytest.raises(NotAuthorizedError) as exc_info:
            OrderService.open_dispute(SELLER_USER_ID, paid_order["id"], "Buyer is unresponsive")
        assert exc_info.value.message == "Only buyer can open dispute"

    def test_only_in_progress(self, make_order):
        order = make_order(status="accepted")
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService.open_dispute(BUYER_ID, order["id"], "Seller has gone quiet")
        assert exc_info.value.message == "Can only dispute orders in progress"

    def test_actions_hide_dispute_when_open(self, paid_order, fake_db):
        fake_db.seed("disputes", {"order_id": paid_order["id"], "status": "open"})
        actions = [a.action for a in OrderService.get_order_actions(BUYER_ID, paid_order["id"])]
        assert "dispute" not in actions
        assert "approve_milestone" in actions


class TestCancel:
    def test_buyer_cancels_unpaid_order(self, make_order, fake_db):
        order = make_order()

        OrderService.cancel_order(BUYER_ID, order["id"], reason="Changed plans")

        assert fake_db.get("orders", order["id"])["status"] == "cancelled"
        titles = [n["title"] for n in fake_db.rows("notifications") if n["user_id"] == SELLER_USER_ID]
        assert titles == ["Order Cancelled"]

    def test_paid_order_needs_refund(self, paid_order):
        with pytest.raises(InvalidInputError) as exc_info:
            OrderService.cancel_order(BUYER_ID, paid_order["id"])
        assert exc_info.value.suggestion == "Request a refund to cancel a paid order"

    def test_outsider(self, make_order):
        order = make_order()
        with pytest.raises(NotAuthorizedError):
            OrderService.cancel_order(OTHER_USER_ID, order["id"])

    def test_completed_order(self, make_order):
        order = make_order(status="completed", escrow_status="released")
        with pytest.raises(InvalidTransitionError):
            OrderService.cancel_order(BUYER_ID, order["id"])


class TestTransitionSafety:
    """Status writes are conditional on the status that was read."""

    def test_lost_race_is_reported(self, make_order, fake_db):
        order = make_order()
        stale = dict(order)
        fake_db.get("orders", order["id"])["status"] = "cancelled"

        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService._transition(stale, OrderStatus.ACCEPTED, SELLER_USER_ID, "accepted")

        assert "changed while this request was running" in exc_info.value.message

    def test_database_failure(self, make_order, fake_db):
        order = make_order()
        fake_db.fail("orders", "update")
        with pytest.raises(DatabaseError):
            OrderService.accept_order(SELLER_USER_ID, order["id"])

    def test_event_log_failure_does_not_fail_action(self, make_order, fake_db):
        order = make_order()
        fake_db.fail("order_events", "insert")
        updated = OrderService.accept_order(SELLER_USER_ID, order["id"])
        assert updated["status"] == "accepted"

    def test_history_is_oldest_first(self, make_order):
        order = make_order()
        OrderService.accept_order(SELLER_USER_ID, order["id"])
        OrderService.start_order(SELLER_USER_ID, order["id"])

        history = OrderService.get_order_history(BUYER_ID, order["id"])
        assert [e["event_type"] for e in history] == ["accepted", "started"]


class TestMilestones:
    """Tests for milestone creation, submission and disputes."""

    def test_create(self, make_order, fake_db):
        order = make_order(status="accepted")

        rows = OrderService.create_milestones(BUYER_ID, order["id"], [
            {"title": "Wireframes", "amount": 40000},
            {"title": "Build", "amount": 60000, "due_date": "2025-06-30"},
        ])

        assert [r["status"] for r in rows] == ["pending", "pending"]
        assert rows[1]["due_date"] == "2025-06-30"
        assert _events(fake_db, order["id"]) == ["milestones_created"]

    def test_total_cannot_exceed_order(self, make_order, fake_db):
        order = make_order()
        fake_db.seed("order_milestones", {"order_id": order["id"], "title": "Existing", "amount": 70000, "status": "pending"})

        with pytest.raises(InvalidInputError) as exc_info:
            OrderService.create_milestones(SELLER_USER_ID, order["id"], [{"title": "More", "amount": 40000}])
        assert "cannot exceed the order total" in exc_info.value.message

    @pytest.mark.parametrize("milestones", [
        [],
        [{"title": "  ", "amount": 100}],
        [{"title": "Zero", "amount": 0}],
    ])
    def test_invalid_input(self, make_order, milestones):
        order = make_order()
        with pytest.raises(InvalidInputError):
            OrderService.create_milestones(BUYER_ID, order["id"], milestones)

    def test_not_after_work_started(self, make_order):
        order = make_order(status="in_progress")
        with pytest.raises(InvalidTransitionError):
            OrderService.create_milestones(BUYER_ID, order["id"], [{"title": "Late", "amount": 100}])

    def test_submit(self, paid_order, fake_db):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"], "title": "Wireframes", "amount": 1000, "status": "pending",
        })[0]

        updated = OrderService.submit_milestone(SELLER_USER_ID, milestone["id"], notes="Figma link attached")

        assert updated["status"] == "submitted"
        assert updated["delivery_notes"] == "Figma link attached"

    def test_only_seller_submits(self, paid_order, fake_db):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"], "title": "Wireframes", "amount": 1000, "status": "pending",
        })[0]
        with pytest.raises(NotAuthorizedError) as exc_info:
            OrderService.submit_milestone(BUYER_ID, milestone["id"])
        assert exc_info.value.message == "Only the seller can submit milestone deliveries"

    def test_dispute_then_resubmit(self, paid_order, fake_db):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"], "title": "Wireframes", "amount": 1000, "status": "submitted",
        })[0]

        disputed = OrderService.dispute_milestone(BUYER_ID, milestone["id"], "Missing the mobile layouts")
        assert disputed["status"] == "disputed"
        assert disputed["dispute_reason"] == "Missing the mobile layouts"

        resubmitted = OrderService.submit_milestone(SELLER_USER_ID, milestone["id"])
        assert resubmitted["status"] == "submitted"

    def test_paid_milestone_cannot_be_disputed(self, paid_order, fake_db):
        milestone = fake_db.seed("order_milestones", {
            "order_id": paid_order["id"], "title": "Done", "amount": 1000, "status": "paid",
        })[0]
        with pytest.raises(InvalidTransitionError) as exc_info:
            OrderService.dispute_milestone(BUYER_ID, milestone["id"], "Changed my mind entirely")
        assert exc_info.value.message == "Cannot dispute a milestone that has already been paid"

    def test_dispute_requires_reason(self, fake_db):
        with pytest.raises(InvalidInputError) as exc_info:
            OrderService.dispute_milestone(BUYER_ID, "00000000-0000-4000-8000-000000000000", "  ")
        assert exc_info.value.message == "Dispute reason is required"

    def test_unknown_milestone(self, fake_db):
        with pytest.raises(NotFoundError):
            OrderService.submit_milestone(SELLER_USER_ID, "00000000-0000-4000-8000-000000000000")

    def test_list(self, paid_order, fake_db):
        fake_db.seed("order_milestones", {"order_id": paid_order["id"], "title": "A", "amount": 1, "status": "pending"})
        assert len(OrderService.list_milestones(SELLER_USER_ID, paid_order["id"])) == 1

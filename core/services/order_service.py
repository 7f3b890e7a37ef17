# =============================================================================
# core/services/order_service.py - Order and Milestone Workflow
# =============================================================================
# Status changes driven by the buyer or seller (accept, start, complete,
# cancel, dispute) and milestone setup/delivery. Payment operations live in
# payment_actions.py; approve_completion hands off to PaymentService.
#
# Every status write is conditional on the status that was read and is
# appended to the order_events timeline.
# =============================================================================

import logging
from typing import Any

from app.exceptions import (
    DatabaseError,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from app.websocket.broadcast import publish_order_updated
from core.models.notifications import NotificationPriority
from core.models.orders import (
    EscrowStatus,
    MilestoneStatus,
    OrderAction,
    OrderRole,
    OrderStatus,
)
from core.services.notification_service import notify
from core.services.order_access import get_order_for_party, seller_user_id
from core.services.order_state import (
    RELEASABLE_ESCROW,
    assert_transition,
    available_actions,
    can_transition_milestone,
)
from core.services.payment_service import PaymentService
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now

logger = logging.getLogger(__name__)

MIN_DISPUTE_REASON_LENGTH = 10


class OrderService:
    """
    Service for order status changes and milestones.
    """

    # -------------------------------------------------------------------------
    # Internal helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def log_event(
        order_id: str,
        event_type: str,
        actor_id: str,
        details: dict[str, Any] | None = None,
    ) -> None:
        """Append to order_events. Failures are logged, never raised."""
        try:
            client = SupabaseClient.get_client()
            client.table("order_events").insert({
                "order_id": normalize_uuid(order_id),
                "event_type": event_type,
                "actor_id": normalize_uuid(actor_id),
                "details": details or {},
                "created_at": utc_now().isoformat(),
            }).execute()
        except Exception as e:
            logger.warning(f"Failed to log order event {event_type} for {order_id}: {e}")

    @staticmethod
    def _transition(
        order: dict[str, Any],
        new_status: OrderStatus,
        actor_id: str,
        event_type: str,
        extra_fields: dict[str, Any] | None = None,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Validate and write one status change, then record and publish it."""
        current = order.get("status")
        assert_transition(current, new_status)

        update_data = {"status": new_status.value}
        if extra_fields:
            update_data.update(extra_fields)

        client = SupabaseClient.get_client()
        try:
            response = (
                client.table("orders")
                .update(update_data)
                .eq("id", str(order["id"]))
                .eq("status", current)
                .execute()
            )
        except Exception as e:
            logger.error(f"Failed to update order {order['id']}: {e}")
            raise DatabaseError(str(e), operation="update_order_status")

        if not response.data:
            raise InvalidTransitionError(
                "Order status changed while this request was running",
                current=current,
                requested=new_status.value,
            )

        updated = response.data[0]
        OrderService.log_event(str(order["id"]), event_type, actor_id, details)
        publish_order_updated(updated, status=new_status.value)
        logger.info(f"Order {order['id']}: {current} -> {new_status.value} by {actor_id}")
        return updated

    @staticmethod
    def _order_label(order: dict[str, Any]) -> str:
        return order.get("order_number") or str(order["id"])

    # -------------------------------------------------------------------------
    # Seller actions
    # -------------------------------------------------------------------------

    @staticmethod
    def accept_order(user_id: str, order_id: str) -> dict[str, Any]:
        """Seller accepts a pending order."""
        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.SELLER,),
            message="Only the seller can accept this order",
        )
        updated = OrderService._transition(
            order, OrderStatus.ACCEPTED, user_id, "accepted",
            extra_fields={"accepted_at": utc_now().isoformat()},
        )
        notify(
            str(order["buyer_id"]),
            title="Order Accepted",
            body=f"Your order {OrderService._order_label(order)} has been accepted.",
            notification_type="order_accepted",
            action_url=f"/orders/{order['id']}",
        )
        return updated

    @staticmethod
    def decline_order(user_id: str, order_id: str, reason: str | None = None) -> dict[str, Any]:
        """Seller declines a pending order; it becomes cancelled."""
        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.SELLER,),
            message="Only the seller can decline this order",
        )
        if order.get("status") != OrderStatus.PENDING.value:
            raise InvalidTransitionError("Only pending orders can be declined", current=order.get("status"))

        updated = OrderService._transition(
            order, OrderStatus.CANCELLED, user_id, "declined",
            extra_fields={"cancelled_at": utc_now().isoformat(), "cancellation_reason": reason},
            details={"reason": reason},
        )
        notify(
            str(order["buyer_id"]),
            title="Order Declined",
            body=f"Your order {OrderService._order_label(order)} was declined.",
            notification_type="order_declined",
            action_url=f"/orders/{order['id']}",
        )
        return updated

    @staticmethod
    def start_order(user_id: str, order_id: str) -> dict[str, Any]:
        """Seller starts work on an accepted order (or resumes a disputed one)."""
        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.SELLER,),
            message="Only the seller can start this order",
        )
        event = "resumed" if order.get("status") == OrderStatus.DISPUTED.value else "started"
        updated = OrderService._transition(
            order, OrderStatus.IN_PROGRESS, user_id, event,
            extra_fields={"started_at": utc_now().isoformat()} if event == "started" else None,
        )
        notify(
            str(order["buyer_id"]),
            title="Work Started" if event == "started" else "Work Resumed",
            body=f"Work on order {OrderService._order_label(order)} is under way.",
            priority=NotificationPriority.LOW,
            notification_type="order_started",
            action_url=f"/orders/{order['id']}",
        )
        return updated

    @staticmethod
    def complete_order(user_id: str, order_id: str) -> dict[str, Any]:
        """
        Seller marks the work delivered.

        The order stays in_progress until the buyer approves completion;
        this records the delivery and tells the buyer.
        """
        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.SELLER,),
            message="Only the seller can complete this order",
        )
        if order.get("status") != OrderStatus.IN_PROGRESS.value:
            raise InvalidTransitionError(
                f"Cannot complete order in {order.get('status')} status",
                current=order.get("status"),
            )

        OrderService.log_event(str(order["id"]), "delivered", user_id)
        notify(
            str(order["buyer_id"]),
            title="Order Delivered",
            body=f"Order {OrderService._order_label(order)} is ready for your review.",
            priority=NotificationPriority.HIGH,
            notification_type="order_delivered",
            action_url=f"/orders/{order['id']}",
        )
        return order

    # -------------------------------------------------------------------------
    # Buyer actions
    # -------------------------------------------------------------------------

    @staticmethod
    def approve_completion(user_id: str, order_id: str) -> dict[str, Any]:
        """
        Buyer accepts the delivered work: release remaining escrow, complete.

        Raises:
            InvalidTransitionError: If the order isn't in progress/disputed
                or escrow isn't held
            InvalidInputError: If there is no payment record
        """
        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.BUYER,),
            message="Not authorized to approve this order",
        )
        status = order.get("status")
        if status not in (OrderStatus.IN_PROGRESS.value, OrderStatus.DISPUTED.value):
            raise InvalidTransitionError(f"Cannot complete order in {status} status", current=status)

        escrow = order.get("escrow_status")
        if escrow == EscrowStatus.RELEASED.value:
            # Every milestone was already paid out
            updated = OrderService._transition(
                order, OrderStatus.COMPLETED, user_id, "completed",
                extra_fields={"completed_at": utc_now().isoformat()},
            )
            return {**updated, "release": None}

        if escrow not in [s.value for s in RELEASABLE_ESCROW]:
            logger.warning(f"Completion without held escrow attempted on order {order_id}")
            raise InvalidTransitionError(
                "Cannot release payment - escrow is not held. Please ensure payment has been received.",
                current=order.get("escrow_status"),
            )
        if not order.get("stripe_payment_intent_id"):
            raise InvalidInputError("Cannot release payment - no payment record found.")

        release = PaymentService.release_to_seller(str(order["id"]))
        order["escrow_status"] = release.escrow_status.value

        updated = OrderService._transition(
            order, OrderStatus.COMPLETED, user_id, "completed",
            extra_fields={"completed_at": utc_now().isoformat()},
            details={"transfer_id": release.transfer_id},
        )
        return {**updated, "release": release.model_dump(mode="json")}

    @staticmethod
    def open_dispute(user_id: str, order_id: str, reason: str) -> dict[str, Any]:
        """
        Buyer opens a dispute on an in-progress order.

        Creates a disputes row, then moves the order to disputed.
        """
        if not reason or len(reason.strip()) < MIN_DISPUTE_REASON_LENGTH:
            raise InvalidInputError("Please provide a more detailed reason (at least 10 characters)")

        order, _ = get_order_for_party(
            order_id, user_id, roles=(OrderRole.BUYER,),
            message="Only buyer can open dispute",
        )
        if order.get("status") != OrderStatus.IN_PROGRESS.value:
            raise InvalidTransitionError("Can only dispute orders in progress", current=order.get("status"))

        client = SupabaseClient.get_client()
        response = client.table("disputes").insert({
            "order_id": str(order["id"]),
            "raised_by": normalize_uuid(user_id),
            "reason": reason.strip(),
            "status": "open",
        }).execute()
        if not response.data:
            raise DatabaseError("Failed to create dispute", operation="open_dispute")
        dispute = response.data[0]

        updated = OrderService._transition(
            order, OrderStatus.DISPUTED, user_id, "disputed",
            details={"dispute_id": dispute["id"], "reason": reason.strip()},
        )
        notify(
            seller_user_id(order),
            title="Dispute Opened",
            body=f"The buyer opened a dispute on order {OrderService._order_label(order)}.",
            priority=NotificationPriority.CRITICAL,
            notification_type="dispute_opened",
            action_url=f"/orders/{order['id']}",
        )
        return {**updated, "dispute_id": dispute["id"]}

    # -------------------------------------------------------------------------
    # Either party
    # -------------------------------------------------------------------------

    @staticmethod
    def cancel_order(user_id: str, order_id: str, reason: str | None = None) -> dict[str, Any]:
        """
        Cancel an order that hasn't been paid for.

        Orders with held escrow must go through a refund instead.
        """
        order, role = get_order_for_party(order_id, user_id)

        if order.get("escrow_status") in [s.value for s in RELEASABLE_ESCROW]:
            raise InvalidInputError(
                "This order has been paid for",
                suggestion="Request a refund to cancel a paid order",
            )

        updated = OrderService._transition(
            order, OrderStatus.CANCELLED, user_id, "cancelled",
            extra_fields={"cancelled_at": utc_now().isoformat(), "cancellation_reason": reason},
            details={"reason": reason, "cancelled_by": role.value},
        )
        other = seller_user_id(order) if role == OrderRole.BUYER else str(order["buyer_id"])
        notify(
            other,
            title="Order Cancelled",
            body=f"Order {OrderService._order_label(order)} was cancelled by the {role.value}.",
            notification_type="order_cancelled",
            action_url=f"/orders/{order['id']}",
        )
        return updated

    @staticmethod
    def get_order_actions(user_id: str, order_id: str) -> list[OrderAction]:
        """Actions available to the caller right now."""
        order, role = get_order_for_party(order_id, user_id, message="Access denied")

        client = SupabaseClient.get_client()
        disputes = (
            client.table("disputes")
            .select("id")
            .eq("order_id", str(order["id"]))
            .eq("status", "open")
            .execute()
        )
        return available_actions(order["status"], role, dispute_open=bool(disputes.data))

    @staticmethod
    def get_order_history(user_id: str, order_id: str) -> list[dict[str, Any]]:
        """The order_events timeline, oldest first."""
        order, _ = get_order_for_party(order_id, user_id, message="Access denied")
        client = SupabaseClient.get_client()
        response = (
            client.table("order_events")
            .select("*")
            .eq("order_id", str(order["id"]))
            .order("created_at")
            .execute()
        )
        return response.data or []

    # -------------------------------------------------------------------------
    # Milestones
    # -------------------------------------------------------------------------

    @staticmethod
    def create_milestones(
        user_id: str,
        order_id: str,
        milestones: list[dict[str, Any]],
    ) -> list[dict[str, Any]]:
        """
        Split an order into milestones.

        Args:
            user_id: Buyer or seller
            order_id: The order UUID
            milestones: Dicts with title, amount, optional description/due_date

        Returns:
            The inserted milestone rows

        Raises:
            InvalidTransitionError: If the order is past accepted
            InvalidInputError: If the list is empty, a milestone is missing
                a title or positive amount, or the total exceeds the order
        """
        order, _ = get_order_for_party(
            order_id, user_id,
            message="Only the buyer or seller can create milestones",
        )
        status = order.get("status")
        if status not in (OrderStatus.PENDING.value, OrderStatus.ACCEPTED.value):
            raise InvalidTransitionError(
                f"Cannot create milestones for order with status '{status}'",
                current=status,
            )

        if not milestones:
            raise InvalidInputError("At least one milestone is required")
        for m in milestones:
            if not (m.get("title") or "").strip():
                raise InvalidInputError("Each milestone must have a title")
            if not m.get("amount") or int(m["amount"]) <= 0:
                raise InvalidInputError("Each milestone must have a positive amount")

        existing = SupabaseClient.fetch_order_milestones(order["id"])
        total = sum(int(m["amount"]) for m in milestones) + sum(int(m.get("amount") or 0) for m in existing)
        if total > int(order["total_amount"]):
            raise InvalidInputError(
                f"Milestone amounts ({total}) cannot exceed the order total ({order['total_amount']})"
            )

        rows = [
            {
                "order_id": str(order["id"]),
                "title": m["title"].strip(),
                "description": m.get("description"),
                "amount": int(m["amount"]),
                "due_date": str(m["due_date"]) if m.get("due_date") else None,
                "status": MilestoneStatus.PENDING.value,
            }
            for m in milestones
        ]

        client = SupabaseClient.get_client()
        response = client.table("order_milestones").insert(rows).execute()
        OrderService.log_event(str(order["id"]), "milestones_created", user_id, {"count": len(rows)})
        logger.info(f"Created {len(rows)} milestones for order {order['id']}")
        return response.data or []

    @staticmethod
    def submit_milestone(user_id: str, milestone_id: str, notes: str | None = None) -> dict[str, Any]:
        """Seller submits a milestone's delivery for buyer approval."""
        milestone = SupabaseClient.fetch_milestone(milestone_id)
        if not milestone:
            raise NotFoundError("Milestone", str(milestone_id))

        order, _ = get_order_for_party(
            str(milestone["order_id"]), user_id, roles=(OrderRole.SELLER,),
            message="Only the seller can submit milestone deliveries",
        )

        status = milestone.get("status")
        if not can_transition_milestone(status, MilestoneStatus.SUBMITTED):
            raise InvalidTransitionError(f"Cannot submit milestone with status '{status}'", current=status)

        client = SupabaseClient.get_client()
        response = (
            client.table("order_milestones")
            .update({
                "status": MilestoneStatus.SUBMITTED.value,
                "submitted_at": utc_now().isoformat(),
                "delivery_notes": notes,
            })
            .eq("id", normalize_uuid(milestone_id))
            .eq("status", status)
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError("Milestone was changed by another request", current=status)

        OrderService.log_event(str(order["id"]), "milestone_submitted", user_id, {"milestone_id": str(milestone_id)})
        notify(
            str(order["buyer_id"]),
            title="Milestone Submitted",
            body=f"'{milestone.get('title')}' is ready for your approval.",
            notification_type="milestone_submitted",
            action_url=f"/orders/{order['id']}",
        )
        return response.data[0]

    @staticmethod
    def dispute_milestone(user_id: str, milestone_id: str, reason: str) -> dict[str, Any]:
        """Either party disputes a milestone that hasn't been paid."""
        if not reason or not reason.strip():
            raise InvalidInputError("Dispute reason is required")
        if len(reason.strip()) < MIN_DISPUTE_REASON_LENGTH:
            raise InvalidInputError("Please provide a more detailed reason (at least 10 characters)")

        milestone = SupabaseClient.fetch_milestone(milestone_id)
        if not milestone:
            raise NotFoundError("Milestone", str(milestone_id))

        order, role = get_order_for_party(
            str(milestone["order_id"]), user_id,
            message="Only the buyer or seller can dispute a milestone",
        )

        status = milestone.get("status")
        if status == MilestoneStatus.PAID.value:
            raise InvalidTransitionError("Cannot dispute a milestone that has already been paid", current=status)
        if status == MilestoneStatus.DISPUTED.value:
            raise InvalidTransitionError("This milestone is already disputed", current=status)
        if not can_transition_milestone(status, MilestoneStatus.DISPUTED):
            raise InvalidTransitionError(f"Cannot dispute milestone with status '{status}'", current=status)

        client = SupabaseClient.get_client()
        response = (
            client.table("order_milestones")
            .update({"status": MilestoneStatus.DISPUTED.value, "dispute_reason": reason.strip()})
            .eq("id", normalize_uuid(milestone_id))
            .eq("status", status)
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError("Milestone was changed by another request", current=status)

        OrderService.log_event(
            str(order["id"]), "milestone_disputed", user_id,
            {"milestone_id": str(milestone_id), "reason": reason.strip(), "raised_by": role.value},
        )
        other = seller_user_id(order) if role == OrderRole.BUYER else str(order["buyer_id"])
        notify(
            other,
            title="Milestone Disputed",
            body=f"'{milestone.get('title')}' was disputed: {reason.strip()[:200]}",
            priority=NotificationPriority.HIGH,
            notification_type="milestone_disputed",
            action_url=f"/orders/{order['id']}",
        )
        return response.data[0]

    @staticmethod
    def list_milestones(user_id: str, order_id: str) -> list[dict[str, Any]]:
        """Milestones of an order, for either party."""
        order, _ = get_order_for_party(order_id, user_id, message="Access denied")
        return SupabaseClient.fetch_order_milestones(order["id"])

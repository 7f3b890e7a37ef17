# =============================================================================
# core/services/payment_actions.py - Guarded Payment Actions
# =============================================================================
# The user-facing escrow operations. Each one checks, in order:
#   1. input and rate limit
#   2. the caller is the right party (buyer / seller)
#   3. the order and milestone are in a state that allows the action
# and only then hands the money movement to PaymentService.
#
# Provider errors reach the caller already sanitized.
# =============================================================================

import logging
from typing import Any

from app.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from app.websocket.broadcast import publish_order_updated
from core.models.notifications import NotificationPriority
from core.models.orders import EscrowStatus, MilestoneStatus, OrderRole, OrderStatus
from core.services.escrow_ledger import EscrowLedger
from core.services.notification_service import notify
from core.services.order_access import get_order_for_party, seller_user_id
from core.services.order_state import RELEASABLE_ESCROW, can_transition_milestone
from core.services.payment_service import PaymentService
from lib.rate_limit import enforce_rate_limit
from lib.supabase_client import SupabaseClient
from lib.utils import is_valid_uuid, normalize_uuid, utc_now

logger = logging.getLogger(__name__)

MAX_REFUND_REASON_LENGTH = 1000

_RELEASABLE = [s.value for s in RELEASABLE_ESCROW]


def _require_uuid(value: str, label: str) -> str:
    if not is_valid_uuid(value):
        raise InvalidInputError(f"Invalid {label} ID")
    return normalize_uuid(str(value))


class PaymentActions:
    """
    Guarded escrow actions invoked by the API on behalf of a signed-in user.
    """

    @staticmethod
    def create_order_payment(user_id: str, order_id: str, client_ip: str) -> dict[str, Any]:
        """
        Start paying for an order.

        Rules:
        - at most 10 attempts per minute per user and IP
        - only the buyer may pay
        - the order must be pending or accepted
        - escrow must not already be held

        Returns:
            PaymentService.initiate_payment() result (client secret included)

        Raises:
            RateLimitExceededError, NotAuthorizedError, InvalidInputError,
            InvalidTransitionError, PaymentProviderError
        """
        order_id = _require_uuid(order_id, "order")

        enforce_rate_limit(
            "payment",
            f"{user_id}:{client_ip}",
            message="Too many payment requests. Please try again later.",
        )

        order, _ = get_order_for_party(
            order_id, user_id,
            roles=(OrderRole.BUYER,),
            message="Only the buyer can initiate payment for this order",
        )

        status = order.get("status")
        if status not in (OrderStatus.PENDING.value, OrderStatus.ACCEPTED.value):
            raise InvalidTransitionError(f"Cannot pay for order with status '{status}'", current=status)

        if order.get("escrow_status") == EscrowStatus.HELD.value:
            raise InvalidTransitionError(
                "Payment has already been made for this order",
                current=EscrowStatus.HELD.value,
            )

        return PaymentService.initiate_payment(
            order_id=order_id,
            amount=int(order["total_amount"]),
            currency=order.get("currency"),
        )

    @staticmethod
    def approve_and_release_milestone(user_id: str, milestone_id: str) -> dict[str, Any]:
        """
        Approve a submitted milestone and release its funds to the seller.

        The milestone moves submitted -> approved with a conditional update,
        then PaymentService.release_to_seller() transfers the funds and
        marks it paid. If the transfer fails the milestone stays approved
        and the release can be retried.

        Returns:
            Dict with transfer_id, seller_amount, platform_fee, currency,
            escrow_status

        Raises:
            NotFoundError: If the milestone or order doesn't exist
            NotAuthorizedError: If the caller isn't the buyer
            InvalidTransitionError: If the milestone isn't submitted or
                there are no funds in escrow
        """
        milestone_id = _require_uuid(milestone_id, "milestone")
        milestone = SupabaseClient.fetch_milestone(milestone_id)
        if not milestone:
            raise NotFoundError("Milestone", milestone_id)

        order, _ = get_order_for_party(
            str(milestone["order_id"]), user_id,
            roles=(OrderRole.BUYER,),
            message="Only the buyer can approve milestones",
        )

        status = milestone.get("status")
        if not can_transition_milestone(status, MilestoneStatus.APPROVED):
            raise InvalidTransitionError(f"Cannot approve milestone with status '{status}'", current=status)

        if order.get("escrow_status") not in _RELEASABLE:
            raise InvalidTransitionError("No funds available in escrow", current=order.get("escrow_status"))

        client = SupabaseClient.get_client()
        response = (
            client.table("order_milestones")
            .update({
                "status": MilestoneStatus.APPROVED.value,
                "approved_at": utc_now().isoformat(),
            })
            .eq("id", milestone_id)
            .eq("status", MilestoneStatus.SUBMITTED.value)
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError("Milestone was changed by another request", current=status)

        logger.info(f"Milestone {milestone_id} approved by buyer {user_id}")
        result = PaymentService.release_to_seller(str(order["id"]), milestone_id=milestone_id)
        return result.model_dump(mode="json")

    @staticmethod
    def release_full_payment(user_id: str, order_id: str) -> dict[str, Any]:
        """
        Release everything left in escrow and complete the order.

        Refused while any milestone is still pending or submitted; those
        must be approved individually.
        """
        order_id = _require_uuid(order_id, "order")
        order, _ = get_order_for_party(
            order_id, user_id,
            roles=(OrderRole.BUYER,),
            message="Only the buyer can release payment",
        )

        if order.get("escrow_status") not in _RELEASABLE:
            raise InvalidTransitionError("No funds available in escrow", current=order.get("escrow_status"))

        milestones = SupabaseClient.fetch_order_milestones(order_id)
        open_statuses = (MilestoneStatus.PENDING.value, MilestoneStatus.SUBMITTED.value)
        if any(m.get("status") in open_statuses for m in milestones):
            raise InvalidInputError("This order has milestones. Please approve milestones individually.")

        result = PaymentService.release_to_seller(order_id)

        client = SupabaseClient.get_client()
        client.table("orders").update({
            "status": OrderStatus.COMPLETED.value,
            "completed_at": utc_now().isoformat(),
        }).eq("id", order_id).execute()

        publish_order_updated(order, status=OrderStatus.COMPLETED.value, escrow_status=result.escrow_status.value)
        logger.info(f"Order {order_id} fully released and completed by buyer {user_id}")
        return result.model_dump(mode="json")

    @staticmethod
    def request_refund(
        user_id: str,
        order_id: str,
        client_ip: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """
        Refund an order's payment and cancel the order.

        Rules:
        - amount, if given, must be positive; reason at most 1000 characters
        - at most 5 refund requests per minute per user and IP, counted
          separately from other API limits
        - buyer or seller only
        - refused once funds were released or already refunded

        Returns:
            Dict with refund_id, amount, status

        Raises:
            InvalidInputError, RateLimitExceededError, NotAuthorizedError,
            InvalidTransitionError, PaymentProviderError
        """
        order_id = _require_uuid(order_id, "order")
        if amount is not None and amount <= 0:
            raise InvalidInputError("Refund amount must be greater than 0")
        if reason and len(reason) > MAX_REFUND_REASON_LENGTH:
            raise InvalidInputError(f"Reason must be at most {MAX_REFUND_REASON_LENGTH} characters")

        enforce_rate_limit(
            "refund",
            f"{user_id}:{client_ip}",
            message="Too many refund requests. Please try again later.",
        )

        order, role = get_order_for_party(
            order_id, user_id,
            message="Only the buyer or seller can request a refund",
        )

        escrow = order.get("escrow_status")
        if escrow == EscrowStatus.RELEASED.value:
            raise InvalidTransitionError(
                "Cannot refund - funds have already been released to the seller",
                current=escrow,
            )
        if escrow == EscrowStatus.REFUNDED.value:
            raise InvalidTransitionError("This order has already been refunded", current=escrow)

        result = PaymentService.process_refund(order_id, amount=amount, reason=reason)

        client = SupabaseClient.get_client()
        client.table("orders").update({
            "status": OrderStatus.CANCELLED.value,
            "cancelled_at": utc_now().isoformat(),
            "cancellation_reason": reason,
        }).eq("id", order_id).execute()

        other_party = seller_user_id(order) if role == OrderRole.BUYER else str(order["buyer_id"])
        notify(
            other_party,
            title="Order Refunded",
            body=f"Order {order.get('order_number') or order_id} was refunded and cancelled.",
            priority=NotificationPriority.HIGH,
            notification_type="order_refunded",
            metadata={"order_id": order_id, "reason": reason},
        )
        publish_order_updated(order, status=OrderStatus.CANCELLED.value, escrow_status=EscrowStatus.REFUNDED.value)

        logger.info(f"Order {order_id} refunded at the request of {role.value} {user_id}")
        return result

    @staticmethod
    def get_order_escrow_balance(user_id: str, order_id: str) -> dict[str, Any]:
        """Escrow totals for a party to the order."""
        order_id = _require_uuid(order_id, "order")
        order, _ = get_order_for_party(order_id, user_id, message="Access denied")
        balance = EscrowLedger.get_balance(order_id)
        return {
            **balance.model_dump(),
            "currency": order.get("currency"),
            "escrow_status": order.get("escrow_status"),
        }

    @staticmethod
    def get_order_payment_status(user_id: str, order_id: str) -> dict[str, Any]:
        """PaymentService.get_payment_status() for a party to the order."""
        order_id = _require_uuid(order_id, "order")
        get_order_for_party(order_id, user_id, message="Access denied")
        return PaymentService.get_payment_status(order_id)

    @staticmethod
    def confirm_order_payment(user_id: str, payment_intent_id: str) -> dict[str, Any]:
        """
        Client-side confirmation after checkout.

        Same effect as the payment_intent.succeeded webhook; whichever
        arrives second is a no-op.
        """
        order = SupabaseClient.fetch_order_by_payment_intent(payment_intent_id)
        if not order:
            raise NotFoundError("Order", payment_intent_id)

        get_order_for_party(
            str(order["id"]), user_id,
            message="Unauthorized: You are not associated with this order",
        )
        return PaymentService.confirm_payment(payment_intent_id)

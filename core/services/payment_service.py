# =============================================================================
# core/services/payment_service.py - Payment Flow
# =============================================================================
# The money-moving half of the escrow lifecycle. Callers (the guarded
# payment actions, the Stripe webhook) have already checked who is asking;
# this module checks what state the order is in and talks to Stripe.
#
#   initiate_payment  -> PaymentIntent created, escrow pending
#   confirm_payment   -> funds held, order accepted
#   release_to_seller -> transfer (minus platform fee), partial/full release
#   process_refund    -> refund, escrow refunded
#
# The order row and the ledger are separate writes with no transaction
# around them. Escrow status is written first with a conditional filter so
# a concurrent duplicate loses before it records anything.
# =============================================================================

import logging
from typing import Any

from app.config import settings
from app.exceptions import (
    CentaurException,
    InvalidInputError,
    InvalidTransitionError,
    NotFoundError,
)
from app.websocket.broadcast import publish_order_updated
from core.models.notifications import NotificationPriority
from core.models.orders import (
    EscrowStatus,
    EscrowTransactionType,
    MilestoneStatus,
    OrderStatus,
    PaymentTotals,
    ReleaseResult,
)
from core.services.escrow_ledger import EscrowLedger, calculate_platform_fee
from core.services.notification_service import notify
from core.services.order_access import seller_user_id
from core.services.order_state import (
    RELEASABLE_ESCROW,
    assert_escrow_transition,
    can_transition_milestone,
)
from lib.stripe_client import StripeGateway
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now

logger = logging.getLogger(__name__)

# Escrow states where the buyer's payment has already been confirmed
CONFIRMED_ESCROW = (EscrowStatus.HELD.value, EscrowStatus.PARTIAL_RELEASE.value, EscrowStatus.RELEASED.value)


def format_amount(amount: int, currency: str | None) -> str:
    """Display an amount in minor units, e.g. 12500 GBP -> "125.00 GBP"."""
    return f"{amount / 100:.2f} {(currency or settings.DEFAULT_CURRENCY).upper()}"


class PaymentService:
    """
    Service for escrow payment operations.
    """

    @staticmethod
    def initiate_payment(
        order_id: str,
        amount: int,
        currency: str | None = None,
        description: str | None = None,
    ) -> dict[str, Any]:
        """
        Create a PaymentIntent for an order and put its escrow in pending.

        Args:
            order_id: The order UUID
            amount: Amount to collect, in the smallest currency unit
            currency: Currency code; defaults to the order's, then DEFAULT_CURRENCY
            description: Optional statement description

        Returns:
            Dict with payment_intent (id, client_secret, status) and order_id

        Raises:
            InvalidInputError: If the amount is not positive or a payment
                intent already exists
            NotFoundError: If the order doesn't exist
            PaymentProviderError: If Stripe rejects the intent
        """
        if amount <= 0:
            raise InvalidInputError("Amount must be greater than 0")

        order_id = normalize_uuid(order_id)
        order = SupabaseClient.fetch_order(order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        if order.get("stripe_payment_intent_id"):
            raise InvalidInputError(
                "Order already has a payment intent",
                suggestion="Fetch the payment status to reuse the existing intent",
            )

        if order.get("escrow_status") not in (None, EscrowStatus.PENDING.value):
            raise InvalidTransitionError(
                f"Cannot start a payment for escrow status '{order['escrow_status']}'",
                current=order["escrow_status"],
            )

        currency = (currency or order.get("currency") or settings.DEFAULT_CURRENCY).upper()
        intent = StripeGateway.create_payment_intent(
            amount=amount,
            currency=currency,
            order_id=order_id,
            buyer_id=str(order["buyer_id"]),
            description=description or f"Order {order.get('order_number') or order_id}",
        )

        client = SupabaseClient.get_client()
        response = (
            client.table("orders")
            .update({
                "stripe_payment_intent_id": intent.id,
                "escrow_status": EscrowStatus.PENDING.value,
                "platform_fee": calculate_platform_fee(amount),
                "currency": currency,
            })
            .eq("id", order_id)
            .is_("stripe_payment_intent_id", "null")
            .execute()
        )
        if not response.data:
            logger.warning(f"Payment intent {intent.id} orphaned: order {order_id} was paid concurrently")
            raise InvalidTransitionError("Order already has a payment intent")

        try:
            EscrowLedger.record_transaction(order_id, EscrowTransactionType.DEPOSIT, amount)
        except CentaurException as e:
            logger.error(f"Failed to record deposit for order {order_id}: {e.message}")

        logger.info(f"Initiated payment for order {order_id}: {intent.id}")
        return {
            "order_id": order_id,
            "payment_intent": {
                "id": intent.id,
                "client_secret": intent.client_secret,
                "status": intent.status,
                "amount": amount,
                "currency": currency,
            },
        }

    @staticmethod
    def confirm_payment(payment_intent_id: str) -> dict[str, Any]:
        """
        Record a succeeded PaymentIntent: hold the funds, accept the order.

        Safe to call more than once for the same intent (webhook retries):
        an order already past pending escrow is returned unchanged.

        Args:
            payment_intent_id: Stripe PaymentIntent id (pi_...)

        Returns:
            Dict with order_id, escrow_status, already_confirmed and the
            hold transaction (if one was recorded)

        Raises:
            NotFoundError: If no order owns the intent
            InvalidTransitionError: If the order was refunded
        """
        order = SupabaseClient.fetch_order_by_payment_intent(payment_intent_id)
        if not order:
            raise NotFoundError("Order", payment_intent_id)

        order_id = str(order["id"])
        escrow = order.get("escrow_status")

        if escrow in CONFIRMED_ESCROW:
            logger.info(f"Payment {payment_intent_id} already confirmed for order {order_id}")
            return {
                "order_id": order_id,
                "escrow_status": escrow,
                "already_confirmed": True,
                "transaction": None,
            }

        EscrowLedger.set_escrow_status(order_id, EscrowStatus.HELD, current_status=escrow)
        transaction = EscrowLedger.record_transaction(
            order_id, EscrowTransactionType.HOLD, int(order["total_amount"])
        )

        status = order.get("status")
        if status == OrderStatus.PENDING.value:
            client = SupabaseClient.get_client()
            client.table("orders").update({
                "status": OrderStatus.ACCEPTED.value,
            }).eq("id", order_id).eq("status", OrderStatus.PENDING.value).execute()
            status = OrderStatus.ACCEPTED.value

        notify(
            seller_user_id(order),
            title="Payment Received",
            body=(
                f"Payment of {format_amount(int(order['total_amount']), order.get('currency'))} "
                f"has been received and held in escrow for order {order.get('order_number') or order_id}."
            ),
            priority=NotificationPriority.HIGH,
            notification_type="payment_received",
            action_url=f"/provider-portal/orders/{order_id}",
            metadata={"order_id": order_id, "amount": order["total_amount"]},
        )
        publish_order_updated(order, status=status, escrow_status=EscrowStatus.HELD.value)

        logger.info(f"Confirmed payment {payment_intent_id} for order {order_id}")
        return {
            "order_id": order_id,
            "escrow_status": EscrowStatus.HELD.value,
            "already_confirmed": False,
            "transaction": transaction,
        }

    @staticmethod
    def release_to_seller(order_id: str, milestone_id: str | None = None) -> ReleaseResult:
        """
        Transfer escrowed funds to the seller, minus the platform fee.

        With a milestone, releases that milestone's amount (it must be
        approved) and marks it paid. Without one, releases the remaining
        balance.

        Args:
            order_id: The order UUID
            milestone_id: Optional milestone UUID

        Returns:
            ReleaseResult with the transfer id and the new escrow status

        Raises:
            NotFoundError: If the order or milestone doesn't exist
            InvalidTransitionError: If escrow isn't held or partially released
            InvalidInputError: If there is nothing to release, the milestone
                isn't approved, or the seller can't receive transfers
            PaymentProviderError: If the transfer fails
        """
        order_id = normalize_uuid(order_id)
        order = SupabaseClient.fetch_order(order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        escrow = order.get("escrow_status")
        if escrow not in [s.value for s in RELEASABLE_ESCROW]:
            raise InvalidTransitionError("No funds available in escrow", current=escrow)

        balance = EscrowLedger.get_balance(order_id)

        milestone = None
        if milestone_id:
            milestone = SupabaseClient.fetch_milestone(milestone_id)
            if not milestone or str(milestone.get("order_id")) != order_id:
                raise NotFoundError("Milestone", str(milestone_id))
            if not can_transition_milestone(milestone.get("status"), MilestoneStatus.PAID):
                raise InvalidInputError("Milestone must be approved before releasing funds")
            release_amount = int(milestone["amount"])
            if release_amount > balance.balance:
                raise InvalidInputError(
                    "Milestone amount exceeds the remaining escrow balance",
                    details={"amount": release_amount, "balance": balance.balance},
                )
        else:
            release_amount = balance.balance

        if release_amount <= 0:
            raise InvalidInputError("No funds available to release")

        seller_profile = SupabaseClient.fetch_provider_profile(order["seller_id"])
        if not seller_profile or not seller_profile.get("stripe_account_id"):
            raise InvalidInputError(
                "Seller has not completed Stripe onboarding",
                suggestion="The seller must connect a Stripe account before funds can be released",
            )

        currency = order.get("currency") or settings.DEFAULT_CURRENCY
        platform_fee = calculate_platform_fee(release_amount)
        seller_amount = release_amount - platform_fee

        transfer = StripeGateway.transfer_to_seller(
            amount=seller_amount,
            currency=currency,
            seller_account_id=seller_profile["stripe_account_id"],
            order_id=order_id,
            milestone_id=str(milestone_id) if milestone_id else None,
        )

        remaining = balance.balance - release_amount
        new_status = EscrowStatus.RELEASED if remaining <= 0 else EscrowStatus.PARTIAL_RELEASE
        EscrowLedger.set_escrow_status(order_id, new_status, current_status=escrow)

        EscrowLedger.record_transaction(
            order_id, EscrowTransactionType.RELEASE, seller_amount,
            milestone_id=milestone_id, stripe_transfer_id=transfer.id,
        )
        if platform_fee > 0:
            EscrowLedger.record_transaction(
                order_id, EscrowTransactionType.FEE_DEDUCTION, platform_fee,
                milestone_id=milestone_id,
            )

        if milestone:
            client = SupabaseClient.get_client()
            client.table("order_milestones").update({
                "status": MilestoneStatus.PAID.value,
                "paid_at": utc_now().isoformat(),
            }).eq("id", normalize_uuid(milestone_id)).eq("status", MilestoneStatus.APPROVED.value).execute()

        notify(
            seller_profile.get("user_id"),
            title="Payment Released",
            body=f"{format_amount(seller_amount, currency)} has been released to your account.",
            priority=NotificationPriority.HIGH,
            notification_type="payment_released",
            action_url=f"/provider-portal/orders/{order_id}",
            metadata={"order_id": order_id, "milestone_id": milestone_id},
        )
        publish_order_updated(order, escrow_status=new_status.value)

        logger.info(
            f"Released {release_amount} for order {order_id} "
            f"(seller {seller_amount}, fee {platform_fee}), escrow now {new_status.value}"
        )
        return ReleaseResult(
            transfer_id=transfer.id,
            seller_amount=seller_amount,
            platform_fee=platform_fee,
            currency=currency,
            escrow_status=new_status,
        )

    @staticmethod
    def process_refund(
        order_id: str,
        amount: int | None = None,
        reason: str | None = None,
    ) -> dict[str, Any]:
        """
        Refund the buyer and mark escrow refunded.

        Args:
            order_id: The order UUID
            amount: Amount to refund; defaults to the order total
            reason: Reason stored with the refund

        Returns:
            Dict with refund_id, amount and status

        Raises:
            InvalidInputError: If nothing was paid or the amount is too large
            InvalidTransitionError: If funds were released or already refunded
            PaymentProviderError: If Stripe rejects the refund
        """
        order_id = normalize_uuid(order_id)
        order = SupabaseClient.fetch_order(order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        escrow = order.get("escrow_status")
        assert_escrow_transition(escrow, EscrowStatus.REFUNDED)

        intent_id = order.get("stripe_payment_intent_id")
        if not intent_id:
            raise InvalidInputError("No payment found for this order")

        total = int(order["total_amount"])
        refund_amount = amount if amount is not None else total
        if refund_amount > total:
            raise InvalidInputError("Refund amount cannot exceed the order total")

        refund = StripeGateway.refund_payment(
            payment_intent_id=intent_id,
            amount=amount,
            reason=reason,
            order_id=order_id,
        )

        EscrowLedger.set_escrow_status(order_id, EscrowStatus.REFUNDED, current_status=escrow)
        EscrowLedger.record_transaction(
            order_id, EscrowTransactionType.REFUND, refund.amount or refund_amount,
            stripe_transfer_id=refund.id,
        )

        logger.info(f"Refunded {refund_amount} for order {order_id}: {refund.id}")
        return {"refund_id": refund.id, "amount": refund.amount or refund_amount, "status": refund.status}

    @staticmethod
    def get_payment_status(order_id: str) -> dict[str, Any]:
        """
        Order, ledger, milestones and totals in one view.

        pending_release = held - released - refunded - fees

        Raises:
            NotFoundError: If the order doesn't exist
        """
        order_id = normalize_uuid(order_id)
        order = SupabaseClient.fetch_order(order_id)
        if not order:
            raise NotFoundError("Order", order_id)

        transactions = EscrowLedger.get_transactions(order_id)
        milestones = SupabaseClient.fetch_order_milestones(order_id)
        balance = EscrowLedger.summarize(transactions)

        totals = PaymentTotals(
            total_amount=int(order.get("total_amount") or 0),
            held_amount=balance.total_held,
            released_amount=balance.total_released,
            refunded_amount=balance.total_refunded,
            platform_fees=balance.total_fees,
            pending_release=balance.balance,
        )

        return {
            "order": {
                "id": order_id,
                "order_number": order.get("order_number"),
                "status": order.get("status"),
                "escrow_status": order.get("escrow_status"),
                "currency": order.get("currency"),
                "stripe_payment_intent_id": order.get("stripe_payment_intent_id"),
            },
            "transactions": transactions,
            "milestones": milestones,
            "totals": totals.model_dump(),
        }

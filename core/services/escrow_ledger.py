# =============================================================================
# core/services/escrow_ledger.py - Escrow Ledger Accessor
# =============================================================================
# Reads and writes the escrow_transactions ledger and the order's
# escrow_status column. The ledger is append-only; the balance is derived:
#
#   balance = hold - release - refund - fee_deduction
#
# Escrow status writes are conditional on the status that was read, so a
# concurrent change makes the write match no row instead of overwriting it.
# =============================================================================

import logging
import math
from typing import Any

from app.config import settings
from app.exceptions import DatabaseError, InvalidTransitionError, NotFoundError
from core.models.orders import EscrowBalance, EscrowStatus, EscrowTransactionType
from core.services.order_state import assert_escrow_transition
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)


def calculate_platform_fee(amount: int, percent: float | None = None) -> int:
    """
    Platform fee on an amount, rounded half-up to the smallest unit.

    Example:
        calculate_platform_fee(10000)  # 800 at the default 8%
    """
    if percent is None:
        percent = settings.PLATFORM_FEE_PERCENT
    return int(math.floor(amount * percent / 100 + 0.5))


class EscrowLedger:
    """
    Service for escrow ledger reads and writes.

    All methods are static; the Supabase client is the only state.
    """

    @staticmethod
    def record_transaction(
        order_id: str,
        transaction_type: EscrowTransactionType,
        amount: int,
        milestone_id: str | None = None,
        stripe_transfer_id: str | None = None,
    ) -> dict[str, Any]:
        """
        Append one ledger row.

        Args:
            order_id: The order UUID
            transaction_type: deposit, hold, release, refund or fee_deduction
            amount: Positive amount in the smallest currency unit
            milestone_id: Milestone the movement belongs to, if any
            stripe_transfer_id: Stripe transfer/refund id, if any

        Returns:
            The inserted row

        Raises:
            DatabaseError: If the insert fails
        """
        client = SupabaseClient.get_client()
        data = {
            "order_id": normalize_uuid(order_id),
            "milestone_id": normalize_uuid(milestone_id) if milestone_id else None,
            "type": transaction_type.value,
            "amount": amount,
            "stripe_transfer_id": stripe_transfer_id,
        }

        try:
            response = client.table("escrow_transactions").insert(data).execute()
        except Exception as e:
            logger.error(f"Failed to record {transaction_type.value} for order {order_id}: {e}")
            raise DatabaseError(str(e), operation="record_escrow_transaction")

        if not response.data:
            raise DatabaseError("Insert returned no data", operation="record_escrow_transaction")

        logger.info(f"Recorded escrow {transaction_type.value} of {amount} for order {order_id}")
        return response.data[0]

    @staticmethod
    def get_transactions(order_id: str) -> list[dict[str, Any]]:
        """Ledger rows for an order, oldest first."""
        client = SupabaseClient.get_client()
        response = (
            client.table("escrow_transactions")
            .select("*")
            .eq("order_id", normalize_uuid(order_id))
            .order("created_at")
            .execute()
        )
        return response.data or []

    @staticmethod
    def summarize(transactions: list[dict[str, Any]]) -> EscrowBalance:
        """Fold ledger rows into running totals."""
        totals = {t: 0 for t in EscrowTransactionType}
        for row in transactions:
            try:
                totals[EscrowTransactionType(row["type"])] += int(row.get("amount") or 0)
            except ValueError:
                logger.warning(f"Ignoring unknown escrow transaction type: {row.get('type')}")

        held = totals[EscrowTransactionType.HOLD]
        released = totals[EscrowTransactionType.RELEASE]
        refunded = totals[EscrowTransactionType.REFUND]
        fees = totals[EscrowTransactionType.FEE_DEDUCTION]

        return EscrowBalance(
            total_held=held,
            total_released=released,
            total_refunded=refunded,
            total_fees=fees,
            balance=held - released - refunded - fees,
        )

    @staticmethod
    def get_balance(order_id: str) -> EscrowBalance:
        """Current escrow totals for an order."""
        return EscrowLedger.summarize(EscrowLedger.get_transactions(order_id))

    @staticmethod
    def set_escrow_status(
        order_id: str,
        new_status: EscrowStatus,
        current_status: EscrowStatus | str | None = None,
        extra_fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """
        Move an order's escrow status forward.

        Args:
            order_id: The order UUID
            new_status: Target escrow status
            current_status: Status the caller already read; fetched if omitted
            extra_fields: Other order columns to write in the same update

        Returns:
            The updated order row

        Raises:
            NotFoundError: If the order doesn't exist
            InvalidTransitionError: If the change would regress escrow, or
                another request changed the status first
        """
        order_id = normalize_uuid(order_id)

        if current_status is None:
            order = SupabaseClient.fetch_order(order_id)
            if not order:
                raise NotFoundError("Order", order_id)
            current_status = order.get("escrow_status")

        current_value = current_status.value if isinstance(current_status, EscrowStatus) else current_status
        assert_escrow_transition(current_value, new_status)

        update_data = {"escrow_status": new_status.value}
        if extra_fields:
            update_data.update(extra_fields)

        client = SupabaseClient.get_client()
        query = client.table("orders").update(update_data).eq("id", order_id)
        if current_value is None:
            query = query.is_("escrow_status", "null")
        else:
            query = query.eq("escrow_status", current_value)

        try:
            response = query.execute()
        except Exception as e:
            logger.error(f"Failed to update escrow status for order {order_id}: {e}")
            raise DatabaseError(str(e), operation="set_escrow_status")

        if not response.data:
            raise InvalidTransitionError(
                "Escrow status changed while this request was running",
                current=current_value,
                requested=new_status.value,
            )

        logger.info(f"Order {order_id} escrow: {current_value} -> {new_status.value}")
        return response.data[0]

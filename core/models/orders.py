# =============================================================================
# core/models/orders.py - Order, Milestone and Escrow Schemas
# =============================================================================
# Status enums and result models for the order/escrow lifecycle:
# - OrderStatus: pending -> accepted -> in_progress -> completed
# - EscrowStatus: pending -> held -> partial_release -> released, or refunded
# - MilestoneStatus: pending -> submitted -> approved -> paid
# - EscrowTransactionType: rows in the escrow_transactions ledger
#
# Amounts are integers in the smallest currency unit (pence/cents).
# =============================================================================

from enum import Enum

from pydantic import BaseModel, Field


class OrderStatus(str, Enum):
    """
    Order workflow status.

    Flow: pending -> accepted -> in_progress -> completed
    Side exits: cancelled (from any active status), disputed (from in_progress)
    """
    PENDING = "pending"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class EscrowStatus(str, Enum):
    """
    Where the buyer's money is.

    Moves forward only. refunded and released are terminal.
    """
    PENDING = "pending"
    HELD = "held"
    PARTIAL_RELEASE = "partial_release"
    RELEASED = "released"
    REFUNDED = "refunded"


class MilestoneStatus(str, Enum):
    PENDING = "pending"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    PAID = "paid"
    DISPUTED = "disputed"


class EscrowTransactionType(str, Enum):
    """Ledger row types in escrow_transactions."""
    DEPOSIT = "deposit"
    HOLD = "hold"
    RELEASE = "release"
    REFUND = "refund"
    FEE_DEDUCTION = "fee_deduction"


class OrderRole(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"


# =============================================================================
# Result Models
# =============================================================================

class OrderAction(BaseModel):
    """An action a party can take on an order right now."""
    action: str
    label: str
    requires_confirmation: bool = False


class EscrowBalance(BaseModel):
    """
    Running totals from the escrow ledger.

    balance = total_held - total_released - total_refunded - total_fees
    """
    total_held: int = 0
    total_released: int = 0
    total_refunded: int = 0
    total_fees: int = 0
    balance: int = 0


class PaymentTotals(BaseModel):
    """Totals reported by the payment status endpoint."""
    total_amount: int
    held_amount: int = 0
    released_amount: int = 0
    refunded_amount: int = 0
    platform_fees: int = 0
    pending_release: int = 0


class ReleaseResult(BaseModel):
    """Outcome of moving escrow funds to a seller."""
    transfer_id: str
    seller_amount: int = Field(..., description="Net amount sent to the seller")
    platform_fee: int
    currency: str
    escrow_status: EscrowStatus

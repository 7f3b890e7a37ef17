# =============================================================================
# app/routers/payments.py - Escrow Payment Endpoints
# =============================================================================
# Pay for an order, release escrow to the seller, refund.
# All endpoints require authentication; guards live in PaymentActions.
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.dependencies import ClientIP, CurrentUser
from core.services.payment_actions import PaymentActions

router = APIRouter()


# =============================================================================
# Request Models
# =============================================================================

class ConfirmPaymentRequest(BaseModel):
    payment_intent_id: str = Field(..., min_length=1, examples=["pi_3Nf8x2LkdIwHu7ix0"])


class RefundRequest(BaseModel):
    """Refund an order. Omit amount for a full refund."""
    amount: int | None = Field(
        default=None,
        gt=0,
        description="Amount in the smallest currency unit (pence/cents)",
        examples=[5000],
    )
    reason: str | None = Field(default=None, max_length=1000, examples=["Seller unavailable"])


# =============================================================================
# Endpoints
# =============================================================================

@router.post("/orders/{order_id}/payment")
async def create_order_payment(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
    ip: ClientIP,
):
    """
    Start paying for an order.

    Returns a Stripe client secret for the buyer to complete checkout.
    Rate limited to 10 attempts per minute.
    """
    return PaymentActions.create_order_payment(user.user_id, str(order_id), ip)


@router.post("/payments/confirm")
async def confirm_payment(request: ConfirmPaymentRequest, user: CurrentUser):
    """
    Confirm a payment after checkout.

    Safe to call more than once; the Stripe webhook does the same.
    """
    return PaymentActions.confirm_order_payment(user.user_id, request.payment_intent_id)


@router.post("/orders/{order_id}/release")
async def release_full_payment(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
):
    """
    Release everything held in escrow and complete the order.

    Not available while milestones are awaiting approval.
    """
    return PaymentActions.release_full_payment(user.user_id, str(order_id))


@router.post("/orders/{order_id}/refund")
async def request_refund(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
    ip: ClientIP,
    request: RefundRequest | None = None,
):
    """
    Refund an order and cancel it.

    Refused once funds have been released. Rate limited to 5 per minute.
    """
    request = request or RefundRequest()
    return PaymentActions.request_refund(
        user.user_id,
        str(order_id),
        ip,
        amount=request.amount,
        reason=request.reason,
    )


@router.get("/orders/{order_id}/escrow")
async def get_escrow_balance(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
):
    """Escrow ledger totals for the order."""
    return PaymentActions.get_order_escrow_balance(user.user_id, str(order_id))


@router.get("/orders/{order_id}/payment-status")
async def get_payment_status(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
):
    """Order payment summary, escrow transactions and milestones."""
    return PaymentActions.get_order_payment_status(user.user_id, str(order_id))

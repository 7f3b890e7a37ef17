# =============================================================================
# app/routers/orders.py - Order Workflow Endpoints
# =============================================================================
# Status changes on an order by its buyer or seller.
# =============================================================================

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.services.order_service import OrderService

router = APIRouter()

OrderId = Annotated[UUID, Path(description="Order UUID")]


class ReasonRequest(BaseModel):
    reason: str | None = Field(default=None, max_length=1000)


class DisputeRequest(BaseModel):
    reason: str = Field(..., min_length=1, max_length=2000, examples=["Delivered work does not match the brief"])


@router.post("/{order_id}/accept")
async def accept_order(order_id: OrderId, user: CurrentUser):
    """Seller accepts a pending order."""
    return OrderService.accept_order(user.user_id, str(order_id))


@router.post("/{order_id}/decline")
async def decline_order(order_id: OrderId, user: CurrentUser, request: ReasonRequest | None = None):
    """Seller declines a pending order."""
    return OrderService.decline_order(user.user_id, str(order_id), reason=(request or ReasonRequest()).reason)


@router.post("/{order_id}/start")
async def start_order(order_id: OrderId, user: CurrentUser):
    """Seller starts work, or resumes work on a disputed order."""
    return OrderService.start_order(user.user_id, str(order_id))


@router.post("/{order_id}/complete")
async def complete_order(order_id: OrderId, user: CurrentUser):
    """Seller marks the work delivered; the buyer is asked to approve."""
    return OrderService.complete_order(user.user_id, str(order_id))


@router.post("/{order_id}/approve-completion")
async def approve_completion(order_id: OrderId, user: CurrentUser):
    """Buyer approves the work; remaining escrow is released to the seller."""
    return OrderService.approve_completion(user.user_id, str(order_id))


@router.post("/{order_id}/cancel")
async def cancel_order(order_id: OrderId, user: CurrentUser, request: ReasonRequest | None = None):
    """Either party cancels an unpaid order."""
    return OrderService.cancel_order(user.user_id, str(order_id), reason=(request or ReasonRequest()).reason)


@router.post("/{order_id}/dispute")
async def open_dispute(order_id: OrderId, request: DisputeRequest, user: CurrentUser):
    """Buyer opens a dispute on an in-progress order."""
    return OrderService.open_dispute(user.user_id, str(order_id), request.reason)


@router.get("/{order_id}/actions")
async def get_order_actions(order_id: OrderId, user: CurrentUser):
    """What the caller can do with this order right now."""
    actions = OrderService.get_order_actions(user.user_id, str(order_id))
    return {"actions": [a.model_dump() for a in actions]}


@router.get("/{order_id}/history")
async def get_order_history(order_id: OrderId, user: CurrentUser):
    """The order's event timeline, oldest first."""
    return {"events": OrderService.get_order_history(user.user_id, str(order_id))}

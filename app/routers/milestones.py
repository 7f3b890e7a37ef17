# =============================================================================
# app/routers/milestones.py - Milestone Endpoints
# =============================================================================

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.services.order_service import OrderService
from core.services.payment_actions import PaymentActions

router = APIRouter()

MilestoneId = Annotated[UUID, Path(description="Milestone UUID")]


class MilestoneInput(BaseModel):
    title: str = Field(..., max_length=200, examples=["Wireframes"])
    amount: int = Field(..., description="Amount in the smallest currency unit", examples=[25000])
    description: str | None = None
    due_date: date | None = None


class CreateMilestonesRequest(BaseModel):
    milestones: list[MilestoneInput]


class SubmitMilestoneRequest(BaseModel):
    notes: str | None = Field(default=None, max_length=5000)


class DisputeMilestoneRequest(BaseModel):
    reason: str = Field(..., max_length=2000)


@router.post("/orders/{order_id}/milestones")
async def create_milestones(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    request: CreateMilestonesRequest,
    user: CurrentUser,
):
    """
    Split an order into milestones.

    Only while the order is pending or accepted; the amounts may not add up
    to more than the order total.
    """
    rows = OrderService.create_milestones(
        user.user_id,
        str(order_id),
        [m.model_dump() for m in request.milestones],
    )
    return {"milestones": rows}


@router.get("/orders/{order_id}/milestones")
async def list_milestones(
    order_id: Annotated[UUID, Path(description="Order UUID")],
    user: CurrentUser,
):
    return {"milestones": OrderService.list_milestones(user.user_id, str(order_id))}


@router.post("/milestones/{milestone_id}/submit")
async def submit_milestone(
    milestone_id: MilestoneId,
    user: CurrentUser,
    request: SubmitMilestoneRequest | None = None,
):
    """Seller submits a milestone for the buyer's approval."""
    notes = request.notes if request else None
    return OrderService.submit_milestone(user.user_id, str(milestone_id), notes=notes)


@router.post("/milestones/{milestone_id}/approve")
async def approve_milestone(milestone_id: MilestoneId, user: CurrentUser):
    """
    Buyer approves a submitted milestone and its funds go to the seller.

    The platform fee is deducted from the released amount.
    """
    return PaymentActions.approve_and_release_milestone(user.user_id, str(milestone_id))


@router.post("/milestones/{milestone_id}/dispute")
async def dispute_milestone(
    milestone_id: MilestoneId,
    request: DisputeMilestoneRequest,
    user: CurrentUser,
):
    return OrderService.dispute_milestone(user.user_id, str(milestone_id), request.reason)

# =============================================================================
# app/routers/availability.py - Availability Calendar Endpoints
# =============================================================================
# Providers mark days available or blocked. Booked days are read-only here.
# =============================================================================

import datetime
from typing import Annotated, Literal
from uuid import UUID

from fastapi import APIRouter, Path, Query
from pydantic import BaseModel, Field

from app.dependencies import CurrentUser
from core.models.availability import AvailabilityStatus
from core.services.availability_service import AvailabilityService

router = APIRouter()

SettableStatus = Literal["available", "blocked"]


class SetAvailabilityRequest(BaseModel):
    date: datetime.date
    status: SettableStatus


class BulkAvailabilityRequest(BaseModel):
    dates: list[datetime.date] = Field(..., min_length=1, max_length=366)
    status: SettableStatus


class ToggleAvailabilityRequest(BaseModel):
    date: datetime.date
    current_status: AvailabilityStatus | None = None


class PricingRequest(BaseModel):
    day_rate: float | None = Field(default=None, examples=[650])
    currency: str = Field(..., examples=["GBP"])
    minimum_days: int = 1


class CapacityRequest(BaseModel):
    max_concurrent_orders: int = Field(..., examples=[3])
    auto_pause_at_capacity: bool = True


@router.get("/providers/{provider_id}/availability")
async def get_availability(
    provider_id: Annotated[UUID, Path(description="Provider profile UUID")],
    user: CurrentUser,
    start: Annotated[datetime.date, Query(description="First day (inclusive)")],
    end: Annotated[datetime.date, Query(description="Last day (inclusive)")],
):
    return {"slots": AvailabilityService.get_availability(str(provider_id), start, end)}


@router.get("/availability")
async def get_my_availability(
    user: CurrentUser,
    start: Annotated[datetime.date, Query(description="First day (inclusive)")],
    end: Annotated[datetime.date, Query(description="Last day (inclusive)")],
):
    return {"slots": AvailabilityService.get_availability_for_user(user.user_id, start, end)}


@router.put("/availability")
async def set_availability(request: SetAvailabilityRequest, user: CurrentUser):
    """Mark one day. Booked days can't be changed."""
    return AvailabilityService.set_availability(user.user_id, request.date, request.status)


@router.put("/availability/bulk")
async def bulk_set_availability(request: BulkAvailabilityRequest, user: CurrentUser):
    """Mark many days; booked days are skipped and counted."""
    return AvailabilityService.bulk_set_availability(user.user_id, request.dates, request.status)


@router.post("/availability/toggle")
async def toggle_availability(request: ToggleAvailabilityRequest, user: CurrentUser):
    return AvailabilityService.toggle_availability(user.user_id, request.date, request.current_status)


@router.put("/provider/pricing")
async def update_pricing(request: PricingRequest, user: CurrentUser):
    return AvailabilityService.update_pricing(
        user.user_id, request.day_rate, request.currency, request.minimum_days
    )


@router.put("/provider/capacity")
async def update_capacity(request: CapacityRequest, user: CurrentUser):
    return AvailabilityService.update_capacity_settings(
        user.user_id, request.max_concurrent_orders, request.auto_pause_at_capacity
    )

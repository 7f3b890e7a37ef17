# =============================================================================
# core/models/availability.py - Availability Calendar Schemas
# =============================================================================
# One row per provider per date. "booked" is set by the booking flow and is
# never changed through the availability endpoints.
# =============================================================================

from enum import Enum

from pydantic import BaseModel


class AvailabilityStatus(str, Enum):
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"


class AvailabilitySource(str, Enum):
    MANUAL = "manual"
    BOOKING = "booking"
    CALENDAR_SYNC = "calendar_sync"


class BulkAvailabilityResult(BaseModel):
    """Dates updated vs. skipped because they were already booked."""
    updated: int
    skipped: int
    skipped_dates: list[str] = []


class ToggleResult(BaseModel):
    success: bool
    new_status: AvailabilityStatus

# =============================================================================
# core/models/retainers.py - Retainer and Timesheet Schemas
# =============================================================================
# A retainer is a recurring weekly-hours engagement between a buyer and a
# provider. Providers log hours per week in timesheet entries which the
# buyer approves.
#
# Retainer flow: pending -> active <-> paused -> cancelled
# Timesheet flow: draft -> submitted -> approved (-> paid) | disputed
# =============================================================================

from enum import Enum

from pydantic import BaseModel


class RetainerStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    PAUSED = "paused"
    CANCELLED = "cancelled"


class TimesheetStatus(str, Enum):
    """
    Weekly timesheet status.

    Logging hours again for the same week puts the entry back to draft.
    """
    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DISPUTED = "disputed"
    PAID = "paid"


class RetainerStats(BaseModel):
    """Hours and billing figures for a retainer."""
    total_hours_logged: float
    total_hours_approved: float
    pending_approval: float
    weeks_active: int
    expected_hours: float
    weekly_rate: float
    monthly_estimate: float

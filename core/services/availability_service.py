# =============================================================================
# core/services/availability_service.py - Provider Availability Calendar
# =============================================================================
# One availability_slots row per (provider_id, date). Providers can mark a
# day available or blocked; "booked" is owned by the booking flow and is
# never overwritten here.
#
# The booked check and the upsert are separate statements, so a booking
# landing in between can still be overwritten.
# =============================================================================

import logging
from datetime import date
from typing import Any

from app.config import settings
from app.exceptions import InvalidInputError, InvalidTransitionError, NotFoundError
from core.models.availability import (
    AvailabilitySource,
    AvailabilityStatus,
    BulkAvailabilityResult,
    ToggleResult,
)
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, to_date

logger = logging.getLogger(__name__)

SETTABLE_STATUSES = (AvailabilityStatus.AVAILABLE, AvailabilityStatus.BLOCKED)


def _require_provider(user_id: str) -> dict[str, Any]:
    provider = SupabaseClient.fetch_provider_profile_for_user(user_id)
    if not provider:
        raise NotFoundError("Provider profile", str(user_id))
    return provider


def _check_settable(status: AvailabilityStatus | str) -> AvailabilityStatus:
    try:
        status = AvailabilityStatus(status)
    except ValueError:
        raise InvalidInputError(f"Invalid availability status: {status}")
    if status not in SETTABLE_STATUSES:
        raise InvalidInputError(
            "Status must be 'available' or 'blocked'",
            suggestion="Booked dates are set by the booking flow",
        )
    return status


class AvailabilityService:
    """
    Service for the provider availability calendar.
    """

    @staticmethod
    def get_availability(
        provider_id: str,
        start_date: date | str,
        end_date: date | str,
    ) -> list[dict[str, Any]]:
        """Slots for a provider between two dates (inclusive), by date."""
        client = SupabaseClient.get_client()
        response = (
            client.table("availability_slots")
            .select("*")
            .eq("provider_id", normalize_uuid(provider_id))
            .gte("date", to_date(start_date).isoformat())
            .lte("date", to_date(end_date).isoformat())
            .order("date")
            .execute()
        )
        return response.data or []

    @staticmethod
    def get_availability_for_user(
        user_id: str,
        start_date: date | str,
        end_date: date | str,
    ) -> list[dict[str, Any]]:
        """Same as get_availability(), looked up by the provider's user ID."""
        provider = _require_provider(user_id)
        return AvailabilityService.get_availability(str(provider["id"]), start_date, end_date)

    @staticmethod
    def set_availability(
        user_id: str,
        day: date | str,
        status: AvailabilityStatus | str,
    ) -> dict[str, Any]:
        """
        Mark one day available or blocked.

        Raises:
            NotFoundError: If the user has no provider profile
            InvalidInputError: If status is not available/blocked
            InvalidTransitionError: If the day is already booked
        """
        status = _check_settable(status)
        provider = _require_provider(user_id)
        day = to_date(day).isoformat()

        client = SupabaseClient.get_client()
        existing = (
            client.table("availability_slots")
            .select("status")
            .eq("provider_id", str(provider["id"]))
            .eq("date", day)
            .execute()
        )
        if existing.data and existing.data[0].get("status") == AvailabilityStatus.BOOKED.value:
            raise InvalidTransitionError("Cannot modify booked dates", current=AvailabilityStatus.BOOKED.value)

        response = (
            client.table("availability_slots")
            .upsert(
                {
                    "provider_id": str(provider["id"]),
                    "date": day,
                    "status": status.value,
                    "source": AvailabilitySource.MANUAL.value,
                },
                on_conflict="provider_id,date",
            )
            .execute()
        )
        logger.debug(f"Provider {provider['id']} set {day} to {status.value}")
        return response.data[0] if response.data else {}

    @staticmethod
    def bulk_set_availability(
        user_id: str,
        days: list[date | str],
        status: AvailabilityStatus | str,
    ) -> BulkAvailabilityResult:
        """
        Mark many days at once, skipping any that are booked.

        Not atomic: the booked lookup and the upsert are separate calls.
        """
        status = _check_settable(status)
        provider = _require_provider(user_id)
        wanted = list(dict.fromkeys(to_date(d).isoformat() for d in days))
        if not wanted:
            return BulkAvailabilityResult(updated=0, skipped=0)

        client = SupabaseClient.get_client()
        booked = (
            client.table("availability_slots")
            .select("date")
            .eq("provider_id", str(provider["id"]))
            .eq("status", AvailabilityStatus.BOOKED.value)
            .in_("date", wanted)
            .execute()
        )
        booked_dates = {str(row["date"])[:10] for row in booked.data or []}
        to_update = [d for d in wanted if d not in booked_dates]

        if to_update:
            client.table("availability_slots").upsert(
                [
                    {
                        "provider_id": str(provider["id"]),
                        "date": d,
                        "status": status.value,
                        "source": AvailabilitySource.MANUAL.value,
                    }
                    for d in to_update
                ],
                on_conflict="provider_id,date",
            ).execute()

        logger.info(
            f"Provider {provider['id']} bulk set {len(to_update)} days to {status.value}, "
            f"skipped {len(booked_dates)} booked"
        )
        return BulkAvailabilityResult(
            updated=len(to_update),
            skipped=len(booked_dates),
            skipped_dates=sorted(booked_dates),
        )

    @staticmethod
    def toggle_availability(
        user_id: str,
        day: date | str,
        current_status: AvailabilityStatus | str | None,
    ) -> ToggleResult:
        """
        Flip a day between available and blocked.

        A booked day is left alone and reported with success=False.
        """
        if current_status == AvailabilityStatus.BOOKED or current_status == AvailabilityStatus.BOOKED.value:
            return ToggleResult(success=False, new_status=AvailabilityStatus.BOOKED)

        if current_status in (AvailabilityStatus.AVAILABLE, AvailabilityStatus.AVAILABLE.value):
            new_status = AvailabilityStatus.BLOCKED
        else:
            new_status = AvailabilityStatus.AVAILABLE

        AvailabilityService.set_availability(user_id, day, new_status)
        return ToggleResult(success=True, new_status=new_status)

    # -------------------------------------------------------------------------
    # Pricing and capacity
    # -------------------------------------------------------------------------

    @staticmethod
    def update_pricing(
        user_id: str,
        day_rate: float | None,
        currency: str,
        minimum_days: int = 1,
    ) -> dict[str, Any]:
        """
        Update a provider's day rate and currency.

        Raises:
            InvalidInputError: On a negative rate, minimum_days < 1, or an
                unsupported currency
        """
        if day_rate is not None and day_rate < 0:
            raise InvalidInputError("Day rate cannot be negative")
        if minimum_days < 1:
            raise InvalidInputError("Minimum days must be at least 1")
        if not currency or currency.lower() not in settings.supported_currencies_list:
            raise InvalidInputError("Invalid currency")

        provider = _require_provider(user_id)
        client = SupabaseClient.get_client()
        response = (
            client.table("provider_profiles")
            .update({"day_rate": day_rate, "currency": currency.upper()})
            .eq("id", str(provider["id"]))
            .execute()
        )
        return response.data[0] if response.data else {}

    @staticmethod
    def update_capacity_settings(
        user_id: str,
        max_concurrent_orders: int,
        auto_pause_at_capacity: bool,
    ) -> dict[str, Any]:
        if max_concurrent_orders < 1:
            raise InvalidInputError("Max concurrent orders must be at least 1")

        provider = _require_provider(user_id)
        client = SupabaseClient.get_client()
        response = (
            client.table("provider_profiles")
            .update({
                "max_concurrent_orders": max_concurrent_orders,
                "auto_pause_at_capacity": auto_pause_at_capacity,
            })
            .eq("id", str(provider["id"]))
            .execute()
        )
        return response.data[0] if response.data else {}

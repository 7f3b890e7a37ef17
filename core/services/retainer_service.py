# =============================================================================
# core/services/retainer_service.py - Retainer Engagements
# =============================================================================
# Lifecycle of a recurring weekly-hours engagement:
#   pending -> active (provider accepts) | cancelled (provider declines)
#   active <-> paused (either party)
#   pending/active/paused -> cancelled (either party, with notice)
#
# retainers.seller_id is a provider_profiles.id; the provider's user is
# provider_profiles.user_id.
# =============================================================================

import logging
from datetime import datetime, timedelta
from typing import Any

from app.config import settings
from app.exceptions import (
    DatabaseError,
    InvalidInputError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from core.models.retainers import RetainerStats, RetainerStatus, TimesheetStatus
from core.services.notification_service import notify
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, parse_timestamp, utc_now

logger = logging.getLogger(__name__)

DEFAULT_HOURLY_RATE = 100.0
HOURS_PER_DAY = 8
WEEKS_PER_MONTH = 4


def get_retainer_for_party(
    retainer_id: str,
    user_id: str,
    provider_only: bool = False,
    buyer_only: bool = False,
) -> tuple[dict[str, Any], bool, dict[str, Any] | None]:
    """
    Load a retainer and check the user is its buyer or provider.

    Returns:
        (retainer row, is_buyer, provider profile)

    Raises:
        NotFoundError: If the retainer doesn't exist
        NotAuthorizedError: If the user isn't an allowed party
    """
    retainer = SupabaseClient.fetch_retainer(retainer_id)
    if not retainer:
        raise NotFoundError("Retainer", str(retainer_id))

    user_id = normalize_uuid(user_id)
    provider = SupabaseClient.fetch_provider_profile(retainer["seller_id"])
    is_buyer = str(retainer.get("buyer_id")) == user_id
    is_provider = bool(provider) and str(provider.get("user_id")) == user_id

    if provider_only and not is_provider:
        raise NotAuthorizedError("Retainer not found or not authorized")
    if buyer_only and not is_buyer:
        raise NotAuthorizedError("Not authorized")
    if not is_buyer and not is_provider:
        raise NotAuthorizedError("Not authorized")

    return retainer, is_buyer, provider


class RetainerService:
    """
    Service for retainer lifecycle operations.
    """

    @staticmethod
    def create_retainer(
        user_id: str,
        provider_id: str,
        weekly_hours: float,
        hourly_rate: float | None = None,
        notes: str | None = None,
    ) -> dict[str, Any]:
        """
        Propose a retainer to a provider.

        The hourly rate falls back to the provider's hourly rate, then
        day rate / 8, then 100.

        Raises:
            NotFoundError: If the provider doesn't exist
            InvalidInputError: If the provider is the caller or hours <= 0
        """
        if weekly_hours is None or weekly_hours <= 0:
            raise InvalidInputError("Weekly hours must be greater than 0")

        provider = SupabaseClient.fetch_provider_profile(provider_id)
        if not provider:
            raise NotFoundError("Provider", str(provider_id))

        if str(provider.get("user_id")) == normalize_uuid(user_id):
            raise InvalidInputError("Cannot create a retainer with yourself")

        if not hourly_rate:
            if provider.get("hourly_rate"):
                hourly_rate = float(provider["hourly_rate"])
            elif provider.get("day_rate"):
                hourly_rate = float(provider["day_rate"]) / HOURS_PER_DAY
            else:
                hourly_rate = DEFAULT_HOURLY_RATE

        data = {
            "buyer_id": normalize_uuid(user_id),
            "seller_id": str(provider["id"]),
            "weekly_hours": weekly_hours,
            "hourly_rate": hourly_rate,
            "currency": provider.get("currency") or settings.DEFAULT_CURRENCY,
            "status": RetainerStatus.PENDING.value,
            "notes": notes,
        }

        client = SupabaseClient.get_client()
        try:
            response = client.table("retainers").insert(data).execute()
        except Exception as e:
            logger.error(f"Failed to create retainer: {e}")
            raise DatabaseError(str(e), operation="create_retainer")
        if not response.data:
            raise DatabaseError("Insert returned no data", operation="create_retainer")

        retainer = response.data[0]
        logger.info(f"Created retainer {retainer['id']} ({weekly_hours}h/week) for provider {provider_id}")

        notify(
            str(provider.get("user_id")),
            title="New Retainer Request",
            body=f"You have a new retainer request for {weekly_hours} hours per week.",
            notification_type="retainer_requested",
            action_url="/retainers",
        )
        return retainer

    @staticmethod
    def list_retainers(user_id: str, role: str = "buyer") -> list[dict[str, Any]]:
        """
        Retainers where the user is the buyer, or the provider.

        Args:
            user_id: The signed-in user
            role: "buyer" or "provider"
        """
        client = SupabaseClient.get_client()
        query = client.table("retainers").select("*")

        if role == "provider":
            provider = SupabaseClient.fetch_provider_profile_for_user(user_id)
            if not provider:
                raise NotFoundError("Provider profile", str(user_id))
            query = query.eq("seller_id", str(provider["id"]))
        else:
            query = query.eq("buyer_id", normalize_uuid(user_id))

        response = query.order("created_at", desc=True).execute()
        return response.data or []

    @staticmethod
    def _update_status(
        retainer: dict[str, Any],
        new_status: RetainerStatus,
        extra_fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        current = retainer.get("status")
        update_data = {"status": new_status.value}
        if extra_fields:
            update_data.update(extra_fields)

        client = SupabaseClient.get_client()
        response = (
            client.table("retainers")
            .update(update_data)
            .eq("id", str(retainer["id"]))
            .eq("status", current)
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError(
                "Retainer was changed by another request",
                current=current,
                requested=new_status.value,
            )
        logger.info(f"Retainer {retainer['id']}: {current} -> {new_status.value}")
        return response.data[0]

    @staticmethod
    def respond_to_retainer(user_id: str, retainer_id: str, accept: bool) -> dict[str, Any]:
        """Provider accepts (-> active) or declines (-> cancelled) a pending retainer."""
        retainer, _, _ = get_retainer_for_party(retainer_id, user_id, provider_only=True)

        if retainer.get("status") != RetainerStatus.PENDING.value:
            raise InvalidTransitionError("Retainer is not pending", current=retainer.get("status"))

        now = utc_now().isoformat()
        if accept:
            updated = RetainerService._update_status(
                retainer, RetainerStatus.ACTIVE, {"started_at": now}
            )
        else:
            updated = RetainerService._update_status(
                retainer, RetainerStatus.CANCELLED, {"cancelled_at": now}
            )

        notify(
            str(retainer["buyer_id"]),
            title="Retainer Accepted" if accept else "Retainer Declined",
            body=f"Your retainer request was {'accepted' if accept else 'declined'}.",
            notification_type="retainer_response",
            action_url="/retainers",
        )
        return updated

    @staticmethod
    def toggle_retainer_pause(user_id: str, retainer_id: str) -> dict[str, Any]:
        """Pause an active retainer or resume a paused one."""
        retainer, _, _ = get_retainer_for_party(retainer_id, user_id)

        status = retainer.get("status")
        if status == RetainerStatus.ACTIVE.value:
            new_status = RetainerStatus.PAUSED
        elif status == RetainerStatus.PAUSED.value:
            new_status = RetainerStatus.ACTIVE
        else:
            raise InvalidTransitionError("Can only pause/resume active retainers", current=status)

        return RetainerService._update_status(retainer, new_status)

    @staticmethod
    def cancel_retainer(
        user_id: str,
        retainer_id: str,
        effective_date: datetime | None = None,
    ) -> dict[str, Any]:
        """
        Cancel a retainer with a notice period.

        Args:
            user_id: Buyer or provider
            retainer_id: The retainer UUID
            effective_date: When the cancellation takes effect; defaults to
                RETAINER_NOTICE_DAYS from now

        Raises:
            InvalidTransitionError: If the retainer is already cancelled
        """
        retainer, is_buyer, provider = get_retainer_for_party(retainer_id, user_id)

        if retainer.get("status") == RetainerStatus.CANCELLED.value:
            raise InvalidTransitionError("Retainer is already cancelled", current=retainer.get("status"))

        now = utc_now()
        effective = effective_date or now + timedelta(days=settings.RETAINER_NOTICE_DAYS)

        updated = RetainerService._update_status(
            retainer,
            RetainerStatus.CANCELLED,
            {"cancelled_at": now.isoformat(), "cancellation_effective": effective.isoformat()},
        )

        other = (provider or {}).get("user_id") if is_buyer else retainer.get("buyer_id")
        notify(
            str(other) if other else None,
            title="Retainer Cancelled",
            body=f"A retainer was cancelled, effective {effective.date().isoformat()}.",
            notification_type="retainer_cancelled",
            action_url="/retainers",
        )
        return updated

    @staticmethod
    def get_retainer_stats(user_id: str, retainer_id: str) -> RetainerStats:
        """Hours logged vs. expected, and weekly/monthly cost."""
        retainer, _, _ = get_retainer_for_party(retainer_id, user_id)

        client = SupabaseClient.get_client()
        response = (
            client.table("timesheet_entries")
            .select("hours_logged, status")
            .eq("retainer_id", str(retainer["id"]))
            .execute()
        )
        entries = response.data or []

        def hours(statuses=None) -> float:
            return float(sum(
                e.get("hours_logged") or 0
                for e in entries
                if statuses is None or e.get("status") in statuses
            ))

        started = parse_timestamp(retainer.get("started_at")) or utc_now()
        weeks = max(0, (utc_now() - started).days // 7)
        weekly_hours = float(retainer.get("weekly_hours") or 0)
        weekly_rate = weekly_hours * float(retainer.get("hourly_rate") or 0)

        return RetainerStats(
            total_hours_logged=hours(),
            total_hours_approved=hours((TimesheetStatus.APPROVED.value, TimesheetStatus.PAID.value)),
            pending_approval=hours((TimesheetStatus.SUBMITTED.value,)),
            weeks_active=weeks,
            expected_hours=weeks * weekly_hours,
            weekly_rate=weekly_rate,
            monthly_estimate=weekly_rate * WEEKS_PER_MONTH,
        )

# =============================================================================
# core/services/timesheet_service.py - Retainer Timesheets
# =============================================================================
# One entry per retainer per week (unique on retainer_id + week_start).
#
# Status flow: draft -> submitted -> approved | disputed
# Logging hours for a week that already has an entry overwrites it and puts
# it back to draft, whatever its previous status (paid entries excepted).
# There is no history table; the overwrite is logged.
# =============================================================================

import logging
from datetime import date
from typing import Any

from app.exceptions import InvalidInputError, InvalidTransitionError, NotAuthorizedError, NotFoundError
from core.models.retainers import RetainerStatus, TimesheetStatus
from core.services.notification_service import notify
from core.services.retainer_service import get_retainer_for_party
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, to_date, utc_now

logger = logging.getLogger(__name__)

# Hours logged in a week may exceed the retainer's weekly hours by half
MAX_HOURS_FACTOR = 1.5


class TimesheetService:
    """
    Service for logging and approving retainer hours.
    """

    @staticmethod
    def _load_entry(entry_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
        entry = SupabaseClient.fetch_timesheet_entry(entry_id)
        if not entry:
            raise NotFoundError("Timesheet", str(entry_id))
        retainer = SupabaseClient.fetch_retainer(entry["retainer_id"])
        if not retainer:
            raise NotFoundError("Retainer", str(entry["retainer_id"]))
        return entry, retainer

    @staticmethod
    def _set_status(
        entry: dict[str, Any],
        expected: TimesheetStatus,
        new_status: TimesheetStatus,
        extra_fields: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        update_data = {"status": new_status.value}
        if extra_fields:
            update_data.update(extra_fields)

        client = SupabaseClient.get_client()
        response = (
            client.table("timesheet_entries")
            .update(update_data)
            .eq("id", str(entry["id"]))
            .eq("status", expected.value)
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError(
                "Timesheet was changed by another request",
                current=entry.get("status"),
                requested=new_status.value,
            )
        logger.info(f"Timesheet {entry['id']}: {expected.value} -> {new_status.value}")
        return response.data[0]

    @staticmethod
    def log_hours(
        user_id: str,
        retainer_id: str,
        week_start: date | str,
        hours: float,
        description: str | None = None,
    ) -> dict[str, Any]:
        """
        Log (or re-log) a week's hours.

        Args:
            user_id: Must be the retainer's provider
            retainer_id: The retainer UUID
            week_start: Monday of the week
            hours: Hours worked that week
            description: Optional summary

        Returns:
            The upserted timesheet entry, in draft

        Raises:
            NotAuthorizedError: If the caller isn't the provider
            InvalidInputError: If hours are out of range
            InvalidTransitionError: If the retainer isn't active or the
                week was already paid
        """
        retainer, _, _ = get_retainer_for_party(retainer_id, user_id, provider_only=True)

        if retainer.get("status") != RetainerStatus.ACTIVE.value:
            raise InvalidTransitionError("Retainer is not active", current=retainer.get("status"))

        if hours is None or hours <= 0:
            raise InvalidInputError("Hours must be positive")
        max_hours = float(retainer.get("weekly_hours") or 0) * MAX_HOURS_FACTOR
        if max_hours and hours > max_hours:
            raise InvalidInputError(f"Hours cannot exceed {max_hours:g}")

        week = to_date(week_start)
        if week.weekday() != 0:
            raise InvalidInputError("Week start must be a Monday")

        client = SupabaseClient.get_client()
        existing = (
            client.table("timesheet_entries")
            .select("id, status, hours_logged")
            .eq("retainer_id", str(retainer["id"]))
            .eq("week_start", week.isoformat())
            .execute()
        )
        if existing.data:
            previous = existing.data[0]
            if previous.get("status") == TimesheetStatus.PAID.value:
                raise InvalidTransitionError("This week has already been paid", current=previous["status"])
            logger.info(
                f"Overwriting timesheet {previous['id']} for week {week} "
                f"(was {previous.get('status')}, {previous.get('hours_logged')}h)"
            )

        response = (
            client.table("timesheet_entries")
            .upsert(
                {
                    "retainer_id": str(retainer["id"]),
                    "week_start": week.isoformat(),
                    "hours_logged": hours,
                    "description": description,
                    "status": TimesheetStatus.DRAFT.value,
                    "submitted_at": None,
                    "approved_at": None,
                },
                on_conflict="retainer_id,week_start",
            )
            .execute()
        )
        return response.data[0] if response.data else {}

    @staticmethod
    def submit_timesheet(user_id: str, entry_id: str) -> dict[str, Any]:
        """Provider submits a draft entry for approval."""
        entry, retainer = TimesheetService._load_entry(entry_id)
        provider = SupabaseClient.fetch_provider_profile(retainer["seller_id"])
        if not provider or str(provider.get("user_id")) != normalize_uuid(user_id):
            raise NotAuthorizedError("Only the provider can submit timesheets")

        if entry.get("status") != TimesheetStatus.DRAFT.value:
            raise InvalidTransitionError("Entry is not in draft status", current=entry.get("status"))
        if not entry.get("hours_logged"):
            raise InvalidInputError("Cannot submit a timesheet with 0 hours")

        updated = TimesheetService._set_status(
            entry, TimesheetStatus.DRAFT, TimesheetStatus.SUBMITTED,
            {"submitted_at": utc_now().isoformat()},
        )
        notify(
            str(retainer["buyer_id"]),
            title="Timesheet Submitted",
            body=f"{entry.get('hours_logged')} hours for the week of {entry.get('week_start')} need your approval.",
            notification_type="timesheet_submitted",
            action_url="/retainers",
        )
        return updated

    @staticmethod
    def approve_timesheet(user_id: str, entry_id: str) -> dict[str, Any]:
        """Buyer approves a submitted entry. Payment is handled separately."""
        entry, retainer = TimesheetService._load_entry(entry_id)
        if str(retainer.get("buyer_id")) != normalize_uuid(user_id):
            raise NotAuthorizedError("Only the buyer can approve timesheets")

        if entry.get("status") != TimesheetStatus.SUBMITTED.value:
            raise InvalidTransitionError("Entry is not submitted", current=entry.get("status"))

        updated = TimesheetService._set_status(
            entry, TimesheetStatus.SUBMITTED, TimesheetStatus.APPROVED,
            {"approved_at": utc_now().isoformat()},
        )
        provider = SupabaseClient.fetch_provider_profile(retainer["seller_id"])
        notify(
            str(provider["user_id"]) if provider else None,
            title="Timesheet Approved",
            body=f"Your hours for the week of {entry.get('week_start')} were approved.",
            notification_type="timesheet_approved",
            action_url="/retainers",
        )
        return updated

    @staticmethod
    def dispute_timesheet(user_id: str, entry_id: str, reason: str) -> dict[str, Any]:
        """Buyer disputes a submitted entry."""
        if not reason or not reason.strip():
            raise InvalidInputError("Dispute reason is required")

        entry, retainer = TimesheetService._load_entry(entry_id)
        if str(retainer.get("buyer_id")) != normalize_uuid(user_id):
            raise NotAuthorizedError("Only the buyer can dispute timesheets")

        if entry.get("status") != TimesheetStatus.SUBMITTED.value:
            raise InvalidTransitionError("Entry is not submitted", current=entry.get("status"))

        updated = TimesheetService._set_status(
            entry, TimesheetStatus.SUBMITTED, TimesheetStatus.DISPUTED,
            {"dispute_reason": reason.strip()},
        )
        provider = SupabaseClient.fetch_provider_profile(retainer["seller_id"])
        notify(
            str(provider["user_id"]) if provider else None,
            title="Timesheet Disputed",
            body=f"Your hours for the week of {entry.get('week_start')} were disputed.",
            notification_type="timesheet_disputed",
            action_url="/retainers",
            metadata={"reason": reason.strip()},
        )
        return updated

    @staticmethod
    def list_entries(user_id: str, retainer_id: str) -> list[dict[str, Any]]:
        """A retainer's timesheet entries, newest week first."""
        retainer, _, _ = get_retainer_for_party(retainer_id, user_id)
        client = SupabaseClient.get_client()
        response = (
            client.table("timesheet_entries")
            .select("*")
            .eq("retainer_id", str(retainer["id"]))
            .order("week_start", desc=True)
            .execute()
        )
        return response.data or []

    @staticmethod
    def pending_for_approval(user_id: str) -> list[dict[str, Any]]:
        """Submitted entries on retainers where the user is the buyer."""
        client = SupabaseClient.get_client()
        retainers = (
            client.table("retainers")
            .select("id")
            .eq("buyer_id", normalize_uuid(user_id))
            .execute()
        )
        retainer_ids = [r["id"] for r in retainers.data or []]
        if not retainer_ids:
            return []

        response = (
            client.table("timesheet_entries")
            .select("*")
            .in_("retainer_id", retainer_ids)
            .eq("status", TimesheetStatus.SUBMITTED.value)
            .order("week_start", desc=True)
            .execute()
        )
        return response.data or []

# =============================================================================
# core/services/otjt_service.py - Apprenticeship Off-the-Job Training Hours
# =============================================================================
# Apprentices log OTJT hours against their enrollment; the senior mentor or
# workplace buddy approves, rejects or queries each log.
#
# Daily cap: 8 hours per enrollment per day, across all logs for that date.
# Weekly target: 20% of contracted weekly hours, capped at 6.
# =============================================================================

import logging
from datetime import date, timedelta
from typing import Any

from app.config import settings
from app.exceptions import InvalidInputError, InvalidTransitionError, NotAuthorizedError, NotFoundError
from core.models.apprenticeship import (
    BulkApproveResult,
    OTJTActivityType,
    OTJTProgress,
    OTJTStatus,
    WeeklySummary,
)
from core.models.notifications import NotificationPriority
from core.services.notification_service import notify
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, parse_timestamp, to_date, utc_now

logger = logging.getLogger(__name__)

DEFAULT_WEEKLY_HOURS = 30
OTJT_SHARE = 0.2
MAX_WEEKLY_TARGET = 6.0

REVIEWABLE_STATUSES = (OTJTStatus.PENDING.value, OTJTStatus.QUERIED.value)


def weekly_target(weekly_hours: float | None) -> float:
    """OTJT hours expected per week for a contract of `weekly_hours`."""
    return min((weekly_hours or DEFAULT_WEEKLY_HOURS) * OTJT_SHARE, MAX_WEEKLY_TARGET)


def week_bounds(day: date) -> tuple[date, date]:
    """Monday and Sunday of the week containing `day`."""
    start = day - timedelta(days=day.weekday())
    return start, start + timedelta(days=6)


def _sum_hours(logs: list[dict[str, Any]], status: OTJTStatus | None = None) -> float:
    return float(sum(
        float(log.get("hours") or 0)
        for log in logs
        if status is None or log.get("status") == status.value
    ))


class OTJTService:
    """
    Service for OTJT time logs.
    """

    # -------------------------------------------------------------------------
    # Access helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _load_enrollment(enrollment_id: str) -> dict[str, Any]:
        enrollment = SupabaseClient.fetch_enrollment(enrollment_id)
        if not enrollment:
            raise NotFoundError("Enrollment", str(enrollment_id))
        return enrollment

    @staticmethod
    def _is_reviewer(enrollment: dict[str, Any], user_id: str) -> bool:
        user_id = normalize_uuid(user_id)
        return user_id in (
            str(enrollment.get("senior_mentor_id")),
            str(enrollment.get("workplace_buddy_id")),
        )

    @staticmethod
    def _load_for_review(log_id: str, user_id: str, verb: str) -> tuple[dict[str, Any], dict[str, Any]]:
        log = SupabaseClient.fetch_otjt_log(log_id)
        if not log:
            raise NotFoundError("Log", str(log_id))

        enrollment = OTJTService._load_enrollment(log["enrollment_id"])
        if not OTJTService._is_reviewer(enrollment, user_id):
            raise NotAuthorizedError(f"Only mentors can {verb} OTJT logs")
        return log, enrollment

    @staticmethod
    def _check_can_view(enrollment: dict[str, Any], user_id: str) -> None:
        if str(enrollment.get("apprentice_id")) == normalize_uuid(user_id):
            return
        if OTJTService._is_reviewer(enrollment, user_id):
            return
        raise NotAuthorizedError("Not authorized to view this enrollment")

    @staticmethod
    def _review(
        log: dict[str, Any],
        new_status: OTJTStatus,
        fields: dict[str, Any],
    ) -> dict[str, Any]:
        if log.get("status") not in REVIEWABLE_STATUSES:
            raise InvalidTransitionError(
                f"Log has already been {log.get('status')}",
                current=log.get("status"),
                requested=new_status.value,
            )

        client = SupabaseClient.get_client()
        response = (
            client.table("otjt_time_logs")
            .update({"status": new_status.value, "updated_at": utc_now().isoformat(), **fields})
            .eq("id", str(log["id"]))
            .in_("status", list(REVIEWABLE_STATUSES))
            .execute()
        )
        if not response.data:
            raise InvalidTransitionError("Log was reviewed by another request", current=log.get("status"))
        return response.data[0]

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------

    @staticmethod
    def log_otjt_time(
        user_id: str,
        enrollment_id: str,
        log_date: date | str,
        hours: float,
        activity_type: OTJTActivityType | str,
        description: str | None = None,
        learning_outcomes: str | None = None,
        module_id: str | None = None,
        task_id: str | None = None,
        evidence_url: str | None = None,
    ) -> dict[str, Any]:
        """
        Log OTJT hours for one day.

        Args:
            user_id: Must be the enrollment's apprentice
            enrollment_id: The enrollment UUID
            log_date: Day the training happened (not in the future)
            hours: Hours to add; the day's total may not exceed 8
            activity_type: OTJTActivityType value

        Returns:
            The inserted log, status pending

        Raises:
            NotFoundError: If the enrollment doesn't exist
            NotAuthorizedError: If the caller isn't the apprentice
            InvalidInputError: On invalid hours, the daily cap or a future date
        """
        enrollment = OTJTService._load_enrollment(enrollment_id)
        if str(enrollment.get("apprentice_id")) != normalize_uuid(user_id):
            raise NotAuthorizedError("You can only log hours for your own enrollment")

        max_daily = settings.OTJT_MAX_DAILY_HOURS
        if hours is None or hours <= 0 or hours > max_daily:
            raise InvalidInputError(f"Hours must be between 0.5 and {max_daily:g} per day")

        try:
            activity_type = OTJTActivityType(activity_type)
        except ValueError:
            raise InvalidInputError(f"Invalid activity type: {activity_type}")

        day = to_date(log_date)
        client = SupabaseClient.get_client()
        existing = (
            client.table("otjt_time_logs")
            .select("hours")
            .eq("enrollment_id", str(enrollment["id"]))
            .eq("log_date", day.isoformat())
            .execute()
        )
        total_today = _sum_hours(existing.data or [])
        if total_today + hours > max_daily:
            raise InvalidInputError(
                f"Cannot log more than {max_daily:g} OTJT hours per day. "
                f"You've already logged {total_today:g} hours for {day.isoformat()}."
            )

        if day > utc_now().date():
            raise InvalidInputError("Cannot log hours for future dates")

        response = client.table("otjt_time_logs").insert({
            "enrollment_id": str(enrollment["id"]),
            "log_date": day.isoformat(),
            "hours": hours,
            "activity_type": activity_type.value,
            "description": description,
            "learning_outcomes": learning_outcomes,
            "module_id": module_id,
            "task_id": task_id,
            "evidence_url": evidence_url,
            "status": OTJTStatus.PENDING.value,
        }).execute()
        log = response.data[0]
        logger.info(f"Logged {hours}h OTJT ({activity_type.value}) on {day} for enrollment {enrollment['id']}")

        if enrollment.get("senior_mentor_id"):
            notify(
                str(enrollment["senior_mentor_id"]),
                title="OTJT Log Awaiting Approval",
                body=f"{hours:g} hours of {activity_type.value.replace('_', ' ')} on {day.isoformat()}.",
                notification_type="otjt_approval",
                action_url="/apprenticeship",
                metadata={"log_id": log["id"], "enrollment_id": str(enrollment["id"])},
            )
        return log

    # -------------------------------------------------------------------------
    # Review
    # -------------------------------------------------------------------------

    @staticmethod
    def approve_log(user_id: str, log_id: str) -> dict[str, Any]:
        log, _ = OTJTService._load_for_review(log_id, user_id, "approve")
        return OTJTService._review(log, OTJTStatus.APPROVED, {
            "approved_by": normalize_uuid(user_id),
            "approved_at": utc_now().isoformat(),
        })

    @staticmethod
    def reject_log(user_id: str, log_id: str, reason: str) -> dict[str, Any]:
        """Reject a log with a reason; the apprentice is notified."""
        if not reason or not reason.strip():
            raise InvalidInputError("Rejection reason is required")

        log, enrollment = OTJTService._load_for_review(log_id, user_id, "reject")
        updated = OTJTService._review(log, OTJTStatus.REJECTED, {"rejection_reason": reason.strip()})

        notify(
            str(enrollment.get("apprentice_id")),
            title="OTJT Log Rejected",
            body=f"Your OTJT log for {log.get('log_date')} was rejected: {reason.strip()}",
            priority=NotificationPriority.HIGH,
            notification_type="otjt_rejected",
            action_url="/apprenticeship",
        )
        return updated

    @staticmethod
    def query_log(user_id: str, log_id: str, message: str) -> dict[str, Any]:
        """Ask the apprentice a question about a log."""
        if not message or not message.strip():
            raise InvalidInputError("Query message is required")

        log, enrollment = OTJTService._load_for_review(log_id, user_id, "query")
        updated = OTJTService._review(log, OTJTStatus.QUERIED, {"query_message": message.strip()})

        notify(
            str(enrollment.get("apprentice_id")),
            title="Question About Your OTJT Log",
            body=message.strip(),
            notification_type="otjt_queried",
            action_url="/apprenticeship",
        )
        return updated

    @staticmethod
    def bulk_approve(user_id: str, log_ids: list[str]) -> BulkApproveResult:
        """Approve many logs; each failure is counted, not raised."""
        result = BulkApproveResult(approved=0, failed=0)
        for log_id in log_ids:
            try:
                OTJTService.approve_log(user_id, log_id)
                result.approved += 1
            except (NotFoundError, NotAuthorizedError, InvalidTransitionError) as e:
                result.failed += 1
                result.errors.append(f"{log_id}: {e.message}")
        return result

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @staticmethod
    def get_logs(
        user_id: str,
        enrollment_id: str,
        start_date: date | str | None = None,
        end_date: date | str | None = None,
        status: OTJTStatus | None = None,
        limit: int | None = None,
    ) -> list[dict[str, Any]]:
        """An enrollment's logs, most recent day first."""
        enrollment = OTJTService._load_enrollment(enrollment_id)
        OTJTService._check_can_view(enrollment, user_id)

        client = SupabaseClient.get_client()
        query = (
            client.table("otjt_time_logs")
            .select("*")
            .eq("enrollment_id", str(enrollment["id"]))
        )
        if start_date:
            query = query.gte("log_date", to_date(start_date).isoformat())
        if end_date:
            query = query.lte("log_date", to_date(end_date).isoformat())
        if status:
            query = query.eq("status", OTJTStatus(status).value)
        query = query.order("log_date", desc=True)
        if limit:
            query = query.limit(limit)
        return query.execute().data or []

    @staticmethod
    def weekly_summary(
        user_id: str,
        enrollment_id: str,
        week_start: date | str | None = None,
    ) -> WeeklySummary:
        """
        Hours for one Monday-Sunday week against the weekly target.

        Args:
            week_start: Any day in the week; defaults to the current week
        """
        enrollment = OTJTService._load_enrollment(enrollment_id)
        OTJTService._check_can_view(enrollment, user_id)

        start, end = week_bounds(to_date(week_start) if week_start else utc_now().date())

        client = SupabaseClient.get_client()
        response = (
            client.table("otjt_time_logs")
            .select("*")
            .eq("enrollment_id", str(enrollment["id"]))
            .gte("log_date", start.isoformat())
            .lte("log_date", end.isoformat())
            .order("log_date")
            .execute()
        )
        logs = response.data or []

        target = weekly_target(enrollment.get("weekly_hours"))
        total = _sum_hours(logs)
        return WeeklySummary(
            week_start=start.isoformat(),
            week_end=end.isoformat(),
            total_hours=total,
            approved_hours=_sum_hours(logs, OTJTStatus.APPROVED),
            pending_hours=_sum_hours(logs, OTJTStatus.PENDING),
            rejected_hours=_sum_hours(logs, OTJTStatus.REJECTED),
            target_hours=target,
            on_track=total >= target,
            shortfall=max(0.0, target - total),
            log_count=len(logs),
        )

    @staticmethod
    def progress_summary(user_id: str, enrollment_id: str) -> OTJTProgress:
        """Overall OTJT progress against the enrollment's target."""
        enrollment = OTJTService._load_enrollment(enrollment_id)
        OTJTService._check_can_view(enrollment, user_id)

        client = SupabaseClient.get_client()
        pending = (
            client.table("otjt_time_logs")
            .select("id", count="exact")
            .eq("enrollment_id", str(enrollment["id"]))
            .eq("status", OTJTStatus.PENDING.value)
            .execute()
        )

        now = utc_now()
        start = parse_timestamp(enrollment.get("start_date")) or now
        end = parse_timestamp(enrollment.get("expected_end_date")) or now
        duration = (end - start).total_seconds()
        elapsed = max(0.0, (now - start).total_seconds())
        expected_pct = min(100.0, elapsed / duration * 100) if duration > 0 else 100.0

        logged = float(enrollment.get("otjt_hours_logged") or 0)
        target = float(enrollment.get("otjt_hours_target") or 0)
        actual_pct = logged / target * 100 if target else 0.0

        per_week = weekly_target(enrollment.get("weekly_hours"))
        expected_hours = per_week * int(elapsed // (7 * 24 * 3600))

        return OTJTProgress(
            hours_logged=logged,
            hours_target=target,
            hours_remaining=target - logged,
            progress_percent=round(actual_pct, 1),
            expected_progress_percent=round(expected_pct, 1),
            on_track=actual_pct >= expected_pct * 0.9,
            pending_approvals=pending.count or 0,
            weekly_target=per_week,
            expected_hours_by_now=round(expected_hours, 1),
            ahead_behind_hours=round(logged - expected_hours, 1),
        )

    @staticmethod
    def pending_approvals(user_id: str) -> list[dict[str, Any]]:
        """Pending logs on enrollments the user mentors or buddies."""
        user_id = normalize_uuid(user_id)
        client = SupabaseClient.get_client()

        enrollment_ids = set()
        for column in ("senior_mentor_id", "workplace_buddy_id"):
            response = (
                client.table("apprenticeship_enrollments")
                .select("id")
                .eq(column, user_id)
                .execute()
            )
            enrollment_ids.update(row["id"] for row in response.data or [])

        if not enrollment_ids:
            return []

        response = (
            client.table("otjt_time_logs")
            .select("*")
            .in_("enrollment_id", sorted(enrollment_ids))
            .eq("status", OTJTStatus.PENDING.value)
            .order("log_date")
            .execute()
        )
        return response.data or []

# =============================================================================
# tests/test_notifications.py - Notification Routing Tests
# =============================================================================
# Run with: pytest tests/test_notifications.py -v
# =============================================================================

from unittest.mock import patch

import pytest

from app.config import settings
from app.exceptions import InvalidInputError, NotFoundError
from core.models.notifications import (
    NotificationChannel,
    NotificationPriority,
    NotificationRequest,
)
from core.services.notification_service import (
    NotificationService,
    default_preferences,
    notify,
)
from tests.conftest import BUYER_ID, OTHER_USER_ID


def _request(priority=NotificationPriority.MEDIUM, **overrides):
    data = {"user_id": BUYER_ID, "title": "Hello", "body": "World", "priority": priority}
    data.update(overrides)
    return NotificationRequest(**data)


def _set_pref(db, channel, **fields):
    db.seed("notification_preferences", {"user_id": BUYER_ID, "channel": channel, **fields})


class TestPreferences:
    """Defaults and stored overrides."""

    def test_defaults(self):
        prefs = default_preferences()
        assert prefs["sms"]["enabled"] is False
        assert prefs["in_app"]["low_enabled"] is True
        assert prefs["email"]["low_enabled"] is False

    def test_stored_rows_override(self, seeded_parties):
        _set_pref(seeded_parties, "email", enabled=False)
        _set_pref(seeded_parties, "push", push_token="tok_123")

        prefs = NotificationService.get_preferences(BUYER_ID)

        assert prefs["email"]["enabled"] is False
        assert prefs["push"]["push_token"] == "tok_123"
        assert prefs["in_app"]["enabled"] is True

    def test_update_preference_upserts(self, seeded_parties):
        NotificationService.update_preference(BUYER_ID, NotificationChannel.EMAIL, {"high_enabled": False})
        NotificationService.update_preference(BUYER_ID, NotificationChannel.EMAIL, {"medium_enabled": False})

        rows = seeded_parties.rows("notification_preferences")
        assert len(rows) == 1
        assert rows[0]["high_enabled"] is False
        assert rows[0]["medium_enabled"] is False

    def test_update_needs_a_field(self, seeded_parties):
        with pytest.raises(InvalidInputError):
            NotificationService.update_preference(BUYER_ID, NotificationChannel.EMAIL, {"colour": "red"})


class TestRouting:
    """Which channels a priority reaches."""

    def test_medium_without_push_token(self, seeded_parties):
        result = NotificationService.send_notification(_request())

        assert result.success is True
        assert result.channels_delivered == [NotificationChannel.EMAIL, NotificationChannel.IN_APP]
        assert any(e.startswith("push:") for e in result.errors)
        assert result.notification_id == seeded_parties.rows("notifications")[0]["id"]

    def test_low_is_in_app_only(self, seeded_parties):
        _set_pref(seeded_parties, "push", push_token="tok_123")

        result = NotificationService.send_notification(_request(NotificationPriority.LOW))

        assert result.channels_delivered == [NotificationChannel.IN_APP]
        assert result.errors == []

    def test_critical_with_sms_enabled(self, seeded_parties):
        _set_pref(seeded_parties, "push", push_token="tok_123")
        _set_pref(seeded_parties, "sms", enabled=True, phone_number="+447700900000")

        result = NotificationService.send_notification(_request(NotificationPriority.CRITICAL))

        assert result.channels_delivered == [
            NotificationChannel.PUSH,
            NotificationChannel.SMS,
            NotificationChannel.EMAIL,
            NotificationChannel.IN_APP,
        ]

    def test_sms_is_off_by_default(self, seeded_parties):
        result = NotificationService.send_notification(_request(NotificationPriority.CRITICAL))
        assert NotificationChannel.SMS not in result.channels_delivered

    def test_in_app_row(self, seeded_parties):
        NotificationService.send_notification(_request(action_url="/orders/1"))

        row = seeded_parties.rows("notifications")[0]
        assert row["user_id"] == BUYER_ID
        assert row["title"] == "Hello"
        assert row["message"] == "World"
        assert row["link"] == "/orders/1"
        assert row["is_read"] is False

    def test_delivery_is_logged(self, seeded_parties):
        NotificationService.send_notification(_request())

        log = seeded_parties.rows("notification_log")[0]
        assert log["channels"] == ["push", "email", "in_app"]
        assert log["delivered_via"] == ["email", "in_app"]

    def test_log_failure_is_ignored(self, seeded_parties):
        seeded_parties.fail("notification_log", "insert")
        assert NotificationService.send_notification(_request()).success is True


class TestNotify:
    """The fire-and-forget wrapper used by workflows."""

    def test_never_raises(self, seeded_parties):
        seeded_parties.fail("notifications", "insert")
        seeded_parties.fail("notification_preferences", "select")
        notify(BUYER_ID, "Hi", "There")

    def test_missing_recipient_is_ignored(self, seeded_parties):
        notify(None, "Hi", "There")
        assert seeded_parties.rows("notifications") == []

    def test_async_dispatch(self, seeded_parties):
        with patch.object(settings, "NOTIFICATIONS_ASYNC", True), \
                patch("workers.tasks.dispatch_notification") as task:
            notify(BUYER_ID, "Hi", "There", priority=NotificationPriority.HIGH)

        payload = task.delay.call_args.args[0]
        assert payload["user_id"] == BUYER_ID
        assert payload["priority"] == "high"
        assert seeded_parties.rows("notifications") == []


class TestInbox:
    @pytest.fixture
    def inbox(self, seeded_parties):
        return seeded_parties.seed(
            "notifications",
            {"user_id": BUYER_ID, "title": "A", "is_read": False, "created_at": "2025-01-01T00:00:00+00:00"},
            {"user_id": BUYER_ID, "title": "B", "is_read": True, "created_at": "2025-01-02T00:00:00+00:00"},
            {"user_id": BUYER_ID, "title": "C", "is_read": False, "created_at": "2025-01-03T00:00:00+00:00"},
            {"user_id": OTHER_USER_ID, "title": "D", "is_read": False},
        )

    def test_newest_first(self, inbox):
        titles = [n["title"] for n in NotificationService.list_notifications(BUYER_ID)]
        assert titles == ["C", "B", "A"]

    def test_unread_only(self, inbox):
        titles = [n["title"] for n in NotificationService.list_notifications(BUYER_ID, unread_only=True)]
        assert titles == ["C", "A"]

    def test_mark_read(self, inbox):
        updated = NotificationService.mark_read(BUYER_ID, inbox[0]["id"])
        assert updated["is_read"] is True

    def test_cannot_mark_someone_elses(self, inbox):
        with pytest.raises(NotFoundError):
            NotificationService.mark_read(BUYER_ID, inbox[3]["id"])

    def test_mark_all_read(self, inbox):
        assert NotificationService.mark_all_read(BUYER_ID) == 2
        assert NotificationService.list_notifications(BUYER_ID, unread_only=True) == []


class TestWorker:
    def test_only_delivery_task_is_registered(self):
        import workers.tasks  # noqa: F401
        from workers.celery_app import celery_app

        names = {name for name in celery_app.tasks if not name.startswith("celery.")}
        assert names == {"workers.tasks.dispatch_notification"}

# =============================================================================
# tests/test_offboarding.py - Member Offboarding Tests
# =============================================================================
# Run with: pytest tests/test_offboarding.py -v
# =============================================================================

import uuid
from unittest.mock import patch

import pytest

from app.exceptions import (
    InvalidInputError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from core.models.offboarding import OffboardingAction
from core.services.offboarding_service import LAST_FOUNDER_MESSAGE, OffboardingService

FOUNDRY_ID = "f0f0f0f0-0000-4000-8000-000000000001"
FOUNDER_ID = "f0f0f0f0-0000-4000-8000-0000000000a1"
CO_FOUNDER_ID = "f0f0f0f0-0000-4000-8000-0000000000a2"
EXEC_ID = "f0f0f0f0-0000-4000-8000-0000000000b1"
MEMBER_ID = "f0f0f0f0-0000-4000-8000-0000000000c1"
OUTSIDER_ID = "f0f0f0f0-0000-4000-8000-0000000000d1"


def _profile(profile_id, role, foundry_id=FOUNDRY_ID, **extra):
    row = {
        "id": profile_id,
        "foundry_id": foundry_id,
        "role": role,
        "is_active": True,
        "full_name": f"{role} {profile_id[-2:]}",
        "email": f"{profile_id[-2:]}@example.com",
    }
    row.update(extra)
    return row


@pytest.fixture
def foundry(fake_db):
    fake_db.seed(
        "profiles",
        _profile(FOUNDER_ID, "Founder"),
        _profile(EXEC_ID, "Executive"),
        _profile(MEMBER_ID, "Apprentice"),
        _profile(OUTSIDER_ID, "Apprentice", foundry_id=str(uuid.uuid4())),
    )
    return fake_db


@pytest.fixture
def member_work(foundry):
    """Two tasks and an objective owned by MEMBER_ID, plus a pending invite."""
    created, assigned = foundry.seed(
        "tasks",
        {"foundry_id": FOUNDRY_ID, "title": "Write plan", "status": "open", "creator_id": MEMBER_ID},
        {"foundry_id": FOUNDRY_ID, "title": "Ship it", "status": "in_progress",
         "creator_id": EXEC_ID, "assignee_id": MEMBER_ID},
    )
    foundry.seed("objectives", {"foundry_id": FOUNDRY_ID, "creator_id": MEMBER_ID})
    foundry.seed(
        "company_invitations",
        {"invited_by": MEMBER_ID, "email": "new@example.com", "accepted_at": None},
        {"invited_by": MEMBER_ID, "email": "old@example.com", "accepted_at": "2025-01-01T00:00:00+00:00"},
    )
    return {"created": created, "assigned": assigned}


def _audit_actions(db):
    return [row["action"] for row in db.rows("foundry_admin_audit_log")]


class TestGuards:
    """Checks that run before anything is changed."""

    def test_apprentice_cannot_offboard(self, foundry):
        with pytest.raises(NotAuthorizedError) as exc_info:
            OffboardingService.offboard_member(MEMBER_ID, EXEC_ID, "soft_delete")
        assert exc_info.value.message == "Only Executives and Founders can offboard users"

    def test_inactive_actor(self, foundry):
        foundry.get("profiles", EXEC_ID)["is_active"] = False
        with pytest.raises(NotAuthorizedError) as exc_info:
            OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete")
        assert exc_info.value.message == "Your account is not active"

    def test_member_in_other_foundry(self, foundry):
        with pytest.raises(NotFoundError):
            OffboardingService.offboard_member(EXEC_ID, OUTSIDER_ID, "soft_delete")

    def test_already_deactivated(self, foundry):
        foundry.get("profiles", MEMBER_ID)["is_active"] = False
        with pytest.raises(InvalidTransitionError):
            OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "anonymize")

    def test_deactivated_member_can_still_be_deleted(self, foundry):
        foundry.get("profiles", MEMBER_ID)["is_active"] = False
        OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "reassign_delete")
        assert foundry.get("profiles", MEMBER_ID) is None

    def test_executive_cannot_remove_founder(self, foundry):
        foundry.seed("profiles", _profile(CO_FOUNDER_ID, "Founder"))
        with pytest.raises(NotAuthorizedError) as exc_info:
            OffboardingService.offboard_member(EXEC_ID, FOUNDER_ID, "soft_delete")
        assert exc_info.value.message == "Only Founders can offboard other Founders"

    def test_last_founder_is_kept(self, foundry):
        """The sole Founder is refused before the self-check."""
        with pytest.raises(InvalidTransitionError) as exc_info:
            OffboardingService.offboard_member(FOUNDER_ID, FOUNDER_ID, "soft_delete")
        assert exc_info.value.message == LAST_FOUNDER_MESSAGE

    def test_cannot_offboard_self(self, foundry):
        with pytest.raises(InvalidInputError) as exc_info:
            OffboardingService.offboard_member(EXEC_ID, EXEC_ID, "soft_delete")
        assert exc_info.value.message == "Cannot offboard yourself"


class TestFounderRemoval:
    def test_founder_removes_co_founder(self, foundry):
        foundry.seed("profiles", _profile(CO_FOUNDER_ID, "Founder"))

        OffboardingService.offboard_member(FOUNDER_ID, CO_FOUNDER_ID, "soft_delete")

        assert foundry.get("profiles", CO_FOUNDER_ID)["is_active"] is False

    def test_concurrent_removal_is_undone(self, foundry):
        """If the other Founder left meanwhile, the deactivation is rolled back."""
        foundry.seed("profiles", _profile(CO_FOUNDER_ID, "Founder"))

        with patch(
            "core.services.offboarding_service._count_active_founders",
            side_effect=[2, 0],
        ):
            with pytest.raises(InvalidTransitionError) as exc_info:
                OffboardingService.offboard_member(FOUNDER_ID, CO_FOUNDER_ID, "soft_delete")

        assert exc_info.value.message == LAST_FOUNDER_MESSAGE
        restored = foundry.get("profiles", CO_FOUNDER_ID)
        assert restored["is_active"] is True
        assert restored["deactivated_at"] is None

    def test_bad_reassignment_key_leaves_founder_active(self, foundry):
        foundry.seed("profiles", _profile(CO_FOUNDER_ID, "Founder"))

        with pytest.raises(InvalidInputError):
            OffboardingService.offboard_member(
                FOUNDER_ID, CO_FOUNDER_ID, OffboardingAction.SOFT_DELETE, {"badkey": "unassign"},
            )

        profile = foundry.get("profiles", CO_FOUNDER_ID)
        assert profile["is_active"] is True
        assert profile.get("deactivated_at") is None

    def test_failure_after_claim_reactivates_founder(self, foundry):
        foundry.seed("profiles", _profile(CO_FOUNDER_ID, "Founder"))
        foundry.fail("company_invitations", "delete")

        with pytest.raises(Exception, match="connection reset"):
            OffboardingService.offboard_member(FOUNDER_ID, CO_FOUNDER_ID, "soft_delete")

        restored = foundry.get("profiles", CO_FOUNDER_ID)
        assert restored["is_active"] is True
        assert restored["deactivated_at"] is None


class TestModes:
    """The three offboarding modes."""

    def test_reassign_delete(self, member_work, foundry):
        result = OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, OffboardingAction.REASSIGN_DELETE)

        assert result.objectives_reassigned == 1
        assert result.tasks_reassigned == 1
        assert result.invitations_cancelled == 1
        assert foundry.get("profiles", MEMBER_ID) is None
        assert foundry.get("tasks", member_work["created"]["id"])["creator_id"] == EXEC_ID
        assert foundry.get("tasks", member_work["assigned"]["id"])["assignee_id"] is None
        assert [i["email"] for i in foundry.rows("company_invitations")] == ["old@example.com"]
        assert _audit_actions(foundry) == ["offboard_user_delete"]

    def test_soft_delete(self, member_work, foundry):
        OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete")

        profile = foundry.get("profiles", MEMBER_ID)
        assert profile["is_active"] is False
        assert profile["deactivated_at"] is not None
        assert foundry.get("tasks", member_work["created"]["id"])["creator_id"] == MEMBER_ID
        assert _audit_actions(foundry) == ["offboard_user_deactivate"]

    def test_anonymize(self, foundry):
        OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "anonymize")

        profile = foundry.get("profiles", MEMBER_ID)
        assert profile["full_name"] == "Former Employee"
        assert profile["email"].startswith(f"anonymized_{MEMBER_ID[:8]}_")
        assert profile["email"].endswith("@removed.local")
        audit = foundry.rows("foundry_admin_audit_log")[0]
        assert "original_email_hash" in audit["details"]
        assert "c1@example.com" not in str(audit["details"])

    def test_audit_failure_does_not_fail_offboarding(self, foundry):
        foundry.fail("foundry_admin_audit_log", "insert")

        result = OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete")

        assert result.success is True
        assert foundry.get("profiles", MEMBER_ID)["is_active"] is False


class TestReassignments:
    def test_explicit_targets(self, member_work, foundry):
        created = member_work["created"]["id"]
        assigned = member_work["assigned"]["id"]

        result = OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete", {
            f"{created}-creator": FOUNDER_ID,
            f"{assigned}-assignee": FOUNDER_ID,
        })

        assert result.tasks_reassigned == 2
        assert foundry.get("tasks", created)["creator_id"] == FOUNDER_ID
        assert foundry.get("tasks", assigned)["assignee_id"] == FOUNDER_ID

    def test_unassign(self, member_work, foundry):
        created = member_work["created"]["id"]
        assigned = member_work["assigned"]["id"]

        OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete", {
            f"{created}-creator": "unassign",
            f"{assigned}-assignee": "unassign",
        })

        assert foundry.get("tasks", created)["creator_id"] == EXEC_ID
        assert foundry.get("tasks", assigned)["assignee_id"] is None

    def test_bad_key(self, foundry):
        with pytest.raises(InvalidInputError):
            OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete", {"abc-owner": FOUNDER_ID})

    def test_bad_key_late_in_mapping_writes_nothing(self, member_work, foundry):
        created = member_work["created"]["id"]

        with pytest.raises(InvalidInputError):
            OffboardingService.offboard_member(EXEC_ID, MEMBER_ID, "soft_delete", {
                f"{created}-creator": FOUNDER_ID,
                "abc-owner": FOUNDER_ID,
            })

        assert foundry.get("tasks", created)["creator_id"] == MEMBER_ID
        assert foundry.get("profiles", MEMBER_ID)["is_active"] is True

    def test_task_listing(self, member_work, foundry):
        tasks = OffboardingService.get_offboarding_tasks(EXEC_ID, MEMBER_ID)

        relationships = {(t["task_title"], t["relationship_type"]) for t in tasks}
        assert relationships == {("Write plan", "creator"), ("Ship it", "assignee")}


class TestSettings:
    def test_defaults(self, foundry):
        settings = OffboardingService.get_settings_for_user(EXEC_ID)
        assert settings.default_action == OffboardingAction.REASSIGN_DELETE
        assert settings.retention_days == 30

    def test_founder_updates(self, foundry):
        updated = OffboardingService.update_offboarding_settings(
            FOUNDER_ID, {"default_action": "anonymize", "retention_days": 90},
        )

        assert updated.default_action == OffboardingAction.ANONYMIZE
        assert updated.retention_days == 90
        assert _audit_actions(foundry) == ["update_offboarding_settings"]

    def test_executive_cannot_update(self, foundry):
        with pytest.raises(NotAuthorizedError) as exc_info:
            OffboardingService.update_offboarding_settings(EXEC_ID, {"retention_days": 5})
        assert exc_info.value.message == "Only Founders can update offboarding settings"

    def test_empty_update(self, foundry):
        with pytest.raises(InvalidInputError):
            OffboardingService.update_offboarding_settings(FOUNDER_ID, {"unknown": 1})

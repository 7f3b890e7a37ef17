# =============================================================================
# core/services/offboarding_service.py - Member Offboarding
# =============================================================================
# Removes a member from a foundry. Guards are checked in this order:
#   1. the acting user is active
#   2. the acting user is an Executive or Founder
#   3. the member belongs to the actor's foundry
#   4. the member isn't already deactivated (reassign_delete excepted)
#   5. only a Founder may offboard a Founder
#   6. the last active Founder can't be offboarded
#   7. nobody offboards themselves
#
# Then: explicit task reassignments, pending invitations sent by the member
# are deleted, and the chosen mode is applied. Every mode writes an audit row
# to foundry_admin_audit_log; audit failures never fail the operation.
#
# Founder removal deactivates first and re-counts active Founders
# afterwards, undoing the deactivation if none remain. Two concurrent
# removals of the last two Founders therefore both fail instead of both
# succeeding.
# =============================================================================

import base64
import logging
import time
from typing import Any

from app.exceptions import (
    DatabaseError,
    InvalidInputError,
    InvalidTransitionError,
    NotAuthorizedError,
    NotFoundError,
)
from core.models.offboarding import (
    ADMIN_ROLES,
    UNASSIGN,
    MemberRole,
    OffboardingAction,
    OffboardingResult,
    OffboardingSettings,
)
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid, utc_now

logger = logging.getLogger(__name__)

LAST_FOUNDER_MESSAGE = "Cannot offboard the last active Founder. Promote another user to Founder first."


def log_admin_action(
    foundry_id: str,
    actor_id: str,
    action: str,
    target_user_id: str | None = None,
    details: dict[str, Any] | None = None,
) -> None:
    """Write a foundry_admin_audit_log row. Failures are logged, never raised."""
    try:
        client = SupabaseClient.get_client()
        client.table("foundry_admin_audit_log").insert({
            "foundry_id": foundry_id,
            "actor_id": actor_id,
            "action": action,
            "target_user_id": target_user_id,
            "details": details or {},
        }).execute()
    except Exception as e:
        logger.error(f"Failed to log admin action {action}: {e}")


def _require_admin(actor_id: str, roles: tuple[str, ...] = ADMIN_ROLES, message: str | None = None) -> dict[str, Any]:
    actor = SupabaseClient.fetch_profile(actor_id)
    if not actor or not actor.get("is_active"):
        raise NotAuthorizedError("Your account is not active")
    if actor.get("role") not in roles:
        raise NotAuthorizedError(message or "Only Executives and Founders can offboard users")
    if not actor.get("foundry_id"):
        raise NotAuthorizedError("User not in a foundry")
    return actor


def _count_active_founders(foundry_id: str) -> int:
    client = SupabaseClient.get_client()
    response = (
        client.table("profiles")
        .select("id", count="exact")
        .eq("foundry_id", foundry_id)
        .eq("role", MemberRole.FOUNDER.value)
        .eq("is_active", True)
        .execute()
    )
    return response.count or 0


class OffboardingService:
    """
    Service for removing members from a foundry.
    """

    @staticmethod
    def get_offboarding_tasks(actor_id: str, member_id: str) -> list[dict[str, Any]]:
        """
        Tasks the member created or is assigned to, for the reassignment UI.

        Returns:
            List of dicts with task_id, task_title, task_status and
            relationship_type ("creator" or "assignee")
        """
        actor = _require_admin(actor_id)
        foundry_id = actor["foundry_id"]
        member_id = normalize_uuid(member_id)
        client = SupabaseClient.get_client()

        created = (
            client.table("tasks")
            .select("id, title, status, assignee_id")
            .eq("creator_id", member_id)
            .eq("foundry_id", foundry_id)
            .execute()
        )
        assigned = (
            client.table("tasks")
            .select("id, title, status")
            .eq("assignee_id", member_id)
            .eq("foundry_id", foundry_id)
            .execute()
        )
        links = (
            client.table("task_assignees")
            .select("task_id")
            .eq("profile_id", member_id)
            .execute()
        )
        linked_ids = [row["task_id"] for row in links.data or []]
        linked = []
        if linked_ids:
            linked = (
                client.table("tasks")
                .select("id, title, status")
                .in_("id", linked_ids)
                .eq("foundry_id", foundry_id)
                .execute()
            ).data or []

        tasks = []
        seen = set()
        for relationship, rows in (
            ("creator", created.data or []),
            ("assignee", assigned.data or []),
            ("assignee", linked),
        ):
            for task in rows:
                key = f"{task['id']}-{relationship}"
                if key in seen:
                    continue
                seen.add(key)
                tasks.append({
                    "task_id": task["id"],
                    "task_title": task.get("title"),
                    "task_status": str(task.get("status")),
                    "relationship_type": relationship,
                })
        return tasks

    @staticmethod
    def _parse_reassignments(reassignments: dict[str, str]) -> list[tuple[str, str, str]]:
        """
        Split "{task_id}-{creator|assignee}" keys into (task_id, relationship, target).

        Raises:
            InvalidInputError: Any key is malformed, before anything is written
        """
        parsed = []
        for key, target in reassignments.items():
            task_id, _, relationship = key.rpartition("-")
            if not task_id or relationship not in ("creator", "assignee"):
                raise InvalidInputError(f"Invalid reassignment key: {key}")
            if not target:
                raise InvalidInputError(f"Missing reassignment target for {key}")
            parsed.append((task_id, relationship, normalize_uuid(target)))
        return parsed

    @staticmethod
    def _apply_reassignments(
        actor_id: str,
        member_id: str,
        reassignments: list[tuple[str, str, str]],
    ) -> int:
        """
        Apply parsed (task_id, relationship, new profile id) reassignments.

        "unassign" clears the assignee, or gives a creator slot to the actor.
        Returns the number of task rows changed.
        """
        client = SupabaseClient.get_client()
        changed = 0

        for task_id, relationship, target in reassignments:
            if relationship == "creator":
                new_creator = actor_id if target == UNASSIGN else target
                response = (
                    client.table("tasks")
                    .update({"creator_id": new_creator})
                    .eq("id", task_id)
                    .eq("creator_id", member_id)
                    .execute()
                )
                changed += len(response.data or [])
                continue

            if target == UNASSIGN:
                response = (
                    client.table("tasks")
                    .update({"assignee_id": None})
                    .eq("id", task_id)
                    .eq("assignee_id", member_id)
                    .execute()
                )
                client.table("task_assignees").delete().eq("task_id", task_id).eq("profile_id", member_id).execute()
            else:
                response = (
                    client.table("tasks")
                    .update({"assignee_id": target})
                    .eq("id", task_id)
                    .eq("assignee_id", member_id)
                    .execute()
                )
                client.table("task_assignees").update({"profile_id": target}).eq(
                    "task_id", task_id
                ).eq("profile_id", member_id).execute()
            changed += len(response.data or [])

        return changed

    @staticmethod
    def _deactivate(member_id: str, extra_fields: dict[str, Any] | None = None) -> None:
        update_data = {"is_active": False, "deactivated_at": utc_now().isoformat()}
        if extra_fields:
            update_data.update(extra_fields)

        client = SupabaseClient.get_client()
        try:
            client.table("profiles").update(update_data).eq("id", member_id).execute()
        except Exception as e:
            logger.error(f"Failed to deactivate profile {member_id}: {e}")
            raise DatabaseError(f"Failed to deactivate profile: {e}", operation="deactivate_profile")

    @staticmethod
    def _reactivate(member_id: str) -> None:
        client = SupabaseClient.get_client()
        client.table("profiles").update({"is_active": True, "deactivated_at": None}).eq("id", member_id).execute()

    @staticmethod
    def _claim_founder_removal(foundry_id: str, member_id: str) -> None:
        """Deactivate a Founder, then undo it if no active Founder is left."""
        OffboardingService._deactivate(member_id)
        if _count_active_founders(foundry_id) < 1:
            OffboardingService._reactivate(member_id)
            logger.warning(f"Refused to remove last active Founder {member_id} in foundry {foundry_id}")
            raise InvalidTransitionError(LAST_FOUNDER_MESSAGE)

    @staticmethod
    def offboard_member(
        actor_id: str,
        member_id: str,
        action: OffboardingAction,
        reassignments: dict[str, str] | None = None,
    ) -> OffboardingResult:
        """
        Offboard a member.

        Args:
            actor_id: The acting Executive/Founder
            member_id: Profile being removed
            action: reassign_delete, soft_delete or anonymize
            reassignments: Optional "{task_id}-{creator|assignee}" -> profile id

        Returns:
            OffboardingResult with counts of what was changed

        Raises:
            NotAuthorizedError: Actor inactive, not an admin, or not a
                Founder when removing a Founder
            NotFoundError: Member not in the actor's foundry
            InvalidTransitionError: Member already deactivated, or the
                last active Founder
            InvalidInputError: Self-offboarding or a bad reassignment key
            DatabaseError: The final profile write failed
        """
        action = OffboardingAction(action)
        reassignments = reassignments or {}

        actor = _require_admin(actor_id)
        actor_id = str(actor["id"])
        foundry_id = actor["foundry_id"]
        member_id = normalize_uuid(member_id)

        member = SupabaseClient.fetch_profile(member_id)
        if not member or member.get("foundry_id") != foundry_id:
            raise NotFoundError("Member", member_id)

        if not member.get("is_active") and action != OffboardingAction.REASSIGN_DELETE:
            raise InvalidTransitionError("This user has already been deactivated")

        is_founder = member.get("role") == MemberRole.FOUNDER.value
        if is_founder and actor.get("role") != MemberRole.FOUNDER.value:
            raise NotAuthorizedError("Only Founders can offboard other Founders")

        if is_founder and member.get("is_active") and _count_active_founders(foundry_id) <= 1:
            raise InvalidTransitionError(LAST_FOUNDER_MESSAGE)

        if member_id == actor_id:
            raise InvalidInputError("Cannot offboard yourself")

        parsed = OffboardingService._parse_reassignments(reassignments)

        claimed = bool(is_founder and member.get("is_active"))
        if claimed:
            OffboardingService._claim_founder_removal(foundry_id, member_id)

        try:
            result = OffboardingService._remove_member(actor_id, foundry_id, member, action, parsed)
        except Exception:
            if claimed:
                logger.warning(f"Offboarding Founder {member_id} failed, reactivating")
                OffboardingService._reactivate(member_id)
            raise

        logger.info(f"Offboarded {member_id} from foundry {foundry_id} ({action.value}) by {actor_id}")
        return result

    @staticmethod
    def _remove_member(
        actor_id: str,
        foundry_id: str,
        member: dict[str, Any],
        action: OffboardingAction,
        reassignments: list[tuple[str, str, str]],
    ) -> OffboardingResult:
        member_id = str(member["id"])
        result = OffboardingResult(action=action)
        result.tasks_reassigned = OffboardingService._apply_reassignments(actor_id, member_id, reassignments)

        client = SupabaseClient.get_client()
        invitations = (
            client.table("company_invitations")
            .delete()
            .eq("invited_by", member_id)
            .is_("accepted_at", "null")
            .execute()
        )
        result.invitations_cancelled = len(invitations.data or [])

        if action == OffboardingAction.REASSIGN_DELETE:
            objectives = client.table("objectives").update({"creator_id": actor_id}).eq("creator_id", member_id).execute()
            result.objectives_reassigned = len(objectives.data or [])

            tasks = client.table("tasks").update({"creator_id": actor_id}).eq("creator_id", member_id).execute()
            result.tasks_reassigned += len(tasks.data or [])
            client.table("tasks").update({"assignee_id": None}).eq("assignee_id", member_id).execute()

            for table in ("team_members", "task_assignees", "foundry_admin_permissions"):
                client.table(table).delete().eq("profile_id", member_id).execute()

            # Profile is gone after the delete, so audit first
            log_admin_action(foundry_id, actor_id, "offboard_user_delete", member_id, {
                "action": action.value,
                "departing_user_name": member.get("full_name"),
                "departing_user_email": member.get("email"),
                "reassignments_count": len(reassignments),
            })

            try:
                client.table("profiles").delete().eq("id", member_id).execute()
            except Exception as e:
                logger.error(f"Failed to delete profile {member_id}: {e}")
                raise DatabaseError(f"Failed to delete profile: {e}", operation="delete_profile")

        elif action == OffboardingAction.SOFT_DELETE:
            OffboardingService._deactivate(member_id)
            client.table("foundry_admin_permissions").delete().eq("profile_id", member_id).execute()
            log_admin_action(foundry_id, actor_id, "offboard_user_deactivate", member_id, {
                "action": action.value,
                "departing_user_name": member.get("full_name"),
            })

        else:
            anonymized_email = f"anonymized_{member_id[:8]}_{int(time.time() * 1000)}@removed.local"
            OffboardingService._deactivate(member_id, {
                "full_name": "Former Employee",
                "email": anonymized_email,
                "avatar_url": None,
            })
            client.table("foundry_admin_permissions").delete().eq("profile_id", member_id).execute()
            email_hash = base64.b64encode((member.get("email") or "").encode()).decode()[:16]
            log_admin_action(foundry_id, actor_id, "offboard_user_anonymize", member_id, {
                "action": action.value,
                "original_email_hash": email_hash,
            })

        return result

    # -------------------------------------------------------------------------
    # Settings
    # -------------------------------------------------------------------------

    @staticmethod
    def get_offboarding_settings(foundry_id: str) -> OffboardingSettings:
        """A foundry's offboarding defaults, or the built-in defaults."""
        client = SupabaseClient.get_client()
        response = (
            client.table("foundry_offboarding_settings")
            .select("default_action, require_task_reassignment, retention_days")
            .eq("foundry_id", foundry_id)
            .limit(1)
            .execute()
        )
        if not response.data:
            return OffboardingSettings()

        row = response.data[0]
        return OffboardingSettings(
            default_action=row.get("default_action") or OffboardingAction.REASSIGN_DELETE,
            require_task_reassignment=bool(row.get("require_task_reassignment")),
            retention_days=row.get("retention_days") or 30,
        )

    @staticmethod
    def get_settings_for_user(user_id: str) -> OffboardingSettings:
        profile = SupabaseClient.fetch_profile(user_id)
        if not profile or not profile.get("foundry_id"):
            raise NotAuthorizedError("User not in a foundry")
        return OffboardingService.get_offboarding_settings(profile["foundry_id"])

    @staticmethod
    def update_offboarding_settings(actor_id: str, updates: dict[str, Any]) -> OffboardingSettings:
        """
        Change the foundry's offboarding defaults. Founders only.

        Raises:
            NotAuthorizedError: If the actor isn't an active Founder
            InvalidInputError: If nothing is being changed
        """
        actor = _require_admin(
            actor_id,
            roles=(MemberRole.FOUNDER.value,),
            message="Only Founders can update offboarding settings",
        )
        data = {
            k: v for k, v in updates.items()
            if k in OffboardingSettings.model_fields and v is not None
        }
        if not data:
            raise InvalidInputError("No settings to update")
        if "default_action" in data:
            data["default_action"] = OffboardingAction(data["default_action"]).value

        client = SupabaseClient.get_client()
        client.table("foundry_offboarding_settings").upsert(
            {"foundry_id": actor["foundry_id"], **data},
            on_conflict="foundry_id",
        ).execute()

        log_admin_action(actor["foundry_id"], str(actor["id"]), "update_offboarding_settings", None, data)
        return OffboardingService.get_offboarding_settings(actor["foundry_id"])

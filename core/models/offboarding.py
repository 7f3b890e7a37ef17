# =============================================================================
# core/models/offboarding.py - Offboarding Schemas
# =============================================================================
# Removing a member from a foundry, in one of three modes:
# - reassign_delete: hand their work to the acting admin, then delete them
# - soft_delete:     keep the profile but deactivate it
# - anonymize:       keep the row, strip personal data, deactivate
# =============================================================================

from enum import Enum

from pydantic import BaseModel


class OffboardingAction(str, Enum):
    REASSIGN_DELETE = "reassign_delete"
    SOFT_DELETE = "soft_delete"
    ANONYMIZE = "anonymize"


class MemberRole(str, Enum):
    FOUNDER = "Founder"
    EXECUTIVE = "Executive"
    APPRENTICE = "Apprentice"
    AI_AGENT = "AI_Agent"


# Roles allowed to offboard members
ADMIN_ROLES = (MemberRole.FOUNDER.value, MemberRole.EXECUTIVE.value)

# Reassignment target meaning "clear this field"
UNASSIGN = "unassign"


class OffboardingSettings(BaseModel):
    """Per-foundry defaults for the offboarding dialog."""
    default_action: OffboardingAction = OffboardingAction.REASSIGN_DELETE
    require_task_reassignment: bool = True
    retention_days: int = 30


class OffboardingResult(BaseModel):
    success: bool = True
    action: OffboardingAction
    tasks_reassigned: int = 0
    objectives_reassigned: int = 0
    invitations_cancelled: int = 0

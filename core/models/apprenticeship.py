# =============================================================================
# core/models/apprenticeship.py - Apprenticeship OTJT Schemas
# =============================================================================
# Off-the-job training (OTJT) hours logged by apprentices and reviewed by
# their senior mentor or workplace buddy.
# =============================================================================

from enum import Enum

from pydantic import BaseModel


class OTJTStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    QUERIED = "queried"


class OTJTActivityType(str, Enum):
    LEARNING_MODULE = "learning_module"
    MENTORING = "mentoring"
    WORKSHOP = "workshop"
    SELF_STUDY = "self_study"
    PROJECT_TRAINING = "project_training"
    ASSESSMENT = "assessment"
    SHADOWING = "shadowing"
    EXTERNAL_TRAINING = "external_training"
    OTHER = "other"


class BulkApproveResult(BaseModel):
    approved: int
    failed: int
    errors: list[str] = []


class WeeklySummary(BaseModel):
    """OTJT hours for one Monday-Sunday week."""
    week_start: str
    week_end: str
    total_hours: float
    approved_hours: float
    pending_hours: float
    rejected_hours: float = 0.0
    target_hours: float
    on_track: bool
    shortfall: float
    log_count: int


class OTJTProgress(BaseModel):
    """Progress of an enrollment against its total OTJT target."""
    hours_logged: float
    hours_target: float
    hours_remaining: float
    progress_percent: float
    expected_progress_percent: float
    on_track: bool
    pending_approvals: int
    weekly_target: float
    expected_hours_by_now: float
    ahead_behind_hours: float

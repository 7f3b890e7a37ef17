# =============================================================================
# core/models/ - Domain Schemas
# =============================================================================
# Status enums and pydantic result models shared by services and routers.
# =============================================================================

from .orders import (
    OrderStatus,
    EscrowStatus,
    MilestoneStatus,
    EscrowTransactionType,
    OrderRole,
    OrderAction,
    EscrowBalance,
    PaymentTotals,
    ReleaseResult,
)
from .retainers import RetainerStatus, TimesheetStatus, RetainerStats
from .availability import (
    AvailabilityStatus,
    AvailabilitySource,
    BulkAvailabilityResult,
    ToggleResult,
)
from .apprenticeship import OTJTStatus, OTJTActivityType, BulkApproveResult, WeeklySummary, OTJTProgress
from .offboarding import (
    OffboardingAction,
    MemberRole,
    OffboardingSettings,
    OffboardingResult,
)
from .notifications import (
    NotificationPriority,
    NotificationChannel,
    NotificationRequest,
    DeliveryResult,
    PRIORITY_CHANNELS,
)

__all__ = [
    # Orders
    "OrderStatus",
    "EscrowStatus",
    "MilestoneStatus",
    "EscrowTransactionType",
    "OrderRole",
    "OrderAction",
    "EscrowBalance",
    "PaymentTotals",
    "ReleaseResult",
    # Retainers
    "RetainerStatus",
    "TimesheetStatus",
    "RetainerStats",
    # Availability
    "AvailabilityStatus",
    "AvailabilitySource",
    "BulkAvailabilityResult",
    "ToggleResult",
    # Apprenticeship
    "OTJTStatus",
    "OTJTActivityType",
    "BulkApproveResult",
    "WeeklySummary",
    "OTJTProgress",
    # Offboarding
    "OffboardingAction",
    "MemberRole",
    "OffboardingSettings",
    "OffboardingResult",
    # Notifications
    "NotificationPriority",
    "NotificationChannel",
    "NotificationRequest",
    "DeliveryResult",
    "PRIORITY_CHANNELS",
]

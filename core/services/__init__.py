# =============================================================================
# core/services/__init__.py - Service Layer Exports
# =============================================================================

from .escrow_ledger import EscrowLedger, calculate_platform_fee
from .notification_service import NotificationService, notify
from .payment_service import PaymentService
from .payment_actions import PaymentActions
from .order_service import OrderService
from .retainer_service import RetainerService
from .timesheet_service import TimesheetService
from .availability_service import AvailabilityService
from .offboarding_service import OffboardingService
from .otjt_service import OTJTService

__all__ = [
    "EscrowLedger",
    "calculate_platform_fee",
    "NotificationService",
    "notify",
    "PaymentService",
    "PaymentActions",
    "OrderService",
    "RetainerService",
    "TimesheetService",
    "AvailabilityService",
    "OffboardingService",
    "OTJTService",
]

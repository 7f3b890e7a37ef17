# =============================================================================
# app/routers/ - API Route Definitions
# =============================================================================
# This package contains FastAPI routers organized by feature:
# - health.py: Health check endpoints
# - payments.py: Escrow funding, release and refund
# - webhooks.py: Stripe webhook receiver
# - orders.py: Order lifecycle actions
# - milestones.py: Milestone creation, delivery and approval
# - retainers.py: Recurring retainer agreements
# - timesheets.py: Weekly timesheets against retainers
# - availability.py: Provider calendar, pricing and capacity
# - offboarding.py: Removing members from a foundry
# - apprenticeship.py: OTJT time logs and mentor review
# - notifications.py: In-app inbox and channel preferences
#
# Each router is mounted in main.py with a URL prefix.
# =============================================================================

from . import health
from . import payments
from . import webhooks
from . import orders
from . import milestones
from . import retainers
from . import timesheets
from . import availability
from . import offboarding
from . import apprenticeship
from . import notifications

__all__ = [
    "health",
    "payments",
    "webhooks",
    "orders",
    "milestones",
    "retainers",
    "timesheets",
    "availability",
    "offboarding",
    "apprenticeship",
    "notifications",
]

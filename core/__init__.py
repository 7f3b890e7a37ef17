# =============================================================================
# core/ - Business Logic Package
# =============================================================================
# This package contains the marketplace and foundry business logic:
# - models/: Pydantic schemas and status enums
# - services/: Workflows (escrow, orders, retainers, availability,
#   offboarding, apprenticeships, notifications)
#
# Code in this package should NOT import from FastAPI. Celery is only
# reached lazily, through notify() when NOTIFICATIONS_ASYNC is on.
# =============================================================================

# =============================================================================
# lib/ - Standalone Utility Modules
# =============================================================================
# This package contains reusable utilities:
# - supabase_client.py: Typed Supabase wrapper for database operations
# - stripe_client.py: Stripe payment intents, transfers and refunds
# - rate_limit.py: Fixed-window rate limiting (Supabase RPC or in-memory)
# - utils.py: Shared utilities (UUID normalization, dates, error sanitizing)
#
# These modules are self-contained and can be tested in isolation.
# =============================================================================

from lib.supabase_client import SupabaseClient, SupabaseClientError
from lib.utils import normalize_uuid, utc_now

__all__ = [
    # Supabase
    "SupabaseClient",
    "SupabaseClientError",
    # Utils
    "normalize_uuid",
    "utc_now",
]

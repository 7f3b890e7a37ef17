# =============================================================================
# tests/ - Test Suite
# =============================================================================
# Services run against tests/fakes.py (an in-memory Supabase) with the
# Stripe gateway mocked; see conftest.py for the shared fixtures.
#
# Run tests with: pytest
# =============================================================================

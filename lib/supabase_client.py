# =============================================================================
# lib/supabase_client.py - Supabase Client Wrapper
# =============================================================================
# This module provides a typed wrapper for Supabase database operations.
# It implements the singleton pattern to reuse a single client connection
# and provides fetch helpers for the rows every workflow starts from:
# - Orders and milestones (escrow/payment flow)
# - Profiles and provider profiles (ownership checks)
# - Retainers and timesheet entries
# - Apprenticeship enrollments
#
# Fetch helpers return None for a missing row. Writes go through
# get_client() directly so callers can add conditional filters.
#
# Usage:
#   from lib.supabase_client import SupabaseClient
#   order = SupabaseClient.fetch_order(order_id)
# =============================================================================

from __future__ import annotations

import logging
from typing import Any
from uuid import UUID

from supabase import create_client, Client

from app.config import settings

# Set up logging for this module
logger = logging.getLogger(__name__)

# PostgREST code for ".single()" matching zero rows
NO_ROWS_CODE = "PGRST116"


class SupabaseClientError(Exception):
    """
    Error during Supabase operations.

    Provides actionable error messages:
    "Errors should tell HOW to fix, not just WHAT failed."
    """

    def __init__(
        self,
        message: str,
        code: str = "SUPABASE_ERROR",
        suggestion: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion
        self.details = details or {}

    def __str__(self) -> str:
        result = f"[{self.code}] {self.message}"
        if self.suggestion:
            result += f" Suggestion: {self.suggestion}"
        return result


class SupabaseClient:
    """
    Typed wrapper for Supabase database operations.

    Implements singleton pattern - one client instance is shared across
    the application. All methods are class methods for easy access without
    instantiation.

    Example:
        order = SupabaseClient.fetch_order("550e8400-...")
        if order and order["buyer_id"] == user_id:
            ...
    """

    _instance: Client | None = None

    @classmethod
    def get_client(cls) -> Client:
        """
        Get or create the singleton Supabase client.

        Uses service_role key which bypasses Row Level Security (RLS).
        Every action checks ownership itself before writing.

        Returns:
            Client: Supabase client instance

        Raises:
            SupabaseClientError: If client creation fails
        """
        if cls._instance is None:
            try:
                cls._instance = create_client(
                    settings.SUPABASE_URL,
                    settings.SUPABASE_SERVICE_KEY
                )
                logger.info("Supabase client initialized successfully")
            except Exception as e:
                raise SupabaseClientError(
                    message=f"Failed to create Supabase client: {e}",
                    code="CLIENT_INIT_FAILED",
                    suggestion="Check SUPABASE_URL and SUPABASE_SERVICE_KEY in your .env file"
                )
        return cls._instance

    @classmethod
    def _normalize_uuid(cls, uuid_value: str | UUID) -> str:
        """Convert UUID to string for queries."""
        return str(uuid_value) if isinstance(uuid_value, UUID) else uuid_value

    # -------------------------------------------------------------------------
    # Generic Row Fetch
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_row(
        cls,
        table: str,
        column: str,
        value: Any,
        columns: str = "*",
    ) -> dict[str, Any] | None:
        """
        Fetch exactly one row where column == value.

        Args:
            table: Table name
            column: Column to match
            value: Value to match (UUIDs are normalized)
            columns: Columns to select

        Returns:
            Row dict, or None if no row matched

        Raises:
            SupabaseClientError: If the query fails for any other reason
        """
        client = cls.get_client()
        if isinstance(value, UUID):
            value = cls._normalize_uuid(value)

        try:
            response = (
                client.table(table)
                .select(columns)
                .eq(column, value)
                .single()
                .execute()
            )
            return response.data

        except Exception as e:
            if NO_ROWS_CODE in str(e):
                return None
            raise SupabaseClientError(
                message=f"Failed to fetch from {table}: {e}",
                code="FETCH_FAILED",
                suggestion=f"Check that the {table} table is accessible",
                details={"table": table, column: str(value)}
            )

    # -------------------------------------------------------------------------
    # Orders
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_order(cls, order_id: str | UUID) -> dict[str, Any] | None:
        """Fetch an order by ID."""
        return cls.fetch_row("orders", "id", order_id)

    @classmethod
    def fetch_order_by_payment_intent(cls, payment_intent_id: str) -> dict[str, Any] | None:
        """Fetch the order that owns a Stripe payment intent."""
        return cls.fetch_row("orders", "stripe_payment_intent_id", payment_intent_id)

    @classmethod
    def fetch_milestone(cls, milestone_id: str | UUID) -> dict[str, Any] | None:
        """Fetch an order milestone by ID."""
        return cls.fetch_row("order_milestones", "id", milestone_id)

    @classmethod
    def fetch_order_milestones(cls, order_id: str | UUID) -> list[dict[str, Any]]:
        """
        Fetch all milestones for an order, in display order.

        Args:
            order_id: The order UUID

        Returns:
            List of milestone dicts (empty if the order has none)
        """
        client = cls.get_client()
        order_id_str = cls._normalize_uuid(order_id)

        try:
            response = (
                client.table("order_milestones")
                .select("*")
                .eq("order_id", order_id_str)
                .order("created_at")
                .execute()
            )
            return response.data or []

        except Exception as e:
            raise SupabaseClientError(
                message=f"Failed to fetch milestones: {e}",
                code="FETCH_MILESTONES_FAILED",
                details={"order_id": order_id_str}
            )

    # -------------------------------------------------------------------------
    # Profiles
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_profile(cls, user_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a member profile by user ID."""
        return cls.fetch_row("profiles", "id", user_id)

    @classmethod
    def fetch_provider_profile(cls, provider_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a provider profile by its own ID."""
        return cls.fetch_row("provider_profiles", "id", provider_id)

    @classmethod
    def fetch_provider_profile_for_user(cls, user_id: str | UUID) -> dict[str, Any] | None:
        """Fetch the provider profile owned by a user, if they have one."""
        return cls.fetch_row("provider_profiles", "user_id", user_id)

    # -------------------------------------------------------------------------
    # Retainers
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_retainer(cls, retainer_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a retainer by ID."""
        return cls.fetch_row("retainers", "id", retainer_id)

    @classmethod
    def fetch_timesheet_entry(cls, entry_id: str | UUID) -> dict[str, Any] | None:
        """Fetch a timesheet entry by ID."""
        return cls.fetch_row("timesheet_entries", "id", entry_id)

    # -------------------------------------------------------------------------
    # Apprenticeships
    # -------------------------------------------------------------------------

    @classmethod
    def fetch_enrollment(cls, enrollment_id: str | UUID) -> dict[str, Any] | None:
        """Fetch an apprenticeship enrollment by ID."""
        return cls.fetch_row("apprenticeship_enrollments", "id", enrollment_id)

    @classmethod
    def fetch_otjt_log(cls, log_id: str | UUID) -> dict[str, Any] | None:
        """Fetch an OTJT time log by ID."""
        return cls.fetch_row("otjt_time_logs", "id", log_id)

    # -------------------------------------------------------------------------
    # RPC
    # -------------------------------------------------------------------------

    @classmethod
    def rpc(cls, function_name: str, params: dict[str, Any]) -> Any:
        """
        Call a Postgres function through PostgREST.

        Args:
            function_name: SQL function name
            params: Named parameters

        Returns:
            The function's return value (response.data)
        """
        client = cls.get_client()
        response = client.rpc(function_name, params).execute()
        return response.data

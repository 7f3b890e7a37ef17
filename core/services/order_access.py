# =============================================================================
# core/services/order_access.py - Order Party Resolution
# =============================================================================
# Orders store the buyer as a user ID but the seller as a provider profile
# ID. These helpers resolve which party (if any) a signed-in user is.
# =============================================================================

import logging
from typing import Any, Iterable

from app.exceptions import NotAuthorizedError, NotFoundError
from core.models.orders import OrderRole
from lib.supabase_client import SupabaseClient
from lib.utils import normalize_uuid

logger = logging.getLogger(__name__)


def seller_user_id(order: dict[str, Any]) -> str | None:
    """User ID behind the order's seller provider profile."""
    seller_id = order.get("seller_id")
    if not seller_id:
        return None
    profile = SupabaseClient.fetch_provider_profile(seller_id)
    return str(profile["user_id"]) if profile and profile.get("user_id") else None


def resolve_role(order: dict[str, Any], user_id: str) -> OrderRole | None:
    """
    Which side of the order a user is on.

    Returns:
        OrderRole.BUYER, OrderRole.SELLER, or None for outsiders
    """
    user_id = normalize_uuid(user_id)
    if str(order.get("buyer_id")) == user_id:
        return OrderRole.BUYER
    if seller_user_id(order) == user_id:
        return OrderRole.SELLER
    return None


def get_order_for_party(
    order_id: str,
    user_id: str,
    roles: Iterable[OrderRole] = (OrderRole.BUYER, OrderRole.SELLER),
    message: str = "Not authorized to access this order",
) -> tuple[dict[str, Any], OrderRole]:
    """
    Load an order and check the user is one of the allowed parties.

    Args:
        order_id: The order UUID
        user_id: The signed-in user
        roles: Parties allowed to act
        message: Error message for everyone else

    Returns:
        (order row, the user's role)

    Raises:
        NotFoundError: If the order doesn't exist
        NotAuthorizedError: If the user isn't an allowed party
    """
    order = SupabaseClient.fetch_order(order_id)
    if not order:
        raise NotFoundError("Order", str(order_id))

    role = resolve_role(order, user_id)
    if role is None or role not in tuple(roles):
        logger.warning(f"User {user_id} denied on order {order_id} (role={role})")
        raise NotAuthorizedError(message)

    return order, role

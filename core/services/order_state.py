# =============================================================================
# core/services/order_state.py - Order, Escrow and Milestone State Machines
# =============================================================================
# Pure transition tables. No database access.
#
# Order status:
#   pending     -> accepted, cancelled
#   accepted    -> in_progress, cancelled
#   in_progress -> completed, disputed, cancelled
#   disputed    -> in_progress, cancelled, completed
#   completed, cancelled: terminal
#
# Escrow status only moves forward:
#   pending -> held -> partial_release -> released
#   any non-released status -> refunded
#   released, refunded: terminal
# =============================================================================

from app.exceptions import InvalidTransitionError
from core.models.orders import (
    EscrowStatus,
    MilestoneStatus,
    OrderAction,
    OrderRole,
    OrderStatus,
)


# =============================================================================
# Order Status
# =============================================================================

STATUS_TRANSITIONS: dict[OrderStatus, tuple[OrderStatus, ...]] = {
    OrderStatus.PENDING: (OrderStatus.ACCEPTED, OrderStatus.CANCELLED),
    OrderStatus.ACCEPTED: (OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED),
    OrderStatus.IN_PROGRESS: (OrderStatus.COMPLETED, OrderStatus.DISPUTED, OrderStatus.CANCELLED),
    OrderStatus.DISPUTED: (OrderStatus.IN_PROGRESS, OrderStatus.CANCELLED, OrderStatus.COMPLETED),
    OrderStatus.COMPLETED: (),
    OrderStatus.CANCELLED: (),
}

TERMINAL_STATUSES = (OrderStatus.COMPLETED, OrderStatus.CANCELLED)

ACTIVE_STATUSES = (
    OrderStatus.PENDING,
    OrderStatus.ACCEPTED,
    OrderStatus.IN_PROGRESS,
    OrderStatus.DISPUTED,
)

ACTION_STATUS_MAP: dict[str, OrderStatus] = {
    "accept": OrderStatus.ACCEPTED,
    "decline": OrderStatus.CANCELLED,
    "start": OrderStatus.IN_PROGRESS,
    "complete": OrderStatus.COMPLETED,
    "dispute": OrderStatus.DISPUTED,
    "cancel": OrderStatus.CANCELLED,
    "resume_work": OrderStatus.IN_PROGRESS,
    "approve_completion": OrderStatus.COMPLETED,
}


def can_transition(current: OrderStatus | str, new: OrderStatus | str) -> bool:
    """Check whether an order may move from `current` to `new`."""
    try:
        current, new = OrderStatus(current), OrderStatus(new)
    except ValueError:
        return False
    return new in STATUS_TRANSITIONS[current]


def next_statuses(current: OrderStatus | str) -> list[OrderStatus]:
    return list(STATUS_TRANSITIONS.get(OrderStatus(current), ()))


def is_terminal_status(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in TERMINAL_STATUSES


def is_active_status(status: OrderStatus | str) -> bool:
    return OrderStatus(status) in ACTIVE_STATUSES


def status_for_action(action: str, current: OrderStatus | str) -> OrderStatus | None:
    """
    Resolve the status an action leads to.

    Returns None when the action doesn't change status or the transition
    isn't allowed from `current`.

    Example:
        status_for_action("accept", "pending")   # OrderStatus.ACCEPTED
        status_for_action("accept", "completed") # None
    """
    new_status = ACTION_STATUS_MAP.get(action)
    if new_status is None:
        return None
    return new_status if can_transition(current, new_status) else None


def assert_transition(current: OrderStatus | str, new: OrderStatus | str) -> None:
    """
    Raises:
        InvalidTransitionError: If the order can't move from current to new
    """
    if not can_transition(current, new):
        raise InvalidTransitionError(
            f"Cannot change order status from '{_value(current)}' to '{_value(new)}'",
            current=_value(current),
            requested=_value(new),
        )


def available_actions(
    status: OrderStatus | str,
    role: OrderRole | str,
    dispute_open: bool = False,
) -> list[OrderAction]:
    """
    List the actions a buyer or seller can take on an order.

    Args:
        status: Current order status
        role: "buyer" or "seller"
        dispute_open: Whether a dispute is already open

    Returns:
        Ordered list of OrderAction
    """
    status, role = OrderStatus(status), OrderRole(role)
    is_buyer = role == OrderRole.BUYER
    actions: list[OrderAction] = []

    if status == OrderStatus.PENDING:
        if is_buyer:
            actions.append(OrderAction(action="cancel", label="Cancel Order", requires_confirmation=True))
        else:
            actions.append(OrderAction(action="accept", label="Accept Order", requires_confirmation=True))
            actions.append(OrderAction(action="decline", label="Decline Order", requires_confirmation=True))

    elif status == OrderStatus.ACCEPTED:
        if not is_buyer:
            actions.append(OrderAction(action="start", label="Start Work"))
        actions.append(OrderAction(action="cancel", label="Cancel Order", requires_confirmation=True))

    elif status == OrderStatus.IN_PROGRESS:
        if is_buyer:
            if not dispute_open:
                actions.append(OrderAction(action="dispute", label="Open Dispute", requires_confirmation=True))
            actions.append(OrderAction(action="approve_milestone", label="Approve Milestone", requires_confirmation=True))
        else:
            actions.append(OrderAction(action="complete", label="Mark as Complete", requires_confirmation=True))
            actions.append(OrderAction(action="submit_milestone", label="Submit Milestone"))
        actions.append(OrderAction(action="cancel", label="Request Cancellation", requires_confirmation=True))

    elif status == OrderStatus.DISPUTED:
        if is_buyer:
            actions.append(OrderAction(action="approve_completion", label="Approve & Close Dispute", requires_confirmation=True))
        else:
            actions.append(OrderAction(action="resume_work", label="Resume Work"))
        actions.append(OrderAction(action="view_dispute", label="View Dispute Details"))

    elif status == OrderStatus.COMPLETED:
        if is_buyer:
            actions.append(OrderAction(action="leave_review", label="Leave Review"))
        actions.append(OrderAction(action="view_details", label="View Details"))

    else:
        actions.append(OrderAction(action="view_details", label="View Details"))

    if not is_terminal_status(status):
        actions.append(OrderAction(action="message", label="Send Message"))

    return actions


# =============================================================================
# Escrow Status
# =============================================================================

ESCROW_TRANSITIONS: dict[EscrowStatus, tuple[EscrowStatus, ...]] = {
    EscrowStatus.PENDING: (EscrowStatus.HELD, EscrowStatus.REFUNDED),
    EscrowStatus.HELD: (EscrowStatus.PARTIAL_RELEASE, EscrowStatus.RELEASED, EscrowStatus.REFUNDED),
    # Several milestone releases in a row stay in partial_release
    EscrowStatus.PARTIAL_RELEASE: (
        EscrowStatus.PARTIAL_RELEASE,
        EscrowStatus.RELEASED,
        EscrowStatus.REFUNDED,
    ),
    EscrowStatus.RELEASED: (),
    EscrowStatus.REFUNDED: (),
}

# Escrow states that still hold money that can be released
RELEASABLE_ESCROW = (EscrowStatus.HELD, EscrowStatus.PARTIAL_RELEASE)


def can_transition_escrow(current: EscrowStatus | str | None, new: EscrowStatus | str) -> bool:
    """
    Check an escrow status change.

    A missing current status counts as pending (orders created before
    payment was initiated).
    """
    try:
        current = EscrowStatus(current or EscrowStatus.PENDING)
        new = EscrowStatus(new)
    except ValueError:
        return False
    return new in ESCROW_TRANSITIONS[current]


def assert_escrow_transition(current: EscrowStatus | str | None, new: EscrowStatus | str) -> None:
    """
    Raises:
        InvalidTransitionError: If the change would move escrow backwards
            or out of a terminal state
    """
    if not can_transition_escrow(current, new):
        raise InvalidTransitionError(
            f"Cannot change escrow status from '{_value(current) or 'pending'}' to '{_value(new)}'",
            current=_value(current),
            requested=_value(new),
        )


# =============================================================================
# Milestone Status
# =============================================================================

MILESTONE_TRANSITIONS: dict[MilestoneStatus, tuple[MilestoneStatus, ...]] = {
    MilestoneStatus.PENDING: (MilestoneStatus.SUBMITTED,),
    MilestoneStatus.SUBMITTED: (MilestoneStatus.APPROVED, MilestoneStatus.DISPUTED),
    MilestoneStatus.APPROVED: (MilestoneStatus.PAID, MilestoneStatus.DISPUTED),
    MilestoneStatus.DISPUTED: (MilestoneStatus.SUBMITTED,),
    MilestoneStatus.PAID: (),
}


def can_transition_milestone(current: MilestoneStatus | str, new: MilestoneStatus | str) -> bool:
    try:
        current, new = MilestoneStatus(current), MilestoneStatus(new)
    except ValueError:
        return False
    return new in MILESTONE_TRANSITIONS[current]


def _value(status) -> str | None:
    return status.value if hasattr(status, "value") else status

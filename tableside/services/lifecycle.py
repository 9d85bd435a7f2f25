"""
Order, payment and service-request state rules.

Pure functions over the model enums; the services layer calls them before
mutating a row so an invalid move never reaches the database.
"""

from datetime import datetime
from typing import Optional

from tableside.core.errors import StateConflict
from tableside.models import (
    OrderStatus,
    PaymentStatus,
    ServiceCategory,
    ServicePriority,
    ServiceRequestStatus,
    ServiceRequestType,
    utc_now,
)

# =============================================================================
# ORDERS
# =============================================================================

ORDER_FLOW = (
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
    OrderStatus.SERVED,
    OrderStatus.COMPLETED,
)

# Cancellation is only possible before the food reaches the table
CANCELLABLE_STATUSES = frozenset({
    OrderStatus.PENDING,
    OrderStatus.CONFIRMED,
    OrderStatus.PREPARING,
    OrderStatus.READY,
})

# Orders still on their way to the table
ACTIVE_ORDER_STATUSES = tuple(s for s in ORDER_FLOW if s in CANCELLABLE_STATUSES)


def next_order_status(current: OrderStatus) -> Optional[OrderStatus]:
    """The single forward step from ``current``, or None at the end."""
    if current not in ORDER_FLOW:
        return None
    index = ORDER_FLOW.index(current)
    if index + 1 < len(ORDER_FLOW):
        return ORDER_FLOW[index + 1]
    return None


def allowed_order_transitions(current: OrderStatus) -> frozenset[OrderStatus]:
    allowed = set()
    following = next_order_status(current)
    if following is not None:
        allowed.add(following)
    if current in CANCELLABLE_STATUSES:
        allowed.add(OrderStatus.CANCELLED)
    return frozenset(allowed)


def check_order_transition(current: OrderStatus, target: OrderStatus) -> None:
    """Raise StateConflict unless ``target`` is the next step or a valid cancel."""
    if target in allowed_order_transitions(current):
        return
    if target == OrderStatus.CANCELLED:
        message = f"Order cannot be cancelled once it is {current.value}"
    elif not allowed_order_transitions(current):
        message = f"Order is already {current.value}"
    else:
        message = (
            f"Cannot move order from {current.value} to {target.value}; "
            f"next status is {next_order_status(current).value}"
        )
    raise StateConflict(message, current=current.value)


def apply_order_status(order, target: OrderStatus, now: Optional[datetime] = None) -> None:
    """Validate and apply a status change, stamping confirmed/completed times."""
    check_order_transition(order.status, target)
    now = now or utc_now()
    order.status = target
    if target == OrderStatus.CONFIRMED:
        order.confirmed_at = now
    elif target == OrderStatus.COMPLETED:
        order.completed_at = now


# =============================================================================
# PAYMENTS
# =============================================================================

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.PROCESSING: frozenset({PaymentStatus.COMPLETED, PaymentStatus.FAILED}),
    PaymentStatus.FAILED: frozenset({PaymentStatus.PROCESSING}),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.REFUNDED: frozenset(),
}


def check_payment_transition(current: PaymentStatus, target: PaymentStatus) -> None:
    if target not in PAYMENT_TRANSITIONS[current]:
        raise StateConflict(
            f"Payment cannot move from {current.value} to {target.value}",
            current=current.value,
        )


# =============================================================================
# SERVICE REQUESTS
# =============================================================================

SERVICE_TRANSITIONS: dict[ServiceRequestStatus, frozenset[ServiceRequestStatus]] = {
    # pending -> completed is allowed for requests handled on the spot
    ServiceRequestStatus.PENDING: frozenset({
        ServiceRequestStatus.IN_PROGRESS,
        ServiceRequestStatus.COMPLETED,
        ServiceRequestStatus.CANCELLED,
    }),
    ServiceRequestStatus.IN_PROGRESS: frozenset({
        ServiceRequestStatus.COMPLETED,
        ServiceRequestStatus.CANCELLED,
    }),
    ServiceRequestStatus.COMPLETED: frozenset(),
    ServiceRequestStatus.CANCELLED: frozenset(),
}


def check_service_transition(
    current: ServiceRequestStatus, target: ServiceRequestStatus
) -> bool:
    """
    Validate a service-request status change.

    Returns False when ``target`` equals ``current`` (nothing to do), True
    for a valid move; raises StateConflict otherwise.
    """
    if target == current:
        return False
    if target not in SERVICE_TRANSITIONS[current]:
        raise StateConflict(
            f"Service request cannot move from {current.value} to {target.value}",
            current=current.value,
        )
    return True


HIGH_PRIORITY_CATEGORIES = frozenset({ServiceCategory.DIETARY})


def default_priority(
    request_type: ServiceRequestType, category: Optional[ServiceCategory] = None
) -> ServicePriority:
    """Priority is decided once at creation and never escalated."""
    if request_type == ServiceRequestType.CALL_SERVER:
        return ServicePriority.HIGH
    if category in HIGH_PRIORITY_CATEGORIES:
        return ServicePriority.HIGH
    return ServicePriority.MEDIUM

# apps/orders/state_machine.py
"""
Order lifecycle. PENDING is the only entry state; DELIVERED and CANCELLED
are terminal.

    PENDING   -> PREPARING | CANCELLED | DELIVERED
    PREPARING -> READY | CANCELLED
    READY     -> DELIVERED | CANCELLED
"""
from apps.utils.exceptions import StateError
from .domain import OrderStatus

INITIAL_STATUS = OrderStatus.PENDING

TRANSITIONS = {
    # TODO: confirm with product whether PENDING -> DELIVERED should be limited to walk-in/pickup orders
    OrderStatus.PENDING: frozenset({OrderStatus.PREPARING, OrderStatus.CANCELLED, OrderStatus.DELIVERED}),
    OrderStatus.PREPARING: frozenset({OrderStatus.READY, OrderStatus.CANCELLED}),
    OrderStatus.READY: frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset(status for status, targets in TRANSITIONS.items() if not targets)


def allowed_targets(source):
    return TRANSITIONS.get(source, frozenset())


def can_transition(source, target):
    return target in allowed_targets(source)


def ensure_transition(source, target):
    if not can_transition(source, target):
        raise StateError(
            f"Cannot transition from {source} to {target}",
            extra={"from": str(source), "to": str(target)},
        )


def triggers_refund(target):
    """Entering CANCELLED refunds any payment attached to the order."""
    return target == OrderStatus.CANCELLED

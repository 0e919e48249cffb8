# apps/orders/policies.py
"""
Role table consulted by every order operation.

| Role            | Reads          | May set               |
|-----------------|----------------|-----------------------|
| ADMIN, GM       | all orders     | any valid target      |
| BRANCH_MANAGER  | own branch     | any valid target      |
| CHEF            | own branch     | PREPARING/READY/CANC. |
| CASHIER         | own branch     | DELIVERED/CANCELLED   |
| CUSTOMER        | own orders     | nothing               |

Reads narrow silently; writes outside scope raise AuthorizationError.
"""
import enum
import logging
from dataclasses import dataclass, replace
from typing import FrozenSet

from apps.accounts.models import Role
from apps.utils.exceptions import AuthorizationError
from .domain import OrderCriteria, OrderStatus
from .state_machine import can_transition

logger = logging.getLogger(__name__)


class ReadScope(enum.Enum):
    ALL = "all"
    BRANCH = "branch"
    OWN = "own"


ANY_STATUS = frozenset(OrderStatus)


@dataclass(frozen=True)
class RolePolicy:
    read_scope: ReadScope
    settable_statuses: FrozenSet[OrderStatus] = frozenset()
    may_create: bool = False
    orders_for_others: bool = False
    may_delete: bool = False
    may_filter_branch: bool = False
    may_filter_customer: bool = False


ROLE_POLICIES = {
    Role.ADMIN: RolePolicy(
        read_scope=ReadScope.ALL,
        settable_statuses=ANY_STATUS,
        may_create=True,
        orders_for_others=True,
        may_delete=True,
        may_filter_branch=True,
        may_filter_customer=True,
    ),
    Role.GENERAL_MANAGER: RolePolicy(
        read_scope=ReadScope.ALL,
        settable_statuses=ANY_STATUS,
        may_create=True,
        orders_for_others=True,
        may_filter_branch=True,
        may_filter_customer=True,
    ),
    Role.BRANCH_MANAGER: RolePolicy(
        read_scope=ReadScope.BRANCH,
        settable_statuses=ANY_STATUS,
        may_create=True,
        orders_for_others=True,
        may_delete=True,
        may_filter_customer=True,
    ),
    Role.CHEF: RolePolicy(
        read_scope=ReadScope.BRANCH,
        settable_statuses=frozenset({OrderStatus.PREPARING, OrderStatus.READY, OrderStatus.CANCELLED}),
    ),
    Role.CASHIER: RolePolicy(
        read_scope=ReadScope.BRANCH,
        settable_statuses=frozenset({OrderStatus.DELIVERED, OrderStatus.CANCELLED}),
        may_create=True,
        orders_for_others=True,
    ),
    Role.CUSTOMER: RolePolicy(
        read_scope=ReadScope.OWN,
        may_create=True,
    ),
}


def policy_for(principal):
    try:
        return ROLE_POLICIES[principal.role]
    except KeyError:
        raise AuthorizationError(f"Unknown role: {principal.role}")


def resolve_customer_id(principal, requested_customer_id=None):
    """
    Customers always order for themselves; staff may name a customer or
    fall back to their own id (walk-in orders).
    """
    policy = policy_for(principal)
    if not policy.may_create:
        raise AuthorizationError(
            "Insufficient permissions to create orders",
            code="insufficient_permissions",
        )
    if policy.orders_for_others and requested_customer_id:
        return requested_customer_id
    return principal.id


def read_criteria(principal, requested=None):
    """
    Role scope first, then whichever caller filters the role may use.
    Filters never widen the scope; disallowed ones are dropped.
    """
    requested = requested or OrderCriteria()
    policy = policy_for(principal)

    branch_id = requested.branch_id if policy.may_filter_branch else None
    customer_id = requested.customer_id if policy.may_filter_customer else None

    if policy.read_scope is ReadScope.BRANCH:
        if principal.branch_id is None:
            return OrderCriteria(match_nothing=True)
        branch_id = principal.branch_id
    elif policy.read_scope is ReadScope.OWN:
        customer_id = principal.id

    return replace(requested, branch_id=branch_id, customer_id=customer_id)


def can_read(principal, order):
    policy = policy_for(principal)
    if policy.read_scope is ReadScope.ALL:
        return True
    if policy.read_scope is ReadScope.BRANCH:
        return principal.branch_id is not None and order.branch_id == principal.branch_id
    return order.customer_id == principal.id


def ensure_write_scope(principal, order):
    """
    `order` may be None. Branch-scoped roles get the same denial for a
    missing order as for another branch's order.
    """
    policy = policy_for(principal)
    if policy.read_scope is ReadScope.ALL:
        return
    if policy.read_scope is ReadScope.BRANCH:
        if principal.branch_id is not None and order is not None and order.branch_id == principal.branch_id:
            return
        _deny(principal, order, "Unauthorized: You can only modify orders from your branch")
    _deny(principal, order, "Unauthorized: Your role cannot modify orders")


def ensure_can_set_status(principal, target):
    if target not in policy_for(principal).settable_statuses:
        _deny(principal, None, f"{principal.role} cannot mark orders as {target}")


def ensure_can_delete(principal):
    if not policy_for(principal).may_delete:
        _deny(principal, None, "Unauthorized to delete orders")


def permitted_roles(source, target):
    """Roles that may move an order along the (source, target) edge."""
    if not can_transition(source, target):
        return frozenset()
    return frozenset(
        role for role, policy in ROLE_POLICIES.items()
        if target in policy.settable_statuses
    )


def _deny(principal, order, message):
    logger.warning(
        f"Order access denied: {message}",
        extra={
            "user_id": principal.id,
            "branch_id": principal.branch_id,
            "order_id": getattr(order, "id", None),
        },
    )
    raise AuthorizationError(message)

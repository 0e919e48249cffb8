import logging
from decimal import Decimal

from django.conf import settings
from django.utils.module_loading import import_string

from apps.branches.utils.branch_selector import BranchResolver
from apps.utils.exceptions import BusinessValidationError, NotFoundError
from apps.utils.utils import money
from . import policies
from .domain import (
    MAX_AMOUNT,
    MAX_LINE_QUANTITY,
    LineRequest,
    OrderCriteria,
    OrderDraft,
    OrderLine,
    OrderStatus,
)
from .state_machine import ensure_transition, triggers_refund

logger = logging.getLogger(__name__)


def _parse_status(value):
    try:
        return OrderStatus(value)
    except ValueError:
        raise BusinessValidationError(
            f"Unknown order status: {value}",
            code="invalid_status",
            extra={"allowed": list(OrderStatus.values)},
        )


def _parse_filter_id(value, name):
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise BusinessValidationError(
            f"{name} must be an integer, got {value!r}",
            code="invalid_filter",
        )


class OrderBuilder:
    """
    Turns a raw order request into a priced PENDING order.

    Prices come from the menu at this instant and are frozen into the lines;
    nothing re-reads them later.
    """

    def __init__(self, store, resolver=None):
        self.store = store
        self.resolver = resolver or BranchResolver()

    def build(self, principal, items, branch_id=None, delivery_address=None, customer_id=None):
        customer_id = policies.resolve_customer_id(principal, customer_id)

        if not items:
            raise BusinessValidationError("Order must contain at least one item", code="empty_order")

        branch_id = self._resolve_branch(branch_id, delivery_address)

        if customer_id != principal.id and not self.store.customer_exists(customer_id):
            raise BusinessValidationError(f"Customer {customer_id} not found", code="customer_not_found")

        lines = self._price_lines([self._as_request(item) for item in items])
        total = sum((line.subtotal for line in lines), Decimal("0.00"))
        if total > MAX_AMOUNT:
            raise BusinessValidationError(
                f"Order total {total} exceeds the maximum of {MAX_AMOUNT}",
                code="order_total_too_large",
            )

        order = self.store.create_order(OrderDraft(
            branch_id=branch_id,
            customer_id=customer_id,
            delivery_address=delivery_address or None,
            items=lines,
            total_amount=money(total),
            created_by_id=principal.id,
        ))

        logger.info(
            f"Order {order.id} created at branch {branch_id} for customer {customer_id}: {order.total_amount}",
            extra={"order_id": order.id, "user_id": principal.id, "branch_id": branch_id},
        )
        return order

    def _resolve_branch(self, branch_id, delivery_address):
        if not branch_id and delivery_address:
            branch_id = self.resolver.resolve(delivery_address, self.store.list_branches())
            logger.debug(f"Address '{delivery_address}' resolved to branch {branch_id}")

        if not branch_id:
            raise BusinessValidationError(
                "No branchId or delivery address provided",
                code="branch_required",
            )

        if self.store.get_branch(branch_id) is None:
            available = [
                {"id": b.id, "name": b.name, "address": b.address}
                for b in self.store.list_branches()
            ]
            raise BusinessValidationError(
                f"Branch {branch_id} not found",
                code="branch_not_found",
                extra={"availableBranches": available},
            )
        return branch_id

    @staticmethod
    def _as_request(item):
        if isinstance(item, LineRequest):
            return item
        return LineRequest(menu_item_id=item["menu_item_id"], quantity=item["quantity"])

    def _price_lines(self, requests):
        for req in requests:
            quantity = req.quantity
            if isinstance(quantity, bool) or not isinstance(quantity, int) or not 1 <= quantity <= MAX_LINE_QUANTITY:
                raise BusinessValidationError(
                    f"Quantity for menu item {req.menu_item_id} must be between 1 and {MAX_LINE_QUANTITY}",
                    code="invalid_quantity",
                )

        lines = []
        for req in requests:
            menu_item = self.store.get_menu_item(req.menu_item_id)
            if menu_item is None:
                raise BusinessValidationError(
                    f"Menu item {req.menu_item_id} not found",
                    code="menu_item_not_found",
                )
            if not menu_item.is_available:
                raise BusinessValidationError(
                    f"Menu item {menu_item.name} is not available",
                    code="menu_item_unavailable",
                )

            unit_price = money(menu_item.price)
            subtotal = money(unit_price * req.quantity)
            if subtotal > MAX_AMOUNT:
                raise BusinessValidationError(
                    f"Subtotal for {menu_item.name} exceeds the maximum of {MAX_AMOUNT}",
                    code="order_total_too_large",
                )
            lines.append(OrderLine(
                menu_item_id=menu_item.id,
                menu_item_name=menu_item.name,
                quantity=req.quantity,
                unit_price=unit_price,
                subtotal=subtotal,
            ))
        return lines


class StatusTransitionEngine:
    """
    Moves orders through the state machine and deletes them.

    Check order: target value, branch scope, role target, existence, edge.
    The final write is conditional on the status read here.
    """

    def __init__(self, store):
        self.store = store

    def transition(self, principal, order_id, target):
        target = _parse_status(target)
        order = self.store.get_order(order_id)

        policies.ensure_write_scope(principal, order)
        policies.ensure_can_set_status(principal, target)
        if order is None:
            raise NotFoundError("Order not found", code="order_not_found")

        ensure_transition(order.status, target)

        refund = triggers_refund(target)
        updated = self.store.change_status(
            order.id,
            order.status,
            target,
            refund_payment=refund,
            actor_id=principal.id,
            note=f"{order.status} -> {target} by {principal.role}",
        )

        logger.info(
            f"Order {order.id} moved {order.status} -> {target}",
            extra={"order_id": order.id, "user_id": principal.id},
        )
        if refund and updated.payment is not None:
            logger.info(
                f"Refund recorded for cancelled Order {order.id}",
                extra={"order_id": order.id, "user_id": principal.id},
            )
        return updated

    def delete(self, principal, order_id):
        policies.ensure_can_delete(principal)
        order = self.store.get_order(order_id)
        policies.ensure_write_scope(principal, order)
        if order is None:
            raise NotFoundError("Order not found", code="order_not_found")

        if order.status == OrderStatus.DELIVERED:
            raise BusinessValidationError("Cannot delete delivered orders", code="order_delivered")

        self.store.delete_order(order.id, order.status, refund_payment=True)
        logger.info(
            f"Order {order.id} deleted in status {order.status}",
            extra={"order_id": order.id, "user_id": principal.id},
        )


class OrderQueryService:

    def __init__(self, store):
        self.store = store

    def list(self, principal, branch_id=None, status=None, customer_id=None):
        """
        branch_id/customer_id may arrive as raw query strings. They are only
        parsed for roles allowed to filter by them; everyone else has them
        dropped unread.
        """
        policy = policies.policy_for(principal)
        requested = OrderCriteria(
            branch_id=_parse_filter_id(branch_id, "branchId") if policy.may_filter_branch else None,
            customer_id=_parse_filter_id(customer_id, "customerId") if policy.may_filter_customer else None,
            status=_parse_status(status) if status else None,
        )
        return self.store.list_orders(policies.read_criteria(principal, requested))

    def get(self, principal, order_id):
        order = self.store.get_order(order_id)
        if order is None or not policies.can_read(principal, order):
            raise NotFoundError("Order not found", code="order_not_found")
        return order


class OrderService:
    """
    Single entry point used by the API layer; wires the collaborators
    around one store.
    """

    def __init__(self, store, resolver=None):
        self.store = store
        self.builder = OrderBuilder(store, resolver=resolver)
        self.engine = StatusTransitionEngine(store)
        self.queries = OrderQueryService(store)

    def create_order(self, principal, items, branch_id=None, delivery_address=None, customer_id=None):
        return self.builder.build(
            principal,
            items,
            branch_id=branch_id,
            delivery_address=delivery_address,
            customer_id=customer_id,
        )

    def update_status(self, principal, order_id, status):
        return self.engine.transition(principal, order_id, status)

    def delete_order(self, principal, order_id):
        self.engine.delete(principal, order_id)

    def list_orders(self, principal, **filters):
        return self.queries.list(principal, **filters)

    def get_order(self, principal, order_id):
        return self.queries.get(principal, order_id)


def get_order_service():
    store_class = import_string(settings.ORDER_STORE)
    return OrderService(store_class())

# apps/orders/stores.py
"""
Persistence seam for the order core.

Services receive a store instance instead of reaching for the ORM, so the same
rules run against Postgres in production and against InMemoryOrderStore in
unit tests. Every multi-row write is a single atomic unit.
"""
import copy
import itertools
import logging
import threading
from typing import List, Optional

from django.contrib.auth import get_user_model
from django.core.exceptions import ObjectDoesNotExist
from django.db import transaction
from django.utils import timezone

from apps.branches.models import Branch
from apps.menu.models import MenuItem
from apps.payments.models import PaymentStatus
from apps.payments.services import PaymentService
from apps.utils.exceptions import ConcurrencyError
from .domain import (
    BranchInfo,
    MenuItemInfo,
    OrderCriteria,
    OrderDraft,
    OrderLine,
    OrderRecord,
    OrderStatus,
    PaymentInfo,
    TimelineEntry,
)
from .models import Order, OrderItem, OrderTimeline
from .state_machine import INITIAL_STATUS

logger = logging.getLogger(__name__)


class OrderStore:
    """
    Read/write contract the order services depend on.
    """

    def list_branches(self) -> List[BranchInfo]:
        raise NotImplementedError

    def get_branch(self, branch_id) -> Optional[BranchInfo]:
        raise NotImplementedError

    def get_menu_item(self, menu_item_id) -> Optional[MenuItemInfo]:
        raise NotImplementedError

    def customer_exists(self, customer_id) -> bool:
        raise NotImplementedError

    def create_order(self, draft: OrderDraft) -> OrderRecord:
        """Order, items and first timeline entry appear together or not at all."""
        raise NotImplementedError

    def get_order(self, order_id) -> Optional[OrderRecord]:
        raise NotImplementedError

    def list_orders(self, criteria: OrderCriteria) -> List[OrderRecord]:
        """Newest first."""
        raise NotImplementedError

    def change_status(self, order_id, expected_status, new_status, *,
                      refund_payment=False, actor_id=None, note="") -> OrderRecord:
        """
        Writes `new_status` only if the row still holds `expected_status`,
        otherwise raises ConcurrencyError. The optional refund commits with it.
        """
        raise NotImplementedError

    def delete_order(self, order_id, expected_status, *, refund_payment=True) -> None:
        raise NotImplementedError


def _stale(order_id, expected_status):
    logger.warning(
        f"Order {order_id} changed since it was read (expected {expected_status})",
        extra={"order_id": order_id},
    )
    return ConcurrencyError(
        "Order was modified by another request. Please retry.",
        extra={"orderId": order_id},
    )


class DjangoOrderStore(OrderStore):
    """
    ORM-backed store. The status guard is a conditional UPDATE, so two
    requests validated against the same status cannot both commit.
    """

    def list_branches(self):
        return [self._branch_info(b) for b in Branch.objects.order_by("id")]

    def get_branch(self, branch_id):
        branch = Branch.objects.filter(pk=branch_id).first()
        return self._branch_info(branch) if branch else None

    def get_menu_item(self, menu_item_id):
        item = MenuItem.objects.filter(pk=menu_item_id).first()
        if item is None:
            return None
        return MenuItemInfo(id=item.id, name=item.name, price=item.price, is_available=item.is_available)

    def customer_exists(self, customer_id):
        return get_user_model().objects.filter(pk=customer_id).exists()

    @transaction.atomic
    def create_order(self, draft):
        order = Order.objects.create(
            branch_id=draft.branch_id,
            customer_id=draft.customer_id,
            status=INITIAL_STATUS,
            total_amount=draft.total_amount,
            delivery_address=draft.delivery_address,
        )
        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                menu_item_id=line.menu_item_id,
                menu_item_name=line.menu_item_name,
                quantity=line.quantity,
                unit_price=line.unit_price,
                subtotal=line.subtotal,
            )
            for line in draft.items
        ])
        OrderTimeline.objects.create(
            order=order,
            status=INITIAL_STATUS,
            note="Order created",
            created_by_id=draft.created_by_id,
        )
        return self.get_order(order.pk)

    def get_order(self, order_id):
        order = self._queryset().filter(pk=order_id).first()
        return self._to_record(order) if order else None

    def list_orders(self, criteria):
        if criteria.match_nothing:
            return []
        qs = self._queryset()
        if criteria.branch_id is not None:
            qs = qs.filter(branch_id=criteria.branch_id)
        if criteria.customer_id is not None:
            qs = qs.filter(customer_id=criteria.customer_id)
        if criteria.status:
            qs = qs.filter(status=criteria.status)
        return [self._to_record(o) for o in qs.order_by("-created_at", "-id")]

    @transaction.atomic
    def change_status(self, order_id, expected_status, new_status, *,
                      refund_payment=False, actor_id=None, note=""):
        updated = Order.objects.filter(pk=order_id, status=expected_status).update(
            status=new_status,
            updated_at=timezone.now(),
        )
        if updated != 1:
            raise _stale(order_id, expected_status)

        if refund_payment:
            PaymentService.mark_refunded(order_id)

        OrderTimeline.objects.create(
            order_id=order_id,
            status=new_status,
            note=note,
            created_by_id=actor_id,
        )
        return self.get_order(order_id)

    @transaction.atomic
    def delete_order(self, order_id, expected_status, *, refund_payment=True):
        order = Order.objects.select_for_update().filter(pk=order_id).first()
        if order is None or order.status != expected_status:
            raise _stale(order_id, expected_status)

        if refund_payment:
            PaymentService.mark_refunded(order_id)
        order.delete()

    # --- mapping ---

    @staticmethod
    def _queryset():
        return (
            Order.objects
            .select_related("payment")
            .prefetch_related("items", "timeline")
        )

    @staticmethod
    def _branch_info(branch):
        return BranchInfo(id=branch.id, name=branch.name, address=branch.address)

    @staticmethod
    def _to_record(order):
        try:
            payment = order.payment
        except ObjectDoesNotExist:
            payment = None

        return OrderRecord(
            id=order.id,
            branch_id=order.branch_id,
            customer_id=order.customer_id,
            status=OrderStatus(order.status),
            total_amount=order.total_amount,
            delivery_address=order.delivery_address,
            created_at=order.created_at,
            items=[
                OrderLine(
                    id=item.id,
                    menu_item_id=item.menu_item_id,
                    menu_item_name=item.menu_item_name,
                    quantity=item.quantity,
                    unit_price=item.unit_price,
                    subtotal=item.subtotal,
                )
                for item in order.items.all()
            ],
            payment=PaymentInfo(
                id=payment.id,
                order_id=payment.order_id,
                status=payment.status,
                amount=payment.amount,
            ) if payment else None,
            timeline=[
                TimelineEntry(
                    status=entry.status,
                    note=entry.note,
                    created_by_id=entry.created_by_id,
                    timestamp=entry.timestamp,
                )
                for entry in order.timeline.all()
            ],
        )


class InMemoryOrderStore(OrderStore):
    """
    Dict-backed store with the same contract, for tests and local tinkering.
    Returned records are copies; mutating them never touches stored state.
    """

    def __init__(self, branches=(), menu_items=(), customer_ids=()):
        self.branches = {b.id: b for b in branches}
        self.menu_items = {m.id: m for m in menu_items}
        self.customer_ids = set(customer_ids)
        self.orders = {}
        self.payments = {}
        self._order_ids = itertools.count(1)
        self._payment_ids = itertools.count(1)
        self._lock = threading.Lock()

    # --- test helpers ---

    def add_payment(self, order_id, status=PaymentStatus.COMPLETED, amount=None):
        with self._lock:
            order = self.orders[order_id]
            payment = PaymentInfo(
                id=next(self._payment_ids),
                order_id=order_id,
                status=status,
                amount=order.total_amount if amount is None else amount,
            )
            self.payments[payment.id] = payment
            return copy.deepcopy(payment)

    def payment_for(self, order_id):
        for payment in self.payments.values():
            if payment.order_id == order_id:
                return payment
        return None

    # --- contract ---

    def list_branches(self):
        return list(self.branches.values())

    def get_branch(self, branch_id):
        return self.branches.get(branch_id)

    def get_menu_item(self, menu_item_id):
        return self.menu_items.get(menu_item_id)

    def customer_exists(self, customer_id):
        return customer_id in self.customer_ids

    def create_order(self, draft):
        with self._lock:
            now = timezone.now()
            order = OrderRecord(
                id=next(self._order_ids),
                branch_id=draft.branch_id,
                customer_id=draft.customer_id,
                status=INITIAL_STATUS,
                total_amount=draft.total_amount,
                delivery_address=draft.delivery_address,
                created_at=now,
                items=[
                    self._with_id(line, index)
                    for index, line in enumerate(draft.items, start=1)
                ],
                timeline=[TimelineEntry(INITIAL_STATUS, "Order created", draft.created_by_id, now)],
            )
            self.orders[order.id] = order
            return self._snapshot(order)

    def get_order(self, order_id):
        with self._lock:
            order = self.orders.get(order_id)
            return self._snapshot(order) if order else None

    def list_orders(self, criteria):
        if criteria.match_nothing:
            return []
        with self._lock:
            matches = [
                o for o in self.orders.values()
                if (criteria.branch_id is None or o.branch_id == criteria.branch_id)
                and (criteria.customer_id is None or o.customer_id == criteria.customer_id)
                and (not criteria.status or o.status == criteria.status)
            ]
            matches.sort(key=lambda o: (o.created_at, o.id), reverse=True)
            return [self._snapshot(o) for o in matches]

    def change_status(self, order_id, expected_status, new_status, *,
                      refund_payment=False, actor_id=None, note=""):
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != expected_status:
                raise _stale(order_id, expected_status)
            order.status = OrderStatus(new_status)
            if refund_payment:
                self._refund(order_id)
            order.timeline.append(TimelineEntry(new_status, note, actor_id, timezone.now()))
            return self._snapshot(order)

    def delete_order(self, order_id, expected_status, *, refund_payment=True):
        with self._lock:
            order = self.orders.get(order_id)
            if order is None or order.status != expected_status:
                raise _stale(order_id, expected_status)
            if refund_payment:
                self._refund(order_id)
            # Payment rows outlive the order, detached
            payment = self.payment_for(order_id)
            if payment:
                payment.order_id = None
            del self.orders[order_id]

    # --- internals ---

    def _refund(self, order_id):
        payment = self.payment_for(order_id)
        if payment:
            payment.status = PaymentStatus.REFUNDED

    def _snapshot(self, order):
        record = copy.deepcopy(order)
        record.payment = copy.deepcopy(self.payment_for(order.id))
        return record

    @staticmethod
    def _with_id(line, line_id):
        line = copy.copy(line)
        line.id = line_id
        return line

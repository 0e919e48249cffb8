# apps/orders/tests_services.py
from decimal import Decimal
from unittest.mock import patch

from django.test import SimpleTestCase

from apps.accounts.models import Role
from apps.accounts.principal import Principal
from apps.branches.utils.branch_selector import select_branch, normalize_address
from apps.payments.models import PaymentStatus
from apps.utils.exceptions import (
    AuthorizationError,
    BusinessValidationError,
    ConcurrencyError,
    NotFoundError,
    StateError,
)
from .domain import MAX_LINE_QUANTITY, BranchInfo, LineRequest, MenuItemInfo, OrderStatus
from .policies import permitted_roles
from .services import OrderService
from .state_machine import TERMINAL_STATUSES, can_transition
from .stores import InMemoryOrderStore

LONDON = BranchInfo(id=1, name="London", address="123 Main St London")
MANCHESTER = BranchInfo(id=2, name="Manchester", address="456 King St Manchester")

STEAK = MenuItemInfo(id=5, name="Ribeye", price=Decimal("10.00"))
FRIES = MenuItemInfo(id=6, name="Fries", price=Decimal("3.335"))
SOLD_OUT = MenuItemInfo(id=7, name="Wagyu", price=Decimal("80.00"), is_available=False)

CUSTOMER = Principal(id=100, role=Role.CUSTOMER)
OTHER_CUSTOMER = Principal(id=101, role=Role.CUSTOMER)
ADMIN = Principal(id=1, role=Role.ADMIN)
GM = Principal(id=2, role=Role.GENERAL_MANAGER)
LONDON_MANAGER = Principal(id=10, role=Role.BRANCH_MANAGER, branch_id=1)
LONDON_CHEF = Principal(id=11, role=Role.CHEF, branch_id=1)
LONDON_CASHIER = Principal(id=12, role=Role.CASHIER, branch_id=1)
MANCHESTER_CHEF = Principal(id=21, role=Role.CHEF, branch_id=2)
UNASSIGNED_CHEF = Principal(id=30, role=Role.CHEF)


class ServiceTestMixin:

    def setUp(self):
        self.store = InMemoryOrderStore(
            branches=[LONDON, MANCHESTER],
            menu_items=[STEAK, FRIES, SOLD_OUT],
            customer_ids=[100, 101],
        )
        self.service = OrderService(self.store)

    def place(self, principal=CUSTOMER, branch_id=1, quantity=2, **kwargs):
        return self.service.create_order(
            principal,
            [LineRequest(menu_item_id=STEAK.id, quantity=quantity)],
            branch_id=branch_id,
            **kwargs
        )

    def move(self, order, *statuses, principal=ADMIN):
        for target in statuses:
            order = self.service.update_status(principal, order.id, target)
        return order


class BranchSelectorTests(SimpleTestCase):

    def test_normalize_address(self):
        self.assertEqual(normalize_address("123 Main St, London!"), "123mainstlondon")
        self.assertEqual(normalize_address(None), "")

    def test_best_positional_match_wins(self):
        self.assertEqual(select_branch("123 Main Street", [LONDON, MANCHESTER]), 1)
        self.assertEqual(select_branch("456 King Street", [LONDON, MANCHESTER]), 2)

    def test_no_match_falls_back_to_first_branch(self):
        self.assertEqual(select_branch("zzz", [MANCHESTER, LONDON]), 2)

    def test_tie_keeps_earliest_branch(self):
        a = BranchInfo(id=8, name="A", address="Elm Road")
        b = BranchInfo(id=9, name="B", address="Elm Road")
        self.assertEqual(select_branch("Elm Road", [a, b]), 8)

    def test_no_branches(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            select_branch("anything", [])
        self.assertEqual(ctx.exception.code, "no_branches_available")


class OrderBuilderTests(ServiceTestMixin, SimpleTestCase):

    def test_total_is_sum_of_snapshot_subtotals(self):
        order = self.place(quantity=2)

        self.assertEqual(order.status, OrderStatus.PENDING)
        self.assertEqual(order.total_amount, Decimal("20.00"))
        self.assertEqual(order.customer_id, CUSTOMER.id)
        line = order.items[0]
        self.assertEqual(line.menu_item_name, "Ribeye")
        self.assertEqual(line.unit_price, Decimal("10.00"))
        self.assertEqual(line.subtotal, Decimal("20.00"))
        self.assertEqual(order.timeline[0].status, OrderStatus.PENDING)

    def test_prices_are_rounded_to_cents(self):
        order = self.service.create_order(
            CUSTOMER,
            [LineRequest(FRIES.id, 3), LineRequest(STEAK.id, 1)],
            branch_id=1,
        )
        self.assertEqual(order.items[0].unit_price, Decimal("3.34"))
        self.assertEqual(order.total_amount, Decimal("20.02"))

    def test_later_price_change_does_not_touch_existing_order(self):
        order = self.place(quantity=1)
        self.store.menu_items[STEAK.id] = MenuItemInfo(id=STEAK.id, name="Ribeye", price=Decimal("99.00"))

        stored = self.service.get_order(ADMIN, order.id)
        self.assertEqual(stored.total_amount, Decimal("10.00"))
        self.assertEqual(stored.items[0].unit_price, Decimal("10.00"))

    def test_branch_resolved_from_delivery_address(self):
        order = self.place(branch_id=None, delivery_address="123 Main Street")
        self.assertEqual(order.branch_id, 1)
        self.assertEqual(order.delivery_address, "123 Main Street")

    def test_explicit_branch_beats_address(self):
        order = self.place(branch_id=2, delivery_address="123 Main Street")
        self.assertEqual(order.branch_id, 2)

    def test_empty_order(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.create_order(CUSTOMER, [], branch_id=1)
        self.assertEqual(ctx.exception.code, "empty_order")

    def test_branch_required(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.place(branch_id=None)
        self.assertEqual(ctx.exception.code, "branch_required")

    def test_unknown_branch_lists_alternatives(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.place(branch_id=99)
        self.assertEqual(ctx.exception.code, "branch_not_found")
        self.assertEqual(
            [b["id"] for b in ctx.exception.extra["availableBranches"]],
            [1, 2],
        )

    def test_unknown_menu_item(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.create_order(CUSTOMER, [LineRequest(404, 1)], branch_id=1)
        self.assertEqual(ctx.exception.code, "menu_item_not_found")
        self.assertEqual(self.store.orders, {})

    def test_unavailable_menu_item(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.create_order(
                CUSTOMER,
                [LineRequest(STEAK.id, 1), LineRequest(SOLD_OUT.id, 1)],
                branch_id=1,
            )
        self.assertEqual(ctx.exception.code, "menu_item_unavailable")
        self.assertEqual(self.store.orders, {})

    def test_non_positive_quantity(self):
        for quantity in (0, -1):
            with self.assertRaises(BusinessValidationError) as ctx:
                self.place(quantity=quantity)
            self.assertEqual(ctx.exception.code, "invalid_quantity")

    def test_quantity_above_cap(self):
        for quantity in (MAX_LINE_QUANTITY + 1, 10 ** 9, 10 ** 20):
            with self.assertRaises(BusinessValidationError) as ctx:
                self.place(quantity=quantity)
            self.assertEqual(ctx.exception.code, "invalid_quantity")
        self.assertEqual(self.store.orders, {})

    def test_quantity_at_cap(self):
        order = self.place(quantity=MAX_LINE_QUANTITY)
        self.assertEqual(order.total_amount, Decimal("10000.00"))

    def test_subtotal_that_overflows_amount_columns(self):
        self.store.menu_items[8] = MenuItemInfo(id=8, name="Banquet", price=Decimal("200000.00"))
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.create_order(CUSTOMER, [LineRequest(8, MAX_LINE_QUANTITY)], branch_id=1)
        self.assertEqual(ctx.exception.code, "order_total_too_large")
        self.assertEqual(self.store.orders, {})

    def test_total_that_overflows_amount_columns(self):
        self.store.menu_items[8] = MenuItemInfo(id=8, name="Banquet", price=Decimal("60000.00"))
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.create_order(
                CUSTOMER,
                [LineRequest(8, MAX_LINE_QUANTITY), LineRequest(8, MAX_LINE_QUANTITY)],
                branch_id=1,
            )
        self.assertEqual(ctx.exception.code, "order_total_too_large")
        self.assertEqual(self.store.orders, {})

    def test_accepts_plain_dict_lines(self):
        order = self.service.create_order(
            CUSTOMER, [{"menu_item_id": STEAK.id, "quantity": 1}], branch_id=1
        )
        self.assertEqual(order.total_amount, Decimal("10.00"))

    def test_customer_cannot_order_for_someone_else(self):
        order = self.place(customer_id=OTHER_CUSTOMER.id)
        self.assertEqual(order.customer_id, CUSTOMER.id)

    def test_cashier_orders_for_named_customer(self):
        order = self.place(principal=LONDON_CASHIER, customer_id=CUSTOMER.id)
        self.assertEqual(order.customer_id, CUSTOMER.id)

    def test_cashier_walk_in_defaults_to_self(self):
        order = self.place(principal=LONDON_CASHIER)
        self.assertEqual(order.customer_id, LONDON_CASHIER.id)

    def test_named_customer_must_exist(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.place(principal=LONDON_CASHIER, customer_id=555)
        self.assertEqual(ctx.exception.code, "customer_not_found")

    def test_chef_cannot_create(self):
        with self.assertRaises(AuthorizationError) as ctx:
            self.place(principal=LONDON_CHEF)
        self.assertEqual(ctx.exception.code, "insufficient_permissions")


class StateMachineTests(SimpleTestCase):

    def test_terminal_states_have_no_exits(self):
        self.assertEqual(TERMINAL_STATUSES, {OrderStatus.DELIVERED, OrderStatus.CANCELLED})
        for source in TERMINAL_STATUSES:
            for target in OrderStatus:
                self.assertFalse(can_transition(source, target))

    def test_no_backward_edges(self):
        self.assertFalse(can_transition(OrderStatus.READY, OrderStatus.PREPARING))
        self.assertFalse(can_transition(OrderStatus.PREPARING, OrderStatus.PENDING))
        self.assertFalse(can_transition(OrderStatus.PENDING, OrderStatus.READY))

    def test_direct_delivery_roles(self):
        self.assertEqual(
            permitted_roles(OrderStatus.PENDING, OrderStatus.DELIVERED),
            {Role.CASHIER, Role.BRANCH_MANAGER, Role.ADMIN, Role.GENERAL_MANAGER},
        )
        self.assertEqual(permitted_roles(OrderStatus.READY, OrderStatus.PREPARING), frozenset())


class StatusTransitionTests(ServiceTestMixin, SimpleTestCase):

    def test_kitchen_flow(self):
        order = self.place()
        order = self.move(order, OrderStatus.PREPARING, OrderStatus.READY, principal=LONDON_CHEF)
        order = self.move(order, OrderStatus.DELIVERED, principal=LONDON_CASHIER)

        self.assertEqual(order.status, OrderStatus.DELIVERED)
        self.assertEqual(
            [entry.status for entry in order.timeline],
            ["PENDING", "PREPARING", "READY", "DELIVERED"],
        )

    def test_ready_back_to_preparing_is_rejected(self):
        order = self.move(self.place(), OrderStatus.PREPARING, OrderStatus.READY)

        with self.assertRaises(StateError) as ctx:
            self.service.update_status(ADMIN, order.id, "PREPARING")
        self.assertEqual(ctx.exception.code, "invalid_transition")
        self.assertIn("READY", ctx.exception.message)
        self.assertEqual(self.service.get_order(ADMIN, order.id).status, OrderStatus.READY)

    def test_cancel_refunds_completed_payment(self):
        order = self.place()
        self.store.add_payment(order.id, status=PaymentStatus.COMPLETED)

        order = self.service.update_status(LONDON_CASHIER, order.id, "CANCELLED")

        self.assertEqual(order.status, OrderStatus.CANCELLED)
        self.assertEqual(order.payment.status, PaymentStatus.REFUNDED)

    def test_cancel_without_payment(self):
        order = self.service.update_status(ADMIN, self.place().id, "CANCELLED")
        self.assertIsNone(order.payment)

    def test_non_cancel_transition_leaves_payment_alone(self):
        order = self.place()
        self.store.add_payment(order.id, status=PaymentStatus.COMPLETED)
        self.service.update_status(ADMIN, order.id, "PREPARING")
        self.assertEqual(self.store.payment_for(order.id).status, PaymentStatus.COMPLETED)

    def test_unknown_status_value(self):
        order = self.place()
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.update_status(ADMIN, order.id, "SHIPPED")
        self.assertEqual(ctx.exception.code, "invalid_status")

    def test_chef_cannot_deliver(self):
        order = self.move(self.place(), OrderStatus.PREPARING, OrderStatus.READY)
        with self.assertRaises(AuthorizationError):
            self.service.update_status(LONDON_CHEF, order.id, "DELIVERED")

    def test_cashier_cannot_start_preparing(self):
        with self.assertRaises(AuthorizationError):
            self.service.update_status(LONDON_CASHIER, self.place().id, "PREPARING")

    def test_other_branch_is_forbidden(self):
        order = self.place()
        with self.assertRaises(AuthorizationError):
            self.service.update_status(MANCHESTER_CHEF, order.id, "PREPARING")
        self.assertEqual(self.service.get_order(ADMIN, order.id).status, OrderStatus.PENDING)

    def test_chef_without_branch_is_forbidden(self):
        with self.assertRaises(AuthorizationError):
            self.service.update_status(UNASSIGNED_CHEF, self.place().id, "PREPARING")

    def test_customer_cannot_update(self):
        with self.assertRaises(AuthorizationError):
            self.service.update_status(CUSTOMER, self.place().id, "CANCELLED")

    def test_missing_order(self):
        with self.assertRaises(NotFoundError):
            self.service.update_status(GM, 999, "PREPARING")
        # Scoped roles can't tell a missing order from another branch's
        with self.assertRaises(AuthorizationError):
            self.service.update_status(LONDON_CHEF, 999, "PREPARING")

    def test_stale_read_raises_concurrency_error(self):
        order = self.place()
        stale = self.store.get_order(order.id)
        self.service.update_status(LONDON_CHEF, order.id, "PREPARING")

        with patch.object(self.store, "get_order", return_value=stale):
            with self.assertRaises(ConcurrencyError) as ctx:
                self.service.update_status(LONDON_CASHIER, order.id, "CANCELLED")
        self.assertTrue(ctx.exception.retryable)
        self.assertEqual(self.service.get_order(ADMIN, order.id).status, OrderStatus.PREPARING)

    def test_delete_refunds_and_detaches_payment(self):
        order = self.place()
        payment = self.store.add_payment(order.id)

        self.service.delete_order(LONDON_MANAGER, order.id)

        self.assertNotIn(order.id, self.store.orders)
        stored_payment = self.store.payments[payment.id]
        self.assertEqual(stored_payment.status, PaymentStatus.REFUNDED)
        self.assertIsNone(stored_payment.order_id)

    def test_delivered_orders_cannot_be_deleted(self):
        order = self.move(self.place(), OrderStatus.DELIVERED)
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.delete_order(ADMIN, order.id)
        self.assertEqual(ctx.exception.code, "order_delivered")
        self.assertIn(order.id, self.store.orders)

    def test_cancelled_orders_can_be_deleted(self):
        order = self.move(self.place(), OrderStatus.CANCELLED)
        self.service.delete_order(ADMIN, order.id)
        self.assertNotIn(order.id, self.store.orders)

    def test_delete_permissions(self):
        order = self.place()
        for principal in (GM, LONDON_CASHIER, LONDON_CHEF, CUSTOMER):
            with self.assertRaises(AuthorizationError):
                self.service.delete_order(principal, order.id)
        manchester_manager = Principal(id=20, role=Role.BRANCH_MANAGER, branch_id=2)
        with self.assertRaises(AuthorizationError):
            self.service.delete_order(manchester_manager, order.id)
        self.assertIn(order.id, self.store.orders)


class OrderQueryTests(ServiceTestMixin, SimpleTestCase):

    def setUp(self):
        super().setUp()
        self.mine = self.place(principal=CUSTOMER, branch_id=1)
        self.theirs = self.place(principal=OTHER_CUSTOMER, branch_id=2)
        self.walk_in = self.place(principal=LONDON_CASHIER, branch_id=1)

    def ids(self, orders):
        return [o.id for o in orders]

    def test_newest_first_for_admin(self):
        self.assertEqual(
            self.ids(self.service.list_orders(ADMIN)),
            [self.walk_in.id, self.theirs.id, self.mine.id],
        )

    def test_customer_sees_only_own_orders(self):
        self.assertEqual(self.ids(self.service.list_orders(CUSTOMER)), [self.mine.id])
        # Filters can't widen scope
        self.assertEqual(
            self.ids(self.service.list_orders(CUSTOMER, branch_id=2, customer_id=OTHER_CUSTOMER.id)),
            [self.mine.id],
        )

    def test_branch_staff_see_own_branch(self):
        self.assertEqual(
            self.ids(self.service.list_orders(LONDON_CHEF, branch_id=2)),
            [self.walk_in.id, self.mine.id],
        )
        self.assertEqual(self.ids(self.service.list_orders(MANCHESTER_CHEF)), [self.theirs.id])

    def test_staff_without_branch_see_nothing(self):
        self.assertEqual(self.service.list_orders(UNASSIGNED_CHEF), [])

    def test_manager_filters_by_customer(self):
        self.assertEqual(
            self.ids(self.service.list_orders(LONDON_MANAGER, customer_id=CUSTOMER.id)),
            [self.mine.id],
        )

    def test_gm_filters(self):
        self.move(self.theirs, OrderStatus.PREPARING)
        self.assertEqual(self.ids(self.service.list_orders(GM, branch_id=2)), [self.theirs.id])
        self.assertEqual(self.ids(self.service.list_orders(GM, status="PREPARING")), [self.theirs.id])

    def test_invalid_status_filter(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.list_orders(ADMIN, status="LOST")
        self.assertEqual(ctx.exception.code, "invalid_status")

    def test_malformed_filters_ignored_for_unprivileged_roles(self):
        self.assertEqual(
            self.ids(self.service.list_orders(CUSTOMER, branch_id="abc", customer_id="x")),
            [self.mine.id],
        )
        self.assertEqual(
            self.ids(self.service.list_orders(LONDON_CHEF, branch_id="abc")),
            [self.walk_in.id, self.mine.id],
        )

    def test_query_string_filters_are_parsed(self):
        self.assertEqual(self.ids(self.service.list_orders(GM, branch_id="2")), [self.theirs.id])
        self.assertEqual(
            self.ids(self.service.list_orders(LONDON_MANAGER, customer_id=str(CUSTOMER.id))),
            [self.mine.id],
        )
        self.assertEqual(len(self.service.list_orders(ADMIN, branch_id="")), 3)

    def test_malformed_filter_rejected_for_privileged_roles(self):
        with self.assertRaises(BusinessValidationError) as ctx:
            self.service.list_orders(ADMIN, branch_id="abc")
        self.assertEqual(ctx.exception.code, "invalid_filter")
        with self.assertRaises(BusinessValidationError):
            self.service.list_orders(LONDON_MANAGER, customer_id="abc")

    def test_get_hides_out_of_scope_orders(self):
        self.assertEqual(self.service.get_order(CUSTOMER, self.mine.id).id, self.mine.id)
        with self.assertRaises(NotFoundError):
            self.service.get_order(CUSTOMER, self.theirs.id)
        with self.assertRaises(NotFoundError):
            self.service.get_order(MANCHESTER_CHEF, self.mine.id)

    def test_returned_records_are_copies(self):
        record = self.service.get_order(ADMIN, self.mine.id)
        record.status = OrderStatus.CANCELLED
        self.assertEqual(self.service.get_order(ADMIN, self.mine.id).status, OrderStatus.PENDING)

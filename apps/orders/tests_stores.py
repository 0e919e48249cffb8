# apps/orders/tests_stores.py
from decimal import Decimal
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.db import DatabaseError
from django.test import TestCase

from apps.accounts.models import Role
from apps.branches.models import Branch
from apps.menu.models import MenuItem
from apps.payments.models import Payment, PaymentStatus
from apps.utils.exceptions import ConcurrencyError
from .domain import OrderCriteria, OrderDraft, OrderLine, OrderStatus
from .models import Order, OrderItem, OrderTimeline
from .stores import DjangoOrderStore

User = get_user_model()


class DjangoOrderStoreTests(TestCase):

    def setUp(self):
        self.store = DjangoOrderStore()
        self.branch = Branch.objects.create(name="London", address="123 Main St London")
        self.item = MenuItem.objects.create(branch=self.branch, name="Ribeye", price=Decimal("10.00"))
        self.customer = User.objects.create_user(username="alice", role=Role.CUSTOMER)

    def draft(self):
        return OrderDraft(
            branch_id=self.branch.id,
            customer_id=self.customer.id,
            delivery_address=None,
            items=[OrderLine(
                menu_item_id=self.item.id,
                menu_item_name=self.item.name,
                quantity=2,
                unit_price=Decimal("10.00"),
                subtotal=Decimal("20.00"),
            )],
            total_amount=Decimal("20.00"),
            created_by_id=self.customer.id,
        )

    def test_create_order_writes_all_rows(self):
        record = self.store.create_order(self.draft())

        self.assertEqual(record.status, OrderStatus.PENDING)
        self.assertEqual(record.total_amount, Decimal("20.00"))
        self.assertEqual(len(record.items), 1)
        self.assertIsNotNone(record.items[0].id)
        self.assertEqual(record.timeline[0].note, "Order created")

    def test_create_order_is_all_or_nothing(self):
        with patch.object(OrderTimeline.objects, "create", side_effect=DatabaseError("boom")):
            with self.assertRaises(DatabaseError):
                self.store.create_order(self.draft())

        self.assertEqual(Order.objects.count(), 0)
        self.assertEqual(OrderItem.objects.count(), 0)

    def test_lookups(self):
        self.assertEqual(self.store.get_branch(self.branch.id).address, "123 Main St London")
        self.assertIsNone(self.store.get_branch(999))
        self.assertEqual(self.store.get_menu_item(self.item.id).price, Decimal("10.00"))
        self.assertIsNone(self.store.get_menu_item(999))
        self.assertTrue(self.store.customer_exists(self.customer.id))
        self.assertFalse(self.store.customer_exists(999))
        self.assertIsNone(self.store.get_order(999))

    def test_menu_item_deletion_keeps_snapshot(self):
        record = self.store.create_order(self.draft())
        self.item.delete()

        line = self.store.get_order(record.id).items[0]
        self.assertIsNone(line.menu_item_id)
        self.assertEqual(line.menu_item_name, "Ribeye")

    def test_change_status_guards_on_expected_status(self):
        record = self.store.create_order(self.draft())

        with self.assertRaises(ConcurrencyError):
            self.store.change_status(record.id, OrderStatus.PREPARING, OrderStatus.READY)

        self.assertEqual(Order.objects.get(pk=record.id).status, OrderStatus.PENDING)
        self.assertEqual(OrderTimeline.objects.filter(order_id=record.id).count(), 1)

    def test_refund_commits_with_status(self):
        record = self.store.create_order(self.draft())
        payment = Payment.objects.create(order_id=record.id, amount=Decimal("20.00"), status=PaymentStatus.COMPLETED)

        updated = self.store.change_status(
            record.id, OrderStatus.PENDING, OrderStatus.CANCELLED,
            refund_payment=True, actor_id=self.customer.id, note="cancelled",
        )

        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)
        self.assertEqual(updated.status, OrderStatus.CANCELLED)
        self.assertEqual(updated.payment.status, PaymentStatus.REFUNDED)
        self.assertEqual(updated.timeline[-1].note, "cancelled")

    def test_failed_timeline_write_rolls_back_refund(self):
        record = self.store.create_order(self.draft())
        payment = Payment.objects.create(order_id=record.id, amount=Decimal("20.00"), status=PaymentStatus.COMPLETED)

        with patch.object(OrderTimeline.objects, "create", side_effect=DatabaseError("boom")):
            with self.assertRaises(DatabaseError):
                self.store.change_status(
                    record.id, OrderStatus.PENDING, OrderStatus.CANCELLED, refund_payment=True
                )

        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.COMPLETED)
        self.assertEqual(Order.objects.get(pk=record.id).status, OrderStatus.PENDING)

    def test_delete_order(self):
        record = self.store.create_order(self.draft())
        payment = Payment.objects.create(order_id=record.id, amount=Decimal("20.00"), status=PaymentStatus.COMPLETED)

        self.store.delete_order(record.id, OrderStatus.PENDING)

        self.assertFalse(Order.objects.filter(pk=record.id).exists())
        self.assertEqual(OrderItem.objects.count(), 0)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)
        self.assertIsNone(payment.order_id)

    def test_delete_order_with_stale_status(self):
        record = self.store.create_order(self.draft())
        with self.assertRaises(ConcurrencyError):
            self.store.delete_order(record.id, OrderStatus.READY)
        self.assertTrue(Order.objects.filter(pk=record.id).exists())

    def test_list_orders(self):
        first = self.store.create_order(self.draft())
        second = self.store.create_order(self.draft())
        self.store.change_status(second.id, OrderStatus.PENDING, OrderStatus.PREPARING)

        self.assertEqual([o.id for o in self.store.list_orders(OrderCriteria())], [second.id, first.id])
        self.assertEqual(
            [o.id for o in self.store.list_orders(OrderCriteria(status=OrderStatus.PENDING))],
            [first.id],
        )
        self.assertEqual(self.store.list_orders(OrderCriteria(branch_id=999)), [])
        self.assertEqual(self.store.list_orders(OrderCriteria(match_nothing=True)), [])

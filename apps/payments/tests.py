from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import TestCase

from apps.accounts.models import Role
from apps.branches.models import Branch
from apps.orders.models.order import Order, OrderStatus
from .models import Payment, PaymentStatus
from .services import PaymentService

User = get_user_model()


class PaymentRefundTests(TestCase):
    def setUp(self):
        self.user = User.objects.create_user(username="alice", role=Role.CUSTOMER)
        self.branch = Branch.objects.create(name="London", address="123 Main St London")
        self.order = Order.objects.create(
            branch=self.branch,
            customer=self.user,
            status=OrderStatus.PENDING,
            total_amount=Decimal("20.00"),
        )

    def test_marks_payment_refunded(self):
        payment = Payment.objects.create(
            order=self.order, amount=Decimal("20.00"), status=PaymentStatus.COMPLETED
        )

        self.assertEqual(PaymentService.mark_refunded(self.order.id), 1)

        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)

    def test_pending_payment_is_refunded_too(self):
        payment = Payment.objects.create(order=self.order, amount=Decimal("20.00"))
        PaymentService.mark_refunded(self.order.id)
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)

    def test_order_without_payment(self):
        self.assertEqual(PaymentService.mark_refunded(self.order.id), 0)

    def test_payment_outlives_order(self):
        payment = Payment.objects.create(order=self.order, amount=Decimal("20.00"))
        self.order.delete()
        payment.refresh_from_db()
        self.assertIsNone(payment.order_id)

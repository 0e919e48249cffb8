# apps/orders/tests.py
from decimal import Decimal

from django.contrib.auth import get_user_model

from rest_framework.test import APITestCase, APIClient
from rest_framework import status

from apps.accounts.models import Role
from apps.branches.models import Branch
from apps.menu.models import MenuItem
from apps.orders.models import Order, OrderTimeline
from apps.payments.models import Payment, PaymentStatus


User = get_user_model()

ORDERS_URL = "/api/v1/orders/"


def detail_url(order_id):
    return f"{ORDERS_URL}{order_id}/"


def status_url(order_id):
    return f"{ORDERS_URL}{order_id}/status/"


class OrderAPITestBase(APITestCase):

    def setUp(self):
        self.client = APIClient()
        self.london = Branch.objects.create(name="London", address="123 Main St London")
        self.manchester = Branch.objects.create(name="Manchester", address="456 King St Manchester")
        self.steak = MenuItem.objects.create(branch=self.london, name="Ribeye", price=Decimal("10.00"))
        self.wagyu = MenuItem.objects.create(
            branch=self.london, name="Wagyu", price=Decimal("80.00"), is_available=False
        )

        self.customer = self.make_user("alice", Role.CUSTOMER)
        self.other_customer = self.make_user("bob", Role.CUSTOMER)
        self.admin = self.make_user("root", Role.ADMIN)
        self.gm = self.make_user("gm", Role.GENERAL_MANAGER)
        self.manager = self.make_user("bm-london", Role.BRANCH_MANAGER, self.london)
        self.chef = self.make_user("chef-london", Role.CHEF, self.london)
        self.cashier = self.make_user("cashier-london", Role.CASHIER, self.london)
        self.manchester_chef = self.make_user("chef-manchester", Role.CHEF, self.manchester)

    def make_user(self, username, role, branch=None):
        return User.objects.create_user(username=username, password="testpass123", role=role, branch=branch)

    def as_user(self, user):
        self.client.force_authenticate(user=user)

    def place_order(self, user=None, quantity=2, **body):
        self.as_user(user or self.customer)
        payload = {
            "branchId": self.london.id,
            "items": [{"menuItemId": self.steak.id, "quantity": quantity}],
        }
        payload.update(body)
        response = self.client.post(ORDERS_URL, payload, format="json")
        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        return response.data

    def set_status(self, order_id, new_status, user=None):
        self.as_user(user or self.admin)
        return self.client.put(status_url(order_id), {"status": new_status}, format="json")


class CreateOrderAPITests(OrderAPITestBase):

    def test_customer_creates_priced_order(self):
        data = self.place_order(quantity=2)

        self.assertEqual(data["status"], "PENDING")
        self.assertEqual(data["totalAmount"], "20.00")
        self.assertEqual(data["customerId"], self.customer.id)
        self.assertEqual(data["branchId"], self.london.id)
        self.assertEqual(data["items"][0]["menuItemName"], "Ribeye")
        self.assertEqual(data["items"][0]["unitPrice"], "10.00")
        self.assertIsNone(data["payment"])

        order = Order.objects.get(pk=data["id"])
        self.assertEqual(order.items.count(), 1)
        self.assertEqual(OrderTimeline.objects.filter(order=order).count(), 1)

    def test_branch_from_delivery_address(self):
        data = self.place_order(branchId=None, deliveryAddress="456 King Street")
        self.assertEqual(data["branchId"], self.manchester.id)
        self.assertEqual(data["deliveryAddress"], "456 King Street")

    def test_cashier_creates_for_customer(self):
        data = self.place_order(user=self.cashier, customerId=self.customer.id)
        self.assertEqual(data["customerId"], self.customer.id)

    def test_validation_errors(self):
        self.as_user(self.customer)
        cases = [
            ({"branchId": self.london.id, "items": []}, "empty_order"),
            ({"items": [{"menuItemId": self.steak.id, "quantity": 1}]}, "branch_required"),
            ({"branchId": 999, "items": [{"menuItemId": self.steak.id, "quantity": 1}]}, "branch_not_found"),
            ({"branchId": self.london.id, "items": [{"menuItemId": 999, "quantity": 1}]}, "menu_item_not_found"),
            ({"branchId": self.london.id, "items": [{"menuItemId": self.wagyu.id, "quantity": 1}]}, "menu_item_unavailable"),
            ({"branchId": self.london.id, "items": [{"menuItemId": self.steak.id, "quantity": 0}]}, "invalid_quantity"),
            ({"branchId": self.london.id, "items": [{"menuItemId": self.steak.id, "quantity": "lots"}]}, "validation_error"),
        ]
        for payload, code in cases:
            response = self.client.post(ORDERS_URL, payload, format="json")
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, payload)
            self.assertEqual(response.data["code"], code)
        self.assertEqual(Order.objects.count(), 0)

    def test_oversized_quantity_is_rejected(self):
        self.as_user(self.customer)
        for quantity in (10 ** 9, 10 ** 20):
            response = self.client.post(
                ORDERS_URL,
                {"branchId": self.london.id, "items": [{"menuItemId": self.steak.id, "quantity": quantity}]},
                format="json",
            )
            self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST, quantity)
            self.assertEqual(response.data["code"], "validation_error")
        self.assertEqual(Order.objects.count(), 0)

    def test_total_too_large_is_rejected(self):
        banquet = MenuItem.objects.create(branch=self.london, name="Banquet", price=Decimal("200000.00"))
        self.as_user(self.customer)

        response = self.client.post(
            ORDERS_URL,
            {"branchId": self.london.id, "items": [{"menuItemId": banquet.id, "quantity": 1000}]},
            format="json",
        )

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "order_total_too_large")
        self.assertEqual(Order.objects.count(), 0)

    def test_branch_not_found_lists_branches(self):
        self.as_user(self.customer)
        response = self.client.post(
            ORDERS_URL,
            {"branchId": 999, "items": [{"menuItemId": self.steak.id, "quantity": 1}]},
            format="json",
        )
        self.assertEqual(
            [b["id"] for b in response.data["availableBranches"]],
            [self.london.id, self.manchester.id],
        )

    def test_chef_cannot_create(self):
        self.as_user(self.chef)
        response = self.client.post(
            ORDERS_URL,
            {"branchId": self.london.id, "items": [{"menuItemId": self.steak.id, "quantity": 1}]},
            format="json",
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_requires_authentication(self):
        response = self.client.get(ORDERS_URL)
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertIn("error", response.data)


class ListOrderAPITests(OrderAPITestBase):

    def setUp(self):
        super().setUp()
        self.mine = self.place_order(user=self.customer)
        self.theirs = self.place_order(user=self.other_customer, branchId=self.manchester.id)

    def ids(self, response):
        return [o["id"] for o in response.data]

    def test_customer_sees_own_orders(self):
        self.as_user(self.customer)
        response = self.client.get(ORDERS_URL, {"customerId": self.other_customer.id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.ids(response), [self.mine["id"]])

    def test_chef_sees_branch_orders(self):
        self.as_user(self.manchester_chef)
        response = self.client.get(ORDERS_URL)
        self.assertEqual(self.ids(response), [self.theirs["id"]])

    def test_admin_sees_all_newest_first(self):
        self.as_user(self.admin)
        response = self.client.get(ORDERS_URL)
        self.assertEqual(self.ids(response), [self.theirs["id"], self.mine["id"]])

        response = self.client.get(ORDERS_URL, {"branchId": self.london.id})
        self.assertEqual(self.ids(response), [self.mine["id"]])

    def test_status_filter(self):
        self.set_status(self.mine["id"], "PREPARING")
        self.as_user(self.gm)
        response = self.client.get(ORDERS_URL, {"status": "PREPARING"})
        self.assertEqual(self.ids(response), [self.mine["id"]])

        response = self.client.get(ORDERS_URL, {"status": "LOST"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_status")

    def test_malformed_filters(self):
        self.as_user(self.customer)
        response = self.client.get(ORDERS_URL, {"branchId": "abc", "customerId": "x"})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(self.ids(response), [self.mine["id"]])

        self.as_user(self.admin)
        response = self.client.get(ORDERS_URL, {"branchId": "abc"})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_filter")

    def test_retrieve_respects_scope(self):
        self.as_user(self.customer)
        self.assertEqual(self.client.get(detail_url(self.mine["id"])).status_code, status.HTTP_200_OK)
        response = self.client.get(detail_url(self.theirs["id"]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data["code"], "order_not_found")


class UpdateStatusAPITests(OrderAPITestBase):

    def setUp(self):
        super().setUp()
        self.order = self.place_order()

    def test_chef_moves_order_forward(self):
        response = self.set_status(self.order["id"], "PREPARING", user=self.chef)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["message"], "Order status updated successfully")
        self.assertEqual(response.data["order"]["status"], "PREPARING")
        self.assertEqual(len(response.data["order"]["timeline"]), 2)

    def test_invalid_transition(self):
        self.set_status(self.order["id"], "PREPARING")
        self.set_status(self.order["id"], "READY")

        response = self.set_status(self.order["id"], "PREPARING")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_transition")
        self.assertEqual(Order.objects.get(pk=self.order["id"]).status, "READY")

    def test_unknown_status(self):
        response = self.set_status(self.order["id"], "SHIPPED")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "invalid_status")

    def test_missing_status_field(self):
        self.as_user(self.admin)
        response = self.client.put(status_url(self.order["id"]), {}, format="json")
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_role_and_scope_denials(self):
        self.assertEqual(
            self.set_status(self.order["id"], "CANCELLED", user=self.customer).status_code,
            status.HTTP_403_FORBIDDEN,
        )
        self.assertEqual(
            self.set_status(self.order["id"], "PREPARING", user=self.manchester_chef).status_code,
            status.HTTP_403_FORBIDDEN,
        )
        self.assertEqual(
            self.set_status(self.order["id"], "DELIVERED", user=self.chef).status_code,
            status.HTTP_403_FORBIDDEN,
        )
        self.assertEqual(Order.objects.get(pk=self.order["id"]).status, "PENDING")

    def test_missing_order(self):
        self.assertEqual(self.set_status(9999, "PREPARING", user=self.gm).status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(self.set_status(9999, "PREPARING", user=self.chef).status_code, status.HTTP_403_FORBIDDEN)

    def test_cancel_refunds_payment(self):
        payment = Payment.objects.create(
            order_id=self.order["id"], amount=Decimal("20.00"), status=PaymentStatus.COMPLETED
        )

        response = self.set_status(self.order["id"], "CANCELLED", user=self.cashier)

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["payment"]["status"], "REFUNDED")
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)

    def test_direct_delivery_by_cashier(self):
        response = self.set_status(self.order["id"], "DELIVERED", user=self.cashier)
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["order"]["status"], "DELIVERED")


class DeleteOrderAPITests(OrderAPITestBase):

    def setUp(self):
        super().setUp()
        self.order = self.place_order()

    def test_manager_deletes_and_payment_is_refunded(self):
        payment = Payment.objects.create(
            order_id=self.order["id"], amount=Decimal("20.00"), status=PaymentStatus.COMPLETED
        )
        self.as_user(self.manager)

        response = self.client.delete(detail_url(self.order["id"]))

        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data["message"], "Order deleted successfully")
        self.assertFalse(Order.objects.filter(pk=self.order["id"]).exists())
        payment.refresh_from_db()
        self.assertEqual(payment.status, PaymentStatus.REFUNDED)
        self.assertIsNone(payment.order_id)

    def test_delivered_order_is_kept(self):
        self.set_status(self.order["id"], "DELIVERED")
        self.as_user(self.admin)

        response = self.client.delete(detail_url(self.order["id"]))

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data["code"], "order_delivered")
        self.assertTrue(Order.objects.filter(pk=self.order["id"]).exists())

    def test_roles_without_delete(self):
        for user in (self.cashier, self.chef, self.gm, self.customer):
            self.as_user(user)
            response = self.client.delete(detail_url(self.order["id"]))
            self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN, user.username)
        self.assertTrue(Order.objects.filter(pk=self.order["id"]).exists())

    def test_manager_of_other_branch(self):
        other_manager = self.make_user("bm-manchester", Role.BRANCH_MANAGER, self.manchester)
        self.as_user(other_manager)
        response = self.client.delete(detail_url(self.order["id"]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

import os
from io import StringIO
from unittest.mock import patch

from django.core.management import call_command
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework import status

from apps.accounts.models import Role, User
from apps.accounts.principal import Principal
from apps.branches.models import Branch


class UserModelTests(TestCase):

    def test_superuser_is_admin(self):
        user = User.objects.create_superuser(username="root", password="testpass123")
        self.assertEqual(user.role, Role.ADMIN)
        self.assertTrue(user.is_staff)

    def test_default_role_is_customer(self):
        user = User.objects.create_user(username="alice")
        self.assertEqual(user.role, Role.CUSTOMER)
        self.assertFalse(user.has_usable_password())

    def test_principal_from_user(self):
        branch = Branch.objects.create(name="London", address="123 Main St London")
        chef = User.objects.create_user(username="chef", role=Role.CHEF, branch=branch)

        principal = Principal.from_user(chef)

        self.assertEqual(principal, Principal(id=chef.id, role=Role.CHEF, branch_id=branch.id))


class TokenAuthTests(TestCase):

    def setUp(self):
        self.client = APIClient()
        self.branch = Branch.objects.create(name="London", address="123 Main St London")
        self.user = User.objects.create_user(
            username="cashier", password="testpass123", role=Role.CASHIER, branch=self.branch
        )

    def test_obtain_token_and_read_profile(self):
        response = self.client.post(
            "/api/v1/auth/token/", {"username": "cashier", "password": "testpass123"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("refresh", response.data)

        self.client.credentials(HTTP_AUTHORIZATION=f"Bearer {response.data['access']}")
        me = self.client.get("/api/v1/auth/me/")

        self.assertEqual(me.status_code, status.HTTP_200_OK)
        self.assertEqual(me.data["role"], "CASHIER")
        self.assertEqual(me.data["branchId"], self.branch.id)

    def test_wrong_password(self):
        response = self.client.post(
            "/api/v1/auth/token/", {"username": "cashier", "password": "nope"}, format="json"
        )
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)

    def test_refresh(self):
        tokens = self.client.post(
            "/api/v1/auth/token/", {"username": "cashier", "password": "testpass123"}, format="json"
        ).data
        response = self.client.post("/api/v1/auth/token/refresh/", {"refresh": tokens["refresh"]}, format="json")
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertIn("access", response.data)


class CreateAdminCommandTests(TestCase):

    @patch.dict(os.environ, {"ADMIN_USERNAME": "boss", "ADMIN_PASSWORD": "s3cret-pass"})
    def test_creates_then_updates(self):
        with self.settings(DEBUG=True):
            call_command("create_admin", stdout=StringIO())
            user = User.objects.get(username="boss")
            self.assertEqual(user.role, Role.ADMIN)
            self.assertTrue(user.is_superuser)

            user.role = Role.CUSTOMER
            user.save()
            call_command("create_admin", stdout=StringIO())

        user.refresh_from_db()
        self.assertEqual(user.role, Role.ADMIN)
        self.assertTrue(user.check_password("s3cret-pass"))

    def test_refuses_in_production(self):
        err = StringIO()
        with self.settings(DEBUG=False):
            call_command("create_admin", stderr=err)
        self.assertIn("Production Lock", err.getvalue())
        self.assertFalse(User.objects.exists())

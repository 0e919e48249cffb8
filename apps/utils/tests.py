# apps/utils/tests.py
import json
import logging
from decimal import Decimal

from django.test import SimpleTestCase, TestCase
from rest_framework import exceptions, status

from .exceptions import (
    AuthorizationError,
    BusinessValidationError,
    ConcurrencyError,
    custom_exception_handler,
)
from .logging import JSONFormatter
from .utils import money


class MoneyTests(SimpleTestCase):
    def test_rounds_half_up_to_cents(self):
        self.assertEqual(money("10"), Decimal("10.00"))
        self.assertEqual(money(Decimal("2.345")), Decimal("2.35"))
        self.assertEqual(money(0.1 + 0.2), Decimal("0.30"))


class ExceptionHandlerTests(SimpleTestCase):
    def test_business_error_body(self):
        response = custom_exception_handler(
            BusinessValidationError("Branch 9 not found", code="branch_not_found", extra={"availableBranches": []}),
            {},
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data, {
            "error": "Branch 9 not found",
            "code": "branch_not_found",
            "availableBranches": [],
        })

    def test_status_codes(self):
        self.assertEqual(custom_exception_handler(AuthorizationError("no"), {}).status_code, 403)
        response = custom_exception_handler(ConcurrencyError("stale"), {})
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertTrue(response.data["retryable"])

    def test_drf_errors_use_same_envelope(self):
        response = custom_exception_handler(exceptions.PermissionDenied(), {})
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.data["code"], "permission_denied")

        response = custom_exception_handler(exceptions.ValidationError({"status": ["required"]}), {})
        self.assertEqual(response.data["code"], "validation_error")
        self.assertEqual(response.data["details"], {"status": ["required"]})

    def test_unhandled_error_hides_details(self):
        with self.assertLogs("apps.utils.exceptions", level="ERROR"):
            response = custom_exception_handler(RuntimeError("db password is hunter2"), {})
        self.assertEqual(response.status_code, 500)
        self.assertNotIn("hunter2", json.dumps(response.data))


class JSONFormatterTests(SimpleTestCase):
    def make_record(self, msg, **extra):
        record = logging.LogRecord("apps.orders", logging.INFO, __file__, 1, msg, None, None)
        for key, value in extra.items():
            setattr(record, key, value)
        return record

    def test_scrubs_sensitive_keys(self):
        record = self.make_record({"username": "alice", "password": "x", "nested": [{"token": "t"}]})
        payload = json.loads(JSONFormatter().format(record))
        self.assertIn("***REDACTED***", payload["msg"])
        self.assertNotIn("'x'", payload["msg"])

    def test_promotes_context_fields(self):
        payload = json.loads(JSONFormatter().format(self.make_record("moved", order_id=7, user_id=3)))
        self.assertEqual(payload["order_id"], 7)
        self.assertEqual(payload["user_id"], 3)
        self.assertNotIn("branch_id", payload)


class HealthEndpointTests(TestCase):
    def test_health(self):
        response = self.client.get("/api/v1/utils/health/")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["components"]["db"], "ok")

    def test_info_is_public(self):
        response = self.client.get("/api/v1/utils/info/")
        self.assertEqual(response.status_code, 200)
        self.assertIn("version", response.json())

from django.test import TestCase

from apps.utils.exceptions import BusinessValidationError
from .models import Branch
from .utils.branch_selector import BranchResolver, positional_score


class BranchResolverTests(TestCase):

    def setUp(self):
        self.london = Branch.objects.create(name="London", address="123 Main St London")
        self.manchester = Branch.objects.create(name="Manchester", address="456 King St Manchester")
        self.resolver = BranchResolver()

    def test_positional_score(self):
        self.assertEqual(positional_score("abc", "abd"), 2)
        self.assertEqual(positional_score("abc", "xabc"), 0)
        self.assertEqual(positional_score("", "abc"), 0)

    def test_resolves_against_branch_rows(self):
        branches = Branch.objects.order_by("id")
        self.assertEqual(self.resolver.resolve("123 Main Street", branches), self.london.id)
        self.assertEqual(self.resolver.resolve("456 king st, manchester", branches), self.manchester.id)

    def test_empty_catalog(self):
        with self.assertRaises(BusinessValidationError):
            self.resolver.resolve("123 Main Street", Branch.objects.none())

    def test_str(self):
        self.assertEqual(str(self.london), "London")

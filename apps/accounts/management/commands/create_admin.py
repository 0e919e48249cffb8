import os
from django.core.management.base import BaseCommand
from django.conf import settings
from django.contrib.auth import get_user_model

from apps.accounts.models import Role


class Command(BaseCommand):
    help = "Create or update the ADMIN user from ADMIN_USERNAME / ADMIN_PASSWORD."

    def handle(self, *args, **options):
        if not settings.DEBUG and os.getenv("ALLOW_CREATE_ADMIN_IN_PROD") != "True":
            self.stderr.write(self.style.ERROR(
                "Production Lock: Set ALLOW_CREATE_ADMIN_IN_PROD=True to run this."
            ))
            return

        username = os.getenv("ADMIN_USERNAME")
        password = os.getenv("ADMIN_PASSWORD")

        if not username or not password:
            self.stderr.write(self.style.ERROR(
                "Missing ADMIN_USERNAME or ADMIN_PASSWORD env vars."
            ))
            return

        User = get_user_model()
        user, created = User.objects.get_or_create(
            username=username,
            defaults={"role": Role.ADMIN, "is_active": True},
        )

        # Branch-less: ADMIN reads across every branch
        user.is_staff = True
        user.is_superuser = True
        user.role = Role.ADMIN
        user.branch = None
        user.set_password(password)
        user.save()

        if created:
            self.stdout.write(self.style.SUCCESS(f"Created admin: {username}"))
        else:
            self.stdout.write(self.style.WARNING(f"Updated admin: {username}"))

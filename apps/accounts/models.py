from django.db import models
from django.contrib.auth.models import AbstractBaseUser, PermissionsMixin
from django.utils import timezone
from .managers import UserManager


class Role(models.TextChoices):
    ADMIN = "ADMIN", "Admin"
    GENERAL_MANAGER = "GENERAL_MANAGER", "General Manager"
    BRANCH_MANAGER = "BRANCH_MANAGER", "Branch Manager"
    CHEF = "CHEF", "Chef"
    CASHIER = "CASHIER", "Cashier"
    CUSTOMER = "CUSTOMER", "Customer"


class User(AbstractBaseUser, PermissionsMixin):
    """
    Core Identity Model.
    Staff roles (manager, chef, cashier) are tied to one branch;
    admins, general managers and customers usually have none.
    """
    username = models.CharField(max_length=150, unique=True, db_index=True)
    email = models.EmailField(blank=True, null=True)
    full_name = models.CharField(max_length=255, blank=True)

    role = models.CharField(max_length=20, choices=Role.choices, default=Role.CUSTOMER)
    branch = models.ForeignKey(
        "branches.Branch",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="staff",
    )

    is_staff = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)
    date_joined = models.DateTimeField(default=timezone.now)

    objects = UserManager()

    USERNAME_FIELD = 'username'
    REQUIRED_FIELDS = []

    class Meta:
        verbose_name = 'User'
        verbose_name_plural = 'Users'

    def __str__(self):
        return f"{self.username} ({self.role})"

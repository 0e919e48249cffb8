"""
Plain records the order core works with.

Stores translate their own rows into these, so services never touch the ORM
and can run against the in-memory store in unit tests.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional

from django.db import models

# Per-line quantity cap, and the largest amount the Decimal(10,2) columns hold
MAX_LINE_QUANTITY = 1000
MAX_AMOUNT = Decimal("99999999.99")


class OrderStatus(models.TextChoices):
    PENDING = "PENDING", "Pending"
    PREPARING = "PREPARING", "Preparing"
    READY = "READY", "Ready"
    DELIVERED = "DELIVERED", "Delivered"
    CANCELLED = "CANCELLED", "Cancelled"


@dataclass(frozen=True)
class BranchInfo:
    id: int
    name: str
    address: str = ""


@dataclass(frozen=True)
class MenuItemInfo:
    id: int
    name: str
    price: Decimal
    is_available: bool = True


@dataclass(frozen=True)
class LineRequest:
    menu_item_id: int
    quantity: int


@dataclass
class OrderLine:
    menu_item_id: Optional[int]
    menu_item_name: str
    quantity: int
    unit_price: Decimal
    subtotal: Decimal
    id: Optional[int] = None


@dataclass
class PaymentInfo:
    id: int
    order_id: Optional[int]
    status: str
    amount: Decimal


@dataclass
class TimelineEntry:
    status: str
    note: str
    created_by_id: Optional[int]
    timestamp: datetime


@dataclass
class OrderDraft:
    branch_id: int
    customer_id: int
    delivery_address: Optional[str]
    items: List[OrderLine]
    total_amount: Decimal
    created_by_id: Optional[int] = None


@dataclass
class OrderRecord:
    id: int
    branch_id: int
    customer_id: int
    status: OrderStatus
    total_amount: Decimal
    delivery_address: Optional[str]
    created_at: datetime
    items: List[OrderLine] = field(default_factory=list)
    payment: Optional[PaymentInfo] = None
    timeline: List[TimelineEntry] = field(default_factory=list)


@dataclass(frozen=True)
class OrderCriteria:
    """
    Filter handed to a store. `match_nothing` short-circuits to an empty result.
    """
    branch_id: Optional[int] = None
    customer_id: Optional[int] = None
    status: Optional[str] = None
    match_nothing: bool = False

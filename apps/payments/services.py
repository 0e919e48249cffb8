import logging
from django.db import transaction
from django.utils import timezone

from .models import Payment, PaymentStatus

logger = logging.getLogger(__name__)


class PaymentService:
    """
    Payment side of the order lifecycle. Capture happens elsewhere; the
    order core only ever refunds.
    """

    @staticmethod
    @transaction.atomic
    def mark_refunded(order_id) -> int:
        """
        Flags the order's payment as REFUNDED whatever its prior status.
        Joins the caller's transaction. Returns rows touched (0 or 1).
        """
        updated = Payment.objects.filter(order_id=order_id).update(
            status=PaymentStatus.REFUNDED,
            updated_at=timezone.now(),
        )
        if updated:
            logger.info(f"Payment for Order {order_id} marked REFUNDED", extra={"order_id": order_id})
        return updated

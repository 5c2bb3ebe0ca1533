"""
Payment Ledger

Records payments for courses and exams and moves them through their
states. Gateway communication happens elsewhere; the ledger only receives
the outcome (completed or failed) and processes refunds.

    pending -> completed -> refunded
    pending -> failed

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from django.db import transaction
from django.db.models import Avg, Count, Sum
from django.utils import timezone

from ..catalog.models import Exam
from ..courses.models import Course
from ..courses.services import CourseService
from ..exceptions import (
    InvalidStateTransition,
    NotFound,
    RefundExceedsAmount,
    RefundReasonRequired,
    ValidationError,
)
from ..notifications.models import Notification
from ..notifications.services import NotificationDispatcher
from .models import Payment

logger = logging.getLogger(__name__)

Status = Payment.Status


def _to_amount(value, field: str = "amount") -> Decimal:
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"'{value}' is not a valid {field}", details={"field": field})
    if not amount.is_finite():
        raise ValidationError(f"'{value}' is not a valid {field}", details={"field": field})
    return amount.quantize(Decimal("0.01"))


class PaymentLedger:
    """
    Payment state machine.

    Args:
        notifier: Notification dispatcher for payment notifications
        courses: Course service used to enroll users after a course payment
    """

    def __init__(
        self,
        notifier: Optional[NotificationDispatcher] = None,
        courses: Optional[CourseService] = None,
    ):
        self.notifier = notifier or NotificationDispatcher()
        self.courses = courses or CourseService(notifier=self.notifier)

    def get_payment(self, payment_id: int, user=None) -> Payment:
        queryset = Payment.objects.select_related("course", "exam", "user")
        if user is not None:
            queryset = queryset.filter(user=user)
        try:
            return queryset.get(pk=payment_id)
        except Payment.DoesNotExist:
            raise NotFound("Payment not found", details={"payment_id": payment_id})

    def _lock_payment(self, payment_id: int) -> Payment:
        try:
            return Payment.objects.select_for_update().get(pk=payment_id)
        except Payment.DoesNotExist:
            raise NotFound("Payment not found", details={"payment_id": payment_id})

    def record_payment(
        self,
        user,
        amount,
        currency: str,
        payment_for: str,
        item,
        payment_method: str,
        metadata: Optional[Dict[str, Any]] = None,
        ip_address: Optional[str] = None,
        user_agent: str = "",
    ) -> Payment:
        """
        Record a new pending payment.

        Args:
            item: The Course or Exam being paid for, matching ``payment_for``

        Raises:
            ValidationError: On a negative amount, unknown currency format,
                payment method or a mismatched item
        """
        amount = _to_amount(amount)
        if amount < 0:
            raise ValidationError("Amount cannot be negative", details={"amount": str(amount)})

        currency = (currency or "USD").upper()
        if len(currency) != 3 or not currency.isalpha():
            raise ValidationError(f"'{currency}' is not a valid currency code")

        if payment_method not in Payment.Method.values:
            raise ValidationError(f"'{payment_method}' is not a supported payment method")

        expected = {Payment.PaymentFor.COURSE: Course, Payment.PaymentFor.EXAM: Exam}.get(payment_for)
        if expected is None:
            raise ValidationError(f"'{payment_for}' is not a valid payment target")
        if not isinstance(item, expected):
            raise ValidationError(
                f"A {payment_for} payment must reference a {payment_for}",
                details={"payment_for": payment_for},
            )

        payment = Payment.objects.create(
            user=user,
            amount=amount,
            currency=currency,
            payment_method=payment_method,
            payment_for=payment_for,
            course=item if payment_for == Payment.PaymentFor.COURSE else None,
            exam=item if payment_for == Payment.PaymentFor.EXAM else None,
            metadata=metadata or {},
            ip_address=ip_address,
            user_agent=(user_agent or "")[:500],
        )
        logger.info(f"Payment {payment.pk} recorded: {amount} {currency} for {payment_for} {item.pk}")
        return payment

    def mark_completed(
        self,
        payment_id: int,
        transaction_id: Optional[str] = None,
        gateway_response: Optional[Dict[str, Any]] = None,
    ) -> Payment:
        """
        Complete a pending payment. A course payment enrolls the payer.
        """
        with transaction.atomic():
            payment = self._lock_payment(payment_id)
            if payment.status != Status.PENDING:
                raise InvalidStateTransition(payment.status, Status.COMPLETED)

            if transaction_id and Payment.objects.filter(transaction_id=transaction_id).exclude(pk=payment.pk).exists():
                raise ValidationError(
                    "Transaction id is already used by another payment",
                    details={"transaction_id": transaction_id},
                )

            payment.status = Status.COMPLETED
            payment.transaction_id = transaction_id or payment.transaction_id
            payment.gateway_response = gateway_response or {}
            payment.completed_at = timezone.now()
            payment.save(
                update_fields=["status", "transaction_id", "gateway_response", "completed_at", "updated_at"]
            )

            if payment.payment_for == Payment.PaymentFor.COURSE:
                self.courses.enroll(payment.user, payment.course, payment=payment)

            self.notifier.notify_on_commit(
                payment.user_id,
                Notification.Type.PAYMENT,
                "Payment received",
                f"Your payment of {payment.amount} {payment.currency} was successful.",
                f"/payments/{payment.pk}",
            )
        logger.info(f"Payment {payment.pk} completed")
        return payment

    def mark_failed(self, payment_id: int, code: str = "", message: str = "") -> Payment:
        with transaction.atomic():
            payment = self._lock_payment(payment_id)
            if payment.status != Status.PENDING:
                raise InvalidStateTransition(payment.status, Status.FAILED)
            payment.status = Status.FAILED
            payment.error_code = code or ""
            payment.error_message = message or ""
            payment.save(update_fields=["status", "error_code", "error_message", "updated_at"])

            self.notifier.notify_on_commit(
                payment.user_id,
                Notification.Type.PAYMENT,
                "Payment failed",
                message or "Your payment could not be processed.",
                f"/payments/{payment.pk}",
            )
        logger.warning(f"Payment {payment.pk} failed: {code} {message}")
        return payment

    def refund(self, payment_id: int, reason: str, amount=None) -> Payment:
        """
        Refund a completed payment, fully or partially.

        Args:
            reason: Why the refund is made, required
            amount: Refund amount, defaults to the full payment amount

        Raises:
            InvalidStateTransition: If the payment is not completed
            RefundReasonRequired: If no reason is given
            ValidationError: If the amount is not positive
            RefundExceedsAmount: If the amount is larger than the payment
        """
        with transaction.atomic():
            payment = self._lock_payment(payment_id)
            if payment.status != Status.COMPLETED:
                raise InvalidStateTransition(payment.status, Status.REFUNDED)
            if not (reason or "").strip():
                raise RefundReasonRequired()

            refund_amount = payment.amount if amount is None else _to_amount(amount, "refund amount")
            if refund_amount <= 0:
                raise ValidationError(
                    "Refund amount must be positive", details={"amount": str(refund_amount)}
                )
            if refund_amount > payment.amount:
                raise RefundExceedsAmount(refund_amount, payment.amount)

            now = timezone.now()
            payment.status = Status.REFUNDED
            payment.refund_reason = reason.strip()
            payment.refund_amount = refund_amount
            payment.refund_requested_at = payment.refund_requested_at or now
            payment.refund_processed_at = now
            payment.refund_status = Payment.RefundStatus.PROCESSED
            payment.save(
                update_fields=[
                    "status",
                    "refund_reason",
                    "refund_amount",
                    "refund_requested_at",
                    "refund_processed_at",
                    "refund_status",
                    "updated_at",
                ]
            )

            self.notifier.notify_on_commit(
                payment.user_id,
                Notification.Type.PAYMENT,
                "Payment refunded",
                f"{refund_amount} {payment.currency} has been refunded.",
                f"/payments/{payment.pk}",
            )
        logger.info(f"Payment {payment.pk} refunded: {refund_amount} {payment.currency}")
        return payment

    def statistics(
        self, start: Optional[datetime] = None, end: Optional[datetime] = None
    ) -> List[Dict[str, Any]]:
        """
        Completed payment totals grouped by target type and currency.

        Returns:
            One row per (payment_for, currency) with total, count and average
        """
        queryset = Payment.objects.filter(status=Status.COMPLETED)
        if start:
            queryset = queryset.filter(created_at__gte=start)
        if end:
            queryset = queryset.filter(created_at__lte=end)
        rows = (
            queryset.order_by()
            .values("payment_for", "currency")
            .annotate(total=Sum("amount"), count=Count("id"), average=Avg("amount"))
            .order_by("payment_for", "currency")
        )
        return [
            {
                "payment_for": row["payment_for"],
                "currency": row["currency"],
                "total": row["total"],
                "count": row["count"],
                "average": round(Decimal(row["average"]), 2) if row["average"] is not None else None,
            }
            for row in rows
        ]

"""
Exam Portal Payment Models

Author: Exam Portal Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator, RegexValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from ..common.models import TimeStampedModel

User = settings.AUTH_USER_MODEL


class Payment(TimeStampedModel):
    """
    A single payment for a course or an exam.

    Only pending payments can complete or fail, and only completed payments
    can be refunded. The refund fields form a sub-record that stays empty
    until a refund is processed.
    """

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending")
        COMPLETED = "completed", _("Completed")
        FAILED = "failed", _("Failed")
        REFUNDED = "refunded", _("Refunded")

    class Method(models.TextChoices):
        RAZORPAY = "razorpay", _("Razorpay")
        STRIPE = "stripe", _("Stripe")
        PAYPAL = "paypal", _("PayPal")

    class PaymentFor(models.TextChoices):
        COURSE = "course", _("Course")
        EXAM = "exam", _("Exam")

    class RefundStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        PROCESSED = "processed", _("Processed")
        REJECTED = "rejected", _("Rejected")

    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="payments")
    amount = models.DecimalField(
        max_digits=10, decimal_places=2, validators=[MinValueValidator(Decimal("0"))]
    )
    currency = models.CharField(
        max_length=3,
        default="USD",
        validators=[RegexValidator(r"^[A-Z]{3}$", _("Currency must be a three-letter code."))],
    )
    status = models.CharField(
        max_length=10, choices=Status.choices, default=Status.PENDING, db_index=True
    )
    payment_method = models.CharField(max_length=10, choices=Method.choices)
    transaction_id = models.CharField(max_length=255, unique=True, null=True, blank=True)
    payment_for = models.CharField(max_length=10, choices=PaymentFor.choices)
    course = models.ForeignKey(
        "portal.Course", null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    exam = models.ForeignKey(
        "portal.Exam", null=True, blank=True, on_delete=models.PROTECT, related_name="payments"
    )
    gateway_response = models.JSONField(default=dict, blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    error_code = models.CharField(max_length=100, blank=True, default="")
    error_message = models.TextField(blank=True, default="")

    refund_reason = models.TextField(blank=True, default="")
    refund_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    refund_requested_at = models.DateTimeField(null=True, blank=True)
    refund_processed_at = models.DateTimeField(null=True, blank=True)
    refund_status = models.CharField(
        max_length=10, choices=RefundStatus.choices, blank=True, default=""
    )

    ip_address = models.GenericIPAddressField(null=True, blank=True)
    user_agent = models.CharField(max_length=500, blank=True, default="")
    completed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _("Payment")
        verbose_name_plural = _("Payments")
        db_table = "portal_payment"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["user", "status"]),
            models.Index(fields=["payment_for", "status"]),
        ]

    def __str__(self):
        return f"{self.amount} {self.currency} for {self.payment_for} by {self.user}"

    def save(self, *args, **kwargs):
        if self.currency:
            self.currency = self.currency.upper()
        super().save(*args, **kwargs)

    @property
    def item(self):
        return self.course if self.payment_for == self.PaymentFor.COURSE else self.exam

    def clean(self):
        if self.payment_for == self.PaymentFor.COURSE and not self.course_id:
            raise ValidationError({"course": _("A course payment needs a course.")})
        if self.payment_for == self.PaymentFor.EXAM and not self.exam_id:
            raise ValidationError({"exam": _("An exam payment needs an exam.")})
        if self.refund_amount is not None and self.refund_amount > self.amount:
            raise ValidationError({"refund_amount": _("Refund cannot exceed the payment amount.")})

from decimal import Decimal

from django.test import TestCase

from portal.courses.models import CourseEnrollment
from portal.courses.services import CourseService
from portal.exceptions import (
    InvalidStateTransition,
    RefundExceedsAmount,
    RefundReasonRequired,
    ValidationError,
)
from portal.notifications.models import Notification
from portal.payments.models import Payment
from portal.payments.services import PaymentLedger

from .helpers import make_exam, make_user, mcq, seed_roles


class PaymentLedgerTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")
        cls.student = make_user("student@example.com")
        cls.exam = make_exam(cls.instructor, questions=[mcq()], publish=True, price=Decimal("100"))
        courses = CourseService()
        cls.course = courses.create_course(
            {"title": "Django in Depth", "price": Decimal("49.90"), "level": "advanced"}, cls.instructor
        )
        cls.course = courses.publish_course(cls.course.pk)

    def setUp(self):
        self.ledger = PaymentLedger()

    def pay_for_exam(self, amount="100"):
        return self.ledger.record_payment(self.student, amount, "usd", "exam", self.exam, "stripe")

    def test_record_payment_starts_pending(self):
        payment = self.pay_for_exam()

        self.assertEqual(payment.status, Payment.Status.PENDING)
        self.assertEqual(payment.currency, "USD")
        self.assertEqual(payment.amount, Decimal("100.00"))
        self.assertEqual(payment.exam, self.exam)

    def test_record_payment_validates_input(self):
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.student, "-1", "USD", "exam", self.exam, "stripe")
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.student, "10", "US", "exam", self.exam, "stripe")
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.student, "10", "USD", "exam", self.exam, "bitcoin")
        with self.assertRaises(ValidationError):
            self.ledger.record_payment(self.student, "10", "USD", "course", self.exam, "stripe")
        self.assertFalse(Payment.objects.exists())

    def test_refund_larger_than_payment_is_rejected(self):
        payment = self.ledger.mark_completed(self.pay_for_exam().pk, transaction_id="txn_1")

        with self.assertRaises(RefundExceedsAmount):
            self.ledger.refund(payment.pk, "Duplicate charge", amount="150")

        payment.refresh_from_db()
        self.assertEqual(payment.status, Payment.Status.COMPLETED)
        self.assertIsNone(payment.refund_amount)

    def test_refund_needs_a_reason(self):
        payment = self.ledger.mark_completed(self.pay_for_exam().pk)
        with self.assertRaises(RefundReasonRequired):
            self.ledger.refund(payment.pk, "  ")

    def test_partial_refund(self):
        payment = self.ledger.mark_completed(self.pay_for_exam().pk)

        with self.captureOnCommitCallbacks(execute=True):
            payment = self.ledger.refund(payment.pk, "Exam cancelled", amount="40")

        self.assertEqual(payment.status, Payment.Status.REFUNDED)
        self.assertEqual(payment.refund_amount, Decimal("40.00"))
        self.assertEqual(payment.refund_status, Payment.RefundStatus.PROCESSED)
        self.assertIsNotNone(payment.refund_processed_at)
        self.assertTrue(
            Notification.objects.filter(user=self.student, title="Payment refunded").exists()
        )

    def test_only_completed_payments_are_refunded(self):
        payment = self.pay_for_exam()
        with self.assertRaises(InvalidStateTransition):
            self.ledger.refund(payment.pk, "Changed my mind")

    def test_completion_is_one_way(self):
        payment = self.ledger.mark_completed(self.pay_for_exam().pk)

        with self.assertRaises(InvalidStateTransition):
            self.ledger.mark_completed(payment.pk)
        with self.assertRaises(InvalidStateTransition):
            self.ledger.mark_failed(payment.pk, "card_declined")

    def test_failed_payment_keeps_gateway_error(self):
        payment = self.ledger.mark_failed(self.pay_for_exam().pk, "card_declined", "Card was declined")

        self.assertEqual(payment.status, Payment.Status.FAILED)
        self.assertEqual(payment.error_code, "card_declined")
        with self.assertRaises(InvalidStateTransition):
            self.ledger.mark_completed(payment.pk)

    def test_transaction_id_is_unique(self):
        self.ledger.mark_completed(self.pay_for_exam().pk, transaction_id="txn_1")
        with self.assertRaises(ValidationError):
            self.ledger.mark_completed(self.pay_for_exam().pk, transaction_id="txn_1")

    def test_course_payment_enrolls_the_payer(self):
        payment = self.ledger.record_payment(
            self.student, "49.90", "EUR", "course", self.course, "razorpay"
        )

        with self.captureOnCommitCallbacks(execute=True):
            self.ledger.mark_completed(payment.pk, transaction_id="txn_course")

        enrollment = CourseEnrollment.objects.get(user=self.student, course=self.course)
        self.assertEqual(enrollment.payment_id, payment.pk)
        self.course.refresh_from_db()
        self.assertEqual(self.course.enrollment_count, 1)
        self.assertEqual(
            set(Notification.objects.filter(user=self.student).values_list("type", flat=True)),
            {Notification.Type.PAYMENT, Notification.Type.COURSE},
        )

    def test_statistics_group_completed_payments(self):
        self.ledger.mark_completed(self.pay_for_exam("100").pk)
        self.ledger.mark_completed(self.pay_for_exam("50").pk)
        self.pay_for_exam("999")

        rows = self.ledger.statistics()

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["payment_for"], "exam")
        self.assertEqual(rows[0]["currency"], "USD")
        self.assertEqual(rows[0]["total"], Decimal("150.00"))
        self.assertEqual(rows[0]["count"], 2)
        self.assertEqual(rows[0]["average"], Decimal("75.00"))

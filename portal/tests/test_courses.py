from decimal import Decimal

from django.test import TestCase

from portal.courses.models import CourseEnrollment
from portal.courses.services import CourseService
from portal.exceptions import StateConflict, ValidationError
from portal.payments.services import PaymentLedger

from .helpers import make_user, seed_roles


class CourseEnrollmentTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")
        cls.student = make_user("student@example.com")

    def setUp(self):
        self.service = CourseService()
        self.free_course = self.service.create_course({"title": "Intro to Git"}, self.instructor)
        self.free_course = self.service.publish_course(self.free_course.pk)

    def test_create_course_validates_input(self):
        with self.assertRaises(ValidationError):
            self.service.create_course({"title": " "}, self.instructor)
        with self.assertRaises(ValidationError):
            self.service.create_course({"title": "X", "level": "expert"}, self.instructor)
        with self.assertRaises(ValidationError):
            self.service.create_course({"title": "X", "price": Decimal("-1")}, self.instructor)

    def test_publish_twice_conflicts(self):
        with self.assertRaises(StateConflict):
            self.service.publish_course(self.free_course.pk)

    def test_enroll_in_free_course(self):
        enrollment = self.service.enroll(self.student, self.free_course)

        self.assertEqual(enrollment.status, CourseEnrollment.Status.ACTIVE)
        self.free_course.refresh_from_db()
        self.assertEqual(self.free_course.enrollment_count, 1)

    def test_enrolling_twice_returns_the_same_enrollment(self):
        first = self.service.enroll(self.student, self.free_course)
        second = self.service.enroll(self.student, self.free_course)

        self.assertEqual(first.pk, second.pk)
        self.free_course.refresh_from_db()
        self.assertEqual(self.free_course.enrollment_count, 1)

    def test_unpublished_course_is_closed(self):
        draft = self.service.create_course({"title": "Coming soon"}, self.instructor)
        with self.assertRaises(StateConflict) as ctx:
            self.service.enroll(self.student, draft)
        self.assertEqual(ctx.exception.error_code, "course_not_available")

    def test_paid_course_requires_completed_payment(self):
        paid = self.service.create_course({"title": "Advanced SQL", "price": Decimal("20")}, self.instructor)
        paid = self.service.publish_course(paid.pk)

        with self.assertRaises(StateConflict) as ctx:
            self.service.enroll(self.student, paid)
        self.assertEqual(ctx.exception.error_code, "payment_required")

        ledger = PaymentLedger()
        pending = ledger.record_payment(self.student, "20", "USD", "course", paid, "paypal")
        with self.assertRaises(StateConflict):
            self.service.enroll(self.student, paid, payment=pending)

    def test_drop_and_reenroll(self):
        enrollment = self.service.enroll(self.student, self.free_course)
        self.service.drop(enrollment)
        self.free_course.refresh_from_db()
        self.assertEqual(self.free_course.enrollment_count, 0)

        again = self.service.enroll(self.student, self.free_course)

        self.assertEqual(again.pk, enrollment.pk)
        self.assertEqual(again.status, CourseEnrollment.Status.ACTIVE)
        self.free_course.refresh_from_db()
        self.assertEqual(self.free_course.enrollment_count, 1)

    def test_full_progress_completes_the_course(self):
        enrollment = self.service.enroll(self.student, self.free_course)

        self.service.update_progress(enrollment, 40)
        self.assertEqual(enrollment.status, CourseEnrollment.Status.ACTIVE)

        self.service.update_progress(enrollment, 100)
        self.assertEqual(enrollment.status, CourseEnrollment.Status.COMPLETED)
        self.assertIsNotNone(enrollment.completed_at)

    def test_progress_out_of_range(self):
        enrollment = self.service.enroll(self.student, self.free_course)
        for value in (-1, 101, "50", True):
            with self.subTest(value=value):
                with self.assertRaises(ValidationError):
                    self.service.update_progress(enrollment, value)

    def test_dropped_enrollment_has_no_progress(self):
        enrollment = self.service.drop(self.service.enroll(self.student, self.free_course))
        with self.assertRaises(StateConflict):
            self.service.update_progress(enrollment, 10)

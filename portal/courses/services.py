"""
Course Catalog and Enrollment Service

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from ..exceptions import NotFound, StateConflict, ValidationError
from ..notifications.models import Notification
from ..notifications.services import NotificationDispatcher
from .models import Course, CourseEnrollment

logger = logging.getLogger(__name__)

COURSE_FIELDS = ("title", "description", "price", "level", "duration")


class CourseService:
    def __init__(self, notifier: Optional[NotificationDispatcher] = None):
        self.notifier = notifier or NotificationDispatcher()

    def get_course(self, course_id: int) -> Course:
        try:
            return Course.objects.get(pk=course_id)
        except Course.DoesNotExist:
            raise NotFound("Course not found", details={"course_id": course_id})

    def create_course(self, data: Dict[str, Any], creator) -> Course:
        if not (data.get("title") or "").strip():
            raise ValidationError("Course title is required")
        level = data.get("level") or Course.Level.BEGINNER
        if level not in Course.Level.values:
            raise ValidationError(f"'{level}' is not a valid course level")
        if data.get("price") is not None and data["price"] < 0:
            raise ValidationError("Price cannot be negative")
        course = Course(creator=creator)
        for field in COURSE_FIELDS:
            if field in data and data[field] is not None:
                setattr(course, field, data[field])
        course.level = level
        course.save()
        logger.info(f"Course {course.pk} '{course.title}' created by {creator}")
        return course

    def publish_course(self, course_id: int) -> Course:
        with transaction.atomic():
            course = self.get_course(course_id)
            if course.is_published:
                raise StateConflict("Course is already published", error_code="course_published")
            course.is_published = True
            course.published_at = timezone.now()
            course.save(update_fields=["is_published", "published_at", "updated_at"])
        return course

    def enroll(self, user, course: Course, payment=None) -> CourseEnrollment:
        """
        Enroll a user in a published course.

        Enrolling twice returns the existing enrollment. A dropped enrollment
        is reactivated. Paid courses need a completed payment by the user.
        """
        from ..payments.models import Payment

        if not course.is_published or not course.is_active:
            raise StateConflict("Course is not open for enrollment", error_code="course_not_available")

        if not course.is_free:
            paid = payment is not None and (
                payment.user_id == user.pk
                and payment.status == Payment.Status.COMPLETED
                and payment.course_id == course.pk
            )
            if not paid:
                raise StateConflict(
                    "A completed payment is required for this course", error_code="payment_required"
                )

        with transaction.atomic():
            enrollment, created = CourseEnrollment.objects.select_for_update().get_or_create(
                user=user, course=course, defaults={"payment": payment}
            )
            if created:
                Course.all_objects.filter(pk=course.pk).update(enrollment_count=F("enrollment_count") + 1)
            elif enrollment.status == CourseEnrollment.Status.DROPPED:
                enrollment.status = CourseEnrollment.Status.ACTIVE
                enrollment.payment = payment or enrollment.payment
                enrollment.save(update_fields=["status", "payment", "updated_at"])
                Course.all_objects.filter(pk=course.pk).update(enrollment_count=F("enrollment_count") + 1)
            else:
                return enrollment

            self.notifier.notify_on_commit(
                user.pk,
                Notification.Type.COURSE,
                "Enrollment confirmed",
                f"You are now enrolled in '{course.title}'.",
                f"/courses/{course.pk}",
            )
        logger.info(f"{user} enrolled in course {course.pk}")
        return enrollment

    def update_progress(self, enrollment: CourseEnrollment, progress: int) -> CourseEnrollment:
        if not isinstance(progress, int) or isinstance(progress, bool) or not 0 <= progress <= 100:
            raise ValidationError("Progress must be between 0 and 100", details={"progress": progress})
        if enrollment.status == CourseEnrollment.Status.DROPPED:
            raise StateConflict("Enrollment was dropped", error_code="enrollment_dropped")
        enrollment.progress = progress
        update_fields = ["progress", "updated_at"]
        if progress == 100 and enrollment.completed_at is None:
            enrollment.completed_at = timezone.now()
            enrollment.status = CourseEnrollment.Status.COMPLETED
            update_fields += ["completed_at", "status"]
        enrollment.save(update_fields=update_fields)
        return enrollment

    def drop(self, enrollment: CourseEnrollment) -> CourseEnrollment:
        if enrollment.status == CourseEnrollment.Status.DROPPED:
            return enrollment
        with transaction.atomic():
            enrollment.status = CourseEnrollment.Status.DROPPED
            enrollment.save(update_fields=["status", "updated_at"])
            Course.all_objects.filter(pk=enrollment.course_id, enrollment_count__gt=0).update(
                enrollment_count=F("enrollment_count") - 1
            )
        return enrollment

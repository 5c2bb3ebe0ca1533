from decimal import Decimal

from django.conf import settings
from django.core.validators import MaxValueValidator, MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from ..common.models import SoftDeleteModel, TimeStampedModel

User = settings.AUTH_USER_MODEL


class Course(TimeStampedModel, SoftDeleteModel):
    class Level(models.TextChoices):
        BEGINNER = "beginner", _("Beginner")
        INTERMEDIATE = "intermediate", _("Intermediate")
        ADVANCED = "advanced", _("Advanced")

    title = models.CharField(max_length=255, verbose_name=_("Title"))
    description = models.TextField(blank=True, default="", verbose_name=_("Description"))
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    level = models.CharField(max_length=20, choices=Level.choices, default=Level.BEGINNER)
    duration = models.PositiveIntegerField(default=0, help_text=_("Estimated duration in minutes"))
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True)
    enrollment_count = models.PositiveIntegerField(default=0)
    creator = models.ForeignKey(User, on_delete=models.PROTECT, related_name="created_courses")

    class Meta:
        verbose_name = _("Course")
        verbose_name_plural = _("Courses")
        db_table = "portal_course"
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    @property
    def is_free(self) -> bool:
        return not self.price


class CourseEnrollment(TimeStampedModel):
    class Status(models.TextChoices):
        ACTIVE = "active", _("Active")
        COMPLETED = "completed", _("Completed")
        DROPPED = "dropped", _("Dropped")

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="course_enrollments")
    course = models.ForeignKey(Course, on_delete=models.CASCADE, related_name="enrollments")
    status = models.CharField(max_length=10, choices=Status.choices, default=Status.ACTIVE)
    progress = models.PositiveSmallIntegerField(
        default=0, validators=[MinValueValidator(0), MaxValueValidator(100)]
    )
    enrolled_at = models.DateTimeField(auto_now_add=True)
    completed_at = models.DateTimeField(null=True, blank=True)
    payment = models.ForeignKey(
        "portal.Payment",
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="enrollments",
    )

    class Meta:
        verbose_name = _("Course Enrollment")
        verbose_name_plural = _("Course Enrollments")
        db_table = "portal_course_enrollment"
        ordering = ["-enrolled_at"]
        constraints = [
            models.UniqueConstraint(fields=["user", "course"], name="unique_course_enrollment")
        ]

    def __str__(self):
        return f"{self.user} in {self.course}"

"""
Exam Portal Catalog Models

Authoring-side models of the exam portal: exams, their questions and the
append-only audit trail of catalog operations.

Models:
- Exam: Timed exam with cached question count and total marks
- Question: One question of an exam, ordered 1..N inside the exam
- ExamAuditEntry: Who changed, published or previewed an exam and when

Author: Exam Portal Development Team
Version: 1.0.0
"""

from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from ..common.models import SoftDeleteModel, TimeStampedModel

User = settings.AUTH_USER_MODEL

UNLIMITED_ATTEMPTS = -1


class Exam(TimeStampedModel, SoftDeleteModel):
    """
    Timed exam made of questions.

    ``question_count`` and ``total_marks`` are maintained by the catalog
    service and always equal the count and the sum of marks of the exam's
    questions once a catalog operation has committed.
    """

    title = models.CharField(max_length=255, verbose_name=_("Title"))
    description = models.TextField(blank=True, default="", verbose_name=_("Description"))
    instructions = models.TextField(blank=True, default="", verbose_name=_("Instructions"))
    duration = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        verbose_name=_("Duration"),
        help_text=_("Time allowed for one attempt, in minutes"),
    )
    total_marks = models.DecimalField(
        max_digits=8, decimal_places=2, default=Decimal("0"), verbose_name=_("Total Marks")
    )
    question_count = models.PositiveIntegerField(default=0, verbose_name=_("Question Count"))
    passing_marks = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
        verbose_name=_("Passing Marks"),
    )
    start_time = models.DateTimeField(null=True, blank=True, verbose_name=_("Available from"))
    end_time = models.DateTimeField(null=True, blank=True, verbose_name=_("Available until"))

    is_published = models.BooleanField(default=False, verbose_name=_("Published"))
    published_at = models.DateTimeField(null=True, blank=True)
    unpublished_at = models.DateTimeField(null=True, blank=True)

    shuffle_questions = models.BooleanField(default=True, verbose_name=_("Shuffle Questions"))
    show_result = models.BooleanField(
        default=True,
        verbose_name=_("Show Result"),
        help_text=_("Show score and answer breakdown to the candidate after evaluation"),
    )
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
        verbose_name=_("Price"),
    )
    attempts = models.IntegerField(
        default=1,
        verbose_name=_("Allowed Attempts"),
        help_text=_("-1 for unlimited attempts"),
    )
    creator = models.ForeignKey(
        User, on_delete=models.PROTECT, related_name="created_exams", verbose_name=_("Creator")
    )
    courses = models.ManyToManyField(
        "portal.Course", blank=True, related_name="exams", verbose_name=_("Courses")
    )

    class Meta:
        verbose_name = _("Exam")
        verbose_name_plural = _("Exams")
        db_table = "portal_exam"
        ordering = ["-created_at"]

    def __str__(self):
        return self.title

    def clean(self):
        # passing_marks <= total_marks is checked on publish, drafts are built up question by question
        errors = {}
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            errors["end_time"] = _("End time must be after start time.")
        if self.attempts != UNLIMITED_ATTEMPTS and (self.attempts is None or self.attempts < 1):
            errors["attempts"] = _("Attempts must be -1 (unlimited) or greater than 0.")
        if errors:
            raise ValidationError(errors)

    @property
    def has_unlimited_attempts(self) -> bool:
        return self.attempts == UNLIMITED_ATTEMPTS

    @property
    def is_free(self) -> bool:
        return not self.price

    def is_open(self, now=None) -> bool:
        """True if the exam is published, active and inside its time window."""
        now = now or timezone.now()
        if not self.is_published or not self.is_active:
            return False
        if self.start_time and now < self.start_time:
            return False
        if self.end_time and now > self.end_time:
            return False
        return True


class Question(TimeStampedModel):
    class Type(models.TextChoices):
        MULTIPLE_CHOICE = "mcq", _("Multiple Choice")
        TRUE_FALSE = "true-false", _("True / False")
        MATCH = "match", _("Match the Pairs")
        DESCRIPTIVE = "descriptive", _("Descriptive")

    class Difficulty(models.TextChoices):
        EASY = "easy", _("Easy")
        MEDIUM = "medium", _("Medium")
        HARD = "hard", _("Hard")

    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="questions")
    text = models.TextField(verbose_name=_("Question Text"))
    type = models.CharField(max_length=20, choices=Type.choices, verbose_name=_("Type"))
    options = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Multiple choice options as a list of {id, text}"),
    )
    match_pairs = models.JSONField(
        default=list,
        blank=True,
        help_text=_("Pairs shown for match questions as a list of {left, right}"),
    )
    correct_answer = models.JSONField(
        help_text=_(
            "Option indices (mcq), boolean (true-false), list of {left, right} (match) "
            "or model answer text (descriptive)"
        ),
    )
    marks = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("1"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    negative_marks = models.DecimalField(
        max_digits=6,
        decimal_places=2,
        default=Decimal("0"),
        validators=[MinValueValidator(Decimal("0"))],
    )
    explanation = models.TextField(blank=True, default="")
    difficulty = models.CharField(
        max_length=10, choices=Difficulty.choices, default=Difficulty.MEDIUM
    )
    image_url = models.CharField(max_length=500, blank=True, default="")
    order = models.PositiveIntegerField(default=1)

    class Meta:
        verbose_name = _("Question")
        verbose_name_plural = _("Questions")
        db_table = "portal_question"
        ordering = ["exam", "order"]

    def __str__(self):
        return f"Q{self.order}: {self.text[:40]}"


class ExamAuditEntry(models.Model):
    """Append-only trail of catalog operations on an exam."""

    class Action(models.TextChoices):
        CREATE = "create", _("Create")
        UPDATE = "update", _("Update")
        ADD_QUESTION = "add_question", _("Add Question")
        UPDATE_QUESTION = "update_question", _("Update Question")
        DELETE_QUESTION = "delete_question", _("Delete Question")
        PUBLISH = "publish", _("Publish")
        UNPUBLISH = "unpublish", _("Unpublish")
        DUPLICATE = "duplicate", _("Duplicate")
        DELETE = "delete", _("Delete")
        PREVIEW = "preview", _("Preview")

    exam = models.ForeignKey(Exam, on_delete=models.CASCADE, related_name="audit_entries")
    action = models.CharField(max_length=20, choices=Action.choices)
    actor = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="+"
    )
    details = models.JSONField(default=dict, blank=True)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = _("Exam Audit Entry")
        verbose_name_plural = _("Exam Audit Entries")
        db_table = "portal_exam_audit_entry"
        ordering = ["-created_at", "-id"]

    def __str__(self):
        return f"{self.get_action_display()} on {self.exam_id}"

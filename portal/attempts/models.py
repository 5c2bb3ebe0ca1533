"""
Exam Portal Attempt Models

Models:
- ExamAttempt: One user's timed run through an exam
- Answer: The answer given to one question within one attempt

Author: Exam Portal Development Team
Version: 1.0.0
"""

import datetime

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import models
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from ..catalog.models import Exam, Question
from ..common.models import SoftDeleteModel, TimeStampedModel

User = settings.AUTH_USER_MODEL


class ExamAttempt(TimeStampedModel, SoftDeleteModel):
    """
    A user's attempt at an exam.

    Status moves strictly forward:
    in-progress -> submitted -> evaluated, or in-progress -> completed when
    the exam window closed before the attempt was handed in. A soft-deleted
    attempt is a dropped attempt and no longer counts against the limit.
    """

    class Status(models.TextChoices):
        IN_PROGRESS = "in-progress", _("In Progress")
        COMPLETED = "completed", _("Completed")
        SUBMITTED = "submitted", _("Submitted")
        EVALUATED = "evaluated", _("Evaluated")

    TRANSITIONS = {
        Status.IN_PROGRESS: (Status.SUBMITTED, Status.COMPLETED),
        Status.SUBMITTED: (Status.EVALUATED,),
        Status.EVALUATED: (),
        Status.COMPLETED: (),
    }

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name="exam_attempts")
    exam = models.ForeignKey(Exam, on_delete=models.PROTECT, related_name="exam_attempts")
    status = models.CharField(
        max_length=15, choices=Status.choices, default=Status.IN_PROGRESS, db_index=True
    )
    start_time = models.DateTimeField(default=timezone.now)
    end_time = models.DateTimeField(
        null=True, blank=True, help_text=_("Deadline, start time plus the exam duration")
    )
    score = models.DecimalField(
        max_digits=8,
        decimal_places=2,
        null=True,
        blank=True,
        help_text=_("Total score, set on evaluation."),
    )
    submitted_at = models.DateTimeField(null=True, blank=True)
    evaluated_at = models.DateTimeField(null=True, blank=True)
    time_spent = models.PositiveIntegerField(default=0, help_text=_("Seconds between start and submission"))
    auto_submitted = models.BooleanField(default=False)
    ip_address = models.GenericIPAddressField(null=True, blank=True)
    browser_info = models.CharField(max_length=500, blank=True, default="")

    class Meta:
        verbose_name = _("Exam Attempt")
        verbose_name_plural = _("Exam Attempts")
        db_table = "portal_exam_attempt"
        ordering = ["-start_time"]
        indexes = [models.Index(fields=["user", "exam"])]

    def __str__(self):
        return f"Attempt for {self.exam.title} by {self.user}"

    def clean(self):
        if self.end_time and self.start_time and self.end_time <= self.start_time:
            raise ValidationError({"end_time": _("End time must be after start time.")})
        if self.score is not None and self.score < 0:
            raise ValidationError({"score": _("Score cannot be negative.")})

    def can_transition_to(self, target: str) -> bool:
        return target in self.TRANSITIONS.get(self.status, ())

    @property
    def deadline(self):
        if self.end_time:
            return self.end_time
        if self.start_time and self.exam_id:
            return self.start_time + datetime.timedelta(minutes=self.exam.duration)
        return None

    def is_expired(self, now=None) -> bool:
        deadline = self.deadline
        return bool(deadline and (now or timezone.now()) > deadline)

    @property
    def remaining_seconds(self) -> int:
        deadline = self.deadline
        if not deadline or self.status != self.Status.IN_PROGRESS:
            return 0
        return max(0, int((deadline - timezone.now()).total_seconds()))

    @property
    def percentage(self):
        if self.score is None or not self.exam.total_marks:
            return None
        return round(self.score / self.exam.total_marks * 100, 2)

    @property
    def passed(self):
        if self.score is None:
            return None
        return self.score >= self.exam.passing_marks


class Answer(TimeStampedModel):
    class ReviewStatus(models.TextChoices):
        PENDING = "pending", _("Pending")
        REVIEWED = "reviewed", _("Reviewed")

    attempt = models.ForeignKey(ExamAttempt, on_delete=models.CASCADE, related_name="answers")
    question = models.ForeignKey(Question, on_delete=models.PROTECT, related_name="answers")
    value = models.JSONField(help_text=_("Submitted answer, normalised for the question type"))
    is_correct = models.BooleanField(null=True, blank=True)
    marks = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    feedback = models.TextField(blank=True, default="")
    review_status = models.CharField(
        max_length=10, choices=ReviewStatus.choices, default=ReviewStatus.PENDING
    )
    reviewed_by = models.ForeignKey(
        User, null=True, blank=True, on_delete=models.SET_NULL, related_name="reviewed_answers"
    )
    reviewed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _("Answer")
        verbose_name_plural = _("Answers")
        db_table = "portal_answer"
        ordering = ["attempt", "question__order"]
        constraints = [
            models.UniqueConstraint(fields=["question", "attempt"], name="unique_answer_per_question")
        ]
        indexes = [models.Index(fields=["review_status"])]

    def __str__(self):
        return f"Answer to question {self.question_id} in attempt {self.attempt_id}"

    def clean(self):
        if self.marks is not None and self.question_id and self.marks > self.question.marks:
            raise ValidationError({"marks": _("Marks cannot exceed question marks.")})

"""
Exam Attempt Engine

Creates, tracks and scores attempts. The status of an attempt only moves
along the transitions declared on ``ExamAttempt.TRANSITIONS``; any other
move raises InvalidStateTransition before anything is written.

Starting an attempt locks the exam row, so the attempt limit check and the
creation of the attempt happen atomically with respect to other starts and
to catalog changes of the same exam.

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
from datetime import timedelta
from decimal import Decimal
from typing import Any, Dict, Optional

from django.db import transaction
from django.db.models import Sum
from django.utils import timezone

from ..catalog.models import Exam, Question
from ..exceptions import (
    AttemptInProgress,
    AttemptLimitExceeded,
    AttemptTimeExpired,
    ExamNotAvailable,
    IntegrityViolation,
    InvalidStateTransition,
    MarksExceedQuestion,
    NotFound,
    StateConflict,
    ValidationError,
)
from ..notifications.models import Notification
from ..notifications.services import NotificationDispatcher
from .evaluation import parse_answer, score_answer
from .models import Answer, ExamAttempt

logger = logging.getLogger(__name__)

Status = ExamAttempt.Status


class AttemptEngine:
    """
    Attempt lifecycle and answer handling.

    Args:
        notifier: Notification dispatcher used for result notifications
    """

    def __init__(self, notifier: Optional[NotificationDispatcher] = None):
        self.notifier = notifier or NotificationDispatcher()

    # --- Lookup ---

    def get_attempt(self, attempt_id: int, user=None) -> ExamAttempt:
        """
        Fetch an active attempt, optionally restricted to its owner.

        Raises:
            NotFound: If the attempt does not exist or belongs to someone else
        """
        queryset = ExamAttempt.objects.select_related("exam", "user")
        if user is not None:
            queryset = queryset.filter(user=user)
        try:
            return queryset.get(pk=attempt_id)
        except ExamAttempt.DoesNotExist:
            raise NotFound("Attempt not found", details={"attempt_id": attempt_id})

    def _lock_attempt(self, attempt_id: int, user=None) -> ExamAttempt:
        queryset = ExamAttempt.objects.select_for_update(of=("self",))
        if user is not None:
            queryset = queryset.filter(user=user)
        try:
            return queryset.select_related("exam").get(pk=attempt_id)
        except ExamAttempt.DoesNotExist:
            raise NotFound("Attempt not found", details={"attempt_id": attempt_id})

    @staticmethod
    def _require_transition(attempt: ExamAttempt, target: str) -> None:
        if not attempt.can_transition_to(target):
            raise InvalidStateTransition(attempt.status, target)

    # --- Lifecycle ---

    def start_attempt(
        self,
        user,
        exam_id: int,
        ip_address: Optional[str] = None,
        browser_info: Optional[str] = None,
    ) -> ExamAttempt:
        """
        Start a new attempt for a user.

        Raises:
            ExamNotAvailable: Exam unpublished, deleted or outside its window
            AttemptLimitExceeded: The user has used all allowed attempts
            AttemptInProgress: The user already has an open attempt
        """
        with transaction.atomic():
            try:
                exam = Exam.all_objects.select_for_update().get(pk=exam_id)
            except Exam.DoesNotExist:
                raise NotFound("Exam not found", details={"exam_id": exam_id})

            now = timezone.now()
            if not exam.is_active or not exam.is_published:
                raise ExamNotAvailable("Exam is not available")
            if exam.start_time and now < exam.start_time:
                raise ExamNotAvailable(
                    "Exam has not started yet", details={"start_time": exam.start_time.isoformat()}
                )
            if exam.end_time and now > exam.end_time:
                raise ExamNotAvailable(
                    "Exam has already ended", details={"end_time": exam.end_time.isoformat()}
                )

            existing = ExamAttempt.objects.filter(user=user, exam=exam)
            if not exam.has_unlimited_attempts and existing.count() >= exam.attempts:
                raise AttemptLimitExceeded(exam.attempts)
            open_attempt = existing.filter(status=Status.IN_PROGRESS).first()
            if open_attempt is not None:
                raise AttemptInProgress(open_attempt.pk)

            attempt = ExamAttempt.objects.create(
                user=user,
                exam=exam,
                status=Status.IN_PROGRESS,
                start_time=now,
                end_time=now + timedelta(minutes=exam.duration),
                ip_address=ip_address,
                browser_info=(browser_info or "")[:500],
            )

        logger.info(f"Attempt {attempt.pk} started by {user} for exam {exam.pk}")
        return attempt

    def _submit(self, attempt: ExamAttempt, auto: bool) -> ExamAttempt:
        now = timezone.now()
        attempt.status = Status.SUBMITTED
        attempt.submitted_at = now
        attempt.time_spent = max(0, int((now - attempt.start_time).total_seconds()))
        attempt.auto_submitted = auto
        attempt.save(update_fields=["status", "submitted_at", "time_spent", "auto_submitted", "updated_at"])
        return attempt

    def submit(self, attempt_id: int, user=None) -> ExamAttempt:
        """Hand in an in-progress attempt."""
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id, user)
            self._require_transition(attempt, Status.SUBMITTED)
            self._submit(attempt, auto=False)
        logger.info(f"Attempt {attempt.pk} submitted")
        return attempt

    def auto_submit(self, attempt_id: int) -> ExamAttempt:
        """
        Submit an attempt because its time ran out.

        Timers may fire more than once, so an attempt that is no longer in
        progress is returned unchanged.
        """
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id)
            if attempt.status != Status.IN_PROGRESS:
                return attempt
            self._submit(attempt, auto=True)
        logger.info(f"Attempt {attempt.pk} auto-submitted")
        return attempt

    @staticmethod
    def _complete(attempt: ExamAttempt, now) -> ExamAttempt:
        attempt.status = Status.COMPLETED
        attempt.auto_submitted = True
        attempt.time_spent = max(0, int((now - attempt.start_time).total_seconds()))
        attempt.save(update_fields=["status", "auto_submitted", "time_spent", "updated_at"])
        return attempt

    def complete_expired(self, attempt_id: int, now=None) -> ExamAttempt:
        """
        Close an in-progress attempt whose exam window has ended.

        Like ``auto_submit``, an attempt that is no longer in progress is
        returned unchanged.

        Raises:
            StateConflict: If the exam window is still open
        """
        now = now or timezone.now()
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id)
            if attempt.status != Status.IN_PROGRESS:
                return attempt
            if not attempt.exam.end_time or attempt.exam.end_time > now:
                raise StateConflict(
                    "The exam window is still open", error_code="exam_window_open"
                )
            self._complete(attempt, now)
        logger.info(f"Attempt {attempt.pk} completed after the exam window closed")
        return attempt

    def _close_expired(self, attempt_id: int, now) -> Optional[str]:
        """Close one expired attempt. Returns the new status, or None if it was already closed."""
        with transaction.atomic():
            try:
                attempt = self._lock_attempt(attempt_id)
            except NotFound:
                return None
            if attempt.status != Status.IN_PROGRESS:
                return None
            if attempt.exam.end_time and attempt.exam.end_time <= now:
                self._complete(attempt, now)
            else:
                self._submit(attempt, auto=True)
        logger.info(f"Expired attempt {attempt.pk} closed as {attempt.status}")
        return attempt.status

    def sweep_expired(self, now=None) -> Dict[str, int]:
        """
        Close every in-progress attempt that ran past its deadline.

        Attempts of exams whose window has ended are completed, all others
        are auto-submitted. Attempts closed or dropped since they were listed
        are skipped and not counted.
        """
        now = now or timezone.now()
        counts = {"submitted": 0, "completed": 0}
        expired = ExamAttempt.objects.filter(status=Status.IN_PROGRESS, end_time__lt=now).values_list(
            "pk", flat=True
        )
        for attempt_id in list(expired):
            closed = self._close_expired(attempt_id, now)
            if closed == Status.SUBMITTED:
                counts["submitted"] += 1
            elif closed == Status.COMPLETED:
                counts["completed"] += 1
        return counts

    def _calculate_score(self, attempt: ExamAttempt) -> Decimal:
        total = attempt.answers.aggregate(total=Sum("marks"))["total"] or Decimal("0")
        return max(total, Decimal("0"))

    def _apply_score(self, attempt: ExamAttempt) -> Decimal:
        score = self._calculate_score(attempt)
        if score > attempt.exam.total_marks:
            raise IntegrityViolation(
                "Score exceeds the total marks of the exam",
                details={
                    "attempt_id": attempt.pk,
                    "score": str(score),
                    "total_marks": str(attempt.exam.total_marks),
                },
            )
        attempt.score = score
        return score

    def evaluate(self, attempt_id: int, actor=None) -> ExamAttempt:
        """
        Score a submitted attempt from its answers.

        Raises:
            InvalidStateTransition: If the attempt is not submitted
            IntegrityViolation: If the score exceeds the exam's total marks
        """
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id)
            self._require_transition(attempt, Status.EVALUATED)
            self._apply_score(attempt)
            attempt.status = Status.EVALUATED
            attempt.evaluated_at = timezone.now()
            attempt.save(update_fields=["score", "status", "evaluated_at", "updated_at"])
            self.notifier.notify_on_commit(
                attempt.user_id,
                Notification.Type.EXAM,
                "Exam result available",
                f"Your attempt at '{attempt.exam.title}' has been evaluated.",
                f"/attempts/{attempt.pk}/result",
            )
        logger.info(f"Attempt {attempt.pk} evaluated with score {attempt.score}")
        return attempt

    def drop_attempt(self, attempt_id: int, actor) -> ExamAttempt:
        """Soft delete an attempt so it no longer counts against the limit."""
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id)
            attempt.soft_delete(actor)
        logger.info(f"Attempt {attempt_id} dropped by {actor}")
        return attempt

    # --- Answers ---

    def submit_answer(self, attempt_id: int, question_id: int, raw_value: Any, user=None) -> Answer:
        """
        Record the answer to one question, replacing an earlier answer.

        Raises:
            AttemptTimeExpired: If the attempt ran past its deadline
            StateConflict: If the attempt is no longer in progress
            InvalidAnswerFormat: If the value does not fit the question type
        """
        with transaction.atomic():
            attempt = self._lock_attempt(attempt_id, user)
            if attempt.status != Status.IN_PROGRESS:
                raise StateConflict(
                    "Answers can only be changed while the attempt is in progress",
                    error_code="attempt_closed",
                )
            if attempt.is_expired():
                raise AttemptTimeExpired()
            try:
                question = Question.objects.get(pk=question_id, exam_id=attempt.exam_id)
            except Question.DoesNotExist:
                raise NotFound("Question not found in this exam", details={"question_id": question_id})

            value = parse_answer(question, raw_value)
            is_correct, marks = score_answer(question, value)
            answer, _ = Answer.objects.update_or_create(
                attempt=attempt,
                question=question,
                defaults={
                    "value": value.to_json(),
                    "is_correct": is_correct,
                    "marks": marks,
                    "review_status": Answer.ReviewStatus.PENDING
                    if question.type == Question.Type.DESCRIPTIVE
                    else Answer.ReviewStatus.REVIEWED,
                    "feedback": "",
                    "reviewed_by": None,
                    "reviewed_at": None,
                },
            )
        return answer

    def review_answer(self, answer_id: int, marks, feedback: str, reviewer) -> Answer:
        """
        Award marks to an answer by hand.

        If the attempt was already evaluated its score is recomputed in the
        same transaction.

        Raises:
            MarksExceedQuestion: If marks exceed the question's marks
            ValidationError: If marks are negative
        """
        try:
            marks = Decimal(str(marks))
        except ArithmeticError:
            raise ValidationError("Marks must be a number")
        if not marks.is_finite() or marks < 0:
            raise ValidationError("Marks cannot be negative", details={"marks": str(marks)})

        with transaction.atomic():
            try:
                answer = (
                    Answer.objects.select_for_update(of=("self",))
                    .select_related("question", "attempt")
                    .get(pk=answer_id, attempt__is_active=True)
                )
            except Answer.DoesNotExist:
                raise NotFound("Answer not found", details={"answer_id": answer_id})
            if marks > answer.question.marks:
                raise MarksExceedQuestion(marks, answer.question.marks)
            attempt = answer.attempt
            if attempt.status == Status.IN_PROGRESS:
                raise StateConflict(
                    "Answers of an attempt in progress cannot be reviewed", error_code="attempt_in_progress"
                )

            answer.marks = marks
            answer.is_correct = marks == answer.question.marks
            answer.feedback = feedback or ""
            answer.review_status = Answer.ReviewStatus.REVIEWED
            answer.reviewed_by = reviewer
            answer.reviewed_at = timezone.now()
            answer.save()

            if attempt.status == Status.EVALUATED:
                attempt = self._lock_attempt(attempt.pk)
                self._apply_score(attempt)
                attempt.save(update_fields=["score", "updated_at"])
        return answer

    def pending_reviews(self):
        """Descriptive answers of handed-in attempts waiting for a reviewer."""
        return (
            Answer.objects.filter(
                review_status=Answer.ReviewStatus.PENDING,
                attempt__is_active=True,
                attempt__status__in=[Status.SUBMITTED, Status.EVALUATED, Status.COMPLETED],
            )
            .select_related("question", "attempt", "attempt__exam", "attempt__user")
            .order_by("created_at")
        )

    # --- Results ---

    def attempt_result(self, attempt: ExamAttempt, include_answers: Optional[bool] = None) -> Dict[str, Any]:
        """
        Summarise an attempt.

        The per-answer breakdown is only included for evaluated attempts of
        exams that show results, unless ``include_answers`` overrides it.
        """
        exam = attempt.exam
        evaluated = attempt.status == Status.EVALUATED
        result = {
            "attempt_id": attempt.pk,
            "exam_id": exam.pk,
            "exam_title": exam.title,
            "status": attempt.status,
            "submitted_at": attempt.submitted_at,
            "time_spent": attempt.time_spent,
            "auto_submitted": attempt.auto_submitted,
        }
        visible = evaluated and exam.show_result
        if include_answers is not None:
            visible = include_answers and evaluated
        if not visible:
            return result

        result.update(
            {
                "score": attempt.score,
                "total_marks": exam.total_marks,
                "passing_marks": exam.passing_marks,
                "percentage": attempt.percentage,
                "passed": attempt.passed,
                "answers": [
                    {
                        "question_id": answer.question_id,
                        "question": answer.question.text,
                        "value": answer.value,
                        "is_correct": answer.is_correct,
                        "marks": answer.marks,
                        "max_marks": answer.question.marks,
                        "feedback": answer.feedback,
                        "explanation": answer.question.explanation,
                    }
                    for answer in attempt.answers.select_related("question")
                ],
            }
        )
        return result

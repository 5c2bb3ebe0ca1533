"""
Exam and Question Catalog Service

Authoring operations on exams and their questions. Every mutation runs in
one transaction that first locks the exam row, so the cached
``question_count`` and ``total_marks`` of an exam always equal the count and
the sum of marks of its questions once the operation has committed, and
attempt creation (which locks the same row) never interleaves with it.

Operations:
- create_exam / update_exam / delete_exam / duplicate
- add_question / update_question / delete_question
- publish / unpublish / preview
- recalculate_totals / check_totals: consistency check of the cached counters
- exam_statistics / question_statistics

Author: Exam Portal Development Team
Version: 1.0.0
"""

import logging
import random
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Tuple

from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from django.db.models import Avg, Count, F, Max, Sum
from django.utils import timezone

from ..attempts.evaluation import validate_question_shape
from ..exceptions import (
    ExamNotReadyForPublishing,
    ExamPublished,
    NotFound,
    QuestionHasAnswers,
    StateConflict,
    ValidationError,
)
from ..services.cloud_storage import get_image_storage
from .models import Exam, ExamAuditEntry, Question

logger = logging.getLogger(__name__)

EXAM_FIELDS = (
    "title",
    "description",
    "instructions",
    "duration",
    "passing_marks",
    "start_time",
    "end_time",
    "shuffle_questions",
    "show_result",
    "price",
    "attempts",
)

COPIED_EXAM_FIELDS = tuple(field for field in EXAM_FIELDS if field != "title")

COPIED_QUESTION_FIELDS = (
    "text",
    "type",
    "options",
    "match_pairs",
    "correct_answer",
    "marks",
    "negative_marks",
    "explanation",
    "difficulty",
    "image_url",
    "order",
)


def _to_decimal(value, field: str) -> Decimal:
    try:
        number = Decimal(str(value))
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", details={field: value})
    if not number.is_finite() or number < 0:
        raise ValidationError(f"{field} cannot be negative", details={field: str(value)})
    return number.quantize(Decimal("0.01"))


def _full_clean(instance, exclude=None) -> None:
    try:
        instance.full_clean(exclude=exclude)
    except DjangoValidationError as e:
        raise ValidationError("Invalid data", details=e.message_dict)


class ExamCatalog:
    """
    Catalog of exams and questions.

    Args:
        storage: Image storage with upload(file) and delete(url), defaults
            to the backend configured by QUESTION_IMAGE_STORAGE
    """

    def __init__(self, storage=None):
        self._storage = storage

    @property
    def storage(self):
        if self._storage is None:
            self._storage = get_image_storage()
        return self._storage

    # --- Helpers ---

    def get_exam(self, exam_id: int) -> Exam:
        try:
            return Exam.objects.get(pk=exam_id)
        except Exam.DoesNotExist:
            raise NotFound("Exam not found", details={"exam_id": exam_id})

    def _lock_exam(self, exam_id: int) -> Exam:
        try:
            return Exam.objects.select_for_update().get(pk=exam_id)
        except Exam.DoesNotExist:
            raise NotFound("Exam not found", details={"exam_id": exam_id})

    def _get_question(self, exam: Exam, question_id: int) -> Question:
        try:
            return exam.questions.get(pk=question_id)
        except Question.DoesNotExist:
            raise NotFound("Question not found", details={"question_id": question_id})

    @staticmethod
    def _audit(exam: Exam, action: str, actor, details: Optional[dict] = None, ip_address: Optional[str] = None):
        return ExamAuditEntry.objects.create(
            exam=exam,
            action=action,
            actor=actor if getattr(actor, "is_authenticated", False) else None,
            details=details or {},
            ip_address=ip_address,
        )

    @staticmethod
    def _has_open_attempts(exam: Exam) -> bool:
        from ..attempts.models import ExamAttempt

        return exam.exam_attempts.filter(status=ExamAttempt.Status.IN_PROGRESS).exists()

    def _release_image(self, url: str) -> None:
        """Delete an image after commit unless another question still uses it."""
        if not url:
            return

        def _delete():
            if not Question.objects.filter(image_url=url).exists():
                self.storage.delete(url)

        transaction.on_commit(_delete)

    @staticmethod
    def _apply_exam_fields(exam: Exam, data: Dict[str, Any]) -> List[str]:
        changed = []
        for field in EXAM_FIELDS:
            if field in data:
                setattr(exam, field, data[field])
                changed.append(field)
        return changed

    @staticmethod
    def _set_courses(exam: Exam, course_ids) -> None:
        from ..courses.models import Course

        course_ids = list(course_ids or [])
        courses = list(Course.objects.filter(pk__in=course_ids))
        if len(courses) != len(set(course_ids)):
            raise ValidationError("Unknown course", details={"course_ids": course_ids})
        exam.courses.set(courses)

    # --- Exams ---

    def create_exam(self, data: Dict[str, Any], creator, ip_address: Optional[str] = None) -> Exam:
        """
        Create a draft exam with zero questions and zero marks.

        ``data`` may carry a ``questions`` list that is added in the same
        transaction, and ``publish=True`` to publish right away.
        """
        with transaction.atomic():
            exam = Exam(creator=creator, total_marks=Decimal("0"), question_count=0)
            self._apply_exam_fields(exam, data)
            _full_clean(exam)
            exam.save()
            if "course_ids" in data:
                self._set_courses(exam, data["course_ids"])
            self._audit(exam, ExamAuditEntry.Action.CREATE, creator, ip_address=ip_address)

            for question_data in data.get("questions") or []:
                self._create_question(exam, question_data)

            if data.get("publish"):
                self._publish(exam, creator, ip_address)

        logger.info(f"Exam {exam.pk} '{exam.title}' created by {creator}")
        return exam

    def update_exam(self, exam_id: int, data: Dict[str, Any], actor, ip_address: Optional[str] = None) -> Exam:
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if self._has_open_attempts(exam):
                raise StateConflict(
                    "Cannot edit exam with active attempts", error_code="exam_has_active_attempts"
                )
            changed = self._apply_exam_fields(exam, data)
            _full_clean(exam)
            if exam.is_published and exam.passing_marks > exam.total_marks:
                raise ValidationError(
                    "Passing marks cannot be greater than total marks",
                    details={"passing_marks": str(exam.passing_marks), "total_marks": str(exam.total_marks)},
                )
            exam.save()
            if "course_ids" in data:
                self._set_courses(exam, data["course_ids"])
                changed.append("courses")
            self._audit(
                exam, ExamAuditEntry.Action.UPDATE, actor, {"changes": sorted(changed)}, ip_address
            )
        return exam

    def delete_exam(self, exam_id: int, actor, ip_address: Optional[str] = None) -> None:
        """
        Delete an unpublished exam without attempts.

        Questions are removed, the exam itself is soft deleted.
        """
        from ..attempts.models import ExamAttempt

        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if exam.is_published:
                raise ExamPublished("Cannot delete a published exam")
            if ExamAttempt.all_objects.filter(exam=exam).exists():
                raise StateConflict(
                    "Cannot delete exam with existing attempts", error_code="exam_has_attempts"
                )
            images = [url for url in exam.questions.values_list("image_url", flat=True) if url]
            removed, _ = exam.questions.all().delete()
            exam.question_count = 0
            exam.total_marks = Decimal("0")
            exam.save(update_fields=["question_count", "total_marks", "updated_at"])
            exam.soft_delete(actor)
            self._audit(exam, ExamAuditEntry.Action.DELETE, actor, {"questions_removed": removed}, ip_address)
            for url in images:
                self._release_image(url)
        logger.info(f"Exam {exam_id} deleted by {actor}")

    def duplicate(self, exam_id: int, actor, ip_address: Optional[str] = None) -> Exam:
        """
        Copy an exam and all of its questions into a new draft exam.

        The totals of the copy are computed from the copied questions.
        """
        with transaction.atomic():
            source = self._lock_exam(exam_id)
            clone = Exam(
                title=f"Copy of {source.title}",
                creator=actor,
                is_published=False,
                **{field: getattr(source, field) for field in COPIED_EXAM_FIELDS},
            )
            clone.save()
            clone.courses.set(source.courses.all())
            Question.objects.bulk_create(
                [
                    Question(exam=clone, **{field: getattr(question, field) for field in COPIED_QUESTION_FIELDS})
                    for question in source.questions.order_by("order")
                ]
            )
            self.recalculate_totals(clone)
            self._audit(
                clone, ExamAuditEntry.Action.DUPLICATE, actor, {"source_exam_id": source.pk}, ip_address
            )
        logger.info(f"Exam {exam_id} duplicated as {clone.pk}")
        return clone

    # --- Questions ---

    def _create_question(self, exam: Exam, data: Dict[str, Any], image=None) -> Question:
        text = (data.get("text") or "").strip()
        if not text:
            raise ValidationError("Question text is required")
        question_type = data.get("type")
        shape = validate_question_shape(
            question_type, data.get("options"), data.get("match_pairs"), data.get("correct_answer")
        )
        difficulty = data.get("difficulty") or Question.Difficulty.MEDIUM
        if difficulty not in Question.Difficulty.values:
            raise ValidationError(f"'{difficulty}' is not a valid difficulty level")
        marks = _to_decimal(data.get("marks", 1), "marks")

        question = Question(
            exam=exam,
            text=text,
            type=question_type,
            marks=marks,
            negative_marks=_to_decimal(data.get("negative_marks", 0), "negative_marks"),
            explanation=data.get("explanation") or "",
            difficulty=difficulty,
            order=exam.question_count + 1,
            **shape,
        )
        if image is not None:
            question.image_url = self.storage.upload(image)
        question.save()

        exam.question_count += 1
        exam.total_marks += marks
        exam.save(update_fields=["question_count", "total_marks", "updated_at"])
        return question

    def add_question(
        self, exam_id: int, data: Dict[str, Any], actor, image=None, ip_address: Optional[str] = None
    ) -> Question:
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if exam.is_published:
                raise ExamPublished()
            question = self._create_question(exam, data, image)
            self._audit(
                exam,
                ExamAuditEntry.Action.ADD_QUESTION,
                actor,
                {"question_id": question.pk, "marks": str(question.marks)},
                ip_address,
            )
        return question

    def update_question(
        self,
        exam_id: int,
        question_id: int,
        data: Dict[str, Any],
        actor,
        image=None,
        ip_address: Optional[str] = None,
    ) -> Question:
        """Update a question and shift the exam total by the change in marks."""
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if exam.is_published:
                raise ExamPublished()
            question = self._get_question(exam, question_id)

            question_type = data.get("type", question.type)
            shape = validate_question_shape(
                question_type,
                data.get("options", question.options),
                data.get("match_pairs", question.match_pairs),
                data.get("correct_answer", question.correct_answer),
            )
            old_marks = question.marks
            new_marks = _to_decimal(data["marks"], "marks") if "marks" in data else old_marks

            if "text" in data:
                text = (data.get("text") or "").strip()
                if not text:
                    raise ValidationError("Question text is required")
                question.text = text
            if "difficulty" in data:
                if data["difficulty"] not in Question.Difficulty.values:
                    raise ValidationError(f"'{data['difficulty']}' is not a valid difficulty level")
                question.difficulty = data["difficulty"]
            if "negative_marks" in data:
                question.negative_marks = _to_decimal(data["negative_marks"], "negative_marks")
            if "explanation" in data:
                question.explanation = data["explanation"] or ""
            question.type = question_type
            question.marks = new_marks
            for field, value in shape.items():
                setattr(question, field, value)

            old_image = question.image_url
            if image is not None:
                question.image_url = self.storage.upload(image)
            elif data.get("remove_image"):
                question.image_url = ""
            question.save()

            delta = new_marks - old_marks
            if delta:
                exam.total_marks += delta
                exam.save(update_fields=["total_marks", "updated_at"])

            self._audit(
                exam,
                ExamAuditEntry.Action.UPDATE_QUESTION,
                actor,
                {"question_id": question.pk, "marks_delta": str(delta)},
                ip_address,
            )
            if old_image and old_image != question.image_url:
                self._release_image(old_image)
        return question

    def delete_question(self, exam_id: int, question_id: int, actor, ip_address: Optional[str] = None) -> None:
        """Delete a question, close the gap in the ordering and adjust the totals."""
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if exam.is_published:
                raise ExamPublished()
            question = self._get_question(exam, question_id)
            if question.answers.exists():
                raise QuestionHasAnswers()

            order, marks, image_url = question.order, question.marks, question.image_url
            question.delete()
            exam.questions.filter(order__gt=order).update(order=F("order") - 1)

            exam.question_count -= 1
            exam.total_marks -= marks
            exam.save(update_fields=["question_count", "total_marks", "updated_at"])
            self._audit(
                exam,
                ExamAuditEntry.Action.DELETE_QUESTION,
                actor,
                {"question_id": question_id, "marks": str(marks)},
                ip_address,
            )
            self._release_image(image_url)

    # --- Publishing ---

    def _publish(self, exam: Exam, actor, ip_address: Optional[str]) -> None:
        errors = []
        if exam.question_count < 1:
            errors.append("Exam must have at least one question")
        if exam.total_marks <= 0:
            errors.append("Total marks must be greater than zero")
        if exam.passing_marks > exam.total_marks:
            errors.append("Passing marks cannot be greater than total marks")
        if errors:
            raise ExamNotReadyForPublishing(
                "Exam is not ready for publishing", details={"errors": errors}
            )
        exam.is_published = True
        exam.published_at = timezone.now()
        exam.save(update_fields=["is_published", "published_at", "updated_at"])
        self._audit(exam, ExamAuditEntry.Action.PUBLISH, actor, ip_address=ip_address)

    def publish(self, exam_id: int, actor, ip_address: Optional[str] = None) -> Exam:
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if exam.is_published:
                raise StateConflict("Exam is already published", error_code="exam_published")
            self._publish(exam, actor, ip_address)
        logger.info(f"Exam {exam.pk} published by {actor}")
        return exam

    def unpublish(self, exam_id: int, actor, reason: str = "", ip_address: Optional[str] = None) -> Exam:
        with transaction.atomic():
            exam = self._lock_exam(exam_id)
            if not exam.is_published:
                raise StateConflict("Exam is not published", error_code="exam_not_published")
            if self._has_open_attempts(exam):
                raise StateConflict(
                    "Cannot unpublish exam with active attempts", error_code="exam_has_active_attempts"
                )
            exam.is_published = False
            exam.unpublished_at = timezone.now()
            exam.save(update_fields=["is_published", "unpublished_at", "updated_at"])
            self._audit(
                exam,
                ExamAuditEntry.Action.UNPUBLISH,
                actor,
                {"reason": reason or "No reason provided"},
                ip_address,
            )
        logger.info(f"Exam {exam.pk} unpublished by {actor}")
        return exam

    def preview(self, exam_id: int, actor, ip_address: Optional[str] = None) -> Tuple[Exam, List[Question]]:
        """
        Return the exam with its questions as a candidate would see them.

        Questions are shuffled when the exam is published with
        ``shuffle_questions``. Serializers used for previews must not expose
        correct answers.
        """
        exam = self.get_exam(exam_id)
        questions = list(exam.questions.order_by("order"))
        if exam.is_published and exam.shuffle_questions:
            random.shuffle(questions)
        self._audit(exam, ExamAuditEntry.Action.PREVIEW, actor, ip_address=ip_address)
        return exam, questions

    # --- Consistency ---

    def recalculate_totals(self, exam: Exam) -> bool:
        """
        Recompute the cached counters of an exam from its questions.

        Returns:
            True if the stored values were wrong and have been corrected
        """
        aggregate = exam.questions.aggregate(count=Count("id"), total=Sum("marks"))
        count = aggregate["count"] or 0
        total = aggregate["total"] or Decimal("0")
        changed = exam.question_count != count or exam.total_marks != total
        if changed:
            Exam.all_objects.filter(pk=exam.pk).update(question_count=count, total_marks=total)
            exam.question_count = count
            exam.total_marks = total
        return changed

    def check_totals(self, fix: bool = False) -> List[Dict[str, Any]]:
        """
        Find exams whose cached counters disagree with their questions.

        Args:
            fix: Correct the counters of every inconsistent exam

        Returns:
            One entry per inconsistent exam with stored and actual values
        """
        inconsistent = []
        exams = Exam.objects.annotate(
            actual_count=Count("questions"), actual_total=Sum("questions__marks")
        )
        for exam in exams:
            actual_total = exam.actual_total or Decimal("0")
            if exam.question_count == exam.actual_count and exam.total_marks == actual_total:
                continue
            inconsistent.append(
                {
                    "exam_id": exam.pk,
                    "title": exam.title,
                    "stored_count": exam.question_count,
                    "actual_count": exam.actual_count,
                    "stored_total": exam.total_marks,
                    "actual_total": actual_total,
                }
            )
            if fix:
                with transaction.atomic():
                    self.recalculate_totals(self._lock_exam(exam.pk))
                logger.warning(f"Corrected cached totals of exam {exam.pk}")
        return inconsistent

    # --- Statistics ---

    def exam_statistics(self, exam: Exam) -> Dict[str, Any]:
        from ..attempts.models import ExamAttempt

        attempts = exam.exam_attempts.all()
        evaluated = attempts.filter(status=ExamAttempt.Status.EVALUATED)
        aggregate = evaluated.aggregate(average=Avg("score"), highest=Max("score"), count=Count("id"))
        evaluated_count = aggregate["count"] or 0
        passed = evaluated.filter(score__gte=exam.passing_marks).count()
        average = aggregate["average"]
        return {
            "total_attempts": attempts.count(),
            "evaluated_attempts": evaluated_count,
            "average_score": round(Decimal(average), 2) if average is not None else Decimal("0"),
            "highest_score": aggregate["highest"] or Decimal("0"),
            "passed": passed,
            "pass_rate": round(passed / evaluated_count * 100, 2) if evaluated_count else 0.0,
        }

    def question_statistics(self, exam: Exam) -> Dict[str, Any]:
        by_type = {
            row["type"]: {"count": row["count"], "marks": row["marks"]}
            for row in exam.questions.order_by().values("type").annotate(count=Count("id"), marks=Sum("marks"))
        }
        by_difficulty = {
            row["difficulty"]: row["count"]
            for row in exam.questions.order_by().values("difficulty").annotate(count=Count("id"))
        }
        return {
            "total_questions": exam.question_count,
            "total_marks": exam.total_marks,
            "by_type": by_type,
            "by_difficulty": by_difficulty,
        }

from decimal import Decimal

from django.test import TestCase
from django.utils import timezone

from portal.attempts.services import AttemptEngine
from portal.catalog.models import Exam, ExamAuditEntry, Question
from portal.exceptions import (
    ExamNotReadyForPublishing,
    ExamPublished,
    QuestionHasAnswers,
    StateConflict,
    ValidationError,
)

from .helpers import descriptive, make_catalog, make_exam, make_user, mcq, seed_roles, true_false


class ExamAuthoringTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")

    def setUp(self):
        self.catalog = make_catalog()

    def test_new_exam_is_an_empty_draft(self):
        exam = make_exam(self.instructor)

        self.assertFalse(exam.is_published)
        self.assertEqual(exam.question_count, 0)
        self.assertEqual(exam.total_marks, Decimal("0"))
        self.assertTrue(exam.audit_entries.filter(action=ExamAuditEntry.Action.CREATE).exists())

    def test_create_exam_with_inline_questions(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=2), true_false(marks=3)])

        self.assertEqual(exam.question_count, 2)
        self.assertEqual(exam.total_marks, Decimal("5"))
        self.assertEqual(list(exam.questions.values_list("order", flat=True)), [1, 2])

    def test_create_exam_rejects_inverted_window(self):
        now = timezone.now()
        with self.assertRaises(ValidationError):
            make_exam(self.instructor, start_time=now, end_time=now)

    def test_create_exam_rejects_zero_attempts(self):
        with self.assertRaises(ValidationError):
            make_exam(self.instructor, attempts=0)

    def test_add_question_updates_totals(self):
        exam = make_exam(self.instructor)
        question = self.catalog.add_question(exam.pk, mcq(marks=4), self.instructor)

        exam.refresh_from_db()
        self.assertEqual(question.order, 1)
        self.assertEqual(exam.question_count, 1)
        self.assertEqual(exam.total_marks, Decimal("4"))

    def test_invalid_question_shape_is_rejected(self):
        exam = make_exam(self.instructor)
        question = mcq()
        question["options"] = ["only one"]

        with self.assertRaises(ValidationError):
            self.catalog.add_question(exam.pk, question, self.instructor)

        exam.refresh_from_db()
        self.assertEqual(exam.question_count, 0)

    def test_mcq_correct_answer_must_point_at_an_option(self):
        exam = make_exam(self.instructor)
        with self.assertRaises(ValidationError):
            self.catalog.add_question(exam.pk, mcq(correct=(7,)), self.instructor)

    def test_update_question_shifts_total_by_marks_delta(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=2), true_false(marks=3)])
        question = exam.questions.get(order=1)

        self.catalog.update_question(exam.pk, question.pk, {"marks": 6}, self.instructor)

        exam.refresh_from_db()
        self.assertEqual(exam.total_marks, Decimal("9"))
        self.assertEqual(exam.question_count, 2)

    def test_delete_question_adjusts_totals(self):
        exam = make_exam(
            self.instructor, passing_marks=40, questions=[mcq(marks=60), true_false(marks=40)]
        )
        self.assertEqual(exam.total_marks, Decimal("100"))

        self.catalog.delete_question(exam.pk, exam.questions.get(order=2).pk, self.instructor)

        exam.refresh_from_db()
        self.assertEqual(exam.total_marks, Decimal("60"))
        self.assertEqual(exam.question_count, 1)
        self.assertEqual(set(exam.questions.values_list("order", flat=True)), {1})

    def test_delete_question_closes_the_gap_in_ordering(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=60), true_false(marks=40), descriptive()])

        self.catalog.delete_question(exam.pk, exam.questions.get(order=1).pk, self.instructor)

        self.assertEqual(
            list(exam.questions.order_by("order").values_list("type", "order")),
            [("true-false", 1), ("descriptive", 2)],
        )

    def test_questions_of_published_exam_are_frozen(self):
        exam = make_exam(self.instructor, questions=[mcq()], publish=True)

        with self.assertRaises(ExamPublished):
            self.catalog.add_question(exam.pk, true_false(), self.instructor)
        with self.assertRaises(ExamPublished):
            self.catalog.delete_question(exam.pk, exam.questions.get().pk, self.instructor)

    def test_removing_an_image_deletes_it_after_commit(self):
        exam = make_exam(self.instructor)
        question = self.catalog.add_question(exam.pk, mcq(), self.instructor, image=object())
        self.assertEqual(question.image_url, "https://bucket.example.com/questions/image.png")

        with self.captureOnCommitCallbacks(execute=True):
            self.catalog.update_question(exam.pk, question.pk, {"remove_image": True}, self.instructor)

        self.catalog.storage.delete.assert_called_once_with("https://bucket.example.com/questions/image.png")

    def test_shared_image_is_kept(self):
        exam = make_exam(self.instructor)
        first = self.catalog.add_question(exam.pk, mcq(), self.instructor, image=object())
        self.catalog.add_question(exam.pk, true_false(), self.instructor, image=object())

        with self.captureOnCommitCallbacks(execute=True):
            self.catalog.delete_question(exam.pk, first.pk, self.instructor)

        self.catalog.storage.delete.assert_not_called()


class PublishingTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")

    def setUp(self):
        self.catalog = make_catalog()

    def test_exam_without_questions_cannot_be_published(self):
        exam = make_exam(self.instructor)

        with self.assertRaises(ExamNotReadyForPublishing):
            self.catalog.publish(exam.pk, self.instructor)

        exam.refresh_from_db()
        self.assertFalse(exam.is_published)
        self.assertIsNone(exam.published_at)

    def test_passing_marks_above_total_blocks_publishing(self):
        exam = make_exam(self.instructor, passing_marks=10, questions=[mcq(marks=2)])

        with self.assertRaises(ExamNotReadyForPublishing) as ctx:
            self.catalog.publish(exam.pk, self.instructor)
        self.assertIn("Passing marks cannot be greater than total marks", ctx.exception.details["errors"])

    def test_publish_and_unpublish(self):
        exam = make_exam(self.instructor, questions=[mcq()])

        exam = self.catalog.publish(exam.pk, self.instructor)
        self.assertTrue(exam.is_published)
        self.assertIsNotNone(exam.published_at)

        with self.assertRaises(StateConflict):
            self.catalog.publish(exam.pk, self.instructor)

        exam = self.catalog.unpublish(exam.pk, self.instructor, reason="Typo in question 1")
        self.assertFalse(exam.is_published)
        entry = exam.audit_entries.get(action=ExamAuditEntry.Action.UNPUBLISH)
        self.assertEqual(entry.details["reason"], "Typo in question 1")

    def test_open_attempts_block_unpublish_and_edit(self):
        student = make_user("student@example.com")
        exam = make_exam(self.instructor, questions=[mcq()], publish=True)
        AttemptEngine().start_attempt(student, exam.pk)

        with self.assertRaises(StateConflict):
            self.catalog.unpublish(exam.pk, self.instructor)
        with self.assertRaises(StateConflict):
            self.catalog.update_exam(exam.pk, {"title": "Renamed"}, self.instructor)

    def test_answered_question_cannot_be_deleted(self):
        student = make_user("student@example.com")
        exam = make_exam(self.instructor, questions=[mcq(), true_false()], publish=True)
        question = exam.questions.get(order=1)
        engine = AttemptEngine()
        attempt = engine.start_attempt(student, exam.pk)
        engine.submit_answer(attempt.pk, question.pk, [1], user=student)
        engine.submit(attempt.pk, user=student)
        self.catalog.unpublish(exam.pk, self.instructor)

        with self.assertRaises(QuestionHasAnswers):
            self.catalog.delete_question(exam.pk, question.pk, self.instructor)

    def test_preview_lists_questions_in_order_and_is_audited(self):
        exam = make_exam(self.instructor, questions=[mcq(), true_false()])

        _, questions = self.catalog.preview(exam.pk, self.instructor)

        self.assertEqual([q.order for q in questions], [1, 2])
        self.assertTrue(exam.audit_entries.filter(action=ExamAuditEntry.Action.PREVIEW).exists())


class ExamLifecycleTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")

    def setUp(self):
        self.catalog = make_catalog()

    def test_published_exam_cannot_be_deleted(self):
        exam = make_exam(self.instructor, questions=[mcq()], publish=True)
        with self.assertRaises(ExamPublished):
            self.catalog.delete_exam(exam.pk, self.instructor)

    def test_delete_draft_exam(self):
        exam = make_exam(self.instructor, questions=[mcq()])

        self.catalog.delete_exam(exam.pk, self.instructor)

        self.assertFalse(Exam.objects.filter(pk=exam.pk).exists())
        deleted = Exam.all_objects.get(pk=exam.pk)
        self.assertEqual(deleted.deleted_by, self.instructor)
        self.assertEqual(deleted.question_count, 0)
        self.assertFalse(Question.objects.filter(exam_id=exam.pk).exists())

    def test_duplicate_copies_questions_into_a_draft(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=2), true_false(marks=3)], publish=True)

        clone = self.catalog.duplicate(exam.pk, self.instructor)

        self.assertEqual(clone.title, "Copy of Python Basics")
        self.assertFalse(clone.is_published)
        self.assertEqual(clone.question_count, 2)
        self.assertEqual(clone.total_marks, Decimal("5"))
        self.assertEqual(list(clone.questions.values_list("order", flat=True)), [1, 2])
        entry = clone.audit_entries.get(action=ExamAuditEntry.Action.DUPLICATE)
        self.assertEqual(entry.details["source_exam_id"], exam.pk)

    def test_duplicate_recomputes_totals_from_copied_questions(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=2), true_false(marks=3)])
        Exam.objects.filter(pk=exam.pk).update(total_marks=99, question_count=7)

        clone = self.catalog.duplicate(exam.pk, self.instructor)

        self.assertEqual(clone.question_count, 2)
        self.assertEqual(clone.total_marks, Decimal("5"))
        clone.refresh_from_db()
        self.assertEqual(clone.total_marks, Decimal("5"))

    def test_check_totals_finds_and_fixes_drift(self):
        exam = make_exam(self.instructor, questions=[mcq(marks=2), true_false(marks=3)])
        Exam.objects.filter(pk=exam.pk).update(question_count=7, total_marks=Decimal("1"))

        report = self.catalog.check_totals()
        self.assertEqual(len(report), 1)
        self.assertEqual(report[0]["actual_count"], 2)

        self.catalog.check_totals(fix=True)
        exam.refresh_from_db()
        self.assertEqual(exam.question_count, 2)
        self.assertEqual(exam.total_marks, Decimal("5"))
        self.assertEqual(self.catalog.check_totals(), [])

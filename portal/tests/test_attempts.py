from datetime import timedelta
from decimal import Decimal
from unittest import mock

from django.test import TestCase
from django.utils import timezone

from portal.attempts.models import Answer, ExamAttempt
from portal.attempts.services import AttemptEngine
from portal.catalog.models import Exam
from portal.exceptions import (
    AttemptInProgress,
    AttemptLimitExceeded,
    AttemptTimeExpired,
    ExamNotAvailable,
    IntegrityViolation,
    InvalidAnswerFormat,
    InvalidStateTransition,
    MarksExceedQuestion,
    NotFound,
    StateConflict,
)
from portal.notifications.models import Notification

from .helpers import descriptive, make_exam, make_user, match, mcq, seed_roles, true_false


class AttemptLifecycleTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")
        cls.student = make_user("student@example.com")
        cls.exam = make_exam(cls.instructor, questions=[mcq(marks=2), true_false(marks=3)], publish=True)

    def setUp(self):
        self.engine = AttemptEngine()

    def test_start_sets_deadline_from_duration(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk, ip_address="10.0.0.1")

        self.assertEqual(attempt.status, ExamAttempt.Status.IN_PROGRESS)
        self.assertEqual(attempt.end_time - attempt.start_time, timedelta(minutes=30))
        self.assertEqual(attempt.ip_address, "10.0.0.1")

    def test_second_attempt_beyond_limit_fails(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        self.engine.submit(attempt.pk, user=self.student)

        with self.assertRaises(AttemptLimitExceeded):
            self.engine.start_attempt(self.student, self.exam.pk)
        self.assertEqual(ExamAttempt.objects.filter(user=self.student).count(), 1)

    def test_only_one_open_attempt_per_exam(self):
        Exam.objects.filter(pk=self.exam.pk).update(attempts=-1)
        first = self.engine.start_attempt(self.student, self.exam.pk)

        with self.assertRaises(AttemptInProgress) as ctx:
            self.engine.start_attempt(self.student, self.exam.pk)
        self.assertEqual(ctx.exception.details["attempt_id"], first.pk)

    def test_dropped_attempt_frees_the_slot(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        self.engine.submit(attempt.pk, user=self.student)
        self.engine.drop_attempt(attempt.pk, self.instructor)

        second = self.engine.start_attempt(self.student, self.exam.pk)

        self.assertNotEqual(second.pk, attempt.pk)
        self.assertFalse(ExamAttempt.all_objects.get(pk=attempt.pk).is_active)

    def test_unpublished_exam_is_not_available(self):
        draft = make_exam(self.instructor, questions=[mcq()])
        with self.assertRaises(ExamNotAvailable):
            self.engine.start_attempt(self.student, draft.pk)

    def test_exam_outside_its_window_is_not_available(self):
        now = timezone.now()
        Exam.objects.filter(pk=self.exam.pk).update(
            start_time=now - timedelta(days=2), end_time=now - timedelta(days=1)
        )
        with self.assertRaises(ExamNotAvailable):
            self.engine.start_attempt(self.student, self.exam.pk)

        Exam.objects.filter(pk=self.exam.pk).update(start_time=now + timedelta(days=1), end_time=None)
        with self.assertRaises(ExamNotAvailable):
            self.engine.start_attempt(self.student, self.exam.pk)

    def test_evaluate_requires_submission(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)

        with self.assertRaises(InvalidStateTransition):
            self.engine.evaluate(attempt.pk)

        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ExamAttempt.Status.IN_PROGRESS)
        self.assertIsNone(attempt.score)

    def test_submit_twice_is_rejected(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        self.engine.submit(attempt.pk, user=self.student)

        with self.assertRaises(InvalidStateTransition):
            self.engine.submit(attempt.pk, user=self.student)

    def test_auto_submit_is_idempotent(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)

        first = self.engine.auto_submit(attempt.pk)
        submitted_at = first.submitted_at
        second = self.engine.auto_submit(attempt.pk)

        self.assertEqual(second.status, ExamAttempt.Status.SUBMITTED)
        self.assertTrue(second.auto_submitted)
        self.assertEqual(second.submitted_at, submitted_at)

    def test_evaluated_attempt_is_final(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        self.engine.submit(attempt.pk, user=self.student)
        self.engine.evaluate(attempt.pk)

        with self.assertRaises(InvalidStateTransition):
            self.engine.evaluate(attempt.pk)

    def test_sweep_submits_attempts_past_their_deadline(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        ExamAttempt.objects.filter(pk=attempt.pk).update(end_time=timezone.now() - timedelta(minutes=1))

        result = self.engine.sweep_expired()

        self.assertEqual(result, {"submitted": 1, "completed": 0})
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ExamAttempt.Status.SUBMITTED)
        self.assertTrue(attempt.auto_submitted)

    def test_sweep_completes_attempts_of_closed_exams(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        past = timezone.now() - timedelta(minutes=1)
        ExamAttempt.objects.filter(pk=attempt.pk).update(end_time=past)
        Exam.objects.filter(pk=self.exam.pk).update(end_time=past)

        result = self.engine.sweep_expired()

        self.assertEqual(result, {"submitted": 0, "completed": 1})
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ExamAttempt.Status.COMPLETED)

    def test_complete_expired_twice_is_a_no_op(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        Exam.objects.filter(pk=self.exam.pk).update(end_time=timezone.now() - timedelta(minutes=1))

        first = self.engine.complete_expired(attempt.pk)
        time_spent = first.time_spent
        second = self.engine.complete_expired(attempt.pk)

        self.assertEqual(second.status, ExamAttempt.Status.COMPLETED)
        self.assertTrue(second.auto_submitted)
        self.assertEqual(second.time_spent, time_spent)

    def test_sweep_skips_attempts_closed_since_listing(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        ExamAttempt.objects.filter(pk=attempt.pk).update(end_time=timezone.now() - timedelta(minutes=1))
        close = self.engine._close_expired

        def closed_by_another_sweep(attempt_id, now):
            self.engine.auto_submit(attempt_id)
            return close(attempt_id, now)

        with mock.patch.object(self.engine, "_close_expired", side_effect=closed_by_another_sweep):
            result = self.engine.sweep_expired()

        self.assertEqual(result, {"submitted": 0, "completed": 0})
        attempt.refresh_from_db()
        self.assertEqual(attempt.status, ExamAttempt.Status.SUBMITTED)

    def test_second_sweep_finds_nothing(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        ExamAttempt.objects.filter(pk=attempt.pk).update(end_time=timezone.now() - timedelta(minutes=1))

        self.assertEqual(self.engine.sweep_expired(), {"submitted": 1, "completed": 0})
        self.assertEqual(self.engine.sweep_expired(), {"submitted": 0, "completed": 0})

    def test_complete_expired_needs_closed_window(self):
        attempt = self.engine.start_attempt(self.student, self.exam.pk)
        with self.assertRaises(StateConflict):
            self.engine.complete_expired(attempt.pk)


class AnswerTests(TestCase):
    @classmethod
    def setUpTestData(cls):
        seed_roles()
        cls.instructor = make_user("instructor@example.com", role="instructor")
        cls.student = make_user("student@example.com")
        cls.exam = make_exam(
            cls.instructor,
            questions=[mcq(marks=2, negative_marks=1), true_false(marks=3), match(marks=4), descriptive(marks=5)],
            publish=True,
        )
        cls.mcq, cls.true_false, cls.match, cls.descriptive = cls.exam.questions.order_by("order")

    def setUp(self):
        self.engine = AttemptEngine()
        self.attempt = self.engine.start_attempt(self.student, self.exam.pk)

    def answer(self, question, value):
        return self.engine.submit_answer(self.attempt.pk, question.pk, value, user=self.student)

    def test_empty_selection_is_rejected_and_nothing_is_stored(self):
        with self.assertRaises(InvalidAnswerFormat):
            self.answer(self.mcq, [])
        self.assertFalse(Answer.objects.filter(attempt=self.attempt).exists())

    def test_rejected_answer_keeps_the_previous_one(self):
        self.answer(self.mcq, [1])
        with self.assertRaises(InvalidAnswerFormat):
            self.answer(self.mcq, [])

        self.assertEqual(Answer.objects.get(attempt=self.attempt, question=self.mcq).value, [1])

    def test_answer_is_replaced_not_duplicated(self):
        self.answer(self.mcq, [0])
        self.answer(self.mcq, [1])

        answer = Answer.objects.get(attempt=self.attempt, question=self.mcq)
        self.assertTrue(answer.is_correct)
        self.assertEqual(answer.marks, Decimal("2"))

    def test_wrong_choice_costs_negative_marks(self):
        answer = self.answer(self.mcq, [2])
        self.assertFalse(answer.is_correct)
        self.assertEqual(answer.marks, Decimal("-1"))

    def test_match_answer_ignores_pair_order(self):
        answer = self.answer(
            self.match,
            [
                {"left": "C", "right": "Dennis Ritchie"},
                {"left": "Python", "right": "Guido van Rossum"},
            ],
        )
        self.assertTrue(answer.is_correct)

    def test_descriptive_answer_waits_for_review(self):
        answer = self.answer(self.descriptive, "It serialises bytecode execution.")

        self.assertIsNone(answer.is_correct)
        self.assertIsNone(answer.marks)
        self.assertEqual(answer.review_status, Answer.ReviewStatus.PENDING)
        self.assertNotIn(answer, self.engine.pending_reviews())

        self.engine.submit(self.attempt.pk, user=self.student)
        self.assertIn(answer, self.engine.pending_reviews())

    def test_question_of_another_exam_is_not_found(self):
        other = make_exam(self.instructor, questions=[mcq()])
        with self.assertRaises(NotFound):
            self.answer(other.questions.get(), [1])

    def test_answers_after_deadline_are_rejected(self):
        ExamAttempt.objects.filter(pk=self.attempt.pk).update(end_time=timezone.now() - timedelta(seconds=1))
        with self.assertRaises(AttemptTimeExpired):
            self.answer(self.true_false, True)

    def test_answers_after_submission_are_rejected(self):
        self.engine.submit(self.attempt.pk, user=self.student)
        with self.assertRaises(StateConflict):
            self.answer(self.true_false, True)

    def test_evaluation_sums_marks_and_notifies(self):
        self.answer(self.mcq, [1])
        self.answer(self.true_false, False)
        self.answer(self.match, [{"left": "Python", "right": "Guido van Rossum"}])
        self.engine.submit(self.attempt.pk, user=self.student)

        with self.captureOnCommitCallbacks(execute=True):
            attempt = self.engine.evaluate(self.attempt.pk)

        self.assertEqual(attempt.status, ExamAttempt.Status.EVALUATED)
        self.assertEqual(attempt.score, Decimal("2"))
        self.assertTrue(
            Notification.objects.filter(user=self.student, type=Notification.Type.EXAM).exists()
        )

    def test_score_never_drops_below_zero(self):
        self.answer(self.mcq, [0])
        self.engine.submit(self.attempt.pk, user=self.student)

        attempt = self.engine.evaluate(self.attempt.pk)

        self.assertEqual(attempt.score, Decimal("0"))

    def test_score_above_total_marks_is_an_integrity_violation(self):
        self.answer(self.mcq, [1])
        self.engine.submit(self.attempt.pk, user=self.student)
        Exam.objects.filter(pk=self.exam.pk).update(total_marks=Decimal("1"))

        with self.assertRaises(IntegrityViolation):
            self.engine.evaluate(self.attempt.pk)

        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.status, ExamAttempt.Status.SUBMITTED)

    def test_review_awards_marks_and_rescores_evaluated_attempt(self):
        answer = self.answer(self.descriptive, "A lock around the interpreter.")
        self.answer(self.true_false, True)
        self.engine.submit(self.attempt.pk, user=self.student)
        self.engine.evaluate(self.attempt.pk)

        reviewed = self.engine.review_answer(answer.pk, 4, "Good, but incomplete.", self.instructor)

        self.assertEqual(reviewed.review_status, Answer.ReviewStatus.REVIEWED)
        self.assertFalse(reviewed.is_correct)
        self.assertEqual(reviewed.reviewed_by, self.instructor)
        self.attempt.refresh_from_db()
        self.assertEqual(self.attempt.score, Decimal("7"))

    def test_review_cannot_exceed_question_marks(self):
        answer = self.answer(self.descriptive, "Something.")
        self.engine.submit(self.attempt.pk, user=self.student)

        with self.assertRaises(MarksExceedQuestion):
            self.engine.review_answer(answer.pk, 6, "", self.instructor)

    def test_answers_in_progress_cannot_be_reviewed(self):
        answer = self.answer(self.descriptive, "Something.")
        with self.assertRaises(StateConflict):
            self.engine.review_answer(answer.pk, 2, "", self.instructor)

    def test_result_hidden_until_evaluated(self):
        self.answer(self.true_false, True)
        self.engine.submit(self.attempt.pk, user=self.student)

        result = self.engine.attempt_result(self.engine.get_attempt(self.attempt.pk))
        self.assertNotIn("score", result)

        attempt = self.engine.evaluate(self.attempt.pk)
        result = self.engine.attempt_result(attempt)
        self.assertEqual(result["score"], Decimal("3"))
        self.assertEqual(len(result["answers"]), 1)
        self.assertTrue(result["passed"])

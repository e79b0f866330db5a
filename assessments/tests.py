from datetime import datetime, timedelta, timezone as dt_timezone
from decimal import Decimal
from io import StringIO
from types import SimpleNamespace
from unittest.mock import patch

from django.contrib.auth import get_user_model
from django.core.management import call_command
from django.db import IntegrityError, transaction
from django.test import SimpleTestCase, TestCase
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APIClient

from cores.models import AuditLog
from exams.models import Exam, Question

from .exceptions import (
    AttemptAlreadyActive,
    AttemptExpired,
    AttemptNotActive,
    AttemptNotFinished,
    AttemptNotFound,
    AttemptNotOwnedByStudent,
    ExamNotEligible,
    ExamNotFound,
    InvalidAnswer,
)
from .grading import (
    ExactMatchGrader,
    ManualGrader,
    SetMatchGrader,
    grade_answer,
    grader_for,
    parse_choice_set,
    register_grader,
    GRADERS,
)
from .models import AnswerSubmission, AttemptStatus, ExamAttempt, GradingStatus
from .services import Availability, ExamAttemptService, percentage_of
from .statistics import ExamStatisticsService, grade_band
from .state import effective_status, remaining_seconds

User = get_user_model()

T0 = datetime(2026, 3, 2, 9, 0, tzinfo=dt_timezone.utc)
PASSWORD = 'Str0ngPass!2026'


class FrozenClock:
    def __init__(self, moment):
        self.moment = moment

    def __call__(self):
        return self.moment

    def advance(self, **kwargs):
        self.moment += timedelta(**kwargs)


def make_user(email, **extra):
    return User.objects.create_user(username=email.split('@')[0], email=email, password=PASSWORD, **extra)


def make_exam(**overrides):
    data = {
        'title': 'Geography 101',
        'duration_minutes': 60,
        'available_from': T0 - timedelta(days=1),
        'available_until': T0 + timedelta(days=1),
        'max_attempts': 3,
        'pass_mark_percentage': 50,
        'is_active': True,
    }
    data.update(overrides)
    return Exam.objects.create(**data)


# (type, correct answer) for five auto-graded questions worth 20 points each
AUTO_GRADED = [
    (Question.QuestionType.SINGLE_CHOICE, 'B'),
    (Question.QuestionType.MULTIPLE_CHOICE, 'A,C'),
    (Question.QuestionType.TRUE_FALSE, 'True'),
    (Question.QuestionType.SHORT_ANSWER, 'Paris'),
    (Question.QuestionType.FILL_BLANK, 'photosynthesis'),
]


def add_questions(exam, specs, points=Decimal('20')):
    questions = []
    for order, (q_type, correct) in enumerate(specs, start=1):
        questions.append(Question.objects.create(
            exam=exam,
            order_number=order,
            text=f"Question {order}",
            question_type=q_type,
            options=['A', 'B', 'C', 'D'],
            points=points,
            correct_answer=correct,
        ))
    return questions


class ClockMixin:
    def start_clock(self, moment=T0):
        self.clock = FrozenClock(moment)
        patcher = patch('django.utils.timezone.now', self.clock)
        patcher.start()
        self.addCleanup(patcher.stop)


# ============================================================
# Pure pieces
# ============================================================

class GradingTestCase(SimpleTestCase):
    def question(self, q_type, correct, points='5'):
        return Question(question_type=q_type, correct_answer=correct, points=Decimal(points))

    def test_exact_match_ignores_case_and_surrounding_whitespace(self):
        q = self.question(Question.QuestionType.SHORT_ANSWER, 'Paris')
        outcome = grade_answer(q, '  pARIS ')
        self.assertEqual(outcome.status, GradingStatus.CORRECT)
        self.assertEqual(outcome.awarded_points, Decimal('5'))
        self.assertTrue(outcome.is_correct)

    def test_exact_match_wrong_answer_awards_zero(self):
        q = self.question(Question.QuestionType.SINGLE_CHOICE, 'B')
        outcome = grade_answer(q, 'C')
        self.assertEqual(outcome.status, GradingStatus.INCORRECT)
        self.assertEqual(outcome.awarded_points, Decimal('0'))
        self.assertFalse(outcome.is_correct)

    def test_blank_correct_answer_never_matches(self):
        q = self.question(Question.QuestionType.FILL_BLANK, '   ')
        self.assertEqual(grade_answer(q, '').status, GradingStatus.INCORRECT)

    def test_set_match_is_order_independent(self):
        q = self.question(Question.QuestionType.MULTIPLE_CHOICE, 'A,C')
        self.assertEqual(grade_answer(q, 'c, a').status, GradingStatus.CORRECT)
        self.assertEqual(grade_answer(q, '["C", "A"]').status, GradingStatus.CORRECT)

    def test_set_match_has_no_partial_credit(self):
        q = self.question(Question.QuestionType.MULTIPLE_CHOICE, '["A", "C"]')
        self.assertEqual(grade_answer(q, 'A').status, GradingStatus.INCORRECT)
        self.assertEqual(grade_answer(q, 'A,B,C').status, GradingStatus.INCORRECT)

    def test_essay_is_pending_without_points(self):
        q = self.question(Question.QuestionType.ESSAY, '')
        outcome = grade_answer(q, 'A long essay')
        self.assertEqual(outcome.status, GradingStatus.PENDING)
        self.assertIsNone(outcome.awarded_points)
        self.assertIsNone(outcome.is_correct)

    def test_parse_choice_set(self):
        self.assertEqual(parse_choice_set(' b , A ,, '), frozenset({'a', 'b'}))
        self.assertEqual(parse_choice_set('["x", "Y"]'), frozenset({'x', 'y'}))
        self.assertEqual(parse_choice_set('[not json'), frozenset({'[not json'}))
        self.assertEqual(parse_choice_set(None), frozenset())

    def test_dispatch_by_question_type(self):
        self.assertIsInstance(grader_for(Question.QuestionType.TRUE_FALSE), ExactMatchGrader)
        self.assertIsInstance(grader_for(Question.QuestionType.MULTIPLE_CHOICE), SetMatchGrader)
        self.assertIsInstance(grader_for(Question.QuestionType.ESSAY), ManualGrader)
        self.assertIsInstance(grader_for('drawing'), ManualGrader)

    def test_register_grader_adds_a_type(self):
        self.addCleanup(GRADERS.pop, 'numeric', None)

        class NumericGrader(ExactMatchGrader):
            def matches(self, correct_answer, answer_text):
                return float(correct_answer) == float(answer_text)

        register_grader('numeric', NumericGrader())
        q = self.question('numeric', '2.50')
        self.assertEqual(grade_answer(q, '2.5').status, GradingStatus.CORRECT)


class EffectiveStatusTestCase(SimpleTestCase):
    def attempt(self, stored, end_time=T0 + timedelta(minutes=60)):
        return SimpleNamespace(status=stored, end_time=end_time)

    def test_no_attempt_is_not_started(self):
        self.assertEqual(effective_status(None, T0), AttemptStatus.NOT_STARTED)

    def test_in_progress_before_deadline(self):
        attempt = self.attempt(AttemptStatus.IN_PROGRESS)
        self.assertEqual(effective_status(attempt, T0), AttemptStatus.IN_PROGRESS)
        self.assertEqual(effective_status(attempt, T0 + timedelta(minutes=60)), AttemptStatus.IN_PROGRESS)

    def test_in_progress_after_deadline_is_expired(self):
        attempt = self.attempt(AttemptStatus.IN_PROGRESS)
        self.assertEqual(effective_status(attempt, T0 + timedelta(minutes=60, seconds=1)), AttemptStatus.EXPIRED)

    def test_finished_stays_finished(self):
        attempt = self.attempt(AttemptStatus.FINISHED)
        self.assertEqual(effective_status(attempt, T0 + timedelta(days=2)), AttemptStatus.FINISHED)

    def test_remaining_seconds(self):
        attempt = self.attempt(AttemptStatus.IN_PROGRESS)
        self.assertEqual(remaining_seconds(attempt, T0 + timedelta(minutes=10)), 3000)
        self.assertEqual(remaining_seconds(attempt, T0 + timedelta(hours=2)), 0)
        self.assertEqual(remaining_seconds(self.attempt(AttemptStatus.FINISHED), T0), 0)


class PercentageTestCase(SimpleTestCase):
    def test_rounds_half_up_to_two_places(self):
        self.assertEqual(percentage_of(1, 3), Decimal('33.33'))
        self.assertEqual(percentage_of(2, 3), Decimal('66.67'))
        self.assertEqual(percentage_of(1, 800), Decimal('0.13'))
        self.assertEqual(percentage_of(3, 5), Decimal('60.00'))

    def test_empty_whole_is_zero(self):
        self.assertEqual(percentage_of(0, 0), Decimal('0.00'))


# ============================================================
# Workflow
# ============================================================

class WorkflowTestCase(ClockMixin, TestCase):
    def setUp(self):
        self.start_clock()
        self.student = make_user('student@example.com')
        self.other = make_user('other@example.com')
        self.exam = make_exam()
        self.questions = add_questions(self.exam, AUTO_GRADED)

    def start(self, student=None, exam=None):
        return ExamAttemptService.start_attempt(
            exam_id=(exam or self.exam).pk, student_id=(student or self.student).pk,
        )

    def submit(self, attempt_id, question, answer, student=None):
        return ExamAttemptService.submit_answer(
            attempt_id=attempt_id,
            student_id=(student or self.student).pk,
            question_id=question.pk,
            answer_text=answer,
        )


class StartAttemptTestCase(WorkflowTestCase):
    def test_start_creates_in_progress_attempt(self):
        session = self.start()
        attempt = ExamAttempt.objects.get(pk=session.attempt_id)
        self.assertEqual(attempt.status, AttemptStatus.IN_PROGRESS)
        self.assertEqual(attempt.start_time, T0)
        self.assertEqual(attempt.end_time, T0 + timedelta(minutes=60))
        self.assertEqual(attempt.attempt_number, 1)
        self.assertEqual(session.status, AttemptStatus.IN_PROGRESS)
        self.assertEqual(session.remaining_seconds, 3600)
        self.assertEqual(session.total_questions, 5)
        self.assertTrue(AuditLog.objects.filter(action=AuditLog.Action.START_EXAM, actor=self.student).exists())

    def test_end_time_is_capped_by_exam_window(self):
        exam = make_exam(available_until=T0 + timedelta(minutes=25))
        session = self.start(exam=exam)
        self.assertEqual(session.end_time, T0 + timedelta(minutes=25))

    def test_second_start_is_rejected_while_active(self):
        self.start()
        with self.assertRaises(AttemptAlreadyActive):
            self.start()
        self.assertEqual(
            ExamAttempt.objects.filter(student=self.student, exam=self.exam, status=AttemptStatus.IN_PROGRESS).count(), 1,
        )

    def test_racing_start_is_rejected_by_the_unique_constraint(self):
        self.start()
        # The second request did not see the first one's row before inserting
        with patch.object(ExamAttemptService, '_find_active_attempt', return_value=None):
            with self.assertRaises(AttemptAlreadyActive):
                self.start()
        self.assertEqual(ExamAttempt.objects.filter(student=self.student, exam=self.exam).count(), 1)

    def test_database_refuses_two_active_attempts(self):
        self.start()
        with self.assertRaises(IntegrityError):
            with transaction.atomic():
                ExamAttempt.objects.create(
                    exam=self.exam, student=self.student, status=AttemptStatus.IN_PROGRESS,
                    start_time=T0, end_time=T0 + timedelta(minutes=60),
                )

    def test_other_students_start_independently(self):
        self.start()
        self.start(student=self.other)
        self.assertEqual(ExamAttempt.objects.filter(exam=self.exam, status=AttemptStatus.IN_PROGRESS).count(), 2)

    def test_unknown_exam(self):
        with self.assertRaises(ExamNotFound):
            ExamAttemptService.start_attempt(exam_id=999999, student_id=self.student.pk)

    def test_unpublished_exam_is_not_eligible(self):
        with self.assertRaisesMessage(ExamNotEligible, "not published"):
            self.start(exam=make_exam(is_active=False))

    def test_outside_window_is_not_eligible(self):
        with self.assertRaisesMessage(ExamNotEligible, "not started yet"):
            self.start(exam=make_exam(available_from=T0 + timedelta(hours=1)))
        with self.assertRaisesMessage(ExamNotEligible, "has ended"):
            self.start(exam=make_exam(available_until=T0 - timedelta(minutes=1)))

    def test_max_attempts(self):
        exam = make_exam(max_attempts=1)
        session = self.start(exam=exam)
        ExamAttemptService.finish_attempt(attempt_id=session.attempt_id, student_id=self.student.pk)
        with self.assertRaisesMessage(ExamNotEligible, "Maximum number of attempts"):
            self.start(exam=exam)

    def test_overdue_active_attempt_does_not_block_a_new_one(self):
        first = self.start()
        self.clock.advance(minutes=61)
        second = self.start()

        stale = ExamAttempt.objects.get(pk=first.attempt_id)
        self.assertEqual(stale.status, AttemptStatus.FINISHED)
        self.assertTrue(stale.timed_out)
        self.assertEqual(second.attempt_number, 2)
        self.assertEqual(second.end_time, T0 + timedelta(minutes=121))


class GetQuestionsTestCase(WorkflowTestCase):
    def test_questions_come_in_sequence_with_prior_answers(self):
        exam = make_exam(title='Ordered')
        third = Question.objects.create(exam=exam, order_number=3, text='third', correct_answer='x')
        first = Question.objects.create(exam=exam, order_number=1, text='first', correct_answer='y')
        second = Question.objects.create(exam=exam, order_number=2, text='second', correct_answer='z')
        session = self.start(exam=exam)
        self.submit(session.attempt_id, second, 'my answer')

        questions = ExamAttemptService.get_questions(
            exam_id=exam.pk, student_id=self.student.pk, attempt_id=session.attempt_id,
        )
        self.assertEqual([q.question_id for q in questions], [first.pk, second.pk, third.pk])
        self.assertEqual([q.answered for q in questions], [False, True, False])
        self.assertEqual(questions[1].answer_text, 'my answer')
        self.assertFalse(hasattr(questions[0], 'correct_answer'))

        again = ExamAttemptService.get_questions(
            exam_id=exam.pk, student_id=self.student.pk, attempt_id=session.attempt_id,
        )
        self.assertEqual(again, questions)

    def test_other_students_attempt_is_forbidden(self):
        session = self.start()
        with self.assertRaises(AttemptNotOwnedByStudent):
            ExamAttemptService.get_questions(
                exam_id=self.exam.pk, student_id=self.other.pk, attempt_id=session.attempt_id,
            )

    def test_attempt_of_another_exam_is_not_found(self):
        session = self.start()
        with self.assertRaises(AttemptNotFound):
            ExamAttemptService.get_questions(
                exam_id=make_exam().pk, student_id=self.student.pk, attempt_id=session.attempt_id,
            )

    def test_unknown_attempt(self):
        with self.assertRaises(AttemptNotFound):
            ExamAttemptService.get_questions(exam_id=self.exam.pk, student_id=self.student.pk, attempt_id=424242)

    def test_finished_attempt_is_not_active(self):
        session = self.start()
        ExamAttemptService.finish_attempt(attempt_id=session.attempt_id, student_id=self.student.pk)
        with self.assertRaises(AttemptNotActive):
            ExamAttemptService.get_questions(
                exam_id=self.exam.pk, student_id=self.student.pk, attempt_id=session.attempt_id,
            )

    def test_overdue_attempt_is_expired_on_read(self):
        session = self.start()
        self.clock.advance(minutes=90)
        with self.assertRaises(AttemptNotActive):
            ExamAttemptService.get_questions(
                exam_id=self.exam.pk, student_id=self.student.pk, attempt_id=session.attempt_id,
            )
        attempt = ExamAttempt.objects.get(pk=session.attempt_id)
        self.assertEqual(attempt.status, AttemptStatus.FINISHED)
        self.assertEqual(attempt.finish_time, attempt.end_time)


class SubmitAnswerTestCase(WorkflowTestCase):
    def setUp(self):
        super().setUp()
        self.attempt_id = self.start().attempt_id

    def test_auto_graded_answers_are_graded_immediately(self):
        single, multiple, true_false, short, _ = self.questions
        self.clock.advance(minutes=2)

        result = self.submit(self.attempt_id, single, 'b')
        self.assertEqual(result.grading_status, GradingStatus.CORRECT)
        self.assertEqual(result.awarded_points, Decimal('20'))
        self.assertEqual(result.submitted_at, T0 + timedelta(minutes=2))

        self.assertEqual(self.submit(self.attempt_id, multiple, 'C, A').grading_status, GradingStatus.CORRECT)
        self.assertEqual(self.submit(self.attempt_id, true_false, 'false').grading_status, GradingStatus.INCORRECT)
        self.assertEqual(self.submit(self.attempt_id, short, ' paris ').grading_status, GradingStatus.CORRECT)

    def test_essay_answers_wait_for_manual_grading(self):
        exam = make_exam(title='Essays')
        essay = Question.objects.create(exam=exam, order_number=1, text='Discuss.',
                                        question_type=Question.QuestionType.ESSAY, points=Decimal('10'))
        attempt_id = self.start(exam=exam).attempt_id
        result = self.submit(attempt_id, essay, 'It depends.')
        self.assertEqual(result.grading_status, GradingStatus.PENDING)
        self.assertIsNone(result.awarded_points)

    def test_resubmission_overwrites_the_earlier_answer(self):
        single = self.questions[0]
        self.submit(self.attempt_id, single, 'A')
        self.clock.advance(minutes=1)
        self.submit(self.attempt_id, single, 'B')

        answers = AnswerSubmission.objects.filter(attempt_id=self.attempt_id, question=single)
        self.assertEqual(answers.count(), 1)
        answer = answers.get()
        self.assertEqual(answer.answer_text, 'B')
        self.assertEqual(answer.grading_status, GradingStatus.CORRECT)
        self.assertEqual(answer.submitted_at, T0 + timedelta(minutes=1))

    def test_older_submission_does_not_overwrite_a_newer_one(self):
        single = self.questions[0]
        self.clock.advance(minutes=5)
        self.submit(self.attempt_id, single, 'B')
        self.clock.moment = T0 + timedelta(minutes=4)
        self.submit(self.attempt_id, single, 'A')
        answer = AnswerSubmission.objects.get(attempt_id=self.attempt_id, question=single)
        self.assertEqual(answer.answer_text, 'B')

    def test_other_student_cannot_submit(self):
        with self.assertRaises(AttemptNotOwnedByStudent):
            self.submit(self.attempt_id, self.questions[0], 'B', student=self.other)
        self.assertFalse(AnswerSubmission.objects.exists())

    def test_question_from_another_exam_is_invalid(self):
        foreign = add_questions(make_exam(title='Other'), [(Question.QuestionType.SINGLE_CHOICE, 'A')])[0]
        with self.assertRaises(InvalidAnswer):
            self.submit(self.attempt_id, foreign, 'A')

    def test_missing_answer_is_invalid(self):
        with self.assertRaises(InvalidAnswer):
            self.submit(self.attempt_id, self.questions[0], None)

    def test_answers_after_deadline_are_rejected_and_attempt_is_finished(self):
        self.submit(self.attempt_id, self.questions[0], 'B')
        self.clock.advance(minutes=61)

        with self.assertRaises(AttemptExpired):
            self.submit(self.attempt_id, self.questions[1], 'A,C')

        attempt = ExamAttempt.objects.get(pk=self.attempt_id)
        self.assertEqual(attempt.status, AttemptStatus.FINISHED)
        self.assertTrue(attempt.timed_out)
        self.assertEqual(attempt.score, Decimal('20'))
        self.assertEqual(AnswerSubmission.objects.filter(attempt=attempt).count(), 1)

    def test_answers_after_finish_are_rejected(self):
        ExamAttemptService.finish_attempt(attempt_id=self.attempt_id, student_id=self.student.pk)
        with self.assertRaises(AttemptNotActive):
            self.submit(self.attempt_id, self.questions[0], 'B')

    def test_batch_submission_stores_every_answer(self):
        results = ExamAttemptService.submit_answers(
            attempt_id=self.attempt_id,
            student_id=self.student.pk,
            answers=[(self.questions[0].pk, 'B'), (self.questions[3].pk, 'Rome')],
        )
        self.assertEqual([r.grading_status for r in results], [GradingStatus.CORRECT, GradingStatus.INCORRECT])
        self.assertEqual(AnswerSubmission.objects.filter(attempt_id=self.attempt_id).count(), 2)

    def test_batch_with_an_invalid_question_stores_nothing(self):
        with self.assertRaises(InvalidAnswer):
            ExamAttemptService.submit_answers(
                attempt_id=self.attempt_id,
                student_id=self.student.pk,
                answers=[(self.questions[0].pk, 'B'), (987654, 'A')],
            )
        self.assertFalse(AnswerSubmission.objects.exists())

    def test_empty_batch_is_invalid(self):
        with self.assertRaises(InvalidAnswer):
            ExamAttemptService.submit_answers(attempt_id=self.attempt_id, student_id=self.student.pk, answers=[])

    def test_blank_answer_is_invalid_and_not_counted(self):
        with self.assertRaises(InvalidAnswer):
            self.submit(self.attempt_id, self.questions[3], '   ')
        progress = ExamAttemptService.get_progress(attempt_id=self.attempt_id, student_id=self.student.pk)
        self.assertEqual(progress.answered_questions, 0)


class FinishAndResultTestCase(WorkflowTestCase):
    def test_three_of_five_correct_scores_sixty(self):
        attempt_id = self.start().attempt_id
        single, multiple, true_false, short, _ = self.questions
        self.submit(attempt_id, single, 'B')
        self.submit(attempt_id, multiple, 'A,C')
        self.submit(attempt_id, true_false, 'TRUE')
        self.submit(attempt_id, short, 'London')
        self.clock.advance(minutes=10)

        result = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)

        self.assertEqual(result.status, AttemptStatus.FINISHED)
        self.assertEqual(result.score, Decimal('60'))
        self.assertEqual(result.max_score, Decimal('100'))
        self.assertEqual(result.percentage, Decimal('60.00'))
        self.assertTrue(result.passed)
        self.assertTrue(result.is_graded)
        self.assertFalse(result.timed_out)
        self.assertEqual(result.finish_time, T0 + timedelta(minutes=10))
        self.assertEqual(result.correct_answers, 3)
        self.assertEqual(result.total_questions, 5)
        self.assertEqual(
            [q.grading_status for q in result.questions],
            [GradingStatus.CORRECT, GradingStatus.CORRECT, GradingStatus.CORRECT, GradingStatus.INCORRECT, 'unanswered'],
        )
        self.assertTrue(all(q.correct_answer is None for q in result.questions))

        attempt = ExamAttempt.objects.get(pk=attempt_id)
        self.assertEqual(attempt.status, AttemptStatus.FINISHED)
        self.assertEqual(attempt.score, Decimal('60'))

    def test_finish_is_idempotent(self):
        attempt_id = self.start().attempt_id
        self.submit(attempt_id, self.questions[0], 'B')
        first = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        self.clock.advance(minutes=30)
        second = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)

        self.assertEqual(first, second)
        self.assertEqual(AuditLog.objects.filter(action=AuditLog.Action.FINISH_EXAM).count(), 1)

    def test_losing_a_finish_race_returns_the_winners_result(self):
        attempt_id = self.start().attempt_id
        self.submit(attempt_id, self.questions[0], 'B')
        stale = ExamAttempt.objects.get(pk=attempt_id)
        ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)

        # A second caller still holding the in-progress row
        self.assertFalse(ExamAttemptService._close(stale, now=T0, timed_out=False))
        self.assertEqual(stale.status, AttemptStatus.FINISHED)
        self.assertEqual(stale.score, Decimal('20'))

    def test_finish_by_another_student_is_forbidden(self):
        attempt_id = self.start().attempt_id
        with self.assertRaises(AttemptNotOwnedByStudent):
            ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.other.pk)
        self.assertEqual(ExamAttempt.objects.get(pk=attempt_id).status, AttemptStatus.IN_PROGRESS)

    def test_finish_after_deadline_stops_the_clock_at_the_deadline(self):
        attempt_id = self.start().attempt_id
        self.clock.advance(hours=3)
        result = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(result.finish_time, T0 + timedelta(minutes=60))
        self.assertTrue(result.timed_out)

    def test_pending_essays_hold_back_pass_fail(self):
        exam = make_exam(title='Mixed')
        auto, essay = add_questions(exam, [
            (Question.QuestionType.SINGLE_CHOICE, 'A'),
            (Question.QuestionType.ESSAY, ''),
        ], points=Decimal('10'))
        attempt_id = self.start(exam=exam).attempt_id
        self.submit(attempt_id, auto, 'A')
        self.submit(attempt_id, essay, 'Thoughts')

        result = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(result.score, Decimal('10'))
        self.assertFalse(result.is_graded)
        self.assertIsNone(result.passed)
        self.assertEqual(result.questions[1].grading_status, GradingStatus.PENDING)
        self.assertIsNone(result.questions[1].awarded_points)

    def test_correct_answers_are_revealed_when_the_exam_allows_it(self):
        exam = make_exam(title='Open book', show_correct_answers=True)
        add_questions(exam, [(Question.QuestionType.SHORT_ANSWER, 'Paris')])
        attempt_id = self.start(exam=exam).attempt_id
        result = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(result.questions[0].correct_answer, 'Paris')
        self.assertFalse(result.passed)

    def test_result_of_active_attempt_is_not_available(self):
        attempt_id = self.start().attempt_id
        with self.assertRaises(AttemptNotFinished):
            ExamAttemptService.get_result(attempt_id=attempt_id, student_id=self.student.pk)

    def test_result_after_deadline_expires_lazily_with_zero_score(self):
        attempt_id = self.start().attempt_id
        self.clock.advance(minutes=61)

        result = ExamAttemptService.get_result(attempt_id=attempt_id, student_id=self.student.pk)

        self.assertEqual(result.status, AttemptStatus.FINISHED)
        self.assertEqual(result.score, Decimal('0'))
        self.assertTrue(result.timed_out)
        attempt = ExamAttempt.objects.get(pk=attempt_id)
        self.assertEqual(attempt.status, AttemptStatus.FINISHED)
        self.assertTrue(AuditLog.objects.filter(action=AuditLog.Action.EXPIRE_EXAM).exists())

    def test_result_matches_finish(self):
        attempt_id = self.start().attempt_id
        self.submit(attempt_id, self.questions[1], 'A,C')
        finished = ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(ExamAttemptService.get_result(attempt_id=attempt_id, student_id=self.student.pk), finished)

    def test_result_of_another_student_is_forbidden(self):
        attempt_id = self.start().attempt_id
        ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=self.student.pk)
        with self.assertRaises(AttemptNotOwnedByStudent):
            ExamAttemptService.get_result(attempt_id=attempt_id, student_id=self.other.pk)


class ProgressAndStatusTestCase(WorkflowTestCase):
    def test_progress_counts_answered_questions(self):
        attempt_id = self.start().attempt_id
        self.submit(attempt_id, self.questions[0], 'A')
        self.submit(attempt_id, self.questions[0], 'B')
        self.submit(attempt_id, self.questions[4], 'x')

        progress = ExamAttemptService.get_progress(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(progress.total_questions, 5)
        self.assertEqual(progress.answered_questions, 2)
        self.assertEqual(progress.unanswered_questions, 3)
        self.assertEqual(progress.answered_questions + progress.unanswered_questions, progress.total_questions)
        self.assertEqual(progress.progress_percentage, Decimal('40.00'))

    def test_progress_percentage_rounds_half_up(self):
        exam = make_exam(title='Thirds')
        questions = add_questions(exam, [(Question.QuestionType.SINGLE_CHOICE, 'A')] * 3)
        attempt_id = self.start(exam=exam).attempt_id
        self.submit(attempt_id, questions[0], 'A')
        self.submit(attempt_id, questions[1], 'A')
        progress = ExamAttemptService.get_progress(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(progress.progress_percentage, Decimal('66.67'))

    def test_progress_of_exam_without_questions(self):
        attempt_id = self.start(exam=make_exam(title='Empty')).attempt_id
        progress = ExamAttemptService.get_progress(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(progress.total_questions, 0)
        self.assertEqual(progress.progress_percentage, Decimal('0.00'))

    def test_progress_after_deadline_expires_the_attempt(self):
        attempt_id = self.start().attempt_id
        self.clock.advance(minutes=75)
        ExamAttemptService.get_progress(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(ExamAttempt.objects.get(pk=attempt_id).status, AttemptStatus.FINISHED)

    def test_session_status_reports_remaining_time(self):
        attempt_id = self.start().attempt_id
        self.clock.advance(minutes=10)
        session = ExamAttemptService.get_session_status(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(session.status, AttemptStatus.IN_PROGRESS)
        self.assertEqual(session.remaining_seconds, 3000)
        self.assertEqual(session.current_time, T0 + timedelta(minutes=10))

        self.clock.advance(minutes=60)
        session = ExamAttemptService.get_session_status(attempt_id=attempt_id, student_id=self.student.pk)
        self.assertEqual(session.status, AttemptStatus.FINISHED)
        self.assertEqual(session.remaining_seconds, 0)
        self.assertTrue(session.timed_out)


class ExpiryAndListingTestCase(WorkflowTestCase):
    def test_expire_overdue_attempts_only_touches_overdue_ones(self):
        overdue = self.start().attempt_id
        late = self.start(student=self.other).attempt_id
        self.clock.advance(minutes=61)
        fresh = self.start(student=make_user('third@example.com')).attempt_id

        self.assertEqual(ExamAttemptService.expire_overdue_attempts(), 2)
        self.assertEqual(ExamAttemptService.expire_overdue_attempts(), 0)

        statuses = dict(ExamAttempt.objects.values_list('pk', 'status'))
        self.assertEqual(statuses[overdue], AttemptStatus.FINISHED)
        self.assertEqual(statuses[late], AttemptStatus.FINISHED)
        self.assertEqual(statuses[fresh], AttemptStatus.IN_PROGRESS)

    def test_expire_attempts_command(self):
        self.start()
        self.clock.advance(hours=2)
        out = StringIO()
        call_command('expire_attempts', stdout=out)
        self.assertIn('Expired 1 overdue attempt(s)', out.getvalue())

    def test_history_reflects_expiry(self):
        self.start()
        self.clock.advance(hours=2)
        history = list(ExamAttemptService.get_history(student_id=self.student.pk))
        self.assertEqual(len(history), 1)
        self.assertEqual(history[0].status, AttemptStatus.FINISHED)
        self.assertTrue(history[0].timed_out)

    def test_available_exams_respect_publication_and_window(self):
        make_exam(title='Draft', is_active=False)
        make_exam(title='Later', available_from=T0 + timedelta(days=1))
        make_exam(title='Past', available_until=T0 - timedelta(days=1))
        open_ended = make_exam(title='Anytime', available_from=None, available_until=None)

        titles = set(ExamAttemptService.list_available_exams().values_list('title', flat=True))
        self.assertEqual(titles, {self.exam.title, open_ended.title})

    def test_exam_info_availability(self):
        info = ExamAttemptService.get_exam_info(exam_id=self.exam.pk, student_id=self.student.pk)
        self.assertEqual(info.availability, Availability.AVAILABLE)
        self.assertEqual(info.attempts_remaining, 3)

        session = self.start()
        info = ExamAttemptService.get_exam_info(exam_id=self.exam.pk, student_id=self.student.pk)
        self.assertEqual(info.availability, Availability.IN_PROGRESS)
        self.assertEqual(info.active_attempt_id, session.attempt_id)

        later = make_exam(title='Later', available_from=T0 + timedelta(hours=1))
        info = ExamAttemptService.get_exam_info(exam_id=later.pk, student_id=self.student.pk)
        self.assertEqual(info.availability, Availability.NOT_STARTED)

        past = make_exam(title='Past', available_until=T0 - timedelta(hours=1))
        info = ExamAttemptService.get_exam_info(exam_id=past.pk, student_id=self.student.pk)
        self.assertEqual(info.availability, Availability.ENDED)

    def test_exam_info_after_all_attempts(self):
        exam = make_exam(title='Once', max_attempts=1)
        session = self.start(exam=exam)
        ExamAttemptService.finish_attempt(attempt_id=session.attempt_id, student_id=self.student.pk)
        info = ExamAttemptService.get_exam_info(exam_id=exam.pk, student_id=self.student.pk)
        self.assertEqual(info.availability, Availability.MAX_ATTEMPTS_REACHED)
        self.assertEqual(info.attempts_remaining, 0)

    def test_exam_info_hides_unpublished_exams(self):
        with self.assertRaises(ExamNotFound):
            ExamAttemptService.get_exam_info(exam_id=make_exam(is_active=False).pk, student_id=self.student.pk)


# ============================================================
# HTTP
# ============================================================

class StudentExamApiTestCase(ClockMixin, TestCase):
    def setUp(self):
        self.start_clock()
        self.client = APIClient()
        self.student = make_user('student@example.com')
        self.other = make_user('other@example.com')
        self.exam = make_exam()
        self.questions = add_questions(self.exam, AUTO_GRADED)
        self.client.force_authenticate(user=self.student)

    def start(self):
        response = self.client.post(reverse('start-exam', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_201_CREATED)
        return response.data['attempt_id']

    def test_unauthenticated_requests_are_rejected(self):
        response = APIClient().post(reverse('start-exam', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_401_UNAUTHORIZED)
        self.assertEqual(response.data['kind'], 'unauthenticated')

    def test_start_twice_conflicts(self):
        self.start()
        response = self.client.post(reverse('start-exam', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)
        self.assertEqual(response.data['kind'], 'invalid_state')
        self.assertIn('already in progress', response.data['error'])

    def test_start_unknown_exam(self):
        response = self.client.post(reverse('start-exam', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)
        self.assertEqual(response.data['kind'], 'not_found')

    def test_questions_never_include_correct_answers(self):
        attempt_id = self.start()
        response = self.client.get(reverse('exam-questions', args=[self.exam.pk]), {'attempt_id': attempt_id})
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 5)
        for question in response.data:
            self.assertNotIn('correct_answer', question)
        self.assertEqual([q['order_number'] for q in response.data], [1, 2, 3, 4, 5])

    def test_questions_require_attempt_id(self):
        response = self.client.get(reverse('exam-questions', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertIn('attempt_id', response.data['fields'])

    def test_submit_answer(self):
        attempt_id = self.start()
        response = self.client.post(
            reverse('submit-answer', args=[attempt_id]),
            {'question_id': self.questions[0].pk, 'answer': 'B'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['grading_status'], GradingStatus.CORRECT)
        self.assertEqual(response.data['awarded_points'], '20.00')

    def test_submit_to_another_students_attempt_is_forbidden(self):
        attempt_id = self.start()
        self.client.force_authenticate(user=self.other)
        response = self.client.post(
            reverse('submit-answer', args=[attempt_id]),
            {'question_id': self.questions[0].pk, 'answer': 'B'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        self.assertEqual(response.data['kind'], 'forbidden')

    def test_submit_after_deadline_is_gone(self):
        attempt_id = self.start()
        self.clock.advance(minutes=61)
        response = self.client.post(
            reverse('submit-answer', args=[attempt_id]),
            {'question_id': self.questions[0].pk, 'answer': 'B'},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_410_GONE)
        self.assertEqual(response.data['kind'], 'expired')

    def test_submit_without_answer_is_a_validation_error(self):
        attempt_id = self.start()
        response = self.client.post(
            reverse('submit-answer', args=[attempt_id]), {'question_id': self.questions[0].pk}, format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('answer', response.data['fields'])

    def test_empty_answer_is_a_validation_error(self):
        attempt_id = self.start()
        response = self.client.post(
            reverse('submit-answer', args=[attempt_id]),
            {'question_id': self.questions[0].pk, 'answer': ''},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(response.data['kind'], 'validation_error')
        self.assertFalse(AnswerSubmission.objects.exists())

    def test_batch_rejects_duplicate_questions(self):
        attempt_id = self.start()
        response = self.client.post(
            reverse('submit-answers-batch', args=[attempt_id]),
            {'answers': [
                {'question_id': self.questions[0].pk, 'answer': 'A'},
                {'question_id': self.questions[0].pk, 'answer': 'B'},
            ]},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_full_attempt(self):
        attempt_id = self.start()
        response = self.client.post(
            reverse('submit-answers-batch', args=[attempt_id]),
            {'answers': [
                {'question_id': self.questions[0].pk, 'answer': 'B'},
                {'question_id': self.questions[1].pk, 'answer': 'C,A'},
                {'question_id': self.questions[2].pk, 'answer': 'true'},
            ]},
            format='json',
        )
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(len(response.data), 3)

        response = self.client.get(reverse('exam-result', args=[attempt_id]))
        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

        progress = self.client.get(reverse('exam-progress', args=[attempt_id])).data
        self.assertEqual(progress['answered_questions'], 3)
        self.assertEqual(progress['progress_percentage'], '60.00')

        self.clock.advance(minutes=10)
        finished = self.client.post(reverse('finish-exam', args=[attempt_id]))
        self.assertEqual(finished.status_code, status.HTTP_200_OK)
        self.assertEqual(finished.data['score'], '60.00')
        self.assertEqual(finished.data['status'], AttemptStatus.FINISHED)
        self.assertTrue(finished.data['passed'])

        again = self.client.post(reverse('finish-exam', args=[attempt_id]))
        self.assertEqual(again.data, finished.data)

        result = self.client.get(reverse('exam-result', args=[attempt_id]))
        self.assertEqual(result.data, finished.data)

        history = self.client.get(reverse('student-attempts'))
        self.assertEqual(history.data[0]['id'], attempt_id)
        self.assertEqual(history.data[0]['score'], '60.00')

    def test_session_status_endpoint(self):
        attempt_id = self.start()
        response = self.client.get(reverse('session-status', args=[attempt_id]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['remaining_seconds'], 3600)

    def test_available_exams_and_exam_info(self):
        response = self.client.get(reverse('available-exams'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual([e['id'] for e in response.data], [self.exam.pk])

        response = self.client.get(reverse('exam-info', args=[self.exam.pk]))
        self.assertEqual(response.data['availability'], Availability.AVAILABLE)
        self.assertEqual(response.data['exam']['total_questions'], 5)


# ============================================================
# Admin statistics
# ============================================================

CORRECT_ANSWERS = [correct for _, correct in AUTO_GRADED]


class GradeBandTestCase(SimpleTestCase):
    def test_bands(self):
        self.assertEqual(grade_band(Decimal('100.00')), 'A')
        self.assertEqual(grade_band(Decimal('90.00')), 'A')
        self.assertEqual(grade_band(Decimal('89.99')), 'B')
        self.assertEqual(grade_band(Decimal('60.00')), 'D')
        self.assertEqual(grade_band(Decimal('59.99')), 'F')
        self.assertEqual(grade_band(None), 'F')


class ExamStatisticsTestCase(WorkflowTestCase):
    def take_exam(self, student, correct_count):
        attempt_id = self.start(student=student).attempt_id
        answers = [
            (q.pk, CORRECT_ANSWERS[i] if i < correct_count else 'wrong')
            for i, q in enumerate(self.questions)
        ]
        ExamAttemptService.submit_answers(attempt_id=attempt_id, student_id=student.pk, answers=answers)
        ExamAttemptService.finish_attempt(attempt_id=attempt_id, student_id=student.pk)
        return attempt_id

    def test_statistics_over_graded_attempts(self):
        self.take_exam(self.student, 3)
        best = self.take_exam(self.other, 5)
        self.take_exam(make_user('third@example.com'), 1)
        self.start(student=make_user('fourth@example.com'))

        stats = ExamStatisticsService.exam_statistics(exam_id=self.exam.pk, top=2)

        self.assertEqual(stats.total_attempts, 4)
        self.assertEqual(stats.in_progress_attempts, 1)
        self.assertEqual(stats.finished_attempts, 3)
        self.assertEqual(stats.graded_attempts, 3)
        self.assertEqual(stats.pending_grading, 0)
        self.assertEqual(stats.average_score, Decimal('60.00'))
        self.assertEqual(stats.highest_score, Decimal('100'))
        self.assertEqual(stats.lowest_score, Decimal('20'))
        self.assertEqual(stats.average_percentage, Decimal('60.00'))
        self.assertEqual(stats.passed_attempts, 2)
        self.assertEqual(stats.passing_rate, Decimal('66.67'))
        self.assertEqual(stats.grade_distribution, {'A': 1, 'B': 0, 'C': 0, 'D': 1, 'F': 1})
        self.assertEqual([t.attempt_id for t in stats.top_scores][0], best)
        self.assertEqual([t.student_email for t in stats.top_scores], ['other@example.com', 'student@example.com'])

    def test_statistics_expire_overdue_attempts_first(self):
        self.start()
        self.clock.advance(minutes=61)

        stats = ExamStatisticsService.exam_statistics(exam_id=self.exam.pk)

        self.assertEqual(stats.in_progress_attempts, 0)
        self.assertEqual(stats.graded_attempts, 1)
        self.assertEqual(stats.lowest_score, Decimal('0'))
        self.assertEqual(stats.grade_distribution['F'], 1)

    def test_exam_without_attempts(self):
        stats = ExamStatisticsService.exam_statistics(exam_id=self.exam.pk)
        self.assertEqual(stats.total_attempts, 0)
        self.assertIsNone(stats.average_score)
        self.assertEqual(stats.passing_rate, Decimal('0.00'))
        self.assertEqual(stats.top_scores, [])

    def test_unknown_exam(self):
        with self.assertRaises(ExamNotFound):
            ExamStatisticsService.exam_statistics(exam_id=999999)

    def test_attempts_with_pending_essays_need_grading(self):
        exam = make_exam(title='Essays')
        auto, essay = add_questions(exam, [
            (Question.QuestionType.SINGLE_CHOICE, 'A'),
            (Question.QuestionType.ESSAY, ''),
        ], points=Decimal('10'))

        pending_id = self.start(exam=exam).attempt_id
        self.submit(pending_id, auto, 'A')
        self.submit(pending_id, essay, 'My essay')
        ExamAttemptService.finish_attempt(attempt_id=pending_id, student_id=self.student.pk)

        graded_id = self.start(student=self.other, exam=exam).attempt_id
        self.submit(graded_id, auto, 'A', student=self.other)
        ExamAttemptService.finish_attempt(attempt_id=graded_id, student_id=self.other.pk)

        pending = list(ExamStatisticsService.attempts_needing_grading(exam_id=exam.pk))
        self.assertEqual([a.pk for a in pending], [pending_id])
        self.assertEqual(pending[0].pending_answers, 1)
        self.assertEqual(list(ExamStatisticsService.attempts_needing_grading(exam_id=self.exam.pk)), [])

        stats = ExamStatisticsService.exam_statistics(exam_id=exam.pk)
        self.assertEqual(stats.pending_grading, 1)
        self.assertEqual(stats.graded_attempts, 1)


class ExamStatisticsApiTestCase(ClockMixin, TestCase):
    def setUp(self):
        self.start_clock()
        self.client = APIClient()
        self.admin = make_user('admin@example.com', role=User.Role.ADMIN)
        self.student = make_user('student@example.com')
        self.exam = make_exam()
        self.questions = add_questions(self.exam, AUTO_GRADED)

        session = ExamAttemptService.start_attempt(exam_id=self.exam.pk, student_id=self.student.pk)
        ExamAttemptService.submit_answer(
            attempt_id=session.attempt_id, student_id=self.student.pk,
            question_id=self.questions[0].pk, answer_text='B',
        )
        ExamAttemptService.finish_attempt(attempt_id=session.attempt_id, student_id=self.student.pk)

    def test_admin_reads_exam_statistics(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('exam-statistics', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data['total_attempts'], 1)
        self.assertEqual(response.data['average_score'], '20.00')
        self.assertEqual(response.data['passing_rate'], '0.00')
        self.assertEqual(response.data['grade_distribution']['F'], 1)
        self.assertEqual(response.data['top_scores'][0]['student_email'], 'student@example.com')

    def test_students_cannot_read_statistics(self):
        self.client.force_authenticate(user=self.student)
        response = self.client.get(reverse('exam-statistics', args=[self.exam.pk]))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)
        response = self.client.get(reverse('attempts-needing-grading'))
        self.assertEqual(response.status_code, status.HTTP_403_FORBIDDEN)

    def test_bad_query_parameters_are_validation_errors(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('exam-statistics', args=[self.exam.pk]), {'top': 'many'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertIn('top', response.data['fields'])
        response = self.client.get(reverse('attempts-needing-grading'), {'exam_id': 'abc'})
        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_unknown_exam_statistics(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('exam-statistics', args=[999999]))
        self.assertEqual(response.status_code, status.HTTP_404_NOT_FOUND)

    def test_needs_grading_list(self):
        self.client.force_authenticate(user=self.admin)
        response = self.client.get(reverse('attempts-needing-grading'))
        self.assertEqual(response.status_code, status.HTTP_200_OK)
        self.assertEqual(response.data, [])

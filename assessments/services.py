# assessments/services.py
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, List, Optional, Tuple

from django.db import IntegrityError, transaction
from django.db.models import Q
from django.utils import timezone

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
from .grading import grade_answer
from .models import AnswerSubmission, AttemptStatus, ExamAttempt, GradingStatus
from .state import can_transition, effective_status, remaining_seconds

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal("0.01")
UNANSWERED = "unanswered"


def percentage_of(part, whole) -> Decimal:
    """``part / whole * 100`` rounded half-up to two places; 0 when ``whole`` is 0."""
    if not whole:
        return Decimal("0.00")
    return (Decimal(part) * 100 / Decimal(whole)).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


# ============================================================
# Read models returned to the HTTP layer
# ============================================================

@dataclass(frozen=True)
class AttemptSession:
    attempt_id: int
    exam_id: int
    exam_title: str
    attempt_number: int
    status: str
    start_time: datetime
    end_time: datetime
    remaining_seconds: int
    total_questions: int


@dataclass(frozen=True)
class StudentQuestion:
    question_id: int
    order_number: int
    question_type: str
    text: str
    options: list
    points: Decimal
    answer_text: Optional[str]
    answered: bool


@dataclass(frozen=True)
class AnswerResult:
    question_id: int
    answer_text: str
    grading_status: str
    awarded_points: Optional[Decimal]
    submitted_at: datetime


@dataclass(frozen=True)
class QuestionResult:
    question_id: int
    order_number: int
    question_type: str
    text: str
    points: Decimal
    answer_text: Optional[str]
    grading_status: str
    awarded_points: Optional[Decimal]
    correct_answer: Optional[str] = None


@dataclass(frozen=True)
class ExamResult:
    attempt_id: int
    exam_id: int
    exam_title: str
    status: str
    score: Decimal
    max_score: Decimal
    percentage: Decimal
    pass_mark_percentage: int
    passed: Optional[bool]
    is_graded: bool
    timed_out: bool
    start_time: datetime
    finish_time: datetime
    correct_answers: int
    total_questions: int
    questions: List[QuestionResult] = field(default_factory=list)


@dataclass(frozen=True)
class Progress:
    attempt_id: int
    total_questions: int
    answered_questions: int
    unanswered_questions: int
    progress_percentage: Decimal


@dataclass(frozen=True)
class SessionStatus:
    attempt_id: int
    exam_id: int
    status: str
    current_time: datetime
    end_time: datetime
    remaining_seconds: int
    timed_out: bool


@dataclass(frozen=True)
class ExamInfo:
    exam: Exam
    availability: str
    attempts_used: int
    attempts_remaining: int
    active_attempt_id: Optional[int]


class Availability:
    NOT_STARTED = "not_started"
    AVAILABLE = "available"
    IN_PROGRESS = "in_progress"
    ENDED = "ended"
    MAX_ATTEMPTS_REACHED = "max_attempts_reached"


class ExamAttemptService:
    """
    Student exam-attempt workflow: start -> questions -> answers -> finish -> result.

    Expiry is lazy: any operation that touches an attempt past its deadline
    first finishes it (``timed_out=True``) in its own transaction, then
    serves reads or rejects writes.
    """

    # -------------------------------------------------
    # Lookups
    # -------------------------------------------------

    @staticmethod
    def _get_owned_attempt(attempt_id: int, student_id: int, *, for_update: bool = False) -> ExamAttempt:
        qs = ExamAttempt.objects.all()
        if for_update:
            qs = qs.select_for_update()
        try:
            attempt = qs.get(pk=attempt_id)
        except ExamAttempt.DoesNotExist:
            raise AttemptNotFound()
        if attempt.student_id != student_id:
            logger.warning("Student %s tried to access attempt %s", student_id, attempt_id)
            raise AttemptNotOwnedByStudent()
        return attempt

    @staticmethod
    def _get_exam_question(attempt: ExamAttempt, question_id) -> Question:
        try:
            return Question.objects.get(pk=question_id, exam_id=attempt.exam_id)
        except (Question.DoesNotExist, ValueError, TypeError):
            raise InvalidAnswer(f"Question {question_id} is not part of this exam.")

    @staticmethod
    def _find_active_attempt(exam_id: int, student_id: int) -> Optional[ExamAttempt]:
        return ExamAttempt.objects.filter(
            exam_id=exam_id, student_id=student_id, status=AttemptStatus.IN_PROGRESS,
        ).first()

    @staticmethod
    def _exam_questions(exam_id: int):
        return Question.objects.filter(exam_id=exam_id).order_by('order_number', 'id')

    # -------------------------------------------------
    # Finishing / lazy expiry
    # -------------------------------------------------

    @staticmethod
    def _close(attempt: ExamAttempt, *, now: datetime, timed_out: bool) -> bool:
        """
        Score and finish an attempt. Compare-and-set on the stored status, so
        of two concurrent callers only one finishes it; the other gets False
        and ``attempt`` refreshed to the winner's result.
        """
        if not can_transition(effective_status(attempt, now), AttemptStatus.FINISHED):
            attempt.refresh_from_db()
            return False

        answers = list(attempt.answers.all())
        score = sum((a.awarded_points for a in answers if a.awarded_points is not None), Decimal("0"))
        is_graded = not any(a.grading_status == GradingStatus.PENDING for a in answers)
        percentage = percentage_of(score, attempt.exam.total_points)

        fields = {
            'status': AttemptStatus.FINISHED,
            'finish_time': min(now, attempt.end_time),
            'score': score,
            'percentage': percentage,
            # Pass/fail waits for manual grading of essay answers
            'passed': percentage >= attempt.exam.pass_mark_percentage if is_graded else None,
            'is_graded': is_graded,
            'timed_out': timed_out,
        }
        updated = ExamAttempt.objects.filter(
            pk=attempt.pk, status=AttemptStatus.IN_PROGRESS,
        ).update(**fields)
        if not updated:
            attempt.refresh_from_db()
            return False

        for name, value in fields.items():
            setattr(attempt, name, value)

        AuditLog.objects.create(
            actor_id=attempt.student_id,
            action=AuditLog.Action.EXPIRE_EXAM if timed_out else AuditLog.Action.FINISH_EXAM,
            target_model='ExamAttempt',
            target_object_id=str(attempt.pk),
            details=f"Score {score} ({percentage}%) on exam {attempt.exam_id}",
        )
        logger.info(
            "Attempt %s %s: score=%s percentage=%s",
            attempt.pk, "expired" if timed_out else "finished", score, percentage,
        )
        return True

    @classmethod
    def _expire(cls, attempt_pk: int, now: datetime) -> ExamAttempt:
        with transaction.atomic():
            attempt = ExamAttempt.objects.select_for_update().get(pk=attempt_pk)
            if effective_status(attempt, now) == AttemptStatus.EXPIRED:
                cls._close(attempt, now=now, timed_out=True)
        return attempt

    @classmethod
    def _settle_expiry(cls, attempt: ExamAttempt, now: datetime) -> ExamAttempt:
        """Materialize the finish of an overdue attempt before it is used."""
        if effective_status(attempt, now) != AttemptStatus.EXPIRED:
            return attempt
        return cls._expire(attempt.pk, now)

    @classmethod
    def expire_overdue_attempts(cls, now: Optional[datetime] = None, *,
                                student_id: Optional[int] = None, exam_id: Optional[int] = None) -> int:
        """Finish every in-progress attempt whose deadline has passed. Returns how many."""
        now = now or timezone.now()
        overdue = ExamAttempt.objects.filter(status=AttemptStatus.IN_PROGRESS, end_time__lt=now)
        if student_id is not None:
            overdue = overdue.filter(student_id=student_id)
        if exam_id is not None:
            overdue = overdue.filter(exam_id=exam_id)

        expired = 0
        for pk in list(overdue.values_list('pk', flat=True)):
            attempt = cls._expire(pk, now)
            if attempt.status == AttemptStatus.FINISHED and attempt.timed_out:
                expired += 1
        return expired

    # -------------------------------------------------
    # Start
    # -------------------------------------------------

    @classmethod
    def start_attempt(cls, *, exam_id: int, student_id: int) -> AttemptSession:
        now = timezone.now()
        try:
            exam = Exam.objects.get(pk=exam_id)
        except Exam.DoesNotExist:
            raise ExamNotFound()

        if not exam.is_active:
            raise ExamNotEligible("This exam is not published.")
        if exam.available_from and now < exam.available_from:
            raise ExamNotEligible("This exam has not started yet.")
        if exam.available_until and now > exam.available_until:
            raise ExamNotEligible("This exam has ended.")

        # A stale attempt past its deadline must not block a new one
        active = cls._find_active_attempt(exam.pk, student_id)
        if active is not None and cls._settle_expiry(active, now).status == AttemptStatus.IN_PROGRESS:
            raise AttemptAlreadyActive()

        used = ExamAttempt.objects.filter(exam=exam, student_id=student_id).count()
        if used >= exam.max_attempts:
            raise ExamNotEligible("Maximum number of attempts reached.")

        end_time = now + timedelta(minutes=exam.duration_minutes)
        if exam.available_until and exam.available_until < end_time:
            end_time = exam.available_until

        # The partial unique index on (student, exam, in_progress) is the real guard
        try:
            with transaction.atomic():
                attempt = ExamAttempt.objects.create(
                    exam=exam,
                    student_id=student_id,
                    attempt_number=used + 1,
                    status=AttemptStatus.IN_PROGRESS,
                    start_time=now,
                    end_time=end_time,
                )
                AuditLog.objects.create(
                    actor_id=student_id,
                    action=AuditLog.Action.START_EXAM,
                    target_model='ExamAttempt',
                    target_object_id=str(attempt.pk),
                    details=f"Started exam {exam.pk} (attempt #{attempt.attempt_number})",
                )
        except IntegrityError:
            logger.warning("Duplicate start for exam %s by student %s", exam.pk, student_id)
            raise AttemptAlreadyActive()

        logger.info("Student %s started exam %s, attempt %s until %s", student_id, exam.pk, attempt.pk, end_time)
        return cls._session(attempt, now)

    @classmethod
    def _session(cls, attempt: ExamAttempt, now: datetime) -> AttemptSession:
        return AttemptSession(
            attempt_id=attempt.pk,
            exam_id=attempt.exam_id,
            exam_title=attempt.exam.title,
            attempt_number=attempt.attempt_number,
            status=effective_status(attempt, now),
            start_time=attempt.start_time,
            end_time=attempt.end_time,
            remaining_seconds=remaining_seconds(attempt, now),
            total_questions=cls._exam_questions(attempt.exam_id).count(),
        )

    # -------------------------------------------------
    # Questions
    # -------------------------------------------------

    @classmethod
    def get_questions(cls, *, exam_id: int, student_id: int, attempt_id: int) -> List[StudentQuestion]:
        now = timezone.now()
        attempt = cls._get_owned_attempt(attempt_id, student_id)
        if attempt.exam_id != exam_id:
            raise AttemptNotFound("This attempt does not belong to the requested exam.")

        attempt = cls._settle_expiry(attempt, now)
        if effective_status(attempt, now) != AttemptStatus.IN_PROGRESS:
            raise AttemptNotActive()

        answers = {a.question_id: a for a in attempt.answers.all()}
        questions = []
        for question in cls._exam_questions(attempt.exam_id):
            answer = answers.get(question.pk)
            questions.append(StudentQuestion(
                question_id=question.pk,
                order_number=question.order_number,
                question_type=question.question_type,
                text=question.text,
                options=list(question.options or []),
                points=question.points,
                answer_text=answer.answer_text if answer else None,
                answered=answer is not None,
            ))
        return questions

    # -------------------------------------------------
    # Answers
    # -------------------------------------------------

    @classmethod
    def _ensure_accepting_answers(cls, attempt: ExamAttempt, now: datetime) -> None:
        state = effective_status(attempt, now)
        if state == AttemptStatus.EXPIRED:
            cls._settle_expiry(attempt, now)
            logger.warning("Rejected late answer for attempt %s", attempt.pk)
            raise AttemptExpired()
        if state != AttemptStatus.IN_PROGRESS:
            raise AttemptNotActive()

    @staticmethod
    def _validate_answer_text(answer_text) -> str:
        if answer_text is None:
            raise InvalidAnswer("An answer is required.")
        if not isinstance(answer_text, str):
            raise InvalidAnswer("The answer must be text.")
        # Blank is not an answer; progress only counts real ones
        if not answer_text.strip():
            raise InvalidAnswer("The answer must not be blank.")
        return answer_text

    @staticmethod
    def _upsert_answer(attempt: ExamAttempt, question: Question, answer_text: str, now: datetime) -> AnswerSubmission:
        """Insert or overwrite the (attempt, question) answer; the later submission wins."""
        outcome = grade_answer(question, answer_text)
        values = {
            'answer_text': answer_text,
            'submitted_at': now,
            'grading_status': outcome.status,
            'is_correct': outcome.is_correct,
            'awarded_points': outcome.awarded_points,
        }

        submission = AnswerSubmission.objects.select_for_update().filter(
            attempt=attempt, question=question,
        ).first()
        if submission is None:
            try:
                with transaction.atomic():
                    return AnswerSubmission.objects.create(attempt=attempt, question=question, **values)
            except IntegrityError:
                submission = AnswerSubmission.objects.select_for_update().get(attempt=attempt, question=question)

        if submission.submitted_at > now:
            # A later submission already landed
            return submission

        for name, value in values.items():
            setattr(submission, name, value)
        submission.save(update_fields=list(values))
        return submission

    @staticmethod
    def _answer_result(submission: AnswerSubmission) -> AnswerResult:
        return AnswerResult(
            question_id=submission.question_id,
            answer_text=submission.answer_text,
            grading_status=submission.grading_status,
            awarded_points=submission.awarded_points,
            submitted_at=submission.submitted_at,
        )

    @classmethod
    def submit_answer(cls, *, attempt_id: int, student_id: int, question_id: int, answer_text: str) -> AnswerResult:
        return cls.submit_answers(
            attempt_id=attempt_id, student_id=student_id, answers=[(question_id, answer_text)],
        )[0]

    @classmethod
    def submit_answers(cls, *, attempt_id: int, student_id: int,
                       answers: Iterable[Tuple[int, str]]) -> List[AnswerResult]:
        """Upsert several answers at once; either all are stored or none."""
        now = timezone.now()
        answers = list(answers)
        if not answers:
            raise InvalidAnswer("At least one answer is required.")

        attempt = cls._get_owned_attempt(attempt_id, student_id)
        cls._ensure_accepting_answers(attempt, now)

        validated = [
            (cls._get_exam_question(attempt, question_id), cls._validate_answer_text(answer_text))
            for question_id, answer_text in answers
        ]

        with transaction.atomic():
            locked = cls._get_owned_attempt(attempt_id, student_id, for_update=True)
            if effective_status(locked, now) != AttemptStatus.IN_PROGRESS:
                raise AttemptNotActive()
            results = [
                cls._answer_result(cls._upsert_answer(locked, question, answer_text, now))
                for question, answer_text in validated
            ]

        logger.debug("Stored %s answers for attempt %s", len(results), attempt_id)
        return results

    # -------------------------------------------------
    # Finish / result
    # -------------------------------------------------

    @classmethod
    def finish_attempt(cls, *, attempt_id: int, student_id: int) -> ExamResult:
        """Finish and score the attempt. Finishing a finished attempt returns its stored result."""
        now = timezone.now()
        with transaction.atomic():
            attempt = cls._get_owned_attempt(attempt_id, student_id, for_update=True)
            state = effective_status(attempt, now)
            if state != AttemptStatus.FINISHED:
                cls._close(attempt, now=now, timed_out=state == AttemptStatus.EXPIRED)
        return cls._result(attempt)

    @classmethod
    def get_result(cls, *, attempt_id: int, student_id: int) -> ExamResult:
        now = timezone.now()
        attempt = cls._settle_expiry(cls._get_owned_attempt(attempt_id, student_id), now)
        if attempt.status != AttemptStatus.FINISHED:
            raise AttemptNotFinished()
        return cls._result(attempt)

    @classmethod
    def _result(cls, attempt: ExamAttempt) -> ExamResult:
        exam = attempt.exam
        answers = {a.question_id: a for a in attempt.answers.all()}

        breakdown = []
        max_score = Decimal("0")
        correct = 0
        for question in cls._exam_questions(exam.pk):
            answer = answers.get(question.pk)
            max_score += question.points
            if answer is not None and answer.grading_status == GradingStatus.CORRECT:
                correct += 1
            breakdown.append(QuestionResult(
                question_id=question.pk,
                order_number=question.order_number,
                question_type=question.question_type,
                text=question.text,
                points=question.points,
                answer_text=answer.answer_text if answer else None,
                grading_status=answer.grading_status if answer else UNANSWERED,
                awarded_points=answer.awarded_points if answer else Decimal("0"),
                correct_answer=question.correct_answer if exam.show_correct_answers else None,
            ))

        return ExamResult(
            attempt_id=attempt.pk,
            exam_id=exam.pk,
            exam_title=exam.title,
            status=attempt.status,
            score=attempt.score,
            max_score=max_score,
            percentage=attempt.percentage,
            pass_mark_percentage=exam.pass_mark_percentage,
            passed=attempt.passed,
            is_graded=attempt.is_graded,
            timed_out=attempt.timed_out,
            start_time=attempt.start_time,
            finish_time=attempt.finish_time,
            correct_answers=correct,
            total_questions=len(breakdown),
            questions=breakdown,
        )

    # -------------------------------------------------
    # Progress / status
    # -------------------------------------------------

    @classmethod
    def get_progress(cls, *, attempt_id: int, student_id: int) -> Progress:
        now = timezone.now()
        attempt = cls._settle_expiry(cls._get_owned_attempt(attempt_id, student_id), now)

        total = cls._exam_questions(attempt.exam_id).count()
        answered = attempt.answers.filter(question__exam_id=attempt.exam_id).count()
        return Progress(
            attempt_id=attempt.pk,
            total_questions=total,
            answered_questions=answered,
            unanswered_questions=total - answered,
            progress_percentage=percentage_of(answered, total),
        )

    @classmethod
    def get_session_status(cls, *, attempt_id: int, student_id: int) -> SessionStatus:
        now = timezone.now()
        attempt = cls._settle_expiry(cls._get_owned_attempt(attempt_id, student_id), now)
        return SessionStatus(
            attempt_id=attempt.pk,
            exam_id=attempt.exam_id,
            status=effective_status(attempt, now),
            current_time=now,
            end_time=attempt.end_time,
            remaining_seconds=remaining_seconds(attempt, now),
            timed_out=attempt.timed_out,
        )

    # -------------------------------------------------
    # Exam listing / history
    # -------------------------------------------------

    @staticmethod
    def list_available_exams(*, now: Optional[datetime] = None):
        now = now or timezone.now()
        return (
            Exam.objects.filter(is_active=True)
            .filter(Q(available_from__isnull=True) | Q(available_from__lte=now))
            .filter(Q(available_until__isnull=True) | Q(available_until__gte=now))
            .select_related('category')
            .order_by('available_until', 'title')
        )

    @classmethod
    def get_exam_info(cls, *, exam_id: int, student_id: int) -> ExamInfo:
        now = timezone.now()
        try:
            exam = Exam.objects.select_related('category').get(pk=exam_id, is_active=True)
        except Exam.DoesNotExist:
            raise ExamNotFound()

        active = cls._find_active_attempt(exam.pk, student_id)
        if active is not None:
            active = cls._settle_expiry(active, now)
            if active.status != AttemptStatus.IN_PROGRESS:
                active = None
        used = ExamAttempt.objects.filter(exam=exam, student_id=student_id).count()

        if exam.available_from and now < exam.available_from:
            availability = Availability.NOT_STARTED
        elif active is not None:
            availability = Availability.IN_PROGRESS
        elif exam.available_until and now > exam.available_until:
            availability = Availability.ENDED
        elif used >= exam.max_attempts:
            availability = Availability.MAX_ATTEMPTS_REACHED
        else:
            availability = Availability.AVAILABLE

        return ExamInfo(
            exam=exam,
            availability=availability,
            attempts_used=used,
            attempts_remaining=max(0, exam.max_attempts - used),
            active_attempt_id=active.pk if active else None,
        )

    @classmethod
    def get_history(cls, *, student_id: int):
        cls.expire_overdue_attempts(student_id=student_id)
        return (
            ExamAttempt.objects.filter(student_id=student_id)
            .select_related('exam')
            .order_by('-start_time')
        )

# assessments/statistics.py
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional

from django.db.models import Avg, Count, Max, Min, Q

from exams.models import Exam

from .exceptions import ExamNotFound
from .models import AttemptStatus, ExamAttempt, GradingStatus
from .services import TWO_PLACES, ExamAttemptService, percentage_of

# Letter bands by minimum percentage, highest first
GRADE_BANDS = (
    ("A", Decimal("90")),
    ("B", Decimal("80")),
    ("C", Decimal("70")),
    ("D", Decimal("60")),
    ("F", Decimal("0")),
)


def grade_band(percentage) -> str:
    for band, minimum in GRADE_BANDS:
        if percentage is not None and percentage >= minimum:
            return band
    return GRADE_BANDS[-1][0]


def _two_places(value) -> Optional[Decimal]:
    if value is None:
        return None
    return Decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class TopScore:
    attempt_id: int
    student_id: int
    student_email: str
    score: Decimal
    percentage: Decimal
    finish_time: datetime


@dataclass(frozen=True)
class ExamStatistics:
    exam_id: int
    exam_title: str
    total_attempts: int
    in_progress_attempts: int
    finished_attempts: int
    graded_attempts: int
    pending_grading: int
    average_score: Optional[Decimal]
    highest_score: Optional[Decimal]
    lowest_score: Optional[Decimal]
    average_percentage: Optional[Decimal]
    passed_attempts: int
    passing_rate: Decimal
    grade_distribution: Dict[str, int] = field(default_factory=dict)
    top_scores: List[TopScore] = field(default_factory=list)


class ExamStatisticsService:
    """
    Read-only grade statistics for administrators.

    Only finished, fully graded attempts count towards scores, pass rate and
    the grade distribution; attempts with essay answers still pending are
    reported separately.
    """

    @classmethod
    def exam_statistics(cls, *, exam_id: int, top: int = 5) -> ExamStatistics:
        try:
            exam = Exam.objects.get(pk=exam_id)
        except Exam.DoesNotExist:
            raise ExamNotFound()

        ExamAttemptService.expire_overdue_attempts(exam_id=exam.pk)

        attempts = ExamAttempt.objects.filter(exam=exam)
        counts = attempts.aggregate(
            total=Count('id'),
            in_progress=Count('id', filter=Q(status=AttemptStatus.IN_PROGRESS)),
            finished=Count('id', filter=Q(status=AttemptStatus.FINISHED)),
        )
        finished = attempts.filter(status=AttemptStatus.FINISHED)
        graded = finished.filter(is_graded=True)

        summary = graded.aggregate(
            avg_score=Avg('score'),
            high=Max('score'),
            low=Min('score'),
            avg_pct=Avg('percentage'),
            passed=Count('id', filter=Q(passed=True)),
            graded=Count('id'),
        )

        distribution = {band: 0 for band, _ in GRADE_BANDS}
        for percentage in graded.values_list('percentage', flat=True):
            distribution[grade_band(percentage)] += 1

        top_scores = [
            TopScore(
                attempt_id=a.pk,
                student_id=a.student_id,
                student_email=a.student.email,
                score=a.score,
                percentage=a.percentage,
                finish_time=a.finish_time,
            )
            for a in graded.select_related('student').order_by('-score', 'finish_time', 'id')[:top]
        ]

        return ExamStatistics(
            exam_id=exam.pk,
            exam_title=exam.title,
            total_attempts=counts['total'],
            in_progress_attempts=counts['in_progress'],
            finished_attempts=counts['finished'],
            graded_attempts=summary['graded'],
            pending_grading=counts['finished'] - summary['graded'],
            average_score=_two_places(summary['avg_score']),
            highest_score=summary['high'],
            lowest_score=summary['low'],
            average_percentage=_two_places(summary['avg_pct']),
            passed_attempts=summary['passed'],
            passing_rate=percentage_of(summary['passed'], summary['graded']),
            grade_distribution=distribution,
            top_scores=top_scores,
        )

    @staticmethod
    def attempts_needing_grading(*, exam_id: Optional[int] = None):
        """Finished attempts with essay answers still waiting, oldest first."""
        attempts = (
            ExamAttempt.objects.filter(status=AttemptStatus.FINISHED, is_graded=False)
            .select_related('exam', 'student')
            .annotate(pending_answers=Count('answers', filter=Q(answers__grading_status=GradingStatus.PENDING)))
            .order_by('finish_time', 'id')
        )
        if exam_id is not None:
            attempts = attempts.filter(exam_id=exam_id)
        return attempts

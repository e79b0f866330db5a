# assessments/grading.py
from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, FrozenSet, Optional

from exams.models import Question

from .models import GradingStatus


@dataclass(frozen=True)
class GradeOutcome:
    status: str
    awarded_points: Optional[Decimal]

    @property
    def is_correct(self) -> Optional[bool]:
        if self.status == GradingStatus.PENDING:
            return None
        return self.status == GradingStatus.CORRECT


def normalize_text(value: Optional[str]) -> str:
    return (value or "").strip().casefold()


def parse_choice_set(value: Optional[str]) -> FrozenSet[str]:
    """``'A, C'`` and ``'["c", "a"]'`` both become ``{'a', 'c'}``."""
    raw = (value or "").strip()
    items = None
    if raw.startswith("["):
        try:
            parsed = json.loads(raw)
        except ValueError:
            parsed = None
        if isinstance(parsed, list):
            items = [str(item) for item in parsed]
    if items is None:
        items = raw.split(",")
    return frozenset(n for n in (normalize_text(item) for item in items) if n)


class Grader:
    auto_graded = True

    def matches(self, correct_answer: str, answer_text: str) -> bool:
        raise NotImplementedError

    def grade(self, question: Question, answer_text: str) -> GradeOutcome:
        if self.matches(question.correct_answer, answer_text):
            return GradeOutcome(GradingStatus.CORRECT, question.points)
        return GradeOutcome(GradingStatus.INCORRECT, Decimal("0"))


class ExactMatchGrader(Grader):
    """Trimmed, case-insensitive string equality."""

    def matches(self, correct_answer, answer_text):
        expected = normalize_text(correct_answer)
        return expected != "" and expected == normalize_text(answer_text)


class SetMatchGrader(Grader):
    """Order-independent equality of the selected options."""

    def matches(self, correct_answer, answer_text):
        expected = parse_choice_set(correct_answer)
        return bool(expected) and expected == parse_choice_set(answer_text)


class ManualGrader(Grader):
    auto_graded = False

    def grade(self, question, answer_text):
        return GradeOutcome(GradingStatus.PENDING, None)


_exact = ExactMatchGrader()

GRADERS: Dict[str, Grader] = {
    Question.QuestionType.SINGLE_CHOICE: _exact,
    Question.QuestionType.TRUE_FALSE: _exact,
    Question.QuestionType.FILL_BLANK: _exact,
    Question.QuestionType.SHORT_ANSWER: _exact,
    Question.QuestionType.MULTIPLE_CHOICE: SetMatchGrader(),
    Question.QuestionType.ESSAY: ManualGrader(),
}


def register_grader(question_type: str, grader: Grader) -> None:
    GRADERS[question_type] = grader


def grader_for(question_type: str) -> Grader:
    # Unknown types wait for a human rather than scoring zero
    return GRADERS.get(question_type) or ManualGrader()


def grade_answer(question: Question, answer_text: str) -> GradeOutcome:
    return grader_for(question.question_type).grade(question, answer_text)

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional

from ..schemas.exam_schema import ExamDefinition
from ..schemas.progress_schema import CodeAnswer, MultipleChoiceAnswer, ShortAnswerAnswer
from ..schemas.question_schema import (
    CodeExerciseQuestion,
    MultipleChoiceQuestion,
    ShortAnswerQuestion,
)


@dataclass(frozen=True)
class GradeResult:
    total: float
    max: float
    question_scores: Dict[str, float] = field(default_factory=dict)


def normalize_text(value: Any) -> str:
    """Case-fold and collapse every whitespace run (line breaks included) to one space."""
    if value is None:
        return ""
    return " ".join(str(value).casefold().split())


def _coerce_option_index(value: Any) -> Optional[int]:
    # bool is an int subclass; True must not pass as option 1
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    return None


def _is_correct(question, answer) -> bool:
    if answer is None:
        return False
    if isinstance(question, MultipleChoiceQuestion):
        if not isinstance(answer, MultipleChoiceAnswer):
            return False
        return _coerce_option_index(answer.option_index) == question.correct_option_index
    if isinstance(question, ShortAnswerQuestion):
        if not isinstance(answer, ShortAnswerAnswer):
            return False
        given = normalize_text(answer.text)
        if not given:
            return False
        return any(normalize_text(a) == given for a in question.accepted_answers)
    if isinstance(question, CodeExerciseQuestion):
        if not isinstance(answer, CodeAnswer):
            return False
        # only a recorded successful run counts; the source itself is never inspected
        return answer.last_execution_passed is True
    return False


def grade_submission(exam: ExamDefinition, answers: Mapping[str, Any]) -> GradeResult:
    """
    Grade the given answers against the exam's questions.
    - exam: the exam definition snapshot the session is bound to
    - answers: mapping question_id -> Answer (MultipleChoiceAnswer | ShortAnswerAnswer | CodeAnswer)

    Every question is auto-graded, all or nothing. Missing answers score zero.
    `max` is the sum of all question points, independent of the answers.
    """
    question_scores: Dict[str, float] = {}
    total = 0.0
    max_score = 0.0

    for q in exam.questions:
        points = float(q.points or 0)
        max_score += points
        score = points if _is_correct(q, answers.get(q.id)) else 0.0
        question_scores[q.id] = score
        total += score

    return GradeResult(total=total, max=max_score, question_scores=question_scores)

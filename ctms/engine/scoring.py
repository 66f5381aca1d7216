"""Assessment scoring and question validation - pure functions."""

import math
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ctms.errors import ValidationError
from ctms.models.enums import ResultGrade
from ctms.schemas.assessment import QuestionIn, ScoreResult

OPTIONS_PER_QUESTION = 4


def validate_questions(questions: Sequence[QuestionIn] | None) -> None:
    """
    Reject the whole question set if any question is malformed.
    Nothing is persisted by callers until this passes.
    """
    if not questions:
        raise ValidationError("At least one MCQ question is required")
    for q in questions:
        if not q.question_text or not q.question_text.strip():
            raise ValidationError("Question text is required for all questions")
        if len(q.options) != OPTIONS_PER_QUESTION:
            raise ValidationError(
                f'Each question must have exactly {OPTIONS_PER_QUESTION} options. '
                f'Question: "{q.question_text}"'
            )
        if not q.correct_answer or q.correct_answer not in q.options:
            raise ValidationError(
                "Correct answer must match one of the provided options. "
                f'Question: "{q.question_text}"'
            )


def grade_for(score: int, pass_threshold: int, excellent_threshold: int) -> ResultGrade | None:
    """Three-tier grading: below the pass line fails, above the excellent line is EXCELLENT."""
    if score < pass_threshold:
        return None
    return ResultGrade.EXCELLENT if score > excellent_threshold else ResultGrade.PASS


def score_submission(
    questions: Iterable[Any],
    answers: Mapping[str, str],
    *,
    pass_threshold: int,
    excellent_threshold: int,
) -> ScoreResult:
    """
    Score answers (question id -> chosen option) against the question set.
    Unanswered questions count as wrong and are recorded as empty strings.
    """
    processed: dict[str, str] = {}
    correct = 0
    total = 0
    for q in questions:
        total += 1
        qid = str(q.id)
        given = answers.get(qid) or ""
        processed[qid] = given
        if given == q.correct_answer:
            correct += 1

    if total == 0:
        raise ValidationError("This assessment has no questions configured and cannot be evaluated")

    # Half-up, so 12.5 scores 13 rather than banker's 12.
    score = math.floor(correct * 100 / total + 0.5)
    grade = grade_for(score, pass_threshold, excellent_threshold)
    return ScoreResult(
        correct_count=correct,
        total_questions=total,
        score=score,
        passed=grade is not None,
        grade=grade,
        answers=processed,
    )

import math
from typing import Mapping

from .schemas import GRADABLE_TYPES, ExamDocument, QuestionResult, ScoreResult


def percentage(earned: float, total: float) -> int:
    """Whole percent, halves rounded up. A zero total reports 0."""
    if not total:
        return 0
    return int(math.floor(100 * earned / total + 0.5))


def score_answers(exam: ExamDocument, answers: Mapping[int, str]) -> ScoreResult:
    """
    Score a self-service quiz.

    MCQ and true/false questions earn their full points only when the
    submitted string equals the correct answer exactly. Matching and essay
    questions earn nothing here and are returned in ``manual_review``.
    """
    earned = 0.0
    manual_review = []
    results = []

    for q in exam.questions:
        if q.type not in GRADABLE_TYPES:
            manual_review.append(q.id)
            continue

        submitted = answers.get(q.id)
        # An empty submission counts as unanswered
        correct = bool(submitted) and submitted == q.correct_answer
        if correct:
            earned += q.points
        results.append(
            QuestionResult(
                question_id=q.id,
                submitted=submitted,
                expected=q.correct_answer,
                correct=correct,
            )
        )

    return ScoreResult(
        earned_points=earned,
        total_points=exam.total_points,
        percentage=percentage(earned, exam.total_points),
        manual_review=manual_review,
        results=results,
    )

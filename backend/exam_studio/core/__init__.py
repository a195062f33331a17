# backend/exam_studio/core/__init__.py
"""
Core package for Exam Studio.
Exposes the exam document schemas and the pure layout / scoring helpers.
"""

from .schemas import (
    ExamDocument,
    ExamHeader,
    GenerateRequest,
    GradingResult,
    Question,
    ScoreResult,
)
from .layout import canonical_order, flatten_rows, split_columns
from .scoring import score_answers

__all__ = [
    "ExamDocument",
    "ExamHeader",
    "GenerateRequest",
    "GradingResult",
    "Question",
    "ScoreResult",
    "canonical_order",
    "flatten_rows",
    "split_columns",
    "score_answers",
]

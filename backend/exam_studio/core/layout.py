"""
Question ordering and answer-sheet layout.

Everything here is a pure function over question lists: callers get new
lists back and decide themselves whether to store them.
"""

import math
import os
import random
from typing import List, Optional, Sequence, Tuple

from dotenv import load_dotenv

from .schemas import (
    TRUE_FALSE_LABELS,
    AnswerRow,
    AnswerSheet,
    EssayQuestion,
    ExamDocument,
    MatchingQuestion,
    Question,
    QuizQuestion,
)

load_dotenv()

VERIFY_BASE_URL = os.getenv("VERIFY_BASE_URL", "https://maad.app/verify")

# Display order: MCQ -> true/false -> matching -> essay
TYPE_PRIORITY = {"mcq": 1, "true_false": 2, "matching": 3, "essay": 4}

COLUMNS = 2
CHOICE_LETTERS = "ABCDEFGHIJKLMNOPQRSTUVWXYZ"


# ------------------------------------------------------------
# Canonical order
# ------------------------------------------------------------
def canonical_order(questions: Sequence[Question]) -> List[Question]:
    """Sort by type priority (stable) and renumber ids from 1."""
    ordered = sorted(questions, key=lambda q: TYPE_PRIORITY.get(q.type, 5))
    return [q.model_copy(update={"id": i}) for i, q in enumerate(ordered, start=1)]


# ------------------------------------------------------------
# Bubble sheet rows
# ------------------------------------------------------------
def _choices(q: Question, language: str) -> List[str]:
    if q.type == "mcq":
        return list(CHOICE_LETTERS[: len(q.options)])
    if q.type == "true_false":
        return list(TRUE_FALSE_LABELS[language])
    if q.type == "matching":
        return list(CHOICE_LETTERS[: len(q.matching_pairs)])
    return []


def flatten_rows(questions: Sequence[Question], language: str = "en") -> List[AnswerRow]:
    """One row per MCQ / true-false question, one per matching pair, none for essays."""
    rows: List[AnswerRow] = []
    for q in questions:
        if q.type in ("mcq", "true_false"):
            rows.append(
                AnswerRow(
                    label=str(q.id),
                    question_id=q.id,
                    type=q.type,
                    choices=_choices(q, language),
                )
            )
        elif q.type == "matching":
            choices = _choices(q, language)
            for idx, _ in enumerate(q.matching_pairs or []):
                rows.append(
                    AnswerRow(
                        label=f"{q.id}.{idx + 1}",
                        question_id=q.id,
                        type="matching",
                        is_sub_item=True,
                        choices=choices,
                    )
                )
    return rows


def split_columns(rows: Sequence[AnswerRow], columns: int = COLUMNS) -> Tuple[List[AnswerRow], ...]:
    """Contiguous slices of ceil(n / columns) rows; the last columns may be short or empty."""
    size = math.ceil(len(rows) / columns)
    if size == 0:
        return tuple([] for _ in range(columns))
    return tuple(list(rows[i * size:(i + 1) * size]) for i in range(columns))


def essay_questions(questions: Sequence[Question]) -> List[EssayQuestion]:
    return [q for q in questions if q.type == "essay"]


def verify_url(exam: ExamDocument) -> str:
    return f"{VERIFY_BASE_URL.rstrip('/')}/{exam.id}?ver={exam.version}"


def build_answer_sheet(exam: ExamDocument, language: Optional[str] = None) -> AnswerSheet:
    """Bubble-sheet payload; labels follow the exam's own language unless one is given."""
    language = language or exam.language
    rows = flatten_rows(exam.questions, language)
    return AnswerSheet(
        exam_id=exam.id,
        version=exam.version,
        language=language,
        verify_url=verify_url(exam),
        columns=list(split_columns(rows)),
        essay_questions=essay_questions(exam.questions),
    )


# ------------------------------------------------------------
# Matching display
# ------------------------------------------------------------
def matching_answer_bank(question: MatchingQuestion, seed: str) -> List[str]:
    """Right-hand column shuffled with a fixed seed, so re-rendering keeps the order."""
    bank = [pair.right for pair in question.matching_pairs]
    random.Random(f"{seed}:{question.id}").shuffle(bank)
    return bank


def quiz_questions(exam: ExamDocument) -> List[QuizQuestion]:
    """Student-facing view of the exam: answers and explanations left out."""
    out = []
    for q in exam.questions:
        item = QuizQuestion(id=q.id, type=q.type, text=q.text, points=q.points)
        if q.type == "mcq":
            item.options = list(q.options)
        elif q.type == "true_false":
            item.options = list(TRUE_FALSE_LABELS[exam.language])
        elif q.type == "matching":
            item.prompts = [pair.left for pair in q.matching_pairs]
            item.answer_bank = matching_answer_bank(q, exam.id)
        out.append(item)
    return out

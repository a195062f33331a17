import random
import string
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from pydantic import TypeAdapter

from .layout import canonical_order
from .schemas import ExamDocument, Question

_question_adapter = TypeAdapter(Question)

ID_ALPHABET = string.ascii_uppercase + string.digits
ID_LENGTH = 9

# Fields a teacher may edit in place; ``type`` and ``id`` are fixed.
EDITABLE_FIELDS = {
    "text",
    "explanation",
    "points",
    "correct_answer",
    "options",
    "matching_pairs",
    "bloom_level",
}


def new_exam_id() -> str:
    return "".join(random.choices(ID_ALPHABET, k=ID_LENGTH))


def update_question(exam: ExamDocument, question_id: int, changes: Dict[str, Any]) -> ExamDocument:
    """Return a copy of ``exam`` with one question edited and total points recomputed."""
    for field in ("type", "id"):
        if field in changes:
            raise ValueError(f"Question {field} cannot be changed.")
    unknown = set(changes) - EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown question fields: {', '.join(sorted(unknown))}")

    questions = []
    found = False
    for q in exam.questions:
        if q.id != question_id:
            questions.append(q)
            continue
        found = True
        data = q.model_dump()
        if "options" in changes and q.type != "mcq":
            raise ValueError("Only multiple-choice questions have options.")
        if "matching_pairs" in changes and q.type != "matching":
            raise ValueError("Only matching questions have matching pairs.")
        data.update(changes)
        questions.append(_question_adapter.validate_python(data))

    if not found:
        raise KeyError(question_id)

    return ExamDocument.model_validate({**exam.model_dump(), "questions": [q.model_dump() for q in questions]})


def make_parallel_form(exam: ExamDocument, version: str, seed: Optional[int] = None) -> ExamDocument:
    """
    Build another form of the same exam under a new id.

    Questions keep their canonical order; multiple-choice options are
    shuffled. The correct answer is stored as option text, so it stays valid.
    """
    rng = random.Random(seed if seed is not None else f"{exam.id}:{version}")
    questions = []
    for q in canonical_order(exam.questions):
        if q.type == "mcq":
            options = list(q.options)
            rng.shuffle(options)
            q = q.model_copy(update={"options": options})
        questions.append(q)

    return exam.model_copy(
        update={
            "id": new_exam_id(),
            "version": version.upper(),
            "created_at": datetime.now(timezone.utc),
            "questions": questions,
        }
    )

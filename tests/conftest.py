import json
from types import SimpleNamespace

import pytest

from exam_studio.core.schemas import ExamDocument


def make_exam(questions, exam_id="EXAM00001", **kwargs) -> ExamDocument:
    """Build an exam from plain question dicts."""
    return ExamDocument.model_validate({"id": exam_id, "questions": questions, **kwargs})


def mcq(qid=1, points=5, answer="A", options=("A", "B", "C", "D"), **kwargs):
    return {"id": qid, "type": "mcq", "text": f"MCQ {qid}", "points": points,
            "correct_answer": answer, "options": list(options), **kwargs}


def true_false(qid=1, points=5, answer="True", **kwargs):
    return {"id": qid, "type": "true_false", "text": f"TF {qid}", "points": points,
            "correct_answer": answer, **kwargs}


def matching(qid=1, points=10, pairs=(("cat", "meow"), ("dog", "woof")), **kwargs):
    return {"id": qid, "type": "matching", "text": f"Match {qid}", "points": points,
            "matching_pairs": [{"left": l, "right": r} for l, r in pairs], **kwargs}


def essay(qid=1, points=10, **kwargs):
    return {"id": qid, "type": "essay", "text": f"Essay {qid}", "points": points,
            "correct_answer": "Model answer", **kwargs}


class FakeCompletions:
    """Stands in for ``client.chat.completions``; records every call."""

    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.calls = []

    def _respond(self, kwargs):
        self.calls.append(kwargs)
        if self.error:
            raise self.error
        content = self.reply if isinstance(self.reply, str) else json.dumps(self.reply, ensure_ascii=False)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    def create(self, **kwargs):
        return self._respond(kwargs)


class AsyncFakeCompletions(FakeCompletions):
    async def create(self, **kwargs):
        return self._respond(kwargs)


def fake_client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


@pytest.fixture
def sample_exam():
    """One question of each type, deliberately out of canonical order."""
    return make_exam([
        essay(1, points=4),
        matching(2, points=6),
        true_false(3, points=5, answer="True"),
        mcq(4, points=5, answer="B", options=("A", "B", "C", "D")),
    ])

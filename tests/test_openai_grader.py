import pytest
from fastapi import HTTPException

from exam_studio.core import openai_grader
from exam_studio.core.openai_grader import answer_key, grade_sheet

from conftest import FakeCompletions, essay, fake_client, make_exam, mcq

GRADER_REPLY = {
    "student_name": "Sara",
    "score": 5,
    "total_score": 15,
    "corrections": [
        {"question_id": 1, "student_answer": "A", "correct_answer": "A", "is_correct": True},
    ],
}


@pytest.fixture
def exam():
    return make_exam([mcq(1, points=5, answer="A"), essay(2, points=10)], exam_id="GRADE0001")


def _use(monkeypatch, completions):
    monkeypatch.setattr(openai_grader, "configure_openai", lambda api_key=None: fake_client(completions))


def test_answer_key_has_no_question_text(exam):
    key = answer_key(exam)
    assert key[0] == {"id": 1, "type": "mcq", "correct_answer": "A", "points": 5}
    assert all("text" not in item for item in key)


def test_grade_sheet_parses_reply(monkeypatch, exam):
    completions = FakeCompletions(reply=GRADER_REPLY)
    _use(monkeypatch, completions)

    result = grade_sheet("aGVsbG8=", exam)

    assert result.student_name == "Sara"
    assert result.score == 5
    assert result.corrections[0].is_correct is True
    user_parts = completions.calls[0]["messages"][1]["content"]
    assert user_parts[1]["image_url"]["url"] == "data:image/jpeg;base64,aGVsbG8="
    assert "GRADE0001" in completions.calls[0]["messages"][0]["content"]


def test_missing_name_defaults_to_unknown(monkeypatch, exam):
    _use(monkeypatch, FakeCompletions(reply={"score": 0, "total_score": 15}))
    assert grade_sheet("data:image/png;base64,xyz", exam).student_name == "unknown"


def test_fenced_reply_is_accepted(monkeypatch, exam):
    _use(monkeypatch, FakeCompletions(reply='```json\n{"score": 1, "total_score": 15}\n```'))
    assert grade_sheet("xyz", exam).score == 1


def test_schema_violation_becomes_502(monkeypatch, exam):
    _use(monkeypatch, FakeCompletions(reply={"student_name": "Sara"}))
    with pytest.raises(HTTPException) as exc:
        grade_sheet("xyz", exam)
    assert exc.value.status_code == 502


def test_api_failure_becomes_502(monkeypatch, exam):
    _use(monkeypatch, FakeCompletions(error=TimeoutError("slow")))
    with pytest.raises(HTTPException) as exc:
        grade_sheet("xyz", exam)
    assert exc.value.status_code == 502

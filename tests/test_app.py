"""
API tests: routes wired to an in-memory history and stubbed gateways.
"""

import pytest
from fastapi import HTTPException
from fastapi.testclient import TestClient

from exam_studio import app as app_module
from exam_studio.core.history import HistoryStore
from exam_studio.core.schemas import GradingResult

from conftest import essay, make_exam, matching, mcq, true_false


@pytest.fixture
def history(monkeypatch):
    store = HistoryStore()
    monkeypatch.setattr(app_module, "HISTORY", store)
    return store


@pytest.fixture
def client(history):
    return TestClient(app_module.app)


@pytest.fixture
def stored_exam(history):
    exam = make_exam(
        [mcq(1, points=5, answer="A"), true_false(2, points=5, answer="True"), matching(3, points=6), essay(4, points=4)],
        exam_id="STORED001",
        language="en",
    )
    history.commit(exam)
    return exam


class TestGenerate:

    def test_generate_commits_to_history(self, client, history, monkeypatch):
        generated = make_exam([mcq(1)], exam_id="GEN000001")

        async def fake_generate(config):
            assert config.source_text == "Cells"
            return generated

        monkeypatch.setattr(app_module, "generate_exam", fake_generate)
        resp = client.post("/exams/generate", json={"source_text": "Cells"})

        assert resp.status_code == 200
        assert resp.json()["exam"]["id"] == "GEN000001"
        assert "GEN000001" in history

    def test_missing_sources_rejected_before_gateway(self, client, monkeypatch):
        async def should_not_run(config):
            raise AssertionError("gateway called")

        monkeypatch.setattr(app_module, "generate_exam", should_not_run)
        resp = client.post("/exams/generate", json={"source_text": ""})
        assert resp.status_code == 422
        assert resp.json()["status"] == "error"
        assert resp.json()["body"] == {"source_text": ""}

    def test_gateway_failure_is_surfaced(self, client, history, monkeypatch):
        async def failing(config):
            raise HTTPException(status_code=502, detail="Exam generation failed.")

        monkeypatch.setattr(app_module, "generate_exam", failing)
        resp = client.post("/exams/generate", json={"source_text": "Cells"})
        assert resp.status_code == 502
        assert len(history) == 0

    def test_missing_api_key(self, client, monkeypatch):
        async def no_key(config):
            raise RuntimeError("OPENAI_API_KEY missing.")

        monkeypatch.setattr(app_module, "generate_exam", no_key)
        resp = client.post("/exams/generate", json={"source_text": "Cells"})
        assert resp.status_code == 500
        assert resp.json()["message"] == "OpenAI API key is missing."


class TestHistoryRoutes:

    def test_list_and_read(self, client, stored_exam):
        assert [e["id"] for e in client.get("/exams").json()["exams"]] == ["STORED001"]
        assert client.get("/exams/STORED001").json()["exam"]["total_points"] == 20

    def test_unknown_exam(self, client, history):
        assert client.get("/exams/NOPE").status_code == 404

    def test_delete(self, client, stored_exam, history):
        assert client.delete("/exams/STORED001").status_code == 200
        assert len(history) == 0
        assert client.delete("/exams/STORED001").status_code == 404


class TestEdit:

    def test_points_edit_updates_total(self, client, stored_exam, history):
        resp = client.patch("/exams/STORED001/questions/1", json={"points": 10})
        assert resp.status_code == 200
        assert resp.json()["exam"]["total_points"] == 25
        assert history.get("STORED001").total_points == 25

    def test_options_on_wrong_type(self, client, stored_exam):
        resp = client.patch("/exams/STORED001/questions/2", json={"options": ["x"]})
        assert resp.status_code == 422

    def test_unknown_question(self, client, stored_exam):
        assert client.patch("/exams/STORED001/questions/99", json={"text": "?"}).status_code == 404


class TestViews:

    def test_answer_sheet(self, client, stored_exam):
        sheet = client.get("/exams/STORED001/answer_sheet").json()
        labels = [[row["label"] for row in col] for col in sheet["columns"]]
        assert labels == [["1", "2"], ["3.1", "3.2"]]
        assert [q["id"] for q in sheet["essay_questions"]] == [4]

    def test_answer_sheet_defaults_to_exam_language(self, client, history):
        history.commit(make_exam([true_false(1, answer="صح")], exam_id="ARSHEET01", language="ar"))
        sheet = client.get("/exams/ARSHEET01/answer_sheet").json()
        assert sheet["language"] == "ar"
        assert sheet["columns"][0][0]["choices"] == ["صح", "خطأ"]

    def test_answer_sheet_rejects_unknown_language(self, client, stored_exam):
        assert client.get("/exams/STORED001/answer_sheet?language=fr").status_code == 422

    def test_quiz_hides_answers(self, client, stored_exam):
        body = client.get("/exams/STORED001/quiz").json()
        assert body["total_points"] == 20
        assert all("correct_answer" not in q for q in body["questions"])
        assert body["questions"][1]["options"] == ["True", "False"]

    def test_analytics(self, client, stored_exam):
        body = client.get("/exams/STORED001/analytics").json()
        assert body["by_type"]["matching"]["points"] == 6


class TestScoring:

    def test_score(self, client, stored_exam):
        resp = client.post("/exams/STORED001/score", json={"answers": {"1": "A", "2": "False"}})
        body = resp.json()
        assert body["earned_points"] == 5
        assert body["total_points"] == 20
        assert body["percentage"] == 25
        assert body["manual_review"] == [3, 4]

    def test_grade_uses_gateway(self, client, stored_exam, monkeypatch):
        def fake_grade(image, exam):
            assert exam.id == "STORED001"
            return GradingResult(student_name="Omar", score=10, total_score=20)

        monkeypatch.setattr(app_module, "grade_sheet", fake_grade)
        resp = client.post("/exams/STORED001/grade", json={"image": "aGVsbG8="})
        assert resp.json()["student_name"] == "Omar"


class TestVersionsAndTranslation:

    def test_parallel_form_is_committed(self, client, stored_exam, history):
        resp = client.post("/exams/STORED001/versions", json={"version": "B", "seed": 1})
        form = resp.json()["exam"]
        assert form["version"] == "B"
        assert form["id"] != "STORED001"
        assert len(history) == 2

    def test_translate_replaces_document(self, client, history, monkeypatch):
        history.commit(make_exam([mcq(1)], exam_id="ARABIC001", language="ar"))

        async def fake_translate(exam, target_language):
            return exam.model_copy(update={"language": target_language})

        monkeypatch.setattr(app_module, "translate_exam", fake_translate)
        resp = client.post("/exams/ARABIC001/translate", json={"target_language": "en"})
        assert resp.json()["exam"]["language"] == "en"
        assert history.get("ARABIC001").language == "en"
        assert len(history) == 1

    def test_translate_to_same_language_is_a_no_op(self, client, stored_exam, monkeypatch):
        async def should_not_run(exam, target_language):
            raise AssertionError("gateway called")

        monkeypatch.setattr(app_module, "translate_exam", should_not_run)
        assert client.post("/exams/STORED001/translate", json={"target_language": "en"}).status_code == 200


def test_healthz(client):
    assert client.get("/healthz").json() == {"ok": True}

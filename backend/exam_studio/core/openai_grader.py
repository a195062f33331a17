import os, json, re, logging
from typing import Dict, Any, List
from fastapi import HTTPException
from openai import OpenAI
from dotenv import load_dotenv

from .schemas import ExamDocument, GradingResult

load_dotenv()
logger = logging.getLogger("exam.grader")

GRADER_MODEL = os.getenv("GRADER_MODEL", "gpt-4o-mini")

# ------------------------------------------------------------
# OpenAI setup
# ------------------------------------------------------------
def configure_openai(api_key: str | None = None) -> OpenAI:
    key = api_key or os.getenv("OPENAI_API_KEY", "")
    if not key:
        raise RuntimeError("OPENAI_API_KEY missing. Provide via env or param.")
    return OpenAI(api_key=key)


# ------------------------------------------------------------
# Grader system prompt template
# ------------------------------------------------------------
GRADER_SYSTEM_TEMPLATE = (
    "You are an automatic OMR grading system.\n"
    "You receive a photo of a student's answer sheet and the answer key as JSON.\n"
    "Tasks:\n"
    "1. Find the QR code and check the sheet belongs to exam {exam_id} version {version} "
    "(skip this check if it is not readable).\n"
    "2. Read the handwritten student name; use \"unknown\" if it is not readable.\n"
    "3. Compare each marked answer with the answer key.\n"
    "4. Compute the earned score.\n"
    "Output STRICT JSON only:\n"
    "{{ \"student_name\": str, \"score\": number, \"total_score\": number, "
    "\"corrections\": [{{ \"question_id\": int, \"student_answer\": str, "
    "\"correct_answer\": str, \"is_correct\": bool }}] }}"
)


# ------------------------------------------------------------
# Safe JSON extraction
# ------------------------------------------------------------
def _safe_json(text: str) -> dict:
    """Try to extract/clean JSON from model output."""
    try:
        return json.loads(text)
    except Exception:
        pass

    # Strip common markdown fences
    cleaned = re.sub(r"^```(json)?|```$", "", text.strip(), flags=re.M)
    try:
        return json.loads(cleaned)
    except Exception:
        pass

    raise ValueError(f"Invalid JSON: {text[:200]}")


def answer_key(exam: ExamDocument) -> List[Dict[str, Any]]:
    """What the grader is allowed to see of the exam."""
    return [
        {
            "id": q.id,
            "type": q.type,
            "correct_answer": q.correct_answer,
            "points": q.points,
        }
        for q in exam.questions
    ]


# ------------------------------------------------------------
# Main grader
# ------------------------------------------------------------
def grade_sheet(
    image: str,
    exam: ExamDocument,
    model_name: str = GRADER_MODEL,
    api_key: str | None = None,
) -> GradingResult:
    """
    Grade a photographed answer sheet with a vision model.

    The reply is untrusted: it is schema-checked, nothing more.
    """
    client = configure_openai(api_key)

    system_prompt = GRADER_SYSTEM_TEMPLATE.format(exam_id=exam.id, version=exam.version)
    data_uri = image if image.startswith("data:") else f"data:image/jpeg;base64,{image}"

    try:
        resp = client.chat.completions.create(
            model=model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": f"ANSWER KEY = {json.dumps(answer_key(exam), ensure_ascii=False)}"},
                        {"type": "image_url", "image_url": {"url": data_uri}},
                    ],
                },
            ],
            response_format={"type": "json_object"},
            temperature=0,
        )
    except Exception as e:
        logger.error(f"Grading request failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Grading failed. Please try a clearer photo.")

    raw = resp.choices[0].message.content or "{}"
    try:
        result = GradingResult.model_validate(_safe_json(raw))
    except ValueError as e:
        logger.error(f"Unusable grading reply for exam={exam.id}: {e}")
        raise HTTPException(status_code=502, detail="Grading failed. Please try a clearer photo.")

    logger.info(f"Graded sheet for exam={exam.id}: {result.score:g}/{result.total_score:g}")
    return result

# backend/exam_studio/core/openai_generator.py

import os, json, logging, re
from datetime import datetime, timezone
from typing import Dict, Any, List
from openai import AsyncOpenAI
from fastapi import HTTPException
from pydantic import TypeAdapter, ValidationError
from dotenv import load_dotenv

from .document import new_exam_id
from .layout import canonical_order
from .schemas import TRUE_FALSE_LABELS, ExamDocument, GenerateRequest, Question

# ------------------------------------------------------------
# Ensure environment is loaded early
# ------------------------------------------------------------
load_dotenv()
logger = logging.getLogger("exam.qg")

EXAM_MODEL = os.getenv("EXAM_MODEL", "gpt-4o-mini")

_question_adapter = TypeAdapter(Question)

# ------------------------------------------------------------
# Global OpenAI client (async)
# ------------------------------------------------------------
_client: AsyncOpenAI | None = None

def configure_openai(api_key: str | None = None) -> AsyncOpenAI:
    """Create or reuse an AsyncOpenAI client."""
    global _client
    if _client is None:
        key = api_key or os.getenv("OPENAI_API_KEY", "")
        if not key:
            raise RuntimeError("OPENAI_API_KEY missing. Provide via env or param.")
        _client = AsyncOpenAI(api_key=key)
        logger.info("OpenAI async client configured (global instance).")
    return _client

# ------------------------------------------------------------
# Prompt templates
# ------------------------------------------------------------
EXAM_TYPE_NAMES = {
    "final": "final exam",
    "midterm1": "first midterm exam",
    "midterm2": "second midterm exam",
    "quiz": "short quiz",
}

QUESTION_TYPE_NAMES = {
    "mcq": "multiple choice (4 options)",
    "true_false": "true/false",
    "matching": "matching (connect column A with column B)",
    "essay": "essay",
}

QG_SYSTEM_TEMPLATE = (
    "You are an experienced teacher and assessment designer.\n"
    "Write exam questions ONLY from the supplied source material.\n\n"
    "Output rules:\n"
    "- Output ONLY a JSON object: {{\"questions\": [...]}} (no markdown, no commentary).\n"
    "- Each question MUST have keys: ['type','text','points','correct_answer','explanation','bloom_level'].\n"
    "- 'type' is one of: mcq, true_false, matching, essay.\n"
    "- 'mcq' questions also have 'options' (list of 4 strings); 'correct_answer' is the text of the right option.\n"
    "- 'true_false' questions use exactly '{true_label}' or '{false_label}' as 'correct_answer'.\n"
    "- 'matching' questions also have 'matching_pairs': a list of {{\"left\": ..., \"right\": ...}} correct pairs.\n"
    "- 'bloom_level' is one of: remember, understand, apply, analyze, evaluate, create.\n"
    "- Points MUST add up to exactly {total_marks}. Distribute them by difficulty and type.\n"
    "- Always include a non-empty 'correct_answer' and 'explanation'.\n"
)

TRANSLATE_SYSTEM_TEMPLATE = (
    "You translate exam documents into {language_name}.\n"
    "Keep the JSON structure exactly the same.\n"
    "Translate question text, options, answers, matching pairs and explanations.\n"
    "Do NOT translate or change 'type', 'id' or 'points' values.\n"
    "Output ONLY the translated JSON object."
)

LANGUAGE_NAMES = {"ar": "Arabic", "en": "English"}

# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def _parse_json_response(text: str) -> Dict[str, Any]:
    """Lenient JSON parsing: plain, fenced, or with trailing commas."""
    if not text:
        raise HTTPException(status_code=502, detail="Empty response from model")

    try:
        data = json.loads(text)
        if isinstance(data, dict):
            return data
        if isinstance(data, list):
            return {"questions": data}
    except Exception:
        pass

    cleaned = re.sub(r"^```(json)?|```$", "", text.strip(), flags=re.M)
    start, end = cleaned.find("{"), cleaned.rfind("}")
    if start != -1 and end != -1:
        snippet = re.sub(r",\s*([}\]])", r"\1", cleaned[start:end+1])
        try:
            data = json.loads(snippet)
            if isinstance(data, dict):
                return data
        except Exception as e:
            logger.error(f"Failed after cleaning JSON: {e}")

    raise HTTPException(status_code=502, detail=f"Invalid JSON from model. Raw output: {text[:500]}...")

def _normalize_options(opts: Any) -> List[str]:
    if opts is None:
        return []
    if isinstance(opts, list):
        normed = []
        for o in opts:
            if isinstance(o, str):
                normed.append(o.strip())
            elif isinstance(o, dict):
                if "text" in o:
                    normed.append(str(o["text"]))
                else:
                    normed.append(json.dumps(o, ensure_ascii=False))
            else:
                normed.append(str(o))
        return normed
    return [str(opts)]

def _normalize_pairs(pairs: Any) -> List[Dict[str, str]]:
    if not isinstance(pairs, list):
        return []
    normed = []
    for p in pairs:
        if isinstance(p, dict) and "left" in p and "right" in p:
            normed.append({"left": str(p["left"]), "right": str(p["right"])})
        elif isinstance(p, (list, tuple)) and len(p) == 2:
            normed.append({"left": str(p[0]), "right": str(p[1])})
    return normed

def _normalize_question(raw: Dict[str, Any], position: int) -> Dict[str, Any]:
    """Map one loosely-shaped model question onto its typed variant's fields."""
    qtype = raw.get("type")
    item = {
        "id": position,
        "type": qtype,
        "text": raw.get("text") or raw.get("question") or "",
        "explanation": raw.get("explanation") or "",
        "points": raw.get("points"),
        "correct_answer": str(raw.get("correct_answer", raw.get("correctAnswer", "")) or ""),
        "bloom_level": raw.get("bloom_level", raw.get("bloomLevel")),
    }
    if qtype == "mcq":
        item["options"] = _normalize_options(raw.get("options"))
    elif qtype == "matching":
        item["matching_pairs"] = _normalize_pairs(raw.get("matching_pairs", raw.get("matchingPairs")))
    return item

def true_false_label(answer: str, language: str) -> str | None:
    """Map a true/false answer in either locale (or plain true/false) onto ``language``'s label."""
    value = answer.strip()
    for labels in TRUE_FALSE_LABELS.values():
        if value in labels:
            return TRUE_FALSE_LABELS[language][labels.index(value)]
    if value.lower() in ("true", "false"):
        return TRUE_FALSE_LABELS[language][0 if value.lower() == "true" else 1]
    return None

def _build_questions(items: List[Any], true_false_language: str | None = None) -> List[Question]:
    """Validate model questions; with ``true_false_language`` their answers are pinned to its labels."""
    questions = []
    for position, raw in enumerate(items, start=1):
        if not isinstance(raw, dict):
            raise HTTPException(status_code=502, detail="Model returned a malformed question.")
        item = _normalize_question(raw, position)
        if true_false_language and item["type"] == "true_false":
            label = true_false_label(item["correct_answer"], true_false_language)
            if label is None:
                logger.error(f"Rejected question #{position}: true/false answer {item['correct_answer']!r}")
                raise HTTPException(status_code=502, detail="Model returned an invalid true/false answer.")
            item["correct_answer"] = label
        try:
            questions.append(_question_adapter.validate_python(item))
        except ValidationError as e:
            logger.error(f"Rejected question #{position}: {e}")
            raise HTTPException(status_code=502, detail="Model returned an invalid question.")
    return canonical_order(questions)

def _strip_data_uri(data: str) -> str:
    return data.split(",", 1)[1] if data.startswith("data:") else data

def _build_user_content(config: GenerateRequest) -> List[Dict[str, Any]]:
    header = config.header
    types = ", ".join(QUESTION_TYPE_NAMES[t] for t in config.include_types)
    prompt = (
        f"Create a {EXAM_TYPE_NAMES[header.exam_type]} for the subject '{header.subject}'"
        f" (grade {header.grade_level or 'unspecified'}).\n"
        f"Difficulty: {config.difficulty}.\n"
        f"Number of questions: about {config.question_count}.\n"
        f"Total marks: {config.total_marks:g}.\n"
        f"Question types: {types}.\n"
        "For each question give the Bloom's taxonomy level, the correct answer and an explanation."
    )
    if config.source_pdf and config.pdf_page_range:
        prompt += (
            f"\nIMPORTANT: the attached PDF is a whole book. Use ONLY the content between page "
            f"{config.pdf_page_range.start} and page {config.pdf_page_range.end}. Ignore everything else."
        )

    content: List[Dict[str, Any]] = [{"type": "text", "text": prompt}]
    if config.source_text.strip():
        content.append({"type": "text", "text": f"Source text:\n{config.source_text}"})
    if config.source_pdf:
        content.append({
            "type": "file",
            "file": {
                "filename": "source.pdf",
                "file_data": f"data:application/pdf;base64,{_strip_data_uri(config.source_pdf)}",
            },
        })
    for image in config.source_images:
        content.append({
            "type": "image_url",
            "image_url": {"url": f"data:image/jpeg;base64,{_strip_data_uri(image)}"},
        })
    return content

# ------------------------------------------------------------
# Main generator
# ------------------------------------------------------------
async def generate_exam(
    config: GenerateRequest,
    model_name: str = EXAM_MODEL,
    api_key: str | None = None,
) -> ExamDocument:
    client = configure_openai(api_key)
    system_prompt = QG_SYSTEM_TEMPLATE.format(
        true_label=TRUE_FALSE_LABELS["ar"][0],
        false_label=TRUE_FALSE_LABELS["ar"][1],
        total_marks=f"{config.total_marks:g}",
    )

    try:
        resp = await client.chat.completions.create(
            model=model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": _build_user_content(config)},
            ],
            response_format={"type": "json_object"},
            temperature=0.4,
        )
    except Exception as e:
        logger.error(f"Exam generation request failed: {e}", exc_info=True)
        raise HTTPException(
            status_code=502,
            detail="Exam generation failed. Check the sources and try again.",
        )

    raw = resp.choices[0].message.content or ""
    data = _parse_json_response(raw)
    items = data.get("questions")
    if not isinstance(items, list) or not items:
        raise HTTPException(status_code=502, detail="Model returned no questions.")

    exam = ExamDocument(
        id=new_exam_id(),
        version="A",
        created_at=datetime.now(timezone.utc),
        language="ar",
        questions=_build_questions(items, true_false_language="ar"),
        header=config.header,
    )
    if exam.total_points != config.total_marks:
        logger.warning(
            f"Exam {exam.id} totals {exam.total_points:g} points, requested {config.total_marks:g}"
        )
    logger.info(f"Generated exam={exam.id} with {len(exam.questions)} questions.")
    return exam

# ------------------------------------------------------------
# Translation
# ------------------------------------------------------------
async def translate_exam(
    exam: ExamDocument,
    target_language: str = "en",
    model_name: str = EXAM_MODEL,
    api_key: str | None = None,
) -> ExamDocument:
    client = configure_openai(api_key)
    system_prompt = TRANSLATE_SYSTEM_TEMPLATE.format(language_name=LANGUAGE_NAMES[target_language])
    payload = {"questions": [q.model_dump(mode="json") for q in exam.questions]}

    try:
        resp = await client.chat.completions.create(
            model=model_name,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": json.dumps(payload, ensure_ascii=False)},
            ],
            response_format={"type": "json_object"},
        )
    except Exception as e:
        logger.error(f"Translation request failed: {e}", exc_info=True)
        raise HTTPException(status_code=502, detail="Translation failed.")

    data = _parse_json_response(resp.choices[0].message.content or "")
    items = data.get("questions")
    if not isinstance(items, list):
        raise HTTPException(status_code=502, detail="Translation returned no questions.")

    questions = _build_questions(items)
    if [q.type for q in questions] != [q.type for q in exam.questions]:
        logger.error(f"Translation of exam={exam.id} changed the question structure")
        raise HTTPException(status_code=502, detail="Translation changed the exam structure.")
    # Points and true/false answers come from the source, labels from the target locale
    pinned = []
    for q, src in zip(questions, exam.questions):
        update = {"points": src.points}
        if q.type == "true_false":
            label = true_false_label(src.correct_answer, target_language)
            if label is None:
                logger.error(f"Exam={exam.id} question {src.id} has no usable true/false answer")
                raise HTTPException(status_code=502, detail="Translation failed.")
            update["correct_answer"] = label
        pinned.append(q.model_copy(update=update))
    questions = pinned

    translated = ExamDocument(
        id=exam.id,
        version=exam.version,
        created_at=exam.created_at,
        language=target_language,
        questions=questions,
        header=exam.header,
    )
    logger.info(f"Translated exam={exam.id} to {target_language}.")
    return translated

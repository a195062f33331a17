# backend/exam_studio/app.py

import os, logging
from typing import Optional
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.status import HTTP_422_UNPROCESSABLE_ENTITY
from starlette.middleware.base import BaseHTTPMiddleware
from dotenv import load_dotenv

from exam_studio.core.schemas import (
    AnswerSheet,
    ExamDocument,
    ExamResponse,
    ExamSummary,
    GenerateRequest,
    GradeRequest,
    GradingResult,
    HistoryResponse,
    QuestionUpdate,
    QuizResponse,
    ScoreRequest,
    ScoreResult,
    TranslateRequest,
    VersionRequest,
)
from exam_studio.core.analytics import summarize
from exam_studio.core.document import make_parallel_form, update_question
from exam_studio.core.history import HistoryStore
from exam_studio.core.layout import build_answer_sheet, quiz_questions
from exam_studio.core.openai_generator import generate_exam, translate_exam
from exam_studio.core.openai_grader import grade_sheet
from exam_studio.core.scoring import score_answers

# ------------------------------------------------------------
# Setup
# ------------------------------------------------------------
load_dotenv()
logging.basicConfig(level=logging.DEBUG)
logger = logging.getLogger("exam")

app = FastAPI(title="Exam Studio API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

# Middleware to log requests
class LogRequestMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        try:
            body = await request.body()
            # bodies may carry base64 images
            logger.info(
                f"Incoming {request.method} {request.url.path} body={body.decode('utf-8')[:500]}"
            )
        except Exception:
            logger.warning("Could not read request body")
        return await call_next(request)

app.add_middleware(LogRequestMiddleware)

# Past exams, most recent first; mirrored to EXAM_HISTORY_PATH when set
HISTORY = HistoryStore(os.getenv("EXAM_HISTORY_PATH"))

# ------------------------------------------------------------
# Helpers
# ------------------------------------------------------------
def get_exam(exam_id: str) -> ExamDocument:
    exam = HISTORY.get(exam_id)
    if not exam:
        logger.warning(f"Exam not found: {exam_id}")
        raise HTTPException(status_code=404, detail="Exam not found")
    return exam

def missing_key_response() -> JSONResponse:
    return JSONResponse(
        {"status": "error", "message": "OpenAI API key is missing."},
        status_code=500,
    )

# ------------------------------------------------------------
# Exception handlers
# ------------------------------------------------------------
@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.error(f"Validation error: {exc.errors()}")
    return JSONResponse(
        status_code=HTTP_422_UNPROCESSABLE_ENTITY,
        content={
            "status": "error",
            "detail": [
                {"loc": list(err.get("loc", ())), "msg": err.get("msg", ""), "type": err.get("type", "")}
                for err in exc.errors()
            ],
            "body": exc.body,
        },
    )

@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"status": "error", "message": str(exc)},
    )

# ------------------------------------------------------------
# Routes: exam lifecycle
# ------------------------------------------------------------
@app.post("/exams/generate", response_model=ExamResponse)
async def generate_exam_route(req: GenerateRequest):
    try:
        exam = await generate_exam(req)
    except RuntimeError as e:
        logger.error(f"RuntimeError: {e}")
        return missing_key_response()
    except HTTPException:
        raise
    except Exception as e:
        logger.error("Exception during generate_exam", exc_info=True)
        raise HTTPException(status_code=500, detail=f"Generation failed: {e}")

    HISTORY.commit(exam)
    return {"status": "ok", "exam": exam}

@app.get("/exams", response_model=HistoryResponse)
def list_exams():
    return {"status": "ok", "exams": HISTORY.list()}

@app.get("/exams/{exam_id}", response_model=ExamResponse)
def read_exam(exam_id: str):
    return {"status": "ok", "exam": get_exam(exam_id)}

@app.delete("/exams/{exam_id}")
def delete_exam(exam_id: str):
    if not HISTORY.delete(exam_id):
        raise HTTPException(status_code=404, detail="Exam not found")
    return {"status": "ok", "message": f"Exam {exam_id} removed."}

@app.patch("/exams/{exam_id}/questions/{question_id}", response_model=ExamResponse)
def edit_question(exam_id: str, question_id: int, req: QuestionUpdate):
    exam = get_exam(exam_id)
    try:
        updated = update_question(exam, question_id, req.model_dump(exclude_unset=True))
    except KeyError:
        raise HTTPException(status_code=404, detail="Question not found")
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))

    HISTORY.commit(updated)
    return {"status": "ok", "exam": updated}

@app.post("/exams/{exam_id}/translate", response_model=ExamResponse)
async def translate_exam_route(exam_id: str, req: TranslateRequest):
    exam = get_exam(exam_id)
    if exam.language == req.target_language:
        return {"status": "ok", "exam": exam}
    try:
        translated = await translate_exam(exam, req.target_language)
    except RuntimeError as e:
        logger.error(f"RuntimeError: {e}")
        return missing_key_response()

    HISTORY.commit(translated)
    return {"status": "ok", "exam": translated}

@app.post("/exams/{exam_id}/versions", response_model=ExamResponse)
def create_version(exam_id: str, req: VersionRequest):
    form = make_parallel_form(get_exam(exam_id), req.version, req.seed)
    HISTORY.commit(form)
    return {"status": "ok", "exam": form}

# ------------------------------------------------------------
# Routes: views and grading
# ------------------------------------------------------------
@app.get("/exams/{exam_id}/answer_sheet", response_model=AnswerSheet)
def answer_sheet(exam_id: str, language: Optional[str] = None):
    if language is not None and language not in ("ar", "en"):
        raise HTTPException(status_code=422, detail="language must be 'ar' or 'en'")
    return build_answer_sheet(get_exam(exam_id), language)

@app.get("/exams/{exam_id}/quiz", response_model=QuizResponse)
def quiz(exam_id: str):
    exam = get_exam(exam_id)
    return {
        "status": "ok",
        "exam_id": exam.id,
        "total_points": exam.total_points,
        "questions": quiz_questions(exam),
    }

@app.post("/exams/{exam_id}/score", response_model=ScoreResult)
def score(exam_id: str, req: ScoreRequest):
    exam = get_exam(exam_id)
    result = score_answers(exam, req.answers)
    logger.debug(
        f"Scored exam={exam_id}: {result.earned_points:g}/{result.total_points:g} "
        f"({result.percentage}%), manual review={result.manual_review}"
    )
    return result

@app.post("/exams/{exam_id}/grade", response_model=GradingResult)
def grade(exam_id: str, req: GradeRequest):
    exam = get_exam(exam_id)
    try:
        return grade_sheet(req.image, exam)
    except RuntimeError as e:
        logger.error(f"RuntimeError: {e}")
        return missing_key_response()

@app.get("/exams/{exam_id}/analytics", response_model=ExamSummary)
def analytics(exam_id: str):
    return summarize(get_exam(exam_id))

@app.get("/healthz")
def healthz():
    return {"ok": True}

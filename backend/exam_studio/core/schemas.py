from datetime import datetime, timezone
from typing import Annotated, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, model_validator

QuestionType = Literal["mcq", "true_false", "matching", "essay"]
BloomLevel = Literal["remember", "understand", "apply", "analyze", "evaluate", "create"]
Language = Literal["ar", "en"]
Difficulty = Literal["easy", "medium", "hard"]

# Auto-gradable question types
GRADABLE_TYPES = ("mcq", "true_false")

TRUE_FALSE_LABELS: Dict[str, tuple] = {
    "ar": ("صح", "خطأ"),
    "en": ("True", "False"),
}


# ------------------------------------------------------------
# Exam document
# ------------------------------------------------------------
class ExamHeader(BaseModel):
    teacher_name: str = ""
    school_name: str = ""
    school_logo: Optional[str] = None      # base64
    ministry_logo: Optional[str] = None    # base64
    exam_type: Literal["final", "midterm1", "midterm2", "quiz"] = "quiz"
    subject: str = ""
    grade_level: str = ""
    term: str = ""
    year: str = ""


class MatchingPair(BaseModel):
    left: str
    right: str


class _QuestionBase(BaseModel):
    id: int = Field(..., ge=1)
    text: str
    explanation: str = ""
    points: float = Field(..., gt=0)
    correct_answer: str = ""
    bloom_level: Optional[BloomLevel] = None


class MCQQuestion(_QuestionBase):
    type: Literal["mcq"] = "mcq"
    options: List[str] = Field(default_factory=list)


class TrueFalseQuestion(_QuestionBase):
    type: Literal["true_false"] = "true_false"


class MatchingQuestion(_QuestionBase):
    type: Literal["matching"] = "matching"
    matching_pairs: List[MatchingPair] = Field(default_factory=list)


class EssayQuestion(_QuestionBase):
    type: Literal["essay"] = "essay"


Question = Annotated[
    Union[MCQQuestion, TrueFalseQuestion, MatchingQuestion, EssayQuestion],
    Field(discriminator="type"),
]


class ExamDocument(BaseModel):
    id: str
    version: str = "A"
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    total_points: float = 0
    language: Language = "ar"
    questions: List[Question] = Field(default_factory=list)
    header: Optional[ExamHeader] = None

    @model_validator(mode="after")
    def _check_questions(self):
        """Ids run 1..N in display order; total_points mirrors the questions, whatever was supplied."""
        ids = [q.id for q in self.questions]
        if ids != list(range(1, len(ids) + 1)):
            raise ValueError(f"question ids must run 1..{len(ids)} in display order, got {ids}")
        self.total_points = sum(q.points for q in self.questions)
        return self


# ------------------------------------------------------------
# Request models
# ------------------------------------------------------------
class PageRange(BaseModel):
    start: int = Field(..., ge=1)
    end: int = Field(..., ge=1)

    @model_validator(mode="after")
    def _ordered(self):
        if self.start > self.end:
            raise ValueError("pdf_page_range.start must not exceed pdf_page_range.end")
        return self


class GenerateRequest(BaseModel):
    header: ExamHeader = Field(default_factory=ExamHeader)
    source_text: str = ""
    source_images: List[str] = Field(default_factory=list)   # base64 or data URIs
    source_pdf: Optional[str] = None                          # base64
    pdf_page_range: Optional[PageRange] = None
    difficulty: Difficulty = "medium"
    question_count: int = Field(5, ge=1, le=100)
    total_marks: float = Field(20, gt=0)
    include_types: List[QuestionType] = Field(
        default_factory=lambda: ["mcq", "true_false", "matching", "essay"]
    )

    @model_validator(mode="after")
    def _has_inputs(self):
        if not self.source_text.strip() and not self.source_images and not self.source_pdf:
            raise ValueError("Add source material (text, a PDF or images) to generate an exam.")
        if not self.include_types:
            raise ValueError("Select at least one question type.")
        return self


class QuestionUpdate(BaseModel):
    """Field-level edit; only the supplied fields change."""
    text: Optional[str] = None
    explanation: Optional[str] = None
    points: Optional[float] = Field(None, gt=0)
    correct_answer: Optional[str] = None
    options: Optional[List[str]] = None
    matching_pairs: Optional[List[MatchingPair]] = None
    bloom_level: Optional[BloomLevel] = None


class TranslateRequest(BaseModel):
    target_language: Language = "en"


class VersionRequest(BaseModel):
    version: str = Field("B", min_length=1, max_length=1)
    seed: Optional[int] = None


class ScoreRequest(BaseModel):
    answers: Dict[int, str] = Field(default_factory=dict)


class GradeRequest(BaseModel):
    image: str      # base64 or data URI of the photographed answer sheet


# ------------------------------------------------------------
# Response models
# ------------------------------------------------------------
class QuestionResult(BaseModel):
    question_id: int
    submitted: Optional[str] = None
    expected: str
    correct: bool


class ScoreResult(BaseModel):
    earned_points: float
    total_points: float
    percentage: int
    manual_review: List[int] = Field(default_factory=list)
    results: List[QuestionResult] = Field(default_factory=list)


class Correction(BaseModel):
    question_id: int
    student_answer: str = ""
    correct_answer: str = ""
    is_correct: bool = False


class GradingResult(BaseModel):
    student_name: str = "unknown"
    score: float
    total_score: float
    corrections: List[Correction] = Field(default_factory=list)


class AnswerRow(BaseModel):
    label: str
    question_id: int
    type: QuestionType
    is_sub_item: bool = False
    choices: List[str] = Field(default_factory=list)


class AnswerSheet(BaseModel):
    exam_id: str
    version: str
    language: Language
    verify_url: str
    columns: List[List[AnswerRow]]
    essay_questions: List[EssayQuestion] = Field(default_factory=list)


class QuizQuestion(BaseModel):
    """Student-facing question: no answers, no explanations."""
    id: int
    type: QuestionType
    text: str
    points: float
    options: Optional[List[str]] = None
    prompts: Optional[List[str]] = None
    answer_bank: Optional[List[str]] = None


class QuizResponse(BaseModel):
    status: str
    exam_id: str
    total_points: float
    questions: List[QuizQuestion]


class ExamResponse(BaseModel):
    status: str
    exam: ExamDocument


class HistoryResponse(BaseModel):
    status: str
    exams: List[ExamDocument]


class TypeBreakdown(BaseModel):
    count: int = 0
    points: float = 0


class ExamSummary(BaseModel):
    question_count: int
    total_points: float
    by_type: Dict[str, TypeBreakdown]
    bloom_counts: Dict[str, int]
    bloom_percentages: Dict[str, int]

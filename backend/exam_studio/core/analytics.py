from collections import Counter

from .layout import TYPE_PRIORITY
from .schemas import ExamDocument, ExamSummary, TypeBreakdown
from .scoring import percentage

BLOOM_LEVELS = ("remember", "understand", "apply", "analyze", "evaluate", "create")


def summarize(exam: ExamDocument) -> ExamSummary:
    """Type and Bloom-level balance of an exam."""
    by_type = {t: TypeBreakdown() for t in TYPE_PRIORITY}
    for q in exam.questions:
        entry = by_type[q.type]
        entry.count += 1
        entry.points += q.points

    bloom = Counter(q.bloom_level for q in exam.questions if q.bloom_level)
    tagged = sum(bloom.values())

    return ExamSummary(
        question_count=len(exam.questions),
        total_points=exam.total_points,
        by_type=by_type,
        bloom_counts={level: bloom.get(level, 0) for level in BLOOM_LEVELS},
        bloom_percentages={level: percentage(bloom.get(level, 0), tagged) for level in BLOOM_LEVELS},
    )

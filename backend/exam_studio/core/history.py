import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import TypeAdapter, ValidationError

from .schemas import ExamDocument

logger = logging.getLogger("exam.history")

_history_adapter = TypeAdapter(List[ExamDocument])


class HistoryStore:
    """
    Past exams keyed by id, listed most recent first.

    With a ``path`` the store is mirrored to a JSON file: read once on
    construction and rewritten after every change.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path) if path else None
        self._exams: Dict[str, ExamDocument] = {}
        if self.path and self.path.exists():
            self._load()

    def _load(self) -> None:
        raw = self.path.read_bytes()
        try:
            exams = _history_adapter.validate_json(raw)
        except ValidationError as e:
            # Keep the unreadable file so later saves do not overwrite it
            aside = self.path.with_suffix(self.path.suffix + ".corrupt")
            logger.error(f"Could not load history from {self.path}: {e}; moved to {aside}")
            os.replace(self.path, aside)
            return
        self._exams = {exam.id: exam for exam in exams}
        logger.info(f"Loaded {len(self._exams)} exams from {self.path}")

    def _save(self) -> None:
        if not self.path:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = _history_adapter.dump_python(self.list(), mode="json")
        fd, tmp = tempfile.mkstemp(dir=self.path.parent, prefix=self.path.name, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                json.dump(payload, fh, ensure_ascii=False, indent=2)
            os.replace(tmp, self.path)
        except BaseException:
            os.unlink(tmp)
            raise

    def commit(self, exam: ExamDocument) -> ExamDocument:
        """Insert ``exam`` or replace the stored exam with the same id."""
        self._exams[exam.id] = exam
        self._save()
        logger.info(f"Committed exam={exam.id} version={exam.version}")
        return exam

    def get(self, exam_id: str) -> Optional[ExamDocument]:
        return self._exams.get(exam_id)

    def list(self) -> List[ExamDocument]:
        return sorted(self._exams.values(), key=lambda e: e.created_at, reverse=True)

    def delete(self, exam_id: str) -> bool:
        if self._exams.pop(exam_id, None) is None:
            return False
        self._save()
        logger.info(f"Deleted exam={exam_id}")
        return True

    def __len__(self) -> int:
        return len(self._exams)

    def __contains__(self, exam_id: str) -> bool:
        return exam_id in self._exams

# schemas/snapshot.py
from __future__ import annotations

from typing import Iterator, List, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class SnapshotQuestion(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    question_number: Optional[int] = None
    question_text: str
    options: Tuple[str, ...] = ()
    # only ever shown after submission
    correct_option_index: Optional[int] = None
    explanation: Optional[str] = None
    marks: Optional[float] = None
    negative_marks: Optional[float] = None


class SnapshotSection(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    title: str = ""
    questions: Tuple[SnapshotQuestion, ...] = ()


class Snapshot(BaseModel):
    """Exam content as it was when the attempt started."""

    model_config = ConfigDict(frozen=True)

    test_name: str
    duration_in_seconds: int = Field(default=3600, ge=0)
    positive_marks: Optional[float] = None
    negative_marks: Optional[float] = None
    total_marks: float = 0
    sections: Tuple[SnapshotSection, ...] = ()

    @property
    def total_questions(self) -> int:
        return sum(len(s.questions) for s in self.sections)

    def iter_questions(self) -> Iterator[Tuple[SnapshotSection, SnapshotQuestion]]:
        for section in self.sections:
            for question in section.questions:
                yield section, question

    def find_question(
        self, question_id: str
    ) -> Tuple[Optional[SnapshotSection], Optional[SnapshotQuestion]]:
        for section, question in self.iter_questions():
            if question.id == question_id:
                return section, question
        return None, None

    def marks_for(self, question: SnapshotQuestion) -> float:
        # question -> test default -> 1
        for value in (question.marks, self.positive_marks):
            if value is not None:
                return value
        return 1

    def penalty_for(self, question: SnapshotQuestion) -> float:
        for value in (question.negative_marks, self.negative_marks):
            if value is not None:
                return abs(value)
        return 0


# ---------- Catalog input (shape of tests.sections) ----------


class CatalogQuestion(BaseModel):
    id: str
    question_number: Optional[int] = None
    question_text: str
    options: List[str] = Field(default_factory=list)
    correct_option_index: Optional[int] = None
    explanation: Optional[str] = None
    marks: Optional[float] = None
    negative_marks: Optional[float] = None


class CatalogSection(BaseModel):
    id: str
    title: str = ""
    questions: List[CatalogQuestion] = Field(default_factory=list)

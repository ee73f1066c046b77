from __future__ import annotations

import copy
import logging
from typing import Any, Dict

from pydantic import ValidationError as SchemaError

from errors import INVALID_TEST_DEFINITION, InvalidTestDefinitionError
from models import Test
from schemas.snapshot import CatalogSection, Snapshot, SnapshotQuestion, SnapshotSection

logger = logging.getLogger(__name__)


def build_snapshot(test: Test) -> Snapshot:
    """Freeze a test definition into the value embedded in a new attempt.

    Reads the catalog row once; nothing in the result aliases it, so later edits
    to the test cannot reach an attempt that already started. A row that does
    not fit the catalog shape raises InvalidTestDefinitionError.
    """
    try:
        return _freeze(test)
    except (SchemaError, TypeError) as exc:
        logger.error("test %s has an invalid definition: %s", test.id, exc)
        raise InvalidTestDefinitionError(INVALID_TEST_DEFINITION) from exc


def _freeze(test: Test) -> Snapshot:
    raw_sections = copy.deepcopy(test.sections or [])
    if not isinstance(raw_sections, list):
        raise TypeError(f"sections must be a list, got {type(raw_sections).__name__}")
    sections = []
    total_marks = 0.0

    for raw in raw_sections:
        section = CatalogSection.model_validate(raw)
        questions = []
        for q in section.questions:
            questions.append(
                SnapshotQuestion(
                    id=q.id,
                    question_number=q.question_number,
                    question_text=q.question_text,
                    options=tuple(q.options),
                    correct_option_index=q.correct_option_index,
                    explanation=q.explanation,
                    marks=q.marks,
                    negative_marks=q.negative_marks,
                )
            )
            total_marks += q.marks if q.marks is not None else 1
        sections.append(SnapshotSection(id=section.id, title=section.title, questions=tuple(questions)))

    return Snapshot(
        test_name=test.test_name,
        duration_in_seconds=test.duration_in_seconds if test.duration_in_seconds is not None else 3600,
        positive_marks=test.positive_marks,
        negative_marks=test.negative_marks,
        total_marks=total_marks,
        sections=tuple(sections),
    )


def dump_snapshot(snapshot: Snapshot) -> Dict[str, Any]:
    return snapshot.model_dump(mode="json")


def load_snapshot(data: Dict[str, Any]) -> Snapshot:
    return Snapshot.model_validate(data)

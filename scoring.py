from __future__ import annotations

import math
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Protocol

from schemas.snapshot import Snapshot

# Live-view question states
UNVISITED = "UNVISITED"
ANSWERED = "ANSWERED"
ANSWERED_MARKED = "ANSWERED_MARKED"
MARKED = "MARKED"
UNANSWERED = "UNANSWERED"
PALETTE_KEYS = (ANSWERED, ANSWERED_MARKED, UNANSWERED, MARKED, UNVISITED)


class ResponseLike(Protocol):
    section_id: str
    question_id: str
    selected_option: Optional[int]
    attempted: bool
    is_correct: Optional[bool]
    visited: bool
    marked_for_review: bool


@dataclass(frozen=True)
class AttemptResults:
    score: float
    correct: int
    incorrect: int
    unattempted: int
    accuracy: float
    percentage: float
    speed: float

    def as_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _accuracy(correct: int, incorrect: int) -> float:
    attempted = correct + incorrect
    return (correct / attempted) * 100 if attempted > 0 else 0.0


def compute_results(
    snapshot: Snapshot,
    responses: Iterable[ResponseLike],
    started_at: datetime,
    submitted_at: datetime,
) -> AttemptResults:
    """Final numbers for an attempt, from its snapshot and responses only.

    accuracy ignores unattempted questions; percentage does not.
    """
    correct = incorrect = 0
    score = 0.0

    for r in responses:
        if not r.attempted or r.is_correct is None:
            continue
        _, question = snapshot.find_question(r.question_id)
        if r.is_correct:
            correct += 1
            if question is not None:
                score += snapshot.marks_for(question)
        else:
            incorrect += 1
            if question is not None:
                score -= snapshot.penalty_for(question)

    total = snapshot.total_questions
    minutes = (submitted_at - started_at).total_seconds() / 60

    return AttemptResults(
        score=score,
        correct=correct,
        incorrect=incorrect,
        unattempted=max(0, total - (correct + incorrect)),
        accuracy=_accuracy(correct, incorrect),
        percentage=(correct / total) * 100 if total > 0 else 0.0,
        speed=(correct + incorrect) / minutes if minutes > 0 else 0.0,
    )


def remaining_seconds(snapshot: Snapshot, started_at: datetime, now: datetime) -> int:
    elapsed = (now - started_at).total_seconds()
    return max(0, math.floor(snapshot.duration_in_seconds - elapsed))


def question_status(response: Optional[ResponseLike]) -> str:
    if response is None:
        return UNVISITED
    if response.selected_option is not None and response.marked_for_review:
        return ANSWERED_MARKED
    if response.selected_option is not None:
        return ANSWERED
    if response.marked_for_review:
        return MARKED
    if response.visited:
        return UNANSWERED
    return UNVISITED


def palette(statuses: Iterable[str]) -> Dict[str, int]:
    counts = {key: 0 for key in PALETTE_KEYS}
    for s in statuses:
        counts[s] += 1
    return counts


# ---------- Post-submission analysis ----------


def section_report(snapshot: Snapshot, responses: Iterable[ResponseLike]) -> List[Dict[str, Any]]:
    by_question = {r.question_id: r for r in responses}
    report = []
    for section in snapshot.sections:
        correct = incorrect = 0
        for q in section.questions:
            r = by_question.get(q.id)
            if r is None or not r.attempted or r.is_correct is None:
                continue
            if r.is_correct:
                correct += 1
            else:
                incorrect += 1
        total = len(section.questions)
        report.append(
            {
                "section_id": section.id,
                "section_name": section.title,
                "correct": correct,
                "incorrect": incorrect,
                "unattempted": total - (correct + incorrect),
                "accuracy": _accuracy(correct, incorrect),
                "total": total,
            }
        )
    return report


def strongest_and_weakest(sections: List[Dict[str, Any]]) -> tuple[str, str]:
    # first section wins ties, in both directions
    strongest = weakest = ""
    best, worst = -1.0, 101.0
    for s in sections:
        if s["accuracy"] > best:
            best, strongest = s["accuracy"], s["section_name"]
        if s["accuracy"] < worst:
            worst, weakest = s["accuracy"], s["section_name"]
    return strongest, weakest


def question_report(snapshot: Snapshot, responses: Iterable[ResponseLike]) -> List[Dict[str, Any]]:
    by_question = {r.question_id: r for r in responses}
    report = []
    for section, q in snapshot.iter_questions():
        r = by_question.get(q.id)
        if r is None or not r.attempted or r.is_correct is None:
            status = "Unattempted"
        else:
            status = "Correct" if r.is_correct else "Incorrect"
        report.append(
            {
                "question_id": q.id,
                "question_number": q.question_number,
                "question_text": q.question_text,
                "options": list(q.options),
                "user_answer": r.selected_option if r is not None else None,
                "correct_answer": q.correct_option_index,
                "status": status,
                "explanation": q.explanation,
                "section": section.title,
            }
        )
    return report


def percentile(rank: Optional[int], total_participants: Optional[int]) -> float:
    if not rank or not total_participants or total_participants <= 1:
        return 0.0
    return ((total_participants - rank) / (total_participants - 1)) * 100


# ---------- Cutoffs ----------

CUTOFF_PASSED = "Passed"
CUTOFF_FAILED = "Failed"
CUTOFF_NOT_AVAILABLE = "Not Available"

CATEGORY_ALIASES = {"gen": "general", "general": "general", "obc": "obc", "sc": "sc", "st": "st"}


def cutoff_status(score: Optional[float], category: Optional[str], cutoffs: Optional[Dict[str, Any]]) -> str:
    """Passed/Failed against the cutoff of the candidate's category.

    Not Available when the test has no cutoffs, the category is unknown, or
    the category's cutoff is missing or not positive.
    """
    if not cutoffs or not category:
        return CUTOFF_NOT_AVAILABLE
    key = CATEGORY_ALIASES.get(category.strip().lower())
    threshold = cutoffs.get(key) if key else None
    if not isinstance(threshold, (int, float)) or threshold <= 0:
        return CUTOFF_NOT_AVAILABLE
    return CUTOFF_PASSED if (score or 0) >= threshold else CUTOFF_FAILED

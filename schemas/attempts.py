from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    # snake_case in Python, camelCase on the wire
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)


# ---------- Requests ----------


class SubmitQuestionRequest(CamelModel):
    question_id: str = Field(min_length=1)
    section_id: Optional[str] = None
    selected_option: Optional[int] = None
    time_taken: int = Field(default=0, ge=0)
    marked_for_review: bool = False


class VisitQuestionRequest(CamelModel):
    question_id: str = Field(min_length=1)
    section_id: Optional[str] = None


# ---------- Responses ----------


class StartAttemptOut(CamelModel):
    attempt_id: int
    started_at: datetime
    status: str
    resumed: bool = False
    test_name: str
    duration_in_seconds: int
    total_marks: float


class SubmitAttemptOut(CamelModel):
    attempt_id: int
    score: Optional[float] = None
    status: str
    submitted_at: Optional[datetime] = None
    already_submitted: bool = False


class AttemptSummaryOut(CamelModel):
    id: int
    test_series_id: int
    test_id: int
    status: str
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    score: Optional[float] = None
    correct: Optional[int] = None
    incorrect: Optional[int] = None
    unattempted: Optional[int] = None
    accuracy: Optional[float] = None
    percentage: Optional[float] = None
    speed: Optional[float] = None


class LiveQuestionOut(CamelModel):
    question_id: str
    question_number: Optional[int] = None
    question_text: str
    options: List[str]
    status: str
    selected_option: Optional[int] = None
    marked_for_review: bool = False


class LiveSectionOut(CamelModel):
    section_id: str
    title: str
    questions: List[LiveQuestionOut]


class LiveTestInfoOut(CamelModel):
    test_name: str
    total_questions: int
    total_marks: float
    duration_in_seconds: int
    started_at: datetime


class LiveViewOut(CamelModel):
    attempt_id: int
    remaining_time: int
    sections: List[LiveSectionOut]
    palette: Dict[str, int]
    test_info: LiveTestInfoOut


class UserSummaryOut(CamelModel):
    user_id: str
    test_name: str
    score: Optional[float] = None
    total_marks: float
    correct: Optional[int] = None
    incorrect: Optional[int] = None
    unattempted: Optional[int] = None
    accuracy: Optional[float] = None
    speed: Optional[float] = None
    percentage: Optional[float] = None
    rank: Optional[int] = None
    total_participants: Optional[int] = None
    percentile: float = 0
    started_at: Optional[datetime] = None
    submitted_at: Optional[datetime] = None


class SectionReportOut(CamelModel):
    section_id: str
    section_name: str
    correct: int
    incorrect: int
    unattempted: int
    accuracy: float
    total: int


class QuestionReportOut(CamelModel):
    question_id: str
    question_number: Optional[int] = None
    question_text: str
    options: List[str]
    user_answer: Optional[int] = None
    correct_answer: Optional[int] = None
    status: str
    explanation: Optional[str] = None
    section: str


class PerformanceOut(CamelModel):
    strongest_area: str
    weakest_area: str


class CutoffAnalysisOut(CamelModel):
    status: str
    user_category: Optional[str] = None
    cutoffs: Optional[Dict[str, Any]] = None


class ResultAnalysisOut(CamelModel):
    attempt_id: int
    user_summary: UserSummaryOut
    # null for admin preview attempts
    cutoff_analysis: Optional[CutoffAnalysisOut] = None
    section_report: List[SectionReportOut]
    performance_analysis: PerformanceOut
    question_report: List[QuestionReportOut]


class LeaderboardRowOut(CamelModel):
    position: int
    user: str
    score: float
    accuracy: float
    total_participants: int


class LeaderboardOut(CamelModel):
    test_id: int
    test_name: str
    total_participants: int
    leaderboard: List[LeaderboardRowOut]


class SchedulerStatusOut(CamelModel):
    is_active: bool
    active_count: int
    interval_seconds: float
    enabled: bool


class SweepOut(CamelModel):
    processed: int
    status: SchedulerStatusOut


class ErrorOut(BaseModel):
    success: bool = False
    detail: str

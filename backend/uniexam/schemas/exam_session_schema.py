from pydantic import BaseModel
from typing import Optional, Dict, List, Any

from .progress_schema import Answer, ProgressStatus


class NavigatePayload(BaseModel):
    index: int


class AnswerPayload(BaseModel):
    answer: Answer


class SessionView(BaseModel):
    exam_id: str
    student_id: str
    status: ProgressStatus
    current_question_index: int
    question_count: int
    answers: Dict[str, Answer]
    started_at: Optional[int]
    last_updated: int
    remaining_seconds: int
    remaining_display: str
    low_time: bool
    score: float
    max_score: float
    # set when the final push to the remote store failed
    submission_warning: Optional[str] = None


class SessionStartResponse(SessionView):
    resumed: bool
    title: str
    questions: List[Dict[str, Any]]


class RunCodeResponse(BaseModel):
    question_id: str
    passed: bool
    report: str
    error_kind: str
    applied: bool


class ResyncResponse(BaseModel):
    ok: bool
    error: Optional[str] = None

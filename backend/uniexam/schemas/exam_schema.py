from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, List
import enum

from .question_schema import Question


class Student(BaseModel):
    """Roster entry of a student; authentication happens elsewhere."""
    student_id: str
    name: str
    section: str = ""

    model_config = {"frozen": True, "from_attributes": True}


class ExamDefinition(BaseModel):
    """
    Snapshot of an exam as served by the exam/roster service.

    The order of `questions` defines navigation and the display index.
    A session binds to the snapshot fetched when the attempt starts.
    """
    id: str
    title: str = ""
    description: str = ""
    questions: List[Question] = Field(default_factory=list)
    duration_minutes: int
    assigned_sections: List[str] = Field(default_factory=list)
    is_active: bool = False

    model_config = {"frozen": True}

    @field_validator("duration_minutes")
    def duration_must_be_positive(cls, v):
        if v is None or v <= 0:
            raise ValueError("duration must be a positive integer (minutes)")
        return v

    @model_validator(mode="after")
    def check_questions(self) -> "ExamDefinition":
        ids = [q.id for q in self.questions]
        if len(set(ids)) != len(ids):
            raise ValueError("Duplicate question IDs are not allowed")
        if self.is_active:
            missing = [q.id for q in self.questions if not q.has_grading_data()]
            if missing:
                raise ValueError(f"Cannot publish exam with questions lacking grading data: {missing}")
        return self

    @property
    def question_count(self) -> int:
        return len(self.questions)

    @property
    def max_score(self) -> float:
        return float(sum(q.points for q in self.questions))

    @property
    def duration_seconds(self) -> int:
        return self.duration_minutes * 60

    def question_index(self, question_id: str) -> Optional[int]:
        for idx, q in enumerate(self.questions):
            if q.id == question_id:
                return idx
        return None

    def get_question(self, question_id: str):
        idx = self.question_index(question_id)
        return self.questions[idx] if idx is not None else None

    def is_eligible(self, student: Student) -> bool:
        return self.is_active and student.section in self.assigned_sections


class ExamAvailability(str, enum.Enum):
    NOT_STARTED = "not_started"
    RESUME = "resume"
    COMPLETED = "completed"


class ExamOverview(BaseModel):
    """One row of the student's exam list."""
    id: str
    title: str
    description: str
    duration_minutes: int
    question_count: int
    availability: ExamAvailability
    score: Optional[float] = None
    max_score: float
    remaining_seconds: Optional[int] = None



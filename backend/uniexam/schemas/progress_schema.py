"""
Progress record and answer value shapes.

A ProgressRecord is an immutable snapshot of one student's attempt on one exam.
Two copies of it exist (local cache and remote store); they are reconciled by
selecting one whole record, never by merging fields.
"""

from pydantic import BaseModel, Field
from typing import Annotated, Dict, Literal, Optional, Tuple, Union
import enum
import time


class ProgressStatus(str, enum.Enum):
    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MultipleChoiceAnswer(BaseModel):
    kind: Literal["multiple_choice"] = "multiple_choice"
    option_index: Union[int, str, None] = None

    model_config = {"frozen": True}


class ShortAnswerAnswer(BaseModel):
    kind: Literal["short_answer"] = "short_answer"
    text: str = ""

    model_config = {"frozen": True}


class CodeAnswer(BaseModel):
    kind: Literal["code_exercise"] = "code_exercise"
    code: str = ""
    last_execution_output: str = ""
    # None until a run finished for the current code
    last_execution_passed: Optional[bool] = None

    model_config = {"frozen": True}

    def edited(self, code: str) -> "CodeAnswer":
        """Return the answer for new source; a changed source invalidates the last run."""
        if code == self.code:
            return self
        return CodeAnswer(code=code)


Answer = Annotated[
    Union[MultipleChoiceAnswer, ShortAnswerAnswer, CodeAnswer],
    Field(discriminator="kind"),
]

ProgressKey = Tuple[str, str]


def now_ms() -> int:
    """Wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class ProgressRecord(BaseModel):
    student_id: str
    exam_id: str
    student_name: str = ""
    current_question_index: int = Field(0, ge=0)
    answers: Dict[str, Answer] = Field(default_factory=dict)
    status: ProgressStatus = ProgressStatus.NOT_STARTED
    started_at: Optional[int] = None
    last_updated: int = 0
    score: float = 0.0
    max_score: float = 0.0

    model_config = {"frozen": True}

    @property
    def key(self) -> ProgressKey:
        return (self.student_id, self.exam_id)

    @property
    def is_completed(self) -> bool:
        return self.status == ProgressStatus.COMPLETED

    def evolve(self, **changes) -> "ProgressRecord":
        """Copy with changes applied and revalidated."""
        data = self.model_dump()
        data.update(changes)
        return ProgressRecord.model_validate(data)

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw) -> "ProgressRecord":
        return cls.model_validate_json(raw)

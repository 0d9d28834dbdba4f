from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Annotated, List, Literal, Union
import enum


class QuestionKind(str, enum.Enum):
    """Enums for valid question kinds."""
    multiple_choice = "multiple_choice"
    short_answer = "short_answer"
    code_exercise = "code_exercise"


class TestCase(BaseModel):
    """One (input, expected output) pair of a code exercise."""
    __test__ = False

    input: str = ""
    output: str = ""


class QuestionBase(BaseModel):
    id: str = Field(..., min_length=1, description="Unique identifier of the question inside its exam.")
    text: str = Field("", description="The prompt shown to the student.")
    points: float = Field(..., ge=0, description="Points awarded for a correct answer.")

    model_config = {"frozen": True}

    def has_grading_data(self) -> bool:
        raise NotImplementedError


class MultipleChoiceQuestion(QuestionBase):
    kind: Literal["multiple_choice"] = "multiple_choice"
    options: List[str] = Field(default_factory=list, description="Ordered answer options.")
    correct_option_index: int = Field(0, ge=0)

    @model_validator(mode="after")
    def correct_index_within_options(self) -> "MultipleChoiceQuestion":
        # an empty option list is allowed while drafting; publishing checks has_grading_data
        if self.options and self.correct_option_index >= len(self.options):
            raise ValueError("correct_option_index must point to one of the options.")
        return self

    def has_grading_data(self) -> bool:
        return len(self.options) > 0


class ShortAnswerQuestion(QuestionBase):
    kind: Literal["short_answer"] = "short_answer"
    accepted_answers: List[str] = Field(default_factory=list)

    @field_validator("accepted_answers")
    @classmethod
    def drop_blank_answers(cls, v: List[str]) -> List[str]:
        return [a for a in v if a and a.strip()]

    def has_grading_data(self) -> bool:
        return len(self.accepted_answers) > 0


class CodeExerciseQuestion(QuestionBase):
    kind: Literal["code_exercise"] = "code_exercise"
    test_cases: List[TestCase] = Field(default_factory=list)

    def has_grading_data(self) -> bool:
        return len(self.test_cases) > 0


Question = Annotated[
    Union[MultipleChoiceQuestion, ShortAnswerQuestion, CodeExerciseQuestion],
    Field(discriminator="kind"),
]

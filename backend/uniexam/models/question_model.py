from ..db import Base, JSONType
from sqlalchemy import Column, Integer, Float, String, Enum


class QuestionDB(Base):
    __tablename__ = "questions"

    id = Column(String, primary_key=True)
    kind = Column(Enum('multiple_choice', 'short_answer', 'code_exercise', name='question_kind'),
                  nullable=False)
    text = Column(String, nullable=False, default="")
    points = Column(Float, nullable=False, default=1)

    # grading data; only the columns of the question's kind are set
    options = Column(JSONType, nullable=True)
    correct_option_index = Column(Integer, nullable=True)
    accepted_answers = Column(JSONType, nullable=True)
    test_cases = Column(JSONType, nullable=True)

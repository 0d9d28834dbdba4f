from ..db import Base, JSONType


"""
Exams Model and ExamQuestions Junction Table
| Column | Type | Notes |
| :--- | :--- | :--- |
| `id` | VARCHAR | Primary Key |
| `title` | VARCHAR | |
| `description` | VARCHAR | |
| `duration` | INTEGER | In minutes |
| `assigned_sections` | JSON | Section ids allowed to take the exam |
| `is_active` | BOOLEAN | Default `false` |

### ExamQuestions (Junction)
| Column | Type | Notes |
| :--- | :--- | :--- |
| `exam_id` | VARCHAR | FK -> Exams |
| `question_id` | VARCHAR | FK -> Questions |
| `order` | INTEGER | To maintain sequence in exam |
"""

from sqlalchemy import Column, String, Boolean, Integer, ForeignKey, Table
from sqlalchemy.orm import relationship, backref


# Association (junction) table between exams and questions
exam_questions = Table(
    "exam_questions",
    Base.metadata,
    Column("exam_id", String, ForeignKey("exams.id"), primary_key=True),
    Column("question_id", String, ForeignKey("questions.id"), primary_key=True),
    Column("order", Integer, nullable=False),
)


class Exam(Base):
    __tablename__ = "exams"

    id = Column(String, primary_key=True)
    title = Column(String, nullable=False)
    description = Column(String, nullable=True)
    duration = Column(Integer, nullable=False)  # in minutes
    assigned_sections = Column(JSONType, nullable=False, default=list)
    is_active = Column(Boolean, default=False)
    questions = relationship(
        "QuestionDB",
        secondary=exam_questions,
        backref=backref("exams"),
        order_by=exam_questions.c.order,
    )

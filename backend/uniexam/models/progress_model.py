from ..db import Base, JSONType
from sqlalchemy import Column, String, Integer, BigInteger, Float, Enum as SAEnum, UniqueConstraint
from sqlalchemy.ext.mutable import MutableDict

from ..schemas.progress_schema import ProgressStatus


class StudentProgress(Base):
    """Remote copy of a ProgressRecord; one row per (student_id, exam_id)."""
    __tablename__ = "student_progress"
    __table_args__ = (UniqueConstraint('student_id', 'exam_id', name='uq_progress_student_exam'),)

    id = Column(Integer, primary_key=True, autoincrement=True)

    student_id = Column(String, nullable=False)
    exam_id = Column(String, nullable=False)
    student_name = Column(String, nullable=False, default="")

    current_question_index = Column(Integer, nullable=False, default=0)
    # use MutableDict so SQLAlchemy detects in-place changes to JSON fields
    answers = Column(MutableDict.as_mutable(JSONType), nullable=False, default=dict)
    status = Column(SAEnum(ProgressStatus, values_callable=lambda e: [m.value for m in e], name="progress_status"),
                    default=ProgressStatus.NOT_STARTED, nullable=False)

    # epoch milliseconds
    started_at = Column(BigInteger, nullable=True)
    last_updated = Column(BigInteger, nullable=False, default=0)

    score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False, default=0.0)

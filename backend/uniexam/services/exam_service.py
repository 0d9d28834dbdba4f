from typing import List, Optional, Protocol
from pydantic import TypeAdapter
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from ..models.exam_model import Exam, exam_questions
from ..models.question_model import QuestionDB
from ..models.student_model import StudentDB
from ..schemas.exam_schema import ExamDefinition, Student
from ..schemas.question_schema import Question


_question_adapter = TypeAdapter(Question)


class ExamCatalog(Protocol):
    """Exam/roster service consumed by the session controller."""

    async def list_eligible_exams(self, student: Student) -> List[ExamDefinition]:
        ...

    async def get_exam_definition(self, exam_id: str) -> Optional[ExamDefinition]:
        ...

    async def get_student(self, student_id: str) -> Optional[Student]:
        ...


async def _get_ordered_question_ids(session: AsyncSession, exam_id: str) -> List[str]:
    stmt = select(exam_questions.c.question_id).where(exam_questions.c.exam_id == exam_id).order_by(exam_questions.c.order)
    res = await session.execute(stmt)
    return list(res.scalars().all())


async def _get_questions_for_exam(session: AsyncSession, qids: List[str]) -> List[QuestionDB]:
    if not qids:
        return []
    qres = await session.execute(select(QuestionDB).where(QuestionDB.id.in_(qids)))
    # Preserve order from qids
    qmap = {str(q.id): q for q in qres.scalars().all()}
    return [qmap[str(qid)] for qid in qids if str(qid) in qmap]


def _question_to_dict(q: QuestionDB) -> dict:
    data = {'id': q.id, 'kind': q.kind, 'text': q.text or "", 'points': q.points or 0}
    if q.kind == "multiple_choice":
        data['options'] = q.options or []
        data['correct_option_index'] = q.correct_option_index or 0
    elif q.kind == "short_answer":
        data['accepted_answers'] = q.accepted_answers or []
    elif q.kind == "code_exercise":
        data['test_cases'] = q.test_cases or []
    return data


def _exam_to_definition(exam: Exam, questions: List[QuestionDB]) -> ExamDefinition:
    return ExamDefinition(
        id=exam.id,
        title=exam.title,
        description=exam.description or "",
        questions=[_question_adapter.validate_python(_question_to_dict(q)) for q in questions],
        duration_minutes=exam.duration,
        assigned_sections=list(exam.assigned_sections or []),
        is_active=bool(exam.is_active),
    )


def sanitize_question(q) -> dict:
    # remove grading data to prevent leaking; code test cases stay visible to students
    data = {
        'id': q.id,
        'kind': q.kind,
        'text': q.text,
        'points': q.points,
    }
    if q.kind == "multiple_choice":
        data['options'] = list(q.options)
    elif q.kind == "code_exercise":
        data['test_cases'] = [tc.model_dump() for tc in q.test_cases]
    return data


class SqlExamCatalog:
    """Reads exam definitions and the roster from the shared database."""

    def __init__(self, engine: AsyncEngine):
        self._session_maker = async_sessionmaker(engine, expire_on_commit=False)

    async def _load(self, session: AsyncSession, exam: Exam) -> ExamDefinition:
        qids = await _get_ordered_question_ids(session, exam.id)
        questions = await _get_questions_for_exam(session, qids)
        return _exam_to_definition(exam, questions)

    async def get_exam_definition(self, exam_id: str) -> Optional[ExamDefinition]:
        async with self._session_maker() as session:
            res = await session.execute(select(Exam).where(Exam.id == exam_id))
            exam = res.scalar_one_or_none()
            if not exam:
                return None
            return await self._load(session, exam)

    async def list_eligible_exams(self, student: Student) -> List[ExamDefinition]:
        async with self._session_maker() as session:
            res = await session.execute(select(Exam).where(Exam.is_active == True).order_by(Exam.title))  # noqa: E712
            out = []
            for exam in res.scalars().all():
                # sections live in a JSON column; filter here to stay portable across dialects
                if student.section not in (exam.assigned_sections or []):
                    continue
                out.append(await self._load(session, exam))
            return out

    async def get_student(self, student_id: str) -> Optional[Student]:
        async with self._session_maker() as session:
            res = await session.execute(select(StudentDB).where(StudentDB.student_id == student_id))
            row = res.scalar_one_or_none()
            return Student.model_validate(row) if row else None

from fastapi import APIRouter, Depends, HTTPException, status
from typing import List
import logging

from ..dependencies import current_student, get_controller
from ..schemas.exam_schema import ExamOverview, Student
from ..schemas.exam_session_schema import (
    AnswerPayload,
    NavigatePayload,
    ResyncResponse,
    RunCodeResponse,
    SessionStartResponse,
    SessionView,
)
from ..services.errors import (
    AttemptAlreadyCompleted,
    ExamNotAvailable,
    InvalidAnswer,
    InvalidNavigation,
    SessionCompleted,
    SessionError,
    SessionNotFound,
    SubmissionNotPersisted,
)
from ..services.exam_service import sanitize_question
from ..services.session_service import SessionController

logger = logging.getLogger(__name__)

router = APIRouter()


def _to_http(e: SessionError) -> HTTPException:
    if isinstance(e, (ExamNotAvailable, SessionNotFound)):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, (AttemptAlreadyCompleted, SessionCompleted)):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))
    if isinstance(e, (InvalidAnswer, InvalidNavigation)):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    if isinstance(e, SubmissionNotPersisted):
        return HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))


@router.get("/student/exams", response_model=List[ExamOverview])
async def list_student_exams(student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    return await controller.list_exams(student)


@router.post("/exams/{exam_id}/start", response_model=SessionStartResponse)
async def start_exam(exam_id: str, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        exam_session, resumed = await controller.begin_attempt(student, exam_id)
    except SessionError as e:
        raise _to_http(e)

    # questions are sent without correct answers
    view = exam_session.view()
    return SessionStartResponse(
        **view.model_dump(),
        resumed=resumed,
        title=exam_session.exam.title,
        questions=[sanitize_question(q) for q in exam_session.exam.questions],
    )


@router.get("/exams/{exam_id}/session", response_model=SessionView)
async def get_session(exam_id: str, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        return controller.get_session(student.student_id, exam_id).view()
    except SessionError as e:
        raise _to_http(e)


@router.put("/exams/{exam_id}/answers/{question_id}", response_model=SessionView)
async def save_answer(exam_id: str, question_id: str, payload: AnswerPayload, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        exam_session = controller.get_session(student.student_id, exam_id)
        await exam_session.answer(question_id, payload.answer)
    except SessionError as e:
        raise _to_http(e)
    return exam_session.view()


@router.put("/exams/{exam_id}/navigate", response_model=SessionView)
async def navigate(exam_id: str, payload: NavigatePayload, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        exam_session = controller.get_session(student.student_id, exam_id)
        await exam_session.navigate(payload.index)
    except SessionError as e:
        raise _to_http(e)
    return exam_session.view()


@router.post("/exams/{exam_id}/questions/{question_id}/run", response_model=RunCodeResponse)
async def run_code(exam_id: str, question_id: str, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        exam_session = controller.get_session(student.student_id, exam_id)
        outcome = await exam_session.run_code(question_id)
    except SessionError as e:
        raise _to_http(e)
    return RunCodeResponse(
        question_id=outcome.question_id,
        passed=outcome.result.passed,
        report=outcome.result.report,
        error_kind=outcome.result.error_kind.value,
        applied=outcome.applied,
    )


@router.post("/exams/{exam_id}/submit", response_model=SessionView)
async def submit_exam(exam_id: str, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    try:
        exam_session = controller.get_session(student.student_id, exam_id)
        await exam_session.submit()
    except SubmissionNotPersisted as e:
        # completed locally; the student must be told the server copy is missing
        logger.warning("Submission for student_id=%s exam_id=%s kept locally only: %s", student.student_id, exam_id, e.error)
        raise _to_http(e)
    except SessionError as e:
        raise _to_http(e)
    return exam_session.view()


@router.post("/exams/{exam_id}/resync", response_model=ResyncResponse)
async def resync(exam_id: str, student: Student = Depends(current_student), controller: SessionController = Depends(get_controller)):
    result = await controller.resync(student.student_id, exam_id)
    return ResyncResponse(ok=result.success, error=result.error)

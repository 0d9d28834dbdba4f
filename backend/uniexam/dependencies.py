from fastapi import Depends, Header, HTTPException, Request, status
from typing import Optional

from .schemas.exam_schema import Student
from .services.session_service import SessionController


def get_controller(request: Request) -> SessionController:
    return request.app.state.controller


async def current_student(
    x_student_id: Optional[str] = Header(None),
    controller: SessionController = Depends(get_controller),
) -> Student:
    # identity comes from the exam station login; only the roster lookup happens here
    if not x_student_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-Student-Id header")
    student = await controller.catalog.get_student(x_student_id)
    if student is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unknown student")
    return student

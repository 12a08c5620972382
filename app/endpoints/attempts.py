from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query
from sqlalchemy.orm import Session

from app.core.constants import AttemptStatusEnum
from app.models.student import Student
from app.schemas.attempt import (
    Attempt, AttemptAnswer, AttemptAnswerIn, AttemptDetails, AttemptSubmit, AttemptTimeStatus,
    StudentAttemptSummary
)
from app.schemas.response import APIResponse
from app.services.attempt import attempt_service
from app.utils import deps

router = APIRouter()

@router.get("/", response_model=APIResponse[List[Attempt]])
def get_my_attempts(
    db: Session = Depends(deps.get_db),
    current_student: Student = Depends(deps.get_current_student),
    test_id: Optional[int] = None,
    status: Optional[AttemptStatusEnum] = Query(None),
    skip: int = 0,
    limit: int = Query(100, le=100)
):
    attempts = attempt_service.get_student_attempts(
        db, student_id=current_student.id, test_id=test_id, status=status, skip=skip, limit=limit
    )
    return APIResponse(message="Attempts retrieved successfully", data=[Attempt.model_validate(a) for a in attempts])


@router.get("/summary", response_model=APIResponse[StudentAttemptSummary])
def get_my_summary(
    db: Session = Depends(deps.get_db),
    current_student: Student = Depends(deps.get_current_student)
):
    summary = attempt_service.get_student_summary(db, student=current_student)
    return APIResponse(message="Summary retrieved successfully", data=StudentAttemptSummary(**summary))


@router.get("/{attempt_id}", response_model=APIResponse[Attempt])
def get_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    attempt = attempt_service.get_attempt(db, attempt_id=attempt_id, student=current_student)
    return APIResponse(message="Attempt retrieved successfully", data=Attempt.model_validate(attempt))


@router.get("/{attempt_id}/details", response_model=APIResponse[AttemptDetails])
def get_attempt_details(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    """Per-question review of a finalised attempt, correct answers included."""
    details = attempt_service.get_attempt_details(db, attempt_id=attempt_id, student=current_student)
    payload = AttemptDetails(
        attempt=Attempt.model_validate(details["attempt"]),
        detailed_answers=details["detailed_answers"],
    )
    return APIResponse(message="Attempt details retrieved successfully", data=payload)


@router.put("/{attempt_id}/answers", response_model=APIResponse[AttemptAnswer])
async def save_answer(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    answer_in: AttemptAnswerIn,
    current_student: Student = Depends(deps.get_current_student)
):
    answer = await attempt_service.save_answer(
        db, attempt_id=attempt_id, student=current_student, answer_in=answer_in
    )
    return APIResponse(message="Answer saved", data=AttemptAnswer.model_validate(answer))


@router.post("/{attempt_id}/submit", response_model=APIResponse[Attempt])
async def submit_attempt(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    submission: Optional[AttemptSubmit] = Body(None),
    current_student: Student = Depends(deps.get_current_student)
):
    attempt = await attempt_service.submit(
        db,
        attempt_id=attempt_id,
        student=current_student,
        answers=submission.answers if submission else None,
    )
    if attempt.status == AttemptStatusEnum.AUTO_SUBMITTED:
        message = "Time limit reached. Attempt was auto-submitted."
    else:
        message = "Test submitted successfully"
    return APIResponse(message=message, data=Attempt.model_validate(attempt))


@router.post("/{attempt_id}/expire-check", response_model=APIResponse[AttemptTimeStatus])
async def expire_check(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    attempt = await attempt_service.expire_check(db, attempt_id=attempt_id, student=current_student)
    return APIResponse(message="Attempt status checked", data=AttemptTimeStatus(**attempt_service.time_status(attempt)))


@router.get("/{attempt_id}/time", response_model=APIResponse[AttemptTimeStatus])
def get_time_status(
    *,
    db: Session = Depends(deps.get_db),
    attempt_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    attempt = attempt_service.get_attempt(db, attempt_id=attempt_id, student=current_student)
    return APIResponse(message="Time status retrieved", data=AttemptTimeStatus(**attempt_service.time_status(attempt)))

from typing import List, Optional

from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.orm import Session

from app.models.student import Student
from app.schemas.attempt import Attempt, AttemptAnswer, AttemptLaunch, DeviceInfo
from app.schemas.response import APIResponse
from app.schemas.test import Test, TestCreate, TestQuestionPublic, TestQuestionsForAttempt, TestSection, TestStatistics
from app.services.attempt import attempt_service
from app.services.test import test_service
from app.utils import deps

router = APIRouter()

@router.get("/", response_model=APIResponse[List[Test]])
def get_tests(
    db: Session = Depends(deps.get_db),
    current_student: Student = Depends(deps.get_current_student),
    skip: int = 0,
    limit: int = Query(100, le=100)
):
    tests = test_service.get_active_tests(db, skip=skip, limit=limit)
    return APIResponse(message="Tests retrieved successfully", data=[Test.model_validate(t) for t in tests])


@router.post("/", response_model=APIResponse[Test], status_code=status.HTTP_201_CREATED)
def create_test(
    *,
    db: Session = Depends(deps.get_transactional_db),
    test_in: TestCreate,
    current_admin: Student = Depends(deps.get_current_admin)
):
    new_test = test_service.create_test(db, test_in=test_in, current_student=current_admin)
    return APIResponse(message="Test created successfully", data=Test.model_validate(new_test))


@router.get("/{test_id}", response_model=APIResponse[Test])
def get_test(
    *,
    db: Session = Depends(deps.get_db),
    test_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    test = test_service.get_test(db, test_id=test_id)
    return APIResponse(message="Test retrieved successfully", data=Test.model_validate(test))


@router.post("/{test_id}/launch", response_model=APIResponse[AttemptLaunch])
async def launch_test(
    *,
    db: Session = Depends(deps.get_db),
    test_id: int,
    request: Request,
    device_info: Optional[DeviceInfo] = Body(None),
    current_student: Student = Depends(deps.get_current_student)
):
    """Start an attempt, or hand back the live one if the student already has it open."""
    attempt, created = await attempt_service.launch(
        db,
        test_id=test_id,
        student=current_student,
        device_info=device_info,
        user_agent=request.headers.get("user-agent"),
        ip_address=request.client.host if request.client else None,
    )
    time_status = attempt_service.time_status(attempt)
    launch = AttemptLaunch(
        attempt_id=attempt.id,
        start_time=attempt.start_time,
        duration=attempt.duration,
        server_time=time_status["server_time"],
        time_remaining=time_status["time_remaining"],
        resumed=not created,
    )
    message = "Test launched successfully" if created else "Resuming existing attempt"
    return APIResponse(message=message, data=launch)


@router.get("/{test_id}/questions", response_model=APIResponse[TestQuestionsForAttempt])
async def get_test_questions(
    *,
    db: Session = Depends(deps.get_db),
    test_id: int,
    attempt_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    """Questions without correctness flags, plus what the student saved so far."""
    data = await attempt_service.get_attempt_questions(
        db, test_id=test_id, attempt_id=attempt_id, student=current_student
    )
    payload = TestQuestionsForAttempt(
        questions=[TestQuestionPublic.model_validate(q) for q in data["questions"]],
        sections=[TestSection.model_validate(s) for s in data["sections"]],
        instructions=data["instructions"],
        saved_answers=[AttemptAnswer.model_validate(a) for a in data["saved_answers"]],
    )
    return APIResponse(message="Test questions retrieved successfully", data=payload)


@router.get("/{test_id}/attempts", response_model=APIResponse[List[Attempt]])
def get_my_test_attempts(
    *,
    db: Session = Depends(deps.get_db),
    test_id: int,
    current_student: Student = Depends(deps.get_current_student)
):
    attempts = attempt_service.get_student_attempts(db, student_id=current_student.id, test_id=test_id)
    return APIResponse(message="Attempts retrieved successfully", data=[Attempt.model_validate(a) for a in attempts])


@router.get("/{test_id}/statistics", response_model=APIResponse[TestStatistics])
def get_test_statistics(
    *,
    db: Session = Depends(deps.get_db),
    test_id: int,
    current_admin: Student = Depends(deps.get_current_admin)
):
    stats = attempt_service.get_test_statistics(db, test_id=test_id)
    return APIResponse(message="Test statistics retrieved successfully", data=TestStatistics(**stats))

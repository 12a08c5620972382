from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.models.student import Student as StudentModel
from app.schemas.response import APIResponse
from app.schemas.student import Student, StudentCreate
from app.schemas.token import LoginRequest, LoginResponse
from app.services.auth import auth_service
from app.utils import deps

router = APIRouter()

@router.post("/register", response_model=APIResponse[LoginResponse], status_code=status.HTTP_201_CREATED)
def register(
    *,
    db: Session = Depends(deps.get_db),
    student_in: StudentCreate
):
    login_data = auth_service.register(db, student_in=student_in)
    return APIResponse(message="Registration successful", data=login_data)

@router.post("/login", response_model=APIResponse[LoginResponse])
def login(
    request: LoginRequest,
    db: Session = Depends(deps.get_db)
):
    """Log in and start a new session; any earlier session of the student stops working."""
    login_data = auth_service.login(
        db,
        email=request.email,
        password=request.password,
        device_fingerprint=request.device_fingerprint
    )
    return APIResponse(message="Login successful", data=login_data)

@router.post("/logout", response_model=APIResponse[None])
def logout(
    db: Session = Depends(deps.get_db),
    current_student: StudentModel = Depends(deps.get_current_student)
):
    auth_service.logout(db, student=current_student)
    return APIResponse(message="Logged out successfully")

@router.get("/me", response_model=APIResponse[Student])
def read_current_student(current_student: StudentModel = Depends(deps.get_current_student)):
    return APIResponse(message="Student retrieved successfully", data=Student.model_validate(current_student))

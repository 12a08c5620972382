import logging
from typing import Optional

from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError, InvalidStateError
from app.core.security import create_access_token, generate_session_id, verify_password
from app.crud.student import student as crud_student
from app.models.student import Student
from app.schemas.student import Student as StudentSchema, StudentCreate
from app.schemas.token import LoginResponse, Token

logger = logging.getLogger(__name__)


class AuthService:
    def _issue_token(self, db: Session, student: Student, device_fingerprint: Optional[str] = None) -> LoginResponse:
        # A new session id invalidates every token issued before it
        session_id = generate_session_id()
        crud_student.start_session(db, student=student, session_id=session_id, device_fingerprint=device_fingerprint)
        access_token = create_access_token(data={"student_id": student.id, "session_id": session_id})
        return LoginResponse(
            token=Token(access_token=access_token, token_type="bearer"),
            student=StudentSchema.model_validate(student),
        )

    def register(self, db: Session, *, student_in: StudentCreate) -> LoginResponse:
        if crud_student.get_by_email(db, email=student_in.email):
            raise InvalidStateError("Email already registered")
        student = crud_student.create_student(db, obj_in=student_in)
        logger.info(f"Registered student {student.id}")
        return self._issue_token(db, student)

    def login(self, db: Session, *, email: str, password: str,
              device_fingerprint: Optional[str] = None) -> LoginResponse:
        student = crud_student.get_by_email(db, email=email)
        if not student or not verify_password(password, student.hashed_password):
            raise AuthenticationError("Invalid credentials")
        if not student.is_active:
            raise AuthenticationError("Account is deactivated. Please contact support.")
        return self._issue_token(db, student, device_fingerprint)

    def logout(self, db: Session, *, student: Student) -> None:
        crud_student.end_session(db, student=student)
        logger.info(f"Student {student.id} logged out")


auth_service = AuthService()

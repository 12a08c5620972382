from typing import Optional

from fastapi import Depends
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session

from app.core.database import SessionLocal
from app.core.exceptions import AuthenticationError, ForbiddenError
from app.crud.student import student as crud_student
from app.models.student import Student
from app.services.session import session_service

http_bearer = HTTPBearer(auto_error=False)

def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()

def get_transactional_db():
    db = SessionLocal()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()

def get_token(credentials: Optional[HTTPAuthorizationCredentials] = Depends(http_bearer)) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Access denied. No token provided.")
    return credentials.credentials

def get_current_student(
    db: Session = Depends(get_db),
    token: str = Depends(get_token)
) -> Student:
    """Resolve the bearer token to a student whose session is still the active one."""
    student = session_service.validate_token(db, token)
    crud_student.touch(db, student=student)
    return student

def get_current_admin(student: Student = Depends(get_current_student)) -> Student:
    if not student.is_admin:
        raise ForbiddenError("Admin access required.")
    return student

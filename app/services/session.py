import logging
from typing import Optional

from jose import JWTError
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError
from app.core.security import decode_access_token
from app.crud.student import student as crud_student
from app.models.student import Student
from app.schemas.token import TokenPayload

logger = logging.getLogger(__name__)


class SessionService:
    """
    Single authority for "is this token's session still the active one".

    Both the HTTP dependencies and the socket handlers go through here, so
    neither channel keeps its own notion of who is logged in.
    """

    def decode(self, token: Optional[str]) -> TokenPayload:
        if not token:
            raise AuthenticationError("Access denied. No token provided.")
        try:
            return TokenPayload(**decode_access_token(token))
        except JWTError:
            raise AuthenticationError("Invalid token.")
        except ValidationError:
            raise AuthenticationError("Invalid token payload.")

    def require_active(self, db: Session, *, student_id: int, session_id: str) -> Student:
        student = crud_student.get(db, id=student_id)
        if not student:
            raise AuthenticationError("Invalid token. Student not found.")
        if not student.is_active:
            raise AuthenticationError("Account is deactivated.")
        if not student.active_session_id or student.active_session_id != session_id:
            raise AuthenticationError("Session expired. Please login again.")
        return student

    def validate_token(self, db: Session, token: Optional[str]) -> Student:
        payload = self.decode(token)
        return self.require_active(db, student_id=payload.student_id, session_id=payload.session_id)


session_service = SessionService()

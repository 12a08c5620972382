from pydantic import BaseModel, EmailStr
from typing import Optional

from app.schemas.student import Student

class Token(BaseModel):
    access_token: str
    token_type: str

class TokenPayload(BaseModel):
    student_id: int
    session_id: str
    jti: Optional[str] = None
    exp: Optional[int] = None

class LoginRequest(BaseModel):
    email: EmailStr
    password: str
    device_fingerprint: Optional[str] = None

class LoginResponse(BaseModel):
    """Response for the login and register endpoints."""
    token: Token
    student: Student

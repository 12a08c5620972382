from sqlalchemy.orm import Session
from typing import Optional
from datetime import datetime

from app.crud.base import CRUDBase
from app.models.student import Student
from app.schemas.student import StudentCreate
from app.core.security import get_password_hash
from app.core.constants import RoleEnum

class CRUDStudent(CRUDBase[Student, StudentCreate, None]):
    def get_by_email(self, db: Session, *, email: str) -> Optional[Student]:
        return db.query(Student).filter(Student.email == email.lower()).first()

    def create_student(self, db: Session, *, obj_in: StudentCreate, role: RoleEnum = RoleEnum.STUDENT) -> Student:
        db_obj = Student(
            name=obj_in.name,
            email=obj_in.email.lower(),
            hashed_password=get_password_hash(obj_in.password),
            role=role.value,
            is_active=True,
        )
        db.add(db_obj)
        db.flush()
        return db_obj

    def start_session(self, db: Session, *, student: Student, session_id: str,
                      device_fingerprint: Optional[str] = None) -> Student:
        student.active_session_id = session_id
        student.device_fingerprint = device_fingerprint
        student.last_active_at = datetime.utcnow()
        db.add(student)
        db.commit()
        db.refresh(student)
        return student

    def end_session(self, db: Session, *, student: Student) -> Student:
        student.active_session_id = None
        student.device_fingerprint = None
        db.add(student)
        db.commit()
        return student

    def touch(self, db: Session, *, student: Student) -> None:
        student.last_active_at = datetime.utcnow()
        db.add(student)
        db.commit()

student = CRUDStudent(Student)

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, UniqueConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import EnrollmentStatusEnum, EnrollmentTypeEnum

class Enrollment(Base):
    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("student_id", "test_id", name="uq_enrollment_student_test"),)

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    enrollment_type = Column(String(20), nullable=False, default=EnrollmentTypeEnum.TEST.value)
    status = Column(String(20), nullable=False, default=EnrollmentStatusEnum.ENROLLED.value)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    student = relationship("Student", back_populates="enrollments")

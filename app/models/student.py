from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import RoleEnum

class Student(Base):
    __tablename__ = "students"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    email = Column(String, unique=True, index=True, nullable=False)
    hashed_password = Column(String, nullable=False)
    role = Column(String(20), nullable=False, default=RoleEnum.STUDENT.value)
    is_active = Column(Boolean, default=True)
    # Rotated on every login, so only the newest token is honoured
    active_session_id = Column(String, nullable=True, index=True)
    device_fingerprint = Column(String, nullable=True)
    last_active_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    attempts = relationship("Attempt", back_populates="student")
    orders = relationship("Order", back_populates="student")
    enrollments = relationship("Enrollment", back_populates="student")

    @property
    def is_admin(self) -> bool:
        return self.role == RoleEnum.ADMIN.value

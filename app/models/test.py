from datetime import datetime
from typing import Optional

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Float, JSON, Text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import TestTypeEnum

class Test(Base):
    __tablename__ = "tests"
    __test__ = False  # keep pytest from collecting the model

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(200), index=True, nullable=False)
    description = Column(Text, nullable=True)
    test_type = Column(String(10), nullable=False, default=TestTypeEnum.FREE.value)
    price = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    duration = Column(Integer, nullable=False)  # minutes
    total_questions = Column(Integer, nullable=False, default=0)
    total_marks = Column(Float, nullable=False, default=0)
    # Percentage threshold, compared against the attempt percentage
    passing_marks = Column(Float, nullable=False, default=0)
    attempts_allowed = Column(Integer, nullable=False, default=1)
    instructions = Column(JSON, nullable=False, default=list)
    is_active = Column(Boolean, default=True)
    valid_from = Column(DateTime, nullable=True)
    valid_until = Column(DateTime, nullable=True)
    created_by = Column(Integer, ForeignKey("students.id"), nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    sections = relationship(
        "TestSection", back_populates="test", cascade="all, delete-orphan", order_by="TestSection.position"
    )
    questions = relationship(
        "TestQuestion", back_populates="test", cascade="all, delete-orphan", order_by="TestQuestion.position"
    )
    attempts = relationship("Attempt", back_populates="test")

    @property
    def is_paid(self) -> bool:
        return self.test_type == TestTypeEnum.PAID.value

    def is_available(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.utcnow()
        return bool(self.is_active) and \
            (self.valid_from is None or self.valid_from <= now) and \
            (self.valid_until is None or self.valid_until >= now)


class TestSection(Base):
    __tablename__ = "test_sections"
    __test__ = False

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    section_name = Column(String, nullable=False)
    question_count = Column(Integer, nullable=False)
    duration = Column(Integer, nullable=False)
    marks_per_question = Column(Float, nullable=False, default=1)
    negative_marking = Column(Float, nullable=False, default=0)

    test = relationship("Test", back_populates="sections")


class TestQuestion(Base):
    __tablename__ = "test_questions"
    __test__ = False

    id = Column(Integer, primary_key=True, index=True)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    section = Column(String, nullable=False)
    question_type = Column(String(20), nullable=False)
    question_text = Column(Text, nullable=False)
    options = Column(JSON, nullable=False, default=list)  # [{"text": ..., "is_correct": ...}]
    marks = Column(Float, nullable=True, default=1)
    negative_marks = Column(Float, nullable=True, default=0)
    explanation = Column(Text, nullable=True)
    difficulty = Column(String(20), nullable=True)

    test = relationship("Test", back_populates="questions")

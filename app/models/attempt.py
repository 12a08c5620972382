from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy import (
    Column, Integer, String, DateTime, ForeignKey, Float, Boolean, Enum, JSON, Text, Index, UniqueConstraint, text
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import AttemptStatusEnum, TERMINAL_ATTEMPT_STATUSES


class Attempt(Base):
    __tablename__ = "attempts"
    __table_args__ = (
        # At most one live attempt per (student, test); a second concurrent launch fails here
        Index(
            "uq_attempt_in_progress",
            "student_id",
            "test_id",
            unique=True,
            postgresql_where=text("status = 'in-progress'"),
            sqlite_where=text("status = 'in-progress'"),
        ),
        Index("ix_attempts_test_status", "test_id", "status"),
        Index("ix_attempts_student_test", "student_id", "test_id"),
    )

    id = Column(Integer, primary_key=True, index=True)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False)

    start_time = Column(DateTime, nullable=False)
    duration = Column(Integer, nullable=False)  # minutes, frozen at launch
    end_time = Column(DateTime, nullable=True)
    submitted_at = Column(DateTime, nullable=True)

    status = Column(
        Enum(
            AttemptStatusEnum,
            native_enum=False,
            length=20,
            values_callable=lambda enum_cls: [member.value for member in enum_cls],
        ),
        nullable=False,
        default=AttemptStatusEnum.IN_PROGRESS,
    )

    total_questions = Column(Integer, nullable=False, default=0)
    attempted_questions = Column(Integer, nullable=False, default=0)
    correct_answers = Column(Integer, nullable=False, default=0)
    incorrect_answers = Column(Integer, nullable=False, default=0)
    unanswered_questions = Column(Integer, nullable=False, default=0)
    score = Column(Float, nullable=False, default=0)
    percentage = Column(Integer, nullable=False, default=0)
    section_wise_score = Column(JSON, nullable=False, default=list)

    rank = Column(Integer, nullable=True)
    percentile = Column(Integer, nullable=True)
    is_passed = Column(Boolean, nullable=False, default=False)
    is_valid = Column(Boolean, nullable=False, default=True)
    notes = Column(String(500), nullable=True)

    user_agent = Column(String, nullable=True)
    ip_address = Column(String, nullable=True)
    screen_resolution = Column(String, nullable=True)
    timezone = Column(String, nullable=True)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    student = relationship("Student", back_populates="attempts")
    test = relationship("Test", back_populates="attempts")
    answers = relationship(
        "AttemptAnswer", back_populates="attempt", cascade="all, delete-orphan", order_by="AttemptAnswer.id"
    )
    violations = relationship(
        "AttemptViolation", back_populates="attempt", cascade="all, delete-orphan", order_by="AttemptViolation.id"
    )

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ATTEMPT_STATUSES

    @property
    def scheduled_end_time(self) -> datetime:
        return self.start_time + timedelta(minutes=self.duration)

    def time_elapsed_seconds(self, now: Optional[datetime] = None) -> int:
        now = now or datetime.utcnow()
        return max(0, int((now - self.start_time).total_seconds()))

    def time_remaining_seconds(self, now: Optional[datetime] = None) -> int:
        return max(0, self.duration * 60 - self.time_elapsed_seconds(now))

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.start_time is None or self.status != AttemptStatusEnum.IN_PROGRESS:
            return False
        now = now or datetime.utcnow()
        elapsed_minutes = (now - self.start_time).total_seconds() / 60
        return elapsed_minutes >= self.duration

    @property
    def actual_time_taken(self) -> int:
        """Minutes between start and end, 0 while the attempt is live."""
        if self.end_time and self.start_time:
            return round((self.end_time - self.start_time).total_seconds() / 60)
        return 0

    @property
    def time_efficiency(self) -> int:
        actual = self.actual_time_taken
        if actual > 0 and self.duration > 0:
            return round(actual / self.duration * 100)
        return 0

    @property
    def violation_count(self) -> int:
        return len(self.violations)


class AttemptAnswer(Base):
    __tablename__ = "attempt_answers"
    __table_args__ = (UniqueConstraint("attempt_id", "question_id", name="uq_attempt_answer_question"),)

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    question_id = Column(Integer, ForeignKey("test_questions.id"), nullable=False)
    section = Column(String, nullable=True)
    selected_options = Column(JSON, nullable=False, default=list)
    is_marked_for_review = Column(Boolean, nullable=False, default=False)
    time_spent = Column(Integer, nullable=False, default=0)  # seconds
    # Filled in by the scoring pass only
    is_correct = Column(Boolean, nullable=True)
    marks_awarded = Column(Float, nullable=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    attempt = relationship("Attempt", back_populates="answers")


class AttemptViolation(Base):
    __tablename__ = "attempt_violations"

    id = Column(Integer, primary_key=True, index=True)
    attempt_id = Column(Integer, ForeignKey("attempts.id"), nullable=False, index=True)
    violation_type = Column(String(30), nullable=False)
    details = Column(Text, nullable=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)

    attempt = relationship("Attempt", back_populates="violations")

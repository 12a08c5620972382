from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, List, Any
from datetime import datetime

from app.core.constants import AttemptStatusEnum
from app.services.scoring import normalize_selection

class AttemptAnswerIn(BaseModel):
    question_id: int
    selected_options: List[str] = []
    is_marked_for_review: bool = False
    section: Optional[str] = None
    time_spent: int = Field(0, ge=0)

    @field_validator("selected_options", mode="before")
    @classmethod
    def coerce_selection(cls, v):
        # numerical answers arrive as numbers, single answers as a bare value
        return normalize_selection(v)

class AttemptAnswer(BaseModel):
    question_id: int
    section: Optional[str] = None
    selected_options: List[str] = []
    is_marked_for_review: bool = False
    time_spent: int = 0
    is_correct: Optional[bool] = None
    marks_awarded: Optional[float] = None

    model_config = ConfigDict(from_attributes=True)

class AttemptViolation(BaseModel):
    violation_type: str
    details: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class SectionScore(BaseModel):
    section_name: str
    total_questions: int
    attempted_questions: int
    correct_answers: int
    score: float
    time_spent: int

class AttemptSubmit(BaseModel):
    answers: Optional[List[AttemptAnswerIn]] = None

class DeviceInfo(BaseModel):
    timezone: Optional[str] = "UTC"
    screen_resolution: Optional[str] = None

class Attempt(BaseModel):
    id: int
    student_id: int
    test_id: int
    start_time: datetime
    duration: int
    end_time: Optional[datetime] = None
    submitted_at: Optional[datetime] = None
    status: AttemptStatusEnum
    total_questions: int
    attempted_questions: int
    correct_answers: int
    incorrect_answers: int
    unanswered_questions: int
    score: float
    percentage: int
    section_wise_score: List[SectionScore] = []
    rank: Optional[int] = None
    percentile: Optional[int] = None
    is_passed: bool
    is_valid: bool
    notes: Optional[str] = None
    answers: List[AttemptAnswer] = []
    violations: List[AttemptViolation] = []
    actual_time_taken: int = 0
    time_efficiency: int = 0

    model_config = ConfigDict(from_attributes=True)

class AttemptTimeStatus(BaseModel):
    attempt_id: int
    status: AttemptStatusEnum
    server_time: datetime
    time_remaining: int
    time_elapsed: int

class AttemptLaunch(BaseModel):
    attempt_id: int
    start_time: datetime
    duration: int
    server_time: datetime
    time_remaining: int
    resumed: bool

class DetailedAnswerQuestion(BaseModel):
    text: str
    options: List[Any]
    correct_answer: Optional[str] = None
    correct_answers: List[str] = []
    explanation: Optional[str] = None

class DetailedAnswer(AttemptAnswer):
    question: Optional[DetailedAnswerQuestion] = None

class AttemptDetails(BaseModel):
    attempt: Attempt
    detailed_answers: List[DetailedAnswer]

class StudentAttemptSummary(BaseModel):
    total_attempts: int
    completed_attempts: int
    passed_attempts: int
    average_score: float
    pass_rate: int

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Optional, List
from datetime import datetime

from app.core.constants import QuestionTypeEnum, TestTypeEnum

class QuestionOption(BaseModel):
    text: Optional[str] = ""
    is_correct: bool = False

class QuestionOptionPublic(BaseModel):
    text: Optional[str] = ""

class TestSectionBase(BaseModel):
    section_name: str
    question_count: int = Field(..., ge=1)
    duration: int = Field(..., ge=1)
    marks_per_question: float = Field(1, ge=0.25)
    negative_marking: float = Field(0, ge=0, le=1)

class TestSectionCreate(TestSectionBase):
    pass

class TestSection(TestSectionBase):
    id: int

    model_config = ConfigDict(from_attributes=True)

class TestQuestionBase(BaseModel):
    section: str
    question_type: QuestionTypeEnum = QuestionTypeEnum.SINGLE
    question_text: str
    options: List[QuestionOption] = []
    marks: float = Field(1, ge=0)
    negative_marks: float = Field(0, ge=0)
    explanation: Optional[str] = None
    difficulty: Optional[str] = None

class TestQuestionCreate(TestQuestionBase):
    pass

class TestQuestion(TestQuestionBase):
    id: int
    position: int

    model_config = ConfigDict(from_attributes=True)

class TestQuestionPublic(BaseModel):
    """Question as served during an attempt: no correctness flags, no explanation."""
    id: int
    section: str
    question_type: QuestionTypeEnum
    question_text: str
    options: List[QuestionOptionPublic] = []
    marks: Optional[float] = None
    difficulty: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

class TestBase(BaseModel):
    title: str = Field(..., max_length=200)
    description: Optional[str] = None
    test_type: TestTypeEnum = TestTypeEnum.FREE
    price: float = Field(0, ge=0)
    currency: str = "INR"
    duration: Optional[int] = Field(None, ge=1)
    passing_marks: Optional[float] = Field(None, ge=0)
    attempts_allowed: int = Field(1, ge=1)
    instructions: List[str] = []
    is_active: bool = True
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None

class TestCreate(TestBase):
    sections: List[TestSectionCreate] = []
    questions: List[TestQuestionCreate] = []

    @model_validator(mode="after")
    def validate_shape(self):
        if self.test_type == TestTypeEnum.FREE and self.price != 0:
            raise ValueError("Free tests must have price 0.")
        if self.test_type == TestTypeEnum.PAID and self.price <= 0:
            raise ValueError("Paid tests must have price > 0.")
        if not self.sections and self.duration is None:
            raise ValueError("Either sections or a duration is required.")
        return self

class Test(TestBase):
    id: int
    duration: int
    total_questions: int
    total_marks: float
    passing_marks: float
    sections: List[TestSection] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class TestQuestionsForAttempt(BaseModel):
    questions: List[TestQuestionPublic]
    sections: List[TestSection]
    instructions: List[str]
    saved_answers: list

class TestStatistics(BaseModel):
    test_id: int
    total_attempts: int
    average_score: float
    highest_score: float
    lowest_score: float
    pass_rate: int

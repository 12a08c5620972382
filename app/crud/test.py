from sqlalchemy.orm import Session, selectinload
from typing import List, Optional

from app.core.config import settings
from app.crud.base import CRUDBase
from app.models.test import Test, TestSection, TestQuestion
from app.schemas.test import TestCreate

class CRUDTest(CRUDBase[Test, TestCreate, None]):

    def _query_with_relationships(self, db: Session):
        return db.query(Test).options(
            selectinload(Test.sections),
            selectinload(Test.questions),
        )

    def get(self, db: Session, id: int) -> Optional[Test]:
        return self._query_with_relationships(db).filter(Test.id == id).first()

    def get_active(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[Test]:
        return (
            db.query(Test)
            .options(selectinload(Test.sections))
            .filter(Test.is_active == True)
            .order_by(Test.created_at.desc(), Test.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_questions(self, db: Session, *, test_id: int) -> List[TestQuestion]:
        return (
            db.query(TestQuestion)
            .filter(TestQuestion.test_id == test_id)
            .order_by(TestQuestion.position, TestQuestion.id)
            .all()
        )

    def get_question(self, db: Session, *, test_id: int, question_id: int) -> Optional[TestQuestion]:
        return (
            db.query(TestQuestion)
            .filter(TestQuestion.test_id == test_id, TestQuestion.id == question_id)
            .first()
        )

    def create_with_questions(self, db: Session, *, obj_in: TestCreate, created_by: Optional[int] = None) -> Test:
        data = obj_in.model_dump(exclude={"sections", "questions"})
        data["test_type"] = obj_in.test_type.value
        db_obj = Test(**data, created_by=created_by)

        for position, section_in in enumerate(obj_in.sections):
            db_obj.sections.append(TestSection(position=position, **section_in.model_dump()))

        for position, question_in in enumerate(obj_in.questions):
            question_data = question_in.model_dump()
            question_data["question_type"] = question_in.question_type.value
            db_obj.questions.append(TestQuestion(position=position, **question_data))

        self._apply_totals(db_obj, passing_marks=obj_in.passing_marks)

        db.add(db_obj)
        db.flush()
        return db_obj

    def _apply_totals(self, db_obj: Test, passing_marks: Optional[float]) -> None:
        sections = db_obj.sections
        questions = db_obj.questions

        if sections:
            db_obj.duration = sum(s.duration or 0 for s in sections)
            db_obj.total_questions = sum(s.question_count or 0 for s in sections)
            db_obj.total_marks = sum((s.question_count or 0) * (s.marks_per_question or 1) for s in sections)

        if questions:
            db_obj.total_questions = len(questions)
            db_obj.total_marks = sum(q.marks if q.marks is not None else 1 for q in questions)

        if passing_marks is None:
            passing_marks = settings.DEFAULT_PASSING_PERCENTAGE
        db_obj.passing_marks = passing_marks

test = CRUDTest(Test)

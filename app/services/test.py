import logging
from typing import List

from sqlalchemy.orm import Session

from app.core.exceptions import NotFoundError
from app.crud.test import test as crud_test
from app.models.student import Student
from app.models.test import Test
from app.schemas.test import TestCreate

logger = logging.getLogger(__name__)


class TestService:
    __test__ = False

    def create_test(self, db: Session, *, test_in: TestCreate, current_student: Student) -> Test:
        new_test = crud_test.create_with_questions(db, obj_in=test_in, created_by=current_student.id)
        logger.info(
            f"Test {new_test.id} created by {current_student.id}: "
            f"{new_test.total_questions} questions, {new_test.total_marks} marks, {new_test.duration} min"
        )
        return new_test

    def get_active_tests(self, db: Session, *, skip: int = 0, limit: int = 100) -> List[Test]:
        return crud_test.get_active(db, skip=skip, limit=limit)

    def get_test(self, db: Session, *, test_id: int) -> Test:
        test = crud_test.get(db, id=test_id)
        if not test or not test.is_active:
            raise NotFoundError("Test not found.")
        return test


test_service = TestService()

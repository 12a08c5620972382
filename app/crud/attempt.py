from sqlalchemy.orm import Session, selectinload
from typing import List, Optional
from datetime import datetime

from app.core.constants import AttemptStatusEnum, RANKED_ATTEMPT_STATUSES, TERMINAL_ATTEMPT_STATUSES
from app.crud.base import CRUDBase
from app.models.attempt import Attempt, AttemptAnswer, AttemptViolation

class CRUDAttempt(CRUDBase[Attempt, None, None]):

    def _query_with_relationships(self, db: Session):
        return db.query(Attempt).options(
            selectinload(Attempt.answers),
            selectinload(Attempt.violations),
        )

    def get(self, db: Session, id: int) -> Optional[Attempt]:
        return self._query_with_relationships(db).filter(Attempt.id == id).first()

    def get_for_update(self, db: Session, id: int) -> Optional[Attempt]:
        """Fresh read with a row lock where the dialect supports one."""
        return (
            self._query_with_relationships(db)
            .filter(Attempt.id == id)
            .populate_existing()
            .with_for_update(of=Attempt)
            .first()
        )

    def get_in_progress(self, db: Session, student_id: int, test_id: int) -> Optional[Attempt]:
        return (
            self._query_with_relationships(db)
            .filter(
                Attempt.student_id == student_id,
                Attempt.test_id == test_id,
                Attempt.status == AttemptStatusEnum.IN_PROGRESS,
            )
            .populate_existing()
            .first()
        )

    def count_completed(self, db: Session, student_id: int, test_id: int) -> int:
        return (
            db.query(Attempt)
            .filter(
                Attempt.student_id == student_id,
                Attempt.test_id == test_id,
                Attempt.status.in_(TERMINAL_ATTEMPT_STATUSES),
            )
            .count()
        )

    def get_all_by_student(self, db: Session, student_id: int, *, test_id: Optional[int] = None,
                           status: Optional[AttemptStatusEnum] = None,
                           skip: int = 0, limit: int = 100) -> List[Attempt]:
        query = self._query_with_relationships(db).filter(Attempt.student_id == student_id)
        if test_id is not None:
            query = query.filter(Attempt.test_id == test_id)
        if status is not None:
            query = query.filter(Attempt.status == status)
        return (
            query.order_by(Attempt.created_at.desc(), Attempt.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    def get_completed_by_student(self, db: Session, student_id: int) -> List[Attempt]:
        return (
            db.query(Attempt)
            .filter(
                Attempt.student_id == student_id,
                Attempt.status.in_(RANKED_ATTEMPT_STATUSES),
            )
            .all()
        )

    def count_by_student(self, db: Session, student_id: int) -> int:
        return db.query(Attempt).filter(Attempt.student_id == student_id).count()

    def get_ranked_for_test(self, db: Session, test_id: int) -> List[Attempt]:
        """Finalised, valid attempts of a test ordered best score first."""
        return (
            db.query(Attempt)
            .filter(
                Attempt.test_id == test_id,
                Attempt.status.in_(RANKED_ATTEMPT_STATUSES),
                Attempt.is_valid == True,
            )
            .order_by(Attempt.score.desc(), Attempt.submitted_at.asc(), Attempt.id.asc())
            .all()
        )

    def get_expired_in_progress(self, db: Session, now: datetime) -> List[Attempt]:
        candidates = (
            db.query(Attempt)
            .filter(Attempt.status == AttemptStatusEnum.IN_PROGRESS)
            .filter(Attempt.start_time <= now)
            .all()
        )
        return [attempt for attempt in candidates if attempt.is_expired(now)]

    # Answers

    def get_answer(self, db: Session, attempt_id: int, question_id: int) -> Optional[AttemptAnswer]:
        return (
            db.query(AttemptAnswer)
            .filter(AttemptAnswer.attempt_id == attempt_id, AttemptAnswer.question_id == question_id)
            .first()
        )

    def get_answers(self, db: Session, attempt_id: int) -> List[AttemptAnswer]:
        return (
            db.query(AttemptAnswer)
            .filter(AttemptAnswer.attempt_id == attempt_id)
            .order_by(AttemptAnswer.id)
            .all()
        )

    def upsert_answer(self, db: Session, *, attempt_id: int, question_id: int, data: dict) -> AttemptAnswer:
        answer = self.get_answer(db, attempt_id, question_id)
        if answer is None:
            answer = AttemptAnswer(attempt_id=attempt_id, question_id=question_id)
            db.add(answer)
        for field, value in data.items():
            setattr(answer, field, value)
        db.flush()
        return answer

    # Violations

    def add_violation(self, db: Session, *, attempt_id: int, violation_type: str,
                      details: Optional[str], created_at: datetime) -> AttemptViolation:
        violation = AttemptViolation(
            attempt_id=attempt_id,
            violation_type=violation_type,
            details=details or "",
            created_at=created_at,
        )
        db.add(violation)
        db.flush()
        return violation

    def count_violations(self, db: Session, attempt_id: int) -> int:
        return db.query(AttemptViolation).filter(AttemptViolation.attempt_id == attempt_id).count()


attempt = CRUDAttempt(Attempt)

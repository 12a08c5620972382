from sqlalchemy.orm import Session
from typing import Optional

from app.crud.base import CRUDBase
from app.models.enrollment import Enrollment
from app.core.constants import EnrollmentStatusEnum

class CRUDEnrollment(CRUDBase[Enrollment, None, None]):
    def get_active_for_test(self, db: Session, *, student_id: int, test_id: int) -> Optional[Enrollment]:
        return (
            db.query(Enrollment)
            .filter(
                Enrollment.student_id == student_id,
                Enrollment.test_id == test_id,
                Enrollment.status != EnrollmentStatusEnum.CANCELLED.value,
            )
            .first()
        )

enrollment = CRUDEnrollment(Enrollment)

from sqlalchemy.orm import Session

from app.crud.enrollment import enrollment as crud_enrollment
from app.crud.order import order as crud_order
from app.models.test import Test


class AccessService:
    def can_attempt(self, db: Session, *, student_id: int, test: Test) -> bool:
        """Free tests are open; paid tests need a completed order or a live enrollment."""
        if not test.is_paid:
            return True
        if crud_order.get_completed_for_test(db, student_id=student_id, test_id=test.id):
            return True
        return crud_enrollment.get_active_for_test(db, student_id=student_id, test_id=test.id) is not None


access_service = AccessService()

from sqlalchemy.orm import Session
from typing import Optional

from app.crud.base import CRUDBase
from app.models.order import Order
from app.core.constants import PaymentStatusEnum

class CRUDOrder(CRUDBase[Order, None, None]):
    def get_completed_for_test(self, db: Session, *, student_id: int, test_id: int) -> Optional[Order]:
        return (
            db.query(Order)
            .filter(
                Order.student_id == student_id,
                Order.test_id == test_id,
                Order.payment_status == PaymentStatusEnum.COMPLETED.value,
            )
            .first()
        )

order = CRUDOrder(Order)

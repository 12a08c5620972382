from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Float
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.constants import PaymentStatusEnum

class Order(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, index=True)
    order_ref = Column(String, unique=True, nullable=False)
    student_id = Column(Integer, ForeignKey("students.id"), nullable=False, index=True)
    test_id = Column(Integer, ForeignKey("tests.id"), nullable=False, index=True)
    amount = Column(Float, nullable=False, default=0)
    currency = Column(String(3), nullable=False, default="INR")
    payment_status = Column(String(20), nullable=False, default=PaymentStatusEnum.PENDING.value)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, onupdate=func.now())

    student = relationship("Student", back_populates="orders")

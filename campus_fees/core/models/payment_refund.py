"""Payment refund: adjustment record reversing some or all of a completed payment."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class PaymentRefund(Base):
    __tablename__ = "payment_refunds"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(
        Uuid,
        ForeignKey("student_payments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    refund_breakdown = Column(JSONType, nullable=False)  # [{fee_type, amount, semester}]
    amount = Column(Numeric(12, 2), nullable=False)
    reason = Column(Text, nullable=True)
    gateway_refund_id = Column(String(100), nullable=True)
    refunded_by_id = Column(Uuid, nullable=True)
    refunded_by_name = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    payment = relationship("StudentPayment", backref="refunds")

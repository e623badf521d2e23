"""Status history for payments: one row per state machine transition."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from campus_fees.db.session import Base
from campus_fees.db.types import utcnow


class PaymentStatusHistory(Base):
    __tablename__ = "payment_status_history"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    payment_id = Column(
        Uuid,
        ForeignKey("student_payments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    from_status = Column(String(20), nullable=True)  # null for the initial pending row
    to_status = Column(String(20), nullable=False)
    changed_by_id = Column(Uuid, nullable=True)
    changed_by_name = Column(String(255), nullable=True)
    reason = Column(Text, nullable=True)
    changed_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    payment = relationship("StudentPayment", backref="status_history", foreign_keys=[payment_id])

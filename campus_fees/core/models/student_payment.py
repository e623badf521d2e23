"""Student payment: append-only ledger of fee payments against a student fee assignment."""

import uuid

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid
from sqlalchemy.orm import relationship

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class StudentPayment(Base):
    """
    One payment attempt. Amounts are fixed when the order is created and never
    recomputed. Only payment_status (plus verification stamps) changes afterwards,
    and only along the payment state machine.
    """

    __tablename__ = "student_payments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_fee_assignment_id = Column(
        Uuid,
        ForeignKey("student_fee_assignments.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    student_id = Column(Uuid, nullable=False, index=True)
    academic_year = Column(String(20), nullable=False)
    payment_type = Column(String(30), nullable=False)  # full_payment, semester_payment, partial_payment, hostel_fee
    semester = Column(Integer, nullable=True)
    fee_breakdown = Column(JSONType, nullable=False)  # [{fee_type, amount, semester}]
    amount_paid = Column(Numeric(12, 2), nullable=False)
    convenience_fee = Column(Numeric(12, 2), nullable=False, default=0)
    total_amount_charged = Column(Numeric(12, 2), nullable=False)
    currency = Column(String(10), nullable=False, default="INR")
    payment_status = Column(String(20), nullable=False, default="pending")
    payment_method = Column(String(30), nullable=False)  # razorpay_online, cash_office, bank_transfer, dd, cheque
    payment_source = Column(String(30), nullable=False)  # online_gateway, manual_office
    payment_date = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    gateway_order_id = Column(String(100), nullable=True, index=True)
    gateway_payment_id = Column(String(100), nullable=True, unique=True)

    receipt_number = Column(String(100), nullable=True)
    transaction_id = Column(String(100), nullable=True)
    dd_number = Column(String(50), nullable=True)
    cheque_number = Column(String(50), nullable=True)
    bank_name = Column(String(150), nullable=True)
    branch_name = Column(String(150), nullable=True)
    deposit_date = Column(Date, nullable=True)

    notes = Column(Text, nullable=True)
    failure_reason = Column(Text, nullable=True)
    processed_by_id = Column(Uuid, nullable=True)
    processed_by_name = Column(String(255), nullable=True)
    processed_by_email = Column(String(255), nullable=True)
    verified_by_id = Column(Uuid, nullable=True)
    verified_by_name = Column(String(255), nullable=True)
    verified_by_email = Column(String(255), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    student_fee_assignment = relationship("StudentFeeAssignment", backref="payments")

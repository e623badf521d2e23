"""Fee customization: append-only per-semester fee-type overrides on a student fee assignment."""

import uuid

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class FeeCustomization(Base):
    """One override event. fees holds only the overridden fee types; later events win per fee type."""

    __tablename__ = "fee_customizations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_fee_assignment_id = Column(
        Uuid,
        ForeignKey("student_fee_assignments.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence = Column(Integer, nullable=False)  # insertion order within the assignment
    semester = Column(Integer, nullable=False)
    fees = Column(JSONType, nullable=False)
    reason = Column(Text, nullable=True)
    customized_by_id = Column(Uuid, nullable=True)
    customized_by_name = Column(String(255), nullable=True)
    customized_by_email = Column(String(255), nullable=True)
    customized_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    student_fee_assignment = relationship("StudentFeeAssignment", backref="customizations")

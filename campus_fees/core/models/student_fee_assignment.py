"""Student fee assignment: frozen fee structure snapshot per student per academic year. Never update the snapshot."""

import uuid

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, Uuid
from sqlalchemy.orm import relationship

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class StudentFeeAssignment(Base):
    """
    Snapshot of a fee structure assigned to a student.
    fee_structure_snapshot is immutable after creation; per-student changes are
    appended as FeeCustomization rows. ledger_version is bumped on every ledger or
    dues change and compared-and-set by writers.
    """

    __tablename__ = "student_fee_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    student_id = Column(Uuid, nullable=False, index=True)
    fee_structure_id = Column(
        Uuid,
        ForeignKey("fee_structures.id", ondelete="RESTRICT"),
        nullable=False,
    )
    academic_year = Column(String(20), nullable=False)
    fee_structure_snapshot = Column(JSONType, nullable=False)
    notes = Column(Text, nullable=True)
    assigned_by_id = Column(Uuid, nullable=True)
    assigned_by_name = Column(String(255), nullable=True)
    assigned_by_email = Column(String(255), nullable=True)
    assigned_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    ledger_version = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

    fee_structure = relationship("FeeStructure")

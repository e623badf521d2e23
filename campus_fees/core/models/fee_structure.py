"""Fee structure catalog: versioned per program per academic year."""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, Integer, Numeric, String, Text, UniqueConstraint, Uuid

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class FeeStructure(Base):
    """
    Semester-wise fee structure for a program. Semesters are stored as JSON
    (semester, semester_name, fees, total). Frozen once any assignment references it;
    changes after that are made by creating the next version.
    """

    __tablename__ = "fee_structures"
    __table_args__ = (
        UniqueConstraint("program", "academic_year", "version", name="uq_fee_structure_program_year_version"),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    title = Column(String(255), nullable=False)
    program = Column(String(150), nullable=False)
    program_type = Column(String(50), nullable=True)  # UG, PG, diploma
    academic_year = Column(String(20), nullable=False, index=True)  # e.g. "2025-2026"
    description = Column(Text, nullable=True)
    version = Column(Integer, nullable=False, default=1)
    semesters = Column(JSONType, nullable=False)
    grand_total = Column(Numeric(12, 2), nullable=False)
    hostel_fee = Column(Numeric(12, 2), nullable=False, default=0)
    effective_date = Column(Date, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow, nullable=False)

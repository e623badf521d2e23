"""Fee audit log: immutable financial change tracking for audit safety."""

import uuid

from sqlalchemy import Column, DateTime, String, Uuid

from campus_fees.db.session import Base
from campus_fees.db.types import JSONType, utcnow


class FeeAuditLog(Base):
    """Immutable audit trail for fee-related financial changes."""

    __tablename__ = "fee_audit_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    reference_table = Column(String(50), nullable=False)
    reference_id = Column(Uuid, nullable=False, index=True)
    action_type = Column(String(30), nullable=False)  # CREATE, UPDATE, DEACTIVATE, STATUS_CHANGE, REFUND
    old_value = Column(JSONType, nullable=True)
    new_value = Column(JSONType, nullable=True)
    changed_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

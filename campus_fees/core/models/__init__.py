from campus_fees.core.models.fee_structure import FeeStructure
from campus_fees.core.models.student_fee_assignment import StudentFeeAssignment
from campus_fees.core.models.fee_customization import FeeCustomization
from campus_fees.core.models.student_payment import StudentPayment
from campus_fees.core.models.payment_status_history import PaymentStatusHistory
from campus_fees.core.models.payment_refund import PaymentRefund
from campus_fees.core.models.fee_audit_log import FeeAuditLog

__all__ = [
    "FeeStructure",
    "StudentFeeAssignment",
    "FeeCustomization",
    "StudentPayment",
    "PaymentStatusHistory",
    "PaymentRefund",
    "FeeAuditLog",
]

from typing import Dict, FrozenSet

from campus_fees.core.enums import PaymentStatus
from campus_fees.core.exceptions import InvalidTransitionError

ALLOWED_TRANSITIONS: Dict[PaymentStatus, FrozenSet[PaymentStatus]] = {
    PaymentStatus.pending: frozenset({PaymentStatus.processing, PaymentStatus.failed}),
    PaymentStatus.processing: frozenset({PaymentStatus.completed, PaymentStatus.failed}),
    PaymentStatus.completed: frozenset({PaymentStatus.refunded, PaymentStatus.partial_refund}),
}

TERMINAL_STATUSES = frozenset(
    {PaymentStatus.failed, PaymentStatus.refunded, PaymentStatus.partial_refund}
)

IN_FLIGHT_STATUSES = frozenset({PaymentStatus.pending, PaymentStatus.processing})


def can_transition(from_status: str, to_status: str) -> bool:
    allowed = ALLOWED_TRANSITIONS.get(PaymentStatus(from_status), frozenset())
    return PaymentStatus(to_status) in allowed


def ensure_transition(from_status: str, to_status: str) -> PaymentStatus:
    """Raise InvalidTransitionError unless from_status -> to_status is a legal move."""
    if not can_transition(from_status, to_status):
        raise InvalidTransitionError(PaymentStatus(from_status).value, PaymentStatus(to_status).value)
    return PaymentStatus(to_status)

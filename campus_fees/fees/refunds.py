"""Refund resolution: which ledger lines a refund reverses and the payment status it leads to."""

from collections import defaultdict
from decimal import Decimal
from typing import Dict, List, Optional, Sequence, Tuple

from campus_fees.core.enums import PaymentStatus
from campus_fees.core.exceptions import DataIntegrityError, FeeValidationError

from .domain import ZERO, LedgerItem, PaymentRecord, to_money
from .reconciliation import LedgerKey, resolve_ledger_key


def resolve_refund(
    payment: PaymentRecord,
    items: Optional[Sequence[LedgerItem]] = None,
) -> Tuple[List[LedgerItem], PaymentStatus]:
    """
    Validate refund lines against the payment's own breakdown.

    No lines means the whole payment is refunded. Refunding every line in full
    yields ``refunded``; anything less yields ``partial_refund``.
    """
    paid: Dict[LedgerKey, Decimal] = defaultdict(lambda: ZERO)
    for item in payment.fee_breakdown:
        paid[resolve_ledger_key(item, payment)] += to_money(item.amount)

    if not items:
        return [item.model_copy() for item in payment.fee_breakdown], PaymentStatus.refunded

    requested: Dict[LedgerKey, Decimal] = defaultdict(lambda: ZERO)
    for item in items:
        amount = to_money(item.amount)
        if amount <= 0:
            raise FeeValidationError("Refund amounts must be greater than zero")
        try:
            key = resolve_ledger_key(item, payment)
        except DataIntegrityError:
            raise FeeValidationError(f"'{item.fee_type}' is not part of this payment")
        if key not in paid:
            raise FeeValidationError(f"'{item.fee_type}' is not part of this payment")
        requested[key] += amount

    for key, amount in requested.items():
        if amount > paid[key]:
            raise FeeValidationError(
                f"Refund for {key[1]} ({amount}) exceeds the amount paid ({paid[key]})"
            )

    refunded = [
        LedgerItem(fee_type=fee_key, amount=amount, semester=semester)
        for (semester, fee_key), amount in requested.items()
    ]
    full = all(requested.get(key, ZERO) == amount for key, amount in paid.items())
    return refunded, PaymentStatus.refunded if full else PaymentStatus.partial_refund

"""
Per-kind ledger policy.

The single place that decides how an entry of each kind feeds the client
aggregate. Both aggregate strategies and the entry store read from here,
so incremental updates and full recomputes always agree.
"""

from decimal import Decimal
from typing import Optional, Tuple

from backend.app.core.exceptions import ValidationError
from backend.app.models.ledger_enums import TransactionKind

ZERO = Decimal("0")


def settled_paid(kind: TransactionKind, amount: Decimal, paid: Optional[Decimal]) -> Decimal:
    """
    Paid value stored for an entry.

    A payment is always settled in full: an omitted or zero paid becomes the
    amount, and any other paid value that differs from the amount is rejected.
    """
    if kind == TransactionKind.PAYMENT:
        if paid is None or paid == ZERO or paid == amount:
            return amount
        raise ValidationError(
            "A payment is settled in full; paid must equal amount",
            details={"field": "paid", "amount": str(amount), "paid": str(paid)}
        )
    return paid if paid is not None else ZERO


def contribution(kind: TransactionKind, amount: Decimal, paid: Decimal) -> Tuple[Decimal, Decimal]:
    """
    (charged, paid) contribution of one live entry to its client's aggregate.

    Only CHARGE entries add to total charged; every kind adds its paid value.
    """
    charged = amount if kind == TransactionKind.CHARGE else ZERO
    return charged, paid

"""Installment amortization for purchases split across statement cycles"""

from datetime import date
from decimal import ROUND_DOWN, Decimal
from typing import List

from ledger_core.config import settings
from ledger_core.domain.models import InstallmentShare, Transaction
from ledger_core.utils.date_utils import add_months


def installment_share(
    amount: Decimal,
    total: int,
    index: int,
    quantum: Decimal | None = None,
) -> Decimal:
    """
    Share of a purchase billed in one cycle.

    Requirements:
    - Equal shares rounded down to the money quantum
    - Last cycle absorbs rounding remainder so shares sum exactly to amount

    Args:
        amount: Purchase magnitude
        total: Number of cycles the purchase is split across
        index: Zero-based cycle index (0 = purchase month)
        quantum: Rounding unit (default: settings.money_quantum)

    Example:
        1000.00 over 3 cycles -> [333.33, 333.33, 333.34]
    """
    if total <= 1:
        return amount
    if index < 0 or index >= total:
        return Decimal("0")

    quantum = quantum or settings.money_quantum
    base_share = (amount / total).quantize(quantum, rounding=ROUND_DOWN)
    if index == total - 1:
        return amount - base_share * (total - 1)
    return base_share


def amortization_schedule(transaction: Transaction, quantum: Decimal | None = None) -> List[InstallmentShare]:
    """
    Every cycle an installment purchase is billed in, with its share.

    Cycles run from the purchase month through total-1 months later.
    One-time purchases yield a single share in the purchase month.
    """
    total = transaction.installments.total if transaction.installments else 1
    first_month = date(transaction.date.year, transaction.date.month, 1)

    return [
        InstallmentShare(
            cycle_month=add_months(first_month, i),
            amount=installment_share(transaction.amount, total, i, quantum),
        )
        for i in range(max(total, 1))
    ]

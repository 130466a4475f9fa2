"""Statement cycle projector - next credit card bill from the ledger"""

from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Optional, Tuple

from ledger_core.config import settings
from ledger_core.domain.balances import derive_balance
from ledger_core.domain.installments import installment_share
from ledger_core.domain.models import Account, StatementProjection, Transaction, Transfer
from ledger_core.utils.date_utils import add_months, day_in_month, month_diff


def next_payment_date(payment_day: int, today: date) -> date:
    """Next occurrence of payment_day on or after today"""
    candidate = day_in_month(today.year, today.month, payment_day)
    if candidate < today:
        candidate = add_months(candidate, 1, day=payment_day)
    return candidate


def cutoff_for_payment(cutoff_day: int, payment_date: date) -> date:
    """Most recent cutoff strictly before the payment date"""
    cutoff = day_in_month(payment_date.year, payment_date.month, cutoff_day)
    if cutoff >= payment_date:
        cutoff = add_months(cutoff, -1, day=cutoff_day)
    return cutoff


def cycle_window(cutoff_day: int, cutoff_date: date) -> Tuple[date, date]:
    """Billing window (start, end], ending at the cutoff"""
    return add_months(cutoff_date, -1, day=cutoff_day), cutoff_date


def one_time_purchases(
    account: Account,
    transactions: Iterable[Transaction],
    window: Tuple[date, date],
) -> Decimal:
    """Expenses inside the window that are not split into installments"""
    start, end = window
    return sum(
        (
            t.amount
            for t in transactions
            if t.account_id == account.id
            and t.type == "expense"
            and start < t.date <= end
            and not t.is_installment
        ),
        Decimal("0"),
    )


def installments_due(
    account: Account,
    transactions: Iterable[Transaction],
    cutoff_date: date,
) -> Decimal:
    """
    Sum of installment shares billed in the cycle ending at cutoff_date.

    A purchase split over N cycles is billed from its purchase month through
    N-1 months later, one share per cycle.
    """
    total = Decimal("0")
    for t in transactions:
        if t.account_id != account.id or t.type != "expense" or not t.is_installment:
            continue

        months_elapsed = month_diff(t.date, cutoff_date)
        if 0 <= months_elapsed < t.installments.total:
            total += installment_share(t.amount, t.installments.total, months_elapsed)

    return total


def project_next_statement(
    account: Account,
    transactions: Iterable[Transaction],
    today: date,
    transfers: Iterable[Transfer] = (),
) -> Optional[StatementProjection]:
    """
    Project the upcoming bill of a credit account.

    Steps:
    1. Next payment date on or after today
    2. Cutoff preceding that payment, window (cutoff - 1 month, cutoff]
    3. One-time purchases in the window + installment shares + handling fee,
       rounded half-up to the money quantum
    4. Clamp to the real outstanding debt so a paid-off card never shows a bill

    Returns None when there is no bill: non-credit account, missing cycle
    configuration, or nothing owed.
    """
    if not account.is_credit or not account.cutoff_day or not account.payment_day:
        return None

    transactions = list(transactions)

    payment_date = next_payment_date(account.payment_day, today)
    cutoff_date = cutoff_for_payment(account.cutoff_day, payment_date)
    window = cycle_window(account.cutoff_day, cutoff_date)

    projected = (
        one_time_purchases(account, transactions, window)
        + installments_due(account, transactions, cutoff_date)
        + (account.handling_fee or Decimal("0"))
    ).quantize(settings.money_quantum, rounding=ROUND_HALF_UP)

    balance = derive_balance(account, transactions, transfers)
    outstanding_debt = max(Decimal("0"), -balance)
    amount_due = min(projected, outstanding_debt)

    if amount_due <= 0:
        return None

    return StatementProjection(
        account_id=account.id,
        due_date=payment_date,
        cutoff_date=cutoff_date,
        amount_due=amount_due,
        outstanding_debt=outstanding_debt,
    )


def project_statements(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    today: date,
    transfers: Iterable[Transfer] = (),
) -> List[StatementProjection]:
    """Projections for every credit account that has a bill coming"""
    transactions = list(transactions)
    transfers = list(transfers)

    projections = []
    for account in accounts:
        projection = project_next_statement(account, transactions, today, transfers)
        if projection is not None:
            projections.append(projection)
    return projections

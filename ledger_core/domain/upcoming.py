"""Merged list of upcoming obligations and card bills"""

from datetime import date
from typing import Iterable, List

from ledger_core.domain.models import Account, RecurringObligation, Transaction, Transfer, UpcomingPayment
from ledger_core.domain.statements import project_statements


def upcoming_payments(
    obligations: Iterable[RecurringObligation],
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    today: date,
    transfers: Iterable[Transfer] = (),
    limit: int = 10,
) -> List[UpcomingPayment]:
    """Active obligations plus projected statements, soonest first"""
    accounts = list(accounts)
    names = {acc.id: acc.name for acc in accounts}

    items = [
        UpcomingPayment(
            name=o.name,
            amount=o.amount,
            due_date=o.next_due_date,
            category=o.category,
            account_id=o.account_id,
            source="obligation",
        )
        for o in obligations
        if o.active
    ]

    for projection in project_statements(accounts, transactions, today, transfers):
        items.append(
            UpcomingPayment(
                name=f"{names[projection.account_id]} payment",
                amount=projection.amount_due,
                due_date=projection.due_date,
                category="Debt",
                account_id=projection.account_id,
                source="statement",
            )
        )

    items.sort(key=lambda item: item.due_date)
    return items[:limit]

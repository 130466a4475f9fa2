"""Unit tests for the upcoming payments list"""

from datetime import date
from decimal import Decimal

from ledger_core.domain.upcoming import upcoming_payments

from conftest import TODAY, make_account, make_card, make_obligation, make_tx


def test_merges_obligations_and_bills_by_due_date():
    accounts = [make_account(name="Checking"), make_card(opening=-100000)]
    accounts[1].name = "Visa"
    obligations = [
        make_obligation("sub_late", due=date(2024, 7, 1)),
        make_obligation("sub_soon", due=date(2024, 6, 12)),
    ]
    transactions = [make_tx("t1", 40000, on=date(2024, 6, 1), account_id="acc_card")]

    items = upcoming_payments(obligations, accounts, transactions, TODAY)

    assert [(i.name, i.due_date) for i in items] == [
        ("Obligation sub_soon", date(2024, 6, 12)),
        ("Visa payment", date(2024, 6, 25)),
        ("Obligation sub_late", date(2024, 7, 1)),
    ]
    bill = items[1]
    assert bill.amount == Decimal("40000")
    assert bill.category == "Debt"
    assert bill.source == "statement"
    assert items[0].source == "obligation"


def test_inactive_obligations_and_paid_cards_excluded():
    accounts = [make_card()]
    obligations = [make_obligation(active=False)]

    assert upcoming_payments(obligations, accounts, [], TODAY) == []


def test_limit_keeps_soonest():
    obligations = [make_obligation(f"sub_{day}", due=date(2024, 6, day)) for day in range(28, 10, -1)]

    items = upcoming_payments(obligations, [], [], TODAY, limit=3)

    assert [i.due_date.day for i in items] == [11, 12, 13]

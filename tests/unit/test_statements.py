"""Unit tests for statement cycle projection"""

from datetime import date
from decimal import Decimal

import pytest

from ledger_core.domain.balances import derive_balance
from ledger_core.domain.statements import (
    cutoff_for_payment,
    installments_due,
    next_payment_date,
    project_next_statement,
    project_statements,
)
from ledger_core.utils.date_utils import add_months

from conftest import TODAY, make_account, make_card, make_transfer, make_tx


def card_tx(tx_id, amount, on, installments=None):
    return make_tx(tx_id, amount, on=on, account_id="acc_card", installments=installments)


def test_next_payment_date_same_month():
    assert next_payment_date(25, date(2024, 6, 10)) == date(2024, 6, 25)


def test_next_payment_date_on_payment_day():
    assert next_payment_date(25, date(2024, 6, 25)) == date(2024, 6, 25)


def test_next_payment_date_rolls_to_next_month():
    assert next_payment_date(25, date(2024, 6, 26)) == date(2024, 7, 25)


def test_next_payment_date_clamps_short_month():
    assert next_payment_date(31, date(2024, 2, 10)) == date(2024, 2, 29)
    assert next_payment_date(31, date(2024, 12, 31)) == date(2024, 12, 31)


def test_cutoff_before_payment_same_month():
    assert cutoff_for_payment(15, date(2024, 6, 25)) == date(2024, 6, 15)


def test_cutoff_rolls_back_when_after_payment():
    assert cutoff_for_payment(28, date(2024, 7, 5)) == date(2024, 6, 28)
    assert cutoff_for_payment(25, date(2024, 7, 25)) == date(2024, 6, 25)


def test_one_time_purchase_projection():
    """Cutoff 15, payment 25, 300,000 purchase in window, 500,000 owed -> 300,000 due"""
    card = make_card(opening=-200000)
    transactions = [card_tx("t1", 300000, date(2024, 6, 1))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection is not None
    assert projection.amount_due == Decimal("300000")
    assert projection.outstanding_debt == Decimal("500000")
    assert projection.due_date == date(2024, 6, 25)
    assert projection.cutoff_date == date(2024, 6, 15)


def test_projection_clamps_to_outstanding_debt():
    """Same purchase but only 200,000 still owed -> bill clamps to 200,000"""
    card = make_card(opening=100000)
    transactions = [card_tx("t1", 300000, date(2024, 6, 1))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("200000")
    assert projection.outstanding_debt == Decimal("200000")


def test_payment_transfer_reduces_debt_and_clamps_bill():
    card = make_card()
    transactions = [card_tx("t1", 300000, date(2024, 6, 1))]
    transfers = [make_transfer("x1", "acc_bank", "acc_card", 250000)]

    projection = project_next_statement(card, transactions, TODAY, transfers)

    assert projection.amount_due == Decimal("50000")


def test_installment_contributes_one_share():
    """1,200,000 over 12 months bought 3 cycles before cutoff -> 100,000 this cycle"""
    card = make_card()
    transactions = [card_tx("t1", 1200000, date(2024, 3, 10), installments=(1, 12))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("100000")
    assert projection.outstanding_debt == Decimal("1200000")


def test_installment_purchase_not_counted_as_one_time():
    card = make_card()
    transactions = [card_tx("t1", 600000, date(2024, 6, 1), installments=(1, 6))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("100000")


def test_single_installment_counts_as_one_time():
    card = make_card()
    transactions = [card_tx("t1", 80000, date(2024, 6, 1), installments=(1, 1))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("80000")


def test_window_boundaries():
    """Window is (previous cutoff, cutoff]: start excluded, cutoff included"""
    card = make_card(opening=-1000000)
    transactions = [
        card_tx("start", 1000, date(2024, 5, 15)),
        card_tx("inside", 2000, date(2024, 5, 16)),
        card_tx("cutoff", 4000, date(2024, 6, 15)),
        card_tx("after", 8000, date(2024, 6, 16)),
    ]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("6000")


def test_handling_fee_added_when_debt_exists():
    card = make_card(handling_fee=15000, opening=-100000)
    projection = project_next_statement(card, [], TODAY)

    assert projection.amount_due == Decimal("15000")


def test_no_phantom_bill_on_paid_card():
    """A handling fee alone never manufactures a bill when nothing is owed"""
    card = make_card(handling_fee=15000)
    assert project_next_statement(card, [], TODAY) is None


def test_income_only_card_has_no_bill():
    card = make_card()
    transactions = [make_tx("t1", 50000, on=date(2024, 6, 1), account_id="acc_card", type="income")]
    assert project_next_statement(card, transactions, TODAY) is None


@pytest.mark.parametrize("cutoff_day,payment_day", [(None, 25), (15, None), (None, None)])
def test_missing_cycle_configuration_yields_no_projection(cutoff_day, payment_day):
    card = make_card(opening=-500000)
    card.cutoff_day = cutoff_day
    card.payment_day = payment_day

    assert project_next_statement(card, [], TODAY) is None


def test_liquid_account_has_no_projection():
    bank = make_account(opening=-500)
    assert project_next_statement(bank, [], TODAY) is None


def test_installment_contributes_to_exactly_total_cycles():
    """Shares appear in exactly `total` cycles and sum to the purchase amount"""
    card = make_card()
    purchase = card_tx("t1", "1000.00", date(2024, 1, 20), installments=(1, 3))

    shares = []
    for offset in range(-2, 8):
        cutoff = add_months(date(2024, 1, 15), offset)
        share = installments_due(card, [purchase], cutoff)
        if share:
            shares.append((cutoff, share))

    assert [cutoff.month for cutoff, _ in shares] == [1, 2, 3]
    assert [share for _, share in shares] == [Decimal("333.33"), Decimal("333.33"), Decimal("333.34")]
    assert sum(share for _, share in shares) == Decimal("1000.00")


def test_clamp_invariant_across_scenarios():
    """amount_due never exceeds max(0, -balance)"""
    purchases = [
        card_tx("p1", 300000, date(2024, 6, 1)),
        card_tx("p2", 900000, date(2024, 2, 3), installments=(1, 6)),
        card_tx("p3", 45000, date(2024, 5, 20)),
    ]
    for opening in (-2000000, -100000, 0, 50000, 2000000):
        for fee in (None, 0, 25000):
            card = make_card(handling_fee=fee, opening=opening)
            for month in range(1, 13):
                today = date(2024, month, 10)
                projection = project_next_statement(card, purchases, today)
                debt = max(Decimal("0"), -derive_balance(card, purchases))
                if projection is not None:
                    assert projection.amount_due <= debt
                    assert projection.amount_due > 0


def test_project_statements_only_cards_with_bills():
    accounts = [
        make_account("acc_bank", opening=100),
        make_card("acc_card", opening=-50000),
        make_card("acc_paid"),
    ]
    transactions = [card_tx("t1", 20000, date(2024, 6, 1))]

    projections = project_statements(accounts, transactions, TODAY)

    assert [p.account_id for p in projections] == ["acc_card"]
    assert projections[0].amount_due == Decimal("20000")


def test_fractional_amounts_rounded_half_up():
    card = make_card(opening=-1000000)
    transactions = [card_tx("t1", "100.005", date(2024, 6, 1))]

    projection = project_next_statement(card, transactions, TODAY)

    assert projection.amount_due == Decimal("100.01")

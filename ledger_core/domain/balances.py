"""Balance derivation engine - balances are always computed from the ledger"""

from datetime import date
from decimal import Decimal
from typing import Dict, Iterable

from ledger_core.domain.models import Account, Transaction, Transfer


def transfer_effect(account_id: str, transfers: Iterable[Transfer]) -> Decimal:
    """Net effect of transfers on one account (debit source, credit destination)"""
    total = Decimal("0")
    for transfer in transfers:
        if transfer.source_account_id == account_id:
            total -= transfer.amount
        if transfer.destination_account_id == account_id:
            total += transfer.amount
    return total


def derive_balance(
    account: Account,
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer] = (),
) -> Decimal:
    """
    Authoritative current balance of an account.

    opening_balance + sum of signed transaction amounts + transfer effects.
    No date filtering: this is the current balance, not a snapshot.
    Transactions belonging to other accounts are ignored.
    """
    tx_sum = sum(
        (t.signed_amount for t in transactions if t.account_id == account.id),
        Decimal("0"),
    )
    return account.opening_balance + tx_sum + transfer_effect(account.id, transfers)


def derive_balances(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer] = (),
) -> Dict[str, Decimal]:
    """Derived balance for every account, keyed by account id"""
    transactions = list(transactions)
    transfers = list(transfers)
    return {acc.id: derive_balance(acc, transactions, transfers) for acc in accounts}


def derive_net_worth(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer] = (),
) -> Decimal:
    """Sum of all derived balances, credit card debt included"""
    return sum(derive_balances(accounts, transactions, transfers).values(), Decimal("0"))


def derive_liquid_net_worth(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer] = (),
) -> Decimal:
    """Spendable-today figure: bank, cash and wallet accounts only"""
    liquid = [acc for acc in accounts if acc.is_liquid]
    return derive_net_worth(liquid, transactions, transfers)


def opening_balance_for(
    account: Account,
    target_balance: Decimal,
    transactions: Iterable[Transaction],
    transfers: Iterable[Transfer] = (),
) -> Decimal:
    """Opening balance that makes the derived balance equal target_balance"""
    movements = derive_balance(account, transactions, transfers) - account.opening_balance
    return target_balance - movements


def monthly_spend(transactions: Iterable[Transaction], today: date) -> Decimal:
    """Total expense magnitude within today's calendar month"""
    return sum(
        (
            t.amount
            for t in transactions
            if t.type == "expense" and t.date.year == today.year and t.date.month == today.month
        ),
        Decimal("0"),
    )

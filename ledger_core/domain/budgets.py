"""Budget progress and the needs/wants/savings strategy split"""

import dataclasses
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List

from ledger_core.domain.balances import monthly_spend
from ledger_core.domain.models import STRATEGY_KINDS, STRATEGY_PREFIX, Budget, StrategyTargets, Transaction


def strategy_category(kind: str) -> str:
    """Reserved budgets-table category holding one strategy percentage"""
    return f"{STRATEGY_PREFIX}{kind.upper()}"


def regular_budgets(budgets: Iterable[Budget]) -> List[Budget]:
    return [b for b in budgets if not b.is_strategy]


def strategy_targets(budgets: Iterable[Budget]) -> StrategyTargets:
    """Stored strategy percentages over the 50/30/20 defaults"""
    targets = StrategyTargets()
    for budget in budgets:
        for kind in STRATEGY_KINDS:
            if budget.category == strategy_category(kind):
                targets = dataclasses.replace(targets, **{kind: budget.limit})
    return targets


def total_budget(budgets: Iterable[Budget]) -> Decimal:
    return sum((b.limit for b in regular_budgets(budgets)), Decimal("0"))


def budget_progress(budgets: Iterable[Budget], transactions: Iterable[Transaction], today: date) -> Decimal:
    """
    Share of this month's total budget already spent.

    monthly expense total / sum of regular budget limits; 0 when no budget
    is set. Values above 1 mean the month is over budget.
    """
    total = total_budget(budgets)
    if total <= 0:
        return Decimal("0")
    return monthly_spend(transactions, today) / total


def category_progress(
    budgets: Iterable[Budget],
    transactions: Iterable[Transaction],
    today: date,
) -> Dict[str, Decimal]:
    """Spent / limit for every regular budget with a positive limit"""
    transactions = list(transactions)
    progress = {}
    for budget in regular_budgets(budgets):
        if budget.limit <= 0:
            continue
        spent = monthly_spend((t for t in transactions if t.category == budget.category), today)
        progress[budget.category] = spent / budget.limit
    return progress

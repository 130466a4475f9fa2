"""Domain models - pure Python dataclasses representing ledger entities"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union

LIQUID_KINDS = ("bank", "cash", "wallet")
ACCOUNT_KINDS = LIQUID_KINDS + ("credit", "investment")
TRANSACTION_TYPES = ("expense", "income")
FREQUENCIES = ("weekly", "monthly", "yearly")
STRATEGY_KINDS = ("needs", "wants", "savings")
STRATEGY_PREFIX = "_META_"


@dataclass
class Account:
    """Ledger account. Current balance is derived, never stored."""

    id: str
    name: str
    kind: str  # bank | cash | wallet | credit | investment
    opening_balance: Decimal = Decimal("0")
    currency: str = "COP"
    # Credit card specific
    credit_limit: Optional[Decimal] = None
    cutoff_day: Optional[int] = None
    payment_day: Optional[int] = None
    handling_fee: Optional[Decimal] = None

    @property
    def is_liquid(self) -> bool:
        return self.kind in LIQUID_KINDS

    @property
    def is_credit(self) -> bool:
        return self.kind == "credit"


@dataclass
class InstallmentInfo:
    """Amortization descriptor for a purchase split across statement cycles"""

    current: int
    total: int


@dataclass
class InstallmentShare:
    """Portion of an installment purchase billed in one statement cycle"""

    cycle_month: date
    amount: Decimal


@dataclass
class Transaction:
    """Single ledger movement on one account"""

    id: str
    account_id: str
    type: str  # "expense" or "income"
    amount: Decimal  # magnitude, never negative
    date: date
    category: str
    installments: Optional[InstallmentInfo] = None
    note: Optional[str] = None

    @property
    def signed_amount(self) -> Decimal:
        return self.amount if self.type == "income" else -self.amount

    @property
    def is_installment(self) -> bool:
        return self.installments is not None and self.installments.total > 1


@dataclass
class Transfer:
    """Movement between two accounts, kept out of per-account transaction sums"""

    id: str
    source_account_id: str
    destination_account_id: str
    amount: Decimal
    date: date
    note: Optional[str] = None


@dataclass
class RecurringObligation:
    """Subscription or bill with a fixed cadence"""

    id: str
    name: str
    amount: Decimal
    frequency: str  # weekly | monthly | yearly
    next_due_date: date
    category: str
    account_id: Optional[str] = None
    active: bool = True
    kind: str = "subscription"  # subscription | recurring_bill


@dataclass
class Budget:
    """Monthly spending limit for a category.

    Strategy targets (needs/wants/savings percentages) share the budgets
    table under reserved `_META_<KIND>` categories.
    """

    id: str
    category: str
    limit: Decimal
    period: str = "monthly"

    @property
    def is_strategy(self) -> bool:
        return self.category.startswith(STRATEGY_PREFIX)


@dataclass
class StrategyTargets:
    """Percent of income aimed at needs, wants and savings (50/30/20 by default)"""

    needs: Decimal = Decimal("50")
    wants: Decimal = Decimal("30")
    savings: Decimal = Decimal("20")


@dataclass
class StatementProjection:
    """Projected next credit card bill (derived, not persisted)"""

    account_id: str
    due_date: date
    cutoff_date: date
    amount_due: Decimal
    outstanding_debt: Decimal


@dataclass
class UpcomingPayment:
    """Entry in the merged upcoming-payments list"""

    name: str
    amount: Decimal
    due_date: date
    category: str
    account_id: Optional[str]
    source: str  # "obligation" or "statement"


@dataclass
class Applied:
    """Mutation persisted; value is the confirmed entity (or None for deletes)"""

    value: Any = None

    @property
    def ok(self) -> bool:
        return True

    def unwrap(self) -> Any:
        return self.value


@dataclass
class RolledBack:
    """Mutation failed remotely and its local effect was reverted"""

    reason: str
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return False

    def unwrap(self) -> Any:
        if self.error is not None:
            raise self.error
        raise RuntimeError(self.reason)


MutationResult = Union[Applied, RolledBack]

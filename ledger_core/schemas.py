"""Pydantic schemas for ledger store rows"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Literal, Optional

from pydantic import BaseModel, BeforeValidator, Field, model_validator

from ledger_core.domain.models import (
    Account,
    Budget,
    InstallmentInfo,
    RecurringObligation,
    Transaction,
    Transfer,
)


def _date_only(value):
    """Accept ISO datetimes ('2024-05-01T10:30:00') and keep the date part"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, str) and "T" in value:
        return value.split("T")[0]
    return value


LedgerDate = Annotated[date, BeforeValidator(_date_only)]


class AccountRow(BaseModel):
    """Row in the accounts table"""

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    type: Literal["bank", "cash", "wallet", "credit", "investment"]
    initial_balance: Decimal = Decimal("0")
    currency: str = "COP"
    credit_limit: Optional[Decimal] = Field(None, ge=0)
    cutoff_day: Optional[int] = Field(None, ge=1, le=31)
    payment_day: Optional[int] = Field(None, ge=1, le=31)
    handling_fee: Optional[Decimal] = Field(None, ge=0)

    @classmethod
    def from_domain(cls, account: Account) -> "AccountRow":
        return cls(
            id=account.id,
            name=account.name,
            type=account.kind,
            initial_balance=account.opening_balance,
            currency=account.currency,
            credit_limit=account.credit_limit,
            cutoff_day=account.cutoff_day,
            payment_day=account.payment_day,
            handling_fee=account.handling_fee,
        )

    def to_domain(self) -> Account:
        return Account(
            id=self.id,
            name=self.name,
            kind=self.type,
            opening_balance=self.initial_balance,
            currency=self.currency,
            credit_limit=self.credit_limit,
            cutoff_day=self.cutoff_day,
            payment_day=self.payment_day,
            handling_fee=self.handling_fee,
        )


class TransactionRow(BaseModel):
    """Row in the transactions table"""

    id: Optional[str] = None
    account_id: str = Field(..., min_length=1)
    type: Literal["expense", "income"]
    amount: Decimal = Field(..., ge=0)
    date: LedgerDate
    category: str
    description: Optional[str] = None
    installments_current: Optional[int] = Field(None, ge=1)
    installments_total: Optional[int] = Field(None, ge=1)

    @model_validator(mode="after")
    def check_installments(self) -> "TransactionRow":
        if self.installments_total is None:
            if self.installments_current is not None:
                raise ValueError("installments_current requires installments_total")
            return self
        if self.installments_current is None:
            self.installments_current = 1
        if self.installments_current > self.installments_total:
            raise ValueError("installments_current cannot exceed installments_total")
        return self

    @classmethod
    def from_domain(cls, transaction: Transaction) -> "TransactionRow":
        installments = transaction.installments
        return cls(
            id=transaction.id,
            account_id=transaction.account_id,
            type=transaction.type,
            amount=transaction.amount,
            date=transaction.date,
            category=transaction.category,
            description=transaction.note,
            installments_current=installments.current if installments else None,
            installments_total=installments.total if installments else None,
        )

    def to_domain(self) -> Transaction:
        installments = None
        if self.installments_total is not None:
            installments = InstallmentInfo(current=self.installments_current, total=self.installments_total)

        return Transaction(
            id=self.id,
            account_id=self.account_id,
            type=self.type,
            amount=self.amount,
            date=self.date,
            category=self.category,
            installments=installments,
            note=self.description,
        )


class TransferRow(BaseModel):
    """Row in the transfers table"""

    id: Optional[str] = None
    source_account_id: str = Field(..., min_length=1)
    destination_account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    date: LedgerDate
    note: Optional[str] = None

    @model_validator(mode="after")
    def check_accounts(self) -> "TransferRow":
        if self.source_account_id == self.destination_account_id:
            raise ValueError("transfer source and destination must differ")
        return self

    @classmethod
    def from_domain(cls, transfer: Transfer) -> "TransferRow":
        return cls(
            id=transfer.id,
            source_account_id=transfer.source_account_id,
            destination_account_id=transfer.destination_account_id,
            amount=transfer.amount,
            date=transfer.date,
            note=transfer.note,
        )

    def to_domain(self) -> Transfer:
        return Transfer(
            id=self.id,
            source_account_id=self.source_account_id,
            destination_account_id=self.destination_account_id,
            amount=self.amount,
            date=self.date,
            note=self.note,
        )


class ObligationRow(BaseModel):
    """Row in the subscriptions table"""

    id: Optional[str] = None
    name: str = Field(..., min_length=1)
    amount: Decimal = Field(..., ge=0)
    periodicity: Literal["weekly", "monthly", "yearly"]
    next_payment_date: LedgerDate
    category: str
    account_id: Optional[str] = None
    is_active: bool = True
    subscription_type: Literal["subscription", "recurring_bill"] = "subscription"

    @classmethod
    def from_domain(cls, obligation: RecurringObligation) -> "ObligationRow":
        return cls(
            id=obligation.id,
            name=obligation.name,
            amount=obligation.amount,
            periodicity=obligation.frequency,
            next_payment_date=obligation.next_due_date,
            category=obligation.category,
            account_id=obligation.account_id,
            is_active=obligation.active,
            subscription_type=obligation.kind,
        )

    def to_domain(self) -> RecurringObligation:
        return RecurringObligation(
            id=self.id,
            name=self.name,
            amount=self.amount,
            frequency=self.periodicity,
            next_due_date=self.next_payment_date,
            category=self.category,
            account_id=self.account_id,
            active=self.is_active,
            kind=self.subscription_type,
        )


class BudgetRow(BaseModel):
    """Row in the budgets table; one row per category"""

    id: Optional[str] = None
    category: str = Field(..., min_length=1)
    limit_amount: Decimal = Field(..., ge=0)
    period: Literal["monthly"] = "monthly"

    @classmethod
    def from_domain(cls, budget: Budget) -> "BudgetRow":
        return cls(id=budget.id, category=budget.category, limit_amount=budget.limit, period=budget.period)

    def to_domain(self) -> Budget:
        return Budget(id=self.id, category=self.category, limit=self.limit_amount, period=self.period)


ROW_SCHEMAS = {
    "accounts": AccountRow,
    "transactions": TransactionRow,
    "transfers": TransferRow,
    "subscriptions": ObligationRow,
    "budgets": BudgetRow,
}

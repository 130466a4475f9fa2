"""SQLAlchemy ORM models for the ledger store tables"""

import uuid

from sqlalchemy import Boolean, Column, Date, DateTime, ForeignKey, Integer, Numeric, Text
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func

Base = declarative_base()


def new_id() -> str:
    return str(uuid.uuid4())


class AccountRecord(Base):
    """Ledger account; current balance is derived, only the opening balance is stored"""

    __tablename__ = "accounts"

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    type = Column(Text, nullable=False)
    initial_balance = Column(Numeric(18, 2), nullable=False, default=0)
    currency = Column(Text, nullable=False, default="COP")
    credit_limit = Column(Numeric(18, 2), nullable=True)
    cutoff_day = Column(Integer, nullable=True)
    payment_day = Column(Integer, nullable=True)
    handling_fee = Column(Numeric(18, 2), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TransactionRecord(Base):
    """Income or expense on one account"""

    __tablename__ = "transactions"

    id = Column(Text, primary_key=True, default=new_id)
    account_id = Column(Text, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    type = Column(Text, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    date = Column(Date, nullable=False)
    category = Column(Text, nullable=False)
    description = Column(Text, nullable=True)
    installments_current = Column(Integer, nullable=True)
    installments_total = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class TransferRecord(Base):
    """Movement between two accounts"""

    __tablename__ = "transfers"

    id = Column(Text, primary_key=True, default=new_id)
    source_account_id = Column(Text, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    destination_account_id = Column(Text, ForeignKey("accounts.id", ondelete="CASCADE"), nullable=False, index=True)
    amount = Column(Numeric(18, 2), nullable=False)
    date = Column(Date, nullable=False)
    note = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class SubscriptionRecord(Base):
    """Recurring obligation (subscription or bill)"""

    __tablename__ = "subscriptions"

    id = Column(Text, primary_key=True, default=new_id)
    name = Column(Text, nullable=False)
    amount = Column(Numeric(18, 2), nullable=False)
    periodicity = Column(Text, nullable=False)
    next_payment_date = Column(Date, nullable=False)
    category = Column(Text, nullable=False)
    account_id = Column(Text, ForeignKey("accounts.id", ondelete="SET NULL"), nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    subscription_type = Column(Text, nullable=False, default="subscription")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


class BudgetRecord(Base):
    """Monthly category budget, or a strategy percentage under a _META_ category"""

    __tablename__ = "budgets"

    id = Column(Text, primary_key=True, default=new_id)
    category = Column(Text, nullable=False, unique=True)
    limit_amount = Column(Numeric(18, 2), nullable=False)
    period = Column(Text, nullable=False, default="monthly")
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())


RECORDS = {
    "accounts": AccountRecord,
    "transactions": TransactionRecord,
    "transfers": TransferRecord,
    "subscriptions": SubscriptionRecord,
    "budgets": BudgetRecord,
}

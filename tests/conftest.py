"""Pytest fixtures for testing"""

import asyncio
import itertools
from datetime import date
from decimal import Decimal
from typing import Any, Dict, Generator, List

import pytest
from sqlalchemy.orm import sessionmaker

from ledger_core.config import Settings
from ledger_core.domain.exceptions import StoreAPIError
from ledger_core.domain.models import Account, InstallmentInfo, RecurringObligation, Transaction, Transfer
from ledger_core.infrastructure.database.models import Base
from ledger_core.infrastructure.database.repositories import SqlLedgerStore
from ledger_core.infrastructure.database.session import make_engine, make_session_factory
from ledger_core.infrastructure.interface import TABLES, LedgerStore, Row
from ledger_core.ledger import Ledger


TODAY = date(2024, 6, 10)


class FakeLedgerStore(LedgerStore):
    """In-memory store; fail() makes a method/table pair raise StoreAPIError"""

    def __init__(self):
        self.tables: Dict[str, Dict[str, Row]] = {table: {} for table in TABLES}
        self.failures: set = set()
        self.delay: float = 0.0
        self.calls: List[tuple] = []
        self._ids = itertools.count(1)

    def fail(self, method: str, table: str) -> None:
        self.failures.add((method, table))

    def heal(self) -> None:
        self.failures.clear()

    async def _enter(self, method: str, table: str) -> None:
        self.calls.append((method, table))
        if self.delay:
            await asyncio.sleep(self.delay)
        if (method, table) in self.failures:
            raise StoreAPIError(f"{method} on {table} rejected")

    async def insert(self, table: str, row: Row) -> Row:
        await self._enter("insert", table)
        stored = dict(row, id=f"{table}-{next(self._ids)}")
        self.tables[table][stored["id"]] = stored
        return dict(stored)

    async def update(self, table: str, row_id: str, changes: Row) -> None:
        await self._enter("update", table)
        if row_id not in self.tables[table]:
            raise StoreAPIError(f"{table} row {row_id} not found")
        self.tables[table][row_id].update(changes)

    async def delete(self, table: str, row_id: str) -> None:
        await self._enter("delete", table)
        self.tables[table].pop(row_id, None)

    async def query(self, table: str, **filters: Any) -> List[Row]:
        await self._enter("query", table)
        return [
            dict(row)
            for row in self.tables[table].values()
            if all(row.get(column) == value for column, value in filters.items())
        ]


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        mutation_timeout_seconds=0.2,
        store_max_retries=3,
        store_backoff_base=0.0,
        _env_file=None,
    )


@pytest.fixture
def store() -> FakeLedgerStore:
    return FakeLedgerStore()


@pytest.fixture
def ledger(store: FakeLedgerStore, test_settings: Settings) -> Ledger:
    return Ledger(store, settings=test_settings)


@pytest.fixture
def session_factory(tmp_path) -> Generator[sessionmaker, None, None]:
    """Create test database and session factory"""
    engine = make_engine(f"sqlite:///{tmp_path / 'test.db'}")
    Base.metadata.create_all(bind=engine)
    try:
        yield make_session_factory(engine)
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def sql_store(session_factory: sessionmaker) -> SqlLedgerStore:
    return SqlLedgerStore(session_factory)


def make_account(account_id: str = "acc_bank", kind: str = "bank", opening: int | str = 0, **kwargs) -> Account:
    return Account(
        id=account_id,
        name=kwargs.pop("name", account_id),
        kind=kind,
        opening_balance=Decimal(str(opening)),
        **kwargs,
    )


def make_card(
    account_id: str = "acc_card",
    cutoff_day: int = 15,
    payment_day: int = 25,
    handling_fee: int | None = None,
    opening: int | str = 0,
) -> Account:
    return make_account(
        account_id,
        kind="credit",
        opening=opening,
        credit_limit=Decimal("5000000"),
        cutoff_day=cutoff_day,
        payment_day=payment_day,
        handling_fee=Decimal(handling_fee) if handling_fee is not None else None,
    )


def make_tx(
    tx_id: str,
    amount: int | str,
    on: date = TODAY,
    account_id: str = "acc_bank",
    type: str = "expense",
    installments: tuple | None = None,
    category: str = "Food",
) -> Transaction:
    return Transaction(
        id=tx_id,
        account_id=account_id,
        type=type,
        amount=Decimal(str(amount)),
        date=on,
        category=category,
        installments=InstallmentInfo(*installments) if installments else None,
    )


def make_transfer(transfer_id: str, source: str, destination: str, amount: int | str, on: date = TODAY) -> Transfer:
    return Transfer(
        id=transfer_id,
        source_account_id=source,
        destination_account_id=destination,
        amount=Decimal(str(amount)),
        date=on,
    )


def make_obligation(
    obligation_id: str = "sub_1",
    due: date = TODAY,
    frequency: str = "monthly",
    amount: int | str = 45000,
    account_id: str | None = None,
    active: bool = True,
) -> RecurringObligation:
    return RecurringObligation(
        id=obligation_id,
        name=f"Obligation {obligation_id}",
        amount=Decimal(str(amount)),
        frequency=frequency,
        next_due_date=due,
        category="Entertainment",
        account_id=account_id,
        active=active,
    )

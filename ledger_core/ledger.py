"""Optimistic mutation layer - the only writer of local ledger state.

Every ledger-affecting write is applied to the in-memory collections first,
then persisted to the store. A store rejection or timeout reverts exactly
the local change the mutation made and is returned as RolledBack; input
errors raise ValidationError before anything is touched.

Mutations are serialized per entity and per affected account. The state a
mutation builds on is read only once its locks are held, so a write never
inherits the optimistic effect of another write that may still roll back.
"""

import asyncio
import dataclasses
import time
import uuid
from collections import defaultdict
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import date
from decimal import Decimal
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Tuple

import pydantic

from ledger_core.config import Settings, settings as default_settings
from ledger_core.domain.balances import (
    derive_balance,
    derive_balances,
    derive_liquid_net_worth,
    derive_net_worth,
    monthly_spend,
    opening_balance_for,
)
from ledger_core.domain.budgets import (
    budget_progress,
    category_progress,
    regular_budgets,
    strategy_category,
    strategy_targets,
)
from ledger_core.domain.exceptions import PersistenceFailure, ValidationError
from ledger_core.domain.models import (
    STRATEGY_KINDS,
    STRATEGY_PREFIX,
    Account,
    Applied,
    Budget,
    InstallmentInfo,
    MutationResult,
    RecurringObligation,
    RolledBack,
    StatementProjection,
    StrategyTargets,
    Transaction,
    Transfer,
    UpcomingPayment,
)
from ledger_core.domain.statements import project_next_statement, project_statements
from ledger_core.domain.upcoming import upcoming_payments
from ledger_core.infrastructure.interface import LedgerStore
from ledger_core.infrastructure.observability.logging import log_mutation
from ledger_core.infrastructure.observability.metrics import record_mutation
from ledger_core.schemas import AccountRow, BudgetRow, ObligationRow, TransactionRow, TransferRow

TEMP_ID_PREFIX = "tmp-"

ChangeListener = Callable[[str], None]


def temp_id() -> str:
    return f"{TEMP_ID_PREFIX}{uuid.uuid4()}"


def lock_key(kind: str, entity_id: str | None) -> str | None:
    """Lock name for one entity; kinds never share a namespace"""
    return f"{kind}:{entity_id}" if entity_id else None


def _validated(schema, **values):
    try:
        return schema(**values)
    except pydantic.ValidationError as e:
        raise ValidationError(str(e)) from e


def _replace(entity, changes: Dict[str, Any]):
    try:
        return dataclasses.replace(entity, **changes)
    except TypeError as e:
        raise ValidationError(f"Unknown field in update: {e}") from e


class Ledger:
    """In-memory ledger state with optimistic, rollback-safe writes"""

    def __init__(self, store: LedgerStore, settings: Settings | None = None):
        self.store = store
        self.settings = settings or default_settings
        self._accounts: List[Account] = []
        self._transactions: List[Transaction] = []
        self._transfers: List[Transfer] = []
        self._obligations: List[RecurringObligation] = []
        self._budgets: List[Budget] = []
        self._locks: Dict[str, asyncio.Lock] = {}
        self._lock_users: Dict[str, int] = defaultdict(int)
        self._listeners: List[ChangeListener] = []

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def accounts(self) -> Tuple[Account, ...]:
        return tuple(self._accounts)

    @property
    def transactions(self) -> Tuple[Transaction, ...]:
        return tuple(self._transactions)

    @property
    def transfers(self) -> Tuple[Transfer, ...]:
        return tuple(self._transfers)

    @property
    def obligations(self) -> Tuple[RecurringObligation, ...]:
        return tuple(self._obligations)

    @property
    def budgets(self) -> Tuple[Budget, ...]:
        """Category budgets, strategy rows excluded"""
        return tuple(regular_budgets(self._budgets))

    @property
    def strategy_targets(self) -> StrategyTargets:
        return strategy_targets(self._budgets)

    def get_account(self, account_id: str) -> Optional[Account]:
        return next((a for a in self._accounts if a.id == account_id), None)

    def get_obligation(self, obligation_id: str) -> Optional[RecurringObligation]:
        return next((o for o in self._obligations if o.id == obligation_id), None)

    def balance_of(self, account_id: str) -> Decimal:
        return derive_balance(self._require_account(account_id), self._transactions, self._transfers)

    def balances(self) -> Dict[str, Decimal]:
        return derive_balances(self._accounts, self._transactions, self._transfers)

    def net_worth(self) -> Decimal:
        return derive_net_worth(self._accounts, self._transactions, self._transfers)

    def liquid_net_worth(self) -> Decimal:
        return derive_liquid_net_worth(self._accounts, self._transactions, self._transfers)

    def monthly_spend(self, today: date) -> Decimal:
        return monthly_spend(self._transactions, today)

    def budget_progress(self, today: date) -> Decimal:
        return budget_progress(self._budgets, self._transactions, today)

    def category_progress(self, today: date) -> Dict[str, Decimal]:
        return category_progress(self._budgets, self._transactions, today)

    def next_statement(self, account_id: str, today: date) -> Optional[StatementProjection]:
        """Fresh projection on every call; never cached across mutations"""
        account = self._require_account(account_id)
        return project_next_statement(account, self._transactions, today, self._transfers)

    def statements(self, today: date) -> List[StatementProjection]:
        return project_statements(self._accounts, self._transactions, today, self._transfers)

    def upcoming_payments(self, today: date, limit: int = 10) -> List[UpcomingPayment]:
        return upcoming_payments(
            self._obligations, self._accounts, self._transactions, today, self._transfers, limit
        )

    # ------------------------------------------------------------------
    # Change notification
    # ------------------------------------------------------------------

    def add_listener(self, listener: ChangeListener) -> None:
        """Call listener(operation) after every load and applied mutation"""
        self._listeners.append(listener)

    def remove_listener(self, listener: ChangeListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, operation: str) -> None:
        for listener in list(self._listeners):
            listener(operation)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Replace local state with the store's contents"""
        try:
            account_rows, transaction_rows, transfer_rows, obligation_rows, budget_rows = await self._persist(
                asyncio.gather(
                    self.store.query("accounts"),
                    self.store.query("transactions"),
                    self.store.query("transfers"),
                    self.store.query("subscriptions"),
                    self.store.query("budgets"),
                )
            )
            accounts = [AccountRow.model_validate(r).to_domain() for r in account_rows]
            transactions = [TransactionRow.model_validate(r).to_domain() for r in transaction_rows]
            transfers = [TransferRow.model_validate(r).to_domain() for r in transfer_rows]
            obligations = [ObligationRow.model_validate(r).to_domain() for r in obligation_rows]
            budgets = [BudgetRow.model_validate(r).to_domain() for r in budget_rows]
        except pydantic.ValidationError as e:
            raise PersistenceFailure(f"Store returned malformed rows: {e}") from e

        self._accounts = accounts
        self._transactions = transactions
        self._transfers = transfers
        self._obligations = obligations
        self._budgets = budgets
        self._notify("load")

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def add_transaction(
        self,
        account_id: str,
        type: str,
        amount: Decimal,
        date: date,
        category: str,
        installments: InstallmentInfo | None = None,
        note: str | None = None,
    ) -> MutationResult:
        """Record an income or expense; the temporary id is swapped for the store's id"""
        row = _validated(
            TransactionRow,
            account_id=account_id,
            type=type,
            amount=amount,
            date=date,
            category=category,
            description=note,
            installments_current=installments.current if installments else None,
            installments_total=installments.total if installments else None,
        )
        self._require_account(account_id)
        local = dataclasses.replace(row.to_domain(), id=temp_id())

        def apply():
            self._require_account(account_id)
            self._transactions.insert(0, local)

        async def persist():
            stored = await self.store.insert("transactions", row.model_dump(mode="json", exclude={"id"}))
            return self._swap_id(self._transactions, local, stored.get("id"))

        def revert():
            self._remove(self._transactions, local.id)

        locks = [lock_key("account", account_id)]
        return await self._mutate("add_transaction", local.id, locks, apply, persist, revert)

    async def update_transaction(self, transaction_id: str, **changes: Any) -> MutationResult:
        current = self._require(self._transactions, transaction_id, "transaction")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._transactions, transaction_id, "transaction")
            row = self._validated_from_domain(TransactionRow, _replace(existing, changes))
            updated = row.to_domain()
            self._require_account(updated.account_id)
            state.update(existing=existing, updated=updated, row=row)
            self._put(self._transactions, updated)

        async def persist():
            payload = state["row"].model_dump(mode="json", exclude={"id"})
            await self.store.update("transactions", transaction_id, payload)
            return state["updated"]

        def revert():
            self._put(self._transactions, state["existing"])

        locks = [
            lock_key("transaction", transaction_id),
            lock_key("account", current.account_id),
            lock_key("account", changes.get("account_id")),
        ]
        return await self._mutate("update_transaction", transaction_id, locks, apply, persist, revert)

    async def delete_transaction(self, transaction_id: str) -> MutationResult:
        current = self._require(self._transactions, transaction_id, "transaction")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._transactions, transaction_id, "transaction")
            state.update(existing=existing, position=self._transactions.index(existing))
            self._remove(self._transactions, transaction_id)

        async def persist():
            await self.store.delete("transactions", transaction_id)

        def revert():
            self._reinsert(self._transactions, state["position"], state["existing"])

        locks = [lock_key("transaction", transaction_id), lock_key("account", current.account_id)]
        return await self._mutate("delete_transaction", transaction_id, locks, apply, persist, revert)

    # ------------------------------------------------------------------
    # Transfers
    # ------------------------------------------------------------------

    async def add_transfer(
        self,
        source_account_id: str,
        destination_account_id: str,
        amount: Decimal,
        date: date,
        note: str | None = None,
    ) -> MutationResult:
        """Move money between two accounts as a single transfer entity"""
        row = _validated(
            TransferRow,
            source_account_id=source_account_id,
            destination_account_id=destination_account_id,
            amount=amount,
            date=date,
            note=note,
        )
        self._require_account(source_account_id)
        self._require_account(destination_account_id)
        local = dataclasses.replace(row.to_domain(), id=temp_id())

        def apply():
            self._require_account(source_account_id)
            self._require_account(destination_account_id)
            self._transfers.append(local)

        async def persist():
            stored = await self.store.insert("transfers", row.model_dump(mode="json", exclude={"id"}))
            return self._swap_id(self._transfers, local, stored.get("id"))

        def revert():
            self._remove(self._transfers, local.id)

        locks = [lock_key("account", source_account_id), lock_key("account", destination_account_id)]
        return await self._mutate("add_transfer", local.id, locks, apply, persist, revert)

    async def update_transfer(self, transfer_id: str, **changes: Any) -> MutationResult:
        current = self._require(self._transfers, transfer_id, "transfer")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._transfers, transfer_id, "transfer")
            row = self._validated_from_domain(TransferRow, _replace(existing, changes))
            updated = row.to_domain()
            self._require_account(updated.source_account_id)
            self._require_account(updated.destination_account_id)
            state.update(existing=existing, updated=updated, row=row)
            self._put(self._transfers, updated)

        async def persist():
            payload = state["row"].model_dump(mode="json", exclude={"id"})
            await self.store.update("transfers", transfer_id, payload)
            return state["updated"]

        def revert():
            self._put(self._transfers, state["existing"])

        locks = [
            lock_key("transfer", transfer_id),
            lock_key("account", current.source_account_id),
            lock_key("account", current.destination_account_id),
            lock_key("account", changes.get("source_account_id")),
            lock_key("account", changes.get("destination_account_id")),
        ]
        return await self._mutate("update_transfer", transfer_id, locks, apply, persist, revert)

    async def delete_transfer(self, transfer_id: str) -> MutationResult:
        current = self._require(self._transfers, transfer_id, "transfer")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._transfers, transfer_id, "transfer")
            state.update(existing=existing, position=self._transfers.index(existing))
            self._remove(self._transfers, transfer_id)

        async def persist():
            await self.store.delete("transfers", transfer_id)

        def revert():
            self._reinsert(self._transfers, state["position"], state["existing"])

        locks = [
            lock_key("transfer", transfer_id),
            lock_key("account", current.source_account_id),
            lock_key("account", current.destination_account_id),
        ]
        return await self._mutate("delete_transfer", transfer_id, locks, apply, persist, revert)

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    async def add_account(
        self,
        name: str,
        kind: str,
        opening_balance: Decimal = Decimal("0"),
        currency: str | None = None,
        credit_limit: Decimal | None = None,
        cutoff_day: int | None = None,
        payment_day: int | None = None,
        handling_fee: Decimal | None = None,
    ) -> MutationResult:
        row = _validated(
            AccountRow,
            name=name,
            type=kind,
            initial_balance=opening_balance,
            currency=currency or self.settings.default_currency,
            credit_limit=credit_limit,
            cutoff_day=cutoff_day,
            payment_day=payment_day,
            handling_fee=handling_fee,
        )
        local = dataclasses.replace(row.to_domain(), id=temp_id())

        def apply():
            self._accounts.append(local)

        async def persist():
            stored = await self.store.insert("accounts", row.model_dump(mode="json", exclude={"id"}))
            return self._swap_id(self._accounts, local, stored.get("id"))

        def revert():
            self._remove(self._accounts, local.id)

        # Nothing can reference the account until it exists, so no lock is needed
        return await self._mutate("add_account", local.id, [], apply, persist, revert)

    async def update_account(self, account_id: str, **changes: Any) -> MutationResult:
        """Edit account fields. The balance is derived; use set_balance to correct it."""
        if "balance" in changes:
            raise ValidationError("Account balance is derived from the ledger; use set_balance")
        self._require_account(account_id)
        return await self._update_account(account_id, lambda account: _replace(account, changes))

    async def set_balance(self, account_id: str, target_balance: Decimal) -> MutationResult:
        """Re-express a direct balance edit as a new opening balance"""
        target_balance = Decimal(str(target_balance))
        self._require_account(account_id)

        def rebalance(account: Account) -> Account:
            opening = opening_balance_for(account, target_balance, self._transactions, self._transfers)
            return dataclasses.replace(account, opening_balance=opening)

        return await self._update_account(account_id, rebalance, operation="set_balance")

    async def _update_account(
        self,
        account_id: str,
        make_updated: Callable[[Account], Account],
        operation: str = "update_account",
    ) -> MutationResult:
        # Computed under the account lock so set_balance sees settled transactions
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require_account(account_id)
            updated = make_updated(existing)
            if updated.id != account_id:
                raise ValidationError("Account id cannot change")
            row = self._validated_from_domain(AccountRow, updated)
            state.update(existing=existing, updated=row.to_domain(), row=row)
            self._put(self._accounts, state["updated"])

        async def persist():
            payload = state["row"].model_dump(mode="json", exclude={"id"})
            await self.store.update("accounts", account_id, payload)
            return state["updated"]

        def revert():
            self._put(self._accounts, state["existing"])

        return await self._mutate(operation, account_id, [lock_key("account", account_id)], apply, persist, revert)

    async def delete_account(self, account_id: str) -> MutationResult:
        """Remove an account that no transaction or transfer references"""
        self._require_account(account_id)
        self._ensure_unreferenced(account_id)
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require_account(account_id)
            self._ensure_unreferenced(account_id)
            state.update(existing=existing, position=self._accounts.index(existing))
            self._remove(self._accounts, account_id)

        async def persist():
            await self.store.delete("accounts", account_id)

        def revert():
            self._reinsert(self._accounts, state["position"], state["existing"])

        locks = [lock_key("account", account_id)]
        return await self._mutate("delete_account", account_id, locks, apply, persist, revert)

    def _ensure_unreferenced(self, account_id: str) -> None:
        if any(t.account_id == account_id for t in self._transactions) or any(
            account_id in (t.source_account_id, t.destination_account_id) for t in self._transfers
        ):
            raise ValidationError(f"Account {account_id} still has ledger entries")

    # ------------------------------------------------------------------
    # Recurring obligations
    # ------------------------------------------------------------------

    async def add_obligation(
        self,
        name: str,
        amount: Decimal,
        frequency: str,
        next_due_date: date,
        category: str,
        account_id: str | None = None,
        active: bool = True,
        kind: str = "subscription",
    ) -> MutationResult:
        row = _validated(
            ObligationRow,
            name=name,
            amount=amount,
            periodicity=frequency,
            next_payment_date=next_due_date,
            category=category,
            account_id=account_id,
            is_active=active,
            subscription_type=kind,
        )
        if account_id is not None:
            self._require_account(account_id)
        local = dataclasses.replace(row.to_domain(), id=temp_id())

        def apply():
            self._obligations.append(local)

        async def persist():
            stored = await self.store.insert("subscriptions", row.model_dump(mode="json", exclude={"id"}))
            return self._swap_id(self._obligations, local, stored.get("id"))

        def revert():
            self._remove(self._obligations, local.id)

        return await self._mutate("add_obligation", local.id, [], apply, persist, revert)

    async def update_obligation(self, obligation_id: str, **changes: Any) -> MutationResult:
        self._require(self._obligations, obligation_id, "obligation")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._obligations, obligation_id, "obligation")
            row = self._validated_from_domain(ObligationRow, _replace(existing, changes))
            state.update(existing=existing, updated=row.to_domain(), row=row)
            self._put(self._obligations, state["updated"])

        async def persist():
            payload = state["row"].model_dump(mode="json", exclude={"id"})
            await self.store.update("subscriptions", obligation_id, payload)
            return state["updated"]

        def revert():
            self._put(self._obligations, state["existing"])

        locks = [lock_key("obligation", obligation_id)]
        return await self._mutate("update_obligation", obligation_id, locks, apply, persist, revert)

    async def delete_obligation(self, obligation_id: str) -> MutationResult:
        self._require(self._obligations, obligation_id, "obligation")
        state: Dict[str, Any] = {}

        def apply():
            existing = self._require(self._obligations, obligation_id, "obligation")
            state.update(existing=existing, position=self._obligations.index(existing))
            self._remove(self._obligations, obligation_id)

        async def persist():
            await self.store.delete("subscriptions", obligation_id)

        def revert():
            self._reinsert(self._obligations, state["position"], state["existing"])

        locks = [lock_key("obligation", obligation_id)]
        return await self._mutate("delete_obligation", obligation_id, locks, apply, persist, revert)

    # ------------------------------------------------------------------
    # Budgets
    # ------------------------------------------------------------------

    async def set_budget(self, category: str, limit: Decimal) -> MutationResult:
        """Create or replace the monthly limit of a spending category"""
        if category.startswith(STRATEGY_PREFIX):
            raise ValidationError(f"Category prefix {STRATEGY_PREFIX} is reserved for strategy targets")
        return await self._upsert_budget(category, limit, "set_budget")

    async def set_strategy_target(self, kind: str, percent: Decimal) -> MutationResult:
        """Set the needs, wants or savings percentage of the spending strategy"""
        if kind not in STRATEGY_KINDS:
            raise ValidationError(f"Unknown strategy target: {kind}")
        percent = Decimal(str(percent))
        if not Decimal("0") <= percent <= Decimal("100"):
            raise ValidationError("Strategy target must be between 0 and 100 percent")
        return await self._upsert_budget(strategy_category(kind), percent, "set_strategy_target")

    async def _upsert_budget(self, category: str, limit: Decimal, operation: str) -> MutationResult:
        row = _validated(BudgetRow, category=category, limit_amount=limit)
        state: Dict[str, Any] = {}

        def apply():
            existing = next((b for b in self._budgets if b.category == category), None)
            if existing is None:
                local = dataclasses.replace(row.to_domain(), id=temp_id())
                self._budgets.append(local)
            else:
                local = dataclasses.replace(existing, limit=row.limit_amount)
                self._put(self._budgets, local)
            state.update(existing=existing, local=local)

        async def persist():
            payload = row.model_dump(mode="json", exclude={"id"})
            if state["existing"] is None:
                stored = await self.store.insert("budgets", payload)
                return self._swap_id(self._budgets, state["local"], stored.get("id"))
            await self.store.update("budgets", state["existing"].id, payload)
            return state["local"]

        def revert():
            if state["existing"] is None:
                self._remove(self._budgets, state["local"].id)
            else:
                self._put(self._budgets, state["existing"])

        locks = [lock_key("budget", category)]
        return await self._mutate(operation, category, locks, apply, persist, revert)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _mutate(
        self,
        operation: str,
        entity_id: str,
        lock_keys: Iterable[str | None],
        apply: Callable[[], None],
        persist: Callable[[], Awaitable[Any]],
        revert: Callable[[], None],
    ) -> MutationResult:
        """
        Run one optimistic mutation.

        Flow:
        1. Acquire locks (sorted, so overlapping mutations cannot deadlock)
        2. Apply the change locally, reading current state under the locks
        3. Persist with a timeout
        4. On failure revert the local change and return RolledBack
        """
        start_time = time.time()

        async with self._locked(lock_keys):
            apply()
            try:
                value = await self._persist(persist())
            except PersistenceFailure as e:
                revert()
                duration_ms = (time.time() - start_time) * 1000
                record_mutation(operation, applied=False)
                log_mutation(operation, entity_id, False, duration_ms, reason=str(e))
                return RolledBack(reason=str(e), error=e)
            except BaseException:
                revert()
                record_mutation(operation, applied=False)
                raise

        duration_ms = (time.time() - start_time) * 1000
        record_mutation(operation, applied=True)
        log_mutation(operation, getattr(value, "id", entity_id), True, duration_ms)
        self._notify(operation)
        return Applied(value)

    async def _persist(self, awaitable: Awaitable[Any]) -> Any:
        timeout = self.settings.mutation_timeout_seconds
        try:
            return await asyncio.wait_for(awaitable, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise PersistenceFailure(f"Ledger store did not respond within {timeout}s") from e

    @asynccontextmanager
    async def _locked(self, keys: Iterable[str | None]):
        keys = sorted({k for k in keys if k})
        for key in keys:
            self._lock_users[key] += 1
        try:
            async with AsyncExitStack() as stack:
                for key in keys:
                    lock = self._locks.setdefault(key, asyncio.Lock())
                    await stack.enter_async_context(lock)
                yield
        finally:
            # Drop locks nobody holds or waits on
            for key in keys:
                self._lock_users[key] -= 1
                if not self._lock_users[key]:
                    del self._lock_users[key]
                    self._locks.pop(key, None)

    @staticmethod
    def _validated_from_domain(schema, entity):
        try:
            return schema.from_domain(entity)
        except pydantic.ValidationError as e:
            raise ValidationError(str(e)) from e

    def _require_account(self, account_id: str) -> Account:
        return self._require(self._accounts, account_id, "account")

    @staticmethod
    def _require(collection: List[Any], entity_id: str, label: str) -> Any:
        for entity in collection:
            if entity.id == entity_id:
                return entity
        raise ValidationError(f"Unknown {label}: {entity_id}")

    @staticmethod
    def _put(collection: List[Any], entity: Any) -> None:
        """Replace the entity with the same id in place"""
        for i, current in enumerate(collection):
            if current.id == entity.id:
                collection[i] = entity
                return

    @staticmethod
    def _remove(collection: List[Any], entity_id: str) -> None:
        collection[:] = [e for e in collection if e.id != entity_id]

    @staticmethod
    def _reinsert(collection: List[Any], position: int, entity: Any) -> None:
        collection.insert(min(position, len(collection)), entity)

    @staticmethod
    def _swap_id(collection: List[Any], local: Any, real_id: str | None) -> Any:
        """Swap a temporary id for the store-assigned one, never duplicating the entity"""
        if not real_id or real_id == local.id:
            return local
        confirmed = dataclasses.replace(local, id=real_id)
        for i, current in enumerate(collection):
            if current.id == local.id:
                collection[i] = confirmed
                break
        return confirmed

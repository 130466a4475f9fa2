"""Recurring obligation scheduler - auto-posts subscriptions and bills when due"""

import asyncio
import logging
import time
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from ledger_core.config import Settings, settings as default_settings
from ledger_core.domain.exceptions import ResolutionFailure
from ledger_core.domain.models import Account, RecurringObligation
from ledger_core.infrastructure.observability.logging import log_scheduler_run
from ledger_core.infrastructure.observability.metrics import record_obligation
from ledger_core.ledger import Ledger
from ledger_core.utils.date_utils import add_months, add_weeks, add_years

# Ledger operations that can make an obligation due or change where it posts
WATCHED_OPERATIONS = frozenset(
    {
        "load",
        "add_obligation",
        "update_obligation",
        "add_account",
        "update_account",
        "delete_account",
    }
)


def advance_due_date(due_date: date, frequency: str) -> date:
    """One period after the previous due date (never relative to today)"""
    if frequency == "weekly":
        return add_weeks(due_date, 1)
    if frequency == "yearly":
        return add_years(due_date, 1)
    return add_months(due_date, 1)


def resolve_target_account(obligation: RecurringObligation, accounts: Sequence[Account]) -> Account:
    """
    Account an obligation is charged to.

    The configured account when it still exists, else the first liquid
    account (bank, cash, wallet).

    Raises:
        ResolutionFailure: No configured account and no liquid fallback
    """
    if obligation.account_id:
        configured = next((a for a in accounts if a.id == obligation.account_id), None)
        if configured is not None:
            return configured

    fallback = next((a for a in accounts if a.is_liquid), None)
    if fallback is None:
        raise ResolutionFailure(f"No account available for obligation {obligation.name}")
    return fallback


class ObligationScheduler:
    """
    Posts due obligations through the ledger, one at a time.

    Each posting is followed by a persisted due-date advance before the next
    obligation is evaluated, so a re-run can never post the same period twice.
    Not re-entrant: a call while a pass is in flight returns immediately.

    After attach(), a ledger load or an obligation or account change starts a
    pass in the background. Changes arriving during that pass, its own due-date
    advances included, queue one more pass.
    """

    def __init__(
        self,
        ledger: Ledger,
        settings: Settings | None = None,
        clock: Callable[[], date] = date.today,
    ):
        self.ledger = ledger
        self.settings = settings or default_settings
        self.clock = clock
        self._running = False
        self._pending = False
        self._watch_task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def run_due_obligations(
        self,
        obligations: Iterable[RecurringObligation],
        accounts: Sequence[Account],
        today: date,
    ) -> int:
        """
        One scheduler pass.

        For each active obligation due on or before today:
        1. Resolve the target account (skip with a warning when none)
        2. Post an expense dated on the due date
        3. Advance next_due_date by one period from the previous due date

        Returns:
            Number of transactions posted
        """
        if self._running:
            logging.info("Scheduler pass already in flight, skipping")
            return 0

        self._running = True
        start_time = time.time()
        posted = skipped = failed = 0
        try:
            # Snapshot inputs; the ledger replaces obligations as we advance them
            for obligation in list(obligations):
                if not obligation.active or obligation.next_due_date > today:
                    continue

                outcome = await self._process(obligation, accounts)
                record_obligation(outcome)
                if outcome == "posted":
                    posted += 1
                elif outcome == "skipped":
                    skipped += 1
                else:
                    failed += 1
        finally:
            self._running = False

        duration_ms = (time.time() - start_time) * 1000
        log_scheduler_run(posted, skipped, failed, duration_ms)
        return posted

    async def _process(self, obligation: RecurringObligation, accounts: Sequence[Account]) -> str:
        try:
            account = resolve_target_account(obligation, accounts)
        except ResolutionFailure as e:
            logging.warning(f"Skipping auto-payment: {e}", extra={"obligation_id": obligation.id})
            return "skipped"

        logging.info(
            f"Processing auto-payment for: {obligation.name}",
            extra={"obligation_id": obligation.id, "account_id": account.id},
        )

        posting = await self.ledger.add_transaction(
            account_id=account.id,
            type="expense",
            amount=obligation.amount,
            date=obligation.next_due_date,
            category=obligation.category,
            note=f"Automatic payment: {obligation.name}",
        )
        if not posting.ok:
            logging.error(
                f"Auto-payment for {obligation.name} failed: {posting.reason}",
                extra={"obligation_id": obligation.id},
            )
            return "failed"

        next_due = advance_due_date(obligation.next_due_date, obligation.frequency)
        advance = await self.ledger.update_obligation(obligation.id, next_due_date=next_due)
        if advance.ok:
            return "posted"

        # Undo the posting so the next pass does not charge this period twice
        logging.error(
            f"Could not advance {obligation.name} past {obligation.next_due_date}: {advance.reason}",
            extra={"obligation_id": obligation.id},
        )
        compensation = await self.ledger.delete_transaction(posting.value.id)
        if not compensation.ok:
            logging.error(
                f"Auto-payment for {obligation.name} posted but due date not advanced; "
                f"transaction {posting.value.id} may be charged again",
                extra={"obligation_id": obligation.id},
            )
        return "failed"

    async def trigger(self, today: Optional[date] = None) -> int:
        """Run one pass over the ledger's current obligations and accounts"""
        today = today or self.clock()
        return await self.run_due_obligations(self.ledger.obligations, self.ledger.accounts, today)

    async def catch_up(self, today: Optional[date] = None, max_passes: Optional[int] = None) -> int:
        """
        Repeat passes until one posts nothing.

        Each pass advances every due obligation by one period, so a user offline
        for three cycles gets three postings over three passes.
        """
        max_passes = max_passes or self.settings.scheduler_max_catch_up_passes
        total = 0
        for _ in range(max_passes):
            posted = await self.trigger(today)
            if posted == 0:
                break
            total += posted
        else:
            logging.warning(f"Scheduler catch-up stopped after {max_passes} passes")
        return total

    # ------------------------------------------------------------------
    # Change-driven passes
    # ------------------------------------------------------------------

    def attach(self) -> None:
        """Run a pass whenever the ledger's obligations or accounts change"""
        self.ledger.add_listener(self._on_change)

    def detach(self) -> None:
        self.ledger.remove_listener(self._on_change)

    async def settle(self) -> None:
        """Wait until change-driven passes have finished"""
        while self._watch_task is not None and not self._watch_task.done():
            await self._watch_task

    def _on_change(self, operation: str) -> None:
        if operation not in WATCHED_OPERATIONS:
            return
        if self._watch_task is not None and not self._watch_task.done():
            self._pending = True
            return
        self._watch_task = asyncio.get_running_loop().create_task(self._watch())

    async def _watch(self) -> None:
        passes = self.settings.scheduler_max_catch_up_passes
        for _ in range(passes):
            self._pending = False
            await self.trigger()
            # Failed mutations do not notify, so a broken store ends the loop here
            if not self._pending:
                return
        logging.warning(f"Change-driven scheduler passes stopped after {passes} passes")

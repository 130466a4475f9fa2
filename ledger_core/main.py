"""Engine entry point: wires settings, store, ledger and scheduler"""

import asyncio
import logging
from datetime import date
from typing import Optional

from ledger_core.config import Settings, settings as default_settings
from ledger_core.infrastructure.clients.store import HttpLedgerStore
from ledger_core.infrastructure.database.models import Base
from ledger_core.infrastructure.database.repositories import SqlLedgerStore
from ledger_core.infrastructure.database.session import make_engine, make_session_factory
from ledger_core.infrastructure.interface import LedgerStore
from ledger_core.infrastructure.observability.logging import setup_logging
from ledger_core.ledger import Ledger
from ledger_core.scheduler import ObligationScheduler


def create_store(settings: Settings) -> LedgerStore:
    """Store backend selected by settings.store_backend"""
    if settings.store_backend == "http":
        return HttpLedgerStore(settings=settings)

    engine = make_engine(settings.database_url)
    Base.metadata.create_all(bind=engine)
    return SqlLedgerStore(make_session_factory(engine))


async def create_ledger(settings: Settings | None = None) -> Ledger:
    """Ledger loaded from the configured store"""
    settings = settings or default_settings
    ledger = Ledger(create_store(settings), settings=settings)
    await ledger.load()

    logging.info(
        "Ledger loaded",
        extra={
            "step": "ledger_loaded",
            "accounts": len(ledger.accounts),
            "transactions": len(ledger.transactions),
            "transfers": len(ledger.transfers),
            "obligations": len(ledger.obligations),
        },
    )
    return ledger


async def run_catch_up(settings: Settings | None = None, today: Optional[date] = None) -> int:
    """Load the ledger and post every missed obligation period"""
    settings = settings or default_settings
    ledger = await create_ledger(settings)
    return await ObligationScheduler(ledger, settings=settings).catch_up(today)


def main() -> None:
    setup_logging(default_settings.log_level)
    posted = asyncio.run(run_catch_up())
    logging.info(f"Catch-up posted {posted} transactions", extra={"posted": posted})


if __name__ == "__main__":
    main()

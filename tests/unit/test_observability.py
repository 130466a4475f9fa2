"""Unit tests for structured logging and metrics"""

import json
import logging
from decimal import Decimal

from prometheus_client import REGISTRY

from ledger_core.infrastructure.observability.logging import CustomJsonFormatter, log_mutation, setup_logging
from ledger_core.infrastructure.observability.metrics import record_mutation, record_obligation

from conftest import TODAY


def sample(name, **labels):
    return REGISTRY.get_sample_value(name, labels) or 0.0


def test_json_formatter_adds_service_fields():
    formatter = CustomJsonFormatter("%(timestamp)s %(level)s %(name)s %(message)s")
    record = logging.LogRecord("ledger", logging.WARNING, __file__, 1, "Store slow", None, None)
    record.table = "transactions"

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Store slow"
    assert payload["level"] == "WARNING"
    assert payload["service"] == "ledger-core"
    assert payload["table"] == "transactions"
    assert "timestamp" in payload


def test_setup_logging_installs_single_json_handler():
    root = logging.getLogger()
    previous_handlers, previous_level = root.handlers[:], root.level
    try:
        setup_logging("DEBUG")
        setup_logging("WARNING")

        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert isinstance(root.handlers[0].formatter, CustomJsonFormatter)
    finally:
        root.handlers[:] = previous_handlers
        root.setLevel(previous_level)


def test_rollback_logged_as_error(caplog):
    with caplog.at_level(logging.INFO):
        log_mutation("add_transaction", "tmp-1", False, 12.5, reason="store down")

    [record] = caplog.records
    assert record.levelno == logging.ERROR
    assert record.outcome == "rolled_back"
    assert "store down" in record.getMessage()


def test_record_helpers_increment_counters():
    before = sample("ledger_mutation_total", operation="add_transfer", outcome="rolled_back")
    posted_before = sample("ledger_obligation_total", outcome="posted")

    record_mutation("add_transfer", applied=False)
    record_obligation("posted")

    assert sample("ledger_mutation_total", operation="add_transfer", outcome="rolled_back") == before + 1
    assert sample("ledger_obligation_total", outcome="posted") == posted_before + 1


async def test_ledger_mutations_are_counted(ledger, store):
    applied_before = sample("ledger_mutation_total", operation="add_account", outcome="applied")
    rolled_back_before = sample("ledger_mutation_total", operation="add_transaction", outcome="rolled_back")
    account = (await ledger.add_account("Checking", "bank")).unwrap()
    store.fail("insert", "transactions")

    await ledger.add_transaction(account.id, "expense", Decimal("5"), TODAY, "Food")

    assert sample("ledger_mutation_total", operation="add_account", outcome="applied") == applied_before + 1
    assert sample("ledger_mutation_total", operation="add_transaction", outcome="rolled_back") == rolled_back_before + 1

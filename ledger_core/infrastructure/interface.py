"""Abstract ledger store interface.

The engine persists through generic row CRUD; any backend (REST, SQL,
in-memory fakes for tests) implements these four operations. Rows are
plain dicts keyed by column name, JSON-compatible values.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, List

Row = Dict[str, Any]

TABLES = ("accounts", "transactions", "transfers", "subscriptions", "budgets")


class LedgerStore(ABC):
    """Row store backing accounts, transactions, transfers, obligations and budgets"""

    @abstractmethod
    async def insert(self, table: str, row: Row) -> Row:
        """
        Insert a row and return it as stored (including its assigned id).

        Raises:
            StoreAPIError: If the insert is rejected
        """

    @abstractmethod
    async def update(self, table: str, row_id: str, changes: Row) -> None:
        """Apply column changes to the row with the given id"""

    @abstractmethod
    async def delete(self, table: str, row_id: str) -> None:
        """Delete the row with the given id"""

    @abstractmethod
    async def query(self, table: str, **filters: Any) -> List[Row]:
        """Rows whose columns equal every given filter value"""

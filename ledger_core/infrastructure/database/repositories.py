"""SQL-backed ledger store"""

import asyncio
from typing import Any, List

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from ledger_core.domain.exceptions import StoreAPIError
from ledger_core.infrastructure.database.models import RECORDS
from ledger_core.infrastructure.interface import LedgerStore, Row
from ledger_core.schemas import ROW_SCHEMAS


class SqlLedgerStore(LedgerStore):
    """
    Ledger store over SQLAlchemy sessions, one session per call.

    Session work runs in a worker thread so the event loop stays free and a
    caller's timeout can fire while the database is slow. A call abandoned
    on timeout may still commit in its thread.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def _record_class(self, table: str):
        try:
            return RECORDS[table]
        except KeyError:
            raise StoreAPIError(f"Unknown table: {table}") from None

    @staticmethod
    def _to_row(table: str, record: Any) -> Row:
        """ORM record -> JSON-compatible row, same shape the REST store returns"""
        schema = ROW_SCHEMAS[table]
        values = {column: getattr(record, column) for column in schema.model_fields}
        return schema.model_validate(values).model_dump(mode="json")

    @staticmethod
    def _to_columns(table: str, row: Row) -> Row:
        """JSON row -> python column values (Decimal, date)"""
        return ROW_SCHEMAS[table].model_validate(row).model_dump()

    async def insert(self, table: str, row: Row) -> Row:
        return await asyncio.to_thread(self._insert, table, row)

    async def update(self, table: str, row_id: str, changes: Row) -> None:
        await asyncio.to_thread(self._update, table, row_id, changes)

    async def delete(self, table: str, row_id: str) -> None:
        await asyncio.to_thread(self._delete, table, row_id)

    async def query(self, table: str, **filters: Any) -> List[Row]:
        return await asyncio.to_thread(self._query, table, filters)

    def _insert(self, table: str, row: Row) -> Row:
        record_class = self._record_class(table)
        values = self._to_columns(table, row)
        if values.get("id") is None:
            values.pop("id", None)

        with self.session_factory() as db:
            try:
                record = record_class(**values)
                db.add(record)
                db.commit()
                db.refresh(record)
                return self._to_row(table, record)
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreAPIError(f"Insert into {table} failed: {e}") from e

    def _update(self, table: str, row_id: str, changes: Row) -> None:
        record_class = self._record_class(table)

        with self.session_factory() as db:
            try:
                record = db.get(record_class, row_id)
                if record is None:
                    raise StoreAPIError(f"{table} row {row_id} not found")

                merged = self._to_row(table, record)
                merged.update(changes)
                for column, value in self._to_columns(table, merged).items():
                    if column != "id":
                        setattr(record, column, value)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreAPIError(f"Update of {table} failed: {e}") from e

    def _delete(self, table: str, row_id: str) -> None:
        record_class = self._record_class(table)

        with self.session_factory() as db:
            try:
                record = db.get(record_class, row_id)
                if record is None:
                    raise StoreAPIError(f"{table} row {row_id} not found")
                db.delete(record)
                db.commit()
            except SQLAlchemyError as e:
                db.rollback()
                raise StoreAPIError(f"Delete from {table} failed: {e}") from e

    def _query(self, table: str, filters: Row) -> List[Row]:
        record_class = self._record_class(table)

        with self.session_factory() as db:
            try:
                records = (
                    db.query(record_class)
                    .filter_by(**filters)
                    .order_by(record_class.created_at)
                    .all()
                )
            except SQLAlchemyError as e:
                raise StoreAPIError(f"Query of {table} failed: {e}") from e
            return [self._to_row(table, record) for record in records]

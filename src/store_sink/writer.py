from __future__ import annotations

from typing import Any, Optional, Sequence

from loguru import logger

from .config import SinkConfig
from .dialects import DatabaseDialect
from .errors import PermanentStoreError, StoreWriteError, map_db_error
from .records import SinkRecord


class DbWriter:
    """
    Writes a batch of records to the store in a single transaction.

    Records are grouped by destination table (derived from the topic via
    ``table_name_format``). Every table in the batch is written on one
    connection and committed once, so a failure leaves nothing behind.

    The connection is opened lazily on first write and reused until
    close_quietly(). Driver errors are mapped to RetriableStoreError or
    PermanentStoreError.
    """

    def __init__(self, config: SinkConfig, dialect: DatabaseDialect):
        self._cfg = config
        self._dialect = dialect
        self._conn: Optional[Any] = None

    @property
    def dialect(self) -> DatabaseDialect:
        return self._dialect

    def table_for(self, record: SinkRecord) -> str:
        return self._cfg.table_name_format.format(
            topic=record.topic, partition=record.partition
        )

    def _group(self, records: Sequence[SinkRecord]) -> dict[str, list[dict]]:
        tables: dict[str, list[dict]] = {}
        for r in records:
            if r.value is None:
                raise PermanentStoreError(
                    f"Record {r.coordinates} has a null value; deletes are not supported"
                )
            tables.setdefault(self.table_for(r), []).append(r.value)
        return tables

    @staticmethod
    def _columns(rows: list[dict]) -> list[str]:
        cols: dict[str, None] = {}
        for row in rows:
            for c in row:
                cols.setdefault(c, None)
        return list(cols)

    def _connection(self):
        if self._conn is None:
            self._conn = self._dialect.open_connection()
        return self._conn

    def write(self, records: Sequence[SinkRecord]) -> int:
        """Write all records or none. Returns the number of rows sent."""
        tables = self._group(records)
        pk_fields = self._cfg.pk_fields if self._cfg.insert_mode == "upsert" else ()
        total = 0
        try:
            conn = self._connection()
            try:
                for table, rows in tables.items():
                    cols = self._columns(rows)
                    payload = [{c: row.get(c) for c in cols} for row in rows]
                    total += self._dialect.write_rows(
                        conn, table, cols, payload, pk_fields=pk_fields
                    )
                conn.commit()
            except Exception:
                self._rollback_quietly(conn)
                raise
        except StoreWriteError:
            raise
        except Exception as e:
            raise map_db_error(e) from e
        return total

    def _rollback_quietly(self, conn) -> None:
        try:
            conn.rollback()
        except Exception as e:
            logger.debug(f"Rollback failed (ignored): {type(e).__name__}: {e}")

    def close_quietly(self) -> None:
        """Close the connection, logging and suppressing any error. Idempotent."""
        conn, self._conn = self._conn, None
        if conn is None:
            return
        try:
            conn.close()
        except Exception as e:
            logger.warning(f"Error while closing writer connection: {type(e).__name__}: {e}")

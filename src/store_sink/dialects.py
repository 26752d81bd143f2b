"""
SQL dialects for the sink writer.

A dialect knows how to open a connection to the target store and how to turn
a table name plus column list into an insert or upsert statement. PostgreSQL
goes through psycopg directly; everything else SQLAlchemy can reach goes
through the generic dialect.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence
from urllib.parse import urlsplit

import psycopg
from loguru import logger
from psycopg import sql as psql
from sqlalchemy import create_engine, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine

from .config import SinkConfig
from .errors import ConfigError


class DatabaseDialect(ABC):
    """Connection factory plus statement builder for one kind of store."""

    name: str = "base"

    def __init__(self, config: SinkConfig):
        self.config = config

    @abstractmethod
    def open_connection(self) -> Any:
        """Open a new connection. Must expose commit(), rollback() and close()."""

    @abstractmethod
    def write_rows(
        self,
        conn: Any,
        table: str,
        cols: Sequence[str],
        rows: list[dict],
        *,
        pk_fields: Sequence[str] = (),
    ) -> int:
        """Insert (or upsert, when pk_fields is given) rows. Returns rows sent."""

    def close(self) -> None:
        """Release dialect-level resources. Safe to call more than once."""


class PostgreSqlDialect(DatabaseDialect):
    name = "postgresql"

    def __init__(self, config: SinkConfig):
        super().__init__(config)
        self._conninfo = _strip_driver(config.connection_url)

    def open_connection(self) -> psycopg.Connection:
        return psycopg.connect(self._conninfo)

    @staticmethod
    def upsert_statement(
        table: str, cols: Sequence[str], pk_fields: Sequence[str]
    ) -> psql.Composed:
        """INSERT ... ON CONFLICT ... DO UPDATE with named parameters (%(name)s)."""
        ins_cols = psql.SQL(", ").join(psql.Identifier(c) for c in cols)
        ins_vals = psql.SQL(", ").join(psql.Placeholder(c) for c in cols)
        if not pk_fields:
            return psql.SQL("INSERT INTO {} ({}) VALUES ({})").format(
                psql.Identifier(table), ins_cols, ins_vals
            )
        conflict = psql.SQL(", ").join(psql.Identifier(c) for c in pk_fields)
        update_cols = [c for c in cols if c not in pk_fields]
        if not update_cols:
            return psql.SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO NOTHING").format(
                psql.Identifier(table), ins_cols, ins_vals, conflict
            )
        setlist = psql.SQL(", ").join(
            psql.SQL("{} = EXCLUDED.{}").format(psql.Identifier(c), psql.Identifier(c))
            for c in update_cols
        )
        return psql.SQL("INSERT INTO {} ({}) VALUES ({}) ON CONFLICT ({}) DO UPDATE SET {}").format(
            psql.Identifier(table), ins_cols, ins_vals, conflict, setlist
        )

    def write_rows(self, conn, table, cols, rows, *, pk_fields=()):
        stmt = self.upsert_statement(table, cols, pk_fields)
        with conn.cursor() as cur:
            cur.executemany(stmt, rows)
        return len(rows)


class GenericDialect(DatabaseDialect):
    """Any SQLAlchemy URL. Upserts use the ON CONFLICT form (SQLite, PostgreSQL)."""

    name = "generic"

    def __init__(self, config: SinkConfig):
        super().__init__(config)
        try:
            self._engine: Engine | None = create_engine(config.connection_url)
        except sa_exc.ArgumentError as e:
            raise ConfigError(f"Unsupported connection url: {e}") from e

    @property
    def engine(self) -> Engine:
        if self._engine is None:
            raise RuntimeError(f"{type(self).__name__} is closed")
        return self._engine

    def open_connection(self):
        return self.engine.connect()

    def upsert_statement(self, table: str, cols: Sequence[str], pk_fields: Sequence[str]) -> str:
        quote = self.engine.dialect.identifier_preparer.quote
        ins_cols = ", ".join(quote(c) for c in cols)
        ins_vals = ", ".join(f":{c}" for c in cols)
        stmt = f"INSERT INTO {quote(table)} ({ins_cols}) VALUES ({ins_vals})"
        if not pk_fields:
            return stmt
        conflict = ", ".join(quote(c) for c in pk_fields)
        update_cols = [c for c in cols if c not in pk_fields]
        if not update_cols:
            return f"{stmt} ON CONFLICT ({conflict}) DO NOTHING"
        setlist = ", ".join(f"{quote(c)} = excluded.{quote(c)}" for c in update_cols)
        return f"{stmt} ON CONFLICT ({conflict}) DO UPDATE SET {setlist}"

    def write_rows(self, conn, table, cols, rows, *, pk_fields=()):
        conn.execute(text(self.upsert_statement(table, cols, pk_fields)), rows)
        return len(rows)

    def close(self) -> None:
        if self._engine is not None:
            self._engine.dispose()
            self._engine = None


DIALECTS: dict[str, type[DatabaseDialect]] = {
    "postgresql": PostgreSqlDialect,
    "postgres": PostgreSqlDialect,
    "generic": GenericDialect,
}


def _strip_driver(url: str) -> str:
    """postgresql+psycopg://... -> postgresql://..."""
    scheme, sep, rest = url.partition("://")
    if not sep:
        return url
    return f"{scheme.split('+', 1)[0]}://{rest}"


def create(name: str, config: SinkConfig) -> DatabaseDialect:
    """Create a dialect by registry key or class name (case-insensitive)."""
    key = name.strip().lower()
    cls = DIALECTS.get(key)
    if cls is None:
        by_class = {c.__name__.lower(): c for c in DIALECTS.values()}
        cls = by_class.get(key)
    if cls is None:
        raise ConfigError(
            f"Unknown dialect '{name}'. Available: {', '.join(sorted(DIALECTS))}"
        )
    return cls(config)


def find_best_for(url: str, config: SinkConfig) -> DatabaseDialect:
    """Pick a dialect from the connection URL scheme."""
    scheme = urlsplit(url).scheme.split("+", 1)[0].lower()
    if not scheme:
        raise ConfigError(f"Cannot detect dialect from connection url: {url!r}")
    cls = DIALECTS.get(scheme, GenericDialect)
    logger.debug(f"Detected dialect {cls.__name__} for scheme '{scheme}'")
    return cls(config)

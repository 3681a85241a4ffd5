"""Relational store — SQLAlchemy engine lifecycle and the ingestion table.

Provides a singleton engine initialized on app startup and ``SqlStorage``,
which exposes the operations the schema reconciler, the ingestion pipeline
and the read endpoints need: column introspection, single-column DDL,
parameterized bulk inserts and filtered selects. Column DDL goes through
alembic operations so each dialect gets its own ALTER syntax; SQLite, which
cannot alter a column in place, gets a batch table rebuild.
"""

import logging
import re
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Optional, Sequence

from alembic.migration import MigrationContext
from alembic.operations import Operations
from sqlalchemy import (
    Column,
    Date,
    Double,
    Integer,
    MetaData,
    String,
    Table,
    column,
    create_engine,
    insert,
    inspect,
    select,
    table,
    text,
)
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import CompileError
from sqlalchemy.types import TypeEngine

from backend.core.config import settings
from backend.core.models import StoredColumn
from backend.core.sanitize import sanitize_column_name

logger = logging.getLogger(__name__)

SURROGATE_KEY = "id"

_engine: Optional[Engine] = None

_VARCHAR = re.compile(r"^VARCHAR\((\d+)\)$")
_SQL_TYPES: dict[str, type[TypeEngine]] = {
    "INT": Integer,
    "DOUBLE": Double,
    "DATE": Date,
}


def init_engine(database_url: Optional[str] = None) -> Engine:
    """Create the SQLAlchemy engine. Call once at app startup."""
    global _engine
    url = database_url or settings.database_url
    kwargs: dict[str, Any] = {"pool_pre_ping": True}
    parsed = make_url(url)
    if parsed.get_backend_name() == "sqlite":
        if parsed.database and parsed.database != ":memory:":
            Path(parsed.database).parent.mkdir(parents=True, exist_ok=True)
    else:
        kwargs["pool_size"] = settings.db_pool_size
    _engine = create_engine(url, **kwargs)
    logger.info(f"Database engine initialized ({_engine.dialect.name})")
    return _engine


def close_engine() -> None:
    """Dispose the engine. Call at app shutdown."""
    global _engine
    if _engine:
        _engine.dispose()
        _engine = None
        logger.info("Database engine disposed")


def check_connection() -> bool:
    """Check if the database is reachable."""
    try:
        if _engine is None:
            return False
        with _engine.connect() as conn:
            conn.execute(text("SELECT 1"))
        return True
    except Exception:
        return False


def column_type(sql_type: str) -> TypeEngine:
    """Turn a mapped column type ("INT", "DOUBLE", "DATE", "VARCHAR(n)") into a SQLAlchemy type."""
    key = sql_type.strip().upper()
    match = _VARCHAR.match(key)
    if match:
        return String(int(match.group(1)))
    if key not in _SQL_TYPES:
        raise ValueError(f"Unsupported column type: {sql_type!r}")
    return _SQL_TYPES[key]()


class SqlStorage:
    """Operations on the single data table whose columns follow the template."""

    def __init__(self, engine: Engine, table_name: str):
        self._engine = engine
        self._table = sanitize_column_name(table_name)
        if not self._table:
            raise ValueError(f"Invalid table name: {table_name!r}")

    @property
    def table_name(self) -> str:
        return self._table

    @property
    def dialect_name(self) -> str:
        return self._engine.dialect.name

    def _quote(self, name: str) -> str:
        return self._engine.dialect.identifier_preparer.quote_identifier(name)

    def _table_clause(self, columns: Sequence[str]):
        return table(self._table, *[column(name) for name in columns])

    @contextmanager
    def _operations(self) -> Iterator[Operations]:
        """Alembic operations bound to one transaction on the engine."""
        with self._engine.begin() as conn:
            yield Operations(MigrationContext.configure(conn))

    def ensure_table(self) -> bool:
        """Create the data table with only its surrogate key if it is missing."""
        if inspect(self._engine).has_table(self._table):
            return False
        metadata = MetaData()
        Table(
            self._table, metadata,
            Column(SURROGATE_KEY, Integer, primary_key=True, autoincrement=True),
        )
        metadata.create_all(self._engine)
        logger.info(f"Created table {self._table}")
        return True

    def describe_columns(self) -> list[StoredColumn]:
        """Return the live table's columns, excluding the surrogate key."""
        columns = []
        for col in inspect(self._engine).get_columns(self._table):
            if col["name"] == SURROGATE_KEY:
                continue
            try:
                sql_type = col["type"].compile(dialect=self._engine.dialect)
            except CompileError:
                # Unrenderable reflected type; an empty type never matches so it gets re-typed.
                sql_type = ""
            columns.append(StoredColumn(name=col["name"], sql_type=sql_type.upper()))
        return columns

    def add_column(self, name: str, sql_type: str) -> str:
        statement = f"ALTER TABLE {self._table} ADD COLUMN {name} {sql_type} NULL"
        logger.info(f"Schema change: {statement}")
        with self._operations() as op:
            op.add_column(self._table, Column(name, column_type(sql_type), nullable=True))
        return statement

    def modify_column(self, name: str, sql_type: str) -> str:
        """Change a column's type. Existing values are cast by the database."""
        statement = f"ALTER TABLE {self._table} ALTER COLUMN {name} TYPE {sql_type} NULL"
        logger.info(f"Schema change: {statement}")
        new_type = column_type(sql_type)
        with self._operations() as op:
            if self.dialect_name == "sqlite":
                # No ALTER COLUMN on SQLite: batch mode copies rows into a rebuilt table.
                with op.batch_alter_table(self._table) as batch:
                    batch.alter_column(name, type_=new_type, existing_nullable=True)
            else:
                kwargs: dict[str, Any] = {}
                if self.dialect_name == "postgresql":
                    rendered = new_type.compile(dialect=self._engine.dialect)
                    kwargs["postgresql_using"] = f"{self._quote(name)}::{rendered}"
                op.alter_column(self._table, name, type_=new_type, existing_nullable=True, **kwargs)
        return statement

    def drop_column(self, name: str) -> str:
        statement = f"ALTER TABLE {self._table} DROP COLUMN {name}"
        logger.info(f"Schema change: {statement}")
        with self._operations() as op:
            if self.dialect_name == "sqlite":
                with op.batch_alter_table(self._table) as batch:
                    batch.drop_column(name)
            else:
                op.drop_column(self._table, name)
        return statement

    def insert_rows(self, columns: Sequence[str], rows: Sequence[Sequence[Any]]) -> int:
        """Insert rows in one parameterized statement and its own transaction.

        Column names must come from the template definition, never from the
        uploaded header.
        """
        if not rows:
            return 0
        params = [dict(zip(columns, row)) for row in rows]
        with self._engine.begin() as conn:
            conn.execute(insert(self._table_clause(columns)), params)
        return len(rows)

    def distinct_values(
        self,
        columns: Sequence[str],
        filters: Optional[dict[str, Any]] = None,
    ) -> list[tuple]:
        """Distinct combinations of ``columns``, ordered by them.

        Rows whose first column is NULL or empty are skipped. ``filters`` maps
        column names to required values; both come from the template definition.
        """
        target = self._table_clause(list(dict.fromkeys([*columns, *(filters or {})])))
        cols = [target.c[name] for name in columns]
        stmt = select(*cols).distinct().where(cols[0].is_not(None), cols[0] != "")
        for name, value in (filters or {}).items():
            stmt = stmt.where(target.c[name] == value)
        stmt = stmt.order_by(*cols)
        with self._engine.connect() as conn:
            return [tuple(row) for row in conn.execute(stmt)]

    def select_rows(
        self,
        columns: Sequence[str],
        filters: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """Return stored rows (surrogate key plus ``columns``) matching every filter."""
        target = self._table_clause([SURROGATE_KEY, *columns])
        stmt = select(target)
        for name, value in (filters or {}).items():
            stmt = stmt.where(target.c[name] == value)
        stmt = stmt.order_by(target.c[SURROGATE_KEY])
        with self._engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(stmt)]

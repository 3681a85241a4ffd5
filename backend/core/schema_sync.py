"""Schema Reconciler — converges the data table's columns to the template.

The diff runs over two explicit snapshots, the desired TemplateDefinition and
the live StoredColumn list, and yields one SchemaChange per column:

1. template column missing from the table -> ADD (nullable)
2. template column whose live type does not contain the mapped type -> MODIFY
3. live column missing from the template -> DROP

Additions and modifications come first, in template order, then drops.
Each change is executed as its own statement, so a failure part-way leaves
the table partially converged; the next sync picks up from there.
"""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence

from backend.core.config import settings
from backend.core.errors import SchemaSyncFailed, SheetIntakeError
from backend.core.models import ColumnType, StoredColumn, TemplateDefinition
from backend.core.storage import SqlStorage
from backend.core.template_store import TemplateStore

logger = logging.getLogger(__name__)


class ChangeKind(str, Enum):
    ADD = "add"
    MODIFY = "modify"
    DROP = "drop"


@dataclass(frozen=True)
class SchemaChange:
    kind: ChangeKind
    column: str
    sql_type: Optional[str] = None

    def describe(self) -> str:
        if self.kind == ChangeKind.DROP:
            return f"drop {self.column}"
        return f"{self.kind.value} {self.column} {self.sql_type}"


_TYPE_MAP = {
    ColumnType.INT.value: "INT",
    ColumnType.DATE.value: "DATE",
    ColumnType.FLOAT.value: "DOUBLE",
    ColumnType.DOUBLE.value: "DOUBLE",
}


def map_type(tag, text_length: int = 255) -> str:
    """Map a template type tag to a SQL column type. Unknown tags map to VARCHAR."""
    key = tag.value if isinstance(tag, ColumnType) else str(tag or "").strip().upper()
    return _TYPE_MAP.get(key, f"VARCHAR({text_length})")


def plan_schema_changes(
    desired: TemplateDefinition,
    actual: Sequence[StoredColumn],
    text_length: int = 255,
) -> list[SchemaChange]:
    """Diff the template against the live columns. Pure; performs no I/O."""
    live = {c.name: c for c in actual}
    wanted = set(desired.names)

    changes: list[SchemaChange] = []
    for col in desired:
        desired_type = map_type(col.type, text_length)
        existing = live.get(col.name)
        if existing is None:
            changes.append(SchemaChange(ChangeKind.ADD, col.name, desired_type))
        elif desired_type not in existing.sql_type.upper():
            changes.append(SchemaChange(ChangeKind.MODIFY, col.name, desired_type))

    for stored in actual:
        if stored.name not in wanted:
            changes.append(SchemaChange(ChangeKind.DROP, stored.name))

    return changes


def apply_schema_change(storage: SqlStorage, change: SchemaChange) -> str:
    if change.kind == ChangeKind.ADD:
        return storage.add_column(change.column, change.sql_type)
    if change.kind == ChangeKind.MODIFY:
        return storage.modify_column(change.column, change.sql_type)
    return storage.drop_column(change.column)


def sync_schema(
    store: TemplateStore,
    storage: SqlStorage,
    text_length: Optional[int] = None,
) -> list[SchemaChange]:
    """Bring the data table in line with the current template.

    Returns the changes that were applied; an empty list means the table
    already matched. Raises SchemaSyncFailed on the first failing statement.
    """
    length = text_length or settings.text_length
    try:
        definition = store.get_template_definition()
        store.check_reserved(definition)
    except SheetIntakeError as e:
        raise SchemaSyncFailed(f"Cannot load template for schema sync: {e.message}") from e

    try:
        storage.ensure_table()
        actual = storage.describe_columns()
    except Exception as e:
        raise SchemaSyncFailed(f"Cannot inspect table {storage.table_name}: {e}") from e

    changes = plan_schema_changes(definition, actual, length)
    if not changes:
        logger.info(f"Table {storage.table_name} already matches template")
        return []

    applied: list[SchemaChange] = []
    for change in changes:
        try:
            apply_schema_change(storage, change)
        except Exception as e:
            logger.error(
                f"Schema change '{change.describe()}' failed after "
                f"{len(applied)}/{len(changes)} applied: {e}"
            )
            raise SchemaSyncFailed(
                f"Schema change '{change.describe()}' failed: {e}",
                statement=change.describe(),
            ) from e
        applied.append(change)

    logger.info(
        f"Synchronized {storage.table_name} with template: "
        f"{', '.join(c.describe() for c in applied)}"
    )
    return applied


class SchemaReconciler:
    """Runs schema syncs one at a time.

    Startup, the template watcher and the template endpoint all reconcile
    the same table; a sync that starts while another is running waits for
    it and then plans against the converged columns.
    """

    def __init__(self, store: TemplateStore, storage: SqlStorage, text_length: Optional[int] = None):
        self._store = store
        self._storage = storage
        self._text_length = text_length
        self._lock = threading.Lock()

    def sync(self) -> list[SchemaChange]:
        with self._lock:
            return sync_schema(self._store, self._storage, self._text_length)

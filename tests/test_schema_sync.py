"""Tests for the Schema Reconciler."""

import threading
import time
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import text

from backend.core.errors import SchemaSyncFailed
from backend.core.models import ColumnType, StoredColumn
from backend.core.schema_sync import (
    ChangeKind,
    SchemaChange,
    SchemaReconciler,
    map_type,
    plan_schema_changes,
    sync_schema,
)
from backend.core.storage import SqlStorage, close_engine, init_engine
from backend.core.template_store import TemplateStore, build_definition
from tests.conftest import write_workbook


class TestMapType:
    @pytest.mark.parametrize("tag, expected", [
        ("INT", "INT"),
        ("DATE", "DATE"),
        ("FLOAT", "DOUBLE"),
        ("DOUBLE", "DOUBLE"),
        ("TEXT", "VARCHAR(255)"),
        (ColumnType.FLOAT, "DOUBLE"),
        ("int", "INT"),
    ])
    def test_known_tags(self, tag, expected):
        assert map_type(tag) == expected

    @pytest.mark.parametrize("tag", ["BLOB", "", None, 42, "BOOLEAN"])
    def test_total_for_unknown_tags(self, tag):
        assert map_type(tag) == "VARCHAR(255)"

    def test_text_length(self):
        assert map_type("TEXT", 100) == "VARCHAR(100)"


class TestPlanSchemaChanges:
    def test_adds_missing_column_only(self):
        desired = build_definition([["Name", "Age", "Country"], ["TEXT", "INT", "TEXT"]])
        actual = [
            StoredColumn(name="Name", sql_type="VARCHAR(255)"),
            StoredColumn(name="Age", sql_type="INT(11)"),
        ]
        changes = plan_schema_changes(desired, actual)
        assert changes == [SchemaChange(ChangeKind.ADD, "Country", "VARCHAR(255)")]

    def test_type_match_is_substring_containment(self):
        desired = build_definition([["Age", "Score"], ["INT", "FLOAT"]])
        actual = [
            StoredColumn(name="Age", sql_type="INTEGER"),
            StoredColumn(name="Score", sql_type="DOUBLE"),
        ]
        assert plan_schema_changes(desired, actual) == []

    def test_modify_on_type_change(self):
        desired = build_definition([["Age"], ["INT"]])
        actual = [StoredColumn(name="Age", sql_type="VARCHAR(255)")]
        assert plan_schema_changes(desired, actual) == [
            SchemaChange(ChangeKind.MODIFY, "Age", "INT")
        ]

    def test_drops_after_adds_and_modifies(self):
        desired = build_definition([["A", "B"], ["INT", "DATE"]])
        actual = [
            StoredColumn(name="Old", sql_type="VARCHAR(255)"),
            StoredColumn(name="B", sql_type="VARCHAR(255)"),
        ]
        changes = plan_schema_changes(desired, actual)
        assert [c.kind for c in changes] == [ChangeKind.ADD, ChangeKind.MODIFY, ChangeKind.DROP]
        assert [c.column for c in changes] == ["A", "B", "Old"]

    def test_converged_plan_is_empty(self):
        desired = build_definition([["Name", "Joined"], ["TEXT", "DATE"]])
        actual = [
            StoredColumn(name="Name", sql_type="VARCHAR(255)"),
            StoredColumn(name="Joined", sql_type="DATE"),
        ]
        assert plan_schema_changes(desired, actual) == []


class TestSyncSchemaSqlite:
    def test_creates_table_and_columns(self, template_store, storage):
        changes = sync_schema(template_store, storage)
        assert [c.kind for c in changes] == [ChangeKind.ADD] * 3
        assert [c.name for c in storage.describe_columns()] == ["Name", "Age", "Country"]

    def test_second_run_issues_no_ddl(self, template_store, storage):
        sync_schema(template_store, storage)
        assert sync_schema(template_store, storage) == []

    def test_adds_new_template_column(self, template_path, template_store, storage):
        write_workbook(template_path, [["Name", "Age"], ["TEXT", "INT"]])
        sync_schema(template_store, storage)

        write_workbook(template_path, [["Name", "Age", "Country"], ["TEXT", "INT", "TEXT"]])
        changes = sync_schema(template_store, storage)
        assert changes == [SchemaChange(ChangeKind.ADD, "Country", "VARCHAR(255)")]

    def test_existing_rows_survive_add(self, template_path, template_store, storage, engine):
        write_workbook(template_path, [["Name"], ["TEXT"]])
        sync_schema(template_store, storage)
        storage.insert_rows(["Name"], [["Ana"]])

        write_workbook(template_path, [["Name", "Age"], ["TEXT", "INT"]])
        sync_schema(template_store, storage)
        with engine.connect() as conn:
            rows = [tuple(r) for r in conn.execute(text('SELECT "Name", "Age" FROM uploaded_data'))]
        assert rows == [("Ana", None)]

    def test_type_change_converges(self, template_path, template_store, storage, engine):
        write_workbook(template_path, [["Name", "Age"], ["TEXT", "TEXT"]])
        sync_schema(template_store, storage)
        storage.insert_rows(["Name", "Age"], [["Ana", "30"], ["Ben", "41"]])

        write_workbook(template_path, [["Name", "Age"], ["TEXT", "INT"]])
        changes = sync_schema(template_store, storage)

        assert changes == [SchemaChange(ChangeKind.MODIFY, "Age", "INT")]
        live = {c.name: c.sql_type for c in storage.describe_columns()}
        assert "INT" in live["Age"]
        assert sync_schema(template_store, storage) == []
        with engine.connect() as conn:
            rows = [tuple(r) for r in conn.execute(text('SELECT "Name", "Age" FROM uploaded_data ORDER BY id'))]
        assert rows == [("Ana", 30), ("Ben", 41)]

    def test_type_change_keeps_column_order_and_drops(self, template_path, template_store, storage):
        write_workbook(template_path, [["Name", "Age", "Legacy"], ["TEXT", "TEXT", "TEXT"]])
        sync_schema(template_store, storage)

        write_workbook(template_path, [["Name", "Age"], ["TEXT", "DATE"]])
        changes = sync_schema(template_store, storage)

        assert [c.describe() for c in changes] == ["modify Age DATE", "drop Legacy"]
        assert [(c.name, c.sql_type) for c in storage.describe_columns()] == [
            ("Name", "VARCHAR(255)"),
            ("Age", "DATE"),
        ]

    def test_type_change_on_file_database(self, tmp_path, template_path, template_store):
        engine = init_engine(f"sqlite:///{tmp_path / 'db' / 'intake.db'}")
        try:
            file_storage = SqlStorage(engine, "uploaded_data")
            write_workbook(template_path, [["Name", "Age"], ["TEXT", "TEXT"]])
            sync_schema(template_store, file_storage)

            write_workbook(template_path, [["Name", "Age"], ["TEXT", "INT"]])
            sync_schema(template_store, file_storage)
            assert sync_schema(template_store, file_storage) == []
        finally:
            close_engine()

    def test_missing_template_raises_sync_failed(self, tmp_path, storage):
        with pytest.raises(SchemaSyncFailed, match="Cannot load template"):
            sync_schema(TemplateStore(tmp_path / "absent.xlsx"), storage)

    def test_surrogate_key_column_in_template_raises_sync_failed(self, tmp_path, storage):
        path = write_workbook(tmp_path / "template.xlsx", [["id", "Name"], ["INT", "TEXT"]])
        with pytest.raises(SchemaSyncFailed, match="reserved name"):
            sync_schema(TemplateStore(path), storage)


class TestSyncSchemaMockedStorage:
    def _storage(self, columns):
        storage = MagicMock(spec=SqlStorage)
        storage.table_name = "uploaded_data"
        storage.describe_columns.return_value = columns
        return storage

    def test_applies_each_change_separately(self, template_store):
        storage = self._storage([
            StoredColumn(name="Name", sql_type="VARCHAR(255)"),
            StoredColumn(name="Age", sql_type="VARCHAR(255)"),
            StoredColumn(name="Legacy", sql_type="INT"),
        ])
        sync_schema(template_store, storage)
        storage.modify_column.assert_called_once_with("Age", "INT")
        storage.add_column.assert_called_once_with("Country", "VARCHAR(255)")
        storage.drop_column.assert_called_once_with("Legacy")

    def test_failure_leaves_partial_convergence(self, template_store):
        storage = self._storage([StoredColumn(name="Legacy", sql_type="INT")])
        storage.add_column.side_effect = [None, RuntimeError("lock wait timeout")]

        with pytest.raises(SchemaSyncFailed, match="add Age INT"):
            sync_schema(template_store, storage)
        assert storage.add_column.call_count == 2
        storage.drop_column.assert_not_called()


class TestSchemaReconciler:
    def test_overlapping_syncs_apply_each_change_once(self, template_path, template_store, storage):
        reconciler = SchemaReconciler(template_store, storage)
        reconciler.sync()
        write_workbook(
            template_path,
            [["Name", "Age", "Country", "City"], ["TEXT", "INT", "TEXT", "TEXT"]],
        )

        entered = threading.Event()
        release = threading.Event()
        describe = storage.describe_columns
        calls = []

        def slow_describe():
            calls.append(threading.current_thread().name)
            if len(calls) == 1:
                entered.set()
                release.wait(timeout=5)
            return describe()

        results, errors = {}, []

        def run(name):
            try:
                results[name] = reconciler.sync()
            except SchemaSyncFailed as e:
                errors.append(e.message)

        with patch.object(storage, "describe_columns", side_effect=slow_describe):
            first = threading.Thread(target=run, args=("watcher",), name="watcher")
            second = threading.Thread(target=run, args=("api",), name="api")
            first.start()
            assert entered.wait(timeout=5)
            second.start()
            time.sleep(0.2)
            # The second sync is still waiting for the first one.
            assert calls == ["watcher"]
            release.set()
            first.join(timeout=5)
            second.join(timeout=5)

        assert errors == []
        assert results["watcher"] == [SchemaChange(ChangeKind.ADD, "City", "VARCHAR(255)")]
        assert results["api"] == []
        assert [c.name for c in storage.describe_columns()] == ["Name", "Age", "Country", "City"]

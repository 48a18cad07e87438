"""Tests for the database layer.

Verifies:
- DB creation and migrations
- WAL mode and foreign keys enabled
- Import of design and fill records, parents before children
- One cell per (form, row, column), last write wins
- Foreign key constraint enforcement
- Snapshot loading round-trips through the engine
"""

import sqlite3
from pathlib import Path

import pytest

from db.migrations import SchemaTooNew, init_db, run_migrations, schema_version
from db.schema import SCHEMA_VERSION
from db.store import (
    RecordNotFound,
    create_row,
    get_cell,
    import_records,
    list_forms,
    list_rows,
    load_snapshot,
    write_cell,
)
from formlogic.assembler import FormAssembler
from formlogic.records import InvalidRecord, LayoutType, Snapshot


@pytest.fixture()
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture()
def conn(db_path: Path) -> sqlite3.Connection:
    connection = init_db(db_path)
    yield connection
    connection.close()


RECORDS = {
    "columns": [
        {"id": "col-ok", "name": "voltage-ok", "type": "checkbox"},
        {"id": "col-reason", "name": "voltage-reason", "type": "text"},
    ],
    # Children listed before their parents on purpose
    "layouts": [
        {
            "id": "reason",
            "type": "input",
            "LayoutId": "general",
            "ColumnId": "col-reason",
            "order": 2,
        },
        {"id": "ok", "type": "input", "LayoutId": "general", "ColumnId": "col-ok", "order": 1},
        {"id": "general", "type": "group", "LayoutId": "inspection"},
        {"id": "inspection", "type": "tab", "name": "Inspection"},
    ],
    "conditions": [
        {
            "id": "leaf",
            "type": "equals",
            "valueColumnId": "col-ok",
            "value": "false",
            "parentConditionId": "all",
        },
        {"id": "all", "type": "and", "effect": "show", "effectLayoutId": "reason"},
    ],
    "rows": [{"id": "cpu-424", "name": "CPU 424", "FormId": "inspection"}],
    "cells": [
        {
            "id": "cell-1",
            "ColumnId": "col-ok",
            "RowId": "cpu-424",
            "FormId": "inspection",
            "data": "false",
        }
    ],
}


@pytest.fixture()
def loaded(conn: sqlite3.Connection) -> sqlite3.Connection:
    import_records(conn, RECORDS)
    return conn


class TestMigrations:
    def test_creates_all_tables(self, conn: sqlite3.Connection) -> None:
        tables = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' ORDER BY name"
        ).fetchall()
        assert sorted(t[0] for t in tables) == [
            "form_cells",
            "form_columns",
            "form_conditions",
            "form_layouts",
            "form_rows",
            "forms",
        ]

    def test_wal_mode_enabled(self, conn: sqlite3.Connection) -> None:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
        assert mode == "wal"

    def test_foreign_keys_enabled(self, conn: sqlite3.Connection) -> None:
        fk = conn.execute("PRAGMA foreign_keys").fetchone()[0]
        assert fk == 1

    def test_idempotent(self, conn: sqlite3.Connection) -> None:
        """Running migrations twice should not raise."""
        run_migrations(conn)
        count = conn.execute(
            "SELECT COUNT(*) FROM sqlite_master WHERE type='table'"
        ).fetchone()[0]
        assert count == 6

    def test_records_schema_version(self, conn: sqlite3.Connection) -> None:
        assert schema_version(conn) == SCHEMA_VERSION

    def test_refuses_newer_schema(self, db_path: Path) -> None:
        connection = init_db(db_path)
        connection.execute(f"PRAGMA user_version = {SCHEMA_VERSION + 1}")
        connection.commit()
        connection.close()
        with pytest.raises(SchemaTooNew):
            init_db(db_path)

    def test_creates_parent_directory(self, tmp_path: Path) -> None:
        connection = init_db(tmp_path / "nested" / "dir" / "f.db")
        connection.close()
        assert (tmp_path / "nested" / "dir" / "f.db").exists()


class TestImport:
    def test_counts(self, conn: sqlite3.Connection) -> None:
        counts = import_records(conn, RECORDS)
        assert counts == {
            "columns": 2,
            "layouts": 4,
            "forms": 1,
            "conditions": 2,
            "rows": 1,
            "cells": 1,
        }

    def test_reimport_replaces_by_id(self, loaded: sqlite3.Connection) -> None:
        updated = {
            "layouts": [{"id": "inspection", "type": "tab", "name": "Inspection v2"}],
        }
        import_records(loaded, updated)
        count = loaded.execute("SELECT COUNT(*) FROM form_layouts").fetchone()[0]
        assert count == 4
        name = loaded.execute(
            "SELECT name FROM form_layouts WHERE id = 'inspection'"
        ).fetchone()[0]
        assert name == "Inspection v2"

    def test_invalid_record_writes_nothing(self, conn: sqlite3.Connection) -> None:
        bad = {**RECORDS, "layouts": [*RECORDS["layouts"], {"id": "x", "type": "input"}]}
        with pytest.raises(InvalidRecord):
            import_records(conn, bad)
        assert conn.execute("SELECT COUNT(*) FROM form_columns").fetchone()[0] == 0

    def test_missing_reference_rolls_back(self, conn: sqlite3.Connection) -> None:
        bad = {
            "columns": RECORDS["columns"],
            "layouts": [
                {"id": "form", "type": "tab"},
                {"id": "field", "type": "input", "LayoutId": "form", "ColumnId": "col-nope"},
            ],
        }
        with pytest.raises(sqlite3.IntegrityError):
            import_records(conn, bad)
        assert conn.execute("SELECT COUNT(*) FROM form_columns").fetchone()[0] == 0

    def test_duplicate_column_name_rejected(self, conn: sqlite3.Connection) -> None:
        bad = {
            "columns": [
                {"id": "a", "name": "same", "type": "text"},
                {"id": "b", "name": "same", "type": "text"},
            ]
        }
        with pytest.raises(sqlite3.IntegrityError):
            import_records(conn, bad)

    def test_cells_keep_duplicate_key_last_write(self, loaded: sqlite3.Connection) -> None:
        import_records(
            loaded,
            {
                "cells": [
                    {
                        "id": "cell-2",
                        "ColumnId": "col-ok",
                        "RowId": "cpu-424",
                        "FormId": "inspection",
                        "data": "true",
                    }
                ]
            },
        )
        cell = get_cell(loaded, "inspection", "col-ok", "cpu-424")
        assert cell["id"] == "cell-1"
        assert cell["data"] == "true"

    def test_boolean_data_reads_the_same_after_storage(self, conn: sqlite3.Connection) -> None:
        records = {
            **RECORDS,
            "conditions": [{**RECORDS["conditions"][0], "value": False}, RECORDS["conditions"][1]],
            "cells": [{**RECORDS["cells"][0], "data": False}],
        }
        import_records(conn, records)
        assert get_cell(conn, "inspection", "col-ok", "cpu-424")["data"] == "false"

        in_memory = FormAssembler(Snapshot.from_records(records))
        stored = FormAssembler(load_snapshot(conn, "inspection"))
        for assembler in (in_memory, stored):
            assert assembler.assemble("inspection", "cpu-424").find("reason").visible is True

    def test_object_data_is_stored_as_json_text(self, loaded: sqlite3.Connection) -> None:
        import_records(
            loaded,
            {
                "cells": [
                    {
                        "id": "cell-3",
                        "ColumnId": "col-reason",
                        "RowId": "cpu-424",
                        "FormId": "inspection",
                        "data": {"latitude": 1},
                    }
                ]
            },
        )
        assert get_cell(loaded, "inspection", "col-reason", "cpu-424")["data"] == '{"latitude": 1}'

    def test_text_order_on_condition_rejected(self, conn: sqlite3.Connection) -> None:
        bad = {
            **RECORDS,
            "conditions": [
                {**RECORDS["conditions"][0], "order": 1},
                {"id": "other", "type": "equals", "parentConditionId": "all", "order": "2"},
                RECORDS["conditions"][1],
            ],
        }
        with pytest.raises(InvalidRecord, match="'order'"):
            import_records(conn, bad)
        assert conn.execute("SELECT COUNT(*) FROM form_conditions").fetchone()[0] == 0


class TestCells:
    def test_write_and_read(self, loaded: sqlite3.Connection) -> None:
        cell = write_cell(loaded, "inspection", "col-reason", '"Loose wire"', "cpu-424")
        assert cell["data"] == '"Loose wire"'
        assert get_cell(loaded, "inspection", "col-reason", "cpu-424")["id"] == cell["id"]

    def test_last_write_wins(self, loaded: sqlite3.Connection) -> None:
        first = write_cell(loaded, "inspection", "col-reason", '"a"', "cpu-424")
        second = write_cell(loaded, "inspection", "col-reason", '"b"', "cpu-424")
        assert first["id"] == second["id"]
        count = loaded.execute(
            "SELECT COUNT(*) FROM form_cells WHERE column_id = 'col-reason'"
        ).fetchone()[0]
        assert count == 1

    def test_form_wide_cells_are_unique(self, loaded: sqlite3.Connection) -> None:
        write_cell(loaded, "inspection", "col-reason", '"a"')
        write_cell(loaded, "inspection", "col-reason", '"b"')
        rows = loaded.execute(
            "SELECT data FROM form_cells WHERE column_id = 'col-reason' AND row_id IS NULL"
        ).fetchall()
        assert [r["data"] for r in rows] == ['"b"']

    def test_row_and_form_wide_are_separate(self, loaded: sqlite3.Connection) -> None:
        write_cell(loaded, "inspection", "col-reason", '"global"')
        write_cell(loaded, "inspection", "col-reason", '"scoped"', "cpu-424")
        assert get_cell(loaded, "inspection", "col-reason")["data"] == '"global"'
        assert get_cell(loaded, "inspection", "col-reason", "cpu-424")["data"] == '"scoped"'

    def test_natural_key_index_enforced(self, loaded: sqlite3.Connection) -> None:
        with pytest.raises(sqlite3.IntegrityError):
            loaded.execute(
                "INSERT INTO form_cells (id, column_id, row_id, form_id, created_at, updated_at) "
                "VALUES ('dup', 'col-ok', 'cpu-424', 'inspection', 'now', 'now')"
            )

    def test_unknown_column(self, loaded: sqlite3.Connection) -> None:
        with pytest.raises(RecordNotFound, match="Column 'nope'"):
            write_cell(loaded, "inspection", "nope", "1")

    def test_unknown_form(self, loaded: sqlite3.Connection) -> None:
        with pytest.raises(RecordNotFound, match="Form 'nope'"):
            write_cell(loaded, "nope", "col-ok", "1")

    def test_unknown_row(self, loaded: sqlite3.Connection) -> None:
        with pytest.raises(RecordNotFound, match="Row 'nope'"):
            write_cell(loaded, "inspection", "col-ok", "1", "nope")

    def test_row_of_other_form(self, loaded: sqlite3.Connection) -> None:
        import_records(loaded, {"layouts": [{"id": "other", "type": "tab"}]})
        create_row(loaded, "other", row_id="elsewhere")
        with pytest.raises(InvalidRecord, match="belongs to form 'other'"):
            write_cell(loaded, "inspection", "col-ok", "1", "elsewhere")


class TestRows:
    def test_create_and_list(self, loaded: sqlite3.Connection) -> None:
        row = create_row(loaded, "inspection", name="CPU 425")
        assert row["form_id"] == "inspection"
        assert [r["id"] for r in list_rows(loaded, "inspection")] == ["cpu-424", row["id"]]

    def test_global_row_listed_for_every_form(self, loaded: sqlite3.Connection) -> None:
        create_row(loaded, None, name="Shared", row_id="shared")
        assert "shared" in [r["id"] for r in list_rows(loaded, "inspection")]

    def test_unknown_form(self, loaded: sqlite3.Connection) -> None:
        with pytest.raises(RecordNotFound):
            create_row(loaded, "nope")


class TestReads:
    def test_list_forms(self, loaded: sqlite3.Connection) -> None:
        assert list_forms(loaded) == [{"id": "inspection", "name": "Inspection"}]

    def test_snapshot_round_trip(self, loaded: sqlite3.Connection) -> None:
        snapshot = load_snapshot(loaded, "inspection")
        assert {layout.id for layout in snapshot.layouts} == {
            "inspection",
            "general",
            "ok",
            "reason",
        }
        general = next(layout for layout in snapshot.layouts if layout.id == "general")
        assert general.type is LayoutType.GROUP
        assert general.required is False

        view = FormAssembler(snapshot).assemble("inspection", "cpu-424")
        assert [n.layout_id for n in view.root.iter_nodes()] == [
            "inspection",
            "general",
            "ok",
            "reason",
        ]
        assert view.find("reason").visible is True

    def test_snapshot_limited_to_form(self, loaded: sqlite3.Connection) -> None:
        import_records(loaded, {"layouts": [{"id": "other", "type": "tab"}]})
        write_cell(loaded, "other", "col-ok", "true")
        snapshot = load_snapshot(loaded, "inspection")
        assert {c.form_id for c in snapshot.cells} == {"inspection"}
        assert len(load_snapshot(loaded).cells) == 2

    def test_tri_state_required_survives_storage(self, loaded: sqlite3.Connection) -> None:
        import_records(
            loaded,
            {
                "layouts": [
                    {
                        "id": "reason",
                        "type": "input",
                        "LayoutId": "general",
                        "ColumnId": "col-reason",
                        "required": None,
                    }
                ]
            },
        )
        reason = next(layout for layout in load_snapshot(loaded).layouts if layout.id == "reason")
        assert reason.required is None

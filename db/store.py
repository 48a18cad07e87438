"""Record storage for formlogic.

Each function takes a sqlite3.Connection and explicit params. Writes commit
before returning; a failed write rolls back and re-raises.

Storage owns the integrity rules the engine assumes:
    - foreign keys between all record kinds
    - one cell per (form, row, column), last write wins
    - design records are replaced whole by id (versioned by replacement)
"""

import json
import sqlite3
import uuid
from collections.abc import Iterable, Mapping
from datetime import datetime, timezone
from typing import Any

from formlogic.records import (
    Cell,
    Column,
    Condition,
    Form,
    InvalidRecord,
    Layout,
    Row,
    Snapshot,
    merge_forms,
)
from formlogic.tree import build_forest


class RecordNotFound(LookupError):
    """Raised when a referenced form, row or column does not exist."""


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _uuid() -> str:
    return str(uuid.uuid4())


def _next_seq(conn: sqlite3.Connection, table: str) -> int:
    row = conn.execute(f"SELECT COALESCE(MAX(seq), 0) + 1 AS seq FROM {table}").fetchone()
    return row["seq"]


def _bool_or_none(value: bool | None) -> int | None:
    return None if value is None else int(value)


def _parents_first(forest_items: Iterable[Any], parent_of: Any) -> list[Any]:
    """Order records so that every parent precedes its children."""
    forest = build_forest(forest_items, parent_of=parent_of)
    ordered = [node for _, node in forest.walk()]
    # Cyclic records are written last; the foreign key check rejects them
    ordered.extend(forest.nodes[i] for i in forest.nodes if i in forest.excluded)
    return ordered


# ── Design-time records ─────────────────────────────────


def _save_column(conn: sqlite3.Connection, column: Column, now: str) -> None:
    conn.execute(
        """INSERT INTO form_columns (id, name, type, schema, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET
               name = excluded.name,
               type = excluded.type,
               schema = excluded.schema,
               updated_at = excluded.updated_at""",
        (column.id, column.name, column.type.value, json.dumps(column.schema), now, now),
    )


def _save_layout(conn: sqlite3.Connection, layout: Layout, now: str) -> None:
    conn.execute(
        """INSERT INTO form_layouts
               (id, name, type, schema, position, required, layout_id, column_id,
                seq, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET
               name = excluded.name,
               type = excluded.type,
               schema = excluded.schema,
               position = excluded.position,
               required = excluded.required,
               layout_id = excluded.layout_id,
               column_id = excluded.column_id,
               updated_at = excluded.updated_at""",
        (
            layout.id,
            layout.name,
            layout.type.value,
            json.dumps(layout.schema),
            layout.order,
            _bool_or_none(layout.required),
            layout.layout_id,
            layout.column_id,
            _next_seq(conn, "form_layouts"),
            now,
            now,
        ),
    )


def _save_condition(conn: sqlite3.Connection, condition: Condition, now: str) -> None:
    conn.execute(
        """INSERT INTO form_conditions
               (id, type, value, value_column_id, effect, effect_layout_id,
                parent_condition_id, position, seq, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET
               type = excluded.type,
               value = excluded.value,
               value_column_id = excluded.value_column_id,
               effect = excluded.effect,
               effect_layout_id = excluded.effect_layout_id,
               parent_condition_id = excluded.parent_condition_id,
               position = excluded.position,
               updated_at = excluded.updated_at""",
        (
            condition.id,
            condition.type.value,
            condition.value,
            condition.value_column_id,
            condition.effect.value if condition.effect else None,
            condition.effect_layout_id,
            condition.parent_condition_id,
            condition.order,
            _next_seq(conn, "form_conditions"),
            now,
            now,
        ),
    )


def _save_form(conn: sqlite3.Connection, form: Form, now: str) -> None:
    conn.execute(
        """INSERT INTO forms (id, name, created_at) VALUES (?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET name = COALESCE(excluded.name, forms.name)""",
        (form.id, form.name, now),
    )


def import_records(
    conn: sqlite3.Connection, payload: Mapping[str, Iterable[Mapping[str, Any]]]
) -> dict[str, int]:
    """Validate and store a batch of records.

    Keys are ``columns``, ``layouts``, ``forms``, ``conditions``, ``rows``
    and ``cells``. Every record is validated before anything is written.
    Top-level layouts are registered as forms automatically.

    Returns:
        Count of records written per kind.

    Raises:
        InvalidRecord: If any record fails validation.
        sqlite3.IntegrityError: If a reference points at a missing record.
    """
    snapshot = Snapshot.from_records(payload)
    now = _now()

    try:
        for column in snapshot.columns:
            _save_column(conn, column, now)
        for layout in _parents_first(snapshot.layouts, lambda layout: layout.layout_id):
            _save_layout(conn, layout, now)
        for form in snapshot.forms:
            _save_form(conn, form, now)
        for condition in _parents_first(snapshot.conditions, lambda c: c.parent_condition_id):
            _save_condition(conn, condition, now)
        for row in snapshot.rows:
            _save_row(conn, row, now)
        for cell in snapshot.cells:
            _save_cell(conn, cell.form_id, cell.column_id, cell.row_id, cell.data, now, cell.id)
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise

    return {
        "columns": len(snapshot.columns),
        "layouts": len(snapshot.layouts),
        "forms": len(snapshot.forms),
        "conditions": len(snapshot.conditions),
        "rows": len(snapshot.rows),
        "cells": len(snapshot.cells),
    }


# ── Fill-time records ───────────────────────────────────


def _save_row(conn: sqlite3.Connection, row: Row, now: str) -> None:
    conn.execute(
        """INSERT INTO form_rows (id, name, form_id, created_at) VALUES (?, ?, ?, ?)
           ON CONFLICT(id) DO UPDATE SET name = excluded.name, form_id = excluded.form_id""",
        (row.id, row.name, row.form_id, now),
    )


def _save_cell(
    conn: sqlite3.Connection,
    form_id: str,
    column_id: str,
    row_id: str | None,
    data: str | None,
    now: str,
    cell_id: str | None = None,
) -> str:
    existing = conn.execute(
        """SELECT id FROM form_cells
           WHERE form_id = ? AND IFNULL(row_id, '') = IFNULL(?, '') AND column_id = ?""",
        (form_id, row_id, column_id),
    ).fetchone()

    if existing is not None:
        conn.execute(
            "UPDATE form_cells SET data = ?, updated_at = ? WHERE id = ?",
            (data, now, existing["id"]),
        )
        return existing["id"]

    cell_id = cell_id or _uuid()
    conn.execute(
        """INSERT INTO form_cells (id, column_id, row_id, form_id, data, created_at, updated_at)
           VALUES (?, ?, ?, ?, ?, ?, ?)""",
        (cell_id, column_id, row_id, form_id, data, now, now),
    )
    return cell_id


def _require(conn: sqlite3.Connection, table: str, record_id: str, kind: str) -> sqlite3.Row:
    found = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (record_id,)).fetchone()
    if found is None:
        raise RecordNotFound(f"{kind.capitalize()} '{record_id}' not found")
    return found


def create_row(
    conn: sqlite3.Connection,
    form_id: str | None,
    name: str | None = None,
    row_id: str | None = None,
) -> dict[str, Any]:
    """Register a repeatable context. A null form_id makes it global."""
    if form_id is not None:
        _require(conn, "forms", form_id, "form")

    row = Row(id=row_id or _uuid(), name=name, form_id=form_id)
    try:
        _save_row(conn, row, _now())
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return dict(_require(conn, "form_rows", row.id, "row"))


def write_cell(
    conn: sqlite3.Connection,
    form_id: str,
    column_id: str,
    data: str | None,
    row_id: str | None = None,
) -> dict[str, Any]:
    """Store the value of one column for one row (or form-wide). Last write wins.

    Raises:
        RecordNotFound: If the form, column or row does not exist.
        InvalidRecord: If the row belongs to a different form.
    """
    _require(conn, "forms", form_id, "form")
    _require(conn, "form_columns", column_id, "column")
    if row_id is not None:
        row = _require(conn, "form_rows", row_id, "row")
        if row["form_id"] not in (None, form_id):
            raise InvalidRecord(
                "cell",
                f"{form_id}/{row_id}/{column_id}",
                f"row '{row_id}' belongs to form '{row['form_id']}'",
            )

    try:
        cell_id = _save_cell(conn, form_id, column_id, row_id, data, _now())
        conn.commit()
    except sqlite3.Error:
        conn.rollback()
        raise
    return dict(_require(conn, "form_cells", cell_id, "cell"))


def get_cell(
    conn: sqlite3.Connection, form_id: str, column_id: str, row_id: str | None = None
) -> dict[str, Any] | None:
    """Return the cell stored under exactly this key (no form-wide fallback)."""
    found = conn.execute(
        """SELECT * FROM form_cells
           WHERE form_id = ? AND IFNULL(row_id, '') = IFNULL(?, '') AND column_id = ?""",
        (form_id, row_id, column_id),
    ).fetchone()
    return dict(found) if found is not None else None


# ── Reads ───────────────────────────────────────────────


def list_forms(conn: sqlite3.Connection) -> list[dict[str, Any]]:
    """Return every form: the top-level layouts, named by the forms table."""
    rows = conn.execute(
        """SELECT l.id, COALESCE(f.name, l.name) AS name
           FROM form_layouts l
           LEFT JOIN forms f ON f.id = l.id
           WHERE l.layout_id IS NULL
           ORDER BY l.position IS NULL, l.position, l.seq"""
    ).fetchall()
    return [dict(r) for r in rows]


def list_rows(conn: sqlite3.Connection, form_id: str) -> list[dict[str, Any]]:
    """Return the rows of a form plus global rows, oldest first."""
    rows = conn.execute(
        """SELECT id, name, form_id, created_at FROM form_rows
           WHERE form_id = ? OR form_id IS NULL
           ORDER BY created_at, rowid""",
        (form_id,),
    ).fetchall()
    return [dict(r) for r in rows]


def load_snapshot(conn: sqlite3.Connection, form_id: str | None = None) -> Snapshot:
    """Load an immutable snapshot for evaluation.

    Design records are loaded whole. With form_id set, rows and cells are
    limited to that form (plus global rows).
    """
    columns = [
        Column.from_record({**dict(r), "schema": json.loads(r["schema"])})
        for r in conn.execute("SELECT id, name, type, schema FROM form_columns ORDER BY rowid")
    ]

    layouts = [
        Layout.from_record(
            {
                "id": r["id"],
                "name": r["name"],
                "type": r["type"],
                "schema": json.loads(r["schema"]),
                "order": r["position"],
                "required": None if r["required"] is None else bool(r["required"]),
                "LayoutId": r["layout_id"],
                "ColumnId": r["column_id"],
            }
        )
        for r in conn.execute("SELECT * FROM form_layouts ORDER BY seq")
    ]

    conditions = [
        Condition.from_record(
            {
                "id": r["id"],
                "type": r["type"],
                "value": r["value"],
                "valueColumnId": r["value_column_id"],
                "effect": r["effect"],
                "effectLayoutId": r["effect_layout_id"],
                "parentConditionId": r["parent_condition_id"],
                "order": r["position"],
            }
        )
        for r in conn.execute("SELECT * FROM form_conditions ORDER BY seq")
    ]

    declared = [
        Form(id=r["id"], name=r["name"]) for r in conn.execute("SELECT id, name FROM forms")
    ]

    if form_id is None:
        row_query = ("SELECT id, name, form_id FROM form_rows ORDER BY created_at, rowid", ())
        cell_query = ("SELECT * FROM form_cells ORDER BY updated_at, rowid", ())
    else:
        row_query = (
            """SELECT id, name, form_id FROM form_rows
               WHERE form_id = ? OR form_id IS NULL ORDER BY created_at, rowid""",
            (form_id,),
        )
        cell_query = (
            "SELECT * FROM form_cells WHERE form_id = ? ORDER BY updated_at, rowid",
            (form_id,),
        )

    rows = [Row(id=r["id"], name=r["name"], form_id=r["form_id"]) for r in conn.execute(*row_query)]
    cells = [
        Cell(
            id=r["id"],
            column_id=r["column_id"],
            form_id=r["form_id"],
            row_id=r["row_id"],
            data=r["data"],
        )
        for r in conn.execute(*cell_query)
    ]

    return Snapshot(
        columns=tuple(columns),
        layouts=tuple(layouts),
        conditions=tuple(conditions),
        rows=tuple(rows),
        cells=tuple(cells),
        forms=merge_forms(declared, layouts),
    )

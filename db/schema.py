"""Database table definitions for formlogic.

Design-time records (columns, layouts, conditions, forms) and fill-time
records (rows, cells) as raw DDL. JSON payloads (``schema``) are stored as
TEXT. Table names carry a ``form_`` prefix to stay clear of SQL keywords.
"""

TABLES = {
    "form_columns": """
        CREATE TABLE IF NOT EXISTS form_columns (
            id          TEXT PRIMARY KEY,
            name        TEXT NOT NULL UNIQUE,
            type        TEXT NOT NULL,
            schema      TEXT NOT NULL DEFAULT '{}',
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        )
    """,
    "form_layouts": """
        CREATE TABLE IF NOT EXISTS form_layouts (
            id          TEXT PRIMARY KEY,
            name        TEXT,
            type        TEXT NOT NULL,
            schema      TEXT NOT NULL DEFAULT '{}',
            position    REAL,
            required    INTEGER,
            layout_id   TEXT REFERENCES form_layouts(id),
            column_id   TEXT REFERENCES form_columns(id),
            seq         INTEGER NOT NULL,
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL,
            CHECK ((type = 'input') = (column_id IS NOT NULL))
        )
    """,
    "forms": """
        CREATE TABLE IF NOT EXISTS forms (
            id          TEXT PRIMARY KEY REFERENCES form_layouts(id),
            name        TEXT,
            created_at  TEXT NOT NULL
        )
    """,
    "form_conditions": """
        CREATE TABLE IF NOT EXISTS form_conditions (
            id                   TEXT PRIMARY KEY,
            type                 TEXT NOT NULL,
            value                TEXT,
            value_column_id      TEXT REFERENCES form_columns(id),
            effect               TEXT,
            effect_layout_id     TEXT REFERENCES form_layouts(id),
            parent_condition_id  TEXT REFERENCES form_conditions(id),
            position             REAL,
            seq                  INTEGER NOT NULL,
            created_at           TEXT NOT NULL,
            updated_at           TEXT NOT NULL
        )
    """,
    "form_rows": """
        CREATE TABLE IF NOT EXISTS form_rows (
            id          TEXT PRIMARY KEY,
            name        TEXT,
            form_id     TEXT REFERENCES forms(id),
            created_at  TEXT NOT NULL
        )
    """,
    "form_cells": """
        CREATE TABLE IF NOT EXISTS form_cells (
            id          TEXT PRIMARY KEY,
            column_id   TEXT NOT NULL REFERENCES form_columns(id),
            row_id      TEXT REFERENCES form_rows(id),
            form_id     TEXT NOT NULL REFERENCES forms(id),
            data        TEXT,
            created_at  TEXT NOT NULL,
            updated_at  TEXT NOT NULL
        )
    """,
}

# One cell per (form, row, column); a null row is its own key
INDEXES = [
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_form_cells_natural_key
        ON form_cells (form_id, IFNULL(row_id, ''), column_id)
    """,
    "CREATE INDEX IF NOT EXISTS idx_form_layouts_parent ON form_layouts (layout_id)",
    "CREATE INDEX IF NOT EXISTS idx_form_conditions_parent ON form_conditions (parent_condition_id)",
    "CREATE INDEX IF NOT EXISTS idx_form_rows_form ON form_rows (form_id)",
]

# Bump when TABLES or INDEXES change; stored in PRAGMA user_version
SCHEMA_VERSION = 1

# Creation order follows foreign key dependencies
TABLE_CREATION_ORDER = [
    "form_columns",
    "form_layouts",
    "forms",
    "form_conditions",
    "form_rows",
    "form_cells",
]

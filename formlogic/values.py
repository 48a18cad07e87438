"""Effective-value lookup over a snapshot of Cells.

A Cell is keyed by (ColumnId, RowId, FormId). RowId may be null, meaning the
value applies to the whole form. Resolution for a concrete row falls back to
the form-wide Cell when the row has none of its own.
"""

import json
import math
from collections.abc import Iterable
from typing import Any

from formlogic.records import Cell


class _NoValueType:
    """Sentinel for "no data yet". Distinct from an empty string."""

    _instance: "_NoValueType | None" = None

    def __new__(cls) -> "_NoValueType":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:
        return "NoValue"


NoValue = _NoValueType()

CellKey = tuple[str, str | None, str]


class ValueStore:
    """Read-only index of Cells by (column_id, row_id, form_id).

    Duplicate natural keys keep the last record seen (last write wins).
    Cells whose data is null count as absent.
    """

    def __init__(self, cells: Iterable[Cell]) -> None:
        self._cells: dict[CellKey, Cell] = {}
        for cell in cells:
            if cell.data is None:
                continue
            self._cells[(cell.column_id, cell.row_id, cell.form_id)] = cell

    def __len__(self) -> int:
        return len(self._cells)

    def cell(self, column_id: str, row_id: str | None, form_id: str) -> Cell | None:
        """Return the Cell that supplies the effective value, if any."""
        found = self._cells.get((column_id, row_id, form_id))
        if found is None and row_id is not None:
            found = self._cells.get((column_id, None, form_id))
        return found

    def resolve(self, column_id: str, row_id: str | None, form_id: str) -> str | _NoValueType:
        """Return the effective Cell.data for a field, or NoValue."""
        found = self.cell(column_id, row_id, form_id)
        if found is None:
            return NoValue
        return found.data


def decode(data: str) -> Any:
    """JSON-decode cell data, returning the raw string when it isn't JSON."""
    try:
        return json.loads(data)
    except (TypeError, ValueError):
        return data


def to_text(value: Any) -> str:
    """Render a decoded value as the string used for comparisons."""
    if isinstance(value, str):
        return value
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if math.isfinite(value) and value.is_integer():
            return str(int(value))
        return repr(value)
    return json.dumps(value, separators=(",", ":"), sort_keys=True)

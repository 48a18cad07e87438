"""Per-row view model assembly.

FormAssembler walks a form's Layout tree depth-first in sibling order and
annotates every node with its effective value and final state.

Containment rules:
    - A hidden container hides every descendant, whatever their own
      Conditions say. Descendant Conditions are not evaluated.
    - A disabled container disables every descendant.

Per-field failures never abort the form: an input Layout whose Column
cannot be found becomes a hidden, disabled node and a recorded problem.
"""

import logging
from collections.abc import Iterator, Mapping
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any

from formlogic.conditions import ConditionEvaluator
from formlogic.effects import EffectResolver, FieldState, index_targets
from formlogic.records import Column, ColumnType, Form, Layout, LayoutType, Row, Snapshot
from formlogic.references import ReferenceResolver
from formlogic.tree import build_forest
from formlogic.values import NoValue, ValueStore, decode

logger = logging.getLogger(__name__)


class AssemblyError(Exception):
    """Raised when a whole assembly request is invalid (unknown form or row)."""


_EMPTY = (None, "", [], {})


def is_satisfied(column: Column, value: Any) -> bool:
    """True if a value counts as filled in for a required field."""
    if value is NoValue:
        return False
    decoded = decode(value)
    if column.type is ColumnType.API:
        return isinstance(decoded, Mapping) and decoded.get("response") not in _EMPTY
    return decoded not in _EMPTY


@dataclass
class ViewNode:
    layout_id: str
    type: LayoutType
    name: str | None = None
    schema: dict[str, Any] = field(default_factory=dict)
    column: Column | None = None
    value: Any = NoValue
    visible: bool = True
    enabled: bool = True
    required: bool | None = False
    missing: bool = False
    fetchable: bool = False
    children: list["ViewNode"] = field(default_factory=list)

    @property
    def has_value(self) -> bool:
        return self.value is not NoValue

    def iter_nodes(self) -> Iterator["ViewNode"]:
        yield self
        for child in self.children:
            yield from child.iter_nodes()

    def to_dict(self) -> dict[str, Any]:
        return {
            "layout_id": self.layout_id,
            "name": self.name,
            "type": self.type.value,
            "schema": self.schema,
            "column": (
                {
                    "id": self.column.id,
                    "name": self.column.name,
                    "type": self.column.type.value,
                    "schema": self.column.schema,
                }
                if self.column is not None
                else None
            ),
            "value": self.value if self.has_value else None,
            "has_value": self.has_value,
            "visible": self.visible,
            "enabled": self.enabled,
            "required": self.required,
            "missing": self.missing,
            "fetchable": self.fetchable,
            "children": [c.to_dict() for c in self.children],
        }


@dataclass
class FormView:
    form_id: str
    row_id: str | None
    root: ViewNode
    problems: list[str] = field(default_factory=list)

    @property
    def missing(self) -> list[str]:
        """Layout ids of visible required inputs that have no usable value."""
        return [n.layout_id for n in self.root.iter_nodes() if n.missing]

    def find(self, layout_id: str) -> ViewNode | None:
        for node in self.root.iter_nodes():
            if node.layout_id == layout_id:
                return node
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "form_id": self.form_id,
            "row_id": self.row_id,
            "root": self.root.to_dict(),
            "missing": self.missing,
            "problems": self.problems,
        }


class FormAssembler:
    """Builds indexes over a snapshot once, then assembles views per row.

    The assembler holds no mutable state after construction, so views for
    different rows can be assembled concurrently.
    """

    def __init__(self, snapshot: Snapshot, *, strict: bool = False) -> None:
        self.snapshot = snapshot
        self.layouts = build_forest(
            snapshot.layouts, parent_of=lambda layout: layout.layout_id, strict=strict
        )
        self.conditions = build_forest(
            snapshot.conditions, parent_of=lambda c: c.parent_condition_id, strict=strict
        )
        self.columns_by_id: dict[str, Column] = {c.id: c for c in snapshot.columns}
        self.columns_by_name: dict[str, Column] = {}
        for column in snapshot.columns:
            if column.name in self.columns_by_name:
                logger.warning(
                    "Column name '%s' is used by '%s' and '%s'; references use the latter",
                    column.name,
                    self.columns_by_name[column.name].id,
                    column.id,
                )
            self.columns_by_name[column.name] = column
        self.rows: dict[str, Row] = {r.id: r for r in snapshot.rows}
        self.store = ValueStore(snapshot.cells)
        self._targets = index_targets(self.conditions.nodes.values())
        self._form_names = {f.id: f.name for f in snapshot.forms}
        self._tree_problems = [str(p) for p in (*self.layouts.problems, *self.conditions.problems)]

    def forms(self) -> list[Form]:
        """Top-level Layouts, in sibling order."""
        return [
            Form(id=layout.id, name=self._form_names.get(layout.id) or layout.name)
            for layout in self.layouts.root_nodes()
        ]

    def rows_for(self, form_id: str) -> list[Row]:
        """Rows that belong to a form, including global rows (no FormId)."""
        return [r for r in self.rows.values() if r.form_id in (None, form_id)]

    def assemble(
        self, form_id: str, row_id: str | None = None, *, online: bool = True
    ) -> FormView:
        """Assemble the view model of one form for one row (None: form-wide).

        Raises:
            AssemblyError: Unknown form, unknown row, or a row of another form.
        """
        if form_id not in self.layouts.roots:
            raise AssemblyError(f"Form '{form_id}' not found")
        if row_id is not None:
            row = self.rows.get(row_id)
            if row is None:
                raise AssemblyError(f"Row '{row_id}' not found")
            if row.form_id not in (None, form_id):
                raise AssemblyError(f"Row '{row_id}' belongs to form '{row.form_id}'")

        resolver = ReferenceResolver(self.columns_by_name, self.store, row_id, form_id)
        evaluator = ConditionEvaluator(self.conditions, self.columns_by_id, self.store, resolver)
        effects = EffectResolver(evaluator, self._targets)

        problems = list(self._tree_problems)
        root = self._build(
            self.layouts.nodes[form_id],
            effects,
            form_id,
            row_id,
            problems,
            online=online,
            inherited=FieldState(),
        )
        return FormView(form_id=form_id, row_id=row_id, root=root, problems=problems)

    def assemble_rows(
        self,
        form_id: str,
        *,
        online: bool = True,
        max_workers: int | None = None,
    ) -> list[FormView]:
        """Assemble every row of a form, in row order.

        With max_workers set, rows are assembled on a thread pool.
        """
        rows = self.rows_for(form_id)
        if max_workers is None:
            return [self.assemble(form_id, r.id, online=online) for r in rows]

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            return list(pool.map(lambda r: self.assemble(form_id, r.id, online=online), rows))

    def _build(
        self,
        layout: Layout,
        effects: EffectResolver,
        form_id: str,
        row_id: str | None,
        problems: list[str],
        *,
        online: bool,
        inherited: FieldState,
    ) -> ViewNode:
        node = ViewNode(
            layout_id=layout.id,
            type=layout.type,
            name=layout.name,
            schema=layout.schema,
            required=layout.required,
        )

        broken = False
        if layout.type is LayoutType.INPUT:
            node.column = self.columns_by_id.get(layout.column_id)
            if node.column is None:
                problem = f"Layout '{layout.id}' references missing column '{layout.column_id}'"
                logger.warning("%s; hiding it", problem)
                problems.append(problem)
                broken = True
            else:
                node.value = self.store.resolve(node.column.id, row_id, form_id)

        if broken:
            state = FieldState(visible=False, enabled=False, required=layout.required)
        elif not inherited.visible:
            state = FieldState(visible=False, enabled=inherited.enabled, required=layout.required)
        else:
            state = effects.state_for(layout)
            if not inherited.enabled:
                state = FieldState(visible=state.visible, enabled=False, required=state.required)

        node.visible = state.visible
        node.enabled = state.enabled
        node.required = state.required

        if node.column is not None:
            node.missing = (
                node.visible and node.required is True and not is_satisfied(node.column, node.value)
            )
            node.fetchable = (
                node.column.type is ColumnType.API and online and node.visible and node.enabled
            )

        for child in self.layouts.children(layout.id):
            if child.id in self.layouts.excluded:
                continue
            node.children.append(
                self._build(
                    child, effects, form_id, row_id, problems, online=online, inherited=state
                )
            )
        return node

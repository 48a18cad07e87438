"""Record types for formlogic.

Columns, Layouts, Conditions, Rows, Cells and Forms are loaded from plain dict
records (as stored, or as sent over the wire) into frozen dataclasses. Type
discriminants are enums, and each Column's schema payload is validated
against its discriminant with pydantic when the record is loaded.

Wire names are camelCase (``LayoutId``, ``valueColumnId``); snake_case
equivalents are accepted everywhere.
"""

import json
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError


class InvalidRecord(ValueError):
    """Raised when a record does not match the shape its type requires."""

    def __init__(self, kind: str, record_id: Any, message: str) -> None:
        super().__init__(f"Invalid {kind} '{record_id}': {message}")
        self.kind = kind
        self.record_id = record_id


class ColumnType(str, Enum):
    CHECKBOX = "checkbox"
    STAR = "star"
    DROPDOWN = "dropdown"
    NUMBER = "number"
    TEXT = "text"
    BIGTEXT = "bigtext"
    SIGNATURE = "signature"
    GPS = "gps"
    API = "api"
    DESCRIPTION = "description"
    PICTURE = "picture"
    SEPARATOR = "separator"
    GROUP = "group"
    ACCORDION = "accordion"
    TAB = "tab"


class LayoutType(str, Enum):
    INPUT = "input"
    DESCRIPTION = "description"
    PICTURE = "picture"
    SEPARATOR = "separator"
    GROUP = "group"
    ACCORDION = "accordion"
    TAB = "tab"


CONTAINER_TYPES = frozenset({LayoutType.GROUP, LayoutType.ACCORDION, LayoutType.TAB})


class ConditionType(str, Enum):
    AND = "and"
    OR = "or"
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"


LOGICAL_TYPES = frozenset({ConditionType.AND, ConditionType.OR})


class Effect(str, Enum):
    SHOW = "show"
    HIDE = "hide"
    ENABLE = "enable"
    DISABLE = "disable"
    REQUIRE = "require"


# ── Column schema payloads ──────────────────────────────


class _Payload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)


class CheckboxSchema(_Payload):
    label: str | None = None
    default: bool | None = None


class StarSchema(_Payload):
    max: int = 5


class DropdownSchema(_Payload):
    options: list[str]
    multiple: bool = False


class NumberSchema(_Payload):
    min: float | None = None
    max: float | None = None
    step: float | None = None
    unit: str | None = None


class TextSchema(_Payload):
    placeholder: str | None = None
    max_length: int | None = None


class BigTextSchema(_Payload):
    placeholder: str | None = None
    rows: int | None = None


class GpsSchema(_Payload):
    precision: int | None = None


class ApiRequestSchema(_Payload):
    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    # "schema" would shadow a BaseModel attribute
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")


class ApiResponseSchema(_Payload):
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")


class ApiSchema(_Payload):
    request: ApiRequestSchema
    response: ApiResponseSchema = Field(default_factory=ApiResponseSchema)


COLUMN_SCHEMAS: dict[ColumnType, type[_Payload]] = {
    ColumnType.CHECKBOX: CheckboxSchema,
    ColumnType.STAR: StarSchema,
    ColumnType.DROPDOWN: DropdownSchema,
    ColumnType.NUMBER: NumberSchema,
    ColumnType.TEXT: TextSchema,
    ColumnType.BIGTEXT: BigTextSchema,
    ColumnType.GPS: GpsSchema,
    ColumnType.API: ApiSchema,
}


# ── Helpers ─────────────────────────────────────────────


def _pick(record: Mapping[str, Any], *keys: str, default: Any = None) -> Any:
    """Return the first key present in record, trying each alias in turn."""
    for key in keys:
        if key in record:
            return record[key]
    return default


def _optional_id(value: Any) -> str | None:
    if value is None or value == "":
        return None
    return str(value)


def _require_id(kind: str, record: Mapping[str, Any]) -> str:
    record_id = record.get("id")
    if record_id is None or record_id == "":
        raise InvalidRecord(kind, None, "missing 'id'")
    return str(record_id)


def _enum(kind: str, record_id: str, enum_cls: type[Enum], value: Any) -> Any:
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise InvalidRecord(
            kind, record_id, f"unknown type {value!r} (expected one of: {allowed})"
        ) from None


def _schema_dict(kind: str, record_id: str, value: Any) -> dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise InvalidRecord(kind, record_id, "'schema' must be an object")
    return dict(value)


def _order(kind: str, record_id: str, value: Any) -> float | None:
    if value is not None and (isinstance(value, bool) or not isinstance(value, (int, float))):
        raise InvalidRecord(kind, record_id, "'order' must be a number or null")
    return value


def _cell_data(value: Any) -> str | None:
    """Cell data is JSON text; structured values are encoded on load."""
    if value is None or isinstance(value, str):
        return value
    return json.dumps(value)


# ── Records ─────────────────────────────────────────────


@dataclass(frozen=True)
class Column:
    """A reusable field definition, referenced by id from Layouts and Cells."""

    id: str
    name: str
    type: ColumnType
    schema: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Column":
        column_id = _require_id("column", record)
        name = record.get("name")
        if not name:
            raise InvalidRecord("column", column_id, "missing 'name'")
        column_type = _enum("column", column_id, ColumnType, record.get("type"))
        schema = _schema_dict("column", column_id, record.get("schema"))

        model = COLUMN_SCHEMAS.get(column_type)
        if model is not None:
            try:
                model.model_validate(schema)
            except ValidationError as e:
                raise InvalidRecord(
                    "column", column_id, f"schema does not match type '{column_type.value}': {e}"
                ) from e

        return cls(id=column_id, name=str(name), type=column_type, schema=schema)


@dataclass(frozen=True)
class Layout:
    """A positioned node in a form's presentation tree."""

    id: str
    type: LayoutType
    name: str | None = None
    schema: dict[str, Any] = field(default_factory=dict)
    order: float | None = None
    required: bool | None = False
    layout_id: str | None = None
    column_id: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Layout":
        layout_id = _require_id("layout", record)
        layout_type = _enum("layout", layout_id, LayoutType, record.get("type"))
        column_id = _optional_id(_pick(record, "ColumnId", "column_id", "columnId"))

        if layout_type is LayoutType.INPUT and column_id is None:
            raise InvalidRecord("layout", layout_id, "input layouts need a 'ColumnId'")
        if layout_type is not LayoutType.INPUT and column_id is not None:
            raise InvalidRecord(
                "layout", layout_id, f"'{layout_type.value}' layouts cannot carry a 'ColumnId'"
            )

        required = record.get("required", False)
        if required is not None and not isinstance(required, bool):
            raise InvalidRecord("layout", layout_id, "'required' must be true, false or null")

        return cls(
            id=layout_id,
            type=layout_type,
            name=record.get("name"),
            schema=_schema_dict("layout", layout_id, record.get("schema")),
            order=_order("layout", layout_id, record.get("order")),
            required=required,
            layout_id=_optional_id(_pick(record, "LayoutId", "layout_id", "layoutId")),
            column_id=column_id,
        )


@dataclass(frozen=True)
class Condition:
    """A boolean rule node; may also declare an effect on a target Layout."""

    id: str
    type: ConditionType
    value: str | None = None
    value_column_id: str | None = None
    effect: Effect | None = None
    effect_layout_id: str | None = None
    parent_condition_id: str | None = None
    order: float | None = None

    @property
    def is_logical(self) -> bool:
        return self.type in LOGICAL_TYPES

    @property
    def declares_effect(self) -> bool:
        return self.effect is not None and self.effect_layout_id is not None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Condition":
        condition_id = _require_id("condition", record)
        condition_type = _enum("condition", condition_id, ConditionType, record.get("type"))

        effect_value = record.get("effect")
        effect = (
            _enum("condition", condition_id, Effect, effect_value)
            if effect_value is not None
            else None
        )

        value = record.get("value")
        if value is not None and not isinstance(value, str):
            # Literals may arrive as JSON numbers/booleans; compare them as text.
            value = str(value).lower() if isinstance(value, bool) else str(value)

        return cls(
            id=condition_id,
            type=condition_type,
            value=value,
            value_column_id=_optional_id(
                _pick(
                    record,
                    "valueColumnId",
                    "compareWidgetId",
                    "value_column_id",
                    "compare_widget_id",
                )
            ),
            effect=effect,
            effect_layout_id=_optional_id(
                _pick(record, "effectLayoutId", "effect_layout_id")
            ),
            parent_condition_id=_optional_id(
                _pick(record, "parentConditionId", "parent_condition_id")
            ),
            order=_order("condition", condition_id, record.get("order")),
        )


@dataclass(frozen=True)
class Row:
    """A repeatable context across which the same Columns are filled."""

    id: str
    name: str | None = None
    form_id: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Row":
        return cls(
            id=_require_id("row", record),
            name=record.get("name"),
            form_id=_optional_id(_pick(record, "FormId", "form_id", "formId")),
        )


@dataclass(frozen=True)
class Cell:
    """The stored value of one Column for one Row (or form-wide) in one Form."""

    id: str
    column_id: str
    form_id: str
    row_id: str | None = None
    data: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Cell":
        cell_id = _require_id("cell", record)
        column_id = _optional_id(_pick(record, "ColumnId", "column_id", "columnId"))
        form_id = _optional_id(_pick(record, "FormId", "form_id", "formId"))
        if column_id is None:
            raise InvalidRecord("cell", cell_id, "missing 'ColumnId'")
        if form_id is None:
            raise InvalidRecord("cell", cell_id, "missing 'FormId'")
        return cls(
            id=cell_id,
            column_id=column_id,
            form_id=form_id,
            row_id=_optional_id(_pick(record, "RowId", "row_id", "rowId")),
            data=_cell_data(record.get("data")),
        )


@dataclass(frozen=True)
class Form:
    id: str
    name: str | None = None

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "Form":
        return cls(id=_require_id("form", record), name=record.get("name"))


@dataclass(frozen=True)
class Snapshot:
    """An immutable set of records that one assembly pass evaluates against."""

    columns: tuple[Column, ...] = ()
    layouts: tuple[Layout, ...] = ()
    conditions: tuple[Condition, ...] = ()
    rows: tuple[Row, ...] = ()
    cells: tuple[Cell, ...] = ()
    forms: tuple[Form, ...] = ()

    @classmethod
    def from_records(cls, records: Mapping[str, Iterable[Mapping[str, Any]]]) -> "Snapshot":
        """Build a snapshot from a mapping of record lists keyed by kind.

        Keys are ``columns``, ``layouts``, ``conditions``, ``rows``, ``cells``
        and ``forms``; any may be omitted. Forms not declared explicitly are
        derived from top-level layouts.
        """
        layouts = tuple(Layout.from_record(r) for r in records.get("layouts", ()))
        declared = [Form.from_record(r) for r in records.get("forms", ())]
        return cls(
            columns=tuple(Column.from_record(r) for r in records.get("columns", ())),
            layouts=layouts,
            conditions=tuple(Condition.from_record(r) for r in records.get("conditions", ())),
            rows=tuple(Row.from_record(r) for r in records.get("rows", ())),
            cells=tuple(Cell.from_record(r) for r in records.get("cells", ())),
            forms=merge_forms(declared, layouts),
        )


def merge_forms(declared: Iterable[Form], layouts: Iterable[Layout]) -> tuple[Form, ...]:
    """Union of declared Forms and top-level Layouts; a declared name wins."""
    forms: dict[str, Form] = {f.id: f for f in declared}
    for layout in layouts:
        if layout.layout_id is None and layout.id not in forms:
            forms[layout.id] = Form(id=layout.id, name=layout.name)
    return tuple(forms.values())

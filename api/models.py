"""Pydantic request/response models for the formlogic API."""

from typing import Any

from pydantic import BaseModel, Field


# ── Request models ──────────────────────────────────────


class CreateRowRequest(BaseModel):
    name: str | None = None
    id: str | None = None
    # Global rows apply to every form
    global_row: bool = False


class WriteCellRequest(BaseModel):
    column_id: str
    row_id: str | None = None
    data: str | None = None


class ApiResponseRequest(BaseModel):
    row_id: str | None = None
    request: Any = None
    response: Any


class ImportRecordsRequest(BaseModel):
    columns: list[dict[str, Any]] = Field(default_factory=list)
    layouts: list[dict[str, Any]] = Field(default_factory=list)
    forms: list[dict[str, Any]] = Field(default_factory=list)
    conditions: list[dict[str, Any]] = Field(default_factory=list)
    rows: list[dict[str, Any]] = Field(default_factory=list)
    cells: list[dict[str, Any]] = Field(default_factory=list)


# ── Response models ─────────────────────────────────────


class FormResponse(BaseModel):
    id: str
    name: str | None = None


class RowResponse(BaseModel):
    id: str
    name: str | None = None
    form_id: str | None = None
    created_at: str


class CellResponse(BaseModel):
    id: str
    column_id: str
    row_id: str | None = None
    form_id: str
    data: str | None = None
    created_at: str
    updated_at: str


class ColumnInfo(BaseModel):
    id: str
    name: str
    type: str
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")

    model_config = {"populate_by_name": True}


class ViewNodeResponse(BaseModel):
    layout_id: str
    name: str | None = None
    type: str
    schema_: dict[str, Any] = Field(default_factory=dict, alias="schema")
    column: ColumnInfo | None = None
    value: str | None = None
    has_value: bool
    visible: bool
    enabled: bool
    required: bool | None = None
    missing: bool
    fetchable: bool
    children: list["ViewNodeResponse"] = Field(default_factory=list)

    model_config = {"populate_by_name": True}


class FormViewResponse(BaseModel):
    form_id: str
    row_id: str | None = None
    root: ViewNodeResponse
    missing: list[str]
    problems: list[str]


class ApiRequestResponse(BaseModel):
    method: str
    url: str
    schema_: dict[str, Any] | None = Field(default=None, alias="schema")
    unresolved: list[str]

    model_config = {"populate_by_name": True}

"""REST route handlers for the formlogic API.

Reads load a fresh snapshot per request and run the evaluation engine over
it; writes go through db/store.py (source of truth for storage rules).
"""

import sqlite3
from typing import Any

from fastapi import APIRouter, Depends, HTTPException

from api.deps import get_assembler, get_config, get_db
from api.models import (
    ApiRequestResponse,
    ApiResponseRequest,
    CellResponse,
    CreateRowRequest,
    FormResponse,
    FormViewResponse,
    ImportRecordsRequest,
    RowResponse,
    WriteCellRequest,
)
from db.store import (
    RecordNotFound,
    create_row,
    get_cell,
    import_records,
    list_forms,
    list_rows,
    write_cell,
)
from formlogic.api_widget import SchemaMismatch, merge_response, prepare_request, validate_response
from formlogic.assembler import AssemblyError, FormAssembler
from formlogic.records import Column, InvalidRecord
from formlogic.references import ReferenceResolver
from formlogic.tree import CycleDetected, DanglingParent

router = APIRouter()


def _load(conn: sqlite3.Connection, form_id: str) -> FormAssembler:
    """Build an assembler for a form, converting engine errors to HTTP errors."""
    try:
        assembler = get_assembler(conn, form_id)
    except (CycleDetected, DanglingParent) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    if form_id not in assembler.layouts.roots:
        raise HTTPException(status_code=404, detail=f"Form '{form_id}' not found")
    return assembler


def _online(online: bool | None) -> bool:
    if online is not None:
        return online
    return bool(get_config().get("online", True))


def _view(
    conn: sqlite3.Connection, form_id: str, row_id: str | None, online: bool | None
) -> dict[str, Any]:
    assembler = _load(conn, form_id)
    try:
        view = assembler.assemble(form_id, row_id, online=_online(online))
    except AssemblyError as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    return view.to_dict()


# ── Form endpoints ─────────────────────────────────────────


@router.get("/forms", response_model=list[FormResponse])
def list_forms_endpoint(
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    """List all forms (top-level layouts)."""
    return list_forms(conn)


@router.get("/forms/{form_id}/view", response_model=FormViewResponse)
def form_view(
    form_id: str,
    online: bool | None = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Assemble the form-wide view (no row)."""
    return _view(conn, form_id, None, online)


# ── Row endpoints ──────────────────────────────────────────


@router.get("/forms/{form_id}/rows", response_model=list[RowResponse])
def list_rows_endpoint(
    form_id: str,
    conn: sqlite3.Connection = Depends(get_db),
) -> list[dict[str, Any]]:
    """List the rows of a form, including global rows."""
    row = conn.execute("SELECT id FROM forms WHERE id = ?", (form_id,)).fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail=f"Form '{form_id}' not found")
    return list_rows(conn, form_id)


@router.post("/forms/{form_id}/rows", status_code=201, response_model=RowResponse)
def create_row_endpoint(
    form_id: str,
    body: CreateRowRequest,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Register a new row for a form (or a global row)."""
    row = conn.execute("SELECT id FROM forms WHERE id = ?", (form_id,)).fetchone()
    if row is None:
        raise HTTPException(status_code=404, detail=f"Form '{form_id}' not found")
    try:
        return create_row(
            conn,
            form_id=None if body.global_row else form_id,
            name=body.name,
            row_id=body.id,
        )
    except sqlite3.IntegrityError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


@router.get("/forms/{form_id}/rows/{row_id}/view", response_model=FormViewResponse)
def row_view(
    form_id: str,
    row_id: str,
    online: bool | None = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Assemble the view of a form for one row."""
    return _view(conn, form_id, row_id, online)


# ── Cell endpoints ─────────────────────────────────────────


@router.put("/forms/{form_id}/cells", response_model=CellResponse)
def write_cell_endpoint(
    form_id: str,
    body: WriteCellRequest,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Store a cell value. The latest write for a (form, row, column) wins."""
    try:
        return write_cell(conn, form_id, body.column_id, body.data, row_id=body.row_id)
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InvalidRecord, sqlite3.IntegrityError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


# ── API widget endpoints ───────────────────────────────────


def _api_column(assembler: FormAssembler, column_id: str) -> Column:
    column = assembler.columns_by_id.get(column_id)
    if column is None:
        raise HTTPException(status_code=404, detail=f"Column '{column_id}' not found")
    return column


@router.get(
    "/forms/{form_id}/columns/{column_id}/request", response_model=ApiRequestResponse
)
def api_request(
    form_id: str,
    column_id: str,
    row_id: str | None = None,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Prepare the HTTP request for an api column in a row's context."""
    assembler = _load(conn, form_id)
    column = _api_column(assembler, column_id)
    if row_id is not None and row_id not in assembler.rows:
        raise HTTPException(status_code=404, detail=f"Row '{row_id}' not found")

    resolver = ReferenceResolver(assembler.columns_by_name, assembler.store, row_id, form_id)
    try:
        request = prepare_request(column, resolver)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e
    return {
        "method": request.method,
        "url": request.url,
        "schema": request.schema,
        "unresolved": list(request.unresolved),
    }


@router.put("/forms/{form_id}/columns/{column_id}/response", response_model=CellResponse)
def api_response(
    form_id: str,
    column_id: str,
    body: ApiResponseRequest,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, Any]:
    """Validate an api column's response and store it with its request."""
    assembler = _load(conn, form_id)
    column = _api_column(assembler, column_id)
    try:
        validate_response(column, body.response)
    except (SchemaMismatch, ValueError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    existing = get_cell(conn, form_id, column_id, body.row_id)
    data = merge_response(existing["data"] if existing else None, body.request, body.response)
    try:
        return write_cell(conn, form_id, column_id, data, row_id=body.row_id)
    except RecordNotFound as e:
        raise HTTPException(status_code=404, detail=str(e)) from e
    except (InvalidRecord, sqlite3.IntegrityError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e


# ── Record import ──────────────────────────────────────────


@router.post("/records", status_code=201)
def import_records_endpoint(
    body: ImportRecordsRequest,
    conn: sqlite3.Connection = Depends(get_db),
) -> dict[str, int]:
    """Validate and store a batch of design-time and fill-time records."""
    try:
        return import_records(conn, body.model_dump())
    except (InvalidRecord, sqlite3.IntegrityError) as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

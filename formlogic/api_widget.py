"""Helpers for ``api`` Columns.

The HTTP call itself belongs to the client application. This module gives it
the request to make and checks what comes back:

    - prepare_request() fills the URL template from the current row's values
    - validate_response() checks a payload against ``schema.response.schema``
    - merge_response() produces the Cell data to store afterwards
"""

import json
import logging
from dataclasses import dataclass
from typing import Any

import jsonschema

from formlogic.records import ApiSchema, Column, ColumnType
from formlogic.references import (
    ReferenceResolver,
    UnresolvedReference,
    find_references,
    interpolate,
)
from formlogic.values import decode

logger = logging.getLogger(__name__)


class SchemaMismatch(Exception):
    """Raised when an API response does not match the Column's response schema."""

    def __init__(self, column_id: str, message: str) -> None:
        super().__init__(f"Response for column '{column_id}' does not match its schema: {message}")
        self.column_id = column_id


@dataclass(frozen=True)
class ApiRequest:
    method: str
    url: str
    schema: dict[str, Any] | None = None
    unresolved: tuple[str, ...] = ()


def _api_schema(column: Column) -> ApiSchema:
    if column.type is not ColumnType.API:
        raise ValueError(f"Column '{column.id}' is a '{column.type.value}' column, not 'api'")
    return ApiSchema.model_validate(column.schema)


def prepare_request(column: Column, resolver: ReferenceResolver) -> ApiRequest:
    """Build the request for an api Column in the resolver's (Row, Form).

    Placeholders that cannot be resolved become blank segments; their tokens
    are reported in ``unresolved`` so the caller can decide whether to send.
    """
    schema = _api_schema(column)
    template = schema.request.url

    unresolved = []
    for reference in find_references(template):
        try:
            resolver.resolve(reference)
        except UnresolvedReference as e:
            logger.debug("Column '%s' URL: %s", column.id, e)
            unresolved.append(reference.token)

    return ApiRequest(
        method=schema.request.method,
        url=interpolate(template, resolver, on_missing="blank"),
        schema=schema.request.schema_,
        unresolved=tuple(unresolved),
    )


def validate_response(column: Column, payload: Any) -> None:
    """Check a response payload against the Column's declared response schema.

    Raises:
        SchemaMismatch: If the payload fails validation.
    """
    schema = _api_schema(column).response.schema_
    if schema is None:
        return
    try:
        jsonschema.validate(payload, schema)
    except jsonschema.ValidationError as e:
        raise SchemaMismatch(column.id, e.message) from e


def merge_response(data: str | None, request: Any, response: Any) -> str:
    """Return Cell data with ``request``/``response`` replaced, other keys kept."""
    current = decode(data) if data is not None else {}
    if not isinstance(current, dict):
        current = {}
    current["request"] = request
    current["response"] = response
    return json.dumps(current)

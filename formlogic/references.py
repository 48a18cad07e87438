"""Placeholder parsing and resolution.

Two forms address a Column by its unique ``name`` (never its id):

    #name#field       bare, the whole string is the reference
    ${#name#field}    interpolated, embedded in a template such as a URL

``field`` may be empty (use the value as stored) or a dotted path into the
JSON-decoded value, e.g. ``#site-gps#latitude`` or
``${#lookup#response.items.0.id}``.
"""

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

from formlogic.records import Column
from formlogic.values import NoValue, ValueStore, decode, to_text

logger = logging.getLogger(__name__)

_INTERPOLATED = re.compile(r"\$\{#([^#{}\s]+)#([^#{}\s]*)\}")
_BARE = re.compile(r"#([^#{}\s]+)#([^#{}\s]*)")

MissingPolicy = Literal["raise", "blank", "keep"]


class UnresolvedReference(Exception):
    """Raised when a placeholder names no Column, has no value, or no such sub-key."""

    def __init__(self, reference: "Reference", reason: str) -> None:
        super().__init__(f"Unresolved reference {reference.token}: {reason}")
        self.reference = reference
        self.reason = reason


@dataclass(frozen=True)
class Reference:
    name: str
    field: str = ""

    @property
    def path(self) -> list[str]:
        return self.field.split(".") if self.field else []

    @property
    def token(self) -> str:
        return f"#{self.name}#{self.field}"


def parse_reference(text: str | None) -> Reference | None:
    """Return the Reference if the whole string is one placeholder, else None."""
    if not text:
        return None
    stripped = text.strip()
    match = _INTERPOLATED.fullmatch(stripped) or _BARE.fullmatch(stripped)
    if match is None:
        return None
    return Reference(name=match.group(1), field=match.group(2))


def find_references(template: str) -> list[Reference]:
    """Return every interpolated placeholder in a template, in order."""
    return [Reference(m.group(1), m.group(2)) for m in _INTERPOLATED.finditer(template)]


def has_placeholders(text: str | None) -> bool:
    return bool(text) and _INTERPOLATED.search(text) is not None


class ReferenceResolver:
    """Resolves placeholders against one (Row, Form) context of a Value Store."""

    def __init__(
        self,
        columns_by_name: Mapping[str, Column],
        store: ValueStore,
        row_id: str | None,
        form_id: str,
    ) -> None:
        self._columns = columns_by_name
        self._store = store
        self.row_id = row_id
        self.form_id = form_id

    def resolve(self, reference: Reference) -> Any:
        """Return the decoded value a reference points at.

        Raises:
            UnresolvedReference: Unknown Column name, NoValue, or missing sub-key.
        """
        column = self._columns.get(reference.name)
        if column is None:
            raise UnresolvedReference(reference, "no column with that name")

        raw = self._store.resolve(column.id, self.row_id, self.form_id)
        if raw is NoValue:
            raise UnresolvedReference(reference, "no value")

        value = decode(raw)
        for segment in reference.path:
            if isinstance(value, Mapping) and segment in value:
                value = value[segment]
            elif isinstance(value, list) and segment.isdigit() and int(segment) < len(value):
                value = value[int(segment)]
            else:
                raise UnresolvedReference(reference, f"no field '{segment}'")
        return value

    def resolve_text(self, reference: Reference) -> str:
        return to_text(self.resolve(reference))


def interpolate(
    template: str,
    resolver: ReferenceResolver,
    on_missing: MissingPolicy = "raise",
) -> str:
    """Substitute every ``${#name#field}`` in a template.

    Args:
        template: Text containing interpolated placeholders.
        resolver: Resolver bound to the current (Row, Form).
        on_missing: What an unresolved placeholder becomes: ``"raise"``
            propagates UnresolvedReference, ``"blank"`` substitutes an empty
            string, ``"keep"`` leaves the placeholder text in place.
    """

    def _replace(match: re.Match[str]) -> str:
        reference = Reference(match.group(1), match.group(2))
        try:
            return resolver.resolve_text(reference)
        except UnresolvedReference as e:
            if on_missing == "raise":
                raise
            logger.debug("%s; substituting per '%s' policy", e, on_missing)
            return "" if on_missing == "blank" else match.group(0)

    return _INTERPOLATED.sub(_replace, template)

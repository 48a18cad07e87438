"""Recursive evaluation of Condition trees for one (Row, Form) context.

Evaluation rules:
    - and/or evaluate children in sibling order and short-circuit
    - and() of no children is true, or() of no children is false
    - Comparisons compare numerically when both sides parse as finite
      numbers, otherwise as case-sensitive strings
    - greaterThan/lessThan with a non-numeric side are false
    - contains/startsWith/endsWith are always string operations
    - Missing data never triggers a condition: no left column, an unknown
      column, no value, or an unresolved reference makes a leaf false
    - A node on (or below) a parent-pointer cycle is false

A node's boolean and its declared effect are separate: any node that
declares an effect and target contributes a ConditionResult, whether it is a
root or an operand of some parent.
"""

import logging
import math
from collections.abc import Iterator, Mapping
from dataclasses import dataclass

from formlogic.records import Column, Condition, ConditionType, Effect
from formlogic.references import (
    ReferenceResolver,
    UnresolvedReference,
    has_placeholders,
    interpolate,
    parse_reference,
)
from formlogic.tree import Forest
from formlogic.values import NoValue, ValueStore, decode

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConditionResult:
    condition_id: str
    result: bool
    effect: Effect
    effect_layout_id: str


def _to_number(text: str) -> float | None:
    try:
        number = float(text)
    except ValueError:
        return None
    return number if math.isfinite(number) else None


def compare(condition_type: ConditionType, left: str, right: str) -> bool:
    """Apply a leaf comparison to two string operands."""
    if condition_type is ConditionType.CONTAINS:
        return right in left
    if condition_type is ConditionType.STARTS_WITH:
        return left.startswith(right)
    if condition_type is ConditionType.ENDS_WITH:
        return left.endswith(right)

    left_num = _to_number(left)
    right_num = _to_number(right)
    numeric = left_num is not None and right_num is not None

    if condition_type is ConditionType.EQUALS:
        return left_num == right_num if numeric else left == right
    if condition_type is ConditionType.NOT_EQUALS:
        return left_num != right_num if numeric else left != right
    if condition_type is ConditionType.GREATER_THAN:
        return numeric and left_num > right_num
    if condition_type is ConditionType.LESS_THAN:
        return numeric and left_num < right_num
    raise ValueError(f"'{condition_type.value}' is not a comparison")


class ConditionEvaluator:
    """Evaluates Conditions against one (Row, Form) view of the Value Store."""

    def __init__(
        self,
        forest: Forest[Condition],
        columns_by_id: Mapping[str, Column],
        store: ValueStore,
        resolver: ReferenceResolver,
    ) -> None:
        self._forest = forest
        self._columns = columns_by_id
        self._store = store
        self._resolver = resolver

    def evaluate(self, condition_id: str) -> bool:
        """Evaluate one Condition (and, for and/or, its subtree) to a boolean.

        Raises:
            KeyError: If condition_id is not in the forest.
        """
        condition = self._forest.nodes[condition_id]
        if condition_id in self._forest.excluded:
            logger.debug("Condition '%s' is on a cycle; evaluating as false", condition_id)
            return False

        if condition.type is ConditionType.AND:
            return all(self.evaluate(c.id) for c in self._forest.children(condition_id))
        if condition.type is ConditionType.OR:
            return any(self.evaluate(c.id) for c in self._forest.children(condition_id))

        left = self._left_operand(condition)
        if left is None:
            return False
        right = self._right_operand(condition)
        if right is None:
            return False

        result = compare(condition.type, left, right)
        logger.debug(
            "Condition '%s': %s(%r, %r) -> %s",
            condition_id,
            condition.type.value,
            left,
            right,
            result,
        )
        return result

    def result(self, condition: Condition) -> ConditionResult:
        """Evaluate an effect-declaring Condition into a ConditionResult."""
        if not condition.declares_effect:
            raise ValueError(f"Condition '{condition.id}' declares no effect")
        return ConditionResult(
            condition_id=condition.id,
            result=self.evaluate(condition.id),
            effect=condition.effect,
            effect_layout_id=condition.effect_layout_id,
        )

    def evaluate_all(self) -> list[ConditionResult]:
        """Results for every effect-declaring Condition, in forest order."""
        return [self.result(c) for c in self._effect_conditions()]

    def _effect_conditions(self) -> Iterator[Condition]:
        for _, condition in self._forest.walk():
            if condition.declares_effect:
                yield condition

    # ── Operands ─────────────────────────────────────────

    def _left_operand(self, condition: Condition) -> str | None:
        if condition.value_column_id is None:
            return None
        column = self._columns.get(condition.value_column_id)
        if column is None:
            logger.debug(
                "Condition '%s' compares unknown column '%s'",
                condition.id,
                condition.value_column_id,
            )
            return None

        raw = self._store.resolve(column.id, self._resolver.row_id, self._resolver.form_id)
        if raw is NoValue:
            return None
        # Only JSON strings are unquoted; other data compares as stored
        value = decode(raw)
        if not isinstance(value, str):
            return raw
        return self._resolve_placeholders(condition, value)

    def _right_operand(self, condition: Condition) -> str | None:
        if condition.value is None:
            return ""
        return self._resolve_placeholders(condition, condition.value)

    def _resolve_placeholders(self, condition: Condition, text: str) -> str | None:
        """Resolve any placeholders in an operand; None if one is unresolved."""
        try:
            reference = parse_reference(text)
            if reference is not None:
                return self._resolver.resolve_text(reference)
            if has_placeholders(text):
                return interpolate(text, self._resolver, on_missing="raise")
        except UnresolvedReference as e:
            logger.debug("Condition '%s': %s", condition.id, e)
            return None
        return text

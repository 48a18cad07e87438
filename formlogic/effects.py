"""Reduction of Condition effects into one final state per Layout.

Precedence (most restrictive wins):
    - hide beats show, disable beats enable
    - require is additive: any true require makes the field required
    - A Layout controlled by a show condition is hidden unless one is true;
      likewise a Layout controlled by an enable condition is disabled
    - With no condition on an axis, the Layout's defaults apply: visible,
      enabled, and its static tri-state ``required``

The reduction works on sets of effects, so the order in which Conditions
are evaluated never changes the outcome.
"""

from collections.abc import Collection, Iterable, Mapping, Sequence
from dataclasses import dataclass

from formlogic.conditions import ConditionEvaluator, ConditionResult
from formlogic.records import Condition, Effect, Layout


@dataclass(frozen=True)
class FieldState:
    visible: bool = True
    enabled: bool = True
    required: bool | None = False


def reduce_effects(
    layout: Layout,
    targeted: Collection[Effect],
    triggered: Collection[Effect],
) -> FieldState:
    """Combine the effects on one Layout into its final state.

    Args:
        layout: The target Layout, for its static ``required`` flag.
        targeted: Every effect any Condition declares on this Layout.
        triggered: The effects whose Condition evaluated true.
    """
    visible = Effect.HIDE not in triggered and (
        Effect.SHOW in triggered or Effect.SHOW not in targeted
    )
    enabled = Effect.DISABLE not in triggered and (
        Effect.ENABLE in triggered or Effect.ENABLE not in targeted
    )
    required = True if Effect.REQUIRE in triggered else layout.required
    return FieldState(visible=visible, enabled=enabled, required=required)


def index_targets(conditions: Iterable[Condition]) -> dict[str, list[Condition]]:
    """Group effect-declaring Conditions by the Layout they target."""
    targets: dict[str, list[Condition]] = {}
    for condition in conditions:
        if condition.declares_effect:
            targets.setdefault(condition.effect_layout_id, []).append(condition)
    return targets


class EffectResolver:
    """Resolves final Layout states, evaluating only the Conditions asked for."""

    def __init__(
        self,
        evaluator: ConditionEvaluator,
        targets: Mapping[str, Sequence[Condition]],
    ) -> None:
        self._evaluator = evaluator
        self._targets = targets

    def results_for(self, layout_id: str) -> list[ConditionResult]:
        return [self._evaluator.result(c) for c in self._targets.get(layout_id, ())]

    def state_for(self, layout: Layout) -> FieldState:
        results = self.results_for(layout.id)
        targeted = {r.effect for r in results}
        triggered = {r.effect for r in results if r.result}
        return reduce_effects(layout, targeted, triggered)

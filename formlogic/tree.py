"""Forest reconstruction from flat parent-pointer records.

Layouts (via ``LayoutId``) and Conditions (via ``parentConditionId``) are
stored flat. build_forest() loads them into an id-indexed mapping once, then
derives ordered children lists and roots in a single bounded pass.

Ordering rules:
    - Siblings sort by ``order`` ascending
    - A null ``order`` sorts after every ordered sibling
    - Ties keep insertion order (stable sort)

Problems:
    - DanglingParent: parent id not in the input. Lenient mode treats the
      node as a root and logs a warning.
    - CycleDetected: parent pointers loop. Lenient mode excludes the cycle
      and everything below it, and logs a warning.

Import build_forest() from here. Do not re-traverse parent pointers elsewhere.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from typing import Any, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CycleDetected(Exception):
    """Raised when following parent pointers revisits a node on the same path."""

    def __init__(self, path: list[str]) -> None:
        super().__init__(f"Cycle detected: {' -> '.join(path)}")
        self.path = path


class DanglingParent(Exception):
    """Raised when a node's parent id does not exist in the input set."""

    def __init__(self, node_id: str, parent_id: str) -> None:
        super().__init__(f"Node '{node_id}' references missing parent '{parent_id}'")
        self.node_id = node_id
        self.parent_id = parent_id


@dataclass
class Forest(Generic[T]):
    """Ordered forest over a set of records, indexed by id."""

    nodes: dict[str, T]
    roots: list[str]
    excluded: set[str] = field(default_factory=set)
    problems: list[Exception] = field(default_factory=list)
    child_ids: dict[str, list[str]] = field(default_factory=dict)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self.nodes

    def get(self, node_id: str) -> T | None:
        return self.nodes.get(node_id)

    def children(self, node_id: str) -> list[T]:
        """Ordered direct children of a node (empty for unknown ids)."""
        return [self.nodes[c] for c in self.child_ids.get(node_id, [])]

    def root_nodes(self) -> list[T]:
        return [self.nodes[r] for r in self.roots]

    def walk(self, start: str | None = None) -> Iterator[tuple[int, T]]:
        """Depth-first pre-order traversal yielding (depth, node).

        Starts from every root when start is None. Excluded nodes are never
        yielded.
        """
        if start is None:
            stack = [(0, r) for r in reversed(self.roots)]
        elif start in self.nodes and start not in self.excluded:
            stack = [(0, start)]
        else:
            return

        while stack:
            depth, node_id = stack.pop()
            yield depth, self.nodes[node_id]
            for child_id in reversed(self.child_ids.get(node_id, [])):
                if child_id not in self.excluded:
                    stack.append((depth + 1, child_id))


def _sort_key(order: Any) -> tuple[bool, Any]:
    return (order is None, 0 if order is None else order)


def build_forest(
    items: Iterable[T],
    parent_of: Callable[[T], str | None],
    order_of: Callable[[T], Any] = lambda item: getattr(item, "order", None),
    id_of: Callable[[T], str] = lambda item: getattr(item, "id"),
    *,
    strict: bool = False,
) -> Forest[T]:
    """Build an ordered forest from records with nullable parent pointers.

    Args:
        items: Records in insertion order.
        parent_of: Returns a record's parent id, or None for a root.
        order_of: Returns a record's sibling sort key, or None to append.
        id_of: Returns a record's id.
        strict: Raise on the first problem instead of recovering.

    Returns:
        Forest with every input id present exactly once in ``nodes``.

    Raises:
        DanglingParent: In strict mode, for a parent id missing from items.
        CycleDetected: In strict mode, for a parent-pointer loop.
    """
    nodes: dict[str, T] = {}
    for item in items:
        node_id = id_of(item)
        if node_id in nodes:
            logger.warning("Duplicate id '%s'; the later record replaces it", node_id)
            del nodes[node_id]
        nodes[node_id] = item

    problems: list[Exception] = []

    # Parent pointers after dangling references are cut
    parents: dict[str, str | None] = {}
    for node_id, node in nodes.items():
        parent_id = parent_of(node)
        if parent_id is not None and parent_id not in nodes:
            problem = DanglingParent(node_id, parent_id)
            if strict:
                raise problem
            logger.warning("%s; treating it as a root", problem)
            problems.append(problem)
            parent_id = None
        parents[node_id] = parent_id

    excluded = _find_excluded(parents, problems, strict)

    child_ids: dict[str, list[str]] = {node_id: [] for node_id in nodes}
    roots: list[str] = []
    for node_id, parent_id in parents.items():
        if parent_id is None:
            roots.append(node_id)
        else:
            child_ids[parent_id].append(node_id)

    for siblings in child_ids.values():
        siblings.sort(key=lambda c: _sort_key(order_of(nodes[c])))
    roots.sort(key=lambda r: _sort_key(order_of(nodes[r])))

    return Forest(
        nodes=nodes,
        roots=roots,
        excluded=excluded,
        problems=problems,
        child_ids=child_ids,
    )


_UNSEEN, _ON_PATH, _ROOTED, _CYCLIC = range(4)


def _find_excluded(
    parents: dict[str, str | None], problems: list[Exception], strict: bool
) -> set[str]:
    """Return ids that sit on a cycle or below one.

    Each node's parent chain is followed at most once overall: a walk stops
    at the first node whose outcome is already known.
    """
    state = dict.fromkeys(parents, _UNSEEN)
    excluded: set[str] = set()

    for start in parents:
        if state[start] != _UNSEEN:
            continue

        path: list[str] = []
        current = start
        while current is not None and state[current] == _UNSEEN:
            state[current] = _ON_PATH
            path.append(current)
            current = parents[current]

        if current is None or state[current] == _ROOTED:
            outcome = _ROOTED
        elif state[current] == _ON_PATH:
            cycle = path[path.index(current):] + [current]
            problem = CycleDetected(cycle)
            if strict:
                raise problem
            logger.warning("%s; excluding the cyclic branch", problem)
            problems.append(problem)
            outcome = _CYCLIC
        else:
            outcome = _CYCLIC

        for node_id in path:
            state[node_id] = outcome
            if outcome == _CYCLIC:
                excluded.add(node_id)

    return excluded

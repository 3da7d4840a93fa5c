"""
Step graph: a flat arena of steps keyed by id, with scope membership
(top-level rail, container body, branch/parallel lane) expressed through
``parentId`` and lane indices and kept in an index rebuilt on every mutation.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from steprail.errors import DefinitionError
from steprail.schema.models import LaneKind, StepBase


@dataclass(frozen=True)
class ScopeKey:
    """Identifies one ordered sibling list."""

    parent_id: Optional[str] = None
    lane_kind: Optional[LaneKind] = None
    lane_index: Optional[int] = None

    @classmethod
    def of(cls, step: StepBase) -> "ScopeKey":
        lane = step.lane
        if lane is None:
            return cls(parent_id=step.parent_id)
        return cls(parent_id=step.parent_id, lane_kind=lane[0], lane_index=lane[1])

    def describe(self) -> str:
        if self.parent_id is None:
            return "top-level rail"
        if self.lane_kind is None:
            return f"body of '{self.parent_id}'"
        return f"{self.lane_kind.value} lane {self.lane_index} of '{self.parent_id}'"


TOP_LEVEL = ScopeKey()


def _sort_key(step: StepBase) -> Tuple[int, str]:
    return step.list_index, step.id


class StepGraph:
    """
    Structural queries and order-preserving mutations over a set of steps.

    Ordering inside every scope is ascending ``list_index``. Loaded indices
    are kept as given so ``validate`` can report duplicates; any mutation
    renumbers every scope to a dense ``0..n-1`` sequence.
    """

    def __init__(self, steps: Iterable[StepBase] = ()) -> None:
        self._steps: Dict[str, StepBase] = {}
        for step in steps:
            if step.id in self._steps:
                raise DefinitionError(f"Duplicate step id '{step.id}'")
            self._steps[step.id] = step
        self._scopes: Dict[ScopeKey, List[str]] = {}
        self._rebuild_index()

    # ------------------------------------------------------------------
    # Basic access
    # ------------------------------------------------------------------
    def __contains__(self, step_id: object) -> bool:
        return step_id in self._steps

    def __iter__(self) -> Iterator[StepBase]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    def get(self, step_id: str) -> StepBase:
        try:
            return self._steps[step_id]
        except KeyError as exc:
            raise DefinitionError(f"Unknown step '{step_id}'") from exc

    def maybe_get(self, step_id: str) -> Optional[StepBase]:
        return self._steps.get(step_id)

    def to_list(self) -> List[StepBase]:
        return list(self._steps.values())

    # ------------------------------------------------------------------
    # Scope queries
    # ------------------------------------------------------------------
    def scope(self, key: ScopeKey) -> List[StepBase]:
        return [self._steps[step_id] for step_id in self._scopes.get(key, [])]

    def top_level_steps(self) -> List[StepBase]:
        return self.scope(TOP_LEVEL)

    def children_of(self, container_id: str) -> List[StepBase]:
        return self.scope(ScopeKey(parent_id=container_id))

    def lane_children_of(self, container_id: str, lane_index: int, lane_kind: LaneKind | str) -> List[StepBase]:
        return self.scope(ScopeKey(container_id, LaneKind(lane_kind), lane_index))

    def all_children_of(self, step_id: str) -> List[StepBase]:
        """Direct children across the body and every lane."""
        return [step for step in self._steps.values() if step.parent_id == step_id]

    def parent_of(self, step_id: str) -> Optional[StepBase]:
        parent_id = self.get(step_id).parent_id
        return self._steps.get(parent_id) if parent_id else None

    def ancestors_of(self, step_id: str) -> List[StepBase]:
        """Enclosing steps, innermost first. Stops at a cycle or dangling parent."""
        ancestors: List[StepBase] = []
        seen = {step_id}
        current = self.get(step_id)
        while current.parent_id and current.parent_id in self._steps:
            if current.parent_id in seen:
                break
            seen.add(current.parent_id)
            current = self._steps[current.parent_id]
            ancestors.append(current)
        return ancestors

    def descendants_of(self, step_id: str) -> List[StepBase]:
        found: List[StepBase] = []
        pending = [step_id]
        seen = {step_id}
        while pending:
            current = pending.pop()
            for child in self.all_children_of(current):
                if child.id in seen:
                    continue
                seen.add(child.id)
                found.append(child)
                pending.append(child.id)
        return found

    def predecessors_of(self, step_id: str) -> List[StepBase]:
        """
        Steps guaranteed to have produced output before ``step_id`` runs.

        These are the earlier siblings in each enclosing scope, walking
        outwards, plus every enclosing loop/foreach container (its output is
        the per-iteration frame while the body runs). Steps nested inside an
        earlier sibling are excluded: a lane that was not taken never writes.
        Returned in run order, without duplicates.
        """

        step = self.get(step_id)
        layers: List[List[StepBase]] = []
        current = step
        visited = {step.id}
        while True:
            siblings = self.scope(ScopeKey.of(current))
            earlier = [s for s in siblings if _sort_key(s) < _sort_key(current)]
            parent = self._steps.get(current.parent_id) if current.parent_id else None
            if parent is not None and parent.is_container:
                earlier = [parent] + earlier
            layers.append(earlier)
            if parent is None or parent.id in visited:
                break
            visited.add(parent.id)
            current = parent
        ordered: List[StepBase] = []
        for layer in reversed(layers):
            ordered.extend(layer)
        return ordered

    def run_order(self) -> List[StepBase]:
        """Every step reachable from the rail, depth-first in run order."""
        ordered: List[StepBase] = []
        visited: set[str] = set()

        def visit(steps: List[StepBase]) -> None:
            for step in steps:
                if step.id in visited:
                    continue
                visited.add(step.id)
                ordered.append(step)
                if step.is_container:
                    visit(self.children_of(step.id))
                elif step.lane_kind is not None:
                    for lane_index in range(getattr(step, "lane_count", 0)):
                        visit(self.lane_children_of(step.id, lane_index, step.lane_kind))

        visit(self.top_level_steps())
        return ordered

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------
    def validate(self) -> List[str]:
        errors: List[str] = []

        for step in self._steps.values():
            if step.parent_id is None:
                continue
            parent = self._steps.get(step.parent_id)
            if parent is None:
                errors.append(f"Step '{step.id}' references missing parent '{step.parent_id}'")
                continue
            errors.extend(self._membership_errors(step, parent))

        errors.extend(self._cycle_errors())

        for key, step_ids in self._scopes.items():
            indices = [self._steps[step_id].list_index for step_id in step_ids]
            duplicates = sorted({index for index in indices if indices.count(index) > 1})
            for index in duplicates:
                errors.append(f"Duplicate listIndex {index} in {key.describe()}")
        return errors

    def assert_valid(self) -> None:
        errors = self.validate()
        if errors:
            raise DefinitionError(errors)

    def _membership_errors(self, step: StepBase, parent: StepBase) -> List[str]:
        lane = step.lane
        if parent.is_container:
            if lane is not None:
                return [f"Step '{step.id}' is in container '{parent.id}' and must not carry a lane index"]
            return []
        if parent.lane_kind is None:
            return [f"Step '{step.id}' has parent '{parent.id}' which is not a container, branch or parallel step"]
        if lane is None:
            return [f"Step '{step.id}' in '{parent.id}' is missing its {parent.lane_kind.value} lane index"]
        kind, index = lane
        if kind != parent.lane_kind:
            return [f"Step '{step.id}' uses a {kind.value} lane index but parent '{parent.id}' is a {parent.lane_kind.value} step"]
        lane_count = getattr(parent, "lane_count", 0)
        if index >= lane_count:
            return [f"Step '{step.id}' lane index {index} is out of range for '{parent.id}' ({lane_count} lanes)"]
        return []

    def _cycle_errors(self) -> List[str]:
        errors: List[str] = []
        reported: set[str] = set()
        for step in self._steps.values():
            seen: List[str] = []
            current: Optional[StepBase] = step
            while current is not None and current.parent_id:
                if current.id in seen:
                    cycle = seen[seen.index(current.id):]
                    key = min(cycle)
                    if key not in reported:
                        reported.add(key)
                        errors.append("Parent cycle detected: " + " -> ".join(cycle + [current.id]))
                    break
                seen.append(current.id)
                current = self._steps.get(current.parent_id)
        return errors

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def insert(
        self,
        step: StepBase,
        *,
        parent_id: Optional[str] = None,
        lane_index: Optional[int] = None,
        index: Optional[int] = None,
    ) -> StepBase:
        """Add ``step`` to a scope at ``index`` (appended when omitted)."""
        if step.id in self._steps:
            raise DefinitionError(f"Duplicate step id '{step.id}'")
        placed = self._place(step, parent_id, lane_index)
        key = ScopeKey.of(placed)
        order = list(self._scopes.get(key, []))
        order.insert(self._clamp(index, len(order)), placed.id)
        self._steps[placed.id] = placed
        self._renumber(key, order)
        self._reindex()
        return self._steps[placed.id]

    def move(
        self,
        step_id: str,
        *,
        parent_id: Optional[str] = None,
        lane_index: Optional[int] = None,
        index: Optional[int] = None,
    ) -> StepBase:
        """Reparent ``step_id`` into another scope (or reposition it in its own)."""
        step = self.get(step_id)
        if parent_id is not None:
            if parent_id == step_id or parent_id in {d.id for d in self.descendants_of(step_id)}:
                raise DefinitionError(f"Cannot move '{step_id}' into itself or one of its descendants")
        old_key = ScopeKey.of(step)
        placed = self._place(step, parent_id, lane_index)
        new_key = ScopeKey.of(placed)

        old_order = [sid for sid in self._scopes.get(old_key, []) if sid != step_id]
        new_order = old_order if new_key == old_key else list(self._scopes.get(new_key, []))
        new_order.insert(self._clamp(index, len(new_order)), step_id)

        self._steps[step_id] = placed
        if new_key != old_key:
            self._renumber(old_key, old_order)
        self._renumber(new_key, new_order)
        self._reindex()
        return self._steps[step_id]

    def reorder(self, step_id: str, new_index: int) -> StepBase:
        step = self.get(step_id)
        lane = step.lane
        return self.move(
            step_id,
            parent_id=step.parent_id,
            lane_index=lane[1] if lane else None,
            index=new_index,
        )

    def remove(self, step_id: str) -> StepBase:
        """Remove a step. Containers and lane owners must be emptied first."""
        step = self.get(step_id)
        children = self.all_children_of(step_id)
        if children:
            names = ", ".join(child.id for child in children)
            raise DefinitionError(f"Cannot remove '{step_id}': it still contains steps ({names})")
        key = ScopeKey.of(step)
        del self._steps[step_id]
        self._renumber(key, [sid for sid in self._scopes.get(key, []) if sid != step_id])
        self._reindex()
        return step

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _place(self, step: StepBase, parent_id: Optional[str], lane_index: Optional[int]) -> StepBase:
        update = {
            "parent_id": parent_id,
            "branch_condition_index": None,
            "parallel_lane_index": None,
        }
        if parent_id is None:
            if lane_index is not None:
                raise DefinitionError("A lane index requires a parent step")
            return step.model_copy(update=update)

        parent = self.get(parent_id)
        if parent.is_container:
            if lane_index is not None:
                raise DefinitionError(f"'{parent_id}' is a container and has no lanes")
        elif parent.lane_kind is not None:
            lane_count = getattr(parent, "lane_count", 0)
            if lane_index is None or not 0 <= lane_index < lane_count:
                raise DefinitionError(
                    f"Lane index {lane_index} is out of range for '{parent_id}' ({lane_count} lanes)"
                )
            field = "branch_condition_index" if parent.lane_kind == LaneKind.branch else "parallel_lane_index"
            update[field] = lane_index
        else:
            raise DefinitionError(f"'{parent_id}' cannot hold child steps")
        return step.model_copy(update=update)

    def _renumber(self, key: ScopeKey, order: List[str]) -> None:
        for position, step_id in enumerate(order):
            step = self._steps[step_id]
            if step.list_index != position:
                self._steps[step_id] = step.model_copy(update={"list_index": position})
        self._scopes[key] = order

    def _rebuild_index(self) -> None:
        scopes: Dict[ScopeKey, List[StepBase]] = defaultdict(list)
        for step in self._steps.values():
            scopes[ScopeKey.of(step)].append(step)
        self._scopes = {
            key: [step.id for step in sorted(members, key=_sort_key)]
            for key, members in scopes.items()
        }

    def _reindex(self) -> None:
        """Rebuild the index and make every scope dense, not only the mutated ones."""
        self._rebuild_index()
        for key, order in list(self._scopes.items()):
            self._renumber(key, order)

    @staticmethod
    def _clamp(index: Optional[int], size: int) -> int:
        if index is None:
            return size
        return max(0, min(index, size))

"""
Dependency resolution over a task snapshot.

Authors write dependencies as short references (``<basename>:<line>``).
ReferenceIndex maps those to task ids once per snapshot; every query here
accepts a prebuilt index and builds one when given None. The index is
rebuilt whole whenever the snapshot changes, never patched.

A reference that does not resolve always counts as blocking.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Set

from vault_tasks.models.task import DependencyStatus, Task

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class DependencyLink:
    source_id: str
    target_id: str
    kind: str


class ReferenceIndex:
    """
    Short reference → task id lookup, plus the reverse ``blocked_by`` edges.

    When two documents share a basename the first path in sort order owns
    the short reference; the full id still resolves both.
    """

    def __init__(self, tasks: Iterable[Task]) -> None:
        self.tasks: Dict[str, Task] = {}
        self._refs: Dict[str, str] = {}
        self._dependents: Dict[str, List[str]] = {}

        ordered = sorted(tasks, key=lambda t: (t.path, t.line_index))
        for task in ordered:
            self.tasks[task.id] = task
            self._refs[task.id] = task.id
            if task.short_ref in self._refs and self._refs[task.short_ref] != task.id:
                log.debug("Short reference %s is ambiguous; keeping %s", task.short_ref, self._refs[task.short_ref])
                continue
            self._refs[task.short_ref] = task.id

        for task in ordered:
            for ref in task.blocked_by:
                blocker = self._refs.get(ref)
                if blocker and blocker != task.id:
                    dependents = self._dependents.setdefault(blocker, [])
                    if task.id not in dependents:
                        dependents.append(task.id)

    def resolve(self, ref: str) -> Optional[str]:
        return self._refs.get(ref.strip())

    def get(self, task_id: str) -> Optional[Task]:
        return self.tasks.get(task_id)

    def dependents_of(self, task_id: str) -> List[str]:
        """Ids of tasks whose ``blocked_by`` resolves to ``task_id``."""
        return list(self._dependents.get(task_id, ()))

    def blocked_ids(self, task: Task) -> List[str]:
        """Resolved explicit ``blocks`` targets plus reverse ``blocked_by`` edges."""
        result: List[str] = []
        for ref in task.blocks:
            target = self.resolve(ref)
            if target and target not in result:
                result.append(target)
        for dependent in self.dependents_of(task.id):
            if dependent not in result:
                result.append(dependent)
        return result

    def __len__(self) -> int:
        return len(self.tasks)


def build_reference_index(tasks: Iterable[Task]) -> ReferenceIndex:
    return ReferenceIndex(tasks)


def _index(all_tasks: Iterable[Task], index: Optional[ReferenceIndex]) -> ReferenceIndex:
    return index if index is not None else ReferenceIndex(all_tasks)


# ---------------------------------------------------------------------------
# Status
# ---------------------------------------------------------------------------

def resolve_status(
    task: Task,
    all_tasks: Iterable[Task],
    index: Optional[ReferenceIndex] = None,
) -> DependencyStatus:
    idx = _index(all_tasks, index)

    blocked_by: List[str] = []
    unresolved: List[str] = []
    for ref in task.blocked_by:
        blocker_id = idx.resolve(ref)
        if blocker_id is None:
            unresolved.append(ref)
            blocked_by.append(ref)
            continue
        blocker = idx.get(blocker_id)
        if blocker is not None and not blocker.completed and blocker_id not in blocked_by:
            blocked_by.append(blocker_id)

    blocks: List[str] = []
    for ref in task.blocks:
        target = idx.resolve(ref)
        if target is None:
            unresolved.append(ref)
        entry = target or ref
        if entry not in blocks:
            blocks.append(entry)
    for dependent in idx.dependents_of(task.id):
        if dependent not in blocks:
            blocks.append(dependent)

    return DependencyStatus(
        is_blocked=bool(blocked_by),
        blocked_by_tasks=tuple(blocked_by),
        blocks_tasks=tuple(blocks),
        unresolved=tuple(unresolved),
    )


def get_blocked_tasks(all_tasks: Sequence[Task], index: Optional[ReferenceIndex] = None) -> List[Task]:
    idx = _index(all_tasks, index)
    return [t for t in all_tasks if not t.completed and resolve_status(t, all_tasks, idx).is_blocked]


def get_ready_tasks(all_tasks: Sequence[Task], index: Optional[ReferenceIndex] = None) -> List[Task]:
    idx = _index(all_tasks, index)
    return [t for t in all_tasks if not t.completed and not resolve_status(t, all_tasks, idx).is_blocked]


def tasks_unblocked_by(
    task: Task,
    all_tasks: Sequence[Task],
    index: Optional[ReferenceIndex] = None,
) -> List[Task]:
    """Incomplete tasks whose only remaining blocker is ``task``."""
    idx = _index(all_tasks, index)
    result: List[Task] = []
    for dependent_id in idx.dependents_of(task.id):
        dependent = idx.get(dependent_id)
        if dependent is None or dependent.completed:
            continue
        status = resolve_status(dependent, all_tasks, idx)
        if all(blocker == task.id for blocker in status.blocked_by_tasks):
            result.append(dependent)
    return result


def dependency_links(all_tasks: Sequence[Task], index: Optional[ReferenceIndex] = None) -> List[DependencyLink]:
    """Every declared edge, de-duplicated; unresolved ends keep the raw reference."""
    idx = _index(all_tasks, index)
    links: List[DependencyLink] = []
    seen: Set[tuple] = set()
    for task in all_tasks:
        for ref in task.blocked_by:
            source = idx.resolve(ref) or ref
            if (source, task.id) not in seen:
                seen.add((source, task.id))
                links.append(DependencyLink(source, task.id, "blocked-by"))
        for ref in task.blocks:
            target = idx.resolve(ref) or ref
            if (task.id, target) not in seen:
                seen.add((task.id, target))
                links.append(DependencyLink(task.id, target, "blocks"))
    return links


# ---------------------------------------------------------------------------
# Graph walks
# ---------------------------------------------------------------------------

def detect_cycle(
    task: Task,
    all_tasks: Iterable[Task],
    index: Optional[ReferenceIndex] = None,
) -> Optional[List[str]]:
    """
    Look for a dependency cycle reachable from ``task``.

    Follows ``blocks`` edges and reverse ``blocked_by`` edges. Returns the
    path from the first repeated node back to itself, e.g. ``[a, b, a]``.
    """
    idx = _index(all_tasks, index)
    finished: Set[str] = set()
    path: List[str] = [task.id]
    on_path: Set[str] = {task.id}
    stack: List[Iterator[str]] = [iter(idx.blocked_ids(task))]

    while stack:
        next_id = next(stack[-1], None)
        if next_id is None:
            stack.pop()
            done = path.pop()
            on_path.discard(done)
            finished.add(done)
            continue
        if next_id in on_path:
            start = path.index(next_id)
            return path[start:] + [next_id]
        if next_id in finished:
            continue
        node = idx.get(next_id)
        if node is None:
            continue
        path.append(next_id)
        on_path.add(next_id)
        stack.append(iter(idx.blocked_ids(node)))

    return None


def sort_by_dependency_order(
    tasks: Sequence[Task],
    all_tasks: Sequence[Task],
    index: Optional[ReferenceIndex] = None,
) -> List[Task]:
    """
    Order ``tasks`` so a task comes before the tasks it blocks.

    DFS post-order over the blocks relation restricted to ``tasks``. Cycles
    are broken at the first revisit; unrelated tasks keep their input order.
    """
    idx = _index(all_tasks, index)
    members = {t.id: t for t in tasks}
    visited: Set[str] = set()
    order: List[Task] = []

    for root in reversed(tasks):
        if root.id in visited:
            continue
        visited.add(root.id)
        stack = [(root, iter(idx.blocked_ids(root)))]
        while stack:
            node, children = stack[-1]
            child_id = next(children, None)
            if child_id is None:
                stack.pop()
                order.append(node)
                continue
            child = members.get(child_id)
            if child is None or child_id in visited:
                continue
            visited.add(child_id)
            stack.append((child, iter(idx.blocked_ids(child))))

    order.reverse()
    return order

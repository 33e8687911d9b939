"""
Parent/child links from indentation.

Tasks are sorted by (path, line_index) and walked with a stack of candidate
ancestors. Links are stored as ids, so a snapshot behaves as an arena:
resolve them through a ``{id: Task}`` mapping.
"""

from typing import Dict, Iterable, Iterator, List

from vault_tasks.models.task import Task


def build_hierarchy(tasks: Iterable[Task]) -> List[Task]:
    """
    Assign ``parent_id`` / ``children`` for every task and return the roots.

    A task's parent is the nearest preceding task in the same document with a
    smaller depth. Depth jumps are allowed: depth 0 followed by depth 3
    attaches to the depth-0 task.
    """
    ordered = sorted(tasks, key=lambda t: (t.path, t.line_index))
    for task in ordered:
        task.parent_id = None
        task.children = []

    roots: List[Task] = []
    stack: List[Task] = []
    for task in ordered:
        while stack and (stack[-1].path != task.path or stack[-1].depth >= task.depth):
            stack.pop()

        if stack and task.depth > 0:
            parent = stack[-1]
            task.parent_id = parent.id
            parent.children.append(task.id)
        else:
            roots.append(task)

        stack.append(task)

    return roots


def descendants(task: Task, index: Dict[str, Task]) -> Iterator[Task]:
    """Depth-first walk of everything nested under ``task``."""
    pending = list(reversed(task.children))
    while pending:
        child = index.get(pending.pop())
        if child is None:
            continue
        yield child
        pending.extend(reversed(child.children))


def ancestors(task: Task, index: Dict[str, Task]) -> Iterator[Task]:
    parent_id = task.parent_id
    while parent_id is not None:
        parent = index.get(parent_id)
        if parent is None:
            return
        yield parent
        parent_id = parent.parent_id

from .resolver import (
    DependencyLink,
    ReferenceIndex,
    build_reference_index,
    dependency_links,
    detect_cycle,
    get_blocked_tasks,
    get_ready_tasks,
    resolve_status,
    sort_by_dependency_order,
    tasks_unblocked_by,
)

__all__ = [
    "DependencyLink",
    "ReferenceIndex",
    "build_reference_index",
    "resolve_status",
    "detect_cycle",
    "get_blocked_tasks",
    "get_ready_tasks",
    "sort_by_dependency_order",
    "tasks_unblocked_by",
    "dependency_links",
]

"""Dependency graph validation and repair.

The graph is re-derived from the task collection on every call; nothing is
cached between calls. Task-level edges run from a task to the tasks it
requires. Subtask-level edges run from a subtask to the subtasks (or tasks)
it requires, always stored as fully-qualified ``TaskRef`` values.

``validate_dependencies`` never mutates its input. ``fix_dependencies`` and the
dependency editing helpers work on a deep copy and return it, so callers must
persist the returned collection rather than the one they passed in.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Hashable, Iterable, List, Optional, Tuple, TypeVar, Union

from .errors import CircularDependencyError, InvalidDependency, InvalidStatus, TaskNotFound
from .ids import TaskRef, parse_task_id
from .models import (
    DependencyIssue,
    FixResult,
    RemovedEdge,
    TASK_STATUSES,
    Subtask,
    Task,
    ValidationReport,
    coerce_tasks,
    copy_tasks,
)

logger = logging.getLogger("taskgraph.graph")

# Chains deeper than this produce a 'deep-chain' warning
MAX_CHAIN_DEPTH = 5

Node = TypeVar("Node", bound=Hashable)


# ----------------------------------------------------------------------
# Graph construction
# ----------------------------------------------------------------------


def build_adjacency(tasks: List[Task]) -> Dict[int, List[int]]:
    """Task-level adjacency in task order.

    Self-references, missing targets and repeated entries are left out; they
    are reported separately and do not take part in cycle detection.
    """
    ids = {task.id for task in tasks}
    graph: Dict[int, List[int]] = {}
    for task in tasks:
        targets: List[int] = []
        for dep in task.dependencies:
            if dep != task.id and dep in ids and dep not in targets:
                targets.append(dep)
        graph[task.id] = targets
    return graph


def _index(tasks: List[Task]) -> Dict[int, Task]:
    return {task.id: task for task in tasks}


def _resolves(ref: TaskRef, by_id: Dict[int, Task]) -> bool:
    parent = by_id.get(ref.task_id)
    if parent is None:
        return False
    if ref.is_subtask:
        return parent.find_subtask(ref.subtask_id) is not None
    return True


def _subtask_adjacency(tasks: List[Task]) -> Tuple[Dict[TaskRef, List[TaskRef]], List[TaskRef]]:
    """Subtask-to-subtask edges that resolve, excluding self-references."""
    by_id = _index(tasks)
    graph: Dict[TaskRef, List[TaskRef]] = {}
    order: List[TaskRef] = []
    for task in tasks:
        for subtask in task.subtasks:
            node = subtask.ref(task.id)
            order.append(node)
            targets: List[TaskRef] = []
            for dep in subtask.dependencies:
                if dep.is_subtask and dep != node and _resolves(dep, by_id) and dep not in targets:
                    targets.append(dep)
            graph[node] = targets
    return graph, order


def _find_back_edges(
    graph: Dict[Node, List[Node]], order: Iterable[Node]
) -> List[Tuple[Node, Node, List[Node]]]:
    """Depth-first search recording every edge that closes a cycle.

    Roots are visited in ``order`` and neighbours in adjacency order, so the
    result is deterministic. Each entry is ``(source, target, cycle)`` where
    ``target`` was on the recursion stack when ``source -> target`` was
    traversed and ``cycle`` is the stack slice from ``target`` to ``source``.
    An explicit stack keeps long chains clear of the recursion limit.
    """
    visited: set = set()
    found: List[Tuple[Node, Node, List[Node]]] = []

    for root in order:
        if root in visited:
            continue
        visited.add(root)
        path: List[Node] = [root]
        on_path = {root}
        stack = [(root, iter(graph.get(root, ())))]

        while stack:
            node, neighbours = stack[-1]
            for neighbour in neighbours:
                if neighbour in on_path:
                    start = path.index(neighbour)
                    found.append((node, neighbour, list(path[start:])))
                elif neighbour not in visited:
                    visited.add(neighbour)
                    path.append(neighbour)
                    on_path.add(neighbour)
                    stack.append((neighbour, iter(graph.get(neighbour, ()))))
                    break
            else:
                stack.pop()
                path.pop()
                on_path.discard(node)

    return found


def _find_path(graph: Dict[Node, List[Node]], start: Node, goal: Node) -> Optional[List[Node]]:
    """Any path from ``start`` to ``goal`` following edges, or None."""
    if start == goal:
        return [start]
    previous: Dict[Node, Node] = {}
    seen = {start}
    frontier = [start]
    while frontier:
        node = frontier.pop()
        for neighbour in graph.get(node, ()):
            if neighbour in seen:
                continue
            previous[neighbour] = node
            if neighbour == goal:
                path = [goal]
                while path[-1] != start:
                    path.append(previous[path[-1]])
                return list(reversed(path))
            seen.add(neighbour)
            frontier.append(neighbour)
    return None


def calculate_dependency_depth(tasks: Any) -> Dict[int, int]:
    """Length of the longest dependency chain below each task.

    A task without (existing) dependencies has depth 0. Edges that would
    close a cycle are ignored, so the result is defined for any input.
    """
    tasks = coerce_tasks(tasks)
    graph = build_adjacency(tasks)
    depth: Dict[int, int] = {}

    for root in graph:
        if root in depth:
            continue
        on_path = {root}
        stack = [(root, iter(graph[root]))]
        while stack:
            node, neighbours = stack[-1]
            for neighbour in neighbours:
                if neighbour in depth or neighbour in on_path:
                    continue
                on_path.add(neighbour)
                stack.append((neighbour, iter(graph[neighbour])))
                break
            else:
                stack.pop()
                on_path.discard(node)
                depth[node] = 1 + max((depth[dep] for dep in graph[node] if dep in depth), default=-1)

    return depth


# ----------------------------------------------------------------------
# Validation
# ----------------------------------------------------------------------


def _validate_subtasks(tasks: List[Task]) -> List[DependencyIssue]:
    by_id = _index(tasks)
    issues: List[DependencyIssue] = []

    for task in tasks:
        for subtask in task.subtasks:
            node = subtask.ref(task.id)
            for dep in subtask.dependencies:
                if dep == node:
                    issues.append(DependencyIssue(
                        type="self",
                        task_id=str(node),
                        dependency_id=str(dep),
                        message="Subtask cannot depend on itself.",
                    ))
                elif not _resolves(dep, by_id):
                    issues.append(DependencyIssue(
                        type="missing",
                        task_id=str(node),
                        dependency_id=str(dep),
                        message=f"Dependency '{dep}' does not exist.",
                    ))

    graph, order = _subtask_adjacency(tasks)
    for source, target, cycle in _find_back_edges(graph, order):
        chain = " -> ".join(str(ref) for ref in cycle + [target])
        issues.append(DependencyIssue(
            type="circular",
            task_id=str(source),
            dependency_id=str(target),
            message=f"Circular dependency detected in subtasks: {chain}",
        ))
    return issues


def validate_dependencies(tasks: Any) -> ValidationReport:
    """Report missing references, self references and cycles.

    The input is never mutated. Finding problems is the normal outcome, so
    they are returned as data; only a malformed collection raises
    (InvalidCollection).
    """
    tasks = coerce_tasks(tasks)
    ids = {task.id for task in tasks}
    report = ValidationReport()

    for task in tasks:
        seen: set[int] = set()
        for dep in task.dependencies:
            if dep in seen:
                if (task.id, dep) not in report.duplicates:
                    report.duplicates.append((task.id, dep))
                continue
            seen.add(dep)
            if dep == task.id:
                report.self_references.append(task.id)
            elif dep not in ids:
                report.missing_references.append((task.id, dep))

    graph = build_adjacency(tasks)
    report.cycles = [cycle for _, _, cycle in _find_back_edges(graph, [task.id for task in tasks])]
    report.subtask_issues = _validate_subtasks(tasks)

    for task_id, depth in calculate_dependency_depth(tasks).items():
        if depth > MAX_CHAIN_DEPTH:
            report.warnings.append(DependencyIssue(
                type="deep-chain",
                task_id=str(task_id),
                message=f"Task {task_id} has a deep dependency chain (depth: {depth})",
                severity="warning",
            ))

    logger.debug(
        f"Validated {len(tasks)} tasks: {len(report.missing_references)} missing, "
        f"{len(report.self_references)} self, {len(report.cycles)} cycles, "
        f"{len(report.subtask_issues)} subtask issues"
    )
    return report


def find_cycles(tasks: Any) -> List[RemovedEdge]:
    """Edges that would be removed to break every cycle.

    Each edge is the back-edge found by depth-first traversal in task order:
    removing all of them leaves the task-level graph acyclic, though not
    necessarily with the fewest removals.
    """
    tasks = coerce_tasks(tasks)
    graph = build_adjacency(tasks)
    return [
        RemovedEdge(TaskRef(source), TaskRef(target), "cycle")
        for source, target, _ in _find_back_edges(graph, [task.id for task in tasks])
    ]


# ----------------------------------------------------------------------
# Repair
# ----------------------------------------------------------------------


def _strip_task_edges(tasks: List[Task], reason: str, removed: List[RemovedEdge]) -> None:
    ids = {task.id for task in tasks}
    for task in tasks:
        kept: List[int] = []
        for dep in task.dependencies:
            if reason == "self":
                drop = dep == task.id
            elif reason == "missing":
                drop = dep not in ids
            else:
                drop = dep in kept
            if drop:
                removed.append(RemovedEdge(TaskRef(task.id), TaskRef(dep), reason))
            else:
                kept.append(dep)
        task.dependencies = kept


def _strip_subtask_edges(tasks: List[Task], reason: str, removed: List[RemovedEdge]) -> None:
    by_id = _index(tasks)
    for task in tasks:
        for subtask in task.subtasks:
            node = subtask.ref(task.id)
            kept: List[TaskRef] = []
            for dep in subtask.dependencies:
                if reason == "self":
                    drop = dep == node
                elif reason == "missing":
                    drop = not _resolves(dep, by_id)
                else:
                    drop = dep in kept
                if drop:
                    removed.append(RemovedEdge(node, dep, reason))
                else:
                    kept.append(dep)
            subtask.dependencies = kept


def _subtask_by_ref(ref: TaskRef, by_id: Dict[int, Task]) -> Optional[Subtask]:
    parent = by_id.get(ref.task_id)
    return parent.find_subtask(ref.subtask_id) if parent is not None else None


def fix_dependencies(tasks: Any) -> FixResult:
    """Repair a collection so that it validates cleanly.

    Applied in order: self-references, references to missing tasks and
    repeated entries are dropped, then one back-edge per detected cycle is
    removed and detection re-runs until the graph is acyclic. Subtask edges
    get the same treatment. The input is not modified; the repaired copy and
    the log of removed edges are returned.
    """
    tasks = copy_tasks(coerce_tasks(tasks))
    removed: List[RemovedEdge] = []

    for reason in ("self", "missing", "duplicate"):
        _strip_task_edges(tasks, reason, removed)

    by_id = _index(tasks)
    order = [task.id for task in tasks]
    # Each round removes at least one edge, so the edge count bounds the loop
    for _ in range(sum(len(task.dependencies) for task in tasks) + 1):
        back_edges = _find_back_edges(build_adjacency(tasks), order)
        if not back_edges:
            break
        for source, target, cycle in back_edges:
            owner = by_id[source]
            if target in owner.dependencies:
                owner.dependencies.remove(target)
                removed.append(RemovedEdge(TaskRef(source), TaskRef(target), "cycle"))
                path = " -> ".join(str(node) for node in cycle + [target])
                logger.info(f"Breaking cycle {path} by removing {source} -> {target}")

    for reason in ("self", "missing", "duplicate"):
        _strip_subtask_edges(tasks, reason, removed)

    edge_budget = sum(len(sub.dependencies) for task in tasks for sub in task.subtasks) + 1
    for _ in range(edge_budget):
        graph, sub_order = _subtask_adjacency(tasks)
        back_edges = _find_back_edges(graph, sub_order)
        if not back_edges:
            break
        for source, target, _cycle in back_edges:
            owner = _subtask_by_ref(source, by_id)
            if owner is not None and target in owner.dependencies:
                owner.dependencies.remove(target)
                removed.append(RemovedEdge(source, target, "cycle"))

    if removed:
        logger.info(f"Removed {len(removed)} dependency edges")
    else:
        logger.debug("No dependency repairs needed")
    return FixResult(tasks=tasks, removed_edges=removed)


# ----------------------------------------------------------------------
# Dependency editing
# ----------------------------------------------------------------------


def _locate(ref: TaskRef, by_id: Dict[int, Task]) -> Union[Task, Subtask]:
    parent = by_id.get(ref.task_id)
    if parent is None:
        raise TaskNotFound(ref, sorted(by_id))
    if not ref.is_subtask:
        return parent
    subtask = parent.find_subtask(ref.subtask_id)
    if subtask is None:
        raise TaskNotFound(ref, sorted(by_id))
    return subtask


def add_dependency(tasks: Any, task_id: Any, depends_on: Any) -> List[Task]:
    """Return a copy of ``tasks`` where ``task_id`` requires ``depends_on``.

    Raises TaskNotFound when either side does not exist, InvalidDependency
    for a self-dependency, a subtask depending on its own parent or a task
    depending on a subtask, and CircularDependencyError when the new edge
    would close a cycle. Adding an edge that already exists changes nothing.
    """
    tasks = copy_tasks(coerce_tasks(tasks))
    by_id = _index(tasks)
    owner_ref = parse_task_id(task_id)
    dep_ref = parse_task_id(depends_on)

    owner = _locate(owner_ref, by_id)
    _locate(dep_ref, by_id)

    if owner_ref == dep_ref:
        raise InvalidDependency(f"Task {owner_ref} cannot depend on itself")
    if owner_ref.is_subtask and dep_ref == owner_ref.parent:
        raise InvalidDependency(f"Subtask {owner_ref} cannot depend on its parent task")
    if not owner_ref.is_subtask and dep_ref.is_subtask:
        raise InvalidDependency(
            f"Task {owner_ref} cannot depend on subtask {dep_ref}; task dependencies must be tasks"
        )

    if isinstance(owner, Task):
        if dep_ref.task_id in owner.dependencies:
            logger.debug(f"Dependency {owner_ref} -> {dep_ref} already exists")
            return tasks
        path = _find_path(build_adjacency(tasks), dep_ref.task_id, owner_ref.task_id)
        if path is not None:
            raise CircularDependencyError([str(owner_ref)] + [str(node) for node in path])
        owner.dependencies.append(dep_ref.task_id)
    else:
        if dep_ref in owner.dependencies:
            logger.debug(f"Dependency {owner_ref} -> {dep_ref} already exists")
            return tasks
        if dep_ref.is_subtask:
            graph, _ = _subtask_adjacency(tasks)
            path = _find_path(graph, dep_ref, owner_ref)
            if path is not None:
                raise CircularDependencyError([str(owner_ref)] + [str(node) for node in path])
        owner.dependencies.append(dep_ref)

    logger.info(f"Added dependency {owner_ref} -> {dep_ref}")
    return tasks


def remove_dependency(tasks: Any, task_id: Any, depends_on: Any) -> List[Task]:
    """Return a copy of ``tasks`` without the ``task_id -> depends_on`` edge.

    Raises TaskNotFound for an unknown owner; removing an edge that is not
    there changes nothing.
    """
    tasks = copy_tasks(coerce_tasks(tasks))
    owner_ref = parse_task_id(task_id)
    dep_ref = parse_task_id(depends_on)
    owner = _locate(owner_ref, _index(tasks))

    if isinstance(owner, Task):
        remaining = [dep for dep in owner.dependencies if TaskRef(dep) != dep_ref]
    else:
        remaining = [dep for dep in owner.dependencies if dep != dep_ref]

    if len(remaining) == len(owner.dependencies):
        logger.debug(f"Dependency {owner_ref} -> {dep_ref} not found")
    else:
        owner.dependencies = remaining
        logger.info(f"Removed dependency {owner_ref} -> {dep_ref}")
    return tasks


def remove_task(tasks: Any, task_id: Any) -> List[Task]:
    """Return a copy of ``tasks`` without a task or subtask.

    Every dependency on the removed item is stripped from the remaining
    tasks and subtasks; removing a task also strips references to its
    subtasks.
    """
    tasks = copy_tasks(coerce_tasks(tasks))
    ref = parse_task_id(task_id)
    by_id = _index(tasks)
    _locate(ref, by_id)

    if ref.is_subtask:
        parent = by_id[ref.task_id]
        parent.subtasks = [sub for sub in parent.subtasks if sub.id != ref.subtask_id]

        def gone(dep: TaskRef) -> bool:
            return dep == ref
    else:
        tasks = [task for task in tasks if task.id != ref.task_id]
        for task in tasks:
            task.dependencies = [dep for dep in task.dependencies if dep != ref.task_id]

        def gone(dep: TaskRef) -> bool:
            return dep.task_id == ref.task_id

    for task in tasks:
        for subtask in task.subtasks:
            subtask.dependencies = [dep for dep in subtask.dependencies if not gone(dep)]

    logger.info(f"Removed {'subtask' if ref.is_subtask else 'task'} {ref}")
    return tasks


def set_status(tasks: Any, task_id: Any, status: str) -> List[Task]:
    """Return a copy of ``tasks`` with the status of a task or subtask changed.

    Marking a top-level task done also marks its subtasks done. Raises
    InvalidStatus for an unknown status and TaskNotFound for an unknown ID.
    """
    if status not in TASK_STATUSES:
        raise InvalidStatus(status, list(TASK_STATUSES))
    tasks = copy_tasks(coerce_tasks(tasks))
    ref = parse_task_id(task_id)
    item = _locate(ref, _index(tasks))

    item.status = status
    if isinstance(item, Task) and status == "done":
        for subtask in item.subtasks:
            subtask.status = "done"

    logger.info(f"Set status of {ref} to {status}")
    return tasks

"""Data models for the task graph.

This module contains the core data structures used throughout the task graph
system: tasks and subtasks, next-task criteria, and the result records
returned by validation, repair and recommendation.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple, Union

from .errors import InvalidCollection, InvalidIdFormat
from .ids import TaskRef, parse_task_id


TASK_STATUSES = ("pending", "in-progress", "done", "review", "deferred", "cancelled")
PRIORITIES = ("low", "medium", "high")
DEFAULT_PRIORITY = "medium"

# Statuses that never take part in scheduling
CLOSED_STATUSES = ("done", "cancelled")


def utc_timestamp() -> str:
    """Current UTC time as an ISO string with a trailing Z."""
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds") + "Z"


def _pick(data: Mapping[str, Any], snake: str, camel: str, default: Any = None) -> Any:
    if snake in data:
        return data[snake]
    return data.get(camel, default)


def _record_id(value: Any, what: str) -> int:
    """Read the integer ID of a task or subtask record."""
    try:
        ref = parse_task_id(value)
    except InvalidIdFormat as e:
        raise InvalidCollection(f"{what} has an invalid id {value!r}") from e
    if ref.is_subtask:
        raise InvalidCollection(f"{what} has a composite id {value!r}; expected an integer")
    return ref.task_id


def _task_dependency(value: Any, task_id: int) -> int:
    """Task-level dependencies must name top-level tasks."""
    try:
        ref = parse_task_id(value)
    except InvalidIdFormat as e:
        raise InvalidCollection(f"Task {task_id} has an invalid dependency {value!r}") from e
    if ref.is_subtask:
        raise InvalidCollection(
            f"Task {task_id} depends on subtask {ref}; task dependencies must be task IDs"
        )
    return ref.task_id


def _number(value: Any, what: str) -> Optional[float]:
    """Read an optional numeric field; numeric strings from older files are converted."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidCollection(f"{what} must be a number, got {value!r}")
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return float(text)
        except ValueError:
            pass
    raise InvalidCollection(f"{what} must be a number, got {value!r}")


def _label(value: Any, default: Optional[str]) -> Any:
    """Status and priority labels are matched lower-case."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value.strip().lower()
    return value


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _as_list(value: Any) -> List[Any]:
    """A lone value stands for a one-item list."""
    if value is None:
        return []
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _subtask_dependency(value: Any, parent_id: int, subtask_id: int) -> TaskRef:
    """Resolve a subtask dependency to a fully-qualified reference.

    Bare integers follow the legacy rule and name a sibling subtask. Dotted
    strings are composite IDs. Other strings name a top-level task.
    """
    if isinstance(value, int) and not isinstance(value, bool):
        if value <= 0:
            raise InvalidCollection(
                f"Subtask {parent_id}.{subtask_id} has an invalid dependency {value!r}"
            )
        return TaskRef(parent_id, value)
    try:
        return parse_task_id(value)
    except InvalidIdFormat as e:
        raise InvalidCollection(
            f"Subtask {parent_id}.{subtask_id} has an invalid dependency {value!r}"
        ) from e


@dataclass(slots=True)
class Subtask:
    """Child work item, scoped to exactly one parent task."""

    id: int
    title: str
    description: str = ""
    status: str = "pending"
    priority: Optional[str] = None
    dependencies: List[TaskRef] = field(default_factory=list)
    details: Optional[str] = None
    test_strategy: Optional[str] = None
    complexity_score: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dependencies": [str(dep) for dep in self.dependencies],
            "details": self.details,
            "test_strategy": self.test_strategy,
        }
        if self.complexity_score is not None:
            result["complexity_score"] = self.complexity_score
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], parent_id: int) -> "Subtask":
        """Create from dictionary representation."""
        if not isinstance(data, Mapping):
            raise InvalidCollection(f"Subtask of task {parent_id} must be a mapping")
        if "id" not in data:
            raise InvalidCollection(f"Subtask of task {parent_id} has no 'id'")
        subtask_id = _record_id(data["id"], f"Subtask of task {parent_id}")
        return cls(
            id=subtask_id,
            title=data.get("title", ""),
            description=data.get("description", ""),
            status=_label(data.get("status"), "pending"),
            priority=_label(data.get("priority"), None),
            dependencies=[
                _subtask_dependency(dep, parent_id, subtask_id)
                for dep in data.get("dependencies") or []
            ],
            details=data.get("details"),
            test_strategy=_pick(data, "test_strategy", "testStrategy"),
            complexity_score=_number(
                _pick(data, "complexity_score", "complexityScore"),
                f"Subtask {parent_id}.{subtask_id}: complexity_score",
            ),
        )

    def ref(self, parent_id: int) -> TaskRef:
        return TaskRef(parent_id, self.id)

    def effective_priority(self, parent: "Task") -> str:
        """Subtasks without their own priority inherit the parent's."""
        return self.priority or parent.priority

    def field_issues(self) -> List[str]:
        """Enum and type problems that make the record unusable for scheduling."""
        issues = []
        if self.status not in TASK_STATUSES:
            issues.append(f"Subtask {self.id}: invalid status: {self.status}")
        if self.priority is not None and self.priority not in PRIORITIES:
            issues.append(f"Subtask {self.id}: invalid priority: {self.priority}")
        if self.complexity_score is not None and not _is_number(self.complexity_score):
            issues.append(
                f"Subtask {self.id}: complexity_score must be a number, got: {self.complexity_score!r}"
            )
        return issues

    def validate(self) -> List[str]:
        """Validate subtask data and return any issues."""
        issues = []
        if not self.title:
            issues.append(f"Subtask {self.id}: title is required")
        issues.extend(self.field_issues())
        return issues


@dataclass(slots=True)
class Task:
    """Top-level work item."""

    id: int
    title: str
    description: str = ""
    status: str = "pending"
    priority: str = DEFAULT_PRIORITY
    dependencies: List[int] = field(default_factory=list)
    subtasks: List[Subtask] = field(default_factory=list)
    details: Optional[str] = None
    test_strategy: Optional[str] = None
    complexity: Optional[float] = None
    tags: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    due_date: Optional[str] = None
    estimated_hours: Optional[float] = None
    actual_hours: Optional[float] = None
    created: Optional[str] = None
    updated: Optional[str] = None
    # Read-only annotation merged in from a complexity report; never persisted
    complexity_score: Optional[float] = None

    def to_dict(self, *, include_annotations: bool = True) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "status": self.status,
            "priority": self.priority,
            "dependencies": list(self.dependencies),
            "subtasks": [subtask.to_dict() for subtask in self.subtasks],
            "details": self.details,
            "test_strategy": self.test_strategy,
            "complexity": self.complexity,
            "tags": list(self.tags),
            "assignee": self.assignee,
            "due_date": self.due_date,
            "estimated_hours": self.estimated_hours,
            "actual_hours": self.actual_hours,
            "created": self.created,
            "updated": self.updated,
        }
        if include_annotations and self.complexity_score is not None:
            result["complexity_score"] = self.complexity_score
        if not include_annotations:
            for subtask in result["subtasks"]:
                subtask.pop("complexity_score", None)
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        """Create from dictionary representation.

        Accepts both snake_case keys and the camelCase keys used by older
        task files.
        """
        if not isinstance(data, Mapping):
            raise InvalidCollection(f"Task record must be a mapping, got {type(data).__name__}")
        if "id" not in data:
            raise InvalidCollection("Task record has no 'id'")
        task_id = _record_id(data["id"], "Task")
        subtasks = data.get("subtasks") or []
        if not isinstance(subtasks, list):
            raise InvalidCollection(f"Task {task_id}: subtasks must be a list")
        return cls(
            id=task_id,
            title=data.get("title", ""),
            description=data.get("description", ""),
            status=_label(data.get("status"), "pending"),
            priority=_label(data.get("priority"), DEFAULT_PRIORITY),
            dependencies=[_task_dependency(dep, task_id) for dep in data.get("dependencies") or []],
            subtasks=[Subtask.from_dict(item, task_id) for item in subtasks],
            details=data.get("details"),
            test_strategy=_pick(data, "test_strategy", "testStrategy"),
            complexity=_number(data.get("complexity"), f"Task {task_id}: complexity"),
            tags=list(data.get("tags") or []),
            assignee=data.get("assignee"),
            due_date=_pick(data, "due_date", "dueDate"),
            estimated_hours=_number(
                _pick(data, "estimated_hours", "estimatedHours"), f"Task {task_id}: estimated_hours"
            ),
            actual_hours=_number(
                _pick(data, "actual_hours", "actualHours"), f"Task {task_id}: actual_hours"
            ),
            created=data.get("created"),
            updated=data.get("updated"),
            complexity_score=_number(
                _pick(data, "complexity_score", "complexityScore"), f"Task {task_id}: complexity_score"
            ),
        )

    def ref(self) -> TaskRef:
        return TaskRef(self.id)

    def copy(self) -> "Task":
        """Deep copy; subtasks and dependency lists are not shared."""
        return copy.deepcopy(self)

    def find_subtask(self, subtask_id: int) -> Optional[Subtask]:
        for subtask in self.subtasks:
            if subtask.id == subtask_id:
                return subtask
        return None

    @property
    def effective_complexity(self) -> Optional[float]:
        """Report score when merged in, otherwise the task's own estimate."""
        if self.complexity_score is not None:
            return self.complexity_score
        return self.complexity

    def touch(self) -> None:
        self.updated = utc_timestamp()

    def field_issues(self) -> List[str]:
        """Enum and type problems in this task and its subtasks.

        These make a record unusable for scheduling, so ``coerce_tasks``
        rejects any task that has them.
        """
        issues = []
        if self.status not in TASK_STATUSES:
            issues.append(f"Task {self.id}: invalid status: {self.status}")
        if self.priority not in PRIORITIES:
            issues.append(f"Task {self.id}: invalid priority: {self.priority}")
        for name in ("complexity", "complexity_score", "estimated_hours", "actual_hours"):
            value = getattr(self, name)
            if value is not None and not _is_number(value):
                issues.append(f"Task {self.id}: {name} must be a number, got: {value!r}")
        for subtask in self.subtasks:
            issues.extend(f"Task {self.id}: {issue}" for issue in subtask.field_issues())
        return issues

    def validate(self) -> List[str]:
        """Validate task data and return any issues."""
        issues = []
        if not self.title:
            issues.append(f"Task {self.id}: title is required")
        issues.extend(self.field_issues())
        if _is_number(self.complexity) and not 1 <= self.complexity <= 10:
            issues.append(f"Task {self.id}: complexity must be 1-10, got: {self.complexity}")
        for subtask in self.subtasks:
            if not subtask.title:
                issues.append(f"Task {self.id}: Subtask {subtask.id}: title is required")
        return issues


TaskLike = Union[Task, Mapping[str, Any]]


def coerce_tasks(tasks: Any) -> List[Task]:
    """Check that ``tasks`` is a well-formed collection and return Task objects.

    Task instances are passed through as-is; mappings are converted with
    ``Task.from_dict``. Raises InvalidCollection on non-list input, records
    without an id, unknown statuses or priorities, non-numeric complexity
    values, and duplicate task or subtask IDs.
    """
    if not isinstance(tasks, (list, tuple)):
        raise InvalidCollection(f"Task collection must be a list, got {type(tasks).__name__}")

    result: List[Task] = []
    seen: set[int] = set()
    for index, item in enumerate(tasks):
        if isinstance(item, Task):
            task = item
            _record_id(task.id, f"Task at index {index}")
        elif isinstance(item, Mapping):
            if "id" not in item:
                raise InvalidCollection(f"Task at index {index} has no 'id'")
            task = Task.from_dict(item)
        else:
            raise InvalidCollection(
                f"Task at index {index} must be a Task or mapping, got {type(item).__name__}"
            )

        issues = task.field_issues()
        if issues:
            raise InvalidCollection("; ".join(issues), {"task_id": task.id, "issues": issues})
        if task.id in seen:
            raise InvalidCollection(f"Duplicate task ID: {task.id}", {"task_id": task.id})
        seen.add(task.id)

        subtask_ids: set[int] = set()
        for subtask in task.subtasks:
            if subtask.id in subtask_ids:
                raise InvalidCollection(
                    f"Duplicate subtask ID {subtask.id} in task {task.id}",
                    {"task_id": task.id, "subtask_id": subtask.id},
                )
            subtask_ids.add(subtask.id)
        result.append(task)
    return result


def copy_tasks(tasks: Iterable[Task]) -> List[Task]:
    return [task.copy() for task in tasks]


# ----------------------------------------------------------------------
# Dependency graph results
# ----------------------------------------------------------------------


@dataclass(slots=True)
class DependencyIssue:
    """A single dependency finding, with IDs rendered as strings."""

    type: str  # 'missing', 'self', 'circular', 'deep-chain'
    task_id: str
    message: str
    dependency_id: Optional[str] = None
    severity: str = "error"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "type": self.type,
            "task_id": self.task_id,
            "dependency_id": self.dependency_id,
            "message": self.message,
            "severity": self.severity,
        }


@dataclass(slots=True)
class ValidationReport:
    """Everything found wrong with a collection's dependencies."""

    missing_references: List[Tuple[int, int]] = field(default_factory=list)
    self_references: List[int] = field(default_factory=list)
    cycles: List[List[int]] = field(default_factory=list)
    duplicates: List[Tuple[int, int]] = field(default_factory=list)
    subtask_issues: List[DependencyIssue] = field(default_factory=list)
    warnings: List[DependencyIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not (
            self.missing_references
            or self.self_references
            or self.cycles
            or self.subtask_issues
        )

    @property
    def issue_count(self) -> int:
        return (
            len(self.missing_references)
            + len(self.self_references)
            + len(self.cycles)
            + len(self.subtask_issues)
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "is_valid": self.is_valid,
            "missing_references": [
                {"task_id": task_id, "dependency_id": dep_id}
                for task_id, dep_id in self.missing_references
            ],
            "self_references": list(self.self_references),
            "cycles": [list(cycle) for cycle in self.cycles],
            "duplicates": [
                {"task_id": task_id, "dependency_id": dep_id}
                for task_id, dep_id in self.duplicates
            ],
            "subtask_issues": [issue.to_dict() for issue in self.subtask_issues],
            "warnings": [warning.to_dict() for warning in self.warnings],
        }


@dataclass(slots=True)
class RemovedEdge:
    """A dependency edge removed by ``fix_dependencies``."""

    source: TaskRef
    target: TaskRef
    reason: str  # 'self', 'missing', 'duplicate', 'cycle'

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary representation."""
        return {"from": str(self.source), "to": str(self.target), "reason": self.reason}


@dataclass(slots=True)
class FixResult:
    """Repaired collection plus the log of removed edges."""

    tasks: List[Task]
    removed_edges: List[RemovedEdge] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.removed_edges)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "tasks": [task.to_dict() for task in self.tasks],
            "removed_edges": [edge.to_dict() for edge in self.removed_edges],
        }


# ----------------------------------------------------------------------
# Recommendation
# ----------------------------------------------------------------------


@dataclass(slots=True)
class NextTaskCriteria:
    """Caller-supplied scoring configuration for next-task selection."""

    include_in_progress: bool = False
    priority_weight: float = 0.7
    dependency_weight: float = 0.3
    complexity_weight: float = 0.0
    due_date_weight: float = 0.0
    exclude_task_ids: List[int] = field(default_factory=list)
    max_complexity: Optional[float] = None
    preferred_tags: List[str] = field(default_factory=list)
    assignee: Optional[str] = None
    max_alternatives: int = 5

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "include_in_progress": self.include_in_progress,
            "priority_weight": self.priority_weight,
            "dependency_weight": self.dependency_weight,
            "complexity_weight": self.complexity_weight,
            "due_date_weight": self.due_date_weight,
            "exclude_task_ids": list(self.exclude_task_ids),
            "max_complexity": self.max_complexity,
            "preferred_tags": list(self.preferred_tags),
            "assignee": self.assignee,
            "max_alternatives": self.max_alternatives,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "NextTaskCriteria":
        """Create from dictionary representation (snake_case or camelCase)."""
        defaults = cls()
        return cls(
            include_in_progress=_pick(
                data, "include_in_progress", "includeInProgress", defaults.include_in_progress
            ),
            priority_weight=_pick(data, "priority_weight", "priorityWeight", defaults.priority_weight),
            dependency_weight=_pick(
                data, "dependency_weight", "dependencyWeight", defaults.dependency_weight
            ),
            complexity_weight=_pick(
                data, "complexity_weight", "complexityWeight", defaults.complexity_weight
            ),
            due_date_weight=_pick(data, "due_date_weight", "dueDateWeight", defaults.due_date_weight),
            exclude_task_ids=_as_list(_pick(data, "exclude_task_ids", "excludeTaskIds")),
            max_complexity=_pick(data, "max_complexity", "maxComplexity"),
            preferred_tags=_as_list(_pick(data, "preferred_tags", "preferredTags")),
            assignee=data.get("assignee"),
            max_alternatives=_pick(
                data, "max_alternatives", "maxAlternatives", defaults.max_alternatives
            ),
        )

    def excluded_ids(self) -> set[int]:
        """Excluded IDs as integers; call ``validate`` first."""
        return {parse_task_id(value).task_id for value in self.exclude_task_ids}

    def weights(self) -> Dict[str, float]:
        return {
            "priority": self.priority_weight,
            "dependencies": self.dependency_weight,
            "complexity": self.complexity_weight,
            "due_date": self.due_date_weight,
        }

    def validate(self) -> List[str]:
        """Validate criteria and return any issues."""
        issues = []
        if not isinstance(self.include_in_progress, bool):
            issues.append(f"include_in_progress must be true or false, got: {self.include_in_progress!r}")
        for name, value in self.weights().items():
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                issues.append(f"{name} weight must be a number, got: {value!r}")
            elif value != value or value in (float("inf"), float("-inf")):
                issues.append(f"{name} weight must be finite, got: {value}")
            elif value < 0:
                issues.append(f"{name} weight must not be negative, got: {value}")
        for value in self.exclude_task_ids:
            try:
                ref = parse_task_id(value)
            except InvalidIdFormat:
                issues.append(f"excluded task ID is invalid: {value!r}")
                continue
            if ref.is_subtask:
                issues.append(f"excluded task ID must be a task, not a subtask: {value!r}")
        if self.max_complexity is not None:
            if not _is_number(self.max_complexity):
                issues.append(f"max_complexity must be a number, got: {self.max_complexity!r}")
            elif not 1 <= self.max_complexity <= 10:
                issues.append(f"max_complexity must be 1-10, got: {self.max_complexity}")
        if (
            isinstance(self.max_alternatives, bool)
            or not isinstance(self.max_alternatives, int)
            or self.max_alternatives < 0
        ):
            issues.append(f"max_alternatives must be a non-negative integer, got: {self.max_alternatives!r}")
        return issues


@dataclass(slots=True)
class TaskRecommendation:
    """A ranked candidate with its factor breakdown and reasons."""

    task: Task
    score: float
    reasons: List[str] = field(default_factory=list)
    factors: Dict[str, float] = field(default_factory=dict)
    contributions: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "task": self.task.to_dict(),
            "score": round(self.score, 4),
            "reasons": list(self.reasons),
            "factors": {name: round(value, 4) for name, value in self.factors.items()},
            "contributions": {name: round(value, 4) for name, value in self.contributions.items()},
        }


@dataclass(slots=True)
class BlockedTask:
    """An eligible task held back by unfinished dependencies."""

    task: Task
    blocking_dependencies: List[int]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "task": self.task.to_dict(),
            "blocking_dependencies": list(self.blocking_dependencies),
            "reason": self.reason,
        }


@dataclass(slots=True)
class ProjectAnalysis:
    """Summary counts accompanying a next-task result."""

    total_tasks: int = 0
    available_tasks: int = 0
    blocked_tasks: int = 0
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "total_tasks": self.total_tasks,
            "available_tasks": self.available_tasks,
            "blocked_tasks": self.blocked_tasks,
            "recommendations": list(self.recommendations),
        }


@dataclass(slots=True)
class NextTaskResult:
    """Outcome of ``recommend_next_task``."""

    recommendation: Optional[TaskRecommendation] = None
    alternatives: List[TaskRecommendation] = field(default_factory=list)
    blocked_tasks: List[BlockedTask] = field(default_factory=list)
    analysis: ProjectAnalysis = field(default_factory=ProjectAnalysis)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "recommendation": self.recommendation.to_dict() if self.recommendation else None,
            "alternatives": [item.to_dict() for item in self.alternatives],
            "blocked_tasks": [item.to_dict() for item in self.blocked_tasks],
            "analysis": self.analysis.to_dict(),
        }


@dataclass(slots=True)
class FindTaskResult:
    """Lookup result for ``annotate.find_task_by_id``."""

    task: Optional[Union[Task, Subtask]] = None
    original_subtask_count: Optional[int] = None
    parent: Optional[Task] = None

    @property
    def found(self) -> bool:
        return self.task is not None

    @property
    def is_subtask(self) -> bool:
        return isinstance(self.task, Subtask)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        result: Dict[str, Any] = {
            "task": self.task.to_dict() if self.task is not None else None,
            "original_subtask_count": self.original_subtask_count,
            "is_subtask": self.is_subtask,
        }
        if self.parent is not None:
            result["parent_task"] = {
                "id": self.parent.id,
                "title": self.parent.title,
                "status": self.parent.status,
            }
        return result

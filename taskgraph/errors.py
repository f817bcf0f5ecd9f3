"""Exception taxonomy for the task graph core.

Structural problems (bad IDs, malformed collections, unknown tasks) are
raised. Dependency consistency problems are reported as data by
``graph.validate_dependencies`` and never raised.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional


class TaskGraphError(ValueError):
    """Base class for every error raised by the task graph core."""

    code = "TASKGRAPH_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "error_code": self.code,
            "message": self.message,
            "details": dict(self.details),
        }


class InvalidIdFormat(TaskGraphError):
    """A task or subtask identifier could not be parsed."""

    code = "INVALID_ID_FORMAT"

    def __init__(self, raw: Any):
        super().__init__(
            f"Invalid task ID {raw!r}: expected a positive integer or '<task>.<subtask>'",
            {"raw": repr(raw)},
        )
        self.raw = raw


class InvalidCollection(TaskGraphError):
    """The task collection is not a well-formed list of task records."""

    code = "INVALID_COLLECTION"


class InvalidCriteria(TaskGraphError):
    """Next-task criteria failed validation."""

    code = "INVALID_CRITERIA"

    def __init__(self, issues: List[str]):
        super().__init__("Invalid next-task criteria: " + "; ".join(issues), {"issues": list(issues)})
        self.issues = list(issues)


class TaskNotFound(TaskGraphError):
    """No task or subtask exists with the requested ID."""

    code = "TASK_NOT_FOUND"

    def __init__(self, task_id: Any, available_ids: Optional[List[int]] = None):
        super().__init__(
            f"Task with ID {task_id} not found",
            {"task_id": str(task_id), "available_ids": list(available_ids or [])},
        )
        self.task_id = task_id


class InvalidDependency(TaskGraphError):
    """A dependency edit was rejected (self-dependency, parent dependency)."""

    code = "INVALID_DEPENDENCY"


class CircularDependencyError(TaskGraphError):
    """Adding a dependency would close a cycle."""

    code = "CIRCULAR_DEPENDENCY"

    def __init__(self, cycle: List[str]):
        super().__init__(
            f"Circular dependency detected: {' -> '.join(cycle)}",
            {"cycle": list(cycle)},
        )
        self.cycle = list(cycle)


class InvalidStatus(TaskGraphError):
    """A status update named a status outside the known set."""

    code = "INVALID_STATUS"

    def __init__(self, status: Any, allowed: List[str]):
        super().__init__(
            f"Invalid status {status!r}; expected one of: {', '.join(allowed)}",
            {"status": repr(status), "allowed": list(allowed)},
        )
        self.status = status

"""Task dependency graph validation, repair and next-task recommendation."""

from .annotate import annotate_tasks, attach_complexity, complexity_scores, find_task_by_id
from .errors import (
    CircularDependencyError,
    InvalidCollection,
    InvalidCriteria,
    InvalidDependency,
    InvalidIdFormat,
    InvalidStatus,
    TaskGraphError,
    TaskNotFound,
)
from .graph import (
    add_dependency,
    calculate_dependency_depth,
    find_cycles,
    fix_dependencies,
    remove_dependency,
    remove_task,
    set_status,
    validate_dependencies,
)
from .ids import TaskRef, format_task_id, ids_equal, parse_task_id
from .models import (
    BlockedTask,
    DependencyIssue,
    FindTaskResult,
    FixResult,
    NextTaskCriteria,
    NextTaskResult,
    ProjectAnalysis,
    RemovedEdge,
    Subtask,
    Task,
    TaskRecommendation,
    ValidationReport,
    coerce_tasks,
)
from .recommend import recommend_next_task

__all__ = [
    "TaskRef",
    "parse_task_id",
    "format_task_id",
    "ids_equal",
    "Task",
    "Subtask",
    "coerce_tasks",
    "ValidationReport",
    "DependencyIssue",
    "RemovedEdge",
    "FixResult",
    "NextTaskCriteria",
    "TaskRecommendation",
    "BlockedTask",
    "ProjectAnalysis",
    "NextTaskResult",
    "FindTaskResult",
    "validate_dependencies",
    "find_cycles",
    "fix_dependencies",
    "calculate_dependency_depth",
    "add_dependency",
    "remove_dependency",
    "remove_task",
    "set_status",
    "recommend_next_task",
    "complexity_scores",
    "attach_complexity",
    "annotate_tasks",
    "find_task_by_id",
    "TaskGraphError",
    "InvalidIdFormat",
    "InvalidCollection",
    "InvalidCriteria",
    "InvalidStatus",
    "TaskNotFound",
    "InvalidDependency",
    "CircularDependencyError",
]

"""MCP server exposing task dependency and next-task tools."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, List, Optional

from mcp.server.fastmcp import FastMCP

from taskgraph.store import TaskStore
from taskgraph.taskgraph_logging import setup_logging
from taskgraph.workflow import TaskGraphManager

mcp = FastMCP("taskgraph")


PROJECT_MARKER_DIRECTORIES = (os.getenv(TaskStore.STORAGE_DIR_ENV) or TaskStore.DEFAULT_STORAGE_DIR,)


def _candidate_bases() -> List[Path]:
    cwd = Path.cwd().resolve()
    return [cwd, *cwd.parents]


def _locate_project_root() -> Optional[Path]:
    for base in _candidate_bases():
        for marker in PROJECT_MARKER_DIRECTORIES:
            if (base / marker).exists():
                return base
    return None


def _resolve_root(root: Optional[str]) -> Path:
    if root:
        resolved = Path(root).expanduser().resolve()
        if not resolved.exists():
            raise ValueError(f"Provided root '{root}' does not exist.")
        return resolved

    env_root = os.getenv("TASKGRAPH_PROJECT_ROOT")
    if env_root:
        env_path = Path(env_root).expanduser().resolve()
        if not env_path.exists():
            raise ValueError(
                f"Environment variable TASKGRAPH_PROJECT_ROOT points to '{env_root}', which does not exist."
            )
        return env_path

    detected_root = _locate_project_root()
    if detected_root:
        return detected_root

    raise ValueError(
        "Unable to determine project root automatically. Provide the 'root' argument when calling the tool "
        "or set the TASKGRAPH_PROJECT_ROOT environment variable."
    )


def _manager(root: Optional[str]) -> TaskGraphManager:
    return TaskGraphManager(_resolve_root(root))


@mcp.tool()
def validate_dependencies(root: Optional[str] = None) -> Dict[str, Any]:
    """Check every task and subtask dependency for missing references, self references and cycles.
    Read-only: the task file is never modified."""

    return _manager(root).validate_dependencies()


@mcp.tool()
def fix_dependencies(dry_run: bool = False, root: Optional[str] = None) -> Dict[str, Any]:
    """Remove self, missing, duplicate and cycle-closing dependency edges and save the result.
    With dry_run the removals are reported but not written."""

    return _manager(root).fix_dependencies(dry_run=dry_run)


@mcp.tool()
def next_task(
    include_in_progress: Optional[bool] = None,
    priority_weight: Optional[float] = None,
    dependency_weight: Optional[float] = None,
    complexity_weight: Optional[float] = None,
    due_date_weight: Optional[float] = None,
    exclude_task_ids: Optional[List[str]] = None,
    max_complexity: Optional[float] = None,
    preferred_tags: Optional[List[str]] = None,
    assignee: Optional[str] = None,
    max_alternatives: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Recommend the best unblocked task, with ranked alternatives and the blocked tasks.
    Omitted criteria fall back to the 'scoring' section of config.json, then to the defaults."""

    given = {
        "include_in_progress": include_in_progress,
        "priority_weight": priority_weight,
        "dependency_weight": dependency_weight,
        "complexity_weight": complexity_weight,
        "due_date_weight": due_date_weight,
        "exclude_task_ids": exclude_task_ids,
        "max_complexity": max_complexity,
        "preferred_tags": preferred_tags,
        "assignee": assignee,
        "max_alternatives": max_alternatives,
    }
    criteria = {key: value for key, value in given.items() if value is not None}
    return _manager(root).next_task(criteria)


@mcp.tool()
def configure_scoring(
    include_in_progress: Optional[bool] = None,
    priority_weight: Optional[float] = None,
    dependency_weight: Optional[float] = None,
    complexity_weight: Optional[float] = None,
    due_date_weight: Optional[float] = None,
    max_complexity: Optional[float] = None,
    preferred_tags: Optional[List[str]] = None,
    max_alternatives: Optional[int] = None,
    root: Optional[str] = None,
) -> Dict[str, Any]:
    """Save default next_task criteria to the 'scoring' section of config.json.
    Omitted values keep their current setting."""

    given = {
        "include_in_progress": include_in_progress,
        "priority_weight": priority_weight,
        "dependency_weight": dependency_weight,
        "complexity_weight": complexity_weight,
        "due_date_weight": due_date_weight,
        "max_complexity": max_complexity,
        "preferred_tags": preferred_tags,
        "max_alternatives": max_alternatives,
    }
    return _manager(root).configure_scoring({key: value for key, value in given.items() if value is not None})


@mcp.tool()
def record_complexity(scores: Dict[str, float], root: Optional[str] = None) -> Dict[str, Any]:
    """Record complexity scores (1-10) by task ID, e.g. {"3": 7, "5": 2}, in the complexity report."""

    return _manager(root).record_complexity(scores)


@mcp.tool()
def get_task(task_id: str, status_filter: Optional[str] = None, root: Optional[str] = None) -> Dict[str, Any]:
    """Show a task ('5') or subtask ('5.2'). status_filter narrows a task's subtask list."""

    return _manager(root).get_task(task_id, status_filter=status_filter)


@mcp.tool()
def add_dependency(task_id: str, depends_on: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Make task_id depend on depends_on. Rejected when the edge would create a cycle."""

    return _manager(root).add_dependency(task_id, depends_on)


@mcp.tool()
def remove_dependency(task_id: str, depends_on: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Remove the dependency of task_id on depends_on."""

    return _manager(root).remove_dependency(task_id, depends_on)


@mcp.tool()
def remove_task(task_id: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Delete a task or subtask and strip every dependency that referenced it."""

    return _manager(root).remove_task(task_id)


@mcp.tool()
def set_task_status(task_id: str, status: str, root: Optional[str] = None) -> Dict[str, Any]:
    """Set the status of a task or subtask (pending, in-progress, done, review, deferred, cancelled)."""

    return _manager(root).set_task_status(task_id, status)


@mcp.tool()
def get_workflow_guide() -> Dict[str, Any]:
    """Get guidance on the recommended task graph workflow."""
    return {
        "workflow_overview": "Keep the dependency graph consistent, then work through tasks in recommended order",
        "steps": [
            {
                "step": 1,
                "tool": "validate_dependencies",
                "description": "Report missing references, self references and circular dependencies",
                "purpose": "Know whether the graph can be scheduled"
            },
            {
                "step": 2,
                "tool": "fix_dependencies",
                "description": "Remove invalid and cycle-closing edges",
                "purpose": "Make the graph acyclic and fully resolved"
            },
            {
                "step": 3,
                "tool": "next_task",
                "description": "Pick the highest-scoring unblocked task",
                "purpose": "Work on what matters most and is ready now"
            },
            {
                "step": 4,
                "tool": "set_task_status",
                "description": "Mark the task in-progress, then done",
                "purpose": "Unblock the tasks that depend on it"
            }
        ],
        "tips": [
            "Use dry_run with fix_dependencies to preview removals",
            "Raise complexity_weight to favour quick wins once record_complexity has scored the tasks",
            "Use configure_scoring to keep your preferred weights between calls",
            "Use get_task with a subtask ID such as '5.2' to inspect one subtask"
        ]
    }


@mcp.resource("taskgraph://tasks")
def resource_tasks() -> str:
    """Resource view listing the stored tasks with their status and dependencies."""

    try:
        root = _resolve_root(None)
    except ValueError:
        return (
            "No project root detected. Launch tools with a 'root' argument or set TASKGRAPH_PROJECT_ROOT."
        )

    tasks = TaskStore(root).load_tasks()
    if not tasks:
        return "No tasks have been stored yet."

    lines = ["Tasks"]
    for task in tasks:
        deps = ", ".join(str(dep) for dep in task.dependencies) or "none"
        lines.append(f"- {task.id} [{task.status}] {task.title} (depends on: {deps})")
        for subtask in task.subtasks:
            lines.append(f"  - {subtask.ref(task.id)} [{subtask.status}] {subtask.title}")

    return "\n".join(lines)


if __name__ == "__main__":
    log_file = os.getenv("TASKGRAPH_LOG_FILE")
    setup_logging(
        os.getenv("TASKGRAPH_LOG_LEVEL", "INFO").upper(),
        Path(log_file) if log_file else None,
    )
    mcp.run(transport="stdio")

"""Task graph workflow management.

``TaskGraphManager`` drives the validate, repair and recommend flow against
a project's stored task collection. Every method returns a plain dict for the
tool layer; expected failures come back as ``{"error", "suggestion", ...}``
dicts after being logged.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Any, Dict, Optional

from . import graph
from .annotate import find_task_by_id, merge_complexity_scores
from .errors import InvalidCollection, InvalidCriteria, TaskGraphError, TaskNotFound
from .ids import parse_task_id
from .models import NextTaskCriteria
from .recommend import recommend_next_task
from .store import TaskStore
from .taskgraph_logging import (
    log_error_with_context,
    log_fix_event,
    log_operation,
    log_performance,
    log_recommendation_event,
    log_task_change,
    log_validation_event,
)

logger = logging.getLogger("taskgraph.workflow")


def _snake_case(key: str) -> str:
    """Criteria keys may arrive camelCased from tool callers."""
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


class TaskGraphManager:
    """Validate, repair and schedule the tasks stored under one project root."""

    def __init__(self, root: Path | str):
        self.store = TaskStore(root)

    @property
    def root(self) -> Path:
        return self.store.root

    def _error(self, operation: str, error: Exception, suggestion: str, **context: Any) -> Dict[str, Any]:
        logger.error(f"Failed to {operation.replace('_', ' ')}: {error}")
        log_error_with_context(error, {"operation": operation, "root": str(self.root), **context})
        result: Dict[str, Any] = {
            "error": str(error),
            "suggestion": suggestion,
            "project_root": str(self.root),
        }
        if isinstance(error, TaskGraphError):
            result["error_code"] = error.code
            result["details"] = error.details
        return result

    # ------------------------------------------------------------------
    # Validation and repair
    # ------------------------------------------------------------------

    @log_performance("validate_dependencies")
    def validate_dependencies(self) -> Dict[str, Any]:
        """Check the stored collection for missing references, self references and cycles."""
        try:
            tasks = self.store.load_tasks()
            report = graph.validate_dependencies(tasks)
        except TaskGraphError as e:
            return self._error(
                "validate_dependencies", e,
                f"Check that {self.store.tasks_path} holds a list of tasks with unique integer IDs",
            )

        log_validation_event(str(self.root), report.is_valid, report.issue_count)
        if report.is_valid:
            message = f"All dependencies are valid across {len(tasks)} tasks"
            next_step = "next_task"
            tip = "Dependencies are consistent. Use next_task to pick what to work on."
        else:
            message = f"Found {report.issue_count} dependency issues across {len(tasks)} tasks"
            next_step = "fix_dependencies"
            tip = "Run fix_dependencies to remove invalid and circular edges automatically"

        return {
            "project_root": str(self.root),
            "task_count": len(tasks),
            "is_valid": report.is_valid,
            "issue_count": report.issue_count,
            "report": report.to_dict(),
            "message": message,
            "next_suggested_step": next_step,
            "workflow_tip": tip,
        }

    @log_performance("fix_dependencies")
    def fix_dependencies(self, dry_run: bool = False) -> Dict[str, Any]:
        """Repair the stored collection; nothing is written when nothing changed."""
        try:
            with log_operation("fix_dependencies", root=str(self.root), dry_run=dry_run):
                tasks = self.store.load_tasks()
                result = graph.fix_dependencies(tasks)
                saved = False
                if result.changed and not dry_run:
                    self.store.save_tasks(result.tasks)
                    saved = True
        except TaskGraphError as e:
            return self._error(
                "fix_dependencies", e,
                f"Check that {self.store.tasks_path} holds a list of tasks with unique integer IDs",
            )

        log_fix_event(str(self.root), len(result.removed_edges), dry_run=dry_run)
        removed = [edge.to_dict() for edge in result.removed_edges]
        if not result.changed:
            message = "No dependency issues to fix"
        elif dry_run:
            message = f"Would remove {len(removed)} dependency edges"
        else:
            message = f"Removed {len(removed)} dependency edges"

        return {
            "project_root": str(self.root),
            "changed": result.changed,
            "saved": saved,
            "dry_run": dry_run,
            "removed_edges": removed,
            "tasks_path": str(self.store.tasks_path),
            "message": message,
            "next_suggested_step": "fix_dependencies" if dry_run and result.changed else "next_task",
            "workflow_tip": "Dependencies are consistent. Use next_task to pick what to work on."
            if not dry_run or not result.changed
            else "Run fix_dependencies without dry_run to apply these removals",
        }

    # ------------------------------------------------------------------
    # Recommendation and lookup
    # ------------------------------------------------------------------

    @log_performance("next_task")
    def next_task(self, criteria: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Recommend the next task, merging caller criteria over the configured scoring."""
        try:
            merged = self.store.default_criteria().to_dict()
            merged.update({_snake_case(key): value for key, value in (criteria or {}).items()})
            tasks = self.store.load_tasks()
            result = recommend_next_task(tasks, merged, self.store.load_complexity_report())
        except TaskGraphError as e:
            return self._error(
                "next_task", e,
                "Check the criteria weights (non-negative numbers) and the stored task collection",
                criteria=criteria or {},
            )

        recommended = result.recommendation.task.id if result.recommendation else None
        log_recommendation_event(
            str(self.root),
            recommended,
            available=result.analysis.available_tasks,
            blocked=result.analysis.blocked_tasks,
        )

        response = result.to_dict()
        response["project_root"] = str(self.root)
        if recommended is not None:
            response["message"] = f"Next task: {recommended} - {result.recommendation.task.title}"
            response["next_suggested_step"] = "set_task_status"
            response["workflow_tip"] = f"Mark task {recommended} in-progress with set_task_status when you start"
        elif result.blocked_tasks:
            response["message"] = f"No task is ready; {len(result.blocked_tasks)} tasks are blocked"
            response["next_suggested_step"] = "validate_dependencies"
            response["workflow_tip"] = "Complete the blocking tasks or check for missing dependencies"
        else:
            response["message"] = "No pending tasks"
            response["next_suggested_step"] = None
            response["workflow_tip"] = "All tasks are done or none match the criteria"
        return response

    def configure_scoring(self, criteria: Dict[str, Any]) -> Dict[str, Any]:
        """Store default next-task criteria in the ``scoring`` section of config.json."""
        try:
            with log_operation("configure_scoring", root=str(self.root)):
                config = self.store.load_config()
                merged = self.store.default_criteria().to_dict()
                merged.update({_snake_case(key): value for key, value in criteria.items()})
                scoring = NextTaskCriteria.from_dict(merged)
                issues = scoring.validate()
                if issues:
                    raise InvalidCriteria(issues)
                config["scoring"] = scoring.to_dict()
                self.store.save_config(config)
        except TaskGraphError as e:
            return self._error(
                "configure_scoring", e,
                "Weights must be non-negative numbers and max_complexity a number from 1 to 10",
                criteria=criteria,
            )

        logger.info(f"Updated scoring defaults in {self.store.config_path}")
        return {
            "project_root": str(self.root),
            "config_path": str(self.store.config_path),
            "scoring": config["scoring"],
            "message": "Scoring defaults saved",
            "next_suggested_step": "next_task",
            "workflow_tip": "next_task now uses these criteria unless a call overrides them",
        }

    def record_complexity(self, scores: Dict[str, Any]) -> Dict[str, Any]:
        """Merge per-task complexity scores (1-10) into the complexity report."""
        try:
            with log_operation("record_complexity", root=str(self.root), count=len(scores)):
                known = {task.id for task in self.store.load_tasks()}
                parsed: Dict[int, float] = {}
                for key, value in scores.items():
                    ref = parse_task_id(key)
                    if ref.is_subtask:
                        raise InvalidCollection(
                            f"Complexity is scored per task, not per subtask: {ref}",
                            {"task_id": str(ref)},
                        )
                    if ref.task_id not in known:
                        raise TaskNotFound(ref.task_id, sorted(known))
                    if isinstance(value, bool) or not isinstance(value, (int, float)):
                        value = None
                    if value is None or not 1 <= value <= 10:
                        raise InvalidCollection(
                            f"Complexity score for task {ref.task_id} must be a number from 1 to 10",
                            {"task_id": ref.task_id, "score": repr(scores[key])},
                        )
                    parsed[ref.task_id] = value
                report = merge_complexity_scores(self.store.load_complexity_report(), parsed)
                self.store.save_complexity_report(report)
        except TaskGraphError as e:
            return self._error(
                "record_complexity", e,
                "Use existing task IDs as keys and scores from 1 (trivial) to 10 (very complex)",
            )

        return {
            "project_root": str(self.root),
            "report_path": str(self.store.complexity_report_path),
            "recorded": {str(task_id): score for task_id, score in sorted(parsed.items())},
            "message": f"Recorded complexity for {len(parsed)} tasks",
            "next_suggested_step": "next_task",
            "workflow_tip": "Raise complexity_weight in next_task to favour quick wins",
        }

    def get_task(self, task_id: str, status_filter: Optional[str] = None) -> Dict[str, Any]:
        """Show one task or subtask, with its complexity score when a report exists."""
        try:
            tasks = self.store.load_tasks()
            found = find_task_by_id(tasks, task_id, self.store.load_complexity_report(), status_filter)
            if not found.found:
                raise TaskNotFound(task_id, [task.id for task in tasks])
        except TaskGraphError as e:
            return self._error(
                "get_task", e,
                "Use an existing task ID such as '5' or a subtask ID such as '5.2'",
                task_id=task_id,
            )

        response = found.to_dict()
        response["project_root"] = str(self.root)
        return response

    # ------------------------------------------------------------------
    # Editing
    # ------------------------------------------------------------------

    def _apply(self, operation: str, task_id: str, edit, suggestion: str, **context: Any) -> Dict[str, Any]:
        try:
            with log_operation(operation, root=str(self.root), task_id=str(task_id), **context):
                tasks = edit(self.store.load_tasks())
                ref = parse_task_id(task_id)
                for task in tasks:
                    if task.id == ref.task_id:
                        task.touch()
                self.store.save_tasks(tasks)
        except TaskGraphError as e:
            return self._error(operation, e, suggestion, task_id=str(task_id), **context)

        log_task_change(str(self.root), operation, str(task_id), **context)
        return {
            "project_root": str(self.root),
            "task_id": str(task_id),
            "tasks_path": str(self.store.tasks_path),
            "task_count": len(tasks),
            **context,
        }

    def add_dependency(self, task_id: str, depends_on: str) -> Dict[str, Any]:
        """Make ``task_id`` depend on ``depends_on``, refusing edges that close a cycle."""
        result = self._apply(
            "add_dependency",
            task_id,
            lambda tasks: graph.add_dependency(tasks, task_id, depends_on),
            "Both IDs must exist, and the new edge must not create a circular dependency",
            depends_on=str(depends_on),
        )
        if "error" not in result:
            result["message"] = f"Task {task_id} now depends on {depends_on}"
            result["next_suggested_step"] = "next_task"
            result["workflow_tip"] = "Use next_task to see how the new dependency changes the schedule"
        return result

    def remove_dependency(self, task_id: str, depends_on: str) -> Dict[str, Any]:
        result = self._apply(
            "remove_dependency",
            task_id,
            lambda tasks: graph.remove_dependency(tasks, task_id, depends_on),
            f"Check that task '{task_id}' exists",
            depends_on=str(depends_on),
        )
        if "error" not in result:
            result["message"] = f"Task {task_id} no longer depends on {depends_on}"
            result["next_suggested_step"] = "next_task"
        return result

    def remove_task(self, task_id: str) -> Dict[str, Any]:
        """Delete a task or subtask and every dependency on it."""
        result = self._apply(
            "remove_task",
            task_id,
            lambda tasks: graph.remove_task(tasks, task_id),
            f"Check that task '{task_id}' exists",
        )
        if "error" not in result:
            result["message"] = f"Removed {task_id} and all references to it"
            result["next_suggested_step"] = "validate_dependencies"
            result["workflow_tip"] = "Run validate_dependencies to confirm the graph is still consistent"
        return result

    def set_task_status(self, task_id: str, status: str) -> Dict[str, Any]:
        result = self._apply(
            "set_task_status",
            task_id,
            lambda tasks: graph.set_status(tasks, task_id, status),
            "Use a status such as 'pending', 'in-progress' or 'done' and an existing task ID",
            status=status,
        )
        if "error" not in result:
            result["message"] = f"Task {task_id} set to {status}"
            result["next_suggested_step"] = "next_task" if status == "done" else None
            if status == "done":
                result["workflow_tip"] = "Use next_task to pick up the work this task unblocked"
        return result

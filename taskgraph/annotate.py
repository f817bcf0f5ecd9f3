"""Complexity and status annotation for task lookups.

Helpers here never modify the canonical records: they return copies with the
report's complexity score attached, or with a filtered subtask list.
"""

from __future__ import annotations

import copy
import logging
from typing import Any, Dict, List, Mapping, Optional, TypeVar, Union

from .ids import parse_task_id
from .models import FindTaskResult, Subtask, Task, coerce_tasks

logger = logging.getLogger("taskgraph.annotate")

ComplexityReport = Union[Mapping[Any, Any], None]
Item = TypeVar("Item", Task, Subtask)


def complexity_scores(report: ComplexityReport) -> Dict[int, float]:
    """Normalize a complexity report to ``{task_id: score}``.

    Accepts a plain mapping of task ID to score, or the analysis report
    shape ``{"complexityAnalysis": [{"taskId": 1, "complexityScore": 7}, ...]}``.
    Entries without a usable ID or score are skipped.
    """
    if not report:
        return {}

    entries = report.get("complexityAnalysis", report.get("complexity_analysis"))
    if entries is not None:
        scores: Dict[int, float] = {}
        for entry in entries:
            task_id = entry.get("taskId", entry.get("task_id"))
            score = entry.get("complexityScore", entry.get("complexity_score", entry.get("score")))
            if (
                isinstance(task_id, int) and not isinstance(task_id, bool)
                and isinstance(score, (int, float)) and not isinstance(score, bool)
            ):
                scores[task_id] = score
        return scores

    scores = {}
    for key, score in report.items():
        if not isinstance(score, (int, float)) or isinstance(score, bool):
            continue
        try:
            ref = parse_task_id(key)
        except ValueError:
            logger.debug(f"Skipping complexity entry with key {key!r}")
            continue
        if not ref.is_subtask:
            scores[ref.task_id] = score
    return scores


def merge_complexity_scores(report: ComplexityReport, scores: Mapping[int, float]) -> Dict[str, Any]:
    """Return a new report with ``scores`` written over the existing entries.

    The shape of an existing report is kept. Without one, the analysis shape
    is used.
    """
    merged: Dict[str, Any] = copy.deepcopy(dict(report)) if report else {"complexityAnalysis": []}
    key = "complexity_analysis" if "complexity_analysis" in merged else "complexityAnalysis"
    if key not in merged:
        for task_id, score in scores.items():
            merged[str(task_id)] = score
        return merged

    entries = merged[key] = list(merged[key] or [])
    pending = dict(scores)
    for entry in entries:
        task_id = entry.get("taskId", entry.get("task_id"))
        if task_id in pending:
            entry["complexityScore"] = pending.pop(task_id)
            entry.pop("complexity_score", None)
            entry.pop("score", None)
    for task_id, score in sorted(pending.items()):
        entries.append({"taskId": task_id, "complexityScore": score})
    return merged


def attach_complexity(item: Item, report: ComplexityReport, parent_id: Optional[int] = None) -> Item:
    """Return a copy of ``item`` with ``complexity_score`` from the report.

    Subtasks (``parent_id`` given) take their parent's score. When the report
    has no entry the copy keeps whatever score it already had.
    """
    annotated = copy.deepcopy(item)
    scores = complexity_scores(report)
    key = parent_id if parent_id is not None else annotated.id
    if key in scores:
        annotated.complexity_score = scores[key]
    return annotated


def annotate_tasks(tasks: Any, report: ComplexityReport) -> List[Task]:
    """Copies of every task with report scores attached."""
    tasks = coerce_tasks(tasks)
    if not report:
        return [task.copy() for task in tasks]
    scores = complexity_scores(report)
    annotated = []
    for task in tasks:
        clone = task.copy()
        if clone.id in scores:
            clone.complexity_score = scores[clone.id]
        annotated.append(clone)
    return annotated


def find_task_by_id(
    tasks: Any,
    task_id: Any,
    complexity_report: ComplexityReport = None,
    status_filter: Optional[str] = None,
) -> FindTaskResult:
    """Look up a task or subtask by ID.

    A composite ID returns a copy of the subtask together with its parent.
    For a top-level task, ``status_filter`` keeps only subtasks with that
    status (case-insensitive) and reports the pre-filter count in
    ``original_subtask_count``. Unknown IDs give an empty result; malformed
    IDs raise InvalidIdFormat.
    """
    ref = parse_task_id(task_id)
    tasks = coerce_tasks(tasks)
    parent = next((task for task in tasks if task.id == ref.task_id), None)
    if parent is None:
        return FindTaskResult()

    if ref.is_subtask:
        subtask = parent.find_subtask(ref.subtask_id)
        if subtask is None:
            return FindTaskResult()
        found = copy.deepcopy(subtask)
        if complexity_report:
            found = attach_complexity(found, complexity_report, parent_id=parent.id)
        return FindTaskResult(task=found, parent=parent.copy())

    result = parent.copy()
    original_subtask_count = None
    if status_filter and result.subtasks:
        original_subtask_count = len(result.subtasks)
        wanted = status_filter.lower()
        result.subtasks = [
            subtask for subtask in result.subtasks
            if subtask.status and subtask.status.lower() == wanted
        ]

    if complexity_report:
        result = attach_complexity(result, complexity_report)
    return FindTaskResult(task=result, original_subtask_count=original_subtask_count)

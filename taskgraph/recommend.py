"""Next-task recommendation.

Candidates are the eligible tasks whose dependencies are all done. Each is
scored as a weighted sum of independent factors:

    score = priority * priority_weight
          + dependency * dependency_weight
          + complexity * complexity_weight
          + due_date * due_date_weight
          + preferred tag bonus

Every factor lies in [0, 1]. Weights are not renormalized, so weights that
sum past 1 give scores past 1. Candidates are ranked by descending score with
ties broken by ascending task ID.
"""

from __future__ import annotations

import logging
from datetime import date, datetime
from typing import Any, Dict, List, Mapping, Optional, Union

from .annotate import ComplexityReport, annotate_tasks
from .errors import InvalidCriteria
from .graph import calculate_dependency_depth
from .models import (
    BlockedTask,
    CLOSED_STATUSES,
    NextTaskCriteria,
    NextTaskResult,
    ProjectAnalysis,
    Task,
    TaskRecommendation,
)

logger = logging.getLogger("taskgraph.recommend")

PRIORITY_SCORES = {"high": 1.0, "medium": 0.5, "low": 0.0}
DEPENDENCY_DEPTH_STEP = 0.1
DUE_DATE_HORIZON_DAYS = 30
QUICK_WIN_COMPLEXITY = 3
DUE_SOON_DAYS = 7
PREFERRED_TAG_BONUS = 0.1
BLOCKED_SHARE_WARNING = 0.3


def _coerce_criteria(criteria: Union[NextTaskCriteria, Mapping[str, Any], None]) -> NextTaskCriteria:
    if criteria is None:
        criteria = NextTaskCriteria()
    elif isinstance(criteria, Mapping):
        criteria = NextTaskCriteria.from_dict(criteria)
    elif not isinstance(criteria, NextTaskCriteria):
        raise InvalidCriteria([f"criteria must be a mapping, got {type(criteria).__name__}"])

    issues = criteria.validate()
    if issues:
        raise InvalidCriteria(issues)
    return criteria


def parse_due_date(value: Any) -> Optional[date]:
    """Read a due date from a date, datetime or ISO string; None if unreadable."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            try:
                return date.fromisoformat(text[:10])
            except ValueError:
                logger.debug(f"Ignoring unreadable due date {value!r}")
    return None


# ----------------------------------------------------------------------
# Factors
# ----------------------------------------------------------------------


def priority_factor(priority: str) -> float:
    return PRIORITY_SCORES.get(priority, PRIORITY_SCORES["medium"])


def dependency_factor(depth: int) -> float:
    """1.0 for a task with no dependencies, lower the deeper its chain."""
    return max(0.0, 1.0 - DEPENDENCY_DEPTH_STEP * depth)


def complexity_factor(complexity: Optional[float]) -> float:
    """Lower complexity scores higher; unknown complexity scores 0."""
    if complexity is None:
        return 0.0
    return min(1.0, max(0.0, 1.0 - (complexity - 1) / 9))


def due_date_factor(due: Optional[date], today: date) -> float:
    """1.0 when due today or overdue, fading to 0 over the horizon."""
    if due is None:
        return 0.0
    days = (due - today).days
    if days <= 0:
        return 1.0
    return max(0.0, 1.0 - days / DUE_DATE_HORIZON_DAYS)


# ----------------------------------------------------------------------
# Eligibility and blocking
# ----------------------------------------------------------------------


def _is_eligible(task: Task, criteria: NextTaskCriteria, excluded: set[int]) -> bool:
    if task.id in excluded:
        return False
    allowed = ("pending", "in-progress") if criteria.include_in_progress else ("pending",)
    if task.status not in allowed:
        return False
    if criteria.assignee and task.assignee != criteria.assignee:
        return False
    complexity = task.effective_complexity
    if criteria.max_complexity is not None and complexity is not None:
        if complexity > criteria.max_complexity:
            return False
    return True


def _blocking_dependencies(task: Task, by_id: Dict[int, Task]) -> List[int]:
    blocking: List[int] = []
    for dep in task.dependencies:
        dep_task = by_id.get(dep)
        if (dep_task is None or dep_task.status != "done") and dep not in blocking:
            blocking.append(dep)
    return blocking


def _blocked_reason(blocking: List[int], by_id: Dict[int, Task]) -> str:
    waiting = [str(dep) for dep in blocking if dep in by_id]
    missing = [str(dep) for dep in blocking if dep not in by_id]
    parts = []
    if waiting:
        parts.append(f"Waiting for completion of tasks: {', '.join(waiting)}")
    if missing:
        parts.append(f"Depends on missing tasks: {', '.join(missing)}")
    return "; ".join(parts)


# ----------------------------------------------------------------------
# Scoring
# ----------------------------------------------------------------------


def score_task(
    task: Task,
    criteria: NextTaskCriteria,
    depth: int,
    today: date,
    dependents: int = 0,
) -> TaskRecommendation:
    """Score one unblocked candidate and explain the result."""
    due = parse_due_date(task.due_date)
    factors = {
        "priority": priority_factor(task.priority),
        "dependencies": dependency_factor(depth),
        "complexity": complexity_factor(task.effective_complexity),
        "due_date": due_date_factor(due, today),
    }
    weights = criteria.weights()
    contributions = {name: factors[name] * weights[name] for name in factors}

    matched_tags = [tag for tag in criteria.preferred_tags if tag in task.tags]
    if matched_tags:
        factors["tags"] = 1.0
        contributions["tags"] = PREFERRED_TAG_BONUS

    reasons: List[str] = []
    if task.priority == "high":
        reasons.append("high priority")
    if not task.dependencies:
        reasons.append("no dependencies")
    else:
        reasons.append(f"no unmet dependencies ({len(task.dependencies)} done)")
    if dependents:
        reasons.append(f"unblocks {dependents} other task{'s' if dependents != 1 else ''}")
    complexity = task.effective_complexity
    if complexity is not None and complexity <= QUICK_WIN_COMPLEXITY:
        reasons.append("low complexity, quick to complete")
    if due is not None:
        days = (due - today).days
        if days < 0:
            reasons.append("overdue")
        elif days <= DUE_SOON_DAYS:
            reasons.append("due within a week")
    if matched_tags:
        reasons.append(f"matches preferred tag '{matched_tags[0]}'")

    return TaskRecommendation(
        task=task,
        score=sum(contributions.values()),
        reasons=reasons,
        factors=factors,
        contributions=contributions,
    )


def _project_recommendations(
    tasks: List[Task], candidates: List[TaskRecommendation], blocked: List[BlockedTask]
) -> List[str]:
    recommendations: List[str] = []
    if not candidates:
        recommendations.append("No tasks are currently available to work on")
    if tasks and len(blocked) > len(tasks) * BLOCKED_SHARE_WARNING:
        recommendations.append(
            "Consider reviewing and completing blocking tasks to unblock the project"
        )
    high_priority_blocked = sum(1 for item in blocked if item.task.priority == "high")
    if high_priority_blocked:
        recommendations.append(
            f"{high_priority_blocked} high-priority tasks are blocked - prioritize their dependencies"
        )
    return recommendations


def recommend_next_task(
    tasks: Any,
    criteria: Union[NextTaskCriteria, Mapping[str, Any], None] = None,
    complexity_report: ComplexityReport = None,
    today: Optional[date] = None,
) -> NextTaskResult:
    """Pick the best unblocked task, rank alternatives and explain blocked ones.

    The input collection is never mutated: returned tasks are annotated
    copies. Raises InvalidCollection for malformed input and InvalidCriteria
    for bad criteria; an empty result is not an error.
    """
    criteria = _coerce_criteria(criteria)
    tasks = annotate_tasks(tasks, complexity_report)
    today = today or date.today()
    by_id = {task.id: task for task in tasks}
    excluded = criteria.excluded_ids()
    depth = calculate_dependency_depth(tasks)

    dependents: Dict[int, int] = {}
    for task in tasks:
        if task.status in CLOSED_STATUSES:
            continue
        for dep in set(task.dependencies):
            if dep != task.id:
                dependents[dep] = dependents.get(dep, 0) + 1

    candidates: List[TaskRecommendation] = []
    blocked: List[BlockedTask] = []
    for task in tasks:
        if not _is_eligible(task, criteria, excluded):
            continue
        blocking = _blocking_dependencies(task, by_id)
        if blocking:
            blocked.append(BlockedTask(
                task=task,
                blocking_dependencies=blocking,
                reason=_blocked_reason(blocking, by_id),
            ))
            continue
        candidates.append(score_task(
            task, criteria, depth.get(task.id, 0), today, dependents.get(task.id, 0)
        ))

    candidates.sort(key=lambda item: (-item.score, item.task.id))

    result = NextTaskResult(
        recommendation=candidates[0] if candidates else None,
        alternatives=candidates[1:1 + criteria.max_alternatives],
        blocked_tasks=blocked,
        analysis=ProjectAnalysis(
            total_tasks=len(tasks),
            available_tasks=len(candidates),
            blocked_tasks=len(blocked),
            recommendations=_project_recommendations(tasks, candidates, blocked),
        ),
    )

    if result.recommendation is not None:
        logger.info(
            f"Recommended task {result.recommendation.task.id} "
            f"(score {result.recommendation.score:.3f}) from {len(candidates)} candidates, "
            f"{len(blocked)} blocked"
        )
    else:
        logger.info(f"No task available; {len(blocked)} blocked")
    return result

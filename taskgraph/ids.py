"""Task and subtask identifiers.

A top-level task is identified by a positive integer. A subtask is identified
by the pair (parent task ID, subtask ID) and rendered as ``"<task>.<subtask>"``.
"""

from __future__ import annotations

from typing import Any, NamedTuple, Optional

from .errors import InvalidIdFormat


class TaskRef(NamedTuple):
    """Parsed identifier of a task (``subtask_id`` is None) or a subtask."""

    task_id: int
    subtask_id: Optional[int] = None

    @property
    def is_subtask(self) -> bool:
        return self.subtask_id is not None

    @property
    def parent(self) -> "TaskRef":
        """The top-level task this reference belongs to."""
        return TaskRef(self.task_id)

    def __str__(self) -> str:
        return format_task_id(self.task_id, self.subtask_id)


def _positive_int(segment: str, raw: Any) -> int:
    segment = segment.strip()
    if not segment.isdigit():
        raise InvalidIdFormat(raw)
    value = int(segment)
    if value <= 0:
        raise InvalidIdFormat(raw)
    return value


def parse_task_id(raw: Any) -> TaskRef:
    """Parse ``"5"``, ``5``, ``"5.2"`` or a TaskRef into a TaskRef.

    Raises InvalidIdFormat for anything that is not a positive integer or a
    dotted pair of positive integers.
    """
    if isinstance(raw, TaskRef):
        return raw
    # bool is an int subclass; True is not a task ID
    if isinstance(raw, bool):
        raise InvalidIdFormat(raw)
    if isinstance(raw, int):
        if raw <= 0:
            raise InvalidIdFormat(raw)
        return TaskRef(raw)
    if not isinstance(raw, str):
        raise InvalidIdFormat(raw)

    parts = raw.strip().split(".")
    if len(parts) == 1:
        return TaskRef(_positive_int(parts[0], raw))
    if len(parts) == 2:
        return TaskRef(_positive_int(parts[0], raw), _positive_int(parts[1], raw))
    raise InvalidIdFormat(raw)


def format_task_id(task_id: int, subtask_id: Optional[int] = None) -> str:
    """Render an identifier; the subtask segment is omitted when absent."""
    if subtask_id is None:
        return str(task_id)
    return f"{task_id}.{subtask_id}"


def ids_equal(a: Any, b: Any) -> bool:
    """Structural equality after parsing, so ``"5"`` equals ``5``."""
    return parse_task_id(a) == parse_task_id(b)

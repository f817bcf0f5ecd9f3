"""On-disk storage for a project's task collection.

Everything lives under ``<root>/.taskgraph/``:

- ``tasks.json``: ``{"tasks": [...], "metadata": {...}}``
- ``reports/task-complexity-report.json``: optional complexity analysis
- ``config.json``: optional settings; its ``"scoring"`` object supplies the
  default next-task criteria
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional

from .errors import InvalidCollection
from .models import NextTaskCriteria, Task, coerce_tasks, utc_timestamp
from .taskgraph_logging import log_error_with_context, log_performance

logger = logging.getLogger("taskgraph.store")


class TaskStore:
    """Load and save the task collection of one project root."""

    STORAGE_DIR_ENV = "TASKGRAPH_STORAGE_DIR"
    DEFAULT_STORAGE_DIR = ".taskgraph"

    def __init__(self, root: Path | str):
        self.root = Path(root).resolve()
        self.base_dir = self.root / (os.getenv(self.STORAGE_DIR_ENV) or self.DEFAULT_STORAGE_DIR)
        self.reports_dir = self.base_dir / "reports"

    @property
    def tasks_path(self) -> Path:
        return self.base_dir / "tasks.json"

    @property
    def complexity_report_path(self) -> Path:
        return self.reports_dir / "task-complexity-report.json"

    @property
    def config_path(self) -> Path:
        return self.base_dir / "config.json"

    def _ensure_dirs(self) -> None:
        try:
            self.reports_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Failed to create storage directories: {e}")
            raise RuntimeError(f"Could not initialize task storage at {self.base_dir}: {e}") from e

    def _read_json(self, path: Path) -> Optional[Any]:
        if not path.exists():
            return None
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise InvalidCollection(f"{path.name} is not valid JSON: {e}", {"path": str(path)}) from e

    def _write_json(self, path: Path, data: Any) -> None:
        """Write to a temporary sibling, then replace, so readers never see half a file."""
        self._ensure_dirs()
        path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(data, handle, indent=2)
                handle.write("\n")
            os.replace(tmp_name, path)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    def exists(self) -> bool:
        return self.tasks_path.exists()

    @log_performance("load_tasks")
    def load_tasks(self) -> List[Task]:
        """Load the stored collection; a missing file is an empty project."""
        try:
            data = self._read_json(self.tasks_path)
            if data is None:
                logger.debug(f"No tasks file at {self.tasks_path}")
                return []
            if isinstance(data, list):
                raw_tasks = data
            elif isinstance(data, dict):
                raw_tasks = data.get("tasks", [])
            else:
                raise InvalidCollection(
                    f"{self.tasks_path.name} must hold an object with a 'tasks' list",
                    {"path": str(self.tasks_path)},
                )
            tasks = coerce_tasks(raw_tasks)
        except InvalidCollection as e:
            log_error_with_context(e, {"operation": "load_tasks", "path": str(self.tasks_path)})
            raise

        logger.info(f"Loaded {len(tasks)} tasks from {self.tasks_path}")
        return tasks

    def load_metadata(self) -> Dict[str, Any]:
        data = self._read_json(self.tasks_path)
        if isinstance(data, dict):
            return dict(data.get("metadata") or {})
        return {}

    @log_performance("save_tasks")
    def save_tasks(self, tasks: List[Task]) -> Path:
        """Persist the collection; complexity annotations are not written."""
        metadata = self.load_metadata() if self.exists() else {}
        metadata.setdefault("created", utc_timestamp())
        metadata["updated"] = utc_timestamp()
        metadata["task_count"] = len(tasks)

        payload = {
            "tasks": [task.to_dict(include_annotations=False) for task in tasks],
            "metadata": metadata,
        }
        self._write_json(self.tasks_path, payload)
        logger.info(f"Saved {len(tasks)} tasks to {self.tasks_path}")
        return self.tasks_path

    # ------------------------------------------------------------------
    # Complexity report and configuration
    # ------------------------------------------------------------------

    def load_complexity_report(self) -> Optional[Dict[str, Any]]:
        report = self._read_json(self.complexity_report_path)
        if report is not None and not isinstance(report, dict):
            logger.warning(f"Ignoring complexity report that is not an object: {self.complexity_report_path}")
            return None
        return report

    def save_complexity_report(self, report: Dict[str, Any]) -> Path:
        self._write_json(self.complexity_report_path, report)
        return self.complexity_report_path

    def load_config(self) -> Dict[str, Any]:
        config = self._read_json(self.config_path)
        if config is None:
            return {}
        if not isinstance(config, dict):
            raise InvalidCollection(f"{self.config_path.name} must hold an object", {"path": str(self.config_path)})
        return config

    def save_config(self, config: Dict[str, Any]) -> Path:
        self._write_json(self.config_path, config)
        return self.config_path

    def default_criteria(self) -> NextTaskCriteria:
        """Criteria from the ``scoring`` section of config.json, else the defaults."""
        scoring = self.load_config().get("scoring") or {}
        return NextTaskCriteria.from_dict(scoring)

"""
Integration tests for the stored-project workflow: load a task file, validate
it, repair it, pick the next task and persist status changes, both through
the library functions and through the MCP tool functions in main.py.
"""

import json
import tempfile
from datetime import date
from pathlib import Path

import pytest
from unittest.mock import MagicMock

import main
from taskgraph import fix_dependencies, recommend_next_task, validate_dependencies
from taskgraph.store import TaskStore
from taskgraph.taskgraph_logging import observability_hooks
from taskgraph.workflow import TaskGraphManager


LEGACY_TASK_FILE = {
    "tasks": [
        {
            "id": 1,
            "title": "Design schema",
            "status": "done",
            "priority": "high",
            "dependencies": [],
            "subtasks": [
                {"id": 1, "title": "Draft", "status": "done", "dependencies": []},
                {"id": 2, "title": "Review", "status": "done", "dependencies": [1]},
            ],
        },
        {
            "id": 2,
            "title": "Implement API",
            "status": "pending",
            "priority": "high",
            "dependencies": [1, 4],
            "testStrategy": "Contract tests",
            "subtasks": [
                {"id": 1, "title": "Routes", "dependencies": [2]},
                {"id": 2, "title": "Handlers", "dependencies": [1]},
            ],
        },
        {"id": 3, "title": "Write docs", "status": "pending", "priority": "low", "dependencies": [2]},
        {"id": 4, "title": "Provision DB", "status": "pending", "priority": "medium", "dependencies": [2, 77]},
        {"id": 5, "title": "Set up CI", "status": "pending", "priority": "medium", "dependencies": [5]},
    ],
    "metadata": {"projectName": "demo"},
}


@pytest.fixture
def project_root():
    with tempfile.TemporaryDirectory() as temp_dir:
        root = Path(temp_dir)
        storage = root / ".taskgraph"
        storage.mkdir()
        (storage / "tasks.json").write_text(json.dumps(LEGACY_TASK_FILE), encoding="utf-8")
        yield root


class TestLibraryFlow:
    """Load, validate, fix, recommend and persist with the library functions."""

    def test_full_flow(self, project_root):
        store = TaskStore(project_root)
        tasks = store.load_tasks()
        assert tasks[1].test_strategy == "Contract tests"

        report = validate_dependencies(tasks)
        assert not report.is_valid
        assert report.self_references == [5]
        assert report.missing_references == [(4, 77)]
        assert report.cycles == [[2, 4]]
        assert [issue.type for issue in report.subtask_issues] == ["circular"]

        result = fix_dependencies(tasks)
        assert validate_dependencies(result.tasks).is_valid
        # the loaded collection is untouched until the repaired copy is saved
        assert tasks[3].dependencies == [2, 77]

        store.save_tasks(result.tasks)
        reloaded = store.load_tasks()
        assert validate_dependencies(reloaded).is_valid
        assert store.load_metadata()["projectName"] == "demo"

        next_result = recommend_next_task(reloaded, today=date(2026, 1, 15))
        assert next_result.recommendation is not None
        assert next_result.recommendation.task.status == "pending"
        assert all(item.task.id != next_result.recommendation.task.id for item in next_result.blocked_tasks)


class TestManagerFlow:
    """The same flow through TaskGraphManager."""

    def test_validate_fix_next_complete(self, project_root):
        manager = TaskGraphManager(project_root)

        assert manager.validate_dependencies()["is_valid"] is False
        fixed = manager.fix_dependencies()
        assert fixed["saved"] is True
        reasons = sorted({edge["reason"] for edge in fixed["removed_edges"]})
        assert reasons == ["cycle", "missing", "self"]
        assert manager.validate_dependencies()["is_valid"] is True
        assert manager.fix_dependencies()["changed"] is False

        first = manager.next_task()
        chosen = first["recommendation"]["task"]["id"]
        manager.set_task_status(str(chosen), "done")

        second = manager.next_task()
        if second["recommendation"] is not None:
            assert second["recommendation"]["task"]["id"] != chosen

    def test_hooks_receive_events(self, project_root):
        callback = MagicMock()
        observability_hooks.register_hook("dependencies_fixed", callback)
        try:
            TaskGraphManager(project_root).fix_dependencies()
        finally:
            observability_hooks.unregister_hook("dependencies_fixed", callback)
        assert callback.call_args.kwargs["removed_edges"] >= 3


class TestToolLayer:
    """The MCP tool functions registered in main.py."""

    def test_tools_with_explicit_root(self, project_root):
        root = str(project_root)
        assert main.validate_dependencies(root=root)["is_valid"] is False
        assert main.fix_dependencies(root=root)["changed"] is True

        result = main.next_task(priority_weight=1.0, dependency_weight=0.0, root=root)
        assert result["recommendation"] is not None

        task = main.get_task("2.1", root=root)
        assert task["is_subtask"] is True
        assert task["parent_task"]["id"] == 2

    def test_scoring_and_complexity_tools(self, project_root):
        root = str(project_root)
        main.fix_dependencies(root=root)

        configured = main.configure_scoring(
            priority_weight=0.0, dependency_weight=0.0, complexity_weight=1.0, root=root
        )
        assert configured["scoring"]["complexity_weight"] == 1.0
        recorded = main.record_complexity({"4": 8, "5": 2}, root=root)
        assert recorded["recorded"] == {"4": 8, "5": 2}

        result = main.next_task(root=root)
        assert result["recommendation"]["task"]["id"] == 5
        assert result["recommendation"]["task"]["complexity_score"] == 2

        rejected = main.configure_scoring(max_complexity=42, root=root)
        assert rejected["error_code"] == "INVALID_CRITERIA"

    def test_root_from_environment(self, project_root, monkeypatch):
        monkeypatch.setenv("TASKGRAPH_PROJECT_ROOT", str(project_root))
        assert main.validate_dependencies()["task_count"] == 5

    def test_root_detected_from_cwd(self, project_root, monkeypatch):
        monkeypatch.delenv("TASKGRAPH_PROJECT_ROOT", raising=False)
        monkeypatch.chdir(project_root)
        assert main._resolve_root(None) == project_root.resolve()

    def test_missing_root_raises(self, tmp_path):
        with pytest.raises(ValueError):
            main._resolve_root(str(tmp_path / "does-not-exist"))

    def test_resource_listing(self, project_root, monkeypatch):
        monkeypatch.setenv("TASKGRAPH_PROJECT_ROOT", str(project_root))
        text = main.resource_tasks()
        assert "- 1 [done] Design schema" in text
        assert "  - 2.1 [pending] Routes" in text

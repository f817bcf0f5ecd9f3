"""Unit tests for TaskGraphManager.

This module tests the dict-returning manager used by the MCP tools,
including its error responses and workflow hints.
"""

import json

import pytest
from unittest.mock import patch

from taskgraph.models import Task
from taskgraph.store import TaskStore
from taskgraph.workflow import TaskGraphManager


@pytest.fixture
def project(tmp_path):
    """A project root with a small stored task collection."""
    store = TaskStore(tmp_path)
    store.save_tasks([
        Task(id=1, title="Set up repository", priority="high"),
        Task(id=2, title="Write parser", dependencies=[1]),
        Task(id=3, title="Write docs", priority="low"),
    ])
    return tmp_path


@pytest.fixture
def broken_project(tmp_path):
    store = TaskStore(tmp_path)
    store.save_tasks([
        Task(id=1, title="A", dependencies=[2]),
        Task(id=2, title="B", dependencies=[1, 99]),
    ])
    return tmp_path


class TestValidation:
    """Test cases for validate_dependencies."""

    def test_valid_project(self, project):
        result = TaskGraphManager(project).validate_dependencies()
        assert result["is_valid"] is True
        assert result["task_count"] == 3
        assert result["next_suggested_step"] == "next_task"

    def test_invalid_project_suggests_fix(self, broken_project):
        result = TaskGraphManager(broken_project).validate_dependencies()
        assert result["is_valid"] is False
        assert result["issue_count"] == 2
        assert result["report"]["missing_references"] == [{"task_id": 2, "dependency_id": 99}]
        assert result["next_suggested_step"] == "fix_dependencies"

    def test_corrupt_file_returns_error(self, tmp_path):
        store = TaskStore(tmp_path)
        store.base_dir.mkdir(parents=True)
        store.tasks_path.write_text("{oops", encoding="utf-8")

        with patch("taskgraph.workflow.log_error_with_context") as mock_log:
            result = TaskGraphManager(tmp_path).validate_dependencies()

        assert result["error_code"] == "INVALID_COLLECTION"
        assert "suggestion" in result
        mock_log.assert_called_once()


class TestFix:
    """Test cases for fix_dependencies."""

    def test_fix_persists_changes(self, broken_project):
        manager = TaskGraphManager(broken_project)
        result = manager.fix_dependencies()

        assert result["changed"] is True
        assert result["saved"] is True
        assert {"from": "2", "to": "99", "reason": "missing"} in result["removed_edges"]
        assert {"from": "2", "to": "1", "reason": "cycle"} in result["removed_edges"]
        assert manager.validate_dependencies()["is_valid"] is True

    def test_dry_run_does_not_write(self, broken_project):
        manager = TaskGraphManager(broken_project)
        before = manager.store.tasks_path.read_text(encoding="utf-8")

        result = manager.fix_dependencies(dry_run=True)

        assert result["changed"] is True
        assert result["saved"] is False
        assert manager.store.tasks_path.read_text(encoding="utf-8") == before

    def test_clean_project_is_not_rewritten(self, project):
        manager = TaskGraphManager(project)
        with patch.object(TaskStore, "save_tasks") as mock_save:
            result = manager.fix_dependencies()
        assert result["changed"] is False
        mock_save.assert_not_called()


class TestNextTask:
    """Test cases for next_task."""

    def test_recommendation(self, project):
        result = TaskGraphManager(project).next_task()
        assert result["recommendation"]["task"]["id"] == 1
        assert [item["task"]["id"] for item in result["blocked_tasks"]] == [2]
        assert result["next_suggested_step"] == "set_task_status"

    def test_camel_case_criteria(self, project):
        result = TaskGraphManager(project).next_task({"excludeTaskIds": [1]})
        assert result["recommendation"]["task"]["id"] == 3

    def test_config_scoring_is_used(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_config({"scoring": {"priority_weight": 0, "dependency_weight": 0}})
        result = manager.next_task()
        assert result["recommendation"]["score"] == 0
        # equal scores fall back to ID order
        assert result["recommendation"]["task"]["id"] == 1

    def test_invalid_criteria(self, project):
        result = TaskGraphManager(project).next_task({"priority_weight": -2})
        assert result["error_code"] == "INVALID_CRITERIA"
        assert "suggestion" in result

    def test_non_numeric_config_value_returns_error(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_config({"scoring": {"max_complexity": "5"}})
        result = manager.next_task()
        assert result["error_code"] == "INVALID_CRITERIA"
        assert result["details"]["issues"] == ["max_complexity must be a number, got: '5'"]

    def test_string_flag_in_config_returns_error(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_config({"scoring": {"include_in_progress": "false"}})
        assert manager.next_task()["error_code"] == "INVALID_CRITERIA"

    def test_malformed_task_file_returns_error(self, tmp_path):
        store = TaskStore(tmp_path)
        store.base_dir.mkdir(parents=True)
        store.tasks_path.write_text(json.dumps({"tasks": [
            {"id": 1, "title": "A", "priority": "urgent"},
            {"id": 2, "title": "B", "complexity": "hard"},
        ]}), encoding="utf-8")
        manager = TaskGraphManager(tmp_path)

        assert manager.next_task()["error_code"] == "INVALID_COLLECTION"
        assert manager.validate_dependencies()["error_code"] == "INVALID_COLLECTION"

    def test_complexity_report_used(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_complexity_report({"1": 9, "3": 1})
        result = manager.next_task({"priority_weight": 0, "dependency_weight": 0, "complexity_weight": 1})
        assert result["recommendation"]["task"]["id"] == 3
        assert result["recommendation"]["task"]["complexity_score"] == 1

    def test_empty_project(self, tmp_path):
        result = TaskGraphManager(tmp_path).next_task()
        assert result["recommendation"] is None
        assert result["message"] == "No pending tasks"


class TestLookupAndEditing:
    """Test cases for get_task and the editing operations."""

    def test_get_task(self, project):
        result = TaskGraphManager(project).get_task("2")
        assert result["task"]["title"] == "Write parser"

    def test_get_unknown_task(self, project):
        result = TaskGraphManager(project).get_task("42")
        assert result["error_code"] == "TASK_NOT_FOUND"
        assert result["details"]["available_ids"] == [1, 2, 3]

    def test_get_malformed_id(self, project):
        assert TaskGraphManager(project).get_task("two")["error_code"] == "INVALID_ID_FORMAT"

    def test_add_dependency_persists(self, project):
        manager = TaskGraphManager(project)
        result = manager.add_dependency("3", "2")
        assert result["message"] == "Task 3 now depends on 2"
        stored = json.loads(manager.store.tasks_path.read_text(encoding="utf-8"))
        assert stored["tasks"][2]["dependencies"] == [2]
        assert stored["tasks"][2]["updated"] is not None

    def test_add_dependency_cycle_rejected(self, project):
        manager = TaskGraphManager(project)
        result = manager.add_dependency("1", "2")
        assert result["error_code"] == "CIRCULAR_DEPENDENCY"
        assert manager.store.load_tasks()[0].dependencies == []

    def test_remove_dependency(self, project):
        manager = TaskGraphManager(project)
        manager.remove_dependency("2", "1")
        assert manager.store.load_tasks()[1].dependencies == []

    def test_remove_task(self, project):
        manager = TaskGraphManager(project)
        result = manager.remove_task("1")
        assert result["next_suggested_step"] == "validate_dependencies"
        tasks = manager.store.load_tasks()
        assert [task.id for task in tasks] == [2, 3]
        assert tasks[0].dependencies == []

    def test_set_status_unblocks(self, project):
        manager = TaskGraphManager(project)
        manager.set_task_status("1", "done")
        result = manager.next_task()
        assert result["recommendation"]["task"]["id"] == 2

    def test_set_invalid_status(self, project):
        result = TaskGraphManager(project).set_task_status("1", "finished")
        assert result["error_code"] == "INVALID_STATUS"


class TestScoringAndComplexity:
    """Test cases for configure_scoring and record_complexity."""

    def test_configure_scoring_persists(self, project):
        manager = TaskGraphManager(project)
        result = manager.configure_scoring({"priorityWeight": 0, "dependency_weight": 0, "complexity_weight": 1})
        assert result["scoring"]["complexity_weight"] == 1
        assert result["next_suggested_step"] == "next_task"

        stored = json.loads(manager.store.config_path.read_text(encoding="utf-8"))
        assert stored["scoring"]["priority_weight"] == 0
        assert manager.store.default_criteria().complexity_weight == 1

    def test_configure_scoring_keeps_other_settings(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_config({"theme": "dark", "scoring": {"due_date_weight": 0.4}})
        manager.configure_scoring({"priority_weight": 0.1})

        config = manager.store.load_config()
        assert config["theme"] == "dark"
        assert config["scoring"]["due_date_weight"] == 0.4
        assert config["scoring"]["priority_weight"] == 0.1

    def test_configure_scoring_rejects_invalid_values(self, project):
        manager = TaskGraphManager(project)
        result = manager.configure_scoring({"max_complexity": "5", "priority_weight": -1})
        assert result["error_code"] == "INVALID_CRITERIA"
        assert len(result["details"]["issues"]) == 2
        assert not manager.store.config_path.exists()

    def test_record_complexity_feeds_next_task(self, project):
        manager = TaskGraphManager(project)
        result = manager.record_complexity({"1": 9, "3": 2})
        assert result["recorded"] == {"1": 9, "3": 2}

        report = manager.store.load_complexity_report()
        assert report["complexityAnalysis"] == [
            {"taskId": 1, "complexityScore": 9},
            {"taskId": 3, "complexityScore": 2},
        ]
        best = manager.next_task({"priority_weight": 0, "dependency_weight": 0, "complexity_weight": 1})
        assert best["recommendation"]["task"]["id"] == 3

    def test_record_complexity_updates_existing_entries(self, project):
        manager = TaskGraphManager(project)
        manager.store.save_complexity_report(
            {"meta": {"generatedAt": "2026-01-01"}, "complexityAnalysis": [{"taskId": 1, "complexityScore": 4}]}
        )
        manager.record_complexity({"1": 6})

        report = manager.store.load_complexity_report()
        assert report["meta"] == {"generatedAt": "2026-01-01"}
        assert report["complexityAnalysis"] == [{"taskId": 1, "complexityScore": 6}]

    def test_record_complexity_unknown_task(self, project):
        result = TaskGraphManager(project).record_complexity({"42": 5})
        assert result["error_code"] == "TASK_NOT_FOUND"

    @pytest.mark.parametrize("scores", [{"1": 11}, {"1": "5"}, {"1": True}, {"1.1": 5}])
    def test_record_complexity_rejects_bad_input(self, project, scores):
        manager = TaskGraphManager(project)
        result = manager.record_complexity(scores)
        assert result["error_code"] == "INVALID_COLLECTION"
        assert manager.store.load_complexity_report() is None

"""
Contract tests for dependency validation, repair and next-task selection:
repair is idempotent and leaves no cycles or missing references, selection
is deterministic and monotone in the priority weight, and identifiers
round-trip through parse and format.
"""

import random
from datetime import date

import pytest

from taskgraph import (
    InvalidIdFormat,
    TaskRef,
    fix_dependencies,
    format_task_id,
    parse_task_id,
    recommend_next_task,
    validate_dependencies,
)

TODAY = date(2026, 1, 15)


def random_collection(seed, size=12, max_deps=4):
    """A task collection with arbitrary self, missing, duplicate and cyclic edges."""
    rng = random.Random(seed)
    tasks = []
    for task_id in range(1, size + 1):
        deps = [rng.randint(1, size + 3) for _ in range(rng.randint(0, max_deps))]
        subtasks = []
        for sub_id in range(1, rng.randint(0, 3) + 1):
            sub_deps = [rng.randint(1, 4) for _ in range(rng.randint(0, 2))]
            if rng.random() < 0.3:
                sub_deps.append(f"{rng.randint(1, size + 2)}.{rng.randint(1, 3)}")
            subtasks.append({"id": sub_id, "title": f"Sub {sub_id}", "dependencies": sub_deps})
        tasks.append({
            "id": task_id,
            "title": f"Task {task_id}",
            "status": rng.choice(["pending", "pending", "done", "in-progress"]),
            "priority": rng.choice(["low", "medium", "high"]),
            "dependencies": deps,
            "subtasks": subtasks,
        })
    return tasks


SEEDS = list(range(40))


class TestFixProperties:
    """Properties that hold for every collection after repair."""

    @pytest.mark.parametrize("seed", SEEDS)
    def test_fix_is_idempotent(self, seed):
        once = fix_dependencies(random_collection(seed))
        twice = fix_dependencies(once.tasks)
        assert twice.removed_edges == []

    @pytest.mark.parametrize("seed", SEEDS)
    def test_no_cycles_after_fix(self, seed):
        report = validate_dependencies(fix_dependencies(random_collection(seed)).tasks)
        assert report.cycles == []

    @pytest.mark.parametrize("seed", SEEDS)
    def test_no_missing_references_after_fix(self, seed):
        report = validate_dependencies(fix_dependencies(random_collection(seed)).tasks)
        assert report.missing_references == []
        assert report.self_references == []
        assert report.subtask_issues == []
        assert report.is_valid

    def test_fix_on_consistent_collection_is_noop(self):
        tasks = [
            {"id": 1, "title": "a", "dependencies": []},
            {"id": 2, "title": "b", "dependencies": [1]},
        ]
        result = fix_dependencies(tasks)
        assert result.removed_edges == []
        assert [task.dependencies for task in result.tasks] == [[], [1]]


class TestRecommendationProperties:
    """Properties of recommend_next_task."""

    @pytest.mark.parametrize("seed", SEEDS[:10])
    def test_deterministic(self, seed):
        tasks = random_collection(seed)
        first = recommend_next_task(tasks, today=TODAY).to_dict()
        second = recommend_next_task(tasks, today=TODAY).to_dict()
        assert first == second

    def test_priority_weight_monotonicity(self):
        tasks = [
            {"id": 1, "title": "low", "priority": "low", "complexity": 1},
            {"id": 2, "title": "high", "priority": "high", "complexity": 9},
        ]
        previous_gap = None
        for weight in (0.0, 0.2, 0.5, 1.0, 3.0):
            result = recommend_next_task(
                tasks,
                {"priority_weight": weight, "dependency_weight": 0.3, "complexity_weight": 0.5},
                today=TODAY,
            )
            scores = {item.task.id: item.score for item in [result.recommendation] + result.alternatives}
            gap = scores[2] - scores[1]
            if previous_gap is not None:
                assert gap >= previous_gap
            previous_gap = gap
        assert result.recommendation.task.id == 2


class TestIdRoundTrip:
    """parse_task_id(format_task_id(t, s)) gives back (t, s)."""

    @pytest.mark.parametrize("task_id", [1, 2, 12, 999, 123456])
    @pytest.mark.parametrize("subtask_id", [None, 1, 3, 250])
    def test_round_trip(self, task_id, subtask_id):
        assert parse_task_id(format_task_id(task_id, subtask_id)) == TaskRef(task_id, subtask_id)


class TestConcreteScenarios:
    """Concrete scenarios for the dependency graph and recommendation."""

    def test_chain_recommends_first_and_blocks_rest(self):
        tasks = [
            {"id": 1, "title": "one", "status": "pending", "dependencies": []},
            {"id": 2, "title": "two", "status": "pending", "dependencies": [1]},
            {"id": 3, "title": "three", "status": "pending", "dependencies": [2]},
        ]
        result = recommend_next_task(tasks, today=TODAY)
        assert result.recommendation.task.id == 1
        blocked = {item.task.id: item for item in result.blocked_tasks}
        assert set(blocked) == {2, 3}
        assert blocked[2].blocking_dependencies == [1]
        assert "1" in blocked[2].reason
        assert blocked[3].blocking_dependencies == [2]
        assert "2" in blocked[3].reason

    def test_two_cycle(self):
        tasks = [
            {"id": 1, "title": "one", "dependencies": [2]},
            {"id": 2, "title": "two", "dependencies": [1]},
        ]
        report = validate_dependencies(tasks)
        assert len(report.cycles) == 1
        assert set(report.cycles[0]) == {1, 2}

        result = fix_dependencies(tasks)
        assert len(result.removed_edges) == 1
        remaining = [(task.id, dep) for task in result.tasks for dep in task.dependencies]
        assert len(remaining) == 1
        assert validate_dependencies(result.tasks).is_valid

    def test_self_reference(self):
        tasks = [{"id": 5, "title": "five", "dependencies": [5]}]
        assert validate_dependencies(tasks).self_references == [5]
        assert fix_dependencies(tasks).tasks[0].dependencies == []

    def test_missing_reference(self):
        tasks = [{"id": 7, "title": "seven", "dependencies": [99]}]
        assert validate_dependencies(tasks).missing_references == [(7, 99)]
        assert fix_dependencies(tasks).tasks[0].dependencies == []

    def test_id_parsing(self):
        ref = parse_task_id("12.3")
        assert (ref.task_id, ref.subtask_id) == (12, 3)
        assert format_task_id(12, 3) == "12.3"
        with pytest.raises(InvalidIdFormat):
            parse_task_id("abc")

    def test_all_done(self):
        tasks = [
            {"id": 1, "title": "one", "status": "done"},
            {"id": 2, "title": "two", "status": "done", "dependencies": [1]},
        ]
        result = recommend_next_task(tasks, today=TODAY)
        assert result.recommendation is None
        assert result.alternatives == []
        assert result.blocked_tasks == []

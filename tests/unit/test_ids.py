"""Unit tests for task and subtask identifiers."""

import pytest

from taskgraph.errors import InvalidIdFormat
from taskgraph.ids import TaskRef, format_task_id, ids_equal, parse_task_id


class TestParseTaskId:
    """Test cases for parse_task_id."""

    def test_parse_plain_integer_string(self):
        """Test parsing a top-level task ID."""
        ref = parse_task_id("5")
        assert ref == TaskRef(5)
        assert ref.subtask_id is None
        assert not ref.is_subtask

    def test_parse_composite_id(self):
        """Test parsing a subtask ID."""
        ref = parse_task_id("5.2")
        assert ref == TaskRef(5, 2)
        assert ref.is_subtask
        assert ref.parent == TaskRef(5)

    def test_parse_int_and_taskref(self):
        """Test that integers and existing refs are accepted."""
        assert parse_task_id(7) == TaskRef(7)
        ref = TaskRef(3, 1)
        assert parse_task_id(ref) is ref

    def test_surrounding_whitespace_is_ignored(self):
        assert parse_task_id(" 12 ") == TaskRef(12)

    @pytest.mark.parametrize("raw", ["", "abc", "5.", ".2", "5.2.1", "0", "-1", "5.0", "1.x", None, True, 0, -3, 2.5])
    def test_invalid_ids_raise(self, raw):
        """Test that malformed identifiers raise InvalidIdFormat."""
        with pytest.raises(InvalidIdFormat):
            parse_task_id(raw)

    def test_invalid_id_error_details(self):
        """Test the error carries the offending value."""
        with pytest.raises(InvalidIdFormat) as exc_info:
            parse_task_id("x.y")
        assert exc_info.value.raw == "x.y"
        assert exc_info.value.code == "INVALID_ID_FORMAT"
        assert isinstance(exc_info.value, ValueError)


class TestFormatTaskId:
    """Test cases for format_task_id."""

    def test_format_task(self):
        assert format_task_id(5) == "5"

    def test_format_subtask(self):
        assert format_task_id(5, 2) == "5.2"

    def test_str_of_ref_matches_format(self):
        assert str(TaskRef(9, 4)) == "9.4"
        assert str(TaskRef(9)) == "9"

    def test_parse_format_round_trip(self):
        """Formatting a parsed ID gives back the canonical string."""
        for raw in ("1", "42", "3.7"):
            ref = parse_task_id(raw)
            assert format_task_id(ref.task_id, ref.subtask_id) == raw


class TestIdsEqual:
    """Test cases for ids_equal."""

    def test_string_and_int_are_equal(self):
        assert ids_equal("5", 5)

    def test_composite_ids(self):
        assert ids_equal("5.2", TaskRef(5, 2))
        assert not ids_equal("5.2", "5")
        assert not ids_equal("5.2", "2.5")

    def test_invalid_id_raises(self):
        with pytest.raises(InvalidIdFormat):
            ids_equal("5", "five")

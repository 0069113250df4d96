"""
Tests for local <-> remote field translation.
"""
import pytest

from scoreboard.errors import MalformedResponse
from scoreboard.fields import (
    capitalize, from_remote, status_from_remote, status_to_remote, task_to_remote, to_remote,
)
from scoreboard.schema import ColumnId, Task, TaskPriority, TaskType


class TestStatusMapping:

    def test_known_statuses_map_to_labels(self):
        """Test the four columns map to their remote labels"""
        assert status_to_remote("todo") == "To Do"
        assert status_to_remote("inprogress") == "In Progress"
        assert status_to_remote("review") == "Review"
        assert status_to_remote("complete") == "Complete"

    @pytest.mark.parametrize("column", [c.value for c in ColumnId])
    def test_status_round_trip(self, column):
        """Test every column survives a round trip through its label"""
        assert status_from_remote(status_to_remote(column)) == column

    def test_unknown_status_is_title_cased(self):
        """Test unknown statuses are title cased"""
        assert status_to_remote("on hold") == "On Hold"

    def test_missing_remote_status_is_todo(self):
        """Test a missing remote status reads as To Do"""
        assert status_from_remote(None) == "todo"
        assert status_from_remote("") == "todo"


def test_capitalize_leaves_rest_untouched():
    """Test only the first letter is capitalized"""
    assert capitalize("high") == "High"
    assert capitalize("mIXing") == "MIXing"
    assert capitalize("") == ""


def test_priority_and_type_round_trip():
    """Test priority and type are capitalized remotely"""
    for priority in TaskPriority:
        remote = to_remote({"priority": priority.value})["priority"]
        assert remote == priority.value.capitalize()
        assert remote.lower() == priority.value
    for task_type in TaskType:
        remote = to_remote({"type": task_type.value})["type"]
        assert remote.lower() == task_type.value


def test_to_remote_renames_and_omits_empty():
    """Test fields are renamed and empty values dropped"""
    payload = to_remote({
        "title": "Cue 1M1",
        "description": "",
        "dueDate": "2026-11-01",
        "youtubeUrl": "https://youtu.be/nA8KmHC2Z-g",
        "timestamp": 35,
        "screenshotUrl": None,
        "assignee": {"name": "Max"},
        "instruments": [],
        "completed": False,
    })
    assert payload == {
        "title": "Cue 1M1",
        "due_date": "2026-11-01",
        "youtube_url": "https://youtu.be/nA8KmHC2Z-g",
        "timestamp": "35",
        "assignee_name": "Max",
        "completed": False,
    }


def test_to_remote_partial_update_only_touches_given_fields():
    """Test a partial update sends only the given fields"""
    assert to_remote({"status": "inprogress", "completed": False}) == {
        "status": "In Progress",
        "completed": False,
    }


def test_task_to_remote_drops_id():
    """Test a full task payload has no id"""
    payload = task_to_remote(Task(id="local-1", title="Theme", priority=TaskPriority.HIGH))
    assert "id" not in payload
    assert payload["title"] == "Theme"
    assert payload["priority"] == "High"
    assert payload["status"] == "To Do"


def test_from_remote_applies_defaults():
    """Test defaults fill in fields a record lacks"""
    task = from_remote({"id": "r1", "fields": {"title": "Theme"}})
    assert task.id == "r1"
    assert task.priority is TaskPriority.MEDIUM
    assert task.task_type is TaskType.COMPOSITION
    assert task.status == "todo"
    assert task.completed is False
    assert task.assignee.name == "Unassigned"


def test_from_remote_translates_names():
    """Test remote field names are translated back"""
    task = from_remote({"id": "r2", "fields": {
        "title": "Chase",
        "status": "In Progress",
        "priority": "High",
        "type": "Recording",
        "due_date": "2026-12-24",
        "assignee_name": "Lorne",
        "youtube_url": "https://youtu.be/x",
        "timestamp": "90",
        "screenshot_url": "https://img/x.png",
        "duration": 120,
        "instruments": ["Drums"],
        "completed": True,
    }})
    assert task.status == "inprogress"
    assert task.priority is TaskPriority.HIGH
    assert task.task_type is TaskType.RECORDING
    assert task.due_date == "2026-12-24"
    assert task.assignee.name == "Lorne"
    assert task.screenshot_url == "https://img/x.png"
    assert task.duration == "120"
    assert task.completed is True


def test_from_remote_rejects_badly_shaped_fields():
    """Test a field of the wrong shape is a malformed response"""
    with pytest.raises(MalformedResponse) as excinfo:
        from_remote({"id": "r1", "fields": {"title": "Theme", "instruments": 5}})
    assert excinfo.value.details["id"] == "r1"


def test_from_remote_rejects_records_without_id():
    """Test a record without an id is a malformed response"""
    with pytest.raises(MalformedResponse):
        from_remote({"fields": {"title": "x"}})
    with pytest.raises(MalformedResponse):
        from_remote("not a record")

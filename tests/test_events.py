"""
Tests for board events and the notice log.
"""
from unittest.mock import MagicMock

from scoreboard.events import (
    BoardEvents, NoticeLog, ATTACHMENT_FAILED, OPERATION_FAILED, TASK_CREATED, TASK_MOVED,
)


def test_emit_reaches_typed_and_wildcard_subscribers():
    """Test events reach typed and wildcard subscribers"""
    events = BoardEvents()
    typed, everything = MagicMock(), MagicMock()
    events.subscribe(TASK_CREATED, typed)
    events.subscribe("*", everything)

    notice = events.emit(TASK_CREATED, "Task created successfully", "r1")

    typed.assert_called_once_with(notice)
    everything.assert_called_once_with(notice)
    assert notice.level == "success"
    assert notice.task_id == "r1"


def test_levels_follow_event_type():
    """Test notice levels follow the event type"""
    events = BoardEvents()
    assert events.emit(OPERATION_FAILED, "x").level == "error"
    assert events.emit(ATTACHMENT_FAILED, "x").level == "warning"
    assert events.emit("something_else", "x").level == "info"


def test_failing_subscriber_does_not_stop_others():
    """Test a raising subscriber does not block the rest"""
    events = BoardEvents()
    broken = MagicMock(side_effect=RuntimeError("boom"))
    healthy = MagicMock()
    events.subscribe(TASK_MOVED, broken)
    events.subscribe(TASK_MOVED, healthy)

    events.emit(TASK_MOVED, "moved")

    healthy.assert_called_once()


def test_notice_log_keeps_newest_first_and_caps_size():
    """Test the notice log is newest first and bounded"""
    log = NoticeLog(maxlen=3)
    events = BoardEvents()
    events.subscribe("*", log)
    for i in range(5):
        events.emit(TASK_MOVED, f"move {i}")

    messages = [n.message for n in log.recent()]
    assert messages == ["move 4", "move 3", "move 2"]
    assert [n.message for n in log.recent(1)] == ["move 4"]
    assert log.recent(0) == []

    log.clear()
    assert log.recent() == []


def test_notice_to_dict():
    """Test notice serialization"""
    notice = BoardEvents().emit(TASK_CREATED, "done", "r1")
    data = notice.to_dict()
    assert data["event_type"] == TASK_CREATED
    assert data["message"] == "done"
    assert data["task_id"] == "r1"
    assert "timestamp" in data

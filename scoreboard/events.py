"""
Event bridge: board operations publish what happened, views subscribe.

The board never talks to a view directly. Failures become ``operation_failed``
events (toast), load failures also set the board's error banner, and a failed
screenshot attachment is its own ``attachment_failed`` warning so it is not
confused with a failed save.
"""
import logging
import threading
from collections import deque
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Event types
BOARD_LOADED = "board_loaded"
LOAD_FAILED = "load_failed"
TASK_CREATED = "task_created"
TASK_UPDATED = "task_updated"
TASK_MOVED = "task_moved"
TASK_DELETED = "task_deleted"
OPERATION_FAILED = "operation_failed"
ATTACHMENT_FAILED = "attachment_failed"

LEVELS = {
    BOARD_LOADED: "info",
    TASK_CREATED: "success",
    TASK_UPDATED: "success",
    TASK_MOVED: "info",
    TASK_DELETED: "info",
    LOAD_FAILED: "error",
    OPERATION_FAILED: "error",
    ATTACHMENT_FAILED: "warning",
}


@dataclass
class Notice:
    """One user-visible notification."""
    event_type: str
    message: str
    level: str = "info"
    task_id: Optional[str] = None
    timestamp: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class BoardEvents:
    """Routes board events to subscribers."""

    def __init__(self):
        self.subscribers: Dict[str, list] = {}  # event_type -> list of callbacks

    def subscribe(self, event_type: str, callback: Callable) -> None:
        """Register a callback for an event type ("*" receives everything)."""
        if event_type not in self.subscribers:
            self.subscribers[event_type] = []
        self.subscribers[event_type].append(callback)

    def emit(self, event_type: str, message: str, task_id: Optional[str] = None) -> Notice:
        notice = Notice(
            event_type=event_type,
            message=message,
            level=LEVELS.get(event_type, "info"),
            task_id=task_id,
        )
        if notice.level == "error":
            logger.error(message)
        elif notice.level == "warning":
            logger.warning(message)
        for callback in self.subscribers.get(event_type, []) + self.subscribers.get("*", []):
            try:
                callback(notice)
            except Exception as e:
                logger.warning(f"Error in {event_type} callback: {e}")
        return notice


class NoticeLog:
    """Keeps the most recent notices for views that poll."""

    def __init__(self, maxlen: int = 100):
        self._notices = deque(maxlen=maxlen)
        self._lock = threading.Lock()

    def __call__(self, notice: Notice) -> None:
        with self._lock:
            self._notices.append(notice)

    def recent(self, limit: int = 20) -> List[Notice]:
        with self._lock:
            items = list(self._notices)
        return items[-limit:][::-1] if limit > 0 else []

    def clear(self) -> None:
        with self._lock:
            self._notices.clear()

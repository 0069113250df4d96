"""
Scoreboard task schema and column model.

Board layout:
  To Do → In Progress → Review → Complete

Column membership is decided by a task's status alone. Tasks never nest inside
columns in storage; the board groups them after every load.
"""
from enum import Enum
from dataclasses import dataclass, field, fields as dc_fields
from typing import Optional, List, Dict, Any, Mapping
import time
import uuid

from .errors import ValidationError


UNASSIGNED = "Unassigned"
COPY_SUFFIX = " (Copy)"
PLACEHOLDER_PREFIX = "local-"


class TaskPriority(Enum):
    """How urgent a cue is."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskPriority":
        try:
            return cls[str(value).strip().upper()]
        except KeyError:
            return cls.MEDIUM


class TaskType(Enum):
    """Production stage a task belongs to."""
    COMPOSITION = "composition"
    ARRANGEMENT = "arrangement"
    RECORDING = "recording"
    MIXING = "mixing"
    REVIEW = "review"

    @classmethod
    def from_str(cls, value: Optional[str]) -> "TaskType":
        try:
            return cls["".join(str(value).split()).upper()]
        except KeyError:
            return cls.COMPOSITION


class ColumnId(Enum):
    """The four fixed board columns."""
    TODO = "todo"
    INPROGRESS = "inprogress"
    REVIEW = "review"
    COMPLETE = "complete"

    @property
    def title(self) -> str:
        return COLUMN_TITLES[self]

    @classmethod
    def from_str(cls, value: Optional[str]) -> "ColumnId":
        """Parse a column id; unknown or missing values land in To Do."""
        try:
            return cls(normalize_status(value))
        except ValueError:
            return cls.TODO

    @classmethod
    def is_known(cls, value: Optional[str]) -> bool:
        return normalize_status(value) in {c.value for c in cls}


COLUMN_TITLES: Dict[ColumnId, str] = {
    ColumnId.TODO: "To Do",
    ColumnId.INPROGRESS: "In Progress",
    ColumnId.REVIEW: "Review",
    ColumnId.COMPLETE: "Complete",
}


def normalize_status(value: Optional[str]) -> str:
    """Lower-case, whitespace-free form of a status label ("In Progress" → "inprogress")."""
    if value is None:
        return ""
    return "".join(str(value).split()).lower()


def make_placeholder_id() -> str:
    """Temporary id for a task the remote store has not seen yet."""
    ts = int(time.time() * 1000)
    return f"{PLACEHOLDER_PREFIX}{ts}-{uuid.uuid4().hex[:6]}"


def is_placeholder(task_id: Optional[str]) -> bool:
    return not task_id or str(task_id).startswith(PLACEHOLDER_PREFIX)


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return str(value)


def _instruments(value: Any) -> List[str]:
    """Ordered, de-duplicated instrument names. Accepts a list or a comma string."""
    if not value:
        return []
    if isinstance(value, str):
        value = value.split(",")
    seen: List[str] = []
    for item in value:
        name = str(item).strip()
        if name and name not in seen:
            seen.append(name)
    return seen


@dataclass
class Assignee:
    name: str = UNASSIGNED

    @classmethod
    def from_value(cls, value: Any) -> "Assignee":
        if isinstance(value, Assignee):
            return cls(value.name)
        if isinstance(value, Mapping):
            value = value.get("name")
        name = _text(value).strip()
        return cls(name or UNASSIGNED)


@dataclass
class Task:
    """One card on the board."""

    title: str
    id: str = ""
    description: str = ""
    assignee: Assignee = field(default_factory=Assignee)
    due_date: str = ""                 # ISO 8601 date
    priority: TaskPriority = TaskPriority.MEDIUM
    task_type: TaskType = TaskType.COMPOSITION
    duration: Optional[str] = None
    instruments: List[str] = field(default_factory=list)
    status: str = ColumnId.TODO.value
    completed: bool = False

    # Video reference
    youtube_url: str = ""
    timestamp: str = ""                # seconds offset into the video
    screenshot_url: str = ""

    @property
    def is_persisted(self) -> bool:
        return not is_placeholder(self.id)

    @property
    def column(self) -> ColumnId:
        return ColumnId.from_str(self.status)

    def validate(self) -> None:
        if not self.title or not self.title.strip():
            raise ValidationError("title is required")

    def to_dict(self) -> Dict[str, Any]:
        """Serialize to the application's JSON shape (camelCase keys)."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "assignee": {"name": self.assignee.name},
            "dueDate": self.due_date,
            "priority": self.priority.value,
            "type": self.task_type.value,
            "duration": self.duration,
            "instruments": list(self.instruments),
            "status": self.status,
            "completed": self.completed,
            "youtubeUrl": self.youtube_url,
            "timestamp": self.timestamp,
            "screenshotUrl": self.screenshot_url,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Task":
        """Deserialize from the application's JSON shape, applying defaults."""
        duration = data.get("duration")
        return cls(
            id=_text(data.get("id")),
            title=_text(data.get("title")),
            description=_text(data.get("description")),
            assignee=Assignee.from_value(data.get("assignee")),
            due_date=_text(data.get("dueDate")),
            priority=TaskPriority.from_str(data.get("priority")),
            task_type=TaskType.from_str(data.get("type")),
            duration=_text(duration) if duration not in (None, "") else None,
            instruments=_instruments(data.get("instruments")),
            status=normalize_status(data.get("status")) or ColumnId.TODO.value,
            completed=bool(data.get("completed", False)),
            youtube_url=_text(data.get("youtubeUrl")),
            timestamp=_text(data.get("timestamp")),
            screenshot_url=_text(data.get("screenshotUrl")),
        )

    def merge(self, changes: Mapping[str, Any]) -> None:
        """Apply a partial update (camelCase keys) in place. The id never changes."""
        merged = self.to_dict()
        merged.update({k: v for k, v in changes.items() if k != "id"})
        updated = Task.from_dict(merged)
        for f in dc_fields(self):
            if f.name != "id":
                setattr(self, f.name, getattr(updated, f.name))

    def copy(self) -> "Task":
        return Task.from_dict(self.to_dict())

    def duplicate(self) -> "Task":
        """Same fields, no id, title suffixed."""
        clone = self.copy()
        clone.id = ""
        clone.title = f"{self.title}{COPY_SUFFIX}"
        return clone


@dataclass
class Column:
    id: ColumnId
    tasks: List[Task] = field(default_factory=list)

    @property
    def title(self) -> str:
        return self.id.title

    def index_of(self, task_id: str) -> int:
        for i, task in enumerate(self.tasks):
            if task.id == task_id:
                return i
        return -1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id.value,
            "title": self.title,
            "tasks": [t.to_dict() for t in self.tasks],
        }


@dataclass
class BoardConfig:
    """Which remote collection backs the board."""
    table_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"tableName": self.table_name}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "BoardConfig":
        name = _text(data.get("tableName") or data.get("table_name")).strip()
        if not name:
            raise ValidationError("tableName is required")
        return cls(table_name=name)


@dataclass
class Outcome:
    """Result of a board operation after reconciliation."""
    ok: bool
    task: Optional[Task] = None
    error: str = ""
    warning: str = ""

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ok": self.ok}
        if self.task is not None:
            data["task"] = self.task.to_dict()
        if self.error:
            data["error"] = self.error
        if self.warning:
            data["warning"] = self.warning
        return data

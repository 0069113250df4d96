"""
Translation between the board's task shape and the remote record shape.

Applied at the gateway boundary only:

  local            remote
  -----            ------
  dueDate          due_date
  youtubeUrl       youtube_url
  screenshotUrl    screenshot_url
  assignee.name    assignee_name
  priority/type    first letter upper-cased ("high" → "High")
  status           Title Case label ("inprogress" → "In Progress")

Empty values are left out of outgoing payloads so a partial update never
clears unrelated remote fields.
"""
from typing import Any, Dict, Mapping

from .errors import MalformedResponse
from .schema import (
    Task, Assignee, ColumnId, TaskPriority, TaskType, COLUMN_TITLES, UNASSIGNED,
    normalize_status,
)

# Local key → remote field name, for values copied as-is
RENAMED_FIELDS = {
    "title": "title",
    "description": "description",
    "dueDate": "due_date",
    "youtubeUrl": "youtube_url",
    "timestamp": "timestamp",
    "screenshotUrl": "screenshot_url",
}

STATUS_LABELS: Dict[str, str] = {c.value: COLUMN_TITLES[c] for c in ColumnId}


def capitalize(value: str) -> str:
    """Upper-case the first letter only; the rest is left untouched."""
    return value[:1].upper() + value[1:]


def status_to_remote(status: str) -> str:
    """Column id → remote label. Unknown statuses get each word capitalized."""
    key = normalize_status(status)
    if key in STATUS_LABELS:
        return STATUS_LABELS[key]
    return " ".join(capitalize(word) for word in str(status).split())


def status_from_remote(label: Any) -> str:
    """Remote label → column id. Missing labels map to To Do."""
    return normalize_status(label) or ColumnId.TODO.value


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, list, tuple, dict)) and not value:
        return True
    return False


def to_remote(changes: Mapping[str, Any]) -> Dict[str, Any]:
    """Build a remote ``fields`` payload from local (camelCase) keys."""
    payload: Dict[str, Any] = {}

    for local_key, remote_key in RENAMED_FIELDS.items():
        value = changes.get(local_key)
        if not _is_empty(value):
            payload[remote_key] = str(value) if local_key == "timestamp" else value

    status = changes.get("status")
    if not _is_empty(status):
        payload["status"] = status_to_remote(status)

    priority = changes.get("priority")
    if not _is_empty(priority):
        payload["priority"] = capitalize(TaskPriority.from_str(priority).value)

    task_type = changes.get("type")
    if not _is_empty(task_type):
        payload["type"] = capitalize(TaskType.from_str(task_type).value)

    duration = changes.get("duration")
    if not _is_empty(duration):
        payload["duration"] = str(duration)

    instruments = changes.get("instruments")
    if not _is_empty(instruments):
        payload["instruments"] = list(instruments)

    if changes.get("completed") is not None:
        payload["completed"] = bool(changes["completed"])

    if "assignee" in changes and not _is_empty(changes["assignee"]):
        name = Assignee.from_value(changes["assignee"]).name
        payload["assignee_name"] = name

    return payload


def task_to_remote(task: Task) -> Dict[str, Any]:
    """Full outgoing payload for a task (used by create)."""
    data = task.to_dict()
    data.pop("id", None)
    return to_remote(data)


def from_remote(record: Any) -> Task:
    """Convert a remote ``{id, fields}`` record into a Task."""
    if not isinstance(record, Mapping) or not record.get("id"):
        raise MalformedResponse("record is missing an id", details=record)
    fields = record.get("fields") or {}
    if not isinstance(fields, Mapping):
        raise MalformedResponse("record fields are not an object", details=record)

    duration = fields.get("duration")
    try:
        return Task.from_dict({
            "id": record["id"],
            "title": fields.get("title") or "",
            "description": fields.get("description") or "",
            "assignee": {"name": fields.get("assignee_name") or UNASSIGNED},
            "dueDate": fields.get("due_date") or "",
            "priority": str(fields.get("priority") or TaskPriority.MEDIUM.value).lower(),
            "type": str(fields.get("type") or TaskType.COMPOSITION.value).lower(),
            "duration": duration if not isinstance(duration, bool) else None,
            "instruments": fields.get("instruments") or [],
            "status": status_from_remote(fields.get("status")),
            "completed": bool(fields.get("completed", False)),
            "youtubeUrl": fields.get("youtube_url") or "",
            "timestamp": fields.get("timestamp") or "",
            "screenshotUrl": fields.get("screenshot_url") or "",
        })
    except (TypeError, ValueError, AttributeError) as e:
        raise MalformedResponse(f"record {record['id']} has a badly shaped field: {e}", details=record) from e

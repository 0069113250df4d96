"""
Board state: four columns of tasks kept in step with the remote record store.

Every mutation is applied locally first, then sent to the gateway. Each one
records how to undo itself; when the remote call fails the undo restores the
exact slice it touched. If the task has been changed again in the meantime
(its version moved on) the undo is dropped and the whole board is reloaded.

Versions:
  - each task id has a counter bumped by every local mutation
  - each load takes a generation number; only the newest load's reply lands

Placeholders:
  A task created locally carries a ``local-…`` id until the create reply
  arrives. Changes made to it while pending stay local and are pushed as one
  follow-up update once the real id is known.
"""
import logging
import threading
from dataclasses import dataclass, fields as dc_fields
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple

from .errors import ConfigurationError, GatewayError, MediaError, NotFound, ValidationError
from .events import (
    BoardEvents, BOARD_LOADED, LOAD_FAILED, TASK_CREATED, TASK_UPDATED,
    TASK_MOVED, TASK_DELETED, OPERATION_FAILED, ATTACHMENT_FAILED,
)
from .fields import to_remote
from .schema import (
    BoardConfig, Column, ColumnId, Outcome, Task, make_placeholder_id, normalize_status,
)

logger = logging.getLogger(__name__)


@dataclass
class _Mutation:
    """A local change waiting for remote confirmation."""
    task_id: str
    version: int
    undo: Callable[[], bool]   # False when the slice can no longer be restored


def _restore_fields(task: Task, before: Task) -> None:
    for f in dc_fields(Task):
        if f.name != "id":
            setattr(task, f.name, getattr(before, f.name))


class BoardState:
    """In-memory kanban grouping with optimistic updates."""

    def __init__(
        self,
        gateway,
        config: Optional[BoardConfig] = None,
        media=None,
        events: Optional[BoardEvents] = None,
    ):
        self.gateway = gateway
        self.config = config
        self.media = media
        self.events = events or BoardEvents()
        self.columns: Dict[ColumnId, Column] = {c: Column(c) for c in ColumnId}
        self.loading = False
        self.error: Optional[str] = None
        self._lock = threading.Lock()
        self._versions: Dict[str, int] = {}
        self._generation = 0
        self._discarded: Set[str] = set()   # placeholders deleted while their create was in flight

    # ── Configuration ──

    @property
    def configured(self) -> bool:
        return self.config is not None

    def configure(self, config: BoardConfig) -> None:
        """Point the board at another collection. Columns are emptied until the next load."""
        with self._lock:
            self.config = config
            self._generation += 1
            for column in self.columns.values():
                column.tasks = []
            self.error = None
        logger.info(f"Board configured for table {config.table_name}")

    def _collection(self) -> str:
        if not self.config:
            raise ConfigurationError("Board is not configured: choose a table first")
        return self.config.table_name

    # ── Queries ──

    def find(self, task_id: str) -> Optional[Task]:
        with self._lock:
            col_id, i = self._locate(task_id)
            return self.columns[col_id].tasks[i].copy() if col_id else None

    def tasks(self, status: Optional[str] = None) -> List[Task]:
        with self._lock:
            result = []
            for col_id in ColumnId:
                if status and col_id.value != normalize_status(status):
                    continue
                result.extend(t.copy() for t in self.columns[col_id].tasks)
            return result

    def to_dict(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "configured": self.configured,
                "tableName": self.config.table_name if self.config else None,
                "loading": self.loading,
                "error": self.error,
                "columns": [self.columns[c].to_dict() for c in ColumnId],
            }

    # ── Load ──

    def load(self) -> Outcome:
        """Fetch everything and replace all four columns.

        On failure the previous columns stay visible and ``error`` is set.
        """
        collection = self._collection()
        with self._lock:
            self._generation += 1
            generation = self._generation
            self.loading = True
            self.error = None

        try:
            tasks = self.gateway.list(collection)
        except GatewayError as e:
            with self._lock:
                if generation == self._generation:
                    self.error = str(e)
            self.events.emit(LOAD_FAILED, f"Failed to load tasks: {e}")
            return Outcome(False, error=str(e))
        finally:
            with self._lock:
                if generation == self._generation:
                    self.loading = False

        with self._lock:
            if generation != self._generation:
                logger.info(f"Discarding load reply {generation}; a newer load is in flight")
                return Outcome(True)
            grouped: Dict[ColumnId, List[Task]] = {c: [] for c in ColumnId}
            for task in tasks:
                if not ColumnId.is_known(task.status):
                    task.status = ColumnId.TODO.value
                grouped[task.column].append(task)
            for col_id, column in self.columns.items():
                column.tasks = grouped[col_id]
            # Replies to mutations issued before this load are now stale
            for task_id in list(self._versions):
                self._versions[task_id] += 1

        self.events.emit(BOARD_LOADED, f"Loaded {len(tasks)} tasks from {collection}")
        return Outcome(True)

    # ── Mutations ──

    def move(self, task_id: str, from_column, to_column, to_index: int) -> Outcome:
        """Drag a card: remove from one column, insert at ``to_index`` in another."""
        collection = self._collection()
        source = self._column_id(from_column)
        dest = self._column_id(to_column)
        try:
            to_index = int(to_index)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid index: {to_index!r}")

        with self._lock:
            src_col, dst_col = self.columns[source], self.columns[dest]
            idx = src_col.index_of(task_id)
            if idx < 0:
                return Outcome(False, error=f"Task {task_id} not found in {source.value}")
            if source == dest and idx == to_index:
                return Outcome(True, task=src_col.tasks[idx].copy())

            task = src_col.tasks.pop(idx)
            prev_status, prev_completed = task.status, task.completed
            task.status = dest.value
            task.completed = dest is ColumnId.COMPLETE
            dst_col.tasks.insert(max(0, min(to_index, len(dst_col.tasks))), task)
            version = self._bump(task_id)

            def undo() -> bool:
                i = dst_col.index_of(task_id)
                if i < 0:
                    return False
                moved = dst_col.tasks.pop(i)
                moved.status, moved.completed = prev_status, prev_completed
                src_col.tasks.insert(min(idx, len(src_col.tasks)), moved)
                return True

            mutation = _Mutation(task_id, version, undo)
            snapshot = task.copy()

        if not snapshot.is_persisted:
            return Outcome(True, task=snapshot)
        try:
            self.gateway.update(collection, task_id, {
                "status": snapshot.status,
                "completed": snapshot.completed,
            })
        except GatewayError as e:
            return self._fail(mutation, "Failed to update task. Changes may not be saved", e)
        self.events.emit(TASK_MOVED, f"Moved '{snapshot.title}' to {dest.title}", task_id)
        return Outcome(True, task=snapshot)

    def add(self, column, fields: Mapping[str, Any], screenshot: Optional[str] = None) -> Outcome:
        """Append a new task to ``column`` and create it remotely.

        ``screenshot`` is an encoded image attached after the record exists;
        a failed attachment leaves the task created and returns a warning.
        """
        collection = self._collection()
        dest = self._column_id(column)
        data = {k: v for k, v in fields.items() if k != "id"}
        data["status"] = dest.value
        data.setdefault("completed", dest is ColumnId.COMPLETE)
        task = Task.from_dict(data)
        task.validate()
        task.id = placeholder = make_placeholder_id()

        with self._lock:
            self.columns[dest].tasks.append(task)
            version = self._bump(placeholder)
            payload = task.to_dict()

            def undo() -> bool:
                col_id, i = self._locate(placeholder)
                if col_id:
                    self.columns[col_id].tasks.pop(i)
                return True

            mutation = _Mutation(placeholder, version, undo)

        try:
            created = self.gateway.create(collection, payload)
        except GatewayError as e:
            with self._lock:
                self._discarded.discard(placeholder)
            return self._fail(mutation, "Failed to create task", e)

        followup = None
        with self._lock:
            if placeholder in self._discarded:
                self._discarded.discard(placeholder)
                self._versions.pop(placeholder, None)
                orphan = True
            else:
                orphan = False
                col_id, i = self._locate(placeholder)
                if col_id is None:
                    # A newer load dropped the placeholder; the record exists, keep it visible
                    local = created
                    if self._locate(created.id)[0] is None:
                        if not ColumnId.is_known(local.status):
                            local.status = ColumnId.TODO.value
                        self.columns[local.column].tasks.append(local)
                else:
                    local = self.columns[col_id].tasks[i]
                    local.id = created.id
                    if not self._current(placeholder, version):
                        followup = local.to_dict()
                self._versions[created.id] = self._versions.pop(placeholder, 0)
                snapshot = local.copy()

        if orphan:
            logger.info(f"Task {created.id} was deleted before its create finished; removing it")
            try:
                self.gateway.delete(collection, created.id)
            except GatewayError as e:
                logger.warning(f"Could not delete discarded task {created.id}: {e}")
            return Outcome(True, warning="Task was deleted before it was saved")

        if followup:
            try:
                self.gateway.update(collection, created.id, followup)
            except GatewayError as e:
                self.events.emit(OPERATION_FAILED, f"Failed to save later edits to new task: {e}", created.id)
                self.load()
                return Outcome(False, task=snapshot, error=str(e))

        outcome = Outcome(True, task=snapshot)
        if screenshot:
            outcome.warning = self._attach(collection, created.id, screenshot, outcome)
        self.events.emit(TASK_CREATED, "Task created successfully", created.id)
        return outcome

    def update(self, task_id: str, fields: Mapping[str, Any], screenshot: Optional[str] = None) -> Outcome:
        """Merge ``fields`` into the task in place and send them remotely."""
        collection = self._collection()
        if not task_id:
            raise ValidationError("Task ID is required")
        changes = {k: v for k, v in fields.items() if k != "id"}
        if "title" in changes and not str(changes["title"] or "").strip():
            raise ValidationError("title is required")

        with self._lock:
            col_id, idx = self._locate(task_id)
            if col_id is None:
                return Outcome(False, error=f"Task {task_id} not found")
            task = self.columns[col_id].tasks[idx]
            before = task.copy()
            task.merge(changes)
            if task.column != col_id:
                self.columns[col_id].tasks.pop(idx)
                self.columns[task.column].tasks.append(task)
            version = self._bump(task_id)

            def undo() -> bool:
                c, j = self._locate(task_id)
                if c is None:
                    return False
                current = self.columns[c].tasks.pop(j)
                _restore_fields(current, before)
                self.columns[col_id].tasks.insert(min(idx, len(self.columns[col_id].tasks)), current)
                return True

            mutation = _Mutation(task_id, version, undo)
            snapshot = task.copy()

        if not snapshot.is_persisted:
            warning = "Screenshot can be attached once the task is saved" if screenshot else ""
            return Outcome(True, task=snapshot, warning=warning)

        current = snapshot.to_dict()
        remote_changes = {k: current[k] for k in changes if k in current}
        if to_remote(remote_changes):
            try:
                self.gateway.update(collection, task_id, remote_changes)
            except GatewayError as e:
                return self._fail(mutation, "Failed to update task", e)

        outcome = Outcome(True, task=snapshot)
        if screenshot:
            outcome.warning = self._attach(collection, task_id, screenshot, outcome)
        self.events.emit(TASK_UPDATED, "Task updated successfully", task_id)
        return outcome

    def toggle_complete(self, task_id: str) -> Outcome:
        """Flip ``completed`` without moving the card."""
        task = self.find(task_id)
        if task is None:
            return Outcome(False, error=f"Task {task_id} not found")
        return self.update(task_id, {"completed": not task.completed})

    def delete(self, task_id: str, column=None) -> Outcome:
        """Remove a task. Deleting something already gone is a no-op."""
        collection = self._collection()
        with self._lock:
            if column is not None:
                col_id = self._column_id(column)
                idx = self.columns[col_id].index_of(task_id)
            else:
                col_id, idx = self._locate(task_id)
            if col_id is None or idx < 0:
                return Outcome(True)
            col = self.columns[col_id]
            task = col.tasks.pop(idx)
            version = self._bump(task_id)
            if not task.is_persisted:
                self._discarded.add(task_id)
                return Outcome(True, task=task.copy())

            def undo() -> bool:
                if self._locate(task_id)[0] is not None:
                    return False
                col.tasks.insert(min(idx, len(col.tasks)), task)
                return True

            mutation = _Mutation(task_id, version, undo)
            snapshot = task.copy()

        try:
            self.gateway.delete(collection, task_id)
        except NotFound:
            logger.info(f"Task {task_id} was already deleted remotely")
        except GatewayError as e:
            return self._fail(mutation, "Failed to delete task", e)
        with self._lock:
            self._versions.pop(task_id, None)
            # A load that finished while the delete was in flight may have brought the card back
            col_id, i = self._locate(task_id)
            if col_id:
                self.columns[col_id].tasks.pop(i)
        self.events.emit(TASK_DELETED, f"Deleted '{snapshot.title}'", task_id)
        return Outcome(True, task=snapshot)

    def duplicate(self, task_id: str, column) -> Outcome:
        """Add a copy of the task (no id, title + " (Copy)") to ``column``."""
        col_id = self._column_id(column)
        with self._lock:
            idx = self.columns[col_id].index_of(task_id)
            if idx < 0:
                return Outcome(False, error=f"Task {task_id} not found in {col_id.value}")
            clone = self.columns[col_id].tasks[idx].duplicate()
        return self.add(col_id, clone.to_dict())

    # ── Internals ──

    def _attach(self, collection: str, record_id: str, screenshot: str, outcome: Outcome) -> str:
        """Phase two of a save. Returns a warning message, or "" on success."""
        if self.media is None:
            message = "Task saved, but screenshot uploads are not configured"
            self.events.emit(ATTACHMENT_FAILED, message, record_id)
            return message
        try:
            image_url = self.media.attach(collection, record_id, screenshot)
        except MediaError as e:
            message = f"Task saved, but screenshot upload failed: {e}"
            self.events.emit(ATTACHMENT_FAILED, message, record_id)
            return message
        with self._lock:
            col_id, i = self._locate(record_id)
            if col_id:
                self.columns[col_id].tasks[i].screenshot_url = image_url
        if outcome.task is not None:
            outcome.task.screenshot_url = image_url
        return ""

    def _fail(self, mutation: _Mutation, action: str, error: Exception) -> Outcome:
        message = f"{action}: {error}"
        with self._lock:
            restored = self._current(mutation.task_id, mutation.version) and mutation.undo()
        self.events.emit(OPERATION_FAILED, message, mutation.task_id)
        if not restored:
            logger.info("Local board diverged from the remote store; reloading")
            self.load()
        return Outcome(False, error=message)

    def _column_id(self, value) -> ColumnId:
        if isinstance(value, ColumnId):
            return value
        if not ColumnId.is_known(value):
            raise ValidationError(f"Unknown column: {value!r}")
        return ColumnId(normalize_status(value))

    def _locate(self, task_id: str) -> Tuple[Optional[ColumnId], int]:
        for col_id, column in self.columns.items():
            i = column.index_of(task_id)
            if i >= 0:
                return col_id, i
        return None, -1

    def _bump(self, task_id: str) -> int:
        self._versions[task_id] = self._versions.get(task_id, 0) + 1
        return self._versions[task_id]

    def _current(self, task_id: str, version: int) -> bool:
        return self._versions.get(task_id) == version

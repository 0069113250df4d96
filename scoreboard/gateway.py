"""
Record gateway: the board's only door to the remote spreadsheet database.

Every call is single-shot. Failures are raised as typed errors and the caller
decides whether to roll back or reload.

Wire contract (per collection):
    GET    <collection>        → { records: [{id, fields}], offset? }
    GET    <collection>/<id>   → { id, fields }
    POST   <collection>        ← { fields }  → { id, fields }
    PATCH  <collection>/<id>   ← { fields }  → { id, fields }
    DELETE <collection>/<id>   → { id, deleted }
"""
import json
import logging
from typing import Any, Callable, Dict, List, Mapping, Optional
from urllib.parse import quote

import requests

from .errors import (
    AuthError, ConfigurationError, CredentialsMissing, GatewayError,
    MalformedResponse, NotFound, RemoteUnavailable, ValidationError,
)
from .fields import from_remote, to_remote
from .schema import Task, TaskPriority, TaskType, COLUMN_TITLES

logger = logging.getLogger(__name__)

# Instrument choices offered when a board table is created
DEFAULT_INSTRUMENTS = [
    "Piano", "Guitar", "Strings", "Drums", "Bass", "Vocals", "Synth", "Orchestra",
]


def board_table_schema(name: str) -> Dict[str, Any]:
    """Schema for a new board table, matching the field translation rules."""
    def choices(names):
        return {"choices": [{"name": n} for n in names]}

    return {
        "name": name,
        "description": "Task management for music composition projects",
        "fields": [
            {"name": "title", "type": "singleLineText"},
            {"name": "description", "type": "multilineText"},
            {"name": "status", "type": "singleSelect",
             "options": choices(COLUMN_TITLES.values())},
            {"name": "priority", "type": "singleSelect",
             "options": choices(p.value.capitalize() for p in TaskPriority)},
            {"name": "type", "type": "singleSelect",
             "options": choices(t.value.capitalize() for t in TaskType)},
            {"name": "assignee_name", "type": "singleLineText"},
            {"name": "duration", "type": "singleLineText"},
            {"name": "instruments", "type": "multipleSelects",
             "options": choices(DEFAULT_INSTRUMENTS)},
            {"name": "due_date", "type": "date",
             "options": {"dateFormat": {"name": "iso"}}},
            {"name": "completed", "type": "checkbox",
             "options": {"icon": "check", "color": "greenBright"}},
            {"name": "youtube_url", "type": "url"},
            {"name": "timestamp", "type": "singleLineText"},
            {"name": "screenshot_url", "type": "url"},
        ],
    }


class RecordGateway:
    """CRUD over one collection group (base) of the remote record store."""

    def __init__(
        self,
        base_id: Optional[str],
        token_provider: Callable[[], Optional[str]],
        session: Optional[requests.Session] = None,
        api_url: str = "https://api.airtable.com/v0",
        meta_url: str = "https://api.airtable.com/v0/meta",
        timeout: int = 30,
    ) -> None:
        self.base_id = base_id
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.api_url = api_url.rstrip("/")
        self.meta_url = meta_url.rstrip("/")
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, session: Optional[requests.Session] = None) -> "RecordGateway":
        return cls(
            base_id=settings.base_id,
            token_provider=lambda: settings.access_token,
            session=session,
            api_url=settings.api_url,
            meta_url=settings.meta_url,
            timeout=settings.request_timeout,
        )

    # ── Records ──

    def list(self, collection: str) -> List[Task]:
        """Fetch every record in the collection, following the offset cursor."""
        url = self._url(collection)
        logger.info(f"Fetching all tasks from table: {collection}")
        tasks: List[Task] = []
        offset = None
        while True:
            params = {"offset": offset} if offset else None
            data = self._request("GET", url, params=params)
            records = data.get("records") if isinstance(data, dict) else None
            if not isinstance(records, list):
                raise MalformedResponse(
                    "Invalid response format: records array is missing", details=data
                )
            tasks.extend(from_remote(r) for r in records)
            offset = data.get("offset")
            if not offset:
                return tasks

    def get(self, collection: str, record_id: str) -> Task:
        self._require_id(record_id)
        return from_remote(self._request("GET", self._url(collection, record_id)))

    def create(self, collection: str, fields: Mapping[str, Any]) -> Task:
        """Create a record from local fields; the returned task has the server id."""
        payload = to_remote(fields)
        if not payload.get("title"):
            raise ValidationError("title is required")
        logger.info(f"Creating task in {collection}: {payload.get('title')!r}")
        data = self._request("POST", self._url(collection), json={"fields": payload})
        return from_remote(data)

    def update(self, collection: str, record_id: str, fields: Mapping[str, Any]) -> Task:
        """Patch only the non-empty local fields given."""
        self._require_id(record_id)
        payload = to_remote(fields)
        if not payload:
            raise ValidationError("No fields to update")
        logger.info(f"Updating task {record_id} in {collection}: {sorted(payload)}")
        data = self._request("PATCH", self._url(collection, record_id), json={"fields": payload})
        return from_remote(data)

    def delete(self, collection: str, record_id: str) -> None:
        self._require_id(record_id)
        logger.info(f"Deleting task {record_id} from table {collection}")
        self._request("DELETE", self._url(collection, record_id))

    # ── Collections ──

    def list_collections(self) -> List[str]:
        """Names of the tables in the base."""
        data = self._request("GET", self._meta_tables_url())
        tables = data.get("tables") if isinstance(data, dict) else None
        if not isinstance(tables, list):
            raise MalformedResponse("Invalid response format: tables array is missing", details=data)
        return [t.get("name", "") for t in tables if isinstance(t, dict) and t.get("name")]

    def create_collection(self, name: str) -> str:
        """Create a board table with the canonical schema; returns its name."""
        name = (name or "").strip()
        if not name:
            raise ValidationError("Table name is required")
        data = self._request("POST", self._meta_tables_url(), json=board_table_schema(name))
        created = data.get("name") if isinstance(data, dict) else None
        logger.info(f"Created table {created or name}")
        return created or name

    def diagnose(self, collection: str) -> Dict[str, Any]:
        """Probe the collection directly and report what came back. Never raises."""
        report: Dict[str, Any] = {"status": "not_tested", "collection": collection}
        try:
            headers = self._headers()
            url = self._url(collection)
        except ConfigurationError as e:
            report.update(status="error", error=str(e))
            return report
        report["url"] = url
        try:
            response = self.session.request("GET", url, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            report.update(status="error", error=f"network error: {e}")
            return report
        text = response.text or ""
        try:
            json.loads(text)
            valid = True
        except ValueError:
            valid = False
        report.update(
            status="success" if response.ok else "error",
            status_code=response.status_code,
            response_preview=text[:200] + ("..." if len(text) > 200 else ""),
            is_valid_json=valid,
        )
        return report

    # ── Internals ──

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider()
        missing = [n for n, v in (("access token", token), ("base id", self.base_id)) if not v]
        if missing:
            raise CredentialsMissing(
                f"Server configuration error: missing {' and '.join(missing)}",
                missing=missing,
            )
        return {"Authorization": f"Bearer {token}", "Content-Type": "application/json"}

    def _url(self, collection: str, record_id: Optional[str] = None) -> str:
        if not collection or not str(collection).strip():
            raise ConfigurationError("No table selected for the board")
        url = f"{self.api_url}/{self.base_id}/{quote(str(collection), safe='')}"
        if record_id:
            url += f"/{quote(str(record_id), safe='')}"
        return url

    def _meta_tables_url(self) -> str:
        return f"{self.meta_url}/bases/{self.base_id}/tables"

    @staticmethod
    def _require_id(record_id: Optional[str]) -> None:
        if not record_id:
            raise ValidationError("Task ID is required")

    def _request(self, method: str, url: str, **kwargs) -> Any:
        headers = self._headers()
        try:
            response = self.session.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except requests.RequestException as exc:
            raise RemoteUnavailable(f"Remote store network error: {exc}") from exc

        text = response.text or ""
        logger.debug(f"{method} {url} → {response.status_code}: {text[:500]}")
        try:
            data = json.loads(text) if text.strip() else {}
        except ValueError:
            if response.ok:
                raise MalformedResponse(
                    "Invalid JSON in remote response",
                    status_code=response.status_code,
                    details=text[:500],
                )
            data = text[:500]

        if response.ok:
            return data

        status = response.status_code
        message = f"Remote API error: {status} {response.reason or ''}".rstrip()
        logger.error(f"{message} ({method} {url}): {data}")
        if status in (401, 403):
            raise AuthError(message, status_code=status, details=data)
        if status == 404:
            raise NotFound(message, status_code=status, details=data)
        if status >= 500:
            raise RemoteUnavailable(message, status_code=status, details=data)
        raise GatewayError(message, status_code=status, details=data)

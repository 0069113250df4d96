"""
Tests for the Flask API, using the in-memory gateway behind a real BoardState.
"""
from unittest.mock import MagicMock

import pytest

from scoreboard.config import BoardConfigStore, Settings
from scoreboard.errors import CaptureFailed, RemoteUnavailable
from scoreboard.schema import ColumnId
import scoreboard_server
from scoreboard_server import app

KEY = {"X-API-Key": "test-secret"}
WIRED = ("SETTINGS", "CONFIG_STORE", "NOTICES", "GATEWAY", "SCREENSHOTS", "BOARD", "API_SECRET")


@pytest.fixture
def client(board, gateway, notices, tmp_path, monkeypatch):
    monkeypatch.delenv("SCOREBOARD_API_SECRET", raising=False)
    gateway.seed("Tasks", "r1", title="Theme", status="To Do")
    gateway.seed("Tasks", "r2", title="Chase", status="In Progress", completed=False)
    board.load()
    app.config.update(
        TESTING=True,
        SETTINGS=Settings(),
        CONFIG_STORE=BoardConfigStore(str(tmp_path / "board.yaml")),
        NOTICES=notices,
        GATEWAY=gateway,
        SCREENSHOTS=MagicMock(),
        BOARD=board,
        API_SECRET="test-secret",
    )
    with app.test_client() as c:
        yield c
    for key in WIRED:
        app.config.pop(key, None)


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Auth
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_write_without_key_is_401(client):
    """Test writes without an API key are unauthorized"""
    resp = client.post("/api/tasks", json={"title": "x"})
    assert resp.status_code == 401


def test_write_with_wrong_key_is_403(client):
    """Test writes with the wrong API key are forbidden"""
    resp = client.post("/api/tasks", json={"title": "x"}, headers={"X-API-Key": "nope"})
    assert resp.status_code == 403


def test_write_without_secret_configured_is_503(client):
    """Test writes are unavailable when no API key is configured"""
    app.config["API_SECRET"] = ""
    resp = client.post("/api/tasks", json={"title": "x"}, headers=KEY)
    assert resp.status_code == 503


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Board / config
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_health(client):
    """Test health endpoint"""
    data = client.get("/health").get_json()
    assert data == {"status": "ok", "configured": True, "table": "Tasks"}


def test_board_includes_columns_and_stats(client):
    """Test the board route returns columns and stats"""
    data = client.get("/api/board").get_json()
    assert [c["id"] for c in data["columns"]] == ["todo", "inprogress", "review", "complete"]
    assert data["stats"]["total"] == 2
    assert data["stats"]["by_column"]["inprogress"] == 1


def test_reload_failure_reports_error(client, gateway):
    """Test a failed reload reports the error"""
    gateway.fail["list"] = RemoteUnavailable("service down")
    resp = client.post("/api/board/reload", headers=KEY)
    assert resp.status_code == 502
    assert client.get("/api/board").get_json()["error"] == "service down"


def test_config_post_saves_and_loads(client, gateway, tmp_path):
    """Test saving board config loads the board"""
    gateway.seed("Cues", "c1", title="Prologue", status="Review")

    resp = client.post("/api/config", json={"tableName": "Cues"}, headers=KEY)

    assert resp.status_code == 200
    assert resp.get_json()["loaded"] is True
    assert client.get("/api/config").get_json() == {"tableName": "Cues"}
    assert BoardConfigStore(str(tmp_path / "board.yaml")).load().table_name == "Cues"
    board = client.get("/api/board").get_json()
    review = next(c for c in board["columns"] if c["id"] == "review")
    assert [t["id"] for t in review["tasks"]] == ["c1"]


def test_config_post_requires_table_name(client):
    """Test board config needs a table name"""
    resp = client.post("/api/config", json={}, headers=KEY)
    assert resp.status_code == 400


def test_unconfigured_board_rejects_task_writes(client, board):
    """Test task writes fail until a table is configured"""
    board.config = None
    assert client.get("/api/config").status_code == 404
    resp = client.post("/api/tasks", json={"title": "x"}, headers=KEY)
    assert resp.status_code == 412


def test_tables(client):
    """Test table listing"""
    assert client.get("/api/tables").get_json() == {"tables": ["Tasks"]}
    resp = client.post("/api/tables", json={"tableName": "Score"}, headers=KEY)
    assert resp.status_code == 201
    assert resp.get_json()["tableName"] == "Score"


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Tasks
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_list_tasks_by_state(client):
    """Test listing tasks filtered by column"""
    data = client.get("/api/tasks?state=inprogress").get_json()
    assert data["count"] == 1
    assert data["tasks"][0]["id"] == "r2"


def test_get_task_reads_remote(client):
    """Test a single task is read from the store"""
    data = client.get("/api/tasks/r1").get_json()
    assert data["title"] == "Theme"
    assert client.get("/api/tasks/zzz").status_code == 404


def test_create_task(client, gateway):
    """Test task creation"""
    resp = client.post("/api/tasks", json={"column": "review", "title": "Mix", "type": "mixing"}, headers=KEY)

    assert resp.status_code == 201
    task = resp.get_json()["task"]
    assert task["status"] == "review"
    assert task["type"] == "mixing"
    assert gateway.tables["Tasks"][task["id"]]["fields"]["type"] == "Mixing"


def test_create_task_without_title_is_400(client, gateway):
    """Test creating a task without a title is a bad request"""
    resp = client.post("/api/tasks", json={"column": "todo"}, headers=KEY)
    assert resp.status_code == 400
    assert gateway.ops("create") == []


def test_invalid_json_is_400(client):
    """Test a non-JSON body is a bad request"""
    resp = client.post("/api/tasks", data="{not json", headers=KEY, content_type="application/json")
    assert resp.status_code == 400


def test_update_task(client):
    """Test task update"""
    resp = client.patch("/api/tasks/r1", json={"title": "Main theme"}, headers=KEY)
    assert resp.status_code == 200
    assert resp.get_json()["task"]["title"] == "Main theme"


def test_update_missing_task_is_404(client):
    """Test updating an unknown task is not found"""
    resp = client.patch("/api/tasks/nope", json={"title": "x"}, headers=KEY)
    assert resp.status_code == 404


def test_move_task(client, board):
    """Test moving a task"""
    resp = client.post("/api/tasks/r1/move", json={"from": "todo", "to": "complete", "index": 0}, headers=KEY)
    assert resp.status_code == 200
    assert resp.get_json()["task"]["completed"] is True
    assert board.columns[ColumnId.COMPLETE].tasks[0].id == "r1"


def test_move_requires_columns(client):
    """Test a move needs source and destination columns"""
    resp = client.post("/api/tasks/r1/move", json={"to": "review"}, headers=KEY)
    assert resp.status_code == 400


def test_move_failure_is_502_and_reverted(client, gateway, board):
    """Test a failed move is a gateway error and is reverted"""
    gateway.fail["update"] = RemoteUnavailable("service down")
    resp = client.post("/api/tasks/r1/move", json={"from": "todo", "to": "review"}, headers=KEY)
    assert resp.status_code == 502
    assert "Changes may not be saved" in resp.get_json()["error"]
    assert board.columns[ColumnId.TODO].tasks[0].id == "r1"


def test_delete_task_twice(client):
    """Test deleting a task twice succeeds both times"""
    assert client.delete("/api/tasks/r1?column=todo", headers=KEY).status_code == 200
    assert client.delete("/api/tasks/r1?column=todo", headers=KEY).status_code == 200


def test_duplicate_defaults_to_source_column(client, board):
    """Test a duplicate lands in the source column by default"""
    resp = client.post("/api/tasks/r2/duplicate", json={}, headers=KEY)
    assert resp.status_code == 201
    assert resp.get_json()["task"]["title"] == "Chase (Copy)"
    assert len(board.columns[ColumnId.INPROGRESS].tasks) == 2


def test_toggle(client):
    """Test toggling completion"""
    resp = client.post("/api/tasks/r1/toggle", headers=KEY)
    assert resp.get_json()["task"]["completed"] is True


# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
# Screenshots / diagnostics
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━


def test_screenshot_by_url(client):
    """Test capturing a screenshot from a video URL"""
    shots = app.config["SCREENSHOTS"]
    shots.capture_url.return_value = "data:image/png;base64,AAAA"

    resp = client.post("/api/screenshot", json={"youtubeUrl": "https://youtu.be/dQw4w9WgXcQ", "timestamp": "42"},
                       headers=KEY)

    assert resp.get_json() == {"success": True, "screenshot": "data:image/png;base64,AAAA", "timestamp": 42}
    shots.capture_url.assert_called_once_with("https://youtu.be/dQw4w9WgXcQ", 42)


def test_screenshot_failure_is_502(client):
    """Test a capture failure is a gateway error"""
    app.config["SCREENSHOTS"].capture.side_effect = CaptureFailed("page changed")
    resp = client.post("/api/screenshot", json={"videoId": "dQw4w9WgXcQ"}, headers=KEY)
    assert resp.status_code == 502
    assert resp.get_json()["details"] == "page changed"


def test_notifications_newest_first(client):
    """Test notifications are listed newest first"""
    client.patch("/api/tasks/r1", json={"title": "Renamed"}, headers=KEY)
    data = client.get("/api/notifications?limit=1").get_json()
    assert data["notifications"][0]["message"] == "Task updated successfully"


def test_debug_reports_environment(client):
    """Test the debug route reports the environment"""
    data = client.get("/api/debug").get_json()
    assert "AIRTABLE_ACCESS_TOKEN" in data["environment"]
    assert data["api_test"]["collection"] == "Tasks"


def test_main_exits_without_credentials(monkeypatch, tmp_path):
    """Test the server refuses to start without credentials"""
    monkeypatch.delenv("AIRTABLE_ACCESS_TOKEN", raising=False)
    monkeypatch.delenv("AIRTABLE_BASE_ID", raising=False)
    run = MagicMock()
    monkeypatch.setattr(app, "run", run)
    try:
        assert scoreboard_server.main(["--config", str(tmp_path / "none.yaml")]) == 1
    finally:
        app.config.pop("SETTINGS", None)
    run.assert_not_called()

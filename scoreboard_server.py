#!/usr/bin/env python3
"""
Scoreboard Server
-----------------
JSON API for the film-score composition board. The board view (columns,
cards, drag and drop, forms) calls these routes; every route goes through one
shared BoardState backed by the remote record store.

Usage:
    export AIRTABLE_ACCESS_TOKEN=... AIRTABLE_BASE_ID=...
    export SCOREBOARD_API_SECRET=...
    python scoreboard_server.py --port 3000

API:
    GET    /health                     → { status, configured, table }
    GET    /api/board                  → { columns, configured, loading, error, stats }
    POST   /api/board/reload           → reload from the record store (retry)
    GET    /api/config                 → { tableName } or 404 when unconfigured
    POST   /api/config                 → body { tableName }; saves, then loads
    GET    /api/tables                 → { tables }
    POST   /api/tables                 → body { tableName }; creates a board table
    GET    /api/tasks?state=           → { tasks, count }
    GET    /api/tasks/<id>             → task fetched from the record store
    POST   /api/tasks                  → body { column, ...fields, screenshot? }
    PATCH  /api/tasks/<id>             → body { ...fields, screenshot? }
    DELETE /api/tasks/<id>?column=     → remove
    POST   /api/tasks/<id>/move        → body { from, to, index }
    POST   /api/tasks/<id>/duplicate   → body { column }
    POST   /api/tasks/<id>/toggle      → flip completed
    POST   /api/screenshot             → body { youtubeUrl | videoId, timestamp }
    GET    /api/notifications          → recent toasts and warnings
    GET    /api/debug                  → environment presence + connectivity check

Write routes require an X-API-Key header matching SCOREBOARD_API_SECRET.
"""

import hmac
import logging
import sys
from functools import wraps

from flask import Flask, jsonify, request

from scoreboard.board import BoardState
from scoreboard.config import Settings, BoardConfigStore
from scoreboard.errors import (
    AuthError, CaptureFailed, ConfigurationError, GatewayError, NotFound,
    ScoreboardError, ValidationError,
)
from scoreboard.events import BoardEvents, NoticeLog
from scoreboard.gateway import RecordGateway
from scoreboard.media import ImageUploader, MediaAttachmentGateway
from scoreboard.schema import BoardConfig, ColumnId
from scoreboard.screenshot import ScreenshotClient, parse_timestamp

logger = logging.getLogger("scoreboard")

app = Flask(__name__)


# ── Wiring ───────────────────────────────────────────────────────────────────

def get_settings() -> Settings:
    if "SETTINGS" not in app.config:
        app.config["SETTINGS"] = Settings.load()
    return app.config["SETTINGS"]


def get_config_store() -> BoardConfigStore:
    if "CONFIG_STORE" not in app.config:
        app.config["CONFIG_STORE"] = BoardConfigStore(get_settings().board_file)
    return app.config["CONFIG_STORE"]


def get_notices() -> NoticeLog:
    if "NOTICES" not in app.config:
        app.config["NOTICES"] = NoticeLog()
    return app.config["NOTICES"]


def get_gateway() -> RecordGateway:
    if "GATEWAY" not in app.config:
        app.config["GATEWAY"] = RecordGateway.from_settings(get_settings())
    return app.config["GATEWAY"]


def get_screenshots() -> ScreenshotClient:
    if "SCREENSHOTS" not in app.config:
        app.config["SCREENSHOTS"] = ScreenshotClient.from_settings(get_settings())
    return app.config["SCREENSHOTS"]


def build_board() -> BoardState:
    """Board wired from settings. The persisted table name is passed in, not read later."""
    settings = get_settings()
    gateway = get_gateway()
    media = None
    try:
        media = MediaAttachmentGateway(gateway, ImageUploader.from_settings(settings))
    except ConfigurationError as e:
        logger.warning(f"Screenshot uploads disabled: {e}")
    events = BoardEvents()
    events.subscribe("*", get_notices())
    board = BoardState(gateway, config=get_config_store().load(), media=media, events=events)
    if board.configured:
        board.load()
    return board


def get_board() -> BoardState:
    if "BOARD" not in app.config:
        app.config["BOARD"] = build_board()
    return app.config["BOARD"]


# ── Auth ─────────────────────────────────────────────────────────────────────

def _api_secret() -> str:
    return app.config.get("API_SECRET") or get_settings().api_secret


def require_api_key(f):
    """Decorator: reject requests without a valid X-API-Key header."""
    @wraps(f)
    def decorated(*args, **kwargs):
        secret = _api_secret()
        if not secret:
            return jsonify({"error": "API_SECRET not set"}), 503
        provided = request.headers.get("X-API-Key", "").strip()
        if not hmac.compare_digest(provided, secret):
            code = 401 if not provided else 403
            return jsonify({"error": "Unauthorized"}), code
        return f(*args, **kwargs)
    return decorated


# ── Errors ───────────────────────────────────────────────────────────────────

@app.errorhandler(ScoreboardError)
def handle_scoreboard_error(e):
    if isinstance(e, ValidationError):
        return jsonify({"error": str(e)}), 400
    if isinstance(e, ConfigurationError):
        code = 412 if "not configured" in str(e) else 503
        return jsonify({"error": str(e)}), code
    if isinstance(e, NotFound):
        return jsonify(e.to_dict()), 404
    if isinstance(e, GatewayError):
        return jsonify(e.to_dict()), 502
    if isinstance(e, CaptureFailed):
        return jsonify({"error": "Failed to take screenshot", "details": str(e)}), 502
    return jsonify({"error": str(e)}), 500


def _body() -> dict:
    data = request.get_json(force=True, silent=True)
    if data is None and request.data:
        raise ValidationError("Invalid JSON in request body")
    if data is not None and not isinstance(data, dict):
        raise ValidationError("Request body must be a JSON object")
    return data or {}


def _outcome_response(outcome, success_code: int = 200, failure_code: int = 502):
    if outcome.ok:
        return jsonify(outcome.to_dict()), success_code
    code = 404 if "not found" in outcome.error else failure_code
    return jsonify(outcome.to_dict()), code


# ── Board ────────────────────────────────────────────────────────────────────

@app.route("/health")
def health():
    board = get_board()
    return jsonify({
        "status": "ok",
        "configured": board.configured,
        "table": board.config.table_name if board.config else None,
    })


@app.route("/api/board")
def api_board():
    board = get_board()
    data = board.to_dict()
    counts = {col["id"]: len(col["tasks"]) for col in data["columns"]}
    data["stats"] = {
        "total": sum(counts.values()),
        "by_column": counts,
        "completed": sum(
            1 for col in data["columns"] for t in col["tasks"] if t["completed"]
        ),
    }
    return jsonify(data)


@app.route("/api/board/reload", methods=["POST"])
@require_api_key
def api_board_reload():
    outcome = get_board().load()
    return _outcome_response(outcome)


@app.route("/api/config", methods=["GET"])
def api_config_get():
    board = get_board()
    if not board.configured:
        return jsonify({"error": "Board is not configured", "configured": False}), 404
    return jsonify(board.config.to_dict())


@app.route("/api/config", methods=["POST"])
@require_api_key
def api_config_set():
    config = BoardConfig.from_dict(_body())
    get_config_store().save(config)
    board = get_board()
    board.configure(config)
    outcome = board.load()
    return jsonify({**config.to_dict(), "loaded": outcome.ok, "error": outcome.error or None})


@app.route("/api/tables", methods=["GET"])
def api_tables():
    return jsonify({"tables": get_gateway().list_collections()})


@app.route("/api/tables", methods=["POST"])
@require_api_key
def api_create_table():
    name = get_gateway().create_collection(_body().get("tableName", ""))
    return jsonify({
        "success": True,
        "tableName": name,
        "message": "Table created successfully",
    }), 201


# ── Tasks ────────────────────────────────────────────────────────────────────

@app.route("/api/tasks", methods=["GET"])
def api_tasks():
    tasks = get_board().tasks(request.args.get("state"))
    return jsonify({"tasks": [t.to_dict() for t in tasks], "count": len(tasks)})


@app.route("/api/tasks/<task_id>", methods=["GET"])
def api_task_get(task_id):
    board = get_board()
    if not board.configured:
        raise ConfigurationError("Board is not configured: choose a table first")
    task = get_gateway().get(board.config.table_name, task_id)
    return jsonify(task.to_dict())


@app.route("/api/tasks", methods=["POST"])
@require_api_key
def api_task_create():
    data = _body()
    column = data.pop("column", None) or data.get("status") or ColumnId.TODO.value
    screenshot = data.pop("screenshot", None)
    outcome = get_board().add(column, data, screenshot=screenshot)
    return _outcome_response(outcome, success_code=201)


@app.route("/api/tasks/<task_id>", methods=["PATCH"])
@require_api_key
def api_task_update(task_id):
    data = _body()
    screenshot = data.pop("screenshot", None)
    outcome = get_board().update(task_id, data, screenshot=screenshot)
    return _outcome_response(outcome)


@app.route("/api/tasks/<task_id>", methods=["DELETE"])
@require_api_key
def api_task_delete(task_id):
    outcome = get_board().delete(task_id, request.args.get("column"))
    return _outcome_response(outcome)


@app.route("/api/tasks/<task_id>/move", methods=["POST"])
@require_api_key
def api_task_move(task_id):
    data = _body()
    for key in ("from", "to"):
        if not data.get(key):
            raise ValidationError(f"{key} is required")
    outcome = get_board().move(task_id, data["from"], data["to"], data.get("index", 0))
    return _outcome_response(outcome)


@app.route("/api/tasks/<task_id>/duplicate", methods=["POST"])
@require_api_key
def api_task_duplicate(task_id):
    data = _body()
    board = get_board()
    column = data.get("column")
    if not column:
        task = board.find(task_id)
        if task is None:
            return jsonify({"ok": False, "error": f"Task {task_id} not found"}), 404
        column = task.column
    outcome = board.duplicate(task_id, column)
    return _outcome_response(outcome, success_code=201)


@app.route("/api/tasks/<task_id>/toggle", methods=["POST"])
@require_api_key
def api_task_toggle(task_id):
    outcome = get_board().toggle_complete(task_id)
    return _outcome_response(outcome)


# ── Screenshots ──────────────────────────────────────────────────────────────

@app.route("/api/screenshot", methods=["POST"])
@require_api_key
def api_screenshot():
    data = _body()
    client = get_screenshots()
    timestamp = parse_timestamp(data.get("timestamp", 0))
    if data.get("videoId"):
        image = client.capture(data["videoId"], timestamp)
    else:
        image = client.capture_url(data.get("youtubeUrl", ""), timestamp)
    return jsonify({"success": True, "screenshot": image, "timestamp": timestamp})


# ── Diagnostics ──────────────────────────────────────────────────────────────

@app.route("/api/notifications")
def api_notifications():
    try:
        limit = int(request.args.get("limit", 20))
    except ValueError:
        limit = 20
    return jsonify({"notifications": [n.to_dict() for n in get_notices().recent(limit)]})


@app.route("/api/debug")
def api_debug():
    settings = get_settings()
    board = get_board()
    table = request.args.get("table") or (board.config.table_name if board.config else settings.table_name)
    return jsonify({
        "environment": settings.environment_status(),
        "board": {"configured": board.configured, "error": board.error},
        "api_test": get_gateway().diagnose(table),
    })


# ── Main ─────────────────────────────────────────────────────────────────────

def main(argv=None):
    import argparse

    parser = argparse.ArgumentParser(description="Scoreboard Server")
    parser.add_argument("--host", default="127.0.0.1",
                        help="Bind address (use 0.0.0.0 to expose on network)")
    parser.add_argument("--port", type=int, default=3000)
    parser.add_argument("--config", help="Path to config.yaml (overrides SCOREBOARD_CONFIG)")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [scoreboard] %(levelname)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    settings = Settings.load(args.config)
    app.config["SETTINGS"] = settings
    try:
        settings.require_records()
    except AuthError as e:
        logger.error(str(e))
        return 1
    if not settings.api_secret:
        logger.warning(f"{settings.api_secret_env} is not set; write routes will answer 503")

    board = get_board()
    logger.info(
        f"Serving on http://{args.host}:{args.port} "
        f"(table: {board.config.table_name if board.config else 'not configured'})"
    )
    app.run(host=args.host, port=args.port, debug=False, threaded=True)
    return 0


if __name__ == "__main__":
    sys.exit(main())

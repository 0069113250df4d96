# Scoreboard — configuration
# Tunables come from an optional YAML file; secrets only from the environment.

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional

import yaml

from .errors import CredentialsMissing, ConfigurationError
from .schema import BoardConfig

logger = logging.getLogger(__name__)

CONFIG_PATH = Path(os.environ.get("SCOREBOARD_CONFIG", "~/.config/scoreboard/config.yaml")).expanduser()
DEFAULT_BOARD_FILE = "~/.local/share/scoreboard/board.yaml"


@dataclass
class Settings:
    """Runtime configuration for the gateways and the server."""

    # Remote record store
    api_url: str = "https://api.airtable.com/v0"
    meta_url: str = "https://api.airtable.com/v0/meta"
    token_env: str = "AIRTABLE_ACCESS_TOKEN"
    base_id_env: str = "AIRTABLE_BASE_ID"
    table_env: str = "AIRTABLE_TABLE_NAME"
    default_table: str = "Tasks"
    request_timeout: int = 30

    # Image host
    cloud_name_env: str = "CLOUDINARY_CLOUD_NAME"
    upload_key_env: str = "CLOUDINARY_API_KEY"
    upload_secret_env: str = "CLOUDINARY_API_SECRET"
    upload_folder: str = "youtube-screenshots"

    # Screenshot capture service
    screenshot_url_env: str = "SCOREBOARD_SCREENSHOT_URL"
    capture_timeout: int = 90

    # Server
    api_secret_env: str = "SCOREBOARD_API_SECRET"
    board_file: str = DEFAULT_BOARD_FILE

    def resolve_paths(self):
        """Expand ~ and honour SCOREBOARD_BOARD_FILE."""
        env_board = os.environ.get("SCOREBOARD_BOARD_FILE")
        if env_board:
            self.board_file = env_board
        self.board_file = str(Path(self.board_file).expanduser())

    @classmethod
    def load(cls, path: Optional[str] = None) -> "Settings":
        """Load settings from YAML, falling back to defaults."""
        cfg_path = Path(path) if path else CONFIG_PATH
        if cfg_path.exists():
            try:
                with open(cfg_path, "r") as f:
                    data = yaml.safe_load(f) or {}
                cfg = cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
            except (OSError, yaml.YAMLError, TypeError, AttributeError) as e:
                logger.warning(f"Ignoring unreadable config {cfg_path}: {e}")
                cfg = cls()
        else:
            cfg = cls()
        cfg.resolve_paths()
        return cfg

    # ── Secrets (environment only) ──

    @property
    def access_token(self) -> Optional[str]:
        return os.environ.get(self.token_env) or None

    @property
    def base_id(self) -> Optional[str]:
        return os.environ.get(self.base_id_env) or None

    @property
    def table_name(self) -> str:
        return os.environ.get(self.table_env) or self.default_table

    @property
    def cloud_name(self) -> Optional[str]:
        return os.environ.get(self.cloud_name_env) or None

    @property
    def upload_key(self) -> Optional[str]:
        return os.environ.get(self.upload_key_env) or None

    @property
    def upload_secret(self) -> Optional[str]:
        return os.environ.get(self.upload_secret_env) or None

    @property
    def screenshot_url(self) -> Optional[str]:
        return os.environ.get(self.screenshot_url_env) or None

    @property
    def api_secret(self) -> str:
        return os.environ.get(self.api_secret_env, "")

    def require_records(self) -> None:
        """Raise if the record store cannot be reached with what is configured."""
        missing = [
            name for name, value in (
                (self.token_env, self.access_token),
                (self.base_id_env, self.base_id),
            ) if not value
        ]
        if missing:
            raise CredentialsMissing(
                "Server configuration error: missing record store credentials "
                f"({', '.join(missing)})",
                missing=missing,
            )

    def require_uploads(self) -> None:
        missing = [
            name for name, value in (
                (self.cloud_name_env, self.cloud_name),
                (self.upload_key_env, self.upload_key),
                (self.upload_secret_env, self.upload_secret),
            ) if not value
        ]
        if missing:
            raise ConfigurationError(f"Missing image host settings: {', '.join(missing)}")

    def environment_status(self) -> Dict[str, str]:
        """Presence of each secret, with the token masked, for diagnostics."""
        token = self.access_token
        return {
            self.token_env: f"Set (first 5 chars: {token[:5]}...)" if token else "Not set",
            self.base_id_env: self.base_id or "Not set",
            self.table_env: os.environ.get(self.table_env) or "Not set",
            self.cloud_name_env: self.cloud_name or "Not set",
            self.upload_key_env: "Set" if self.upload_key else "Not set",
            self.upload_secret_env: "Set" if self.upload_secret else "Not set",
            self.screenshot_url_env: self.screenshot_url or "Not set",
        }


class BoardConfigStore:
    """The persisted ``{tableName}`` key that selects the board's collection."""

    def __init__(self, path: str):
        self.path = Path(path).expanduser()

    def load(self) -> Optional[BoardConfig]:
        """Return the saved config, or None when absent or unreadable."""
        if not self.path.exists():
            return None
        try:
            with open(self.path, "r") as f:
                data = yaml.safe_load(f) or {}
            return BoardConfig.from_dict(data)
        except Exception as e:
            logger.warning(f"Error parsing saved board config {self.path}: {e}")
            return None

    def save(self, config: BoardConfig) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w") as f:
            yaml.safe_dump(config.to_dict(), f, default_flow_style=False)
        tmp.replace(self.path)
        logger.info(f"Saved board config: table={config.table_name}")

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)

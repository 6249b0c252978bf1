"""Configuration for pydrivesync.

Two layers live here:

* ``Config`` holds process-wide settings (access token, API endpoints)
  read from the environment and from ``~/.config/pydrivesync/config``.
* ``SyncOptions`` holds the per-run inputs of the reconciler.
"""

import logging
import os
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Optional

from dotenv import dotenv_values, set_key

from .exceptions import DriveConfigError

logger = logging.getLogger(__name__)

DEFAULT_API_URL = "https://www.googleapis.com/drive/v2"
DEFAULT_UPLOAD_URL = "https://www.googleapis.com/upload/drive/v2"

STATE_FILE_NAME = ".pydrivesync_state"
"""Watermark file, stored in the root of the synced directory"""

SETTINGS_DIR_NAME = ".pydrivesync"
"""Per-directory settings folder"""

TRASH_DIR_NAME = ".trash"
"""Local trash folder that receives files deleted on the remote side"""


class Config:
    """Process-wide settings.

    Values are looked up in the environment first and then in the config
    file, a dotenv file of ``KEY=value`` lines.
    """

    ENV_ACCESS_TOKEN = "PYDRIVESYNC_ACCESS_TOKEN"
    ENV_API_URL = "PYDRIVESYNC_API_URL"
    ENV_UPLOAD_URL = "PYDRIVESYNC_UPLOAD_URL"

    def __init__(self, config_file: Optional[Path] = None):
        if config_file is None:
            config_file = Path.home() / ".config" / "pydrivesync" / "config"
        self.config_file = config_file
        self._file_values: Optional[dict[str, str]] = None

    def _read_file(self) -> dict[str, str]:
        if self._file_values is not None:
            return self._file_values

        values: dict[str, str] = {}
        if self.config_file.is_file():
            try:
                raw = dotenv_values(self.config_file, encoding="utf-8")
            except OSError as e:
                logger.warning(f"Failed to read config file {self.config_file}: {e}")
            else:
                values = {k: v for k, v in raw.items() if v is not None}
        else:
            logger.debug(f"No config file at {self.config_file}")

        self._file_values = values
        return values

    def get(self, key: str, default: Optional[str] = None) -> Optional[str]:
        """Look up a setting from the environment, then the config file."""
        value = os.environ.get(key)
        if value:
            return value
        return self._read_file().get(key, default)

    @property
    def access_token(self) -> Optional[str]:
        return self.get(self.ENV_ACCESS_TOKEN)

    @property
    def api_url(self) -> str:
        return self.get(self.ENV_API_URL) or DEFAULT_API_URL

    @property
    def upload_url(self) -> str:
        return self.get(self.ENV_UPLOAD_URL) or DEFAULT_UPLOAD_URL

    def is_configured(self) -> bool:
        return bool(self.access_token)

    def save_access_token(self, token: str) -> None:
        """Store the access token in the config file.

        Other keys already present in the file are preserved.
        """
        self.config_file.parent.mkdir(parents=True, exist_ok=True)
        self.config_file.touch(mode=0o600, exist_ok=True)
        set_key(self.config_file, self.ENV_ACCESS_TOKEN, token)
        self.config_file.chmod(0o600)
        self._file_values = None


config = Config()


@dataclass(frozen=True)
class SyncOptions:
    """Inputs of one sync run."""

    path: str = "."
    """Label of the root resource"""

    dir: Optional[str] = None
    """Single top-level directory that restricts the sync scope"""

    ignore: Optional[str] = None
    """Extra ignore regex, ORed with the built-in exclusions"""

    force: bool = False
    """Reset the watermark to the epoch, forcing a full remote re-evaluation"""

    dry_run: bool = False
    """Only show what would be transferred"""

    upload_only: bool = False
    """Never download or delete local files"""

    no_remote_new: bool = False
    """Do not download files that are new on the remote side"""

    max_workers: int = 1
    """Number of parallel transfers"""

    def __post_init__(self) -> None:
        if self.dir is not None and ("/" in self.dir or "\\" in self.dir):
            raise DriveConfigError(
                f"dir must be a single directory name, got: {self.dir!r}"
            )
        if self.max_workers < 1:
            raise DriveConfigError("max_workers must be at least 1")

    def to_dict(self) -> dict[str, Any]:
        """Convert options to a camelCase dictionary."""
        values = asdict(self)
        return {
            "path": values["path"],
            "dir": values["dir"],
            "ignore": values["ignore"],
            "force": values["force"],
            "dryRun": values["dry_run"],
            "uploadOnly": values["upload_only"],
            "noRemoteNew": values["no_remote_new"],
            "maxWorkers": values["max_workers"],
        }

"""Private on-disk storage for the appliance app token."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from ...core.config import settings
from ...core.exceptions import StorageError

logger = logging.getLogger(__name__)

TOKEN_FILE_NAME = "appliance.json"


class TokenStore:
    """
    Key/value file holding the long-lived app token.

    The file is created with mode 0600 inside the application data directory.
    The token itself is never logged.
    """

    def __init__(self, data_dir: Optional[Path] = None):
        self.data_dir = Path(data_dir or settings.DATA_DIR)
        self.path = self.data_dir / TOKEN_FILE_NAME

    def _load(self) -> dict:
        try:
            with self.path.open("r", encoding="utf-8") as file:
                return json.load(file)
        except FileNotFoundError:
            return {}
        except json.JSONDecodeError as err:
            logger.warning("Token file %s is corrupt, ignoring it: %s", self.path, err)
            return {}

    def _save(self, data: dict) -> None:
        try:
            self.data_dir.mkdir(parents=True, exist_ok=True, mode=0o700)
            fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w", encoding="utf-8") as file:
                json.dump(data, file)
        except OSError as err:
            raise StorageError("Failed to save app token", {"path": str(self.path), "error": str(err)})

    @property
    def app_token(self) -> Optional[str]:
        return self._load().get("app_token")

    @app_token.setter
    def app_token(self, value: Optional[str]) -> None:
        data = self._load()
        if value is None:
            data.pop("app_token", None)
        else:
            data["app_token"] = value
        self._save(data)

    def clear(self) -> None:
        """Forget the stored token."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass
        except OSError as err:
            raise StorageError("Failed to remove app token", {"path": str(self.path), "error": str(err)})
        logger.info("Stored appliance authorization forgotten")

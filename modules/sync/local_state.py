"""
Sync Module - Local State
===========================
Small JSON file that keeps the selected canteen and the session token
across client restarts. Writes go through a temp file and os.replace so
a crash never leaves half a file behind.
"""

import json
import logging
import os
import tempfile
import threading
from typing import Any, Optional

from config.settings import SYNC_STATE_FILE

logger = logging.getLogger("cafepreorder.sync.state")

SELECTED_CANTEEN = "selected_canteen"
SESSION_TOKEN = "session_token"


class LocalStateStore:

    def __init__(self, path: Optional[str] = None):
        self.path = path or SYNC_STATE_FILE
        self._lock = threading.Lock()
        self._data = self._load()

    def _load(self) -> dict:
        if not os.path.exists(self.path):
            return {}
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable state file {self.path}: {e}")
            return {}

    def _save(self):
        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".state-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(self._data, f)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def get(self, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(key, default)

    def set(self, key: str, value: Any):
        with self._lock:
            self._data[key] = value
            self._save()

    def delete(self, key: str):
        with self._lock:
            if self._data.pop(key, None) is not None:
                self._save()

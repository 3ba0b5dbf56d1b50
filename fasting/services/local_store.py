"""
Device-local durable key-value store for the fasting client.

State lives in one JSON document, split into namespaces
(e.g. 'autostart', 'offline_queue'). Every write replaces the file
atomically so a crash mid-write never leaves a truncated document.
"""
import json
import logging
import os
import tempfile
import threading
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_STATE_PATH = Path.home() / '.healthtracker' / 'client_state.json'


class LocalStore:
    """JSON file store. Pass path=None and persist=False for an in-memory store."""

    def __init__(self, path: Optional[str] = None, persist: bool = True):
        if persist:
            self.path = Path(path or os.getenv('HEALTHTRACKER_CLIENT_STATE') or DEFAULT_STATE_PATH)
        else:
            self.path = None
        self._lock = threading.RLock()
        self._data = self._load()

    def _load(self) -> dict:
        if self.path is None or not self.path.exists():
            return {}
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read client state from {self.path}: {e}")
            return {}
        return data if isinstance(data, dict) else {}

    def _flush(self) -> None:
        if self.path is None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix='.client_state', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)
        except OSError:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise

    def reload(self) -> None:
        """Re-read the file (picks up writes made by another process)."""
        if self.path is None:
            return
        with self._lock:
            self._data = self._load()

    def get(self, namespace: str, key: str, default: Any = None) -> Any:
        with self._lock:
            return self._data.get(namespace, {}).get(key, default)

    def set(self, namespace: str, key: str, value: Any) -> None:
        with self._lock:
            self._data.setdefault(namespace, {})[key] = value
            self._flush()

    def delete(self, namespace: str, key: str) -> None:
        with self._lock:
            if key in self._data.get(namespace, {}):
                del self._data[namespace][key]
                self._flush()

    def items(self, namespace: str) -> dict:
        with self._lock:
            return dict(self._data.get(namespace, {}))

    def clear(self, namespace: str) -> None:
        with self._lock:
            self._data.pop(namespace, None)
            self._flush()

# jinnie/client/storage.py
"""
Client-side key/value store, the local stand-in for browser localStorage and
chrome.storage.local. One JSON file, every read-modify-write under a file lock,
last write wins.
"""
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Union
import json

from filelock import FileLock

from jinnie.core.logger import get_logger

logger = get_logger(__name__)

PREFIX = "jinnie."

SESSION_KEY = "jinnie.reservation.session"
EMAIL_KEY = "jinnie.reservation.email"
PENDING_PAYLOAD_KEY = "jinnie.reservation.pendingPayload"
EXTENSION_TOKEN_KEY = "jinnie.extension.authToken"
EXTENSION_EMAIL_KEY = "jinnie.extension.userEmail"


class LocalStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._lock = FileLock(str(self.path) + ".lock")

    def _read(self) -> Dict[str, Any]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8") or "{}")
        except ValueError:
            logger.warning("Local store %s is corrupt; starting empty", self.path)
            return {}
        return data if isinstance(data, dict) else {}

    def _write(self, data: Dict[str, Any]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")
        tmp.replace(self.path)

    @staticmethod
    def _check(key: str) -> None:
        if not key.startswith(PREFIX):
            raise KeyError(f"Storage keys must start with {PREFIX!r}: {key!r}")

    def get(self, key: str, default: Any = None) -> Any:
        self._check(key)
        with self._lock:
            return self._read().get(key, default)

    def set(self, key: str, value: Any) -> None:
        self._check(key)
        with self._lock:
            data = self._read()
            data[key] = value
            self._write(data)

    def remove(self, *keys: str) -> None:
        for key in keys:
            self._check(key)
        with self._lock:
            data = self._read()
            if any(k in data for k in keys):
                for k in keys:
                    data.pop(k, None)
                self._write(data)

    def pop(self, key: str, default: Optional[Any] = None) -> Any:
        """Read and remove in one locked step."""
        self._check(key)
        with self._lock:
            data = self._read()
            if key not in data:
                return default
            value = data.pop(key)
            self._write(data)
            return value

    def keys(self) -> Iterable[str]:
        with self._lock:
            return list(self._read().keys())

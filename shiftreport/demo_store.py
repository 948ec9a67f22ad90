# shiftreport/demo_store.py
import base64
import json
import logging
import os
import tempfile
import threading
from typing import Any, Dict, List, Optional, Tuple

logger = logging.getLogger(__name__)

USERS_KEY = 'mock_users'
SESSION_KEY = 'mock_session'
REPORTS_KEY = 'mock_reports'
PHOTOS_KEY = 'mock_photos'
ACTIVITY_KEY = 'mock_activity_logs'

PHOTO_REF_PREFIX = 'mock://photo/'


class MemoryStorage:
    """Key/value string storage held in process memory."""

    def __init__(self):
        self._data: Dict[str, str] = {}

    def get_item(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set_item(self, key: str, value: str):
        self._data[key] = value

    def remove_item(self, key: str):
        self._data.pop(key, None)

    def keys(self) -> List[str]:
        return list(self._data)


class JsonFileStorage(MemoryStorage):
    """Same interface, persisted to one JSON file; each write replaces the file atomically."""

    def __init__(self, path: str):
        super().__init__()
        self.path = os.path.abspath(path)
        if os.path.exists(self.path):
            with open(self.path, 'r', encoding='utf-8') as f:
                loaded = json.load(f)
            if isinstance(loaded, dict):
                self._data = {str(k): str(v) for k, v in loaded.items()}
            else:
                logger.warning("Ignoring malformed demo store at %s", self.path)

    def _flush(self):
        directory = os.path.dirname(self.path)
        os.makedirs(directory, exist_ok=True)
        fd, tmp = tempfile.mkstemp(dir=directory, prefix='.demo-', suffix='.json')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(self._data, f, ensure_ascii=False)
            os.replace(tmp, self.path)
        except OSError:
            if os.path.exists(tmp):
                os.remove(tmp)
            raise

    def set_item(self, key: str, value: str):
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str):
        super().remove_item(key)
        self._flush()


def to_data_url(data: bytes, content_type: str) -> str:
    return f"data:{content_type or 'application/octet-stream'};base64,{base64.b64encode(data).decode('ascii')}"


def from_data_url(data_url: str) -> bytes:
    _, _, payload = (data_url or '').partition(',')
    return base64.b64decode(payload)


class DemoStore:
    """
    The demo collections over a key/value storage. Every collection is kept
    as one JSON blob under its own key.
    """

    def __init__(self, storage=None):
        self.storage = storage if storage is not None else MemoryStorage()
        self._lock = threading.Lock()

    def _read(self, key: str, default: Any) -> Any:
        raw = self.storage.get_item(key)
        if not raw:
            return default
        try:
            return json.loads(raw)
        except ValueError:
            logger.warning("Demo store key %s is not valid JSON; treating as empty", key)
            return default

    def _write(self, key: str, value: Any):
        self.storage.set_item(key, json.dumps(value, ensure_ascii=False))

    def is_fresh(self) -> bool:
        return not self._read(USERS_KEY, []) and not self._read(REPORTS_KEY, [])

    # collections

    def users(self) -> List[Dict[str, Any]]:
        return self._read(USERS_KEY, [])

    def reports(self) -> List[Dict[str, Any]]:
        return self._read(REPORTS_KEY, [])

    def activity_logs(self) -> List[Dict[str, Any]]:
        return self._read(ACTIVITY_KEY, [])

    def photos(self) -> Dict[str, Dict[str, Any]]:
        return self._read(PHOTOS_KEY, {})

    def append(self, key: str, item: Dict[str, Any]):
        with self._lock:
            items = self._read(key, [])
            items.append(item)
            self._write(key, items)

    def append_all(self, entries: List[Tuple[str, Dict[str, Any]]]):
        """Append each (key, item); if any write fails, keys already written get their old value back."""
        with self._lock:
            written = []
            try:
                for key, item in entries:
                    before = self.storage.get_item(key)
                    items = self._read(key, [])
                    items.append(item)
                    self._write(key, items)
                    written.append((key, before))
            except (OSError, TypeError, ValueError):
                for key, before in reversed(written):
                    if before is None:
                        self.storage.remove_item(key)
                    else:
                        self.storage.set_item(key, before)
                raise

    def put_photo(self, photo_id: str, entry: Dict[str, Any]):
        with self._lock:
            photos = self._read(PHOTOS_KEY, {})
            photos[photo_id] = entry
            self._write(PHOTOS_KEY, photos)

    # session scalar

    def session(self) -> Optional[Dict[str, Any]]:
        return self._read(SESSION_KEY, None)

    def set_session(self, session: Optional[Dict[str, Any]]):
        if session is None:
            self.storage.remove_item(SESSION_KEY)
        else:
            self._write(SESSION_KEY, session)

"""
Key/Value Stores

String key/value storage with a byte quota, mirroring browser local
storage: writes that would exceed the quota raise
StorageQuotaExceededError and leave the store unchanged.
"""

import json
import logging
from pathlib import Path
from typing import Protocol

from config.portal_settings import CACHE
from src.utils.errors import CacheDegradationError, StorageQuotaExceededError

logger = logging.getLogger(__name__)


class KeyValueStore(Protocol):
    """Persistent key/value storage used behind the TTL cache."""

    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


def _entry_size(key: str, value: str | None) -> int:
    if value is None:
        return 0
    return len(key.encode("utf-8")) + len(value.encode("utf-8"))


class MemoryStore:
    """Process-local store with a byte quota."""

    def __init__(self, quota_bytes: int | None = None) -> None:
        self.quota_bytes = CACHE["quota_bytes"] if quota_bytes is None else quota_bytes
        self._items: dict[str, str] = {}
        self._used = 0

    @property
    def used_bytes(self) -> int:
        return self._used

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        required = self._used - _entry_size(key, self._items.get(key)) + _entry_size(key, value)
        if required > self.quota_bytes:
            raise StorageQuotaExceededError(key, required, self.quota_bytes)
        self._items[key] = value
        self._used = required

    def remove_item(self, key: str) -> None:
        value = self._items.pop(key, None)
        self._used -= _entry_size(key, value)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileStore(MemoryStore):
    """
    Store persisted as a single JSON document.

    Survives restarts the way browser local storage survives page
    reloads. An unreadable file is ignored and replaced on next write.
    """

    def __init__(self, path: str | Path, quota_bytes: int | None = None) -> None:
        super().__init__(quota_bytes)
        self.path = Path(path)
        self._load()

    def _load(self) -> None:
        if not self.path.exists():
            return
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable cache file {self.path}: {e}")
            return
        if not isinstance(data, dict):
            logger.warning(f"Ignoring malformed cache file {self.path}")
            return
        for key, value in data.items():
            if isinstance(value, str):
                self._items[key] = value
                self._used += _entry_size(key, value)

    def _flush(self) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
            tmp_path.write_text(json.dumps(self._items), encoding="utf-8")
            tmp_path.replace(self.path)
        except OSError as e:
            raise CacheDegradationError(f"Failed to persist cache file {self.path}: {e}") from e

    def set_item(self, key: str, value: str) -> None:
        super().set_item(key, value)
        self._flush()

    def remove_item(self, key: str) -> None:
        if key not in self._items:
            return
        super().remove_item(key)
        self._flush()


def create_store() -> KeyValueStore:
    """Store configured by CACHE settings: file-backed if a path is set."""
    if CACHE["storage_path"]:
        return JsonFileStore(CACHE["storage_path"])
    return MemoryStore()

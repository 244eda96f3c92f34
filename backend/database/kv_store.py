"""
Key-value persistence adapter.

A namespaced mapping from string keys to JSON values, standing in for the
browser's durable local storage. Every backend stores values as JSON so a
read always returns a fresh copy, never a live reference to stored state.

All operations are synchronous. Storage exhaustion (disk full, database
unavailable) is not handled here and propagates to the caller.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Protocol

from arango.database import StandardDatabase

from config.config import Settings, get_settings
from config.logging_config import get_logger
from database.database import KV_COLLECTION, get_database

logger = get_logger(__name__)


class KeyValueStore(Protocol):
    """Durable string-keyed JSON storage."""

    def read(self, key: str) -> Any | None: ...

    def write(self, key: str, value: Any) -> None: ...

    def remove(self, key: str) -> None: ...

    def keys(self) -> list[str]: ...


class MemoryKeyValueStore:
    """Process-local store, used by tests and the `memory` backend."""

    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def read(self, key: str) -> Any | None:
        raw = self._items.get(key)
        return json.loads(raw) if raw is not None else None

    def write(self, key: str, value: Any) -> None:
        self._items[key] = json.dumps(value)

    def remove(self, key: str) -> None:
        self._items.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._items)


class JsonFileKeyValueStore:
    """
    Store every key in a single JSON document on disk.

    The file is re-read on each access so several processes pointed at the
    same path observe each other's writes. Writes go through a temporary
    file and `os.replace` so a crash never leaves a half-written document.
    """

    def __init__(self, path: str | Path):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)

    def _load(self) -> dict[str, Any]:
        if not self.path.exists():
            return {}
        with open(self.path, "r", encoding="utf-8") as f:
            text = f.read()
        return json.loads(text) if text.strip() else {}

    def _dump(self, items: dict[str, Any]) -> None:
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(items, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise

    def read(self, key: str) -> Any | None:
        return self._load().get(key)

    def write(self, key: str, value: Any) -> None:
        items = self._load()
        items[key] = value
        self._dump(items)

    def remove(self, key: str) -> None:
        items = self._load()
        if key in items:
            del items[key]
            self._dump(items)

    def keys(self) -> list[str]:
        return list(self._load())


class ArangoKeyValueStore:
    """Store each key as one document in the `kv_store` collection."""

    def __init__(self, db: StandardDatabase, collection: str = KV_COLLECTION):
        self.collection = db.collection(collection)

    def read(self, key: str) -> Any | None:
        document = self.collection.get(key)
        if document is None:
            return None
        return json.loads(document["value"])

    def write(self, key: str, value: Any) -> None:
        self.collection.insert(
            {"_key": key, "value": json.dumps(value)},
            overwrite=True,
            silent=True,
        )

    def remove(self, key: str) -> None:
        self.collection.delete(key, ignore_missing=True)

    def keys(self) -> list[str]:
        return list(self.collection.keys())


def get_kv_store(settings: Settings | None = None) -> KeyValueStore:
    """
    Build the persistence backend selected by `storage_backend`.

    Args:
        settings: Application settings. Uses default if not provided.

    Returns:
        A KeyValueStore implementation.
    """
    settings = settings or get_settings()
    backend = settings.storage_backend

    if backend == "memory":
        store: KeyValueStore = MemoryKeyValueStore()
    elif backend == "file":
        store = JsonFileKeyValueStore(settings.storage_path)
    else:
        store = ArangoKeyValueStore(get_database(settings))

    logger.info("Key-value store ready", backend=backend)
    return store

"""Raw local storage primitives.

Two kinds of store back the local variant:

    KeyValueStore — string keys → JSON strings (manifest, settings).
    BlobStore     — one table of MediaRecords keyed by generated id.

Each has an in-memory implementation for tests and a file-backed one:

    JsonFileKeyValueStore — a single JSON object file.
    DirectoryBlobStore    — {root}/schema.json plus one directory per store:
                              media/{id}.json   record metadata
                              media/{id}.bin    payload

DirectoryBlobStore opens lazily on first use. ``schema.json`` records the
schema version; upgrades run in order and may only add stores. A store
written by a newer schema cannot be opened.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Protocol

from pydantic import ValidationError as PydanticValidationError

from storyweave.errors import StorageUnavailable
from storyweave.models import MediaRecord

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Key/value store
# ---------------------------------------------------------------------------

class KeyValueStore(Protocol):
    def get(self, key: str) -> str | None: ...

    def set(self, key: str, value: str) -> None: ...

    def delete(self, key: str) -> None: ...


class MemoryKeyValueStore:
    def __init__(self, initial: dict[str, str] | None = None) -> None:
        self._data: dict[str, str] = dict(initial or {})

    def get(self, key: str) -> str | None:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def delete(self, key: str) -> None:
        self._data.pop(key, None)


class JsonFileKeyValueStore:
    """All keys in one JSON object file, rewritten on every change."""

    def __init__(self, path: Path) -> None:
        self._path = path

    def _read(self) -> dict[str, str]:
        if not self._path.is_file():
            return {}
        try:
            data = json.loads(self._path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise StorageUnavailable(f"Cannot read {self._path}: {e}") from e
        return data if isinstance(data, dict) else {}

    def _write(self, data: dict[str, str]) -> None:
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            self._path.write_text(json.dumps(data, indent=2))
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {self._path}: {e}") from e

    def get(self, key: str) -> str | None:
        return self._read().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read()
        data[key] = value
        self._write(data)

    def delete(self, key: str) -> None:
        data = self._read()
        if data.pop(key, None) is not None:
            self._write(data)


# ---------------------------------------------------------------------------
# Blob store
# ---------------------------------------------------------------------------

class BlobStore(Protocol):
    async def get(self, key: str) -> MediaRecord | None: ...

    async def put(self, record: MediaRecord) -> None: ...

    async def delete(self, key: str) -> bool: ...

    async def keys(self) -> list[str]: ...


class MemoryBlobStore:
    def __init__(self) -> None:
        self._records: dict[str, MediaRecord] = {}

    async def get(self, key: str) -> MediaRecord | None:
        return self._records.get(key)

    async def put(self, record: MediaRecord) -> None:
        self._records[record.id] = record

    async def delete(self, key: str) -> bool:
        return self._records.pop(key, None) is not None

    async def keys(self) -> list[str]:
        return sorted(self._records)


MEDIA_STORE = "media"


def _upgrade_v1(root: Path) -> None:
    (root / MEDIA_STORE).mkdir(exist_ok=True)


# version → upgrade step that brings a store from version-1 to version
_UPGRADES: dict[int, Callable[[Path], None]] = {
    1: _upgrade_v1,
}
SCHEMA_VERSION = max(_UPGRADES)


class DirectoryBlobStore:
    """MediaRecords stored as metadata + payload files under ``root``.

    ``root=None`` models a host without a local object store: every
    operation raises StorageUnavailable.
    """

    def __init__(self, root: Path | None) -> None:
        self._root = root
        self._opened = False

    def _open(self) -> Path:
        if self._root is None:
            raise StorageUnavailable("Local media storage is not available")
        if self._opened:
            return self._root
        root = self._root
        schema_path = root / "schema.json"
        try:
            root.mkdir(parents=True, exist_ok=True)
            version = 0
            if schema_path.is_file():
                version = int(json.loads(schema_path.read_text()).get("version", 0))
            if version > SCHEMA_VERSION:
                raise StorageUnavailable(
                    f"Media store schema v{version} is newer than supported v{SCHEMA_VERSION}"
                )
            for target in range(version + 1, SCHEMA_VERSION + 1):
                logger.info("Upgrading media store %s to schema v%d", root, target)
                _UPGRADES[target](root)
                schema_path.write_text(json.dumps({"version": target}))
        except (OSError, ValueError, AttributeError) as e:
            raise StorageUnavailable(f"Cannot open media store at {root}: {e}") from e
        self._opened = True
        return root

    def _paths(self, key: str) -> tuple[Path, Path]:
        store = self._open() / MEDIA_STORE
        if not key or "/" in key or "\\" in key or key.startswith("."):
            raise StorageUnavailable(f"Invalid media key {key!r}")
        return store / f"{key}.json", store / f"{key}.bin"

    async def get(self, key: str) -> MediaRecord | None:
        meta_path, blob_path = self._paths(key)
        if not meta_path.is_file() or not blob_path.is_file():
            return None
        try:
            meta = json.loads(meta_path.read_text())
            return MediaRecord.model_validate({**meta, "blob": blob_path.read_bytes()})
        except (OSError, json.JSONDecodeError, PydanticValidationError) as e:
            logger.warning("Unreadable media record %s: %s", key, e)
            return None

    async def put(self, record: MediaRecord) -> None:
        meta_path, blob_path = self._paths(record.id)
        try:
            blob_path.write_bytes(record.blob)
            meta_path.write_text(record.model_dump_json(exclude={"blob"}, indent=2))
        except OSError as e:
            raise StorageUnavailable(f"Cannot write media record {record.id}: {e}") from e

    async def delete(self, key: str) -> bool:
        meta_path, blob_path = self._paths(key)
        existed = meta_path.is_file()
        meta_path.unlink(missing_ok=True)
        blob_path.unlink(missing_ok=True)
        return existed

    async def keys(self) -> list[str]:
        store = self._open() / MEDIA_STORE
        return sorted(p.stem for p in store.glob("*.json"))

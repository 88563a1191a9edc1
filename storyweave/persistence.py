"""Persistence adapters — loading and saving the story manifest.

Every implementation matches the protocol:

    async def load() -> StoryManifest | None      # None or no pages: "no story yet"
    async def save(manifest: StoryManifest) -> bool  # False: stale, not written
    async def stored_revision() -> int | None     # readable even when load() fails

Two implementations are provided:

    RemotePersistence — GET/POST {base_url}/api/story on a storyweave server.
    LocalPersistence  — JSON under one key of a local KeyValueStore.

Saves are never cancelled, so an older save may complete after a newer one.
Each manifest carries a ``revision``; stores ignore a manifest whose revision
is lower than the one they hold (the server applies the same rule), so the
last *issued* write wins regardless of completion order. A stale save is
reported by returning False.

SettingsStore keeps the playback/display settings in a KeyValueStore.
"""

from __future__ import annotations

import json
import logging
from typing import Any, Protocol

import httpx

from storyweave.errors import FormatError, NetworkFailure
from storyweave.manifest import parse_manifest
from storyweave.models import Settings, StoryManifest
from storyweave.stores import KeyValueStore

logger = logging.getLogger(__name__)

STORY_KEY = "storyweave-story-v1"
SETTINGS_KEY = "storyweave-settings-v1"


class StoryPersistence(Protocol):
    keeps_media_ids: bool

    async def load(self) -> StoryManifest | None: ...

    async def save(self, manifest: StoryManifest) -> bool: ...

    async def stored_revision(self) -> int | None: ...


def is_stale(incoming: int | None, stored: int | None) -> bool:
    """Whether a write at revision ``incoming`` must not replace ``stored``."""
    return incoming is not None and stored is not None and incoming < stored


def _revision_of(data: Any) -> int | None:
    """The revision of raw manifest JSON, whatever the shape of its pages."""
    revision = data.get("revision") if isinstance(data, dict) else None
    if isinstance(revision, bool) or not isinstance(revision, int):
        return None
    return revision


def _json_object(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# RemotePersistence
# ---------------------------------------------------------------------------

class RemotePersistence:
    """Story manifest stored by a storyweave server.

    Args:
        base_url:  Server origin, e.g. "http://localhost:3000".
        timeout:   HTTP timeout in seconds.
        transport: Optional httpx transport (tests pass an ASGITransport).
    """

    keeps_media_ids = False

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    async def load(self) -> StoryManifest | None:
        try:
            async with self._client() as client:
                resp = await client.get("/api/story")
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Cannot load story from {self._base_url}: {e}") from e

        if resp.status_code == 404:
            logger.info("No story.json on the server")
            return None
        if resp.status_code >= 400:
            raise NetworkFailure(f"Loading story failed: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as e:
            raise FormatError("Server returned invalid JSON") from e
        return parse_manifest(data)

    async def save(self, manifest: StoryManifest) -> bool:
        try:
            async with self._client() as client:
                resp = await client.post("/api/story", json=manifest.dump())
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Saving story failed: {e}") from e

        body = _json_object(resp)
        if resp.status_code >= 400:
            raise NetworkFailure(body.get("error") or f"Saving story failed: HTTP {resp.status_code}")
        if body.get("stale"):
            logger.info("Server ignored stale save revision=%s", manifest.revision)
            return False
        logger.debug("story saved revision=%s pages=%d", manifest.revision, len(manifest.pages))
        return True

    async def stored_revision(self) -> int | None:
        try:
            async with self._client() as client:
                resp = await client.get("/api/story")
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Cannot load story from {self._base_url}: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise NetworkFailure(f"Loading story failed: HTTP {resp.status_code}")
        return _revision_of(_json_object(resp))


# ---------------------------------------------------------------------------
# LocalPersistence
# ---------------------------------------------------------------------------

class LocalPersistence:
    """Story manifest as JSON under one key of a KeyValueStore."""

    keeps_media_ids = True

    def __init__(self, kv: KeyValueStore, key: str = STORY_KEY) -> None:
        self._kv = kv
        self._key = key

    async def load(self) -> StoryManifest | None:
        raw = self._kv.get(self._key)
        if not raw:
            return None
        try:
            data = json.loads(raw)
        except json.JSONDecodeError as e:
            raise FormatError(f"Stored story is not valid JSON: {e}") from e
        return parse_manifest(data)

    async def stored_revision(self) -> int | None:
        raw = self._kv.get(self._key)
        if not raw:
            return None
        try:
            return _revision_of(json.loads(raw))
        except json.JSONDecodeError:
            return None

    async def save(self, manifest: StoryManifest) -> bool:
        stored = await self.stored_revision()
        if is_stale(manifest.revision, stored):
            logger.info("Ignoring stale save revision=%s (stored %s)", manifest.revision, stored)
            return False
        self._kv.set(self._key, json.dumps(manifest.dump()))
        return True


# ---------------------------------------------------------------------------
# SettingsStore
# ---------------------------------------------------------------------------

class SettingsStore:
    """Settings as JSON under one key. Broken or partial data falls back to defaults."""

    def __init__(self, kv: KeyValueStore, key: str = SETTINGS_KEY) -> None:
        self._kv = kv
        self._key = key

    def load(self) -> Settings:
        raw = self._kv.get(self._key)
        if not raw:
            return Settings()
        try:
            return Settings.from_stored(json.loads(raw))
        except json.JSONDecodeError as e:
            logger.warning("Stored settings are not valid JSON: %s", e)
            return Settings()

    def save(self, settings: Settings) -> None:
        self._kv.set(self._key, json.dumps(settings.dump()))

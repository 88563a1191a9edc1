"""Media store adapters — where uploaded image/video payloads live.

Every implementation matches the protocol:

    async def store(data, file_name, mime, type) -> MediaReference
    async def fetch(reference) -> MediaRecord | None

Two implementations are provided:

    RemoteMediaStore — uploads to the server's /api/upload endpoint; the
                       server picks a collision-resistant file name under
                       its materials directory. Returns a ServerPath.
    LocalMediaStore  — writes MediaRecords into a local BlobStore under a
                       generated id. Returns a LocalBlobId.

Every ``store`` call creates a new independent record; there is no dedup.
"""

from __future__ import annotations

import logging
import uuid
from typing import Protocol

import httpx

from storyweave.errors import NetworkFailure, ValidationError
from storyweave.models import (
    LocalBlobId,
    MediaRecord,
    MediaReference,
    PageType,
    ServerPath,
)
from storyweave.stores import BlobStore

logger = logging.getLogger(__name__)

MIME_EXTENSIONS: dict[str, str] = {
    "image/jpeg": "jpg",
    "image/jpg": "jpg",
    "image/png": "png",
    "image/gif": "gif",
    "image/webp": "webp",
    "video/mp4": "mp4",
    "video/webm": "webm",
    "video/ogg": "ogv",
}

DEFAULT_EXTENSIONS: dict[str, str] = {"image": "jpg", "video": "mp4"}

EXTENSION_MIMES: dict[str, str] = {
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "png": "image/png",
    "gif": "image/gif",
    "webp": "image/webp",
    "mp4": "video/mp4",
    "webm": "video/webm",
    "ogv": "video/ogg",
}


def extension_for_mime(mime: str, default: str) -> str:
    return MIME_EXTENSIONS.get(mime, default)


def mime_for_file_name(file_name: str) -> str:
    ext = file_name.rsplit(".", 1)[-1].lower() if "." in file_name else ""
    return EXTENSION_MIMES.get(ext, "application/octet-stream")


def media_type_for_mime(mime: str) -> PageType:
    """Page type for an uploaded file. Raises ValidationError for non-media files."""
    if mime.startswith("image/"):
        return "image"
    if mime.startswith("video/"):
        return "video"
    raise ValidationError("Only image or video files are supported")


def new_media_id() -> str:
    return f"media-{uuid.uuid4().hex}"


class MediaStore(Protocol):
    async def store(
        self, data: bytes, file_name: str, mime: str, type: PageType
    ) -> MediaReference: ...

    async def fetch(self, reference: MediaReference) -> MediaRecord | None: ...


# ---------------------------------------------------------------------------
# RemoteMediaStore — upload + static serve
# ---------------------------------------------------------------------------

class RemoteMediaStore:
    """Uploads media to a storyweave server.

    Args:
        base_url:  Server origin, e.g. "http://localhost:3000".
        timeout:   HTTP timeout in seconds.
        transport: Optional httpx transport (tests pass an ASGITransport).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._base_url, timeout=self._timeout, transport=self._transport
        )

    async def store(
        self, data: bytes, file_name: str, mime: str, type: PageType
    ) -> MediaReference:
        logger.debug("upload file=%s mime=%s size=%d", file_name, mime, len(data))
        try:
            async with self._client() as client:
                resp = await client.post(
                    "/api/upload", files={"file": (file_name, data, mime)}
                )
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Upload failed: {e}") from e

        body = _json_or_empty(resp)
        if resp.status_code >= 400 or not body.get("success"):
            raise NetworkFailure(body.get("error") or f"Upload failed: HTTP {resp.status_code}")
        logger.info("Uploaded %s as %s", file_name, body.get("fileName"))
        return ServerPath(value=body["filePath"])

    async def fetch(self, reference: MediaReference) -> MediaRecord | None:
        if not isinstance(reference, ServerPath):
            return None
        path = reference.value if reference.value.startswith("/") else f"/{reference.value}"
        try:
            async with self._client() as client:
                resp = await client.get(path)
        except httpx.HTTPError as e:
            raise NetworkFailure(f"Cannot fetch {path}: {e}") from e
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise NetworkFailure(f"Cannot fetch {path}: HTTP {resp.status_code}")
        mime = resp.headers.get("content-type", "").split(";")[0] or mime_for_file_name(path)
        return MediaRecord(
            id=reference.value,
            type="video" if mime.startswith("video/") else "image",
            file_name=reference.file_name,
            mime=mime,
            blob=resp.content,
        )


def _json_or_empty(resp: httpx.Response) -> dict:
    try:
        body = resp.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


# ---------------------------------------------------------------------------
# LocalMediaStore — local key/object store
# ---------------------------------------------------------------------------

class LocalMediaStore:
    """MediaRecords in a local BlobStore. Pages hold only the record id.

    Deleting a record never touches pages; their references resolve to
    "missing media" afterwards.
    """

    def __init__(self, blobs: BlobStore) -> None:
        self._blobs = blobs

    async def store(
        self, data: bytes, file_name: str, mime: str, type: PageType
    ) -> MediaReference:
        record = MediaRecord(
            id=new_media_id(), type=type, file_name=file_name, mime=mime, blob=data
        )
        await self._blobs.put(record)
        logger.debug("Stored media %s (%s, %d bytes)", record.id, mime, len(data))
        return LocalBlobId(value=record.id)

    async def fetch(self, reference: MediaReference) -> MediaRecord | None:
        if not isinstance(reference, LocalBlobId):
            return None
        return await self._blobs.get(reference.value)

    async def delete(self, media_id: str) -> bool:
        return await self._blobs.delete(media_id)

    async def list_ids(self) -> list[str]:
        return await self._blobs.keys()

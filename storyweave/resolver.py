"""Media reference resolution — turns a page's stored reference into something displayable.

    RemoteUrl   → the URL unchanged
    ServerPath  → a rooted URL ("/materials/x.png"), prefixed with the server
                  origin when one is configured
    LocalBlobId → a data: URL wrapping the blob from the media store, or None
                  when the record is missing

Resolution never raises for missing media; the caller renders an empty slot.
"""

from __future__ import annotations

import base64
import logging
from dataclasses import dataclass

from storyweave.document import StoryDocument
from storyweave.errors import StoryError
from storyweave.media import MediaStore
from storyweave.models import (
    LocalBlobId,
    MediaReference,
    Page,
    RemoteUrl,
    ServerPath,
    is_http_url,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DisplaySource:
    """A source a view can put in an <img>/<video> element."""

    url: str
    mime: str | None = None
    data: bytes | None = None


def rooted_path(path: str) -> str:
    if is_http_url(path):
        return path
    return path if path.startswith("/") else f"/{path}"


def data_url(mime: str, payload: bytes) -> str:
    encoded = base64.b64encode(payload).decode("ascii")
    return f"data:{mime or 'application/octet-stream'};base64,{encoded}"


class MediaResolver:
    """Resolves media references against the configured backends.

    Args:
        media_store: Store used for LocalBlobId references. Without one,
                     blob references resolve to None.
        origin:      Server origin prefixed to ServerPath references,
                     e.g. "http://localhost:3000". Empty keeps them rooted.
    """

    def __init__(self, media_store: MediaStore | None = None, origin: str = "") -> None:
        self._media_store = media_store
        self._origin = origin.rstrip("/")
        self._prefetched: dict[str, tuple[Page, DisplaySource | None]] = {}

    async def resolve(self, reference: MediaReference | None) -> DisplaySource | None:
        if reference is None:
            return None
        if isinstance(reference, RemoteUrl):
            return DisplaySource(url=reference.value)
        if isinstance(reference, ServerPath):
            path = rooted_path(reference.value)
            if self._origin and not is_http_url(path):
                path = f"{self._origin}{path}"
            return DisplaySource(url=path)
        if isinstance(reference, LocalBlobId):
            return await self._resolve_blob(reference)
        return None

    async def _resolve_blob(self, reference: LocalBlobId) -> DisplaySource | None:
        if self._media_store is None:
            logger.warning("No media store configured for %s", reference.value)
            return None
        try:
            record = await self._media_store.fetch(reference)
        except StoryError as e:
            logger.warning("Cannot read media %s: %s", reference.value, e)
            return None
        if record is None:
            logger.warning("Media %s not found", reference.value)
            return None
        return DisplaySource(
            url=data_url(record.mime, record.blob), mime=record.mime, data=record.blob
        )

    async def resolve_page(self, page: Page | None) -> DisplaySource | None:
        """Source for a page: its media reference first, then its fallback url."""
        if page is None or not page.is_media:
            return None
        source = await self.resolve(page.media)
        if source is None and page.fallback_url:
            return DisplaySource(url=page.fallback_url)
        return source

    async def prefetch_next(self, document: StoryDocument) -> DisplaySource | None:
        """Resolve the page after the cursor ahead of time. Best-effort."""
        page = document.next_page
        if page is None or not page.is_media:
            return None
        try:
            source = await self.resolve_page(page)
        except Exception as e:  # noqa: BLE001
            logger.warning("Prefetch of page %s failed: %s", page.id, e)
            return None
        # only the upcoming page is kept
        self._prefetched = {page.id: (page, source)}
        return source

    def cached(self, page: Page) -> DisplaySource | None:
        """The prefetched source for ``page``, unless the page changed since."""
        entry = self._prefetched.get(page.id)
        if entry is None or entry[0] != page:
            return None
        return entry[1]

    def forget(self, page_id: str) -> None:
        self._prefetched.pop(page_id, None)

    def clear(self) -> None:
        self._prefetched.clear()

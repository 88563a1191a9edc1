"""Conversion between in-memory pages and the story.json manifest.

Server-backed manifests name uploaded media by ``fileName`` relative to the
materials directory; on load they become ``ServerPath("materials/<name>")``
references. Media pages carry ``fileName`` or ``url``; when a page has both
(local exports), the url is kept as the page's fallback.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError as PydanticValidationError

from storyweave.errors import FormatError
from storyweave.models import (
    MANIFEST_VERSION,
    LocalBlobId,
    ManifestPage,
    Page,
    RemoteUrl,
    ServerPath,
    StoryManifest,
    is_http_url,
    is_safe_page_id,
    new_page_id,
)

logger = logging.getLogger(__name__)

MATERIALS_DIR = "materials"


def parse_manifest(data: Any) -> StoryManifest:
    """Validate raw JSON data as a manifest. Raises FormatError."""
    if not isinstance(data, dict) or not isinstance(data.get("pages"), list):
        raise FormatError("Invalid story data: expected an object with a pages list")
    try:
        return StoryManifest.model_validate(data)
    except PydanticValidationError as e:
        raise FormatError(f"Invalid story data: {e.error_count()} invalid field(s)") from e


def manifest_page(page: Page, keep_media_ids: bool = False) -> ManifestPage:
    """Manifest entry for a page.

    Local blob ids are written as ``mediaId`` only when ``keep_media_ids`` is
    set; otherwise such pages fall back to their url, if any.
    """
    entry = ManifestPage(id=page.id, type=page.type, duration_sec=page.duration_sec)
    if page.type == "text":
        entry.text = page.text
        return entry
    if isinstance(page.media, ServerPath):
        entry.file_name = page.media.file_name
    elif isinstance(page.media, RemoteUrl):
        entry.url = page.media.value
    elif isinstance(page.media, LocalBlobId) and keep_media_ids:
        entry.media_id = page.media.value
        entry.url = page.fallback_url
    elif page.fallback_url:
        entry.url = page.fallback_url
    return entry


def manifest_from_pages(
    pages: list[Page], revision: int | None = None, keep_media_ids: bool = False
) -> StoryManifest:
    return StoryManifest(
        version=MANIFEST_VERSION,
        updated_at=datetime.now(timezone.utc).isoformat(),
        revision=revision,
        pages=[manifest_page(p, keep_media_ids) for p in pages],
    )


def _url_reference(url: str | None, page_id: str) -> RemoteUrl | None:
    if not url:
        return None
    if not is_http_url(url):
        logger.warning("Page %s: ignoring non-http url %r", page_id, url)
        return None
    return RemoteUrl(value=url)


def manifest_page_id(entry: ManifestPage) -> str:
    """The entry's id, or a fresh one when it is missing or unsafe as a file name."""
    if entry.id is None:
        return new_page_id()
    if not is_safe_page_id(entry.id):
        logger.warning("Replacing unsafe page id %r", entry.id)
        return new_page_id()
    return entry.id


def page_from_manifest(entry: ManifestPage) -> Page:
    """Build a page from a manifest entry. Raises pydantic's ValidationError."""
    page_id = manifest_page_id(entry)
    if entry.type == "text":
        return Page(id=page_id, type="text", text=entry.text or "",
                    duration_sec=entry.duration_sec)

    remote = _url_reference(entry.url, page_id)
    if entry.media_id:
        return Page(
            id=page_id,
            type=entry.type,
            media=LocalBlobId(value=entry.media_id),
            fallback_url=remote.value if remote else None,
            duration_sec=entry.duration_sec,
        )
    if entry.file_name:
        return Page(
            id=page_id,
            type=entry.type,
            media=ServerPath(value=f"{MATERIALS_DIR}/{entry.file_name}"),
            fallback_url=remote.value if remote else None,
            duration_sec=entry.duration_sec,
        )
    return Page(id=page_id, type=entry.type, media=remote, duration_sec=entry.duration_sec)


def pages_from_manifest(manifest: StoryManifest) -> list[Page]:
    """Raises FormatError when an entry cannot form a valid page."""
    pages = []
    for position, entry in enumerate(manifest.pages, start=1):
        try:
            pages.append(page_from_manifest(entry))
        except PydanticValidationError as e:
            raise FormatError(f"Invalid story data: page {position} is not a valid page") from e
    return pages

"""Import/export of a story as a portable directory.

Export layout:

    {dir}/
      story.json          manifest — media pages name a file (fileName) and/or
                          carry a url; raw blob ids are never written
      {page_id}.{ext}     one payload per media page whose record was found

The extension comes from the record's mime type, falling back to jpg for
images and mp4 for videos. A page whose record is missing keeps its
fallback url, or is exported with neither field (lossy).

Import reads the manifest, loads each named file into the media store
(a fresh reference per page) and falls back to the page's url when a file
cannot be read. Without a media directory (single-file import) fileName
references cannot be resolved at all; those pages keep their url or come in
without media and produce a reminder to re-attach them.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from storyweave.errors import FormatError, StorageUnavailable, StoryError
from storyweave.manifest import manifest_page_id, parse_manifest
from storyweave.media import (
    DEFAULT_EXTENSIONS,
    MediaStore,
    extension_for_mime,
    mime_for_file_name,
)
from storyweave.models import (
    MANIFEST_VERSION,
    ManifestPage,
    MediaRecord,
    MediaReference,
    Page,
    RemoteUrl,
    StoryManifest,
    is_http_url,
    is_safe_page_id,
    new_page_id,
)

logger = logging.getLogger(__name__)

EXPORT_MANIFEST = "story.json"


@dataclass
class ExportReport:
    pages: int = 0
    files: list[str] = field(default_factory=list)
    lossy: list[str] = field(default_factory=list)  # page ids exported without media
    warnings: list[str] = field(default_factory=list)


@dataclass
class ImportReport:
    imported: int = 0
    media_loaded: int = 0
    failed: list[str] = field(default_factory=list)  # page ids whose file could not be read
    reminders: list[str] = field(default_factory=list)


def read_manifest(path: Path) -> StoryManifest:
    """Read and validate an exported manifest. Raises FormatError."""
    try:
        data = json.loads(path.read_text())
    except OSError as e:
        raise FormatError(f"Cannot read {path.name}: {e}") from e
    except json.JSONDecodeError as e:
        raise FormatError(f"{path.name} is not valid JSON: {e}") from e
    return parse_manifest(data)


class Reconciler:
    """Bundles pages and their media for export, and reverses it on import."""

    def __init__(self, media_store: MediaStore) -> None:
        self._media_store = media_store

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    async def _fetch(self, reference: MediaReference) -> MediaRecord | None:
        try:
            return await self._media_store.fetch(reference)
        except StoryError as e:
            logger.warning("Cannot read media %s for export: %s", reference.value, e)
            return None

    async def bundle(self, pages: list[Page]) -> tuple[StoryManifest, dict[str, bytes], ExportReport]:
        """Build the export manifest and the named payloads for ``pages``."""
        report = ExportReport(pages=len(pages))
        files: dict[str, bytes] = {}
        entries: list[ManifestPage] = []

        for page in pages:
            entry = ManifestPage(id=page.id, type=page.type, duration_sec=page.duration_sec)
            entries.append(entry)
            if page.type == "text":
                entry.text = page.text
                continue
            if isinstance(page.media, RemoteUrl):
                entry.url = page.media.value
                continue

            record = await self._fetch(page.media) if page.media is not None else None
            if record is not None:
                ext = extension_for_mime(record.mime, DEFAULT_EXTENSIONS[page.type])
                stem = page.id if is_safe_page_id(page.id) else new_page_id()
                entry.file_name = f"{stem}.{ext}"
                files[entry.file_name] = record.blob
            entry.url = page.fallback_url
            if record is None and not page.fallback_url:
                logger.warning("Page %s exported without media", page.id)
                report.lossy.append(page.id)

        manifest = StoryManifest(
            version=MANIFEST_VERSION,
            updated_at=datetime.now(timezone.utc).isoformat(),
            pages=entries,
        )
        report.files = sorted(files)
        return manifest, files, report

    async def export_to_directory(self, pages: list[Page], directory: Path) -> ExportReport:
        manifest, files, report = await self.bundle(pages)
        try:
            directory.mkdir(parents=True, exist_ok=True)
            for name, payload in files.items():
                (directory / name).write_bytes(payload)
            (directory / EXPORT_MANIFEST).write_text(json.dumps(manifest.dump(), indent=2))
        except OSError as e:
            raise StorageUnavailable(f"Cannot write export to {directory}: {e}") from e
        logger.info("Exported %d pages and %d files to %s", report.pages, len(files), directory)
        return report

    async def export_to_file(self, pages: list[Page], path: Path) -> ExportReport:
        """Manifest-only export for hosts that cannot write a directory."""
        manifest, files, report = await self.bundle(pages)
        try:
            path.write_text(json.dumps(manifest.dump(), indent=2))
        except OSError as e:
            raise StorageUnavailable(f"Cannot write {path}: {e}") from e
        report.files = []
        if files:
            report.warnings.append(
                f"{len(files)} media file(s) were not exported; "
                "export them manually next to the manifest using the listed file names"
            )
        return report

    # ------------------------------------------------------------------
    # Import
    # ------------------------------------------------------------------

    async def _load_file(
        self, media_dir: Path, entry: ManifestPage
    ) -> MediaReference | None:
        name = entry.file_name or ""
        if Path(name).name != name:
            logger.warning("Refusing media file name outside the import directory: %r", name)
            return None
        try:
            payload = (media_dir / name).read_bytes()
        except OSError as e:
            logger.warning("Cannot read %s: %s", name, e)
            return None
        mime = mime_for_file_name(name)
        if mime == "application/octet-stream":
            mime = "image/jpeg" if entry.type == "image" else "video/mp4"
        return await self._media_store.store(payload, name, mime, entry.type)

    async def load_pages(
        self, manifest: StoryManifest, media_dir: Path | None
    ) -> tuple[list[Page], ImportReport]:
        """Turn a manifest into pages, storing referenced files. Raises StorageUnavailable."""
        report = ImportReport()
        pages: list[Page] = []

        for position, entry in enumerate(manifest.pages, start=1):
            page_id = manifest_page_id(entry)
            if entry.type == "text":
                pages.append(_build_page(position, id=page_id, type="text", text=entry.text or "",
                                         duration_sec=entry.duration_sec))
                continue

            remote = RemoteUrl(value=entry.url) if entry.url and is_http_url(entry.url) else None
            media: MediaReference | None = None
            if entry.file_name and media_dir is not None:
                media = await self._load_file(media_dir, entry)
                if media is not None:
                    report.media_loaded += 1
                elif remote is None:
                    report.failed.append(page_id)
            elif entry.file_name and remote is None:
                report.reminders.append(
                    f"Page {position}: re-attach {entry.file_name} manually"
                )
            elif entry.file_name is None and remote is None:
                report.reminders.append(f"Page {position}: no media, attach a file")

            pages.append(_build_page(
                position,
                id=page_id,
                type=entry.type,
                media=media or remote,
                fallback_url=remote.value if media is not None and remote else None,
                duration_sec=entry.duration_sec,
            ))

        report.imported = len(pages)
        return pages, report


def _build_page(position: int, **fields) -> Page:
    try:
        return Page(**fields)
    except PydanticValidationError as e:
        raise FormatError(f"Invalid story data: page {position} is not a valid page") from e

"""Story session — the explicit context every editor/player operation goes through.

A session owns the document, the settings and every collaborator (story
persistence, settings store, media store, resolver, autoplay timer). It is
created with its backends, started once, and closed once:

    session = StorySession(persistence=..., settings_store=..., media_store=...)
    await session.start()       # load settings + story (or seed the default)
    await session.add_page(PageDraft(type="text", text="Hello"))
    session.next()
    await session.close()       # cancel the timer, drain background work

Operation flow:
  mutation    → validate → mutate document → resync form → restart timer
                → save → prefetch the next page's media
  navigation  → move cursor → resync form → restart timer → prefetch
                (navigation never persists anything)
  settings    → update → persist settings → restart timer when relevant

Every StoryError raised inside an operation is caught at the operation
boundary and handed to ``notify``; the document is never left half-mutated.
Results of awaited work (resolution, uploads) are re-checked against the
current state before they are applied.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Coroutine

from storyweave.document import StoryDocument
from storyweave.errors import StoryError, ValidationError
from storyweave.manifest import manifest_from_pages, pages_from_manifest
from storyweave.media import MediaStore, media_type_for_mime
from storyweave.models import MediaReference, Page, PageDraft, PageType, Settings, StoryManifest
from storyweave.persistence import SettingsStore, StoryPersistence
from storyweave.reconcile import (
    EXPORT_MANIFEST,
    ExportReport,
    ImportReport,
    Reconciler,
    read_manifest,
)
from storyweave.resolver import DisplaySource, MediaResolver
from storyweave.timer import AutoplayTimer, Clock, Scheduler, effective_duration

logger = logging.getLogger(__name__)

WELCOME_TEXT = (
    "Welcome to Storyweave.\n\n"
    "Swipe left or press the next button to begin your story."
)
EMPTY_PLACEHOLDER = "No pages yet. Add one in the editor."
MISSING_MEDIA_PLACEHOLDER = "Media not available. Re-attach a file in the editor."
TYPE_LABELS: dict[str, str] = {"text": "Text", "image": "Image", "video": "Video"}


@dataclass(frozen=True)
class Notification:
    kind: str
    message: str


@dataclass(frozen=True)
class PageRow:
    """One entry of the editor's page list."""

    index: int
    page_id: str
    type_label: str
    duration_label: str
    active: bool


@dataclass(frozen=True)
class Indicator:
    """Progress dots under the slide."""

    total: int
    active: int | None
    fill_ms: int | None  # animation length of the active dot while autoplaying


@dataclass(frozen=True)
class SlideView:
    page: Page | None
    source: DisplaySource | None
    placeholder: str | None = None


@dataclass(frozen=True)
class PendingMedia:
    reference: MediaReference
    type: PageType
    file_name: str


Notify = Callable[[Notification], Any]
Confirm = Callable[[int], bool]


def _log_notification(note: Notification) -> None:
    logger.warning("[%s] %s", note.kind, note.message)


class StorySession:
    def __init__(
        self,
        *,
        persistence: StoryPersistence,
        settings_store: SettingsStore,
        media_store: MediaStore | None = None,
        resolver: MediaResolver | None = None,
        scheduler: Scheduler | None = None,
        clock: Clock | None = None,
        notify: Notify | None = None,
    ) -> None:
        self.document = StoryDocument()
        self.settings = Settings()
        self.form = PageDraft()
        self.pending_media: PendingMedia | None = None
        self.notifications: list[Notification] = []

        self._persistence = persistence
        self._settings_store = settings_store
        self._media_store = media_store
        self.resolver = resolver or MediaResolver(media_store)
        self.timer = AutoplayTimer(self._on_timer_elapsed, scheduler=scheduler, clock=clock)
        self._notify_cb = notify or _log_notification
        self._revision = 0
        self._tasks: set[asyncio.Task] = set()
        self._started = False

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        try:
            self.settings = self._settings_store.load()
        except StoryError as e:
            self._notify(e)

        pages: list[Page] = []
        try:
            manifest = await self._persistence.load()
            if manifest is not None:
                self._revision = manifest.revision or 0
                pages = pages_from_manifest(manifest)
        except StoryError as e:
            logger.warning("Loading story failed, using the default story: %s", e)
            self._notify(e)
            await self._sync_revision()

        if pages:
            self.document.replace_all(pages)
            logger.info("Loaded %d pages", len(self.document))
        else:
            self.document.replace_all([
                Page(type="text", text=WELCOME_TEXT, duration_sec=5),
            ])
        self._started = True
        self._after_cursor_change()

    async def close(self) -> None:
        self.timer.cancel()
        self._started = False
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)

    # ------------------------------------------------------------------
    # Notifications and background work
    # ------------------------------------------------------------------

    def _notify(self, error: StoryError) -> None:
        note = Notification(kind=error.kind, message=str(error))
        self.notifications.append(note)
        self._notify_cb(note)

    def _spawn(self, coro: Coroutine[Any, Any, Any]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _prefetch(self) -> None:
        if self.document.next_page is not None:
            self._spawn(self.resolver.prefetch_next(self.document))

    def _after_cursor_change(self) -> None:
        self.form = PageDraft.from_page(self.document.current_page)
        self.timer.restart(self.document, self.settings)
        if self._started:
            self._prefetch()

    def _on_timer_elapsed(self) -> None:
        self.advance(+1)

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def _sync_revision(self) -> None:
        """Continue numbering after whatever revision the store holds."""
        try:
            stored = await self._persistence.stored_revision()
        except StoryError as e:
            logger.warning("Cannot read the stored revision: %s", e)
            return
        self._revision = max(self._revision, stored or 0)

    def _manifest(self, revision: int) -> StoryManifest:
        return manifest_from_pages(
            list(self.document.pages),
            revision=revision,
            keep_media_ids=self._persistence.keeps_media_ids,
        )

    async def save(self) -> bool:
        """Persist the document as it is now. Returns False if the save failed."""
        self._revision += 1
        revision = self._revision
        try:
            if await self._persistence.save(self._manifest(revision)):
                return True
            if revision != self._revision:
                # superseded by a newer save from this session
                return True
            await self._sync_revision()
            self._revision += 1
            if await self._persistence.save(self._manifest(self._revision)):
                return True
        except StoryError as e:
            self._notify(e)
            return False
        note = Notification(
            kind="warning",
            message="The story was not saved: a newer version is already stored",
        )
        self.notifications.append(note)
        self._notify_cb(note)
        return False

    async def _after_mutation(self) -> bool:
        self._after_cursor_change()
        return await self.save()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def _with_pending(self, draft: PageDraft) -> PageDraft:
        pending = self.pending_media
        if pending is None or draft.media is not None:
            return draft
        return draft.model_copy(update={"media": pending.reference, "media_type": pending.type})

    async def add_page(self, draft: PageDraft | None = None) -> Page | None:
        try:
            page = self.document.add_page(self._with_pending(draft or self.form))
        except StoryError as e:
            self._notify(e)
            return None
        self.pending_media = None
        await self._after_mutation()
        return page

    async def replace_current(self, draft: PageDraft | None = None) -> Page | None:
        try:
            page = self.document.replace_current(self._with_pending(draft or self.form))
        except StoryError as e:
            self._notify(e)
            return None
        self.pending_media = None
        self.resolver.forget(page.id)
        await self._after_mutation()
        return page

    async def delete_current(self) -> Page | None:
        removed = self.document.delete_current()
        if removed is None:
            return None
        self.resolver.forget(removed.id)
        await self._after_mutation()
        return removed

    async def replace_pages(self, pages: list[Page]) -> None:
        """Swap in a whole new story (used by import) and save it."""
        self.document.replace_all(pages)
        self.pending_media = None
        self.resolver.clear()
        await self._after_mutation()

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    def advance(self, step: int) -> int | None:
        if self.document.is_empty():
            return None
        index = self.document.advance(step)
        self._after_cursor_change()
        return index

    def next(self) -> int | None:
        return self.advance(+1)

    def prev(self) -> int | None:
        return self.advance(-1)

    def go_to(self, index: int) -> int | None:
        try:
            self.document.set_current_index(index)
        except IndexError as e:
            self._notify(ValidationError(str(e)))
            return None
        self._after_cursor_change()
        return index

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    def _persist_settings(self) -> None:
        try:
            self._settings_store.save(self.settings)
        except StoryError as e:
            self._notify(e)

    def set_auto_play(self, enabled: bool) -> None:
        self.settings.auto_play = enabled
        self.timer.restart(self.document, self.settings)
        self._persist_settings()

    def set_interval(self, seconds: float) -> bool:
        if not isinstance(seconds, (int, float)) or not math.isfinite(seconds) or seconds <= 0:
            self._notify(ValidationError("The autoplay interval must be a positive number"))
            return False
        self.settings.auto_play_interval_sec = seconds
        self.timer.restart(self.document, self.settings)
        self._persist_settings()
        return True

    def set_text_size(self, size: float) -> bool:
        if not isinstance(size, (int, float)) or not math.isfinite(size):
            return False
        self.settings.text_size = size
        self._persist_settings()
        return True

    # ------------------------------------------------------------------
    # Media
    # ------------------------------------------------------------------

    async def attach_media(self, data: bytes, file_name: str, mime: str) -> PendingMedia | None:
        """Store a chosen file and make it the form's pending media.

        On failure the previous pending media, if any, is kept.
        """
        if self._media_store is None:
            self._notify(ValidationError("No media store is configured"))
            return None
        try:
            page_type = media_type_for_mime(mime)
            reference = await self._media_store.store(data, file_name, mime, page_type)
        except StoryError as e:
            self._notify(e)
            return None

        pending = PendingMedia(reference=reference, type=page_type, file_name=file_name)
        self.pending_media = pending
        self.form = self.form.model_copy(update={
            "type": page_type,
            "text": "",
            "media": reference,
            "media_type": page_type,
            "url": f"[selected] {file_name}",
        })
        return pending

    # ------------------------------------------------------------------
    # Import / export
    # ------------------------------------------------------------------

    def _reconciler(self) -> Reconciler:
        if self._media_store is None:
            raise ValidationError("Import/export needs a media store")
        return Reconciler(self._media_store)

    async def export_to_directory(self, directory: Path) -> ExportReport | None:
        try:
            return await self._reconciler().export_to_directory(list(self.document.pages), directory)
        except StoryError as e:
            self._notify(e)
            return None

    async def export_to_file(self, path: Path) -> ExportReport | None:
        try:
            report = await self._reconciler().export_to_file(list(self.document.pages), path)
        except StoryError as e:
            self._notify(e)
            return None
        for warning in report.warnings:
            self.notifications.append(Notification(kind="warning", message=warning))
        return report

    async def _import(
        self, manifest_path: Path, media_dir: Path | None, confirm: Confirm
    ) -> ImportReport | None:
        try:
            reconciler = self._reconciler()
            manifest = read_manifest(manifest_path)
            if not confirm(len(manifest.pages)):
                logger.info("Import of %d pages cancelled", len(manifest.pages))
                return None
            pages, report = await reconciler.load_pages(manifest, media_dir)
        except StoryError as e:
            self._notify(e)
            return None
        await self.replace_pages(pages)
        for reminder in report.reminders:
            self.notifications.append(Notification(kind="reminder", message=reminder))
        logger.info(
            "Imported %d pages (%d media loaded, %d failed)",
            report.imported, report.media_loaded, len(report.failed),
        )
        return report

    async def import_from_directory(self, directory: Path, confirm: Confirm) -> ImportReport | None:
        return await self._import(directory / EXPORT_MANIFEST, directory, confirm)

    async def import_from_file(self, path: Path, confirm: Confirm) -> ImportReport | None:
        return await self._import(path, None, confirm)

    # ------------------------------------------------------------------
    # View state
    # ------------------------------------------------------------------

    def page_rows(self) -> list[PageRow]:
        rows = []
        for index, page in enumerate(self.document.pages):
            if page.duration_sec:
                duration = f"{page.duration_sec:g}s"
            else:
                duration = f"{self.settings.auto_play_interval_sec:g}s (default)"
            rows.append(PageRow(
                index=index,
                page_id=page.id,
                type_label=TYPE_LABELS[page.type],
                duration_label=duration,
                active=index == self.document.current_index,
            ))
        return rows

    def indicator(self) -> Indicator:
        page = self.document.current_page
        fill_ms = None
        if page is not None and self.settings.auto_play:
            fill_ms = int(effective_duration(page, self.settings) * 1000)
        return Indicator(
            total=len(self.document),
            active=self.document.current_index,
            fill_ms=fill_ms,
        )

    async def render(self) -> SlideView:
        """What the slide shows now: the current page and its resolved media."""
        while True:
            page = self.document.current_page
            if page is None:
                return SlideView(page=None, source=None, placeholder=EMPTY_PLACEHOLDER)
            if not page.is_media:
                self._prefetch()
                return SlideView(page=page, source=None)
            source = self.resolver.cached(page) or await self.resolver.resolve_page(page)
            current = self.document.current_page
            if current is not None and current.id == page.id and current == page:
                self._prefetch()
                if source is None:
                    return SlideView(page=page, source=None, placeholder=MISSING_MEDIA_PLACEHOLDER)
                return SlideView(page=page, source=source)
            # the cursor or page moved while resolving; resolve the new one

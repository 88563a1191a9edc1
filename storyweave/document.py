"""The story document — ordered pages plus the playback cursor.

``current_index`` is None exactly when the document is empty; every
mutation that shrinks the page list clamps it. All mutations are
all-or-nothing: a draft that fails validation leaves the document as it was.
"""

from __future__ import annotations

from storyweave.errors import ValidationError
from storyweave.models import Page, PageDraft


class StoryDocument:
    def __init__(self, pages: list[Page] | None = None, current_index: int | None = None) -> None:
        self._pages: list[Page] = list(pages or [])
        self._current: int | None = None
        if self._pages:
            self._current = min(max(current_index or 0, 0), len(self._pages) - 1)

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def pages(self) -> tuple[Page, ...]:
        return tuple(self._pages)

    @property
    def current_index(self) -> int | None:
        return self._current

    @property
    def current_page(self) -> Page | None:
        if self._current is None:
            return None
        return self._pages[self._current]

    @property
    def next_page(self) -> Page | None:
        """The page that follows the cursor in (circular) playback order."""
        if self._current is None:
            return None
        return self._pages[(self._current + 1) % len(self._pages)]

    def __len__(self) -> int:
        return len(self._pages)

    def is_empty(self) -> bool:
        return not self._pages

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_page(self, draft: PageDraft) -> Page:
        """Append a page built from ``draft`` and move the cursor onto it."""
        page = draft.to_page()
        self._pages.append(page)
        self._current = len(self._pages) - 1
        return page

    def replace_current(self, draft: PageDraft) -> Page:
        """Replace the current page's content, keeping its id."""
        current = self.current_page
        if current is None:
            raise ValidationError("There is no current page; add a page first")
        page = draft.to_page(page_id=current.id)
        self._pages[self._current] = page
        return page

    def delete_current(self) -> Page | None:
        """Remove the current page. Returns it, or None on an empty document."""
        if self._current is None:
            return None
        removed = self._pages.pop(self._current)
        if not self._pages:
            self._current = None
        else:
            self._current = min(self._current, len(self._pages) - 1)
        return removed

    def set_current_index(self, index: int) -> None:
        if not 0 <= index < len(self._pages):
            raise IndexError(f"Page index {index} out of range")
        self._current = index

    def advance(self, step: int = 1) -> int | None:
        """Move the cursor by ``step``, wrapping in both directions."""
        if self._current is None:
            return None
        self._current = (self._current + step) % len(self._pages)
        return self._current

    def replace_all(self, pages: list[Page]) -> None:
        """Swap in a whole new page list (load, import); cursor goes to the first page."""
        self._pages = list(pages)
        self._current = 0 if self._pages else None

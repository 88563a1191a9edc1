"""Tests for storyweave.document — mutations, clamping and circular advance."""

import pytest

from storyweave.document import StoryDocument
from storyweave.errors import ValidationError
from storyweave.models import Page, PageDraft


def _text(text: str, **kw) -> PageDraft:
    return PageDraft(type="text", text=text, **kw)


def _doc(n: int) -> StoryDocument:
    return StoryDocument([Page(type="text", text=f"p{i}") for i in range(n)])


class TestAddAndReplace:
    def test_new_document_is_empty(self) -> None:
        doc = StoryDocument()
        assert doc.is_empty()
        assert doc.current_index is None
        assert doc.current_page is None
        assert doc.next_page is None

    def test_add_moves_cursor_to_new_page(self) -> None:
        doc = _doc(2)
        page = doc.add_page(_text("new"))
        assert doc.current_index == 2
        assert doc.current_page == page

    def test_add_invalid_leaves_document_unchanged(self) -> None:
        doc = StoryDocument()
        with pytest.raises(ValidationError):
            doc.add_page(PageDraft(type="image"))
        assert len(doc) == 0
        assert doc.current_index is None

    def test_replace_keeps_id(self) -> None:
        doc = _doc(1)
        old_id = doc.current_page.id
        page = doc.replace_current(PageDraft(type="image", url="https://e.com/a.png"))
        assert page.id == old_id
        assert doc.current_page.type == "image"

    def test_replace_invalid_leaves_page(self) -> None:
        doc = _doc(1)
        before = doc.current_page
        with pytest.raises(ValidationError):
            doc.replace_current(_text(""))
        assert doc.current_page == before

    def test_replace_on_empty_document(self) -> None:
        with pytest.raises(ValidationError):
            StoryDocument().replace_current(_text("x"))


class TestDelete:
    def test_delete_only_page_empties_document(self) -> None:
        doc = _doc(1)
        doc.delete_current()
        assert doc.is_empty()
        assert doc.current_index is None

    def test_delete_last_clamps_cursor(self) -> None:
        doc = _doc(3)
        doc.set_current_index(2)
        doc.delete_current()
        assert doc.current_index == 1

    def test_delete_middle_keeps_index(self) -> None:
        doc = _doc(3)
        doc.set_current_index(1)
        removed = doc.delete_current()
        assert removed.text == "p1"
        assert doc.current_index == 1
        assert doc.current_page.text == "p2"

    def test_delete_on_empty_is_noop(self) -> None:
        assert StoryDocument().delete_current() is None


class TestNavigation:
    @pytest.mark.parametrize("n", [1, 2, 5])
    def test_full_cycle_returns_to_start(self, n: int) -> None:
        doc = _doc(n)
        for start in range(n):
            doc.set_current_index(start)
            for _ in range(n):
                doc.advance(+1)
            assert doc.current_index == start

    def test_backwards_wraps(self) -> None:
        doc = _doc(3)
        assert doc.advance(-1) == 2

    def test_advance_on_empty_is_noop(self) -> None:
        doc = StoryDocument()
        assert doc.advance(+1) is None
        assert doc.current_index is None

    def test_next_page_wraps(self) -> None:
        doc = _doc(2)
        doc.set_current_index(1)
        assert doc.next_page.text == "p0"

    def test_set_current_index_out_of_range(self) -> None:
        with pytest.raises(IndexError):
            _doc(2).set_current_index(2)

    def test_replace_all_resets_cursor(self) -> None:
        doc = _doc(3)
        doc.set_current_index(2)
        doc.replace_all([Page(type="text", text="only")])
        assert doc.current_index == 0
        doc.replace_all([])
        assert doc.current_index is None

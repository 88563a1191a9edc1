"""Tests for storyweave.models."""

import math

import pytest
from pydantic import ValidationError as PydanticValidationError

from storyweave.errors import ValidationError
from storyweave.models import (
    LocalBlobId,
    ManifestPage,
    Page,
    PageDraft,
    RemoteUrl,
    ServerPath,
    Settings,
    StoryManifest,
)


class TestMediaReference:
    def test_remote_url_requires_http(self) -> None:
        with pytest.raises(PydanticValidationError):
            RemoteUrl(value="ftp://example.com/a.png")

    def test_empty_reference_rejected(self) -> None:
        with pytest.raises(PydanticValidationError):
            LocalBlobId(value="   ")

    def test_server_path_file_name(self) -> None:
        assert ServerPath(value="/materials/cat_1_abc.png").file_name == "cat_1_abc.png"
        assert ServerPath(value="materials/x.mp4").file_name == "x.mp4"

    def test_discriminated_by_kind(self) -> None:
        page = Page.model_validate(
            {"type": "image", "media": {"kind": "blob", "value": "media-1"}}
        )
        assert isinstance(page.media, LocalBlobId)


class TestPage:
    def test_ids_are_unique(self) -> None:
        assert Page(type="text", text="a").id != Page(type="text", text="a").id

    def test_text_page_cannot_carry_media(self) -> None:
        with pytest.raises(PydanticValidationError):
            Page(type="text", text="x", media=RemoteUrl(value="https://e.com/a.png"))

    def test_media_page_cannot_carry_text(self) -> None:
        with pytest.raises(PydanticValidationError):
            Page(type="image", text="x")

    def test_duration_must_be_positive(self) -> None:
        with pytest.raises(PydanticValidationError):
            Page(type="text", text="x", duration_sec=0)

    def test_is_complete(self) -> None:
        assert Page(type="text", text="hi").is_complete
        assert not Page(type="text", text="  ").is_complete
        assert not Page(type="video").is_complete
        assert Page(type="video", media=ServerPath(value="materials/v.mp4")).is_complete


class TestPageDraft:
    def test_text_is_stripped(self) -> None:
        page = PageDraft(type="text", text="  Hello  ").to_page()
        assert page.text == "Hello"

    def test_empty_text_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PageDraft(type="text", text="   ").to_page()

    def test_media_page_without_source_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PageDraft(type="image").to_page()

    def test_url_becomes_remote_reference(self) -> None:
        page = PageDraft(type="image", url=" https://e.com/a.png ").to_page()
        assert page.media == RemoteUrl(value="https://e.com/a.png")

    def test_invalid_url_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PageDraft(type="image", url="not a url").to_page()

    def test_label_url_is_ignored(self) -> None:
        with pytest.raises(ValidationError):
            PageDraft(type="image", url="[selected] cat.png").to_page()

    def test_pending_media_wins_over_url(self) -> None:
        draft = PageDraft(
            type="image",
            url="https://e.com/a.png",
            media=LocalBlobId(value="media-1"),
            media_type="image",
        )
        assert draft.to_page().media == LocalBlobId(value="media-1")

    def test_pending_media_of_other_type_ignored(self) -> None:
        draft = PageDraft(
            type="video",
            url="https://e.com/v.mp4",
            media=LocalBlobId(value="media-1"),
            media_type="image",
        )
        assert draft.to_page().media == RemoteUrl(value="https://e.com/v.mp4")

    def test_zero_duration_means_default(self) -> None:
        assert PageDraft(type="text", text="x", duration_sec=0).to_page().duration_sec is None

    def test_negative_duration_rejected(self) -> None:
        with pytest.raises(ValidationError):
            PageDraft(type="text", text="x", duration_sec=-2).to_page()

    def test_keeps_given_id(self) -> None:
        assert PageDraft(type="text", text="x").to_page(page_id="abc").id == "abc"

    def test_from_page_text(self) -> None:
        draft = PageDraft.from_page(Page(type="text", text="Hi", duration_sec=4))
        assert (draft.type, draft.text, draft.duration_sec) == ("text", "Hi", 4)

    def test_from_page_local_media_shows_label(self) -> None:
        page = Page(type="image", media=LocalBlobId(value="media-9"))
        draft = PageDraft.from_page(page)
        assert draft.url.startswith("[")
        assert draft.to_page().media == page.media

    def test_from_page_none_is_empty_form(self) -> None:
        assert PageDraft.from_page(None) == PageDraft()


class TestSettings:
    def test_defaults(self) -> None:
        s = Settings()
        assert (s.auto_play, s.auto_play_interval_sec, s.text_size) == (False, 5.0, 18)

    def test_dump_uses_wire_names(self) -> None:
        assert set(Settings().dump()) == {"autoPlay", "autoPlayIntervalSec", "textSize"}

    def test_from_stored_ignores_bad_fields(self) -> None:
        s = Settings.from_stored({"autoPlay": "yes", "autoPlayIntervalSec": -3, "textSize": 22})
        assert s.auto_play is False
        assert s.auto_play_interval_sec == 5.0
        assert s.text_size == 22

    def test_from_stored_non_dict(self) -> None:
        assert Settings.from_stored(["x"]) == Settings()

    def test_interval_must_be_finite(self) -> None:
        with pytest.raises(PydanticValidationError):
            Settings(auto_play_interval_sec=math.inf)


class TestManifest:
    def test_dump_omits_missing_fields(self) -> None:
        manifest = StoryManifest(pages=[ManifestPage(id="a", type="text", text="x")])
        assert manifest.dump()["pages"] == [{"id": "a", "type": "text", "text": "x"}]

    def test_non_positive_duration_read_as_default(self) -> None:
        entry = ManifestPage.model_validate({"type": "text", "durationSec": 0})
        assert entry.duration_sec is None

    def test_aliases_accepted(self) -> None:
        entry = ManifestPage.model_validate({"type": "image", "fileName": "a.png"})
        assert entry.file_name == "a.png"

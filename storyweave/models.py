"""Core domain models.

Every component operates on these types. Pydantic is used for validation
and serialisation at every data boundary: the editor form (PageDraft), the
persisted manifest (StoryManifest), local media records and settings.
"""

from __future__ import annotations

import math
import re
import uuid
from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError as PydanticValidationError,
    field_validator,
    model_validator,
)

from storyweave.errors import ValidationError

PageType = Literal["text", "image", "video"]

MEDIA_TYPES: tuple[str, ...] = ("image", "video")


def new_page_id() -> str:
    return uuid.uuid4().hex


_SAFE_PAGE_ID = re.compile(r"[A-Za-z0-9][A-Za-z0-9_-]{0,127}")


def is_safe_page_id(value: str | None) -> bool:
    """Whether ``value`` can name an export file without leaving its directory."""
    return bool(value) and _SAFE_PAGE_ID.fullmatch(value) is not None


def is_http_url(value: str) -> bool:
    return value.startswith("http://") or value.startswith("https://")


# ---------------------------------------------------------------------------
# Media references — tagged union discriminated on "kind"
# ---------------------------------------------------------------------------

class _Reference(BaseModel):
    model_config = ConfigDict(frozen=True)

    value: str

    @field_validator("value")
    @classmethod
    def _non_empty(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("media reference must not be empty")
        return v


class RemoteUrl(_Reference):
    """Absolute http(s) URL, displayed as-is."""

    kind: Literal["url"] = "url"

    @field_validator("value")
    @classmethod
    def _absolute(cls, v: str) -> str:
        if not is_http_url(v):
            raise ValueError(f"not an http(s) URL: {v!r}")
        return v


class ServerPath(_Reference):
    """Path of an uploaded file, relative to the server's materials directory."""

    kind: Literal["path"] = "path"

    @property
    def file_name(self) -> str:
        return self.value.rstrip("/").split("/")[-1]


class LocalBlobId(_Reference):
    """Key of a MediaRecord in the local media store."""

    kind: Literal["blob"] = "blob"


MediaReference = Annotated[
    Union[RemoteUrl, ServerPath, LocalBlobId], Field(discriminator="kind")
]


# ---------------------------------------------------------------------------
# Pages
# ---------------------------------------------------------------------------

class Page(BaseModel):
    """One slide of the story.

    Text pages carry ``text``; image and video pages carry ``media`` and may
    carry a ``fallback_url`` used when the media itself cannot be read.
    Media pages loaded from an import may have no media at all. They render
    an empty slot until a file is re-attached.
    """

    id: str = Field(default_factory=new_page_id)
    type: PageType
    text: str | None = None
    media: MediaReference | None = None
    fallback_url: str | None = None
    duration_sec: float | None = Field(default=None, gt=0)

    @model_validator(mode="after")
    def _fields_match_type(self) -> "Page":
        if self.type == "text":
            if self.media is not None or self.fallback_url is not None:
                raise ValueError("text pages cannot carry media")
            if self.text is None:
                self.text = ""
        elif self.text is not None:
            raise ValueError(f"{self.type} pages cannot carry text")
        return self

    @property
    def is_media(self) -> bool:
        return self.type in MEDIA_TYPES

    @property
    def is_complete(self) -> bool:
        """Whether the page could be committed from the editor as it is."""
        if self.type == "text":
            return bool(self.text and self.text.strip())
        return self.media is not None


class PageDraft(BaseModel):
    """The editor form for a page, before it is committed.

    ``media`` is a file that was already stored through the media store; it
    wins over ``url`` when its page type matches. A ``url`` starting with
    ``[`` is a display label for an attached file, not a URL.
    """

    type: PageType = "text"
    text: str = ""
    url: str = ""
    media: MediaReference | None = None
    media_type: PageType | None = None
    duration_sec: float | None = None

    def effective_duration(self) -> float | None:
        d = self.duration_sec
        if d is None or d == 0:
            return None
        if not math.isfinite(d) or d < 0:
            raise ValidationError("Page duration must be a positive number of seconds")
        return float(d)

    def to_page(self, page_id: str | None = None) -> Page:
        """Validate the draft and build a Page. Raises ValidationError."""
        duration = self.effective_duration()
        page_id = page_id or new_page_id()

        if self.type == "text":
            text = self.text.strip()
            if not text:
                raise ValidationError("Please enter the page text")
            return Page(id=page_id, type="text", text=text, duration_sec=duration)

        media = None
        if self.media is not None and (self.media_type in (None, self.type)):
            media = self.media
        else:
            url = self.url.strip()
            if url and not url.startswith("["):
                try:
                    media = RemoteUrl(value=url)
                except PydanticValidationError:
                    raise ValidationError(f"Not a valid http(s) URL: {url}") from None
        if media is None:
            raise ValidationError(
                "Please enter an image / video URL or choose a local file"
            )
        return Page(id=page_id, type=self.type, media=media, duration_sec=duration)

    @classmethod
    def from_page(cls, page: Page | None) -> "PageDraft":
        """Form state reflecting ``page`` (an empty form when there is none)."""
        if page is None:
            return cls()
        if page.type == "text":
            return cls(type="text", text=page.text or "", duration_sec=page.duration_sec)
        url = ""
        if isinstance(page.media, RemoteUrl):
            url = page.media.value
        elif page.media is not None:
            url = f"[local file] {page.media.value}"
        elif page.fallback_url:
            url = page.fallback_url
        return cls(
            type=page.type,
            url=url,
            media=page.media if not isinstance(page.media, RemoteUrl) else None,
            media_type=page.type,
            duration_sec=page.duration_sec,
        )


# ---------------------------------------------------------------------------
# Local media records
# ---------------------------------------------------------------------------

class MediaRecord(BaseModel):
    """A binary payload owned by the local media store."""

    id: str
    type: PageType
    file_name: str = ""
    mime: str = ""
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    blob: bytes = b""


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------

DEFAULT_INTERVAL_SEC = 5.0
DEFAULT_TEXT_SIZE = 18


class Settings(BaseModel):
    """Process-wide playback and display settings."""

    model_config = ConfigDict(populate_by_name=True, validate_assignment=True)

    auto_play: bool = Field(default=False, alias="autoPlay")
    auto_play_interval_sec: float = Field(
        default=DEFAULT_INTERVAL_SEC, gt=0, alias="autoPlayIntervalSec"
    )
    text_size: float = Field(default=DEFAULT_TEXT_SIZE, alias="textSize")

    @field_validator("auto_play_interval_sec", "text_size")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("must be a finite number")
        return v

    @classmethod
    def from_stored(cls, data: Any) -> "Settings":
        """Build settings from stored JSON, ignoring any field of the wrong type."""
        settings = cls()
        if not isinstance(data, dict):
            return settings
        if isinstance(data.get("autoPlay"), bool):
            settings.auto_play = data["autoPlay"]
        for alias, name in (
            ("autoPlayIntervalSec", "auto_play_interval_sec"),
            ("textSize", "text_size"),
        ):
            value = data.get(alias)
            if isinstance(value, (int, float)) and not isinstance(value, bool):
                try:
                    setattr(settings, name, value)
                except PydanticValidationError:
                    pass
        return settings

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


# ---------------------------------------------------------------------------
# Manifest (wire format)
# ---------------------------------------------------------------------------

MANIFEST_VERSION = "1.0"


class ManifestPage(BaseModel):
    """One page as it appears in story.json.

    ``mediaId`` is only written by local persistence, which shares the media
    store with the document. Exports and the server never see it.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    id: str | None = None
    type: PageType
    duration_sec: float | None = Field(default=None, alias="durationSec")
    text: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    url: str | None = None
    media_id: str | None = Field(default=None, alias="mediaId")

    @field_validator("duration_sec", mode="before")
    @classmethod
    def _positive_or_none(cls, v: Any) -> Any:
        if isinstance(v, (int, float)) and not isinstance(v, bool) and not (v > 0 and math.isfinite(v)):
            return None
        return v


class StoryManifest(BaseModel):
    """The persisted story: ``{version, updatedAt, revision?, pages[]}``."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    version: str = MANIFEST_VERSION
    updated_at: str | None = Field(default=None, alias="updatedAt")
    revision: int | None = None
    pages: list[ManifestPage] = Field(default_factory=list)

    def dump(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)

"""Pydantic request models for API endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator


class StoryPage(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: str | None = None
    type: Literal["text", "image", "video"]
    duration_sec: float | None = Field(default=None, alias="durationSec")
    text: str | None = None
    file_name: str | None = Field(default=None, alias="fileName")
    url: str | None = None

    @model_validator(mode="after")
    def _file_name_xor_url(self) -> "StoryPage":
        if self.file_name and self.url:
            raise ValueError("a media page carries fileName or url, not both")
        return self


class StoryBody(BaseModel):
    model_config = ConfigDict(extra="allow")

    version: str | None = None
    revision: int | None = None
    pages: list[StoryPage]


class UpdateSettings(BaseModel):
    autoPlay: bool | None = None
    autoPlayIntervalSec: float | None = Field(default=None, gt=0)
    textSize: float | None = None

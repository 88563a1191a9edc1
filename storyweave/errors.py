"""Error taxonomy shared by every storyweave component.

Each error carries a short ``kind`` string. The session turns any
StoryError raised at an operation boundary into a user notification using
that kind, so callers never have to inspect exception classes.
"""

from __future__ import annotations


class StoryError(Exception):
    """Base class for all storyweave failures."""

    kind = "error"


class ValidationError(StoryError, ValueError):
    """A page or setting is missing a required field; the mutation is blocked."""

    kind = "validation"


class StorageUnavailable(StoryError, RuntimeError):
    """The local key/object store is missing or broken."""

    kind = "storage-unavailable"


class NetworkFailure(StoryError, RuntimeError):
    """An upload, save or load against the server failed."""

    kind = "network"


class FormatError(StoryError, ValueError):
    """A manifest failed shape validation."""

    kind = "format"

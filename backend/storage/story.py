"""story.json — the server-side copy of the story manifest."""

import json
import logging
from datetime import datetime, timezone
from typing import Any

from .core import materials_dir, story_path

logger = logging.getLogger(__name__)

MANIFEST_VERSION = "1.0"


def get_story() -> dict[str, Any]:
    """Read story.json. Returns an empty story if none exists.

    Raises ValueError when the file exists but is not valid JSON.
    """
    path = story_path()
    if not path.is_file():
        return {"version": MANIFEST_VERSION, "pages": []}
    return json.loads(path.read_text())


def _stored_revision() -> int | None:
    try:
        revision = get_story().get("revision")
    except ValueError:
        return None
    return revision if isinstance(revision, int) else None


def save_story(story: dict[str, Any]) -> bool:
    """Stamp and write story.json. Returns False if the write was stale and skipped.

    A story carrying a revision lower than the stored one was issued before
    the stored state and is dropped, so a slow save never clobbers a newer one.
    """
    if not isinstance(story.get("pages"), list):
        raise ValueError("pages must be a list")
    incoming = story.get("revision")
    stored = _stored_revision()
    if isinstance(incoming, int) and stored is not None and incoming < stored:
        logger.info("Ignoring stale story revision %s (stored %s)", incoming, stored)
        return False

    story = dict(story)
    story["updatedAt"] = datetime.now(timezone.utc).isoformat()
    story.setdefault("version", MANIFEST_VERSION)
    materials_dir().mkdir(parents=True, exist_ok=True)
    story_path().write_text(json.dumps(story, indent=2, ensure_ascii=False))
    logger.info("story.json saved, %d pages", len(story["pages"]))
    return True

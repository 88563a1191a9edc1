"""Story manifest endpoints."""

import logging

from fastapi import APIRouter, Body, HTTPException
from pydantic import ValidationError

from backend import storage

from .models import StoryBody

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/story")
async def get_story():
    """Read story.json (an empty story when there is none)."""
    try:
        return storage.get_story()
    except (OSError, ValueError) as e:
        logger.error(f"Reading story.json failed: {e}")
        raise HTTPException(500, "Failed to read story data")


@router.post("/story")
async def save_story(body: dict = Body(...)):
    """Save story.json. Stale revisions are acknowledged but not written."""
    try:
        StoryBody.model_validate(body)
    except ValidationError:
        raise HTTPException(400, "Invalid story data format")
    try:
        written = storage.save_story(body)
    except (OSError, ValueError) as e:
        logger.error(f"Saving story.json failed: {e}")
        raise HTTPException(500, "Failed to save story data")
    if not written:
        return {"success": True, "stale": True, "message": "A newer story is already saved"}
    return {"success": True, "message": "Story data saved"}

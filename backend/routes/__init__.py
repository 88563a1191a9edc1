"""FastAPI API endpoints under /api.

Endpoint groups: health + settings, story manifest (GET/POST /api/story),
media upload (POST /api/upload). Uploaded files are served statically under
/materials by the app itself.
"""

from fastapi import APIRouter

from .settings import router as settings_router
from .story import router as story_router
from .upload import router as upload_router

router = APIRouter()
router.include_router(settings_router)
router.include_router(story_router)
router.include_router(upload_router)

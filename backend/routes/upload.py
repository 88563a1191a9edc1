"""Media upload endpoint."""

import logging

from fastapi import APIRouter, File, HTTPException, UploadFile

from backend import storage

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/upload")
async def upload_media(file: UploadFile | None = File(None)):
    """Store an uploaded file in the materials directory."""
    if file is None or not file.filename:
        raise HTTPException(400, "No file uploaded")
    try:
        saved = storage.save_upload(file.filename, file.file)
    except storage.UploadTooLarge as e:
        raise HTTPException(413, str(e))
    except OSError as e:
        logger.error(f"Saving upload failed: {e}")
        raise HTTPException(500, "Failed to upload file")
    finally:
        await file.close()
    return {"success": True, **saved}

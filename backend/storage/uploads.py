"""Uploaded media files in the materials directory."""

import logging
import random
import string
import time
from pathlib import Path
from typing import BinaryIO

from .core import MATERIALS_DIRNAME, materials_dir

logger = logging.getLogger(__name__)

MAX_UPLOAD_BYTES = 100 * 1024 * 1024
_CHUNK = 1024 * 1024
_BASE36 = string.digits + string.ascii_lowercase


class UploadTooLarge(ValueError):
    """The upload exceeds MAX_UPLOAD_BYTES."""


def unique_file_name(original: str) -> str:
    """Collision-resistant name: <stem>_<ms timestamp>_<7 base36 chars><ext>.

    "cat photo.png" → "cat photo_1718000000000_k3j9x0a.png"
    """
    name = Path(original).name or "file"
    suffix = Path(name).suffix
    stem = name[: -len(suffix)] if suffix else name
    timestamp = int(time.time() * 1000)
    random_part = "".join(random.choices(_BASE36, k=7))
    return f"{stem}_{timestamp}_{random_part}{suffix}"


def save_upload(original_name: str, stream: BinaryIO, limit: int = MAX_UPLOAD_BYTES) -> dict[str, str]:
    """Copy an uploaded stream into the materials directory.

    Returns {"fileName", "filePath", "originalName"}. Raises UploadTooLarge
    (nothing is left on disk in that case).
    """
    file_name = unique_file_name(original_name)
    target = materials_dir() / file_name
    written = 0
    with target.open("wb") as out:
        while chunk := stream.read(_CHUNK):
            written += len(chunk)
            if written > limit:
                break
            out.write(chunk)
    if written > limit:
        target.unlink(missing_ok=True)
        raise UploadTooLarge(f"File exceeds the {limit // (1024 * 1024)} MB limit")

    logger.info("Media file uploaded: %s (%d bytes)", file_name, written)
    return {
        "fileName": file_name,
        "filePath": f"/{MATERIALS_DIRNAME}/{file_name}",
        "originalName": original_name,
    }

"""File-based JSON storage for the story server.

Data layout:
  data/
    materials/             Served as static files under /materials
      story.json           Story manifest {version, updatedAt, revision?, pages[]}
      <name>_<ts>_<rand>.<ext>   Uploaded media
    config.json            Playback/display settings

Story saves carry an optional revision; a save older than the stored
revision is skipped (last issued write wins).

Uploads get collision-resistant names (original stem + millisecond
timestamp + random base36 suffix) and are capped at 100 MB.

Config: get_config() returns defaults merged with stored values.
update_config() applies partial updates.
"""

# Re-export all public symbols so `from backend import storage` keeps working.

from .core import (  # noqa: F401
    data_dir,
    init_storage,
    materials_dir,
    story_path,
)

from .story import (  # noqa: F401
    get_story,
    save_story,
)

from .uploads import (  # noqa: F401
    MAX_UPLOAD_BYTES,
    UploadTooLarge,
    save_upload,
    unique_file_name,
)

from .config import (  # noqa: F401
    get_config,
    update_config,
)

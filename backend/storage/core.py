"""Storage initialization and path helpers."""

from pathlib import Path

_data_dir: Path | None = None

MATERIALS_DIRNAME = "materials"
STORY_FILENAME = "story.json"


def init_storage(data_dir: Path) -> None:
    global _data_dir
    _data_dir = data_dir
    _data_dir.mkdir(parents=True, exist_ok=True)
    materials_dir().mkdir(exist_ok=True)


def data_dir() -> Path:
    assert _data_dir is not None, "Call init_storage() before using storage"
    return _data_dir


def materials_dir() -> Path:
    return data_dir() / MATERIALS_DIRNAME


def story_path() -> Path:
    return materials_dir() / STORY_FILENAME

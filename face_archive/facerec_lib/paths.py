"""Path helpers for face recognition tooling."""
from __future__ import annotations

from pathlib import Path
from typing import Iterable


IMAGE_EXTENSIONS = {".tif", ".tiff", ".jpg", ".jpeg", ".png", ".bmp", ".webp"}

STORE_FILENAME = "facerec.json"


def is_candidate_image(path: Path) -> bool:
    return path.suffix.lower() in IMAGE_EXTENSIONS


def iter_images(root: Path) -> Iterable[Path]:
    """Yield candidate images below ``root`` in a stable order."""
    for entry in sorted(root.rglob("*")):
        if entry.is_file() and is_candidate_image(entry):
            yield entry


def store_path(storage_path: Path) -> Path:
    return storage_path / STORE_FILENAME

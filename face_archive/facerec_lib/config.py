"""Configuration helpers for locating the label store and face models."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from . import paths
from .faces import SFACE_L2_THRESHOLD


@dataclass(frozen=True)
class FaceRecConfig:
    repo_root: Path
    storage_path: Path
    model_dir: Path
    store_path: Path
    min_score: float = 0.6
    max_faces: int = 20
    max_dimension: int = 2048
    match_threshold: float = SFACE_L2_THRESHOLD


def detect_repo_root() -> Path:
    """Return the root of the face_archive package."""
    return Path(__file__).resolve().parents[1]


def default_storage_path(repo_root: Path) -> Path:
    path = repo_root.parent / "storage"
    path.mkdir(parents=True, exist_ok=True)
    return path


def default_model_dir(repo_root: Path) -> Path:
    return repo_root.parent / "models" / "faces"


def load_config(
    storage_path: Optional[Path] = None,
    model_dir: Optional[Path] = None,
    *,
    min_score: float = 0.6,
    max_faces: int = 20,
    max_dimension: int = 2048,
    match_threshold: float = SFACE_L2_THRESHOLD,
) -> FaceRecConfig:
    if min_score <= 0 or min_score >= 1.0:
        raise ValueError("min_score must be between 0 and 1")
    if max_faces <= 0:
        raise ValueError("max_faces must be greater than zero")
    if match_threshold <= 0:
        raise ValueError("match_threshold must be positive")
    repo_root = detect_repo_root()
    if storage_path:
        resolved_storage = Path(storage_path).expanduser()
        resolved_storage.mkdir(parents=True, exist_ok=True)
    else:
        resolved_storage = default_storage_path(repo_root)
    resolved_models = Path(model_dir).expanduser() if model_dir else default_model_dir(repo_root)
    return FaceRecConfig(
        repo_root=repo_root,
        storage_path=resolved_storage,
        model_dir=resolved_models,
        store_path=paths.store_path(resolved_storage),
        min_score=min_score,
        max_faces=max_faces,
        max_dimension=max_dimension,
        match_threshold=match_threshold,
    )

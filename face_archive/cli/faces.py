"""CLI for recognizing faces and teaching the recognizer new people."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

import typer

from facerec_lib import config as config_mod, log as log_mod
from facerec_lib.errors import (
    AmbiguousFaceError,
    DetectionFailed,
    FaceAlreadyKnownError,
    FaceNotFoundError,
    FaceRecError,
    InitializationError,
    NoUnknownFaceError,
    PersistenceError,
)
from facerec_lib.faces import KnownFace
from facerec_lib.lifecycle import RecognizerHandle, get_default_pool
from facerec_lib.paths import iter_images
from facerec_lib.selection import rect_from_points, resolve_selection

app = typer.Typer(add_completion=False, help="Recognize and train faces.")

EXIT_CODES = {
    DetectionFailed: 2,
    NoUnknownFaceError: 3,
    AmbiguousFaceError: 4,
    FaceNotFoundError: 5,
    FaceAlreadyKnownError: 6,
    PersistenceError: 7,
    InitializationError: 8,
}

STORAGE_OPTION = typer.Option(None, "--storage", help="Directory holding facerec.json")
MODEL_DIR_OPTION = typer.Option(None, "--model-dir", help="Directory for YuNet/SFace ONNX models")
LOG_LEVEL_OPTION = typer.Option("INFO", "--log-level", help="Logging verbosity")


@contextmanager
def _recognizer(
    storage: Optional[Path],
    model_dir: Optional[Path],
    log_level: str,
) -> Iterator[RecognizerHandle]:
    log_mod.setup_logging(log_level)
    cfg = config_mod.load_config(storage_path=storage, model_dir=model_dir)
    pool = get_default_pool(cfg)
    try:
        with pool.acquire() as handle:
            yield handle
    except FaceRecError as exc:
        _fail(exc)


def _fail(exc: FaceRecError) -> None:
    if isinstance(exc, AmbiguousFaceError):
        message = "More than one face could be meant; draw a tighter selection."
    elif isinstance(exc, NoUnknownFaceError):
        message = "No unknown faces in this image."
    elif isinstance(exc, FaceAlreadyKnownError):
        message = f"Face is already known as {exc.label}."
    elif isinstance(exc, FaceNotFoundError):
        message = "No face found at the selected position."
    elif isinstance(exc, PersistenceError):
        message = f"Training was applied but could not be saved: {exc}"
    else:
        message = str(exc)
    logging.getLogger("cli.faces").debug("Command failed", exc_info=exc)
    typer.echo(message, err=True)
    code = next((code for kind, code in EXIT_CODES.items() if isinstance(exc, kind)), 1)
    raise typer.Exit(code=code)


def _require_image(path: Path) -> Path:
    if not path.exists():
        raise typer.BadParameter(f"{path} does not exist")
    return path


def _describe(face: KnownFace) -> str:
    min_x, min_y, max_x, max_y = face.rect.as_tuple()
    return f"{face.label} @ ({min_x},{min_y})-({max_x},{max_y})"


@app.command()
def recognize(
    images: List[Path] = typer.Argument(..., help="Image files or folders to scan"),
    storage: Optional[Path] = STORAGE_OPTION,
    model_dir: Optional[Path] = MODEL_DIR_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """List known and unknown faces for each image."""
    targets: List[Path] = []
    for image in images:
        _require_image(image)
        targets.extend(iter_images(image) if image.is_dir() else [image])
    if not targets:
        typer.echo("No images found", err=True)
        raise typer.Exit(code=1)

    with _recognizer(storage, model_dir, log_level) as handle:
        for target in targets:
            result = handle.recognize(target)
            typer.echo(f"{target}: {len(result.known)} known, {len(result.unknown)} unknown")
            for face in result.known:
                typer.echo(f"  known   {_describe(face)}")
            for face in result.unknown:
                min_x, min_y, max_x, max_y = face.rect.as_tuple()
                typer.echo(f"  unknown ({min_x},{min_y})-({max_x},{max_y})")


@app.command()
def train(
    image: Path = typer.Argument(..., help="Image containing exactly one unknown face"),
    name: str = typer.Option(..., "--name", help="Label for the unknown face"),
    storage: Optional[Path] = STORAGE_OPTION,
    model_dir: Optional[Path] = MODEL_DIR_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Label the single unknown face in IMAGE."""
    _require_image(image)
    if not name.strip():
        raise typer.BadParameter("--name must not be empty")
    with _recognizer(storage, model_dir, log_level) as handle:
        face = handle.train(image, name)
    typer.echo(f"Trained {_describe(face)}")


@app.command("train-face")
def train_face(
    image: Path = typer.Argument(..., help="Image containing the face"),
    min_point: str = typer.Option(..., "--min", help="Top-left corner of the face as X,Y"),
    max_point: str = typer.Option(..., "--max", help="Bottom-right corner of the face as X,Y"),
    name: str = typer.Option(..., "--name", help="Label for the face"),
    storage: Optional[Path] = STORAGE_OPTION,
    model_dir: Optional[Path] = MODEL_DIR_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Label the face whose detected box is exactly MIN-MAX."""
    _require_image(image)
    if not name.strip():
        raise typer.BadParameter("--name must not be empty")
    try:
        rect = rect_from_points(min_point, max_point)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    with _recognizer(storage, model_dir, log_level) as handle:
        face = handle.train_face(image, rect, name)
    typer.echo(f"Trained {_describe(face)}")


@app.command()
def select(
    image: Path = typer.Argument(..., help="Image containing the face"),
    min_point: str = typer.Option(..., "--min", help="Top-left corner of the selection as X,Y"),
    max_point: str = typer.Option(..., "--max", help="Bottom-right corner of the selection as X,Y"),
    name: str = typer.Option(..., "--name", help="Label for the selected face"),
    storage: Optional[Path] = STORAGE_OPTION,
    model_dir: Optional[Path] = MODEL_DIR_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Label the unknown face inside (or around) a hand-drawn selection."""
    _require_image(image)
    if not name.strip():
        raise typer.BadParameter("--name must not be empty")
    try:
        selection = rect_from_points(min_point, max_point)
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    with _recognizer(storage, model_dir, log_level) as handle:
        result = handle.recognize(image)
        target = resolve_selection(result.known, result.unknown, selection)
        face = handle.train_face(image, target.rect, name)
    typer.echo(f"Trained {_describe(face)}")


@app.command()
def labels(
    storage: Optional[Path] = STORAGE_OPTION,
    model_dir: Optional[Path] = MODEL_DIR_OPTION,
    log_level: str = LOG_LEVEL_OPTION,
) -> None:
    """Show every trained label with its sample count."""
    with _recognizer(storage, model_dir, log_level) as handle:
        counts = handle.label_counts()
    if not counts:
        typer.echo("No labels trained yet.")
        return
    for label, count in counts.items():
        typer.echo(f"{label}\t{count}")


def main() -> None:  # pragma: no cover - console entry
    app()


if __name__ == "__main__":  # pragma: no cover
    main()

"""Resolve a user-drawn selection box to one detected face."""
from __future__ import annotations

from typing import Optional, Sequence, Tuple

from .errors import AmbiguousFaceError, FaceAlreadyKnownError, FaceNotFoundError
from .faces import KnownFace, Rectangle, UnknownFace


def overlaps_selection(face: Rectangle, selection: Rectangle) -> bool:
    """A face matches when either box contains the other."""
    return selection.contains(face) or face.contains(selection)


def resolve_selection(
    known: Sequence[KnownFace],
    unknown: Sequence[UnknownFace],
    selection: Rectangle,
) -> UnknownFace:
    """Pick the unknown face the selection points at.

    Raises:
        AmbiguousFaceError: more than one unknown face matches.
        FaceAlreadyKnownError: no unknown face matches but a known one does.
        FaceNotFoundError: nothing matches.
    """
    chosen: Optional[UnknownFace] = None
    for face in unknown:
        if not overlaps_selection(face.rect, selection):
            continue
        if chosen is not None:
            raise AmbiguousFaceError(f"multiple faces match selection {selection.as_tuple()}")
        chosen = face
    if chosen is not None:
        return chosen
    for face in known:
        if overlaps_selection(face.rect, selection):
            raise FaceAlreadyKnownError(face.label)
    raise FaceNotFoundError(f"no faces match selection {selection.as_tuple()}")


def parse_point(value: str) -> Tuple[int, int]:
    """Parse ``"x,y"`` into an integer pair."""
    parts = [part.strip() for part in (value or "").split(",")]
    if len(parts) != 2:
        raise ValueError(f"expected X,Y but got {value!r}")
    return int(parts[0]), int(parts[1])


def rect_from_points(min_point: str, max_point: str) -> Rectangle:
    min_x, min_y = parse_point(min_point)
    max_x, max_y = parse_point(max_point)
    if max_x <= min_x or max_y <= min_y:
        raise ValueError("max point must lie below and right of min point")
    return Rectangle(min_x, min_y, max_x, max_y)

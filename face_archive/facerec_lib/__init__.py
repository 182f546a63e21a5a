"""Trainable face classification for the photo archive."""

from . import config, errors, log, paths  # noqa: F401
from .errors import (  # noqa: F401
    AmbiguousFaceError,
    DetectionFailed,
    FaceAlreadyKnownError,
    FaceNotFoundError,
    FaceRecError,
    HandleClosedError,
    InitializationError,
    IntegrityError,
    NoUnknownFaceError,
    PersistenceError,
    StrictDecodeError,
)
from .faces import DetectedFace, KnownFace, Rectangle, UnknownFace  # noqa: F401
from .lifecycle import RecognizerHandle, RecognizerPool, get_default_pool  # noqa: F401

__all__ = [
    "config",
    "errors",
    "log",
    "paths",
    "AmbiguousFaceError",
    "DetectionFailed",
    "FaceAlreadyKnownError",
    "FaceNotFoundError",
    "FaceRecError",
    "HandleClosedError",
    "InitializationError",
    "IntegrityError",
    "NoUnknownFaceError",
    "PersistenceError",
    "StrictDecodeError",
    "DetectedFace",
    "KnownFace",
    "Rectangle",
    "UnknownFace",
    "RecognizerHandle",
    "RecognizerPool",
    "get_default_pool",
]

"""Exception hierarchy for the face recognition core."""
from __future__ import annotations


class FaceRecError(Exception):
    """Base exception for face recognition failures."""


class InitializationError(FaceRecError):
    """Raised when the detection engine or the label store cannot be loaded."""


class DetectionFailed(FaceRecError):
    """Raised when an image cannot be processed by the extractor."""


class HandleClosedError(FaceRecError):
    """Raised when a released recognizer handle is used."""


class TrainingError(FaceRecError):
    """Base class for outcomes that prevent a training call from selecting a face."""


class NoUnknownFaceError(TrainingError):
    """Raised when an image has no unknown faces to train."""


class AmbiguousFaceError(TrainingError):
    """Raised when more than one face could receive the label."""


class FaceNotFoundError(TrainingError):
    """Raised when no detected face matches the requested region."""


class FaceAlreadyKnownError(TrainingError):
    """Raised when the selected face already resolves to a label."""

    def __init__(self, label: str) -> None:
        super().__init__(f"face already known as {label!r}")
        self.label = label


class StoreError(FaceRecError):
    """Base class for label store failures."""


class IntegrityError(StoreError):
    """Raised when samples, categories and labels disagree before a write."""


class StrictDecodeError(StoreError):
    """Raised when a stored record has an unexpected shape."""


class PersistenceError(StoreError):
    """Raised when the label store cannot be read or written."""

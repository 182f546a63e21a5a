"""Recognition and training on top of an extractor, a classification index and a label store."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from .errors import (
    AmbiguousFaceError,
    FaceAlreadyKnownError,
    FaceNotFoundError,
    NoUnknownFaceError,
    PersistenceError,
)
from .face_index import ClassificationIndex, Known
from .faces import DetectedFace, Extractor, KnownFace, Rectangle, UnknownFace
from .label_store import LabelStore
from .rwlock import ReadWriteLock


@dataclass
class RecognitionResult:
    known: List[KnownFace] = field(default_factory=list)
    unknown: List[UnknownFace] = field(default_factory=list)

    @property
    def names(self) -> List[str]:
        """Distinct labels in the order they were first seen."""
        seen: List[str] = []
        for face in self.known:
            if face.label not in seen:
                seen.append(face.label)
        return seen


class FaceRecognizer:
    """Live engine shared by every handle of a recognizer pool.

    ``recognize`` runs under the read side of ``lock``; the classify, mutate
    and persist sequence of both training calls runs under the write side.
    Extraction never touches shared state and happens before either lock is
    taken.
    """

    def __init__(
        self,
        extractor: Extractor,
        index: ClassificationIndex,
        store: LabelStore,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.extractor = extractor
        self.index = index
        self.store = store
        self.logger = logger or logging.getLogger(__name__)
        self.lock = ReadWriteLock()

    def close(self) -> None:
        # Waits for in-flight recognitions and training to finish.
        with self.lock.write_locked():
            self.extractor.close()

    def recognize(self, image_path: Path) -> RecognitionResult:
        faces = self.extractor.extract_faces(image_path)
        result = RecognitionResult()
        with self.lock.read_locked():
            for face in faces:
                outcome = self.index.classify(face.descriptor)
                if isinstance(outcome, Known):
                    result.known.append(KnownFace(self.index.label_for(outcome.label_id), face.rect))
                else:
                    result.unknown.append(UnknownFace(face.rect))
        self.logger.debug(
            "Recognized %s: %d known, %d unknown",
            image_path,
            len(result.known),
            len(result.unknown),
        )
        return result

    def train(self, image_path: Path, label: str) -> KnownFace:
        """Attach ``label`` to the single unknown face in ``image_path``."""
        label = _clean_label(label)
        faces = self.extractor.extract_faces(image_path)
        with self.lock.write_locked():
            unknown = [
                face for face in faces if not isinstance(self.index.classify(face.descriptor), Known)
            ]
            if not unknown:
                raise NoUnknownFaceError(f"{image_path} has no unknown faces")
            if len(unknown) > 1:
                raise AmbiguousFaceError(f"{image_path} has {len(unknown)} unknown faces")
            return self._commit_locked(unknown[0], label, image_path)

    def train_face(self, image_path: Path, rect: Rectangle, label: str) -> KnownFace:
        """Attach ``label`` to the face whose rectangle equals ``rect`` exactly."""
        label = _clean_label(label)
        faces = self.extractor.extract_faces(image_path)
        target = next((face for face in faces if face.rect == rect), None)
        if target is None:
            raise FaceNotFoundError(f"no face at {rect.as_tuple()} in {image_path}")
        with self.lock.write_locked():
            outcome = self.index.classify(target.descriptor)
            if isinstance(outcome, Known):
                raise FaceAlreadyKnownError(self.index.label_for(outcome.label_id))
            return self._commit_locked(target, label, image_path)

    def _commit_locked(self, face: DetectedFace, label: str, image_path: Path) -> KnownFace:
        samples, categories, labels = self.index.snapshot()
        label_id = self.index.label_id(label)
        if label_id is None:
            label_id = len(labels)
            labels.append(label)
        samples.append(face.descriptor)
        categories.append(label_id)
        self.index.rebuild(samples, categories, labels)
        try:
            self.store.save(samples, categories, labels)
        except PersistenceError:
            self.logger.error(
                "Trained %r from %s but could not persist %s; in-memory index is ahead of disk",
                label,
                image_path,
                self.store.path,
            )
            raise
        self.logger.info("Trained %r from %s (%d samples)", label, image_path, len(samples))
        return KnownFace(label, face.rect)

    def labels(self) -> List[str]:
        with self.lock.read_locked():
            return self.index.labels

    def label_counts(self) -> Dict[str, int]:
        with self.lock.read_locked():
            return self.index.label_counts()


def _clean_label(label: str) -> str:
    cleaned = (label or "").strip()
    if not cleaned:
        raise ValueError("label is required")
    return cleaned

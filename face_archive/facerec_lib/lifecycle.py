"""Reference-counted ownership of the shared face recognizer.

The first ``acquire`` builds the engine (extractor, label store, index); the
last ``release`` tears it down. Between the two the in-memory index is the
authoritative copy and is never reloaded from disk.
"""
from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Dict, List, Optional

from .config import FaceRecConfig
from .errors import HandleClosedError, InitializationError, StoreError
from .face_index import ClassificationIndex
from .faces import Extractor, FaceExtractor, KnownFace, Rectangle
from .label_store import LabelStore
from .recognizer import FaceRecognizer, RecognitionResult

ExtractorFactory = Callable[[], Extractor]


class RecognizerHandle:
    """One caller's reference to the shared recognizer.

    Use it as a context manager, or call ``close()`` when done. Closing twice
    is harmless; using a closed handle raises ``HandleClosedError``.
    """

    def __init__(self, pool: "RecognizerPool", recognizer: FaceRecognizer) -> None:
        self._pool = pool
        self._recognizer: Optional[FaceRecognizer] = recognizer
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._recognizer is None

    def _engine(self) -> FaceRecognizer:
        recognizer = self._recognizer
        if recognizer is None:
            raise HandleClosedError("recognizer handle has been released")
        return recognizer

    def _detach(self) -> bool:
        with self._lock:
            if self._recognizer is None:
                return False
            self._recognizer = None
            return True

    def recognize(self, image_path: Path) -> RecognitionResult:
        return self._engine().recognize(image_path)

    def train(self, image_path: Path, label: str) -> KnownFace:
        return self._engine().train(image_path, label)

    def train_face(self, image_path: Path, rect: Rectangle, label: str) -> KnownFace:
        return self._engine().train_face(image_path, rect, label)

    def labels(self) -> List[str]:
        return self._engine().labels()

    def label_counts(self) -> Dict[str, int]:
        return self._engine().label_counts()

    def close(self) -> None:
        self._pool.release(self)

    def __enter__(self) -> "RecognizerHandle":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class RecognizerPool:
    """Lazily initialized, reference-counted owner of one ``FaceRecognizer``."""

    def __init__(
        self,
        store_path: Path,
        extractor_factory: ExtractorFactory,
        *,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.store_path = Path(store_path)
        self.extractor_factory = extractor_factory
        self.logger = logger or logging.getLogger(__name__)
        # Guards the count and init/teardown; separate from the engine's read/write lock.
        self._lock = threading.Lock()
        self._count = 0
        self._recognizer: Optional[FaceRecognizer] = None

    @classmethod
    def from_config(cls, cfg: FaceRecConfig, *, logger: Optional[logging.Logger] = None) -> "RecognizerPool":
        log = logger or logging.getLogger(__name__)

        def factory() -> Extractor:
            return FaceExtractor(
                cfg.model_dir,
                logger=log,
                min_score=cfg.min_score,
                max_faces=cfg.max_faces,
                max_dimension=cfg.max_dimension,
                match_threshold=cfg.match_threshold,
            )

        return cls(cfg.store_path, factory, logger=log)

    @property
    def active_count(self) -> int:
        return self._count

    @property
    def initialized(self) -> bool:
        return self._recognizer is not None

    def acquire(self) -> RecognizerHandle:
        with self._lock:
            if self._count == 0:
                self._recognizer = self._initialize()
            self._count += 1
            return RecognizerHandle(self, self._recognizer)

    def release(self, handle: RecognizerHandle) -> None:
        if handle._pool is not self:
            raise ValueError("handle belongs to a different pool")
        with self._lock:
            if not handle._detach():
                return
            self._count -= 1
            if self._count == 0:
                recognizer, self._recognizer = self._recognizer, None
                if recognizer is not None:
                    recognizer.close()
                    self.logger.info("Face recognizer released")

    def _initialize(self) -> FaceRecognizer:
        try:
            extractor = self.extractor_factory()
        except InitializationError:
            raise
        except Exception as exc:
            raise InitializationError("Failed to create face extractor") from exc
        store = LabelStore(self.store_path)
        try:
            samples, categories, labels = store.load_index()
            index = ClassificationIndex(extractor.match_threshold, samples, categories, labels)
        except StoreError as exc:
            extractor.close()
            raise InitializationError(f"Failed to load label store {self.store_path}") from exc
        self.logger.info(
            "Face recognizer ready: %d samples, %d labels from %s",
            len(samples),
            len(labels),
            self.store_path,
        )
        return FaceRecognizer(extractor, index, store, logger=self.logger)


_default_pool: Optional[RecognizerPool] = None
_default_lock = threading.Lock()


def get_default_pool(cfg: FaceRecConfig) -> RecognizerPool:
    """Return the process-wide pool, creating it from ``cfg`` on first use.

    Later calls must name the same store; a pool cannot be repointed while
    handles may be live.
    """
    global _default_pool
    with _default_lock:
        if _default_pool is None:
            _default_pool = RecognizerPool.from_config(cfg)
        elif _default_pool.store_path != Path(cfg.store_path):
            raise ValueError(
                f"default pool already serves {_default_pool.store_path}, not {cfg.store_path}"
            )
        return _default_pool

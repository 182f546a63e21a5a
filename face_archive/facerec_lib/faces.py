"""Face detection + descriptor extraction backed by OpenCV's YuNet + SFace models."""
from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Protocol, Tuple
from urllib.error import URLError
from urllib.request import urlretrieve

import cv2  # type: ignore
import numpy as np
from PIL import Image, ImageOps, UnidentifiedImageError

from .errors import DetectionFailed, InitializationError
from .paths import is_candidate_image

MODEL_SPECS = {
    "detector": {
        "filename": "face_detection_yunet_2023mar.onnx",
        "url": "https://github.com/opencv/opencv_zoo/raw/main/models/face_detection_yunet/face_detection_yunet_2023mar.onnx",
    },
    "recognizer": {
        "filename": "face_recognition_sface_2021dec.onnx",
        "url": "https://github.com/opencv/opencv_zoo/raw/main/models/face_recognition_sface/face_recognition_sface_2021dec.onnx",
    },
}

# SFace's published L2 threshold for normalized features.
SFACE_L2_THRESHOLD = 1.128


@dataclass(frozen=True)
class Rectangle:
    """Axis-aligned face box in pixel coordinates (min inclusive, max exclusive)."""

    min_x: int
    min_y: int
    max_x: int
    max_y: int

    @property
    def width(self) -> int:
        return self.max_x - self.min_x

    @property
    def height(self) -> int:
        return self.max_y - self.min_y

    @property
    def empty(self) -> bool:
        return self.width <= 0 or self.height <= 0

    def contains(self, other: "Rectangle") -> bool:
        """True when ``other`` lies entirely inside this rectangle."""
        if other.empty:
            return True
        return (
            self.min_x <= other.min_x
            and self.min_y <= other.min_y
            and other.max_x <= self.max_x
            and other.max_y <= self.max_y
        )

    def as_tuple(self) -> Tuple[int, int, int, int]:
        return (self.min_x, self.min_y, self.max_x, self.max_y)


@dataclass
class DetectedFace:
    rect: Rectangle
    descriptor: np.ndarray


@dataclass(frozen=True)
class UnknownFace:
    rect: Rectangle


@dataclass(frozen=True)
class KnownFace:
    label: str
    rect: Rectangle


class Extractor(Protocol):
    """Contract of the detection capability consumed by the recognizer."""

    match_threshold: float

    def extract_faces(self, image_path: Path) -> List[DetectedFace]:
        ...

    def close(self) -> None:
        ...


class FaceExtractor:
    """Detect faces and compute SFace descriptors for an image on disk."""

    def __init__(
        self,
        model_dir: Path,
        *,
        logger: Optional[logging.Logger] = None,
        min_score: float = 0.6,
        max_faces: int = 20,
        max_dimension: int = 2048,
        match_threshold: float = SFACE_L2_THRESHOLD,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        self.model_dir = Path(model_dir)
        self.min_score = min_score
        self.max_faces = max_faces
        self.max_dimension = max_dimension
        self.match_threshold = match_threshold
        # OpenCV DNN objects are not safe to share between threads.
        self._lock = threading.Lock()
        detector_path, recognizer_path = self._ensure_models()
        try:
            self.detector = cv2.FaceDetectorYN_create(
                str(detector_path),
                "",
                (320, 320),
                score_threshold=min_score,
                nms_threshold=0.3,
                top_k=5000,
            )
            self.recognizer = cv2.FaceRecognizerSF_create(str(recognizer_path), "")
        except cv2.error as exc:
            raise InitializationError(f"Failed to load face models from {self.model_dir}") from exc
        self._closed = False

    def _ensure_models(self) -> Tuple[Path, Path]:
        self.model_dir.mkdir(parents=True, exist_ok=True)
        resolved: dict[str, Path] = {}
        for key, spec in MODEL_SPECS.items():
            target = self.model_dir / spec["filename"]
            if not target.exists():
                self.logger.info("Downloading %s to %s", spec["filename"], target)
                try:
                    urlretrieve(spec["url"], target)
                except (URLError, OSError) as exc:  # pragma: no cover - network failures
                    raise InitializationError(f"Failed to download {spec['filename']}") from exc
            resolved[key] = target
        return resolved["detector"], resolved["recognizer"]

    def close(self) -> None:
        with self._lock:
            self.detector = None
            self.recognizer = None
            self._closed = True

    def extract_faces(self, image_path: Path) -> List[DetectedFace]:
        """Return the faces found in ``image_path`` ordered by detector score."""
        image_path = Path(image_path)
        if not is_candidate_image(image_path):
            raise DetectionFailed(f"Unsupported image format: {image_path}")
        image = _load_oriented_bgr(image_path)
        with self._lock:
            if self._closed:
                raise DetectionFailed("Face extractor is closed")
            faces = self._detect(image, image_path)
        self.logger.debug("Extracted %d faces from %s", len(faces), image_path)
        return faces

    def _detect(self, image: np.ndarray, image_path: Path) -> List[DetectedFace]:
        orig_height, orig_width = image.shape[:2]
        scale = 1.0
        largest = max(orig_height, orig_width)
        if self.max_dimension and largest > self.max_dimension:
            scale = self.max_dimension / float(largest)
            resized = cv2.resize(
                image,
                (max(1, int(round(orig_width * scale))), max(1, int(round(orig_height * scale)))),
            )
        else:
            resized = image
        height, width = resized.shape[:2]
        self.detector.setInputSize((width, height))
        try:
            _, raw_faces = self.detector.detect(resized)
        except cv2.error as exc:
            raise DetectionFailed(f"Face detection failed for {image_path}") from exc
        if raw_faces is None or not len(raw_faces):
            return []
        faces = np.array(raw_faces)
        score_index = -1
        order = np.argsort(faces[:, score_index])[::-1]
        faces = faces[order]
        if self.max_faces:
            faces = faces[: self.max_faces]
        results: List[DetectedFace] = []
        for face in faces:
            if float(face[score_index]) < self.min_score:
                continue
            try:
                aligned = self.recognizer.alignCrop(resized, face)
                feature = self.recognizer.feature(aligned).reshape(-1)
            except cv2.error as exc:  # pragma: no cover - OpenCV internal failures
                self.logger.debug("Embedding failed for %s: %s", image_path, exc)
                continue
            descriptor = normalize_descriptor(feature)
            if descriptor is None:
                continue
            rect = _scale_rect(face[:4], orig_width, orig_height, scale)
            if rect.empty:
                continue
            results.append(DetectedFace(rect=rect, descriptor=descriptor))
        return results


def normalize_descriptor(vector: Iterable[float]) -> Optional[np.ndarray]:
    """Return a unit-length float32 copy of ``vector``, or None for a zero vector."""
    array = np.asarray(vector, dtype=np.float32).reshape(-1)
    norm = float(np.linalg.norm(array))
    if not norm:
        return None
    return array / norm


def _load_oriented_bgr(path: Path) -> np.ndarray:
    try:
        with Image.open(path) as img:
            oriented = ImageOps.exif_transpose(img)
            rgb = oriented.convert("RGB")
    except (UnidentifiedImageError, OSError) as exc:
        raise DetectionFailed(f"Unable to read image: {path}") from exc
    array = np.array(rgb, dtype=np.uint8)
    # RGB -> BGR for OpenCV
    return np.ascontiguousarray(array[:, :, ::-1])


def _scale_rect(bbox: Iterable[float], orig_width: int, orig_height: int, scale: float) -> Rectangle:
    x, y, width, height = [float(value) for value in bbox]
    if scale:
        inv = 1.0 / scale
        x *= inv
        y *= inv
        width *= inv
        height *= inv
    min_x = _clamp(int(round(x)), orig_width)
    min_y = _clamp(int(round(y)), orig_height)
    max_x = _clamp(int(round(x + width)), orig_width)
    max_y = _clamp(int(round(y + height)), orig_height)
    return Rectangle(min_x, min_y, max_x, max_y)


def _clamp(value: int, limit: int) -> int:
    return max(0, min(limit, value))

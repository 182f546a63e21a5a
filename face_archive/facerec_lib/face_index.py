"""Nearest-neighbor classification index over trained face descriptors."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import IntegrityError


@dataclass(frozen=True)
class Known:
    label_id: int
    distance: float


@dataclass(frozen=True)
class Unknown:
    distance: Optional[float] = None


Classification = Union[Known, Unknown]


@dataclass(frozen=True)
class _IndexState:
    samples: Tuple[np.ndarray, ...]
    categories: Tuple[int, ...]
    labels: Tuple[str, ...]
    ids: Dict[str, int]
    matrix: Optional[np.ndarray]
    category_array: np.ndarray


def _build_state(
    samples: Sequence[np.ndarray],
    categories: Sequence[int],
    labels: Sequence[str],
) -> _IndexState:
    if len(samples) != len(categories):
        raise IntegrityError(
            f"mismatched samples and categories length ({len(samples)} != {len(categories)})"
        )
    n_labels = len(labels)
    for category in categories:
        if not 0 <= int(category) < n_labels:
            raise IntegrityError(f"category {category} without attached label")
    ids: Dict[str, int] = {}
    for label_id, label in enumerate(labels):
        if label in ids:
            raise IntegrityError(f"duplicate label {label!r}")
        ids[label] = label_id
    frozen = tuple(np.asarray(sample, dtype=np.float32).reshape(-1) for sample in samples)
    if len({sample.shape[0] for sample in frozen}) > 1:
        raise IntegrityError("descriptors have mixed dimensions")
    if not all(np.isfinite(sample).all() for sample in frozen):
        raise IntegrityError("descriptors must be finite")
    matrix = np.stack(frozen, axis=0) if frozen else None
    return _IndexState(
        samples=frozen,
        categories=tuple(int(category) for category in categories),
        labels=tuple(labels),
        ids=ids,
        matrix=matrix,
        category_array=np.asarray(categories, dtype=np.int64),
    )


class ClassificationIndex:
    """In-memory samples/categories/labels with Euclidean nearest-neighbor lookup.

    The whole state lives in one immutable object that ``rebuild`` replaces
    with a single assignment, so a reader sees either the old or the new
    contents and never a mix of both.
    """

    def __init__(
        self,
        threshold: float,
        samples: Sequence[np.ndarray] = (),
        categories: Sequence[int] = (),
        labels: Sequence[str] = (),
    ) -> None:
        self.threshold = float(threshold)
        self._state = _build_state(samples, categories, labels)

    def __len__(self) -> int:
        return len(self._state.samples)

    @property
    def labels(self) -> List[str]:
        return list(self._state.labels)

    def rebuild(
        self,
        samples: Sequence[np.ndarray],
        categories: Sequence[int],
        labels: Sequence[str],
    ) -> None:
        """Swap in new contents. Callers hold the recognizer's write lock."""
        self._state = _build_state(samples, categories, labels)

    def classify(self, descriptor: np.ndarray) -> Classification:
        state = self._state
        if state.matrix is None:
            return Unknown()
        vector = np.asarray(descriptor, dtype=np.float32).reshape(-1)
        if vector.shape[0] != state.matrix.shape[1]:
            # Usually a store written by a different embedding model.
            raise IntegrityError(
                f"descriptor has {vector.shape[0]} dimensions, index expects {state.matrix.shape[1]}"
            )
        distances = np.linalg.norm(state.matrix - vector, axis=1)
        best_idx = int(np.argmin(distances))
        best = float(distances[best_idx])
        if not np.isfinite(best):
            return Unknown()
        if best > self.threshold:
            return Unknown(distance=best)
        return Known(label_id=int(state.category_array[best_idx]), distance=best)

    def label_id(self, label: str) -> Optional[int]:
        return self._state.ids.get(label)

    def label_for(self, label_id: int) -> str:
        return self._state.labels[label_id]

    def snapshot(self) -> Tuple[List[np.ndarray], List[int], List[str]]:
        """Return copies of samples, categories and labels from one consistent state."""
        state = self._state
        return list(state.samples), list(state.categories), list(state.labels)

    def label_counts(self) -> Dict[str, int]:
        state = self._state
        counts = {label: 0 for label in state.labels}
        for category in state.categories:
            counts[state.labels[category]] += 1
        return counts

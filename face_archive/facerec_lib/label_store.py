"""JSON Lines store of trained (label, descriptor) records.

Each line of the store holds one record::

    {"name": "Alice", "descriptor": [0.01, -0.12, ...]}

Records are written in sample order and the whole file is rewritten on every
save. Labels are rebuilt from the records in first-occurrence order, so label
ids stay stable across a load/save cycle of unchanged content.
"""
from __future__ import annotations

import contextlib
import json
import logging
import math
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, TextIO, Tuple

import numpy as np

from .errors import IntegrityError, PersistenceError, StrictDecodeError

logger = logging.getLogger(__name__)

RECORD_FIELDS = frozenset({"name", "descriptor"})


@dataclass
class LabelRecord:
    label: str
    descriptor: np.ndarray


def encode_records(
    samples: Sequence[np.ndarray],
    categories: Sequence[int],
    labels: Sequence[str],
) -> str:
    """Serialize the index contents, checking that every category has a label."""
    if len(samples) != len(categories):
        raise IntegrityError(
            f"mismatched samples and categories length ({len(samples)} != {len(categories)})"
        )
    n_labels = len(labels)
    lines: List[str] = []
    for sample, category in zip(samples, categories):
        if not 0 <= category < n_labels:
            raise IntegrityError(f"category {category} without attached label")
        values = [float(value) for value in np.asarray(sample).reshape(-1)]
        if not all(math.isfinite(value) for value in values):
            raise IntegrityError(f"descriptor for {labels[category]!r} has non-finite values")
        payload = {"name": labels[category], "descriptor": values}
        lines.append(json.dumps(payload, ensure_ascii=False, allow_nan=False))
    if not lines:
        return ""
    return "\n".join(lines) + "\n"


def decode_records(stream: TextIO) -> List[LabelRecord]:
    """Parse records from ``stream``, rejecting anything but the known fields."""
    records: List[LabelRecord] = []
    for line_no, line in enumerate(stream, start=1):
        text = line.strip()
        if not text:
            continue
        try:
            payload = json.loads(text)
        except json.JSONDecodeError as exc:
            raise StrictDecodeError(f"line {line_no}: invalid JSON") from exc
        records.append(_parse_record(payload, line_no))
    return records


def _parse_record(payload: object, line_no: int) -> LabelRecord:
    if not isinstance(payload, dict):
        raise StrictDecodeError(f"line {line_no}: record must be an object")
    unknown = set(payload) - RECORD_FIELDS
    if unknown:
        raise StrictDecodeError(f"line {line_no}: unknown field(s) {', '.join(sorted(unknown))}")
    missing = RECORD_FIELDS - set(payload)
    if missing:
        raise StrictDecodeError(f"line {line_no}: missing field(s) {', '.join(sorted(missing))}")
    name = payload["name"]
    if not isinstance(name, str):
        raise StrictDecodeError(f"line {line_no}: name must be a string")
    values = payload["descriptor"]
    if not isinstance(values, list) or not values:
        raise StrictDecodeError(f"line {line_no}: descriptor must be a non-empty list")
    if not all(isinstance(value, (int, float)) and not isinstance(value, bool) for value in values):
        raise StrictDecodeError(f"line {line_no}: descriptor must contain only numbers")
    with np.errstate(over="ignore"):
        try:
            descriptor = np.asarray(values, dtype=np.float32)
        except OverflowError:
            descriptor = None
    if descriptor is None or not np.isfinite(descriptor).all():
        raise StrictDecodeError(f"line {line_no}: descriptor must contain only finite numbers")
    return LabelRecord(label=name, descriptor=descriptor)


def records_to_index(
    records: Iterable[LabelRecord],
) -> Tuple[List[np.ndarray], List[int], List[str]]:
    """Split records into index-aligned samples/categories plus ordered labels."""
    samples: List[np.ndarray] = []
    categories: List[int] = []
    labels: List[str] = []
    ids: Dict[str, int] = {}
    for record in records:
        label_id = ids.get(record.label)
        if label_id is None:
            label_id = len(labels)
            ids[record.label] = label_id
            labels.append(record.label)
        samples.append(record.descriptor)
        categories.append(label_id)
    return samples, categories, labels


class LabelStore:
    """File-backed persistence for the classification index."""

    def __init__(self, path: Path) -> None:
        self.path = Path(path)
        self.lock = threading.Lock()

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> List[LabelRecord]:
        """Read every record; a missing file is an empty store."""
        with self.lock:
            try:
                with self.path.open("r", encoding="utf-8") as handle:
                    records = decode_records(handle)
            except FileNotFoundError:
                logger.debug("No label store at %s; starting empty", self.path)
                return []
            except UnicodeDecodeError as exc:
                raise StrictDecodeError(f"{self.path} is not valid UTF-8") from exc
            except OSError as exc:
                raise PersistenceError(f"Failed to read {self.path}") from exc
        logger.debug("Loaded %d label records from %s", len(records), self.path)
        return records

    def load_index(self) -> Tuple[List[np.ndarray], List[int], List[str]]:
        return records_to_index(self.load())

    def save(
        self,
        samples: Sequence[np.ndarray],
        categories: Sequence[int],
        labels: Sequence[str],
    ) -> None:
        """Rewrite the whole store. Encoding happens before the file is touched."""
        payload = encode_records(samples, categories, labels)
        temp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        with self.lock:
            try:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                temp_path.write_text(payload, encoding="utf-8")
                temp_path.replace(self.path)
            except OSError as exc:
                with contextlib.suppress(OSError):
                    temp_path.unlink()
                raise PersistenceError(f"Failed to write {self.path}") from exc
        logger.debug("Saved %d label records to %s", len(samples), self.path)

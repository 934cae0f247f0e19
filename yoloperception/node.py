"""Object detector node: maps detector classes to perception labels for incoming images."""

from __future__ import annotations

import io
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Sequence

import numpy as np
from PIL import Image, UnidentifiedImageError

from yoloperception.geometry import BoundingBox

logger = logging.getLogger(__name__)

UNKNOWN_LABEL = "unknown"


@dataclass
class DetectedObject:
    """A detected object with its region of interest and mapped label."""

    roi: BoundingBox = field(default_factory=BoundingBox)
    existence_probability: float = 0.0
    label: int = 0
    probability: float = 1.0


def file_exists(path: str | Path) -> bool:
    """True when ``path`` names a readable file."""
    try:
        with open(path, "rb"):
            return True
    except OSError:
        return False


def read_autoware_class_names(path: str | Path) -> list[str]:
    """Read perception class names, lower-cased, one per line.

    The first name must be ``unknown``.
    """
    with open(path, encoding="utf-8", newline="") as handle:
        text = handle.read()
    lines = text.split("\n")
    if lines and lines[-1] == "":
        lines.pop()
    names = [(line[:-1] if line.endswith("\r") else line).lower() for line in lines]
    if not names or names[0] != UNKNOWN_LABEL:
        raise ValueError(
            f"class name '{UNKNOWN_LABEL}' should be the first class in {path}"
        )
    logger.info("Loaded autoware class names from: %s", path)
    return names


def label_mapping(
    class_names: Sequence[str], autoware_class_names: Sequence[str]
) -> dict[int, int]:
    """Map detector class indices to perception label indices.

    The first perception label is skipped as it stands for ``unknown``; each
    label is matched with the first detector class of the same name.
    """
    first_index: dict[str, int] = {}
    for index, name in enumerate(class_names):
        first_index.setdefault(name, index)
    mapping: dict[int, int] = {}
    for label, name in enumerate(autoware_class_names[1:], start=1):
        if name in first_index:
            mapping[first_index[name]] = label
    return mapping


def _decode_image(data: bytes) -> np.ndarray:
    if not data:
        raise ValueError("received an empty image")
    try:
        with Image.open(io.BytesIO(data)) as decoded:
            rgb = np.asarray(decoded.convert("RGB"))
    except (UnidentifiedImageError, OSError) as exc:
        raise ValueError("failed to decode image") from exc
    return np.ascontiguousarray(rgb[..., ::-1])


class ObjectDetectorNode:
    """Runs a detector on compressed images and emits labelled objects.

    ``detector`` provides ``detect(image, conf_threshold)`` returning
    detections with ``box``, ``conf`` and ``class_id``, and
    ``draw_bounding_box(image, detections)`` for the debug view.
    """

    def __init__(
        self,
        detector: Any,
        class_names: Sequence[str],
        autoware_class_names: Sequence[str],
        confidence_threshold: float = 0.3,
        debug_visualizer: bool = False,
    ) -> None:
        self.detector = detector
        self.confidence_threshold = confidence_threshold
        self.debug_visualizer = debug_visualizer
        self.label_map = label_mapping(class_names, autoware_class_names)
        self.visualization: np.ndarray | None = None

    def on_image(self, data: bytes) -> list[DetectedObject]:
        """Decode one compressed image and return the mapped detections.

        Detections whose class has no perception label are left out. With
        the debug visualizer on, the drawn image is kept in ``visualization``.
        """
        image = _decode_image(data)
        detections = self.detector.detect(image, self.confidence_threshold)

        objects: list[DetectedObject] = []
        kept = []
        for detection in detections:
            label = self.label_map.get(detection.class_id, 0)
            if label == 0:
                continue
            objects.append(
                DetectedObject(
                    roi=detection.box,
                    existence_probability=float(detection.conf),
                    label=label,
                    probability=1.0,
                )
            )
            kept.append(detection)

        if self.debug_visualizer:
            self.detector.draw_bounding_box(image, kept)
            self.visualization = image
        return objects
"""Axis-aligned boxes, clamping helpers and non-maximum suppression."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Iterable, Sequence, TypeVar

_Number = TypeVar("_Number", int, float)


@dataclass(frozen=True)
class BoundingBox:
    """Integer box given by its top-left corner and its size."""

    x: int = 0
    y: int = 0
    width: int = 0
    height: int = 0

    def area(self) -> float:
        """Area of the box."""
        return float(self.width * self.height)

    def intersect(self, other: BoundingBox) -> BoundingBox:
        """Overlap of two boxes; empty overlaps have zero width or height."""
        x_start = max(self.x, other.x)
        y_start = max(self.y, other.y)
        x_end = min(self.x + self.width, other.x + other.width)
        y_end = min(self.y + self.height, other.y + other.height)
        return BoundingBox(
            x_start,
            y_start,
            max(0, x_end - x_start),
            max(0, y_end - y_start),
        )


def clamp(value: _Number, low: _Number, high: _Number) -> _Number:
    """Return ``max(low, min(value, high))``."""
    return max(low, min(value, high))


def clip(value: _Number, low: _Number, high: _Number) -> _Number:
    """Restrict ``value`` to the range between ``low`` and ``high``.

    The bounds are swapped when given in the wrong order.
    """
    valid_low, valid_high = (low, high) if low < high else (high, low)
    if value < valid_low:
        return valid_low
    if value > valid_high:
        return valid_high
    return value


def vector_product(shape: Iterable[int]) -> int:
    """Product of the dimensions of a tensor shape (1 for an empty shape)."""
    return math.prod(shape, start=1)


def _iou(a: BoundingBox, b: BoundingBox, area_a: float, area_b: float) -> float:
    width = min(a.x + a.width, b.x + b.width) - max(a.x, b.x)
    height = min(a.y + a.height, b.y + b.height) - max(a.y, b.y)
    if width <= 0 or height <= 0:
        return 0.0
    intersection = float(width * height)
    union = area_a + area_b - intersection
    return intersection / union if union > 0.0 else 0.0


def nms_boxes(
    boxes: Sequence[BoundingBox],
    scores: Sequence[float],
    score_threshold: float,
    nms_threshold: float,
) -> list[int]:
    """Greedy non-maximum suppression.

    Boxes scoring below ``score_threshold`` are dropped; the rest are visited
    by descending score, and each kept box suppresses every later box whose
    IoU with it exceeds ``nms_threshold``. Returns the indices of the kept
    boxes in the order they were kept.
    """
    if len(boxes) != len(scores):
        raise ValueError(
            f"got {len(boxes)} boxes but {len(scores)} scores"
        )

    order = sorted(
        (i for i, score in enumerate(scores) if score >= score_threshold),
        key=lambda i: scores[i],
        reverse=True,
    )
    areas = [box.area() for box in boxes]
    suppressed: set[int] = set()
    kept: list[int] = []

    for position, current in enumerate(order):
        if current in suppressed:
            continue
        kept.append(current)
        for candidate in order[position + 1:]:
            if candidate in suppressed:
                continue
            iou = _iou(boxes[current], boxes[candidate], areas[current], areas[candidate])
            if iou > nms_threshold:
                suppressed.add(candidate)

    return kept